"""Download state machine and progress reports."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class NotDownloaded:
    name = "not_downloaded"


@dataclass(frozen=True)
class Downloading:
    progress: float = 0.0  # percent, 0-100
    name = "downloading"


@dataclass(frozen=True)
class Downloaded:
    name = "downloaded"


@dataclass(frozen=True)
class Failed:
    reason: str
    name = "error"


ModelDownloadState = NotDownloaded | Downloading | Downloaded | Failed


@dataclass(frozen=True)
class DownloadProgress:
    """A single progress report for one model download."""

    model_id: str
    file_name: str
    bytes_downloaded: int
    file_index: int
    file_count: int
    file_fraction: float = 0.0
    status: str = ""
    complete: bool = False
    error: str | None = None

    @property
    def percent(self) -> float:
        if self.complete:
            return 100.0
        if self.file_count <= 0:
            return 0.0
        done = self.file_index + min(max(self.file_fraction, 0.0), 1.0)
        return round(100.0 * done / self.file_count, 1)
