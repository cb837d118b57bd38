"""Local embedding model acquisition."""

from hybridrag.downloads.schemas import (
    Downloaded,
    Downloading,
    DownloadProgress,
    Failed,
    ModelDownloadState,
    NotDownloaded,
)
from hybridrag.downloads.service import ModelDownloadService

__all__ = [
    "DownloadProgress",
    "Downloaded",
    "Downloading",
    "Failed",
    "ModelDownloadService",
    "ModelDownloadState",
    "NotDownloaded",
]
