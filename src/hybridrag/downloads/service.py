"""Download, verify and delete local embedding model artifacts.

Each catalog model moves through NotDownloaded -> Downloading -> Downloaded.
A failed or cancelled download lands in Failed(reason) until it is
retried, cleared or deleted. Artifacts are streamed into ``<file>.partial``
and renamed into place only once complete, so a final artifact is never
half-written. An interrupted partial file is resumed with a Range request.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import threading
from collections.abc import Callable
from pathlib import Path

import httpx

from hybridrag.downloads.schemas import (
    Downloaded,
    Downloading,
    DownloadProgress,
    Failed,
    ModelDownloadState,
    NotDownloaded,
)
from hybridrag.embeddings.catalog import (
    EmbeddingModelDescriptor,
    find_model,
    get_model,
    model_path,
)
from hybridrag.errors import DownloadCancelledError, DownloadError
from hybridrag.status import StatusBoard

logger = logging.getLogger(__name__)

DEFAULT_HUB_URL = "https://huggingface.co"
MANIFEST_NAME = ".manifest.json"
PARTIAL_SUFFIX = ".partial"
CHUNK_SIZE = 81920

ProgressCallback = Callable[[DownloadProgress], None]


class ModelDownloadService:
    """Manages on-disk model artifacts, one active download per model id."""

    def __init__(
        self,
        models_dir: str | Path | None = None,
        hub_url: str = DEFAULT_HUB_URL,
        verify_sizes: bool = False,
        status: StatusBoard | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._models_dir = models_dir
        self.hub_url = hub_url.rstrip("/")
        self.verify_sizes = verify_sizes
        self._status = status
        self._timeout = timeout
        self._transport = transport
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._states: dict[str, ModelDownloadState] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def model_dir(self, model_id: str) -> Path:
        return model_path(model_id, self._models_dir)

    def is_downloaded(self, model_id: str) -> bool:
        """True only if every required artifact is present (and sized right)."""
        descriptor = find_model(model_id)
        if descriptor is None:
            return False

        directory = self.model_dir(model_id)
        if not all((directory / name).is_file() for name in descriptor.required_files):
            return False

        if self.verify_sizes:
            return self._sizes_match(directory, descriptor)
        return True

    def get_status(self, model_id: str) -> ModelDownloadState:
        """Current state; unknown ids are simply ``NotDownloaded``."""
        with self._lock:
            state = self._states.get(model_id)
        if isinstance(state, (Downloading, Failed)):
            return state
        if self.is_downloaded(model_id):
            return Downloaded()
        return NotDownloaded()

    def get_downloaded_size(self, model_id: str) -> int:
        """Bytes on disk for ``model_id``, partial files included."""
        if find_model(model_id) is None:
            return 0
        directory = self.model_dir(model_id)
        if not directory.is_dir():
            return 0
        return sum(
            p.stat().st_size
            for p in directory.rglob("*")
            if p.is_file() and p.name != MANIFEST_NAME
        )

    def is_active(self, model_id: str) -> bool:
        task = self._tasks.get(model_id)
        return task is not None and not task.done()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def download(
        self,
        model_id: str,
        progress: ProgressCallback | None = None,
    ) -> None:
        """Fetch every required artifact of ``model_id``.

        A second call while a download is in flight joins the running one.

        Raises:
            UnknownModelError: ``model_id`` is not in the catalog.
            DownloadCancelledError: ``cancel_download`` stopped the transfer.
            DownloadError: Network or filesystem failure.
        """
        descriptor = get_model(model_id)

        existing = self._tasks.get(model_id)
        if existing is not None and not existing.done():
            logger.info("Joining in-flight download of %s", model_id)
            await self._await_task(model_id, asyncio.shield(existing))
            return

        task = asyncio.create_task(self._run(descriptor, progress))
        self._tasks[model_id] = task
        await self._await_task(model_id, task)

    async def cancel_download(self, model_id: str) -> None:
        """Stop an active download. No-op if nothing is running."""
        task = self._tasks.get(model_id)
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Cancelled download of %s", model_id)

    async def delete_model(self, model_id: str) -> None:
        """Remove all artifacts of ``model_id``. No-op if nothing is present."""
        if find_model(model_id) is None:
            return
        await self.cancel_download(model_id)

        directory = self.model_dir(model_id)
        if directory.is_dir():
            shutil.rmtree(directory)
            logger.info("Deleted model %s from %s", model_id, directory)
        self.clear_error(model_id)

    def clear_error(self, model_id: str) -> None:
        """Acknowledge a failure: Failed -> NotDownloaded."""
        with self._lock:
            state = self._states.pop(model_id, None)
        if state is not None:
            self._publish(model_id, self.get_status(model_id))

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    async def _await_task(self, model_id: str, awaitable: asyncio.Future[None]) -> None:
        try:
            await awaitable
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            raise DownloadCancelledError(model_id) from None

    async def _run(
        self,
        descriptor: EmbeddingModelDescriptor,
        progress: ProgressCallback | None,
    ) -> None:
        model_id = descriptor.id
        directory = self.model_dir(model_id)
        self._set_state(model_id, Downloading(0.0))

        def report(update: DownloadProgress) -> None:
            self._set_state(model_id, Downloading(update.percent))
            if progress is not None:
                progress(update)

        try:
            directory.mkdir(parents=True, exist_ok=True)
            sizes: dict[str, int] = {}
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                for index, name in enumerate(descriptor.required_files):
                    sizes[name] = await self._fetch_file(
                        client, descriptor, name, index, report,
                    )
            self._write_manifest(directory, sizes)
        except asyncio.CancelledError:
            self._set_state(model_id, Failed("cancelled"))
            if progress is not None:
                progress(DownloadProgress(
                    model_id=model_id, file_name="", bytes_downloaded=0,
                    file_index=0, file_count=len(descriptor.required_files),
                    status="Download cancelled", error="cancelled",
                ))
            raise
        except (httpx.HTTPError, OSError) as exc:
            self._set_state(model_id, Failed(str(exc)))
            logger.warning("Download of %s failed: %s", model_id, exc)
            raise DownloadError(f"Download of {model_id} failed: {exc}") from exc
        finally:
            self._tasks.pop(model_id, None)

        with self._lock:
            self._states.pop(model_id, None)
        self._publish(model_id, Downloaded())
        if progress is not None:
            progress(DownloadProgress(
                model_id=model_id, file_name="",
                bytes_downloaded=sum(sizes.values()),
                file_index=len(sizes), file_count=len(sizes),
                status="Download complete", complete=True,
            ))
        logger.info("Downloaded %s (%d bytes) to %s", model_id, sum(sizes.values()), directory)

    async def _fetch_file(
        self,
        client: httpx.AsyncClient,
        descriptor: EmbeddingModelDescriptor,
        name: str,
        index: int,
        report: ProgressCallback,
    ) -> int:
        """Stream one artifact into place; returns its final size."""
        final = self.model_dir(descriptor.id) / name
        partial = final.with_name(final.name + PARTIAL_SUFFIX)
        file_count = len(descriptor.required_files)

        if final.is_file():
            size = final.stat().st_size
            report(DownloadProgress(
                model_id=descriptor.id, file_name=name, bytes_downloaded=size,
                file_index=index, file_count=file_count, file_fraction=1.0,
                status=f"Skipped {name} (already present)",
            ))
            return size

        final.parent.mkdir(parents=True, exist_ok=True)
        existing = partial.stat().st_size if partial.is_file() else 0
        headers = {"Range": f"bytes={existing}-"} if existing else {}
        url = f"{self.hub_url}/{descriptor.source_repo}/resolve/main/{name}"

        if self._status is not None:
            self._status.increment_network_calls()

        async with client.stream("GET", url, headers=headers) as resp:
            resp.raise_for_status()
            if existing and resp.status_code != httpx.codes.PARTIAL_CONTENT:
                # Server ignored the Range header; start over
                existing = 0
            expected = int(resp.headers.get("content-length", 0)) + existing
            written = existing

            with open(partial, "ab" if existing else "wb") as fh:
                async for block in resp.aiter_bytes(CHUNK_SIZE):
                    await asyncio.to_thread(fh.write, block)
                    written += len(block)
                    report(DownloadProgress(
                        model_id=descriptor.id, file_name=name,
                        bytes_downloaded=written, file_index=index,
                        file_count=file_count,
                        file_fraction=written / expected if expected else 0.0,
                        status=f"Downloading {name}...",
                    ))

        os.replace(partial, final)
        logger.debug("Fetched %s/%s (%d bytes)", descriptor.id, name, written)
        return written

    def _set_state(self, model_id: str, state: ModelDownloadState) -> None:
        with self._lock:
            self._states[model_id] = state
        self._publish(model_id, state)

    def _publish(self, model_id: str, state: ModelDownloadState) -> None:
        if self._status is not None:
            self._status.set_download_state(model_id, state)

    @staticmethod
    def _write_manifest(directory: Path, sizes: dict[str, int]) -> None:
        (directory / MANIFEST_NAME).write_text(json.dumps(sizes), encoding="utf-8")

    @staticmethod
    def _sizes_match(directory: Path, descriptor: EmbeddingModelDescriptor) -> bool:
        manifest = directory / MANIFEST_NAME
        if not manifest.is_file():
            return False
        try:
            expected = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return False
        return all(
            (directory / name).stat().st_size == expected.get(name)
            for name in descriptor.required_files
        )
