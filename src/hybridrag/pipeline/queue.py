"""Background ingestion queue.

Files are pushed onto a bounded ``asyncio.Queue`` (``enqueue`` waits when
it is full) and ingested one at a time by a single worker task. Failed
files are retried with a linear backoff. Progress is reported as
``IngestionEvent`` messages on ``events`` rather than through callbacks;
when nobody drains it, only the newest ``max_events`` are kept.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from pathlib import Path

from hybridrag.pipeline.ingest import IngestPipeline
from hybridrag.pipeline.schemas import IngestionEvent, IngestionEventKind

logger = logging.getLogger(__name__)


class IngestionQueue:
    """Single-worker ingestion queue with pause, resume and retry."""

    def __init__(
        self,
        pipeline: IngestPipeline,
        max_retries: int = 2,
        maxsize: int = 100,
        retry_delay: float = 1.0,
        max_events: int = 1000,
    ):
        self.pipeline = pipeline
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.events: asyncio.Queue[IngestionEvent] = asyncio.Queue(maxsize=max_events)
        self._queue: asyncio.Queue[Path] = asyncio.Queue(maxsize=maxsize)
        self._running = asyncio.Event()
        self._running.set()
        self._worker: asyncio.Task[None] | None = None
        self._pending = 0
        self._closed = False

    async def __aenter__(self) -> IngestionQueue:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def queue_count(self) -> int:
        """Files enqueued but not yet finished (including the current one)."""
        return self._pending

    @property
    def is_processing(self) -> bool:
        return self._pending > 0

    @property
    def is_paused(self) -> bool:
        return not self._running.is_set()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the worker. Must be called from a running event loop."""
        if self._worker is None or self._worker.done():
            self._closed = False
            self._worker = asyncio.create_task(self._work(), name="ingestion-queue")

    async def enqueue(self, path: str | Path) -> None:
        if self._closed:
            raise RuntimeError("IngestionQueue is closed")
        path = Path(path)
        self._pending += 1
        await self._queue.put(path)
        self._emit(IngestionEvent(
            kind=IngestionEventKind.QUEUED,
            file_name=path.name,
            status="Queued",
            pending=self._pending,
        ))

    async def enqueue_many(self, paths: Iterable[str | Path]) -> None:
        for path in paths:
            await self.enqueue(path)

    def pause(self) -> None:
        """Hold the worker before its next file; the current file finishes."""
        self._running.clear()

    def resume(self) -> None:
        self._running.set()

    async def join(self) -> None:
        """Wait until every enqueued file has been processed."""
        await self._queue.join()

    async def cancel_all(self) -> None:
        """Stop the worker and drop every queued file."""
        await self._stop_worker()
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            dropped += 1
        self._pending = 0
        if dropped:
            logger.info("Ingestion cancelled, %d queued files dropped", dropped)

    async def close(self) -> None:
        """Stop accepting files and shut the worker down."""
        self._closed = True
        await self._stop_worker()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _stop_worker(self) -> None:
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            await asyncio.gather(worker, return_exceptions=True)

    async def _work(self) -> None:
        while True:
            path = await self._queue.get()
            try:
                await self._running.wait()
                await self._process(path)
            finally:
                self._pending = max(0, self._pending - 1)
                self._queue.task_done()

    async def _process(self, path: Path) -> None:
        start = time.perf_counter()
        attempts = 0
        while True:
            self._emit(IngestionEvent(
                kind=IngestionEventKind.PROGRESS,
                file_name=path.name,
                status=(
                    f"Retrying ({attempts}/{self.max_retries})..." if attempts else "Processing..."
                ),
                pending=self._pending,
            ))
            try:
                result = await self.pipeline.add_document(path)
            except Exception as exc:
                will_retry = attempts < self.max_retries
                logger.warning(
                    "Ingestion of %s failed (attempt %d/%d): %s",
                    path.name, attempts + 1, self.max_retries + 1, exc,
                )
                self._emit(IngestionEvent(
                    kind=IngestionEventKind.ERROR,
                    file_name=path.name,
                    error=str(exc),
                    will_retry=will_retry,
                    pending=self._pending,
                ))
                if not will_retry:
                    return
                attempts += 1
                await asyncio.sleep(self.retry_delay * attempts)
                continue

            self._emit(IngestionEvent(
                kind=IngestionEventKind.COMPLETED,
                file_name=path.name,
                status="Done",
                document_id=result.document_id,
                chunk_count=result.chunks_created,
                duration_s=time.perf_counter() - start,
                pending=self._pending - 1,
            ))
            return

    def _emit(self, event: IngestionEvent) -> None:
        # Undrained events are bounded; the oldest one makes room
        if self.events.full():
            self.events.get_nowait()
        self.events.put_nowait(event)
