"""Ingestion pipeline and background queue."""

from hybridrag.pipeline.ingest import IngestPipeline
from hybridrag.pipeline.queue import IngestionQueue
from hybridrag.pipeline.schemas import (
    EmbeddingRunResult,
    IngestionEvent,
    IngestionEventKind,
    IngestResult,
)

__all__ = [
    "EmbeddingRunResult",
    "IngestPipeline",
    "IngestResult",
    "IngestionEvent",
    "IngestionEventKind",
    "IngestionQueue",
]
