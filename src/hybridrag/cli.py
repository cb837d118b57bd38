"""CLI entry point — Typer app for hybridrag commands.

Usage:
    hybridrag ingest notes.md report.txt
    hybridrag embed
    hybridrag query "What were the key risk factors?" --mode hybrid
    hybridrag models list
    hybridrag models download multilingual-e5-small
    hybridrag status
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from hybridrag.config import Settings, load_settings

app = typer.Typer(
    name="hybridrag",
    help="Hybrid RAG engine — ingest, embed, query, manage local models.",
    no_args_is_help=True,
)
models_app = typer.Typer(help="Manage local embedding models.", no_args_is_help=True)
app.add_typer(models_app, name="models")

console = Console()

_STORE_OPTION = typer.Option(
    Path("rag_store.json"), "--store", "-s", help="JSON file holding documents and chunks",
)
_INGEST_PATHS = typer.Argument(..., help="Documents to ingest")
_MODEL_ID = typer.Argument(..., help="Model id from `hybridrag models list`")

_settings: Settings | None = None


def _get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


@app.callback()
def main(
    config: Path | None = typer.Option(None, "--config", "-c", help="Settings YAML file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Configure logging and settings for every command."""
    global _settings
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _settings = load_settings(config)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@app.command()
def ingest(
    paths: Annotated[list[Path], _INGEST_PATHS],
    store_path: Path = _STORE_OPTION,
) -> None:
    """Load, clean and chunk documents into the store."""
    from hybridrag.chunking.paragraph_chunker import ParagraphChunker
    from hybridrag.documents.loader import DocumentLoader
    from hybridrag.documents.store import InMemoryChunkStore
    from hybridrag.pipeline.ingest import IngestPipeline

    settings = _get_settings()
    store = InMemoryChunkStore.open(store_path)
    pipeline = IngestPipeline(
        store=store,
        chunker=ParagraphChunker(
            settings.chunking.min_chars,
            settings.chunking.max_chars,
            settings.chunking.overlap_chars,
        ),
        loader=DocumentLoader(set(settings.ingestion.supported_formats)),
    )
    results = asyncio.run(pipeline.add_documents(paths))
    store.save_to(store_path)

    for result in results:
        if result.error:
            console.print(f"[bold red]Failed:[/] {result.source}: {result.error}")
            continue
        console.print(f"\n[bold green]Ingested:[/] {result.source}")
        console.print(f"  Document id: {result.document_id}")
        console.print(f"  Chunks: {result.chunks_created}")
        for w in result.warnings:
            console.print(f"  [yellow]Warning:[/] {w}")

    if any(r.error for r in results):
        raise typer.Exit(code=1)


@app.command()
def embed(store_path: Path = _STORE_OPTION) -> None:
    """Embed every stored chunk that has no embedding yet."""
    from hybridrag.documents.store import InMemoryChunkStore
    from hybridrag.embeddings.factory import provider_from_settings
    from hybridrag.errors import RagError
    from hybridrag.pipeline.ingest import IngestPipeline
    from hybridrag.status import StatusBoard

    settings = _get_settings()
    store = InMemoryChunkStore.open(store_path)
    board = StatusBoard()

    async def _run():
        provider = await provider_from_settings(settings.embedding, settings.models, board)
        pipeline = IngestPipeline(
            store=store,
            embedding_provider=provider,
            max_concurrency=settings.embedding.max_concurrency,
        )
        with Progress(
            TextColumn("[cyan]Embedding"), BarColumn(), TaskProgressColumn(), console=console,
        ) as progress:
            task = progress.add_task("embed", total=None)

            def report(done: int, total: int) -> None:
                progress.update(task, completed=done, total=total)

            try:
                return await pipeline.generate_embeddings(progress=report)
            finally:
                await provider.aclose()

    try:
        result = asyncio.run(_run())
    except RagError as exc:
        console.print(f"[bold red]Error:[/] {exc}")
        raise typer.Exit(code=1) from exc

    store.save_to(store_path)
    console.print(
        f"\nEmbedded [bold]{result.embedded}[/]/{result.total} chunks"
        + (f" ([red]{result.failed} failed[/])" if result.failed else ""),
    )
    if board.network_calls:
        console.print(f"[dim]Network calls: {board.network_calls}[/]")


@app.command()
def query(
    question: str = typer.Argument(..., help="Search query"),
    mode: str | None = typer.Option(None, "--mode", "-m", help="vector, keyword or hybrid"),
    top_k: int | None = typer.Option(None, "--top-k", "-k", help="Chunks to select"),
    min_similarity: float | None = typer.Option(
        None, "--min-similarity", help="Vector similarity gate",
    ),
    store_path: Path = _STORE_OPTION,
) -> None:
    """Retrieve context for a query and show the full scoring trace."""
    from hybridrag.documents.store import InMemoryChunkStore
    from hybridrag.embeddings.factory import provider_from_settings
    from hybridrag.errors import RagError
    from hybridrag.retrieval.engine import RetrievalEngine
    from hybridrag.retrieval.schemas import RetrievalMode
    from hybridrag.tokens import get_token_counter

    settings = _get_settings()
    retrieval = settings.retrieval
    try:
        active_mode = RetrievalMode(mode or retrieval.mode)
    except ValueError as exc:
        raise typer.BadParameter(f"Unknown mode '{mode}'", param_hint="--mode") from exc
    store = InMemoryChunkStore.open(store_path)

    async def _run():
        provider = None
        if active_mode.uses_vectors:
            try:
                provider = await provider_from_settings(settings.embedding, settings.models)
            except RagError as exc:
                console.print(f"[yellow]Embedding provider unavailable:[/] {exc}")
        engine = RetrievalEngine(
            store=store,
            embedding_provider=provider,
            token_counter=get_token_counter(retrieval.token_counter),
            rrf_k=retrieval.rrf_k,
            context_budget_tokens=retrieval.context_budget_tokens,
        )
        try:
            return await engine.retrieve_context(
                question,
                mode=active_mode,
                top_k=top_k if top_k is not None else retrieval.top_k,
                min_similarity=(
                    min_similarity if min_similarity is not None else retrieval.min_similarity
                ),
            )
        finally:
            if provider is not None:
                await provider.aclose()

    result, trace = asyncio.run(_run())
    trace.finalize()

    console.print(f"\n[bold]Q:[/] {trace.query}")
    console.print(
        f"[dim]Mode: {trace.retrieval_mode} | Fusion: {trace.fusion_formula} "
        f"| Provider: {trace.provider or '-'} | Model: {trace.model or '-'}[/]\n",
    )
    if trace.error:
        console.print(f"[bold red]Retrieval failed:[/] {trace.error}\n")

    table = Table(title="Candidates")
    table.add_column("Rank", justify="right")
    table.add_column("Source", style="cyan")
    table.add_column("#", justify="right")
    table.add_column("Vector", justify="right")
    table.add_column("Keyword", justify="right")
    table.add_column("Fused", justify="right")
    table.add_column("Terms")
    table.add_column("Preview")

    for c in trace.candidates:
        style = "bold green" if c.included else "dim"
        table.add_row(
            str(c.rank) if c.included else "",
            c.source_name,
            str(c.chunk.chunk_index),
            f"{c.vector_score:.3f}",
            f"{c.keyword_score:.2f}",
            f"{c.fused_score:.5f}",
            ", ".join(c.matched_terms),
            c.preview(min(retrieval.preview_chars, 60)),
            style=style,
        )
    console.print(table)

    timings = ", ".join(str(t) for t in trace.timings)
    console.print(f"\n[dim]Timings: {timings} | Total: {trace.total_time_ms:.1f}ms[/]")
    if trace.tokens:
        t = trace.tokens
        approx = "~" if t.is_approximate else ""
        console.print(
            f"[dim]Context: {approx}{t.context_tokens} tokens "
            f"({t.context_usage_percent}% of {t.context_budget} budget)[/]",
        )
    console.print(
        f"[dim]Selected {result.metrics.final_results} of "
        f"{result.metrics.total_chunks_searched} chunks[/]",
    )


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


def _download_service():
    from hybridrag.downloads.service import ModelDownloadService

    models = _get_settings().models
    return ModelDownloadService(
        models_dir=models.resolved_path(),
        hub_url=models.hub_url,
        verify_sizes=models.verify_sizes,
    )


@models_app.command("list")
def models_list() -> None:
    """Show the embedding model catalog."""
    from hybridrag.embeddings.catalog import EMBEDDING_MODELS, available_models

    service = _download_service()
    table = Table(title="Embedding Models")
    table.add_column("ID", style="cyan")
    table.add_column("Dim", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Quality")
    table.add_column("RAM")
    table.add_column("Instruct")
    table.add_column("Status")

    for model_id in available_models():
        m = EMBEDDING_MODELS[model_id]
        table.add_row(
            m.id,
            str(m.dimensions),
            f"{m.size_bytes / 1e9:.2f} GB",
            "★" * m.quality_rating,
            m.ram_required,
            "yes" if m.is_instruct else "",
            service.get_status(m.id).name,
        )
    console.print(table)


@models_app.command("status")
def models_status(model_id: Annotated[str, _MODEL_ID]) -> None:
    """Show download state and on-disk size of one model."""
    service = _download_service()
    state = service.get_status(model_id)
    console.print(f"[bold]{model_id}[/]: {state.name}")
    console.print(f"  Path: {service.model_dir(model_id)}")
    console.print(f"  On disk: {service.get_downloaded_size(model_id):,} bytes")


@models_app.command("download")
def models_download(model_id: Annotated[str, _MODEL_ID]) -> None:
    """Download a model's artifacts (resumes interrupted downloads)."""
    from hybridrag.downloads.schemas import DownloadProgress
    from hybridrag.errors import RagError

    service = _download_service()

    with Progress(
        TextColumn("[cyan]{task.description}"), BarColumn(), TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(model_id, total=100)

        def report(update: DownloadProgress) -> None:
            progress.update(task, completed=update.percent, description=update.status or model_id)

        try:
            asyncio.run(service.download(model_id, progress=report))
        except RagError as exc:
            console.print(f"[bold red]Download failed:[/] {exc}")
            raise typer.Exit(code=1) from exc

    console.print(f"[bold green]Downloaded:[/] {model_id} → {service.model_dir(model_id)}")


@models_app.command("delete")
def models_delete(model_id: Annotated[str, _MODEL_ID]) -> None:
    """Delete a model's artifacts."""
    service = _download_service()
    size = service.get_downloaded_size(model_id)
    asyncio.run(service.delete_model(model_id))
    console.print(f"Deleted {model_id} ({size:,} bytes freed)")


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


@app.command()
def status(store_path: Path = _STORE_OPTION) -> None:
    """Show configuration, store contents and local models."""
    from hybridrag.documents.store import InMemoryChunkStore
    from hybridrag.embeddings.catalog import available_models
    from hybridrag.embeddings.factory import available_providers

    settings = _get_settings()
    store = InMemoryChunkStore.open(store_path)
    service = _download_service()

    console.print("\n[bold green]hybrid-rag-engine[/] v0.1.0\n")

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    chunks = store.all_chunks()
    embedded = sum(1 for c in chunks if c.has_embedding)
    downloaded = [m for m in available_models() if service.is_downloaded(m)]

    table.add_row("Embedding providers", ", ".join(available_providers()))
    table.add_row("Active provider", settings.embedding.provider)
    table.add_row("Retrieval", f"{settings.retrieval.mode}, top_k={settings.retrieval.top_k}, "
                  f"min_similarity={settings.retrieval.min_similarity}, RRF k={settings.retrieval.rrf_k}")
    table.add_row("Store", str(store_path))
    table.add_row("Documents", str(len(store.get_documents())))
    table.add_row("Chunks", f"{len(chunks)} ({embedded} embedded)")
    table.add_row("Models dir", str(settings.models.resolved_path()))
    table.add_row("Downloaded models", ", ".join(downloaded) or "none")

    console.print(table)


if __name__ == "__main__":
    app()
