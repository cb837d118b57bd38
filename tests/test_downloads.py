"""Tests for ModelDownloadService — mock hub transport, no network."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from hybridrag.downloads.schemas import (
    Downloaded,
    Downloading,
    DownloadProgress,
    Failed,
    NotDownloaded,
)
from hybridrag.downloads.service import MANIFEST_NAME, PARTIAL_SUFFIX, ModelDownloadService
from hybridrag.embeddings.catalog import get_model
from hybridrag.errors import DownloadCancelledError, DownloadError, UnknownModelError
from hybridrag.status import StatusBoard

MODEL = "multilingual-e5-small"

ARTIFACTS = {
    "model.safetensors": b"W" * 200_000,
    "tokenizer.json": b'{"tokens": []}',
    "config.json": b'{"hidden_size": 384}',
}

# ---------------------------------------------------------------------------
# Fake hub
# ---------------------------------------------------------------------------


class FakeHub:
    """Serves catalog artifacts, honouring Range requests when asked to."""

    def __init__(self, honour_range: bool = True, missing: set[str] | None = None):
        self.honour_range = honour_range
        self.missing = missing or set()
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        name = request.url.path.rsplit("/", 1)[-1]
        if name in self.missing or name not in ARTIFACTS:
            return httpx.Response(404, text="not found")

        data = ARTIFACTS[name]
        range_header = request.headers.get("range")
        if range_header and self.honour_range:
            start = int(range_header.removeprefix("bytes=").rstrip("-"))
            return httpx.Response(206, content=data[start:])
        return httpx.Response(200, content=data)

    def fetched(self) -> list[str]:
        return [r.url.path.rsplit("/", 1)[-1] for r in self.requests]


@pytest.fixture
def hub() -> FakeHub:
    return FakeHub()


@pytest.fixture
def service(models_dir, hub) -> ModelDownloadService:
    return ModelDownloadService(
        models_dir=models_dir,
        hub_url="https://hub.example",
        transport=httpx.MockTransport(hub),
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    def test_unknown_model(self, service):
        assert service.is_downloaded("bert-tiny") is False
        assert service.get_status("bert-tiny") == NotDownloaded()
        assert service.get_downloaded_size("bert-tiny") == 0

    def test_nothing_on_disk(self, service):
        assert service.is_downloaded(MODEL) is False
        assert service.get_status(MODEL) == NotDownloaded()
        assert service.get_downloaded_size(MODEL) == 0
        assert service.is_active(MODEL) is False

    def test_partial_install_is_not_downloaded(self, service):
        directory = service.model_dir(MODEL)
        directory.mkdir(parents=True)
        (directory / "config.json").write_bytes(ARTIFACTS["config.json"])
        assert service.is_downloaded(MODEL) is False
        assert service.get_downloaded_size(MODEL) == len(ARTIFACTS["config.json"])

    def test_state_names(self):
        assert NotDownloaded.name == "not_downloaded"
        assert Downloading(10.0).name == "downloading"
        assert Downloaded.name == "downloaded"
        assert Failed("boom").name == "error"


class TestDownloadProgress:
    def test_percent(self):
        p = DownloadProgress(
            model_id=MODEL, file_name="x", bytes_downloaded=0,
            file_index=1, file_count=4, file_fraction=0.5,
        )
        assert p.percent == 37.5

    def test_complete(self):
        p = DownloadProgress(
            model_id=MODEL, file_name="", bytes_downloaded=0,
            file_index=0, file_count=3, complete=True,
        )
        assert p.percent == 100.0

    def test_fraction_clamped(self):
        p = DownloadProgress(
            model_id=MODEL, file_name="x", bytes_downloaded=0,
            file_index=0, file_count=2, file_fraction=3.0,
        )
        assert p.percent == 50.0


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestDownload:
    @pytest.mark.asyncio
    async def test_unknown_model(self, service):
        with pytest.raises(UnknownModelError):
            await service.download("bert-tiny")

    @pytest.mark.asyncio
    async def test_full_download(self, service, hub):
        reports: list[DownloadProgress] = []
        await service.download(MODEL, progress=reports.append)

        directory = service.model_dir(MODEL)
        for name, data in ARTIFACTS.items():
            assert (directory / name).read_bytes() == data
            assert not (directory / (name + PARTIAL_SUFFIX)).exists()

        assert service.is_downloaded(MODEL)
        assert service.get_status(MODEL) == Downloaded()
        assert service.get_downloaded_size(MODEL) == sum(len(d) for d in ARTIFACTS.values())
        assert sorted(hub.fetched()) == sorted(get_model(MODEL).required_files)
        assert all(
            r.url.path.startswith(f"/intfloat/{MODEL}/resolve/main/") for r in hub.requests
        )

        assert reports[-1].complete is True
        assert reports[-1].percent == 100.0
        percents = [r.percent for r in reports]
        assert percents == sorted(percents)

    @pytest.mark.asyncio
    async def test_blocks_written_off_the_event_loop(self, service, monkeypatch):
        offloaded: list[str] = []
        to_thread = asyncio.to_thread

        async def recording_to_thread(func, /, *args, **kwargs):
            offloaded.append(getattr(func, "__name__", ""))
            return await to_thread(func, *args, **kwargs)

        monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)
        await service.download(MODEL)

        assert offloaded.count("write") >= len(ARTIFACTS)
        assert service.is_downloaded(MODEL)

    @pytest.mark.asyncio
    async def test_manifest_written(self, service):
        await service.download(MODEL)
        manifest = json.loads((service.model_dir(MODEL) / MANIFEST_NAME).read_text())
        assert manifest == {name: len(data) for name, data in ARTIFACTS.items()}

    @pytest.mark.asyncio
    async def test_status_board(self, models_dir, hub):
        board = StatusBoard()
        service = ModelDownloadService(
            models_dir=models_dir, status=board, transport=httpx.MockTransport(hub),
        )
        await service.download(MODEL)

        assert board.network_calls == len(ARTIFACTS)
        assert board.snapshot().downloads[MODEL] == Downloaded()

    @pytest.mark.asyncio
    async def test_present_files_are_skipped(self, service, hub):
        directory = service.model_dir(MODEL)
        directory.mkdir(parents=True)
        (directory / "config.json").write_bytes(ARTIFACTS["config.json"])

        reports: list[DownloadProgress] = []
        await service.download(MODEL, progress=reports.append)

        assert "config.json" not in hub.fetched()
        assert any(r.status.startswith("Skipped config.json") for r in reports)
        assert service.is_downloaded(MODEL)

    @pytest.mark.asyncio
    async def test_resume_partial_file(self, service, hub):
        directory = service.model_dir(MODEL)
        directory.mkdir(parents=True)
        data = ARTIFACTS["model.safetensors"]
        (directory / ("model.safetensors" + PARTIAL_SUFFIX)).write_bytes(data[:50_000])

        await service.download(MODEL)

        weights_request = next(
            r for r in hub.requests if r.url.path.endswith("model.safetensors")
        )
        assert weights_request.headers["range"] == "bytes=50000-"
        assert (directory / "model.safetensors").read_bytes() == data

    @pytest.mark.asyncio
    async def test_resume_ignored_by_server(self, models_dir):
        hub = FakeHub(honour_range=False)
        service = ModelDownloadService(models_dir=models_dir, transport=httpx.MockTransport(hub))
        directory = service.model_dir(MODEL)
        directory.mkdir(parents=True)
        data = ARTIFACTS["model.safetensors"]
        (directory / ("model.safetensors" + PARTIAL_SUFFIX)).write_bytes(data[:50_000])

        await service.download(MODEL)

        assert (directory / "model.safetensors").read_bytes() == data

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_download(self, service, hub):
        await asyncio.gather(service.download(MODEL), service.download(MODEL))
        assert len(hub.requests) == len(ARTIFACTS)
        assert service.is_downloaded(MODEL)

    @pytest.mark.asyncio
    async def test_failure_sets_failed_state(self, models_dir):
        hub = FakeHub(missing={"tokenizer.json"})
        service = ModelDownloadService(models_dir=models_dir, transport=httpx.MockTransport(hub))

        with pytest.raises(DownloadError):
            await service.download(MODEL)

        state = service.get_status(MODEL)
        assert isinstance(state, Failed)
        assert "404" in state.reason
        assert service.is_downloaded(MODEL) is False
        assert service.is_active(MODEL) is False

        service.clear_error(MODEL)
        assert service.get_status(MODEL) == NotDownloaded()

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, models_dir):
        hub = FakeHub(missing={"tokenizer.json"})
        service = ModelDownloadService(models_dir=models_dir, transport=httpx.MockTransport(hub))
        with pytest.raises(DownloadError):
            await service.download(MODEL)

        hub.missing.clear()
        await service.download(MODEL)
        assert service.get_status(MODEL) == Downloaded()


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_without_download_is_noop(self, service):
        await service.cancel_download(MODEL)
        assert service.get_status(MODEL) == NotDownloaded()

    @pytest.mark.asyncio
    async def test_cancel_in_flight(self, models_dir):
        started = asyncio.Event()
        release = asyncio.Event()

        async def stalled(request: httpx.Request) -> httpx.Response:
            started.set()
            await release.wait()
            return httpx.Response(200, content=b"never")

        service = ModelDownloadService(
            models_dir=models_dir, transport=httpx.MockTransport(stalled),
        )
        reports: list[DownloadProgress] = []
        task = asyncio.create_task(service.download(MODEL, progress=reports.append))
        await started.wait()
        assert service.is_active(MODEL)

        await service.cancel_download(MODEL)

        with pytest.raises(DownloadCancelledError):
            await task
        assert service.get_status(MODEL) == Failed("cancelled")
        assert service.is_active(MODEL) is False
        assert reports[-1].error == "cancelled"
        assert not (service.model_dir(MODEL) / "model.safetensors").exists()


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_without_files_is_noop(self, service):
        await service.delete_model(MODEL)
        assert service.get_status(MODEL) == NotDownloaded()

    @pytest.mark.asyncio
    async def test_delete_unknown_is_noop(self, service, models_dir):
        await service.delete_model("../models")
        assert models_dir.is_dir()

    @pytest.mark.asyncio
    async def test_delete_downloaded(self, service):
        await service.download(MODEL)
        await service.delete_model(MODEL)

        assert not service.model_dir(MODEL).exists()
        assert service.is_downloaded(MODEL) is False
        assert service.get_status(MODEL) == NotDownloaded()


class TestVerifySizes:
    @pytest.mark.asyncio
    async def test_sizes_checked_against_manifest(self, models_dir, hub):
        service = ModelDownloadService(
            models_dir=models_dir, verify_sizes=True, transport=httpx.MockTransport(hub),
        )
        await service.download(MODEL)
        assert service.is_downloaded(MODEL)

        (service.model_dir(MODEL) / "tokenizer.json").write_bytes(b"{}")
        assert service.is_downloaded(MODEL) is False

    def test_missing_manifest(self, models_dir):
        service = ModelDownloadService(models_dir=models_dir, verify_sizes=True)
        directory = service.model_dir(MODEL)
        directory.mkdir(parents=True)
        for name, data in ARTIFACTS.items():
            (directory / name).write_bytes(data)
        assert service.is_downloaded(MODEL) is False
