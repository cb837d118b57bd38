"""Tests for the shared status board."""

from __future__ import annotations

import threading

import pytest

from hybridrag.downloads.schemas import Downloading
from hybridrag.status import StatusBoard


class TestStatusBoard:
    def test_initial_state(self):
        snap = StatusBoard().snapshot()
        assert snap.status == "Ready"
        assert snap.network_calls == 0
        assert snap.offline is True
        assert dict(snap.downloads) == {}

    def test_network_calls(self):
        board = StatusBoard()
        assert board.increment_network_calls() == 1
        assert board.increment_network_calls() == 2
        assert board.network_calls == 2
        assert board.snapshot().offline is False

    def test_subscribers_receive_snapshots(self):
        board = StatusBoard()
        q = board.subscribe()

        board.set_status("Embedding...")
        board.set_download_state("m", Downloading(50.0))

        first, second = q.get_nowait(), q.get_nowait()
        assert first.status == "Embedding..."
        assert second.downloads["m"] == Downloading(50.0)
        assert q.empty()

    def test_unsubscribe(self):
        board = StatusBoard()
        q = board.subscribe()
        board.unsubscribe(q)
        board.set_status("x")
        assert q.empty()
        board.unsubscribe(q)

    def test_snapshot_is_immutable(self):
        board = StatusBoard()
        board.set_download_state("m", Downloading(1.0))
        snap = board.snapshot()
        board.set_download_state("m", Downloading(2.0))

        assert snap.downloads["m"] == Downloading(1.0)
        with pytest.raises(TypeError):
            snap.downloads["m"] = None  # type: ignore[index]

    def test_concurrent_increments(self):
        board = StatusBoard()

        def work():
            for _ in range(500):
                board.increment_network_calls()

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert board.network_calls == 4000
