"""Shared status board with message-passing subscribers.

Writers update the board under a lock; every change publishes an
immutable ``StatusSnapshot`` to each subscriber's queue. Subscribers drain
their own queue on whatever thread they like.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusSnapshot:
    """Point-in-time copy of the board."""

    status: str
    network_calls: int
    offline: bool
    downloads: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))


class StatusBoard:
    """Thread-safe status object (network counter, status text, downloads)."""

    def __init__(self, status: str = "Ready"):
        self._lock = threading.Lock()
        self._status = status
        self._network_calls = 0
        self._offline = True
        self._downloads: dict[str, Any] = {}
        self._subscribers: list[queue.SimpleQueue[StatusSnapshot]] = []

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self) -> queue.SimpleQueue[StatusSnapshot]:
        """Register a new subscriber and return its message queue."""
        q: queue.SimpleQueue[StatusSnapshot] = queue.SimpleQueue()
        with self._lock:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.SimpleQueue[StatusSnapshot]) -> None:
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def increment_network_calls(self) -> int:
        with self._lock:
            self._network_calls += 1
            self._offline = False
            count = self._network_calls
            self._publish_locked()
        return count

    def set_status(self, status: str) -> None:
        with self._lock:
            self._status = status
            self._publish_locked()

    def set_download_state(self, model_id: str, state: Any) -> None:
        with self._lock:
            self._downloads[model_id] = state
            self._publish_locked()

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @property
    def network_calls(self) -> int:
        with self._lock:
            return self._network_calls

    @property
    def status(self) -> str:
        with self._lock:
            return self._status

    def snapshot(self) -> StatusSnapshot:
        with self._lock:
            return self._snapshot_locked()

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _snapshot_locked(self) -> StatusSnapshot:
        return StatusSnapshot(
            status=self._status,
            network_calls=self._network_calls,
            offline=self._offline,
            downloads=MappingProxyType(dict(self._downloads)),
        )

    def _publish_locked(self) -> None:
        snap = self._snapshot_locked()
        for q in self._subscribers:
            q.put(snap)
        logger.debug("Status published to %d subscribers", len(self._subscribers))
