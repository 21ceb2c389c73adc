"""In-memory record of the last observed state of each pod."""

from __future__ import annotations

import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class StateTracker:
    """Owns the status map and ready set for one verification run.

    Watch threads and the event loop may report observations on different
    schedules, so every access goes through a single lock.
    """

    def __init__(self, *, target: Optional[int] = None) -> None:
        self._lock = threading.Lock()
        self._statuses: dict[str, str] = {}
        self._ready: set[str] = set()
        self._target = target

    @property
    def target(self) -> Optional[int]:
        return self._target

    def observe(self, name: str, status: str) -> bool:
        """Record ``status`` for ``name``; True if it differs from the previous one."""
        with self._lock:
            if name in self._statuses and self._statuses[name] == status:
                return False
            self._statuses[name] = status
            return True

    def last_status(self, name: str) -> Optional[str]:
        with self._lock:
            return self._statuses.get(name)

    def set_ready(self, name: str, ready: bool) -> int:
        """Add or remove ``name`` from the ready set and return the ready count."""
        with self._lock:
            if ready:
                self._ready.add(name)
            else:
                self._ready.discard(name)
            return len(self._ready)

    def forget(self, name: str) -> int:
        with self._lock:
            self._statuses.pop(name, None)
            self._ready.discard(name)
            return len(self._ready)

    @property
    def ready_count(self) -> int:
        with self._lock:
            return len(self._ready)

    @property
    def ready_names(self) -> list[str]:
        with self._lock:
            return sorted(self._ready)

    def target_reached(self) -> bool:
        with self._lock:
            return self._target is not None and len(self._ready) >= self._target

    def clear(self) -> None:
        with self._lock:
            self._statuses.clear()
            self._ready.clear()
