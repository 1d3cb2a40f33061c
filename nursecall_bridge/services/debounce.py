"""Keyed emission throttle shared by the connection thread and commands."""
from __future__ import annotations

import threading
import time
from typing import Callable, Optional

NOTIFY_WINDOW_MS = 1500
ERROR_WINDOW_MS = 3000


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class DebounceLedger:
    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or _monotonic_ms
        self._last: dict[str, float] = {}
        self._lock = threading.Lock()

    def should_emit(self, key: str, window_ms: float) -> bool:
        """Return True and remember ``key`` unless it was accepted within the window."""
        now = self._clock()
        with self._lock:
            last = self._last.get(key)
            if last is not None and now - last < window_ms:
                return False
            self._last[key] = now
            return True
