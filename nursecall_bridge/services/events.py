"""Outward events and the sinks that receive them."""
from __future__ import annotations

import json
import logging
import threading
from typing import IO, Any, Callable

LOGGER = logging.getLogger(__name__)

DEVICE_CONNECTED = "device-connected"
DEVICE_DISCONNECTED = "device-disconnected"
RAW_DATA = "raw-data"
DEVICE_ERROR = "device-error"
STANDBY_OK = "standby-ok"
CALL_TRIGGERED = "call-triggered"
CALL_RESOLVED = "call-resolved"

EventSink = Callable[[str, Any], None]


class EventBus:
    """Fan events out to subscribers; a failing subscriber never reaches the publisher."""

    def __init__(self) -> None:
        self._subscribers: list[EventSink] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: EventSink) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, name: str, payload: Any = None) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(name, payload)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Event subscriber failed for %s", name)

    __call__ = publish


class LoggingSink:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or LOGGER

    def __call__(self, name: str, payload: Any = None) -> None:
        level = logging.DEBUG if name in (RAW_DATA, STANDBY_OK) else logging.INFO
        self._logger.log(level, "event %s %s", name, payload if payload is not None else "")


class JsonLinesSink:
    """Write each event as one JSON object per line."""

    def __init__(self, stream: IO[str]) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def __call__(self, name: str, payload: Any = None) -> None:
        line = json.dumps({"event": name, "payload": payload}, ensure_ascii=False, sort_keys=True)
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()
