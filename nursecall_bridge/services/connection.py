"""Serial connection lifecycle: open, read, retry, stop."""
from __future__ import annotations

import enum
import logging
import threading
from typing import Any, Callable, Optional, Protocol

import serial
import serial.tools.list_ports

from nursecall_bridge.config import BridgeSettings
from nursecall_bridge.services.debounce import DebounceLedger
from nursecall_bridge.services.events import (
    DEVICE_CONNECTED,
    DEVICE_DISCONNECTED,
    DEVICE_ERROR,
    RAW_DATA,
    EventSink,
)

LOGGER = logging.getLogger(__name__)
READ_CHUNK = 1024
JOIN_WARN_S = 5.0


class ConnectionStartError(RuntimeError):
    """Raised when the connection thread cannot be started."""


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    OPENING = "opening"
    CONNECTED = "connected"
    STOPPED = "stopped"


class SerialPort(Protocol):
    @property
    def in_waiting(self) -> int: ...

    def read(self, size: int = 1) -> bytes: ...

    def close(self) -> None: ...


PortOpener = Callable[[str, BridgeSettings], SerialPort]


def open_serial_port(device_id: str, settings: BridgeSettings) -> SerialPort:
    return serial.Serial(
        device_id,
        baudrate=settings.baud_rate,
        timeout=settings.read_timeout_s,
    )


def list_ports(*, prefer_tty: bool = False) -> list[str]:
    """Return serial device names; an empty list when enumeration fails."""
    try:
        names = [port.device for port in serial.tools.list_ports.comports()]
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("Serial port enumeration failed: %s", exc)
        return []
    if prefer_tty:
        return _prefer_tty(names)
    return names


def _prefer_tty(names: list[str]) -> list[str]:
    """Collapse macOS ``/dev/cu.X`` and ``/dev/tty.X`` pairs to the tty device."""
    picked: dict[str, str] = {}
    for name in names:
        key = name.rsplit(".", 1)[-1]
        previous = picked.get(key)
        if previous is None or ("/dev/tty." in name and "/dev/tty." not in previous):
            picked[key] = name
    return list(picked.values())


def _read_chunk(port: SerialPort) -> bytes:
    # Blocks for at most the port timeout, then drains whatever has arrived.
    data = port.read(1)
    if not data:
        return b""
    waiting = port.in_waiting
    if waiting:
        data += port.read(min(waiting, READ_CHUNK - len(data)))
    return data


class SerialWorker:
    """Background thread owning one serial device until stopped."""

    def __init__(
        self,
        device_id: str,
        *,
        on_chunk: Callable[[bytes], None],
        on_connected: Callable[[], None],
        sink: EventSink,
        ledger: DebounceLedger,
        settings: BridgeSettings,
        opener: PortOpener = open_serial_port,
    ) -> None:
        self.device_id = device_id
        self._on_chunk = on_chunk
        self._on_connected = on_connected
        self._sink = sink
        self._ledger = ledger
        self._settings = settings
        self._opener = opener
        self._stop = threading.Event()
        self._state = ConnectionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> ConnectionState:
        with self._state_lock:
            return self._state

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        thread = threading.Thread(
            target=self._run, name=f"serial-{self.device_id}", daemon=True
        )
        try:
            thread.start()
        except RuntimeError as exc:
            raise ConnectionStartError(
                f"Failed to start connection thread for {self.device_id}: {exc}"
            ) from exc
        self._thread = thread
        LOGGER.info("Started connection worker for %s", self.device_id)

    def stop(self) -> None:
        """Request cancellation and wait until the thread has released the port."""
        self._stop.set()
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(JOIN_WARN_S)
        if thread.is_alive():
            LOGGER.warning("Connection worker for %s still closing", self.device_id)
            thread.join()
        LOGGER.info("Stopped connection worker for %s", self.device_id)

    def _set_state(self, state: ConnectionState) -> None:
        with self._state_lock:
            self._state = state

    def _publish(self, name: str, payload: Any = None) -> None:
        try:
            self._sink(name, payload)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Event sink failed for %s", name)

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                self._set_state(ConnectionState.OPENING)
                try:
                    port = self._opener(self.device_id, self._settings)
                except (serial.SerialException, OSError, ValueError) as exc:
                    self._set_state(ConnectionState.DISCONNECTED)
                    LOGGER.debug("Open failed for %s: %s", self.device_id, exc)
                    if self._ledger.should_emit(
                        f"open_err:{self.device_id}", self._settings.error_window_ms
                    ):
                        LOGGER.warning("Cannot open %s: %s (retrying)", self.device_id, exc)
                        self._publish(DEVICE_ERROR, f"{exc} (retrying)")
                    self._stop.wait(self._settings.open_retry_s)
                    continue

                failed = self._serve(port)
                self._set_state(ConnectionState.DISCONNECTED)
                self._publish(DEVICE_DISCONNECTED)
                if failed:
                    self._stop.wait(self._settings.reconnect_delay_s)
        finally:
            self._set_state(ConnectionState.STOPPED)

    def _serve(self, port: SerialPort) -> bool:
        """Read until stopped or the device fails; True when it failed."""
        try:
            self._set_state(ConnectionState.CONNECTED)
            self._on_connected()
            LOGGER.info("Connected to %s", self.device_id)
            self._publish(DEVICE_CONNECTED, self.device_id)

            while not self._stop.is_set():
                try:
                    data = _read_chunk(port)
                except (serial.SerialException, OSError) as exc:
                    LOGGER.warning("Read error on %s: %s", self.device_id, exc)
                    return True
                if not data:
                    continue
                self._publish(RAW_DATA, data.decode("utf-8", errors="replace"))
                try:
                    self._on_chunk(data)
                except Exception:  # noqa: BLE001
                    LOGGER.exception("Failed to handle data from %s", self.device_id)
            return False
        finally:
            try:
                port.close()
            except (serial.SerialException, OSError) as exc:
                LOGGER.debug("Closing %s failed: %s", self.device_id, exc)


class ConnectionManager:
    """At most one worker at a time; connecting always replaces the old one."""

    def __init__(
        self,
        *,
        on_chunk: Callable[[bytes], None],
        on_connected: Callable[[], None],
        sink: EventSink,
        ledger: DebounceLedger,
        settings: BridgeSettings,
        opener: PortOpener = open_serial_port,
    ) -> None:
        self._on_chunk = on_chunk
        self._on_connected = on_connected
        self._sink = sink
        self._ledger = ledger
        self._settings = settings
        self._opener = opener
        self._worker: Optional[SerialWorker] = None
        self._lock = threading.Lock()

    @property
    def device_id(self) -> Optional[str]:
        worker = self._worker
        return worker.device_id if worker else None

    @property
    def state(self) -> ConnectionState:
        worker = self._worker
        if worker is None:
            return ConnectionState.DISCONNECTED
        return worker.state

    @property
    def is_running(self) -> bool:
        worker = self._worker
        return worker is not None and worker.is_alive

    def connect(self, device_id: str) -> SerialWorker:
        worker = SerialWorker(
            device_id,
            on_chunk=self._on_chunk,
            on_connected=self._on_connected,
            sink=self._sink,
            ledger=self._ledger,
            settings=self._settings,
            opener=self._opener,
        )
        with self._lock:
            previous, self._worker = self._worker, worker
        # Joined outside the lock so sink callbacks on that thread may call back in.
        if previous is not None:
            previous.stop()
        try:
            worker.start()
        except ConnectionStartError:
            with self._lock:
                if self._worker is worker:
                    self._worker = None
            raise
        return worker

    def disconnect(self) -> None:
        with self._lock:
            worker, self._worker = self._worker, None
        if worker is not None:
            worker.stop()
