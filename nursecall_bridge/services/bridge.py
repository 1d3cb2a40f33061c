"""Nurse-call bridge: serial events in, call history and notifications out."""
from __future__ import annotations

import logging
import pathlib
from typing import Optional

from nursecall_bridge.config import BridgeSettings
from nursecall_bridge.domain.models import (
    Acknowledgment,
    CallRecord,
    CallResolved,
    CallTriggered,
    DecodedEvent,
    StandbyPulse,
    Trigger,
)
from nursecall_bridge.services.connection import (
    ConnectionManager,
    ConnectionState,
    PortOpener,
    list_ports,
    open_serial_port,
)
from nursecall_bridge.services.debounce import DebounceLedger
from nursecall_bridge.services.decoder import LineDecoder
from nursecall_bridge.services.events import (
    CALL_RESOLVED,
    CALL_TRIGGERED,
    STANDBY_OK,
    EventSink,
)
from nursecall_bridge.services.tracker import CallStateTracker
from nursecall_bridge.storage.document import ConfigDocument, DocumentError
from nursecall_bridge.storage.history import CallHistoryStore, Clock

LOGGER = logging.getLogger(__name__)


class NurseCallBridge:
    """Commands and event handling for one nurse-call panel.

    The connection thread feeds decoded events into ``handle_event``;
    foreground callers use ``enclose_latest`` and ``enclose_all``. Both paths
    go through the same history store, which serializes them on the
    document lock.
    """

    def __init__(
        self,
        document: ConfigDocument | str | pathlib.Path,
        sink: EventSink,
        *,
        settings: Optional[BridgeSettings] = None,
        opener: PortOpener = open_serial_port,
        clock: Optional[Clock] = None,
        ledger: Optional[DebounceLedger] = None,
    ) -> None:
        if not isinstance(document, ConfigDocument):
            document = ConfigDocument(document)
        self.settings = settings or BridgeSettings()
        self.store = CallHistoryStore(document, clock=clock)
        self.ledger = ledger or DebounceLedger()
        self.tracker = CallStateTracker()
        self.decoder = LineDecoder(buffer_partial_lines=self.settings.buffer_partial_lines)
        self._sink = sink
        self._connection = ConnectionManager(
            on_chunk=self.handle_chunk,
            on_connected=self._on_connected,
            sink=sink,
            ledger=self.ledger,
            settings=self.settings,
            opener=opener,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def list_ports(self) -> list[str]:
        return list_ports(prefer_tty=self.settings.prefer_tty)

    def connect(self, device_id: str) -> None:
        self._connection.connect(device_id)

    def disconnect(self) -> None:
        self._connection.disconnect()

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection.state

    @property
    def device_id(self) -> Optional[str]:
        return self._connection.device_id

    def enclose_latest(self) -> CallRecord:
        """Complete the newest pending call; raises NoPendingCallsError if none."""
        record = self.store.complete_latest_any()
        self._sink(CALL_RESOLVED, CallResolved.from_record(record).as_payload())
        return record

    def enclose_all(self) -> int:
        records = self.store.complete_all_pending()
        for record in records:
            self._sink(CALL_RESOLVED, CallResolved.from_record(record).as_payload())
        return len(records)

    # ------------------------------------------------------------------
    # Connection callbacks
    # ------------------------------------------------------------------
    def _on_connected(self) -> None:
        self.tracker.reset()
        self.decoder.reset()

    def handle_chunk(self, data: bytes) -> None:
        for event in self.decoder.feed(data):
            self.handle_event(event)

    def handle_event(self, event: DecodedEvent) -> None:
        try:
            if isinstance(event, StandbyPulse):
                self._handle_standby()
            elif isinstance(event, Acknowledgment):
                self._handle_reset(event.target_code)
            elif isinstance(event, Trigger):
                if event.is_reset:
                    self._handle_reset(event.target_code, adc_value=event.value)
                else:
                    self._handle_trigger(event)
        except DocumentError as exc:
            LOGGER.warning("Skipping %s: %s", event, exc)

    def _handle_standby(self) -> None:
        self._sink(STANDBY_OK, None)
        code = self.tracker.on_standby()
        if code is not None:
            LOGGER.info("No reset for %s after standby pulses; completing", code)
            self._resolve(code)

    def _handle_reset(self, target_code: str, *, adc_value: Optional[int] = None) -> None:
        try:
            self._resolve(target_code, adc_value=adc_value)
        finally:
            self.tracker.on_reset()

    def _handle_trigger(self, event: Trigger) -> None:
        created = self.store.append_active(event.code, event.value)
        if created is None:
            return
        self.tracker.on_call_created(event.code)
        record = created.record
        if self.ledger.should_emit(f"trigger:{record.code}", self.settings.notify_window_ms):
            self._sink(
                CALL_TRIGGERED,
                CallTriggered(
                    code=record.code,
                    room=record.room,
                    bed=record.bed,
                    display=record.display,
                    files=created.files,
                ).as_payload(),
            )

    def _resolve(self, code: str, *, adc_value: Optional[int] = None) -> None:
        record = self.store.complete_latest_matching(code, adc_value=adc_value)
        if record is None:
            return
        if self.ledger.should_emit(f"enclose:{code}", self.settings.notify_window_ms):
            self._sink(CALL_RESOLVED, CallResolved.from_record(record).as_payload())
