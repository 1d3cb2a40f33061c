"""Call history ledger persisted inside the configuration document."""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Iterable, Optional

from nursecall_bridge.domain.models import (
    CallRecord,
    CallStatus,
    CreatedCall,
    display_name,
)
from nursecall_bridge.storage.document import ConfigDocument, DocumentError
from nursecall_bridge.storage.master import MasterDirectory

LOGGER = logging.getLogger(__name__)
HISTORY_KEY = "callHistoryStorage"

Clock = Callable[[], dt.datetime]


class NoPendingCallsError(RuntimeError):
    """Raised when there is no pending call to complete."""


def utc_now() -> dt.datetime:
    return dt.datetime.now(tz=dt.timezone.utc)


class CallHistoryStore:
    """Append-only call ledger with dedup and completion semantics.

    Every operation loads the document, mutates it in memory and writes it
    back while holding the document lock, so the connection thread and
    foreground commands never interleave, even from separate processes.
    """

    def __init__(self, document: ConfigDocument, *, clock: Optional[Clock] = None) -> None:
        self._document = document
        self._clock = clock or utc_now

    def append_active(self, code: str, adc_value: int) -> Optional[CreatedCall]:
        with self._document.locked():
            data = self._document.load()
            directory = MasterDirectory(data)
            if _below_threshold(directory, code, adc_value):
                return None

            history = _history(data, create=True)
            if any(rec.get("code") == code and _is_pending(rec) for rec in _entries(history)):
                LOGGER.debug("Call %s already active; skipping", code)
                return None

            entry = directory.lookup(code)
            room = entry.room_name if entry else ""
            bed = entry.bed_name if entry else ""
            now = self._clock()
            iso = _iso(now)
            record = CallRecord(
                id=_next_id(history, now),
                code=code,
                room=room,
                bed=bed,
                display=display_name(code, room, bed),
                status=CallStatus.ACTIVE,
                time=_local_compact(now),
                timestamp=iso,
                date_added=iso,
                date_modified=iso,
            )
            history.append(record.to_dict())
            self._document.save(data)
            LOGGER.info("Recorded call %s (%s)", code, record.display)
            return CreatedCall(record=record, files=entry.files if entry else ())

    def complete_latest_matching(
        self, code: str, *, adc_value: Optional[int] = None
    ) -> Optional[CallRecord]:
        """Complete the newest pending call for ``code``.

        ``adc_value`` comes from a ``90X: value`` reset trigger and is held to
        the same threshold as a new call. Acknowledgments carry no value.
        """
        with self._document.locked():
            data = self._document.load()
            if adc_value is not None and _below_threshold(MasterDirectory(data), code, adc_value):
                return None
            history = _history(data)
            for rec in reversed(_entries(history)):
                if rec.get("code") == code and _is_pending(rec):
                    self._complete(rec)
                    self._document.save(data)
                    LOGGER.info("Completed call %s", code)
                    return CallRecord.from_dict(rec)
            return None

    def complete_latest_any(self) -> CallRecord:
        with self._document.locked():
            data = self._document.load()
            history = _history(data)
            for rec in reversed(_entries(history)):
                if _is_pending(rec):
                    self._complete(rec)
                    self._document.save(data)
                    LOGGER.info("Completed latest call %s", rec.get("code"))
                    return CallRecord.from_dict(rec)
            raise NoPendingCallsError("no pending calls")

    def complete_all_pending(self) -> list[CallRecord]:
        with self._document.locked():
            data = self._document.load()
            completed: list[CallRecord] = []
            for rec in _entries(_history(data)):
                if _is_pending(rec):
                    self._complete(rec)
                    completed.append(CallRecord.from_dict(rec))
            if completed:
                self._document.save(data)
                LOGGER.info("Completed %s pending call(s)", len(completed))
            return completed

    def records(
        self,
        *,
        start: Optional[dt.date] = None,
        end: Optional[dt.date] = None,
        status: Optional[CallStatus] = None,
    ) -> list[CallRecord]:
        with self._document.locked():
            data = self._document.load()
        out: list[CallRecord] = []
        for rec in _entries(_history(data)):
            record = CallRecord.from_dict(rec)
            if status is not None and record.status is not status:
                continue
            if start is not None or end is not None:
                day = _local_date(record.timestamp)
                if day is None:
                    continue
                if start is not None and day < start:
                    continue
                if end is not None and day > end:
                    continue
            out.append(record)
        return out

    def pending_count(self) -> int:
        with self._document.locked():
            data = self._document.load()
        return sum(1 for rec in _entries(_history(data)) if _is_pending(rec))

    def _complete(self, rec: dict[str, Any]) -> None:
        now = self._clock()
        iso = _iso(now)
        rec["status"] = CallStatus.COMPLETED.value
        rec["resetTime"] = iso
        rec["resetTimeStr"] = _local_compact(now)
        rec["dateModified"] = iso


def _history(data: dict[str, Any], *, create: bool = False) -> list[Any]:
    history = data.get(HISTORY_KEY)
    if history is None:
        if not create:
            return []
        history = []
        data[HISTORY_KEY] = history
    if not isinstance(history, list):
        raise DocumentError(f"{HISTORY_KEY} must be a list")
    return history


def _entries(history: list[Any]) -> list[dict[str, Any]]:
    return [rec for rec in history if isinstance(rec, dict)]


def _below_threshold(directory: MasterDirectory, code: str, adc_value: int) -> bool:
    threshold = directory.threshold
    if adc_value >= threshold:
        return False
    LOGGER.debug(
        "Discarding %s: adc=%s below threshold %s (%s)",
        code,
        adc_value,
        threshold,
        directory.master_type,
    )
    return True


def _next_id(history: list[Any], now: dt.datetime) -> int:
    """Epoch milliseconds, bumped past the newest id so ids stay increasing."""
    candidate = int(now.timestamp() * 1000)
    entries = _entries(history)
    last = entries[-1].get("id") if entries else None
    if isinstance(last, int) and last >= candidate:
        return last + 1
    return candidate


def _is_pending(rec: dict[str, Any]) -> bool:
    return rec.get("status") != CallStatus.COMPLETED.value


def _iso(value: dt.datetime) -> str:
    return (
        value.astimezone(dt.timezone.utc)
        .isoformat(timespec="seconds")
        .replace("+00:00", "Z")
    )


def _local_compact(value: dt.datetime) -> str:
    local = value.astimezone()
    return f"{local:%H:%M:%S}.{local.month}-{local.day}-{local.year}"


def _local_date(timestamp: str) -> Optional[dt.date]:
    if not timestamp:
        return None
    try:
        parsed = dt.datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.date()
    return parsed.astimezone().date()


def count_by_status(records: Iterable[CallRecord]) -> dict[CallStatus, int]:
    counts = {status: 0 for status in CallStatus}
    for record in records:
        counts[record.status] += 1
    return counts
