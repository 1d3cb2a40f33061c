"""Domain models for the nurse-call bridge."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

RESET_PREFIX = "90"
CALL_PREFIX = "10"


class CallStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


def display_name(code: str, room: str, bed: str) -> str:
    """Human-readable location, falling back to the raw code."""
    if room:
        return f"{room} - {bed}"
    return code


@dataclass(frozen=True)
class CallRecord:
    id: int
    code: str
    room: str
    bed: str
    display: str
    status: CallStatus
    time: str
    timestamp: str
    date_added: str
    date_modified: str
    reset_time: Optional[str] = None
    reset_time_str: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CallRecord":
        code = str(data.get("code") or "")
        room = str(data.get("room") or "")
        bed = str(data.get("bed") or "")
        status = (
            CallStatus.COMPLETED
            if data.get("status") == CallStatus.COMPLETED.value
            else CallStatus.ACTIVE
        )
        return cls(
            id=_to_int(data.get("id")),
            code=code,
            room=room,
            bed=bed,
            display=str(data.get("display") or display_name(code, room, bed)),
            status=status,
            time=str(data.get("time") or ""),
            timestamp=str(data.get("timestamp") or ""),
            date_added=str(data.get("dateAdded") or ""),
            date_modified=str(data.get("dateModified") or ""),
            reset_time=data.get("resetTime"),
            reset_time_str=data.get("resetTimeStr"),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "code": self.code,
            "room": self.room,
            "bed": self.bed,
            "display": self.display,
            "time": self.time,
            "timestamp": self.timestamp,
            "status": self.status.value,
            "dateAdded": self.date_added,
            "dateModified": self.date_modified,
        }
        if self.reset_time is not None:
            payload["resetTime"] = self.reset_time
        if self.reset_time_str is not None:
            payload["resetTimeStr"] = self.reset_time_str
        return payload


@dataclass(frozen=True)
class MasterEntry:
    char_code: str
    room_name: str = ""
    bed_name: str = ""
    files: tuple[str, ...] = ()


@dataclass(frozen=True)
class CreatedCall:
    record: CallRecord
    files: tuple[str, ...] = ()


@dataclass(frozen=True)
class StandbyPulse:
    """Periodic heartbeat from the panel."""


@dataclass(frozen=True)
class Acknowledgment:
    """Staff cleared the call at station ``10<target_last_digit>``."""

    target_last_digit: str

    @property
    def target_code(self) -> str:
        return CALL_PREFIX + self.target_last_digit


@dataclass(frozen=True)
class Trigger:
    code: str
    value: int = 0

    @property
    def is_reset(self) -> bool:
        return self.code.startswith(RESET_PREFIX)

    @property
    def target_code(self) -> str:
        return CALL_PREFIX + self.code[2:3]


DecodedEvent = Union[StandbyPulse, Acknowledgment, Trigger]


@dataclass(frozen=True)
class CallTriggered:
    code: str
    room: str
    bed: str
    display: str
    files: tuple[str, ...] = field(default_factory=tuple)

    def as_payload(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "room": self.room,
            "bed": self.bed,
            "display": self.display,
            "files": list(self.files),
        }


@dataclass(frozen=True)
class CallResolved:
    code: str
    room: str
    bed: str
    display: str

    @classmethod
    def from_record(cls, record: CallRecord) -> "CallResolved":
        return cls(
            code=record.code,
            room=record.room,
            bed=record.bed,
            display=display_name(record.code, record.room, record.bed),
        )

    def as_payload(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "room": self.room,
            "bed": self.bed,
            "display": self.display,
        }


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError:
        return 0
