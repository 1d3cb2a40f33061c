"""Read-only lookups over the master directory."""
from __future__ import annotations

from typing import Any, Iterator, Mapping, Optional

from nursecall_bridge.domain.models import MasterEntry

DEFAULT_MASTER_TYPE = "Commax"
AIPHONE_THRESHOLD = 150
DEFAULT_THRESHOLD = 70
_FILE_KEYS = ("v1", "v2", "v3", "v4", "v5", "v6")


def read_master_type(document: Mapping[str, Any]) -> str:
    settings = document.get("masterSettings")
    if not isinstance(settings, Mapping):
        return DEFAULT_MASTER_TYPE
    for key in ("masterType", "master", "type"):
        value = settings.get(key)
        if isinstance(value, str):
            return value.strip()
    return DEFAULT_MASTER_TYPE


def adc_threshold(master_type: str) -> int:
    """Minimum ADC reading that counts as a real call for this panel type."""
    if master_type.strip().lower() == "aiphone":
        return AIPHONE_THRESHOLD
    return DEFAULT_THRESHOLD


class MasterDirectory:
    def __init__(self, document: Mapping[str, Any]) -> None:
        self._document = document

    @property
    def master_type(self) -> str:
        return read_master_type(self._document)

    @property
    def threshold(self) -> int:
        return adc_threshold(self.master_type)

    def entries(self) -> Iterator[MasterEntry]:
        rows = self._document.get("masterData")
        if not isinstance(rows, list):
            return
        for row in rows:
            if isinstance(row, Mapping):
                yield _entry_from_row(row)

    def lookup(self, code: str) -> Optional[MasterEntry]:
        for entry in self.entries():
            if entry.char_code == code:
                return entry
        return None


def _entry_from_row(row: Mapping[str, Any]) -> MasterEntry:
    files = tuple(
        value
        for value in (row.get(key) for key in _FILE_KEYS)
        if isinstance(value, str) and value and value != "-"
    )
    return MasterEntry(
        char_code=_as_str(row.get("charCode")),
        room_name=_as_str(row.get("roomName")),
        bed_name=_as_str(row.get("bedName")),
        files=files,
    )


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""
