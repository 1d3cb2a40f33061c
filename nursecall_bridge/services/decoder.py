"""Tokenizer for the panel's ``CODE: VALUE`` line protocol."""
from __future__ import annotations

import re

from nursecall_bridge.domain.models import (
    RESET_PREFIX,
    Acknowledgment,
    DecodedEvent,
    StandbyPulse,
    Trigger,
)

STANDBY_MARKER = "99:"
MAX_PENDING_BYTES = 1024
ADC_MAX = 2**31 - 1
_LINE_SPLIT = re.compile(r"[\r\n]")
_CODE_PATTERN = re.compile(r"[0-9]{3}")
_DIGITS = re.compile(r"[0-9]*")


def decode_text(text: str) -> list[DecodedEvent]:
    events: list[DecodedEvent] = []
    if STANDBY_MARKER in text:
        events.append(StandbyPulse())

    for token in _LINE_SPLIT.split(text):
        event = _decode_token(token)
        if event is not None:
            events.append(event)
    return events


def decode_chunk(data: bytes) -> list[DecodedEvent]:
    """Decode one read's worth of bytes.

    Tokens are not carried across chunks: a line split over two reads is
    dropped. Use ``LineDecoder(buffer_partial_lines=True)`` to keep them.
    """
    return decode_text(data.decode("utf-8", errors="replace"))


def _decode_token(token: str) -> DecodedEvent | None:
    if ":" not in token:
        return None
    left, rest = token.split(":", 1)
    code = left.strip()
    rest = rest.strip()
    if not _CODE_PATTERN.fullmatch(code):
        return None

    if code.startswith(RESET_PREFIX) and not rest:
        return Acknowledgment(target_last_digit=code[2])

    fields = rest.split()
    value_text = fields[0] if fields else ""
    # An empty value field passes the digit check and reads as 0.
    if not _DIGITS.fullmatch(value_text):
        return None
    return Trigger(code=code, value=_parse_adc(value_text))


def _parse_adc(text: str) -> int:
    # Readings that do not fit a signed 32-bit register are treated as unparsable.
    digits = text.lstrip("0")
    if len(digits) > len(str(ADC_MAX)):
        return 0
    value = int(digits or "0")
    return value if value <= ADC_MAX else 0


class LineDecoder:
    """Per-connection decoder, optionally reassembling lines across reads."""

    def __init__(self, *, buffer_partial_lines: bool = False) -> None:
        self.buffer_partial_lines = buffer_partial_lines
        self._pending = bytearray()

    def reset(self) -> None:
        self._pending.clear()

    def feed(self, data: bytes) -> list[DecodedEvent]:
        if not self.buffer_partial_lines:
            return decode_chunk(data)

        self._pending.extend(data)
        cut = max(self._pending.rfind(b"\n"), self._pending.rfind(b"\r"))
        if cut < 0:
            if len(self._pending) > MAX_PENDING_BYTES:
                del self._pending[:-MAX_PENDING_BYTES]
            return []
        complete = bytes(self._pending[: cut + 1])
        del self._pending[: cut + 1]
        if len(self._pending) > MAX_PENDING_BYTES:
            del self._pending[:-MAX_PENDING_BYTES]
        return decode_chunk(complete)
