from __future__ import annotations

import pytest

from nursecall_bridge.domain.models import Acknowledgment, StandbyPulse, Trigger
from nursecall_bridge.services.decoder import LineDecoder, decode_chunk

pytestmark = pytest.mark.decoder


def test_trigger_with_adc_value() -> None:
    assert decode_chunk(b"105: 200\r\n") == [Trigger(code="105", value=200)]


def test_trigger_uses_first_field_of_value() -> None:
    assert decode_chunk(b" 101 :  87 extra\n") == [Trigger(code="101", value=87)]


def test_acknowledgment_without_value() -> None:
    events = decode_chunk(b"905:\r\n")

    assert events == [Acknowledgment(target_last_digit="5")]
    assert events[0].target_code == "105"


def test_reset_trigger_with_value() -> None:
    events = decode_chunk(b"903: 180\n")

    assert events == [Trigger(code="903", value=180)]
    assert events[0].is_reset
    assert events[0].target_code == "103"


def test_standby_pulse_once_per_chunk_and_first() -> None:
    events = decode_chunk(b"101: 90\r\n99:\r\n99:\r\n")

    assert events[0] == StandbyPulse()
    assert events.count(StandbyPulse()) == 1
    assert Trigger(code="101", value=90) in events


def test_standby_detected_inside_other_text() -> None:
    assert decode_chunk(b"xx99:yy") == [StandbyPulse()]


def test_several_lines_in_one_chunk() -> None:
    events = decode_chunk(b"101: 120\r\n102: 130\r\n901:\r\n")

    assert events == [
        Trigger(code="101", value=120),
        Trigger(code="102", value=130),
        Acknowledgment(target_last_digit="1"),
    ]


@pytest.mark.parametrize(
    "chunk",
    [
        b"hello\r\n",
        b"12: 100\r\n",
        b"1234: 100\r\n",
        b"abc: 100\r\n",
        b"101: high\r\n",
        b"101 100\r\n",
        b"\r\n\r\n",
    ],
)
def test_unrecognized_tokens_are_ignored(chunk: bytes) -> None:
    assert decode_chunk(chunk) == []


def test_empty_value_reads_as_zero() -> None:
    assert decode_chunk(b"101:\r\n") == [Trigger(code="101", value=0)]


def test_invalid_utf8_does_not_raise() -> None:
    assert decode_chunk(b"\xff\xfe105: 150\n") == []
    assert decode_chunk(b"\xff\n105: 150\n") == [Trigger(code="105", value=150)]


def test_unbuffered_decoder_matches_chunk_contract() -> None:
    decoder = LineDecoder()

    assert decoder.feed(b"10") == []
    assert decoder.feed(b"5: 200\r\n") == []


def test_buffered_decoder_reassembles_split_lines() -> None:
    decoder = LineDecoder(buffer_partial_lines=True)

    assert decoder.feed(b"10") == []
    assert decoder.feed(b"5: 2") == []
    assert decoder.feed(b"00\r\n90") == [Trigger(code="105", value=200)]
    assert decoder.feed(b"5:\r\n") == [Acknowledgment(target_last_digit="5")]


def test_buffered_decoder_reset_discards_tail() -> None:
    decoder = LineDecoder(buffer_partial_lines=True)
    decoder.feed(b"105: 2")
    decoder.reset()

    assert decoder.feed(b"00\r\n") == []


@pytest.mark.parametrize(
    ("chunk", "value"),
    [
        (b"105: 2147483647\n", 2147483647),
        (b"105: 2147483648\n", 0),
        (b"105: 99999999999999\n", 0),
        (b"105: 000000000000150\n", 150),
    ],
)
def test_values_outside_signed_32_bit_read_as_zero(chunk: bytes, value: int) -> None:
    assert decode_chunk(chunk) == [Trigger(code="105", value=value)]
