from __future__ import annotations

import json
import pathlib
import time
from typing import Callable

import pytest

from nursecall_bridge.cli import main as cli
from nursecall_bridge.services import connection

pytestmark = pytest.mark.cli


def _pending(path: pathlib.Path) -> list[str]:
    history = json.loads(path.read_text(encoding="utf-8"))["callHistoryStorage"]
    return [rec["code"] for rec in history if rec["status"] != "completed"]


@pytest.fixture()
def busy_document(make_document: Callable[..., pathlib.Path]) -> pathlib.Path:
    return make_document(
        callHistoryStorage=[
            {"id": 1, "code": "101", "room": "Melati", "bed": "Bed 1", "status": "active",
             "timestamp": "2026-03-14T08:00:00Z"},
            {"id": 2, "code": "105", "room": "Mawar", "bed": "Bed 5", "status": "active",
             "timestamp": "2026-03-14T08:05:00Z"},
            {"id": 3, "code": "102", "status": "completed", "timestamp": "2026-03-13T08:00:00Z",
             "resetTime": "2026-03-13T08:01:00Z"},
        ]
    )


def test_enclose_latest(busy_document: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["enclose-latest", "--document", str(busy_document)]) == 0

    assert "Completed 105 (Mawar - Bed 5)" in capsys.readouterr().out
    assert _pending(busy_document) == ["101"]


def test_enclose_latest_without_pending(document_path: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["enclose-latest", "--document", str(document_path)]) == 1

    assert "no pending calls" in capsys.readouterr().err


def test_enclose_all(busy_document: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["enclose-all", "--document", str(busy_document)]) == 0

    assert capsys.readouterr().out.strip() == "2"
    assert _pending(busy_document) == []


def test_enclose_all_reports_broken_document(tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "config.json"
    path.write_text("not json", encoding="utf-8")

    assert cli.main(["enclose-all", "--document", str(path)]) == 1
    assert "Invalid JSON" in capsys.readouterr().err


def test_history_listing(busy_document: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["history", "--document", str(busy_document), "--status", "active"]) == 0

    out = capsys.readouterr().out.splitlines()
    assert len(out) == 3
    assert "Melati - Bed 1" in out[0]
    assert out[-1] == "Active: 2 / Total: 2"


def test_document_path_from_config(
    busy_document: pathlib.Path,
    tmp_path: pathlib.Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    config = tmp_path / "bridge.toml"
    config.write_text(f'[bridge]\ndocument_path = "{busy_document.as_posix()}"\n', encoding="utf-8")

    assert cli.main(["--config", str(config), "history"]) == 0
    assert capsys.readouterr().out.splitlines()[-1] == "Active: 2 / Total: 3"


def test_document_is_required() -> None:
    with pytest.raises(SystemExit):
        cli.main(["enclose-all"])


def test_invalid_history_date(busy_document: pathlib.Path) -> None:
    with pytest.raises(SystemExit):
        cli.main(["history", "--document", str(busy_document), "--from", "14/03/2026"])


def test_ports(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    class _Info:
        def __init__(self, device: str) -> None:
            self.device = device

    monkeypatch.setattr(
        connection.serial.tools.list_ports,
        "comports",
        lambda: [_Info("/dev/ttyUSB0"), _Info("/dev/ttyUSB1")],
    )

    assert cli.main(["ports"]) == 0
    assert capsys.readouterr().out.split() == ["/dev/ttyUSB0", "/dev/ttyUSB1"]


def test_monitor_streams_events(
    document_path: pathlib.Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    class _FakeSerial:
        def __init__(self, device: str, baudrate: int, timeout: float) -> None:
            self._data = b"101: 150\r\n"
            self._timeout = timeout
            self.in_waiting = 0

        def read(self, size: int = 1) -> bytes:
            if not self._data:
                time.sleep(self._timeout)
                return b""
            data, self._data = self._data[:size], self._data[size:]
            self.in_waiting = len(self._data)
            return data

        def close(self) -> None:
            pass

    monkeypatch.setattr(connection.serial, "Serial", _FakeSerial)

    assert cli.main(["monitor", "--port", "/dev/ttyUSB0", "--document", str(document_path), "--duration", "1"]) == 0

    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    names = [line["event"] for line in lines]
    assert names[0] == "device-connected"
    assert "call-triggered" in names
    assert names[-1] == "device-disconnected"
    assert _pending(document_path) == ["101"]
