from __future__ import annotations

import datetime as dt
import json
import os
import pathlib
from typing import Any, Callable

import pytest

from nursecall_bridge.storage.document import ConfigDocument


def _sample_document(master_type: str = "Commax") -> dict[str, Any]:
    return {
        "masterSettings": {"com": "/dev/ttyUSB0", "name": "Ward 3", "masterType": master_type},
        "masterData": [
            {
                "charCode": "101",
                "roomName": "Melati",
                "bedName": "Bed 1",
                "v1": "sounds/bell.mp3",
                "v2": "-",
                "v3": "",
                "v4": "sounds/melati.mp3",
            },
            {"charCode": "105", "roomName": "Mawar", "bedName": "Bed 5"},
        ],
        "callHistoryStorage": [],
    }


class FakeClock:
    """UTC clock that only moves when told to."""

    def __init__(self, start: dt.datetime) -> None:
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + dt.timedelta(seconds=seconds)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(dt.datetime(2026, 3, 14, 8, 30, 0, tzinfo=dt.timezone.utc))


@pytest.fixture()
def make_document(tmp_path: pathlib.Path) -> Callable[..., pathlib.Path]:
    def _make(master_type: str = "Commax", **overrides: Any) -> pathlib.Path:
        data = _sample_document(master_type)
        data.update(overrides)
        path = tmp_path / "config.json"
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return path

    return _make


@pytest.fixture()
def document_path(make_document: Callable[..., pathlib.Path]) -> pathlib.Path:
    return make_document()


@pytest.fixture()
def document(document_path: pathlib.Path) -> ConfigDocument:
    return ConfigDocument(document_path)


@pytest.fixture()
def events() -> list[tuple[str, Any]]:
    return []


@pytest.fixture()
def sink(events: list[tuple[str, Any]]) -> Callable[[str, Any], None]:
    def _sink(name: str, payload: Any = None) -> None:
        events.append((name, payload))

    return _sink


def pytest_configure(config: pytest.Config) -> None:
    repo = pathlib.Path(__file__).resolve().parents[1]
    results_dir = repo / "test-results"
    results_dir.mkdir(parents=True, exist_ok=True)

    tag = os.environ.get("PYTEST_REPORT_TAG")
    if tag:
        safe_tag = "".join(ch for ch in tag if ch.isalnum() or ch in ("-", "_"))
        timestamp = safe_tag or dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    else:
        timestamp = dt.datetime.now().strftime("%Y%m%d-%H%M%S")

    config.option.xmlpath = str(results_dir / f"pytest-{timestamp}.xml")
    config.option.htmlpath = str(results_dir / f"pytest-{timestamp}.html")
    config.option.self_contained_html = True
