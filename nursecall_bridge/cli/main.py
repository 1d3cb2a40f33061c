"""CLI entrypoint for the nurse-call serial bridge."""
from __future__ import annotations

import argparse
import datetime as dt
import logging
import sys
import threading
import time
from typing import Optional

from nursecall_bridge.config import BridgeSettings, ConfigError, load_config, settings_from_config
from nursecall_bridge.domain.models import CallStatus
from nursecall_bridge.logging_setup import configure_logging
from nursecall_bridge.services.bridge import NurseCallBridge
from nursecall_bridge.services.connection import list_ports
from nursecall_bridge.services.events import EventBus, JsonLinesSink, LoggingSink
from nursecall_bridge.storage.document import ConfigDocument, DocumentError
from nursecall_bridge.storage.history import (
    CallHistoryStore,
    NoPendingCallsError,
    count_by_status,
)

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nursecall")
    parser.add_argument("--config", help="Path to TOML/JSON bridge config.")
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit logs in JSON format."
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    ports = subparsers.add_parser("ports", help="List serial ports")
    ports.add_argument(
        "--prefer-tty",
        action="store_true",
        help="Show only /dev/tty.* when a /dev/cu.* twin exists.",
    )

    monitor = subparsers.add_parser("monitor", help="Bridge a panel and print events")
    monitor.add_argument("--port", required=True, help="Serial device to open.")
    monitor.add_argument("--document", help="Path to the configuration document.")
    monitor.add_argument(
        "--duration",
        type=float,
        help="Stop after this many seconds (default: run until interrupted).",
    )

    enclose_latest = subparsers.add_parser(
        "enclose-latest", help="Complete the most recent pending call"
    )
    enclose_latest.add_argument("--document", help="Path to the configuration document.")

    enclose_all = subparsers.add_parser("enclose-all", help="Complete every pending call")
    enclose_all.add_argument("--document", help="Path to the configuration document.")

    history = subparsers.add_parser("history", help="List recorded calls")
    history.add_argument("--document", help="Path to the configuration document.")
    history.add_argument("--from", dest="start", help="First day (YYYY-MM-DD).")
    history.add_argument("--to", dest="end", help="Last day (YYYY-MM-DD).")
    history.add_argument(
        "--status",
        choices=[status.value for status in CallStatus],
        help="Only show calls with this status.",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(level=args.log_level, json_format=args.json_logs)

    settings = BridgeSettings()
    if args.config:
        try:
            settings = settings_from_config(load_config(args.config))
        except ConfigError as exc:
            parser.error(str(exc))

    if args.command == "ports":
        for name in list_ports(prefer_tty=args.prefer_tty or settings.prefer_tty):
            print(name)
        return 0

    document_path = args.document or settings.document_path
    if not document_path:
        parser.error("--document is required (or set bridge.document_path in --config)")
    document = ConfigDocument(document_path)

    try:
        if args.command == "monitor":
            return _monitor(document, settings, args.port, args.duration)
        if args.command == "enclose-latest":
            return _enclose_latest(document, settings)
        if args.command == "enclose-all":
            return _enclose_all(document, settings)
        if args.command == "history":
            return _history(
                document,
                start=_parse_day(parser, args.start),
                end=_parse_day(parser, args.end),
                status=CallStatus(args.status) if args.status else None,
            )
    except DocumentError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    parser.error(f"Command not implemented yet: {args.command}")
    return 2


def _monitor(
    document: ConfigDocument,
    settings: BridgeSettings,
    port: str,
    duration: Optional[float],
) -> int:
    bus = EventBus()
    bus.subscribe(JsonLinesSink(sys.stdout))
    bus.subscribe(LoggingSink())
    bridge = NurseCallBridge(document, bus, settings=settings)
    bridge.connect(port)
    deadline = time.monotonic() + duration if duration is not None else None
    idle = threading.Event()
    try:
        while deadline is None or time.monotonic() < deadline:
            idle.wait(0.2)
    except KeyboardInterrupt:
        LOGGER.info("Interrupted; closing %s", port)
    finally:
        bridge.disconnect()
    return 0


def _enclose_latest(document: ConfigDocument, settings: BridgeSettings) -> int:
    bridge = NurseCallBridge(document, LoggingSink(), settings=settings)
    try:
        record = bridge.enclose_latest()
    except NoPendingCallsError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    print(f"Completed {record.code} ({record.display})")
    return 0


def _enclose_all(document: ConfigDocument, settings: BridgeSettings) -> int:
    bridge = NurseCallBridge(document, LoggingSink(), settings=settings)
    print(bridge.enclose_all())
    return 0


def _history(
    document: ConfigDocument,
    *,
    start: Optional[dt.date],
    end: Optional[dt.date],
    status: Optional[CallStatus],
) -> int:
    records = CallHistoryStore(document).records(start=start, end=end, status=status)
    for record in records:
        print(
            "\t".join(
                [
                    record.timestamp,
                    record.code,
                    record.display,
                    record.status.value,
                    record.reset_time or "-",
                ]
            )
        )
    counts = count_by_status(records)
    print(f"Active: {counts[CallStatus.ACTIVE]} / Total: {len(records)}")
    return 0


def _parse_day(parser: argparse.ArgumentParser, value: Optional[str]) -> Optional[dt.date]:
    if value is None:
        return None
    try:
        return dt.date.fromisoformat(value)
    except ValueError:
        parser.error(f"Invalid date: {value}")
    return None


if __name__ == "__main__":
    raise SystemExit(main())
