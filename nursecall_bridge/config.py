"""Configuration loading utilities."""
from __future__ import annotations

import dataclasses
import json
import pathlib
import tomllib
from dataclasses import dataclass
from typing import Any, Mapping, Optional


class ConfigError(RuntimeError):
    """Raised when configuration loading fails."""


@dataclass(frozen=True)
class BridgeSettings:
    document_path: Optional[str] = None
    baud_rate: int = 9600
    read_timeout_s: float = 0.2
    open_retry_s: float = 1.0
    reconnect_delay_s: float = 0.8
    notify_window_ms: int = 1500
    error_window_ms: int = 3000
    buffer_partial_lines: bool = False
    prefer_tty: bool = False


def load_config(path: str | pathlib.Path) -> dict[str, Any]:
    """Load a configuration file (TOML or JSON).

    This stays dependency-free so the bridge can run next to a bare host.
    """
    path_obj = pathlib.Path(path)
    if not path_obj.exists():
        raise ConfigError(f"Config path does not exist: {path_obj}")

    suffix = path_obj.suffix.lower()
    try:
        if suffix == ".toml":
            with path_obj.open("rb") as handle:
                return tomllib.load(handle)
        if suffix == ".json":
            with path_obj.open("r", encoding="utf-8") as handle:
                return json.load(handle)
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Invalid config file {path_obj}: {exc}") from exc

    raise ConfigError(f"Unsupported config format: {path_obj.suffix}")


def settings_from_config(config: Mapping[str, Any]) -> BridgeSettings:
    """Build bridge settings from the ``[bridge]`` table of a loaded config."""
    section = config.get("bridge", {})
    if not isinstance(section, Mapping):
        raise ConfigError("[bridge] must be a table")

    fields = {f.name: f for f in dataclasses.fields(BridgeSettings)}
    unknown = sorted(set(section) - set(fields))
    if unknown:
        raise ConfigError(f"Unknown bridge settings: {unknown}")

    values: dict[str, Any] = {}
    for name, value in section.items():
        values[name] = _coerce(name, value, BridgeSettings.__annotations__[name])
    return BridgeSettings(**values)


def _coerce(name: str, value: Any, annotation: str) -> Any:
    if annotation == "bool":
        if not isinstance(value, bool):
            raise ConfigError(f"bridge.{name} must be a boolean")
        return value
    if annotation == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"bridge.{name} must be an integer")
        return value
    if annotation == "float":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"bridge.{name} must be a number")
        if value < 0:
            raise ConfigError(f"bridge.{name} must not be negative")
        return float(value)
    if value is not None and not isinstance(value, str):
        raise ConfigError(f"bridge.{name} must be a string")
    return value
