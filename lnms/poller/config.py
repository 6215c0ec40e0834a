"""Poller settings read from config/config.json and config/counter.json."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any


class ConfigError(Exception):
    """Raised when the configuration cannot be read or is invalid."""


class DataType(IntEnum):
    """Value type of a counter."""

    UINT64 = 1
    FLOAT64 = 2
    STRING = 3

    @classmethod
    def parse(cls, name: str) -> "DataType":
        try:
            return _TYPE_NAMES[name]
        except (KeyError, TypeError):
            raise ConfigError(f"unknown counter type {name}") from None


_TYPE_NAMES = {"uint64": DataType.UINT64, "float64": DataType.FLOAT64, "string": DataType.STRING}

_FIELDS = {
    "deviceBuffer": "device_buffer",
    "dataBuffer": "data_buffer",
    "workers": "workers",
    "eventBuffer": "event_buffer",
    "batchInterval": "batch_interval",
    "pollDeviceBuffer": "poll_device_buffer",
    "workBuffer": "work_buffer",
}


@dataclass
class CounterConfig:
    """A counter: its name, value type and polling interval in seconds."""

    name: str
    data_type: DataType
    polling: int = 0


@dataclass
class PollerSettings:
    """Everything the poller is configured with."""

    device_buffer: int = 0
    data_buffer: int = 0
    workers: int = 0
    event_buffer: int = 0
    batch_interval: int = 0
    poll_device_buffer: int = 0
    work_buffer: int = 0
    counters: dict[int, CounterConfig] = field(default_factory=dict)
    working_dir: Path = field(default_factory=lambda: Path("."))

    def counter_type(self, counter_id: int) -> DataType | None:
        """The value type of a counter, or None for a counter that is not configured."""
        counter = self.counters.get(counter_id)
        return counter.data_type if counter is not None else None

    def polling_interval(self, counter_id: int) -> int:
        """Seconds between polls of a counter; 0 for a counter that is not configured."""
        counter = self.counters.get(counter_id)
        return counter.polling if counter is not None else 0


def _read_json(path: Path) -> Any:
    try:
        text = path.read_text()
    except OSError as exc:
        raise ConfigError(f"read {path.name} file error: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"parse {path.name} file error: {exc}") from exc


def _parse_counters(raw: Any) -> dict[int, CounterConfig]:
    if not isinstance(raw, dict):
        raise ConfigError("parse counter.json file error: expected an object")
    counters: dict[int, CounterConfig] = {}
    for key, value in raw.items():
        try:
            counter_id = int(key)
        except (TypeError, ValueError):
            raise ConfigError(f"invalid counter ID {key!r}") from None
        if not 0 <= counter_id <= 0xFFFF:
            raise ConfigError(f"invalid counter ID {key!r}")
        if not isinstance(value, dict):
            raise ConfigError(f"invalid configuration for counter {counter_id}")
        try:
            polling = int(value.get("polling", 0))
        except (TypeError, ValueError):
            raise ConfigError(f"invalid polling interval for counter {counter_id}") from None
        counters[counter_id] = CounterConfig(
            name=str(value.get("name", "")),
            data_type=DataType.parse(value.get("type", "")),
            polling=polling,
        )
    return counters


def load_config(working_dir: str | Path) -> PollerSettings:
    """Read the settings and counters found under ``working_dir/config``."""
    base = Path(working_dir)
    raw = _read_json(base / "config" / "config.json")
    if not isinstance(raw, dict):
        raise ConfigError("parse config.json file error: expected an object")
    values: dict[str, int] = {}
    for key, attr in _FIELDS.items():
        try:
            values[attr] = int(raw.get(key, 0))
        except (TypeError, ValueError):
            raise ConfigError(f"parse config.json file error: invalid {key}") from None
    counters = _parse_counters(_read_json(base / "config" / "counter.json"))
    return PollerSettings(**values, counters=counters, working_dir=base)