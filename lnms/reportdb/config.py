"""Report database settings read from config/config.json and config/counter.json."""

from __future__ import annotations

import json
import os
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
    "writers": "writers",
    "readers": "readers",
    "partitions": "partitions",
    "dataBuffer": "data_buffer",
    "responseBuffer": "response_buffer",
    "eventsBuffer": "events_buffer",
    "queryBuffer": "query_buffer",
    "objectWorkers": "object_workers",
    "fileGrowthSize": "file_growth_size",
    "saveIndexInterval": "save_index_interval",
    "queryTimeout": "query_timeout",
}


@dataclass
class Settings:
    """Everything the report database is configured with."""

    writers: int = 0
    readers: int = 0
    partitions: int = 0
    data_buffer: int = 0
    response_buffer: int = 0
    events_buffer: int = 0
    query_buffer: int = 0
    object_workers: int = 0
    file_growth_size: int = 0
    save_index_interval: int = 0
    query_timeout: int = 0
    counter_types: dict[int, DataType] = field(default_factory=dict)
    working_dir: Path = field(default_factory=lambda: Path("."))

    def counter_type(self, counter_id: int) -> DataType:
        try:
            return self.counter_types[counter_id]
        except KeyError:
            raise ConfigError(f"counter ID {counter_id} not found") from None


def parse_counter_types(raw: Any) -> dict[int, DataType]:
    """Map counter ids to their data types from the decoded counter.json document."""
    if not isinstance(raw, dict):
        raise ConfigError("counter configuration must be an object")
    types: dict[int, DataType] = {}
    for key, value in raw.items():
        try:
            counter_id = int(key)
        except (TypeError, ValueError):
            raise ConfigError(f"invalid counter ID {key!r}") from None
        if not 0 <= counter_id <= 0xFFFF:
            raise ConfigError(f"invalid counter ID {key!r}")
        if not isinstance(value, dict):
            raise ConfigError(f"invalid configuration for counter {counter_id}")
        types[counter_id] = DataType.parse(value.get("type", ""))
    return types


def _read_json(path: Path) -> Any:
    try:
        text = path.read_text()
    except OSError as exc:
        raise ConfigError(f"read {path.name} file error: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"parse {path.name} file error: {exc}") from exc


def load_config(working_dir: str | Path) -> Settings:
    """Read the settings and counter types found under ``working_dir/config``."""
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
    counter_types = parse_counter_types(_read_json(base / "config" / "counter.json"))
    return Settings(**values, counter_types=counter_types, working_dir=base)


def sys_total_memory() -> int:
    """Physical memory in bytes, or 0 when it cannot be determined."""
    try:
        return int(os.sysconf("SC_PAGE_SIZE")) * int(os.sysconf("SC_PHYS_PAGES"))
    except (ValueError, OSError, AttributeError):
        return 0