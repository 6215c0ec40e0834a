import json
from pathlib import Path
from unittest import mock

import pytest

from lnms.reportdb.config import (
    ConfigError,
    DataType,
    Settings,
    load_config,
    parse_counter_types,
    sys_total_memory,
)


def _write(base: Path, config, counters):
    (base / "config").mkdir()
    (base / "config" / "config.json").write_text(json.dumps(config))
    if counters is not None:
        (base / "config" / "counter.json").write_text(json.dumps(counters))


def test_parse_known_types():
    assert DataType.parse("uint64") is DataType.UINT64
    assert DataType.parse("float64") is DataType.FLOAT64
    assert DataType.parse("string") is DataType.STRING


def test_parse_unknown_type():
    with pytest.raises(ConfigError, match="unknown counter type"):
        DataType.parse("int8")


def test_load_config_reads_both_files(tmp_path):
    _write(
        tmp_path,
        {"writers": 2, "readers": 3, "partitions": 4, "fileGrowthSize": 4096, "saveIndexInterval": 5},
        {"1": {"name": "memory", "type": "uint64"}, "3": {"name": "hostname", "type": "string"}},
    )
    settings = load_config(tmp_path)
    assert settings.writers == 2
    assert settings.readers == 3
    assert settings.partitions == 4
    assert settings.file_growth_size == 4096
    assert settings.save_index_interval == 5
    assert settings.query_timeout == 0
    assert settings.working_dir == tmp_path
    assert settings.counter_types == {1: DataType.UINT64, 3: DataType.STRING}


def test_missing_counter_file(tmp_path):
    _write(tmp_path, {"writers": 1}, None)
    with pytest.raises(ConfigError, match="counter.json"):
        load_config(tmp_path)


def test_missing_config_dir(tmp_path):
    with pytest.raises(ConfigError, match="config.json"):
        load_config(tmp_path)


def test_unknown_type_in_counter_file(tmp_path):
    _write(tmp_path, {}, {"1": {"name": "x", "type": "bool"}})
    with pytest.raises(ConfigError, match="unknown counter type bool"):
        load_config(tmp_path)


def test_parse_counter_types_rejects_bad_key():
    with pytest.raises(ConfigError):
        parse_counter_types({"abc": {"type": "uint64"}})


def test_counter_type_lookup():
    settings = Settings(counter_types={2: DataType.FLOAT64})
    assert settings.counter_type(2) is DataType.FLOAT64
    with pytest.raises(ConfigError, match="counter ID 9 not found"):
        settings.counter_type(9)


def test_sys_total_memory_multiplies_page_values():
    with mock.patch("os.sysconf", side_effect=lambda name: 2):
        assert sys_total_memory() == 4


def test_sys_total_memory_falls_back_to_zero():
    with mock.patch("os.sysconf", side_effect=ValueError("unsupported")):
        assert sys_total_memory() == 0