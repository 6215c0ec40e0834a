import json

import pytest

from lnms.poller.config import ConfigError, CounterConfig, DataType, PollerSettings, load_config


def _write(tmp_path, config, counters):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "config.json").write_text(json.dumps(config))
    (config_dir / "counter.json").write_text(json.dumps(counters))


def test_parse_known_types():
    assert DataType.parse("uint64") is DataType.UINT64
    assert DataType.parse("float64") is DataType.FLOAT64
    assert DataType.parse("string") is DataType.STRING


def test_parse_unknown_type():
    with pytest.raises(ConfigError, match="unknown counter type bool"):
        DataType.parse("bool")


def test_load_config(tmp_path):
    _write(
        tmp_path,
        {"deviceBuffer": 4, "dataBuffer": 5, "workers": 2, "eventBuffer": 6,
         "batchInterval": 500, "pollDeviceBuffer": 7, "workBuffer": 8},
        {"1": {"name": "memory", "type": "uint64", "polling": 10},
         "2": {"name": "cpu", "type": "float64", "polling": 20},
         "3": {"name": "hostname", "type": "string", "polling": 30}},
    )
    settings = load_config(tmp_path)
    assert settings.device_buffer == 4
    assert settings.data_buffer == 5
    assert settings.workers == 2
    assert settings.event_buffer == 6
    assert settings.batch_interval == 500
    assert settings.poll_device_buffer == 7
    assert settings.work_buffer == 8
    assert settings.counters[1] == CounterConfig("memory", DataType.UINT64, 10)
    assert settings.counter_type(2) is DataType.FLOAT64
    assert settings.counter_type(3) is DataType.STRING
    assert settings.polling_interval(3) == 30


def test_unknown_counter_defaults():
    settings = PollerSettings(counters={1: CounterConfig("memory", DataType.UINT64, 10)})
    assert settings.counter_type(9) is None
    assert settings.polling_interval(9) == 0


def test_unknown_counter_type_rejected(tmp_path):
    _write(tmp_path, {"workers": 1}, {"1": {"name": "memory", "type": "int8", "polling": 10}})
    with pytest.raises(ConfigError, match="unknown counter type int8"):
        load_config(tmp_path)


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="read config.json"):
        load_config(tmp_path)


def test_malformed_counter_file(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "config.json").write_text("{}")
    (config_dir / "counter.json").write_text("{not json")
    with pytest.raises(ConfigError, match="parse counter.json"):
        load_config(tmp_path)