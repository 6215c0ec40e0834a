import json
from datetime import date
from pathlib import Path

from lnms.logsetup import log_file_name
from lnms.reportdb.app import build_parser, main
from lnms.reportdb.server import DEFAULT_POLLING_ADDRESS, DEFAULT_QUERY_ADDRESS, DEFAULT_RESPONSE_ADDRESS


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.working_dir == Path.cwd().parent
    assert args.log_dir == Path("logs")
    assert args.polling_address == DEFAULT_POLLING_ADDRESS
    assert args.query_address == DEFAULT_QUERY_ADDRESS
    assert args.response_address == DEFAULT_RESPONSE_ADDRESS


def test_parser_options(tmp_path):
    args = build_parser().parse_args(
        ["--working-dir", str(tmp_path), "--polling-address", "inproc://events", "--log-dir", str(tmp_path / "l")]
    )
    assert args.working_dir == tmp_path
    assert args.polling_address == "inproc://events"
    assert args.log_dir == tmp_path / "l"


def test_main_fails_without_config(tmp_path):
    log_dir = tmp_path / "logs"
    status = main(["--working-dir", str(tmp_path), "--log-dir", str(log_dir)])
    assert status == 1
    log_file = log_dir / log_file_name("reportdb", date.today())
    assert "Error initializing config" in log_file.read_text()


def test_main_fails_on_unknown_counter_type(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "config.json").write_text(json.dumps({"writers": 1, "readers": 1, "partitions": 1}))
    (config_dir / "counter.json").write_text(json.dumps({"1": {"name": "memory", "type": "int8"}}))
    log_dir = tmp_path / "logs"
    assert main(["--working-dir", str(tmp_path), "--log-dir", str(log_dir)]) == 1
    log_file = log_dir / log_file_name("reportdb", date.today())
    assert "unknown counter type int8" in log_file.read_text()