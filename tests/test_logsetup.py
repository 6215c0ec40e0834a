import json
from datetime import date

from lnms.logsetup import init_logger, log_file_name


def _close(logger):
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_log_file_name_uses_service_and_day():
    assert log_file_name("reportdb", date(2024, 1, 2)) == "reportdb_log_2024-01-02.log"


def test_info_goes_to_console_and_others_to_file(tmp_path, capsys):
    logger = init_logger("svc", tmp_path)
    try:
        logger.warning("disk low", extra={"fields": {"count": 3}})
        logger.info("started")
        for handler in logger.handlers:
            handler.flush()
        out = capsys.readouterr().out
        lines = (tmp_path / log_file_name("svc", date.today())).read_text().splitlines()
    finally:
        _close(logger)
    assert "started" in out
    assert "disk low" not in out
    records = [json.loads(line) for line in lines]
    assert [r["msg"] for r in records] == ["disk low"]
    assert records[0]["level"] == "warning"
    assert records[0]["count"] == 3


def test_reinit_does_not_duplicate_handlers(tmp_path):
    first = init_logger("again", tmp_path)
    second = init_logger("again", tmp_path)
    try:
        assert first is second
        assert len(second.handlers) == 2
    finally:
        _close(second)