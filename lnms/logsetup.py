"""Service logging: INFO lines go to the console, every other level to a rotating JSON file."""

from __future__ import annotations

import json
import logging
import sys
from datetime import date, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

MAX_BYTES = 1024 * 1024
BACKUP_COUNT = 3

_CONSOLE_FORMAT = "%(asctime)s\t%(levelname)s\t%(filename)s:%(lineno)d\t%(message)s"


def log_file_name(service: str, day: date) -> str:
    """Name of the log file a service writes on the given day."""
    return f"{service}_log_{day:%Y-%m-%d}.log"


class _LevelFilter(logging.Filter):
    """Passes only INFO records, or everything except INFO records."""

    def __init__(self, info_only: bool) -> None:
        super().__init__()
        self._info_only = info_only

    def filter(self, record: logging.LogRecord) -> bool:
        return (record.levelno == logging.INFO) == self._info_only


class _JsonFormatter(logging.Formatter):
    """One JSON object per record; a ``fields`` dict given as extra is merged in."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname.lower(),
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(timespec="milliseconds"),
            "caller": f"{record.filename}:{record.lineno}",
            "msg": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload.update(fields)
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def init_logger(service: str, log_dir: str | Path = "logs") -> logging.Logger:
    """Configure and return the logger of ``service``; calling it again replaces its handlers."""
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(f"lnms.{service}")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console = logging.StreamHandler(sys.stdout)
    console.addFilter(_LevelFilter(info_only=True))
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))

    file_handler = RotatingFileHandler(
        directory / log_file_name(service, date.today()),
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        delay=True,
    )
    file_handler.addFilter(_LevelFilter(info_only=False))
    file_handler.setFormatter(_JsonFormatter())

    logger.addHandler(console)
    logger.addHandler(file_handler)
    return logger