"""The pool of open store engines, one per counter and day, and their periodic index saving."""

from __future__ import annotations

import logging
import threading
import time
from datetime import date, datetime
from pathlib import Path
from typing import Callable

from lnms.reportdb.config import Settings
from lnms.reportdb.store import StoreEngine

SECONDS_PER_DAY = 24 * 60 * 60

log = logging.getLogger(__name__)


class EngineUnavailableError(Exception):
    """Raised when a store is asked for reading but has no data on disk."""


def day_of(timestamp: int) -> date:
    """Local calendar date of the UTC midnight that starts the day holding ``timestamp``."""
    midnight = timestamp - timestamp % SECONDS_PER_DAY
    return datetime.fromtimestamp(midnight).date()


def counter_path(working_dir: str | Path, day: date, counter_id: int) -> str:
    """Directory of the store holding ``counter_id`` on ``day``."""
    return str(
        Path(working_dir) / "database" / f"{day:%Y}" / f"{day:%m}" / f"{day:%d}" / f"counter_{counter_id}"
    )


class StorePool:
    """Store engines by directory, created on first use."""

    def __init__(self, settings: Settings, clock: Callable[[], float] = time.time) -> None:
        self.settings = settings
        self._clock = clock
        self._engines: dict[str, StoreEngine] = {}
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._saver: threading.Thread | None = None

    def get_engine(self, path: str | Path, for_put: bool = False) -> StoreEngine:
        """The engine of ``path``; for reading, the directory must already exist."""
        key = str(path)
        with self._lock:
            engine = self._engines.get(key)
            if engine is not None:
                return engine
            if not for_put and not Path(key).is_dir():
                raise EngineUnavailableError(f"engine {key} is not available")
            engine = StoreEngine(key, self.settings.partitions, self.settings.file_growth_size)
            self._engines[key] = engine
            return engine

    def start_saver(self) -> None:
        """Start saving written indexes every ``save_index_interval`` seconds."""
        interval = self.settings.save_index_interval
        if interval <= 0:
            raise ValueError(f"invalid save index interval: {interval}")
        if self._saver is not None:
            return

        def run() -> None:
            while not self._stop.wait(interval):
                self.flush_all()

        self._saver = threading.Thread(target=run, name="index-saver", daemon=True)
        self._saver.start()

    def flush_all(self) -> None:
        """Save the indexes of written engines not saved within the interval."""
        now = self._clock()
        interval = self.settings.save_index_interval
        with self._lock:
            for engine in self._engines.values():
                if engine.used_put and now - engine.last_save >= interval:
                    engine.last_save = now
                    try:
                        engine.save()
                    except (OSError, ValueError) as exc:
                        log.error("Failed to save index for engine %s: %s", engine.base_dir, exc)

    def used_put(self, path: str | Path) -> bool:
        """Whether the engine of ``path`` is open and has been written to."""
        with self._lock:
            engine = self._engines.get(str(path))
            return engine is not None and engine.used_put

    def shutdown(self) -> None:
        """Stop the saver, save written indexes and close every engine."""
        self._stop.set()
        if self._saver is not None:
            self._saver.join()
            self._saver = None
        now = self._clock()
        with self._lock:
            for engine in self._engines.values():
                if engine.used_put:
                    engine.last_save = now
                    try:
                        engine.save()
                    except (OSError, ValueError) as exc:
                        log.error("Failed to save index for engine %s: %s", engine.base_dir, exc)
                engine.close()
            self._engines.clear()