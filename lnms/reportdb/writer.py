"""Writers that encode events and append them to the store, and the broker feeding them."""

from __future__ import annotations

import logging
import math
import queue
import struct
import threading
from pathlib import Path

from lnms.reportdb.config import ConfigError, DataType, Settings
from lnms.reportdb.storepool import StorePool, counter_path, day_of
from lnms.reportdb.types import Event

_FIXED_ROW = struct.Struct("<IIQ")
_FLOAT_ROW = struct.Struct("<IId")
_ROW_HEADER = struct.Struct("<II")
_UINT64_MAX = 2**64 - 1
_STOP = object()

log = logging.getLogger(__name__)


def event_path(working_dir: str | Path, event: Event) -> str:
    """Directory of the store the event belongs to."""
    return counter_path(working_dir, day_of(event.timestamp), event.counter_id)


def encode_event(event: Event, data_type: DataType) -> bytes:
    """Encode an event as a stored row: length, timestamp, value."""
    value = event.value
    if data_type is DataType.UINT64:
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _UINT64_MAX:
            raise ValueError(f"invalid uint64 value for counter {event.counter_id}")
        return _FIXED_ROW.pack(8, event.timestamp, value)
    if data_type is DataType.FLOAT64:
        if not isinstance(value, float):
            raise ValueError(f"invalid float64 value for counter {event.counter_id}")
        return _FLOAT_ROW.pack(8, event.timestamp, value)
    if data_type is DataType.STRING:
        if not isinstance(value, str):
            raise ValueError(f"invalid string value for counter {event.counter_id}")
        encoded = value.encode("utf-8")
        return _ROW_HEADER.pack(len(encoded), event.timestamp) + encoded
    raise ValueError(f"unsupported data type: {data_type}")


class Writer:
    """Writes the events handed to it, one at a time, on its own thread."""

    def __init__(self, writer_id: int, store_pool: StorePool, settings: Settings) -> None:
        self.writer_id = writer_id
        self.store_pool = store_pool
        self.settings = settings
        self.events: queue.Queue = queue.Queue(maxsize=max(settings.events_buffer, 0))
        self._thread: threading.Thread | None = None

    def start(self, working_dir: str | Path) -> None:
        self._thread = threading.Thread(
            target=self._run, args=(working_dir,), name=f"writer-{self.writer_id}", daemon=True
        )
        self._thread.start()

    def submit(self, event: Event) -> None:
        self.events.put(event)

    def stop(self) -> None:
        """Write what is queued, then end the thread."""
        if self._thread is None:
            return
        self.events.put(_STOP)
        self._thread.join()
        self._thread = None

    def _run(self, working_dir: str | Path) -> None:
        while (event := self.events.get()) is not _STOP:
            try:
                data_type = self.settings.counter_type(event.counter_id)
                data = encode_event(event, data_type)
                engine = self.store_pool.get_engine(event_path(working_dir, event), for_put=True)
                engine.put(event.object_id, data)
            except (ConfigError, ValueError, OSError) as exc:
                log.error(
                    "Writer %d: failed to write object %d counter %d: %s",
                    self.writer_id,
                    event.object_id,
                    event.counter_id,
                    exc,
                )


def start_writers(store_pool: StorePool, settings: Settings) -> list[Writer]:
    """Create and start the configured number of writers."""
    if settings.writers <= 0:
        raise ValueError(f"invalid writer count: {settings.writers}")
    writers = [Writer(index, store_pool, settings) for index in range(settings.writers)]
    for writer in writers:
        writer.start(settings.working_dir)
    return writers


def distribute_data(data_queue: queue.Queue, writers: list[Writer]) -> threading.Thread:
    """Route each event of every batch to a writer by counter and object; None ends the stream."""

    def run() -> None:
        try:
            while (batch := data_queue.get()) is not None:
                for event in batch:
                    index = ((event.counter_id + event.object_id) & 0xFFFFFFFF) % len(writers)
                    writers[index].submit(event)
        finally:
            shutdown_writers(writers)

    thread = threading.Thread(target=run, name="data-distributor", daemon=True)
    thread.start()
    return thread


def shutdown_writers(writers: list[Writer]) -> None:
    for writer in writers:
        writer.stop()