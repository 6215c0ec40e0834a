import queue
import struct

import pytest

from lnms.reportdb.config import DataType, Settings
from lnms.reportdb.storepool import StorePool, counter_path, day_of
from lnms.reportdb.types import Event
from lnms.reportdb.writer import (
    encode_event,
    event_path,
    shutdown_writers,
    start_writers,
    distribute_data,
)

TS = 1_700_000_000


def make_settings(tmp_path, writers=2):
    return Settings(
        writers=writers,
        partitions=2,
        events_buffer=10,
        file_growth_size=1024,
        save_index_interval=60,
        counter_types={1: DataType.UINT64, 2: DataType.FLOAT64, 3: DataType.STRING},
        working_dir=tmp_path,
    )


def test_encode_uint64():
    assert encode_event(Event(1, 1, 100, 5), DataType.UINT64) == struct.pack("<IIQ", 8, 100, 5)


def test_encode_float64():
    assert encode_event(Event(1, 2, 100, 1.5), DataType.FLOAT64) == struct.pack("<IId", 8, 100, 1.5)


def test_encode_string():
    assert encode_event(Event(1, 3, 100, "hi"), DataType.STRING) == struct.pack("<II", 2, 100) + b"hi"


@pytest.mark.parametrize(
    "value, data_type",
    [("x", DataType.UINT64), (-1, DataType.UINT64), (True, DataType.UINT64), (1, DataType.FLOAT64), (5, DataType.STRING)],
)
def test_encode_rejects_wrong_value(value, data_type):
    with pytest.raises(ValueError):
        encode_event(Event(1, 1, 100, value), data_type)


def test_event_path_matches_counter_path(tmp_path):
    event = Event(7, 3, TS, "x")
    assert event_path(tmp_path, event) == counter_path(tmp_path, day_of(TS), 3)


def test_start_writers_needs_writers(tmp_path):
    with pytest.raises(ValueError):
        start_writers(StorePool(make_settings(tmp_path)), make_settings(tmp_path, writers=0))


def test_distributed_events_are_stored(tmp_path):
    settings = make_settings(tmp_path)
    pool = StorePool(settings)
    writers = start_writers(pool, settings)
    data = queue.Queue()
    thread = distribute_data(data, writers)
    events = [
        Event(10, 1, TS, 42),
        Event(11, 2, TS + 1, 2.5),
        Event(12, 3, TS + 2, "host"),
        Event(13, 9, TS, 1),
        Event(10, 1, TS + 5, 43),
    ]
    data.put(events)
    data.put(None)
    thread.join(timeout=10)
    assert not thread.is_alive()

    types = settings.counter_types
    for event in (events[1], events[2]):
        engine = pool.get_engine(event_path(tmp_path, event))
        rows = engine.get(event.object_id, event.timestamp, event.timestamp)
        assert rows == [encode_event(event, types[event.counter_id])[4:]]

    engine = pool.get_engine(event_path(tmp_path, events[0]))
    assert engine.get(10, 0, TS + 100) == [
        encode_event(events[0], DataType.UINT64)[4:],
        encode_event(events[4], DataType.UINT64)[4:],
    ]
    assert pool.used_put(event_path(tmp_path, events[3])) is False
    pool.shutdown()


def test_shutdown_writers_drains_queues(tmp_path):
    settings = make_settings(tmp_path, writers=1)
    pool = StorePool(settings)
    writers = start_writers(pool, settings)
    event = Event(5, 1, TS, 9)
    writers[0].submit(event)
    shutdown_writers(writers)
    engine = pool.get_engine(event_path(tmp_path, event))
    assert engine.get(5, TS, TS) == [encode_event(event, DataType.UINT64)[4:]]
    pool.shutdown()