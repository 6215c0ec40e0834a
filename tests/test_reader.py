import queue

import pytest

from lnms.reportdb.cache import DataPointCache
from lnms.reportdb.config import DataType, Settings
from lnms.reportdb.parser import NoDataError
from lnms.reportdb.reader import (
    Reader,
    day_range,
    decode_rows,
    distribute_query,
    start_readers,
)
from lnms.reportdb.storepool import StorePool, day_of
from lnms.reportdb.types import DataPoint, Event, Query, QueryReceive
from lnms.reportdb.writer import encode_event, event_path

TS = 1_700_000_000
DAY = 24 * 60 * 60


def make_settings(tmp_path, **overrides):
    values = dict(
        readers=2,
        partitions=2,
        object_workers=2,
        file_growth_size=4096,
        query_buffer=8,
        query_timeout=5,
        counter_types={1: DataType.UINT64, 2: DataType.FLOAT64, 3: DataType.STRING},
        working_dir=tmp_path,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def env(tmp_path):
    settings = make_settings(tmp_path)
    pool = StorePool(settings)
    yield settings, pool
    pool.shutdown()


def store(settings, pool, *events):
    for event in events:
        data = encode_event(event, settings.counter_type(event.counter_id))
        pool.get_engine(event_path(settings.working_dir, event), for_put=True).put(event.object_id, data)


def sample(settings, pool):
    store(
        settings,
        pool,
        Event(1, 1, TS, 10),
        Event(1, 1, TS + 60, 20),
        Event(2, 1, TS, 30),
    )


@pytest.fixture
def reader(env):
    settings, pool = env
    sample(settings, pool)
    made = Reader(0, pool, queue.Queue(), settings, DataPointCache())
    yield made
    made.stop()


def test_day_range_single_day():
    assert list(day_range(TS, TS)) == [day_of(TS)]


def test_day_range_spans_consecutive_days():
    days = list(day_range(TS, TS + 2 * DAY))
    assert days[0] == day_of(TS)
    assert days[-1] == day_of(TS + 2 * DAY)
    assert all((later - earlier).days == 1 for earlier, later in zip(days, days[1:]))


def test_day_range_empty_when_reversed():
    assert list(day_range(TS + DAY, TS)) == []


@pytest.mark.parametrize(
    "data_type, value",
    [(DataType.UINT64, 42), (DataType.FLOAT64, 1.5), (DataType.STRING, "host")],
)
def test_decode_rows_round_trip(data_type, value):
    row = encode_event(Event(1, 1, TS, value), data_type)[4:]
    assert decode_rows([row], data_type) == [DataPoint(TS, value)]


def test_decode_rows_short_row():
    with pytest.raises(ValueError):
        decode_rows([b"\x01\x02"], DataType.UINT64)


def test_fetch_data_for_given_objects(reader):
    results = reader.fetch_data(Query(counter_id=1, object_ids=[1], start=TS, end=TS + 60))
    assert results == {1: [DataPoint(TS, 10), DataPoint(TS + 60, 20)]}


def test_fetch_data_filters_range(reader):
    results = reader.fetch_data(Query(counter_id=1, object_ids=[1], start=TS + 1, end=TS + 60))
    assert results == {1: [DataPoint(TS + 60, 20)]}


def test_fetch_data_uses_stored_keys(reader):
    results = reader.fetch_data(Query(counter_id=1, start=TS, end=TS + 60))
    assert set(results) == {1, 2}
    assert results[2] == [DataPoint(TS, 30)]


def test_fetch_data_without_data(reader):
    with pytest.raises(NoDataError):
        reader.fetch_data(Query(counter_id=1, object_ids=[1], start=TS + 10 * DAY, end=TS + 10 * DAY))


def test_handle_gauge(reader):
    response = reader.handle(QueryReceive(3, Query(counter_id=1, start=TS, end=TS + 60, aggregation="MAX")))
    assert response.request_id == 3
    assert response.error == ""
    assert response.data == 30.0


def test_handle_unknown_counter(reader):
    response = reader.handle(QueryReceive(4, Query(counter_id=9, start=TS, end=TS)))
    assert response.request_id == 4
    assert "counter ID 9 not found" in response.error
    assert response.data is None


def test_handle_string_counter(env):
    settings, pool = env
    store(settings, pool, Event(5, 3, TS, "host"))
    made = Reader(0, pool, queue.Queue(), settings, DataPointCache())
    try:
        response = made.handle(QueryReceive(1, Query(counter_id=3, start=TS, end=TS)))
    finally:
        made.stop()
    assert response.data == {5: [DataPoint(TS, "host")]}


def test_reader_thread_answers(reader):
    reader.start()
    reader.submit(QueryReceive(7, Query(counter_id=1, object_ids=[2], start=TS, end=TS, aggregation="MIN")))
    response = reader.response_queue.get(timeout=5)
    assert response.request_id == 7
    assert response.data == 30.0


def test_distribute_query_routes_and_shuts_down(env):
    settings, pool = env
    sample(settings, pool)
    responses = queue.Queue()
    readers = start_readers(pool, responses, settings, DataPointCache())
    incoming = queue.Queue()
    thread = distribute_query(incoming, readers)
    incoming.put(QueryReceive(5, Query(counter_id=1, object_ids=[1], start=TS, end=TS, aggregation="MAX")))
    incoming.put(None)
    thread.join(10)
    assert not thread.is_alive()
    response = responses.get_nowait()
    assert response.request_id == 5
    assert response.data == 10.0


def test_start_readers_needs_readers(env):
    settings, pool = env
    settings.readers = 0
    with pytest.raises(ValueError):
        start_readers(pool, queue.Queue(), settings, DataPointCache())