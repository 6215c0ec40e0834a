"""Readers that answer queries from the store, and the broker that hands queries to them."""

from __future__ import annotations

import concurrent.futures
import logging
import queue
import struct
import threading
import time
from datetime import date, timedelta
from pathlib import Path
from typing import Iterator

from lnms.reportdb.cache import DataPointCache
from lnms.reportdb.config import ConfigError, DataType, Settings
from lnms.reportdb.parser import NoDataError, parse_result
from lnms.reportdb.store import StoreEngine
from lnms.reportdb.storepool import EngineUnavailableError, StorePool, counter_path, day_of
from lnms.reportdb.types import DataPoint, Query, QueryReceive, Response

CACHE_TTL = 60 * 60

_UINT_ROW = struct.Struct("<IQ")
_FLOAT_ROW = struct.Struct("<Id")
_TIMESTAMP = struct.Struct("<I")
_STOP = object()

log = logging.getLogger(__name__)


class QueryTimeoutError(Exception):
    """Raised when fetching a query's data takes longer than the configured timeout."""


def day_range(start: int, end: int) -> Iterator[date]:
    """Every store day from the day of ``start`` to the day of ``end``."""
    current, last = day_of(start), day_of(end)
    while current <= last:
        yield current
        current += timedelta(days=1)


def decode_rows(rows: list[bytes], data_type: DataType) -> list[DataPoint]:
    """Decode stored rows (timestamp then value) into data points."""
    points: list[DataPoint] = []
    try:
        for row in rows:
            if data_type is DataType.UINT64:
                points.append(DataPoint(*_UINT_ROW.unpack_from(row)))
            elif data_type is DataType.FLOAT64:
                points.append(DataPoint(*_FLOAT_ROW.unpack_from(row)))
            elif data_type is DataType.STRING:
                (timestamp,) = _TIMESTAMP.unpack_from(row)
                points.append(DataPoint(timestamp, row[4:].decode("utf-8")))
    except struct.error as exc:
        raise ValueError(f"corrupt row: {exc}") from exc
    return points


class Reader:
    """Answers the queries handed to it, one at a time, on its own thread."""

    def __init__(
        self,
        reader_id: int,
        store_pool: StorePool,
        response_queue: queue.Queue,
        settings: Settings,
        cache: DataPointCache,
    ) -> None:
        if settings.object_workers <= 0:
            raise ValueError(f"invalid object worker count: {settings.object_workers}")
        self.reader_id = reader_id
        self.store_pool = store_pool
        self.response_queue = response_queue
        self.settings = settings
        self.cache = cache
        self.queries: queue.Queue = queue.Queue(maxsize=max(settings.query_buffer, 0))
        self.objects_mapping: dict[str, list[int]] = {}
        self._workers = concurrent.futures.ThreadPoolExecutor(
            max_workers=settings.object_workers, thread_name_prefix=f"reader-{reader_id}-object"
        )
        self._thread: threading.Thread | None = None

    def _path(self, day: date, counter_id: int) -> str:
        return counter_path(Path(self.settings.working_dir), day, counter_id)

    def fetch_data(self, query: Query) -> dict[int, list[DataPoint]]:
        """Data points of the queried objects in the query's time range, by object."""
        timeout = self.settings.query_timeout
        deadline = time.monotonic() + timeout if timeout > 0 else None
        try:
            data_type = self.settings.counter_type(query.counter_id)
        except ConfigError as exc:
            raise ConfigError(f"reader.fetchData error : {exc}") from None
        days = list(day_range(query.start, query.end))
        futures = []
        for day in days:
            path = self._path(day, query.counter_id)
            try:
                store = self.store_pool.get_engine(path, for_put=False)
            except EngineUnavailableError:
                continue
            if query.object_ids:
                objects = query.object_ids
            elif path in self.objects_mapping:
                objects = self.objects_mapping[path]
            else:
                objects = store.keys()
                self.objects_mapping[path] = objects
            futures.extend(
                self._workers.submit(self._load, path, store, object_id, query, data_type)
                for object_id in objects
            )
        remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
        _, pending = concurrent.futures.wait(futures, timeout=remaining)
        if pending:
            for future in pending:
                future.cancel()
            raise QueryTimeoutError("query timeout")
        results = self._merge(query, days)
        if not results:
            raise NoDataError(f"no data found in time range {query.start}-{query.end}")
        return results

    def _load(self, path: str, store: StoreEngine, object_id: int, query: Query, data_type: DataType) -> None:
        key = f"{path}_{object_id}"
        if self.cache.get(key) is not None and not self.store_pool.used_put(path):
            return
        try:
            points = decode_rows(store.get(object_id, query.start, query.end), data_type)
        except (OSError, ValueError) as exc:
            log.error("Get failed for object %d: %s", object_id, exc)
            return
        self.cache.set(key, points, CACHE_TTL)

    def _merge(self, query: Query, days: list[date]) -> dict[int, list[DataPoint]]:
        results: dict[int, list[DataPoint]] = {}
        if not days:
            return results
        first, last = days[0], days[-1]
        for day in days:
            path = self._path(day, query.counter_id)
            if query.object_ids:
                object_ids = query.object_ids
            else:
                object_ids = self.objects_mapping.get(path) or []
                if self.store_pool.used_put(path):
                    self.objects_mapping.pop(path, None)
            for object_id in object_ids:
                key = f"{path}_{object_id}"
                cached = self.cache.get(key)
                if cached is not None:
                    results.setdefault(object_id, []).extend(cached)
                if day <= first or day >= last or self.store_pool.used_put(path):
                    self.cache.delete(key)
        return results

    def handle(self, request: QueryReceive) -> Response:
        """Answer one query, turning any failure into an error response."""
        query = request.query
        try:
            results = self.fetch_data(query)
            data = parse_result(results, query, self.settings.counter_type(query.counter_id))
        except (ConfigError, NoDataError, QueryTimeoutError, OSError, ValueError) as exc:
            log.error("Error fetching data from reader %d: %s", self.reader_id, exc)
            return Response(request_id=request.request_id, error=str(exc))
        return Response(request_id=request.request_id, data=data)

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name=f"reader-{self.reader_id}", daemon=True)
        self._thread.start()

    def submit(self, request: QueryReceive) -> None:
        self.queries.put(request)

    def stop(self) -> None:
        """Answer what is queued, then end the thread and its object workers."""
        if self._thread is not None:
            self.queries.put(_STOP)
            self._thread.join()
            self._thread = None
        self._workers.shutdown(wait=True, cancel_futures=True)

    def _run(self) -> None:
        while (request := self.queries.get()) is not _STOP:
            self.response_queue.put(self.handle(request))


def start_readers(
    store_pool: StorePool, response_queue: queue.Queue, settings: Settings, cache: DataPointCache
) -> list[Reader]:
    """Create and start the configured number of readers."""
    if settings.readers <= 0:
        raise ValueError(f"invalid reader count: {settings.readers}")
    readers = [Reader(index, store_pool, response_queue, settings, cache) for index in range(settings.readers)]
    for reader in readers:
        reader.start()
    return readers


def distribute_query(query_queue: queue.Queue, readers: list[Reader]) -> threading.Thread:
    """Route each query to a reader by its request id; None ends the stream."""

    def run() -> None:
        try:
            while (request := query_queue.get()) is not None:
                readers[request.request_id % len(readers)].submit(request)
        finally:
            shutdown_readers(readers)

    thread = threading.Thread(target=run, name="query-distributor", daemon=True)
    thread.start()
    return thread


def shutdown_readers(readers: list[Reader]) -> None:
    for reader in readers:
        reader.stop()