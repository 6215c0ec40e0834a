"""Entry point of the report database service."""

from __future__ import annotations

import argparse
import contextlib
import gc
import logging
import queue
import signal
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterator

from lnms.logsetup import init_logger
from lnms.reportdb.cache import DataPointCache
from lnms.reportdb.config import ConfigError, Settings, load_config
from lnms.reportdb.reader import distribute_query, shutdown_readers, start_readers
from lnms.reportdb.server import (
    DEFAULT_POLLING_ADDRESS,
    DEFAULT_QUERY_ADDRESS,
    DEFAULT_RESPONSE_ADDRESS,
    PollingServer,
    QueryServer,
)
from lnms.reportdb.storepool import StorePool
from lnms.reportdb.writer import distribute_data, start_writers

SERVICE = "reportdb"
METRICS_INTERVAL = 60.0


def build_parser() -> argparse.ArgumentParser:
    """Command-line options of the report database."""
    parser = argparse.ArgumentParser(prog="lnms-reportdb", description="Store polled metrics and answer queries.")
    parser.add_argument(
        "--working-dir",
        type=Path,
        default=Path.cwd().parent,
        help="directory holding config/ and database/ (default: parent of the current directory)",
    )
    parser.add_argument("--log-dir", type=Path, default=Path("logs"), help="directory of the log files")
    parser.add_argument("--polling-address", default=DEFAULT_POLLING_ADDRESS, help="address events arrive on")
    parser.add_argument("--query-address", default=DEFAULT_QUERY_ADDRESS, help="address queries arrive on")
    parser.add_argument("--response-address", default=DEFAULT_RESPONSE_ADDRESS, help="address responses leave on")
    return parser


@contextlib.contextmanager
def _stop_on_signals(stop: threading.Event) -> Iterator[None]:
    """Set ``stop`` on SIGINT or SIGTERM while the block runs, then restore the old handlers."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, lambda *_: stop.set())
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def _report_metrics(cache: DataPointCache, stop: threading.Event, logger: logging.Logger) -> None:
    while not stop.wait(METRICS_INTERVAL):
        collections = sum(stats.get("collections", 0) for stats in gc.get_stats())
        hits, misses, ratio = cache.metrics()
        logger.info("NumGC: %d", collections)
        logger.info("hit: %d, missed: %d, hitratio: %f", hits, misses, ratio)


def _drain(target: queue.Queue) -> None:
    with contextlib.suppress(queue.Empty):
        while True:
            target.get_nowait()


def _finish_data(server: PollingServer, data_queue: queue.Queue, thread: threading.Thread) -> None:
    server.shutdown()
    data_queue.put(None)
    thread.join()


def _finish_queries(server: QueryServer, response_queue: queue.Queue, thread: threading.Thread) -> None:
    server.shutdown()
    while thread.is_alive():
        _drain(response_queue)
        thread.join(0.1)
    _drain(response_queue)


def _serve(
    settings: Settings,
    args: argparse.Namespace,
    cache: DataPointCache,
    stop: threading.Event,
    logger: logging.Logger,
) -> None:
    with contextlib.ExitStack() as stack:
        store_pool = StorePool(settings)
        stack.callback(store_pool.shutdown)

        data_queue: queue.Queue = queue.Queue(maxsize=max(settings.data_buffer, 0))
        polling_server = PollingServer(data_queue, args.polling_address)
        stack.callback(polling_server.shutdown)

        writers = start_writers(store_pool, settings)
        data_thread = distribute_data(data_queue, writers)
        stack.callback(_finish_data, polling_server, data_queue, data_thread)

        response_queue: queue.Queue = queue.Queue(maxsize=max(settings.response_buffer, 0))
        readers = start_readers(store_pool, response_queue, settings, cache)
        stack.callback(shutdown_readers, readers)

        query_queue: queue.Queue = queue.Queue(maxsize=max(settings.query_buffer, 0))
        query_server = QueryServer(query_queue, response_queue, args.query_address, args.response_address)
        query_thread = distribute_query(query_queue, readers)
        stack.callback(_finish_queries, query_server, response_queue, query_thread)

        store_pool.start_saver()
        threading.Thread(
            target=_report_metrics, args=(cache, stop, logger), name="metrics", daemon=True
        ).start()

        with _stop_on_signals(stop):
            while not stop.wait(1.0):
                pass
        logger.info("Start shutting down at %s", datetime.now().isoformat())
    logger.info("Shutdown complete at %s", datetime.now().isoformat())


def main(argv: list[str] | None = None) -> int:
    """Run the report database until SIGINT or SIGTERM; returns the exit status."""
    args = build_parser().parse_args(argv)
    try:
        logger = init_logger(SERVICE, args.log_dir)
    except OSError as exc:
        print(f"Failed to initialize logger: {exc}")
        return 1
    cache = DataPointCache()
    try:
        settings = load_config(args.working_dir)
    except ConfigError as exc:
        logger.error("Error initializing config: %s", exc)
        return 1
    try:
        _serve(settings, args, cache, threading.Event(), logger)
    except (OSError, ValueError) as exc:
        logger.error("Failed to start report database: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())