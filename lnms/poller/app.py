"""Entry point of the poller service."""

from __future__ import annotations

import argparse
import contextlib
import queue
import signal
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterator

from lnms.logsetup import init_logger
from lnms.poller.config import ConfigError, load_config
from lnms.poller.poller import Poller
from lnms.poller.server import DEFAULT_PULL_ADDRESS, DEFAULT_PUSH_ADDRESS, PollingServer

SERVICE = "poller"


def build_parser() -> argparse.ArgumentParser:
    """Command-line options of the poller."""
    parser = argparse.ArgumentParser(prog="lnms-poller", description="Poll provisioned devices over SSH.")
    parser.add_argument(
        "--working-dir",
        type=Path,
        default=Path.cwd(),
        help="directory holding config/ (default: the current directory)",
    )
    parser.add_argument("--log-dir", type=Path, default=Path("logs"), help="directory of the log files")
    parser.add_argument("--pull-address", default=DEFAULT_PULL_ADDRESS, help="address devices arrive on")
    parser.add_argument("--push-address", default=DEFAULT_PUSH_ADDRESS, help="address event batches leave on")
    return parser


@contextlib.contextmanager
def _stop_on_signals(stop: threading.Event) -> Iterator[None]:
    """Set ``stop`` on SIGINT or SIGTERM while the block runs, then restore the old handlers."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = {signum: signal.signal(signum, lambda *_: stop.set()) for signum in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def main(argv: list[str] | None = None) -> int:
    """Run the poller until SIGINT or SIGTERM; returns the exit status."""
    args = build_parser().parse_args(argv)
    try:
        logger = init_logger(SERVICE, args.log_dir)
    except OSError as exc:
        print(f"Failed to initialize logger: {exc}")
        return 1
    try:
        settings = load_config(args.working_dir)
    except ConfigError as exc:
        logger.error("InitConfig error: %s", exc)
        return 1

    device_queue: queue.Queue = queue.Queue(maxsize=max(settings.device_buffer, 0))
    data_queue: queue.Queue = queue.Queue(maxsize=max(settings.data_buffer, 0))
    try:
        server = PollingServer(device_queue, data_queue, args.pull_address, args.push_address)
    except OSError as exc:
        logger.error("NewPollingServer error: %s", exc)
        return 1

    poller = Poller(settings)
    try:
        poller.watch_devices(device_queue)
        poller.start(data_queue)
    except ValueError as exc:
        logger.error("StartPolling error: %s", exc)
        server.shutdown()
        poller.shutdown()
        return 1

    stop = threading.Event()
    with _stop_on_signals(stop):
        while not stop.wait(1.0):
            pass
    logger.info("Start shutting down at %s", datetime.now().isoformat())
    server.shutdown()
    poller.shutdown()
    logger.info("Shutdown complete at %s", datetime.now().isoformat())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())