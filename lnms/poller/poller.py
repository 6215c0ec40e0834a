"""The poller: keeps the provisioned devices, schedules counters and polls devices over SSH."""

from __future__ import annotations

import concurrent.futures
import logging
import queue
import re
import threading
import time
from typing import Any, Callable

import paramiko

from lnms.poller.config import DataType, PollerSettings
from lnms.poller.taskqueue import Task, TaskQueue
from lnms.poller.types import Device, Event

SSH_TIMEOUT = 5.0
UINT64_MAX = 2**64 - 1

_TICK = 0.1
_COMMANDS = {
    1: "free -b | awk '/Mem:/ {print $3}'",
    2: "top -bn1 | awk '/%Cpu/ {print 100 - $8}'",
    3: "hostname",
}
_UINT_PATTERN = re.compile(r"\s*\+?(\d+)")
_FLOAT_PATTERN = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

log = logging.getLogger(__name__)

Fetcher = Callable[[Device, int, "DataType | None"], Any]


class PollError(Exception):
    """Raised when a device cannot be polled or its output cannot be read."""


def counter_command(counter_id: int) -> str:
    """The shell command that reads a counter on a device."""
    try:
        return _COMMANDS[counter_id]
    except KeyError:
        raise PollError(f"unknown counter ID: {counter_id}") from None


def parse_output(output: str | bytes, data_type: DataType | None) -> Any:
    """Convert the output of a counter command to a value of the counter's type."""
    text = output.decode("utf-8", errors="replace") if isinstance(output, bytes) else output
    if data_type is DataType.UINT64:
        match = _UINT_PATTERN.match(text)
        if match is None:
            raise PollError(f"expected integer, got {text.strip()!r}")
        value = int(match.group(1))
        if value > UINT64_MAX:
            raise PollError(f"value out of range: {match.group(1)}")
        return value
    if data_type is DataType.FLOAT64:
        match = _FLOAT_PATTERN.match(text)
        if match is None:
            raise PollError(f"expected float, got {text.strip()!r}")
        return float(match.group(1))
    if data_type is DataType.STRING:
        return text.strip()
    raise PollError("unsupported counter type")


def fetch_via_ssh(device: Device, counter_id: int, data_type: DataType | None) -> Any:
    """Run the counter's command on the device and return the parsed value."""
    command = counter_command(counter_id)
    try:
        with paramiko.SSHClient() as client:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            client.connect(
                device.ip,
                port=device.port,
                username=device.username,
                password=device.password,
                timeout=SSH_TIMEOUT,
                allow_agent=False,
                look_for_keys=False,
            )
            _, stdout, _ = client.exec_command(command, timeout=SSH_TIMEOUT)
            output = stdout.read()
            status = stdout.channel.recv_exit_status()
    except (paramiko.SSHException, OSError, EOFError) as exc:
        raise PollError(str(exc) or type(exc).__name__) from exc
    if status != 0:
        raise PollError(f"process exited with status {status}")
    return parse_output(output, data_type)


def _put(target: queue.Queue, item: Any, stop: threading.Event) -> bool:
    while not stop.is_set():
        try:
            target.put(item, timeout=_TICK)
            return True
        except queue.Full:
            continue
    return False


class Poller:
    """Polls every configured counter of every provisioned device at the counter's interval."""

    def __init__(
        self,
        settings: PollerSettings,
        fetch: Fetcher = fetch_via_ssh,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.devices: dict[int, list[Device]] = {}
        self.tasks = TaskQueue()
        self._fetch = fetch
        self._clock = clock
        self._devices_lock = threading.Lock()
        self._task_lock = threading.Lock()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    def _spawn(self, target: Callable[..., None], *args: Any, name: str) -> None:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        self._threads.append(thread)
        thread.start()

    def update_devices(self, devices: list[Device]) -> None:
        """Apply a provisioning update: provisioned devices are added, unprovisioned ones removed."""
        latest = {device.ip: device for device in devices}
        with self._devices_lock:
            for counter_id in self.settings.counters:
                kept = [
                    device
                    for device in self.devices.get(counter_id, [])
                    if not (device.ip in latest and not latest[device.ip].is_provisioned)
                ]
                kept.extend(device for device in latest.values() if device.is_provisioned)
                self.devices[counter_id] = kept
        if devices:
            self.build_task_queue()

    def watch_devices(self, device_queue: queue.Queue) -> None:
        """Apply every device list taken from ``device_queue`` until None or shutdown."""

        def run() -> None:
            while not self._stop.is_set():
                try:
                    devices = device_queue.get(timeout=_TICK)
                except queue.Empty:
                    continue
                if devices is None:
                    return
                self.update_devices(devices)

        self._spawn(run, name="device-watcher")

    def build_task_queue(self) -> None:
        """Schedule each counter that has devices, first due one interval from now."""
        with self._devices_lock:
            counters = [counter_id for counter_id, devices in self.devices.items() if devices]
        with self._task_lock:
            self.tasks.clear()
            now = self._clock()
            for counter_id in counters:
                interval = self.settings.polling_interval(counter_id)
                if interval > 0:
                    self.tasks.push(Task(counter_id, now + interval, float(interval)))

    def start(self, data_queue: queue.Queue) -> None:
        """Start the workers, the scheduler and the batcher that feeds ``data_queue``."""
        if self.settings.batch_interval <= 0:
            raise ValueError(f"invalid batch interval: {self.settings.batch_interval}")
        event_queue: queue.Queue = queue.Queue(maxsize=max(self.settings.event_buffer, 0))
        work_queue: queue.Queue = queue.Queue(maxsize=max(self.settings.work_buffer, 0))
        for index in range(self.settings.workers):
            self._spawn(self._work, work_queue, event_queue, name=f"poll-worker-{index}")
        self._spawn(self._schedule, work_queue, name="poll-scheduler")
        self._spawn(self._batch, event_queue, data_queue, name="event-batcher")

    def _schedule(self, work_queue: queue.Queue) -> None:
        while not self._stop.is_set():
            due: Task | None = None
            with self._task_lock:
                if not self.tasks:
                    wait = 1.0
                else:
                    now = self._clock()
                    if self.tasks.peek().next_execution <= now:
                        due = self.tasks.pop()
                        due.next_execution = now + due.interval
                        self.tasks.push(due)
                    wait = self.tasks.peek().next_execution - self._clock()
            if due is not None:
                _put(work_queue, due.counter_id, self._stop)
            if wait > 0:
                self._stop.wait(wait)

    def _work(self, work_queue: queue.Queue, event_queue: queue.Queue) -> None:
        while not self._stop.is_set():
            try:
                counter_id = work_queue.get(timeout=_TICK)
            except queue.Empty:
                continue
            self.poll_counter(counter_id, event_queue)

    def _batch(self, event_queue: queue.Queue, data_queue: queue.Queue) -> None:
        interval = self.settings.batch_interval / 1000
        batch: list[Event] = []
        deadline = time.monotonic() + interval
        while not self._stop.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                if batch:
                    _put(data_queue, batch, self._stop)
                    batch = []
                deadline = max(deadline + interval, time.monotonic())
                continue
            try:
                batch.append(event_queue.get(timeout=min(remaining, _TICK)))
            except queue.Empty:
                continue

    def poll_counter(self, counter_id: int, event_queue: queue.Queue) -> None:
        """Poll one counter on every device that has it and queue the values read."""
        with self._devices_lock:
            devices = list(self.devices.get(counter_id, []))
        if not devices:
            return
        timestamp = int(self._clock())
        data_type = self.settings.counter_type(counter_id)

        def poll(device: Device) -> None:
            try:
                value = self._fetch(device, counter_id, data_type)
            except (PollError, OSError) as exc:
                log.info(
                    "Error polling device ip=%s objectID=%d counterID=%d: %s",
                    device.ip,
                    device.object_id,
                    counter_id,
                    exc,
                )
                return
            _put(event_queue, Event(device.object_id, counter_id, timestamp, value), self._stop)

        workers = max(self.settings.poll_device_buffer, 1)
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as pool:
            list(pool.map(poll, devices))

    def shutdown(self) -> None:
        """Stop every thread and drop the scheduled tasks."""
        self._stop.set()
        for thread in self._threads:
            thread.join()
        self._threads.clear()
        with self._task_lock:
            self.tasks.clear()