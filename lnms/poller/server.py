"""Message server of the poller: devices in from the backend, event batches out."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any

import msgpack
import zmq

from lnms.poller.types import Device, Event

DEFAULT_PULL_ADDRESS = "tcp://*:6002"
DEFAULT_PUSH_ADDRESS = "tcp://*:6001"

_POLL_MS = 100
_POLL_S = _POLL_MS / 1000

log = logging.getLogger(__name__)


def decode_devices(payload: bytes) -> list[Device]:
    """Decode a msgpack list of devices."""
    try:
        raw = msgpack.unpackb(payload, raw=False, strict_map_key=False)
    except (ValueError, TypeError, msgpack.UnpackException) as exc:
        raise ValueError(f"invalid message: {exc}") from exc
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(item, dict) for item in raw):
        raise ValueError("invalid message: devices must be a list of maps")
    try:
        return [Device.from_dict(item) for item in raw]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid device: {exc}") from exc


def encode_events(events: list[Event]) -> bytes:
    """Encode a batch of events as msgpack."""
    try:
        return msgpack.packb([event.to_dict() for event in events], use_bin_type=True)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValueError(f"cannot encode events: {exc}") from exc


class PollingServer:
    """Receives device lists into ``device_queue`` and sends the batches put on ``data_queue``.

    On shutdown None is put on ``device_queue`` to end the device stream; a None
    taken from ``data_queue`` stops the sender.
    """

    def __init__(
        self,
        device_queue: queue.Queue,
        data_queue: queue.Queue,
        pull_address: str = DEFAULT_PULL_ADDRESS,
        push_address: str = DEFAULT_PUSH_ADDRESS,
        context: zmq.Context | None = None,
    ) -> None:
        self._owns_context = context is None
        self._context = zmq.Context() if context is None else context
        self._device_queue = device_queue
        self._stop = threading.Event()
        self._sockets: list[zmq.Socket] = []
        self._closed = False
        self._pull = self._open(zmq.PULL, "PULL", pull_address)
        self._push = self._open(zmq.PUSH, "PUSH", push_address)
        self._threads = [
            threading.Thread(target=self._receive, name="poller-receiver", daemon=True),
            threading.Thread(target=self._send, args=(data_queue,), name="poller-sender", daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    def _open(self, kind: int, name: str, address: str) -> zmq.Socket:
        try:
            sock = self._context.socket(kind)
        except zmq.ZMQError as exc:
            self._release()
            raise OSError(f"failed to create {name} socket: {exc}") from exc
        sock.setsockopt(zmq.LINGER, 0)
        try:
            sock.bind(address)
        except zmq.ZMQError as exc:
            sock.close()
            self._release()
            raise OSError(f"failed to bind {name} socket: {exc}") from exc
        self._sockets.append(sock)
        return sock

    def _release(self) -> None:
        for sock in self._sockets:
            sock.close()
        self._sockets.clear()
        if self._owns_context:
            self._context.term()

    def _deliver(self, item: Any) -> None:
        while not self._stop.is_set():
            try:
                self._device_queue.put(item, timeout=_POLL_S)
                return
            except queue.Full:
                continue

    def _receive(self) -> None:
        while not self._stop.is_set():
            try:
                if not self._pull.poll(_POLL_MS):
                    continue
                payload = self._pull.recv()
            except zmq.ZMQError as exc:
                if self._stop.is_set():
                    break
                log.warning("pollingReceiver: Error receiving devices: %s", exc)
                continue
            try:
                devices = decode_devices(payload)
            except ValueError as exc:
                log.warning("pollingReceiver: Error unmarshalling devices: %s", exc)
                continue
            self._deliver(devices)

    def _send(self, data_queue: queue.Queue) -> None:
        while not self._stop.is_set():
            try:
                events = data_queue.get(timeout=_POLL_S)
            except queue.Empty:
                continue
            if events is None:
                break
            try:
                payload = encode_events(events)
            except ValueError as exc:
                log.error("pollingSender: Error marshaling events: %s", exc)
                continue
            log.info("sent : %d", len(events))
            while not self._stop.is_set():
                try:
                    if self._push.poll(_POLL_MS, zmq.POLLOUT):
                        self._push.send(payload)
                        break
                except zmq.ZMQError as exc:
                    log.error("pollingSender: Error sending events: %s", exc)
                    break

    def shutdown(self) -> None:
        """Stop both directions, close the sockets and end the device stream."""
        if self._closed:
            return
        self._closed = True
        self._stop.set()
        for thread in self._threads:
            thread.join()
        self._release()
        self._device_queue.put(None)