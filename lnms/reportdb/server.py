"""Message servers: polled events in, queries in, query responses out."""

from __future__ import annotations

import json
import logging
import queue
import threading
from typing import Any

import msgpack
import zmq

from lnms.reportdb.types import Event, QueryReceive, Response

DEFAULT_POLLING_ADDRESS = "tcp://*:6003"
DEFAULT_QUERY_ADDRESS = "tcp://*:6004"
DEFAULT_RESPONSE_ADDRESS = "tcp://*:6005"

_POLL_MS = 100
_POLL_S = _POLL_MS / 1000

log = logging.getLogger(__name__)


def _unpack(payload: bytes) -> Any:
    try:
        return msgpack.unpackb(payload, raw=False, strict_map_key=False)
    except (ValueError, TypeError, msgpack.UnpackException) as exc:
        raise ValueError(f"invalid message: {exc}") from exc


def decode_events(payload: bytes) -> list[Event]:
    """Decode a msgpack batch of events."""
    raw = _unpack(payload)
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(item, dict) for item in raw):
        raise ValueError("invalid message: events must be a list of maps")
    try:
        return [Event.from_dict(item) for item in raw]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid event: {exc}") from exc


def decode_query(payload: bytes) -> QueryReceive:
    """Decode a msgpack query request."""
    raw = _unpack(payload)
    if not isinstance(raw, dict):
        raise ValueError("invalid message: query must be a map")
    try:
        return QueryReceive.from_dict(raw)
    except (TypeError, ValueError, AttributeError) as exc:
        raise ValueError(f"invalid query: {exc}") from exc


def encode_response(response: Response) -> bytes:
    """Encode a response as compact JSON."""
    return json.dumps(response.to_dict(), separators=(",", ":"), allow_nan=False).encode("utf-8")


def _put(target: queue.Queue, item: Any, stop: threading.Event) -> None:
    while not stop.is_set():
        try:
            target.put(item, timeout=_POLL_S)
            return
        except queue.Full:
            continue


class _SocketOwner:
    def __init__(self, context: zmq.Context | None) -> None:
        self._owns_context = context is None
        self._context = zmq.Context() if context is None else context
        self._stop = threading.Event()
        self._sockets: list[zmq.Socket] = []
        self._threads: list[threading.Thread] = []
        self._closed = False

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

    def _spawn(self, target, *args: Any, name: str) -> None:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        self._threads.append(thread)
        thread.start()

    def _release(self) -> None:
        for sock in self._sockets:
            sock.close()
        self._sockets.clear()
        if self._owns_context:
            self._context.term()

    def _stop_all(self) -> bool:
        if self._closed:
            return False
        self._closed = True
        self._stop.set()
        for thread in self._threads:
            thread.join()
        self._release()
        return True


class PollingServer(_SocketOwner):
    """Receives event batches from the poller and hands them to ``data_queue``."""

    def __init__(
        self,
        data_queue: queue.Queue,
        address: str = DEFAULT_POLLING_ADDRESS,
        context: zmq.Context | None = None,
    ) -> None:
        super().__init__(context)
        self._pull = self._open(zmq.PULL, "PULL", address)
        self._spawn(self._receive, data_queue, name="polling-receiver")

    def _receive(self, data_queue: queue.Queue) -> None:
        while not self._stop.is_set():
            try:
                if not self._pull.poll(_POLL_MS):
                    continue
                payload = self._pull.recv()
            except zmq.ZMQError as exc:
                if self._stop.is_set():
                    break
                log.warning("pollingReceiver : Error receiving batchData: %s", exc)
                continue
            try:
                events = decode_events(payload)
            except ValueError as exc:
                log.warning("pollingReceiver : Error unmarshalling batchData: %s", exc)
                continue
            log.info("PollingServer: received %d events", len(events), extra={"fields": {"count": len(events)}})
            _put(data_queue, events, self._stop)

    def shutdown(self) -> None:
        self._stop_all()


class QueryServer(_SocketOwner):
    """Receives queries into ``query_queue`` and sends what arrives on ``response_queue``."""

    def __init__(
        self,
        query_queue: queue.Queue,
        response_queue: queue.Queue,
        query_address: str = DEFAULT_QUERY_ADDRESS,
        response_address: str = DEFAULT_RESPONSE_ADDRESS,
        context: zmq.Context | None = None,
    ) -> None:
        super().__init__(context)
        self._query_queue = query_queue
        self._pull = self._open(zmq.PULL, "PULL", query_address)
        self._push = self._open(zmq.PUSH, "PUSH", response_address)
        self._spawn(self._receive, query_queue, name="query-receiver")
        self._spawn(self._send, response_queue, name="response-sender")

    def _receive(self, query_queue: queue.Queue) -> None:
        while not self._stop.is_set():
            try:
                if not self._pull.poll(_POLL_MS):
                    continue
                payload = self._pull.recv()
            except zmq.ZMQError as exc:
                if self._stop.is_set():
                    break
                log.warning("queryReceiver : Error receiving query: %s", exc)
                continue
            try:
                request = decode_query(payload)
            except ValueError as exc:
                log.warning("queryReceiver : Error unmarshalling query: %s", exc)
                continue
            _put(query_queue, request, self._stop)

    def _send(self, response_queue: queue.Queue) -> None:
        while not self._stop.is_set():
            try:
                response = response_queue.get(timeout=_POLL_S)
            except queue.Empty:
                continue
            if response is None:
                break
            try:
                payload = encode_response(response)
            except (TypeError, ValueError) as exc:
                log.warning("responseSender : Error marshaling response: %s", exc)
                continue
            while not self._stop.is_set():
                try:
                    if self._push.poll(_POLL_MS, zmq.POLLOUT):
                        self._push.send(payload)
                        break
                except zmq.ZMQError as exc:
                    log.warning("responseSender : Error sending response: %s", exc)
                    break

    def shutdown(self) -> None:
        """Stop both directions and signal the end of the query stream with None."""
        if self._stop_all():
            self._query_queue.put(None)