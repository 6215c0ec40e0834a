"""Messages exchanged by the report database."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def _plain(value: Any) -> Any:
    """Turn data points nested in dicts and lists into plain dicts."""
    if isinstance(value, DataPoint):
        return value.to_dict()
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


@dataclass
class Event:
    """One polled value of a counter for an object."""

    object_id: int
    counter_id: int
    timestamp: int
    value: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(
            object_id=int(data.get("objectId", 0)),
            counter_id=int(data.get("counterId", 0)),
            timestamp=int(data.get("timestamp", 0)),
            value=data.get("value"),
        )

    def to_dict(self) -> dict:
        return {
            "objectId": self.object_id,
            "counterId": self.counter_id,
            "timestamp": self.timestamp,
            "value": self.value,
        }


@dataclass
class DataPoint:
    """A value at a point in time."""

    timestamp: int
    value: Any = None

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "value": _plain(self.value)}


@dataclass
class Query:
    """What a client asks of the stored data."""

    counter_id: int = 0
    object_ids: list[int] = field(default_factory=list)
    start: int = 0
    end: int = 0
    aggregation: str = ""
    group_by_objects: bool = False
    interval: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "Query":
        return cls(
            counter_id=int(data.get("counter_id", 0)),
            object_ids=[int(item) for item in data.get("object_ids") or []],
            start=int(data.get("from", 0)),
            end=int(data.get("to", 0)),
            aggregation=str(data.get("aggregation") or ""),
            group_by_objects=bool(data.get("group_by_objects", False)),
            interval=int(data.get("interval", 0)),
        )


@dataclass
class QueryReceive:
    """A query together with the id its answer must carry."""

    request_id: int
    query: Query

    @classmethod
    def from_dict(cls, data: dict) -> "QueryReceive":
        return cls(
            request_id=int(data.get("request_id", 0)),
            query=Query.from_dict(data.get("query_request") or {}),
        )


@dataclass
class Response:
    """The answer to a query: data, or an error message."""

    request_id: int
    error: str = ""
    data: Any = None

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"request_id": self.request_id}
        if self.error:
            out["error"] = self.error
        out["data"] = _plain(self.data)
        return out