"""Turns the data points fetched for a query into gauge, grid or histogram answers."""

from __future__ import annotations

from collections import defaultdict
from itertools import groupby
from typing import Any, Callable, Iterable

from lnms.reportdb.config import DataType
from lnms.reportdb.types import DataPoint, Query


class NoDataError(Exception):
    """Raised when a query finds nothing to answer with."""


class _EmptyBucket(int):
    """Zero that stands for a histogram bucket with no samples; aggregations skip it."""


EMPTY_BUCKET = _EmptyBucket(0)


def to_float(value: Any) -> float | None:
    """The numeric value of ``value``, or None when it is not a number that aggregates."""
    if isinstance(value, (bool, _EmptyBucket)):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _average(numbers: list[float]) -> float:
    return sum(numbers) / len(numbers) if numbers else 0.0


def _minimum(numbers: list[float]) -> float:
    return min(numbers, default=0.0)


def _maximum(numbers: list[float]) -> float:
    return max(numbers, default=0.0)


def _total(numbers: list[float]) -> float:
    return float(sum(numbers))


_AGGREGATORS: dict[str, Callable[[list[float]], float]] = {
    "AVG": _average,
    "MIN": _minimum,
    "MAX": _maximum,
    "SUM": _total,
}


def aggregate_values(values: Iterable[Any], aggregation: str) -> Any:
    """Aggregate ``values``; without a known aggregation, the single value or the list itself."""
    values = list(values)
    if not values:
        return None
    aggregator = _AGGREGATORS.get(aggregation)
    if aggregator is not None:
        return aggregator([number for number in map(to_float, values) if number is not None])
    return values[0] if len(values) == 1 else values


def _values(points: Iterable[DataPoint]) -> list[Any]:
    return [point.value for point in points]


def gauge_query(results: dict[int, list[DataPoint]], aggregation: str) -> Any:
    """One value: each object aggregated, then the objects aggregated together."""
    per_object = [aggregate_values(_values(points), aggregation) for points in results.values()]
    return aggregate_values(per_object, aggregation)


def grid_query(results: dict[int, list[DataPoint]], aggregation: str) -> dict[int, Any]:
    """One aggregated value per object."""
    return {object_id: aggregate_values(_values(points), aggregation) for object_id, points in results.items()}


def create_buckets(
    points: Iterable[DataPoint], interval: int, start: int, end: int, aggregation: str
) -> list[DataPoint]:
    """Aggregate the points of ``[start, end]`` into buckets ``interval`` seconds wide."""
    if interval <= 0:
        raise ValueError(f"invalid interval: {interval}")
    buckets: dict[int, list[Any]] = defaultdict(list)
    for point in sorted(points, key=lambda item: item.timestamp):
        if start <= point.timestamp <= end:
            buckets[point.timestamp - point.timestamp % interval].append(point.value)
    return [
        DataPoint(
            timestamp,
            aggregate_values(buckets[timestamp], aggregation) if buckets.get(timestamp) else EMPTY_BUCKET,
        )
        for timestamp in range(start - start % interval, end + 1, interval)
    ]


def merge_all_objects(bucketed: dict[int, list[DataPoint]], aggregation: str) -> list[DataPoint]:
    """Aggregate the buckets of every object that share a timestamp."""
    points = sorted(
        (point for object_points in bucketed.values() for point in object_points),
        key=lambda item: item.timestamp,
    )
    return [
        DataPoint(timestamp, aggregate_values(_values(group), aggregation))
        for timestamp, group in groupby(points, key=lambda item: item.timestamp)
    ]


def histogram_query(results: dict[int, list[DataPoint]], query: Query) -> Any:
    """Bucketed series per object, or merged into one series across objects."""
    bucketed = {
        object_id: create_buckets(points, query.interval, query.start, query.end, query.aggregation)
        for object_id, points in results.items()
    }
    if query.group_by_objects:
        return bucketed
    return merge_all_objects(bucketed, query.aggregation)


def parse_result(results: dict[int, list[DataPoint]], query: Query, data_type: DataType) -> Any:
    """The answer to ``query`` from the fetched ``results``."""
    if not results:
        raise NoDataError("no data available for processing")
    if data_type is DataType.STRING:
        return results
    if query.interval == 0:
        if query.group_by_objects:
            return grid_query(results, query.aggregation)
        return gauge_query(results, query.aggregation)
    return histogram_query(results, query)