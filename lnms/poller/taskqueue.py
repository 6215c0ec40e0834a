"""Polling tasks ordered by when they are next due."""

from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass


@dataclass
class Task:
    """Polling of one counter, due at ``next_execution`` and repeated every ``interval`` seconds."""

    counter_id: int
    next_execution: float
    interval: float


class TaskQueue:
    """A priority queue of tasks, earliest due first; equal times come out in push order."""

    def __init__(self) -> None:
        self._heap: list[tuple[float, int, Task]] = []
        self._sequence = itertools.count()

    def push(self, task: Task) -> None:
        heapq.heappush(self._heap, (task.next_execution, next(self._sequence), task))

    def pop(self) -> Task:
        """Remove and return the earliest task; IndexError when empty."""
        if not self._heap:
            raise IndexError("pop from an empty task queue")
        return heapq.heappop(self._heap)[2]

    def peek(self) -> Task:
        """The earliest task, left in the queue; IndexError when empty."""
        if not self._heap:
            raise IndexError("peek into an empty task queue")
        return self._heap[0][2]

    def clear(self) -> None:
        self._heap.clear()

    def __len__(self) -> int:
        return len(self._heap)