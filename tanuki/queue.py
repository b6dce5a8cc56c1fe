"""Priority queues of tasks, one per workstream."""

from __future__ import annotations

import heapq
import itertools
import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .types import Task, priority_order


class EmptyQueueError(LookupError):
    """No queued tasks exist for the requested workstream."""

    def __init__(self, workstream: str) -> None:
        super().__init__(workstream)
        self.workstream = workstream

    def __str__(self) -> str:
        return f'no tasks for workstream "{self.workstream}"'


@dataclass
class QueueStats:
    """Counts of queued tasks."""

    total: int = 0
    by_workstream: dict = field(default_factory=dict)
    by_priority: dict = field(default_factory=dict)


class TaskQueue:
    """Thread-safe priority queue of tasks, partitioned by workstream.

    Within a workstream, higher-priority tasks come out first; tasks of equal
    priority come out in the order they were added.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._heaps: dict[str, list] = {}
        self._counter = itertools.count()

    def enqueue(self, task: Optional[Task]) -> None:
        """Add a task under its workstream."""
        if task is None:
            raise ValueError("task is nil")
        entry = (priority_order(task.priority), next(self._counter), task)
        with self._lock:
            heap = self._heaps.setdefault(task.effective_workstream(), [])
            heapq.heappush(heap, entry)

    def dequeue(self, workstream: str) -> Task:
        """Remove and return the highest-priority task of a workstream."""
        with self._lock:
            heap = self._heaps.get(workstream)
            if not heap:
                raise EmptyQueueError(workstream)
            return heapq.heappop(heap)[2]

    def peek(self, workstream: str) -> Task:
        """Return the highest-priority task of a workstream without removing it."""
        with self._lock:
            heap = self._heaps.get(workstream)
            if not heap:
                raise EmptyQueueError(workstream)
            return heap[0][2]

    def size(self) -> int:
        """Number of queued tasks across all workstreams."""
        with self._lock:
            return sum(len(heap) for heap in self._heaps.values())

    def size_by_workstream(self, workstream: str) -> int:
        """Number of queued tasks in one workstream."""
        with self._lock:
            return len(self._heaps.get(workstream, ()))

    def workstreams(self) -> list:
        """Workstreams that currently hold tasks."""
        with self._lock:
            return [ws for ws, heap in self._heaps.items() if heap]

    def clear(self) -> None:
        """Drop every queued task."""
        with self._lock:
            self._heaps = {}

    def enqueue_all(self, tasks: Iterable[Optional[Task]]) -> None:
        """Add several tasks, stopping at the first that cannot be added."""
        for task in tasks:
            self.enqueue(task)

    def dequeue_all(self, workstream: str) -> list:
        """Remove and return every task of a workstream in priority order."""
        with self._lock:
            heap = self._heaps.get(workstream)
            if heap is None:
                return []
            drained = [heapq.heappop(heap)[2] for _ in range(len(heap))]
            return drained

    def remove(self, task_id: str) -> bool:
        """Remove a task by ID; True if it was queued."""
        with self._lock:
            for heap in self._heaps.values():
                for position, (_, _, task) in enumerate(heap):
                    if task.id == task_id:
                        heap.pop(position)
                        heapq.heapify(heap)
                        return True
        return False

    def contains(self, task_id: str) -> bool:
        """True if a task with this ID is queued."""
        with self._lock:
            return any(
                task.id == task_id
                for heap in self._heaps.values()
                for _, _, task in heap
            )

    def stats(self) -> QueueStats:
        """Counts of queued tasks by workstream and by priority."""
        stats = QueueStats()
        with self._lock:
            for ws, heap in self._heaps.items():
                stats.by_workstream[ws] = len(heap)
                stats.total += len(heap)
                for _, _, task in heap:
                    stats.by_priority[task.priority] = (
                        stats.by_priority.get(task.priority, 0) + 1
                    )
        return stats