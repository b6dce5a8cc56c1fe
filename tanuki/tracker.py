"""In-memory history of task status transitions."""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from .types import Status, Task


class InvalidTransitionError(ValueError):
    """A status change is not allowed by the task lifecycle."""


@dataclass(frozen=True)
class StatusChange:
    """One recorded status transition of a task."""

    task_id: str
    from_status: object
    to_status: object
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    agent_name: str = ""
    message: str = ""


StatusListener = Callable[[StatusChange], None]

_VALID_TRANSITIONS: dict = {
    Status.PENDING: (Status.ASSIGNED, Status.BLOCKED),
    Status.BLOCKED: (Status.PENDING,),
    Status.ASSIGNED: (Status.IN_PROGRESS, Status.PENDING),
    Status.IN_PROGRESS: (
        Status.COMPLETE,
        Status.REVIEW,
        Status.FAILED,
        Status.PENDING,
    ),
    Status.REVIEW: (Status.COMPLETE, Status.IN_PROGRESS, Status.FAILED),
    Status.COMPLETE: (),
    Status.FAILED: (Status.PENDING, Status.IN_PROGRESS),
}


def validate_transition(from_status: object, to_status: object) -> None:
    """Raise InvalidTransitionError unless the transition is allowed.

    An empty ``from_status`` records an initial state and is always allowed.
    """
    if not from_status:
        return
    allowed = _VALID_TRANSITIONS.get(from_status)
    if allowed is None:
        raise InvalidTransitionError(f"unknown status: {from_status}")
    if to_status not in allowed:
        raise InvalidTransitionError(
            f"invalid transition: {from_status} → {to_status}"
        )


def can_transition(from_status: object, to_status: object) -> bool:
    """True if the transition is allowed."""
    try:
        validate_transition(from_status, to_status)
    except InvalidTransitionError:
        return False
    return True


def valid_transitions(from_status: object) -> list:
    """Statuses reachable in one step from the given status."""
    return list(_VALID_TRANSITIONS.get(from_status, ()))


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StatusTracker:
    """Thread-safe record of status transitions with change listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._history: dict[str, list] = defaultdict(list)
        self._listeners: list = []

    def record_change(
        self,
        task_id: str,
        from_status: object,
        to_status: object,
        agent_name: str = "",
        message: str = "",
    ) -> StatusChange:
        """Record a transition and notify listeners; invalid transitions raise."""
        validate_transition(from_status, to_status)
        change = StatusChange(
            task_id=task_id,
            from_status=from_status,
            to_status=to_status,
            timestamp=_now(),
            agent_name=agent_name,
            message=message,
        )
        with self._lock:
            self._history[task_id].append(change)
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(change)
            except Exception:  # a faulty listener must not break recording
                pass
        return change

    def get_history(self, task_id: str) -> list:
        """All recorded changes of a task, oldest first."""
        with self._lock:
            return list(self._history.get(task_id, ()))

    def last_change(self, task_id: str) -> Optional[StatusChange]:
        """The most recent change of a task, or None."""
        with self._lock:
            history = self._history.get(task_id)
            return history[-1] if history else None

    def add_listener(self, listener: StatusListener) -> None:
        """Register a callback invoked for every recorded change."""
        with self._lock:
            self._listeners.append(listener)

    def tasks_by_status(self, tasks: Iterable[Task], status: object) -> list:
        """The given tasks that currently have the status."""
        return [t for t in tasks if t.status == status]

    def recent_changes(self, since: timedelta) -> list:
        """Changes recorded within the given span before now."""
        cutoff = _now() - since
        with self._lock:
            return [
                change
                for history in self._history.values()
                for change in history
                if change.timestamp > cutoff
            ]

    def completed_today(self) -> list:
        """IDs of tasks completed since midnight UTC."""
        today = _now().replace(hour=0, minute=0, second=0, microsecond=0)
        with self._lock:
            return [
                task_id
                for task_id, history in self._history.items()
                if any(
                    c.to_status == Status.COMPLETE and c.timestamp > today
                    for c in history
                )
            ]

    def task_durations(self, task_id: str) -> dict:
        """Time spent in each status; the current status counts up to now."""
        with self._lock:
            history = list(self._history.get(task_id, ()))
        now = _now()
        durations: dict = defaultdict(timedelta)
        ends = [c.timestamp for c in history[1:]] + [now]
        for change, end in zip(history, ends):
            durations[change.to_status] += end - change.timestamp
        return dict(durations)

    def total_work_time(self, task_id: str) -> timedelta:
        """Total time the task spent in progress."""
        return self.task_durations(task_id).get(Status.IN_PROGRESS, timedelta())

    def average_completion_time(self) -> timedelta:
        """Mean time from first assignment to completion over completed tasks."""
        spans = []
        with self._lock:
            for history in self._history.values():
                assigned_at = next(
                    (c.timestamp for c in history if c.to_status == Status.ASSIGNED),
                    None,
                )
                completed_at = None
                for c in history:
                    if c.to_status == Status.COMPLETE:
                        completed_at = c.timestamp
                if assigned_at is not None and completed_at is not None:
                    spans.append(completed_at - assigned_at)
        if not spans:
            return timedelta()
        return sum(spans, timedelta()) / len(spans)

    def clear(self) -> None:
        """Forget all recorded history."""
        with self._lock:
            self._history = defaultdict(list)

    def task_count(self) -> int:
        """Number of distinct tasks with recorded history."""
        with self._lock:
            return len(self._history)