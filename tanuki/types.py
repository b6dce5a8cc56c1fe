"""Task model: priorities, statuses, completion criteria and errors."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

DEFAULT_MAX_ITERATIONS = 30


class _StrEnum(str, enum.Enum):
    """String enum whose members behave like their plain string values."""

    def __str__(self) -> str:
        return self.value

    def __format__(self, spec: str) -> str:
        return format(self.value, spec)

    def __hash__(self) -> int:
        return hash(self.value)


class Priority(_StrEnum):
    """Task priority; critical is the highest."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Status(_StrEnum):
    """Task lifecycle status."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    COMPLETE = "complete"
    FAILED = "failed"
    BLOCKED = "blocked"


_PRIORITY_ORDER = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}
_PRIORITY_VALUES = frozenset(p.value for p in Priority)
_STATUS_VALUES = frozenset(s.value for s in Status)


def priority_order(priority: object) -> int:
    """Sort rank of a priority (lower sorts first); unknown values rank as medium."""
    if isinstance(priority, str):
        return _PRIORITY_ORDER.get(str(priority), _PRIORITY_ORDER[Priority.MEDIUM])
    return _PRIORITY_ORDER[Priority.MEDIUM]


def is_valid_priority(value: object) -> bool:
    """True for a known priority or the empty string."""
    return isinstance(value, str) and (str(value) == "" or str(value) in _PRIORITY_VALUES)


def is_valid_status(value: object) -> bool:
    """True for a known status or the empty string."""
    return isinstance(value, str) and (str(value) == "" or str(value) in _STATUS_VALUES)


def is_terminal(status: object) -> bool:
    """True if the status ends the task's lifecycle."""
    return status == Status.COMPLETE


def _coerce_priority(value: object) -> Union[Priority, str]:
    if isinstance(value, str) and str(value) in _PRIORITY_VALUES:
        return Priority(str(value))
    return value  # type: ignore[return-value]


def _coerce_status(value: object) -> Union[Status, str]:
    if isinstance(value, str) and str(value) in _STATUS_VALUES:
        return Status(str(value))
    return value  # type: ignore[return-value]


@dataclass
class CompletionConfig:
    """How to decide that a task is done: a verify command and/or an output signal."""

    verify: str = ""
    signal: str = ""
    max_iterations: int = 0


def effective_max_iterations(config: Optional[CompletionConfig]) -> int:
    """Iteration limit of a completion config, falling back to the default."""
    if config is None or config.max_iterations <= 0:
        return DEFAULT_MAX_ITERATIONS
    return config.max_iterations


@dataclass
class Task:
    """A unit of work defined by a markdown file with YAML front matter."""

    id: str = ""
    title: str = ""
    workstream: str = ""
    priority: Union[Priority, str] = ""
    status: Union[Status, str] = ""
    depends_on: list = field(default_factory=list)
    assigned_to: str = ""
    completion: Optional[CompletionConfig] = None
    tags: list = field(default_factory=list)

    file_path: str = ""
    content: str = ""
    project: str = ""
    completed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None

    failure_message: str = ""
    log_file_path: str = ""
    validation_log: str = ""

    def __post_init__(self) -> None:
        self.priority = _coerce_priority(self.priority)
        self.status = _coerce_status(self.status)
        self.depends_on = list(self.depends_on or [])
        self.tags = list(self.tags or [])

    def effective_workstream(self) -> str:
        """The workstream, or the task ID when none is set."""
        return self.workstream or self.id

    def is_ralph_mode(self) -> bool:
        """True if the task has criteria for iterating until completion."""
        return self.completion is not None and bool(
            self.completion.verify or self.completion.signal
        )


class ValidationError(ValueError):
    """A task field is missing or has an invalid value."""

    def __init__(self, message: str, field: str = "") -> None:
        super().__init__(message, field)
        self.message = message
        self.field = field

    def __str__(self) -> str:
        if self.field:
            return f"task.{self.field}: {self.message}"
        return self.message


class TaskNotFoundError(LookupError):
    """No task with the given ID is known."""

    def __init__(self, task_id: str) -> None:
        super().__init__(task_id)
        self.task_id = task_id

    def __str__(self) -> str:
        return f'task "{self.task_id}" not found'