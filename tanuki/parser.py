"""Reading tasks from markdown files with YAML front matter."""

from __future__ import annotations

from datetime import date, datetime
from os import PathLike
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from .types import (
    CompletionConfig,
    Priority,
    Status,
    Task,
    ValidationError,
    is_valid_priority,
    is_valid_status,
)


class TaskFormatError(ValueError):
    """The task file is not well-formed front matter plus markdown."""


def _as_str(value: Any, name: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TaskFormatError(f"parse front matter: field {name!r} must be a scalar")


def _as_str_list(value: Any, name: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise TaskFormatError(f"parse front matter: field {name!r} must be a list")
    return [_as_str(item, name) for item in value]


def _as_int(value: Any, name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise TaskFormatError(f"parse front matter: field {name!r} must be an integer")
    return value


def _as_datetime(value: Any, name: str) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError as exc:
            raise TaskFormatError(f"parse front matter: field {name!r}: {exc}") from exc
    raise TaskFormatError(f"parse front matter: field {name!r} must be a timestamp")


def _as_completion(value: Any) -> Optional[CompletionConfig]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise TaskFormatError("parse front matter: field 'completion' must be a mapping")
    return CompletionConfig(
        verify=_as_str(value.get("verify"), "verify"),
        signal=_as_str(value.get("signal"), "signal"),
        max_iterations=_as_int(value.get("max_iterations"), "max_iterations"),
    )


def _task_from_front_matter(data: dict) -> Task:
    return Task(
        id=_as_str(data.get("id"), "id"),
        title=_as_str(data.get("title"), "title"),
        workstream=_as_str(data.get("workstream"), "workstream"),
        priority=_as_str(data.get("priority"), "priority"),
        status=_as_str(data.get("status"), "status"),
        depends_on=_as_str_list(data.get("depends_on"), "depends_on"),
        assigned_to=_as_str(data.get("assigned_to"), "assigned_to"),
        completion=_as_completion(data.get("completion")),
        tags=_as_str_list(data.get("tags"), "tags"),
        completed_at=_as_datetime(data.get("completed_at"), "completed_at"),
        started_at=_as_datetime(data.get("started_at"), "started_at"),
        failure_message=_as_str(data.get("failure_message"), "failure_message"),
        log_file_path=_as_str(data.get("log_file"), "log_file"),
        validation_log=_as_str(data.get("validation_log"), "validation_log"),
    )


def parse(content: str, file_path: str = "") -> Task:
    """Parse ``---`` delimited YAML front matter followed by markdown into a Task."""
    parts = content.split("---", 2)
    if len(parts) < 3:
        raise TaskFormatError(
            "invalid task file format: missing front matter delimiters"
        )

    try:
        data = yaml.safe_load(parts[1])
    except yaml.YAMLError as exc:
        raise TaskFormatError(f"parse front matter: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise TaskFormatError("parse front matter: front matter must be a mapping")

    task = _task_from_front_matter(data)
    task.file_path = file_path
    task.content = parts[2].strip()
    validate(task)
    return task


def parse_file(path: Union[str, PathLike]) -> Task:
    """Read and parse a task file."""
    content = Path(path).read_text(encoding="utf-8")
    return parse(content, str(path))


def validate(task: Optional[Task]) -> None:
    """Check required fields and values, filling in default priority and status."""
    if task is None:
        raise ValidationError("task is nil")
    if not task.id:
        raise ValidationError("is required", field="id")
    if not task.title:
        raise ValidationError("is required", field="title")

    if not is_valid_priority(task.priority):
        raise ValidationError(
            f'invalid value "{task.priority}": must be critical, high, medium, or low',
            field="priority",
        )
    task.priority = Priority(str(task.priority)) if task.priority else Priority.MEDIUM

    if not is_valid_status(task.status):
        raise ValidationError(f'invalid value "{task.status}"', field="status")
    task.status = Status(str(task.status)) if task.status else Status.PENDING

    if task.completion is not None:
        if not task.completion.verify and not task.completion.signal:
            raise ValidationError("must have verify or signal", field="completion")