"""Writing tasks back to markdown with YAML front matter."""

from __future__ import annotations

import os
from typing import Any, Optional

import yaml

from .types import Task

_NO_WRAP = 1 << 30


class _FrontMatterDumper(yaml.SafeDumper):
    """Indents sequence items under their parent key."""

    def increase_indent(self, flow: bool = False, indentless: bool = False) -> None:
        return super().increase_indent(flow, False)


def _front_matter(task: Task) -> dict:
    data: dict[str, Any] = {"id": task.id, "title": task.title}
    if task.workstream:
        data["workstream"] = task.workstream
    if task.priority:
        data["priority"] = str(task.priority)
    if task.status:
        data["status"] = str(task.status)
    if task.depends_on:
        data["depends_on"] = list(task.depends_on)
    if task.assigned_to:
        data["assigned_to"] = task.assigned_to
    if task.completion is not None:
        completion: dict[str, Any] = {}
        if task.completion.verify:
            completion["verify"] = task.completion.verify
        if task.completion.signal:
            completion["signal"] = task.completion.signal
        if task.completion.max_iterations:
            completion["max_iterations"] = task.completion.max_iterations
        data["completion"] = completion
    if task.tags:
        data["tags"] = list(task.tags)
    if task.failure_message:
        data["failure_message"] = task.failure_message
    if task.log_file_path:
        data["log_file"] = task.log_file_path
    if task.validation_log:
        data["validation_log"] = task.validation_log
    return data


def serialize(task: Optional[Task]) -> str:
    """Render a task as front matter followed by its markdown content."""
    if task is None:
        raise ValueError("task is nil")
    front = yaml.dump(
        _front_matter(task),
        Dumper=_FrontMatterDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        indent=2,
        width=_NO_WRAP,
    )
    return f"---\n{front}---\n\n{task.content}\n"


def write_file(task: Optional[Task]) -> None:
    """Write a task to its file path, replacing the file's contents."""
    if task is None:
        raise ValueError("task is nil")
    if not task.file_path:
        raise ValueError("task has no file path")
    text = serialize(task)
    fd = os.open(task.file_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(text)