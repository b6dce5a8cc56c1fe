"""Loading, querying and updating the tasks of a project."""

from __future__ import annotations

import logging
import os
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Container, Iterable, Optional

from .parser import parse_file
from .serialize import write_file
from .types import Status, Task, TaskNotFoundError, priority_order

_log = logging.getLogger(__name__)

_DEFAULT_TASKS_DIR = "tasks"
_README = "README.md"
_TASK_SUFFIX = ".md"


@dataclass
class ManagerConfig:
    """Where a project's task files live.

    ``tasks_dir`` is relative to ``project_root`` and defaults to ``tasks``.
    """

    project_root: str = ""
    tasks_dir: str = ""


@dataclass
class TaskStats:
    """Counts of known tasks."""

    total: int = 0
    by_status: Counter = field(default_factory=Counter)
    by_priority: Counter = field(default_factory=Counter)
    by_workstream: Counter = field(default_factory=Counter)


class NoTaskAvailableError(LookupError):
    """No pending task can be started right now."""


def _priority_then_id(task: Task) -> tuple:
    return (priority_order(task.priority), task.id)


def _rank_workstreams(tasks: Iterable[Task]) -> list:
    """Workstreams ordered by their highest task priority, then by name."""
    best: dict[str, int] = {}
    for task in tasks:
        ws = task.effective_workstream()
        rank = priority_order(task.priority)
        if ws not in best or rank < best[ws]:
            best[ws] = rank
    return sorted(best, key=lambda ws: (best[ws], ws))


def _is_task_file(name: str) -> bool:
    return os.path.splitext(name)[1] == _TASK_SUFFIX and name != _README


class TaskManager:
    """Keeps an in-memory cache of tasks and writes every change through to disk."""

    def __init__(
        self,
        config: Optional[ManagerConfig] = None,
        tasks: Optional[Iterable[Task]] = None,
    ) -> None:
        self.config = config if config is not None else ManagerConfig()
        self._tasks_dir = os.path.join(
            self.config.project_root, self.config.tasks_dir or _DEFAULT_TASKS_DIR
        )
        self._tasks: dict[str, Task] = {t.id: t for t in (tasks or ())}
        self._lock = threading.RLock()

    @property
    def tasks_dir(self) -> str:
        """Path of the directory holding the task files."""
        return self._tasks_dir

    def scan(self) -> list:
        """Reload every task file; files that fail to parse are logged and skipped.

        Sub-directories containing a README.md are project folders whose task
        files belong to that project.
        """
        with self._lock:
            self._tasks = {}
            try:
                with os.scandir(self._tasks_dir) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except FileNotFoundError:
                return []

            found: list[Task] = []
            problems: list[str] = []
            for entry in entries:
                if entry.is_dir(follow_symlinks=False):
                    if os.path.exists(os.path.join(entry.path, _README)):
                        tasks, errors = self._scan_project_dir(entry.path, entry.name)
                        found.extend(tasks)
                        problems.extend(errors)
                    continue
                if not _is_task_file(entry.name):
                    continue
                try:
                    task = parse_file(entry.path)
                except (ValueError, OSError) as exc:
                    problems.append(f"parse {entry.name}: {exc}")
                    continue
                task.project = ""
                self._tasks[task.id] = task
                found.append(task)

            for problem in problems:
                _log.warning("Warning: %s", problem)
            return found

    def _scan_project_dir(self, directory: str, project: str) -> tuple:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            return [], [f"read project directory {project}: {exc}"]

        found: list[Task] = []
        problems: list[str] = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False) or not _is_task_file(entry.name):
                continue
            try:
                task = parse_file(entry.path)
            except (ValueError, OSError) as exc:
                problems.append(f"parse {project}/{entry.name}: {exc}")
                continue
            task.project = project
            self._tasks[task.id] = task
            found.append(task)
        return found, problems

    def _require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def get(self, task_id: str) -> Task:
        """The task with this ID."""
        with self._lock:
            return self._require(task_id)

    def list(self, sort_by_priority: bool = False) -> list:
        """All tasks, optionally ordered by priority."""
        with self._lock:
            tasks = [*self._tasks.values()]
        if sort_by_priority:
            tasks.sort(key=lambda t: priority_order(t.priority))
        return tasks

    def get_by_status(self, status: Status) -> list:
        """Tasks with the given status."""
        with self._lock:
            return [t for t in self._tasks.values() if t.status == status]

    def get_by_workstream(self, workstream: str) -> list:
        """Tasks of a workstream, ordered by priority then ID."""
        with self._lock:
            tasks = [
                t for t in self._tasks.values() if t.effective_workstream() == workstream
            ]
        return sorted(tasks, key=_priority_then_id)

    def get_workstreams(self) -> list:
        """All workstreams, ordered by their highest task priority then name."""
        with self._lock:
            return _rank_workstreams(self._tasks.values())

    def get_pending(self) -> list:
        """Pending tasks ordered by priority."""
        return sorted(
            self.get_by_status(Status.PENDING), key=lambda t: priority_order(t.priority)
        )

    def get_next_available(self) -> Task:
        """The highest-priority pending task that is not blocked."""
        with self._lock:
            candidates = [t for t in self._tasks.values() if t.status == Status.PENDING]
            if not candidates:
                raise NoTaskAvailableError("no pending tasks")
            candidates.sort(key=lambda t: priority_order(t.priority))
            for task in candidates:
                if not self._is_blocked(task.id):
                    return task
        raise NoTaskAvailableError("all pending tasks are blocked")

    def update_status(self, task_id: str, status: Status) -> None:
        """Change a task's status and save it."""
        with self._lock:
            task = self._require(task_id)
            task.status = status
            write_file(task)

    def update_failure(
        self, task_id: str, error: Optional[BaseException], log_path: str
    ) -> None:
        """Mark a task failed, recording the error message and log path, and save it."""
        with self._lock:
            task = self._require(task_id)
            task.status = Status.FAILED
            if error is not None:
                task.failure_message = str(error)
            task.log_file_path = log_path
            write_file(task)

    def update(self, task: Optional[Task]) -> None:
        """Replace a known task with this one and save it."""
        if task is None:
            raise ValueError("task is nil")
        with self._lock:
            self._require(task.id)
            self._tasks[task.id] = task
            write_file(task)

    def assign(self, task_id: str, agent_name: str) -> None:
        """Assign a pending or blocked task to an agent and save it."""
        with self._lock:
            task = self._require(task_id)
            if task.status not in (Status.PENDING, Status.BLOCKED):
                raise ValueError(
                    f'task "{task_id}" is not available (status: {task.status})'
                )
            task.assigned_to = agent_name
            task.status = Status.ASSIGNED
            write_file(task)

    def unassign(self, task_id: str) -> None:
        """Clear a task's agent; assigned or running tasks go back to pending."""
        with self._lock:
            task = self._require(task_id)
            task.assigned_to = ""
            if task.status in (Status.ASSIGNED, Status.IN_PROGRESS):
                task.status = Status.PENDING
            write_file(task)

    def is_blocked(self, task_id: str) -> bool:
        """True if any dependency is missing or incomplete."""
        with self._lock:
            return self._is_blocked(task_id)

    def _is_blocked(self, task_id: str) -> bool:
        task = self._require(task_id)
        for dep_id in task.depends_on:
            dep = self._tasks.get(dep_id)
            if dep is None or dep.status != Status.COMPLETE:
                return True
        return False

    def get_blocking_tasks(self, task_id: str) -> list:
        """IDs of the dependencies that are missing or incomplete."""
        with self._lock:
            task = self._require(task_id)
            return [
                dep_id
                for dep_id in task.depends_on
                if dep_id not in self._tasks
                or self._tasks[dep_id].status != Status.COMPLETE
            ]

    def update_blocked_status(self) -> None:
        """Move pending tasks with unmet dependencies to blocked, and back when met.

        Failures to save individual tasks are ignored.
        """
        with self._lock:
            for task in self._tasks.values():
                if task.status not in (Status.PENDING, Status.BLOCKED):
                    continue
                blocked = self._is_blocked(task.id)
                if blocked and task.status != Status.BLOCKED:
                    task.status = Status.BLOCKED
                elif not blocked and task.status == Status.BLOCKED:
                    task.status = Status.PENDING
                else:
                    continue
                try:
                    write_file(task)
                except (ValueError, OSError):
                    pass

    def stats(self) -> TaskStats:
        """Counts of tasks by status, priority and workstream."""
        stats = TaskStats()
        with self._lock:
            for task in self._tasks.values():
                stats.total += 1
                stats.by_status[task.status] += 1
                stats.by_priority[task.priority] += 1
                stats.by_workstream[task.effective_workstream()] += 1
        return stats

    def get_projects(self) -> list:
        """Names of all projects that have tasks, sorted."""
        with self._lock:
            return sorted({t.project for t in self._tasks.values() if t.project})

    def get_by_project(self, project: str) -> list:
        """Tasks of a project, ordered by priority then ID."""
        with self._lock:
            tasks = [t for t in self._tasks.values() if t.project == project]
        return sorted(tasks, key=_priority_then_id)

    def get_project_workstreams(self, project: str) -> list:
        """Workstreams within a project, ordered by highest task priority then name."""
        with self._lock:
            return _rank_workstreams(
                t for t in self._tasks.values() if t.project == project
            )

    def get_by_project_and_workstream(self, project: str, workstream: str) -> list:
        """Tasks of one workstream within a project, ordered by priority then ID."""
        with self._lock:
            tasks = [
                t
                for t in self._tasks.values()
                if t.project == project and t.effective_workstream() == workstream
            ]
        return sorted(tasks, key=_priority_then_id)

    def reconcile_stale_assignments(
        self, active_agents: Optional[Container[str]] = None
    ) -> int:
        """Reset assigned, running or failed tasks whose agent is not active.

        With ``active_agents`` of None every such task is reset. Returns the
        number of tasks reset.
        """
        stale = (Status.ASSIGNED, Status.IN_PROGRESS, Status.FAILED)
        count = 0
        with self._lock:
            for task in self._tasks.values():
                if task.status not in stale:
                    continue
                if active_agents is not None and task.assigned_to in active_agents:
                    continue
                task.assigned_to = ""
                task.status = Status.PENDING
                write_file(task)
                count += 1
        return count