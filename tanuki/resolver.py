"""Dependency resolution between tasks."""

from __future__ import annotations

from collections import deque
from typing import Iterable, Optional

from .types import Status, Task, TaskNotFoundError


class DependencyCycleError(ValueError):
    """The task dependencies form a cycle."""

    def __init__(self, cycle: list) -> None:
        super().__init__(cycle)
        self.cycle = list(cycle)

    def __str__(self) -> str:
        return "dependency cycle detected: " + " → ".join(self.cycle)


_UNVISITED, _VISITING, _VISITED = 0, 1, 2


class Resolver:
    """Orders tasks by their dependencies and finds which are ready to run."""

    def __init__(self, tasks: Optional[Iterable[Task]] = None) -> None:
        self._tasks: dict[str, Task] = {t.id: t for t in (tasks or ())}

    def _is_ready(self, task: Task) -> bool:
        for dep_id in task.depends_on:
            dep = self._tasks.get(dep_id)
            if dep is None or dep.status != Status.COMPLETE:
                return False
        return True

    def get_ready(self) -> list:
        """Pending tasks whose dependencies are all complete."""
        return [
            t
            for t in self._tasks.values()
            if t.status == Status.PENDING and self._is_ready(t)
        ]

    def get_blocking(self, task_id: str) -> list:
        """Incomplete dependencies of a task; missing ones are marked as not found."""
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        blocking = []
        for dep_id in task.depends_on:
            dep = self._tasks.get(dep_id)
            if dep is None:
                blocking.append(f"{dep_id} (not found)")
            elif dep.status != Status.COMPLETE:
                blocking.append(dep_id)
        return blocking

    def is_blocked(self, task_id: str) -> bool:
        """True if the task has incomplete dependencies or is unknown."""
        try:
            return bool(self.get_blocking(task_id))
        except TaskNotFoundError:
            return True

    def topological_sort(self) -> list:
        """Tasks ordered so that every task follows its dependencies."""
        cycle = self.detect_cycle()
        if cycle is not None:
            raise DependencyCycleError(cycle)

        in_degree = {}
        dependents: dict[str, list] = {}
        for task_id, task in self._tasks.items():
            in_degree[task_id] = len(task.depends_on)
            for dep_id in task.depends_on:
                dependents.setdefault(dep_id, []).append(task_id)

        ready = deque(task_id for task_id, degree in in_degree.items() if degree == 0)
        ordered = []
        while ready:
            task_id = ready.popleft()
            ordered.append(self._tasks[task_id])
            for dependent in dependents.get(task_id, ()):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    ready.append(dependent)

        if len(ordered) != len(self._tasks):
            raise ValueError("could not resolve all dependencies")
        return ordered

    def detect_cycle(self) -> Optional[list]:
        """A dependency cycle as a list of IDs starting and ending on the same task, or None."""
        state: dict[str, int] = {}
        parent: dict[str, str] = {}
        found: list = []

        def visit(task_id: str) -> bool:
            state[task_id] = _VISITING
            task = self._tasks.get(task_id)
            if task is None:
                state[task_id] = _VISITED
                return False
            for dep_id in task.depends_on:
                dep_state = state.get(dep_id, _UNVISITED)
                if dep_state == _VISITING:
                    found.extend(self._reconstruct_cycle(task_id, dep_id, parent))
                    return True
                if dep_state == _UNVISITED:
                    parent[dep_id] = task_id
                    if visit(dep_id):
                        return True
            state[task_id] = _VISITED
            return False

        for task_id in self._tasks:
            if state.get(task_id, _UNVISITED) == _UNVISITED and visit(task_id):
                return found
        return None

    @staticmethod
    def _reconstruct_cycle(start: str, end: str, parent: dict) -> list:
        path = deque([end])
        current = start
        while current != end and current != "":
            path.appendleft(current)
            current = parent.get(current, "")
        path.appendleft(end)
        return list(path)

    def get_levels(self) -> list:
        """Tasks grouped by depth: level 0 has no dependencies, level n depends on level n-1."""
        ordered = self.topological_sort()
        if not ordered:
            return []
        levels: dict[str, int] = {}
        for task in ordered:
            deepest = max(
                (levels[d] for d in task.depends_on if d in levels), default=-1
            )
            levels[task.id] = deepest + 1
        grouped: list = [[] for _ in range(max(levels.values()) + 1)]
        for task in ordered:
            grouped[levels[task.id]].append(task)
        return grouped

    def graph(self) -> str:
        """Text rendering of the dependency graph in dependency order."""
        lines = ["Dependency Graph:"]
        try:
            ordered = self.topological_sort()
        except ValueError as exc:
            lines.append(f"  Error: {exc}")
            return "\n".join(lines) + "\n"
        for task in ordered:
            if task.depends_on:
                deps = ", ".join(task.depends_on)
                lines.append(f"  {task.id} [{task.status}] ← ({deps})")
            else:
                lines.append(f"  {task.id} [{task.status}]")
        return "\n".join(lines) + "\n"

    def mermaid(self) -> str:
        """Mermaid flowchart of the dependencies."""
        lines = ["graph TD"]
        for task in self._tasks.values():
            lines.append(f'    {task.id}["{task.title}"]')
            lines.extend(f"    {dep_id} --> {task.id}" for dep_id in task.depends_on)
        return "\n".join(lines) + "\n"

    def has_task(self, task_id: str) -> bool:
        """True if a task with this ID is known."""
        return task_id in self._tasks

    def task_count(self) -> int:
        """Number of known tasks."""
        return len(self._tasks)

    def ready_for_workstream(self, workstream: str) -> list:
        """Ready pending tasks belonging to one workstream."""
        return [
            t
            for t in self._tasks.values()
            if t.effective_workstream() == workstream
            and t.status == Status.PENDING
            and self._is_ready(t)
        ]

    def workstream_dependencies(self) -> dict:
        """Map of workstream to the other workstreams its tasks depend on."""
        deps: dict[str, list] = {}
        for task in self._tasks.values():
            ws = task.effective_workstream()
            for dep_id in task.depends_on:
                dep = self._tasks.get(dep_id)
                if dep is None:
                    continue
                dep_ws = dep.effective_workstream()
                if dep_ws != ws:
                    targets = deps.setdefault(ws, [])
                    if dep_ws not in targets:
                        targets.append(dep_ws)
        return deps