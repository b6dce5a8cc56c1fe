import textwrap
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from tanuki.manager import ManagerConfig, NoTaskAvailableError, TaskManager
from tanuki.types import Priority, Status, Task, TaskNotFoundError


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")


def _tasks_dir(root: Path) -> Path:
    d = root / "tasks"
    d.mkdir(parents=True, exist_ok=True)
    return d


def _manager(*tasks: Task) -> TaskManager:
    return TaskManager(ManagerConfig(project_root="/tmp/test"), tasks=tasks)


def _scanned(root: Path) -> TaskManager:
    mgr = TaskManager(ManagerConfig(project_root=str(root)))
    mgr.scan()
    return mgr


SIMPLE = """
---
id: TASK-001
title: Test
workstream: backend
status: {status}
{extra}
---

Content
"""


def _simple(root: Path, status: str = "pending", extra: str = "") -> None:
    _write(_tasks_dir(root) / "TASK-001.md", SIMPLE.format(status=status, extra=extra))


def test_default_tasks_directory():
    mgr = TaskManager(ManagerConfig(project_root="/tmp/test"))
    assert mgr.tasks_dir == "/tmp/test/tasks"
    assert mgr.list() == []


def test_custom_tasks_directory():
    mgr = TaskManager(ManagerConfig(project_root="/tmp/test", tasks_dir=".tanuki/tasks"))
    assert mgr.tasks_dir == "/tmp/test/.tanuki/tasks"


def test_tasks_dir():
    assert TaskManager(ManagerConfig(project_root="/test/project")).tasks_dir == (
        "/test/project/tasks"
    )


def test_scan(tmp_path):
    _write(
        _tasks_dir(tmp_path) / "TASK-001-test.md",
        """
        ---
        id: TASK-001
        title: Test Task
        workstream: backend
        priority: high
        status: pending
        ---

        Test content
        """,
    )
    mgr = TaskManager(ManagerConfig(project_root=str(tmp_path)))
    tasks = mgr.scan()
    assert [t.id for t in tasks] == ["TASK-001"]
    assert tasks[0].priority == Priority.HIGH
    assert tasks[0].content == "Test content"


def test_scan_no_directory(tmp_path):
    mgr = TaskManager(ManagerConfig(project_root=str(tmp_path)))
    assert mgr.scan() == []


def test_scan_skips_invalid_files(tmp_path, caplog):
    d = _tasks_dir(tmp_path)
    _write(d / "valid.md", "---\nid: TASK-001\ntitle: Valid Task\nworkstream: backend\n---\n\nContent\n")
    _write(d / "invalid.md", "---\ntitle: Invalid Task\n---\n\nContent\n")
    _write(d / "readme.txt", "text file")
    mgr = TaskManager(ManagerConfig(project_root=str(tmp_path)))
    with caplog.at_level("WARNING", logger="tanuki.manager"):
        tasks = mgr.scan()
    assert [t.id for t in tasks] == ["TASK-001"]
    assert "invalid.md" in caplog.text


def test_scan_clears_previous_cache(tmp_path):
    _simple(tmp_path)
    mgr = _scanned(tmp_path)
    (tmp_path / "tasks" / "TASK-001.md").unlink()
    assert mgr.scan() == []
    with pytest.raises(TaskNotFoundError):
        mgr.get("TASK-001")


def test_scan_project_folders(tmp_path):
    d = _tasks_dir(tmp_path)
    project = d / "auth-feature"
    _write(project / "README.md", "# Project: auth-feature\n\nAuth feature implementation.\n")
    _write(
        project / "001-oauth.md",
        "---\nid: AUTH-001\ntitle: Implement OAuth\nworkstream: oauth\npriority: high\n"
        "status: pending\n---\n\nImplement OAuth flow.\n",
    )
    _write(
        d / "ROOT-001.md",
        "---\nid: ROOT-001\ntitle: Root Task\nworkstream: backend\npriority: medium\n"
        "status: pending\n---\n\nA root task.\n",
    )
    mgr = TaskManager(ManagerConfig(project_root=str(tmp_path)))
    tasks = mgr.scan()
    assert len(tasks) == 2
    assert mgr.get("AUTH-001").project == "auth-feature"
    assert mgr.get("ROOT-001").project == ""
    assert mgr.get_projects() == ["auth-feature"]


def test_scan_ignores_folders_without_readme(tmp_path):
    d = _tasks_dir(tmp_path)
    _write(d / "notes" / "T1.md", "---\nid: T1\ntitle: Hidden\n---\n\nx\n")
    mgr = TaskManager(ManagerConfig(project_root=str(tmp_path)))
    assert mgr.scan() == []


def test_get():
    mgr = _manager(Task(id="T1", title="Task 1"), Task(id="T2", title="Task 2"))
    assert mgr.get("T1").title == "Task 1"
    with pytest.raises(TaskNotFoundError):
        mgr.get("T999")


def test_list():
    mgr = _manager(
        Task(id="T1", priority=Priority.LOW),
        Task(id="T2", priority=Priority.CRITICAL),
        Task(id="T3", priority=Priority.HIGH),
    )
    assert len(mgr.list()) == 3
    ordered = mgr.list(sort_by_priority=True)
    assert [t.priority for t in ordered] == [Priority.CRITICAL, Priority.HIGH, Priority.LOW]


def test_get_by_workstream():
    mgr = _manager(
        Task(id="T1", workstream="auth-feature", priority=Priority.HIGH),
        Task(id="T2", workstream="auth-feature", priority=Priority.LOW),
        Task(id="T3", workstream="api-refactor"),
        Task(id="T4"),
    )
    assert [t.id for t in mgr.get_by_workstream("auth-feature")] == ["T1", "T2"]
    assert [t.id for t in mgr.get_by_workstream("T4")] == ["T4"]
    assert mgr.get_by_workstream("nonexistent") == []


def test_get_by_status():
    mgr = _manager(
        Task(id="T1", status=Status.PENDING),
        Task(id="T2", status=Status.IN_PROGRESS),
        Task(id="T3", status=Status.PENDING),
        Task(id="T4", status=Status.COMPLETE),
    )
    assert sorted(t.id for t in mgr.get_by_status(Status.PENDING)) == ["T1", "T3"]
    assert [t.id for t in mgr.get_by_status(Status.COMPLETE)] == ["T4"]


def test_get_pending():
    mgr = _manager(
        Task(id="T1", status=Status.PENDING, priority=Priority.LOW),
        Task(id="T2", status=Status.COMPLETE, priority=Priority.CRITICAL),
        Task(id="T3", status=Status.PENDING, priority=Priority.HIGH),
    )
    assert [t.priority for t in mgr.get_pending()] == [Priority.HIGH, Priority.LOW]


def test_get_next_available_highest_priority():
    mgr = _manager(
        Task(id="T1", workstream="backend", status=Status.PENDING, priority=Priority.LOW),
        Task(id="T2", workstream="backend", status=Status.PENDING, priority=Priority.HIGH),
        Task(id="T3", workstream="frontend", status=Status.PENDING),
        Task(id="T4", workstream="backend", status=Status.COMPLETE),
    )
    assert mgr.get_next_available().id == "T2"


def test_get_next_available_no_pending():
    mgr = _manager(Task(id="T1", status=Status.COMPLETE))
    with pytest.raises(NoTaskAvailableError, match="no pending tasks"):
        mgr.get_next_available()


def test_get_next_available_skips_blocked():
    mgr = _manager(
        Task(id="T1", workstream="backend", status=Status.PENDING, depends_on=["T2"]),
        Task(id="T2", workstream="backend", status=Status.PENDING),
    )
    assert mgr.get_next_available().id == "T2"


def test_get_next_available_all_blocked():
    mgr = _manager(Task(id="T1", status=Status.PENDING, depends_on=["missing"]))
    with pytest.raises(NoTaskAvailableError, match="blocked"):
        mgr.get_next_available()


@pytest.mark.parametrize(
    "task_id, blocked",
    [("T1", False), ("T2", False), ("T3", False), ("T4", True), ("T5", True), ("T6", True)],
)
def test_is_blocked(task_id, blocked):
    mgr = _manager(
        Task(id="T1", status=Status.COMPLETE),
        Task(id="T2", status=Status.PENDING),
        Task(id="T3", depends_on=["T1"]),
        Task(id="T4", depends_on=["T2"]),
        Task(id="T5", depends_on=["T1", "T2"]),
        Task(id="T6", depends_on=["missing"]),
    )
    assert mgr.is_blocked(task_id) is blocked


def test_is_blocked_not_found():
    with pytest.raises(TaskNotFoundError):
        _manager().is_blocked("missing")


def test_get_blocking_tasks():
    mgr = _manager(
        Task(id="T1", status=Status.COMPLETE),
        Task(id="T2", status=Status.PENDING),
        Task(id="T3", depends_on=["T1", "T2", "gone"]),
    )
    assert mgr.get_blocking_tasks("T3") == ["T2", "gone"]
    with pytest.raises(TaskNotFoundError):
        mgr.get_blocking_tasks("nope")


def test_update_status_persists(tmp_path):
    _simple(tmp_path)
    mgr = _scanned(tmp_path)
    mgr.update_status("TASK-001", Status.IN_PROGRESS)
    assert mgr.get("TASK-001").status == Status.IN_PROGRESS
    assert _scanned(tmp_path).get("TASK-001").status == Status.IN_PROGRESS


def test_update_status_not_found():
    with pytest.raises(TaskNotFoundError):
        _manager().update_status("missing", Status.COMPLETE)


def test_update_failure_persists(tmp_path):
    _simple(tmp_path, status="in_progress")
    mgr = _scanned(tmp_path)
    mgr.update_failure("TASK-001", RuntimeError("boom"), "logs/run.log")
    reloaded = _scanned(tmp_path).get("TASK-001")
    assert reloaded.status == Status.FAILED
    assert reloaded.failure_message == "boom"
    assert reloaded.log_file_path == "logs/run.log"


def test_update_replaces_cached_task(tmp_path):
    _simple(tmp_path)
    mgr = _scanned(tmp_path)
    changed = mgr.get("TASK-001")
    replacement = Task(
        id="TASK-001", title="Renamed", status=Status.PENDING, file_path=changed.file_path,
        content="New body",
    )
    mgr.update(replacement)
    assert mgr.get("TASK-001") is replacement
    reloaded = _scanned(tmp_path).get("TASK-001")
    assert (reloaded.title, reloaded.content) == ("Renamed", "New body")


def test_update_errors():
    mgr = _manager()
    with pytest.raises(ValueError, match="nil"):
        mgr.update(None)
    with pytest.raises(TaskNotFoundError):
        mgr.update(Task(id="X", title="x"))


def test_assign(tmp_path):
    _simple(tmp_path)
    mgr = _scanned(tmp_path)
    mgr.assign("TASK-001", "agent-1")
    task = mgr.get("TASK-001")
    assert (task.assigned_to, task.status) == ("agent-1", Status.ASSIGNED)
    assert _scanned(tmp_path).get("TASK-001").assigned_to == "agent-1"


def test_assign_not_available():
    mgr = _manager(Task(id="T1", status=Status.IN_PROGRESS))
    with pytest.raises(ValueError, match="not available"):
        mgr.assign("T1", "agent-1")


def test_unassign(tmp_path):
    _simple(tmp_path, status="assigned", extra="assigned_to: agent-1")
    mgr = _scanned(tmp_path)
    mgr.unassign("TASK-001")
    task = mgr.get("TASK-001")
    assert (task.assigned_to, task.status) == ("", Status.PENDING)


def test_unassign_keeps_complete_status(tmp_path):
    _simple(tmp_path, status="complete", extra="assigned_to: agent-1")
    mgr = _scanned(tmp_path)
    mgr.unassign("TASK-001")
    assert mgr.get("TASK-001").status == Status.COMPLETE


def test_update_blocked_status(tmp_path):
    d = _tasks_dir(tmp_path)
    _write(d / "T1.md", "---\nid: T1\ntitle: Task 1\nworkstream: backend\nstatus: pending\n---\nContent\n")
    _write(
        d / "T2.md",
        "---\nid: T2\ntitle: Task 2\nworkstream: backend\nstatus: pending\ndepends_on: [T1]\n---\nContent\n",
    )
    mgr = _scanned(tmp_path)
    mgr.update_blocked_status()
    assert mgr.get("T1").status == Status.PENDING
    assert mgr.get("T2").status == Status.BLOCKED

    mgr.update_status("T1", Status.COMPLETE)
    mgr.update_blocked_status()
    assert mgr.get("T2").status == Status.PENDING


def test_stats():
    mgr = _manager(
        Task(id="T1", status=Status.PENDING, workstream="backend", priority=Priority.HIGH),
        Task(id="T2", status=Status.PENDING, workstream="frontend", priority=Priority.HIGH),
        Task(id="T3", status=Status.COMPLETE, workstream="backend", priority=Priority.LOW),
    )
    stats = mgr.stats()
    assert stats.total == 3
    assert stats.by_status[Status.PENDING] == 2
    assert stats.by_workstream["backend"] == 2
    assert stats.by_priority[Priority.HIGH] == 2


def test_stats_includes_workstreams():
    mgr = _manager(
        Task(id="T1", status=Status.PENDING, workstream="ws1"),
        Task(id="T2", status=Status.PENDING, workstream="ws1"),
        Task(id="T3", status=Status.COMPLETE, workstream="ws2"),
    )
    stats = mgr.stats()
    assert stats.by_workstream["ws1"] == 2
    assert stats.by_workstream["ws2"] == 1


def test_concurrent_access():
    mgr = _manager(Task(id="T1", workstream="backend", status=Status.PENDING))

    def read(_):
        return (
            mgr.get("T1").id,
            len(mgr.get_by_workstream("backend")),
            mgr.is_blocked("T1"),
            len(mgr.list()),
            mgr.stats().total,
        )

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(read, range(100)))

    assert results == [("T1", 1, False, 1, 1)] * 100
    assert mgr.get("T1").status == Status.PENDING
    assert mgr.stats().total == 1


def test_get_workstreams():
    mgr = _manager(
        Task(id="T1", workstream="auth-feature", priority=Priority.LOW),
        Task(id="T2", workstream="api-refactor", priority=Priority.CRITICAL),
        Task(id="T3", workstream="auth-feature", priority=Priority.HIGH),
        Task(id="T4", workstream="ui-redesign"),
    )
    assert mgr.get_workstreams() == ["api-refactor", "auth-feature", "ui-redesign"]


def test_get_by_project():
    mgr = _manager(
        Task(id="T1", workstream="backend", project="auth-feature", priority=Priority.HIGH),
        Task(id="T2", workstream="backend", project="auth-feature", priority=Priority.LOW),
        Task(id="T3", workstream="backend", project="api-refactor"),
        Task(id="T4", workstream="frontend"),
    )
    assert [t.id for t in mgr.get_by_project("auth-feature")] == ["T1", "T2"]
    assert mgr.get_by_project("nonexistent") == []


def test_get_projects():
    mgr = _manager(
        Task(id="T1", project="auth-feature"),
        Task(id="T2", project="auth-feature"),
        Task(id="T3", project="api-refactor"),
        Task(id="T4"),
    )
    assert mgr.get_projects() == ["api-refactor", "auth-feature"]


def test_get_project_workstreams():
    mgr = _manager(
        Task(id="T1", workstream="oauth", project="auth", priority=Priority.LOW),
        Task(id="T2", workstream="jwt", project="auth", priority=Priority.CRITICAL),
        Task(id="T3", workstream="oauth", project="auth", priority=Priority.HIGH),
        Task(id="T4", workstream="ui", project="auth"),
        Task(id="T5", workstream="other", project="elsewhere", priority=Priority.CRITICAL),
    )
    assert mgr.get_project_workstreams("auth") == ["jwt", "oauth", "ui"]


def test_get_by_project_and_workstream():
    mgr = _manager(
        Task(id="T1", workstream="oauth", project="auth", priority=Priority.HIGH),
        Task(id="T2", workstream="jwt", project="auth"),
        Task(id="T3", workstream="oauth", project="auth", priority=Priority.LOW),
        Task(id="T4", workstream="oauth", project="other"),
    )
    assert [t.id for t in mgr.get_by_project_and_workstream("auth", "oauth")] == ["T1", "T3"]


def test_reconcile_stale_assignments_with_active_agents(tmp_path):
    d = _tasks_dir(tmp_path)
    _write(d / "A.md", "---\nid: A\ntitle: A\nstatus: assigned\nassigned_to: agent-1\n---\nx\n")
    _write(d / "B.md", "---\nid: B\ntitle: B\nstatus: in_progress\nassigned_to: agent-2\n---\nx\n")
    _write(d / "C.md", "---\nid: C\ntitle: C\nstatus: complete\nassigned_to: agent-3\n---\nx\n")
    mgr = _scanned(tmp_path)
    assert mgr.reconcile_stale_assignments({"agent-1"}) == 1
    assert mgr.get("A").status == Status.ASSIGNED
    reloaded = _scanned(tmp_path).get("B")
    assert (reloaded.status, reloaded.assigned_to) == (Status.PENDING, "")
    assert mgr.get("C").status == Status.COMPLETE


def test_reconcile_stale_assignments_without_agents(tmp_path):
    d = _tasks_dir(tmp_path)
    _write(d / "A.md", "---\nid: A\ntitle: A\nstatus: assigned\nassigned_to: agent-1\n---\nx\n")
    _write(d / "B.md", "---\nid: B\ntitle: B\nstatus: failed\n---\nx\n")
    mgr = _scanned(tmp_path)
    assert mgr.reconcile_stale_assignments(None) == 2
    assert {t.status for t in mgr.list()} == {Status.PENDING}


def test_task_effective_workstream():
    assert Task(id="T1", workstream="auth-feature").effective_workstream() == "auth-feature"
    assert Task(id="T2").effective_workstream() == "T2"