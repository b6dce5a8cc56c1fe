# tanuki

A library for managing tasks for multi-agent work. Each task is a markdown
file with YAML front matter. The package does the following:

- parses, validates and writes task files (`tanuki.parser`, `tanuki.serialize`)
- keeps a project's tasks in memory and writes every change back to disk (`tanuki.manager`)
- resolves dependencies between tasks (`tanuki.resolver`)
- queues tasks per workstream in priority order (`tanuki.queue`)
- records status transitions (`tanuki.tracker`)
- checks completion criteria (`tanuki.validator`)
- resolves which agent tools are allowed (`tanuki.tools`)

## Installation

```
pip install .
```

Tests need the `test` extra:

```
pip install ".[test]"
pytest
```

## Task files

```markdown
---
id: TASK-001
title: Implement OAuth
workstream: auth
priority: high          # critical, high, medium (default) or low
status: pending         # pending (default), assigned, in_progress, review, complete, failed, blocked
depends_on:
  - TASK-000
tags:
  - security
completion:
  verify: "npm test"    # shell command that must exit 0
  signal: "DONE"        # string that must appear in agent output
  max_iterations: 20    # default 30
---

# Implement OAuth

Describe the work here.
```

`id` and `title` are required. A `completion` block must contain `verify`,
`signal` or both. A task without a `workstream` uses its own `id` as its
workstream, as returned by `Task.effective_workstream()`.

`parse` and `parse_file` raise these errors:

- `TaskFormatError` when the `---` delimiters are missing or the YAML is malformed
- `ValidationError` when a field is missing or has an invalid value

## Usage

```python
from tanuki.manager import ManagerConfig, TaskManager
from tanuki.types import Status

manager = TaskManager(ManagerConfig(project_root="."))
manager.scan()                      # reads ./tasks/*.md and project folders

task = manager.get_next_available() # highest-priority pending, unblocked task
manager.assign(task.id, "agent-1")
manager.update_status(task.id, Status.IN_PROGRESS)
```

`ManagerConfig.tasks_dir` changes the directory relative to `project_root`.
The default is `tasks`.

`scan` logs files that fail to parse as warnings through the `logging`
module and skips them.

A subdirectory of the tasks directory that contains a `README.md` is a
project folder. Its tasks carry the folder's name in `Task.project`. These
methods query projects:

- `get_projects`
- `get_by_project`
- `get_project_workstreams`
- `get_by_project_and_workstream`

These methods change tasks. Each one writes the task back to its file:

- `update_status`
- `update_failure`
- `update`
- `assign`
- `unassign`
- `update_blocked_status`
- `reconcile_stale_assignments`

Unknown IDs raise `TaskNotFoundError`. `get_next_available` raises
`NoTaskAvailableError` when nothing can be started.

### Parsing and writing

```python
from tanuki.parser import parse_file
from tanuki.serialize import serialize, write_file

task = parse_file("tasks/TASK-001.md")
text = serialize(task)
write_file(task)                    # writes to task.file_path with mode 0600
```

### Dependencies

```python
from tanuki.resolver import Resolver

resolver = Resolver(manager.list())
print(resolver.graph())
print(resolver.mermaid())
levels = resolver.get_levels()      # raises DependencyCycleError on cycles
ready = resolver.get_ready()        # pending tasks whose dependencies are complete
```

### Queues

```python
from tanuki.queue import TaskQueue

queue = TaskQueue()
queue.enqueue_all(manager.get_pending())
next_task = queue.dequeue("auth")   # raises EmptyQueueError when empty
```

Within a workstream, higher-priority tasks come out first. Tasks of equal
priority come out in the order they were added.

### Status history

```python
from tanuki.tracker import StatusTracker, can_transition

tracker = StatusTracker()
tracker.record_change("TASK-001", Status.PENDING, Status.ASSIGNED, "agent-1", "")
can_transition(Status.COMPLETE, Status.PENDING)   # False: complete is terminal
```

Invalid transitions raise `InvalidTransitionError`. These methods summarise
the recorded history:

- `recent_changes`
- `completed_today`
- `task_durations`
- `total_work_time`
- `average_completion_time`

### Completion checks

```python
from tanuki.validator import Validator

result = Validator(".", timeout=60).validate(task, agent_output)
print(result.status, result.message)
```

The validator works as follows:

- If a signal is set and the signal is missing from the output, the result is `in_progress`.
- The verify command runs with `sh -c` in the working directory.
- If the command exits non-zero, the result is `review`.
- If the command times out or cannot start, the result is `failed`.
- Otherwise the result is `complete`.
- A task without completion criteria gives `review`.

To keep the verify output, pass `log_writer`. It is a callable that takes a
task ID and the output, and returns a path.

### Tool permissions

```python
from tanuki.tools import FilterOptions, WorkstreamToolConfig, filter_tools

result = filter_tools(
    WorkstreamToolConfig(allowed_tools=["Read", "Grep"]),
    FilterOptions(disallowed_tools=["Bash"]),
)
if result.has_errors():
    print(result.error_strings())
```

## What this package does not do

This package is a library only. It has no command-line program. It does not
start or talk to agents and does not run tasks on them. It has no background
loop that hands queued tasks to idle agents. It also has no event stream.
Callers drive the work themselves with the `TaskManager`, `TaskQueue` and
`Validator`.