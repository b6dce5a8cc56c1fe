"""Checking whether a task's completion criteria are met."""

from __future__ import annotations

import os
import signal as _signal
import subprocess
from dataclasses import dataclass
from typing import Callable, Optional

from .types import Status, Task

DEFAULT_VERIFY_TIMEOUT = 300.0

ValidationLogWriter = Callable[[str, str], str]
"""Saves verify output for a task ID and returns the path it was written to."""


@dataclass
class ValidationResult:
    """Outcome of checking a task's completion criteria."""

    task: Task
    status: Status = Status.REVIEW
    signal_found: bool = False
    verify_passed: bool = False
    verify_output: str = ""
    verify_error: Optional[Exception] = None
    message: str = ""
    validation_log: str = ""


def _kill_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, _signal.SIGKILL)
    except (ProcessLookupError, PermissionError, AttributeError):
        proc.kill()


class Validator:
    """Checks signal strings in agent output and runs verify commands.

    ``timeout`` is in seconds. If ``log_writer`` is given, non-empty verify
    output is handed to it and the returned path is kept in the result.
    """

    def __init__(
        self,
        workdir: str = "",
        timeout: float = DEFAULT_VERIFY_TIMEOUT,
        log_writer: Optional[ValidationLogWriter] = None,
    ) -> None:
        self.workdir = workdir
        self.timeout = timeout
        self.log_writer = log_writer

    def validate(self, task: Task, agent_output: str) -> ValidationResult:
        """Decide the task's status from its completion criteria and the agent output."""
        result = ValidationResult(task=task)
        completion = task.completion
        if completion is None:
            result.message = "No completion criteria defined"
            return result

        if completion.signal:
            result.signal_found = completion.signal in agent_output
            if not result.signal_found:
                result.status = Status.IN_PROGRESS
                result.message = f'Signal "{completion.signal}" not found in output'
                return result

        if completion.verify:
            passed, output, error = self._run_verify(completion.verify)
            result.verify_passed = passed
            result.verify_output = output
            result.verify_error = error

            if self.log_writer is not None and output:
                try:
                    result.validation_log = self.log_writer(task.id, output)
                except OSError:
                    pass

            if error is not None:
                result.status = Status.FAILED
                result.message = f"Verify command failed: {error}"
                return result
            if not passed:
                result.status = Status.REVIEW
                result.message = "Verify command returned non-zero exit code"
                return result

        result.status = Status.COMPLETE
        result.message = "All completion criteria met"
        return result

    def _run_verify(self, command: str) -> tuple:
        """Run a shell command; returns (passed, combined output, error or None)."""
        try:
            proc = subprocess.Popen(
                ["sh", "-c", command],
                cwd=self.workdir or None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as exc:
            return False, "", exc

        try:
            raw, _ = proc.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            _kill_group(proc)
            raw, _ = proc.communicate()
            output = (raw or b"").decode("utf-8", errors="replace")
            return (
                False,
                output,
                TimeoutError(f"command timed out after {self.timeout}s"),
            )

        output = (raw or b"").decode("utf-8", errors="replace")
        return proc.returncode == 0, output, None