"""Validation and filtering of the tools an agent may use."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

VALID_TOOLS = (
    "Read",
    "Write",
    "Edit",
    "Bash",
    "Glob",
    "Grep",
    "TodoWrite",
    "Task",
    "WebFetch",
    "WebSearch",
)

_VALID_SET = frozenset(VALID_TOOLS)


@dataclass
class WorkstreamToolConfig:
    """Tool restrictions configured for a workstream."""

    allowed_tools: list = field(default_factory=list)
    disallowed_tools: list = field(default_factory=list)


@dataclass
class FilterOptions:
    """Tool restrictions given on the command line.

    An empty ``allowed_tools`` means no override.
    """

    allowed_tools: list = field(default_factory=list)
    disallowed_tools: list = field(default_factory=list)


class ToolError(ValueError):
    """A tool name is unknown or listed inconsistently."""

    def __init__(self, tool: str, message: str) -> None:
        super().__init__(message)
        self.tool = tool
        self.message = message

    def __str__(self) -> str:
        return self.message


@dataclass
class FilterResult:
    """Resolved tool lists plus any problems found; an empty allow list allows all."""

    allowed_tools: list = field(default_factory=list)
    disallowed_tools: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    def has_errors(self) -> bool:
        """True if any problems were found."""
        return bool(self.errors)

    def error_strings(self) -> list:
        """The problems as messages."""
        return [str(err) for err in self.errors]


def is_valid_tool(tool: str) -> bool:
    """True if the name is a known tool."""
    return tool in _VALID_SET


def filter_tools(
    workstream: Optional[WorkstreamToolConfig] = None,
    options: Optional[FilterOptions] = None,
) -> FilterResult:
    """Combine workstream and command-line tool restrictions.

    Command-line allowed tools replace the workstream's; disallowed tools from
    both are merged. Problems are reported in the result rather than raised.
    """
    options = options if options is not None else FilterOptions()

    if options.allowed_tools:
        allowed = sorted(options.allowed_tools)
    elif workstream is not None and workstream.allowed_tools:
        allowed = sorted(workstream.allowed_tools)
    else:
        allowed = []

    disallowed_set = set(options.disallowed_tools)
    if workstream is not None:
        disallowed_set.update(workstream.disallowed_tools)
    disallowed = sorted(disallowed_set)

    valid_list = ", ".join(VALID_TOOLS)
    errors: list = []
    for list_name, tools in (("allowed_tools", allowed), ("disallowed_tools", disallowed)):
        errors.extend(
            ToolError(
                tool,
                f'unknown tool in {list_name}: "{tool}" (valid tools: {valid_list})',
            )
            for tool in tools
            if not is_valid_tool(tool)
        )

    if allowed:
        allowed_set = set(allowed)
        errors.extend(
            ToolError(tool, f'tool "{tool}" appears in both allowed and disallowed lists')
            for tool in disallowed
            if tool in allowed_set
        )

    return FilterResult(allowed_tools=allowed, disallowed_tools=disallowed, errors=errors)