"""Catalog of tools a task may request, with the permissions each needs."""

from dataclasses import dataclass, field
from enum import Enum

from ensemble.specialists.roles import Capability


class OperationClass(Enum):
    """What kind of change a tool makes, for constraint checks."""

    READ = "read"
    MODIFY = "modify"
    CREATE = "create"
    DELETE = "delete"
    COMMAND = "command"

    @property
    def is_destructive(self) -> bool:
        return self != OperationClass.READ


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    capability: Capability
    operation: OperationClass
    parameters: dict[str, str] = field(default_factory=dict)
    required: tuple[str, ...] = ()

    def missing_arguments(self, arguments: dict) -> list[str]:
        return [name for name in self.required if name not in arguments]


_TOOLS = [
    ToolSpec(
        "read_file",
        "Read the contents of a file",
        Capability.READ_CODE,
        OperationClass.READ,
        {
            "path": "Path relative to the workspace",
            "start_line": "First line, 1-indexed (optional)",
            "end_line": "Last line, inclusive (optional)",
        },
        ("path",),
    ),
    ToolSpec(
        "list_files",
        "List files in a directory",
        Capability.SEARCH_CODEBASE,
        OperationClass.READ,
        {
            "path": "Directory path",
            "recursive": "Include subdirectories (default: false)",
            "pattern": "Glob filter (optional)",
        },
        ("path",),
    ),
    ToolSpec(
        "search_code",
        "Search for a regex pattern in project files",
        Capability.SEARCH_CODEBASE,
        OperationClass.READ,
        {
            "query": "Regular expression",
            "file_pattern": "Glob filter, e.g. *.py",
            "case_sensitive": "Case sensitive search (default: false)",
        },
        ("query",),
    ),
    ToolSpec(
        "get_symbol_info",
        "Find where a class or function is defined",
        Capability.ANALYZE_AST,
        OperationClass.READ,
        {"symbol": "Symbol name", "file": "File to search in (optional)"},
        ("symbol",),
    ),
    ToolSpec(
        "get_file_outline",
        "List the classes and functions in a file",
        Capability.ANALYZE_AST,
        OperationClass.READ,
        {"path": "File path"},
        ("path",),
    ),
    ToolSpec(
        "edit_file",
        "Replace text in an existing file",
        Capability.WRITE_CODE,
        OperationClass.MODIFY,
        {"path": "File path", "old_text": "Text to find", "new_text": "Replacement text"},
        ("path", "old_text", "new_text"),
    ),
    ToolSpec(
        "write_file",
        "Create a file with the given content",
        Capability.CREATE_FILES,
        OperationClass.CREATE,
        {"path": "File path", "content": "File content"},
        ("path", "content"),
    ),
    ToolSpec(
        "delete_file",
        "Delete a file",
        Capability.DELETE_FILES,
        OperationClass.DELETE,
        {"path": "File path"},
        ("path",),
    ),
    ToolSpec(
        "run_command",
        "Run a command in the workspace",
        Capability.EXECUTE_COMMANDS,
        OperationClass.COMMAND,
        {"command": "Command line", "cwd": "Working directory (optional)", "timeout": "Seconds (default: 30)"},
        ("command",),
    ),
    ToolSpec(
        "run_tests",
        "Run the project's tests",
        Capability.RUN_TESTS,
        OperationClass.COMMAND,
        {"path": "Test path (optional)", "command": "Test command (default: pytest)"},
    ),
]

TOOL_CATALOG: dict[str, ToolSpec] = {tool.name: tool for tool in _TOOLS}


def get_tool(name: str) -> ToolSpec | None:
    return TOOL_CATALOG.get(name)


def describe_tools(names: list[str] | None = None) -> str:
    """Tool list for planner prompts."""
    lines = []
    for spec in TOOL_CATALOG.values():
        if names is not None and spec.name not in names:
            continue
        params = ", ".join(f"{k}: {v}" for k, v in spec.parameters.items())
        lines.append(f"- {spec.name}({params}): {spec.description}")
    return "\n".join(lines)
