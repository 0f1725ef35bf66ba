"""Agent task state machine models."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from ensemble.errors import ErrorKind, InvalidTransitionError
from ensemble.execution.tools import OperationClass


class TaskType(Enum):
    EXPLAIN_CODE = "explain_code"
    REFACTOR = "refactor"
    GENERATE_TESTS = "generate_tests"
    FIX_BUG = "fix_bug"
    IMPLEMENT_FEATURE = "implement_feature"
    DOCUMENT = "document"
    OPTIMIZE = "optimize"
    REVIEW = "review"
    ANSWER_QUESTION = "answer_question"
    CUSTOM = "custom"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def default_prompt(self) -> str:
        return DEFAULT_TASK_PROMPTS[self]

    @property
    def is_destructive(self) -> bool:
        return self in (
            TaskType.REFACTOR,
            TaskType.FIX_BUG,
            TaskType.IMPLEMENT_FEATURE,
            TaskType.DOCUMENT,
            TaskType.OPTIMIZE,
        )

    @property
    def is_read_only(self) -> bool:
        return self in (TaskType.EXPLAIN_CODE, TaskType.REVIEW, TaskType.ANSWER_QUESTION)


DEFAULT_TASK_PROMPTS = {
    TaskType.EXPLAIN_CODE: "Explain what this code does and how it works.",
    TaskType.REFACTOR: "Refactor this code to improve its structure and readability.",
    TaskType.GENERATE_TESTS: "Write unit tests for this code.",
    TaskType.FIX_BUG: "Find the bug in this code and fix it.",
    TaskType.IMPLEMENT_FEATURE: "Implement this feature as described.",
    TaskType.DOCUMENT: "Add documentation to this code.",
    TaskType.OPTIMIZE: "Make this code faster.",
    TaskType.REVIEW: "Review this code for problems and possible improvements.",
    TaskType.ANSWER_QUESTION: "Answer this question about the codebase.",
    TaskType.CUSTOM: "Complete the following task.",
}


@dataclass(frozen=True)
class TaskContext:
    """Editor snapshot a task runs against."""

    project_path: str
    user_instructions: str = ""
    active_file: str | None = None
    selected_code: str | None = None
    cursor_position: int | None = None
    related_files: tuple[str, ...] = ()
    error_context: str | None = None

    @property
    def has_selection(self) -> bool:
        return bool(self.selected_code and self.selected_code.strip())

    @property
    def has_error(self) -> bool:
        return bool(self.error_context and self.error_context.strip())

    @property
    def all_files(self) -> list[str]:
        files = [self.active_file] if self.active_file else []
        return files + list(self.related_files)

    def render(self) -> str:
        """Context block handed to the specialist."""
        lines = [f"Project: {self.project_path}"]
        if self.active_file:
            lines.append(f"Active file: {self.active_file}")
        if self.related_files:
            lines.append(f"Related files: {', '.join(self.related_files)}")
        if self.has_selection:
            lines.extend(["Selected code:", "```", self.selected_code, "```"])
        if self.has_error:
            lines.extend(["Error:", self.error_context])
        if self.user_instructions:
            lines.extend(["Instructions:", self.user_instructions])
        return "\n".join(lines)


@dataclass(frozen=True)
class TaskConstraints:
    max_steps: int = 10
    max_tokens: int = 8000
    allow_file_modification: bool = True
    allow_new_files: bool = True
    allow_deletion: bool = False
    allow_commands: bool = False
    require_confirmation: bool = True
    timeout_seconds: float = 300.0

    @property
    def allows_file_operations(self) -> bool:
        return self.allow_file_modification or self.allow_new_files or self.allow_deletion

    @property
    def is_read_only(self) -> bool:
        return not (self.allows_file_operations or self.allow_commands)

    def permits(self, operation: OperationClass) -> bool:
        """Whether this operation class is allowed at all."""
        if operation == OperationClass.READ:
            return True
        if operation == OperationClass.MODIFY:
            return self.allow_file_modification
        if operation == OperationClass.CREATE:
            return self.allow_new_files
        if operation == OperationClass.DELETE:
            return self.allow_deletion
        return self.allow_commands

    @classmethod
    def preset(cls, name: str) -> "TaskConstraints":
        try:
            return PRESETS[name]
        except KeyError:
            raise ValueError(f"Unknown constraints preset: {name}") from None


TaskConstraints.DEFAULT = TaskConstraints()
TaskConstraints.READ_ONLY = TaskConstraints(
    allow_file_modification=False,
    allow_new_files=False,
    allow_deletion=False,
    allow_commands=False,
    require_confirmation=False,
)
TaskConstraints.PERMISSIVE = TaskConstraints(
    max_steps=50,
    max_tokens=32000,
    allow_deletion=True,
    allow_commands=True,
    require_confirmation=False,
)

PRESETS = {
    "default": TaskConstraints.DEFAULT,
    "read_only": TaskConstraints.READ_ONLY,
    "permissive": TaskConstraints.PERMISSIVE,
}


class TaskStatus(Enum):
    PENDING = "pending"
    PLANNING = "planning"
    EXECUTING = "executing"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)

    def can_transition_to(self, target: "TaskStatus") -> bool:
        return target in TASK_TRANSITIONS[self]


_TASK_EXITS = {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}

TASK_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.PLANNING, TaskStatus.EXECUTING} | _TASK_EXITS,
    TaskStatus.PLANNING: {TaskStatus.EXECUTING} | _TASK_EXITS,
    TaskStatus.EXECUTING: {TaskStatus.AWAITING_CONFIRMATION} | _TASK_EXITS,
    TaskStatus.AWAITING_CONFIRMATION: {TaskStatus.EXECUTING} | _TASK_EXITS,
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
    TaskStatus.CANCELLED: set(),
}


class AgentAction(Enum):
    TOOL_CALL = "tool_call"
    REASONING = "reasoning"
    ERROR = "error"
    COMPLETE = "complete"


class StepStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TaskStep:
    id: int
    action: AgentAction
    reasoning: str
    status: StepStatus
    result: str | None = None
    tool_name: str | None = None
    tool_args: dict[str, Any] | None = None
    tokens_used: int = 0
    duration_ms: int = 0
    error_kind: ErrorKind | None = None

    @property
    def is_successful(self) -> bool:
        return self.status == StepStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == StepStatus.FAILED

    @property
    def is_tool_call(self) -> bool:
        return self.action == AgentAction.TOOL_CALL and self.tool_name is not None

    @property
    def is_retryable(self) -> bool:
        return self.is_failed and self.error_kind is not None and self.error_kind.retryable

    @classmethod
    def tool_call(
        cls,
        id: int,
        tool_name: str,
        tool_args: dict[str, Any],
        reasoning: str,
        result: str | None,
        success: bool,
        tokens_used: int = 0,
        duration_ms: int = 0,
        error_kind: ErrorKind | None = None,
    ) -> "TaskStep":
        return cls(
            id=id,
            action=AgentAction.TOOL_CALL,
            reasoning=reasoning,
            status=StepStatus.COMPLETED if success else StepStatus.FAILED,
            result=result,
            tool_name=tool_name,
            tool_args=tool_args,
            tokens_used=tokens_used,
            duration_ms=duration_ms,
            error_kind=None if success else (error_kind or ErrorKind.TOOL_FAILED),
        )

    @classmethod
    def reasoning_step(cls, id: int, content: str, tokens_used: int = 0, duration_ms: int = 0) -> "TaskStep":
        return cls(
            id=id,
            action=AgentAction.REASONING,
            reasoning=content,
            status=StepStatus.COMPLETED,
            result=None,
            tokens_used=tokens_used,
            duration_ms=duration_ms,
        )

    @classmethod
    def error(cls, id: int, message: str, kind: ErrorKind, tokens_used: int = 0) -> "TaskStep":
        return cls(
            id=id,
            action=AgentAction.ERROR,
            reasoning=message,
            status=StepStatus.FAILED,
            result=message,
            tokens_used=tokens_used,
            error_kind=kind,
        )


@dataclass(frozen=True)
class TaskResult:
    success: bool
    summary: str
    files_modified: tuple[str, ...] = ()
    files_created: tuple[str, ...] = ()
    files_deleted: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    tokens_used: int = 0
    duration_ms: int = 0
    error_kind: ErrorKind | None = None

    @property
    def total_files_affected(self) -> int:
        return len(self.files_modified) + len(self.files_created) + len(self.files_deleted)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @classmethod
    def succeeded(cls, summary: str, **kwargs: Any) -> "TaskResult":
        return cls(success=True, summary=summary, **kwargs)

    @classmethod
    def failure(cls, summary: str, errors: list[str] | tuple[str, ...] = (), **kwargs: Any) -> "TaskResult":
        return cls(success=False, summary=summary, errors=tuple(errors), **kwargs)

    @classmethod
    def cancelled(cls, reason: str = "Cancelled by user", **kwargs: Any) -> "TaskResult":
        kwargs.setdefault("error_kind", ErrorKind.CANCELLED)
        return cls(success=False, summary=reason, errors=(reason,), **kwargs)


@dataclass(frozen=True)
class AgentTask:
    """A goal driven to completion by one specialist.

    The step list is append-only and the result is set exactly once, by
    ``complete`` or ``cancel``.
    """

    description: str
    context: TaskContext
    type: TaskType = TaskType.CUSTOM
    constraints: TaskConstraints = TaskConstraints.DEFAULT
    status: TaskStatus = TaskStatus.PENDING
    steps: tuple[TaskStep, ...] = ()
    result: TaskResult | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def create(
        cls,
        description: str,
        project_path: str = ".",
        type: TaskType = TaskType.CUSTOM,
        constraints: TaskConstraints = TaskConstraints.DEFAULT,
        **context: Any,
    ) -> "AgentTask":
        task_context = TaskContext(project_path=project_path, user_instructions=description, **context)
        return cls(description=description, context=task_context, type=type, constraints=constraints)

    @property
    def total_tokens(self) -> int:
        return sum(step.tokens_used for step in self.steps)

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    @property
    def is_successful(self) -> bool:
        return self.status == TaskStatus.COMPLETED and self.result is not None and self.result.success

    @property
    def next_step_id(self) -> int:
        return len(self.steps)

    def budget_exceeded(self) -> str | None:
        """Reason the next step may not start, if any."""
        if len(self.steps) >= self.constraints.max_steps:
            return f"Step budget exhausted ({self.constraints.max_steps} steps)"
        if self.total_tokens >= self.constraints.max_tokens:
            return f"Token budget exhausted ({self.total_tokens}/{self.constraints.max_tokens} tokens)"
        return None

    def with_step(self, step: TaskStep) -> "AgentTask":
        if step.id != self.next_step_id:
            raise ValueError(f"Expected step id {self.next_step_id}, got {step.id}")
        return replace(self, steps=self.steps + (step,))

    def with_status(self, status: TaskStatus) -> "AgentTask":
        if not self.status.can_transition_to(status):
            raise InvalidTransitionError(self.status, status)
        return replace(self, status=status)

    def complete(self, result: TaskResult) -> "AgentTask":
        """COMPLETED when the result succeeded, FAILED otherwise."""
        status = TaskStatus.COMPLETED if result.success else TaskStatus.FAILED
        return replace(self.with_status(status), result=result)

    def cancel(self, reason: str = "Cancelled by user", kind: ErrorKind = ErrorKind.CANCELLED) -> "AgentTask":
        result = TaskResult.cancelled(reason, tokens_used=self.total_tokens, error_kind=kind)
        return replace(self.with_status(TaskStatus.CANCELLED), result=result)


# Events


@dataclass(frozen=True)
class TaskStarted:
    task_id: str
    task: AgentTask


@dataclass(frozen=True)
class StepStarted:
    task_id: str
    step_id: int
    action: AgentAction
    tool_name: str | None = None


@dataclass(frozen=True)
class StepCompleted:
    task_id: str
    step: TaskStep


@dataclass(frozen=True)
class ConfirmationRequired:
    task_id: str
    action: str
    details: str


@dataclass(frozen=True)
class TaskCompleted:
    task_id: str
    result: TaskResult


@dataclass(frozen=True)
class TaskFailed:
    task_id: str
    error: str
    result: TaskResult | None = None


@dataclass(frozen=True)
class TaskCancelled:
    task_id: str
    reason: str


TaskEvent = (
    TaskStarted
    | StepStarted
    | StepCompleted
    | ConfirmationRequired
    | TaskCompleted
    | TaskFailed
    | TaskCancelled
)
