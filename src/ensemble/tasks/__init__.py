"""Agent task state machine and driver."""

from ensemble.tasks.executor import TaskExecutor
from ensemble.tasks.models import (
    AgentTask,
    StepStatus,
    TaskConstraints,
    TaskContext,
    TaskResult,
    TaskStatus,
    TaskStep,
    TaskType,
)

__all__ = [
    "AgentTask",
    "StepStatus",
    "TaskConstraints",
    "TaskContext",
    "TaskExecutor",
    "TaskResult",
    "TaskStatus",
    "TaskStep",
    "TaskType",
]
