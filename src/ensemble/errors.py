"""Exception hierarchy and error tags shared by all engines."""

from enum import Enum


class ErrorKind(Enum):
    """Tag attached to failed steps and results."""

    PERMISSION_DENIED = "permission_denied"
    BUDGET_EXCEEDED = "budget_exceeded"
    TOOL_FAILED = "tool_failed"
    INVOCATION_FAILED = "invocation_failed"
    CONFIRMATION_DECLINED = "confirmation_declined"
    UNKNOWN_TOOL = "unknown_tool"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    @property
    def retryable(self) -> bool:
        """Whether a failure of this kind may be attempted again."""
        return self in (ErrorKind.TOOL_FAILED, ErrorKind.INVOCATION_FAILED)


class EnsembleError(Exception):
    """Base exception for ensemble."""

    kind: ErrorKind | None = None

    @property
    def retryable(self) -> bool:
        return self.kind.retryable if self.kind else False


class ConfigError(EnsembleError):
    """Configuration file or value is invalid."""

    pass


class InvalidTransitionError(EnsembleError):
    """A status change that the state machine does not allow."""

    def __init__(self, current: object, target: object):
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition from {current} to {target}")


class PermissionDeniedError(EnsembleError):
    """Capability or constraint mismatch. Never retried."""

    kind = ErrorKind.PERMISSION_DENIED


class BudgetExceededError(EnsembleError):
    """Step or token budget exhausted."""

    kind = ErrorKind.BUDGET_EXCEEDED


class InvocationError(EnsembleError):
    """Model call failed."""

    kind = ErrorKind.INVOCATION_FAILED

    def __init__(self, message: str, tokens_used: int = 0):
        self.tokens_used = tokens_used
        super().__init__(message)


class ToolExecutionError(EnsembleError):
    """Tool gateway reported a failure."""

    kind = ErrorKind.TOOL_FAILED


class ConfirmationDeclinedError(EnsembleError):
    """The user declined a gated operation."""

    kind = ErrorKind.CONFIRMATION_DECLINED
