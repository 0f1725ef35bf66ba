"""Tool execution gateway contract (the orchestrator decides, the gateway acts)."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ToolCall:
    """A request to run one tool."""
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    """Outcome of a tool call"""
    success: bool
    output: str = ""
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, output: str, **metadata: Any) -> "ToolResult":
        return cls(True, output, None, metadata)

    @classmethod
    def failure(cls, error: str, **metadata: Any) -> "ToolResult":
        return cls(False, "", error, metadata)


class ToolGateway(ABC):
    """Performs file and process operations on behalf of the task executor.

    Implementations report failures through ``ToolResult.error`` rather than
    raising.
    """

    @abstractmethod
    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Run a tool and return its result"""
        pass

    async def health_check(self) -> bool:
        """Verify the gateway is available"""
        return True
