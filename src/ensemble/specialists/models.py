"""Specialist agents, requests, responses and review models."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from ensemble.config.defaults import DEFAULT_TEMPERATURE, HIGH_CONFIDENCE
from ensemble.specialists.roles import MODIFYING, AgentRole, Capability


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class SpecialistRequest:
    """Request to a specialist."""

    agent_id: str
    role: AgentRole
    prompt: str
    context: str | None = None
    referenced_files: tuple[str, ...] = ()
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)

    def with_files(self, files: list[str]) -> "SpecialistRequest":
        return replace(self, referenced_files=self.referenced_files + tuple(files))

    def with_context(self, additional: str) -> "SpecialistRequest":
        """Append context, separated from existing context by a blank line."""
        parts = [c for c in (self.context, additional) if c]
        return replace(self, context="\n\n".join(parts))


@dataclass(frozen=True)
class SpecialistAgent:
    """Immutable configuration of one specialist."""

    role: AgentRole
    system_prompt: str
    capabilities: frozenset[Capability]
    temperature: float = DEFAULT_TEMPERATURE
    id: str = field(default_factory=new_id)

    @property
    def display_name(self) -> str:
        return f"{self.role.icon} {self.role.display_name}"

    @property
    def can_modify_files(self) -> bool:
        return bool(self.capabilities & MODIFYING)

    @property
    def is_read_only(self) -> bool:
        return not self.can_modify_files

    def can_perform(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def create_request(self, prompt: str, context: str | None = None) -> SpecialistRequest:
        return SpecialistRequest(agent_id=self.id, role=self.role, prompt=prompt, context=context)


class ActionCategory(Enum):
    GENERAL = "general"
    REFACTORING = "refactoring"
    TESTING = "testing"
    FIX = "fix"
    DOCUMENTATION = "documentation"
    SECURITY = "security"
    PERFORMANCE = "performance"


@dataclass(frozen=True)
class SuggestedAction:
    """A recommended follow-up."""

    action: str
    description: str
    priority: int = 5
    category: ActionCategory = ActionCategory.GENERAL


class ArtifactType(Enum):
    CODE = "code"
    TEST = "test"
    DOCUMENTATION = "documentation"
    REVIEW = "review"
    PLAN = "plan"
    DECISION = "decision"
    ANALYSIS = "analysis"


@dataclass(frozen=True)
class ResponseArtifact:
    """Something a specialist produced alongside its prose."""

    name: str
    type: ArtifactType
    content: str
    file_path: str | None = None
    language: str | None = None
    id: str = field(default_factory=new_id)

    @property
    def is_code(self) -> bool:
        return self.type == ArtifactType.CODE

    @property
    def line_count(self) -> int:
        return len(self.content.splitlines()) if self.content else 0


@dataclass(frozen=True)
class AgentResponse:
    """Response from a specialist."""

    request_id: str
    agent_id: str
    role: AgentRole
    content: str
    confidence: float = HIGH_CONFIDENCE
    delegate_to: AgentRole | None = None
    suggested_actions: tuple[SuggestedAction, ...] = ()
    artifacts: tuple[ResponseArtifact, ...] = ()
    tokens_used: int = 0
    duration_ms: int = 0
    error: str | None = None
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    @property
    def suggests_delegation(self) -> bool:
        return self.delegate_to is not None

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence >= HIGH_CONFIDENCE

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def has_actions(self) -> bool:
        return bool(self.suggested_actions)

    def actions_by_priority(self) -> list[SuggestedAction]:
        return sorted(self.suggested_actions, key=lambda a: a.priority, reverse=True)

    def code_artifacts(self) -> list[ResponseArtifact]:
        return [a for a in self.artifacts if a.is_code]


class ReviewSeverity(Enum):
    CRITICAL = 4
    IMPORTANT = 3
    SUGGESTION = 2
    NITPICK = 1


@dataclass(frozen=True)
class ReviewItem:
    severity: ReviewSeverity
    description: str
    suggestion: str | None = None
    is_blocking: bool = False


@dataclass(frozen=True)
class ReviewFeedback:
    """Reviewer verdict extracted from a response."""

    approved: bool
    overall_assessment: str
    items: tuple[ReviewItem, ...] = ()
    confidence: float = HIGH_CONFIDENCE

    @property
    def critical_count(self) -> int:
        return sum(1 for item in self.items if item.severity == ReviewSeverity.CRITICAL)

    @property
    def has_critical_issues(self) -> bool:
        return self.critical_count > 0

    @property
    def has_blocking_issues(self) -> bool:
        return any(item.is_blocking for item in self.items)


@dataclass(frozen=True)
class ReviewLoopResult:
    final_content: str
    iterations: int
    approved: bool
    feedback: ReviewFeedback | None = None


@dataclass(frozen=True)
class SpecialistStats:
    total_invocations: int
    invocations_by_role: dict[AgentRole, int]
    average_confidence: float
    average_duration_ms: float
    delegation_count: int

    @property
    def delegation_rate(self) -> float:
        if self.total_invocations == 0:
            return 0.0
        return self.delegation_count / self.total_invocations


# Events


@dataclass(frozen=True)
class AgentInvoked:
    role: AgentRole
    request_id: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class AgentResponded:
    role: AgentRole
    response: AgentResponse
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class AgentDelegated:
    from_role: AgentRole
    to_role: AgentRole
    reason: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class AgentFailed:
    role: AgentRole
    request_id: str
    error: str
    timestamp: datetime = field(default_factory=datetime.now)


SpecialistEvent = AgentInvoked | AgentResponded | AgentDelegated | AgentFailed
