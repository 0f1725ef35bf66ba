"""Collaboration session data models."""

import uuid
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from ensemble.config.defaults import DEFAULT_MAX_TURNS
from ensemble.errors import InvalidTransitionError
from ensemble.specialists.models import SpecialistAgent
from ensemble.specialists.roles import AgentRole


def _new_id() -> str:
    return str(uuid.uuid4())


class SessionStatus(Enum):
    CREATED = "created"
    ACTIVE = "active"
    PAUSED = "paused"
    WAITING_FOR_USER = "waiting_for_user"
    CONSENSUS_REACHED = "consensus_reached"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return not SESSION_TRANSITIONS[self]

    def can_transition_to(self, target: "SessionStatus") -> bool:
        return target in SESSION_TRANSITIONS[self]


_SESSION_EXITS = {SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.FAILED}

SESSION_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.CREATED: {SessionStatus.ACTIVE, SessionStatus.CANCELLED, SessionStatus.FAILED},
    SessionStatus.ACTIVE: {
        SessionStatus.PAUSED,
        SessionStatus.WAITING_FOR_USER,
        SessionStatus.CONSENSUS_REACHED,
    }
    | _SESSION_EXITS,
    SessionStatus.PAUSED: {SessionStatus.ACTIVE} | _SESSION_EXITS,
    SessionStatus.WAITING_FOR_USER: {SessionStatus.ACTIVE} | _SESSION_EXITS,
    SessionStatus.CONSENSUS_REACHED: set(),
    SessionStatus.COMPLETED: set(),
    SessionStatus.CANCELLED: set(),
    SessionStatus.FAILED: set(),
}


class CollaborationProtocol(Enum):
    ROUND_ROBIN = "round_robin"
    BROADCAST = "broadcast"
    FREE_FORM = "free_form"
    DEBATE = "debate"
    CONSENSUS = "consensus"
    LEADER_FOLLOWER = "leader_follower"
    VOTING = "voting"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def description(self) -> str:
        return PROTOCOL_DESCRIPTIONS[self]


PROTOCOL_DESCRIPTIONS = {
    CollaborationProtocol.ROUND_ROBIN: "Each agent takes a turn in sequence",
    CollaborationProtocol.BROADCAST: "All agents respond to the same turn in parallel",
    CollaborationProtocol.FREE_FORM: "Whoever is mentioned speaks next",
    CollaborationProtocol.DEBATE: "Two agents present and defend opposing approaches",
    CollaborationProtocol.CONSENSUS: "Agents propose and vote until the group agrees",
    CollaborationProtocol.LEADER_FOLLOWER: "One agent leads, the others respond to it",
    CollaborationProtocol.VOTING: "Agents vote once on a proposal",
}


class ParticipantStatus(Enum):
    READY = "ready"
    THINKING = "thinking"
    RESPONDED = "responded"
    BLOCKED = "blocked"
    EXITED = "exited"


@dataclass(frozen=True)
class Participant:
    role: AgentRole
    order: int = 0
    agent: SpecialistAgent | None = None
    status: ParticipantStatus = ParticipantStatus.READY
    message_count: int = 0
    id: str = field(default_factory=_new_id)

    @property
    def display_name(self) -> str:
        return f"{self.role.icon} {self.role.display_name}"

    @property
    def is_ready(self) -> bool:
        return self.status == ParticipantStatus.READY

    def with_agent(self, agent: SpecialistAgent) -> "Participant":
        return replace(self, agent=agent)

    def with_status(self, status: ParticipantStatus) -> "Participant":
        return replace(self, status=status)

    def increment_messages(self) -> "Participant":
        return replace(self, message_count=self.message_count + 1)


class MessageType(Enum):
    CONTRIBUTION = "contribution"
    QUESTION = "question"
    ANSWER = "answer"
    PROPOSAL = "proposal"
    VOTE = "vote"
    CRITIQUE = "critique"
    AGREEMENT = "agreement"
    DELEGATION_REQUEST = "delegation_request"
    SUMMARY = "summary"
    DECISION = "decision"
    SYSTEM = "system"


class AttachmentType(Enum):
    CODE = "code"
    DOCUMENT = "document"
    DIAGRAM = "diagram"
    TEST = "test"
    REVIEW = "review"
    DATA = "data"


@dataclass(frozen=True)
class MessageAttachment:
    name: str
    type: AttachmentType
    content: str
    file_path: str | None = None
    id: str = field(default_factory=_new_id)

    @classmethod
    def code(cls, name: str, content: str, file_path: str | None = None) -> "MessageAttachment":
        return cls(name, AttachmentType.CODE, content, file_path)

    @classmethod
    def document(cls, name: str, content: str) -> "MessageAttachment":
        return cls(name, AttachmentType.DOCUMENT, content)


SYSTEM_SENDER = "system"


@dataclass(frozen=True)
class CollaborationMessage:
    session_id: str
    sender_id: str
    sender_role: AgentRole | None
    type: MessageType
    content: str
    reply_to: str | None = None
    mentions: tuple[AgentRole, ...] = ()
    attachments: tuple[MessageAttachment, ...] = ()
    metadata: dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_reply(self) -> bool:
        return self.reply_to is not None

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments)

    def mentions_role(self, role: AgentRole) -> bool:
        return role in self.mentions

    def code_attachments(self) -> list[MessageAttachment]:
        return [a for a in self.attachments if a.type == AttachmentType.CODE]

    @classmethod
    def contribution(
        cls,
        session_id: str,
        sender: "Participant",
        content: str,
        reply_to: str | None = None,
        attachments: tuple[MessageAttachment, ...] = (),
    ) -> "CollaborationMessage":
        return cls(
            session_id,
            sender.id,
            sender.role,
            MessageType.CONTRIBUTION,
            content,
            reply_to=reply_to,
            mentions=mentioned_roles(content, exclude=sender.role),
            attachments=attachments,
        )

    @classmethod
    def question(
        cls, session_id: str, sender: "Participant", content: str, target: AgentRole
    ) -> "CollaborationMessage":
        return cls(session_id, sender.id, sender.role, MessageType.QUESTION, content, mentions=(target,))

    @classmethod
    def proposal(cls, session_id: str, sender: "Participant", content: str) -> "CollaborationMessage":
        return cls(session_id, sender.id, sender.role, MessageType.PROPOSAL, content)

    @classmethod
    def vote(
        cls,
        session_id: str,
        sender: "Participant",
        proposal_id: str,
        approve: bool,
        reason: str | None = None,
    ) -> "CollaborationMessage":
        content = "APPROVE" if approve else "REJECT"
        if reason:
            content = f"{content}: {reason}"
        return cls(session_id, sender.id, sender.role, MessageType.VOTE, content, reply_to=proposal_id)

    @classmethod
    def summary(
        cls, session_id: str, sender: "Participant", content: str, reply_to: str | None = None
    ) -> "CollaborationMessage":
        return cls(session_id, sender.id, sender.role, MessageType.SUMMARY, content, reply_to=reply_to)

    @classmethod
    def decision(cls, session_id: str, role: AgentRole | None, content: str) -> "CollaborationMessage":
        return cls(session_id, SYSTEM_SENDER, role, MessageType.DECISION, content)

    @classmethod
    def system(cls, session_id: str, content: str) -> "CollaborationMessage":
        return cls(session_id, SYSTEM_SENDER, None, MessageType.SYSTEM, content)


def mentioned_roles(content: str, exclude: AgentRole | None = None) -> tuple[AgentRole, ...]:
    """Roles named in ``content`` as ``@role`` or by display name."""
    lowered = content.lower()
    found = []
    for role in AgentRole:
        if role == exclude:
            continue
        if f"@{role.value}" in lowered or role.display_name.lower() in lowered:
            found.append(role)
    return tuple(found)


@dataclass(frozen=True)
class Decision:
    description: str
    rationale: str
    made_by: AgentRole | None
    supporters: tuple[AgentRole, ...] = ()
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class SharedContext:
    """What the session has established so far.

    Every ``with_*`` helper returns a new context; nothing mutates in place.
    """

    artifacts: dict[str, str] = field(default_factory=dict)
    facts: tuple[str, ...] = ()
    decisions: tuple[Decision, ...] = ()
    open_questions: tuple[str, ...] = ()
    metadata: dict[str, str] = field(default_factory=dict)

    def with_artifact(self, name: str, content: str) -> "SharedContext":
        return replace(self, artifacts={**self.artifacts, name: content})

    def with_fact(self, fact: str) -> "SharedContext":
        return replace(self, facts=self.facts + (fact,))

    def with_decision(self, decision: Decision) -> "SharedContext":
        return replace(self, decisions=self.decisions + (decision,))

    def with_question(self, question: str) -> "SharedContext":
        return replace(self, open_questions=self.open_questions + (question,))

    def resolve_question(self, question: str) -> "SharedContext":
        """Drop ``question`` from the open questions; unknown questions are ignored."""
        if question not in self.open_questions:
            return self
        return replace(self, open_questions=tuple(q for q in self.open_questions if q != question))

    def with_metadata(self, key: str, value: str) -> "SharedContext":
        return replace(self, metadata={**self.metadata, key: value})


@dataclass(frozen=True)
class CollaborationSession:
    """A multi-participant session.

    ``current_turn`` only ever grows; the active participant is always
    ``participants[current_turn % len(participants)]``.
    """

    name: str
    goal: str
    participants: tuple[Participant, ...]
    protocol: CollaborationProtocol = CollaborationProtocol.ROUND_ROBIN
    status: SessionStatus = SessionStatus.CREATED
    shared_context: SharedContext = field(default_factory=SharedContext)
    messages: tuple[CollaborationMessage, ...] = ()
    current_turn: int = 0
    max_turns: int = DEFAULT_MAX_TURNS
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not self.participants:
            raise ValueError("A session needs at least one participant")
        if self.protocol == CollaborationProtocol.DEBATE and len(self.participants) != 2:
            raise ValueError("A debate needs exactly two participants")

    @classmethod
    def create(
        cls,
        name: str,
        goal: str,
        roles: list[AgentRole],
        protocol: CollaborationProtocol = CollaborationProtocol.ROUND_ROBIN,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> "CollaborationSession":
        participants = tuple(Participant(role=role, order=i) for i, role in enumerate(roles))
        return cls(name=name, goal=goal, participants=participants, protocol=protocol, max_turns=max_turns)

    @classmethod
    def debate(cls, goal: str, first: AgentRole, second: AgentRole, max_turns: int = DEFAULT_MAX_TURNS):
        return cls.create(f"Debate: {goal}", goal, [first, second], CollaborationProtocol.DEBATE, max_turns)

    @classmethod
    def review(cls, goal: str, max_turns: int = DEFAULT_MAX_TURNS):
        return cls.create(
            f"Review: {goal}",
            goal,
            [AgentRole.IMPLEMENTER, AgentRole.REVIEWER],
            CollaborationProtocol.ROUND_ROBIN,
            max_turns,
        )

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal

    @property
    def has_reached_max_turns(self) -> bool:
        return self.current_turn >= self.max_turns

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def leader(self) -> Participant:
        return self.participants[0]

    def get_current_participant(self) -> Participant:
        return self.participants[self.current_turn % len(self.participants)]

    def get_next_participant(self) -> Participant:
        return self.participants[(self.current_turn + 1) % len(self.participants)]

    def get_participant(self, role: AgentRole) -> Participant | None:
        return next((p for p in self.participants if p.role == role), None)

    def get_participant_by_id(self, participant_id: str) -> Participant | None:
        return next((p for p in self.participants if p.id == participant_id), None)

    def get_messages_by_participant(self, participant_id: str) -> list[CollaborationMessage]:
        return [m for m in self.messages if m.sender_id == participant_id]

    def latest_message(self, message_type: MessageType | None = None) -> CollaborationMessage | None:
        for message in reversed(self.messages):
            if message_type is None or message.type == message_type:
                return message
        return None

    def advance_turn(self) -> "CollaborationSession":
        return replace(self, current_turn=self.current_turn + 1)

    def add_message(self, message: CollaborationMessage) -> "CollaborationSession":
        """Append a message and bump the sender's message count."""
        participants = tuple(
            p.increment_messages() if p.id == message.sender_id else p for p in self.participants
        )
        return replace(self, messages=self.messages + (message,), participants=participants)

    def with_status(self, status: SessionStatus) -> "CollaborationSession":
        if not self.status.can_transition_to(status):
            raise InvalidTransitionError(self.status, status)
        return replace(self, status=status)

    def with_context(self, context: SharedContext) -> "CollaborationSession":
        return replace(self, shared_context=context)

    def with_participant(self, participant: Participant) -> "CollaborationSession":
        participants = tuple(participant if p.id == participant.id else p for p in self.participants)
        return replace(self, participants=participants)

    def with_participants(self, participants: tuple[Participant, ...]) -> "CollaborationSession":
        return replace(self, participants=participants)


@dataclass(frozen=True)
class TurnResult:
    success: bool
    message: CollaborationMessage | None = None
    session: CollaborationSession | None = None
    error: str | None = None

    @classmethod
    def ok(cls, message: CollaborationMessage, session: CollaborationSession) -> "TurnResult":
        return cls(True, message, session)

    @classmethod
    def failed(cls, reason: str, session: CollaborationSession | None = None) -> "TurnResult":
        return cls(False, None, session, reason)


@dataclass(frozen=True)
class CollaborationResult:
    session_id: str
    goal: str
    success: bool
    status: SessionStatus
    outcome: str
    decisions: tuple[Decision, ...]
    artifacts: dict[str, str]
    total_turns: int
    message_count: int
    participant_contributions: dict[AgentRole, int]
    duration_ms: int
    errors: tuple[str, ...] = ()

    @property
    def has_decisions(self) -> bool:
        return bool(self.decisions)

    @property
    def has_artifacts(self) -> bool:
        return bool(self.artifacts)

    @property
    def most_active_participant(self) -> AgentRole | None:
        """Role with the most contributions; ties go to the role that spoke first."""
        if not self.participant_contributions:
            return None
        return max(self.participant_contributions, key=self.participant_contributions.get)


def count_contributions(messages: tuple[CollaborationMessage, ...]) -> dict[AgentRole, int]:
    """Messages per sender role, keyed in order of first appearance."""
    counts: Counter[AgentRole] = Counter()
    for message in messages:
        if message.sender_role is not None and message.sender_id != SYSTEM_SENDER:
            counts[message.sender_role] += 1
    return dict(counts)


@dataclass(frozen=True)
class CollaborationStats:
    total_sessions: int
    active_sessions: int
    completed_sessions: int
    total_messages: int
    total_decisions: int
    by_protocol: dict[CollaborationProtocol, int]


# Events


@dataclass(frozen=True)
class SessionStarted:
    session_id: str
    participant_count: int
    protocol: CollaborationProtocol


@dataclass(frozen=True)
class MessageSent:
    session_id: str
    message_id: str
    sender_role: AgentRole | None
    type: MessageType


@dataclass(frozen=True)
class TurnAdvanced:
    session_id: str
    turn: int
    next_role: AgentRole


@dataclass(frozen=True)
class ConsensusReached:
    session_id: str
    proposal: str
    approval_percentage: float


@dataclass(frozen=True)
class DecisionMade:
    session_id: str
    description: str
    made_by: AgentRole | None


@dataclass(frozen=True)
class SessionCompleted:
    session_id: str
    status: SessionStatus
    total_turns: int
    message_count: int
    decision_count: int


@dataclass(frozen=True)
class SessionFailed:
    session_id: str
    reason: str


CollaborationEvent = (
    SessionStarted
    | MessageSent
    | TurnAdvanced
    | ConsensusReached
    | DecisionMade
    | SessionCompleted
    | SessionFailed
)
