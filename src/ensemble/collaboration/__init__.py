"""Multi-specialist collaboration sessions."""

from ensemble.collaboration.consensus import ConsensusState, ConsensusStatus, Vote
from ensemble.collaboration.models import (
    CollaborationMessage,
    CollaborationProtocol,
    CollaborationResult,
    CollaborationSession,
    MessageType,
    Participant,
    SessionStatus,
    SharedContext,
)
from ensemble.collaboration.orchestrator import CollaborationOrchestrator

__all__ = [
    "CollaborationMessage",
    "CollaborationOrchestrator",
    "CollaborationProtocol",
    "CollaborationResult",
    "CollaborationSession",
    "ConsensusState",
    "ConsensusStatus",
    "MessageType",
    "Participant",
    "SessionStatus",
    "SharedContext",
    "Vote",
]
