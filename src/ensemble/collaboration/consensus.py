"""Vote tallying for a single proposal."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from ensemble.config.defaults import DEFAULT_CONSENSUS_THRESHOLD


class ConsensusStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


@dataclass(frozen=True)
class Vote:
    participant_id: str
    approve: bool
    reason: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ConsensusState:
    """Votes on one proposal.

    The status only moves off PENDING once every expected participant has
    voted, and only when ``update_status`` is called. WITHDRAWN is reached
    through ``withdraw`` alone and is never left.
    """

    proposal_id: str
    proposal: str
    votes: dict[str, Vote] = field(default_factory=dict)
    status: ConsensusStatus = ConsensusStatus.PENDING

    @property
    def total_votes(self) -> int:
        return len(self.votes)

    @property
    def approval_count(self) -> int:
        return sum(1 for vote in self.votes.values() if vote.approve)

    @property
    def rejection_count(self) -> int:
        return self.total_votes - self.approval_count

    @property
    def approval_percentage(self) -> float:
        if self.total_votes == 0:
            return 0.0
        return self.approval_count / self.total_votes

    @property
    def is_decided(self) -> bool:
        return self.status != ConsensusStatus.PENDING

    def has_consensus(self, threshold: float = DEFAULT_CONSENSUS_THRESHOLD) -> bool:
        return self.approval_percentage >= threshold

    def record_vote(self, participant_id: str, approve: bool, reason: str | None = None) -> "ConsensusState":
        """Record a vote; a later vote from the same participant replaces the earlier one."""
        votes = dict(self.votes)
        votes[participant_id] = Vote(participant_id, approve, reason)
        return replace(self, votes=votes)

    def update_status(
        self, participant_count: int, threshold: float = DEFAULT_CONSENSUS_THRESHOLD
    ) -> "ConsensusState":
        if self.status == ConsensusStatus.WITHDRAWN:
            return self
        if self.total_votes < participant_count:
            status = ConsensusStatus.PENDING
        elif self.has_consensus(threshold):
            status = ConsensusStatus.ACCEPTED
        else:
            status = ConsensusStatus.REJECTED
        return replace(self, status=status)

    def withdraw(self) -> "ConsensusState":
        return replace(self, status=ConsensusStatus.WITHDRAWN)
