"""Drives collaboration sessions between specialists."""

import asyncio
import logging
import re
import threading
import time
from collections import Counter
from typing import Callable

from ensemble.collaboration.consensus import ConsensusState, ConsensusStatus
from ensemble.collaboration.models import (
    CollaborationEvent,
    CollaborationMessage,
    CollaborationProtocol,
    CollaborationResult,
    CollaborationSession,
    CollaborationStats,
    ConsensusReached,
    Decision,
    DecisionMade,
    MessageSent,
    MessageType,
    Participant,
    ParticipantStatus,
    SessionCompleted,
    SessionFailed,
    SessionStarted,
    SessionStatus,
    SharedContext,
    TurnAdvanced,
    TurnResult,
    count_contributions,
    mentioned_roles,
)
from ensemble.config.defaults import (
    DEFAULT_CONSENSUS_THRESHOLD,
    DEFAULT_MAX_ROUNDS,
    DEFAULT_MAX_TURNS,
)
from ensemble.events import EventBus, Listener
from ensemble.specialists.models import AgentResponse
from ensemble.specialists.roles import AgentRole
from ensemble.specialists.service import SpecialistService

logger = logging.getLogger(__name__)

StopCondition = Callable[[CollaborationSession, CollaborationMessage], bool]

AGREEMENT_PATTERN = re.compile(r"\bagree(d|s)?\b", re.IGNORECASE)
VOTE_PATTERN = re.compile(r"\b(approve|reject)\b", re.IGNORECASE)


def parse_vote(content: str) -> tuple[bool, str]:
    """Whichever of APPROVE or REJECT appears first decides; neither means reject."""
    match = VOTE_PATTERN.search(content)
    approve = bool(match) and match.group(1).lower() == "approve"
    reason = content[match.end():].strip(" :-\n") if match else content.strip()
    return approve, reason[:200]


CONTRIBUTION_INSTRUCTION = "Provide your contribution to this collaboration."


def build_turn_prompt(
    session: CollaborationSession,
    participant: Participant,
    user_prompt: str | None = None,
    instruction: str = CONTRIBUTION_INSTRUCTION,
) -> str:
    lines = [
        f"## Collaboration Session: {session.name}",
        f"**Goal:** {session.goal}",
        f"**Your Role:** {participant.role.display_name}",
        f"**Protocol:** {session.protocol.display_name}",
        "",
    ]
    if session.messages:
        lines.append("### Recent Discussion")
        for message in session.messages[-5:]:
            speaker = message.sender_role.display_name if message.sender_role else "System"
            lines.append(f"**{speaker}:** {message.content[:500]}")
        lines.append("")
    if session.shared_context.facts:
        lines.append("### Established Facts")
        lines.extend(f"- {fact}" for fact in session.shared_context.facts)
        lines.append("")
    if session.shared_context.open_questions:
        lines.append("### Open Questions")
        lines.extend(f"- {q}" for q in session.shared_context.open_questions)
        lines.append("")
    if user_prompt:
        lines.extend(["### User Input", user_prompt, ""])
    lines.append(instruction)
    return "\n".join(lines)


PROPOSAL_INSTRUCTION = "Propose a concrete solution the group can vote on."
VOTE_INSTRUCTION = (
    "Vote on this proposal. Start your answer with APPROVE or REJECT, then give a short reason.\n\n"
    "### Proposal\n{proposal}"
)
SUMMARY_INSTRUCTION = "Summarize the discussion and state the final decision."


class CollaborationOrchestrator:
    """Session registry and protocol driver.

    Sessions are immutable values; every operation stores a replacement
    under the session id.
    """

    def __init__(
        self,
        service: SpecialistService,
        max_turns: int = DEFAULT_MAX_TURNS,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        consensus_threshold: float = DEFAULT_CONSENSUS_THRESHOLD,
    ):
        self.service = service
        self.max_turns = max_turns
        self.max_rounds = max_rounds
        self.consensus_threshold = consensus_threshold
        self._sessions: dict[str, CollaborationSession] = {}
        self._proposals: dict[str, ConsensusState] = {}
        self._in_flight: dict[str, set[asyncio.Future]] = {}
        self._lock = threading.RLock()
        self._events: EventBus[CollaborationEvent] = EventBus()

    @classmethod
    def from_config(cls, config, service: SpecialistService) -> "CollaborationOrchestrator":
        return cls(
            service,
            max_turns=config.collaboration.max_turns,
            max_rounds=config.collaboration.max_rounds,
            consensus_threshold=config.collaboration.consensus_threshold,
        )

    # Registry

    def _store(self, session: CollaborationSession) -> CollaborationSession:
        with self._lock:
            self._sessions[session.id] = session
        return session

    def create_session(
        self,
        name: str,
        goal: str,
        roles: list[AgentRole],
        protocol: CollaborationProtocol = CollaborationProtocol.ROUND_ROBIN,
        max_turns: int | None = None,
    ) -> CollaborationSession:
        session = CollaborationSession.create(
            name, goal, roles, protocol, max_turns if max_turns is not None else self.max_turns
        )
        logger.debug("Created %s session %s", protocol.value, session.id)
        return self._store(session)

    def create_debate(self, goal: str, first: AgentRole, second: AgentRole) -> CollaborationSession:
        return self._store(CollaborationSession.debate(goal, first, second, self.max_turns))

    def create_review(self, goal: str) -> CollaborationSession:
        return self._store(CollaborationSession.review(goal, self.max_turns))

    def get_session(self, session_id: str) -> CollaborationSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def get_all_sessions(self) -> list[CollaborationSession]:
        with self._lock:
            return list(self._sessions.values())

    def get_active_sessions(self) -> list[CollaborationSession]:
        return [s for s in self.get_all_sessions() if s.is_active]

    def clear_sessions(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._proposals.clear()

    # Lifecycle

    def start_session(self, session_id: str) -> CollaborationSession | None:
        """Bind a specialist to every participant and activate the session."""
        session = self.get_session(session_id)
        if session is None or session.status != SessionStatus.CREATED:
            return session

        participants = tuple(
            p.with_agent(self.service.get_specialist(p.role)) for p in session.participants
        )
        started = self._store(session.with_participants(participants).with_status(SessionStatus.ACTIVE))
        logger.info(
            "Session %s started: %s with %d participants",
            session_id,
            started.protocol.value,
            len(participants),
        )
        self._events.emit(SessionStarted(session_id, len(participants), started.protocol))
        return started

    def _set_status(self, session_id: str, status: SessionStatus) -> CollaborationSession | None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            return self._store(session.with_status(status))

    def pause_session(self, session_id: str) -> CollaborationSession | None:
        return self._set_status(session_id, SessionStatus.PAUSED)

    def resume_session(self, session_id: str) -> CollaborationSession | None:
        return self._set_status(session_id, SessionStatus.ACTIVE)

    def cancel_session(self, session_id: str) -> CollaborationSession | None:
        """Cancel the session and abort the model calls it is waiting on."""
        logger.info("Cancelling session %s", session_id)
        session = self._set_status(session_id, SessionStatus.CANCELLED)
        with self._lock:
            calls = self._in_flight.pop(session_id, set())
        for call in calls:
            call.cancel()
        return session

    def await_user(self, session_id: str, question: str) -> CollaborationSession | None:
        """Suspend the session until ``provide_user_input`` answers ``question``."""
        with self._lock:
            session = self.get_session(session_id)
            if session is None:
                return None
            session = session.with_status(SessionStatus.WAITING_FOR_USER)
            session = session.with_context(session.shared_context.with_question(question))
            session = self._store(session.add_message(CollaborationMessage.system(session_id, question)))
        self._emit_message(session.messages[-1])
        return session

    def provide_user_input(self, session_id: str, answer: str) -> CollaborationSession | None:
        with self._lock:
            session = self.get_session(session_id)
            if session is None:
                return None
            context = session.shared_context
            if context.open_questions:
                context = context.resolve_question(context.open_questions[-1])
            session = session.with_status(SessionStatus.ACTIVE).with_context(context.with_fact(f"User: {answer}"))
            session = self._store(session.add_message(CollaborationMessage.system(session_id, f"User: {answer}")))
        self._emit_message(session.messages[-1])
        return session

    def end_session(self, session_id: str, success: bool = True) -> CollaborationResult | None:
        """Finish the session and build its result.

        A session already in a terminal state keeps that state.
        """
        with self._lock:
            session = self.get_session(session_id)
            if session is None:
                return None
            if not session.is_finished:
                session = self._store(
                    session.with_status(SessionStatus.COMPLETED if success else SessionStatus.FAILED)
                )

        duration_ms = int((time.time() - session.created_at.timestamp()) * 1000)
        logger.info("Session %s ended as %s", session_id, session.status.value)
        self._events.emit(
            SessionCompleted(
                session_id,
                session.status,
                session.current_turn,
                session.message_count,
                len(session.shared_context.decisions),
            )
        )
        return self._create_result(session, duration_ms)

    def _fail(self, session_id: str, reason: str) -> None:
        with self._lock:
            session = self.get_session(session_id)
            if session is None or session.is_finished:
                return
            self._store(session.with_status(SessionStatus.FAILED))
        logger.warning("Session %s failed: %s", session_id, reason)
        self._events.emit(SessionFailed(session_id, reason))

    # Turns

    def _select_speaker(self, session: CollaborationSession) -> Participant:
        """Who speaks next.

        FREE_FORM lets a ready participant named in the latest message jump
        the queue; every other protocol follows the cyclic order.
        """
        default = session.get_current_participant()
        if session.protocol != CollaborationProtocol.FREE_FORM:
            return default
        latest = session.latest_message()
        if latest is None:
            return default
        for role in latest.mentions:
            candidate = session.get_participant(role)
            if candidate and candidate.is_ready and candidate.id != latest.sender_id:
                return candidate
        return default

    def _check_turn(self, session: CollaborationSession | None) -> str | None:
        if session is None:
            return "Session not found"
        if not session.is_active:
            return f"Session is not active ({session.status.value})"
        if session.has_reached_max_turns:
            return "Max turns reached"
        return None

    async def _ask(self, session_id: str, participant: Participant, prompt: str) -> AgentResponse | None:
        """Ask one participant. None when the session was cancelled during the call."""
        agent = participant.agent or self.service.get_specialist(participant.role)
        call = asyncio.ensure_future(self.service.invoke_with(agent, agent.create_request(prompt)))
        with self._lock:
            self._in_flight.setdefault(session_id, set()).add(call)
        try:
            return await call
        except asyncio.CancelledError:
            if self._still_running(session_id):
                raise
            logger.debug("Dropped %s call for finished session %s", participant.role.value, session_id)
            return None
        finally:
            with self._lock:
                calls = self._in_flight.get(session_id)
                if calls is not None:
                    calls.discard(call)
                    if not calls:
                        del self._in_flight[session_id]

    def _still_running(self, session_id: str) -> bool:
        session = self.get_session(session_id)
        return session is not None and not session.is_finished

    def _interrupted(self, session_id: str) -> TurnResult:
        session = self.get_session(session_id)
        return TurnResult.failed(f"Session is not active ({session.status.value})", session)

    def _block(self, session_id: str, participant: Participant, reason: str) -> CollaborationSession:
        with self._lock:
            session = self.get_session(session_id)
            current = session.get_participant_by_id(participant.id)
            session = self._store(session.with_participant(current.with_status(ParticipantStatus.BLOCKED)))
        logger.warning("%s blocked: %s", participant.role.value, reason)
        return session

    async def execute_turn(
        self,
        session_id: str,
        user_prompt: str | None = None,
        *,
        speaker: Participant | None = None,
        message_type: MessageType = MessageType.CONTRIBUTION,
        reply_to: str | None = None,
        instruction: str | None = None,
    ) -> TurnResult:
        """Let one participant speak, then advance the turn by one."""
        session = self.get_session(session_id)
        error = self._check_turn(session)
        if error:
            return TurnResult.failed(error, session)

        participant = speaker or self._select_speaker(session)
        prompt = build_turn_prompt(session, participant, user_prompt, instruction or CONTRIBUTION_INSTRUCTION)
        response = await self._ask(session_id, participant, prompt)
        if response is None or not self.get_session(session_id).is_active:
            return self._interrupted(session_id)
        if response.is_error:
            return TurnResult.failed(response.error, self._block(session_id, participant, response.error))

        message = CollaborationMessage(
            session_id,
            participant.id,
            participant.role,
            message_type,
            response.content,
            reply_to=reply_to,
            mentions=mentioned_roles(response.content, exclude=participant.role),
        )
        with self._lock:
            current = self.get_session(session_id)
            if not current.is_active:
                return self._interrupted(session_id)
            updated = self._store(current.add_message(message).advance_turn())
        self._emit_message(message)
        self._emit_turn(updated)
        return TurnResult.ok(message, updated)

    async def broadcast_turn(self, session_id: str, user_prompt: str | None = None) -> TurnResult:
        """Every participant answers the same turn concurrently; the turn advances once."""
        session = self.get_session(session_id)
        error = self._check_turn(session)
        if error:
            return TurnResult.failed(error, session)

        participants = session.participants
        responses = await asyncio.gather(
            *(self._ask(session_id, p, build_turn_prompt(session, p, user_prompt)) for p in participants)
        )
        if any(r is None for r in responses) or not self.get_session(session_id).is_active:
            return self._interrupted(session_id)
        failures = [(p, r) for p, r in zip(participants, responses) if r.is_error]
        if failures:
            for participant, response in failures:
                session = self._block(session_id, participant, response.error)
            return TurnResult.failed(failures[0][1].error, session)

        messages = [
            CollaborationMessage.contribution(session_id, p, r.content) for p, r in zip(participants, responses)
        ]
        with self._lock:
            updated = self.get_session(session_id)
            if not updated.is_active:
                return self._interrupted(session_id)
            for message in messages:
                updated = updated.add_message(message)
            updated = self._store(updated.advance_turn())
        for message in messages:
            self._emit_message(message)
        self._emit_turn(updated)
        return TurnResult.ok(messages[-1], updated)

    async def run_until(
        self,
        session_id: str,
        max_turns: int = 10,
        stop_condition: StopCondition | None = None,
    ) -> list[CollaborationMessage]:
        """Execute turns until ``max_turns``, a failed turn, or ``stop_condition``."""
        messages = []
        for _ in range(max_turns):
            result = await self.execute_turn(session_id)
            if not result.success:
                break
            messages.append(result.message)
            if stop_condition and stop_condition(result.session, result.message):
                break
        return messages

    async def run_round(self, session_id: str) -> list[CollaborationMessage]:
        """One turn for each participant."""
        session = self.get_session(session_id)
        if session is None:
            return []
        return await self.run_until(session_id, max_turns=len(session.participants))

    # Protocols

    async def execute_session(self, session_id: str, max_rounds: int | None = None) -> CollaborationResult | None:
        """Start the session, run its protocol, and end it."""
        session = self.start_session(session_id)
        if session is None:
            return None
        rounds = max_rounds if max_rounds is not None else self.max_rounds

        runners = {
            CollaborationProtocol.ROUND_ROBIN: self._run_round_robin,
            CollaborationProtocol.DEBATE: self._run_debate,
            CollaborationProtocol.BROADCAST: self._run_broadcast,
            CollaborationProtocol.CONSENSUS: self._run_consensus,
            CollaborationProtocol.VOTING: self._run_voting,
            CollaborationProtocol.LEADER_FOLLOWER: self._run_leader_follower,
            CollaborationProtocol.FREE_FORM: self._run_free_form,
        }
        if session.is_active:
            error = await runners[session.protocol](session_id, rounds)
            if error:
                self._fail(session_id, error)
        return self.end_session(session_id)

    def _turn_error(self, session_id: str) -> str | None:
        """Why the last turn stopped, if it stopped on a failure."""
        session = self.get_session(session_id)
        if session.is_active and any(p.status == ParticipantStatus.BLOCKED for p in session.participants):
            blocked = [p.role.value for p in session.participants if p.status == ParticipantStatus.BLOCKED]
            return f"Participant failed: {', '.join(blocked)}"
        return None

    async def _run_round_robin(self, session_id: str, rounds: int) -> str | None:
        session = self.get_session(session_id)
        await self.run_until(session_id, max_turns=rounds * len(session.participants))
        return self._turn_error(session_id)

    async def _run_debate(self, session_id: str, rounds: int) -> str | None:
        def agreed(session: CollaborationSession, message: CollaborationMessage) -> bool:
            return session.message_count >= 4 and bool(AGREEMENT_PATTERN.search(message.content))

        await self.run_until(session_id, max_turns=rounds * 2, stop_condition=agreed)
        return self._turn_error(session_id)

    async def _run_broadcast(self, session_id: str, rounds: int) -> str | None:
        for _ in range(rounds):
            result = await self.broadcast_turn(session_id)
            if not result.success:
                return self._turn_error(session_id)
        return None

    async def _run_free_form(self, session_id: str, rounds: int) -> str | None:
        session = self.get_session(session_id)
        await self.run_until(session_id, max_turns=rounds * len(session.participants))
        return self._turn_error(session_id)

    async def _run_leader_follower(self, session_id: str, rounds: int) -> str | None:
        session = self.get_session(session_id)
        leader = session.leader
        followers = session.participants[1:]

        for _ in range(rounds):
            result = await self.execute_turn(session_id, speaker=leader)
            if not result.success:
                return self._turn_error(session_id)
            directive = result.message
            for follower in followers:
                result = await self.execute_turn(session_id, speaker=follower, reply_to=directive.id)
                if not result.success:
                    return self._turn_error(session_id)

        result = await self.execute_turn(
            session_id,
            speaker=leader,
            message_type=MessageType.SUMMARY,
            instruction=SUMMARY_INSTRUCTION,
        )
        if not result.success:
            return self._turn_error(session_id)
        summary = result.message.content
        self.record_decision(
            session_id,
            description=summary.strip().splitlines()[0] if summary.strip() else "No summary",
            rationale=summary,
            made_by=leader.role,
            supporters=tuple(f.role for f in followers),
        )
        return None

    async def _propose_and_vote(self, session_id: str) -> tuple[ConsensusState | None, str | None]:
        result = await self.execute_turn(
            session_id, message_type=MessageType.PROPOSAL, instruction=PROPOSAL_INSTRUCTION
        )
        if not result.success:
            return None, self._turn_error(session_id)
        state = self._track_proposal(session_id, result.message)

        session = self.get_session(session_id)
        instruction = VOTE_INSTRUCTION.format(proposal=state.proposal)
        for participant in session.participants:
            prompt = build_turn_prompt(session, participant, None, instruction)
            response = await self._ask(session_id, participant, prompt)
            if response is None or not self.get_session(session_id).is_active:
                logger.debug("Voting in session %s stopped: session no longer active", session_id)
                return None, None
            if response.is_error:
                self._block(session_id, participant, response.error)
                return None, f"Participant failed: {participant.role.value}"
            approve, reason = parse_vote(response.content)
            state = self.record_vote(session_id, participant.id, approve, reason)
        return state, None

    async def _run_consensus(self, session_id: str, rounds: int) -> str | None:
        for round_number in range(1, rounds + 1):
            if self.get_session(session_id).has_reached_max_turns:
                break
            state, error = await self._propose_and_vote(session_id)
            if error:
                return error
            if state is None:
                break
            logger.debug(
                "Consensus round %d: %.0f%% approval", round_number, state.approval_percentage * 100
            )
            if state.status == ConsensusStatus.ACCEPTED:
                return None
        return f"No consensus after {rounds} round(s)"

    async def _run_voting(self, session_id: str, rounds: int) -> str | None:
        state, error = await self._propose_and_vote(session_id)
        if error or state is None:
            return error
        if state.status == ConsensusStatus.REJECTED:
            self.record_decision(
                session_id,
                description=f"Rejected: {state.proposal[:100]}",
                rationale=f"{state.approval_percentage:.0%} approval",
                made_by=None,
            )
        return None

    # Messaging

    def send_message(
        self,
        session_id: str,
        sender_id: str,
        message_type: MessageType,
        content: str,
        reply_to: str | None = None,
    ) -> CollaborationMessage | None:
        """Append a message without taking a turn."""
        with self._lock:
            session = self.get_session(session_id)
            if session is None:
                return None
            sender = session.get_participant_by_id(sender_id)
            message = CollaborationMessage(
                session_id,
                sender_id,
                sender.role if sender else None,
                message_type,
                content,
                reply_to=reply_to,
            )
            self._store(session.add_message(message))
        self._emit_message(message)
        return message

    def record_decision(
        self,
        session_id: str,
        description: str,
        rationale: str,
        made_by: AgentRole | None,
        supporters: tuple[AgentRole, ...] = (),
    ) -> Decision | None:
        with self._lock:
            session = self.get_session(session_id)
            if session is None:
                return None
            decision = Decision(description, rationale, made_by, supporters)
            self._store(session.with_context(session.shared_context.with_decision(decision)))
        self._events.emit(DecisionMade(session_id, description, made_by))
        return decision

    def _track_proposal(self, session_id: str, message: CollaborationMessage) -> ConsensusState:
        state = ConsensusState(proposal_id=message.id, proposal=message.content)
        with self._lock:
            self._proposals[session_id] = state
        return state

    def open_proposal(self, session_id: str, participant_id: str, content: str) -> ConsensusState | None:
        """Put a proposal to the vote. Replaces any earlier proposal of the session."""
        message = self.send_message(session_id, participant_id, MessageType.PROPOSAL, content)
        if message is None:
            return None
        return self._track_proposal(session_id, message)

    def get_consensus(self, session_id: str) -> ConsensusState | None:
        with self._lock:
            return self._proposals.get(session_id)

    def record_vote(
        self,
        session_id: str,
        participant_id: str,
        approve: bool,
        reason: str | None = None,
    ) -> ConsensusState | None:
        """Record a vote on the open proposal and re-tally it.

        On acceptance the session moves to CONSENSUS_REACHED and the proposal
        is recorded as a decision.
        """
        with self._lock:
            session = self.get_session(session_id)
            state = self._proposals.get(session_id)
            if session is None or state is None:
                return None
            participant = session.get_participant_by_id(participant_id)
            if participant is None or session.is_finished:
                return None
            was_decided = state.is_decided
            state = state.record_vote(participant_id, approve, reason).update_status(
                len(session.participants), self.consensus_threshold
            )
            self._proposals[session_id] = state
            vote = CollaborationMessage.vote(session_id, participant, state.proposal_id, approve, reason)
            session = self._store(session.add_message(vote))
        self._emit_message(vote)
        logger.debug(
            "Vote from %s: %s (%d/%d)",
            participant.role.value,
            "approve" if approve else "reject",
            state.total_votes,
            len(session.participants),
        )

        if state.status == ConsensusStatus.ACCEPTED and not was_decided:
            supporters = tuple(
                p.role for p in session.participants if state.votes.get(p.id) and state.votes[p.id].approve
            )
            self.record_decision(
                session_id,
                description=state.proposal.strip().splitlines()[0] if state.proposal.strip() else "Accepted",
                rationale=state.proposal,
                made_by=self._proposer_role(session, state),
                supporters=supporters,
            )
            if session.is_active:
                self._set_status(session_id, SessionStatus.CONSENSUS_REACHED)
            logger.info("Consensus reached in session %s", session_id)
            self._events.emit(ConsensusReached(session_id, state.proposal, state.approval_percentage))
        return state

    def _proposer_role(self, session: CollaborationSession, state: ConsensusState) -> AgentRole | None:
        for message in session.messages:
            if message.id == state.proposal_id:
                return message.sender_role
        return None

    def withdraw_proposal(self, session_id: str) -> ConsensusState | None:
        with self._lock:
            state = self._proposals.get(session_id)
            if state is None:
                return None
            state = state.withdraw()
            self._proposals[session_id] = state
        return state

    # Shared context

    def _update_context(
        self, session_id: str, update: Callable[[SharedContext], SharedContext]
    ) -> SharedContext | None:
        with self._lock:
            session = self.get_session(session_id)
            if session is None:
                return None
            context = update(session.shared_context)
            self._store(session.with_context(context))
        return context

    def add_artifact(self, session_id: str, name: str, content: str) -> SharedContext | None:
        return self._update_context(session_id, lambda c: c.with_artifact(name, content))

    def add_fact(self, session_id: str, fact: str) -> SharedContext | None:
        return self._update_context(session_id, lambda c: c.with_fact(fact))

    def add_question(self, session_id: str, question: str) -> SharedContext | None:
        return self._update_context(session_id, lambda c: c.with_question(question))

    def resolve_question(self, session_id: str, question: str) -> SharedContext | None:
        return self._update_context(session_id, lambda c: c.resolve_question(question))

    # Results and statistics

    def _create_result(self, session: CollaborationSession, duration_ms: int) -> CollaborationResult:
        status = session.status
        success = status in (SessionStatus.COMPLETED, SessionStatus.CONSENSUS_REACHED)
        if status == SessionStatus.CONSENSUS_REACHED:
            outcome = "Consensus reached"
        elif status == SessionStatus.COMPLETED and session.shared_context.decisions:
            outcome = f"Completed with {len(session.shared_context.decisions)} decision(s)"
        elif status == SessionStatus.COMPLETED:
            outcome = "Session completed"
        elif status == SessionStatus.CANCELLED:
            outcome = "Session cancelled"
        else:
            outcome = "Session failed"

        errors = tuple(
            f"{p.role.display_name} could not respond"
            for p in session.participants
            if p.status == ParticipantStatus.BLOCKED
        )
        return CollaborationResult(
            session_id=session.id,
            goal=session.goal,
            success=success,
            status=status,
            outcome=outcome,
            decisions=session.shared_context.decisions,
            artifacts=dict(session.shared_context.artifacts),
            total_turns=session.current_turn,
            message_count=session.message_count,
            participant_contributions=count_contributions(session.messages),
            duration_ms=max(0, duration_ms),
            errors=errors,
        )

    def get_stats(self) -> CollaborationStats:
        sessions = self.get_all_sessions()
        return CollaborationStats(
            total_sessions=len(sessions),
            active_sessions=sum(1 for s in sessions if s.is_active),
            completed_sessions=sum(
                1 for s in sessions if s.status in (SessionStatus.COMPLETED, SessionStatus.CONSENSUS_REACHED)
            ),
            total_messages=sum(s.message_count for s in sessions),
            total_decisions=sum(len(s.shared_context.decisions) for s in sessions),
            by_protocol=dict(Counter(s.protocol for s in sessions)),
        )

    # Events

    def _emit_message(self, message: CollaborationMessage) -> None:
        self._events.emit(MessageSent(message.session_id, message.id, message.sender_role, message.type))

    def _emit_turn(self, session: CollaborationSession) -> None:
        logger.debug("Session %s advanced to turn %d", session.id, session.current_turn)
        self._events.emit(TurnAdvanced(session.id, session.current_turn, session.get_current_participant().role))

    def add_listener(self, listener: Listener) -> None:
        self._events.add(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._events.remove(listener)
