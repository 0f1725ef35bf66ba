"""Tests for the collaboration orchestrator."""
import asyncio

import pytest

from ensemble.collaboration.consensus import ConsensusStatus
from ensemble.collaboration.models import (
    CollaborationProtocol,
    ConsensusReached,
    MessageSent,
    MessageType,
    ParticipantStatus,
    SessionCompleted,
    SessionFailed,
    SessionStarted,
    SessionStatus,
    TurnAdvanced,
)
from ensemble.collaboration.orchestrator import CollaborationOrchestrator, build_turn_prompt, parse_vote
from ensemble.config.schema import EnsembleConfig
from ensemble.errors import InvalidTransitionError
from ensemble.specialists.roles import AgentRole

TRIO = [AgentRole.ARCHITECT, AgentRole.IMPLEMENTER, AgentRole.REVIEWER]


@pytest.fixture
def orchestrator(service):
    return CollaborationOrchestrator(service)


def started(orchestrator, roles=TRIO, protocol=CollaborationProtocol.ROUND_ROBIN, **kwargs):
    session = orchestrator.create_session("test", "ship the feature", roles, protocol, **kwargs)
    return orchestrator.start_session(session.id)


def test_parse_vote():
    assert parse_vote("APPROVE: clean design") == (True, "clean design")
    assert parse_vote("I reject this, too risky")[0] is False
    assert parse_vote("Reject. Though I'd approve a smaller version")[0] is False
    assert parse_vote("Sounds fine")[0] is False


def test_build_turn_prompt_includes_context(orchestrator):
    session = started(orchestrator)
    orchestrator.add_fact(session.id, "Python 3.12 only")
    orchestrator.add_question(session.id, "Which database?")
    session = orchestrator.get_session(session.id)

    prompt = build_turn_prompt(session, session.participants[0], "hurry up")

    assert "ship the feature" in prompt
    assert "Python 3.12 only" in prompt
    assert "Which database?" in prompt
    assert "hurry up" in prompt


def test_start_session_binds_specialists(orchestrator, service):
    events = []
    orchestrator.add_listener(events.append)

    session = started(orchestrator)

    assert session.status == SessionStatus.ACTIVE
    assert all(p.agent == service.get_specialist(p.role) for p in session.participants)
    assert isinstance(events[0], SessionStarted)
    assert events[0].participant_count == 3


@pytest.mark.asyncio
async def test_execute_turn_appends_and_advances(orchestrator, scripted_invoker):
    scripted_invoker.script(AgentRole.ARCHITECT, "Split it into two services")
    session = started(orchestrator)
    events = []
    orchestrator.add_listener(events.append)

    result = await orchestrator.execute_turn(session.id)

    assert result.success
    assert result.message.sender_role == AgentRole.ARCHITECT
    assert result.session.current_turn == 1
    assert result.session.participants[0].message_count == 1
    assert [type(e) for e in events] == [MessageSent, TurnAdvanced]
    assert events[1].next_role == AgentRole.IMPLEMENTER


@pytest.mark.asyncio
async def test_execute_turn_requires_active_session(orchestrator):
    session = orchestrator.create_session("s", "g", TRIO)

    result = await orchestrator.execute_turn(session.id)

    assert not result.success
    assert "not active" in result.error


@pytest.mark.asyncio
async def test_failed_turn_blocks_participant(orchestrator, scripted_invoker):
    scripted_invoker.fail(AgentRole.ARCHITECT, "timeout")
    session = started(orchestrator)

    result = await orchestrator.execute_turn(session.id)

    assert not result.success
    assert result.error == "timeout"
    assert result.session.participants[0].status == ParticipantStatus.BLOCKED
    assert result.session.current_turn == 0


@pytest.mark.asyncio
async def test_max_turns_stops_run(orchestrator):
    session = started(orchestrator, max_turns=2)

    messages = await orchestrator.run_until(session.id, max_turns=5)

    assert len(messages) == 2
    assert orchestrator.get_session(session.id).has_reached_max_turns


@pytest.mark.asyncio
async def test_run_round(orchestrator):
    session = started(orchestrator)
    messages = await orchestrator.run_round(session.id)
    assert [m.sender_role for m in messages] == TRIO


@pytest.mark.asyncio
async def test_round_robin_session(orchestrator):
    """Test round robin gives every participant one turn per round."""
    session = orchestrator.create_session("rr", "design an API", TRIO)

    result = await orchestrator.execute_session(session.id, max_rounds=2)

    final = orchestrator.get_session(session.id)
    assert result.success
    assert result.status == SessionStatus.COMPLETED
    assert result.total_turns == 6
    assert [m.sender_role for m in final.messages] == TRIO * 2
    assert result.participant_contributions == {role: 2 for role in TRIO}
    assert result.most_active_participant == AgentRole.ARCHITECT


@pytest.mark.asyncio
async def test_debate_stops_on_agreement(orchestrator, scripted_invoker):
    scripted_invoker.script(AgentRole.ARCHITECT, "Monolith first", "Keep it simple")
    scripted_invoker.script(AgentRole.IMPLEMENTER, "Microservices", "Agreed, monolith first")
    session = orchestrator.create_debate("monolith or services", AgentRole.ARCHITECT, AgentRole.IMPLEMENTER)

    result = await orchestrator.execute_session(session.id, max_rounds=3)

    assert result.success
    assert result.message_count == 4
    assert result.total_turns == 4


@pytest.mark.asyncio
async def test_broadcast_turn_advances_once(orchestrator, scripted_invoker):
    """Test every participant answers in one turn, kept in participant order."""
    scripted_invoker.delays[AgentRole.ARCHITECT] = 0.03
    session = started(orchestrator, protocol=CollaborationProtocol.BROADCAST)

    result = await orchestrator.broadcast_turn(session.id)

    assert result.success
    assert result.session.current_turn == 1
    assert [m.sender_role for m in result.session.messages] == TRIO


@pytest.mark.asyncio
async def test_broadcast_session(orchestrator):
    session = orchestrator.create_session("b", "g", TRIO, CollaborationProtocol.BROADCAST)

    result = await orchestrator.execute_session(session.id, max_rounds=2)

    assert result.total_turns == 2
    assert result.message_count == 6


@pytest.mark.asyncio
async def test_broadcast_failure_fails_session(orchestrator, scripted_invoker):
    scripted_invoker.fail(AgentRole.REVIEWER)
    session = orchestrator.create_session("b", "g", TRIO, CollaborationProtocol.BROADCAST)
    events = []
    orchestrator.add_listener(events.append)

    result = await orchestrator.execute_session(session.id)

    assert not result.success
    assert result.status == SessionStatus.FAILED
    assert result.errors == ("Reviewer could not respond",)
    assert any(isinstance(e, SessionFailed) for e in events)
    assert isinstance(events[-1], SessionCompleted)


@pytest.mark.asyncio
async def test_leader_follower(orchestrator, scripted_invoker):
    """Test followers reply to the leader, who closes with a summary decision."""
    scripted_invoker.script(
        AgentRole.ARCHITECT, "Plan: split modules", "Decision: three modules\nBecause reasons"
    )
    roles = [AgentRole.ARCHITECT, AgentRole.IMPLEMENTER, AgentRole.TESTER]
    session = orchestrator.create_session("lf", "restructure", roles, CollaborationProtocol.LEADER_FOLLOWER)

    result = await orchestrator.execute_session(session.id, max_rounds=1)

    messages = orchestrator.get_session(session.id).messages
    assert [m.sender_role for m in messages] == roles + [AgentRole.ARCHITECT]
    assert messages[1].reply_to == messages[0].id
    assert messages[2].reply_to == messages[0].id
    assert messages[-1].type == MessageType.SUMMARY
    assert result.decisions[0].description == "Decision: three modules"
    assert result.decisions[0].made_by == AgentRole.ARCHITECT
    assert result.decisions[0].supporters == (AgentRole.IMPLEMENTER, AgentRole.TESTER)


@pytest.mark.asyncio
async def test_free_form_mentioned_participant_speaks_next(orchestrator, scripted_invoker):
    scripted_invoker.script(AgentRole.ARCHITECT, "@tester can you check edge cases?")
    roles = [AgentRole.ARCHITECT, AgentRole.IMPLEMENTER, AgentRole.TESTER]
    session = started(orchestrator, roles=roles, protocol=CollaborationProtocol.FREE_FORM)

    messages = await orchestrator.run_until(session.id, max_turns=2)

    assert [m.sender_role for m in messages] == [AgentRole.ARCHITECT, AgentRole.TESTER]


@pytest.mark.asyncio
async def test_round_robin_ignores_mentions(orchestrator, scripted_invoker):
    scripted_invoker.script(AgentRole.ARCHITECT, "@reviewer thoughts?")
    session = started(orchestrator)

    messages = await orchestrator.run_until(session.id, max_turns=2)

    assert messages[1].sender_role == AgentRole.IMPLEMENTER


@pytest.mark.asyncio
async def test_consensus_reached(orchestrator, scripted_invoker):
    scripted_invoker.script(AgentRole.ARCHITECT, "Use SQLite for storage", "APPROVE it is simple")
    scripted_invoker.script(AgentRole.IMPLEMENTER, "APPROVE")
    scripted_invoker.script(AgentRole.REVIEWER, "I approve this")
    session = orchestrator.create_session("c", "pick storage", TRIO, CollaborationProtocol.CONSENSUS)
    events = []
    orchestrator.add_listener(events.append)

    result = await orchestrator.execute_session(session.id)

    assert result.success
    assert result.status == SessionStatus.CONSENSUS_REACHED
    assert result.decisions[0].description == "Use SQLite for storage"
    assert result.decisions[0].made_by == AgentRole.ARCHITECT
    assert set(result.decisions[0].supporters) == set(TRIO)
    assert orchestrator.get_consensus(session.id).status == ConsensusStatus.ACCEPTED
    reached = [e for e in events if isinstance(e, ConsensusReached)]
    assert len(reached) == 1
    assert reached[0].approval_percentage == 1.0


@pytest.mark.asyncio
async def test_consensus_not_reached_fails(orchestrator, scripted_invoker):
    for role in TRIO:
        scripted_invoker.script(role, "REJECT: not convinced")
    session = orchestrator.create_session("c", "pick storage", TRIO, CollaborationProtocol.CONSENSUS)

    result = await orchestrator.execute_session(session.id, max_rounds=2)

    assert not result.success
    assert result.status == SessionStatus.FAILED
    assert orchestrator.get_consensus(session.id).status == ConsensusStatus.REJECTED
    proposals = [m for m in orchestrator.get_session(session.id).messages if m.type == MessageType.PROPOSAL]
    assert [p.sender_role for p in proposals] == [AgentRole.ARCHITECT, AgentRole.IMPLEMENTER]


@pytest.mark.asyncio
async def test_voting_rejection_completes_with_decision(orchestrator, scripted_invoker):
    scripted_invoker.script(AgentRole.ARCHITECT, "Rewrite in Rust", "REJECT")
    scripted_invoker.script(AgentRole.IMPLEMENTER, "REJECT: too costly")
    scripted_invoker.script(AgentRole.REVIEWER, "APPROVE")
    session = orchestrator.create_session("v", "language", TRIO, CollaborationProtocol.VOTING)

    result = await orchestrator.execute_session(session.id)

    assert result.success
    assert result.status == SessionStatus.COMPLETED
    assert result.decisions[0].description.startswith("Rejected: Rewrite in Rust")


@pytest.mark.asyncio
async def test_voting_acceptance(orchestrator, scripted_invoker):
    for role in TRIO:
        scripted_invoker.script(role, "APPROVE")
    session = orchestrator.create_session("v", "language", TRIO, CollaborationProtocol.VOTING)

    result = await orchestrator.execute_session(session.id)

    assert result.status == SessionStatus.CONSENSUS_REACHED


def test_manual_votes(orchestrator):
    """Test votes tally only once every participant has voted."""
    session = started(orchestrator)
    a, b, c = session.participants
    orchestrator.open_proposal(session.id, a.id, "Adopt type hints")

    state = orchestrator.record_vote(session.id, a.id, True)
    state = orchestrator.record_vote(session.id, b.id, True)
    assert state.status == ConsensusStatus.PENDING

    state = orchestrator.record_vote(session.id, b.id, False, "changed my mind")
    state = orchestrator.record_vote(session.id, c.id, False)

    assert state.total_votes == 3
    assert state.status == ConsensusStatus.REJECTED
    votes = [m for m in orchestrator.get_session(session.id).messages if m.type == MessageType.VOTE]
    assert len(votes) == 4
    assert orchestrator.get_session(session.id).is_active


def test_vote_from_stranger_is_ignored(orchestrator):
    session = started(orchestrator)
    orchestrator.open_proposal(session.id, session.participants[0].id, "x")
    assert orchestrator.record_vote(session.id, "nobody", True) is None


def test_withdraw_proposal(orchestrator):
    session = started(orchestrator)
    orchestrator.open_proposal(session.id, session.participants[0].id, "x")

    assert orchestrator.withdraw_proposal(session.id).status == ConsensusStatus.WITHDRAWN
    for p in session.participants:
        state = orchestrator.record_vote(session.id, p.id, True)
    assert state.status == ConsensusStatus.WITHDRAWN


@pytest.mark.asyncio
async def test_pause_and_resume(orchestrator):
    session = started(orchestrator)
    orchestrator.pause_session(session.id)

    assert not (await orchestrator.execute_turn(session.id)).success

    orchestrator.resume_session(session.id)
    assert (await orchestrator.execute_turn(session.id)).success


def test_await_and_provide_user_input(orchestrator):
    session = started(orchestrator)

    waiting = orchestrator.await_user(session.id, "Which region?")
    assert waiting.status == SessionStatus.WAITING_FOR_USER
    assert waiting.shared_context.open_questions == ("Which region?",)

    resumed = orchestrator.provide_user_input(session.id, "eu-west-1")
    assert resumed.status == SessionStatus.ACTIVE
    assert resumed.shared_context.open_questions == ()
    assert "User: eu-west-1" in resumed.shared_context.facts


def test_cancel_is_terminal(orchestrator):
    session = started(orchestrator)
    orchestrator.cancel_session(session.id)

    with pytest.raises(InvalidTransitionError):
        orchestrator.resume_session(session.id)

    result = orchestrator.end_session(session.id)
    assert result.status == SessionStatus.CANCELLED
    assert not result.success
    assert result.outcome == "Session cancelled"


@pytest.mark.asyncio
async def test_cancel_during_turn_drops_the_reply(orchestrator, scripted_invoker):
    """Test a reply arriving for a cancelled session is not recorded."""
    scripted_invoker.delays[AgentRole.ARCHITECT] = 5
    session = started(orchestrator)
    events = []
    orchestrator.add_listener(events.append)

    turn = asyncio.create_task(orchestrator.execute_turn(session.id))
    while not scripted_invoker.calls_for(AgentRole.ARCHITECT):
        await asyncio.sleep(0.01)
    orchestrator.cancel_session(session.id)
    result = await asyncio.wait_for(turn, timeout=1)

    assert not result.success
    assert result.error == "Session is not active (cancelled)"
    session = orchestrator.get_session(session.id)
    assert session.status == SessionStatus.CANCELLED
    assert session.message_count == 0
    assert session.current_turn == 0
    assert not [e for e in events if isinstance(e, (MessageSent, TurnAdvanced))]


@pytest.mark.asyncio
async def test_cancel_during_vote_stops_voting(orchestrator, scripted_invoker):
    scripted_invoker.script(AgentRole.ARCHITECT, "Use SQLite for storage", "APPROVE")
    scripted_invoker.script(AgentRole.IMPLEMENTER, "APPROVE")
    scripted_invoker.delays[AgentRole.REVIEWER] = 5
    session = orchestrator.create_session("c", "pick storage", TRIO, CollaborationProtocol.CONSENSUS)

    run = asyncio.create_task(orchestrator.execute_session(session.id))
    while not scripted_invoker.calls_for(AgentRole.REVIEWER):
        await asyncio.sleep(0.01)
    orchestrator.cancel_session(session.id)
    result = await asyncio.wait_for(run, timeout=1)

    assert result.status == SessionStatus.CANCELLED
    assert result.decisions == ()
    session = orchestrator.get_session(session.id)
    assert [m.type for m in session.messages] == [MessageType.PROPOSAL, MessageType.VOTE, MessageType.VOTE]
    assert len(scripted_invoker.calls_for(AgentRole.REVIEWER)) == 1
    assert orchestrator.record_vote(session.id, session.participants[2].id, True) is None


def test_unknown_session(orchestrator):
    assert orchestrator.get_session("missing") is None
    assert orchestrator.start_session("missing") is None
    assert orchestrator.end_session("missing") is None
    assert orchestrator.add_fact("missing", "x") is None


def test_shared_context_helpers(orchestrator):
    session = started(orchestrator)
    orchestrator.add_artifact(session.id, "schema.sql", "CREATE TABLE t ();")
    context = orchestrator.resolve_question(session.id, "never asked")

    assert context.artifacts == {"schema.sql": "CREATE TABLE t ();"}
    result = orchestrator.end_session(session.id)
    assert result.has_artifacts


def test_review_session_factory(orchestrator):
    session = orchestrator.create_review("login form")
    assert [p.role for p in session.participants] == [AgentRole.IMPLEMENTER, AgentRole.REVIEWER]


@pytest.mark.asyncio
async def test_stats(orchestrator):
    await orchestrator.execute_session(orchestrator.create_session("a", "g", TRIO).id, max_rounds=1)
    started(orchestrator, protocol=CollaborationProtocol.BROADCAST)

    stats = orchestrator.get_stats()

    assert stats.total_sessions == 2
    assert stats.active_sessions == 1
    assert stats.completed_sessions == 1
    assert stats.total_messages == 3
    assert stats.by_protocol[CollaborationProtocol.BROADCAST] == 1


def test_from_config(service):
    config = EnsembleConfig.model_validate({"collaboration": {"max_turns": 5, "consensus_threshold": 1.0}})
    orchestrator = CollaborationOrchestrator.from_config(config, service)

    assert orchestrator.create_session("s", "g", TRIO).max_turns == 5
    assert orchestrator.consensus_threshold == 1.0
