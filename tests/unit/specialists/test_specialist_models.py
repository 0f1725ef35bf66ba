"""Tests for specialist data models."""
import dataclasses

import pytest

from ensemble.specialists.models import (
    AgentResponse,
    ArtifactType,
    ResponseArtifact,
    ReviewFeedback,
    ReviewItem,
    ReviewSeverity,
    SpecialistAgent,
    SpecialistStats,
    SuggestedAction,
)
from ensemble.specialists.roles import AgentRole, Capability, default_capabilities


def make_agent(role=AgentRole.IMPLEMENTER, capabilities=None):
    return SpecialistAgent(
        role=role,
        system_prompt="You are helpful.",
        capabilities=capabilities if capabilities is not None else default_capabilities(role),
    )


def test_agent_is_immutable():
    agent = make_agent()
    with pytest.raises(dataclasses.FrozenInstanceError):
        agent.temperature = 0.1


def test_agent_flags_follow_capabilities():
    """Test can_modify_files and is_read_only derive from the capability set."""
    implementer = make_agent(AgentRole.IMPLEMENTER)
    reviewer = make_agent(AgentRole.REVIEWER)

    assert implementer.can_modify_files
    assert not implementer.is_read_only
    assert reviewer.is_read_only
    assert reviewer.can_perform(Capability.ANALYZE_AST)
    assert not reviewer.can_perform(Capability.WRITE_CODE)


def test_create_request_and_helpers():
    agent = make_agent()
    request = agent.create_request("do it", "ctx")

    assert request.agent_id == agent.id
    assert request.role == AgentRole.IMPLEMENTER

    extended = request.with_files(["a.py"]).with_context("more")
    assert extended.referenced_files == ("a.py",)
    assert extended.context == "ctx\n\nmore"
    assert request.referenced_files == ()


def test_with_context_when_empty():
    request = make_agent().create_request("do it")
    assert request.with_context("added").context == "added"


def test_response_confidence_bounds():
    with pytest.raises(ValueError):
        AgentResponse(request_id="r", agent_id="a", role=AgentRole.TESTER, content="x", confidence=1.5)


def test_response_properties():
    """Test delegation, confidence and action helpers."""
    response = AgentResponse(
        request_id="r",
        agent_id="a",
        role=AgentRole.IMPLEMENTER,
        content="done",
        confidence=0.8,
        delegate_to=AgentRole.TESTER,
        suggested_actions=(SuggestedAction("a", "low", 1), SuggestedAction("b", "high", 9)),
        artifacts=(
            ResponseArtifact("Code Block", ArtifactType.CODE, "x = 1\ny = 2"),
            ResponseArtifact("Notes", ArtifactType.DOCUMENTATION, "text"),
        ),
    )

    assert response.suggests_delegation
    assert response.is_high_confidence
    assert not response.is_error
    assert response.has_actions
    assert [a.action for a in response.actions_by_priority()] == ["b", "a"]
    assert len(response.code_artifacts()) == 1
    assert response.code_artifacts()[0].line_count == 2


def test_review_feedback_counts():
    feedback = ReviewFeedback(
        approved=False,
        overall_assessment="needs work",
        items=(
            ReviewItem(ReviewSeverity.CRITICAL, "sql injection", is_blocking=True),
            ReviewItem(ReviewSeverity.NITPICK, "naming"),
        ),
    )

    assert feedback.critical_count == 1
    assert feedback.has_critical_issues
    assert feedback.has_blocking_issues


def test_stats_delegation_rate():
    stats = SpecialistStats(4, {AgentRole.TESTER: 4}, 0.7, 10.0, 1)
    assert stats.delegation_rate == 0.25
    assert SpecialistStats(0, {}, 0.0, 0.0, 0).delegation_rate == 0.0
