"""Tests for the specialist invocation engine."""
import asyncio

import pytest

from ensemble.config.schema import EnsembleConfig
from ensemble.specialists.models import AgentDelegated, AgentFailed, AgentInvoked, AgentResponded
from ensemble.specialists.roles import AgentRole, Capability
from ensemble.specialists.service import SpecialistService


@pytest.mark.asyncio
async def test_invoke_records_and_emits_in_order(service, scripted_invoker):
    """Test invoke emits AgentInvoked then AgentResponded and records history."""
    scripted_invoker.script(AgentRole.ARCHITECT, "Use a layered design.")
    events = []
    service.add_listener(events.append)

    response = await service.invoke(AgentRole.ARCHITECT, "design it", "some context")

    assert response.content == "Use a layered design."
    assert response.role == AgentRole.ARCHITECT
    assert [type(e) for e in events] == [AgentInvoked, AgentResponded]
    assert events[1].response is response
    assert service.get_history_for_role(AgentRole.ARCHITECT) == [response]
    assert scripted_invoker.calls[0]["context"] == "some context"


@pytest.mark.asyncio
async def test_invoke_failure_is_an_error_response(service, scripted_invoker):
    """Test a failed model call comes back as a zero-confidence error response."""
    scripted_invoker.fail(AgentRole.TESTER, "quota exceeded")
    events = []
    service.add_listener(events.append)

    response = await service.invoke(AgentRole.TESTER, "write tests")

    assert response.is_error
    assert response.error == "quota exceeded"
    assert response.confidence == 0.0
    assert [type(e) for e in events] == [AgentInvoked, AgentFailed]
    assert service.get_stats().total_invocations == 1


@pytest.mark.asyncio
async def test_raising_invoker_becomes_error_response(raising_service):
    """Test an invoker exception is reported like any other failed call."""
    events = []
    raising_service.add_listener(events.append)

    response = await raising_service.invoke(AgentRole.DEBUGGER, "why does it hang")

    assert response.is_error
    assert response.error == "connection reset"
    assert response.confidence == 0.0
    assert [type(e) for e in events] == [AgentInvoked, AgentFailed]
    assert events[1].error == "connection reset"
    assert raising_service.get_history() == [response]


@pytest.mark.asyncio
async def test_invoke_uses_specialist_temperature(scripted_invoker):
    service = SpecialistService(scripted_invoker, default_temperature=0.3)
    await service.invoke(AgentRole.REVIEWER, "check")
    assert scripted_invoker.calls[0]["temperature"] == 0.3


@pytest.mark.asyncio
async def test_invoke_chain_preserves_order(service, scripted_invoker):
    roles = [AgentRole.ARCHITECT, AgentRole.IMPLEMENTER, AgentRole.REVIEWER]
    scripted_invoker.delays[AgentRole.ARCHITECT] = 0.02

    responses = await service.invoke_chain(roles, "build a cache")

    assert [r.role for r in responses] == roles
    assert [c["role"] for c in scripted_invoker.calls] == roles
    assert all(c["context"] is None for c in scripted_invoker.calls)


@pytest.mark.asyncio
async def test_invoke_parallel_returns_every_role(service, scripted_invoker):
    """Test result keys equal the requested roles regardless of completion order."""
    scripted_invoker.delays[AgentRole.ARCHITECT] = 0.05
    scripted_invoker.delays[AgentRole.SECURITY] = 0.01
    scripted_invoker.script(AgentRole.ARCHITECT, "slow")
    scripted_invoker.script(AgentRole.SECURITY, "fast")

    results = await service.invoke_parallel([AgentRole.ARCHITECT, AgentRole.SECURITY], "audit")

    assert set(results) == {AgentRole.ARCHITECT, AgentRole.SECURITY}
    assert results[AgentRole.ARCHITECT].content == "slow"
    assert results[AgentRole.SECURITY].content == "fast"


@pytest.mark.asyncio
async def test_invoke_parallel_deduplicates(service, scripted_invoker):
    results = await service.invoke_parallel([AgentRole.TESTER, AgentRole.TESTER], "test")
    assert list(results) == [AgentRole.TESTER]
    assert len(scripted_invoker.calls) == 1


@pytest.mark.asyncio
async def test_concurrent_invocations_keep_every_entry(service):
    """Test history and stats stay consistent under concurrent invocations."""
    events = []
    service.add_listener(events.append)
    roles = list(AgentRole) * 5

    await asyncio.gather(*(service.invoke(role, "go") for role in roles))

    stats = service.get_stats()
    assert stats.total_invocations == len(roles)
    assert all(count == 5 for count in stats.invocations_by_role.values())
    assert len(events) == 2 * len(roles)


@pytest.mark.asyncio
async def test_delegate_emits_event(service, scripted_invoker):
    events = []
    service.add_listener(events.append)

    response = await service.delegate(AgentRole.ARCHITECT, AgentRole.TESTER, "cover the parser", "plan v1")

    assert response.role == AgentRole.TESTER
    delegated = [e for e in events if isinstance(e, AgentDelegated)]
    assert len(delegated) == 1
    assert delegated[0].from_role == AgentRole.ARCHITECT
    assert delegated[0].to_role == AgentRole.TESTER
    context = scripted_invoker.calls[0]["context"]
    assert "Delegation from Architect" in context
    assert "plan v1" in context


@pytest.mark.asyncio
async def test_follow_delegation(service, scripted_invoker):
    scripted_invoker.script(AgentRole.IMPLEMENTER, "Done. This needs tests.")
    first = await service.invoke(AgentRole.IMPLEMENTER, "write a parser")
    assert first.delegate_to == AgentRole.TESTER

    follow = await service.follow_delegation(first, "write a parser")
    assert follow.role == AgentRole.TESTER

    plain = await service.invoke(AgentRole.REVIEWER, "look")
    assert await service.follow_delegation(plain, "look") is None


@pytest.mark.asyncio
async def test_review_loop_approves_first_time(service, scripted_invoker):
    scripted_invoker.script(AgentRole.IMPLEMENTER, "def f(): pass")
    scripted_invoker.script(AgentRole.REVIEWER, "Approved.")

    result = await service.implement_review_loop("write f", max_iterations=3)

    assert result.approved
    assert result.iterations == 1
    assert result.final_content == "def f(): pass"


@pytest.mark.asyncio
async def test_review_loop_revises_until_approved(service, scripted_invoker):
    """Test reviewer feedback is sent back to the implementer."""
    scripted_invoker.script(AgentRole.IMPLEMENTER, "v1", "v2")
    scripted_invoker.script(AgentRole.REVIEWER, "Changes requested: must fix the bug", "Approved")

    result = await service.implement_review_loop("write f", max_iterations=3)

    assert result.approved
    assert result.iterations == 2
    assert result.final_content == "v2"
    revision_prompt = scripted_invoker.calls_for(AgentRole.IMPLEMENTER)[1]["prompt"]
    assert "CRITICAL" in revision_prompt
    assert "v1" in revision_prompt


@pytest.mark.asyncio
async def test_review_loop_stops_at_max_iterations(service, scripted_invoker):
    scripted_invoker.script(AgentRole.REVIEWER, "Changes requested")

    result = await service.implement_review_loop("write f", max_iterations=2)

    assert not result.approved
    assert result.iterations == 2
    assert len(scripted_invoker.calls_for(AgentRole.REVIEWER)) == 2
    assert len(scripted_invoker.calls_for(AgentRole.IMPLEMENTER)) == 2


@pytest.mark.asyncio
async def test_review_loop_runs_at_least_once(service, scripted_invoker):
    scripted_invoker.script(AgentRole.REVIEWER, "Changes requested")

    result = await service.implement_review_loop("write f", max_iterations=0)

    assert result.iterations == 1
    assert len(scripted_invoker.calls_for(AgentRole.REVIEWER)) == 1


@pytest.mark.asyncio
async def test_removed_listener_gets_nothing(service):
    events = []
    service.add_listener(events.append)
    service.remove_listener(events.append)

    await service.invoke(AgentRole.TESTER, "go")

    assert events == []


@pytest.mark.asyncio
async def test_clear_history(service):
    await service.invoke(AgentRole.TESTER, "go")
    service.clear_history()
    assert service.get_history() == []
    assert service.get_stats().total_invocations == 0


def test_specialist_lookups(service):
    assert len(service.get_all_specialists()) == len(AgentRole)
    assert {s.role for s in service.get_primary_specialists()} == {
        AgentRole.ARCHITECT,
        AgentRole.IMPLEMENTER,
        AgentRole.REVIEWER,
        AgentRole.TESTER,
    }
    runners = {s.role for s in service.get_specialists_with_capability(Capability.RUN_TESTS)}
    assert runners == {AgentRole.TESTER, AgentRole.OPTIMIZER}


def test_suggest_specialist(service):
    assert service.suggest_specialist("please fix this null pointer bug") == AgentRole.DEBUGGER


def test_custom_specialist(service):
    custom = service.create_custom_specialist(
        AgentRole.REVIEWER,
        custom_prompt="Be strict.",
        extra_capabilities=[Capability.WRITE_CODE],
        temperature=0.1,
    )

    assert custom.system_prompt == "Be strict."
    assert custom.can_modify_files
    assert custom.temperature == 0.1
    assert service.get_specialist(AgentRole.REVIEWER).is_read_only


def test_from_config_applies_overrides(scripted_invoker):
    config = EnsembleConfig.model_validate(
        {
            "specialists": {
                "default_temperature": 0.5,
                "roles": {"security": {"temperature": 0.0, "extra_capabilities": ["run_tests"]}},
            },
            "routing": {"keywords": {"tester": ["spec"]}, "default_role": "architect"},
        }
    )

    service = SpecialistService.from_config(config, scripted_invoker)

    security = service.get_specialist(AgentRole.SECURITY)
    assert security.temperature == 0.0
    assert security.can_perform(Capability.RUN_TESTS)
    assert service.get_specialist(AgentRole.TESTER).temperature == 0.5
    assert service.suggest_specialist("write a spec") == AgentRole.TESTER
    assert service.suggest_specialist("hello") == AgentRole.ARCHITECT
