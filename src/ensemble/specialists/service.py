"""Specialist invocation engine."""

import asyncio
import logging
import threading
import time
from collections import Counter
from collections.abc import Iterable

from ensemble.config.defaults import DEFAULT_MAX_ITERATIONS, DEFAULT_TEMPERATURE
from ensemble.errors import InvocationError
from ensemble.events import EventBus, Listener
from ensemble.llm.client import LLMResponse
from ensemble.llm.invoker import ModelInvoker
from ensemble.specialists import parsing
from ensemble.specialists.models import (
    AgentDelegated,
    AgentFailed,
    AgentInvoked,
    AgentResponded,
    AgentResponse,
    ReviewLoopResult,
    ReviewSeverity,
    SpecialistAgent,
    SpecialistEvent,
    SpecialistRequest,
    SpecialistStats,
)
from ensemble.specialists.prompts import (
    build_user_prompt,
    get_system_prompt,
    review_prompt,
    revision_prompt,
)
from ensemble.specialists.roles import (
    PRIMARY_ROLES,
    SUPPORTING_ROLES,
    AgentRole,
    Capability,
    default_capabilities,
)
from ensemble.specialists.router import SpecialistRouter

logger = logging.getLogger(__name__)


class SpecialistService:
    """Holds one specialist per role and dispatches invocations to them.

    History and statistics are guarded by a lock so concurrent invocations
    never lose an entry. Events are delivered synchronously, after the state
    they describe has been recorded.
    """

    def __init__(
        self,
        invoker: ModelInvoker,
        router: SpecialistRouter | None = None,
        specialists: dict[AgentRole, SpecialistAgent] | None = None,
        default_temperature: float = DEFAULT_TEMPERATURE,
    ):
        self.invoker = invoker
        self.router = router or SpecialistRouter()
        self.default_temperature = default_temperature
        self._specialists: dict[AgentRole, SpecialistAgent] = {
            role: self._create_specialist(role) for role in AgentRole
        }
        if specialists:
            self._specialists.update(specialists)
        self._responses: list[AgentResponse] = []
        self._lock = threading.Lock()
        self._events: EventBus[SpecialistEvent] = EventBus()
        logger.info("Specialist service ready with %d specialists", len(self._specialists))

    @classmethod
    def from_config(cls, config, invoker: ModelInvoker) -> "SpecialistService":
        """Build a service from an ``EnsembleConfig``, applying per-role overrides."""
        service = cls(
            invoker,
            router=SpecialistRouter(config.routing.keywords, config.routing.default_role),
            default_temperature=config.specialists.default_temperature,
        )
        for role in AgentRole:
            override = config.get_role_override(role)
            if override.temperature is None and not override.system_prompt and not override.extra_capabilities:
                continue
            service._specialists[role] = service.create_custom_specialist(
                role,
                custom_prompt=override.system_prompt,
                extra_capabilities={Capability.parse(c) for c in override.extra_capabilities},
                temperature=override.temperature,
            )
        return service

    # Specialists

    def _create_specialist(self, role: AgentRole) -> SpecialistAgent:
        return SpecialistAgent(
            role=role,
            system_prompt=get_system_prompt(role),
            capabilities=default_capabilities(role),
            temperature=self.default_temperature,
        )

    def create_custom_specialist(
        self,
        role: AgentRole,
        custom_prompt: str | None = None,
        extra_capabilities: Iterable[Capability] = (),
        temperature: float | None = None,
    ) -> SpecialistAgent:
        """Specialist with a custom prompt, extra capabilities or temperature.

        The result is not registered; pass it to ``invoke_with``.
        """
        return SpecialistAgent(
            role=role,
            system_prompt=custom_prompt or get_system_prompt(role),
            capabilities=default_capabilities(role) | frozenset(extra_capabilities),
            temperature=self.default_temperature if temperature is None else temperature,
        )

    def get_specialist(self, role: AgentRole) -> SpecialistAgent:
        return self._specialists[role]

    def get_all_specialists(self) -> list[SpecialistAgent]:
        return list(self._specialists.values())

    def get_specialists_with_capability(self, capability: Capability) -> list[SpecialistAgent]:
        return [s for s in self._specialists.values() if s.can_perform(capability)]

    def get_primary_specialists(self) -> list[SpecialistAgent]:
        return [s for role, s in self._specialists.items() if role in PRIMARY_ROLES]

    def get_supporting_specialists(self) -> list[SpecialistAgent]:
        return [s for role, s in self._specialists.items() if role in SUPPORTING_ROLES]

    # Invocation

    async def invoke(self, role: AgentRole, prompt: str, context: str | None = None) -> AgentResponse:
        """Invoke the specialist registered for ``role``."""
        specialist = self.get_specialist(role)
        return await self.invoke_with(specialist, specialist.create_request(prompt, context))

    async def invoke_with(self, specialist: SpecialistAgent, request: SpecialistRequest) -> AgentResponse:
        """Invoke a specific specialist with a full request.

        A failed model call does not raise; it comes back as a zero-confidence
        response with ``error`` set and is recorded like any other response.
        """
        self._events.emit(AgentInvoked(role=specialist.role, request_id=request.id))
        logger.debug("Invoking %s (request %s)", specialist.role.value, request.id)

        start = time.monotonic()
        try:
            result = await self._complete(specialist, request)
        except InvocationError as e:
            response = AgentResponse(
                request_id=request.id,
                agent_id=specialist.id,
                role=specialist.role,
                content=f"Error: {e}",
                confidence=0.0,
                tokens_used=e.tokens_used,
                duration_ms=int((time.monotonic() - start) * 1000),
                error=str(e),
            )
            self._record(response)
            logger.warning("%s invocation failed: %s", specialist.role.value, e)
            self._events.emit(AgentFailed(role=specialist.role, request_id=request.id, error=str(e)))
            return response
        duration_ms = int((time.monotonic() - start) * 1000)

        response = self._parse_response(request, specialist, result.content, result.tokens_used, duration_ms)
        self._record(response)
        self._events.emit(AgentResponded(role=specialist.role, response=response))
        return response

    async def _complete(self, specialist: SpecialistAgent, request: SpecialistRequest) -> LLMResponse:
        try:
            result = await self.invoker.complete(
                specialist.system_prompt,
                request.context,
                build_user_prompt(request.prompt, request.referenced_files),
                specialist.temperature,
            )
        except Exception as e:
            raise InvocationError(str(e) or type(e).__name__) from e
        if result.is_error:
            raise InvocationError(result.error, tokens_used=result.tokens_used)
        return result

    def _parse_response(
        self,
        request: SpecialistRequest,
        specialist: SpecialistAgent,
        content: str,
        tokens_used: int,
        duration_ms: int,
    ) -> AgentResponse:
        return AgentResponse(
            request_id=request.id,
            agent_id=specialist.id,
            role=specialist.role,
            content=content,
            confidence=parsing.estimate_confidence(content),
            delegate_to=parsing.extract_delegation(content),
            suggested_actions=tuple(parsing.extract_suggested_actions(content)),
            artifacts=tuple(parsing.extract_artifacts(content)),
            tokens_used=tokens_used,
            duration_ms=duration_ms,
        )

    def _record(self, response: AgentResponse) -> None:
        with self._lock:
            self._responses.append(response)

    async def invoke_chain(self, roles: list[AgentRole], prompt: str) -> list[AgentResponse]:
        """Invoke roles one after another; result order matches ``roles``."""
        responses = []
        for role in roles:
            responses.append(await self.invoke(role, prompt))
        return responses

    async def invoke_parallel(
        self, roles: Iterable[AgentRole], prompt: str, context: str | None = None
    ) -> dict[AgentRole, AgentResponse]:
        """Invoke all roles concurrently and wait for every one of them."""
        unique = list(dict.fromkeys(roles))
        responses = await asyncio.gather(*(self.invoke(role, prompt, context) for role in unique))
        return dict(zip(unique, responses))

    # Delegation

    async def delegate(
        self,
        from_role: AgentRole,
        to_role: AgentRole,
        prompt: str,
        context: str | None = None,
    ) -> AgentResponse:
        """Hand ``prompt`` from one specialist to another."""
        lines = [f"## Delegation from {from_role.display_name}"]
        if context:
            lines.extend(["", "### Original Context", context])
        reason = f"Delegating task to {to_role.display_name}"

        logger.info("Delegating from %s to %s", from_role.value, to_role.value)
        self._events.emit(AgentDelegated(from_role=from_role, to_role=to_role, reason=reason))
        return await self.invoke(to_role, prompt, "\n".join(lines))

    async def follow_delegation(self, response: AgentResponse, prompt: str) -> AgentResponse | None:
        """Accept the delegation a response suggests, if any."""
        if response.delegate_to is None:
            return None
        return await self.delegate(response.role, response.delegate_to, prompt, response.content)

    def suggest_specialist(self, text: str) -> AgentRole:
        return self.router.suggest(text)

    # Review loop

    async def implement_review_loop(
        self,
        prompt: str,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        context: str | None = None,
    ) -> ReviewLoopResult:
        """Alternate implementer and reviewer until approval or ``max_iterations``.

        One iteration is one review of the current implementation; at least
        one iteration always runs.
        """
        max_iterations = max(1, max_iterations)
        current = (await self.invoke(AgentRole.IMPLEMENTER, prompt, context)).content
        feedback = None

        for iteration in range(1, max_iterations + 1):
            review = await self.invoke(AgentRole.REVIEWER, review_prompt(current), context)
            feedback = parsing.parse_review_feedback(review.content, review.confidence)
            if feedback.approved:
                logger.info("Review approved after %d iteration(s)", iteration)
                return ReviewLoopResult(current, iteration, True, feedback)
            if iteration == max_iterations:
                break

            notes = []
            for item in feedback.items:
                if item.is_blocking or item.severity == ReviewSeverity.CRITICAL:
                    notes.append(f"- [{item.severity.name}] {item.description}")
                    if item.suggestion:
                        notes.append(f"  Suggestion: {item.suggestion}")
            if not notes:
                notes.append(f"- {feedback.overall_assessment}")
            revision = await self.invoke(AgentRole.IMPLEMENTER, revision_prompt(current, notes), context)
            current = revision.content

        return ReviewLoopResult(current, max_iterations, False, feedback)

    # Statistics

    def get_stats(self) -> SpecialistStats:
        with self._lock:
            responses = list(self._responses)
        total = len(responses)
        return SpecialistStats(
            total_invocations=total,
            invocations_by_role=dict(Counter(r.role for r in responses)),
            average_confidence=sum(r.confidence for r in responses) / total if total else 0.0,
            average_duration_ms=sum(r.duration_ms for r in responses) / total if total else 0.0,
            delegation_count=sum(1 for r in responses if r.suggests_delegation),
        )

    def get_history_for_role(self, role: AgentRole) -> list[AgentResponse]:
        with self._lock:
            return [r for r in self._responses if r.role == role]

    def get_history(self) -> list[AgentResponse]:
        with self._lock:
            return list(self._responses)

    def clear_history(self) -> None:
        with self._lock:
            self._responses.clear()

    # Events

    def add_listener(self, listener: Listener) -> None:
        self._events.add(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._events.remove(listener)
