"""Drive an AgentTask through planning, permission checks and tool calls."""

import asyncio
import json
import logging
import threading
import time
from collections.abc import Iterable

from ensemble.config.defaults import DEFAULT_MAX_TOOL_RETRIES
from ensemble.errors import (
    BudgetExceededError,
    ConfirmationDeclinedError,
    ErrorKind,
    PermissionDeniedError,
    ToolExecutionError,
)
from ensemble.events import EventBus, Listener
from ensemble.execution.protocol import ToolCall, ToolGateway
from ensemble.execution.tools import OperationClass, ToolSpec, get_tool
from ensemble.specialists.models import SpecialistAgent
from ensemble.specialists.roles import AgentRole
from ensemble.specialists.service import SpecialistService
from ensemble.tasks.models import (
    AgentAction,
    AgentTask,
    ConfirmationRequired,
    StepCompleted,
    StepStarted,
    StepStatus,
    TaskCancelled,
    TaskCompleted,
    TaskEvent,
    TaskFailed,
    TaskResult,
    TaskStarted,
    TaskStatus,
    TaskStep,
)
from ensemble.tasks.planner import build_plan_prompt, extract_tool_calls

logger = logging.getLogger(__name__)


class TaskExecutor:
    """Runs tasks one step at a time against a tool gateway.

    Each task is single-flow: steps are appended by the coroutine driving it,
    so step ids are sequential from 0. Before every step the step and token
    budgets are checked; a tool call must pass both the specialist's
    capability check and the task's constraints. Destructive operations wait
    for ``resolve_confirmation`` when the constraints require it.
    """

    def __init__(
        self,
        service: SpecialistService,
        gateway: ToolGateway,
        max_tool_retries: int = DEFAULT_MAX_TOOL_RETRIES,
    ):
        self.service = service
        self.gateway = gateway
        self.max_tool_retries = max(0, max_tool_retries)
        self._tasks: dict[str, AgentTask] = {}
        self._history: list[AgentTask] = []
        self._running: dict[str, asyncio.Task] = {}
        self._started: dict[str, float] = {}
        self._confirmations: dict[str, asyncio.Future] = {}
        self._cancel_reasons: dict[str, str] = {}
        self._lock = threading.RLock()
        self._events: EventBus[TaskEvent] = EventBus()

    @classmethod
    def from_config(cls, config, service: SpecialistService, gateway: ToolGateway) -> "TaskExecutor":
        return cls(service, gateway, max_tool_retries=config.tasks.max_tool_retries)

    # Public API

    async def execute(
        self,
        task: AgentTask,
        role: AgentRole | None = None,
        actions: Iterable[ToolCall] | None = None,
    ) -> AgentTask:
        """Run ``task`` to a terminal state and return its final value.

        Without ``actions`` the specialist is first asked for a plan. Timeouts
        and ``cancel`` end the task CANCELLED; steps already taken are kept.
        """
        if task.status != TaskStatus.PENDING:
            raise ValueError(f"Task {task.id} has already been started ({task.status.value})")

        role = role or self.service.suggest_specialist(task.description)
        specialist = self.service.get_specialist(role)
        with self._lock:
            self._tasks[task.id] = task
            self._started[task.id] = time.monotonic()
        logger.info("Starting task %s with %s", task.id, specialist.display_name)
        self._events.emit(TaskStarted(task_id=task.id, task=task))

        planned = list(actions) if actions is not None else None
        runner = asyncio.create_task(self._run(task.id, specialist, planned))
        with self._lock:
            self._running[task.id] = runner

        timeout = task.constraints.timeout_seconds
        try:
            await asyncio.wait_for(runner, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Task %s timed out after %ss", task.id, timeout)
            self._finish_cancelled(task.id, f"Timed out after {timeout}s", ErrorKind.TIMEOUT)
        except asyncio.CancelledError:
            with self._lock:
                reason = self._cancel_reasons.pop(task.id, None)
            if reason is None:
                self._finish_cancelled(task.id, "Execution was interrupted")
                raise
            self._finish_cancelled(task.id, reason)
        finally:
            with self._lock:
                self._running.pop(task.id, None)
                self._cancel_reasons.pop(task.id, None)
                self._started.pop(task.id, None)
                pending = self._confirmations.pop(task.id, None)
            if pending is not None and not pending.done():
                pending.cancel()

        return self._tasks[task.id]

    def resolve_confirmation(self, task_id: str, approved: bool) -> bool:
        """Answer a pending confirmation. Returns False if none is pending."""
        with self._lock:
            future = self._confirmations.get(task_id)
        if future is None or future.done():
            return False
        future.set_result(approved)
        logger.info("Confirmation for task %s %s", task_id, "approved" if approved else "declined")
        return True

    def cancel(self, task_id: str, reason: str = "Cancelled by user") -> bool:
        with self._lock:
            runner = self._running.get(task_id)
            if runner is None or runner.done():
                return False
            self._cancel_reasons[task_id] = reason
        runner.cancel()
        return True

    def get_task(self, task_id: str) -> AgentTask | None:
        with self._lock:
            return self._tasks.get(task_id)

    def get_active_tasks(self) -> list[AgentTask]:
        with self._lock:
            return [t for t in self._tasks.values() if t.is_active]

    def get_task_history(self) -> list[AgentTask]:
        """Finished tasks in completion order."""
        with self._lock:
            return list(self._history)

    def pending_confirmations(self) -> list[str]:
        with self._lock:
            return [task_id for task_id, f in self._confirmations.items() if not f.done()]

    def add_listener(self, listener: Listener) -> None:
        self._events.add(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._events.remove(listener)

    # Driver

    async def _run(self, task_id: str, specialist: SpecialistAgent, actions: list[ToolCall] | None) -> None:
        outcomes: list[TaskStep] = []
        summary = None
        try:
            if actions is None:
                self._set_status(task_id, TaskStatus.PLANNING)
                plan = await self._plan(task_id, specialist)
                if plan.is_failed:
                    self._finish(task_id, [plan])
                    return
                actions = extract_tool_calls(plan.reasoning)
                if not actions:
                    summary = plan.reasoning
                logger.debug("Task %s planned %d tool call(s)", task_id, len(actions))

            self._set_status(task_id, TaskStatus.EXECUTING)
            for call in actions:
                outcomes.append(await self._run_action(task_id, specialist, call))
        except BudgetExceededError as e:
            logger.warning("Task %s stopped: %s", task_id, e)
            self._finish(task_id, outcomes, stop=(str(e), ErrorKind.BUDGET_EXCEEDED))
            return
        except Exception as e:
            logger.exception("Task %s stopped by an unexpected error", task_id)
            self._finish(task_id, outcomes, stop=(f"Unexpected error: {e}", ErrorKind.INVOCATION_FAILED))
            return
        self._finish(task_id, outcomes, summary)

    async def _plan(self, task_id: str, specialist: SpecialistAgent) -> TaskStep:
        task = self._task(task_id)
        request = specialist.create_request(build_plan_prompt(task), task.context.render())
        for attempt in range(self.max_tool_retries + 1):
            self._check_budget(task_id)
            step_id = self._task(task_id).next_step_id
            self._events.emit(StepStarted(task_id=task_id, step_id=step_id, action=AgentAction.REASONING))
            response = await self.service.invoke_with(specialist, request)
            if response.is_error:
                step = TaskStep.error(step_id, response.error, ErrorKind.INVOCATION_FAILED, response.tokens_used)
            else:
                step = TaskStep.reasoning_step(step_id, response.content, response.tokens_used, response.duration_ms)
            self._append(task_id, step)
            if not step.is_retryable:
                break
            if attempt < self.max_tool_retries:
                logger.info("Retrying plan for task %s", task_id)
        return step

    async def _run_action(self, task_id: str, specialist: SpecialistAgent, call: ToolCall) -> TaskStep:
        """Take one planned action through the permission, confirmation and retry gates."""
        self._check_budget(task_id)
        spec = get_tool(call.name)
        if spec is None:
            logger.warning("Task %s requested unknown tool %s", task_id, call.name)
            message = f"Unknown tool: {call.name}"
            return self._append(
                task_id,
                TaskStep.tool_call(
                    self._task(task_id).next_step_id,
                    call.name,
                    dict(call.arguments),
                    message,
                    message,
                    success=False,
                    error_kind=ErrorKind.UNKNOWN_TOOL,
                ),
            )

        try:
            self._check_permission(self._task(task_id), specialist, spec)
        except PermissionDeniedError as e:
            logger.warning("Task %s: %s", task_id, e)
            return self._append(
                task_id,
                TaskStep.tool_call(
                    self._task(task_id).next_step_id,
                    call.name,
                    dict(call.arguments),
                    f"Permission check for {call.name}",
                    str(e),
                    success=False,
                    error_kind=e.kind,
                ),
            )

        if self._task(task_id).constraints.require_confirmation and spec.operation.is_destructive:
            try:
                await self._confirm(task_id, call)
            except ConfirmationDeclinedError as e:
                return self._append(
                    task_id,
                    TaskStep(
                        id=self._task(task_id).next_step_id,
                        action=AgentAction.TOOL_CALL,
                        reasoning=f"Confirmation for {call.name}",
                        status=StepStatus.SKIPPED,
                        result=str(e),
                        tool_name=call.name,
                        tool_args=dict(call.arguments),
                        error_kind=e.kind,
                    ),
                )

        for attempt in range(self.max_tool_retries + 1):
            if attempt:
                logger.info("Retrying %s for task %s (attempt %d)", call.name, task_id, attempt + 1)
                self._check_budget(task_id)
            step = await self._call_tool(task_id, call)
            if not step.is_retryable:
                break
        return step

    def _check_permission(self, task: AgentTask, specialist: SpecialistAgent, spec: ToolSpec) -> None:
        if not specialist.can_perform(spec.capability):
            raise PermissionDeniedError(
                f"{specialist.display_name} lacks the {spec.capability.display_name} capability needed for {spec.name}"
            )
        if not task.constraints.permits(spec.operation):
            raise PermissionDeniedError(
                f"Task constraints do not allow {spec.operation.value} operations ({spec.name})"
            )

    def _check_budget(self, task_id: str) -> None:
        reason = self._task(task_id).budget_exceeded()
        logger.debug("Budget check for task %s: %s", task_id, reason or "ok")
        if reason:
            raise BudgetExceededError(reason)

    async def _confirm(self, task_id: str, call: ToolCall) -> None:
        future = asyncio.get_running_loop().create_future()
        with self._lock:
            self._confirmations[task_id] = future
        self._set_status(task_id, TaskStatus.AWAITING_CONFIRMATION)
        details = json.dumps(call.arguments, default=str)
        logger.info("Task %s waiting for confirmation of %s", task_id, call.name)
        self._events.emit(ConfirmationRequired(task_id=task_id, action=call.name, details=details))
        try:
            approved = await future
        finally:
            with self._lock:
                self._confirmations.pop(task_id, None)
        self._set_status(task_id, TaskStatus.EXECUTING)
        if not approved:
            raise ConfirmationDeclinedError(f"User declined {call.name}")

    async def _call_tool(self, task_id: str, call: ToolCall) -> TaskStep:
        step_id = self._task(task_id).next_step_id
        self._events.emit(StepStarted(task_id=task_id, step_id=step_id, action=AgentAction.TOOL_CALL, tool_name=call.name))
        start = time.monotonic()
        try:
            output = await self._execute_tool(call)
            success = True
        except ToolExecutionError as e:
            output = str(e)
            success = False
        duration_ms = int((time.monotonic() - start) * 1000)

        step = TaskStep.tool_call(
            step_id,
            call.name,
            dict(call.arguments),
            f"Run {call.name}",
            output,
            success=success,
            duration_ms=duration_ms,
        )
        return self._append(task_id, step)

    async def _execute_tool(self, call: ToolCall) -> str | None:
        try:
            result = await self.gateway.execute(call.name, call.arguments)
        except Exception as e:
            logger.warning("Gateway raised while running %s: %s", call.name, e)
            raise ToolExecutionError(str(e) or type(e).__name__) from e
        if not result.success:
            raise ToolExecutionError(result.error or f"{call.name} failed")
        return result.output

    # State

    def _task(self, task_id: str) -> AgentTask:
        with self._lock:
            return self._tasks[task_id]

    def _append(self, task_id: str, step: TaskStep) -> TaskStep:
        with self._lock:
            self._tasks[task_id] = self._tasks[task_id].with_step(step)
        self._events.emit(StepCompleted(task_id=task_id, step=step))
        return step

    def _set_status(self, task_id: str, status: TaskStatus) -> None:
        with self._lock:
            self._tasks[task_id] = self._tasks[task_id].with_status(status)

    def _elapsed_ms(self, task_id: str) -> int:
        with self._lock:
            started = self._started.get(task_id)
        return int((time.monotonic() - started) * 1000) if started is not None else 0

    def _finish(
        self,
        task_id: str,
        outcomes: list[TaskStep],
        summary: str | None = None,
        stop: tuple[str, ErrorKind] | None = None,
    ) -> None:
        """Complete the task from the final step of each action."""
        task = self._task(task_id)
        failed = [s for s in outcomes if s.is_failed]
        errors = [f"{s.tool_name or f'step {s.id}'}: {s.result}" for s in failed]
        error_kind = failed[0].error_kind if failed else None
        if stop:
            errors.append(stop[0])
            error_kind = stop[1]

        files: dict[OperationClass, list[str]] = {op: [] for op in OperationClass}
        for step in outcomes:
            spec = get_tool(step.tool_name) if step.is_tool_call else None
            path = (step.tool_args or {}).get("path")
            if spec and step.is_successful and path and path not in files[spec.operation]:
                files[spec.operation].append(path)

        if summary is None:
            summary = _summarize(outcomes, errors)
        result = TaskResult(
            success=not errors,
            summary=summary,
            files_modified=tuple(files[OperationClass.MODIFY]),
            files_created=tuple(files[OperationClass.CREATE]),
            files_deleted=tuple(files[OperationClass.DELETE]),
            errors=tuple(errors),
            tokens_used=task.total_tokens,
            duration_ms=self._elapsed_ms(task_id),
            error_kind=error_kind,
        )
        with self._lock:
            task = self._tasks[task_id].complete(result)
            self._tasks[task_id] = task
            self._history.append(task)

        if result.success:
            logger.info("Task %s completed in %d step(s)", task_id, len(task.steps))
            self._events.emit(TaskCompleted(task_id=task_id, result=result))
        else:
            logger.info("Task %s failed: %s", task_id, "; ".join(errors))
            self._events.emit(TaskFailed(task_id=task_id, error=errors[0], result=result))

    def _finish_cancelled(self, task_id: str, reason: str, kind: ErrorKind = ErrorKind.CANCELLED) -> None:
        with self._lock:
            task = self._tasks[task_id]
            if task.status.is_terminal:
                return
            task = task.cancel(reason, kind)
            self._tasks[task_id] = task
            self._history.append(task)
        logger.info("Task %s cancelled: %s", task_id, reason)
        self._events.emit(TaskCancelled(task_id=task_id, reason=reason))


def _summarize(outcomes: list[TaskStep], errors: list[str]) -> str:
    if not outcomes and not errors:
        return "Nothing to do"
    done = sum(1 for s in outcomes if s.is_successful)
    skipped = sum(1 for s in outcomes if s.status == StepStatus.SKIPPED)
    parts = [f"{done}/{len(outcomes)} action(s) succeeded"]
    if skipped:
        parts.append(f"{skipped} skipped")
    if errors:
        parts.append(f"{len(errors)} error(s)")
    return ", ".join(parts)
