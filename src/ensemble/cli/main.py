"""Main CLI entry point for ensemble."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler

from ensemble import __version__
from ensemble.collaboration.models import CollaborationProtocol
from ensemble.collaboration.orchestrator import CollaborationOrchestrator
from ensemble.config.manager import ConfigManager
from ensemble.config.schema import TASK_PRESETS, EnsembleConfig
from ensemble.errors import ConfigError
from ensemble.execution.local_gateway import LocalToolGateway
from ensemble.llm.invoker import EchoInvoker, create_invoker
from ensemble.output.formatter import get_formatter, init_formatter
from ensemble.specialists.roles import AgentRole
from ensemble.specialists.service import SpecialistService
from ensemble.tasks.executor import TaskExecutor
from ensemble.tasks.models import AgentTask, ConfirmationRequired, StepCompleted, TaskConstraints, TaskType

ROLE_CHOICE = click.Choice([role.value for role in AgentRole], case_sensitive=False)
PROTOCOL_CHOICE = click.Choice([p.value for p in CollaborationProtocol], case_sensitive=False)
TASK_TYPE_CHOICE = click.Choice([t.value for t in TaskType], case_sensitive=False)


def _setup_logging(verbose: bool) -> None:
    """Route library logging through a single RichHandler on stderr."""
    root = logging.getLogger()
    for handler in [h for h in root.handlers if isinstance(h, RichHandler)]:
        root.removeHandler(handler)
    root.addHandler(RichHandler(console=Console(stderr=True), show_path=False))
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _load_config() -> EnsembleConfig:
    try:
        return ConfigManager.get_config()
    except ConfigError as e:
        get_formatter().print_error(str(e))
        raise SystemExit(1)


def _build_service(config: EnsembleConfig) -> SpecialistService:
    invoker = create_invoker(config)
    if isinstance(invoker, EchoInvoker) and config.model.provider != "echo":
        get_formatter().print_warning(
            "No model API key found; echoing prompts back. Set ANTHROPIC_API_KEY or OPENAI_API_KEY."
        )
    return SpecialistService.from_config(config, invoker)


def _roles(values: tuple[str, ...]) -> list[AgentRole]:
    return [AgentRole.parse(v) for v in values]


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.option("--no-color", is_flag=True, help="Disable colors")
@click.version_option(version=__version__, prog_name="ensemble")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, no_color: bool) -> None:
    """Ensemble - specialist agents that work together.

    \b
    Examples:
        ensemble ask "why does this test hang"        # Suggested specialist
        ensemble ask -r security "audit the login"    # Pick one
        ensemble review "write a slugify function"    # Implement/review loop
        ensemble debate "monorepo?" architect implementer
        ensemble task run --preset read_only "summarize src/"
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["no_color"] = no_color

    _setup_logging(verbose)
    init_formatter(color=not no_color, verbose=verbose)


# --- Specialists ---


@cli.group()
def roles() -> None:
    """Inspect the specialist catalog."""
    pass


@roles.command("list")
def roles_list() -> None:
    """List specialists and their access level."""
    service = SpecialistService.from_config(_load_config(), EchoInvoker())
    get_formatter().print_role_list(service.get_all_specialists())


@roles.command("info")
@click.argument("role", type=ROLE_CHOICE)
def roles_info(role: str) -> None:
    """Show a specialist's capabilities and settings."""
    service = SpecialistService.from_config(_load_config(), EchoInvoker())
    get_formatter().print_role_info(service.get_specialist(AgentRole.parse(role)))


@cli.command()
@click.argument("text", nargs=-1, required=True)
def suggest(text: tuple[str, ...]) -> None:
    """Suggest the specialist best suited to TEXT."""
    config = _load_config()
    service = SpecialistService.from_config(config, EchoInvoker())
    role, explanation = service.router.suggest_with_explanation(" ".join(text))
    formatter = get_formatter()
    formatter.console.print(f"{role.icon} {role.display_name} ({role.value})")
    formatter.print_info(explanation)


@cli.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option("-r", "--role", type=ROLE_CHOICE, help="Specialist to ask (suggested when omitted)")
@click.option("--context", "context", help="Extra context for the request")
@click.option("--metadata", is_flag=True, help="Show confidence, tokens and timing")
def ask(prompt: tuple[str, ...], role: str | None, context: str | None, metadata: bool) -> None:
    """Ask a single specialist."""
    prompt_text = " ".join(prompt)
    service = _build_service(_load_config())
    formatter = get_formatter()

    selected = AgentRole.parse(role) if role else service.suggest_specialist(prompt_text)
    if not role:
        formatter.print_info(f"Routing to: {selected.display_name}")

    response = asyncio.run(service.invoke(selected, prompt_text, context))
    formatter.print_response(response, show_metadata=metadata)
    if response.is_error:
        raise SystemExit(1)


@cli.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option("-r", "--role", "role_names", multiple=True, required=True, type=ROLE_CHOICE, help="Specialist, in order")
def chain(prompt: tuple[str, ...], role_names: tuple[str, ...]) -> None:
    """Ask several specialists one after another."""
    service = _build_service(_load_config())
    responses = asyncio.run(service.invoke_chain(_roles(role_names), " ".join(prompt)))
    get_formatter().print_responses(responses)


@cli.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option("-r", "--role", "role_names", multiple=True, required=True, type=ROLE_CHOICE, help="Specialist to include")
def parallel(prompt: tuple[str, ...], role_names: tuple[str, ...]) -> None:
    """Ask several specialists at once."""
    service = _build_service(_load_config())
    results = asyncio.run(service.invoke_parallel(_roles(role_names), " ".join(prompt)))
    get_formatter().print_responses(list(results.values()))


@cli.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option("--max-iterations", type=int, help="Review rounds before giving up")
def review(prompt: tuple[str, ...], max_iterations: int | None) -> None:
    """Implement PROMPT, then revise until the reviewer approves."""
    config = _load_config()
    service = _build_service(config)
    iterations = max_iterations or config.review.max_iterations
    result = asyncio.run(service.implement_review_loop(" ".join(prompt), iterations))
    get_formatter().print_review_result(result)


# --- Collaboration ---


def _run_session(orchestrator: CollaborationOrchestrator, session_id: str, rounds: int | None, transcript: bool) -> None:
    formatter = get_formatter()
    result = asyncio.run(orchestrator.execute_session(session_id, rounds))
    if transcript:
        formatter.print_transcript(orchestrator.get_session(session_id))
    formatter.print_collaboration_result(result)
    if not result.success:
        raise SystemExit(1)


@cli.command()
@click.argument("goal", nargs=-1, required=True)
@click.option("-r", "--role", "role_names", multiple=True, required=True, type=ROLE_CHOICE, help="Participant, in turn order")
@click.option("-p", "--protocol", type=PROTOCOL_CHOICE, default="round_robin", show_default=True)
@click.option("--rounds", type=int, help="Protocol rounds (default from config)")
@click.option("--transcript", is_flag=True, help="Print every message")
def collaborate(
    goal: tuple[str, ...],
    role_names: tuple[str, ...],
    protocol: str,
    rounds: int | None,
    transcript: bool,
) -> None:
    """Run a collaboration session toward GOAL."""
    config = _load_config()
    orchestrator = CollaborationOrchestrator.from_config(config, _build_service(config))
    goal_text = " ".join(goal)
    try:
        session = orchestrator.create_session(
            goal_text[:60], goal_text, _roles(role_names), CollaborationProtocol(protocol.lower())
        )
    except ValueError as e:
        get_formatter().print_error(str(e))
        raise SystemExit(1)
    _run_session(orchestrator, session.id, rounds, transcript)


@cli.command()
@click.argument("goal", nargs=-1, required=True)
@click.argument("first", type=ROLE_CHOICE)
@click.argument("second", type=ROLE_CHOICE)
@click.option("--rounds", type=int, help="Exchanges per side (default from config)")
@click.option("--transcript", is_flag=True, help="Print every message")
def debate(goal: tuple[str, ...], first: str, second: str, rounds: int | None, transcript: bool) -> None:
    """Two specialists debate GOAL."""
    config = _load_config()
    orchestrator = CollaborationOrchestrator.from_config(config, _build_service(config))
    session = orchestrator.create_debate(" ".join(goal), AgentRole.parse(first), AgentRole.parse(second))
    _run_session(orchestrator, session.id, rounds, transcript)


# --- Tasks ---


@cli.group()
def task() -> None:
    """Run tasks that use tools."""
    pass


@task.command("run")
@click.argument("description", nargs=-1, required=True)
@click.option("--preset", type=click.Choice(TASK_PRESETS), help="Constraints preset (default from config)")
@click.option("-r", "--role", type=ROLE_CHOICE, help="Specialist to run the task")
@click.option("-t", "--type", "task_type", type=TASK_TYPE_CHOICE, default="custom", show_default=True)
@click.option(
    "-w",
    "--workspace",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Directory the tools may touch",
)
@click.option("-y", "--yes", is_flag=True, help="Approve every confirmation")
@click.pass_context
def task_run(
    ctx: click.Context,
    description: tuple[str, ...],
    preset: str | None,
    role: str | None,
    task_type: str,
    workspace: Path,
    yes: bool,
) -> None:
    """Plan and run a task against the local workspace."""
    config = _load_config()
    formatter = get_formatter()
    executor = TaskExecutor.from_config(config, _build_service(config), LocalToolGateway(workspace))
    new_task = AgentTask.create(
        " ".join(description),
        project_path=str(workspace.resolve()),
        type=TaskType(task_type.lower()),
        constraints=TaskConstraints.preset(preset or config.tasks.preset),
    )

    def on_event(event: Any) -> None:
        if isinstance(event, ConfirmationRequired):
            approved = yes
            if not approved:
                try:
                    approved = click.confirm(f"Allow {event.action} {event.details}?", default=False)
                except click.Abort:
                    approved = False
            executor.resolve_confirmation(event.task_id, approved)
        elif isinstance(event, StepCompleted) and ctx.obj["verbose"]:
            formatter.print_info(f"Step {event.step.id}: {event.step.tool_name or event.step.action.value} {event.step.status.value}")

    executor.add_listener(on_event)
    finished = asyncio.run(executor.execute(new_task, AgentRole.parse(role) if role else None))
    formatter.print_task(finished)
    if not finished.is_successful:
        raise SystemExit(1)


# --- Config ---


@cli.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Show current configuration."""
    get_formatter().print_config(_load_config().model_dump(by_alias=True, mode="json"))


@config.command("get")
@click.argument("key")
def config_get(key: str) -> None:
    """Print one value by dotted path, e.g. review.max_iterations."""
    _load_config()
    value = ConfigManager.get_value(key)
    if value is None:
        get_formatter().print_error(f"Unknown key: {key}")
        raise SystemExit(1)
    if isinstance(value, (dict, list)):
        get_formatter().print_config(value)
    else:
        click.echo(value)


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Set a value in the user config file."""
    try:
        parsed = json.loads(value)
    except ValueError:
        parsed = value
    try:
        ConfigManager.set_value(key, parsed)
    except ConfigError as e:
        get_formatter().print_error(str(e))
        raise SystemExit(1)
    get_formatter().print_success(f"{key} = {parsed!r}")


if __name__ == "__main__":
    cli()
