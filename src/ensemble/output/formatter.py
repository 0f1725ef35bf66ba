"""Output formatting using Rich for terminal output."""

import json
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from ensemble.collaboration.models import CollaborationResult, CollaborationSession, MessageType
from ensemble.specialists.models import AgentResponse, ReviewLoopResult, SpecialistAgent, SpecialistStats
from ensemble.specialists.roles import AgentRole
from ensemble.tasks.models import AgentTask, StepStatus

ENSEMBLE_THEME = Theme(
    {
        "role.primary": "cyan",
        "role.supporting": "magenta",
        "success": "green",
        "error": "red bold",
        "warning": "yellow",
        "info": "blue",
        "prompt": "magenta",
        "metadata": "dim",
    }
)

STEP_STYLES = {
    StepStatus.COMPLETED: "success",
    StepStatus.FAILED: "error",
    StepStatus.SKIPPED: "warning",
    StepStatus.PENDING: "metadata",
    StepStatus.RUNNING: "info",
}


def _role_style(role: AgentRole) -> str:
    return "role.primary" if role.is_primary else "role.supporting"


class OutputFormatter:
    """Handles all output formatting for ensemble."""

    def __init__(self, color: bool = True, verbose: bool = False) -> None:
        self.console = Console(theme=ENSEMBLE_THEME, no_color=not color, highlight=color)
        self.verbose = verbose

    def print_error(self, message: str, role: AgentRole | None = None) -> None:
        prefix = f"[{role.display_name}] " if role else ""
        self.console.print(f"[error]{escape(prefix)}Error: {escape(message)}[/error]")

    def print_success(self, message: str) -> None:
        self.console.print(f"[success]{escape(message)}[/success]")

    def print_info(self, message: str) -> None:
        self.console.print(f"[info]{escape(message)}[/info]")

    def print_warning(self, message: str) -> None:
        self.console.print(f"[warning]{escape(message)}[/warning]")

    # Specialists

    def print_role_list(self, specialists: list[SpecialistAgent]) -> None:
        table = Table(title="Specialists")
        table.add_column("Role", style="cyan")
        table.add_column("Name")
        table.add_column("Group", justify="center")
        table.add_column("Access", justify="center")

        for specialist in specialists:
            role = specialist.role
            group = "primary" if role.is_primary else "supporting"
            access = "read-only" if specialist.is_read_only else "[warning]modifies[/warning]"
            table.add_row(role.value, specialist.display_name, group, access)

        self.console.print(table)

    def print_role_info(self, specialist: SpecialistAgent) -> None:
        role = specialist.role
        table = Table(title=f"{specialist.display_name} ({role.value})")
        table.add_column("Property", style="cyan")
        table.add_column("Value")

        table.add_row("Description", role.description)
        table.add_row("Group", "Primary" if role.is_primary else "Supporting")
        table.add_row("Temperature", f"{specialist.temperature:.2f}")
        table.add_row("Can modify files", "Yes" if specialist.can_modify_files else "No")
        table.add_row(
            "Capabilities",
            ", ".join(sorted(c.display_name for c in specialist.capabilities)),
        )
        self.console.print(table)

        if self.verbose:
            self.console.print(Panel(escape(specialist.system_prompt), title="System prompt", border_style="metadata"))

    def print_response(self, response: AgentResponse, show_metadata: bool = False) -> None:
        """Print one specialist response as a panel."""
        style = _role_style(response.role)
        if response.is_error:
            self.print_error(response.error or "Unknown error", response.role)
            return

        body = Markdown(response.content) if self._looks_like_markdown(response.content) else escape(response.content)
        self.console.print(
            Panel(
                body,
                title=f"[{style}]{response.role.icon} {response.role.display_name}[/{style}]",
                border_style=style,
            )
        )
        if response.suggests_delegation:
            self.print_info(f"Suggests handing off to {response.delegate_to.display_name}")

        if show_metadata or self.verbose:
            self._print_metadata(
                {
                    "confidence": f"{response.confidence:.2f}",
                    "tokens": response.tokens_used,
                    "duration_ms": response.duration_ms,
                    "artifacts": len(response.artifacts),
                }
            )

    def print_responses(self, responses: list[AgentResponse], show_metadata: bool = False) -> None:
        for response in responses:
            self.print_response(response, show_metadata=show_metadata)

    def print_review_result(self, result: ReviewLoopResult) -> None:
        status = "[success]approved[/success]" if result.approved else "[warning]not approved[/warning]"
        self.console.print(f"Review finished after {result.iterations} iteration(s): {status}")
        self.console.print(Panel(Markdown(result.final_content), title="Final version", border_style="info"))
        if result.feedback and not result.approved:
            self.console.print(
                Panel(escape(result.feedback.overall_assessment), title="Last review", border_style="warning")
            )

    def print_stats(self, stats: SpecialistStats) -> None:
        table = Table(title="Invocations")
        table.add_column("Role", style="cyan")
        table.add_column("Count", justify="right")
        for role, count in stats.invocations_by_role.items():
            table.add_row(role.display_name, str(count))
        table.add_row("[bold]Total[/bold]", f"[bold]{stats.total_invocations}[/bold]")
        self.console.print(table)

    # Collaboration

    def print_transcript(self, session: CollaborationSession) -> None:
        for message in session.messages:
            if message.type == MessageType.SYSTEM or message.sender_role is None:
                self.console.print(f"[metadata]{escape(message.content)}[/metadata]")
                continue
            style = _role_style(message.sender_role)
            self.console.print(
                Panel(
                    Markdown(message.content),
                    title=f"[{style}]{message.sender_role.display_name}[/{style}] [metadata]{message.type.value}[/metadata]",
                    border_style=style,
                )
            )

    def print_collaboration_result(self, result: CollaborationResult) -> None:
        border = "success" if result.success else "error"
        self.console.print(
            Panel(
                escape(result.outcome),
                title=f"{escape(result.goal)} ({result.status.value})",
                border_style=border,
            )
        )

        if result.participant_contributions:
            table = Table(title="Contributions")
            table.add_column("Role", style="cyan")
            table.add_column("Messages", justify="right")
            for role, count in result.participant_contributions.items():
                marker = " *" if role == result.most_active_participant else ""
                table.add_row(f"{role.display_name}{marker}", str(count))
            self.console.print(table)

        for decision in result.decisions:
            self.console.print(f"[success]Decision:[/success] {escape(decision.description)}")
        for error in result.errors:
            self.print_error(error)

        self._print_metadata(
            {
                "turns": result.total_turns,
                "messages": result.message_count,
                "duration_ms": result.duration_ms,
            }
        )

    # Tasks

    def print_task(self, task: AgentTask) -> None:
        table = Table(title=f"Task {task.id[:8]} ({task.status.value})")
        table.add_column("#", justify="right")
        table.add_column("Action")
        table.add_column("Tool", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Result")

        for step in task.steps:
            style = STEP_STYLES[step.status]
            result = (step.result or "").splitlines()[0] if step.result else ""
            table.add_row(
                str(step.id),
                step.action.value,
                step.tool_name or "",
                f"[{style}]{step.status.value}[/{style}]",
                escape(result[:80]),
            )
        if task.steps:
            self.console.print(table)

        result = task.result
        if result is None:
            return
        border = "success" if result.success else "error"
        self.console.print(Panel(Markdown(result.summary), title="Result", border_style=border))
        for label, files in (
            ("Modified", result.files_modified),
            ("Created", result.files_created),
            ("Deleted", result.files_deleted),
        ):
            if files:
                self.console.print(f"{label}: {escape(', '.join(files))}")
        for error in result.errors:
            self.print_error(error)
        self._print_metadata({"tokens": result.tokens_used, "duration_ms": result.duration_ms})

    # Config

    def print_config(self, data: dict[str, Any]) -> None:
        self.console.print_json(json.dumps(data, indent=2, default=str))

    def _print_metadata(self, metadata: dict[str, Any]) -> None:
        parts = [f"{k}={v}" for k, v in metadata.items()]
        self.console.print(f"[metadata]({escape(', '.join(parts))})[/metadata]")

    def _looks_like_markdown(self, text: str) -> bool:
        markdown_indicators = ["```", "##", "**", "- ", "1. ", "> ", "| "]
        return any(indicator in text for indicator in markdown_indicators)


_formatter: OutputFormatter | None = None


def init_formatter(color: bool = True, verbose: bool = False) -> OutputFormatter:
    """Replace the global formatter with one using these settings."""
    global _formatter
    _formatter = OutputFormatter(color=color, verbose=verbose)
    return _formatter


def get_formatter() -> OutputFormatter:
    global _formatter
    if _formatter is None:
        _formatter = OutputFormatter()
    return _formatter
