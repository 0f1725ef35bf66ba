"""Tests for OutputFormatter"""
import io

import pytest
from rich.console import Console

from ensemble.output.formatter import ENSEMBLE_THEME, OutputFormatter, get_formatter, init_formatter
from ensemble.specialists.models import AgentResponse
from ensemble.specialists.roles import AgentRole
from ensemble.tasks.models import AgentTask, TaskResult, TaskStatus, TaskStep


@pytest.fixture
def formatter():
    formatter = OutputFormatter(color=False)
    formatter.console = Console(file=io.StringIO(), theme=ENSEMBLE_THEME, width=120, no_color=True)
    return formatter


def output(formatter):
    return formatter.console.file.getvalue()


def test_user_text_is_not_markup(formatter):
    formatter.print_error("bad [bold]input[/bold]", AgentRole.REVIEWER)
    assert "[Reviewer] Error: bad [bold]input[/bold]" in output(formatter)


def test_print_response_with_metadata(formatter):
    response = AgentResponse(
        request_id="r1",
        agent_id="a1",
        role=AgentRole.ARCHITECT,
        content="Use a queue.",
        confidence=0.75,
        tokens_used=12,
        duration_ms=40,
    )

    formatter.print_response(response, show_metadata=True)

    text = output(formatter)
    assert "Architect" in text
    assert "Use a queue." in text
    assert "confidence=0.75, tokens=12" in text


def test_print_task(formatter):
    task = AgentTask.create("x").with_status(TaskStatus.EXECUTING)
    task = task.with_step(TaskStep.tool_call(0, "write_file", {"path": "a.py"}, "w", "Created a.py", success=True))
    task = task.complete(TaskResult.succeeded("1/1 action(s) succeeded", files_created=("a.py",)))

    formatter.print_task(task)

    text = output(formatter)
    assert "write_file" in text
    assert "Created: a.py" in text
    assert "completed" in text


def test_init_formatter_replaces_global():
    first = init_formatter(color=False, verbose=True)
    assert get_formatter() is first
    assert first.verbose
    assert init_formatter() is not first
