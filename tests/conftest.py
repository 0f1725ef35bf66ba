"""Pytest configuration and fixtures."""

import asyncio
from typing import Any

import pytest

from ensemble.config.manager import ConfigManager
from ensemble.execution.protocol import ToolGateway, ToolResult
from ensemble.llm.client import LLMResponse
from ensemble.llm.invoker import ModelInvoker
from ensemble.specialists.prompts import get_system_prompt
from ensemble.specialists.roles import AgentRole
from ensemble.specialists.service import SpecialistService


class ScriptedInvoker(ModelInvoker):
    """Invoker that answers each role from a script.

    Replies for a role are consumed in order; the last one repeats. A reply
    may be a string or a ready-made ``LLMResponse`` (for errors).
    """

    def __init__(self) -> None:
        self.replies: dict[AgentRole, list[Any]] = {}
        self.delays: dict[AgentRole, float] = {}
        self.calls: list[dict[str, Any]] = []
        self.default = "Looks good to me."

    def script(self, role: AgentRole, *replies: Any) -> None:
        self.replies[role] = list(replies)

    def fail(self, role: AgentRole, error: str = "model unavailable") -> None:
        self.replies[role] = [LLMResponse(content="", model="scripted", tokens_used=0, error=error)]

    def role_for(self, system_prompt: str) -> AgentRole | None:
        for role in AgentRole:
            if system_prompt == get_system_prompt(role):
                return role
        return None

    def calls_for(self, role: AgentRole) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["role"] == role]

    async def complete(self, system_prompt, context, prompt, temperature) -> LLMResponse:
        role = self.role_for(system_prompt)
        self.calls.append(
            {"role": role, "system": system_prompt, "context": context, "prompt": prompt, "temperature": temperature}
        )
        if role in self.delays:
            await asyncio.sleep(self.delays[role])

        queue = self.replies.get(role)
        if not queue:
            reply = self.default
        elif len(queue) > 1:
            reply = queue.pop(0)
        else:
            reply = queue[0]

        if isinstance(reply, LLMResponse):
            return reply
        return LLMResponse(content=reply, model="scripted", tokens_used=len(reply.split()))


class RaisingInvoker(ModelInvoker):
    """Invoker whose calls raise instead of returning an error response."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or RuntimeError("connection reset")

    async def complete(self, system_prompt, context, prompt, temperature) -> LLMResponse:
        raise self.error


class InMemoryGateway(ToolGateway):
    """Tool gateway over a dict of files."""

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self.files: dict[str, str] = dict(files or {})
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, int] = {}
        self.hang: set[str] = set()
        self.command_output = "ok"

    def fail_times(self, name: str, times: int) -> None:
        self.failures[name] = times

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        self.calls.append((name, arguments))
        if name in self.hang:
            await asyncio.sleep(3600)
        if self.failures.get(name, 0) > 0:
            self.failures[name] -= 1
            return ToolResult.failure(f"{name} failed")

        path = arguments.get("path")
        if name == "read_file":
            if path not in self.files:
                return ToolResult.failure(f"File not found: {path}")
            return ToolResult.ok(self.files[path], path=path)
        if name == "write_file":
            created = path not in self.files
            self.files[path] = arguments["content"]
            return ToolResult.ok(f"Wrote {path}", path=path, created=created)
        if name == "edit_file":
            if path not in self.files:
                return ToolResult.failure(f"File not found: {path}")
            self.files[path] = self.files[path].replace(arguments["old_text"], arguments["new_text"], 1)
            return ToolResult.ok(f"Edited {path}", path=path)
        if name == "delete_file":
            if self.files.pop(path, None) is None:
                return ToolResult.failure(f"File not found: {path}")
            return ToolResult.ok(f"Deleted {path}", path=path)
        if name in ("run_command", "run_tests"):
            return ToolResult.ok(self.command_output, exit_code=0)
        return ToolResult.ok("")


@pytest.fixture(autouse=True)
def reset_config(tmp_path, monkeypatch):
    """Isolate every test from real config files."""
    home = tmp_path / "home"
    project = home / "project"
    project.mkdir(parents=True)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.chdir(project)
    ConfigManager.reset()
    yield project
    ConfigManager.reset()


@pytest.fixture
def project_dir(reset_config):
    """Working directory of the test, below the fake home."""
    return reset_config


@pytest.fixture
def scripted_invoker():
    return ScriptedInvoker()


@pytest.fixture
def service(scripted_invoker):
    return SpecialistService(scripted_invoker)


@pytest.fixture
def gateway():
    return InMemoryGateway({"src/app.py": "def main():\n    return 1\n"})


@pytest.fixture
def raising_service():
    """Service whose model calls raise ``RuntimeError("connection reset")``."""
    return SpecialistService(RaisingInvoker())
