"""Turn a specialist's plan into tool calls."""

import json
import logging
import re

from ensemble.execution.protocol import ToolCall
from ensemble.execution.tools import describe_tools
from ensemble.tasks.models import AgentTask

logger = logging.getLogger(__name__)

TOOL_BLOCK_PATTERN = re.compile(r"```tool\s*\n(.*?)```", re.DOTALL)

PLAN_INSTRUCTION = """Plan and carry out this task using the tools below.

For each tool you want to run, write a fenced code block whose info string is
`tool`, holding a JSON object with "name" and "arguments", such as
{{"name": "read_file", "arguments": {{"path": "src/app.py"}}}}.

Tools run in the order you list them. If the task needs no tools, answer directly.

Available tools:
{tools}

Task ({task_type}): {description}"""


def build_plan_prompt(task: AgentTask) -> str:
    return PLAN_INSTRUCTION.format(
        tools=describe_tools(),
        task_type=task.type.display_name,
        description=task.description,
    )


def extract_tool_calls(content: str) -> list[ToolCall]:
    """Parse every ```tool block in ``content``, skipping malformed ones."""
    calls = []
    for block in TOOL_BLOCK_PATTERN.findall(content):
        try:
            data = json.loads(block)
        except json.JSONDecodeError as e:
            logger.warning("Ignoring malformed tool block: %s", e)
            continue
        if not isinstance(data, dict) or not isinstance(data.get("name"), str):
            logger.warning("Ignoring tool block without a name")
            continue
        arguments = data.get("arguments") or {}
        if not isinstance(arguments, dict):
            logger.warning("Ignoring tool block %s with non-object arguments", data["name"])
            continue
        calls.append(ToolCall(data["name"], arguments))
    return calls
