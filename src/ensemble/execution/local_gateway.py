"""Run tools against the local filesystem and subprocesses, confined to a workspace."""
import asyncio
import logging
import re
import shlex
from pathlib import Path
from typing import Any

from ensemble.execution.protocol import ToolGateway, ToolResult
from ensemble.execution.tools import get_tool

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 20000
MAX_SEARCH_RESULTS = 100
SKIP_DIRS = {".git", ".venv", "venv", "node_modules", "__pycache__", ".mypy_cache", ".pytest_cache"}
DEFINITION_PATTERN = re.compile(r"^\s*(?:async\s+def|def|class)\s+(\w+)")


class LocalToolGateway(ToolGateway):
    """Reference gateway used by the CLI."""

    def __init__(self, workspace_root: Path | str, command_timeout: float = 30.0):
        self.workspace_root = Path(workspace_root).resolve()
        self.command_timeout = command_timeout
        self._handlers = {
            "read_file": self._read_file,
            "write_file": self._write_file,
            "edit_file": self._edit_file,
            "delete_file": self._delete_file,
            "list_files": self._list_files,
            "search_code": self._search_code,
            "get_symbol_info": self._get_symbol_info,
            "get_file_outline": self._get_file_outline,
            "run_command": self._run_command,
            "run_tests": self._run_tests,
        }

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        spec = get_tool(name)
        handler = self._handlers.get(name)
        if spec is None or handler is None:
            return ToolResult.failure(f"Unknown tool: {name}")
        missing = spec.missing_arguments(arguments)
        if missing:
            return ToolResult.failure(f"Missing argument(s): {', '.join(missing)}")

        logger.debug("Running tool %s with %s", name, arguments)
        try:
            return await handler(arguments)
        except (OSError, ValueError, UnicodeDecodeError) as e:
            return ToolResult.failure(str(e))

    def _resolve(self, path: str) -> Path:
        """Resolve ``path`` inside the workspace, rejecting anything outside it."""
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.workspace_root / candidate
        resolved = candidate.resolve()
        if resolved != self.workspace_root and self.workspace_root not in resolved.parents:
            raise ValueError(f"Path is outside the workspace: {path}")
        return resolved

    def _relative(self, path: Path) -> str:
        return str(path.relative_to(self.workspace_root))

    def _iter_files(self, base: Path, pattern: str = "*", recursive: bool = True):
        iterator = base.rglob(pattern) if recursive else base.glob(pattern)
        for path in sorted(iterator):
            if path.is_file() and not SKIP_DIRS.intersection(path.relative_to(self.workspace_root).parts):
                yield path

    # File tools

    async def _read_file(self, args: dict[str, Any]) -> ToolResult:
        path = self._resolve(args["path"])
        if not path.is_file():
            return ToolResult.failure(f"File not found: {args['path']}")
        lines = path.read_text().splitlines()
        start = int(args.get("start_line") or 1)
        end = int(args.get("end_line") or len(lines))
        return ToolResult.ok("\n".join(lines[start - 1 : end]), path=self._relative(path))

    async def _write_file(self, args: dict[str, Any]) -> ToolResult:
        path = self._resolve(args["path"])
        existed = path.exists()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(args["content"])
        verb = "Overwrote" if existed else "Created"
        return ToolResult.ok(f"{verb} {self._relative(path)}", path=self._relative(path), created=not existed)

    async def _edit_file(self, args: dict[str, Any]) -> ToolResult:
        path = self._resolve(args["path"])
        if not path.is_file():
            return ToolResult.failure(f"File not found: {args['path']}")
        text = path.read_text()
        old_text = args["old_text"]
        if old_text not in text:
            return ToolResult.failure(f"Text to replace not found in {args['path']}")
        path.write_text(text.replace(old_text, args["new_text"], 1))
        return ToolResult.ok(f"Edited {self._relative(path)}", path=self._relative(path))

    async def _delete_file(self, args: dict[str, Any]) -> ToolResult:
        path = self._resolve(args["path"])
        if not path.is_file():
            return ToolResult.failure(f"File not found: {args['path']}")
        path.unlink()
        return ToolResult.ok(f"Deleted {self._relative(path)}", path=self._relative(path))

    async def _list_files(self, args: dict[str, Any]) -> ToolResult:
        base = self._resolve(args["path"])
        if not base.is_dir():
            return ToolResult.failure(f"Not a directory: {args['path']}")
        files = [
            self._relative(p)
            for p in self._iter_files(base, args.get("pattern") or "*", bool(args.get("recursive", False)))
        ]
        return ToolResult.ok("\n".join(files), count=len(files))

    async def _search_code(self, args: dict[str, Any]) -> ToolResult:
        flags = 0 if args.get("case_sensitive") else re.IGNORECASE
        try:
            pattern = re.compile(args["query"], flags)
        except re.error as e:
            return ToolResult.failure(f"Invalid pattern: {e}")

        matches = []
        for path in self._iter_files(self.workspace_root, args.get("file_pattern") or "*"):
            try:
                lines = path.read_text().splitlines()
            except (UnicodeDecodeError, OSError):
                continue
            for number, line in enumerate(lines, start=1):
                if pattern.search(line):
                    matches.append(f"{self._relative(path)}:{number}: {line.strip()}")
                    if len(matches) >= MAX_SEARCH_RESULTS:
                        return ToolResult.ok("\n".join(matches), count=len(matches), truncated=True)
        return ToolResult.ok("\n".join(matches), count=len(matches))

    def _outline(self, path: Path) -> list[tuple[int, str]]:
        outline = []
        for number, line in enumerate(path.read_text().splitlines(), start=1):
            if DEFINITION_PATTERN.match(line):
                outline.append((number, line.rstrip()))
        return outline

    async def _get_symbol_info(self, args: dict[str, Any]) -> ToolResult:
        symbol = args["symbol"]
        files = [self._resolve(args["file"])] if args.get("file") else self._iter_files(self.workspace_root, "*.py")
        found = []
        for path in files:
            for number, line in self._outline(path):
                match = DEFINITION_PATTERN.match(line)
                if match and match.group(1) == symbol:
                    found.append(f"{self._relative(path)}:{number}: {line.strip()}")
        if not found:
            return ToolResult.failure(f"Symbol not found: {symbol}")
        return ToolResult.ok("\n".join(found), count=len(found))

    async def _get_file_outline(self, args: dict[str, Any]) -> ToolResult:
        path = self._resolve(args["path"])
        if not path.is_file():
            return ToolResult.failure(f"File not found: {args['path']}")
        return ToolResult.ok("\n".join(f"{n}: {line}" for n, line in self._outline(path)))

    # Process tools

    async def _run_command(self, args: dict[str, Any]) -> ToolResult:
        cwd = self._resolve(args["cwd"]) if args.get("cwd") else self.workspace_root
        timeout = float(args.get("timeout") or self.command_timeout)
        return await self._run(shlex.split(args["command"]), cwd, timeout)

    async def _run_tests(self, args: dict[str, Any]) -> ToolResult:
        cmd = shlex.split(args.get("command") or "pytest")
        if args.get("path"):
            cmd.append(str(self._resolve(args["path"])))
        return await self._run(cmd, self.workspace_root, self.command_timeout)

    async def _run(self, cmd: list[str], cwd: Path, timeout: float) -> ToolResult:
        """Execute subprocess command"""
        if not cmd:
            return ToolResult.failure("Empty command")
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return ToolResult.failure(f"Command timed out after {timeout}s")
        except asyncio.CancelledError:
            process.kill()
            raise

        output = stdout.decode(errors="replace")[:MAX_OUTPUT_CHARS]
        if process.returncode != 0:
            error = stderr.decode(errors="replace")[:MAX_OUTPUT_CHARS] or output[:200]
            return ToolResult(False, output, f"Exit code {process.returncode}: {error}", {"exit_code": process.returncode})
        return ToolResult.ok(output, exit_code=process.returncode)
