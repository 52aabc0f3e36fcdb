"""
Shell Command Tool
==================

Runs a shell command and returns its exit code, stdout and stderr.

Safety:
- Empty commands are rejected
- A small set of destructive patterns (recursive delete of /, mkfs,
  fork bombs, raw writes to block devices, shutdown/reboot) is refused
  before anything is spawned
- Each command runs under a timeout and is killed when it expires
- Output is truncated to a configurable number of characters

These checks are heuristics, not a sandbox.
"""

import asyncio
import re

from agentloop.tools import Tool, ToolResult
from agentloop.utils.config import get_config
from agentloop.utils.logger import Logger

logger = Logger("ShellTool")

_DANGEROUS_PATTERNS = [
    re.compile(r"\brm\s+(-[a-zA-Z]*\s+)*-[a-zA-Z]*[rR][a-zA-Z]*\s+(-[a-zA-Z]*\s+)*(/|/\*|~|\$HOME)(\s|$)"),
    re.compile(r"\bmkfs(\.\w+)?\b"),
    re.compile(r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:"),
    re.compile(r"\bdd\b.*\bof=/dev/"),
    re.compile(r">\s*/dev/(sd|hd|nvme|disk)"),
    re.compile(r"\b(shutdown|reboot|halt|poweroff)\b"),
    re.compile(r"\bchmod\s+(-R\s+)?[0-7]*777\s+/(\s|$)"),
]

PARAMETERS = {
    "type": "object",
    "properties": {
        "command": {
            "type": "string",
            "description": "The shell command to execute"
        },
        "timeout": {
            "type": "number",
            "description": "Seconds to wait before killing the command"
        }
    },
    "required": ["command"]
}


def is_dangerous_command(command: str) -> bool:
    """True if the command matches one of the refused patterns."""
    return any(pattern.search(command) for pattern in _DANGEROUS_PATTERNS)


def validate_command(command: object) -> str | None:
    """Return an error message for an unusable command, else None."""
    if not isinstance(command, str) or not command.strip():
        return "Command is required"
    if is_dangerous_command(command):
        return f"Command refused as potentially destructive: {command}"
    return None


def _truncate(output: str, limit: int) -> str:
    if len(output) <= limit:
        return output
    return output[:limit] + f"\n... [truncated {len(output) - limit} chars]"


def _parse_timeout(value: object, default: float) -> float:
    """Return the timeout in seconds; ValueError for anything unusable."""
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(f"Timeout must be a number of seconds, got {value!r}")
    try:
        timeout = float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Timeout must be a number of seconds, got {value!r}") from e
    if not 0 < timeout < float("inf"):
        raise ValueError(f"Timeout must be a positive number of seconds, got {value!r}")
    return timeout


async def _execute_command(params: dict) -> ToolResult:
    """Execute a validated shell command with a timeout."""
    command = params.get("command")
    error = validate_command(command)
    if error:
        logger.warning(error)
        return ToolResult(success=False, error=error)

    config = get_config().shell
    try:
        timeout = _parse_timeout(params.get("timeout"), config.timeout_seconds)
    except ValueError as e:
        logger.warning(str(e))
        return ToolResult(success=False, error=str(e))

    logger.info(f"Running command: {command}")

    process = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE
    )

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        return ToolResult(success=False, error=f"Command timed out after {timeout} seconds")
    finally:
        # the child never outlives this call, however it was interrupted
        if process.returncode is None:
            process.kill()
            await process.wait()

    data = {
        "exit_code": process.returncode,
        "stdout": _truncate(stdout.decode(errors="replace"), config.max_output_chars),
        "stderr": _truncate(stderr.decode(errors="replace"), config.max_output_chars),
    }

    if process.returncode != 0:
        return ToolResult(
            success=False,
            data=data,
            error=f"Command exited with status {process.returncode}"
        )

    return ToolResult(success=True, data=data)


def create_shell_tool() -> Tool:
    """Build the shell_command tool."""
    return Tool(
        name="shell_command",
        description=(
            "Execute a shell command and return its exit code, stdout and stderr. "
            "Destructive commands are refused."
        ),
        parameters=PARAMETERS,
        execute=_execute_command
    )
