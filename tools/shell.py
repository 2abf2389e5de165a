"""
Shell Tool
----------
run_shell_command: run one command line inside the workspace.

Rules:
- The command policy is checked at build; a blocked command never spawns
- Runs as `/bin/sh -c <command>` (argv list) in its own session, so the
  whole process group can be signalled
- stdout/stderr are drained by reader threads, capped per stream
- Non-zero exit is a successful call carrying the exit code
- Cancellation (timeouts included) sends SIGTERM to the group, then
  SIGKILL after the grace period

POSIX only.
"""

from contextlib import suppress
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Dict, IO, List
import logging
import os
import signal
import subprocess
import threading

from core.cancellation import CancellationToken
from core.errors import ErrorKind, ToolError, validation_error
from core.results import ShellOutput

from .base import Capability, ToolDefinition, WorkspaceContext, not_found
from .fileio import os_error
from .schema import ParameterType, ToolParameter, ToolSchema


SHELL = "/bin/sh"
POLL_INTERVAL = 0.05  # seconds between token checks while the command runs
READER_JOIN_TIMEOUT = 1.0

_logger = logging.getLogger("workbench.tools.shell")


@dataclass(frozen=True)
class ShellParams:
    command: str
    directory: Path
    display: str
    description: str = ""

    def describe(self) -> str:
        summary = f"{self.command} [in {self.display}]"
        if self.description:
            summary += f" ({self.description})"
        return summary

    def locations(self) -> List[str]:
        return [str(self.directory)]


def _prepare_shell(ctx: WorkspaceContext, args: Dict[str, Any]) -> ShellParams:
    if not ctx.settings.shell_enabled:
        raise ToolError(
            ErrorKind.PROCESS_BLOCKED,
            "Shell command execution is disabled",
            {"command": args["command"]}
        )

    command = args["command"]
    if not command.strip():
        raise validation_error("Command cannot be empty", "command")

    ctx.command_policy.check(command)

    if args.get("directory") is not None:
        directory = ctx.guard.resolve(args["directory"], "directory")
        if not os.path.exists(directory):
            raise not_found(directory, "Directory")
        if not os.path.isdir(directory):
            raise validation_error(f"Path is not a directory: {directory}", "directory")
    else:
        directory = ctx.root

    return ShellParams(
        command=command,
        directory=directory,
        display=ctx.guard.relative(directory),
        description=args.get("description") or "",
    )


class _StreamReader(threading.Thread):
    """Drains one pipe, keeping at most `limit` bytes."""

    def __init__(self, stream: IO[bytes], limit: int, name: str):
        super().__init__(name=f"shell-{name}", daemon=True)
        self._stream = stream
        self._limit = limit
        self._buffer = bytearray()
        self.truncated = False

    def run(self) -> None:
        try:
            while True:
                chunk = self._stream.read1(64 * 1024)
                if not chunk:
                    break
                room = self._limit - len(self._buffer)
                if len(chunk) > room:
                    self.truncated = True
                    chunk = chunk[:max(room, 0)]
                self._buffer.extend(chunk)
        except (OSError, ValueError) as e:
            # Pipe closed underneath us after a kill
            _logger.debug(f"Reader {self.name} stopped: {e}")
        finally:
            with suppress(OSError):
                self._stream.close()

    @property
    def text(self) -> str:
        return bytes(self._buffer).decode("utf-8", errors="replace")


def _signal_group(process: subprocess.Popen, sig: int) -> bool:
    """Signal the command's process group. False if it is already gone."""
    try:
        os.killpg(process.pid, sig)
        return True
    except ProcessLookupError:
        return False


def _terminate(process: subprocess.Popen, grace: float) -> None:
    """SIGTERM the group, then SIGKILL once the grace period runs out."""
    if not _signal_group(process, signal.SIGTERM):
        process.wait()
        return

    try:
        process.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        _logger.warning(f"Process group {process.pid} ignored SIGTERM; sending SIGKILL")
        _signal_group(process, signal.SIGKILL)
        process.wait()


def _join_readers(process: subprocess.Popen, readers: List[_StreamReader]) -> None:
    for reader in readers:
        reader.join(READER_JOIN_TIMEOUT)

    if any(reader.is_alive() for reader in readers):
        # Background jobs left in the group still hold the pipes open
        _logger.debug(f"Killing leftover processes in group {process.pid}")
        _signal_group(process, signal.SIGKILL)
        for reader in readers:
            reader.join(READER_JOIN_TIMEOUT)


def _run_shell(
    ctx: WorkspaceContext,
    params: ShellParams,
    token: CancellationToken
) -> ShellOutput:
    settings = ctx.settings
    token.raise_if_cancelled()

    try:
        process = subprocess.Popen(
            [SHELL, "-c", params.command],
            cwd=str(params.directory),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        raise os_error(e, params.directory, "spawn command in")

    _logger.debug(f"Spawned pid {process.pid}: {params.command}")

    readers = [
        _StreamReader(process.stdout, settings.max_output_bytes, "stdout"),
        _StreamReader(process.stderr, settings.max_output_bytes, "stderr"),
    ]
    for reader in readers:
        reader.start()

    cancelled = False
    try:
        while True:
            try:
                process.wait(timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if token.cancelled:
                    cancelled = True
                    _terminate(process, settings.shell_kill_grace_seconds)
                    break
    except BaseException:
        _terminate(process, settings.shell_kill_grace_seconds)
        raise
    finally:
        _join_readers(process, readers)

    stdout, stderr = readers

    if cancelled:
        timed_out = token.reason == "timeout"
        message = "Command timed out" if timed_out else "Command cancelled"
        raise ToolError(
            ErrorKind.CANCELLED,
            f"{message}: {params.command}",
            {
                "reason": token.reason,
                "command": params.command,
                "stdout": stdout.text,
                "stderr": stderr.text,
                "exit_code": process.returncode,
            }
        )

    returncode = process.returncode
    return ShellOutput(
        command=params.command,
        directory=str(params.directory),
        exit_code=returncode,
        stdout=stdout.text,
        stderr=stderr.text,
        stdout_truncated=stdout.truncated,
        stderr_truncated=stderr.truncated,
        signal=-returncode if returncode is not None and returncode < 0 else None,
    )


SHELL_SCHEMA = ToolSchema(parameters=[
    ToolParameter(
        name="command",
        type=ParameterType.STRING,
        description="Exact command to execute as `/bin/sh -c <command>`",
        min_length=1,
    ),
    ToolParameter(
        name="description",
        type=ParameterType.STRING,
        description="Brief description of the command for the user (optional)",
        required=False,
    ),
    ToolParameter(
        name="directory",
        type=ParameterType.STRING,
        description="Absolute path of the directory to run in (defaults to the workspace root)",
        required=False,
    ),
])


def run_shell_command_tool(ctx: WorkspaceContext) -> ToolDefinition:
    return ToolDefinition(
        name="run_shell_command",
        display_name="Shell",
        description=(
            "Executes a shell command inside the workspace and returns its exit "
            "code, stdout and stderr. Destructive commands (recursive deletes of "
            "the root or home directory, disk formatting, privilege escalation) "
            "are refused. Output is truncated beyond a fixed size."
        ),
        schema=SHELL_SCHEMA,
        capability=Capability.EXECUTE,
        prepare=partial(_prepare_shell, ctx),
        run=partial(_run_shell, ctx),
        timeout_seconds=ctx.settings.shell_timeout_seconds,
    )
