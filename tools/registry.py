"""
Tool Registry
-------------
Named tool definitions bound to one workspace.

This registry is the firewall between the model and the system: every
call goes lookup -> build -> execute, and whatever happens comes back
as an ExecutionResult. Nothing raises past invoke().
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging
import time

from core.cancellation import CancellationToken
from core.errors import ErrorKind, ToolError
from core.results import ExecutionResult
from infra.config import ToolSettings
from infra.logging import CallContext
from security.path_guard import PathGuard

from .base import Capability, ToolDefinition, ToolInvocation, WorkspaceContext
from .filesystem import list_directory_tool, read_file_tool, replace_tool, write_file_tool
from .locks import PathLockTable
from .search import search_file_content_tool
from .shell import run_shell_command_tool


DECLARATION_STYLES = ("gemini", "openai")


class ToolRegistry:
    """
    Registry of the tools available in one workspace.

    Holds no session state; safe to reuse across many agent turns. The
    only shared mutable state is the per-path write lock table, which is
    scoped to this instance.
    """

    def __init__(
        self,
        root: Union[str, Path, PathGuard],
        settings: Optional[ToolSettings] = None
    ):
        self.context = WorkspaceContext.create(root, settings)
        self._tools: Dict[str, ToolDefinition] = {}
        self._locks = PathLockTable()
        self._logger = logging.getLogger("workbench.tools.registry")

    @property
    def root(self) -> Path:
        return self.context.root

    @property
    def settings(self) -> ToolSettings:
        return self.context.settings

    def register(self, definition: ToolDefinition) -> None:
        """Register a tool. A duplicate name is refused, never overwritten."""
        if definition.name in self._tools:
            raise ToolError(
                ErrorKind.VALIDATION_ERROR,
                f"Tool already registered: {definition.name}",
                {"tool": definition.name}
            )

        self._tools[definition.name] = definition
        self._logger.debug(f"Registered tool: {definition.name} ({definition.capability.value})")

    def lookup(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def list_tools(self) -> List[ToolDefinition]:
        """List all registered tools, in registration order."""
        return list(self._tools.values())

    def list_by_capability(self, capability: Capability) -> List[ToolDefinition]:
        return [t for t in self._tools.values() if t.capability == capability]

    def tool_names(self) -> List[str]:
        return list(self._tools)

    def export_declarations(self, style: str = "gemini") -> List[Dict[str, Any]]:
        """
        Project tool definitions into function-calling declarations.

        Only the public contract (name, description, parameters) is
        exported; capability and implementation stay private.
        """
        if style == "gemini":
            return [t.to_declaration() for t in self._tools.values()]
        if style == "openai":
            return [t.to_openai_function() for t in self._tools.values()]
        raise ValueError(f"Unknown declaration style: {style!r} (expected one of {DECLARATION_STYLES})")

    def describe(self, name: str, args: Any) -> Optional[str]:
        """
        One-line summary of what a call would do, for confirmation UIs.

        Returns None if the tool is unknown or the arguments don't build.
        Nothing is executed.
        """
        definition = self.lookup(name)
        if definition is None:
            return None

        try:
            return definition.build(args).description
        except ToolError:
            return None

    def invoke(
        self,
        name: str,
        args: Any,
        token: Optional[CancellationToken] = None,
        call_id: Optional[str] = None
    ) -> ExecutionResult:
        """
        Look up, build and execute one tool call.

        Always returns an ExecutionResult; never raises.
        """
        with CallContext(call_id) as call_id:
            start = time.monotonic()

            definition = self.lookup(name)
            if definition is None:
                result = ExecutionResult.fail(
                    name,
                    ErrorKind.VALIDATION_ERROR,
                    f"Unknown tool: {name}",
                    {"reason": "unknown tool", "tool": name, "available": self.tool_names()}
                )
            else:
                result = self._invoke(definition, args, token)

            result.call_id = call_id
            result.execution_time_ms = (time.monotonic() - start) * 1000
            self._log_result(result)
            return result

    def _invoke(
        self,
        definition: ToolDefinition,
        args: Any,
        token: Optional[CancellationToken]
    ) -> ExecutionResult:
        call_token = CancellationToken.linked(token, definition.timeout_seconds)

        try:
            call_token.raise_if_cancelled()
            invocation = definition.build(args)
            self._logger.debug(f"Executing {invocation!r}")
            return self._execute(invocation, call_token)

        except ToolError as e:
            return ExecutionResult.from_error(definition.name, e)

        except OSError as e:
            return ExecutionResult.from_error(definition.name, ToolError.from_os_error(e))

        except Exception as e:
            self._logger.exception(f"Unexpected error in {definition.name}")
            return ExecutionResult.fail(
                definition.name,
                ErrorKind.IO_FAILURE,
                f"Unexpected error: {e}",
                {"exception": type(e).__name__}
            )

        finally:
            call_token.dispose()

    def _execute(self, invocation: ToolInvocation, token: CancellationToken) -> ExecutionResult:
        lock_path = invocation.lock_path
        if lock_path is None:
            return invocation.execute(token)

        with self._locks.hold(lock_path, token):
            return invocation.execute(token)

    def _log_result(self, result: ExecutionResult) -> None:
        extra = {
            "tool_name": result.tool_name,
            "execution_time_ms": round(result.execution_time_ms, 2),
            "success": result.success,
        }

        if result.success:
            self._logger.info(
                f"✓ {result.tool_name} ({result.execution_time_ms:.1f}ms)", extra=extra
            )
        else:
            extra["error_kind"] = result.kind.value
            self._logger.warning(
                f"✗ {result.tool_name}: {result.kind.value}: {result.message}", extra=extra
            )

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __repr__(self) -> str:
        return f"ToolRegistry(root={self.root}, tools={self.tool_names()})"


def create_default_registry(
    root: Union[str, Path, PathGuard],
    settings: Optional[ToolSettings] = None
) -> ToolRegistry:
    """
    Create a registry with the standard workspace tools.

    run_shell_command is only registered when shell execution is enabled;
    read_only settings leave out every tool that mutates the workspace.
    """
    registry = ToolRegistry(root, settings)
    ctx = registry.context

    factories = [
        read_file_tool,
        write_file_tool,
        list_directory_tool,
        search_file_content_tool,
        replace_tool,
    ]
    if ctx.settings.shell_enabled:
        factories.append(run_shell_command_tool)

    for factory in factories:
        definition = factory(ctx)
        if ctx.settings.read_only and definition.capability.mutates:
            continue
        registry.register(definition)

    return registry
