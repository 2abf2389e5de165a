"""
Tool Definition & Invocation
----------------------------
The uniform contract every tool satisfies.

    ToolDefinition --build(raw args)--> ToolInvocation --execute(token)--> ExecutionResult

Rules:
- build() is all-or-nothing: schema validation, semantic validation and
  path-guard resolution all happen there, or no invocation exists
- An invocation never re-validates; its paths are already canonical
- execute() never raises; failures come back as data
- Tools are variants (a definition plus two functions), not subclasses
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
import re
import time

from core.cancellation import CancellationToken
from core.errors import ErrorKind, ToolError
from core.results import ExecutionResult
from infra.config import ToolSettings
from security.command_policy import CommandPolicy
from security.path_guard import PathGuard

from .schema import ToolSchema


class Capability(str, Enum):
    """Capability classes, used for policy decisions (not dispatch)."""
    READ = "read"
    WRITE = "write"
    SEARCH = "search"
    LIST = "list"
    EXECUTE = "execute"

    @property
    def mutates(self) -> bool:
        return self in (Capability.WRITE, Capability.EXECUTE)


@dataclass(frozen=True)
class WorkspaceContext:
    """
    Everything a tool needs to know about its workspace.

    One context per registry; shared read-only by all of its tools.
    """
    guard: PathGuard
    settings: ToolSettings = field(default_factory=ToolSettings)
    command_policy: CommandPolicy = field(default_factory=CommandPolicy)

    @classmethod
    def create(cls, root, settings: Optional[ToolSettings] = None) -> "WorkspaceContext":
        settings = settings or ToolSettings()
        return cls(
            guard=root if isinstance(root, PathGuard) else PathGuard(root),
            settings=settings,
            command_policy=CommandPolicy(settings.denied_commands),
        )

    @property
    def root(self) -> Path:
        return self.guard.root


# Preparer: validated args -> frozen params object (semantic checks, path guard)
Preparer = Callable[[Dict[str, Any]], Any]
# Runner: (params, token) -> payload
Runner = Callable[[Any, CancellationToken], Any]

_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,63}$")


@dataclass(frozen=True)
class ToolInvocation:
    """
    A validated, parameter-bound call, ready to run.

    Produced only by ToolDefinition.build(). Discarded after execute().
    """
    tool_name: str
    capability: Capability
    params: Any
    runner: Runner = field(repr=False)

    @property
    def lock_path(self) -> Optional[Path]:
        """Canonical path to serialize on (write-class tools only)."""
        if self.capability != Capability.WRITE:
            return None
        return getattr(self.params, "lock_path", None)

    @property
    def description(self) -> str:
        """One-line human summary, e.g. 'Reading src/app.ts'."""
        describe = getattr(self.params, "describe", None)
        return describe() if describe else self.tool_name

    @property
    def locations(self) -> List[str]:
        """Absolute paths this call touches."""
        locations = getattr(self.params, "locations", None)
        return locations() if locations else []

    def execute(self, token: Optional[CancellationToken] = None) -> ExecutionResult:
        """
        Perform the effect.

        Checks the token before starting; runners check it again at each
        suspension point. OSError is mapped to its ErrorKind here.
        """
        token = token or CancellationToken.none()
        start = time.monotonic()

        try:
            token.raise_if_cancelled()
            payload = self.runner(self.params, token)
            result = ExecutionResult.ok(self.tool_name, payload)
        except ToolError as e:
            result = ExecutionResult.from_error(self.tool_name, e)
        except OSError as e:
            result = ExecutionResult.from_error(self.tool_name, ToolError.from_os_error(e))

        result.execution_time_ms = (time.monotonic() - start) * 1000
        return result

    def __repr__(self) -> str:
        return f"ToolInvocation({self.tool_name}: {self.description})"


@dataclass(frozen=True)
class ToolDefinition:
    """
    Immutable description of one operation.

    Each tool defines:
    - Name, display name and description (exposed to the model)
    - Parameter schema
    - Capability class
    - prepare: semantic validation producing the params object
    - run: the effect itself
    """
    name: str
    description: str
    schema: ToolSchema
    capability: Capability
    prepare: Preparer = field(repr=False)
    run: Runner = field(repr=False)
    display_name: str = ""
    timeout_seconds: Optional[float] = None

    def __post_init__(self):
        if not _NAME_PATTERN.match(self.name):
            raise ValueError(f"Invalid tool name: {self.name!r}")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

    def build(self, raw_arguments: Any) -> ToolInvocation:
        """
        Validate raw arguments and bind them into an invocation.

        Raises ToolError; nothing partial is ever returned.
        """
        args = self.schema.validate(raw_arguments)
        params = self.prepare(args)

        return ToolInvocation(
            tool_name=self.name,
            capability=self.capability,
            params=params,
            runner=self.run,
        )

    def to_declaration(self) -> Dict[str, Any]:
        """Public contract only: name, description, parameters."""
        return self.schema.to_declaration(self.name, self.description)

    def to_openai_function(self) -> Dict[str, Any]:
        return self.schema.to_openai_function(self.name, self.description)

    def __repr__(self) -> str:
        return f"ToolDefinition(name={self.name}, capability={self.capability.value})"


def not_found(path: Path, what: str = "File") -> ToolError:
    return ToolError(
        ErrorKind.FILE_NOT_FOUND,
        f"{what} not found: {path}",
        {"path": str(path)}
    )
