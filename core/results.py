"""
Execution Results
-----------------
Uniform envelope returned by every invocation.

An ExecutionResult is either a Success (kind is None, payload set) or a
Failure (kind, message, context). It is data: the agent loop pattern
matches on `kind` to retry, ask the user, or abort.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import base64

from .errors import ErrorKind, ToolError


# Payloads

@dataclass
class FileContent:
    """Content of a file read by read_file."""
    path: str
    size: int
    text: Optional[str] = None
    data: Optional[bytes] = None
    is_binary: bool = False
    mime_type: Optional[str] = None
    start_line: int = 0
    end_line: int = 0
    total_lines: int = 0
    truncated: bool = False
    next_offset: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "path": self.path,
            "size": self.size,
            "is_binary": self.is_binary,
            "truncated": self.truncated,
        }

        if self.is_binary:
            result["mime_type"] = self.mime_type
            result["data_base64"] = base64.b64encode(self.data or b"").decode("ascii")
        else:
            result["text"] = self.text
            result["start_line"] = self.start_line
            result["end_line"] = self.end_line
            result["total_lines"] = self.total_lines
            if self.next_offset is not None:
                result["next_offset"] = self.next_offset

        return result


@dataclass
class DirectoryEntry:
    """One entry of a directory listing."""
    name: str
    path: str  # Relative to the listed directory
    type: str  # "file", "dir" or "symlink"
    size: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "type": self.type,
            "size": self.size,
        }


@dataclass
class DirectoryListing:
    path: str
    entries: List[DirectoryEntry] = field(default_factory=list)
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "entries": [e.to_dict() for e in self.entries],
            "truncated": self.truncated,
        }


@dataclass
class SearchMatch:
    """A matching line: file, line number and matched text."""
    file: str  # Relative to the workspace root
    line_number: int
    line: str
    match: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.file,
            "line_number": self.line_number,
            "line": self.line,
            "match": self.match,
        }


@dataclass
class SearchResults:
    pattern: str
    matches: List[SearchMatch] = field(default_factory=list)
    files_scanned: int = 0
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern": self.pattern,
            "matches": [m.to_dict() for m in self.matches],
            "files_scanned": self.files_scanned,
            "truncated": self.truncated,
        }


@dataclass
class WriteConfirmation:
    path: str
    bytes_written: int
    created: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "bytes_written": self.bytes_written,
            "created": self.created,
        }


@dataclass
class ReplaceConfirmation:
    path: str
    replacements: int
    bytes_written: int
    created: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "replacements": self.replacements,
            "bytes_written": self.bytes_written,
            "created": self.created,
        }


@dataclass
class ShellOutput:
    """Exit code plus captured output of a shell command."""
    command: str
    directory: str
    exit_code: Optional[int]
    stdout: str = ""
    stderr: str = ""
    stdout_truncated: bool = False
    stderr_truncated: bool = False
    signal: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command,
            "directory": self.directory,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "stdout_truncated": self.stdout_truncated,
            "stderr_truncated": self.stderr_truncated,
            "signal": self.signal,
        }


# Envelope

@dataclass
class ExecutionResult:
    """Result of one tool invocation."""
    tool_name: str
    kind: Optional[ErrorKind] = None  # None means success
    payload: Any = None
    message: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    execution_time_ms: float = 0.0
    call_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def ok(cls, tool_name: str, payload: Any, **kwargs) -> "ExecutionResult":
        return cls(tool_name=tool_name, payload=payload, **kwargs)

    @classmethod
    def fail(
        cls,
        tool_name: str,
        kind: ErrorKind,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> "ExecutionResult":
        return cls(
            tool_name=tool_name,
            kind=kind,
            message=message,
            context=dict(context or {}),
            **kwargs
        )

    @classmethod
    def from_error(cls, tool_name: str, error: ToolError, **kwargs) -> "ExecutionResult":
        return cls.fail(tool_name, error.kind, error.message, error.context, **kwargs)

    @property
    def success(self) -> bool:
        return self.kind is None

    @property
    def recoverable(self) -> bool:
        return self.success or self.kind.recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Project into the function-response body sent back to the model."""
        if self.success:
            body = self.payload.to_dict() if hasattr(self.payload, "to_dict") else self.payload
            return {
                "tool": self.tool_name,
                "status": "success",
                "result": body,
            }

        return {
            "tool": self.tool_name,
            "status": "failure",
            "error": {
                "kind": self.kind.value,
                "message": self.message,
                "context": self.context,
                "recoverable": self.kind.recoverable,
            },
        }

    def __repr__(self) -> str:
        if self.success:
            return f"ExecutionResult(✓ {self.tool_name})"
        return f"ExecutionResult(✗ {self.tool_name}: {self.kind.value}: {self.message})"
