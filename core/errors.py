"""
Error Taxonomy
--------------
Flat error kinds shared by every tool.

Rules:
- Every failure carries exactly one ErrorKind
- ToolError is raised inside build/execute only
- The registry turns ToolError into data; it never escapes invoke()
"""

from enum import Enum
from typing import Any, Dict, Optional
import errno


class ErrorKind(str, Enum):
    """Kinds of tool failure, as seen by the agent loop."""
    VALIDATION_ERROR = "ValidationError"            # Bad or missing argument
    PATH_OUTSIDE_WORKSPACE = "PathOutsideWorkspace"  # Boundary violation
    FILE_NOT_FOUND = "FileNotFound"
    PERMISSION_DENIED = "PermissionDenied"
    ALREADY_EXISTS = "AlreadyExists"                # Non-overwrite write modes
    PATTERN_NOT_FOUND = "PatternNotFound"           # Search/replace target absent or ambiguous
    PROCESS_BLOCKED = "ProcessBlocked"              # Denylisted shell command
    CANCELLED = "Cancelled"
    IO_FAILURE = "IOFailure"                        # Catch-all for OS failures

    @property
    def recoverable(self) -> bool:
        """
        Whether retrying with different arguments can succeed.

        Security refusals are final: the same intent will be refused again.
        """
        return self not in _UNRECOVERABLE


_UNRECOVERABLE = {
    ErrorKind.PATH_OUTSIDE_WORKSPACE,
    ErrorKind.PROCESS_BLOCKED,
}


# errno -> kind for OSError mapping
_ERRNO_KINDS: Dict[int, ErrorKind] = {
    errno.ENOENT: ErrorKind.FILE_NOT_FOUND,
    errno.EACCES: ErrorKind.PERMISSION_DENIED,
    errno.EPERM: ErrorKind.PERMISSION_DENIED,
    errno.EROFS: ErrorKind.PERMISSION_DENIED,
    errno.EEXIST: ErrorKind.ALREADY_EXISTS,
    errno.ENOTDIR: ErrorKind.VALIDATION_ERROR,
    errno.EISDIR: ErrorKind.VALIDATION_ERROR,
}


class ToolError(Exception):
    """
    Structured tool failure.

    Raised by schema validation, the path guard, the command policy and
    tool runners. Converted to an ExecutionResult at the invocation or
    registry boundary.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})

    @classmethod
    def from_os_error(
        cls,
        exc: OSError,
        path: Optional[str] = None,
        action: str = "access"
    ) -> "ToolError":
        """Re-express an OSError as the matching kind."""
        kind = _ERRNO_KINDS.get(exc.errno, ErrorKind.IO_FAILURE)
        target = path or exc.filename or "<unknown>"
        reason = exc.strerror or str(exc)

        context: Dict[str, Any] = {"path": str(target)}
        if exc.errno is not None:
            context["errno"] = errno.errorcode.get(exc.errno, exc.errno)

        return cls(kind, f"Failed to {action} {target}: {reason}", context)

    def __repr__(self) -> str:
        return f"ToolError({self.kind.value}: {self.message})"


def validation_error(message: str, field: str = "", **context: Any) -> ToolError:
    """Create a validation error for one argument."""
    if field:
        context["field"] = field
    return ToolError(ErrorKind.VALIDATION_ERROR, message, context)
