# Core module - error taxonomy, cancellation and result envelope
# Shared by every tool; nothing here touches the filesystem

from .errors import ErrorKind, ToolError, validation_error
from .cancellation import CancellationToken
from .results import (
    ExecutionResult,
    FileContent, DirectoryEntry, DirectoryListing,
    SearchMatch, SearchResults,
    WriteConfirmation, ReplaceConfirmation, ShellOutput,
)

__all__ = [
    "ErrorKind", "ToolError", "validation_error",
    "CancellationToken",
    "ExecutionResult",
    "FileContent", "DirectoryEntry", "DirectoryListing",
    "SearchMatch", "SearchResults",
    "WriteConfirmation", "ReplaceConfirmation", "ShellOutput",
]
