"""
Path Guard
----------
Confines every filesystem and process side effect to one workspace root.

Rules:
- Candidates must be absolute; relative paths are rejected, never joined
- `.`/`..` segments and symlinks are resolved before the check
- Containment is compared segment by segment, so /workspace-evil is
  not inside /workspace
- Pure function of (candidate, root); no tool touches an unresolved path
"""

from pathlib import Path
from typing import Any, Union
import logging
import os

from core.errors import ErrorKind, ToolError, validation_error


class PathGuard:
    """Canonicalizes candidate paths and checks them against the root."""

    def __init__(self, root: Union[str, Path]):
        resolved = Path(os.path.realpath(os.path.abspath(os.fspath(root))))
        if not resolved.is_dir():
            raise ValueError(f"Workspace root is not a directory: {root}")

        self._root = resolved
        self._logger = logging.getLogger("workbench.security.path_guard")

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, candidate: Any, field: str = "path") -> Path:
        """
        Resolve a model-supplied path to its canonical absolute form.

        Raises ToolError(VALIDATION_ERROR) for malformed input and
        ToolError(PATH_OUTSIDE_WORKSPACE) when the canonical path escapes.
        """
        if not isinstance(candidate, str):
            raise validation_error(f"'{field}' must be a string", field)

        if not candidate.strip():
            raise validation_error(f"'{field}' cannot be empty", field)

        if "\x00" in candidate:
            raise validation_error(f"'{field}' contains a NUL byte", field)

        if not os.path.isabs(candidate):
            raise validation_error(
                f"Path must be absolute, but was relative: {candidate}. "
                f"Paths are resolved against nothing; pass an absolute path "
                f"under {self._root}",
                field,
                path=candidate
            )

        canonical = Path(os.path.realpath(candidate))

        if not self.contains(canonical):
            self._logger.warning(f"Path outside workspace rejected: {candidate} -> {canonical}")
            raise ToolError(
                ErrorKind.PATH_OUTSIDE_WORKSPACE,
                f"Path must be within the workspace directory: {self._root}",
                {"field": field, "path": candidate, "resolved": str(canonical)}
            )

        return canonical

    def contains(self, path: Union[str, Path]) -> bool:
        """Check an already-canonical path is the root or beneath it."""
        path = Path(path)
        return path == self._root or self._root in path.parents

    def contains_resolved(self, path: Union[str, Path]) -> bool:
        """Resolve symlinks in `path` and check containment."""
        return self.contains(Path(os.path.realpath(path)))

    def relative(self, path: Union[str, Path]) -> str:
        """POSIX-style path relative to the root ("." for the root)."""
        rel = Path(path).relative_to(self._root).as_posix()
        return rel or "."

    def __repr__(self) -> str:
        return f"PathGuard(root={self._root})"
