"""
Filesystem Tools
----------------
read_file, write_file, list_directory and replace.

Each tool is a params dataclass plus two functions:
- _prepare_*: semantic validation and path resolution (build time)
- _run_*: the effect, with token checks at each suspension point

Paths in params are canonical and inside the workspace; runners never
re-check them.
"""

from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import fnmatch
import logging
import mimetypes
import os
import stat

from core.cancellation import CancellationToken
from core.errors import ErrorKind, ToolError, validation_error
from core.results import (
    DirectoryEntry, DirectoryListing, FileContent,
    ReplaceConfirmation, WriteConfirmation,
)

from .base import Capability, ToolDefinition, WorkspaceContext, not_found
from .fileio import (
    SNIFF_BYTES, atomic_write, check_parent_chain, ensure_parent,
    os_error, read_limited, remove_created, sniff_binary,
)
from .schema import ParameterType, ToolParameter, ToolSchema


_logger = logging.getLogger("workbench.tools.filesystem")


def _stat(path: Path, action: str = "access") -> Optional[os.stat_result]:
    """stat() that returns None for a missing path."""
    try:
        return os.stat(path)
    except FileNotFoundError:
        return None
    except OSError as e:
        raise os_error(e, path, action)


def _is_dir(path: Path) -> bool:
    """Directory check for build; permission errors map to their ErrorKind."""
    try:
        st = os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return False
    except OSError as e:
        raise os_error(e, path, "access")
    return stat.S_ISDIR(st.st_mode)


def _snippet(text: str, width: int = 30) -> str:
    first = text.split("\n")[0]
    return first[:width] + ("..." if len(text) > width else "")


# =============================================================================
# read_file
# =============================================================================

@dataclass(frozen=True)
class ReadFileParams:
    path: Path
    display: str
    offset: Optional[int] = None
    limit: Optional[int] = None

    def describe(self) -> str:
        return f"Reading {self.display}"

    def locations(self) -> List[str]:
        return [str(self.path)]


def _prepare_read_file(ctx: WorkspaceContext, args: Dict[str, Any]) -> ReadFileParams:
    path = ctx.guard.resolve(args["absolute_path"], "absolute_path")

    st = _stat(path)
    if st is None:
        raise not_found(path)
    if stat.S_ISDIR(st.st_mode):
        raise validation_error(f"Path is a directory, not a file: {path}", "absolute_path")
    if not stat.S_ISREG(st.st_mode):
        raise validation_error(f"Not a regular file: {path}", "absolute_path")

    max_bytes = ctx.settings.max_read_bytes
    if st.st_size > max_bytes:
        raise validation_error(
            f"File too large ({st.st_size} bytes, max {max_bytes})",
            "absolute_path",
            size=st.st_size,
            max_bytes=max_bytes
        )

    return ReadFileParams(
        path=path,
        display=ctx.guard.relative(path),
        offset=args.get("offset"),
        limit=args.get("limit"),
    )


def _run_read_file(
    ctx: WorkspaceContext,
    params: ReadFileParams,
    token: CancellationToken
) -> FileContent:
    max_bytes = ctx.settings.max_read_bytes

    try:
        data = read_limited(params.path, max_bytes + 1, token)
    except OSError as e:
        raise os_error(e, params.path, "read")

    # File grew past the cap after build
    size_truncated = len(data) > max_bytes
    data = data[:max_bytes]

    if sniff_binary(data[:SNIFF_BYTES]):
        mime_type, _ = mimetypes.guess_type(params.path.name)
        return FileContent(
            path=str(params.path),
            size=len(data),
            data=data,
            is_binary=True,
            mime_type=mime_type or "application/octet-stream",
            truncated=size_truncated,
        )

    lines = data.decode("utf-8", errors="replace").splitlines(keepends=True)
    total = len(lines)
    offset = params.offset or 0

    if params.limit is not None:
        selected = lines[offset:offset + params.limit]
    else:
        selected = lines[offset:]

    end = offset + len(selected)
    window_truncated = end < total

    return FileContent(
        path=str(params.path),
        size=len(data),
        text="".join(selected),
        start_line=offset + 1 if selected else 0,
        end_line=end if selected else 0,
        total_lines=total,
        truncated=size_truncated or window_truncated,
        next_offset=end if window_truncated else None,
    )


READ_FILE_SCHEMA = ToolSchema(parameters=[
    ToolParameter(
        name="absolute_path",
        type=ParameterType.STRING,
        description="The absolute path to the file to read",
        min_length=1,
    ),
    ToolParameter(
        name="offset",
        type=ParameterType.INTEGER,
        description="The 0-based line number to start reading from (optional)",
        required=False,
        min_value=0,
    ),
    ToolParameter(
        name="limit",
        type=ParameterType.INTEGER,
        description="The number of lines to read (optional)",
        required=False,
        min_value=1,
    ),
])


def read_file_tool(ctx: WorkspaceContext) -> ToolDefinition:
    return ToolDefinition(
        name="read_file",
        display_name="ReadFile",
        description=(
            "Reads and returns the content of a specified file. If the file is "
            "large, the content can be paginated using 'offset' and 'limit'. "
            "Binary files are returned as raw bytes and flagged as binary."
        ),
        schema=READ_FILE_SCHEMA,
        capability=Capability.READ,
        prepare=partial(_prepare_read_file, ctx),
        run=partial(_run_read_file, ctx),
    )


# =============================================================================
# write_file
# =============================================================================

WRITE_MODES = ["overwrite", "create"]


@dataclass(frozen=True)
class WriteFileParams:
    path: Path
    display: str
    data: bytes
    mode: str = "overwrite"

    @property
    def lock_path(self) -> Path:
        return self.path

    def describe(self) -> str:
        return f"Writing to {self.display}"

    def locations(self) -> List[str]:
        return [str(self.path)]


def _prepare_write_file(ctx: WorkspaceContext, args: Dict[str, Any]) -> WriteFileParams:
    path = ctx.guard.resolve(args["file_path"], "file_path")

    if path == ctx.root or _is_dir(path):
        raise validation_error(f"Path is a directory, not a file: {path}", "file_path")

    if args["mode"] == "create" and os.path.lexists(path):
        raise ToolError(
            ErrorKind.ALREADY_EXISTS,
            f"File already exists: {path}",
            {"path": str(path), "mode": "create"}
        )

    check_parent_chain(path, "file_path")

    data = args["content"].encode("utf-8")
    max_bytes = ctx.settings.max_write_bytes
    if len(data) > max_bytes:
        raise validation_error(
            f"Content too large ({len(data)} bytes, max {max_bytes})",
            "content",
            size=len(data),
            max_bytes=max_bytes
        )

    return WriteFileParams(
        path=path,
        display=ctx.guard.relative(path),
        data=data,
        mode=args["mode"],
    )


def _run_write_file(
    ctx: WorkspaceContext,
    params: WriteFileParams,
    token: CancellationToken
) -> WriteConfirmation:
    path = params.path
    existed = os.path.lexists(path)

    if params.mode == "create" and existed:
        raise ToolError(
            ErrorKind.ALREADY_EXISTS,
            f"File already exists: {path}",
            {"path": str(path), "mode": "create"}
        )

    try:
        created_dirs = ensure_parent(path, token, "file_path")
    except OSError as e:
        raise os_error(e, path.parent, "create directory")

    try:
        written = atomic_write(path, params.data, token, ctx.settings.write_chunk_size)
    except OSError as e:
        remove_created(created_dirs)
        raise os_error(e, path, "write")
    except BaseException:
        remove_created(created_dirs)
        raise

    _logger.debug(f"Wrote {written} bytes to {path}")
    return WriteConfirmation(path=str(path), bytes_written=written, created=not existed)


WRITE_FILE_SCHEMA = ToolSchema(parameters=[
    ToolParameter(
        name="file_path",
        type=ParameterType.STRING,
        description="The absolute path to the file to write to",
        min_length=1,
    ),
    ToolParameter(
        name="content",
        type=ParameterType.STRING,
        description="The content to write to the file",
    ),
    ToolParameter(
        name="mode",
        type=ParameterType.STRING,
        description="'overwrite' (default) replaces an existing file; 'create' fails if it exists",
        required=False,
        default="overwrite",
        enum=WRITE_MODES,
    ),
])


def write_file_tool(ctx: WorkspaceContext) -> ToolDefinition:
    return ToolDefinition(
        name="write_file",
        display_name="WriteFile",
        description=(
            "Writes content to a specified file. Creates the file and any missing "
            "parent directories if needed, or overwrites it if it exists."
        ),
        schema=WRITE_FILE_SCHEMA,
        capability=Capability.WRITE,
        prepare=partial(_prepare_write_file, ctx),
        run=partial(_run_write_file, ctx),
    )


# =============================================================================
# list_directory
# =============================================================================

@dataclass(frozen=True)
class ListDirectoryParams:
    path: Path
    display: str
    ignore: Tuple[str, ...] = ()
    recursive: bool = False
    include_hidden: bool = True

    def describe(self) -> str:
        return f"Listing {self.display}"

    def locations(self) -> List[str]:
        return [str(self.path)]


def _prepare_list_directory(ctx: WorkspaceContext, args: Dict[str, Any]) -> ListDirectoryParams:
    path = ctx.guard.resolve(args["path"], "path")

    st = _stat(path)
    if st is None:
        raise not_found(path, "Directory")
    if not stat.S_ISDIR(st.st_mode):
        raise validation_error(f"Path is not a directory: {path}", "path")

    ignore = tuple(args.get("ignore") or ())
    for pattern in ignore:
        if not pattern:
            raise validation_error("Ignore patterns cannot be empty", "ignore")

    return ListDirectoryParams(
        path=path,
        display=ctx.guard.relative(path),
        ignore=ignore,
        recursive=args["recursive"],
        include_hidden=args["include_hidden"],
    )


def _classify(ctx: WorkspaceContext, item: os.DirEntry) -> Optional[Tuple[str, int]]:
    """
    Type tag and size for one entry, or None to skip it.

    Symlinks resolving outside the workspace are skipped; so are entries
    that vanish while listing.
    """
    try:
        if item.is_symlink():
            if not ctx.guard.contains_resolved(item.path):
                _logger.debug(f"Skipping symlink leaving workspace: {item.path}")
                return None
            return "symlink", 0
        if item.is_dir(follow_symlinks=False):
            return "dir", 0
        return "file", item.stat(follow_symlinks=False).st_size
    except OSError as e:
        _logger.debug(f"Skipping unreadable entry {item.path}: {e}")
        return None


def _run_list_directory(
    ctx: WorkspaceContext,
    params: ListDirectoryParams,
    token: CancellationToken
) -> DirectoryListing:
    listing = DirectoryListing(path=str(params.path))
    max_entries = ctx.settings.max_list_entries

    def ignored(name: str) -> bool:
        if not params.include_hidden and name.startswith("."):
            return True
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in params.ignore)

    def visit(directory: str, prefix: str, top: bool) -> bool:
        token.raise_if_cancelled()

        try:
            with os.scandir(directory) as it:
                items = sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            if top:
                raise os_error(e, Path(directory), "list")
            _logger.debug(f"Skipping unreadable directory {directory}: {e}")
            return True

        for item in items:
            if ignored(item.name):
                continue

            classified = _classify(ctx, item)
            if classified is None:
                continue

            if len(listing.entries) >= max_entries:
                listing.truncated = True
                return False

            entry_type, size = classified
            rel = f"{prefix}{item.name}"
            listing.entries.append(DirectoryEntry(name=item.name, path=rel, type=entry_type, size=size))

            if params.recursive and entry_type == "dir":
                if not visit(item.path, f"{rel}/", False):
                    return False

        return True

    visit(str(params.path), "", True)
    return listing


LIST_DIRECTORY_SCHEMA = ToolSchema(parameters=[
    ToolParameter(
        name="path",
        type=ParameterType.STRING,
        description="The absolute path to the directory to list",
        min_length=1,
    ),
    ToolParameter(
        name="ignore",
        type=ParameterType.ARRAY,
        description="Glob patterns for entry names to leave out (optional)",
        required=False,
        items=ParameterType.STRING,
    ),
    ToolParameter(
        name="recursive",
        type=ParameterType.BOOLEAN,
        description="List subdirectories recursively (default false)",
        required=False,
        default=False,
    ),
    ToolParameter(
        name="include_hidden",
        type=ParameterType.BOOLEAN,
        description="Include entries whose names start with '.' (default true)",
        required=False,
        default=True,
    ),
])


def list_directory_tool(ctx: WorkspaceContext) -> ToolDefinition:
    return ToolDefinition(
        name="list_directory",
        display_name="ListDirectory",
        description=(
            "Lists the files and subdirectories directly within a specified "
            "directory path, tagged as file, dir or symlink. Can optionally "
            "ignore entries matching glob patterns or recurse into subdirectories."
        ),
        schema=LIST_DIRECTORY_SCHEMA,
        capability=Capability.LIST,
        prepare=partial(_prepare_list_directory, ctx),
        run=partial(_run_list_directory, ctx),
    )


# =============================================================================
# replace
# =============================================================================

@dataclass(frozen=True)
class ReplaceParams:
    path: Path
    display: str
    old_string: str
    new_string: str
    expected_replacements: int = 1
    replace_all: bool = False

    @property
    def lock_path(self) -> Path:
        return self.path

    @property
    def creates_file(self) -> bool:
        return self.old_string == ""

    def describe(self) -> str:
        if self.creates_file:
            return f"Create {self.display}"
        return f"{self.display}: {_snippet(self.old_string)} => {_snippet(self.new_string)}"

    def locations(self) -> List[str]:
        return [str(self.path)]


def _prepare_replace(ctx: WorkspaceContext, args: Dict[str, Any]) -> ReplaceParams:
    path = ctx.guard.resolve(args["file_path"], "file_path")
    old_string = args["old_string"]
    new_string = args["new_string"]

    if old_string == new_string:
        raise validation_error(
            "No changes to apply: old_string and new_string are identical", "new_string"
        )

    if args["replace_all"] and args.get("expected_replacements") is not None:
        raise validation_error(
            "expected_replacements cannot be combined with replace_all",
            "expected_replacements"
        )

    if path == ctx.root or _is_dir(path):
        raise validation_error(f"Path is a directory, not a file: {path}", "file_path")

    exists = os.path.lexists(path)
    if old_string == "":
        if exists:
            raise ToolError(
                ErrorKind.ALREADY_EXISTS,
                f"Attempted to create a file that already exists: {path}",
                {"path": str(path)}
            )
        check_parent_chain(path, "file_path")
    elif not exists:
        raise not_found(path)

    return ReplaceParams(
        path=path,
        display=ctx.guard.relative(path),
        old_string=old_string,
        new_string=new_string,
        expected_replacements=args.get("expected_replacements") or 1,
        replace_all=args["replace_all"],
    )


def _read_text(path: Path) -> Optional[str]:
    """Read UTF-8 text exactly as stored (no newline translation)."""
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()
    except FileNotFoundError:
        return None
    except UnicodeDecodeError:
        raise validation_error(f"File is not UTF-8 text and cannot be edited: {path}", "file_path")
    except OSError as e:
        raise os_error(e, path, "read")


def _run_replace(
    ctx: WorkspaceContext,
    params: ReplaceParams,
    token: CancellationToken
) -> ReplaceConfirmation:
    path = params.path
    current = _read_text(path)

    if params.creates_file:
        if current is not None:
            raise ToolError(
                ErrorKind.ALREADY_EXISTS,
                f"Attempted to create a file that already exists: {path}",
                {"path": str(path)}
            )
        new_content = params.new_string
        replacements = 1

    else:
        if current is None:
            raise not_found(path)

        occurrences = current.count(params.old_string)

        if occurrences == 0:
            raise ToolError(
                ErrorKind.PATTERN_NOT_FOUND,
                f"Could not find the string to replace in {path}. No edits made.",
                {"path": str(path), "occurrences": 0}
            )

        if not params.replace_all and occurrences != params.expected_replacements:
            raise ToolError(
                ErrorKind.PATTERN_NOT_FOUND,
                f"Expected {params.expected_replacements} occurrence(s) but found "
                f"{occurrences} in {path}. No edits made; add surrounding context to "
                f"make old_string unique, or set replace_all.",
                {
                    "path": str(path),
                    "occurrences": occurrences,
                    "expected": params.expected_replacements,
                }
            )

        new_content = current.replace(params.old_string, params.new_string)
        replacements = occurrences

    data = new_content.encode("utf-8")
    max_bytes = ctx.settings.max_write_bytes
    if len(data) > max_bytes:
        raise validation_error(
            f"Resulting file too large ({len(data)} bytes, max {max_bytes})",
            "new_string"
        )

    created_dirs: List[Path] = []
    try:
        if params.creates_file:
            created_dirs = ensure_parent(path, token, "file_path")
        written = atomic_write(path, data, token, ctx.settings.write_chunk_size)
    except OSError as e:
        remove_created(created_dirs)
        raise os_error(e, path, "write")
    except BaseException:
        remove_created(created_dirs)
        raise

    return ReplaceConfirmation(
        path=str(path),
        replacements=replacements,
        bytes_written=written,
        created=params.creates_file,
    )


REPLACE_SCHEMA = ToolSchema(parameters=[
    ToolParameter(
        name="file_path",
        type=ParameterType.STRING,
        description="The absolute path to the file to modify",
        min_length=1,
    ),
    ToolParameter(
        name="old_string",
        type=ParameterType.STRING,
        description=(
            "The exact text to replace, including enough surrounding context to "
            "be unique. Empty to create a new file."
        ),
    ),
    ToolParameter(
        name="new_string",
        type=ParameterType.STRING,
        description="The text to replace it with",
    ),
    ToolParameter(
        name="expected_replacements",
        type=ParameterType.INTEGER,
        description="Number of occurrences expected (defaults to 1)",
        required=False,
        min_value=1,
    ),
    ToolParameter(
        name="replace_all",
        type=ParameterType.BOOLEAN,
        description="Replace every occurrence instead of exactly the expected count",
        required=False,
        default=False,
    ),
])


def replace_tool(ctx: WorkspaceContext) -> ToolDefinition:
    return ToolDefinition(
        name="replace",
        display_name="Edit",
        description=(
            "Replaces exact text within a file. By default exactly one occurrence "
            "must exist; fails without editing if the text is missing or ambiguous. "
            "Use 'expected_replacements' or 'replace_all' for multi-site edits."
        ),
        schema=REPLACE_SCHEMA,
        capability=Capability.WRITE,
        prepare=partial(_prepare_replace, ctx),
        run=partial(_run_replace, ctx),
    )
