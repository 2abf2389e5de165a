"""
Search Tool
-----------
search_file_content: regular expression search over workspace files.

Rules:
- The walk starts at a guarded directory and never follows directory
  symlinks, so it cannot leave the workspace
- File symlinks resolving outside the workspace are skipped
- `include` filters candidates; it never widens the walk
- Binary and oversized files are skipped, not errors
"""

from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
import logging
import os
import re
import stat

from core.cancellation import CancellationToken
from core.errors import validation_error
from core.results import SearchMatch, SearchResults

from .base import Capability, ToolDefinition, WorkspaceContext, not_found
from .fileio import SNIFF_BYTES, os_error, sniff_binary
from .globs import GlobFilter
from .schema import ParameterType, ToolParameter, ToolSchema


MAX_LINE_CHARS = 500

_logger = logging.getLogger("workbench.tools.search")


@dataclass(frozen=True)
class SearchParams:
    pattern: str
    regex: re.Pattern[str]
    path: Path
    display: str
    include: Optional[GlobFilter] = None

    def describe(self) -> str:
        description = f"'{self.pattern}'"
        if self.include is not None:
            description += f" in {self.include.pattern}"
        return f"{description} within {self.display}"

    def locations(self) -> List[str]:
        return [str(self.path)]


def _prepare_search(ctx: WorkspaceContext, args: Dict[str, Any]) -> SearchParams:
    pattern = args["pattern"]
    flags = 0 if args["case_sensitive"] else re.IGNORECASE

    try:
        regex = re.compile(pattern, flags)
    except re.error as e:
        raise validation_error(
            f"Invalid regular expression pattern: {pattern}. Error: {e}", "pattern"
        )

    if args.get("path") is not None:
        path = ctx.guard.resolve(args["path"], "path")
        try:
            st = os.stat(path)
        except FileNotFoundError:
            raise not_found(path, "Directory")
        except OSError as e:
            raise os_error(e, path, "access")
        if not stat.S_ISDIR(st.st_mode):
            raise validation_error(f"Path is not a directory: {path}", "path")
    else:
        path = ctx.root

    include = GlobFilter(args["include"]) if args.get("include") is not None else None

    return SearchParams(
        pattern=pattern,
        regex=regex,
        path=path,
        display=ctx.guard.relative(path),
        include=include,
    )


def _candidate_files(
    ctx: WorkspaceContext,
    params: SearchParams,
    token: CancellationToken
) -> Iterator[Path]:
    """Walk the search directory in sorted order, yielding included files."""
    ignored = set(ctx.settings.ignored_dirs)
    top = str(params.path)

    def on_error(e: OSError) -> None:
        if e.filename == top:
            raise os_error(e, params.path, "search")
        _logger.debug(f"Skipping unreadable directory {e.filename}: {e}")

    for dirpath, dirnames, filenames in os.walk(top, onerror=on_error, followlinks=False):
        token.raise_if_cancelled()
        dirnames[:] = sorted(d for d in dirnames if d not in ignored)

        for name in sorted(filenames):
            full = Path(dirpath) / name

            if params.include is not None:
                rel = full.relative_to(params.path).as_posix()
                if not params.include.matches(rel):
                    continue

            if full.is_symlink() and not ctx.guard.contains_resolved(full):
                _logger.debug(f"Skipping symlink leaving workspace: {full}")
                continue

            yield full


def _scan_file(
    ctx: WorkspaceContext,
    params: SearchParams,
    path: Path
) -> Optional[List[SearchMatch]]:
    """Matches in one file, or None if the file was skipped."""
    try:
        st = os.stat(path)
        if not stat.S_ISREG(st.st_mode) or st.st_size > ctx.settings.max_search_file_bytes:
            return None

        with open(path, "rb") as f:
            data = f.read(ctx.settings.max_search_file_bytes)
    except OSError as e:
        _logger.debug(f"Skipping unreadable file {path}: {e}")
        return None

    if sniff_binary(data[:SNIFF_BYTES]):
        return None

    rel = ctx.guard.relative(path)
    matches = []

    for line_number, line in enumerate(data.decode("utf-8", errors="replace").splitlines(), start=1):
        found = params.regex.search(line)
        if found is None:
            continue

        text = line.strip()
        if len(text) > MAX_LINE_CHARS:
            text = text[:MAX_LINE_CHARS] + "..."

        matches.append(SearchMatch(
            file=rel,
            line_number=line_number,
            line=text,
            match=found.group(0),
        ))

    return matches


def _run_search(
    ctx: WorkspaceContext,
    params: SearchParams,
    token: CancellationToken
) -> SearchResults:
    results = SearchResults(pattern=params.pattern)
    max_matches = ctx.settings.max_search_matches

    for path in _candidate_files(ctx, params, token):
        token.raise_if_cancelled()

        matches = _scan_file(ctx, params, path)
        if matches is None:
            continue
        results.files_scanned += 1

        for match in matches:
            if len(results.matches) >= max_matches:
                results.truncated = True
                return results
            results.matches.append(match)

    return results


SEARCH_SCHEMA = ToolSchema(parameters=[
    ToolParameter(
        name="pattern",
        type=ParameterType.STRING,
        description="The regular expression pattern to search for in file contents",
        min_length=1,
    ),
    ToolParameter(
        name="path",
        type=ParameterType.STRING,
        description="Absolute path of the directory to search in (defaults to the workspace root)",
        required=False,
    ),
    ToolParameter(
        name="include",
        type=ParameterType.STRING,
        description="Glob restricting which files are searched (e.g. '*.js', '*.{ts,tsx}', 'src/**/*.py')",
        required=False,
    ),
    ToolParameter(
        name="case_sensitive",
        type=ParameterType.BOOLEAN,
        description="Match case exactly (default false)",
        required=False,
        default=False,
    ),
])


def search_file_content_tool(ctx: WorkspaceContext) -> ToolDefinition:
    return ToolDefinition(
        name="search_file_content",
        display_name="SearchFileContent",
        description=(
            "Searches for a regular expression pattern within the content of files "
            "in a specified directory (or the workspace root). Can filter files by a "
            "glob pattern. Returns matching lines with their file paths and line numbers."
        ),
        schema=SEARCH_SCHEMA,
        capability=Capability.SEARCH,
        prepare=partial(_prepare_search, ctx),
        run=partial(_run_search, ctx),
    )
