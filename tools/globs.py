"""
Glob Matching
-------------
Include-filter globs for search_file_content.

Supports *, ?, [...], ** (any number of directories) and {a,b}
alternation. A glob without '/' matches the file name; a glob with '/'
matches the path relative to the search root. Globs are only ever
matched against paths produced by walking inside the workspace, so they
filter candidates and cannot widen the walk.
"""

from typing import List, Optional
import re

from core.errors import validation_error


MAX_ALTERNATIVES = 256


def _split_top_level(body: str) -> List[str]:
    parts, depth, current = [], 0, []
    for ch in body:
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return parts


def expand_braces(pattern: str) -> List[str]:
    """Expand {a,b} alternation: 'src/*.{ts,tsx}' -> ['src/*.ts', 'src/*.tsx']."""
    depth, start = 0, -1

    for i, ch in enumerate(pattern):
        if ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                alternatives = _split_top_level(pattern[start + 1:i])
                if len(alternatives) < 2:
                    continue
                prefix, suffix = pattern[:start], pattern[i + 1:]
                expanded: List[str] = []
                for alt in alternatives:
                    expanded.extend(expand_braces(prefix + alt + suffix))
                    if len(expanded) > MAX_ALTERNATIVES:
                        raise validation_error(
                            f"Glob expands to more than {MAX_ALTERNATIVES} alternatives",
                            "include"
                        )
                return expanded

    return [pattern]


def _translate(pattern: str) -> str:
    """Translate one brace-free glob to a regex body."""
    out = []
    i, n = 0, len(pattern)

    while i < n:
        ch = pattern[i]

        if ch == "*":
            if pattern[i:i + 2] == "**":
                at_start = i == 0 or pattern[i - 1] == "/"
                if at_start and pattern[i + 2:i + 3] == "/":
                    out.append("(?:.*/)?")
                    i += 3
                    continue
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")

        elif ch == "?":
            out.append("[^/]")

        elif ch == "[":
            end = pattern.find("]", i + 2 if pattern[i + 1:i + 2] in ("!", "^") else i + 1)
            if end == -1:
                out.append(re.escape(ch))
            else:
                body = pattern[i + 1:end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append("[" + body.replace("\\", "\\\\") + "]")
                i = end

        else:
            out.append(re.escape(ch))

        i += 1

    return "".join(out)


def _compile(alternatives: List[str]) -> Optional[re.Pattern[str]]:
    if not alternatives:
        return None
    regex = "|".join(f"(?:{_translate(alt)})" for alt in alternatives)
    try:
        return re.compile(f"^(?:{regex})$", re.DOTALL)
    except re.error as e:
        raise validation_error(f"Invalid glob: {e}", "include")


class GlobFilter:
    """Compiled include filter."""

    def __init__(self, pattern: str):
        if not pattern or not pattern.strip():
            raise validation_error("'include' cannot be empty", "include")
        if pattern.startswith("/") or "\\" in pattern:
            raise validation_error(
                f"'include' must be a relative glob, not a path: {pattern}", "include"
            )

        alternatives = expand_braces(pattern)
        for alt in alternatives:
            if ".." in alt.split("/"):
                raise validation_error(
                    f"'include' cannot contain '..' segments: {pattern}", "include"
                )

        self.pattern = pattern
        self._name_regex = _compile([alt for alt in alternatives if "/" not in alt])
        self._path_regex = _compile([alt for alt in alternatives if "/" in alt])

    def matches(self, relative_path: str) -> bool:
        """Match a POSIX path relative to the search root."""
        if self._path_regex is not None and self._path_regex.match(relative_path):
            return True
        if self._name_regex is not None:
            name = relative_path.rsplit("/", 1)[-1]
            return self._name_regex.match(name) is not None
        return False

    def __repr__(self) -> str:
        return f"GlobFilter({self.pattern!r})"
