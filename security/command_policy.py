"""
Shell Command Policy
--------------------
Denylist of destructive command patterns, checked before any spawn.

Default allow, explicit deny. A denylist cannot make arbitrary shell
safe; it refuses the well-known destructive forms. The working
directory pin and process-group kill live in tools.shell.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional
import logging
import re

from core.errors import ErrorKind, ToolError


@dataclass(frozen=True)
class CommandRule:
    """One denylist entry."""
    name: str
    pattern: re.Pattern[str]

    def matches(self, command: str) -> bool:
        return self.pattern.search(command) is not None


def _rule(name: str, regex: str) -> CommandRule:
    return CommandRule(name=name, pattern=re.compile(regex, re.IGNORECASE))


# Start-of-command anchor: beginning of input or after ; & | ( or backtick
_CMD = r"(?:^|[;&|(`]|\$\()\s*"

# rm with recursive and force flags, combined (-rf, -fr) or separate (-r -f)
_RM_FLAGS = (
    r"(?:-[a-z]*(?:r[a-z]*f|f[a-z]*r)[a-z]*"
    r"|-[a-z]*r[a-z]*\s+(?:-\S+\s+)*-[a-z]*f[a-z]*"
    r"|-[a-z]*f[a-z]*\s+(?:-\S+\s+)*-[a-z]*r[a-z]*"
    r"|--recursive\s+(?:-\S+\s+)*--force"
    r"|--force\s+(?:-\S+\s+)*--recursive)"
)

# Targets: /, /*, ~, ~/*, $HOME, *, . and ..
_RM_TARGETS = r"(?:/|/\*|~/?|~/\*|\$HOME/?|\*|\.\.?/?)(?=\s|$|[;&|])"

DEFAULT_RULES: List[CommandRule] = [
    _rule("recursive delete of root or home",
          r"\brm\s+(?:-\S+\s+)*" + _RM_FLAGS + r"\s+(?:-\S+\s+)*" + _RM_TARGETS),
    _rule("fork bomb", r":\s*\(\s*\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:"),
    _rule("filesystem format", r"\bmkfs(?:\.[a-z0-9]+)?\b"),
    _rule("raw disk write", r"\bdd\b[^;&|]*\bof=/dev/"),
    _rule("redirect onto block device", r">\s*/dev/(?:sd[a-z]|nvme\d|hd[a-z]|disk\d|mmcblk\d)"),
    _rule("system power state", _CMD + r"(?:shutdown|reboot|halt|poweroff|init\s+[06])\b"),
    _rule("recursive chmod of root", r"\bchmod\s+(?:-[a-z]*\s+)*-[a-z]*r[a-z]*\s+(?:[0-7]{3,4}|[ugoa]*[+=-][rwx]+)\s+/(?:\s|$)"),
    _rule("recursive chown of root", r"\bchown\s+(?:-[a-z]*\s+)*-[a-z]*r[a-z]*\s+\S+\s+/(?:\s|$)"),
    _rule("pipe download into shell", r"\b(?:curl|wget)\b[^;&]*\|\s*(?:sudo\s+)?(?:ba|z|k|da)?sh\b"),
    _rule("privilege escalation", _CMD + r"(?:sudo|su|doas)\b"),
]


class CommandPolicy:
    """
    Ordered denylist checked against the full command string.

    Rules:
    - Built-in rules always apply
    - Extra regexes come from configuration (`denied_commands`)
    - First matching rule wins and is named in the failure
    """

    def __init__(self, extra_patterns: Optional[Iterable[str]] = None):
        self._rules: List[CommandRule] = list(DEFAULT_RULES)
        self._logger = logging.getLogger("workbench.security.command_policy")

        for index, regex in enumerate(extra_patterns or []):
            try:
                self._rules.append(_rule(f"configured rule {index + 1}", regex))
            except re.error as e:
                raise ValueError(f"Invalid denied_commands pattern {regex!r}: {e}") from e

    @property
    def rules(self) -> List[CommandRule]:
        return list(self._rules)

    def find_violation(self, command: str) -> Optional[CommandRule]:
        """Return the first rule the command matches, if any."""
        for rule in self._rules:
            if rule.matches(command):
                return rule
        return None

    def check(self, command: str) -> None:
        """Raise ToolError(PROCESS_BLOCKED) if the command is denylisted."""
        rule = self.find_violation(command)
        if rule is None:
            return

        self._logger.warning(f"Blocked command ({rule.name}): {command}")
        raise ToolError(
            ErrorKind.PROCESS_BLOCKED,
            f"Command contains a dangerous pattern and is not allowed: {rule.name}",
            {"command": command, "rule": rule.name}
        )

    def __len__(self) -> int:
        return len(self._rules)
