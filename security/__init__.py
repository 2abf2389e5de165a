# Security module - workspace boundary and shell command policy
# Every path and command from the model passes through here first

from .path_guard import PathGuard
from .command_policy import CommandPolicy, CommandRule, DEFAULT_RULES

__all__ = ["PathGuard", "CommandPolicy", "CommandRule", "DEFAULT_RULES"]
