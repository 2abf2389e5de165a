# Tools module - Tool definitions, registry and the built-in workspace tools
# Each tool: name, JSON schema, capability, prepare + run
# This registry is the firewall between the model and the system

from .schema import ParameterType, ToolParameter, ToolSchema
from .base import Capability, ToolDefinition, ToolInvocation, WorkspaceContext
from .registry import ToolRegistry, create_default_registry

__all__ = [
    "ParameterType",
    "ToolParameter",
    "ToolSchema",
    "Capability",
    "ToolDefinition",
    "ToolInvocation",
    "WorkspaceContext",
    "ToolRegistry",
    "create_default_registry",
]
