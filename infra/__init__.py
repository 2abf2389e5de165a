# Infrastructure module - Settings, logging and the HTTP service bus
# The service bus is imported from infra.service_bus directly; it depends
# on tools, which in turn depend on infra.config

from .config import ToolSettings, load_settings, settings_from_mapping
from .logging import (
    get_logger, configure_logging, reset_logging,
    CallContext, get_call_id, generate_call_id
)

__all__ = [
    # Settings
    "ToolSettings",
    "load_settings",
    "settings_from_mapping",
    # Logging
    "get_logger",
    "configure_logging",
    "reset_logging",
    "CallContext",
    "get_call_id",
    "generate_call_id",
]
