"""
Workbench Logging
-----------------
Structured logging with call_id propagation for per-invocation tracing.

Design:
- Every registry invoke() gets a unique call_id
- call_id propagates through: Registry -> Invocation -> tool runner
- Console output via Rich, file output as JSON lines
- Severity discipline: INFO=completed call, WARNING=refused/failed call,
  ERROR=unexpected exception

Usage:
    from infra.logging import get_logger, CallContext

    logger = get_logger("tools.custom")

    with CallContext() as call_id:
        logger.info("Doing work")  # record carries call_id
"""

from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
import contextvars
import json
import logging
import uuid

from rich.console import Console
from rich.logging import RichHandler


ROOT_LOGGER = "workbench"

# Context variable for call_id - thread-safe and async-safe
_call_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "call_id", default=None
)


def generate_call_id() -> str:
    """Generate a unique call ID."""
    return f"call_{uuid.uuid4().hex[:12]}"


def get_call_id() -> Optional[str]:
    """Get the current call ID from context."""
    return _call_id_var.get()


class CallContext:
    """
    Context manager scoping a call_id.

    Usage:
        with CallContext() as call_id:
            logger.info("Processing...")
    """

    def __init__(self, call_id: Optional[str] = None):
        self._call_id = call_id or generate_call_id()
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        self._token = _call_id_var.set(self._call_id)
        return self._call_id

    def __exit__(self, *args) -> None:
        if self._token is not None:
            _call_id_var.reset(self._token)
            self._token = None


class CallIdFilter(logging.Filter):
    """Logging filter that adds call_id to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "call_id", None) is None:
            record.call_id = get_call_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured file logging."""

    EXTRA_FIELDS = ("tool_name", "error_kind", "execution_time_ms", "success")

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "call_id": getattr(record, "call_id", "-"),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


class CallIdRichHandler(RichHandler):
    """Rich console handler that prefixes messages with the call_id."""

    def render_message(self, record: logging.LogRecord, message: str):
        call_id = getattr(record, "call_id", "-")
        if call_id != "-":
            message = f"[{call_id}] {message}"
        return super().render_message(record, message)


_logging_initialized = False


def configure_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    console: bool = True,
    file: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
) -> None:
    """
    Configure the workbench logger tree.

    Args:
        level: Logging level (default INFO)
        log_dir: Directory for log files (default: ./logs)
        console: Enable Rich console output (stderr)
        file: Enable JSON-lines file output
        max_bytes: Rotate the log file past this size
        backup_count: Rotated files to keep

    Calling again is a no-op; use reset_logging() first to reconfigure.
    """
    global _logging_initialized

    if _logging_initialized:
        return

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    call_filter = CallIdFilter()

    if console:
        console_handler = CallIdRichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_path=False,
        )
        console_handler.setLevel(level)
        console_handler.addFilter(call_filter)
        root_logger.addHandler(console_handler)

    if file:
        log_path = Path(log_dir) if log_dir else Path("logs")
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            str(log_path / "workbench.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)  # File gets everything
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(call_filter)
        root_logger.addHandler(file_handler)

    _logging_initialized = True


def reset_logging() -> None:
    """Remove handlers installed by configure_logging()."""
    global _logging_initialized

    root_logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    _logging_initialized = False


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger in the workbench namespace.

    Args:
        name: Logger name (prefixed with 'workbench.' if not already)
    """
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"

    return logging.getLogger(name)
