"""
Cooperative Cancellation
------------------------
A token threaded explicitly through invoke -> build -> execute.

Tools check the token at every suspension point (before a blocking read,
before spawning a process, between chunks of a write). Timeouts are a
linked token that cancels itself; there is no other timeout mechanism.
"""

from typing import Callable, Dict, Optional
import itertools
import logging
import threading

from .errors import ErrorKind, ToolError


class CancellationToken:
    """
    Thread-safe cancellation signal.

    Callbacks registered with add_callback() run exactly once, on the
    thread that calls cancel(). A callback added after cancellation runs
    immediately.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._ids = itertools.count(1)
        self._timer: Optional[threading.Timer] = None
        self._parent: Optional["CancellationToken"] = None
        self._parent_handle: Optional[int] = None
        self._logger = logging.getLogger("workbench.core.cancellation")

    @classmethod
    def none(cls) -> "CancellationToken":
        """A token nobody holds a reference to cancel."""
        return cls()

    @classmethod
    def linked(
        cls,
        parent: Optional["CancellationToken"],
        timeout: Optional[float] = None
    ) -> "CancellationToken":
        """
        Create a child token.

        The child is cancelled when the parent is cancelled or when the
        timeout elapses. Call dispose() when done to detach it.
        """
        child = cls()

        if parent is not None:
            child._parent = parent
            child._parent_handle = parent.add_callback(
                lambda: child.cancel(parent.reason or "cancelled")
            )

        if timeout is not None:
            child._timer = threading.Timer(timeout, child.cancel, args=("timeout",))
            child._timer.daemon = True
            child._timer.start()

        return child

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation. Later calls are no-ops."""
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        self._logger.debug(f"Token cancelled: {reason}")

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                self._logger.error(f"Cancellation callback failed: {e}")

    def add_callback(self, callback: Callable[[], None]) -> int:
        """Register a callback; returns a handle for remove_callback()."""
        with self._lock:
            if not self._event.is_set():
                handle = next(self._ids)
                self._callbacks[handle] = callback
                return handle

        callback()
        return 0

    def remove_callback(self, handle: int) -> None:
        with self._lock:
            self._callbacks.pop(handle, None)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout; returns cancelled state."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        """Raise ToolError(CANCELLED) if cancellation was requested."""
        if self._event.is_set():
            raise ToolError(
                ErrorKind.CANCELLED,
                "Operation was cancelled" if self._reason != "timeout"
                else "Operation timed out",
                {"reason": self._reason or "cancelled"}
            )

    def dispose(self) -> None:
        """Stop the timeout timer and detach from the parent."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        if self._parent is not None and self._parent_handle:
            self._parent.remove_callback(self._parent_handle)
        self._parent = None
        self._parent_handle = None

    def __enter__(self) -> "CancellationToken":
        return self

    def __exit__(self, *args) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = f"cancelled:{self._reason}" if self.cancelled else "active"
        return f"CancellationToken({state})"
