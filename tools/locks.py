"""
Per-Path Write Locks
--------------------
Serializes write-class invocations that target the same canonical path.

Writes to different paths never contend. Entries are reference counted
and dropped when nobody holds or waits on them, so the table stays small
across long sessions.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional
import logging
import threading

from core.cancellation import CancellationToken


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class PathLockTable:
    """Mutexes keyed by canonical path, scoped to one registry."""

    POLL_INTERVAL = 0.05  # seconds between token checks while waiting

    def __init__(self):
        self._entries: Dict[Path, _Entry] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger("workbench.tools.locks")

    def _checkout(self, path: Path) -> _Entry:
        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                entry = self._entries[path] = _Entry()
            entry.users += 1
            return entry

    def _checkin(self, path: Path, entry: _Entry) -> None:
        with self._lock:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(path) is entry:
                del self._entries[path]

    @contextmanager
    def hold(
        self,
        path: Path,
        token: Optional[CancellationToken] = None
    ) -> Iterator[None]:
        """
        Hold the lock for `path` for the duration of the block.

        While waiting, the token is polled; a cancelled waiter raises
        ToolError(CANCELLED) without ever acquiring the lock. The lock is
        released on every exit path.
        """
        token = token or CancellationToken.none()
        entry = self._checkout(path)

        try:
            waited = False
            while not entry.lock.acquire(timeout=self.POLL_INTERVAL):
                if not waited:
                    self._logger.debug(f"Waiting for write lock: {path}")
                    waited = True
                token.raise_if_cancelled()

            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(path, entry)

    def is_locked(self, path: Path) -> bool:
        with self._lock:
            entry = self._entries.get(path)
            return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
