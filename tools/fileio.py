"""
File I/O Helpers
----------------
Atomic, cancellable writes and binary detection shared by the
filesystem tools.

A write either replaces the target with the full intended content or
leaves it untouched; a half-written file is never visible at the target
path.
"""

from contextlib import suppress
from pathlib import Path
from typing import List
import os
import stat
import tempfile

from core.cancellation import CancellationToken
from core.errors import ToolError, validation_error


SNIFF_BYTES = 8192

# Process umask, read once; os.umask() has no read-only form
_UMASK = os.umask(0)
os.umask(_UMASK)


def sniff_binary(sample: bytes) -> bool:
    """
    Guess whether content is binary from its first block.

    NUL bytes or invalid UTF-8 mean binary. A multi-byte sequence cut
    off at the end of the sample does not count.
    """
    if b"\x00" in sample:
        return True

    try:
        sample.decode("utf-8")
    except UnicodeDecodeError as e:
        return not (e.reason == "unexpected end of data" and e.start >= len(sample) - 3)

    return False


def check_parent_chain(path: Path, field: str = "path") -> None:
    """
    Pre-check that every existing ancestor of `path` is a directory.

    Metadata only; used at build time.
    """
    for parent in path.parents:
        try:
            st = os.stat(parent)
        except (FileNotFoundError, NotADirectoryError):
            continue
        except OSError as e:
            raise os_error(e, parent, "access")

        if not stat.S_ISDIR(st.st_mode):
            raise validation_error(
                f"Parent path is not a directory: {parent}", field, parent=str(parent)
            )
        return


def ensure_parent(path: Path, token: CancellationToken, field: str = "path") -> List[Path]:
    """
    Create missing parent directories of `path`.

    Returns the directories created, outermost first, so a failed or
    cancelled write can remove them again.
    """
    missing = []
    for parent in path.parents:
        if parent.is_dir():
            break
        missing.append(parent)

    created: List[Path] = []
    try:
        for directory in reversed(missing):
            token.raise_if_cancelled()
            try:
                directory.mkdir()
            except FileExistsError:
                if not directory.is_dir():
                    raise validation_error(
                        f"Parent path is not a directory: {directory}", field
                    )
                continue
            created.append(directory)
    except BaseException:
        remove_created(created)
        raise

    return created


def remove_created(created: List[Path]) -> None:
    """Remove directories created by ensure_parent(), innermost first."""
    for directory in reversed(created):
        with suppress(OSError):
            directory.rmdir()


def atomic_write(
    path: Path,
    data: bytes,
    token: CancellationToken,
    chunk_size: int = 64 * 1024
) -> int:
    """
    Replace `path` with `data` atomically.

    Writes to a temp file in the same directory in chunks, checking the
    token between chunks and once more before the final rename. Keeps the
    permission bits of an existing target. Returns bytes written.
    """
    try:
        existing_mode = stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        existing_mode = 0o666 & ~_UMASK

    fd, temp_name = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )

    try:
        with os.fdopen(fd, "wb") as f:
            view = memoryview(data)
            for offset in range(0, len(data), chunk_size):
                token.raise_if_cancelled()
                f.write(view[offset:offset + chunk_size])
            f.flush()
            os.fsync(f.fileno())

        token.raise_if_cancelled()
        os.chmod(temp_name, existing_mode)
        os.replace(temp_name, path)

    except BaseException:
        with suppress(OSError):
            os.unlink(temp_name)
        raise

    return len(data)


def read_limited(path: Path, limit: int, token: CancellationToken) -> bytes:
    """Read at most `limit` bytes, checking the token before each block."""
    chunks = []
    remaining = limit

    with open(path, "rb") as f:
        while remaining > 0:
            token.raise_if_cancelled()
            chunk = f.read(min(remaining, 1024 * 1024))
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)

    return b"".join(chunks)


def os_error(e: OSError, path: Path, action: str) -> ToolError:
    return ToolError.from_os_error(e, str(path), action)
