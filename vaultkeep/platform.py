"""
Platform helpers for Vaultkeep.

Centralizes POSIX vs Windows differences so the rest of the codebase can
call simple functions instead of scattering ``sys.platform`` checks.
"""

import sys
from typing import IO


def is_windows() -> bool:
    """Return True when running on Windows."""
    return sys.platform.startswith("win")


def lock_file(fileobj: IO[bytes]) -> None:
    """
    Take an exclusive, non-blocking advisory lock on *fileobj*.

    Raises:
        OSError: If another process already holds the lock
    """
    if is_windows():
        import msvcrt

        fileobj.seek(0)
        msvcrt.locking(fileobj.fileno(), msvcrt.LK_NBLCK, 1)
    else:
        import fcntl

        fcntl.flock(fileobj.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)


def unlock_file(fileobj: IO[bytes]) -> None:
    """Release a lock taken with ``lock_file``."""
    if is_windows():
        import msvcrt

        fileobj.seek(0)
        msvcrt.locking(fileobj.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        import fcntl

        fcntl.flock(fileobj.fileno(), fcntl.LOCK_UN)
