"""Tests for the platform helpers module."""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from vaultkeep.platform import is_windows, lock_file, unlock_file


class TestIsWindows:
    def test_true_on_win32(self) -> None:
        with patch("vaultkeep.platform.sys") as mock_sys:
            mock_sys.platform = "win32"
            assert is_windows() is True

    def test_false_on_linux(self) -> None:
        with patch("vaultkeep.platform.sys") as mock_sys:
            mock_sys.platform = "linux"
            assert is_windows() is False

    def test_false_on_darwin(self) -> None:
        with patch("vaultkeep.platform.sys") as mock_sys:
            mock_sys.platform = "darwin"
            assert is_windows() is False


@pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX advisory locks")
class TestPosixLock:
    def test_second_handle_is_refused(self, tmp_path: Path) -> None:
        path = tmp_path / "lock"
        with open(path, "a+b") as first, open(path, "a+b") as second:
            lock_file(first)
            with pytest.raises(OSError):
                lock_file(second)
            unlock_file(first)
            lock_file(second)
            unlock_file(second)

    def test_relock_after_close(self, tmp_path: Path) -> None:
        path = tmp_path / "lock"
        with open(path, "a+b") as fh:
            lock_file(fh)
        with open(path, "a+b") as fh:
            lock_file(fh)
            unlock_file(fh)


class TestWindowsLock:
    def test_uses_msvcrt(self, tmp_path: Path) -> None:
        msvcrt = MagicMock()
        with open(tmp_path / "lock", "a+b") as fh:
            with patch("vaultkeep.platform.sys") as mock_sys, patch.dict(
                sys.modules, {"msvcrt": msvcrt}
            ):
                mock_sys.platform = "win32"
                lock_file(fh)
                unlock_file(fh)

            assert msvcrt.locking.call_args_list[0].args == (
                fh.fileno(),
                msvcrt.LK_NBLCK,
                1,
            )
            assert msvcrt.locking.call_args_list[1].args == (
                fh.fileno(),
                msvcrt.LK_UNLCK,
                1,
            )
