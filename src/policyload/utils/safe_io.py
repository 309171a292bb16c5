"""Safe file I/O for I/O-log roots and CLI output.

I/O-log directories are created by a privileged process in locations
that other users may be able to influence.  The helpers here:

* refuse to operate on symlinks at the target path;
* create directories with restricted permissions (``0o700``);
* write files through a randomised temp name, ``os.fsync`` and
  ``os.replace`` so readers never see a partial file.
"""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path
from typing import Union


class SecurityError(Exception):
    """Raised when a file operation would follow a symlink."""


def atomic_write_text(
    target_path: Union[str, Path],
    text: str,
    mode: int = 0o644,
    encoding: str = "utf-8",
) -> None:
    """Write *text* to *target_path* atomically, refusing symlink targets."""
    target = Path(target_path)

    if target.is_symlink():
        raise SecurityError(
            f"Refusing to write to symlink: {target} -> {os.readlink(str(target))}"
        )

    raw = text.encode(encoding)
    fd: int | None = None
    tmp_path: str | None = None
    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=str(target.parent),
            prefix=f".{target.name}.",
            suffix=".tmp",
        )
        total = 0
        while total < len(raw):
            written = os.write(fd, raw[total:])
            if written == 0:
                raise OSError("os.write returned 0 bytes")
            total += written
        os.fsync(fd)
        os.close(fd)
        fd = None

        if sys.platform != "win32":
            os.chmod(tmp_path, mode)

        os.replace(tmp_path, str(target))
        tmp_path = None
    finally:
        if fd is not None:
            os.close(fd)
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass


def ensure_secure_dir(
    dir_path: Union[str, Path],
    mode: int = 0o700,
) -> None:
    """Create *dir_path* (and parents) or tighten an existing one.

    Raises:
        SecurityError: If *dir_path* is a symlink.
    """
    d = Path(dir_path)

    if d.is_symlink():
        raise SecurityError(
            f"Refusing to use symlink directory: {d} -> {os.readlink(str(d))}"
        )

    os.makedirs(str(d), mode=mode, exist_ok=True)

    # fd-based chmod closes the gap between is_symlink() and chmod().
    if sys.platform != "win32":
        try:
            dir_fd = os.open(str(d), os.O_RDONLY | os.O_DIRECTORY | os.O_NOFOLLOW)
            try:
                os.fchmod(dir_fd, mode)
            finally:
                os.close(dir_fd)
        except (OSError, AttributeError):
            if d.is_symlink():
                raise SecurityError(f"Refusing to use symlink directory: {d}")
            os.chmod(str(d), mode)
