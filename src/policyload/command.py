"""
Command path resolution.

The command a user asked to run is looked up along a search path.  When
``runchroot`` changes, the lookup is repeated relative to the new root so
that the recorded status matches what will actually be executed.
"""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from .context import PolicyContext

logger = logging.getLogger("policyload.command")


class CommandStatus(str, enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    # Found only in the current directory, which is not on the search path.
    NOT_FOUND_DOT = "not_found_dot"
    NOT_FOUND_ERROR = "not_found_error"


@dataclass
class CommandState:
    """The command being evaluated and where it resolved to."""
    name: Optional[str] = None
    path: Optional[str] = None
    status: Optional[CommandStatus] = None
    search_path: list[str] = field(
        default_factory=lambda: ["/usr/local/bin", "/usr/bin", "/bin"],
    )

    @property
    def base(self) -> Optional[str]:
        """Base name of the command, never a directory path."""
        target = self.path or self.name
        if target is None:
            return None
        return os.path.basename(target)


# (name, search_path, chroot) -> (status, path)
CommandFinder = Callable[
    [str, list[str], Optional[str]],
    "tuple[CommandStatus, Optional[str]]",
]


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def find_command(
    name: str,
    search_path: list[str],
    chroot: Optional[str] = None,
) -> tuple[CommandStatus, Optional[str]]:
    """Locate *name* along *search_path*, relative to *chroot* if given.

    Returns the status and the path as seen from inside the chroot.
    Names containing a ``/`` are checked as-is.
    """
    root = chroot or ""

    if "/" in name:
        candidate = name if os.path.isabs(name) else os.path.join(os.getcwd(), name)
        if _is_executable(root + candidate):
            return CommandStatus.FOUND, candidate
        return CommandStatus.NOT_FOUND, None

    for directory in search_path:
        if not directory or directory == ".":
            continue
        candidate = os.path.join(directory, name)
        if _is_executable(root + candidate):
            return CommandStatus.FOUND, candidate

    if chroot is None and _is_executable(os.path.join(os.getcwd(), name)):
        return CommandStatus.NOT_FOUND_DOT, None
    return CommandStatus.NOT_FOUND, None


def set_cmnd_status(ctx: "PolicyContext", runchroot: Optional[str]) -> CommandStatus:
    """Re-resolve the current command against *runchroot*.

    ``NOT_FOUND`` is a normal outcome; the recorded path is only replaced
    when the command was found.
    """
    cmnd = ctx.user.command
    status, path = ctx.command_finder(cmnd.name, cmnd.search_path, runchroot)
    cmnd.status = status
    if status is CommandStatus.FOUND:
        cmnd.path = path
    logger.debug("command %s now %s (%s)", cmnd.name, cmnd.path, status.value)
    return status
