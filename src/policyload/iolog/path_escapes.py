"""
``%{name}`` escapes available in ``iolog_dir`` and ``iolog_file``.

Every filler has the signature ``(ctx, size, arg) -> (text, length)``:
*text* is the value cut to fit a buffer of *size* (at most ``size - 1``
characters) and *length* is the full length of the value.  A caller that
gets ``length >= size`` back must retry with a larger buffer.

*arg* is only used by ``seq``: it names the directory whose counter file
allocates the id.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping

from ..accounts import group_name_or_id
from ..defs import Setting
from .sequence import SequenceError, format_seq

if TYPE_CHECKING:
    from ..context import PolicyContext

Filler = Callable[["PolicyContext", int, Any], "tuple[str, int]"]


def _copy(value: str, size: int) -> tuple[str, int]:
    """Fit *value* into a buffer of *size*; return it with its full length."""
    if size <= 0:
        return "", len(value)
    return value[:size - 1], len(value)


# =============================================================================
# FILLERS
# =============================================================================

def fill_seq(ctx: "PolicyContext", size: int, arg: Any = None) -> tuple[str, int]:
    logdir = arg if arg is not None else ctx.defaults[Setting.IOLOG_DIR]
    if not logdir:
        raise SequenceError("no I/O log directory for the sequence counter")
    sessid = ctx.sequence.get(logdir, ctx.iolog.maxseq)
    # Path is of the form /var/log/sudo-io/00/00/01.
    return _copy(format_seq(sessid), size)


def fill_user(ctx: "PolicyContext", size: int, arg: Any = None) -> tuple[str, int]:
    return _copy(ctx.user.name, size)


def fill_group(ctx: "PolicyContext", size: int, arg: Any = None) -> tuple[str, int]:
    return _copy(group_name_or_id(ctx.accounts, ctx.user.gid), size)


def fill_runas_user(ctx: "PolicyContext", size: int, arg: Any = None) -> tuple[str, int]:
    return _copy(ctx.runas.name, size)


def fill_runas_group(ctx: "PolicyContext", size: int, arg: Any = None) -> tuple[str, int]:
    if ctx.runas.group is not None:
        return _copy(ctx.runas.group.name, size)
    return _copy(group_name_or_id(ctx.accounts, ctx.runas.gid), size)


def fill_hostname(ctx: "PolicyContext", size: int, arg: Any = None) -> tuple[str, int]:
    return _copy(ctx.user.shost or "", size)


def fill_command(ctx: "PolicyContext", size: int, arg: Any = None) -> tuple[str, int]:
    return _copy(ctx.user.command.base or "", size)


# =============================================================================
# TABLE
# =============================================================================

@dataclass(frozen=True)
class PathEscape:
    name: str
    filler: Filler


PATH_ESCAPES: Mapping[str, PathEscape] = MappingProxyType({
    e.name: e for e in (
        PathEscape("seq", fill_seq),
        PathEscape("user", fill_user),
        PathEscape("group", fill_group),
        PathEscape("runas_user", fill_runas_user),
        PathEscape("runas_group", fill_runas_group),
        PathEscape("hostname", fill_hostname),
        PathEscape("command", fill_command),
    )
})

# Directory templates are expanded before a sequence id can be allocated
# (the id lives under the expanded directory), so they get every escape
# except ``seq``.
DIR_ESCAPES: Mapping[str, PathEscape] = MappingProxyType({
    name: e for name, e in PATH_ESCAPES.items() if name != "seq"
})
