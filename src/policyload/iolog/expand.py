"""
I/O-log path template expansion.

Templates mix ``%{name}`` escapes (see :mod:`.path_escapes`) with
``strftime`` conversions::

    /var/log/sudo-io/%{user}/%Y-%m-%d    →  /var/log/sudo-io/alice/2026-10-17
    %{seq}                               →  00/00/01

Unknown escapes are copied through unchanged.  Escape values are
substituted first; if the template also holds ``strftime`` conversions
the result is then passed through ``time.strftime``, with ``%`` in
substituted values doubled so they come out literally.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional

from ..defs import Setting
from .path_escapes import DIR_ESCAPES, PATH_ESCAPES, PathEscape
from .sequence import SequenceError

if TYPE_CHECKING:
    from ..context import PolicyContext

logger = logging.getLogger("policyload.iolog.expand")

PATH_MAX = 4096


class PathExpansionError(Exception):
    """Raised when a template cannot be expanded into a usable path."""


@dataclass(frozen=True)
class ExpandedPath:
    """Result of expanding a template into a buffer.

    Attributes:
        path: The expanded path, cut to fit the buffer.
        length: Length of the complete expansion.  When it is not smaller
            than the buffer size, ``path`` was truncated; retry with a
            buffer of ``length + 1``.
        bufsize: The buffer size the expansion was fitted to.
    """
    path: str
    length: int
    bufsize: int

    @property
    def truncated(self) -> bool:
        return self.length >= self.bufsize


def _fill(escape: PathEscape, ctx: "PolicyContext", arg: Any) -> str:
    size = PATH_MAX
    text, length = escape.filler(ctx, size, arg)
    if length >= size:
        # Filler output did not fit; size the buffer from what it reported.
        text, length = escape.filler(ctx, length + 1, arg)
    return text


def expand_iolog_path(
    ctx: "PolicyContext",
    template: str,
    bufsize: int = PATH_MAX,
    seq_dir: Optional[str] = None,
    escapes: Mapping[str, PathEscape] = PATH_ESCAPES,
    now: Optional[float] = None,
) -> ExpandedPath:
    """Expand *template* for *ctx* into a buffer of *bufsize*.

    Args:
        ctx: Policy context supplying user, host and command values.
        template: Template text.
        bufsize: Destination size; the result holds at most
            ``bufsize - 1`` characters.
        seq_dir: Directory holding the sequence counter for ``%{seq}``;
            defaults to the ``iolog_dir`` setting.
        escapes: Escape table to use.
        now: Timestamp for ``strftime`` conversions (default: now).

    Raises:
        PathExpansionError: If a filler fails (e.g. no sequence id).
    """
    pieces: list[str] = []
    values: set[int] = set()
    needs_strftime = False

    i = 0
    n = len(template)
    while i < n:
        ch = template[i]
        if ch == "%" and i + 1 < n:
            if template[i + 1] == "{":
                end = template.find("}", i + 2)
                escape = escapes.get(template[i + 2:end]) if end != -1 else None
                if escape is not None:
                    arg = seq_dir if escape.name == "seq" else None
                    try:
                        value = _fill(escape, ctx, arg)
                    except SequenceError as e:
                        raise PathExpansionError(
                            f"unable to expand %{{{escape.name}}}: {e}"
                        ) from e
                    values.add(len(pieces))
                    pieces.append(value)
                    i = end + 1
                    continue
            else:
                needs_strftime = True
                pieces.append(template[i:i + 2])
                i += 2
                continue
        pieces.append(ch)
        i += 1

    if needs_strftime:
        for idx in values:
            pieces[idx] = pieces[idx].replace("%", "%%")
        tm = time.localtime(now)
        path = time.strftime("".join(pieces), tm)
    else:
        path = "".join(pieces)

    length = len(path)
    if length >= bufsize:
        logger.debug("expansion of %s needs %d bytes, have %d",
                     template, length + 1, bufsize)
        path = path[:max(bufsize - 1, 0)]
    return ExpandedPath(path=path, length=length, bufsize=bufsize)


def build_iolog_path(ctx: "PolicyContext", now: Optional[float] = None) -> str:
    """Expand ``iolog_dir`` and ``iolog_file`` into one session path.

    ``%{seq}`` in ``iolog_file`` allocates its id under the expanded
    directory.

    Raises:
        PathExpansionError: If either part cannot be expanded or the
            result exceeds ``PATH_MAX``.
    """
    dir_template = ctx.defaults[Setting.IOLOG_DIR]
    file_template = ctx.defaults[Setting.IOLOG_FILE]
    if not dir_template or not file_template:
        raise PathExpansionError("iolog_dir and iolog_file must both be set")

    directory = expand_iolog_path(
        ctx, dir_template, escapes=DIR_ESCAPES, now=now,
    )
    if directory.truncated:
        raise PathExpansionError(f"{dir_template}: expanded path too long")

    file_part = expand_iolog_path(
        ctx, file_template, seq_dir=directory.path, now=now,
    )
    if file_part.truncated:
        raise PathExpansionError(f"{file_template}: expanded path too long")

    path = os.path.join(directory.path, file_part.path)
    if len(path) >= PATH_MAX:
        raise PathExpansionError(f"{path[:64]}...: path too long")
    logger.debug("I/O log path %s", path)
    return path
