"""
I/O-log sequence identifiers.

Each session is logged under a six-character base-36 id taken from a
counter file (``seq``) in the log root.  The id is split into three
two-character directory levels (``00/00/01``) so no directory holds more
than 36*36 entries.

A :class:`SequenceAllocator` hands out at most one id per policy context;
every ``%{seq}`` expansion in that context reuses it.
"""

from __future__ import annotations

import errno
import fcntl
import logging
import os
from typing import Callable, Optional

from ..defs import SESSID_MAX
from ..utils.safe_io import SecurityError, ensure_secure_dir

logger = logging.getLogger("policyload.iolog.sequence")

SESSID_LEN = 6
SEQ_FILENAME = "seq"
_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


class SequenceError(Exception):
    """Raised when a sequence id cannot be allocated."""


# =============================================================================
# ENCODING
# =============================================================================

def encode_sessid(value: int) -> str:
    """Encode *value* as a zero-padded six-digit base-36 id."""
    if not 0 <= value < SESSID_MAX:
        raise ValueError(f"sequence number out of range: {value}")
    out = []
    for _ in range(SESSID_LEN):
        value, digit = divmod(value, 36)
        out.append(_DIGITS[digit])
    return "".join(reversed(out))


def decode_sessid(text: str) -> int:
    """Decode a base-36 id (case-insensitive)."""
    text = text.strip()
    if not text or len(text) > SESSID_LEN:
        raise ValueError(f"invalid sequence id: {text!r}")
    return int(text, 36)


def format_seq(sessid: str) -> str:
    """Split a six-character id into ``XX/YY/ZZ``."""
    if len(sessid) != SESSID_LEN:
        raise ValueError(f"sequence id must be {SESSID_LEN} characters: {sessid!r}")
    return f"{sessid[0:2]}/{sessid[2:4]}/{sessid[4:6]}"


# =============================================================================
# COUNTER FILE
# =============================================================================

def iolog_nextid(logdir: str, maxseq: int = SESSID_MAX) -> str:
    """Increment the counter in ``logdir/seq`` and return the new id.

    Ids run from 1 to *maxseq*; a counter at or past the limit, or one
    that cannot be parsed, restarts at zero before the increment.  The
    read-increment-write runs under an exclusive lock so concurrent
    sessions sharing a log root never receive the same id.

    Raises:
        SequenceError: If the directory or counter file cannot be used.
    """
    try:
        ensure_secure_dir(logdir)
    except (OSError, SecurityError) as e:
        raise SequenceError(f"unable to create {logdir}: {e}") from e

    seq_path = os.path.join(logdir, SEQ_FILENAME)
    flags = os.O_RDWR | os.O_CREAT | getattr(os, "O_NOFOLLOW", 0)
    try:
        fd = os.open(seq_path, flags, 0o600)
    except OSError as e:
        if e.errno == errno.ELOOP:
            raise SequenceError(f"refusing to follow symlink: {seq_path}") from e
        raise SequenceError(f"unable to open {seq_path}: {e}") from e

    try:
        fcntl.lockf(fd, fcntl.LOCK_EX)
        raw = os.read(fd, 64).decode("ascii", errors="replace")
        current = 0
        if raw.strip():
            try:
                current = decode_sessid(raw)
            except ValueError:
                logger.warning("%s: bad sequence number %r, resetting", seq_path,
                               raw.strip())

        limit = min(maxseq, SESSID_MAX - 1)
        if current >= limit:
            logger.debug("sequence wrapped at %d", limit)
            current = 0
        sessid = encode_sessid(current + 1)

        os.lseek(fd, 0, os.SEEK_SET)
        os.ftruncate(fd, 0)
        os.write(fd, f"{sessid}\n".encode("ascii"))
        os.fsync(fd)
    except OSError as e:
        raise SequenceError(f"unable to update {seq_path}: {e}") from e
    finally:
        os.close(fd)

    logger.debug("allocated sequence id %s in %s", sessid, logdir)
    return sessid


# =============================================================================
# ALLOCATOR
# =============================================================================

class SequenceAllocator:
    """Lazily allocates and caches one sequence id.

    Args:
        nextid: ``(logdir, maxseq) -> str`` counter, :func:`iolog_nextid`
            by default.
    """

    def __init__(self, nextid: Optional[Callable[[str, int], str]] = None):
        self._nextid = nextid or iolog_nextid
        self._sessid: Optional[str] = None

    @property
    def sessid(self) -> Optional[str]:
        return self._sessid

    def get(self, logdir: str, maxseq: int = SESSID_MAX) -> str:
        """Return the cached id, allocating it under *logdir* on first use."""
        if self._sessid is None:
            sessid = self._nextid(logdir, maxseq)
            if not sessid or len(sessid) != SESSID_LEN or not sessid.isprintable():
                raise SequenceError(f"invalid sequence id from counter: {sessid!r}")
            self._sessid = sessid
        return self._sessid
