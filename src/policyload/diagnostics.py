"""
Policy warning routing.

Setting callbacks report problems (unknown users, unresolvable hosts,
out-of-range values) through :func:`log_warningx`.  Each warning carries
:class:`WarningFlags` describing where it should go:

- ``PARSE_ERROR``: the warning is about policy content.
- ``AUDIT``: the warning also belongs in the audit trail.
- ``RAW_MSG``: the message is emitted as-is, without the invoking user's
  identity prepended by downstream formatters.
- ``NO_LOG``: shown to the operator only, never written to the event log.

All warnings are emitted on the ``policyload.warnings`` logger; audit
warnings are mirrored on ``policyload.audit``.  The flags travel in the
record's ``slog_flags`` attribute so handlers can filter on them.
"""

from __future__ import annotations

import enum
import logging

logger = logging.getLogger("policyload.warnings")
audit_logger = logging.getLogger("policyload.audit")


class WarningFlags(enum.IntFlag):
    NONE = 0
    PARSE_ERROR = 0x01
    AUDIT = 0x02
    RAW_MSG = 0x04
    NO_LOG = 0x08


def log_warningx(flags: WarningFlags, fmt: str, *args) -> str:
    """Emit a policy warning and return the formatted message."""
    message = fmt % args if args else fmt
    extra = {"slog_flags": WarningFlags(flags)}
    logger.warning(message, extra=extra)
    if flags & WarningFlags.AUDIT and not flags & WarningFlags.NO_LOG:
        audit_logger.warning(message, extra=extra)
    return message


def gai_log_warning(flags: WarningFlags, errcode: int, errstr: str,
                    fmt: str, *args) -> str:
    """Emit a warning for a failed name lookup.

    The resolver's own error text is appended after a colon, matching the
    way resolver errors are shown everywhere else.
    """
    base = fmt % args if args else fmt
    return log_warningx(flags, "%s: %s", base, errstr or f"error {errcode}")
