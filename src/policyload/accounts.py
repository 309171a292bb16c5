"""
User and group lookup.

The policy layer never talks to ``pwd``/``grp`` directly; it goes through
an :class:`AccountDatabase` so that tests (and front ends with their own
name service) can substitute a different source of truth.

Names of the form ``#<id>`` refer to a numeric uid/gid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

logger = logging.getLogger("policyload.accounts")

ROOT_UID = 0
ROOT_GID = 0

# Largest value accepted for a uid/gid (matches a 32-bit id_t).
_ID_MAX = 2**32 - 2


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class Passwd:
    """A user database entry."""
    name: str
    uid: int
    gid: int
    home: str = "/"
    shell: str = "/bin/sh"


@dataclass(frozen=True)
class Group:
    """A group database entry."""
    name: str
    gid: int
    members: tuple[str, ...] = field(default_factory=tuple)


class AccountDatabase(Protocol):
    """Lookup interface used by setting callbacks and path fillers.

    Every method returns ``None`` when the entry does not exist.
    """

    def getpwnam(self, name: str) -> Optional[Passwd]: ...

    def getpwuid(self, uid: int) -> Optional[Passwd]: ...

    def getgrnam(self, name: str) -> Optional[Group]: ...

    def getgrgid(self, gid: int) -> Optional[Group]: ...


# =============================================================================
# SYSTEM DATABASE
# =============================================================================

class SystemAccounts:
    """:class:`AccountDatabase` backed by the ``pwd`` and ``grp`` modules."""

    def getpwnam(self, name: str) -> Optional[Passwd]:
        import pwd
        try:
            return _from_pwd(pwd.getpwnam(name))
        except KeyError:
            return None

    def getpwuid(self, uid: int) -> Optional[Passwd]:
        import pwd
        try:
            return _from_pwd(pwd.getpwuid(uid))
        except (KeyError, OverflowError):
            return None

    def getgrnam(self, name: str) -> Optional[Group]:
        import grp
        try:
            return _from_grp(grp.getgrnam(name))
        except KeyError:
            return None

    def getgrgid(self, gid: int) -> Optional[Group]:
        import grp
        try:
            return _from_grp(grp.getgrgid(gid))
        except (KeyError, OverflowError):
            return None


def _from_pwd(pw) -> Passwd:
    return Passwd(
        name=pw.pw_name, uid=pw.pw_uid, gid=pw.pw_gid,
        home=pw.pw_dir, shell=pw.pw_shell,
    )


def _from_grp(gr) -> Group:
    return Group(name=gr.gr_name, gid=gr.gr_gid, members=tuple(gr.gr_mem))


# =============================================================================
# HELPERS
# =============================================================================

def parse_id(text: str) -> int:
    """Parse a decimal uid/gid.

    Negative ids are accepted the way ``-1`` style ids are written in
    policy files and are mapped into the unsigned range.

    Raises:
        ValueError: If *text* is not a valid id.
    """
    text = text.strip()
    if not text or not text.lstrip("-").isdigit():
        raise ValueError(f"invalid id: {text!r}")
    value = int(text, 10)
    if value < 0:
        if value < -(_ID_MAX + 1):
            raise ValueError(f"id too small: {text!r}")
        value += 2**32
    if value > _ID_MAX:
        raise ValueError(f"id too large: {text!r}")
    return value


def lookup_user(accounts: AccountDatabase, user: str) -> Optional[Passwd]:
    """Resolve a user name or ``#uid`` reference.

    A ``#uid`` that does not parse, or does not exist, is retried as a
    literal user name.
    """
    pw = None
    if user.startswith("#"):
        try:
            uid = parse_id(user[1:])
        except ValueError:
            logger.debug("not a numeric uid: %s", user)
        else:
            pw = accounts.getpwuid(uid)
    if pw is None:
        pw = accounts.getpwnam(user)
    return pw


def lookup_group(accounts: AccountDatabase, group: str) -> Optional[Group]:
    """Resolve a group name or ``#gid`` reference."""
    gr = None
    if group.startswith("#"):
        try:
            gid = parse_id(group[1:])
        except ValueError:
            logger.debug("not a numeric gid: %s", group)
        else:
            gr = accounts.getgrgid(gid)
    if gr is None:
        gr = accounts.getgrnam(group)
    return gr


def group_name_or_id(accounts: AccountDatabase, gid: int) -> str:
    """Return the name for *gid*, or ``#<gid>`` when it has none."""
    gr = accounts.getgrgid(gid)
    if gr is not None:
        return gr.name
    return f"#{gid}"
