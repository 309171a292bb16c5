"""
Policy context, the runtime state mutated by setting callbacks.

A :class:`PolicyContext` is created by the policy-load driver and passed
explicitly to every callback and path filler.  Nothing in this package
keeps process-wide mutable state of its own; one context is written by
one loader at a time.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

from .accounts import ROOT_GID, ROOT_UID, AccountDatabase, Group, SystemAccounts
from .command import CommandFinder, CommandState, find_command
from .defs import Defaults, Setting, SESSID_MAX
from .eventlog import EventLogConfig
from .hostname import HostNames, Resolver
from .iolog.sequence import SequenceAllocator


class UserFlags(enum.IntFlag):
    NONE = 0
    # intercept_allow_setid was set explicitly in policy text.
    INTERCEPT_SETID = 0x01
    # The invoker named a target user on the command line.
    RUNAS_USER_SPECIFIED = 0x02


# =============================================================================
# ACTORS
# =============================================================================

@dataclass
class ActorIdentity:
    """Name, ids and host names of one actor."""
    name: str = "root"
    uid: int = ROOT_UID
    gid: int = ROOT_GID
    hostnames: Optional[HostNames] = None

    @property
    def host(self) -> Optional[str]:
        return self.hostnames.long if self.hostnames else None

    @property
    def shost(self) -> Optional[str]:
        return self.hostnames.short if self.hostnames else None


@dataclass
class UserContext(ActorIdentity):
    """The invoking user."""
    flags: UserFlags = UserFlags.NONE
    command: CommandState = field(default_factory=CommandState)


@dataclass
class RunasContext(ActorIdentity):
    """The target user, plus an explicitly requested target group."""
    group: Optional[Group] = None


# =============================================================================
# DERIVED STATE
# =============================================================================

@dataclass
class TimestampConfig:
    """Ownership of authentication timestamp files."""
    owner_uid: int = ROOT_UID
    owner_gid: int = ROOT_GID

    def set_owner(self, uid: int, gid: int) -> None:
        self.owner_uid = uid
        self.owner_gid = gid


@dataclass
class IologConfig:
    """Ownership, mode and sequence limit of I/O log files."""
    uid: int = ROOT_UID
    gid: int = ROOT_GID
    gid_set: bool = False
    mode: int = 0o600
    maxseq: int = SESSID_MAX

    def set_owner(self, uid: int, gid: int) -> None:
        self.uid = uid
        if not self.gid_set:
            self.gid = gid

    def set_gid(self, gid: int) -> None:
        self.gid = gid
        self.gid_set = True


@dataclass(frozen=True)
class InterceptPolicy:
    """How sub-processes are intercepted, and whether set-id is allowed."""
    type: str
    allow_setid: bool
    allow_setid_explicit: bool


# =============================================================================
# CONTEXT
# =============================================================================

@dataclass
class PolicyContext:
    """Everything a policy load reads and writes.

    Attributes:
        user: The invoking user.
        runas: The target user.
        defaults: Current value of every setting.
        eventlog: Event-log destination and format.
        timestamp: Timestamp-file ownership.
        iolog: I/O-log ownership, mode and sequence limit.
        override_umask: ``umask`` was set to something other than 0777.
        accounts: User/group lookup.
        resolver: ``getaddrinfo``-compatible host resolver.
        command_finder: Command path lookup used by ``runchroot``.
        sequence: Per-context I/O-log sequence id cache.
    """
    user: UserContext = field(default_factory=UserContext)
    runas: RunasContext = field(default_factory=RunasContext)
    defaults: Defaults = field(default_factory=Defaults)
    eventlog: EventLogConfig = field(default_factory=EventLogConfig)
    timestamp: TimestampConfig = field(default_factory=TimestampConfig)
    iolog: IologConfig = field(default_factory=IologConfig)
    override_umask: bool = False
    accounts: AccountDatabase = field(default_factory=SystemAccounts)
    resolver: Optional[Resolver] = None
    command_finder: CommandFinder = find_command
    sequence: SequenceAllocator = field(default_factory=SequenceAllocator)

    @property
    def intercept(self) -> InterceptPolicy:
        return InterceptPolicy(
            type=self.defaults[Setting.INTERCEPT_TYPE],
            allow_setid=bool(self.defaults[Setting.INTERCEPT_ALLOW_SETID]),
            allow_setid_explicit=bool(
                self.user.flags & UserFlags.INTERCEPT_SETID
            ),
        )

    def snapshot(self) -> dict:
        """Plain-data view of the context, for display."""
        def _actor(a: ActorIdentity) -> dict:
            return {
                "name": a.name, "uid": a.uid, "gid": a.gid,
                "host": a.host, "shost": a.shost,
            }

        cmnd = self.user.command
        intercept = self.intercept
        return {
            "user": _actor(self.user),
            "runas": _actor(self.runas),
            "command": {
                "name": cmnd.name,
                "path": cmnd.path,
                "status": cmnd.status.value if cmnd.status else None,
            },
            "eventlog": self.eventlog.to_dict(),
            "timestamp": {
                "type": self.defaults[Setting.TIMESTAMP_TYPE],
                "owner_uid": self.timestamp.owner_uid,
                "owner_gid": self.timestamp.owner_gid,
            },
            "iolog": {
                "uid": self.iolog.uid,
                "gid": self.iolog.gid,
                "mode": oct(self.iolog.mode),
                "maxseq": self.iolog.maxseq,
            },
            "intercept": {
                "type": intercept.type,
                "allow_setid": intercept.allow_setid,
            },
            "override_umask": self.override_umask,
            "defaults": self.defaults.to_dict(),
        }
