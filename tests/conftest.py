"""Shared fakes and fixtures for the policyload test suite.

Tests never touch the real name service or user database: accounts,
host resolution and the sequence counter are replaced with in-memory
fakes.
"""

import socket

import pytest

from policyload.accounts import Group, Passwd
from policyload.command import CommandStatus
from policyload.loader import new_context


class FakeAccounts:
    """In-memory user/group database."""

    def __init__(self, users=None, groups=None):
        self.users = users if users is not None else [
            Passwd("root", 0, 0),
            Passwd("alice", 1000, 1000),
            Passwd("bob", 1001, 1001),
        ]
        self.groups = groups if groups is not None else [
            Group("root", 0),
            Group("wheel", 10),
            Group("alice", 1000),
        ]

    def getpwnam(self, name):
        return next((u for u in self.users if u.name == name), None)

    def getpwuid(self, uid):
        return next((u for u in self.users if u.uid == uid), None)

    def getgrnam(self, name):
        return next((g for g in self.groups if g.name == name), None)

    def getgrgid(self, gid):
        return next((g for g in self.groups if g.gid == gid), None)


class FakeResolver:
    """``getaddrinfo`` stand-in mapping host → canonical name.

    Hosts not in the table fail with ``EAI_NONAME``.  Every call is
    recorded in ``calls``.
    """

    def __init__(self, table=None):
        self.table = dict(table or {})
        self.calls = []

    def __call__(self, host, port, family=0, type=0, proto=0, flags=0):
        self.calls.append((host, flags))
        if host not in self.table:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        return [(socket.AF_INET, socket.SOCK_STREAM, 6, self.table[host],
                 ("192.0.2.1", 0))]


class FakeCounter:
    """Sequence counter returning consecutive base-36 ids."""

    def __init__(self, start=1):
        self.value = start
        self.calls = []

    def __call__(self, logdir, maxseq):
        self.calls.append(logdir)
        sessid = f"{self.value:06d}"
        self.value += 1
        return sessid


class FakeFinder:
    """Command finder with a fixed answer per chroot."""

    def __init__(self, results=None):
        self.results = results or {}
        self.calls = []

    def __call__(self, name, search_path, chroot):
        self.calls.append((name, chroot))
        return self.results.get(chroot, (CommandStatus.NOT_FOUND, None))


@pytest.fixture()
def accounts():
    return FakeAccounts()


@pytest.fixture()
def resolver():
    return FakeResolver({
        "build01": "build01.example.com",
        "remote7": "remote7.corp.example.net",
        "solo": "solo",
    })


@pytest.fixture()
def counter():
    return FakeCounter()


@pytest.fixture()
def finder():
    return FakeFinder()


@pytest.fixture()
def make_ctx(accounts, resolver, counter, finder):
    """Factory for contexts wired to the fakes above."""
    def _make(hostname="build01", **overrides):
        kwargs = dict(
            accounts=accounts,
            resolver=resolver,
            gethostname=lambda: hostname,
            nextid=counter,
            command_finder=finder,
        )
        kwargs.update(overrides)
        ctx = new_context(**kwargs)
        ctx.user.name = "alice"
        ctx.user.uid = 1000
        ctx.user.gid = 1000
        resolver.calls.clear()
        return ctx
    return _make


@pytest.fixture()
def ctx(make_ctx):
    return make_ctx()
