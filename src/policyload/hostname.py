"""
Host identity resolution.

Each actor carries a long (canonical) and a short hostname.  The short
name is the long name up to the first ``.``; when the long name has no
domain part the short name *is* the long name.  :class:`HostNames` makes
that aliasing explicit instead of relying on two attributes that happen
to hold the same string.

Name resolution itself is delegated to a ``getaddrinfo``-compatible
callable, ``socket.getaddrinfo`` by default.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from .context import PolicyContext

logger = logging.getLogger("policyload.hostname")

# "Canonical" is not always the fully qualified name; prefer AI_FQDN
# where the platform provides it.
AI_FQDN = getattr(socket, "AI_FQDN", socket.AI_CANONNAME)

Resolver = Callable[..., list]


# =============================================================================
# EXCEPTIONS
# =============================================================================

class HostResolutionError(Exception):
    """Raised when a hostname cannot be resolved.

    Attributes:
        host: The name that was looked up.
        code: The resolver's error code (``socket.EAI_*``).
        strerror: The resolver's description of the error.
    """

    def __init__(self, host: str, code: int, strerror: str):
        super().__init__(f"unable to resolve host {host}: {strerror}")
        self.host = host
        self.code = code
        self.strerror = strerror


# =============================================================================
# HOST NAMES
# =============================================================================

@dataclass(frozen=True)
class HostNames:
    """A long hostname and its short form.

    ``owned_short`` is ``None`` when the short name aliases the long one.
    """
    long: str
    owned_short: Optional[str] = None

    @classmethod
    def from_long(cls, long: str) -> "HostNames":
        dot = long.find(".")
        if dot == -1:
            return cls(long)
        return cls(long, long[:dot])

    @property
    def short(self) -> str:
        if self.owned_short is None:
            return self.long
        return self.owned_short

    @property
    def aliased(self) -> bool:
        return self.owned_short is None

    def clone(self) -> "HostNames":
        """Return an equal, separately held copy that keeps the aliasing."""
        return HostNames(self.long, self.owned_short)


# =============================================================================
# RESOLUTION
# =============================================================================

def resolve_host(host: str, resolver: Optional[Resolver] = None) -> HostNames:
    """Look up the fully qualified name of *host*.

    Raises:
        HostResolutionError: If the resolver fails or returns no
            canonical name.
    """
    if resolver is None:
        resolver = socket.getaddrinfo
    try:
        res = resolver(host, None, socket.AF_UNSPEC, 0, 0, AI_FQDN)
    except socket.gaierror as e:
        code = e.errno if e.errno is not None else socket.EAI_FAIL
        raise HostResolutionError(host, code, e.strerror or str(e)) from e

    canonname = res[0][3] if res else ""
    if not canonname:
        raise HostResolutionError(
            host, socket.EAI_NONAME, "no canonical name returned",
        )
    return HostNames.from_long(canonname)


def get_hostname(
    ctx: "PolicyContext",
    gethostname: Callable[[], str] = socket.gethostname,
) -> HostNames:
    """Set the invoker's and target's host names from the local hostname.

    Falls back to ``localhost`` when the local name is empty or cannot be
    read.  Both actors share one :class:`HostNames` value.
    """
    try:
        name = gethostname()
    except OSError as e:
        logger.debug("gethostname failed: %s", e)
        name = ""
    names = HostNames.from_long(name) if name else HostNames("localhost")
    ctx.user.hostnames = names
    ctx.runas.hostnames = names
    return names
