"""policyload: reactive configuration layer for a command-execution policy.

Binds policy settings to callbacks that update runtime state: event-log
destinations, host identity, timestamp ownership, the umask override,
I/O-log path templating and command interception.
"""

from .version import __version__
from .context import PolicyContext, ActorIdentity, InterceptPolicy
from .defs import Setting, SettingType, SettingValue, SourceLocation
from .callbacks import CALLBACK_REGISTRY, apply_setting
from .hostname import HostNames, HostResolutionError, resolve_host
from .loader import PolicyLoadError, load_defaults, load_defaults_file, new_context

__all__ = [
    "__version__",
    "PolicyContext",
    "ActorIdentity",
    "InterceptPolicy",
    "Setting",
    "SettingType",
    "SettingValue",
    "SourceLocation",
    "CALLBACK_REGISTRY",
    "apply_setting",
    "HostNames",
    "HostResolutionError",
    "resolve_host",
    "PolicyLoadError",
    "load_defaults",
    "load_defaults_file",
    "new_context",
]
