"""Defaults file loader and policy-load driver.

Builds a :class:`~policyload.context.PolicyContext`, applies the built-in
defaults (as front-end values), then applies the settings listed in a
YAML defaults file through the setting-effect registry.

File shape::

    defaults:
      - fqdn                          # flag on
      - "!log_host"                   # flag off / string cleared
      - name: mailfrom
        value: null                   # also clears a string
      - name: logfile
        value: /var/log/policy.log
      - name: umask
        value: "0077"
      - name: mailto
        value: "${SECURITY_MAILTO}"   # environment interpolation

    context:                          # optional
      user: {name: alice, uid: 1000, gid: 1000, host: build01.example.com}
      runas: {name: root, uid: 0, gid: 0}
      command: {name: ls, search_path: [/bin, /usr/bin]}

Application order: ``fqdn`` and ``runas_default`` first (other settings
depend on host names and the target user), then everything else in file
order.  A setting whose callback fails aborts the load with
:class:`PolicyLoadError`; entries for derived settings are skipped with a
warning.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

import yaml
from jsonschema import ValidationError, validate

from .accounts import AccountDatabase, lookup_group
from .callbacks import apply_setting
from .command import CommandFinder, set_cmnd_status
from .context import PolicyContext, UserFlags
from .defs import (
    ACCESSPERMS,
    BUILTIN,
    DEFAULTS_TABLE,
    OP_FALSE,
    OP_FRONTEND,
    OP_TRUE,
    Setting,
    SettingDef,
    SettingType,
    SettingValue,
    SourceLocation,
    get_def,
)
from .diagnostics import WarningFlags, log_warningx
from .eventlog import SYSLOG_PRIORITIES
from .hostname import HostNames, Resolver, get_hostname
from .iolog.sequence import SequenceAllocator

logger = logging.getLogger("policyload.loader")

# Applied before everything else, in this order.
EARLY_SETTINGS: tuple[Setting, ...] = (Setting.FQDN, Setting.RUNAS_DEFAULT)

_PRIORITY_SETTINGS = frozenset({Setting.SYSLOG_GOODPRI, Setting.SYSLOG_BADPRI})

# Pattern for ${VAR_NAME} interpolation
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")
_NAME_PATTERN = r"^!?[a-z][a-z0-9_]*$"

_ACTOR_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "uid": {"type": "integer", "minimum": 0},
        "gid": {"type": "integer", "minimum": 0},
        "host": {"type": "string", "minLength": 1},
        "group": {"type": "string", "minLength": 1},
    },
    "additionalProperties": False,
}

DEFAULTS_SCHEMA = {
    "type": "object",
    "properties": {
        "defaults": {
            "type": "array",
            "items": {
                "oneOf": [
                    {"type": "string", "pattern": _NAME_PATTERN},
                    {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string", "pattern": _NAME_PATTERN},
                            "value": {},
                        },
                        "required": ["name"],
                        "additionalProperties": False,
                    },
                ],
            },
        },
        "context": {
            "type": "object",
            "properties": {
                "user": _ACTOR_SCHEMA,
                "runas": _ACTOR_SCHEMA,
                "command": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "minLength": 1},
                        "search_path": {
                            "type": "array",
                            "items": {"type": "string"},
                        },
                    },
                    "required": ["name"],
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
        },
    },
    "required": ["defaults"],
    "additionalProperties": False,
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class PolicyLoadError(Exception):
    """Raised when a defaults file is invalid or a setting cannot be applied."""


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DefaultsEntry:
    """One setting to apply: definition, tagged value, op and location."""
    definition: SettingDef
    value: Optional[SettingValue]
    op: int
    location: SourceLocation

    @property
    def setting(self) -> Setting:
        return self.definition.setting


def _interpolate_env(value: str, where: str) -> str:
    """Resolve ``${VAR_NAME}`` patterns from ``os.environ``."""
    def _replacer(match: re.Match) -> str:
        var_name = match.group(1)
        resolved = os.environ.get(var_name)
        if resolved is None:
            raise PolicyLoadError(
                f"{where}: environment variable '{var_name}' is not set"
            )
        return resolved

    return _ENV_VAR_PATTERN.sub(_replacer, value)


def _convert(defn: SettingDef, raw: Any, where: str) -> SettingValue:
    """Turn a YAML value into the tagged value *defn* expects."""
    kind = defn.type
    try:
        if kind is SettingType.FLAG:
            if not isinstance(raw, bool):
                raise ValueError("expected true or false")
            return defn.make_value(raw)

        if kind is SettingType.INTEGER:
            if defn.setting in _PRIORITY_SETTINGS and isinstance(raw, str):
                if raw not in SYSLOG_PRIORITIES:
                    raise ValueError(f"unknown syslog priority {raw!r}")
                raw = SYSLOG_PRIORITIES[raw]
            if isinstance(raw, bool) or not isinstance(raw, int):
                raise ValueError("expected an integer")
            return defn.make_value(raw)

        if kind is SettingType.MODE:
            if isinstance(raw, str):
                raw = int(raw, 8)
            if isinstance(raw, bool) or not isinstance(raw, int):
                raise ValueError("expected an octal mode")
            if not 0 <= raw <= ACCESSPERMS:
                raise ValueError(f"mode {oct(raw)} out of range")
            return defn.make_value(raw)

        if kind is SettingType.TUPLE:
            return defn.make_value(str(raw))

        if raw is None:
            return defn.make_value(None)
        if isinstance(raw, (dict, list)):
            raise ValueError("expected a string")
        text = _interpolate_env(str(raw), where)
        if defn.path:
            text = os.path.expanduser(text)
        return defn.make_value(text)
    except ValueError as e:
        raise PolicyLoadError(f"{where}: {defn.name}: {e}") from e


def _negated(defn: SettingDef, where: str) -> SettingValue:
    kind = defn.type
    if kind is SettingType.FLAG:
        return SettingValue.of_flag(False)
    if kind is SettingType.INTEGER:
        return SettingValue.of_int(0)
    if kind is SettingType.MODE:
        return SettingValue.of_mode(ACCESSPERMS)
    if kind is SettingType.STRING:
        return SettingValue.of_str(None)
    raise PolicyLoadError(f"{where}: {defn.name} cannot be negated")


def parse_entries(items: list, source: str,
                  marks: Optional[list[tuple[int, int]]] = None) -> list[DefaultsEntry]:
    """Convert the ``defaults`` list of a document into entries."""
    entries: list[DefaultsEntry] = []
    for idx, item in enumerate(items):
        line, column = marks[idx] if marks and idx < len(marks) else (0, 0)
        loc = SourceLocation(source, line, column)

        if isinstance(item, str):
            name, raw, has_value = item, None, False
        else:
            name, raw, has_value = item["name"], item.get("value"), "value" in item

        negated = name.startswith("!")
        name = name.lstrip("!")
        defn = get_def(name)
        if defn is None:
            raise PolicyLoadError(f"{loc}: unknown setting: {name}")

        if negated:
            if has_value:
                raise PolicyLoadError(f"{loc}: !{name} does not take a value")
            value, op = _negated(defn, str(loc)), OP_FALSE
        elif not has_value:
            if defn.type is not SettingType.FLAG:
                raise PolicyLoadError(f"{loc}: {name} requires a value")
            value, op = SettingValue.of_flag(True), OP_TRUE
        else:
            value, op = _convert(defn, raw, str(loc)), OP_TRUE
            if defn.type is SettingType.FLAG and not value.flag:
                op = OP_FALSE
            elif defn.type is SettingType.STRING and value.string is None:
                op = OP_FALSE

        entries.append(DefaultsEntry(defn, value, op, loc))
    return entries


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------

def new_context(
    accounts: Optional[AccountDatabase] = None,
    resolver: Optional[Resolver] = None,
    gethostname: Optional[Callable[[], str]] = None,
    nextid: Optional[Callable[[str, int], str]] = None,
    command_finder: Optional[CommandFinder] = None,
) -> PolicyContext:
    """Create a context with local host names and built-in defaults applied."""
    ctx = PolicyContext(resolver=resolver, sequence=SequenceAllocator(nextid))
    if accounts is not None:
        ctx.accounts = accounts
    if command_finder is not None:
        ctx.command_finder = command_finder
    if gethostname is not None:
        get_hostname(ctx, gethostname)
    else:
        get_hostname(ctx)
    init_defaults(ctx)
    return ctx


def init_defaults(ctx: PolicyContext) -> None:
    """Apply every built-in default as a front-end value.

    Raises:
        PolicyLoadError: If a built-in default cannot be applied (for
            example, ``root`` does not exist).
    """
    for defn in DEFAULTS_TABLE:
        if defn.derived:
            continue
        value = None if defn.default is None else defn.make_value(defn.default)
        if not apply_setting(ctx, defn.setting, value, OP_FRONTEND, BUILTIN):
            raise PolicyLoadError(f"unable to apply built-in default {defn.name}")


def apply_defaults(ctx: PolicyContext, entries: list[DefaultsEntry]) -> None:
    """Apply *entries* to *ctx*: early settings first, then file order.

    Raises:
        PolicyLoadError: On the first setting whose callback fails.
    """
    early = sorted(
        (e for e in entries if e.setting in EARLY_SETTINGS),
        key=lambda e: EARLY_SETTINGS.index(e.setting),
    )
    rest = [e for e in entries if e.setting not in EARLY_SETTINGS]

    for entry in early + rest:
        if entry.definition.derived:
            log_warningx(WarningFlags.PARSE_ERROR,
                         "%s %s is set by another setting and cannot be "
                         "changed directly, ignoring",
                         entry.location, entry.definition.name)
            continue
        if not apply_setting(ctx, entry.setting, entry.value, entry.op,
                             entry.location):
            raise PolicyLoadError(
                f"{entry.location}: unable to apply {entry.definition.name}"
            )


def _seed_context(ctx: PolicyContext, raw: dict) -> None:
    """Fill invoker, target and command from the ``context`` section."""
    user_raw = raw.get("user") or {}
    runas_raw = raw.get("runas") or {}

    for key in ("name", "uid", "gid"):
        if key in user_raw:
            setattr(ctx.user, key, user_raw[key])
    if "host" in user_raw:
        ctx.user.hostnames = HostNames.from_long(user_raw["host"])
        ctx.runas.hostnames = ctx.user.hostnames

    if runas_raw:
        ctx.user.flags |= UserFlags.RUNAS_USER_SPECIFIED
        for key in ("name", "uid", "gid"):
            if key in runas_raw:
                setattr(ctx.runas, key, runas_raw[key])
        if "host" in runas_raw:
            ctx.runas.hostnames = HostNames.from_long(runas_raw["host"])
        if "group" in runas_raw:
            group = lookup_group(ctx.accounts, runas_raw["group"])
            if group is None:
                raise PolicyLoadError(f"unknown group: {runas_raw['group']}")
            ctx.runas.group = group

    cmnd_raw = raw.get("command")
    if cmnd_raw:
        cmnd = ctx.user.command
        cmnd.name = cmnd_raw["name"]
        if "search_path" in cmnd_raw:
            cmnd.search_path = list(cmnd_raw["search_path"])
        set_cmnd_status(ctx, ctx.defaults[Setting.RUNCHROOT])


def load_defaults(
    text: str,
    source: str = "<string>",
    ctx: Optional[PolicyContext] = None,
) -> PolicyContext:
    """Parse a defaults document and apply it.

    Args:
        text: YAML document.
        source: Name used in diagnostics.
        ctx: Context to apply to; a fresh one from :func:`new_context`
            when omitted.

    Raises:
        PolicyLoadError: If the document is invalid or a setting fails.
    """
    from .utils.safe_yaml import safe_yaml_load, sequence_item_marks

    try:
        raw = safe_yaml_load(text)
        marks = sequence_item_marks(text, "defaults")
    except (yaml.YAMLError, ValueError) as e:
        raise PolicyLoadError(f"Invalid YAML in {source}: {e}") from e

    if raw is None:
        raw = {"defaults": []}
    try:
        validate(raw, DEFAULTS_SCHEMA)
    except ValidationError as e:
        where = ".".join(str(p) for p in e.absolute_path)
        raise PolicyLoadError(
            f"{source}: {e.message}" + (f" (at {where})" if where else "")
        ) from e

    if ctx is None:
        ctx = new_context()

    if raw.get("context"):
        _seed_context(ctx, raw["context"])

    entries = parse_entries(raw["defaults"], source, marks)
    apply_defaults(ctx, entries)
    logger.debug("%s: applied %d settings", source, len(entries))
    return ctx


def load_defaults_file(
    path: str,
    ctx: Optional[PolicyContext] = None,
) -> PolicyContext:
    """Load and apply a YAML defaults file.

    Raises:
        PolicyLoadError: If the file is missing or invalid.
    """
    defaults_file = Path(path).expanduser()
    if not defaults_file.is_file():
        raise PolicyLoadError(f"Defaults file not found: {path}")
    return load_defaults(defaults_file.read_text(), str(defaults_file), ctx)
