"""
Setting definitions: identities, value types and built-in defaults.

Each policy setting has a stable identity (:class:`Setting`), a value type
(:class:`SettingType`) and a default.  Values travel as a tagged
:class:`SettingValue`; asking a value for the wrong tag raises
:class:`SettingTypeError` instead of silently reinterpreting it.

The current value of every setting lives in a :class:`Defaults` store
owned by the policy context.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional


# =============================================================================
# EXCEPTIONS
# =============================================================================

class SettingTypeError(TypeError):
    """Raised when a setting value is read with the wrong type tag."""


# =============================================================================
# OPERATION CODES
# =============================================================================

OP_FALSE = 0
OP_TRUE = 1
OP_ADD = ord("+")
OP_REMOVE = ord("-")
# Value applied by the front end rather than written in policy text.
OP_FRONTEND = -1

SESSID_MAX = 36 ** 6
ACCESSPERMS = 0o777


# =============================================================================
# TYPES
# =============================================================================

class SettingType(str, enum.Enum):
    FLAG = "flag"
    INTEGER = "integer"
    STRING = "string"
    MODE = "mode"
    TUPLE = "tuple"


@dataclass(frozen=True)
class SourceLocation:
    """Where a setting was found, for diagnostics."""
    file: str = "<builtin>"
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


BUILTIN = SourceLocation()


@dataclass(frozen=True)
class SettingValue:
    """A setting value tagged with its type."""
    type: SettingType
    value: Any

    @classmethod
    def of_flag(cls, value: bool) -> "SettingValue":
        return cls(SettingType.FLAG, bool(value))

    @classmethod
    def of_int(cls, value: int) -> "SettingValue":
        return cls(SettingType.INTEGER, int(value))

    @classmethod
    def of_str(cls, value: Optional[str]) -> "SettingValue":
        return cls(SettingType.STRING, value)

    @classmethod
    def of_mode(cls, value: int) -> "SettingValue":
        return cls(SettingType.MODE, int(value) & ACCESSPERMS)

    @classmethod
    def of_tuple(cls, value: str) -> "SettingValue":
        return cls(SettingType.TUPLE, value)

    def _expect(self, kind: SettingType) -> Any:
        if self.type is not kind:
            raise SettingTypeError(
                f"setting value is {self.type.value}, not {kind.value}"
            )
        return self.value

    @property
    def flag(self) -> bool:
        return self._expect(SettingType.FLAG)

    @property
    def ival(self) -> int:
        return self._expect(SettingType.INTEGER)

    @property
    def string(self) -> Optional[str]:
        return self._expect(SettingType.STRING)

    @property
    def mode(self) -> int:
        return self._expect(SettingType.MODE)

    @property
    def tuple(self) -> str:
        return self._expect(SettingType.TUPLE)


# =============================================================================
# SETTINGS
# =============================================================================

class Setting(str, enum.Enum):
    """Stable identities of the settings this layer reacts to."""
    FQDN = "fqdn"
    RUNAS_DEFAULT = "runas_default"
    MAXSEQ = "maxseq"
    IOLOG_DIR = "iolog_dir"
    IOLOG_FILE = "iolog_file"
    IOLOG_USER = "iolog_user"
    IOLOG_GROUP = "iolog_group"
    IOLOG_MODE = "iolog_mode"
    TIMESTAMPOWNER = "timestampowner"
    TTY_TICKETS = "tty_tickets"
    TIMESTAMP_TYPE = "timestamp_type"
    UMASK = "umask"
    RUNCHROOT = "runchroot"
    SYSLOG = "syslog"
    SYSLOG_GOODPRI = "syslog_goodpri"
    SYSLOG_BADPRI = "syslog_badpri"
    SYSLOG_MAXLEN = "syslog_maxlen"
    LOGLINELEN = "loglinelen"
    LOG_HOST = "log_host"
    LOGFILE = "logfile"
    LOG_FORMAT = "log_format"
    LOG_YEAR = "log_year"
    MAILERPATH = "mailerpath"
    MAILERFLAGS = "mailerflags"
    MAILFROM = "mailfrom"
    MAILTO = "mailto"
    MAILSUB = "mailsub"
    INTERCEPT_TYPE = "intercept_type"
    INTERCEPT_ALLOW_SETID = "intercept_allow_setid"
    LOG_INPUT = "log_input"
    LOG_OUTPUT = "log_output"
    LOG_STDIN = "log_stdin"
    LOG_TTYIN = "log_ttyin"
    LOG_STDOUT = "log_stdout"
    LOG_STDERR = "log_stderr"
    LOG_TTYOUT = "log_ttyout"


@dataclass(frozen=True)
class SettingDef:
    """Static description of one setting.

    Attributes:
        setting: Identity.
        type: Value type.
        default: Built-in value, applied by the front end.
        description: One-line help text.
        choices: Allowed values for ``TUPLE`` settings.
        derived: Maintained by another setting's callback; cannot be set
            from policy text.
        path: String value is a filesystem path (``~`` is expanded).
    """
    setting: Setting
    type: SettingType
    default: Any
    description: str
    choices: tuple[str, ...] = field(default_factory=tuple)
    derived: bool = False
    path: bool = False

    @property
    def name(self) -> str:
        return self.setting.value

    def make_value(self, raw: Any) -> SettingValue:
        """Wrap a plain Python value in the tag this setting expects."""
        if self.type is SettingType.FLAG:
            return SettingValue.of_flag(raw)
        if self.type is SettingType.INTEGER:
            return SettingValue.of_int(raw)
        if self.type is SettingType.MODE:
            return SettingValue.of_mode(raw)
        if self.type is SettingType.TUPLE:
            if raw not in self.choices:
                raise ValueError(
                    f"{self.name}: invalid value {raw!r}, must be one of: "
                    f"{', '.join(self.choices)}"
                )
            return SettingValue.of_tuple(raw)
        return SettingValue.of_str(None if raw is None else str(raw))


_F, _I, _S, _M, _T = (
    SettingType.FLAG, SettingType.INTEGER, SettingType.STRING,
    SettingType.MODE, SettingType.TUPLE,
)

DEFAULTS_TABLE: tuple[SettingDef, ...] = (
    SettingDef(Setting.FQDN, _F, False,
               "Put fully qualified hostnames in the log files"),
    SettingDef(Setting.RUNAS_DEFAULT, _S, "root",
               "Default user to run commands as"),
    SettingDef(Setting.MAXSEQ, _S, str(SESSID_MAX),
               "Maximum I/O log sequence number"),
    SettingDef(Setting.IOLOG_DIR, _S, "/var/log/sudo-io",
               "Directory in which to store input/output logs", path=True),
    SettingDef(Setting.IOLOG_FILE, _S, "%{seq}",
               "File in which to store the input/output log"),
    SettingDef(Setting.IOLOG_USER, _S, None,
               "Owner of the I/O log files"),
    SettingDef(Setting.IOLOG_GROUP, _S, None,
               "Group of the I/O log files"),
    SettingDef(Setting.IOLOG_MODE, _M, 0o600,
               "File mode to use for the I/O log files"),
    SettingDef(Setting.TIMESTAMPOWNER, _S, "root",
               "Owner of the authentication timestamp directory"),
    SettingDef(Setting.TTY_TICKETS, _F, True,
               "Use a separate timestamp for each user/tty combo"),
    SettingDef(Setting.TIMESTAMP_TYPE, _T, "tty",
               "Type of authentication timestamp record",
               choices=("global", "ppid", "tty", "kernel"), derived=True),
    SettingDef(Setting.UMASK, _M, 0o022,
               "Umask to use or 0777 to use user's"),
    SettingDef(Setting.RUNCHROOT, _S, None,
               "Root directory to change to before running the command",
               path=True),
    SettingDef(Setting.SYSLOG, _S, "authpriv",
               "Syslog facility if syslog is being used for logging"),
    SettingDef(Setting.SYSLOG_GOODPRI, _I, 5,
               "Syslog priority to use when user authenticates successfully"),
    SettingDef(Setting.SYSLOG_BADPRI, _I, 1,
               "Syslog priority to use when user authenticates unsuccessfully"),
    SettingDef(Setting.SYSLOG_MAXLEN, _I, 980,
               "Maximum length of a syslog message"),
    SettingDef(Setting.LOGLINELEN, _I, 80,
               "Length at which to wrap log file lines (0 for no wrap)"),
    SettingDef(Setting.LOG_HOST, _F, False,
               "Log the hostname in the (non-syslog) log file"),
    SettingDef(Setting.LOGFILE, _S, None,
               "Path to log file", path=True),
    SettingDef(Setting.LOG_FORMAT, _T, "sudo",
               "Format of log entries", choices=("sudo", "json")),
    SettingDef(Setting.LOG_YEAR, _F, False,
               "Log the year in the (non-syslog) log file"),
    SettingDef(Setting.MAILERPATH, _S, "/usr/sbin/sendmail",
               "Path to mail program", path=True),
    SettingDef(Setting.MAILERFLAGS, _S, "-t",
               "Flags for mail program"),
    SettingDef(Setting.MAILFROM, _S, None,
               "Address to send mail from"),
    SettingDef(Setting.MAILTO, _S, "root",
               "Address to send mail to"),
    SettingDef(Setting.MAILSUB, _S, "*** SECURITY information for %h ***",
               "Subject line for mail messages"),
    SettingDef(Setting.INTERCEPT_TYPE, _T, "dso",
               "Mechanism used to intercept commands",
               choices=("dso", "trace")),
    SettingDef(Setting.INTERCEPT_ALLOW_SETID, _F, True,
               "Allow intercepted commands to run set-user-ID programs"),
    SettingDef(Setting.LOG_INPUT, _F, False,
               "Log user's input for the command being run"),
    SettingDef(Setting.LOG_OUTPUT, _F, False,
               "Log the output of the command being run"),
    SettingDef(Setting.LOG_STDIN, _F, False,
               "Log standard input if not connected to a terminal",
               derived=True),
    SettingDef(Setting.LOG_TTYIN, _F, False,
               "Log terminal input", derived=True),
    SettingDef(Setting.LOG_STDOUT, _F, False,
               "Log standard output if not connected to a terminal",
               derived=True),
    SettingDef(Setting.LOG_STDERR, _F, False,
               "Log standard error if not connected to a terminal",
               derived=True),
    SettingDef(Setting.LOG_TTYOUT, _F, False,
               "Log terminal output", derived=True),
)

_DEFS_BY_NAME: dict[str, SettingDef] = {d.name: d for d in DEFAULTS_TABLE}


def get_def(name: str) -> Optional[SettingDef]:
    """Return the definition for setting *name*, or ``None``."""
    return _DEFS_BY_NAME.get(name)


def setting_def(setting: Setting) -> SettingDef:
    return _DEFS_BY_NAME[setting.value]


# =============================================================================
# STORE
# =============================================================================

class Defaults:
    """Current value of every setting, keyed by :class:`Setting`.

    Values are plain Python objects (``bool``, ``int``, ``str`` or
    ``None``); :meth:`value_of` re-tags them.
    """

    def __init__(self) -> None:
        self._values: dict[Setting, Any] = {
            d.setting: d.default for d in DEFAULTS_TABLE
        }

    def __getitem__(self, setting: Setting) -> Any:
        return self._values[setting]

    def __setitem__(self, setting: Setting, value: Any) -> None:
        self._values[setting] = value

    def __iter__(self) -> Iterator[Setting]:
        return iter(self._values)

    def store(self, setting: Setting, value: SettingValue) -> None:
        expected = setting_def(setting).type
        if value.type is not expected:
            raise SettingTypeError(
                f"{setting.value}: expected {expected.value} value, "
                f"got {value.type.value}"
            )
        self._values[setting] = value.value

    def value_of(self, setting: Setting) -> SettingValue:
        return SettingValue(setting_def(setting).type, self._values[setting])

    def to_dict(self) -> dict[str, Any]:
        return {s.value: v for s, v in self._values.items()}
