"""
Event-log configuration record.

The event-log subsystem itself lives outside this package; setting
callbacks only mutate the :class:`EventLogConfig` it reads from.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from typing import Optional


class EventLogType(enum.IntFlag):
    NONE = 0
    SYSLOG = 0x01
    FILE = 0x02


class EventLogFormat(str, enum.Enum):
    SUDO = "sudo"
    JSON = "json"


# Syslog priorities by name (RFC 5424 severities).
SYSLOG_PRIORITIES: dict[str, int] = {
    "emerg": 0,
    "alert": 1,
    "crit": 2,
    "err": 3,
    "warning": 4,
    "notice": 5,
    "info": 6,
    "debug": 7,
}

TIME_FMT = "%h %e %T"
TIME_FMT_YEAR = "%h %e %T %Y"


@dataclass
class EventLogConfig:
    """Where and how accepted/rejected commands are logged.

    Every field is ``None`` until defaults have been applied.
    """
    type: EventLogType = EventLogType.NONE
    format: Optional[EventLogFormat] = None
    logpath: Optional[str] = None
    syslog_acceptpri: Optional[int] = None
    syslog_rejectpri: Optional[int] = None
    syslog_alertpri: Optional[int] = None
    syslog_maxlen: Optional[int] = None
    file_maxlen: Optional[int] = None
    time_fmt: Optional[str] = None
    omit_hostname: Optional[bool] = None
    mailerpath: Optional[str] = None
    mailerflags: Optional[str] = None
    mailfrom: Optional[str] = None
    mailto: Optional[str] = None
    mailsub: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["type"] = [
            t.name.lower() for t in (EventLogType.SYSLOG, EventLogType.FILE)
            if self.type & t
        ]
        data["format"] = self.format.value if self.format else None
        return data
