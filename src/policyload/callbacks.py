"""
Setting-effect registry.

Maps a :class:`~policyload.defs.Setting` to the callback that turns its
new value into changes to the :class:`~policyload.context.PolicyContext`:
event-log destinations, host names, timestamp ownership, the umask
override, I/O-log ownership, interception mode, and so on.

Callbacks have the signature::

    (ctx, location, value, op) -> bool

*value* is the tagged value just stored (``None`` when the setting was
cleared), *op* is the operation code (``OP_FRONTEND`` when the front end,
not the policy author, supplied the value).  A callback returns ``False``
after reporting a problem through :mod:`policyload.diagnostics`; it never
mutates state on that path.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from .accounts import ROOT_GID, ROOT_UID, lookup_group, lookup_user
from .command import set_cmnd_status
from .context import PolicyContext, UserFlags
from .defs import (
    ACCESSPERMS,
    OP_FRONTEND,
    SESSID_MAX,
    Setting,
    SettingValue,
    SourceLocation,
)
from .diagnostics import WarningFlags, gai_log_warning, log_warningx
from .eventlog import TIME_FMT, TIME_FMT_YEAR, EventLogFormat, EventLogType
from .hostname import HostNames, HostResolutionError, resolve_host

logger = logging.getLogger("policyload.callbacks")

Callback = Callable[
    [PolicyContext, SourceLocation, Optional[SettingValue], int], bool
]


# =============================================================================
# HOST NAMES
# =============================================================================

def cb_fqdn(ctx: PolicyContext, loc: SourceLocation,
            value: Optional[SettingValue], op: int) -> bool:
    """Replace both actors' host names with fully qualified ones.

    The invoker's host is resolved first; if that fails the target's host
    is tried and, on success, used for both.  The target's host is only
    resolved separately when it differs from the invoker's (``-h``).
    Neither actor changes unless both sets of names resolved.
    """
    if value is not None and not value.flag:
        return True

    user_host = ctx.user.host
    runas_host = ctx.runas.host
    remote = runas_host != user_host

    try:
        names = resolve_host(user_host, ctx.resolver)
    except HostResolutionError as first:
        try:
            names = resolve_host(runas_host, ctx.resolver)
        except HostResolutionError as e:
            gai_log_warning(WarningFlags.PARSE_ERROR | WarningFlags.RAW_MSG,
                            e.code, e.strerror,
                            "unable to resolve host %s", user_host)
            return False
        log_warningx(WarningFlags.NO_LOG | WarningFlags.RAW_MSG,
                     "unable to resolve host %s: %s, using %s",
                     user_host, first.strerror, names.long)

    if remote:
        try:
            runas_names = resolve_host(runas_host, ctx.resolver)
        except HostResolutionError as e:
            gai_log_warning(WarningFlags.NO_LOG | WarningFlags.RAW_MSG,
                            e.code, e.strerror,
                            "unable to resolve host %s", runas_host)
            return False
    else:
        runas_names = names.clone()

    ctx.user.hostnames = names
    ctx.runas.hostnames = runas_names

    logger.debug("host %s, shost %s, runas host %s, runas shost %s",
                 ctx.user.host, ctx.user.shost, ctx.runas.host, ctx.runas.shost)
    return True


# =============================================================================
# USERS AND OWNERSHIP
# =============================================================================

def cb_runas_default(ctx: PolicyContext, loc: SourceLocation,
                     value: Optional[SettingValue], op: int) -> bool:
    """Change the default target user unless one was given explicitly."""
    if ctx.user.flags & UserFlags.RUNAS_USER_SPECIFIED:
        return True
    user = value.string if value is not None else None
    if not user:
        return True
    pw = lookup_user(ctx.accounts, user)
    if pw is None:
        log_warningx(WarningFlags.AUDIT | WarningFlags.PARSE_ERROR,
                     "%s runas_default: unknown user %s", loc, user)
        return False
    ctx.runas.name = pw.name
    ctx.runas.uid = pw.uid
    ctx.runas.gid = pw.gid
    return True


def cb_timestampowner(ctx: PolicyContext, loc: SourceLocation,
                      value: Optional[SettingValue], op: int) -> bool:
    user = value.string if value is not None else None
    pw = lookup_user(ctx.accounts, user) if user else None
    if pw is None:
        log_warningx(WarningFlags.AUDIT | WarningFlags.PARSE_ERROR,
                     "%s timestampowner: unknown user %s", loc, user)
        return False
    ctx.timestamp.set_owner(pw.uid, pw.gid)
    return True


def cb_iolog_user(ctx: PolicyContext, loc: SourceLocation,
                  value: Optional[SettingValue], op: int) -> bool:
    user = value.string if value is not None else None
    if not user:
        ctx.iolog.set_owner(ROOT_UID, ROOT_GID)
        return True
    pw = lookup_user(ctx.accounts, user)
    if pw is None:
        log_warningx(WarningFlags.AUDIT | WarningFlags.PARSE_ERROR,
                     "%s iolog_user: unknown user %s", loc, user)
        return False
    ctx.iolog.set_owner(pw.uid, pw.gid)
    return True


def cb_iolog_group(ctx: PolicyContext, loc: SourceLocation,
                   value: Optional[SettingValue], op: int) -> bool:
    group = value.string if value is not None else None
    if not group:
        # Unset: files get the owner's group again.
        ctx.iolog.gid = ROOT_GID
        ctx.iolog.gid_set = False
        return True
    gr = lookup_group(ctx.accounts, group)
    if gr is None:
        log_warningx(WarningFlags.AUDIT | WarningFlags.PARSE_ERROR,
                     "%s iolog_group: unknown group %s", loc, group)
        return False
    ctx.iolog.set_gid(gr.gid)
    return True


def cb_iolog_mode(ctx: PolicyContext, loc: SourceLocation,
                  value: Optional[SettingValue], op: int) -> bool:
    ctx.iolog.mode = value.mode
    return True


def cb_maxseq(ctx: PolicyContext, loc: SourceLocation,
              value: Optional[SettingValue], op: int) -> bool:
    """Parse the sequence limit; values past the id space are clamped."""
    text = (value.string or "").strip() if value is not None else ""
    if not (text.isascii() and text.isdigit()):
        log_warningx(WarningFlags.PARSE_ERROR,
                     "%s maxseq: invalid value %s", loc, text or "(none)")
        return False
    ctx.iolog.maxseq = min(int(text, 10), SESSID_MAX)
    return True


# =============================================================================
# TIMESTAMPS, UMASK, CHROOT
# =============================================================================

def cb_tty_tickets(ctx: PolicyContext, loc: SourceLocation,
                   value: Optional[SettingValue], op: int) -> bool:
    ctx.defaults[Setting.TIMESTAMP_TYPE] = "tty" if value.flag else "global"
    return True


def cb_umask(ctx: PolicyContext, loc: SourceLocation,
             value: Optional[SettingValue], op: int) -> bool:
    # 0777 means "use the invoking user's umask".
    ctx.override_umask = value.mode != ACCESSPERMS
    return True


def cb_runchroot(ctx: PolicyContext, loc: SourceLocation,
                 value: Optional[SettingValue], op: int) -> bool:
    chroot = value.string if value is not None else None
    logger.debug("runchroot now %s", chroot)
    if ctx.user.command.name is not None:
        set_cmnd_status(ctx, chroot)
    return True


# =============================================================================
# EVENT LOG
# =============================================================================

def cb_logfile(ctx: PolicyContext, loc: SourceLocation,
               value: Optional[SettingValue], op: int) -> bool:
    path = value.string if value is not None else None
    logtype = EventLogType.SYSLOG if ctx.defaults[Setting.SYSLOG] else EventLogType.NONE
    if path is not None:
        logtype |= EventLogType.FILE
    ctx.eventlog.type = logtype
    ctx.eventlog.logpath = path
    return True


def cb_syslog(ctx: PolicyContext, loc: SourceLocation,
              value: Optional[SettingValue], op: int) -> bool:
    facility = value.string if value is not None else None
    logtype = EventLogType.FILE if ctx.defaults[Setting.LOGFILE] else EventLogType.NONE
    if facility is not None:
        logtype |= EventLogType.SYSLOG
    ctx.eventlog.type = logtype
    return True


def cb_log_format(ctx: PolicyContext, loc: SourceLocation,
                  value: Optional[SettingValue], op: int) -> bool:
    if value.tuple == "sudo":
        ctx.eventlog.format = EventLogFormat.SUDO
    else:
        ctx.eventlog.format = EventLogFormat.JSON
    return True


def cb_syslog_goodpri(ctx: PolicyContext, loc: SourceLocation,
                      value: Optional[SettingValue], op: int) -> bool:
    ctx.eventlog.syslog_acceptpri = value.ival
    return True


def cb_syslog_badpri(ctx: PolicyContext, loc: SourceLocation,
                     value: Optional[SettingValue], op: int) -> bool:
    ctx.eventlog.syslog_rejectpri = value.ival
    ctx.eventlog.syslog_alertpri = value.ival
    return True


def cb_syslog_maxlen(ctx: PolicyContext, loc: SourceLocation,
                     value: Optional[SettingValue], op: int) -> bool:
    ctx.eventlog.syslog_maxlen = value.ival
    return True


def cb_loglinelen(ctx: PolicyContext, loc: SourceLocation,
                  value: Optional[SettingValue], op: int) -> bool:
    ctx.eventlog.file_maxlen = value.ival
    return True


def cb_log_year(ctx: PolicyContext, loc: SourceLocation,
                value: Optional[SettingValue], op: int) -> bool:
    ctx.eventlog.time_fmt = TIME_FMT_YEAR if value.flag else TIME_FMT
    return True


def cb_log_host(ctx: PolicyContext, loc: SourceLocation,
                value: Optional[SettingValue], op: int) -> bool:
    ctx.eventlog.omit_hostname = not value.flag
    return True


def cb_mailerpath(ctx: PolicyContext, loc: SourceLocation,
                  value: Optional[SettingValue], op: int) -> bool:
    ctx.eventlog.mailerpath = value.string if value is not None else None
    return True


def cb_mailerflags(ctx: PolicyContext, loc: SourceLocation,
                   value: Optional[SettingValue], op: int) -> bool:
    ctx.eventlog.mailerflags = value.string if value is not None else None
    return True


def cb_mailfrom(ctx: PolicyContext, loc: SourceLocation,
                value: Optional[SettingValue], op: int) -> bool:
    ctx.eventlog.mailfrom = value.string if value is not None else None
    return True


def cb_mailto(ctx: PolicyContext, loc: SourceLocation,
              value: Optional[SettingValue], op: int) -> bool:
    ctx.eventlog.mailto = value.string if value is not None else None
    return True


def cb_mailsub(ctx: PolicyContext, loc: SourceLocation,
               value: Optional[SettingValue], op: int) -> bool:
    ctx.eventlog.mailsub = value.string if value is not None else None
    return True


# =============================================================================
# INTERCEPT
# =============================================================================

def cb_intercept_type(ctx: PolicyContext, loc: SourceLocation,
                      value: Optional[SettingValue], op: int) -> bool:
    """Switching to ``dso`` turns set-id support off unless the policy
    already set ``intercept_allow_setid`` itself."""
    if op != OP_FRONTEND and value.tuple == "dso":
        if not ctx.user.flags & UserFlags.INTERCEPT_SETID:
            ctx.defaults[Setting.INTERCEPT_ALLOW_SETID] = False
    return True


def cb_intercept_allow_setid(ctx: PolicyContext, loc: SourceLocation,
                             value: Optional[SettingValue], op: int) -> bool:
    if op != OP_FRONTEND:
        ctx.user.flags |= UserFlags.INTERCEPT_SETID
    return True


# =============================================================================
# I/O CAPTURE
# =============================================================================

def cb_log_input(ctx: PolicyContext, loc: SourceLocation,
                 value: Optional[SettingValue], op: int) -> bool:
    enabled = value.flag
    ctx.defaults[Setting.LOG_STDIN] = enabled
    ctx.defaults[Setting.LOG_TTYIN] = enabled
    return True


def cb_log_output(ctx: PolicyContext, loc: SourceLocation,
                  value: Optional[SettingValue], op: int) -> bool:
    enabled = value.flag
    ctx.defaults[Setting.LOG_STDOUT] = enabled
    ctx.defaults[Setting.LOG_STDERR] = enabled
    ctx.defaults[Setting.LOG_TTYOUT] = enabled
    return True


# =============================================================================
# REGISTRY
# =============================================================================

CALLBACK_REGISTRY: Mapping[Setting, Callback] = MappingProxyType({
    Setting.FQDN: cb_fqdn,
    Setting.RUNAS_DEFAULT: cb_runas_default,
    Setting.MAXSEQ: cb_maxseq,
    Setting.IOLOG_USER: cb_iolog_user,
    Setting.IOLOG_GROUP: cb_iolog_group,
    Setting.IOLOG_MODE: cb_iolog_mode,
    Setting.TIMESTAMPOWNER: cb_timestampowner,
    Setting.TTY_TICKETS: cb_tty_tickets,
    Setting.UMASK: cb_umask,
    Setting.RUNCHROOT: cb_runchroot,
    # event log
    Setting.SYSLOG: cb_syslog,
    Setting.SYSLOG_GOODPRI: cb_syslog_goodpri,
    Setting.SYSLOG_BADPRI: cb_syslog_badpri,
    Setting.SYSLOG_MAXLEN: cb_syslog_maxlen,
    Setting.LOGLINELEN: cb_loglinelen,
    Setting.LOG_HOST: cb_log_host,
    Setting.LOGFILE: cb_logfile,
    Setting.LOG_FORMAT: cb_log_format,
    Setting.LOG_YEAR: cb_log_year,
    Setting.MAILERPATH: cb_mailerpath,
    Setting.MAILERFLAGS: cb_mailerflags,
    Setting.MAILFROM: cb_mailfrom,
    Setting.MAILTO: cb_mailto,
    Setting.MAILSUB: cb_mailsub,
    Setting.INTERCEPT_TYPE: cb_intercept_type,
    Setting.INTERCEPT_ALLOW_SETID: cb_intercept_allow_setid,
    Setting.LOG_INPUT: cb_log_input,
    Setting.LOG_OUTPUT: cb_log_output,
})


def get_callback(setting: Setting) -> Optional[Callback]:
    """Return the callback for *setting*, or ``None`` if it has none."""
    return CALLBACK_REGISTRY.get(setting)


def apply_setting(
    ctx: PolicyContext,
    setting: Setting,
    value: Optional[SettingValue],
    op: int,
    loc: SourceLocation,
) -> bool:
    """Store *value* for *setting* and run its callback.

    ``None`` clears a string setting.  Returns the callback's result, or
    ``True`` for settings without one.  When the callback fails the
    previous value is put back.
    """
    previous = ctx.defaults[setting]
    if value is not None:
        ctx.defaults.store(setting, value)
    else:
        ctx.defaults[setting] = None

    callback = CALLBACK_REGISTRY.get(setting)
    if callback is None:
        return True
    logger.debug("%s: applying %s (op %d)", loc, setting.value, op)
    if not callback(ctx, loc, value, op):
        ctx.defaults[setting] = previous
        return False
    return True
