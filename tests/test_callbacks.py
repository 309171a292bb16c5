"""Tests for the setting-effect registry and its callbacks."""

import logging

import pytest

from policyload.callbacks import CALLBACK_REGISTRY, apply_setting, get_callback
from policyload.command import CommandStatus
from policyload.context import UserFlags
from policyload.defs import (
    BUILTIN,
    OP_FALSE,
    OP_FRONTEND,
    OP_TRUE,
    SESSID_MAX,
    Setting,
    SettingTypeError,
    SettingValue,
    SourceLocation,
)
from policyload.eventlog import EventLogFormat, EventLogType, TIME_FMT, TIME_FMT_YEAR

LOC = SourceLocation("policy.yaml", 4, 3)


def _set(ctx, setting, value, op=OP_TRUE, loc=LOC):
    return apply_setting(ctx, setting, value, op, loc)


def _flag(value):
    return SettingValue.of_flag(value)


def _str(value):
    return SettingValue.of_str(value)


# =============================================================================
# REGISTRY
# =============================================================================

class TestRegistry:
    def test_fixed_order_starts_with_host_names(self):
        keys = list(CALLBACK_REGISTRY)
        assert keys[0] is Setting.FQDN
        assert keys.index(Setting.INTERCEPT_TYPE) < keys.index(Setting.INTERCEPT_ALLOW_SETID)
        assert keys[-2:] == [Setting.LOG_INPUT, Setting.LOG_OUTPUT]

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            CALLBACK_REGISTRY[Setting.LOG_STDIN] = lambda *a: True

    def test_derived_settings_have_no_callback(self):
        for setting in (Setting.LOG_STDIN, Setting.LOG_TTYOUT, Setting.TIMESTAMP_TYPE):
            assert get_callback(setting) is None

    def test_setting_without_callback_just_stores(self, ctx):
        assert _set(ctx, Setting.IOLOG_FILE, _str("%{user}/%{seq}"))
        assert ctx.defaults[Setting.IOLOG_FILE] == "%{user}/%{seq}"

    def test_wrong_value_tag_rejected(self, ctx):
        with pytest.raises(SettingTypeError):
            _set(ctx, Setting.LOG_INPUT, _str("yes"))

    def test_tag_accessors_check_type(self):
        value = SettingValue.of_int(5)
        assert value.ival == 5
        with pytest.raises(SettingTypeError):
            value.flag


# =============================================================================
# I/O CAPTURE
# =============================================================================

class TestLogInputOutput:
    def test_log_input_sets_both(self, ctx):
        assert _set(ctx, Setting.LOG_INPUT, _flag(True))
        assert ctx.defaults[Setting.LOG_STDIN] is True
        assert ctx.defaults[Setting.LOG_TTYIN] is True
        assert ctx.defaults[Setting.LOG_STDOUT] is False

    def test_log_input_false_clears_both(self, ctx):
        _set(ctx, Setting.LOG_INPUT, _flag(True))
        assert _set(ctx, Setting.LOG_INPUT, _flag(False), OP_FALSE)
        assert ctx.defaults[Setting.LOG_STDIN] is False
        assert ctx.defaults[Setting.LOG_TTYIN] is False

    def test_log_output_sets_all_three(self, ctx):
        assert _set(ctx, Setting.LOG_OUTPUT, _flag(True))
        assert ctx.defaults[Setting.LOG_STDOUT] is True
        assert ctx.defaults[Setting.LOG_STDERR] is True
        assert ctx.defaults[Setting.LOG_TTYOUT] is True
        assert ctx.defaults[Setting.LOG_STDIN] is False

    def test_repeated_value_is_idempotent(self, ctx):
        _set(ctx, Setting.LOG_OUTPUT, _flag(True))
        snapshot = ctx.defaults.to_dict()
        _set(ctx, Setting.LOG_OUTPUT, _flag(True))
        assert ctx.defaults.to_dict() == snapshot


# =============================================================================
# INTERCEPT
# =============================================================================

class TestIntercept:
    def test_defaults(self, ctx):
        policy = ctx.intercept
        assert policy.type == "dso"
        assert policy.allow_setid is True
        assert policy.allow_setid_explicit is False

    def test_switch_to_dso_resets_allow_setid(self, ctx):
        assert _set(ctx, Setting.INTERCEPT_TYPE, SettingValue.of_tuple("dso"))
        assert ctx.intercept.allow_setid is False

    def test_explicit_allow_setid_survives_switch(self, ctx):
        assert _set(ctx, Setting.INTERCEPT_ALLOW_SETID, _flag(True))
        assert ctx.intercept.allow_setid_explicit
        assert _set(ctx, Setting.INTERCEPT_TYPE, SettingValue.of_tuple("dso"))
        assert ctx.intercept.allow_setid is True

    def test_frontend_values_are_not_explicit(self, ctx):
        _set(ctx, Setting.INTERCEPT_ALLOW_SETID, _flag(True), OP_FRONTEND, BUILTIN)
        assert not ctx.user.flags & UserFlags.INTERCEPT_SETID
        _set(ctx, Setting.INTERCEPT_TYPE, SettingValue.of_tuple("dso"), OP_FRONTEND, BUILTIN)
        assert ctx.intercept.allow_setid is True

    def test_trace_leaves_allow_setid(self, ctx):
        _set(ctx, Setting.INTERCEPT_TYPE, SettingValue.of_tuple("trace"))
        assert ctx.intercept.type == "trace"
        assert ctx.intercept.allow_setid is True


# =============================================================================
# TIMESTAMPS AND UMASK
# =============================================================================

class TestTimestamp:
    def test_tty_tickets_selects_scope(self, ctx):
        _set(ctx, Setting.TTY_TICKETS, _flag(False), OP_FALSE)
        assert ctx.defaults[Setting.TIMESTAMP_TYPE] == "global"
        _set(ctx, Setting.TTY_TICKETS, _flag(True))
        assert ctx.defaults[Setting.TIMESTAMP_TYPE] == "tty"

    def test_owner_by_name(self, ctx):
        assert _set(ctx, Setting.TIMESTAMPOWNER, _str("bob"))
        assert (ctx.timestamp.owner_uid, ctx.timestamp.owner_gid) == (1001, 1001)

    def test_owner_by_uid(self, ctx):
        assert _set(ctx, Setting.TIMESTAMPOWNER, _str("#1000"))
        assert ctx.timestamp.owner_uid == 1000

    def test_unknown_owner_is_audited_and_changes_nothing(self, ctx, caplog):
        with caplog.at_level(logging.WARNING, logger="policyload.audit"):
            assert not _set(ctx, Setting.TIMESTAMPOWNER, _str("mallory"))
        assert ctx.timestamp.owner_uid == 0
        assert ctx.defaults[Setting.TIMESTAMPOWNER] == "root"
        audit = [r for r in caplog.records if r.name == "policyload.audit"]
        assert len(audit) == 1
        assert "policy.yaml:4:3 timestampowner: unknown user mallory" in audit[0].getMessage()

    def test_bad_numeric_owner_falls_back_to_name(self, ctx):
        assert not _set(ctx, Setting.TIMESTAMPOWNER, _str("#12x"))

    def test_umask_override(self, ctx):
        _set(ctx, Setting.UMASK, SettingValue.of_mode(0o077))
        assert ctx.override_umask is True
        _set(ctx, Setting.UMASK, SettingValue.of_mode(0o777))
        assert ctx.override_umask is False


# =============================================================================
# EVENT LOG
# =============================================================================

class TestEventLog:
    def test_builtin_destination_is_syslog(self, ctx):
        assert ctx.eventlog.type == EventLogType.SYSLOG

    def test_logfile_keeps_syslog(self, ctx):
        _set(ctx, Setting.LOGFILE, _str("/var/log/policy.log"))
        assert ctx.eventlog.type == EventLogType.SYSLOG | EventLogType.FILE
        assert ctx.eventlog.logpath == "/var/log/policy.log"

    def test_disabling_syslog_keeps_file(self, ctx):
        _set(ctx, Setting.LOGFILE, _str("/var/log/policy.log"))
        _set(ctx, Setting.SYSLOG, None, OP_FALSE)
        assert ctx.eventlog.type == EventLogType.FILE

    def test_disabling_both(self, ctx):
        _set(ctx, Setting.SYSLOG, None, OP_FALSE)
        _set(ctx, Setting.LOGFILE, None, OP_FALSE)
        assert ctx.eventlog.type == EventLogType.NONE
        assert ctx.eventlog.logpath is None

    def test_format(self, ctx):
        assert ctx.eventlog.format is EventLogFormat.SUDO
        _set(ctx, Setting.LOG_FORMAT, SettingValue.of_tuple("json"))
        assert ctx.eventlog.format is EventLogFormat.JSON

    def test_priorities(self, ctx):
        _set(ctx, Setting.SYSLOG_GOODPRI, SettingValue.of_int(6))
        _set(ctx, Setting.SYSLOG_BADPRI, SettingValue.of_int(2))
        assert ctx.eventlog.syslog_acceptpri == 6
        assert ctx.eventlog.syslog_rejectpri == 2
        assert ctx.eventlog.syslog_alertpri == 2

    def test_line_lengths(self, ctx):
        _set(ctx, Setting.SYSLOG_MAXLEN, SettingValue.of_int(512))
        _set(ctx, Setting.LOGLINELEN, SettingValue.of_int(0))
        assert ctx.eventlog.syslog_maxlen == 512
        assert ctx.eventlog.file_maxlen == 0

    def test_year_and_host(self, ctx):
        assert ctx.eventlog.time_fmt == TIME_FMT
        assert ctx.eventlog.omit_hostname is True
        _set(ctx, Setting.LOG_YEAR, _flag(True))
        _set(ctx, Setting.LOG_HOST, _flag(True))
        assert ctx.eventlog.time_fmt == TIME_FMT_YEAR
        assert ctx.eventlog.omit_hostname is False

    def test_mail_settings(self, ctx):
        assert ctx.eventlog.mailerpath == "/usr/sbin/sendmail"
        _set(ctx, Setting.MAILTO, _str("secops@example.com"))
        _set(ctx, Setting.MAILFROM, _str("policy@example.com"))
        _set(ctx, Setting.MAILSUB, _str("alert"))
        _set(ctx, Setting.MAILERFLAGS, _str("-oi -t"))
        _set(ctx, Setting.MAILERPATH, None, OP_FALSE)
        assert ctx.eventlog.mailto == "secops@example.com"
        assert ctx.eventlog.mailfrom == "policy@example.com"
        assert ctx.eventlog.mailsub == "alert"
        assert ctx.eventlog.mailerflags == "-oi -t"
        assert ctx.eventlog.mailerpath is None


# =============================================================================
# I/O LOG OWNERSHIP AND LIMITS
# =============================================================================

class TestIolog:
    def test_maxseq(self, ctx):
        assert _set(ctx, Setting.MAXSEQ, _str("1000"))
        assert ctx.iolog.maxseq == 1000

    def test_maxseq_clamped(self, ctx):
        assert _set(ctx, Setting.MAXSEQ, _str("99999999999"))
        assert ctx.iolog.maxseq == SESSID_MAX

    def test_maxseq_invalid(self, ctx):
        assert not _set(ctx, Setting.MAXSEQ, _str("lots"))
        assert ctx.iolog.maxseq == SESSID_MAX

    @pytest.mark.parametrize("text", ["\u00b2", "\u0663\u0664", "-5", ""])
    def test_maxseq_rejects_non_decimal_text(self, ctx, text):
        assert not _set(ctx, Setting.MAXSEQ, _str(text))
        assert ctx.iolog.maxseq == SESSID_MAX
        assert ctx.defaults[Setting.MAXSEQ] == str(SESSID_MAX)

    def test_iolog_user(self, ctx):
        assert _set(ctx, Setting.IOLOG_USER, _str("alice"))
        assert (ctx.iolog.uid, ctx.iolog.gid) == (1000, 1000)

    def test_iolog_group_wins_over_user_group(self, ctx):
        assert _set(ctx, Setting.IOLOG_GROUP, _str("wheel"))
        assert _set(ctx, Setting.IOLOG_USER, _str("bob"))
        assert (ctx.iolog.uid, ctx.iolog.gid) == (1001, 10)

    def test_iolog_group_numeric(self, ctx):
        assert _set(ctx, Setting.IOLOG_GROUP, _str("#10"))
        assert ctx.iolog.gid == 10

    def test_iolog_unset_means_root(self, ctx):
        _set(ctx, Setting.IOLOG_USER, _str("alice"))
        _set(ctx, Setting.IOLOG_USER, None, OP_FALSE)
        assert ctx.iolog.uid == 0

    def test_iolog_unknown_group(self, ctx):
        assert not _set(ctx, Setting.IOLOG_GROUP, _str("nogroup"))

    def test_iolog_mode(self, ctx):
        _set(ctx, Setting.IOLOG_MODE, SettingValue.of_mode(0o640))
        assert ctx.iolog.mode == 0o640


# =============================================================================
# TARGET USER AND COMMAND
# =============================================================================

class TestRunas:
    def test_runas_default(self, ctx):
        assert _set(ctx, Setting.RUNAS_DEFAULT, _str("bob"))
        assert (ctx.runas.name, ctx.runas.uid) == ("bob", 1001)

    def test_explicit_target_not_replaced(self, ctx):
        ctx.user.flags |= UserFlags.RUNAS_USER_SPECIFIED
        assert _set(ctx, Setting.RUNAS_DEFAULT, _str("bob"))
        assert ctx.runas.name == "root"

    def test_unknown_runas_default(self, ctx):
        assert not _set(ctx, Setting.RUNAS_DEFAULT, _str("mallory"))
        assert ctx.runas.name == "root"


class TestRunchroot:
    def test_no_command_no_lookup(self, ctx, finder):
        assert _set(ctx, Setting.RUNCHROOT, _str("/srv/jail"))
        assert finder.calls == []

    def test_command_re_resolved_under_chroot(self, ctx, finder):
        finder.results["/srv/jail"] = (CommandStatus.FOUND, "/bin/ls")
        ctx.user.command.name = "ls"
        ctx.user.command.path = "/usr/bin/ls"
        assert _set(ctx, Setting.RUNCHROOT, _str("/srv/jail"))
        assert finder.calls == [("ls", "/srv/jail")]
        assert ctx.user.command.status is CommandStatus.FOUND
        assert ctx.user.command.path == "/bin/ls"

    def test_not_found_is_not_failure(self, ctx, finder):
        ctx.user.command.name = "ls"
        ctx.user.command.path = "/usr/bin/ls"
        assert _set(ctx, Setting.RUNCHROOT, _str("/empty"))
        assert ctx.user.command.status is CommandStatus.NOT_FOUND
        assert ctx.user.command.path == "/usr/bin/ls"
