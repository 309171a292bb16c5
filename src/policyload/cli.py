"""
CLI entry point for the policyload-show command.

Loads a defaults file, applies it, and prints the resulting runtime state:
event-log destinations, host names, timestamp and I/O-log ownership,
interception mode, and optionally the I/O-log path a session would use.
"""

import argparse
import json
import logging
import os
import sys

from .iolog import PathExpansionError, build_iolog_path
from .loader import PolicyLoadError, load_defaults_file
from .utils.safe_io import SecurityError, atomic_write_text
from .version import __version__

ENV_DEFAULTS = "POLICYLOAD_DEFAULTS"


def format_summary(snapshot: dict, iolog_path: str = "") -> str:
    """Format a context snapshot as a human-readable summary."""
    user = snapshot["user"]
    runas = snapshot["runas"]
    evlog = snapshot["eventlog"]
    ts = snapshot["timestamp"]
    iolog = snapshot["iolog"]
    intercept = snapshot["intercept"]
    cmnd = snapshot["command"]

    lines = [
        "=" * 60,
        "POLICY RUNTIME STATE",
        "=" * 60,
        f"User:        {user['name']} ({user['uid']}:{user['gid']}) "
        f"on {user['host']} [{user['shost']}]",
        f"Runas:       {runas['name']} ({runas['uid']}:{runas['gid']}) "
        f"on {runas['host']} [{runas['shost']}]",
    ]
    if cmnd["name"]:
        lines.append(
            f"Command:     {cmnd['name']} -> {cmnd['path'] or '-'} ({cmnd['status']})"
        )
    lines.extend([
        "",
        "-" * 60,
        "EVENT LOG",
        "-" * 60,
        f"  Destinations: {', '.join(evlog['type']) or 'none'}",
        f"  Format:       {evlog['format']}",
        f"  Log file:     {evlog['logpath'] or '-'}",
        f"  Time format:  {evlog['time_fmt']}",
        f"  Omit host:    {evlog['omit_hostname']}",
        f"  Mail to:      {evlog['mailto'] or '-'}",
        "",
        "-" * 60,
        "SESSION",
        "-" * 60,
        f"  Timestamp:    {ts['type']} (owner {ts['owner_uid']}:{ts['owner_gid']})",
        f"  I/O log:      owner {iolog['uid']}:{iolog['gid']} mode {iolog['mode']}",
        f"  Intercept:    {intercept['type']} "
        f"(allow setid: {intercept['allow_setid']})",
        f"  Umask:        {'policy' if snapshot['override_umask'] else 'user'}",
    ])
    if iolog_path:
        lines.append(f"  I/O log path: {iolog_path}")
    lines.extend(["", "=" * 60])
    return "\n".join(lines)


def main_show(argv=None):
    """Entry point for policyload-show command."""
    parser = argparse.ArgumentParser(
        description="Apply a defaults file and show the resulting runtime state"
    )
    parser.add_argument("defaults", nargs="?",
                        default=os.environ.get(ENV_DEFAULTS),
                        help=f"Defaults YAML file (default: ${ENV_DEFAULTS})")
    parser.add_argument("--format", choices=["summary", "json"], default="summary",
                        help="Output format (default: summary)")
    parser.add_argument("--iolog-path", action="store_true",
                        help="Allocate a sequence id and show the I/O log path")
    parser.add_argument("--output", "-o", help="Output file (default: stdout)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show debug logging on stderr")
    parser.add_argument("--version", action="version",
                        version=f"policyload-show {__version__}")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
        )

    if not args.defaults:
        print(f"Error: no defaults file given and ${ENV_DEFAULTS} is not set",
              file=sys.stderr)
        return 1

    try:
        ctx = load_defaults_file(args.defaults)
    except PolicyLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    iolog_path = ""
    if args.iolog_path:
        try:
            iolog_path = build_iolog_path(ctx)
        except PathExpansionError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    snapshot = ctx.snapshot()
    if args.format == "json":
        if iolog_path:
            snapshot["iolog"]["path"] = iolog_path
        output = json.dumps(snapshot, indent=2)
    else:
        output = format_summary(snapshot, iolog_path)

    if args.output:
        try:
            atomic_write_text(args.output, output + "\n")
        except (OSError, SecurityError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(f"Written to {args.output}", file=sys.stderr)
    else:
        print(output)

    return 0


if __name__ == "__main__":
    sys.exit(main_show())
