"""
Main CLI entrypoint for platshim.

Usage:
    platshim --version
    platshim info
    platshim stat size /etc/hosts
    platshim timeout 5 some-command --flag
"""

import argparse
import logging
import platform
import sys
from typing import Callable, Dict, List, Optional

from platshim import __version__
from platshim.config import load_config, set_config
from platshim.errors import ExitCode, PlatshimError
from platshim.log import parse_level, resolve_env_log_level, setup_logging
from platshim.ops.dates import date
from platshim.ops.files import checksum, mktemp, readlink_canonical, sed_inplace, stat
from platshim.ops.network import dns_flush, get_interface_ip, get_interface_mac, network_restart
from platshim.ops.report import check_gnu_tools, info
from platshim.ops.timeout import timeout
from platshim.platform.context import get_context
from platshim.results import OpResult
from platshim.selftest import run_self_test


def get_version_string() -> str:
    """Generate a detailed version string."""
    python_version = platform.python_version()
    os_info = f"{platform.system()} {platform.release()}"
    return (
        f"platshim {__version__}\n"
        f"  python: {python_version}\n"
        f"  platform: {os_info}"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for platshim."""
    parser = argparse.ArgumentParser(
        prog="platshim",
        description="Run shell-tool operations portably across GNU, BSD and BusyBox hosts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  platshim info
  platshim stat mtime /var/log/syslog
  platshim date from_epoch 1700000000
  platshim sed-inplace 's/foo/bar/' config.ini
  platshim timeout 10 make test
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=get_version_string(),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v, -vv)",
    )

    parser.add_argument(
        "-c", "--config",
        dest="config",
        default=None,
        help="YAML configuration file (default: $PLATSHIM_CONFIG)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("info", help="Show detected platform and command mappings")
    subparsers.add_parser("self-test", help="Exercise the core operations on this host")
    subparsers.add_parser("check-gnu-tools", help="Check for GNU tools (macOS)")

    stat_parser = subparsers.add_parser("stat", help="Print one file statistic")
    stat_parser.add_argument("fmt", help="size, mtime, atime, ctime or mode")
    stat_parser.add_argument("file", help="File to inspect")

    date_parser = subparsers.add_parser("date", help="Print a formatted date")
    date_parser.add_argument("fmt", help="iso8601, epoch, rfc3339, from_epoch or a +FORMAT pattern")
    date_parser.add_argument("epoch", nargs="?", default=None, help="Seconds since the epoch")

    sed_parser = subparsers.add_parser("sed-inplace", help="Edit a file in place without a backup")
    sed_parser.add_argument("expr", help="sed expression")
    sed_parser.add_argument("file", help="File to edit")

    readlink_parser = subparsers.add_parser("readlink", help="Print the canonical absolute path")
    readlink_parser.add_argument("path", help="Path to resolve")

    mktemp_parser = subparsers.add_parser("mktemp", help="Create a temporary file or directory")
    mktemp_parser.add_argument("-d", "--directory", action="store_true", help="Create a directory")
    mktemp_parser.add_argument("template", nargs="?", default=None, help="Name template ending in XXXXXX")

    timeout_parser = subparsers.add_parser("timeout", help="Run a command with a deadline")
    timeout_parser.add_argument("seconds", help="Deadline in seconds")
    timeout_parser.add_argument("cmd", nargs=argparse.REMAINDER, help="Command and arguments")

    checksum_parser = subparsers.add_parser("checksum", help="Print a file digest")
    checksum_parser.add_argument("algo", help="md5, sha1, sha256 or sha512")
    checksum_parser.add_argument("file", help="File to hash")

    ip_parser = subparsers.add_parser("iface-ip", help="Print an interface's IPv4 address")
    ip_parser.add_argument("iface", help="Interface name")

    mac_parser = subparsers.add_parser("iface-mac", help="Print an interface's MAC address")
    mac_parser.add_argument("iface", help="Interface name")

    subparsers.add_parser("dns-flush", help="Flush the system DNS cache")

    restart_parser = subparsers.add_parser("network-restart", help="Restart networking")
    restart_parser.add_argument("iface", nargs="?", default=None, help="Restart only this interface")

    return parser


def _verbosity_level(verbose: int) -> Optional[int]:
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return None


def _report(result: OpResult) -> int:
    """Print an OpResult and translate its status into an exit code."""
    if result.ok:
        if result.output:
            print(result.output)
        return ExitCode.SUCCESS
    print(f"ERROR: {result.msg}", file=sys.stderr)
    if result.is_unsupported:
        return ExitCode.UNSUPPORTED_PLATFORM
    if result.error is not None and result.error.exit_code != ExitCode.GENERIC_ERROR:
        return result.error.exit_code
    return ExitCode.GENERIC_ERROR


def _run_timeout(args: argparse.Namespace) -> int:
    cmd = list(args.cmd)
    if cmd and cmd[0] == "--":
        cmd = cmd[1:]
    result = timeout(args.seconds, *cmd, capture_output=False)
    if result.ok:
        return ExitCode.SUCCESS
    if result.data.get("timed_out"):
        print(f"ERROR: {result.msg}", file=sys.stderr)
    # The command's own exit status passes through
    return result.rc


def _run_info(args: argparse.Namespace) -> int:
    sys.stdout.write(info())
    return ExitCode.SUCCESS


def _run_self_test(args: argparse.Namespace) -> int:
    return ExitCode.SUCCESS if run_self_test() else ExitCode.GENERIC_ERROR


COMMANDS: Dict[str, Callable[[argparse.Namespace], int]] = {
    "info": _run_info,
    "self-test": _run_self_test,
    "check-gnu-tools": lambda args: _report(check_gnu_tools()),
    "stat": lambda args: _report(stat(args.fmt, args.file)),
    "date": lambda args: _report(date(args.fmt, args.epoch)),
    "sed-inplace": lambda args: _report(sed_inplace(args.expr, args.file)),
    "readlink": lambda args: _report(readlink_canonical(args.path)),
    "mktemp": lambda args: _report(mktemp(args.directory, args.template)),
    "timeout": _run_timeout,
    "checksum": lambda args: _report(checksum(args.algo, args.file)),
    "iface-ip": lambda args: _report(get_interface_ip(args.iface)),
    "iface-mac": lambda args: _report(get_interface_mac(args.iface)),
    "dns-flush": lambda args: _report(dns_flush()),
    "network-restart": lambda args: _report(network_restart(args.iface)),
}


def main(args: Optional[List[str]] = None) -> int:
    """Main entrypoint for platshim CLI."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return ExitCode.SUCCESS

    try:
        config = load_config(parsed.config)
    except PlatshimError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return e.exit_code
    set_config(config)

    level = (
        _verbosity_level(parsed.verbose)
        or resolve_env_log_level()
        or parse_level(config.log_level)
    )
    setup_logging(level)

    # Table setup warnings belong to the host, not to one command
    get_context().setup_commands()

    try:
        return int(COMMANDS[parsed.command](parsed))
    except PlatshimError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return e.exit_code
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return ExitCode.KEYBOARD_INTERRUPT


if __name__ == "__main__":
    sys.exit(main())
