# Copyright (c) 2025 Platshim Contributors
# MIT License

"""
Platshim: platform shim for portable shell-tool invocation.

Lets callers ask for logically-named operations (stat, date, in-place sed,
canonical paths, temp files, bounded-time execution, checksums, interface
inspection, DNS/network repair) without branching on operating system.

Features:
    - Host OS and userland variant detection (GNU, BSD, BusyBox)
    - Per-process command and flag tables, resolved once
    - Emulation where the host lacks a capability (readlink -f, timeout)
    - Explicit PlatformContext for injection in tests and embedders

This package re-exports the public operations and release metadata.
"""

from __future__ import annotations

from platshim.release import __version__, __author__, __codename__
from platshim.results import OpResult, OpStatus
from platshim.platform.context import PlatformContext, get_context, setup_commands
from platshim.platform.detect import classify_binary, detect_os, detect_variant
from platshim.platform.resolver import find_command
from platshim.ops.files import checksum, mktemp, readlink_canonical, sed_inplace, stat
from platshim.ops.dates import date
from platshim.ops.timeout import timeout
from platshim.ops.network import (
    dns_flush,
    get_interface_ip,
    get_interface_mac,
    network_restart,
)
from platshim.ops.report import check_gnu_tools, info
from platshim.selftest import run_self_test

__all__ = [
    "__version__",
    "__author__",
    "__codename__",
    "OpResult",
    "OpStatus",
    "PlatformContext",
    "get_context",
    "setup_commands",
    "classify_binary",
    "detect_os",
    "detect_variant",
    "find_command",
    "stat",
    "date",
    "sed_inplace",
    "readlink_canonical",
    "mktemp",
    "timeout",
    "checksum",
    "get_interface_ip",
    "get_interface_mac",
    "dns_flush",
    "network_restart",
    "info",
    "check_gnu_tools",
    "run_self_test",
]
