"""
Network interface inspection and best-effort network repair.

Interface queries parse ``ip`` output on Linux and ``ifconfig`` output
elsewhere. DNS flush and network restart walk an OS-specific cascade of
service tools; failures are logged, never raised.
"""

import subprocess
import time
from typing import List, Optional, Sequence, Tuple

from platshim.log import get_logger
from platshim.ops.base import require_args, resolve_context, wrap_privileged
from platshim.platform.context import PlatformContext
from platshim.platform.detect import OSFamily
from platshim.results import OpResult

logger = get_logger(__name__)

_pause = time.sleep


# --- Parsers -----------------------------------------------------------------

def parse_ip_addr(text: str) -> Optional[str]:
    """First IPv4 address from ``ip -4 addr show`` (``inet 10.0.0.5/24 ...``)."""
    for line in text.splitlines():
        tokens = line.split()
        if len(tokens) >= 2 and tokens[0] == "inet":
            return tokens[1].split("/", 1)[0]
    return None


def parse_ifconfig_inet(text: str) -> Optional[str]:
    """
    First IPv4 address from ifconfig output.

    Handles BSD/macOS and modern net-tools (``inet 192.168.1.100 netmask ...``)
    and legacy Linux net-tools (``inet addr:192.168.1.100  Bcast:...``).
    """
    for line in text.splitlines():
        tokens = line.split()
        if len(tokens) >= 2 and tokens[0] == "inet":
            address = tokens[1]
            if address.startswith("addr:"):
                address = address[len("addr:"):]
            return address or None
    return None


def parse_ip_link_mac(text: str) -> Optional[str]:
    """MAC address from ``ip link show`` (``link/ether aa:bb:... brd ...``)."""
    for line in text.splitlines():
        tokens = line.split()
        for i, token in enumerate(tokens[:-1]):
            if token == "link/ether":
                return tokens[i + 1]
    return None


def parse_ifconfig_mac(text: str) -> Optional[str]:
    """MAC address from ifconfig output (``ether aa:bb:...`` or ``HWaddr aa:bb:...``)."""
    for line in text.splitlines():
        tokens = line.split()
        if len(tokens) >= 2 and tokens[0] == "ether":
            return tokens[1]
        for i, token in enumerate(tokens[:-1]):
            if token == "HWaddr":
                return tokens[i + 1]
    return None


def parse_wifi_device(text: str) -> Optional[str]:
    """Wi-Fi device name from ``networksetup -listallhardwareports``."""
    lines = text.splitlines()
    for i, line in enumerate(lines):
        if "Wi-Fi" in line or "AirPort" in line:
            for follower in lines[i + 1:i + 3]:
                key, _, value = follower.partition(":")
                if key.strip() == "Device" and value.strip():
                    return value.strip()
    return None


# --- Helpers -----------------------------------------------------------------

def _query(ctx: PlatformContext, argv: Sequence[str]) -> str:
    """Stdout of ``argv``, or "" if it failed or could not start."""
    try:
        result = ctx.run(argv)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("%s: %s", argv[0], e)
        return ""
    return result.stdout if result.success else ""


def _attempt(ctx: PlatformContext, argv: Sequence[str], privileged: bool = False) -> bool:
    """Run a repair step; True on exit status 0."""
    if privileged:
        argv = wrap_privileged(ctx, argv)
    try:
        result = ctx.run(argv)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("%s: %s", argv[0], e)
        return False
    if result.failed:
        logger.debug("%s exited with %d: %s", argv[0], result.returncode, result.stderr.strip())
    return result.success


def _interface_text(
    ctx: PlatformContext,
    iface: str,
    ip_args: Sequence[str],
) -> Tuple[Optional[str], Optional[str]]:
    """
    Fetch interface text for the host OS.

    Returns (tool, text); tool is None when no strategy exists here.
    """
    os_family = ctx.profile.os

    if os_family is OSFamily.MACOS or os_family.is_bsd:
        ifconfig = ctx.which("ifconfig")
        if not ifconfig:
            return None, None
        return "ifconfig", _query(ctx, [ifconfig, iface])

    if os_family.is_linux:
        ip = ctx.which("ip")
        if ip:
            return "ip", _query(ctx, [ip, *ip_args, iface])
        ifconfig = ctx.which("ifconfig")
        if ifconfig:
            return "ifconfig", _query(ctx, [ifconfig, iface])
        return None, None

    return None, None


# --- Interface queries -------------------------------------------------------

def get_interface_ip(iface: str, ctx: Optional[PlatformContext] = None) -> OpResult:
    """IPv4 address of a named interface (e.g. eth0, en0)."""
    require_args("get_interface_ip", "get_interface_ip(<interface>)", iface)
    ctx = resolve_context(ctx)

    tool, text = _interface_text(ctx, iface, ["-4", "addr", "show"])
    if tool is None:
        return OpResult.unsupported("get_interface_ip", ctx.profile.os.value)

    address = parse_ip_addr(text or "") if tool == "ip" else parse_ifconfig_inet(text or "")
    if address:
        return OpResult.success("get_interface_ip", address, data={"tool": tool})

    logger.error("Could not get IP for interface: %s", iface)
    return OpResult.failure("get_interface_ip", f"Could not get IP for interface: {iface}")


def get_interface_mac(iface: str, ctx: Optional[PlatformContext] = None) -> OpResult:
    """MAC address of a named interface."""
    require_args("get_interface_mac", "get_interface_mac(<interface>)", iface)
    ctx = resolve_context(ctx)

    tool, text = _interface_text(ctx, iface, ["link", "show"])
    if tool is None:
        return OpResult.unsupported("get_interface_mac", ctx.profile.os.value)

    mac = parse_ip_link_mac(text or "") if tool == "ip" else parse_ifconfig_mac(text or "")
    if mac:
        return OpResult.success("get_interface_mac", mac, data={"tool": tool})

    logger.error("Could not get MAC for interface: %s", iface)
    return OpResult.failure("get_interface_mac", f"Could not get MAC for interface: {iface}")


# --- Repair ------------------------------------------------------------------

# (program, args, needs root)
_LINUX_DNS_CASCADE = (
    ("resolvectl", ["flush-caches"], False),
    ("systemd-resolve", ["--flush-caches"], False),
    ("nscd", ["-i", "hosts"], True),
)

_BSD_DNS_CASCADE = (
    ("unbound-control", ["flush_all"], True),
)


def _run_cascade(ctx: PlatformContext, cascade) -> Tuple[Optional[str], bool]:
    """Try each available step; returns (winning program, anything attempted)."""
    attempted = False
    for program, args, privileged in cascade:
        binary = ctx.which(program)
        if not binary:
            continue
        attempted = True
        if _attempt(ctx, [binary, *args], privileged):
            return program, True
    return None, attempted


def dns_flush(ctx: Optional[PlatformContext] = None) -> OpResult:
    """Flush the system DNS cache. Best effort; never raises."""
    ctx = resolve_context(ctx)
    os_family = ctx.profile.os
    logger.debug("Flushing DNS cache on %s...", os_family.value)

    if os_family is OSFamily.MACOS:
        steps: List[str] = []
        dscacheutil = ctx.which("dscacheutil")
        if dscacheutil and _attempt(ctx, [dscacheutil, "-flushcache"], privileged=True):
            steps.append("dscacheutil")
        killall = ctx.which("killall")
        if killall and _attempt(ctx, [killall, "-HUP", "mDNSResponder"], privileged=True):
            steps.append("mDNSResponder")
        if not dscacheutil and not killall:
            logger.warning("No DNS cache flush method found on macOS")
            return OpResult.unsupported("dns_flush", os_family.value)
        if steps:
            logger.passed("DNS cache flushed (macOS)")
            return OpResult.success("dns_flush", data={"strategy": "+".join(steps)})
        logger.warning("DNS cache flush failed on macOS")
        return OpResult.failure("dns_flush", "DNS cache flush failed on macOS")

    if os_family.is_linux:
        cascade, label = _LINUX_DNS_CASCADE, "Linux"
    elif os_family.is_bsd:
        cascade, label = _BSD_DNS_CASCADE, "BSD"
    else:
        logger.warning("DNS cache flush not supported on %s", os_family.value)
        return OpResult.unsupported("dns_flush", os_family.value)

    winner, attempted = _run_cascade(ctx, cascade)
    if winner:
        logger.passed("DNS cache flushed (%s)", winner)
        return OpResult.success("dns_flush", data={"strategy": winner})

    logger.warning("No DNS cache flush method found on %s", label)
    if attempted:
        return OpResult.failure("dns_flush", f"Every DNS cache flush method failed on {label}")
    return OpResult.unsupported("dns_flush", os_family.value)


def _toggle(ctx: PlatformContext, down: List[str], up: List[str], delay: float) -> bool:
    _attempt(ctx, down, privileged=True)
    _pause(delay)
    return _attempt(ctx, up, privileged=True)


def _restart_macos(ctx: PlatformContext, iface: Optional[str]) -> Tuple[Optional[str], bool]:
    if iface:
        ifconfig = ctx.which("ifconfig")
        if not ifconfig:
            return None, False
        if _toggle(ctx, [ifconfig, iface, "down"], [ifconfig, iface, "up"], 1):
            return f"interface {iface}", True
        return None, True

    networksetup = ctx.which("networksetup")
    if not networksetup:
        return None, False
    device = parse_wifi_device(_query(ctx, [networksetup, "-listallhardwareports"]))
    if not device:
        return None, True
    if _toggle(
        ctx,
        [networksetup, "-setairportpower", device, "off"],
        [networksetup, "-setairportpower", device, "on"],
        2,
    ):
        return "Wi-Fi", True
    return None, True


def _restart_linux(ctx: PlatformContext, iface: Optional[str]) -> Tuple[Optional[str], bool]:
    attempted = False

    systemctl = ctx.which("systemctl")
    if systemctl:
        for service in ("NetworkManager", "networking", "systemd-networkd"):
            if not _attempt(ctx, [systemctl, "is-active", service]):
                continue
            attempted = True
            if _attempt(ctx, [systemctl, "restart", service], privileged=True):
                return service, True

    service_cmd = ctx.which("service")
    if service_cmd:
        attempted = True
        if _attempt(ctx, [service_cmd, "networking", "restart"], privileged=True):
            return "networking", True

    ip = ctx.which("ip")
    if iface and ip:
        attempted = True
        if _toggle(
            ctx,
            [ip, "link", "set", iface, "down"],
            [ip, "link", "set", iface, "up"],
            1,
        ):
            return f"interface {iface}", True

    return None, attempted


def _restart_freebsd(ctx: PlatformContext, iface: Optional[str]) -> Tuple[Optional[str], bool]:
    service_cmd = ctx.which("service")
    if not service_cmd:
        return None, False
    if _attempt(ctx, [service_cmd, "netif", "restart"], privileged=True):
        return "netif", True
    return None, True


def network_restart(iface: Optional[str] = None, ctx: Optional[PlatformContext] = None) -> OpResult:
    """
    Restart networking, or just ``iface`` where the platform allows it.

    Best effort; never raises.
    """
    ctx = resolve_context(ctx)
    os_family = ctx.profile.os
    logger.debug("Restarting network on %s...", os_family.value)

    if os_family is OSFamily.MACOS:
        strategy, attempted = _restart_macos(ctx, iface)
    elif os_family.is_linux:
        strategy, attempted = _restart_linux(ctx, iface)
    elif os_family is OSFamily.FREEBSD:
        strategy, attempted = _restart_freebsd(ctx, iface)
    else:
        logger.warning("Network restart not supported on %s", os_family.value)
        return OpResult.unsupported("network_restart", os_family.value)

    if strategy:
        logger.passed("Network restarted (%s)", strategy)
        return OpResult.success("network_restart", data={"strategy": strategy})

    logger.warning("Could not restart network on %s", os_family.value)
    if attempted:
        return OpResult.failure("network_restart", f"Could not restart network on {os_family.value}")
    return OpResult.unsupported("network_restart", os_family.value)
