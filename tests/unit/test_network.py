"""Unit tests for interface queries and network repair."""

import pytest

from platshim.config import PlatshimConfig
from platshim.errors import UsageError
from platshim.ops import network
from platshim.ops.network import (
    dns_flush,
    get_interface_ip,
    get_interface_mac,
    network_restart,
    parse_ifconfig_inet,
    parse_ifconfig_mac,
    parse_ip_addr,
    parse_ip_link_mac,
    parse_wifi_device,
)
from platshim.platform import proc
from platshim.platform.detect import OSFamily, Variant

from conftest import FakeRunner, make_context

IP_ADDR_SHOW = """\
2: eth0: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc fq_codel state UP group default qlen 1000
    inet 10.0.2.15/24 brd 10.0.2.255 scope global dynamic eth0
       valid_lft 86000sec preferred_lft 86000sec
"""

IP_LINK_SHOW = """\
2: eth0: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc fq_codel state UP mode DEFAULT group default qlen 1000
    link/ether 08:00:27:4e:66:a1 brd ff:ff:ff:ff:ff:ff
"""

MACOS_IFCONFIG = """\
en0: flags=8863<UP,BROADCAST,SMART,RUNNING,SIMPLEX,MULTICAST> mtu 1500
\toptions=6463<RXCSUM,TXCSUM,TSO4,TSO6,CHANNEL_IO,PARTIAL_CSUM,ZEROINVERT_CSUM>
\tether a4:83:e7:12:34:56
\tinet6 fe80::1c2b:3d4e:5f60:7182%en0 prefixlen 64 secured scopeid 0xe
\tinet 192.168.1.100 netmask 0xffffff00 broadcast 192.168.1.255
\tstatus: active
"""

LEGACY_IFCONFIG = """\
eth0      Link encap:Ethernet  HWaddr 00:1A:2B:3C:4D:5E
          inet addr:192.168.0.7  Bcast:192.168.0.255  Mask:255.255.255.0
          UP BROADCAST RUNNING MULTICAST  MTU:1500  Metric:1
"""

HARDWARE_PORTS = """\

Hardware Port: Ethernet
Device: en1
Ethernet Address: a4:83:e7:00:00:01

Hardware Port: Wi-Fi
Device: en0
Ethernet Address: a4:83:e7:12:34:56
"""

LINUX_TOOLS = {
    "ip": "/usr/sbin/ip",
    "systemctl": "/usr/bin/systemctl",
    "resolvectl": "/usr/bin/resolvectl",
    "sudo": "/usr/bin/sudo",
}


@pytest.fixture(autouse=True)
def no_pause(monkeypatch):
    pauses = []
    monkeypatch.setattr(network, "_pause", pauses.append)
    return pauses


@pytest.fixture
def not_root(monkeypatch):
    monkeypatch.setattr(proc, "is_root", lambda: False)


class TestParsers:
    """Tests for interface output parsers."""

    def test_ip_addr(self):
        assert parse_ip_addr(IP_ADDR_SHOW) == "10.0.2.15"

    def test_ip_addr_without_address(self):
        assert parse_ip_addr("2: eth0: <NO-CARRIER> mtu 1500\n") is None

    def test_ip_link_mac(self):
        assert parse_ip_link_mac(IP_LINK_SHOW) == "08:00:27:4e:66:a1"

    def test_macos_ifconfig(self):
        assert parse_ifconfig_inet(MACOS_IFCONFIG) == "192.168.1.100"
        assert parse_ifconfig_mac(MACOS_IFCONFIG) == "a4:83:e7:12:34:56"

    def test_legacy_ifconfig(self):
        assert parse_ifconfig_inet(LEGACY_IFCONFIG) == "192.168.0.7"
        assert parse_ifconfig_mac(LEGACY_IFCONFIG) == "00:1A:2B:3C:4D:5E"

    def test_inet6_is_ignored(self):
        assert parse_ifconfig_inet("\tinet6 ::1 prefixlen 128\n") is None

    def test_wifi_device(self):
        assert parse_wifi_device(HARDWARE_PORTS) == "en0"

    def test_no_wifi_device(self):
        assert parse_wifi_device("Hardware Port: Ethernet\nDevice: en1\n") is None


class TestInterfaceQueries:
    """Tests for get_interface_ip and get_interface_mac."""

    def test_linux_ip(self):
        runner = FakeRunner({("/usr/sbin/ip", "-4", "addr", "show", "eth0"): IP_ADDR_SHOW})
        ctx = make_context(paths=LINUX_TOOLS, runner=runner)
        result = get_interface_ip("eth0", ctx=ctx)
        assert result.output == "10.0.2.15"
        assert result.data["tool"] == "ip"

    def test_linux_mac(self):
        runner = FakeRunner({("/usr/sbin/ip", "link", "show", "eth0"): IP_LINK_SHOW})
        ctx = make_context(paths=LINUX_TOOLS, runner=runner)
        assert get_interface_mac("eth0", ctx=ctx).output == "08:00:27:4e:66:a1"

    def test_linux_falls_back_to_ifconfig(self):
        runner = FakeRunner({("/sbin/ifconfig", "eth0"): LEGACY_IFCONFIG})
        ctx = make_context(paths={"ifconfig": "/sbin/ifconfig"}, runner=runner)
        assert get_interface_ip("eth0", ctx=ctx).output == "192.168.0.7"
        assert get_interface_mac("eth0", ctx=ctx).output == "00:1A:2B:3C:4D:5E"

    def test_macos(self):
        runner = FakeRunner({("/sbin/ifconfig", "en0"): MACOS_IFCONFIG})
        ctx = make_context(OSFamily.MACOS, Variant.BSD, paths={"ifconfig": "/sbin/ifconfig"}, runner=runner)
        assert get_interface_ip("en0", ctx=ctx).output == "192.168.1.100"
        assert get_interface_mac("en0", ctx=ctx).output == "a4:83:e7:12:34:56"

    def test_no_address_fails(self):
        runner = FakeRunner({("/usr/sbin/ip",): ""})
        ctx = make_context(paths=LINUX_TOOLS, runner=runner)
        result = get_interface_ip("eth9", ctx=ctx)
        assert result.failed
        assert "eth9" in result.msg

    def test_no_tool_unsupported(self):
        ctx = make_context(paths={})
        assert get_interface_ip("eth0", ctx=ctx).is_unsupported

    def test_unsupported_os(self):
        ctx = make_context(OSFamily.WINDOWS, Variant.UNKNOWN, paths={"ifconfig": "/sbin/ifconfig"})
        assert get_interface_mac("eth0", ctx=ctx).is_unsupported

    def test_interface_required(self):
        with pytest.raises(UsageError):
            get_interface_ip("", ctx=make_context())


class TestDnsFlush:
    """Tests for the DNS cache flush cascade."""

    def test_resolvectl_first(self):
        runner = FakeRunner()
        result = dns_flush(ctx=make_context(paths=LINUX_TOOLS, runner=runner))
        assert result.ok
        assert result.data["strategy"] == "resolvectl"
        assert runner.calls == [["/usr/bin/resolvectl", "flush-caches"]]

    def test_falls_through_to_nscd_with_sudo(self, not_root):
        paths = dict(LINUX_TOOLS, nscd="/usr/sbin/nscd")
        runner = FakeRunner({("/usr/bin/resolvectl",): 1})
        result = dns_flush(ctx=make_context(paths=paths, runner=runner))
        assert result.data["strategy"] == "nscd"
        assert runner.calls[-1] == ["/usr/bin/sudo", "-n", "/usr/sbin/nscd", "-i", "hosts"]

    def test_sudo_disabled_by_config(self, not_root):
        paths = {"nscd": "/usr/sbin/nscd", "sudo": "/usr/bin/sudo"}
        runner = FakeRunner()
        ctx = make_context(paths=paths, runner=runner, config=PlatshimConfig(use_sudo=False))
        dns_flush(ctx=ctx)
        assert runner.calls[-1] == ["/usr/sbin/nscd", "-i", "hosts"]

    def test_every_method_failed(self):
        runner = FakeRunner(default_rc=1)
        result = dns_flush(ctx=make_context(paths=LINUX_TOOLS, runner=runner))
        assert result.failed

    def test_nothing_available(self, caplog):
        result = dns_flush(ctx=make_context(paths={}))
        assert result.is_unsupported
        assert "No DNS cache flush method found" in caplog.text

    def test_macos(self, not_root):
        paths = {"dscacheutil": "/usr/bin/dscacheutil", "killall": "/usr/bin/killall"}
        runner = FakeRunner()
        result = dns_flush(ctx=make_context(OSFamily.MACOS, Variant.BSD, paths=paths, runner=runner))
        assert result.ok
        assert result.data["strategy"] == "dscacheutil+mDNSResponder"
        assert ["/usr/bin/killall", "-HUP", "mDNSResponder"] in runner.calls

    def test_freebsd_unbound(self):
        runner = FakeRunner()
        paths = {"unbound-control": "/usr/sbin/unbound-control"}
        result = dns_flush(ctx=make_context(OSFamily.FREEBSD, Variant.BSD, paths=paths, runner=runner))
        assert result.data["strategy"] == "unbound-control"

    def test_solaris_unsupported(self):
        assert dns_flush(ctx=make_context(OSFamily.SOLARIS, Variant.SOLARIS)).is_unsupported


class TestNetworkRestart:
    """Tests for the network restart cascade."""

    def test_restarts_active_service(self):
        runner = FakeRunner({
            ("/usr/bin/systemctl", "is-active", "NetworkManager"): 0,
            ("/usr/bin/systemctl", "is-active"): 3,
        })
        result = network_restart(ctx=make_context(paths=LINUX_TOOLS, runner=runner))
        assert result.ok
        assert result.data["strategy"] == "NetworkManager"
        assert runner.called("/usr/bin/systemctl", "restart", "NetworkManager") or runner.called(
            "/usr/bin/sudo", "-n", "/usr/bin/systemctl", "restart", "NetworkManager"
        )

    def test_interface_toggle(self, not_root, no_pause):
        runner = FakeRunner({("/usr/bin/systemctl", "is-active"): 3})
        paths = {"ip": "/usr/sbin/ip", "systemctl": "/usr/bin/systemctl"}
        result = network_restart("eth0", ctx=make_context(paths=paths, runner=runner))
        assert result.data["strategy"] == "interface eth0"
        assert runner.calls[-2:] == [
            ["/usr/sbin/ip", "link", "set", "eth0", "down"],
            ["/usr/sbin/ip", "link", "set", "eth0", "up"],
        ]
        assert no_pause == [1]

    def test_nothing_available(self):
        result = network_restart(ctx=make_context(paths={}))
        assert result.is_unsupported

    def test_all_attempts_failed(self):
        runner = FakeRunner(default_rc=1)
        paths = {"service": "/usr/sbin/service"}
        result = network_restart(ctx=make_context(paths=paths, runner=runner))
        assert result.failed

    def test_macos_wifi(self, not_root, no_pause):
        runner = FakeRunner({("/usr/sbin/networksetup", "-listallhardwareports"): HARDWARE_PORTS})
        paths = {"networksetup": "/usr/sbin/networksetup"}
        result = network_restart(ctx=make_context(OSFamily.MACOS, Variant.BSD, paths=paths, runner=runner))
        assert result.data["strategy"] == "Wi-Fi"
        assert runner.calls[-1] == ["/usr/sbin/networksetup", "-setairportpower", "en0", "on"]
        assert no_pause == [2]

    def test_freebsd_netif(self):
        runner = FakeRunner()
        paths = {"service": "/usr/sbin/service"}
        result = network_restart(ctx=make_context(OSFamily.FREEBSD, Variant.BSD, paths=paths, runner=runner))
        assert result.data["strategy"] == "netif"

    def test_openbsd_unsupported(self):
        ctx = make_context(OSFamily.OPENBSD, Variant.BSD, paths={"service": "/usr/sbin/service"})
        assert network_restart(ctx=ctx).is_unsupported
