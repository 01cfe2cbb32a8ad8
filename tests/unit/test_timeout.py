"""Unit tests for bounded-time execution."""

import os
import subprocess
import sys
import time

import pytest

from platshim.config import PlatshimConfig
from platshim.errors import UsageError
from platshim.ops.timeout import (
    TIMEOUT_EXIT,
    Watchdog,
    WatchState,
    run_with_watchdog,
    timeout,
)
from platshim.platform import proc
from platshim.platform.context import PlatformContext

from conftest import make_context, standard_paths

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX process groups")

SLEEPER = [sys.executable, "-c", "import time; time.sleep(5)"]

# Leaves a background sleep holding stdout and prints its PID
BACKGROUND_CHILD = ["sh", "-c", "sleep 8 & echo $!"]

RECORDING_TIMEOUT = """#!/bin/sh
printf '%s\\n' "$@" > "$(dirname "$0")/argv"
shift
exec "$@"
"""


def _which_without_timeout(name):
    if name in ("timeout", "gtimeout"):
        return None
    return proc.which(name)


def _is_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    try:
        with open(f"/proc/{pid}/stat", encoding="utf-8") as f:
            state = f.read().rsplit(")", 1)[1].split()[0]
    except OSError:
        return True
    return state != "Z"


def _wait_gone(pid: int, limit: float = 3.0) -> bool:
    # The orphaned child is reaped by init, not by us
    deadline = time.monotonic() + limit
    while time.monotonic() < deadline:
        if not _is_running(pid):
            return True
        time.sleep(0.05)
    return not _is_running(pid)


@pytest.fixture
def fake_timeout(tmp_path):
    """Install an executable stand-in for the timeout binary."""
    def install(body: str = RECORDING_TIMEOUT) -> str:
        script = tmp_path / "timeout"
        script.write_text(body)
        script.chmod(0o755)
        return str(script)
    return install


def _argv_seen(script: str):
    with open(os.path.join(os.path.dirname(script), "argv"), encoding="utf-8") as f:
        return f.read().splitlines()


class TestArguments:
    """Argument validation."""

    @pytest.mark.parametrize("seconds", [0, -1, "abc", ""])
    def test_bad_seconds(self, seconds):
        with pytest.raises(UsageError):
            timeout(seconds, "true", ctx=make_context())

    def test_missing_command(self):
        with pytest.raises(UsageError):
            timeout(1, ctx=make_context())


@posix_only
class TestNativeTimeout:
    """Delegation to an installed timeout binary."""

    def test_argv(self, fake_timeout):
        script = fake_timeout()
        result = timeout(5, "echo", "done", ctx=make_context(paths=standard_paths(timeout=script)))
        assert result.ok
        assert result.output == "done"
        assert result.data == {"strategy": "native", "timed_out": False}
        assert _argv_seen(script) == ["5", "echo", "done"]

    def test_fractional_seconds(self, fake_timeout):
        script = fake_timeout()
        timeout(0.5, "true", ctx=make_context(paths=standard_paths(timeout=script)))
        assert _argv_seen(script) == ["0.5", "true"]

    def test_expired(self, fake_timeout):
        script = fake_timeout(f"#!/bin/sh\nexit {TIMEOUT_EXIT}\n")
        result = timeout(1, "sleep", "5", ctx=make_context(paths=standard_paths(timeout=script)))
        assert result.failed
        assert result.rc == TIMEOUT_EXIT
        assert result.data["timed_out"] is True
        assert "timed out" in result.msg

    def test_command_exit_code_passes_through(self, fake_timeout):
        script = fake_timeout()
        result = timeout(1, "sh", "-c", "exit 3", ctx=make_context(paths=standard_paths(timeout=script)))
        assert result.rc == 3
        assert result.data["timed_out"] is False

    def test_background_child_is_killed_at_backstop(self, fake_timeout):
        script = fake_timeout()
        ctx = make_context(paths=standard_paths(timeout=script), config=PlatshimConfig(timeout_grace=0.5))
        started = time.monotonic()
        result = timeout(1, *BACKGROUND_CHILD, ctx=ctx)
        assert time.monotonic() - started < 4
        assert result.rc == TIMEOUT_EXIT
        assert result.data["timed_out"] is True
        assert _wait_gone(int(result.output))


@posix_only
class TestWatchdog:
    """Timeout emulation without a timeout binary."""

    def test_kills_overrunning_command(self):
        started = time.monotonic()
        result = run_with_watchdog(SLEEPER, 1, grace=1)
        elapsed = time.monotonic() - started

        assert elapsed < 3.5
        assert result.failed
        assert result.data["timed_out"] is True
        assert result.data["strategy"] == "watchdog"
        # SIGTERM: 128 + 15
        assert result.rc == 143

    def test_fast_command_completes(self):
        result = run_with_watchdog([sys.executable, "-c", "print('hi')"], 5)
        assert result.ok
        assert result.output == "hi"
        assert result.data["state"] == WatchState.COMPLETED.value
        assert result.data["timed_out"] is False

    def test_exit_code_passes_through(self):
        result = run_with_watchdog([sys.executable, "-c", "import sys; sys.exit(7)"], 5)
        assert result.rc == 7
        assert result.data["timed_out"] is False

    def test_hard_kill_after_grace(self):
        stubborn = [
            sys.executable, "-c",
            "import signal, time; signal.signal(signal.SIGTERM, signal.SIG_IGN); time.sleep(10)",
        ]
        started = time.monotonic()
        result = run_with_watchdog(stubborn, 0.5, grace=0.5)
        assert time.monotonic() - started < 5
        assert result.data["state"] == WatchState.HARD_KILLED.value
        # SIGKILL: 128 + 9
        assert result.rc == 137

    def test_background_child_holding_output(self):
        started = time.monotonic()
        result = run_with_watchdog(BACKGROUND_CHILD, 1, grace=0.5)
        assert time.monotonic() - started < 3
        assert result.data["timed_out"] is True
        assert result.rc == TIMEOUT_EXIT
        assert _wait_gone(int(result.output))

    def test_background_child_swept_without_capture(self, tmp_path):
        pid_file = tmp_path / "pid"
        command = ["sh", "-c", 'sleep 8 >/dev/null 2>&1 & echo $! > "$1"', "sh", str(pid_file)]
        started = time.monotonic()
        result = run_with_watchdog(command, 5, capture_output=False)
        assert time.monotonic() - started < 3
        assert result.ok
        assert result.data["timed_out"] is False
        assert _wait_gone(int(pid_file.read_text()))

    def test_cancel_before_deadline(self):
        process = subprocess.Popen([sys.executable, "-c", "pass"])
        watchdog = Watchdog(process, 5).start()
        process.wait()
        watchdog.cancel()
        assert watchdog.state is WatchState.COMPLETED
        assert not watchdog.timed_out

    def test_missing_program(self):
        result = run_with_watchdog(["/nonexistent/platshim-no-such-binary"], 1)
        assert result.failed
        assert result.rc == 127

    def test_timeout_uses_watchdog_without_binary(self):
        ctx = PlatformContext(which=_which_without_timeout, config=PlatshimConfig(timeout_grace=0.5))
        started = time.monotonic()
        result = timeout(1, *SLEEPER, ctx=ctx)
        assert time.monotonic() - started < 3.5
        assert result.data["strategy"] == "watchdog"
        assert result.data["timed_out"] is True

    def test_timeout_leaves_no_child_behind(self):
        ctx = PlatformContext(which=_which_without_timeout, config=PlatshimConfig(timeout_grace=0.5))
        result = timeout(1, *BACKGROUND_CHILD, ctx=ctx)
        assert result.data["strategy"] == "watchdog"
        assert result.data["timed_out"] is True
        assert _wait_gone(int(result.output))


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="needs coreutils timeout")
class TestNativeOnHost:
    """Real timeout binary."""

    @pytest.fixture
    def ctx(self):
        ctx = PlatformContext(config=PlatshimConfig(timeout_grace=0.5))
        if not ctx.setup_commands() or not ctx.command("timeout"):
            pytest.skip("no timeout binary on this host")
        return ctx

    def test_sleep_is_cut_short(self, ctx):
        started = time.monotonic()
        result = timeout(1, "sleep", "5", ctx=ctx)
        assert time.monotonic() - started < 3
        assert result.rc == TIMEOUT_EXIT
        assert result.data["timed_out"] is True

    def test_leaves_no_child_behind(self, ctx):
        started = time.monotonic()
        result = timeout(1, *BACKGROUND_CHILD, ctx=ctx)
        assert time.monotonic() - started < 4
        assert result.data["strategy"] == "native"
        assert result.data["timed_out"] is True
        assert _wait_gone(int(result.output))
