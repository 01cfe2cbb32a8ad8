"""
Bounded-time command execution.

Uses the native ``timeout`` (``gtimeout`` on macOS with coreutils) when the
table has one. Otherwise the target runs under a Watchdog: at the deadline
its session gets SIGTERM, and SIGKILL after a grace period if anything in
it is still alive.

Either way the target runs in its own session. Whatever is left of that
session when the call returns is killed, so background children of a shell
target never outlive the call.
"""

import enum
import os
import signal
import subprocess
import threading
from typing import List, Optional, Sequence, Tuple, Union

from platshim.errors import ExecutionFailure, ResolutionFailure, UsageError
from platshim.log import get_logger
from platshim.ops.base import resolve_context
from platshim.platform import IS_POSIX
from platshim.platform.context import PlatformContext
from platshim.platform.proc import quote_command
from platshim.platform.tables import CommandKey
from platshim.results import OpResult

logger = get_logger(__name__)

# Exit status GNU timeout uses for an expired deadline
TIMEOUT_EXIT = 124

# Extra time to drain output once the session has been killed
DRAIN_SECONDS = 1.0

SIGKILL = getattr(signal, "SIGKILL", signal.SIGTERM)


class WatchState(enum.Enum):
    """Lifecycle of a watched process."""
    RUNNING = "running"
    SOFT_KILLED = "soft-killed"
    HARD_KILLED = "hard-killed"
    COMPLETED = "completed"


def _signal_session(process: subprocess.Popen, sig: int) -> bool:
    """
    Signal every process in the target's session.

    The leader may already have exited while its children still run, so the
    group is signalled regardless of the leader's state. Returns False when
    nothing was left to signal.
    """
    if IS_POSIX:
        try:
            os.killpg(process.pid, sig)
        except ProcessLookupError:
            return False
        return True
    if process.poll() is not None:
        return False
    if sig == SIGKILL:
        process.kill()
    else:
        process.terminate()
    return True


class Watchdog:
    """
    Deadline enforcement for one child session.

    State moves running -> soft-killed -> hard-killed when the deadline
    passes, or running -> completed when cancel() is called first. Timers
    are cancellable, so no sleeper outlives a target that finished on time.
    """

    def __init__(self, process: subprocess.Popen, seconds: float, grace: float = 1.0):
        self.process = process
        self.seconds = seconds
        self.grace = grace
        self.state = WatchState.RUNNING
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    def _arm(self, delay: float, action) -> None:
        self._timer = threading.Timer(delay, action)
        self._timer.daemon = True
        self._timer.start()

    def start(self) -> "Watchdog":
        with self._lock:
            self._arm(self.seconds, self._soft_kill)
        return self

    def _soft_kill(self) -> None:
        with self._lock:
            if self.state is not WatchState.RUNNING:
                return
            if not _signal_session(self.process, signal.SIGTERM):
                return
            logger.debug("Deadline of %ss reached; sent SIGTERM to session %d", self.seconds, self.process.pid)
            self.state = WatchState.SOFT_KILLED
            self._arm(self.grace, self._hard_kill)

    def _hard_kill(self) -> None:
        with self._lock:
            if self.state is not WatchState.SOFT_KILLED:
                return
            if not _signal_session(self.process, SIGKILL):
                return
            logger.debug("Session %d survived SIGTERM; sent SIGKILL", self.process.pid)
            self.state = WatchState.HARD_KILLED

    def cancel(self) -> None:
        """Stop the timers; marks the run completed unless a kill already fired."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if self.state is WatchState.RUNNING:
                self.state = WatchState.COMPLETED

    @property
    def timed_out(self) -> bool:
        return self.state in (WatchState.SOFT_KILLED, WatchState.HARD_KILLED)


def _exit_status(returncode: int) -> int:
    """Map a signal death (negative returncode) to the shell's 128+N."""
    if returncode < 0:
        return 128 - returncode
    return returncode


def _format_seconds(seconds: float) -> str:
    return str(int(seconds)) if float(seconds).is_integer() else str(seconds)


def _decode(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace")


def _communicate(process: subprocess.Popen, limit: float) -> Tuple[Optional[bytes], Optional[bytes]]:
    """Collect output, giving up once ``limit`` seconds have passed."""
    try:
        return process.communicate(timeout=limit)
    except subprocess.TimeoutExpired:
        logger.debug("Output of session %d still open after %ss; killing it", process.pid, limit)

    _signal_session(process, SIGKILL)
    try:
        return process.communicate(timeout=DRAIN_SECONDS)
    except subprocess.TimeoutExpired:
        # A process that left the session still holds the pipes
        for stream in (process.stdout, process.stderr):
            if stream is not None:
                stream.close()
        process.wait()
        return None, None


def _watch(
    command: Sequence[str],
    deadline: float,
    grace: float,
    capture_output: bool,
) -> Tuple[int, str, str, Watchdog]:
    """
    Run ``command`` in a new session under a Watchdog.

    Returns the shell-style exit status, stdout, stderr and the watchdog.

    Raises:
        FileNotFoundError: If the program does not exist
    """
    pipe = subprocess.PIPE if capture_output else None
    argv = [str(arg) for arg in command]
    logger.debug("exec: %s", quote_command(argv))
    process = subprocess.Popen(
        argv,
        stdin=subprocess.DEVNULL,
        stdout=pipe,
        stderr=pipe,
        start_new_session=IS_POSIX,
    )

    watchdog = Watchdog(process, deadline, grace).start()
    try:
        stdout, stderr = _communicate(process, deadline + grace + DRAIN_SECONDS)
    finally:
        watchdog.cancel()
        # Background children the leader left behind
        if _signal_session(process, SIGKILL):
            logger.debug("Killed processes left in session %d", process.pid)

    rc = _exit_status(process.returncode)
    if watchdog.timed_out and rc == 0:
        rc = TIMEOUT_EXIT
    return rc, _decode(stdout).rstrip("\r\n"), _decode(stderr), watchdog


def _finish(
    command: Sequence[str],
    rc: int,
    output: str,
    stderr: str,
    timed_out: bool,
    seconds: float,
    **data,
) -> OpResult:
    data["timed_out"] = timed_out
    if rc == 0:
        return OpResult.success("timeout", output, data=data)
    msg = f"timed out after {_format_seconds(seconds)}s" if timed_out else f"command exited with {rc}"
    return OpResult.failure(
        "timeout",
        msg,
        error=ExecutionFailure(command, rc, stderr),
        rc=rc,
        output=output,
        data=data,
    )


def run_with_watchdog(
    command: Sequence[str],
    seconds: float,
    grace: float = 1.0,
    capture_output: bool = True,
) -> OpResult:
    """Run ``command`` with a Watchdog enforcing ``seconds``."""
    try:
        rc, output, stderr, watchdog = _watch(command, seconds, grace, capture_output)
    except FileNotFoundError:
        return OpResult.failure(
            "timeout", f"Command not found: {command[0]}", error=ResolutionFailure(command[0]), rc=127
        )

    return _finish(
        command,
        rc,
        output,
        stderr,
        watchdog.timed_out,
        seconds,
        strategy="watchdog",
        state=watchdog.state.value,
    )


def timeout(
    seconds: Union[int, float, str],
    *command: str,
    ctx: Optional[PlatformContext] = None,
    capture_output: bool = True,
) -> OpResult:
    """
    Run a command with a hard deadline.

    Returns the command's exit code as ``rc`` (124 when the deadline
    expired, 128+signal when the watchdog killed it) and
    ``data["timed_out"]``. No process started by the call is left running
    when it returns.
    """
    if seconds is None or seconds == "" or not command:
        raise UsageError("Usage: timeout(<seconds>, <command>, [args...])")
    try:
        secs = float(seconds)
    except (TypeError, ValueError):
        raise UsageError(f"Timeout must be a number of seconds, got {seconds!r}") from None
    if secs <= 0:
        raise UsageError(f"Timeout must be positive, got {seconds!r}")

    argv: List[str] = [str(arg) for arg in command]

    ctx = resolve_context(ctx)
    ctx.ensure_ready()
    grace = ctx.config.timeout_grace

    native = ctx.command(CommandKey.TIMEOUT)
    if not native:
        logger.debug("Using watchdog timeout implementation")
        return run_with_watchdog(argv, secs, grace, capture_output)

    # The native binary gets the first chance at the deadline; the watchdog
    # only steps in for children that outlive it
    try:
        rc, output, stderr, watchdog = _watch(
            [native, _format_seconds(secs), *argv], secs + grace, grace, capture_output
        )
    except FileNotFoundError:
        return OpResult.failure(
            "timeout", f"Command not found: {native}", error=ResolutionFailure("timeout"), rc=127
        )
    return _finish(
        argv,
        rc,
        output,
        stderr,
        rc == TIMEOUT_EXIT or watchdog.timed_out,
        secs,
        strategy="native",
    )
