"""
Process execution and PATH lookup.

Every abstracted operation funnels its child processes through run(), and
every command-existence check through which().
"""

import os
import shlex
import shutil
import subprocess
from typing import Optional, Union, Sequence, Mapping

from platshim.log import get_logger

logger = get_logger(__name__)


# Type aliases
CommandArg = Union[str, "os.PathLike[str]"]
CommandSequence = Sequence[CommandArg]


class ProcessResult:
    """Result of a process execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        command: Union[str, CommandSequence],
    ):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command

    @property
    def success(self) -> bool:
        """Check if process exited successfully."""
        return self.returncode == 0

    @property
    def failed(self) -> bool:
        """Check if process failed."""
        return self.returncode != 0

    @property
    def output(self) -> str:
        """Stdout without the trailing newline(s)."""
        return self.stdout.rstrip("\r\n")

    @property
    def combined(self) -> str:
        """Stdout and stderr together, as a version probe sees them."""
        return self.stdout + self.stderr

    def __repr__(self) -> str:
        return f"ProcessResult(returncode={self.returncode}, stdout={len(self.stdout)} chars)"


def quote_command(args: CommandSequence) -> str:
    """Quote a command sequence for display in log messages."""
    return " ".join(shlex.quote(str(arg)) for arg in args)


def run(
    cmd: CommandSequence,
    *,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
    check: bool = False,
    capture_output: bool = True,
    input: Optional[str] = None,
    encoding: str = "utf-8",
) -> ProcessResult:
    """
    Run a command and return the result.

    Args:
        cmd: Command sequence, executed directly (no shell)
        cwd: Working directory
        env: Environment variables (merged with current env)
        timeout: Timeout in seconds
        check: Raise exception on non-zero exit
        capture_output: Capture stdout/stderr
        input: String to send to stdin
        encoding: Output encoding

    Returns:
        ProcessResult with returncode, stdout, stderr

    Raises:
        subprocess.TimeoutExpired: If timeout exceeded
        subprocess.CalledProcessError: If check=True and process fails
        FileNotFoundError: If the program does not exist
    """
    run_env = dict(os.environ)
    if env:
        run_env.update(env)

    kwargs: dict = {
        "cwd": cwd,
        "env": run_env,
        "timeout": timeout,
    }

    if capture_output:
        kwargs["stdout"] = subprocess.PIPE
        kwargs["stderr"] = subprocess.PIPE

    if input is not None:
        kwargs["input"] = input.encode(encoding)
    else:
        kwargs["stdin"] = subprocess.DEVNULL

    argv = [str(arg) for arg in cmd]
    logger.debug("exec: %s", quote_command(argv))

    try:
        result = subprocess.run(argv, **kwargs)
    except FileNotFoundError as e:
        raise FileNotFoundError(f"Command not found: {argv[0] if argv else ''}") from e

    stdout = ""
    stderr = ""
    if capture_output:
        stdout = result.stdout.decode(encoding, errors="replace") if result.stdout else ""
        stderr = result.stderr.decode(encoding, errors="replace") if result.stderr else ""

    proc_result = ProcessResult(
        returncode=result.returncode,
        stdout=stdout,
        stderr=stderr,
        command=argv,
    )

    if check and proc_result.failed:
        raise subprocess.CalledProcessError(
            result.returncode,
            argv,
            result.stdout,
            result.stderr,
        )

    return proc_result


def which(program: str) -> Optional[str]:
    """
    Find the full path to an executable.

    Returns None if not found.
    """
    if not program:
        return None
    return shutil.which(program)


def is_command_available(program: str) -> bool:
    """Check if a command is available on the system."""
    return which(program) is not None


def is_root() -> bool:
    """Check if the current process runs with uid 0."""
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0
