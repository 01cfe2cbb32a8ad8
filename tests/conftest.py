"""Shared fixtures: simulated hosts built from injected which/runner callables."""

import logging
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pytest

from platshim.config import PlatshimConfig, set_config
from platshim.platform import proc
from platshim.platform.context import PlatformContext, reset_context
from platshim.platform.detect import Detector, OSFamily, Variant

Response = Union[proc.ProcessResult, int, str, BaseException]

GNU_STAT_VERSION = "stat (GNU coreutils) 9.1\nCopyright (C) 2022 Free Software Foundation, Inc.\n"
BUSYBOX_BANNER = "BusyBox v1.36.1 (2023-06-12 22:23:09 UTC) multi-call binary.\n"
BSD_STAT_USAGE = (
    "stat: illegal option -- -\n"
    "usage: stat [-FLnq] [-f format | -l | -r | -s | -x] [-t timefmt] [file ...]\n"
)

STANDARD_COMMANDS = (
    "stat", "date", "sed", "base64", "find", "xargs", "grep", "awk",
    "readlink", "tar", "mktemp", "timeout",
)


@pytest.fixture(autouse=True)
def _isolate_platshim_state():
    """Fresh config and default context; undo setup_logging() between tests."""
    set_config(PlatshimConfig())
    reset_context()
    yield
    pkg_logger = logging.getLogger("platshim")
    for handler in pkg_logger.handlers[:]:
        pkg_logger.removeHandler(handler)
    pkg_logger.propagate = True
    pkg_logger.setLevel(logging.NOTSET)
    set_config(PlatshimConfig())
    reset_context()


class FakeWhich:
    """PATH lookup over a fixed name -> path mapping."""

    def __init__(self, paths: Dict[str, str]):
        self.paths = dict(paths)

    def __call__(self, name: str) -> Optional[str]:
        return self.paths.get(name)


class FakeRunner:
    """
    Records argv and answers from canned responses.

    Responses are matched by argv prefix, longest prefix first. A response
    may be a ProcessResult, an int (exit status), a str (stdout of a
    successful run) or an exception to raise.
    """

    def __init__(self, responses: Optional[Dict[Tuple[str, ...], Response]] = None, default_rc: int = 0):
        self.responses = dict(responses or {})
        self.default_rc = default_rc
        self.calls: List[List[str]] = []

    def __call__(self, argv: Sequence[str], **kwargs) -> proc.ProcessResult:
        argv = [str(arg) for arg in argv]
        self.calls.append(argv)
        for prefix in sorted(self.responses, key=len, reverse=True):
            if tuple(argv[:len(prefix)]) == prefix:
                return self._answer(self.responses[prefix], argv)
        return proc.ProcessResult(self.default_rc, "", "", argv)

    @staticmethod
    def _answer(response: Response, argv: List[str]) -> proc.ProcessResult:
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, proc.ProcessResult):
            return response
        if isinstance(response, int):
            return proc.ProcessResult(response, "", "", argv)
        return proc.ProcessResult(0, response, "", argv)

    def called(self, *prefix: str) -> bool:
        return any(tuple(call[:len(prefix)]) == prefix for call in self.calls)


class StaticDetector(Detector):
    """Detector with a fixed answer."""

    def __init__(self, os_family: OSFamily, variant: Variant):
        super().__init__(runner=FakeRunner(), which=FakeWhich({}))
        self._os = os_family
        self._variant = variant


def standard_paths(prefix: str = "/usr/bin", **extra: str) -> Dict[str, str]:
    """Every standard command under ``prefix``, plus extra name=path entries."""
    paths = {name: f"{prefix}/{name}" for name in STANDARD_COMMANDS}
    paths.update(extra)
    return paths


def make_context(
    os_family: OSFamily = OSFamily.LINUX,
    variant: Variant = Variant.GNU,
    paths: Optional[Dict[str, str]] = None,
    runner: Optional[FakeRunner] = None,
    config: Optional[PlatshimConfig] = None,
) -> PlatformContext:
    """A PlatformContext for a simulated host."""
    return PlatformContext(
        detector=StaticDetector(os_family, variant),
        which=FakeWhich(standard_paths() if paths is None else paths),
        runner=runner if runner is not None else FakeRunner(),
        config=config or PlatshimConfig(),
    )


def bsd_paths(**extra: str) -> Dict[str, str]:
    """A stock macOS userland: no timeout, BSD tools under /usr/bin."""
    paths = standard_paths()
    del paths["timeout"]
    paths.update(extra)
    return paths
