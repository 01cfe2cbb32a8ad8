"""
Platform self-test.

Exercises detection, table setup and the core operations against a scratch
file on the real host, logging one PASS/FAIL line per check.

Usage:
    platshim self-test
"""

import hashlib
import os
import tempfile
from typing import Callable, List, Optional, Tuple

from platshim.errors import PlatshimError
from platshim.log import get_logger
from platshim.ops.base import resolve_context
from platshim.ops.dates import date
from platshim.ops.files import checksum, mktemp, readlink_canonical, sed_inplace, stat
from platshim.ops.timeout import timeout
from platshim.platform.context import PlatformContext

logger = get_logger(__name__)

SCRATCH_CONTENT = "test\n"


class CheckFailed(PlatshimError):
    """A self-test check saw the wrong result."""


def _expect(condition: bool, message: str) -> None:
    if not condition:
        raise CheckFailed(message)


class SelfTestRunner:
    """Runs named checks and counts the outcomes."""

    def __init__(self):
        self.passed = 0
        self.failed = 0
        self.warned = 0
        self.errors: List[Tuple[str, str]] = []

    def run_check(self, name: str, check: Callable[[], str], warn_only: bool = False) -> bool:
        """
        Run one check.

        A check returns a short detail string on success and raises
        PlatshimError (usually CheckFailed) on failure. Warn-only checks are
        logged but never count as failures.
        """
        try:
            detail = check()
        except PlatshimError as e:
            if warn_only:
                self.warned += 1
                logger.warning("%s may not be available: %s", name, e)
                return False
            self.failed += 1
            self.errors.append((name, str(e)))
            logger.failed("%s failed: %s", name, e)
            return False

        self.passed += 1
        if detail:
            logger.passed("%s works (%s)", name, detail)
        else:
            logger.passed("%s works", name)
        return True

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def summary(self) -> bool:
        """Log the totals and return True when nothing failed."""
        logger.info("PASSED: %d  FAILED: %d  WARNED: %d", self.passed, self.failed, self.warned)
        if self.ok:
            logger.passed("Self-test completed successfully")
        else:
            for name, error in self.errors:
                logger.info("  - %s: %s", name, error)
            logger.failed("Self-test encountered failures")
        return self.ok


def _no_backup_left(path: str) -> None:
    directory, name = os.path.split(path)
    leftovers = [
        entry for entry in os.listdir(directory or ".")
        if entry != name and entry.startswith(name)
    ]
    _expect(not leftovers, f"backup artifact left behind: {', '.join(leftovers)}")


def run_self_test(ctx: Optional[PlatformContext] = None) -> bool:
    """Run every check against the host; True when all required checks pass."""
    ctx = resolve_context(ctx)
    logger.info("Running platform self-test...")
    runner = SelfTestRunner()

    def detection() -> str:
        profile = ctx.profile
        return str(profile)

    def setup() -> str:
        ctx.ensure_ready()
        return ""

    runner.run_check("Platform detection", detection)
    if not runner.run_check("Command setup", setup):
        return runner.summary()

    template = os.path.join(tempfile.gettempdir(), "platshim_test.XXXXXX")
    created = mktemp(template=template, ctx=ctx)
    if not created.ok or not created.output:
        runner.failed += 1
        runner.errors.append(("mktemp", created.msg))
        logger.failed("Could not create temp file for testing: %s", created.msg)
        return runner.summary()

    scratch = created.output
    try:
        os.chmod(scratch, 0o600)
        with open(scratch, "w", encoding="utf-8") as f:
            f.write(SCRATCH_CONTENT)

        def stat_size() -> str:
            size = stat("size", scratch, ctx=ctx).check()
            _expect(size == str(len(SCRATCH_CONTENT)), f"expected {len(SCRATCH_CONTENT)}, got {size!r}")
            return f"size={size}"

        def date_iso() -> str:
            value = date("iso8601", ctx=ctx).check()
            _expect(bool(value), "empty date output")
            return value

        def checksum_md5() -> str:
            digest = checksum("md5", scratch, ctx=ctx).check()
            expected = hashlib.md5(SCRATCH_CONTENT.encode("utf-8")).hexdigest()
            _expect(digest == expected, f"expected {expected}, got {digest!r}")
            return digest

        def sed_edit() -> str:
            sed_inplace("s/test/done/", scratch, ctx=ctx).check()
            with open(scratch, encoding="utf-8") as f:
                content = f.read()
            _expect(content == "done\n", f"unexpected content {content!r}")
            _no_backup_left(scratch)
            return ""

        def canonical() -> str:
            resolved = readlink_canonical(scratch, ctx=ctx).check()
            _expect(os.path.isabs(resolved), f"not absolute: {resolved}")
            _expect(os.path.basename(resolved) == os.path.basename(scratch), f"unexpected name: {resolved}")
            return resolved

        def bounded() -> str:
            timeout(2, "sleep", "0.1", ctx=ctx).check()
            return ""

        runner.run_check("stat", stat_size)
        runner.run_check("date", date_iso)
        runner.run_check("checksum", checksum_md5)
        runner.run_check("sed_inplace", sed_edit)
        runner.run_check("readlink_canonical", canonical)
        runner.run_check("timeout", bounded, warn_only=True)
    finally:
        try:
            os.remove(scratch)
        except FileNotFoundError:
            pass

    return runner.summary()
