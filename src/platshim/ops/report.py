"""
Diagnostics: the platform info dump and the macOS GNU tools advisory.
"""

from typing import Any, Dict, List, Optional

from jinja2 import Environment, StrictUndefined

from platshim.log import get_logger
from platshim.ops.base import resolve_context
from platshim.platform.context import PlatformContext
from platshim.platform.detect import OSFamily
from platshim.platform.tables import CommandKey
from platshim.results import OpResult

logger = get_logger(__name__)

GNU_TOOLS = ("gsed", "gstat", "gdate", "gfind", "ggrep", "gawk", "greadlink", "gtar", "gtimeout")
BREW_HINT = "brew install coreutils findutils gnu-sed gnu-tar grep gawk"

INFO_TEMPLATE = """\
Platform Information:
  OS: {{ os }}
  Variant: {{ variant }}
  Initialized: {{ "yes" if initialized else "no" }}

Command Mappings:
{% for row in rows -%}
{{ "  %-12s: %s"|format(row.name, row.path or "NOT FOUND") }}{% if row.path %} [{{ row.dialect }}]{% endif %}
{% endfor -%}
{% if missing %}
Missing critical commands: {{ missing|join(", ") }}
{% endif -%}
"""

_env = Environment(
    undefined=StrictUndefined,
    # Plain text, not HTML
    autoescape=False,
    keep_trailing_newline=True,
)


def info(ctx: Optional[PlatformContext] = None) -> str:
    """Render the detected platform and command table as text."""
    ctx = resolve_context(ctx)
    ctx.setup_commands()

    rows: List[Dict[str, Any]] = [
        {
            "name": key.value,
            "path": ctx.command(key),
            "dialect": ctx.dialect(key).value,
        }
        for key in CommandKey
    ]
    profile = ctx.profile
    return _env.from_string(INFO_TEMPLATE).render(
        os=profile.os.value,
        variant=profile.variant.value,
        initialized=ctx.initialized,
        rows=rows,
        missing=[key.value for key in ctx.missing_critical],
    )


def check_gnu_tools(ctx: Optional[PlatformContext] = None) -> OpResult:
    """
    Check whether the GNU tool set is installed (macOS only).

    On other hosts this succeeds without looking.
    """
    ctx = resolve_context(ctx)

    if ctx.profile.os is not OSFamily.MACOS:
        logger.debug("Not macOS, skipping GNU tools check")
        return OpResult.success("check_gnu_tools", data={"skipped": True})

    logger.info("Checking for GNU tools on macOS...")
    found: List[str] = []
    missing: List[str] = []
    for tool in GNU_TOOLS:
        if ctx.which(tool):
            logger.passed("Found: %s", tool)
            found.append(tool)
        else:
            logger.warning("Missing: %s", tool)
            missing.append(tool)

    data = {"found": found, "missing": missing}
    if missing:
        logger.warning("Install missing tools with: %s", BREW_HINT)
        return OpResult.failure(
            "check_gnu_tools",
            f"Missing GNU tools: {', '.join(missing)}",
            data=data,
        )

    logger.passed("All GNU tools available")
    return OpResult.success("check_gnu_tools", data=data)
