"""Pre-flight checks run before any unit is scheduled.

Catches a missing executable or a misspelled placeholder once, up front,
instead of as one failure per chunk or group hours into a run.
"""

import logging
import os
import shutil
import string
from typing import Dict, Iterable, List

from cladeflow.errors import ConfigurationError
from cladeflow.clustering.profile import DEFAULT_PROFILE
from cladeflow.execution.runner import INPUT_FILES_TOKEN
from cladeflow.pipeline.stages import STAGE_PLACEHOLDERS, Stage

__all__ = ['missing_executables', 'unknown_placeholders', 'require_tools']

logger = logging.getLogger(__name__)

COMMON_PLACEHOLDERS = frozenset({"output_dir", "threads", "memory_gb", "timeout_minutes"})

CLUSTERING_PLACEHOLDERS = frozenset(
    {"manifest", "chunk_id", "db_name"} | set(DEFAULT_PROFILE.as_placeholders())
)

TOOL_PLACEHOLDERS = {
    "clustering": CLUSTERING_PLACEHOLDERS,
    "alignment": STAGE_PLACEHOLDERS[Stage.ALIGNMENT],
    "filtering": STAGE_PLACEHOLDERS[Stage.FILTERING],
    "tree": STAGE_PLACEHOLDERS[Stage.TREE],
}


def _is_available(executable: str) -> bool:
    if os.sep in executable:
        return os.path.isfile(executable) and os.access(executable, os.X_OK)
    return shutil.which(executable) is not None


def _tool_configs(config):
    tools = config.tools
    return {
        "clustering": tools.clustering,
        "alignment": tools.alignment,
        "filtering": tools.filtering,
        "tree": tools.tree,
    }


def missing_executables(config) -> List[str]:
    """First argv word of every configured command not found on PATH.

    Parameters
    ----------
    config : InternalConfig

    Returns
    -------
    list of str
        Unique missing executables in configuration order.
    """
    missing: List[str] = []
    for tool in _tool_configs(config).values():
        for command in tool.commands:
            executable = command[0]
            if executable not in missing and not _is_available(executable):
                missing.append(executable)
    return missing


def _fields(token: str) -> Iterable[str]:
    if token == INPUT_FILES_TOKEN:
        return []
    try:
        parsed = list(string.Formatter().parse(token))
    except ValueError:
        return ["<malformed>"]
    return [name.split(".")[0].split("[")[0] for _, name, _, _ in parsed if name is not None]


def unknown_placeholders(config) -> Dict[str, List[str]]:
    """Placeholders used by each tool's templates that it will not be given.

    Returns
    -------
    dict
        Tool section -> sorted unknown names; tools without problems are
        omitted.
    """
    problems = {}
    for section, tool in _tool_configs(config).items():
        allowed = COMMON_PLACEHOLDERS | TOOL_PLACEHOLDERS[section]
        unknown = {
            name
            for command in tool.commands
            for token in command
            for name in _fields(token)
            if name not in allowed
        }
        if unknown:
            problems[section] = sorted(unknown)
    return problems


def require_tools(config) -> None:
    """Raise ConfigurationError if any template or executable is unusable."""
    problems = unknown_placeholders(config)
    for section, names in problems.items():
        logger.error("✗ %s command template uses unknown placeholder(s): %s",
                     section, ", ".join(names))

    missing = missing_executables(config)
    for executable in missing:
        logger.error("✗ Executable not found on PATH: %s", executable)

    if problems or missing:
        details = []
        if problems:
            details.append("unknown placeholders in " + ", ".join(sorted(problems)))
        if missing:
            details.append("missing executables: " + ", ".join(missing))
        raise ConfigurationError("Pre-flight check failed: " + "; ".join(details))

    logger.info("✓ Pre-flight check passed: all tools found")
