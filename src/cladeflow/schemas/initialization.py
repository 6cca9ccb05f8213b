"""Turning command-line arguments into a ready-to-run configuration.

``init_runtime_config`` is what the CLI calls before handing over to the
orchestrator. After it returns, the run directory exists, the merged
configuration carries a run id and the directory map, and a JSON copy of
it sits next to the outputs.
"""

import importlib.util
import json
import logging
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict

from cladeflow.errors import ConfigurationError
from cladeflow.schemas.resolve import resolve_config
from cladeflow.schemas.param import ParamConfig
from cladeflow.schemas.internal import InternalConfig
from cladeflow.setup_directories import setup_output_directories

logger = logging.getLogger(__name__)

# argparse attribute -> CLIConfig field
_CLI_FIELDS = ("input", "base_dir", "chunk_size", "max_workers")


def load_config_file(config_path: Path | str) -> dict:
    """Execute a Python configuration file and return its ``CONFIG`` dict.

    Any module-level dict whose name starts with ``CONFIG`` is accepted;
    the first one in name order wins.
    """
    path = Path(config_path).expanduser()
    if not path.is_file():
        raise ConfigurationError(f"Config not found: {path}")

    module_spec = importlib.util.spec_from_file_location("cladeflow_user_config", path)
    if module_spec is None or module_spec.loader is None:
        raise ConfigurationError(f"Could not load config module from {path}")
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)

    candidates = [
        value for name, value in sorted(vars(module).items())
        if name.startswith("CONFIG") and isinstance(value, dict)
    ]
    if not candidates:
        raise ConfigurationError(f"No CONFIG dict found in {path}")
    return candidates[0]


def generate_run_id() -> str:
    """Sortable run id: UTC timestamp plus a short random suffix."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{stamp}_{uuid.uuid4().hex[:8]}"


def _cli_overrides(args) -> dict:
    overrides = {name: getattr(args, name, None) for name in _CLI_FIELDS}
    if getattr(args, "verbose", False):
        overrides["log_level"] = "DEBUG"
    return {k: v for k, v in overrides.items() if v is not None}


def _wipe_base_dir(base_dir: Path) -> None:
    if base_dir.exists():
        logger.info("--rerun: removing previous outputs in %s", base_dir)
        shutil.rmtree(base_dir)


def _write_runtime_config(config: InternalConfig, base_dir: Path) -> Path:
    """Dump the resolved configuration as ``runtime_config_<run_id>.json``."""
    base_dir.mkdir(parents=True, exist_ok=True)
    path = base_dir / f"runtime_config_{config.run_id}.json"

    payload = config.model_dump()
    payload["created_at"] = datetime.now(timezone.utc).isoformat()
    with open(path, 'w') as f:
        json.dump(payload, f, indent=2, default=str)

    logger.info("Runtime config saved: %s", path)
    return path


def init_runtime_config(args) -> InternalConfig:
    """Resolve, prepare and persist the configuration of one run.

    Order of work: load the user's config file, merge it with the expert
    defaults and the command-line flags, wipe the base directory when
    ``--rerun`` was given, create the run directory layout, stamp a run id
    and write the runtime config JSON.

    Parameters
    ----------
    args : argparse.Namespace
        ``config`` (path to a Python file defining ``CONFIG``) is optional;
        ``input``, ``base_dir``, ``chunk_size``, ``max_workers``,
        ``verbose`` and ``rerun`` are read when present.

    Returns
    -------
    InternalConfig
        With ``run_id`` and ``output_dirs`` filled in.

    Raises
    ------
    ConfigurationError
        If the config file cannot be loaded or the merged config is invalid.
    """
    config_path = getattr(args, 'config', None)
    user_cfg = load_config_file(config_path) if config_path else {}
    resolved = resolve_config(ParamConfig(), user_cfg, _cli_overrides(args))

    base_dir = Path(resolved.base_dir)
    if getattr(args, 'rerun', False):
        _wipe_base_dir(base_dir)

    output_dirs: Dict[str, Path] = setup_output_directories(base_dir)
    config = resolved.model_copy(update={
        "run_id": generate_run_id(),
        "output_dirs": {k: str(v) for k, v in output_dirs.items()},
    })

    _write_runtime_config(config, Path(output_dirs["base"]))
    logger.info("Runtime initialization complete. Run ID: %s", config.run_id)
    return config


__all__ = ['init_runtime_config', 'generate_run_id', 'load_config_file']
