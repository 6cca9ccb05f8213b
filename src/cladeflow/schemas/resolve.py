"""Merging the three configuration layers into one InternalConfig.

``resolve_config()`` is the only place layers are combined. Later layers
win key by key:

1. ParamConfig - expert defaults for every field
2. UserConfig - the user's ``CONFIG`` file
3. CLIConfig - command-line flags
"""

from typing import Union, Optional
from pydantic import BaseModel, ValidationError
from cladeflow.errors import ConfigurationError
from cladeflow.schemas.param import ParamConfig
from cladeflow.schemas.user import UserConfig
from cladeflow.schemas.cli import CLIConfig
from cladeflow.schemas.internal import InternalConfig


def deep_merge(base: dict, *overrides: dict) -> dict:
    """Overlay ``overrides`` onto ``base``, left to right.

    Sections present on both sides are merged key by key; any other value
    (scalars, argv lists) is replaced wholesale. Inputs are not mutated.

    Examples
    --------
    >>> deep_merge({"chunking": {"chunk_size": 150, "min_group_size": 3}},
    ...            {"chunking": {"chunk_size": 50}, "run_id": "r1"})
    {'chunking': {'chunk_size': 50, 'min_group_size': 3}, 'run_id': 'r1'}
    """
    merged = dict(base)
    for layer in overrides:
        for key, value in layer.items():
            current = merged.get(key)
            if isinstance(current, dict) and isinstance(value, dict):
                merged[key] = deep_merge(current, value)
            else:
                merged[key] = value
    return merged


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error["loc"]) or "config"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def _as_model(value, model: type[BaseModel]) -> BaseModel:
    """Coerce ``None``, a dict or a model instance into ``model``."""
    if isinstance(value, model):
        return value
    return model.model_validate(value or {})


def resolve_config(
    param_cfg: Union[dict, ParamConfig],
    user_cfg: Optional[Union[dict, UserConfig]] = None,
    cli_cfg: Optional[Union[dict, CLIConfig]] = None,
) -> InternalConfig:
    """Build the frozen runtime configuration.

    Parameters
    ----------
    param_cfg : dict or ParamConfig
        Expert defaults.
    user_cfg : dict or UserConfig, optional
        Values from the user's configuration file.
    cli_cfg : dict or CLIConfig, optional
        Command-line overrides.

    Returns
    -------
    InternalConfig

    Raises
    ------
    ConfigurationError
        If any layer fails validation, or if ``input`` or ``base_dir`` ends
        up unset.

    Examples
    --------
    >>> param = ParamConfig(input="/data/assemblies", base_dir="/scratch/run")
    >>> config = resolve_config(param, UserConfig(CHUNK_SIZE=100, POPPUNK_THREADS=4))
    >>> config.chunking.chunk_size, config.tools.clustering.threads
    (100, 4)
    """
    try:
        param = _as_model(param_cfg, ParamConfig)
        user = _as_model(user_cfg, UserConfig)
        cli = _as_model(cli_cfg, CLIConfig)

        merged = deep_merge(
            param.model_dump(),
            user.to_internal_overrides(),
            cli.to_internal_overrides(),
        )
        return InternalConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {_format_validation_error(exc)}") from exc
