"""Pydantic configuration schemas for cladeflow.

Three input layers (ParamConfig, UserConfig, CLIConfig) are merged by
``resolve_config`` into the frozen InternalConfig the workflow runs on.
Validation errors surface as ``ConfigurationError`` before anything runs.
"""

from cladeflow.schemas.resolve import resolve_config
from cladeflow.schemas.internal import InternalConfig
from cladeflow.schemas.param import ParamConfig
from cladeflow.schemas.user import UserConfig
from cladeflow.schemas.cli import CLIConfig

__all__ = [
    'resolve_config',
    'InternalConfig',
    'ParamConfig',
    'UserConfig',
    'CLIConfig',
]
