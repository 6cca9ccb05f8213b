"""Shared pydantic settings for the configuration schemas."""

from pydantic import BaseModel, ConfigDict


class CladeflowBaseModel(BaseModel):
    """Parent of ParamConfig, CLIConfig and InternalConfig sections.

    Unknown keys are rejected, assignments are re-validated and string
    values are stripped. UserConfig opts out of ``extra='forbid'``.
    """

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        use_enum_values=True,
        str_strip_whitespace=True,
    )
