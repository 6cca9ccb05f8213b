"""CLIConfig: flags given on the command line.

Only the settings that typically change from one invocation to the next
are exposed. Tool commands and resource ceilings stay in the config file.
"""

from typing import Literal, Optional
from pydantic import Field
from cladeflow.schemas.base import CladeflowBaseModel


class CLIConfig(CladeflowBaseModel):
    """Overrides parsed by argparse; they win over every other layer.

    Usage
    -----
        cli_cfg = CLIConfig(
            input="/data/assemblies",
            base_dir="/scratch/cladeflow",
            chunk_size=100,
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    input: Optional[str] = None
    base_dir: Optional[str] = None
    chunk_size: Optional[int] = Field(None, ge=0)
    max_workers: Optional[int] = Field(None, ge=1)
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = None

    def to_internal_overrides(self) -> dict:
        """Nested overrides for the flags that were given, shaped like InternalConfig."""
        sections = {
            "chunking": {"chunk_size": self.chunk_size},
            "execution": {"max_workers": self.max_workers},
            "logging": {"level": self.log_level},
        }
        overrides = {k: v for k, v in (("input", self.input), ("base_dir", self.base_dir)) if v is not None}
        for section, values in sections.items():
            values = {k: v for k, v in values.items() if v is not None}
            if values:
                overrides[section] = values
        return overrides
