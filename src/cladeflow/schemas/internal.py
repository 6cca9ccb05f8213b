"""InternalConfig: the frozen configuration handed to the workflow.

Every field the orchestrator, clusterer, runner and scheduler read is
required here, so they access attributes directly and never carry their
own defaults.
"""

from typing import Literal, Optional
from pydantic import Field, ConfigDict, field_validator
from cladeflow.schemas.base import CladeflowBaseModel


# =============================================================================
# Nested Configuration Models (Runtime)
# =============================================================================

class InternalChunkingConfig(CladeflowBaseModel):
    """Runtime partitioning configuration."""
    chunk_size: int = Field(ge=0)
    min_group_size: int = Field(ge=3)


class InternalExecutionConfig(CladeflowBaseModel):
    """Runtime concurrency configuration.

    ``total_memory_gb`` and ``total_cpus`` stay None when the host should be
    measured at start-up.
    """
    max_workers: int = Field(ge=1)
    total_memory_gb: Optional[float]
    total_cpus: Optional[int]
    malloc_arena_max: int = Field(ge=1)
    core_dumps: bool


class InternalToolConfig(CladeflowBaseModel):
    """Runtime tool definition."""
    name: str
    commands: list[list[str]]
    artifact_glob: str
    threads: int = Field(ge=1)
    memory_gb: float = Field(gt=0)
    timeout_minutes: float = Field(gt=0)

    @field_validator("commands")
    @classmethod
    def require_non_empty_commands(cls, v):
        if not v or any(len(c) == 0 for c in v):
            raise ValueError("commands must be a non-empty list of non-empty argv lists")
        return v


class InternalToolsConfig(CladeflowBaseModel):
    """Runtime tool set."""
    clustering: InternalToolConfig
    alignment: InternalToolConfig
    filtering: InternalToolConfig
    tree: InternalToolConfig


class InternalLoggingConfig(CladeflowBaseModel):
    """Runtime logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


# =============================================================================
# Main InternalConfig
# =============================================================================

class InternalConfig(CladeflowBaseModel):
    """Resolved configuration of one run.

    Produced only by ``resolve_config`` and ``init_runtime_config``.
    ``run_id`` and ``output_dirs`` are filled in by the latter.

    Example
    -------
        clusterer_memory = config.tools.clustering.memory_gb
        chunk_size = config.chunking.chunk_size or len(catalog)
    """

    input: str = Field(min_length=1)
    base_dir: str = Field(min_length=1)
    chunking: InternalChunkingConfig
    execution: InternalExecutionConfig
    tools: InternalToolsConfig
    logging: InternalLoggingConfig
    run_id: Optional[str] = None
    output_dirs: Optional[dict[str, str]] = None

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        use_enum_values=True,
        str_strip_whitespace=True,
        frozen=True,
    )
