"""UserConfig: the keys a user writes in their CONFIG file.

Flat uppercase names are mapped onto the nested layout (CHUNK_SIZE to
chunking.chunk_size, POPPUNK_THREADS to tools.clustering.threads).
Everything is optional; whatever is left out keeps its expert default.
Unknown keys are ignored so that old config files keep working.
"""

from typing import Literal, Optional
from pydantic import Field, field_validator
from cladeflow.schemas.base import CladeflowBaseModel


class UserChunkingConfig(CladeflowBaseModel):
    """User-facing partitioning config."""
    chunk_size: Optional[int] = None
    min_group_size: Optional[int] = None


class UserExecutionConfig(CladeflowBaseModel):
    """User-facing concurrency config."""
    max_workers: Optional[int] = None
    total_memory_gb: Optional[float] = None
    total_cpus: Optional[int] = None
    malloc_arena_max: Optional[int] = None
    core_dumps: Optional[bool] = None


class UserToolConfig(CladeflowBaseModel):
    """User-facing tool override; any subset of fields."""
    name: Optional[str] = None
    commands: Optional[list[list[str]]] = None
    artifact_glob: Optional[str] = None
    threads: Optional[int] = None
    memory_gb: Optional[float] = None
    timeout_minutes: Optional[float] = None

    @field_validator("commands", mode="before")
    @classmethod
    def accept_single_command(cls, v):
        """Accept one argv list where a list of argv lists is expected."""
        if isinstance(v, (list, tuple)) and v and all(isinstance(t, str) for t in v):
            return [list(v)]
        return v


class UserToolsConfig(CladeflowBaseModel):
    """User-facing tool set overrides."""
    clustering: Optional[UserToolConfig] = None
    alignment: Optional[UserToolConfig] = None
    filtering: Optional[UserToolConfig] = None
    tree: Optional[UserToolConfig] = None


# Flat per-tool aliases: field -> (tool section, tool field)
_TOOL_SHORTCUTS = {
    "poppunk_threads": ("clustering", "threads"),
    "poppunk_memory_gb": ("clustering", "memory_gb"),
    "poppunk_timeout_minutes": ("clustering", "timeout_minutes"),
    "panaroo_threads": ("alignment", "threads"),
    "panaroo_memory_gb": ("alignment", "memory_gb"),
    "gubbins_threads": ("filtering", "threads"),
    "gubbins_memory_gb": ("filtering", "memory_gb"),
    "iqtree_threads": ("tree", "threads"),
    "iqtree_memory_gb": ("tree", "memory_gb"),
    "stage_timeout_minutes": (("alignment", "filtering", "tree"), "timeout_minutes"),
}


class UserConfig(CladeflowBaseModel):
    """Flat, uppercase user settings plus optional nested sections.

    Usage
    -----
        user_cfg = UserConfig(
            INPUT_DIR="/data/assemblies",
            BASE_DIR="/scratch/cladeflow",
            CHUNK_SIZE=100,
            POPPUNK_MEMORY_GB=48,
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    input: Optional[str] = Field(None, alias="INPUT_DIR")
    base_dir: Optional[str] = Field(None, alias="BASE_DIR")

    # Partitioning and concurrency (flat aliases)
    chunk_size: Optional[int] = Field(None, alias="CHUNK_SIZE")
    min_group_size: Optional[int] = Field(None, alias="MIN_GROUP_SIZE")
    max_workers: Optional[int] = Field(None, alias="MAX_WORKERS")
    total_memory_gb: Optional[float] = Field(None, alias="TOTAL_MEMORY_GB")
    total_cpus: Optional[int] = Field(None, alias="TOTAL_CPUS")

    # Tool settings (flat aliases)
    poppunk_threads: Optional[int] = Field(None, alias="POPPUNK_THREADS")
    poppunk_memory_gb: Optional[float] = Field(None, alias="POPPUNK_MEMORY_GB")
    poppunk_timeout_minutes: Optional[float] = Field(None, alias="POPPUNK_TIMEOUT_MINUTES")
    panaroo_threads: Optional[int] = Field(None, alias="PANAROO_THREADS")
    panaroo_memory_gb: Optional[float] = Field(None, alias="PANAROO_MEMORY_GB")
    gubbins_threads: Optional[int] = Field(None, alias="GUBBINS_THREADS")
    gubbins_memory_gb: Optional[float] = Field(None, alias="GUBBINS_MEMORY_GB")
    iqtree_threads: Optional[int] = Field(None, alias="IQTREE_THREADS")
    iqtree_memory_gb: Optional[float] = Field(None, alias="IQTREE_MEMORY_GB")
    stage_timeout_minutes: Optional[float] = Field(None, alias="STAGE_TIMEOUT_MINUTES")

    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = Field(
        None, alias="LOG_LEVEL"
    )

    # Nested overrides (advanced users)
    chunking: Optional[UserChunkingConfig] = None
    execution: Optional[UserExecutionConfig] = None
    tools: Optional[UserToolsConfig] = None

    model_config = CladeflowBaseModel.model_config.copy()
    # Allow forgiving input dictionaries (ignore unknown legacy keys)
    model_config.update({"populate_by_name": True, "extra": "ignore"})

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        """Accept lowercase level names."""
        if isinstance(v, str):
            return v.upper().strip()
        return v

    def to_internal_overrides(self) -> dict:
        """Nested overrides shaped like InternalConfig.

        Where a nested section and a flat alias set the same value, the
        nested section wins.
        """
        overrides = {}

        if self.input is not None:
            overrides["input"] = str(self.input)

        if self.base_dir is not None:
            overrides["base_dir"] = str(self.base_dir)

        # Chunking section
        chunking = {}
        if self.chunk_size is not None:
            chunking["chunk_size"] = self.chunk_size
        if self.min_group_size is not None:
            chunking["min_group_size"] = self.min_group_size
        if self.chunking is not None:
            chunking.update(self.chunking.model_dump(exclude_none=True))
        if chunking:
            overrides["chunking"] = chunking

        # Execution section
        execution = {}
        if self.max_workers is not None:
            execution["max_workers"] = self.max_workers
        if self.total_memory_gb is not None:
            execution["total_memory_gb"] = self.total_memory_gb
        if self.total_cpus is not None:
            execution["total_cpus"] = self.total_cpus
        if self.execution is not None:
            execution.update(self.execution.model_dump(exclude_none=True))
        if execution:
            overrides["execution"] = execution

        # Tools section
        tools: dict = {}
        for field_name, (sections, key) in _TOOL_SHORTCUTS.items():
            value = getattr(self, field_name)
            if value is None:
                continue
            if isinstance(sections, str):
                sections = (sections,)
            for section in sections:
                tools.setdefault(section, {})[key] = value
        if self.tools is not None:
            for section, tool in self.tools.model_dump(exclude_none=True).items():
                tools.setdefault(section, {}).update(tool)
        if tools:
            overrides["tools"] = tools

        if self.log_level is not None:
            overrides["logging"] = {"level": self.log_level}

        return overrides
