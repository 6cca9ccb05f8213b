"""ParamConfig: Expert defaults for the cladeflow workflow.

Every tunable setting of a run has its default here and nowhere else.

Tool defaults follow the local chunked workflow: PopPUNK on 8 threads with
32 GB per chunk, Panaroo on 16, Gubbins on 8 and IQ-TREE on 4 threads.
"""

from typing import Literal, Optional
from pydantic import Field, field_validator
from cladeflow.schemas.base import CladeflowBaseModel


# =============================================================================
# Nested Configuration Models
# =============================================================================

class ChunkingConfig(CladeflowBaseModel):
    """Input partitioning configuration."""
    chunk_size: int = Field(150, ge=0, description="Max samples per clustering chunk; 0 disables chunking")
    min_group_size: int = Field(3, ge=3, description="Minimum resolved members of a runnable group")


class ExecutionConfig(CladeflowBaseModel):
    """Concurrency and host capacity."""
    max_workers: int = Field(4, ge=1, description="Upper bound on concurrently running units")
    total_memory_gb: Optional[float] = Field(None, gt=0, description="Memory shared by all units; host memory if None")
    total_cpus: Optional[int] = Field(None, ge=1, description="CPUs shared by all units; host CPUs if None")
    malloc_arena_max: int = Field(2, ge=1)
    core_dumps: bool = False


class ToolConfig(CladeflowBaseModel):
    """One external tool: argv templates, expected artifact and ceiling."""
    name: str
    commands: list[list[str]]
    artifact_glob: str
    threads: int = Field(ge=1)
    memory_gb: float = Field(gt=0)
    timeout_minutes: float = Field(gt=0)

    @field_validator("commands")
    @classmethod
    def require_non_empty_commands(cls, v):
        """Every tool needs at least one non-empty command."""
        if not v or any(len(c) == 0 for c in v):
            raise ValueError("commands must be a non-empty list of non-empty argv lists")
        return v


def _poppunk() -> ToolConfig:
    return ToolConfig(
        name="poppunk",
        commands=[
            ["poppunk", "--create-db", "--r-files", "{manifest}", "--output", "{db_name}",
             "--threads", "{threads}", "--sketch-size", "{sketch_size}",
             "--min-k", "{min_k}", "--max-k", "{max_k}", "--k-step", "{k_step}", "--overwrite"],
            ["poppunk", "--fit-model", "lineage", "--ref-db", "{db_name}", "--output", "{db_name}",
             "--threads", "{threads}", "--overwrite"],
        ],
        artifact_glob="**/*_clusters.csv",
        threads=8,
        memory_gb=32.0,
        timeout_minutes=720.0,
    )


def _panaroo() -> ToolConfig:
    return ToolConfig(
        name="panaroo",
        commands=[
            ["panaroo", "-i", "{input_files}", "-o", "{output_dir}", "--clean-mode", "strict",
             "-a", "core", "--core_threshold", "0.95", "-t", "{threads}"],
        ],
        artifact_glob="core_gene_alignment*.aln",
        threads=16,
        memory_gb=32.0,
        timeout_minutes=720.0,
    )


def _gubbins() -> ToolConfig:
    return ToolConfig(
        name="gubbins",
        commands=[
            ["run_gubbins.py", "--prefix", "{prefix}", "--threads", "{threads}", "{input}"],
        ],
        artifact_glob="*.filtered_polymorphic_sites.fasta",
        threads=8,
        memory_gb=16.0,
        timeout_minutes=720.0,
    )


def _iqtree() -> ToolConfig:
    return ToolConfig(
        name="iqtree",
        commands=[
            ["iqtree2", "-s", "{input}", "-m", "GTR+G", "-B", "1000", "-T", "{threads}",
             "--prefix", "{prefix}", "-redo"],
        ],
        artifact_glob="*.treefile",
        threads=4,
        memory_gb=8.0,
        timeout_minutes=720.0,
    )


class ToolsConfig(CladeflowBaseModel):
    """The clustering engine and the three per-group stage tools."""
    clustering: ToolConfig = Field(default_factory=_poppunk)
    alignment: ToolConfig = Field(default_factory=_panaroo)
    filtering: ToolConfig = Field(default_factory=_gubbins)
    tree: ToolConfig = Field(default_factory=_iqtree)


class LoggingConfig(CladeflowBaseModel):
    """Logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


# =============================================================================
# Main ParamConfig
# =============================================================================

class ParamConfig(CladeflowBaseModel):
    """Bottom layer of configuration resolution.

    ``input`` and ``base_dir`` have no default; they must come from the
    user or CLI layer. Workflow code never sees a ParamConfig:

        internal_cfg = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    input: Optional[str] = None
    base_dir: Optional[str] = None
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
