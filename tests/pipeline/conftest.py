import pytest

from cladeflow.clustering.groups import ClusterGroup
from cladeflow.execution.runner import ResourceCeiling, ToolDefinition
from cladeflow.pipeline.stages import Stage
from cladeflow.pipeline.unit_tracker import UnitTracker

from tests.helpers.fake_tools import fake_tools_config

STAGE_ARTIFACTS = {
    Stage.ALIGNMENT: "core_gene_alignment*.aln",
    Stage.FILTERING: "*.filtered_polymorphic_sites.fasta",
    Stage.TREE: "*.treefile",
}


@pytest.fixture
def tracker(temp_dir):
    db_path = temp_dir / "tracker.db"
    t = UnitTracker(db_path)
    yield t
    t.close()


@pytest.fixture
def calls(temp_dir):
    """File the simulated tools append one line per invocation to."""
    return temp_dir / "calls.txt"


@pytest.fixture
def make_stage_tools(calls):
    """Factory building per-stage ToolDefinitions backed by fake_tools."""
    def _make(**options):
        sections = fake_tools_config(calls, **options)
        tools = {}
        for stage in Stage:
            section = sections[stage.value]
            tools[stage] = ToolDefinition(
                name=section["name"],
                commands=tuple(tuple(c) for c in section["commands"]),
                artifact_glob=STAGE_ARTIFACTS[stage],
                ceiling=ResourceCeiling(memory_gb=4, cpus=1, timeout_minutes=1),
            )
        return tools
    return _make


@pytest.fixture
def clade_groups(small_catalog):
    """One group per clade (A, B, C) of three members each."""
    by_clade = {}
    for record in small_catalog:
        by_clade.setdefault(record.sample_id.split("-")[0], []).append(record)
    return [ClusterGroup(label, tuple(members)) for label, members in sorted(by_clade.items())]
