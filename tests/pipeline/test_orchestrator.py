import json

import pandas as pd
import pytest

from cladeflow.errors import ChunkClusteringError, ConfigurationError, InsufficientDataWarning
from cladeflow.pipeline.orchestrator import WorkflowOrchestrator, build_tool_definition

from tests.helpers.fake_tools import fake_tools_config, read_calls

pytestmark = [pytest.mark.integration, pytest.mark.pipeline]


@pytest.fixture
def workflow_config(make_config, small_catalog, temp_dir, calls):
    """Factory for a config over the nine-sample catalog with simulated tools."""
    def _make(tools=None, **user_overrides):
        settings = dict(
            INPUT_DIR=str(temp_dir / "assemblies"),
            TOTAL_MEMORY_GB=64,
            TOTAL_CPUS=8,
            MAX_WORKERS=2,
            CHUNK_SIZE=3,
        )
        settings.update(user_overrides)
        return make_config(tools=tools or fake_tools_config(calls), **settings)
    return _make


def _summary(temp_dir):
    return json.loads((temp_dir / "run" / "reports" / "run_summary.json").read_text())


def test_end_to_end(workflow_config, temp_dir):
    result = WorkflowOrchestrator(workflow_config()).run()

    assert result.success
    assert [g.label for g in result.groups] == ["c001_A", "c002_B", "c003_C"]
    assert result.report.counts()["DONE"] == 3

    run_dir = temp_dir / "run"
    table = pd.read_csv(run_dir / "clustering" / "global_clusters.csv", dtype=str)
    assert len(table) == 9
    assert set(table["cluster"]) == {"c001_A", "c002_B", "c003_C"}

    tree = run_dir / "groups" / "cluster_c002_B" / "3_tree" / "cluster_c002_B.treefile"
    assert tree.read_text() == "(B-01,B-02,B-03);\n"

    status = pd.read_csv(run_dir / "reports" / "group_status.tsv", sep="\t", dtype=str)
    assert list(status["state"]) == ["DONE"] * 3

    summary = _summary(temp_dir)
    assert summary["status"] == "completed"
    assert summary["samples"] == 9
    assert summary["chunks"] == 3
    assert summary["merge_strategy"] == "namespace"
    assert summary["units"]["completed"] == 12
    assert summary["failed_units"] == []
    assert summary["failure_scope"]["group_pipeline"] == "isolate"
    assert summary["failure_scope"]["chunk_clustering"] == "fail_fast"

    assert (run_dir / "logs" / "cladeflow.log").exists()
    assert (run_dir / "state" / "unit_tracker.db").exists()


def test_single_chunk_keeps_engine_labels(workflow_config):
    result = WorkflowOrchestrator(workflow_config(CHUNK_SIZE=0)).run()

    assert result.success
    assert [g.label for g in result.groups] == ["A", "B", "C"]


def test_chunk_boundaries_split_clusters(workflow_config):
    # Chunks of 4: A-01..B-01 | B-02..C-02 | C-03, so only clade A stays whole
    result = WorkflowOrchestrator(workflow_config(CHUNK_SIZE=4)).run()

    assert [g.label for g in result.groups] == ["c001_A"]
    assert result.global_table.assignments["B-01"] == "c001_B"
    assert result.global_table.assignments["B-02"] == "c002_B"


def test_second_run_executes_nothing(workflow_config, temp_dir, calls):
    config = workflow_config()
    reports = temp_dir / "run" / "reports"
    clusters_csv = temp_dir / "run" / "clustering" / "global_clusters.csv"

    first_result = WorkflowOrchestrator(config).run()
    first_calls = read_calls(calls)
    first_clusters = clusters_csv.read_text()
    first_status = (reports / "group_status.tsv").read_text()

    result = WorkflowOrchestrator(config).run()

    assert result.success
    assert read_calls(calls) == first_calls
    assert clusters_csv.read_text() == first_clusters
    assert (reports / "group_status.tsv").read_text() == first_status
    assert dict(result.global_table.assignments) == dict(first_result.global_table.assignments)
    assert result.report.counts() == first_result.report.counts()
    assert [g.label for g in result.groups] == [g.label for g in first_result.groups]


def test_group_failure_does_not_abort(workflow_config, temp_dir, calls):
    config = workflow_config(tools=fake_tools_config(calls, fail_labels=["c002_B"]))
    result = WorkflowOrchestrator(config).run()

    assert not result.success
    runs = {run.label: run for run in result.report.runs}
    assert runs["c002_B"].failure_tag == "tool-failure"
    assert runs["c001_A"].state.value == "DONE"
    assert runs["c003_C"].state.value == "DONE"

    summary = _summary(temp_dir)
    assert summary["status"] == "completed-with-failures"
    assert summary["failed_groups"] == ["c002_B"]
    failed_units = summary["failed_units"]
    assert [unit["unit_id"] for unit in failed_units] == ["cluster_c002_B/alignment"]
    assert failed_units[0]["tag"] == "tool-failure"
    assert failed_units[0]["log"].endswith(".log")


def test_insufficient_data_is_not_a_failure(workflow_config, calls):
    config = workflow_config(tools=fake_tools_config(calls, thin_prefixes=["cluster_c003_C"]))

    with pytest.warns(InsufficientDataWarning):
        result = WorkflowOrchestrator(config).run()

    assert result.success
    assert result.report.counts()["DONE_WITH_WARNING"] == 1


def test_chunk_failure_aborts_before_groups(workflow_config, temp_dir, calls):
    config = workflow_config(tools=fake_tools_config(calls, fail_chunks=[2]))

    with pytest.raises(ChunkClusteringError):
        WorkflowOrchestrator(config).run()

    lines = read_calls(calls)
    assert sorted(lines) == ["cluster 1", "cluster 2", "cluster 3"]
    assert not list((temp_dir / "run" / "groups").iterdir())

    summary = _summary(temp_dir)
    assert summary["status"] == "clustering-aborted"
    assert summary["failed_chunks"]["2"]["tag"] == "tool-failure"


def test_rerun_after_timeout_executes_only_failed_chunk(workflow_config, temp_dir, calls):
    tools = fake_tools_config(calls, slow_chunks=[2], sleep=6)
    tools["clustering"]["timeout_minutes"] = 0.05

    with pytest.raises(ChunkClusteringError) as exc_info:
        WorkflowOrchestrator(workflow_config(tools=tools)).run()
    assert exc_info.value.failures[2].tag == "timeout"

    tools["clustering"]["timeout_minutes"] = 1
    result = WorkflowOrchestrator(workflow_config(tools=tools)).run()

    assert result.success
    clustering_calls = [line for line in read_calls(calls) if line.startswith("cluster")]
    assert sorted(clustering_calls) == ["cluster 1", "cluster 2", "cluster 2", "cluster 3"]


def test_missing_input_is_configuration_error(make_config, temp_dir, calls):
    config = make_config(INPUT_DIR=str(temp_dir / "nowhere"), TOTAL_MEMORY_GB=64,
                         TOTAL_CPUS=8, tools=fake_tools_config(calls))

    with pytest.raises(ConfigurationError):
        WorkflowOrchestrator(config).run()

    assert _summary(temp_dir)["status"] == "aborted"
    assert read_calls(calls) == []


def test_oversized_ceiling_rejected_before_running(workflow_config, calls):
    config = workflow_config(TOTAL_MEMORY_GB=2)

    with pytest.raises(ConfigurationError, match="exceeds total capacity"):
        WorkflowOrchestrator(config).run()
    assert read_calls(calls) == []


def test_build_tool_definition(internal_config):
    tool = build_tool_definition(internal_config.tools.tree, internal_config.execution)

    assert tool.name == "iqtree"
    assert tool.artifact_glob == "*.treefile"
    assert tool.ceiling.cpus == 4
    assert tool.ceiling.memory_gb == 8
    assert tool.ceiling.malloc_arena_max == 2
    assert tool.executables() == ["iqtree2"]
