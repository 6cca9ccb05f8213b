"""Tests for merging per-chunk cluster tables."""

import pytest

from cladeflow.clustering.merger import (
    GlobalClusterTable,
    PartialClusterTable,
    ResultMerger,
    namespaced_label,
    safe_labels,
)
from cladeflow.contracts import ContractViolation, assert_merged

pytestmark = [pytest.mark.unit, pytest.mark.clustering]


@pytest.fixture
def partials():
    return [
        PartialClusterTable(2, {"d": "5", "e": "5", "f": "1"}),
        PartialClusterTable(1, {"a": "5", "b": "5", "c": "2"}),
    ]


def test_every_sample_assigned_exactly_once(partials):
    table = ResultMerger().merge(partials)

    assert sorted(table.assignments) == ["a", "b", "c", "d", "e", "f"]
    assert_merged(table, partials)


def test_same_local_label_in_different_chunks_never_collides(partials):
    table = ResultMerger().merge(partials)

    assert table.assignments["a"] == "c001_5"
    assert table.assignments["d"] == "c002_5"
    assert table.assignments["a"] != table.assignments["d"]
    assert table.origins["d"] == (2, "5")
    assert table.strategy == "namespace"


def test_output_ordered_by_chunk(partials):
    table = ResultMerger().merge(partials)
    assert list(table.assignments)[:3] == ["a", "b", "c"]


def test_single_chunk_keeps_engine_labels():
    table = ResultMerger().merge([PartialClusterTable(1, {"a": "3", "b": "3"})])
    assert table.labels == ["3"]


def test_unsafe_labels_are_sanitized():
    table = ResultMerger().merge([PartialClusterTable(1, {"a": "12;34", "b": "x/y"})])
    assert table.assignments == {"a": "12-34", "b": "x-y"}


def test_labels_that_sanitize_alike_stay_distinct():
    table = ResultMerger().merge([PartialClusterTable(1, {"a": "1/2", "b": "1-2", "c": "1-2"})])

    assert table.assignments["a"] != table.assignments["b"]
    assert table.assignments["b"] == table.assignments["c"] == "1-2"
    assert table.assignments["a"].startswith("1-2-")
    assert len(table.labels) == 2


def test_labels_that_sanitize_alike_stay_distinct_across_chunks():
    table = ResultMerger().merge([
        PartialClusterTable(1, {"a": "x y", "b": "x;y"}),
        PartialClusterTable(2, {"c": "x y"}),
    ])

    assert table.assignments["a"] != table.assignments["b"]
    assert table.assignments["a"].startswith("c001_x-y-")
    assert table.assignments["c"].startswith("c002_x-y")


def test_safe_labels_suffix_is_stable():
    first = safe_labels(["1/2", "1-2"])
    second = safe_labels(["1-2", "1/2"])

    assert first == second
    assert first["1-2"] == "1-2"


def test_duplicate_sample_across_chunks_rejected():
    with pytest.raises(ContractViolation, match="chunk 1 and chunk 2"):
        ResultMerger().merge([
            PartialClusterTable(1, {"a": "1"}),
            PartialClusterTable(2, {"a": "1"}),
        ])


def test_duplicate_chunk_ids_rejected():
    with pytest.raises(ContractViolation, match="duplicate chunk ids"):
        ResultMerger().merge([PartialClusterTable(1, {"a": "1"}), PartialClusterTable(1, {"b": "1"})])


def test_empty_merge_rejected():
    with pytest.raises(ContractViolation):
        ResultMerger().merge([])


def test_contract_detects_dropped_sample(partials):
    table = ResultMerger().merge(partials)
    truncated = GlobalClusterTable({k: v for k, v in table.assignments.items() if k != "a"})
    with pytest.raises(ContractViolation, match="dropped"):
        assert_merged(truncated, partials)


def test_write_and_read_back(tmp_path, partials):
    table = ResultMerger().merge(partials)
    path = table.write(tmp_path / "clustering" / "global_clusters.csv")

    header = path.read_text().splitlines()[0]
    assert header == "sample_id,cluster,chunk_id,chunk_cluster"

    loaded = GlobalClusterTable.read(path)
    assert loaded.assignments == table.assignments
    assert loaded.origins["f"] == (2, "1")


def test_namespaced_label_format():
    assert namespaced_label(7, "12") == "c007_12"
