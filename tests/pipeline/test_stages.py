import pytest

from cladeflow.catalog import InputRecord
from cladeflow.errors import CladeflowError
from cladeflow.pipeline.stages import (
    MIN_TREE_SEQUENCES,
    SENTINEL_NAME,
    STAGE_DIRS,
    STAGE_ORDER,
    Stage,
    count_fasta_sequences,
    stage_group_inputs,
    staged_name,
    write_insufficient_data_sentinel,
)

pytestmark = [pytest.mark.unit, pytest.mark.pipeline]


def test_stage_order_and_layout():
    assert STAGE_ORDER == (Stage.ALIGNMENT, Stage.FILTERING, Stage.TREE)
    assert [STAGE_DIRS[s] for s in STAGE_ORDER] == ["1_alignment", "2_filtering", "3_tree"]


def test_count_fasta_sequences(tmp_path):
    path = tmp_path / "aln.fasta"
    path.write_text(">a\nACGT\nACGT\n>b\nACGT\n\n>c\nAC\n")
    assert count_fasta_sequences(path) == 3

    path.write_text("")
    assert count_fasta_sequences(path) == 0


def test_sentinel_records_reason(tmp_path):
    source = tmp_path / "filtered.fasta"
    sentinel = write_insufficient_data_sentinel(tmp_path / "3_tree", "c001_4", 2, source)

    assert sentinel.name == SENTINEL_NAME
    fields = dict(line.split("\t") for line in sentinel.read_text().splitlines())
    assert fields["cluster"] == "c001_4"
    assert fields["sequences"] == "2"
    assert fields["minimum"] == str(MIN_TREE_SEQUENCES)
    assert fields["source"] == str(source)


def test_stage_group_inputs_links_members(small_catalog, temp_dir):
    members = small_catalog.records[:3]
    inputs_dir = temp_dir / "groups" / "cluster_A" / "inputs"

    staged = stage_group_inputs(members, inputs_dir)

    assert [p.name for p in staged] == ["A-01.fasta", "A-02.fasta", "A-03.fasta"]
    for path, record in zip(staged, members):
        assert path.resolve() == record.path.resolve()
        assert path.read_text() == record.path.read_text()


def test_stage_group_inputs_is_repeatable(small_catalog, temp_dir):
    members = small_catalog.records[:3]
    inputs_dir = temp_dir / "inputs"

    first = stage_group_inputs(members, inputs_dir)
    second = stage_group_inputs(members, inputs_dir)

    assert first == second
    assert sorted(p.name for p in inputs_dir.iterdir()) == [p.name for p in first]


def test_stage_group_inputs_replaces_stale_link(small_catalog, temp_dir):
    members = small_catalog.records[:1]
    inputs_dir = temp_dir / "inputs"
    inputs_dir.mkdir()
    stale = inputs_dir / members[0].path.name
    stale.symlink_to(small_catalog.records[5].path)

    staged = stage_group_inputs(members, inputs_dir)

    assert staged[0].resolve() == members[0].path.resolve()


def _per_sample_dirs(root, sample_ids):
    """Manifest-style layout: every sample in its own directory as contigs.fasta."""
    records = []
    for sample_id in sample_ids:
        path = root / sample_id / "contigs.fasta"
        path.parent.mkdir(parents=True)
        path.write_text(f">{sample_id}\nACGT\n")
        records.append(InputRecord(sample_id, path))
    return records


def test_same_basename_in_different_directories(tmp_path):
    members = _per_sample_dirs(tmp_path / "data", ["x", "y", "z"])

    staged = stage_group_inputs(members, tmp_path / "inputs")

    assert [p.name for p in staged] == ["x.fasta", "y.fasta", "z.fasta"]
    assert len(list((tmp_path / "inputs").iterdir())) == 3
    assert [p.read_text() for p in staged] == [r.path.read_text() for r in members]


def test_entries_of_former_members_removed(tmp_path):
    members = _per_sample_dirs(tmp_path / "data", ["x", "y", "z"])
    inputs_dir = tmp_path / "inputs"
    stage_group_inputs(members, inputs_dir)

    stage_group_inputs(members[:2], inputs_dir)

    assert sorted(p.name for p in inputs_dir.iterdir()) == ["x.fasta", "y.fasta"]


def test_staged_name_uses_sample_id(tmp_path):
    record = InputRecord("ERR123", tmp_path / "assembly" / "contigs.fna")
    assert staged_name(record) == "ERR123.fna"


def test_clashing_staged_names_rejected(tmp_path):
    a = InputRecord("s", tmp_path / "one" / "s.fasta")
    b = InputRecord("s", tmp_path / "two" / "s.fasta")

    with pytest.raises(CladeflowError, match="same name"):
        stage_group_inputs([a, b], tmp_path / "inputs")
