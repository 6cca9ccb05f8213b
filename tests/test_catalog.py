"""Tests for building the input catalog."""

import pytest

from cladeflow.catalog import InputCatalog, InputRecord, sample_id_from_path
from cladeflow.errors import ConfigurationError

from tests.helpers.assemblies import write_assemblies

pytestmark = pytest.mark.unit


@pytest.mark.parametrize("name, expected", [
    ("ERR123.fasta", "ERR123"),
    ("ERR123.fa", "ERR123"),
    ("ERR123.FAS", "ERR123"),
    ("sample.v2.fna", "sample.v2"),
    ("sample.txt", "sample.txt"),
])
def test_sample_id_from_path(name, expected):
    assert sample_id_from_path(name) == expected


def test_from_directory_sorted_and_filtered(temp_dir):
    d = temp_dir / "in"
    write_assemblies(d, ["b", "a"], ".fasta")
    write_assemblies(d, ["c"], ".fa")
    (d / "notes.txt").write_text("ignore me")

    catalog = InputCatalog.from_directory(d)

    assert [r.sample_id for r in catalog] == ["a", "b", "c"]
    assert all(r.path.is_absolute() for r in catalog)
    assert len(catalog) == 3


def test_from_directory_without_fasta(temp_dir):
    (temp_dir / "empty").mkdir()
    with pytest.raises(ConfigurationError, match="No FASTA"):
        InputCatalog.from_directory(temp_dir / "empty")


def test_missing_directory(temp_dir):
    with pytest.raises(ConfigurationError):
        InputCatalog.from_directory(temp_dir / "nope")


def test_duplicate_sample_ids_rejected(temp_dir):
    d = temp_dir / "in"
    write_assemblies(d, ["x"], ".fasta")
    write_assemblies(d, ["x"], ".fa")
    with pytest.raises(ConfigurationError, match="Duplicate sample id"):
        InputCatalog.from_directory(d)


def test_empty_catalog_rejected():
    with pytest.raises(ConfigurationError, match="empty"):
        InputCatalog([])


def test_from_manifest_with_header_and_relative_paths(temp_dir):
    paths = write_assemblies(temp_dir / "asm", ["s1", "s2"])
    manifest = temp_dir / "samples.tsv"
    manifest.write_text(
        "sample\tpath\n"
        "# comment\n"
        f"iso1\tasm/{paths[0].name}\n"
        f"iso2\t{paths[1]}\n"
    )

    catalog = InputCatalog.load(manifest)

    assert [r.sample_id for r in catalog] == ["iso1", "iso2"]
    assert catalog.lookup("iso1").path == paths[0].resolve()


def test_manifest_with_missing_file(temp_dir):
    manifest = temp_dir / "samples.tsv"
    manifest.write_text("iso1\t/does/not/exist.fasta\n")
    with pytest.raises(ConfigurationError, match="does not exist"):
        InputCatalog.from_manifest(manifest)


def test_manifest_row_without_path(temp_dir):
    manifest = temp_dir / "samples.tsv"
    manifest.write_text("iso1\n")
    with pytest.raises(ConfigurationError, match="expected"):
        InputCatalog.from_manifest(manifest)


def test_lookup_falls_back_to_stripped_extension(small_catalog):
    assert small_catalog.lookup("A-01").sample_id == "A-01"
    assert small_catalog.lookup("A-01.fasta").sample_id == "A-01"
    assert small_catalog.lookup("Z-99") is None
    assert "B-02" in small_catalog
    assert isinstance(small_catalog.records[0], InputRecord)
