"""Per-group pipeline stages and their on-disk layout.

Each admissible group runs three stages in strict order, each in its own
numbered directory under ``groups/cluster_<label>/``::

    inputs/          symlinks (or copies) of the member FASTA files, named by sample id
    1_alignment/     core genome alignment
    2_filtering/     recombination-filtered polymorphic sites
    3_tree/          phylogeny, or insufficient_data.txt
"""

import logging
import os
import shutil
from enum import Enum
from pathlib import Path
from typing import Sequence

from cladeflow.catalog import InputRecord
from cladeflow.errors import CladeflowError

__all__ = [
    'Stage',
    'STAGE_ORDER',
    'STAGE_DIRS',
    'STAGE_PLACEHOLDERS',
    'MIN_TREE_SEQUENCES',
    'SENTINEL_NAME',
    'count_fasta_sequences',
    'write_insufficient_data_sentinel',
    'stage_group_inputs',
    'staged_name',
]

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    ALIGNMENT = "alignment"
    FILTERING = "filtering"
    TREE = "tree"


STAGE_ORDER = (Stage.ALIGNMENT, Stage.FILTERING, Stage.TREE)

STAGE_DIRS = {
    Stage.ALIGNMENT: "1_alignment",
    Stage.FILTERING: "2_filtering",
    Stage.TREE: "3_tree",
}

# Context placeholders each stage's command templates may use, besides
# output_dir, threads, memory_gb and timeout_minutes
STAGE_PLACEHOLDERS = {
    Stage.ALIGNMENT: frozenset({"label", "prefix", "input_dir", "n_members"}),
    Stage.FILTERING: frozenset({"label", "prefix", "input_dir", "n_members", "input"}),
    Stage.TREE: frozenset({"label", "prefix", "input_dir", "n_members", "input"}),
}

MIN_TREE_SEQUENCES = 3
SENTINEL_NAME = "insufficient_data.txt"


def count_fasta_sequences(path: Path | str) -> int:
    """Number of ``>`` header lines in a FASTA file."""
    count = 0
    with open(path, encoding="utf-8", errors="replace") as fh:
        for line in fh:
            if line.startswith(">"):
                count += 1
    return count


def write_insufficient_data_sentinel(stage_dir: Path, label: str, n_sequences: int,
                                     source: Path) -> Path:
    """Record why no tree was built for ``label``."""
    stage_dir = Path(stage_dir)
    stage_dir.mkdir(parents=True, exist_ok=True)
    sentinel = stage_dir / SENTINEL_NAME
    sentinel.write_text(
        f"cluster\t{label}\n"
        f"sequences\t{n_sequences}\n"
        f"minimum\t{MIN_TREE_SEQUENCES}\n"
        f"source\t{source}\n"
    )
    return sentinel


def staged_name(record: InputRecord) -> str:
    """File name of ``record`` inside a group's ``inputs/`` directory.

    Named by sample id, which is unique within the catalog; assemblies from
    different directories often share a base name (``contigs.fasta``).
    """
    return record.sample_id.replace(os.sep, "_") + record.path.suffix


def stage_group_inputs(members: Sequence[InputRecord], inputs_dir: Path) -> list[Path]:
    """Populate ``inputs_dir`` with one link per member file.

    Symlinks are preferred; a copy is made where the filesystem refuses
    them. Existing entries pointing at the right file are reused, and
    entries that belong to no member are removed.

    Returns
    -------
    list of Path
        Staged paths in member order.

    Raises
    ------
    CladeflowError
        If two members would be staged under the same name.
    """
    inputs_dir = Path(inputs_dir)
    inputs_dir.mkdir(parents=True, exist_ok=True)

    names = [staged_name(record) for record in members]
    if len(set(names)) != len(names):
        duplicated = sorted({n for n in names if names.count(n) > 1})
        raise CladeflowError(f"Members staged under the same name in {inputs_dir}: {duplicated}")

    for entry in inputs_dir.iterdir():
        if entry.name not in names and (entry.is_symlink() or entry.is_file()):
            entry.unlink()

    staged = []
    for record, name in zip(members, names):
        target = inputs_dir / name
        if target.is_symlink() or target.exists():
            if target.resolve() == record.path.resolve():
                staged.append(target)
                continue
            if not target.is_symlink() and target.stat().st_size == record.path.stat().st_size:
                staged.append(target)
                continue
            target.unlink()
        try:
            target.symlink_to(record.path.resolve())
        except OSError:
            logger.debug("Symlink refused for %s, copying", target)
            shutil.copy2(record.path, target)
        staged.append(target)
    return staged
