"""Merging per-chunk cluster tables into one global assignment.

Each chunk is clustered by an independent engine run, so label ``5`` of
chunk 1 and label ``5`` of chunk 2 are unrelated. Concatenating raw labels
would silently fuse unrelated groups.

**Strategy: namespace by chunk.** With more than one chunk every label is
prefixed with its chunk id (``c001_5``). This is always correct but never
coalesces biologically identical clusters found in different chunks: a
lineage split across chunks yields one group per chunk. With a single chunk
labels are kept unchanged.
"""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Sequence

import pandas as pd

from cladeflow.contracts import ContractViolation

__all__ = [
    'PartialClusterTable',
    'GlobalClusterTable',
    'ResultMerger',
    'MERGE_STRATEGY',
    'namespaced_label',
    'safe_labels',
]

logger = logging.getLogger(__name__)

MERGE_STRATEGY = "namespace"

_UNSAFE_LABEL_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def namespaced_label(chunk_id: int, label: str) -> str:
    """Global label for ``label`` assigned within chunk ``chunk_id``."""
    return f"c{chunk_id:03d}_{label}"


def _safe_label(label: str) -> str:
    """Make an engine label usable as a directory name."""
    return _UNSAFE_LABEL_CHARS.sub("-", label).strip("-") or "unlabelled"


def _label_digest(label: str) -> str:
    return hashlib.sha1(label.encode("utf-8")).hexdigest()[:8]


def safe_labels(labels) -> dict[str, str]:
    """Map raw engine labels to distinct directory-safe labels.

    Labels that are already safe are kept as they are. A label that had to
    be rewritten and then clashes with another label of the same chunk
    gets a digest of its raw form appended (``1/2`` -> ``1-2-<digest>``).

    Raises
    ------
    ContractViolation
        If two raw labels still map to the same safe label.
    """
    raw = sorted(set(labels))
    first_pass = {label: _safe_label(label) for label in raw}
    claimed: dict[str, list[str]] = {}
    for label, safe in first_pass.items():
        claimed.setdefault(safe, []).append(label)

    mapping = {}
    for label, safe in first_pass.items():
        if len(claimed[safe]) > 1 and safe != label:
            safe = f"{safe}-{_label_digest(label)}"
        mapping[label] = safe

    if len(set(mapping.values())) != len(mapping):
        raise ContractViolation(
            f"Merge contract violated: labels {raw} cannot be made distinct directory names"
        )
    return mapping


@dataclass(frozen=True)
class PartialClusterTable:
    """Assignments from one chunk's engine run; labels are chunk-local."""
    chunk_id: int
    assignments: Mapping[str, str]
    source: Path | None = None


@dataclass(frozen=True)
class GlobalClusterTable:
    """Merged sample -> global label assignment.

    Attributes
    ----------
    assignments : mapping
        Sample id -> global cluster label.
    origins : mapping
        Sample id -> (chunk id, chunk-local label).
    strategy : str
        Merge strategy used.
    """
    assignments: Mapping[str, str]
    origins: Mapping[str, tuple[int, str]] = field(default_factory=dict)
    strategy: str = MERGE_STRATEGY

    @property
    def labels(self) -> list[str]:
        return sorted(set(self.assignments.values()))

    def members(self) -> dict[str, list[str]]:
        """Global label -> sample ids, in assignment order."""
        grouped: dict[str, list[str]] = {}
        for sample, label in self.assignments.items():
            grouped.setdefault(label, []).append(sample)
        return grouped

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {
                "sample_id": sample,
                "cluster": label,
                "chunk_id": self.origins.get(sample, (None, None))[0],
                "chunk_cluster": self.origins.get(sample, (None, None))[1],
            }
            for sample, label in self.assignments.items()
        ]
        return pd.DataFrame(rows, columns=["sample_id", "cluster", "chunk_id", "chunk_cluster"])

    def write(self, path: Path | str) -> Path:
        """Write the table as CSV (sample_id, cluster, chunk_id, chunk_cluster)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(path, index=False)
        return path

    @classmethod
    def read(cls, path: Path | str) -> "GlobalClusterTable":
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
        assignments = dict(zip(df["sample_id"], df["cluster"]))
        origins = {
            s: (int(c) if c else None, lc)
            for s, c, lc in zip(df["sample_id"], df["chunk_id"], df["chunk_cluster"])
        }
        return cls(assignments=assignments, origins=origins)


class ResultMerger:
    """Combines PartialClusterTables into a GlobalClusterTable.

    Example usage::

        merger = ResultMerger()
        table = merger.merge(partials)
        table.write(output_dirs["clustering"] / "global_clusters.csv")
    """

    def merge(self, partials: Sequence[PartialClusterTable]) -> GlobalClusterTable:
        """Merge partial tables with the namespace strategy.

        Raises
        ------
        ContractViolation
            If the same sample appears in two partial tables, or if no
            tables are given.
        """
        if not partials:
            raise ContractViolation("Merge contract violated: no partial cluster tables to merge")

        ordered = sorted(partials, key=lambda p: p.chunk_id)
        chunk_ids = [p.chunk_id for p in ordered]
        if len(set(chunk_ids)) != len(chunk_ids):
            raise ContractViolation(f"Merge contract violated: duplicate chunk ids {chunk_ids}")

        namespaced = len(ordered) > 1
        if namespaced:
            logger.warning(
                "Merging %d chunks by namespacing labels per chunk: clusters found in "
                "different chunks are never combined, so one lineage may appear as "
                "several groups", len(ordered),
            )

        assignments: dict[str, str] = {}
        origins: dict[str, tuple[int, str]] = {}
        for partial in ordered:
            local = safe_labels(str(label) for label in partial.assignments.values())
            for sample, label in partial.assignments.items():
                if sample in assignments:
                    first_chunk = origins[sample][0]
                    raise ContractViolation(
                        f"Merge contract violated: sample {sample} clustered in chunk "
                        f"{first_chunk} and chunk {partial.chunk_id}"
                    )
                safe = local[str(label)]
                assignments[sample] = namespaced_label(partial.chunk_id, safe) if namespaced else safe
                origins[sample] = (partial.chunk_id, str(label))

        table = GlobalClusterTable(assignments=assignments, origins=origins)
        logger.info("Merged %d samples from %d chunk(s) into %d clusters",
                    len(assignments), len(ordered), len(table.labels))
        return table
