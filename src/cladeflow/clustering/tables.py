"""Reading cluster assignment tables written by the clustering engine.

Column names differ across engine versions (``Taxon``/``Cluster`` in
PopPUNK, ``sample``/``cluster_id`` elsewhere), so both columns are matched
case-insensitively against a small fixed set of synonyms.
"""

import logging
from pathlib import Path

import pandas as pd

from cladeflow.errors import MissingArtifactError

__all__ = ['SAMPLE_COLUMN_SYNONYMS', 'CLUSTER_COLUMN_SYNONYMS', 'read_cluster_table', 'find_column']

logger = logging.getLogger(__name__)

SAMPLE_COLUMN_SYNONYMS = ("taxon", "sample", "sample_id", "sample_name", "isolate", "id", "name")
CLUSTER_COLUMN_SYNONYMS = (
    "cluster", "cluster_id", "poppunk_cluster", "clade", "lineage", "rank_1_lineage", "group",
)


def find_column(columns, synonyms) -> str | None:
    """Return the first column whose normalized name is in ``synonyms``.

    Synonym order decides ties, so ``Cluster`` wins over ``group`` when
    both are present.
    """
    normalized = {str(c).strip().lower().replace(" ", "_"): c for c in columns}
    for name in synonyms:
        if name in normalized:
            return normalized[name]
    return None


def _detect_separator(path: Path) -> str:
    """Tab if the header line contains one, else comma."""
    with open(path, encoding="utf-8", errors="replace") as fh:
        header = fh.readline()
    return "\t" if "\t" in header else ","


def read_cluster_table(path: Path | str, unit_id: str = "clustering") -> dict[str, str]:
    """Read a sample -> cluster label table.

    Parameters
    ----------
    path : Path or str
        CSV or TSV file; tab-separated if the header contains a tab.
    unit_id : str
        Unit id reported if the table is unusable.

    Returns
    -------
    dict
        Sample id -> cluster label (both as stripped strings), in file order.
        Rows with an empty sample id or label are skipped.

    Raises
    ------
    MissingArtifactError
        If the table cannot be parsed or lacks a sample or cluster column.
    """
    path = Path(path)
    try:
        sep = _detect_separator(path)
        df = pd.read_csv(path, sep=sep, dtype=str, keep_default_na=False)
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise MissingArtifactError(unit_id, f"unreadable cluster table {path}: {exc}") from exc

    sample_col = find_column(df.columns, SAMPLE_COLUMN_SYNONYMS)
    cluster_col = find_column(df.columns, CLUSTER_COLUMN_SYNONYMS)
    if sample_col is None or cluster_col is None:
        raise MissingArtifactError(
            unit_id,
            f"cluster table {path} lacks a sample or cluster column (columns: {list(df.columns)})",
        )

    samples = df[sample_col].str.strip()
    labels = df[cluster_col].str.strip()
    keep = (samples != "") & (labels != "")
    skipped = int((~keep).sum())
    if skipped:
        logger.warning("%s: skipped %d row(s) with empty sample or cluster in %s",
                       unit_id, skipped, path.name)

    assignments = {}
    for sample, label in zip(samples[keep], labels[keep]):
        if sample in assignments and assignments[sample] != label:
            raise MissingArtifactError(
                unit_id, f"sample {sample} has conflicting labels in {path}"
            )
        assignments[sample] = label
    return assignments
