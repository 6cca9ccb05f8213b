"""Input catalog: the read-only set of assemblies processed by one run.

The catalog is built once at start-up and shared by every component
afterwards. Records are referenced by sample identifier downstream; nothing
mutates the catalog after construction.
"""

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence

from cladeflow.errors import ConfigurationError

__all__ = ['FASTA_EXTENSIONS', 'InputRecord', 'InputCatalog', 'sample_id_from_path']

logger = logging.getLogger(__name__)

FASTA_EXTENSIONS = (".fasta", ".fa", ".fas", ".fna")


def sample_id_from_path(path: Path | str) -> str:
    """Derive a sample identifier from a file name.

    Known FASTA extensions are stripped (``ERR123.fasta`` -> ``ERR123``).
    Other suffixes are kept because they can be part of the sample name.
    """
    name = Path(path).name
    lowered = name.lower()
    for ext in FASTA_EXTENSIONS:
        if lowered.endswith(ext):
            return name[: -len(ext)]
    return name


@dataclass(frozen=True)
class InputRecord:
    """One input assembly."""
    sample_id: str
    path: Path


class InputCatalog:
    """Ordered, immutable collection of InputRecord keyed by sample id.

    Parameters
    ----------
    records : iterable of InputRecord
        Records in processing order.

    Raises
    ------
    ConfigurationError
        If the collection is empty or two records share a sample id.
    """

    def __init__(self, records: Iterable[InputRecord]):
        self._records = tuple(records)
        if not self._records:
            raise ConfigurationError("Input catalog is empty: nothing to process")

        index = {}
        for record in self._records:
            if record.sample_id in index:
                raise ConfigurationError(
                    f"Duplicate sample id '{record.sample_id}': "
                    f"{index[record.sample_id].path} and {record.path}"
                )
            index[record.sample_id] = record
        self._index = index

    @classmethod
    def from_directory(cls, directory: Path | str,
                       extensions: Sequence[str] = FASTA_EXTENSIONS) -> "InputCatalog":
        """Build a catalog from every FASTA file directly inside ``directory``.

        Files are sorted by name so that chunk membership is reproducible
        between runs.
        """
        directory = Path(directory).expanduser()
        if not directory.is_dir():
            raise ConfigurationError(f"Input directory {directory} does not exist")

        wanted = tuple(ext.lower() for ext in extensions)
        paths = sorted(
            p for p in directory.iterdir()
            if p.is_file() and p.name.lower().endswith(wanted)
        )
        if not paths:
            raise ConfigurationError(
                f"No FASTA files found in {directory} (supported extensions: {', '.join(wanted)})"
            )

        logger.info("Found %d FASTA files in %s", len(paths), directory)
        return cls(InputRecord(sample_id_from_path(p), p.resolve()) for p in paths)

    @classmethod
    def from_manifest(cls, manifest: Path | str) -> "InputCatalog":
        """Build a catalog from a two-column ``sample<TAB>path`` file.

        A first row whose second column reads ``path``, ``file``,
        ``file_path`` or ``assembly`` is treated as a header. Relative paths
        are resolved against the manifest's directory.
        """
        manifest = Path(manifest).expanduser()
        if not manifest.is_file():
            raise ConfigurationError(f"Input manifest {manifest} does not exist")

        records = []
        with open(manifest, newline="") as fh:
            reader = csv.reader(fh, delimiter="\t")
            for line_no, row in enumerate(reader, start=1):
                if not row or not "".join(row).strip() or row[0].startswith("#"):
                    continue
                if len(row) < 2:
                    raise ConfigurationError(
                        f"{manifest}:{line_no}: expected 'sample<TAB>path', got {row!r}"
                    )
                sample_id, raw_path = row[0].strip(), row[1].strip()
                if line_no == 1 and raw_path.lower() in ("path", "file", "file_path", "assembly"):
                    continue
                path = Path(raw_path).expanduser()
                if not path.is_absolute():
                    path = manifest.parent / path
                if not path.is_file():
                    raise ConfigurationError(f"{manifest}:{line_no}: assembly {path} does not exist")
                records.append(InputRecord(sample_id, path.resolve()))

        logger.info("Loaded %d records from manifest %s", len(records), manifest)
        return cls(records)

    @classmethod
    def load(cls, location: Path | str) -> "InputCatalog":
        """Load from a directory or a manifest file, whichever ``location`` is."""
        location = Path(location).expanduser()
        if location.is_dir():
            return cls.from_directory(location)
        return cls.from_manifest(location)

    @property
    def records(self) -> tuple[InputRecord, ...]:
        return self._records

    def lookup(self, sample_id: str) -> Optional[InputRecord]:
        """Return the record for ``sample_id``, or None.

        Falls back to the id with a FASTA extension stripped, since some
        engines report the file name rather than the sample name.
        """
        record = self._index.get(sample_id)
        if record is None:
            record = self._index.get(sample_id_from_path(sample_id))
        return record

    def __contains__(self, sample_id: str) -> bool:
        return self.lookup(sample_id) is not None

    def __iter__(self) -> Iterator[InputRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)
