"""Split the input catalog into bounded-size chunks."""

from dataclasses import dataclass
from typing import Sequence

from cladeflow.catalog import InputRecord
from cladeflow.errors import ConfigurationError

__all__ = ['Chunk', 'partition_records']


@dataclass(frozen=True)
class Chunk:
    """A bounded slice of the input, clustered by one engine invocation."""
    chunk_id: int
    records: tuple[InputRecord, ...]

    @property
    def size(self) -> int:
        return len(self.records)

    @property
    def name(self) -> str:
        return f"chunk_{self.chunk_id:04d}"


def partition_records(records: Sequence[InputRecord], max_chunk_size: int) -> list[Chunk]:
    """Partition ``records`` into consecutive chunks of at most ``max_chunk_size``.

    Order is preserved, chunk ids start at 1 and only the last chunk may be
    smaller than ``max_chunk_size``.

    Parameters
    ----------
    records : sequence of InputRecord
        Records in processing order.
    max_chunk_size : int
        Maximum records per chunk. Values >= ``len(records)`` yield one chunk.

    Returns
    -------
    list of Chunk

    Raises
    ------
    ConfigurationError
        If ``max_chunk_size`` is not a positive int or ``records`` is empty.

    Examples
    --------
    >>> [c.size for c in partition_records(records_620, 150)]
    [150, 150, 150, 150, 20]
    """
    if isinstance(max_chunk_size, bool) or not isinstance(max_chunk_size, int):
        raise ConfigurationError(f"Chunk size must be an int, got {max_chunk_size!r}")
    if max_chunk_size <= 0:
        raise ConfigurationError(f"Chunk size must be positive, got {max_chunk_size}")

    records = tuple(records)
    if not records:
        raise ConfigurationError("No input records to partition")

    return [
        Chunk(chunk_id=index + 1, records=records[start:start + max_chunk_size])
        for index, start in enumerate(range(0, len(records), max_chunk_size))
    ]
