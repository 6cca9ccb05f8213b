"""Partition stage contract.

Enforces the guarantee that after partitioning, every input record appears
in exactly one chunk, order is preserved and chunk sizes are bounded.
"""

import math
from typing import TYPE_CHECKING, Sequence

from cladeflow.contracts.base import require

if TYPE_CHECKING:
    from cladeflow.catalog import InputRecord
    from cladeflow.clustering.partitioner import Chunk


def assert_partitioned(chunks: Sequence["Chunk"], records: Sequence["InputRecord"],
                       max_chunk_size: int) -> None:
    """Enforce partition stage contract.

    Parameters
    ----------
    chunks : sequence of Chunk
        Output of partition_records()

    records : sequence of InputRecord
        The records that were partitioned, in order

    max_chunk_size : int
        The chunk size the partitioner was called with

    Raises
    ------
    ContractViolation
        If any invariant is violated
    """
    expected = math.ceil(len(records) / max_chunk_size)
    require(
        len(chunks) == expected,
        f"Partition contract violated: {len(chunks)} chunks, expected {expected}"
    )

    require(
        [c.chunk_id for c in chunks] == list(range(1, len(chunks) + 1)),
        "Partition contract violated: chunk ids are not dense and 1-based"
    )

    for chunk in chunks:
        require(
            0 < len(chunk.records) <= max_chunk_size,
            f"Partition contract violated: chunk {chunk.chunk_id} has "
            f"{len(chunk.records)} records (max {max_chunk_size})"
        )

    flattened = [r for c in chunks for r in c.records]
    require(
        flattened == list(records),
        "Partition contract violated: chunks do not cover the input exactly once in order"
    )
