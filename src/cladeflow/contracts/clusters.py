"""Merge and group-resolution contracts.

After merging, every sample present in any partial table is assigned
exactly once. After resolution, no group below the admissible size exists.
"""

from typing import TYPE_CHECKING, Sequence

from cladeflow.contracts.base import require

if TYPE_CHECKING:
    from cladeflow.clustering.groups import ClusterGroup
    from cladeflow.clustering.merger import GlobalClusterTable, PartialClusterTable


def assert_merged(global_table: "GlobalClusterTable",
                  partials: Sequence["PartialClusterTable"]) -> None:
    """Enforce merge stage contract.

    Raises
    ------
    ContractViolation
        If a sample was dropped, invented, or assigned twice.
    """
    expected = set()
    total = 0
    for partial in partials:
        expected.update(partial.assignments)
        total += len(partial.assignments)

    require(
        total == len(expected),
        f"Merge contract violated: {total - len(expected)} sample(s) appear in more than one partial table"
    )

    merged = set(global_table.assignments)
    missing = expected - merged
    require(
        not missing,
        f"Merge contract violated: {len(missing)} sample(s) dropped (e.g. {sorted(missing)[:3]})"
    )

    extra = merged - expected
    require(
        not extra,
        f"Merge contract violated: {len(extra)} unknown sample(s) in global table (e.g. {sorted(extra)[:3]})"
    )


def assert_admissible(groups: Sequence["ClusterGroup"], min_size: int) -> None:
    """Enforce group resolution contract.

    Raises
    ------
    ContractViolation
        If any group has fewer than ``min_size`` members, a label repeats, or
        a sample belongs to two groups.
    """
    labels = [g.label for g in groups]
    require(
        len(labels) == len(set(labels)),
        "Group contract violated: duplicate cluster labels"
    )

    seen = set()
    for group in groups:
        require(
            len(group.members) >= min_size,
            f"Group contract violated: cluster {group.label} has {len(group.members)} "
            f"members, minimum is {min_size}"
        )
        for record in group.members:
            require(
                record.sample_id not in seen,
                f"Group contract violated: sample {record.sample_id} assigned to two groups"
            )
            seen.add(record.sample_id)
