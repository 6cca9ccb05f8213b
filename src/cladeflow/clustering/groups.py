"""Resolving global clusters into admissible groups of input records."""

import logging
import re
from dataclasses import dataclass

from cladeflow.catalog import InputCatalog, InputRecord
from cladeflow.clustering.merger import GlobalClusterTable

__all__ = ['MIN_GROUP_SIZE', 'ClusterGroup', 'GroupResolver', 'natural_key']

logger = logging.getLogger(__name__)

# Every downstream stage needs at least three sequences
MIN_GROUP_SIZE = 3


def natural_key(label: str):
    """Sort key placing ``c001_2`` before ``c001_10``."""
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", label)]


@dataclass(frozen=True)
class ClusterGroup:
    """An admissible cluster: a global label and its resolved members."""
    label: str
    members: tuple[InputRecord, ...]

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def name(self) -> str:
        return f"cluster_{self.label}"


class GroupResolver:
    """Maps global cluster labels back to catalog records.

    Sample ids that cannot be found in the catalog are dropped with a
    warning (a naming convention that did not round-trip through the
    engine is not a reason to fail the run). Groups left with fewer than
    ``min_size`` members are pruned; their samples are not reassigned.

    Parameters
    ----------
    catalog : InputCatalog
        The run's input catalog.
    min_size : int, optional
        Minimum resolved members for a group to be admissible (default 3).
    """

    def __init__(self, catalog: InputCatalog, min_size: int = MIN_GROUP_SIZE):
        self.catalog = catalog
        self.min_size = min_size
        self.unresolved: list[str] = []
        self.pruned: dict[str, int] = {}

    def resolve(self, table: GlobalClusterTable) -> list[ClusterGroup]:
        """Return admissible groups ordered by natural label order."""
        self.unresolved = []
        self.pruned = {}
        groups = []

        members_by_label = table.members()
        for label in sorted(members_by_label, key=natural_key):
            members = []
            for sample_id in members_by_label[label]:
                record = self.catalog.lookup(sample_id)
                if record is None:
                    logger.warning("Cluster %s: sample '%s' not found in input catalog, dropping",
                                   label, sample_id)
                    self.unresolved.append(sample_id)
                    continue
                members.append(record)

            if len(members) < self.min_size:
                logger.debug("Cluster %s: %d resolved member(s), below minimum %d, pruned",
                             label, len(members), self.min_size)
                self.pruned[label] = len(members)
                continue

            groups.append(ClusterGroup(label=label, members=tuple(members)))

        logger.info(
            "Resolved %d admissible group(s) from %d clusters (%d pruned below %d members, "
            "%d unresolved sample(s))",
            len(groups), len(members_by_label), len(self.pruned), self.min_size, len(self.unresolved),
        )
        return groups
