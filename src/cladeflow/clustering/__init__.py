"""Chunked clustering: profiles, partitioning, per-chunk runs, merging, groups.

- profile: Resource profile selection and dataset diagnostics
- partitioner: Splitting the catalog into bounded chunks
- chunk_clusterer: Running the clustering engine per chunk
- tables: Reading engine cluster tables
- merger: Merging partial tables into the global table
- groups: Resolving admissible groups
"""

from cladeflow.clustering.profile import ResourceProfile, select_resource_profile, recommend_chunking
from cladeflow.clustering.partitioner import Chunk, partition_records
from cladeflow.clustering.chunk_clusterer import ChunkClusterer
from cladeflow.clustering.merger import GlobalClusterTable, PartialClusterTable, ResultMerger
from cladeflow.clustering.groups import ClusterGroup, GroupResolver, MIN_GROUP_SIZE

__all__ = [
    "ResourceProfile",
    "select_resource_profile",
    "recommend_chunking",
    "Chunk",
    "partition_records",
    "ChunkClusterer",
    "GlobalClusterTable",
    "PartialClusterTable",
    "ResultMerger",
    "ClusterGroup",
    "GroupResolver",
    "MIN_GROUP_SIZE",
]
