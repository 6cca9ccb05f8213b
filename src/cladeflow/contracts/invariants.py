"""What each stage guarantees to the next, and how far its failures reach.

The orchestrator logs each stage's guarantees once its contract check has
passed, and records the failure scope in the run summary. The checks
themselves live in partition.py and clusters.py.
"""

from cladeflow.contracts.failure import FailurePolicy

PIPELINE_INVARIANTS = {
    "catalog": [
        "At least one input record",
        "Sample ids unique within the run (derived from file names)",
        "Records sorted by file name when discovered from a directory",
    ],

    "partition": [
        "ceil(N / C) chunks, ids dense and 1-based",
        "Every chunk non-empty and at most C records",
        "Concatenating chunks reproduces the input order exactly",
    ],

    "chunk_clustering": [
        "One partial cluster table per chunk, all chunks succeeded",
        "Partial labels are only meaningful within their own chunk",
    ],

    "merge": [
        "Every sample of every partial table appears exactly once",
        "Labels from different chunks never collide (namespaced by chunk id)",
        "Global table written to clustering/global_clusters.csv",
    ],

    "groups": [
        "Only groups with >= 3 resolved members are emitted",
        "A sample belongs to at most one group",
        "Unresolvable sample ids are dropped with a warning",
    ],

    "group_pipeline": [
        "alignment -> filtering -> tree, strictly sequential per group",
        "A stage runs only if the previous stage succeeded",
        "Fewer than 3 sequences before tree building ends DONE_WITH_WARNING",
        "A failed group never affects another group",
    ],
}
# What a failure in each stage does to the rest of the run
STAGE_FAILURE_SCOPE = {
    "catalog": FailurePolicy.FAIL_FAST,
    "partition": FailurePolicy.FAIL_FAST,
    "chunk_clustering": FailurePolicy.FAIL_FAST,
    "merge": FailurePolicy.FAIL_FAST,
    "groups": FailurePolicy.FAIL_FAST,
    "group_pipeline": FailurePolicy.ISOLATE,
}
