"""
Directory setup for a cladeflow run.

One run lives under one base directory. Every unit writes only below its
own chunk or group directory, so concurrent units never share a path:

    chunks/chunk_NNNN/          per-chunk manifest, engine output and log
    clustering/                 global_clusters.csv
    groups/cluster_<label>/     inputs/, 1_alignment/, 2_filtering/, 3_tree/
    reports/                    group_status.tsv, run_summary.json
    logs/                       cladeflow.log
    state/                      unit_tracker.db
"""

import logging
from pathlib import Path

__all__ = [
    'setup_output_directories',
    'get_global_clusters_path',
    'get_tracker_path',
    'get_log_path',
    'get_report_path',
]

logger = logging.getLogger(__name__)

GLOBAL_CLUSTERS_NAME = "global_clusters.csv"
TRACKER_NAME = "unit_tracker.db"
LOG_NAME = "cladeflow.log"


def setup_output_directories(base_output_dir):
    """
    Set up the run directory structure.

    Parameters
    ----------
    base_output_dir : str or Path
        Base output directory. Created if missing.

    Returns
    -------
    dict
        Paths keyed 'base', 'chunks', 'clustering', 'groups', 'reports',
        'logs', 'state'
    """
    base_output_dir = Path(base_output_dir).expanduser().resolve()

    directories = {
        "base": base_output_dir,
        "chunks": base_output_dir / "chunks",
        "clustering": base_output_dir / "clustering",
        "groups": base_output_dir / "groups",
        "reports": base_output_dir / "reports",
        "logs": base_output_dir / "logs",
        "state": base_output_dir / "state",
    }

    for path in directories.values():
        path.mkdir(parents=True, exist_ok=True)

    logger.debug("Output directories under %s: %s", base_output_dir, ", ".join(directories))
    return directories


def get_global_clusters_path(output_dirs) -> Path:
    """clustering/global_clusters.csv"""
    return Path(output_dirs["clustering"]) / GLOBAL_CLUSTERS_NAME


def get_tracker_path(output_dirs) -> Path:
    """state/unit_tracker.db"""
    return Path(output_dirs["state"]) / TRACKER_NAME


def get_log_path(output_dirs) -> Path:
    """logs/cladeflow.log, creating the log directory if needed."""
    log_dir = Path(output_dirs["logs"])
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / LOG_NAME


def get_report_path(output_dirs, name: str) -> Path:
    """Path of report ``name`` under reports/."""
    return Path(output_dirs["reports"]) / name
