"""Aggregate capacity of the execution host and worker pool sizing."""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

import psutil

from cladeflow.errors import ConfigurationError

__all__ = ['HostCapacity', 'detect_host_capacity', 'effective_parallelism']

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostCapacity:
    """Total memory and CPUs that concurrent jobs may share."""
    memory_gb: float
    cpus: int


def _physical_memory_gb() -> Optional[float]:
    total = psutil.virtual_memory().total
    return total / 1024 ** 3 if total > 0 else None


def detect_host_capacity(memory_gb: Optional[float] = None,
                         cpus: Optional[int] = None) -> HostCapacity:
    """Build a HostCapacity, filling unset values from the local machine."""
    if memory_gb is None:
        memory_gb = _physical_memory_gb()
        if memory_gb is None:
            raise ConfigurationError(
                "Cannot detect host memory; set TOTAL_MEMORY_GB explicitly"
            )
    if cpus is None:
        cpus = psutil.cpu_count() or 1
    return HostCapacity(memory_gb=float(memory_gb), cpus=int(cpus))


def effective_parallelism(max_workers: int, ceilings: Iterable, capacity: HostCapacity) -> int:
    """Number of jobs that may run at once without exceeding ``capacity``.

    The bound is the configured ``max_workers`` further limited so that
    workers x largest per-job ceiling fits inside total memory and CPUs.

    Parameters
    ----------
    max_workers : int
        Configured upper bound on concurrent jobs.
    ceilings : iterable of ResourceCeiling
        Ceilings of every kind of job that may share the pool.
    capacity : HostCapacity
        Total resources available.

    Raises
    ------
    ConfigurationError
        If ``max_workers`` < 1 or a single job's ceiling exceeds the host.
    """
    if max_workers < 1:
        raise ConfigurationError(f"max_workers must be >= 1, got {max_workers}")

    ceilings = list(ceilings)
    if not ceilings:
        return max_workers

    peak_memory = max(c.memory_gb for c in ceilings)
    peak_cpus = max(c.cpus for c in ceilings)

    if peak_memory > capacity.memory_gb:
        raise ConfigurationError(
            f"Per-job memory ceiling {peak_memory:g} GB exceeds total capacity "
            f"{capacity.memory_gb:g} GB"
        )
    if peak_cpus > capacity.cpus:
        raise ConfigurationError(
            f"Per-job CPU ceiling {peak_cpus} exceeds total capacity {capacity.cpus}"
        )

    by_memory = math.floor(capacity.memory_gb / peak_memory)
    by_cpus = capacity.cpus // peak_cpus
    workers = max(1, min(max_workers, by_memory, by_cpus))

    if workers < max_workers:
        logger.info(
            "Parallelism reduced from %d to %d (%.1f GB / %d CPUs per job, capacity %.1f GB / %d CPUs)",
            max_workers, workers, peak_memory, peak_cpus, capacity.memory_gb, capacity.cpus,
        )
    return workers
