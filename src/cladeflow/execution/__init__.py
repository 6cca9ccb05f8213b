"""Execution of external tools.

- runner: Resource-bounded job runner
- capacity: Host capacity and worker pool sizing
- limits: Exec trampoline installing resource limits
"""

from cladeflow.execution.runner import (
    BoundedJobRunner,
    JobResult,
    JobSpec,
    JobStatus,
    ToolDefinition,
    ResourceCeiling,
)
from cladeflow.execution.capacity import HostCapacity, detect_host_capacity, effective_parallelism

__all__ = [
    "BoundedJobRunner",
    "JobResult",
    "JobSpec",
    "JobStatus",
    "ToolDefinition",
    "ResourceCeiling",
    "HostCapacity",
    "detect_host_capacity",
    "effective_parallelism",
]
