"""Pipeline modules.

- orchestrator: Top-level workflow driver
- scheduler: Per-group stage state machines
- stages: Stage layout and tree-input checks
- unit_tracker: SQLite-based unit checkpointing
"""

from cladeflow.pipeline.unit_tracker import UnitTracker
from cladeflow.pipeline.stages import Stage
from cladeflow.pipeline.scheduler import PipelineRun, PipelineScheduler, RunState, SchedulerReport

__all__ = [
    "UnitTracker",
    "Stage",
    "PipelineRun",
    "PipelineScheduler",
    "RunState",
    "SchedulerReport",
]
