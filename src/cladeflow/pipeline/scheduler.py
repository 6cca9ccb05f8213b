"""Driving every admissible group through the three-stage pipeline.

Each group is an independent state machine::

    PENDING -> ALIGNING -> FILTERING -> TREE_BUILDING -> DONE
                   |           |              |
                   +-----------+--------------+--> FAILED
                                              |
                                              +--> DONE_WITH_WARNING

Stage units of all groups share one thread pool. A group's next stage is
submitted only once its previous stage has succeeded (or was cached), so
stages are strictly ordered within a group while groups overlap freely.
The main thread owns all state transitions; worker threads only run the
external tools.
"""

import logging
import warnings
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Sequence

import pandas as pd

from cladeflow.clustering.groups import ClusterGroup
from cladeflow.errors import CladeflowError, InsufficientDataWarning, UnitFailure
from cladeflow.execution.runner import BoundedJobRunner, JobResult, JobSpec, ToolDefinition
from cladeflow.pipeline.stages import (
    MIN_TREE_SEQUENCES,
    STAGE_DIRS,
    STAGE_ORDER,
    Stage,
    count_fasta_sequences,
    stage_group_inputs,
    write_insufficient_data_sentinel,
)

__all__ = ['RunState', 'PipelineRun', 'SchedulerReport', 'PipelineScheduler']

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    PENDING = "PENDING"
    ALIGNING = "ALIGNING"
    FILTERING = "FILTERING"
    TREE_BUILDING = "TREE_BUILDING"
    DONE = "DONE"
    DONE_WITH_WARNING = "DONE_WITH_WARNING"
    FAILED = "FAILED"


TERMINAL_STATES = frozenset({RunState.DONE, RunState.DONE_WITH_WARNING, RunState.FAILED})

STAGE_STATES = {
    Stage.ALIGNMENT: RunState.ALIGNING,
    Stage.FILTERING: RunState.FILTERING,
    Stage.TREE: RunState.TREE_BUILDING,
}


@dataclass
class PipelineRun:
    """Progress of one group through the stages."""
    group: ClusterGroup
    state: RunState = RunState.PENDING
    stage_outputs: dict = field(default_factory=dict)
    failed_stage: Optional[str] = None
    failure_tag: Optional[str] = None
    message: str = ""

    @property
    def label(self) -> str:
        return self.group.label

    @property
    def members(self):
        return self.group.members

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES


@dataclass
class SchedulerReport:
    """Terminal state of every group of a run."""
    runs: list

    @property
    def success(self) -> bool:
        return all(run.state != RunState.FAILED for run in self.runs)

    def counts(self) -> dict:
        counts = {state.value: 0 for state in TERMINAL_STATES}
        for run in self.runs:
            counts[run.state.value] = counts.get(run.state.value, 0) + 1
        return counts

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for run in self.runs:
            tree = run.stage_outputs.get(Stage.TREE.value)
            rows.append({
                "cluster": run.label,
                "n_members": run.group.size,
                "state": run.state.value,
                "failed_stage": run.failed_stage or "",
                "failure_tag": run.failure_tag or "",
                "message": run.message,
                "tree": str(tree) if tree else "",
            })
        return pd.DataFrame(rows, columns=[
            "cluster", "n_members", "state", "failed_stage", "failure_tag", "message", "tree",
        ])

    def write(self, path: Path | str) -> Path:
        """Write the per-group status table as TSV."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(path, sep="\t", index=False)
        return path


class PipelineScheduler:
    """Runs alignment, filtering and tree building for every group.

    Failures are isolated: a group whose stage fails is marked FAILED with
    the failure tag and the stage name, and every other group continues.
    A group whose filtered alignment holds fewer than three sequences ends
    DONE_WITH_WARNING without the tree tool being invoked.

    Parameters
    ----------
    runner : BoundedJobRunner
        Shared runner (carries the checkpoint tracker).
    tools : mapping of Stage to ToolDefinition
        One tool per stage.
    groups_dir : Path
        Parent of the per-group directories.
    workers : int
        Size of the shared stage pool.

    Example usage::

        scheduler = PipelineScheduler(runner, tools, output_dirs["groups"], workers=4)
        report = scheduler.run(groups)
        report.write(output_dirs["reports"] / "group_status.tsv")
    """

    def __init__(self, runner: BoundedJobRunner, tools: Mapping[Stage, ToolDefinition],
                 groups_dir: Path, workers: int = 1):
        missing = [s.value for s in STAGE_ORDER if s not in tools]
        if missing:
            raise CladeflowError(f"No tool configured for stage(s): {', '.join(missing)}")
        self.runner = runner
        self.tools = dict(tools)
        self.groups_dir = Path(groups_dir)
        self.workers = workers

    def group_dir(self, group: ClusterGroup) -> Path:
        return self.groups_dir / group.name

    def stage_dir(self, group: ClusterGroup, stage: Stage) -> Path:
        return self.group_dir(group) / STAGE_DIRS[stage]

    def _job_for(self, run: PipelineRun, stage: Stage) -> JobSpec:
        group = run.group
        inputs_dir = self.group_dir(group) / "inputs"
        context = {
            "label": group.label,
            "prefix": group.name,
            "input_dir": str(inputs_dir),
            "n_members": group.size,
        }

        if stage == Stage.ALIGNMENT:
            inputs = stage_group_inputs(group.members, inputs_dir)
        else:
            previous = STAGE_ORDER[STAGE_ORDER.index(stage) - 1]
            source = run.stage_outputs[previous.value]
            context["input"] = str(source)
            inputs = [source]

        return self.tools[stage].job(
            unit_id=f"{group.name}/{stage.value}",
            job_dir=self.stage_dir(group, stage),
            inputs=inputs,
            context=context,
        )

    def _fail(self, run: PipelineRun, stage: Stage, tag: str, message: str) -> None:
        run.state = RunState.FAILED
        run.failed_stage = stage.value
        run.failure_tag = tag
        run.message = message
        logger.error("✗ %s: FAILED at %s (%s): %s", run.group.name, stage.value, tag, message)

    def _tree_input_sufficient(self, run: PipelineRun) -> bool:
        """Check the filtered alignment before tree building.

        Ends the run DONE_WITH_WARNING when too few sequences remain.
        """
        source = Path(run.stage_outputs[Stage.FILTERING.value])
        n_sequences = count_fasta_sequences(source)
        if n_sequences >= MIN_TREE_SEQUENCES:
            return True

        sentinel = write_insufficient_data_sentinel(
            self.stage_dir(run.group, Stage.TREE), run.label, n_sequences, source
        )
        run.state = RunState.DONE_WITH_WARNING
        run.stage_outputs[Stage.TREE.value] = sentinel
        run.message = (f"{n_sequences} sequence(s) after filtering, "
                       f"{MIN_TREE_SEQUENCES} needed for a tree")
        warnings.warn(f"{run.group.name}: {run.message}", InsufficientDataWarning, stacklevel=2)
        logger.warning("⚠ %s: DONE_WITH_WARNING, %s", run.group.name, run.message)
        return False

    def _advance(self, executor: ThreadPoolExecutor, run: PipelineRun,
                 stage: Stage) -> Optional[Future]:
        """Move ``run`` into ``stage`` and submit its unit.

        Returns None when the run reached a terminal state instead.
        """
        try:
            if stage == Stage.TREE and not self._tree_input_sufficient(run):
                return None
            spec = self._job_for(run, stage)
        except (CladeflowError, OSError) as exc:
            tag = exc.tag if isinstance(exc, UnitFailure) else "error"
            self._fail(run, stage, tag, str(exc))
            return None

        run.state = STAGE_STATES[stage]
        logger.debug("%s -> %s", run.group.name, run.state.value)
        return executor.submit(self.runner.run, spec)

    def _complete(self, run: PipelineRun, stage: Stage, future: Future) -> Optional[Stage]:
        """Record a finished stage unit; return the next stage, if any."""
        try:
            result: JobResult = future.result()
            result.raise_for_status()
        except UnitFailure as exc:
            self._fail(run, stage, exc.tag, exc.message)
            return None
        except (CladeflowError, OSError) as exc:
            self._fail(run, stage, "error", str(exc))
            return None

        run.stage_outputs[stage.value] = result.artifact
        position = STAGE_ORDER.index(stage)
        if position + 1 < len(STAGE_ORDER):
            return STAGE_ORDER[position + 1]

        run.state = RunState.DONE
        logger.info("✓ %s: DONE -> %s", run.group.name, result.artifact)
        return None

    def run(self, groups: Sequence[ClusterGroup]) -> SchedulerReport:
        """Drive every group to a terminal state.

        Returns
        -------
        SchedulerReport
            ``success`` is False if any group FAILED.
        """
        runs = [PipelineRun(group) for group in groups]

        logger.info("=" * 60)
        logger.info("Scheduling %d group(s), %d worker(s)", len(runs), self.workers)
        logger.info("=" * 60)

        if runs:
            with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="stage") as executor:
                pending: dict[Future, tuple[PipelineRun, Stage]] = {}
                for run in runs:
                    future = self._advance(executor, run, STAGE_ORDER[0])
                    if future is not None:
                        pending[future] = (run, STAGE_ORDER[0])

                while pending:
                    done, _ = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        run, stage = pending.pop(future)
                        next_stage = self._complete(run, stage, future)
                        if next_stage is None:
                            continue
                        next_future = self._advance(executor, run, next_stage)
                        if next_future is not None:
                            pending[next_future] = (run, next_stage)

        report = SchedulerReport(runs)
        counts = report.counts()
        logger.info("Groups: %d done, %d done with warning, %d failed",
                    counts[RunState.DONE.value], counts[RunState.DONE_WITH_WARNING.value],
                    counts[RunState.FAILED.value])
        return report
