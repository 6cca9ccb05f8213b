"""Top-level workflow driver.

Runs the stages of a run in order, each one completing before the next
starts: catalog, partition, chunk clustering, merge, group resolution, then
the per-group pipelines. Contracts are enforced at every boundary.
"""

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from cladeflow import __version__
from cladeflow.catalog import InputCatalog
from cladeflow.clustering.chunk_clusterer import ChunkClusterer
from cladeflow.clustering.groups import ClusterGroup, GroupResolver
from cladeflow.clustering.merger import MERGE_STRATEGY, GlobalClusterTable, ResultMerger
from cladeflow.clustering.partitioner import partition_records
from cladeflow.clustering.profile import recommend_chunking
from cladeflow.contracts import assert_admissible, assert_merged, assert_partitioned
from cladeflow.contracts.invariants import PIPELINE_INVARIANTS, STAGE_FAILURE_SCOPE
from cladeflow.errors import ChunkClusteringError
from cladeflow.execution.capacity import detect_host_capacity, effective_parallelism
from cladeflow.execution.runner import BoundedJobRunner, ResourceCeiling, ToolDefinition
from cladeflow.pipeline.scheduler import PipelineScheduler, SchedulerReport
from cladeflow.pipeline.stages import Stage
from cladeflow.pipeline.unit_tracker import UnitTracker
from cladeflow.preflight import require_tools
from cladeflow.setup_directories import (
    get_global_clusters_path,
    get_log_path,
    get_report_path,
    get_tracker_path,
    setup_output_directories,
)

__all__ = ['WorkflowOrchestrator', 'WorkflowResult', 'build_tool_definition']

logger = logging.getLogger(__name__)

GROUP_STATUS_NAME = "group_status.tsv"
RUN_SUMMARY_NAME = "run_summary.json"


def _log_guarantees(stage: str) -> None:
    for guarantee in PIPELINE_INVARIANTS[stage]:
        logger.debug("✓ %s: %s", stage, guarantee)


def build_tool_definition(tool_config, execution_config) -> ToolDefinition:
    """ToolDefinition for one configured tool section."""
    return ToolDefinition(
        name=tool_config.name,
        commands=tuple(tuple(c) for c in tool_config.commands),
        artifact_glob=tool_config.artifact_glob,
        ceiling=ResourceCeiling(
            memory_gb=tool_config.memory_gb,
            cpus=tool_config.threads,
            timeout_minutes=tool_config.timeout_minutes,
            malloc_arena_max=execution_config.malloc_arena_max,
            core_dumps=execution_config.core_dumps,
        ),
    )


@dataclass
class WorkflowResult:
    """Outcome of a completed run (one that was not aborted)."""
    global_table: GlobalClusterTable
    groups: list
    report: SchedulerReport
    summary_path: Path

    @property
    def success(self) -> bool:
        return self.report.success


class WorkflowOrchestrator:
    """Drives one run from input catalog to per-group trees.

    Aborting errors propagate to the caller after the run summary has been
    written: ``ConfigurationError`` before any unit ran, and
    ``ChunkClusteringError`` when a chunk failed. Group failures never
    abort; they are reported in ``reports/group_status.tsv`` and make
    ``WorkflowResult.success`` False.

    **Resumability:**

    Unit outcomes are checkpointed in ``state/unit_tracker.db``. Running the
    same configuration again over the same base directory skips every unit
    that completed, so after fixing the cause of a failure only the failed
    units execute.

    **Logging:**

    All output goes to both console and ``logs/cladeflow.log``. Level is
    taken from ``config.logging.level``.

    Example usage::

        config = init_runtime_config(args)
        orchestrator = WorkflowOrchestrator(config)
        result = orchestrator.run()
        print(result.report.counts())
    """

    def __init__(self, config, output_dirs: Optional[dict] = None):
        """Initialize orchestrator with the resolved run configuration.

        Parameters
        ----------
        config : InternalConfig
            Fully resolved configuration.
        output_dirs : dict, optional
            Paths from ``setup_output_directories()``. Taken from
            ``config.output_dirs`` or created under ``config.base_dir`` if
            not given.
        """
        self.config = config
        if output_dirs is None:
            output_dirs = config.output_dirs or setup_output_directories(config.base_dir)
        self.output_dirs = {k: Path(v) for k, v in output_dirs.items()}

        self.tracker = None
        self._log_handlers = []
        self._start_time = None

    def _setup_logging(self):
        """Configure root logging and the unit tracker.

        Initializes the root logger with file and console handlers and opens
        the UnitTracker database under ``state/``.
        """
        log_level = getattr(logging, self.config.logging.level.upper(), logging.INFO)
        log_path = get_log_path(self.output_dirs)

        formatter = logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # Clear existing handlers and add new ones
        root = logging.getLogger()
        root.setLevel(log_level)
        for handler in root.handlers[:]:
            root.removeHandler(handler)

        # File handler
        fh = logging.FileHandler(log_path)
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        root.addHandler(fh)

        # Console handler
        ch = logging.StreamHandler()
        ch.setLevel(log_level)
        ch.setFormatter(formatter)
        root.addHandler(ch)

        self._log_handlers = [fh, ch]
        logger.info("Logging: level=%s, file=%s", logging.getLevelName(log_level), log_path)

        tracker_path = get_tracker_path(self.output_dirs)
        self.tracker = UnitTracker(tracker_path)
        logger.info("Unit tracker: %s", tracker_path)

    def _teardown_logging(self):
        root = logging.getLogger()
        for handler in self._log_handlers:
            root.removeHandler(handler)
            handler.close()
        self._log_handlers = []

    def _stage_tools(self) -> dict:
        tools = self.config.tools
        execution = self.config.execution
        return {
            Stage.ALIGNMENT: build_tool_definition(tools.alignment, execution),
            Stage.FILTERING: build_tool_definition(tools.filtering, execution),
            Stage.TREE: build_tool_definition(tools.tree, execution),
        }

    def run(self) -> WorkflowResult:
        """Execute the whole workflow.

        Returns
        -------
        WorkflowResult
            Global table, admissible groups and the scheduler report.

        Raises
        ------
        ConfigurationError
            Invalid inputs, capacity or tools; nothing was executed.
        ChunkClusteringError
            At least one chunk failed; no group was scheduled.
        """
        self._setup_logging()
        self._start_time = time.time()

        logger.info("=" * 60)
        logger.info("Starting cladeflow %s (run %s)", __version__, self.config.run_id or "-")
        logger.info("=" * 60)

        summary = {"run_id": self.config.run_id, "status": "aborted"}
        scope = {stage: policy.value for stage, policy in STAGE_FAILURE_SCOPE.items()}
        summary["failure_scope"] = scope
        logger.info("Failure scope: %s", ", ".join(f"{k}={v}" for k, v in scope.items()))
        try:
            result = self._run_stages(summary)
            summary["status"] = "completed" if result.success else "completed-with-failures"
            return result
        except ChunkClusteringError as exc:
            summary["status"] = "clustering-aborted"
            summary["error"] = str(exc)
            summary["failed_chunks"] = {
                str(chunk_id): {"tag": failure.tag, "message": failure.message,
                                "log": failure.log_path}
                for chunk_id, failure in sorted(exc.failures.items())
            }
            logger.error("✗ Clustering aborted: %s", exc)
            raise
        except Exception as exc:
            summary["error"] = str(exc)
            logger.error("✗ Run aborted: %s", exc)
            raise
        finally:
            self.stop(summary)

    def _run_stages(self, summary: dict) -> WorkflowResult:
        config = self.config

        # Pre-flight and inputs
        require_tools(config)
        catalog = InputCatalog.load(config.input)
        for line in recommend_chunking(len(catalog), config.chunking.chunk_size):
            logger.info(line)

        chunk_size = config.chunking.chunk_size or len(catalog)
        chunks = partition_records(catalog.records, chunk_size)
        assert_partitioned(chunks, catalog.records, chunk_size)
        _log_guarantees("partition")
        summary["samples"] = len(catalog)
        summary["chunks"] = len(chunks)
        logger.info("✓ Partitioned %d samples into %d chunk(s) of at most %d",
                    len(catalog), len(chunks), chunk_size)

        # Capacity, checked for every tool before anything runs
        capacity = detect_host_capacity(config.execution.total_memory_gb,
                                        config.execution.total_cpus)
        stage_tools = self._stage_tools()
        stage_workers = effective_parallelism(
            config.execution.max_workers, [t.ceiling for t in stage_tools.values()], capacity
        )
        logger.info("Capacity: %.1f GB, %d CPUs", capacity.memory_gb, capacity.cpus)

        runner = BoundedJobRunner(self.tracker)

        # Chunk clustering
        clusterer = ChunkClusterer(
            runner,
            build_tool_definition(config.tools.clustering, config.execution),
            self.output_dirs["chunks"],
            capacity,
            max_workers=config.execution.max_workers,
        )
        partials = clusterer.cluster(chunks)

        # Merge
        global_table = ResultMerger().merge(partials)
        assert_merged(global_table, partials)
        _log_guarantees("merge")
        clusters_path = global_table.write(get_global_clusters_path(self.output_dirs))
        summary["merge_strategy"] = MERGE_STRATEGY
        summary["clusters"] = len(global_table.labels)
        logger.info("✓ Global cluster table: %s", clusters_path)

        # Groups
        resolver = GroupResolver(catalog, min_size=config.chunking.min_group_size)
        groups: list[ClusterGroup] = resolver.resolve(global_table)
        assert_admissible(groups, config.chunking.min_group_size)
        _log_guarantees("groups")
        summary["groups"] = len(groups)
        summary["pruned_clusters"] = len(resolver.pruned)
        summary["unresolved_samples"] = sorted(resolver.unresolved)

        # Per-group pipelines
        scheduler = PipelineScheduler(runner, stage_tools, self.output_dirs["groups"],
                                      workers=stage_workers)
        report = scheduler.run(groups)
        status_path = report.write(get_report_path(self.output_dirs, GROUP_STATUS_NAME))
        summary["group_states"] = report.counts()
        summary["failed_groups"] = [r.label for r in report.runs if r.failure_tag]
        logger.info("Group status: %s", status_path)

        return WorkflowResult(
            global_table=global_table,
            groups=groups,
            report=report,
            summary_path=get_report_path(self.output_dirs, RUN_SUMMARY_NAME),
        )

    def stop(self, summary: Optional[dict] = None):
        """Write the run summary, close the tracker and log final statistics.

        Safe to call more than once.
        """
        elapsed = time.time() - self._start_time if self._start_time else 0

        if summary is not None:
            summary["elapsed_s"] = round(elapsed, 1)
            summary["finished_at"] = datetime.now(timezone.utc).isoformat()

        if self.tracker:
            stats = self.tracker.get_statistics()
            logger.info("Units: total=%d, completed=%d, failed=%d, timeouts=%d",
                        stats["total"], stats["completed"], stats["failed"], stats["timeouts"])
            if summary is not None:
                summary["units"] = stats
                summary["failed_units"] = [
                    {"unit_id": unit["unit_id"], "tag": unit["failure_tag"], "log": unit["log_path"]}
                    for unit in self.tracker.get_units(status="failed")
                ]
            self.tracker.close()
            self.tracker = None

        if summary is not None:
            path = get_report_path(self.output_dirs, RUN_SUMMARY_NAME)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                json.dump(summary, f, indent=2, default=str)
            logger.info("Run summary: %s", path)

        logger.info("=" * 60)
        logger.info("Run finished (%s). Runtime: %.1f seconds",
                    (summary or {}).get("status", "-"), elapsed)
        logger.info("=" * 60)
        self._teardown_logging()
