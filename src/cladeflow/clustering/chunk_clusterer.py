"""Clustering each chunk with the external clustering engine.

Every chunk becomes one runner unit (``chunk_0001``, ``chunk_0002``, ...)
with its own directory under ``chunks/``. The engine receives a
``sample<TAB>path`` manifest and the knobs of the resource profile selected
for the chunk size. All chunks must succeed for the global clustering to be
trusted.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from functools import partial
from pathlib import Path
from typing import Optional, Sequence

from cladeflow.clustering.merger import PartialClusterTable
from cladeflow.clustering.partitioner import Chunk
from cladeflow.clustering.profile import ResourceProfile, select_resource_profile
from cladeflow.clustering.tables import read_cluster_table
from cladeflow.errors import ChunkClusteringError, UnitFailure
from cladeflow.execution.capacity import HostCapacity, effective_parallelism
from cladeflow.execution.runner import BoundedJobRunner, JobSpec, ResourceCeiling, ToolDefinition

__all__ = ['ChunkClusterer', 'MANIFEST_NAME']

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.tsv"


class ChunkClusterer:
    """Runs the clustering engine once per chunk.

    Parameters
    ----------
    runner : BoundedJobRunner
        Shared runner (carries the checkpoint tracker).
    tool : ToolDefinition
        Clustering engine definition. Its ceiling is scaled by the profile's
        ``ceiling_scale`` for each chunk.
    chunks_dir : Path
        Parent of the per-chunk directories.
    capacity : HostCapacity
        Total resources shared by concurrently running chunks.
    max_workers : int
        Configured upper bound on concurrent chunks.

    Example usage::

        clusterer = ChunkClusterer(runner, tool, output_dirs["chunks"], capacity, max_workers=4)
        partials = clusterer.cluster(chunks)
    """

    def __init__(self, runner: BoundedJobRunner, tool: ToolDefinition, chunks_dir: Path,
                 capacity: HostCapacity, max_workers: int = 1):
        self.runner = runner
        self.tool = tool
        self.chunks_dir = Path(chunks_dir)
        self.capacity = capacity
        self.max_workers = max_workers

    def chunk_dir(self, chunk: Chunk) -> Path:
        return self.chunks_dir / chunk.name

    def write_manifest(self, chunk: Chunk) -> Path:
        """Write the headerless ``sample<TAB>path`` manifest of ``chunk``."""
        chunk_dir = self.chunk_dir(chunk)
        chunk_dir.mkdir(parents=True, exist_ok=True)
        manifest = chunk_dir / MANIFEST_NAME
        lines = [f"{r.sample_id}\t{r.path}\n" for r in chunk.records]
        manifest.write_text("".join(lines))
        return manifest

    def ceiling_for(self, profile: ResourceProfile) -> ResourceCeiling:
        """Engine ceiling scaled for ``profile``, capped at total capacity."""
        return self.tool.ceiling.scaled(profile.ceiling_scale, max_memory_gb=self.capacity.memory_gb)

    def job_for(self, chunk: Chunk) -> JobSpec:
        profile = select_resource_profile(chunk.size)
        manifest = self.write_manifest(chunk)
        context = {
            "manifest": str(manifest),
            "chunk_id": chunk.chunk_id,
            "db_name": chunk.name,
        }
        context.update(profile.as_placeholders())
        return self.tool.job(
            unit_id=chunk.name,
            job_dir=self.chunk_dir(chunk),
            inputs=[r.path for r in chunk.records],
            context=context,
            ceiling=self.ceiling_for(profile),
            validator=partial(read_cluster_table, unit_id=chunk.name),
        )

    def _run_chunk(self, chunk: Chunk, spec: JobSpec) -> PartialClusterTable:
        result = self.runner.run(spec).raise_for_status()
        assignments = read_cluster_table(result.artifact, unit_id=chunk.name)

        expected = {r.sample_id for r in chunk.records}
        foreign = set(assignments) - expected
        if foreign:
            logger.warning("%s: %d sample(s) in cluster table not in manifest (e.g. %s)",
                           chunk.name, len(foreign), sorted(foreign)[:3])
        unassigned = expected - set(assignments)
        if unassigned:
            logger.warning("%s: %d sample(s) left unclustered by the engine (e.g. %s)",
                           chunk.name, len(unassigned), sorted(unassigned)[:3])

        return PartialClusterTable(chunk_id=chunk.chunk_id, assignments=assignments,
                                   source=result.artifact)

    def cluster(self, chunks: Sequence[Chunk],
                workers: Optional[int] = None) -> list[PartialClusterTable]:
        """Cluster every chunk and return the partial tables in chunk order.

        Parameters
        ----------
        chunks : sequence of Chunk
            Output of the partitioner.
        workers : int, optional
            Pool size. Defaults to the capacity-bounded parallelism for the
            largest chunk ceiling.

        Raises
        ------
        ChunkClusteringError
            If any chunk failed. Raised only after every submitted chunk has
            reached a terminal state.
        """
        specs = {chunk.chunk_id: (chunk, self.job_for(chunk)) for chunk in chunks}
        if workers is None:
            workers = effective_parallelism(
                self.max_workers, [spec.ceiling for _, spec in specs.values()], self.capacity
            )

        logger.info("=" * 60)
        logger.info("Clustering %d chunk(s) with %s, %d worker(s)", len(specs), self.tool.name, workers)
        logger.info("=" * 60)

        partials: dict[int, PartialClusterTable] = {}
        failures: dict[int, UnitFailure] = {}

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="chunk") as executor:
            futures = {
                executor.submit(self._run_chunk, chunk, spec): chunk
                for chunk, spec in specs.values()
            }
            for future in as_completed(futures):
                chunk = futures[future]
                try:
                    partials[chunk.chunk_id] = future.result()
                except UnitFailure as exc:
                    failures[chunk.chunk_id] = exc
                    logger.error("✗ %s failed: %s", chunk.name, exc)

        if failures:
            raise ChunkClusteringError(failures)

        logger.info("✓ All %d chunk(s) clustered", len(partials))
        return [partials[chunk_id] for chunk_id in sorted(partials)]
