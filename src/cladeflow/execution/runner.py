"""Resource-bounded execution of one external tool invocation.

Every external tool of the workflow (clustering engine, alignment,
recombination filtering, tree building) goes through BoundedJobRunner. A
job is described by a JobSpec: command templates, a ResourceCeiling, a job
directory and a glob locating the expected artifact.

**Ceiling enforcement:**

- Address-space cap and disabled core dumps, installed by the
  ``cladeflow.execution.limits`` trampoline right before ``exec``.
- Numeric/threading libraries pinned to one thread through the child
  environment (OpenMP, OpenBLAS, MKL, numexpr, Accelerate, numba).
- ``MALLOC_ARENA_MAX`` bounds glibc allocator arenas.
- Wall-clock timeout shared by all commands of the job. On expiry the
  whole process group is killed with SIGKILL.

**Outcomes:**

``succeeded``, ``cached`` (checkpoint hit), ``timeout``, ``tool-failure``
(nonzero exit, never retried) and ``missing-artifact`` (exit 0 but nothing
matched the artifact glob, or the job's validator rejected what did).
Artifacts left in the job directory by an earlier attempt are deleted
before a unit runs.
"""

import hashlib
import json
import logging
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence

from cladeflow.errors import (
    FAILURE_TYPES,
    NOT_EXECUTABLE_EXIT,
    NOT_FOUND_EXIT,
    CladeflowError,
    ConfigurationError,
    ToolFailureError,
)

__all__ = [
    'ResourceCeiling',
    'JobSpec',
    'ToolDefinition',
    'JobStatus',
    'JobResult',
    'BoundedJobRunner',
    'expand_command',
    'locate_artifact',
    'clear_stale_artifacts',
    'THREAD_PINNED_VARIABLES',
]

logger = logging.getLogger(__name__)

THREAD_PINNED_VARIABLES = (
    "OMP_NUM_THREADS",
    "OPENBLAS_NUM_THREADS",
    "MKL_NUM_THREADS",
    "NUMEXPR_NUM_THREADS",
    "VECLIB_MAXIMUM_THREADS",
    "NUMBA_NUM_THREADS",
)

# Placeholders that only describe resources; excluded from checkpoint fingerprints
RESOURCE_PLACEHOLDERS = frozenset({"threads", "memory_gb", "timeout_minutes"})

INPUT_FILES_TOKEN = "{input_files}"


@dataclass(frozen=True)
class ResourceCeiling:
    """Upper bound on memory, CPUs and wall-clock time for one job."""
    memory_gb: float
    cpus: int
    timeout_minutes: float
    malloc_arena_max: int = 2
    core_dumps: bool = False

    def __post_init__(self):
        if self.memory_gb <= 0:
            raise ConfigurationError(f"memory_gb must be positive, got {self.memory_gb}")
        if self.cpus < 1:
            raise ConfigurationError(f"cpus must be >= 1, got {self.cpus}")
        if self.timeout_minutes <= 0:
            raise ConfigurationError(f"timeout_minutes must be positive, got {self.timeout_minutes}")

    @property
    def memory_bytes(self) -> int:
        return int(self.memory_gb * 1024 ** 3)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_minutes * 60.0

    def scaled(self, factor: float, max_memory_gb: Optional[float] = None) -> "ResourceCeiling":
        """Copy with memory multiplied by ``factor``, optionally capped."""
        memory = self.memory_gb * factor
        if max_memory_gb is not None:
            memory = min(memory, max_memory_gb)
        return replace(self, memory_gb=memory)


@dataclass(frozen=True)
class JobSpec:
    """Everything the runner needs to execute one unit of work.

    Attributes
    ----------
    unit_id : str
        Deterministic identifier (``chunk_0003``, ``cluster_7/alignment``).
        Used for checkpointing and logging.
    tool : str
        Short tool name; also names the log file.
    commands : sequence of sequence of str
        argv templates run in order. ``{name}`` placeholders are filled from
        ``context``; a token that is exactly ``{input_files}`` expands to one
        argument per entry of ``inputs``.
    ceiling : ResourceCeiling
    job_dir : Path
        Working and output directory, exclusive to this unit.
    artifact_glob : str
        Glob relative to ``job_dir`` matching the expected output.
    inputs : tuple of Path
        Input files. Part of the checkpoint fingerprint.
    context : mapping
        Extra placeholder values.
    validator : callable, optional
        Called with the located artifact; raises a ``CladeflowError`` if
        the artifact is unusable. Applied before a unit is recorded as
        completed and again before a checkpoint is trusted.
    """
    unit_id: str
    tool: str
    commands: Sequence[Sequence[str]]
    ceiling: ResourceCeiling
    job_dir: Path
    artifact_glob: str
    inputs: tuple[Path, ...] = ()
    context: Mapping[str, Any] = field(default_factory=dict)
    validator: Optional[Callable[[Path], Any]] = field(default=None, compare=False, repr=False)

    def placeholders(self) -> dict:
        values = dict(self.context)
        values.setdefault("output_dir", str(self.job_dir))
        values.setdefault("threads", self.ceiling.cpus)
        values.setdefault("memory_gb", int(self.ceiling.memory_gb))
        values.setdefault("timeout_minutes", self.ceiling.timeout_minutes)
        return values

    def fingerprint(self) -> str:
        """Hash of tool, templates, non-resource context and input identity.

        Resource values are left out so that raising a timeout or memory
        ceiling after a failure does not invalidate completed units.
        """
        inputs = []
        for path in self.inputs:
            path = Path(path)
            size = path.stat().st_size if path.exists() else None
            inputs.append([str(path), size])

        context = {
            k: str(v) for k, v in sorted(self.placeholders().items())
            if k not in RESOURCE_PLACEHOLDERS
        }
        payload = {
            "tool": self.tool,
            "commands": [list(c) for c in self.commands],
            "artifact_glob": self.artifact_glob,
            "context": context,
            "inputs": inputs,
        }
        return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ToolDefinition:
    """A configured external tool: name, argv templates, artifact glob, ceiling.

    One definition per tool; JobSpecs are stamped out of it per unit.
    """
    name: str
    commands: tuple[tuple[str, ...], ...]
    artifact_glob: str
    ceiling: ResourceCeiling

    def job(self, unit_id: str, job_dir: Path, inputs: Sequence[Path] = (),
            context: Optional[Mapping[str, Any]] = None,
            ceiling: Optional[ResourceCeiling] = None,
            validator: Optional[Callable[[Path], Any]] = None) -> JobSpec:
        return JobSpec(
            unit_id=unit_id,
            tool=self.name,
            commands=self.commands,
            ceiling=ceiling or self.ceiling,
            job_dir=Path(job_dir),
            artifact_glob=self.artifact_glob,
            inputs=tuple(Path(p) for p in inputs),
            context=dict(context or {}),
            validator=validator,
        )

    def executables(self) -> list[str]:
        """First argv word of every command template."""
        return [c[0] for c in self.commands if c]


class JobStatus(str, Enum):
    SUCCEEDED = "succeeded"
    CACHED = "cached"
    TIMEOUT = "timeout"
    TOOL_FAILURE = "tool-failure"
    MISSING_ARTIFACT = "missing-artifact"


@dataclass(frozen=True)
class JobResult:
    """Terminal outcome of one job."""
    unit_id: str
    tool: str
    status: JobStatus
    artifact: Optional[Path] = None
    returncode: Optional[int] = None
    duration_s: float = 0.0
    message: str = ""
    log_path: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.CACHED)

    def raise_for_status(self) -> "JobResult":
        """Raise the matching UnitFailure if the job failed, else return self."""
        if self.ok:
            return self
        log_path = str(self.log_path) if self.log_path else None
        if self.status == JobStatus.TOOL_FAILURE:
            raise ToolFailureError(self.unit_id, self.message, log_path, returncode=self.returncode)
        raise FAILURE_TYPES[self.status.value](self.unit_id, self.message, log_path)


def expand_command(template: Sequence[str], values: Mapping[str, Any],
                   input_files: Sequence[Path] = ()) -> list[str]:
    """Fill one argv template.

    Raises
    ------
    ConfigurationError
        If the template references an unknown placeholder.
    """
    argv = []
    for token in template:
        if token == INPUT_FILES_TOKEN:
            argv.extend(str(p) for p in input_files)
            continue
        try:
            argv.append(token.format(**values))
        except (KeyError, IndexError) as exc:
            raise ConfigurationError(
                f"Unknown placeholder {exc} in command token {token!r}; "
                f"available: {', '.join(sorted(values))}"
            ) from exc
    return argv


def locate_artifact(job_dir: Path, pattern: str) -> Optional[Path]:
    """First non-empty file under ``job_dir`` matching ``pattern``, or None."""
    matches = sorted(
        p for p in Path(job_dir).glob(pattern)
        if p.is_file() and p.stat().st_size > 0
    )
    return matches[0] if matches else None


def clear_stale_artifacts(spec: JobSpec, keep: Sequence[Path] = ()) -> list[Path]:
    """Delete files in ``spec.job_dir`` matching the artifact glob.

    Run before every execution so that only output of the current attempt
    can be located afterwards. Inputs, paths given in the job context and
    ``keep`` are never deleted.
    """
    protected = {Path(p).resolve() for p in keep}
    protected.update(Path(p).resolve() for p in spec.inputs)
    protected.update(
        Path(v).resolve() for v in spec.context.values()
        if isinstance(v, (str, Path)) and str(v)
    )

    removed = []
    for path in Path(spec.job_dir).glob(spec.artifact_glob):
        if path.is_symlink() or path.is_file():
            if path.resolve() in protected:
                continue
            path.unlink()
            removed.append(path)
    if removed:
        logger.info("%s: removed %d artifact(s) of a previous attempt", spec.unit_id, len(removed))
    return removed


def _validation_error(spec: JobSpec, artifact: Path) -> Optional[str]:
    """Message describing why ``artifact`` is unusable, or None if it is fine."""
    if spec.validator is None:
        return None
    try:
        spec.validator(artifact)
    except CladeflowError as exc:
        return getattr(exc, "message", str(exc))
    return None


def _child_environment(ceiling: ResourceCeiling) -> dict:
    env = dict(os.environ)
    for name in THREAD_PINNED_VARIABLES:
        env[name] = "1"
    env["MALLOC_ARENA_MAX"] = str(ceiling.malloc_arena_max)
    return env


def _limited_argv(argv: Sequence[str], ceiling: ResourceCeiling) -> list[str]:
    wrapper = [sys.executable, "-m", "cladeflow.execution.limits",
               "--memory-bytes", str(ceiling.memory_bytes)]
    if ceiling.core_dumps:
        wrapper.append("--allow-core")
    return wrapper + ["--"] + list(argv)


def _kill_process_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    proc.wait()


class BoundedJobRunner:
    """Runs JobSpecs under their resource ceilings.

    Parameters
    ----------
    tracker : UnitTracker, optional
        Checkpoint store. When given, a unit already completed with the same
        fingerprint and an existing artifact is not executed again, and every
        outcome is recorded.

    Example usage::

        runner = BoundedJobRunner(tracker)
        result = runner.run(spec)
        result.raise_for_status()
        print(result.artifact)
    """

    def __init__(self, tracker=None):
        self.tracker = tracker

    def run(self, spec: JobSpec) -> JobResult:
        """Execute ``spec`` to a terminal JobResult. Never raises for tool failures."""
        job_dir = Path(spec.job_dir)
        job_dir.mkdir(parents=True, exist_ok=True)
        log_path = job_dir / f"{spec.tool}.log"

        values = spec.placeholders()
        commands = [expand_command(t, values, spec.inputs) for t in spec.commands]
        fingerprint = spec.fingerprint()

        if self.tracker is not None and not self.tracker.should_run(spec.unit_id, fingerprint):
            record = self.tracker.get_unit_status(spec.unit_id)
            artifact = Path(record["artifact_path"])
            problem = _validation_error(spec, artifact)
            if problem is None:
                logger.info("↷ %s: checkpoint hit, skipping %s", spec.unit_id, spec.tool)
                return JobResult(
                    spec.unit_id, spec.tool, JobStatus.CACHED,
                    artifact=artifact, log_path=log_path,
                )
            logger.warning("%s: checkpointed artifact %s is unusable (%s), re-running",
                           spec.unit_id, artifact, problem)

        if self.tracker is not None:
            self.tracker.mark_started(spec.unit_id, spec.tool, fingerprint, log_path=log_path)

        clear_stale_artifacts(spec, keep=[log_path])

        logger.info("▶ %s: running %s (%.1f GB, %d CPUs, %.0f min)",
                    spec.unit_id, spec.tool, spec.ceiling.memory_gb,
                    spec.ceiling.cpus, spec.ceiling.timeout_minutes)
        start = time.monotonic()
        result = self._execute(spec, commands, log_path, start)

        if result.ok:
            problem = _validation_error(spec, result.artifact)
            if problem is not None:
                result = replace(result, status=JobStatus.MISSING_ARTIFACT,
                                 message=f"unusable artifact {result.artifact}: {problem}")

        if self.tracker is not None:
            if result.ok:
                self.tracker.mark_completed(spec.unit_id, result.artifact, result.duration_s)
            else:
                self.tracker.mark_failed(spec.unit_id, result.status.value, result.message,
                                         result.duration_s)

        if result.ok:
            logger.info("✓ %s: %s finished in %.1fs -> %s",
                        spec.unit_id, spec.tool, result.duration_s, result.artifact)
        else:
            logger.error("✗ %s: %s %s (%s); see %s",
                         spec.unit_id, spec.tool, result.status.value, result.message, log_path)
        return result

    def _execute(self, spec: JobSpec, commands: list[list[str]], log_path: Path,
                 start: float) -> JobResult:
        deadline = start + spec.ceiling.timeout_seconds
        env = _child_environment(spec.ceiling)

        def finish(status, message="", returncode=None, artifact=None):
            return JobResult(
                spec.unit_id, spec.tool, status, artifact=artifact, returncode=returncode,
                duration_s=time.monotonic() - start, message=message, log_path=log_path,
            )

        with open(log_path, "a") as log:
            for argv in commands:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return finish(JobStatus.TIMEOUT,
                                  f"timed out after {spec.ceiling.timeout_minutes:g} min")

                log.write(f"$ {' '.join(argv)}\n")
                log.flush()
                proc = subprocess.Popen(
                    _limited_argv(argv, spec.ceiling),
                    cwd=spec.job_dir,
                    env=env,
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
                try:
                    returncode = proc.wait(timeout=remaining)
                except subprocess.TimeoutExpired:
                    _kill_process_group(proc)
                    return finish(JobStatus.TIMEOUT,
                                  f"timed out after {spec.ceiling.timeout_minutes:g} min")

                if returncode == NOT_FOUND_EXIT:
                    return finish(JobStatus.TOOL_FAILURE, f"executable not found: {argv[0]}",
                                  returncode)
                if returncode == NOT_EXECUTABLE_EXIT:
                    return finish(JobStatus.TOOL_FAILURE, f"not executable: {argv[0]}",
                                  returncode)
                if returncode != 0:
                    if returncode < 0:
                        message = f"{argv[0]} killed by signal {-returncode}"
                    else:
                        message = f"{argv[0]} exited with status {returncode}"
                    return finish(JobStatus.TOOL_FAILURE, message, returncode)

        artifact = locate_artifact(spec.job_dir, spec.artifact_glob)
        if artifact is None:
            return finish(JobStatus.MISSING_ARTIFACT,
                          f"no non-empty file matching '{spec.artifact_glob}' in {spec.job_dir}",
                          0)
        return finish(JobStatus.SUCCEEDED, returncode=0, artifact=artifact)
