"""Error taxonomy for the workflow.

Where each error is raised decides how far it propagates:

- ConfigurationError: raised before any unit runs, aborts the run.
- UnitFailure subclasses: raised for one external-tool unit. At chunk level
  they abort the run; at group level they are caught by the scheduler and
  recorded on that group only.
- InsufficientDataWarning: a valid terminal outcome, never raised.
"""

from typing import Optional

# Exit statuses of the resource trampoline when the tool cannot be started
NOT_FOUND_EXIT = 127
NOT_EXECUTABLE_EXIT = 126


class CladeflowError(Exception):
    """Base class for all workflow errors."""


class ConfigurationError(CladeflowError, ValueError):
    """Invalid parameters or inputs, detected before any unit runs."""


class UnitFailure(CladeflowError):
    """A single external-tool unit reached a terminal failure."""

    tag = "unit-failure"

    def __init__(self, unit_id: str, message: str, log_path: Optional[str] = None):
        super().__init__(f"[{unit_id}] {message}")
        self.unit_id = unit_id
        self.message = message
        self.log_path = log_path


class JobTimeoutError(UnitFailure, TimeoutError):
    """Unit exceeded its wall-clock budget and was killed."""

    tag = "timeout"


class ToolFailureError(UnitFailure):
    """External tool exited with a nonzero status."""

    tag = "tool-failure"

    def __init__(self, unit_id: str, message: str, log_path: Optional[str] = None,
                 returncode: Optional[int] = None):
        super().__init__(unit_id, message, log_path)
        self.returncode = returncode


class MissingArtifactError(UnitFailure):
    """Tool reported success but the expected output is absent or unusable."""

    tag = "missing-artifact"


class ChunkClusteringError(CladeflowError):
    """One or more chunks failed; the global clustering cannot be trusted."""

    def __init__(self, failures: dict):
        self.failures = dict(failures)
        details = ", ".join(
            f"chunk {chunk_id}: {exc.tag}" for chunk_id, exc in sorted(self.failures.items())
        )
        super().__init__(f"{len(self.failures)} chunk(s) failed to cluster ({details})")


class InsufficientDataWarning(UserWarning):
    """Group had too few sequences after filtering to build a tree."""


FAILURE_TYPES = {
    JobTimeoutError.tag: JobTimeoutError,
    ToolFailureError.tag: ToolFailureError,
    MissingArtifactError.tag: MissingArtifactError,
}
