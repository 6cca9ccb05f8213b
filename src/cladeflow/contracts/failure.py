"""Centralized failure policy for contract violations.

Contracts fail fast, loud, and once. All violations raise the same
exception type, allowing caller to handle pipeline bugs uniformly.
"""

from enum import Enum


class FailurePolicy(str, Enum):
    """Failure policy per workflow scope.

    FAIL_FAST: any failure aborts the whole run (configuration, chunk
    clustering, merging).

    ISOLATE: a failure is recorded against its own unit of work and the
    run continues (per-group downstream pipeline).
    """
    FAIL_FAST = "fail_fast"
    ISOLATE = "isolate"


class ContractViolation(RuntimeError):
    """Raised when a pipeline contract is violated.

    This indicates a bug in pipeline logic or a tool producing output that
    breaks a stage invariant (for example the same sample clustered twice).
    It is not bad user input and not a recoverable tool failure.

    Key distinction:
    - ConfigurationError: User/config error (caught before any unit runs)
    - UnitFailure: External tool timed out, failed or produced nothing
    - ContractViolation: Stage invariant broken
    """
    pass
