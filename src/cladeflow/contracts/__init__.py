"""Pipeline contracts: fail-fast enforcement of stage invariants.

Contracts fail immediately and loudly when pipeline stages don't produce
their promised invariants.

Key principle:
- Pydantic validates config correctness
- Contracts validate pipeline correctness
- The runner and scheduler handle external tool failures
"""

from cladeflow.contracts.failure import ContractViolation, FailurePolicy
from cladeflow.contracts.base import require
from cladeflow.contracts.partition import assert_partitioned
from cladeflow.contracts.clusters import assert_merged, assert_admissible

__all__ = [
    "ContractViolation",
    "FailurePolicy",
    "require",
    "assert_partitioned",
    "assert_merged",
    "assert_admissible",
]
