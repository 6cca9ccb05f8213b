"""The one primitive every contract check is built on."""

from cladeflow.contracts.failure import ContractViolation


def require(condition: bool, message: str) -> None:
    """Raise ContractViolation with ``message`` unless ``condition`` holds.

    Used between stages to check what the previous stage promised. A
    violation means a bug in cladeflow, not bad input, so callers never
    catch it.

    Examples
    --------
    >>> require(len(chunks) > 0, "Partition contract: at least one chunk expected")
    >>> require(len(group.members) >= 3, "Group contract: undersized group emitted")
    """
    if not condition:
        raise ContractViolation(message)
