"""Resource profile selection for clustering invocations.

Large inputs crash the clustering engine through unbounded memory growth.
The profile shrinks the sketch, narrows the k-mer range and lowers the
batch unit as the sample count grows, and scales the memory ceiling of the
invocation.
"""

import math
from dataclasses import dataclass

__all__ = [
    'ResourceProfile',
    'PROFILE_TIERS',
    'select_resource_profile',
    'recommend_chunking',
]


@dataclass(frozen=True)
class ResourceProfile:
    """Tuned clustering knobs for one invocation.

    Attributes
    ----------
    tier : str
        ``default``, ``moderate``, ``conservative`` or ``most_conservative``.
    sketch_size : int
        Sketch size passed to the engine.
    min_k, max_k, k_step : int
        k-mer range.
    batch_size : int
        Batch unit for engines that sketch or fit in batches.
    ceiling_scale : float
        Multiplier applied to the configured clustering memory ceiling.
    """
    tier: str
    sketch_size: int
    min_k: int
    max_k: int
    k_step: int
    batch_size: int
    ceiling_scale: float

    def as_placeholders(self) -> dict:
        """Values available to command templates."""
        return {
            "profile_tier": self.tier,
            "sketch_size": self.sketch_size,
            "min_k": self.min_k,
            "max_k": self.max_k,
            "k_step": self.k_step,
            "batch_size": self.batch_size,
        }


DEFAULT_PROFILE = ResourceProfile("default", 10000, 13, 29, 4, 1000, 1.0)
MODERATE_PROFILE = ResourceProfile("moderate", 5000, 15, 27, 4, 250, 1.0)
CONSERVATIVE_PROFILE = ResourceProfile("conservative", 2500, 15, 25, 5, 100, 1.25)
MOST_CONSERVATIVE_PROFILE = ResourceProfile("most_conservative", 1000, 17, 25, 4, 50, 1.5)

# (exclusive lower bound on sample count, profile), checked from the top
PROFILE_TIERS = (
    (300, MOST_CONSERVATIVE_PROFILE),
    (200, CONSERVATIVE_PROFILE),
    (100, MODERATE_PROFILE),
    (0, DEFAULT_PROFILE),
)


def select_resource_profile(n_samples: int) -> ResourceProfile:
    """Select the clustering profile for an input of ``n_samples`` samples.

    Parameters
    ----------
    n_samples : int
        Number of samples in the invocation (a chunk's size, or the whole
        dataset when chunking is disabled). Must be positive.

    Returns
    -------
    ResourceProfile
        ``most_conservative`` above 300, ``conservative`` for 201-300,
        ``moderate`` for 101-200 and ``default`` up to 100.

    Raises
    ------
    ValueError
        If ``n_samples`` is not a positive int. This is a caller bug.

    Examples
    --------
    >>> select_resource_profile(100).tier
    'default'
    >>> select_resource_profile(301).tier
    'most_conservative'
    """
    if isinstance(n_samples, bool) or not isinstance(n_samples, int):
        raise ValueError(f"n_samples must be an int, got {type(n_samples).__name__}")
    if n_samples <= 0:
        raise ValueError(f"n_samples must be positive, got {n_samples}")

    for lower_bound, profile in PROFILE_TIERS:
        if n_samples > lower_bound:
            return profile
    raise AssertionError("unreachable: tier table has a zero lower bound")


def recommend_chunking(n_files: int, chunk_size: int) -> list[str]:
    """Advisory lines about dataset size, logged at start-up.

    ``chunk_size`` of 0 means chunking is disabled.
    """
    lines = []
    if n_files > 300:
        lines.append(f"Large dataset detected ({n_files} files)")
        if chunk_size == 0 or chunk_size > 150:
            lines.append("Consider chunked clustering with at most 100-150 files per chunk")
    elif n_files > 200:
        lines.append(f"Medium-large dataset ({n_files} files): conservative parameters in use")
        if chunk_size == 0:
            lines.append("Consider chunked clustering if the engine still crashes")
    else:
        lines.append(f"Manageable dataset size ({n_files} files)")

    if chunk_size > 0:
        n_chunks = math.ceil(n_files / chunk_size)
        lines.append(f"Will process in {n_chunks} chunk(s) of max {chunk_size} files each")
    else:
        lines.append("Chunking disabled: clustering the whole dataset in one invocation")
    return lines
