"""`cladeflow` - Chunked clustering and per-clade phylogenomics orchestration.

Subpackages:
- clustering: Profiles, partitioning, chunk clustering, merging, group resolution
- execution: Resource-bounded external tool runner
- pipeline: Orchestrator, per-group scheduler, unit tracking
- schemas: Pydantic configuration
- contracts: Stage invariants
"""

__version__ = "0.1.0"
