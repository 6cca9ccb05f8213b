"""cladeflow User Configuration.

This is the user-facing configuration file. Modify settings here to customize
the workflow. Advanced settings (command templates, artifact globs) can be
overridden in the nested "tools" section; defaults live in
cladeflow.schemas.param.

Usage:
    python scripts/run_cladeflow.py scripts/user_config.py
    python scripts/run_cladeflow.py scripts/user_config.py --chunk-size 100
    python scripts/run_cladeflow.py scripts/user_config.py --rerun
"""

CONFIG = {
    # ========================================================================
    # INPUT & OUTPUT
    # ========================================================================
    "INPUT_DIR": "./assemblies",     # Directory of *.fasta/*.fa/*.fas, or sample<TAB>path manifest
    "BASE_DIR": "./cladeflow_results",  # All outputs go here

    # ========================================================================
    # CHUNKING
    # ========================================================================
    "CHUNK_SIZE": 150,        # Max files per clustering chunk (0 = no chunking)
    "MIN_GROUP_SIZE": 3,      # Clusters with fewer resolved members are skipped

    # ========================================================================
    # CONCURRENCY & CAPACITY
    # ========================================================================
    "MAX_WORKERS": 4,         # Upper bound on concurrent units
    "TOTAL_MEMORY_GB": None,  # None = detect host memory
    "TOTAL_CPUS": None,       # None = detect host CPUs

    # ========================================================================
    # TOOL RESOURCES
    # ========================================================================
    "POPPUNK_THREADS": 8,
    "POPPUNK_MEMORY_GB": 32,  # Scaled up for conservative profiles, capped at capacity
    "POPPUNK_TIMEOUT_MINUTES": 720,
    "PANAROO_THREADS": 16,
    "GUBBINS_THREADS": 8,
    "IQTREE_THREADS": 4,
    "STAGE_TIMEOUT_MINUTES": 720,

    "LOG_LEVEL": "INFO",
}
