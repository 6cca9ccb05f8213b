"""Core workflow execution logic.

This module contains the actual workflow runner, separated from argument
parsing. Scripts are thin wrappers; this is the real implementation.

Exit codes
----------
0  every group finished (DONE or DONE_WITH_WARNING)
1  at least one group FAILED
2  configuration error; nothing was executed
3  chunk clustering aborted the run
"""

import argparse
import json
import logging
import sys
from argparse import Namespace
from typing import Any, Dict, Optional

from cladeflow.errors import ChunkClusteringError, ConfigurationError
from cladeflow.pipeline.orchestrator import WorkflowOrchestrator
from cladeflow.schemas.initialization import init_runtime_config

__all__ = [
    'run_workflow',
    'main',
    'EXIT_OK',
    'EXIT_GROUP_FAILED',
    'EXIT_CONFIGURATION_ERROR',
    'EXIT_CLUSTERING_ABORTED',
]

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_GROUP_FAILED = 1
EXIT_CONFIGURATION_ERROR = 2
EXIT_CLUSTERING_ABORTED = 3


def run_workflow(
    user_config_path: Optional[str] = None,
    cli_args: Optional[Dict[str, Any]] = None,
    rerun: bool = False,
    verbose: bool = False,
) -> int:
    """Execute the chunked clustering workflow.

    This is the core execution function. It:
    1. Loads and resolves configuration (Param < User < CLI)
    2. Optionally cleans the base directory if rerun=True
    3. Sets up output directories and persists the runtime config
    4. Runs the orchestrator to completion

    Parameters
    ----------
    user_config_path : str, optional
        Path to user config file (Python file with CONFIG dict).
    cli_args : dict, optional
        CLI overrides. Keys: input, base_dir, chunk_size, max_workers.
        All optional.
    rerun : bool, optional
        If True, delete the base directory (and all checkpoints) first.
    verbose : bool, optional
        If True, enable DEBUG logging and print the resolved config.

    Returns
    -------
    int
        Process exit code (see module docstring).

    Examples
    --------
    Run with a user config only::

        run_workflow("scripts/user_config.py")

    Run with CLI overrides::

        run_workflow(
            "scripts/user_config.py",
            cli_args={"input": "/data/assemblies", "chunk_size": 100},
        )
    """
    args = Namespace(config=user_config_path, rerun=rerun, verbose=verbose, **(cli_args or {}))

    try:
        config = init_runtime_config(args)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION_ERROR

    print(f"\n{'='*60}")
    print("cladeflow chunked clustering workflow")
    print('='*60)
    print(f"Config: {user_config_path or '-'}")
    print(f"Input:  {config.input}")
    print(f"Chunks: {config.chunking.chunk_size or 'disabled'}")
    print(f"Output: {config.base_dir}")
    print('='*60)

    if verbose:
        print("\nFull Internal Configuration:")
        print(json.dumps(config.model_dump(), indent=2, default=str))
        print('='*60)

    orchestrator = WorkflowOrchestrator(config)
    try:
        result = orchestrator.run()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION_ERROR
    except ChunkClusteringError as exc:
        print(f"Clustering aborted: {exc}", file=sys.stderr)
        return EXIT_CLUSTERING_ABORTED

    return EXIT_OK if result.success else EXIT_GROUP_FAILED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cladeflow",
        description="Chunked clustering and per-cluster phylogenetics workflow",
    )
    parser.add_argument("config", nargs="?", help="Path to user config file (Python, CONFIG dict)")
    parser.add_argument("-i", "--input", help="Directory of assemblies or sample<TAB>path manifest")
    parser.add_argument("-o", "--base-dir", help="Output directory")
    parser.add_argument("--chunk-size", type=int, help="Max samples per chunk (0 disables chunking)")
    parser.add_argument("--max-workers", type=int, help="Max concurrently running units")
    parser.add_argument("--rerun", action="store_true",
                        help="Delete the output directory (and checkpoints) before running")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    cli_args = {
        "input": args.input,
        "base_dir": args.base_dir,
        "chunk_size": args.chunk_size,
        "max_workers": args.max_workers,
    }
    return run_workflow(
        args.config,
        cli_args={k: v for k, v in cli_args.items() if v is not None},
        rerun=args.rerun,
        verbose=args.verbose,
    )


if __name__ == "__main__":
    sys.exit(main())
