#!/usr/bin/env python3
"""cladeflow workflow runner.

Usage:
    python scripts/run_cladeflow.py scripts/user_config.py
    python scripts/run_cladeflow.py scripts/user_config.py --input /data/assemblies
    python scripts/run_cladeflow.py scripts/user_config.py --chunk-size 100 --max-workers 2

Note: User config in scripts/user_config.py, expert defaults in cladeflow.schemas.param
"""

import sys

from cladeflow.cli.run_workflow import main


if __name__ == "__main__":
    sys.exit(main())
