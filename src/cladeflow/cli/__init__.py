"""Command-line interface modules for cladeflow execution.

This package contains core execution logic, making scripts/ optional and deletable.
"""

from cladeflow.cli.run_workflow import run_workflow, main

__all__ = ['run_workflow', 'main']
