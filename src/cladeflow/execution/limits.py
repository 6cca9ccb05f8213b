"""Exec trampoline that installs resource limits before running a tool.

The runner launches every external tool as::

    python -m cladeflow.execution.limits --memory-bytes N [--allow-core] -- tool args...

The limits are applied in this short-lived process and inherited through
``execvp``. Setting them here instead of in a ``preexec_fn`` keeps process
creation safe when many jobs are spawned from worker threads.
"""

import argparse
import os
import resource
import sys

from cladeflow.errors import NOT_EXECUTABLE_EXIT, NOT_FOUND_EXIT


def _clamp_to_hard(limit: int, resource_id: int) -> tuple[int, int]:
    """Return (soft, hard) no larger than the current hard limit."""
    _, hard = resource.getrlimit(resource_id)
    if hard != resource.RLIM_INFINITY:
        limit = min(limit, hard)
    return limit, limit


def apply_limits(memory_bytes: int, allow_core: bool = False) -> None:
    """Install the address-space cap and disable core dumps for this process."""
    if memory_bytes > 0:
        resource.setrlimit(resource.RLIMIT_AS, _clamp_to_hard(memory_bytes, resource.RLIMIT_AS))
    if not allow_core:
        resource.setrlimit(resource.RLIMIT_CORE, (0, 0))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="cladeflow.execution.limits")
    parser.add_argument("--memory-bytes", type=int, required=True)
    parser.add_argument("--allow-core", action="store_true")
    parser.add_argument("command", nargs=argparse.REMAINDER)
    args = parser.parse_args(argv)

    command = args.command
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        parser.error("no command given")

    apply_limits(args.memory_bytes, args.allow_core)

    try:
        os.execvp(command[0], command)
    except FileNotFoundError:
        print(f"cladeflow: executable not found: {command[0]}", file=sys.stderr)
        return NOT_FOUND_EXIT
    except PermissionError:
        print(f"cladeflow: permission denied: {command[0]}", file=sys.stderr)
        return NOT_EXECUTABLE_EXIT
    return 0  # not reached; execvp replaces the process


if __name__ == "__main__":
    sys.exit(main())
