"""Command line front end.

    python -m process_executer [--timeout S] [--merge] [--no-raise] [--quiet]
                               [--cwd DIR] -- COMMAND [ARGS...]

Runs the command with its output captured, echoes the captured output and
exits with the child's status:

    exit code N        the child exited with N
    128 + signal       the child was killed by a signal
    124                the deadline elapsed
    127                the command could not be started
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from .api import run_with_capture
from .config import get_config
from .errors import ArgumentError, CommandError, SpawnError
from .logs import NULL_LOGGER, setup_logging
from .result import Result

__all__ = ["main", "parse_args", "exit_status"]

logger = logging.getLogger(__name__)

EXIT_TIMEOUT = 124
EXIT_SPAWN_FAILED = 127
EXIT_SIGNAL_BASE = 128
EXIT_USAGE = 2


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="process-executer",
        description="Run a command with a timeout and report how it ended.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds before the command is killed (0 = no timeout)",
    )
    parser.add_argument(
        "--merge",
        action="store_true",
        help="Merge stderr into stdout",
    )
    parser.add_argument(
        "--no-raise",
        action="store_true",
        help="Do not report a failing command as an error",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not echo output or the status summary",
    )
    parser.add_argument(
        "--cwd",
        default=None,
        help="Working directory of the command",
    )
    parser.add_argument(
        "command",
        nargs=argparse.REMAINDER,
        help="Command and arguments, after --",
    )
    args = parser.parse_args(argv)
    if args.command and args.command[0] == "--":
        args.command = args.command[1:]
    if not args.command:
        parser.error("no command given")
    return args


def exit_status(result: Result) -> int:
    """Map a Result to a shell-style exit status."""
    if result.timed_out:
        return EXIT_TIMEOUT
    if result.signal is not None:
        return EXIT_SIGNAL_BASE + result.signal
    return result.exit_code if result.exit_code is not None else 1


def _echo(result: Result) -> None:
    if result.stdout:
        sys.stdout.write(result.stdout)
        sys.stdout.flush()
    if result.stderr:
        sys.stderr.write(result.stderr)
        sys.stderr.flush()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the ``process-executer`` console script."""
    args = parse_args(argv)
    config = get_config()
    setup_logging(config)
    logger.debug(f"Starting process-executer: {config}")

    options = {
        "timeout": args.timeout,
        "merge_output": args.merge,
        "raise_errors": not args.no_raise,
        "logger": NULL_LOGGER if args.quiet else logging.getLogger("process_executer.command"),
        "cwd": args.cwd,
    }

    try:
        result = run_with_capture(*args.command, **options)
    except ArgumentError as e:
        print(f"process-executer: {e}", file=sys.stderr)
        return EXIT_USAGE
    except SpawnError as e:
        print(f"process-executer: {e}", file=sys.stderr)
        return EXIT_SPAWN_FAILED
    except CommandError as e:
        if not args.quiet:
            _echo(e.result)
            print(f"process-executer: {e.kind.value}: {e}", file=sys.stderr)
        return exit_status(e.result)

    if not args.quiet:
        _echo(result)
    return exit_status(result)
