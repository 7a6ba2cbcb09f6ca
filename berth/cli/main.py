# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Berth CLI: multi-command entry point.

Every container command is available both at the top level
(``berth run``) and under the ``container`` group
(``berth container run``).  Global flags:

* ``--debug``: log at DEBUG level to stderr
* ``--workdir``: directory used for project discovery

Exit codes: 0 on success, 1 on errors (reported as ``Error: ...`` on
stderr), the process exit code for interactive sessions that end
non-zero, and 130 on interrupt.
"""

import argparse
import logging
import sys
from pathlib import Path

from berth import __version__
from berth.cli.commands import (
    TOP_LEVEL_COMMANDS,
    register_container_commands,
)
from berth.cli.env import CommandEnv
from berth.errors import (
    BerthError,
    CommandInterrupted,
    ExitError,
    PartialError,
    SilentError,
)
from berth.logging import configure_logging


logger = logging.getLogger(__name__)

#: Exit code for interrupted commands (128 + SIGINT).
EXIT_INTERRUPTED = 130

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    """Build the complete argument parser."""
    parser = argparse.ArgumentParser(
        prog="berth",
        description="Project-aware, Docker-compatible container CLI",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--workdir",
        dest="project_dir",
        type=Path,
        default=None,
        metavar="PATH",
        help="Directory used to discover the project (default: cwd)",
    )
    parser.add_argument(
        "--version", action="version", version=f"berth {__version__}"
    )
    subparsers = parser.add_subparsers(metavar="COMMAND")
    register_container_commands(subparsers)
    for module in TOP_LEVEL_COMMANDS:
        module.register(subparsers)

    container = subparsers.add_parser("container", help="Manage containers")
    container.set_defaults(help_parser=container)
    register_container_commands(
        container.add_subparsers(metavar="COMMAND")
    )
    parser.set_defaults(help_parser=parser)
    return parser


def main(
    argv: list[str] | None = None, env: CommandEnv | None = None
) -> int:
    """Parse *argv*, run the selected command and map its outcome.

    Args:
        argv: Command-line arguments without the program name.
        env: Command environment; defaults to the real process stdio,
            engine and terminal.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "handler", None)
    if handler is None:
        args.help_parser.print_help()
        return 0

    configure_logging(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format_string=_LOG_FORMAT,
    )
    if env is None:
        env = CommandEnv(workdir=args.project_dir)
    elif args.project_dir is not None:
        env.workdir = args.project_dir

    try:
        return handler(args, env)
    except ExitError as e:
        return e.code
    except SilentError:
        return 1
    except PartialError as e:
        logger.debug("Bulk command failed: %s", e)
        if e.summary:
            env.io.error(f"Error: {e.summary}")
        return 1
    except (KeyboardInterrupt, CommandInterrupted):
        logger.debug("Interrupted")
        return EXIT_INTERRUPTED
    except BerthError as e:
        logger.debug("Command failed", exc_info=True)
        env.io.error(f"Error: {e}")
        return 1
    finally:
        env.ctx.cancel()
        env.close()


def cli() -> None:
    """Entry point for the ``berth`` console script."""
    sys.exit(main(sys.argv[1:]))
