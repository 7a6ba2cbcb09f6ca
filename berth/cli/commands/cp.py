# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""``cp``: copy files between a container and the host."""

import argparse
from dataclasses import replace

from berth.cli.commands._common import Subparsers
from berth.cli.env import CommandEnv
from berth.cp import (
    STDIO_PATH,
    CopyOptions,
    Direction,
    plan_copy,
    run_copy,
)


_DESCRIPTION = """\
Copy files/folders between a container and the local filesystem.

Use '-' as the destination to write a tar archive of the container source
to stdout.  Use '-' as the source to read a tar archive from stdin and
extract it in the container.

Container path format: CONTAINER:PATH (or :PATH with --container).
"""


def register(subparsers: Subparsers) -> None:
    parser = subparsers.add_parser(
        "cp",
        help="Copy files/folders between a container and the host",
        description=_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--agent",
        action="store_true",
        help="Treat container names as agent names",
    )
    parser.add_argument(
        "-c",
        "--container",
        metavar="NAME",
        help="Container for arguments written as :PATH",
    )
    parser.add_argument(
        "-a",
        "--archive",
        action="store_true",
        help="Archive mode (copy all uid/gid information)",
    )
    parser.add_argument(
        "-L",
        "--follow-link",
        action="store_true",
        help="Always follow symbol links in SRC_PATH",
    )
    parser.add_argument(
        "--copy-uidgid",
        action="store_true",
        help="Copy UID/GID from source to destination (same as -a)",
    )
    parser.add_argument("src", metavar="SRC")
    parser.add_argument("dest", metavar="DEST")
    parser.set_defaults(handler=cmd_cp)


def cmd_cp(args: argparse.Namespace, env: CommandEnv) -> int:
    """Copy between the host and a container.

    Raises:
        BothSidesContainerError: If both arguments name containers.
        BothSidesHostError: If neither argument names a container.
        SourceMissingError: If the source does not exist.
    """
    plan = plan_copy(args.src, args.dest, default_container=args.container)
    plan = replace(
        plan, container=env.container_ref(plan.container, args.agent)
    )
    stdio = plan.host_path == STDIO_PATH
    to_container = plan.direction is Direction.TO_CONTAINER
    options = CopyOptions(
        follow_link=args.follow_link,
        copy_uid_gid=args.archive or args.copy_uidgid,
    )
    run_copy(
        env.engine,
        plan,
        stdin=env.io.stdin_binary if stdio and to_container else None,
        stdout=env.io.stdout_binary if stdio and not to_container else None,
        options=options,
    )
    return 0
