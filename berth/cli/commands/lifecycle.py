# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Container lifecycle commands.

``stop``, ``restart``, ``kill``, ``pause``, ``unpause``, ``rm`` and
``wait`` accept several containers, report each one and fail with a
``PartialError`` if any of them failed.
"""

import argparse

from berth.cli.commands._common import Subparsers, add_agent_flag, run_bulk
from berth.cli.env import CommandEnv
from berth.engine.client import ContainerRef, WaitCondition
from berth.errors import InvalidArgumentError


def _bulk_parser(
    subparsers: Subparsers, name: str, help_text: str
) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(name, help=help_text)
    add_agent_flag(parser)
    return parser


def register(subparsers: Subparsers) -> None:
    stop = _bulk_parser(subparsers, "stop", "Stop one or more containers")
    stop.add_argument(
        "-t",
        "--time",
        type=int,
        default=None,
        help="Seconds to wait before killing the container",
    )
    stop.add_argument("containers", nargs="+", metavar="CONTAINER")
    stop.set_defaults(handler=cmd_stop)

    restart = _bulk_parser(
        subparsers, "restart", "Restart one or more containers"
    )
    restart.add_argument(
        "-t",
        "--time",
        type=int,
        default=10,
        help="Seconds to wait before killing the container",
    )
    restart.add_argument("containers", nargs="+", metavar="CONTAINER")
    restart.set_defaults(handler=cmd_restart)

    kill = _bulk_parser(subparsers, "kill", "Kill one or more containers")
    kill.add_argument(
        "-s",
        "--signal",
        default=None,
        help="Signal to send (default: SIGKILL)",
    )
    kill.add_argument("containers", nargs="+", metavar="CONTAINER")
    kill.set_defaults(handler=cmd_kill)

    pause = _bulk_parser(
        subparsers, "pause", "Pause all processes in containers"
    )
    pause.add_argument("containers", nargs="+", metavar="CONTAINER")
    pause.set_defaults(handler=cmd_pause)

    unpause = _bulk_parser(
        subparsers, "unpause", "Unpause all processes in containers"
    )
    unpause.add_argument("containers", nargs="+", metavar="CONTAINER")
    unpause.set_defaults(handler=cmd_unpause)

    rm = _bulk_parser(subparsers, "rm", "Remove one or more containers")
    rm.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Force removal of a running container",
    )
    rm.add_argument(
        "-v",
        "--volumes",
        action="store_true",
        help="Remove anonymous volumes of the container",
    )
    rm.add_argument("containers", nargs="+", metavar="CONTAINER")
    rm.set_defaults(handler=cmd_rm)

    wait = _bulk_parser(
        subparsers, "wait", "Block until containers stop; print exit codes"
    )
    wait.add_argument("containers", nargs="+", metavar="CONTAINER")
    wait.set_defaults(handler=cmd_wait)

    rename = _bulk_parser(subparsers, "rename", "Rename a container")
    rename.add_argument("container", metavar="CONTAINER")
    rename.add_argument("new_name", metavar="NEW_NAME")
    rename.set_defaults(handler=cmd_rename)


def cmd_stop(args: argparse.Namespace, env: CommandEnv) -> int:
    return run_bulk(
        env,
        args.containers,
        args.agent,
        lambda c: env.engine.stop(c.id, timeout=args.time),
    )


def cmd_restart(args: argparse.Namespace, env: CommandEnv) -> int:
    return run_bulk(
        env,
        args.containers,
        args.agent,
        lambda c: env.engine.restart(c.id, timeout=args.time),
    )


def cmd_kill(args: argparse.Namespace, env: CommandEnv) -> int:
    return run_bulk(
        env,
        args.containers,
        args.agent,
        lambda c: env.engine.kill(c.id, signal=args.signal),
    )


def cmd_pause(args: argparse.Namespace, env: CommandEnv) -> int:
    return run_bulk(
        env,
        args.containers,
        args.agent,
        lambda c: env.engine.pause(c.id),
    )


def cmd_unpause(args: argparse.Namespace, env: CommandEnv) -> int:
    return run_bulk(
        env,
        args.containers,
        args.agent,
        lambda c: env.engine.unpause(c.id),
    )


def cmd_rm(args: argparse.Namespace, env: CommandEnv) -> int:
    return run_bulk(
        env,
        args.containers,
        args.agent,
        lambda c: env.engine.remove(
            c.id, force=args.force, volumes=args.volumes
        ),
    )


def cmd_wait(args: argparse.Namespace, env: CommandEnv) -> int:
    """Wait for each container and print its exit code."""
    codes: dict[str, int] = {}

    def wait(container: ContainerRef) -> None:
        codes[container.id] = env.engine.wait(
            container.id, WaitCondition.NOT_RUNNING
        )

    return run_bulk(
        env,
        args.containers,
        args.agent,
        wait,
        report=lambda _ref, c: env.io.print(codes[c.id]),
    )


def cmd_rename(args: argparse.Namespace, env: CommandEnv) -> int:
    """Rename a container.

    With ``--agent`` both names are agent names.
    """
    ref = env.container_ref(args.container, args.agent)
    new_name = env.container_ref(args.new_name, args.agent)
    if not new_name:
        raise InvalidArgumentError("new name must not be empty")
    container = env.engine.get_container(ref)
    env.engine.rename(container.id, new_name)
    return 0
