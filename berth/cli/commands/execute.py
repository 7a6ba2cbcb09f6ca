# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""``exec``: run a command in a running container."""

import argparse

from berth.cli.commands._common import Subparsers, add_agent_flag
from berth.cli.env import CommandEnv
from berth.engine.client import ExecConfig
from berth.errors import InvalidArgumentError
from berth.session import ExecSession, start_detached_exec


def register(subparsers: Subparsers) -> None:
    parser = subparsers.add_parser(
        "exec", help="Execute a command in a running container"
    )
    add_agent_flag(parser)
    parser.add_argument(
        "-d",
        "--detach",
        action="store_true",
        help="Run in the background and print the exec ID",
    )
    parser.add_argument(
        "-i",
        "--interactive",
        action="store_true",
        help="Keep stdin open",
    )
    parser.add_argument(
        "-t", "--tty", action="store_true", help="Allocate a pseudo-TTY"
    )
    parser.add_argument(
        "-e",
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Set environment variables",
    )
    parser.add_argument(
        "-w",
        "--workdir",
        dest="container_workdir",
        help="Working directory inside the container",
    )
    parser.add_argument("-u", "--user", default="", help="Username or UID")
    parser.add_argument(
        "--privileged",
        action="store_true",
        help="Give extended privileges to the command",
    )
    parser.add_argument(
        "--detach-keys",
        metavar="KEYS",
        help="Key sequence for detaching",
    )
    parser.add_argument("container", metavar="CONTAINER")
    parser.add_argument("command", nargs=argparse.REMAINDER)
    parser.set_defaults(handler=cmd_exec)


def cmd_exec(args: argparse.Namespace, env: CommandEnv) -> int:
    """Run a command in a container.

    Returns:
        0 on success or detach.

    Raises:
        InvalidArgumentError: If no command is given.
        ContainerNotRunningError: If the container is not running.
        ExitError: If the command exits non-zero.
    """
    if not args.command:
        raise InvalidArgumentError("exec requires a command")
    ref = env.container_ref(args.container, args.agent)
    config = ExecConfig(
        cmd=list(args.command),
        env=list(args.env),
        workdir=args.container_workdir,
        user=args.user,
        privileged=args.privileged,
        tty=args.tty,
        attach_stdin=args.interactive and not args.detach,
        detach_keys=args.detach_keys,
    )

    if args.detach:
        exec_id = start_detached_exec(env.engine, ref, config)
        env.io.print(exec_id)
        return 0

    session = ExecSession(
        env.engine,
        ref,
        config,
        env.session_streams(),
        env.terminal,
        env.ctx,
        detach_keys=args.detach_keys,
    )
    session.run().raise_for_status()
    return 0
