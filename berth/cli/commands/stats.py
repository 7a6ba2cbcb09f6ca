# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""``stats``: live resource usage."""

import argparse

from berth.cli.commands._common import Subparsers, add_agent_flag
from berth.cli.env import CommandEnv
from berth.stats import stats_once, stats_stream


def register(subparsers: Subparsers) -> None:
    parser = subparsers.add_parser(
        "stats", help="Display a live stream of resource usage statistics"
    )
    add_agent_flag(parser)
    parser.add_argument(
        "--no-stream",
        action="store_true",
        help="Print one sample and exit",
    )
    parser.add_argument(
        "--no-trunc", action="store_true", help="Do not truncate IDs"
    )
    parser.add_argument("containers", nargs="*", metavar="CONTAINER")
    parser.set_defaults(handler=cmd_stats)


def _running_names(env: CommandEnv) -> list[str]:
    names = []
    for container in env.engine.list_containers():
        container_names = container.get("Names") or []
        if container_names:
            names.append(container_names[0].removeprefix("/"))
        else:
            names.append(container["Id"])
    return names


def cmd_stats(args: argparse.Namespace, env: CommandEnv) -> int:
    """Show statistics for the given or all running containers.

    Raises:
        PartialError: In ``--no-stream`` mode, if any container failed.
        BerthError: In streaming mode, if no container resolves.
    """
    if args.containers:
        refs = env.container_refs(args.containers, args.agent)
    else:
        refs = _running_names(env)
        if not refs:
            env.io.error("No running containers")
            return 0

    if args.no_stream:
        stats_once(
            env.engine,
            refs,
            env.io.stdout,
            env.io.stderr,
            no_trunc=args.no_trunc,
        )
        return 0

    stats_stream(
        env.engine,
        refs,
        env.io.stdout,
        env.io.stderr,
        env.ctx,
        no_trunc=args.no_trunc,
    )
    return 0
