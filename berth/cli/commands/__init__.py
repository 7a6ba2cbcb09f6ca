# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Command handlers.

Each module exposes ``register(subparsers)``, which adds its parsers
and binds a ``cmd_*(args, env) -> int`` handler via ``set_defaults``.
"""

from berth.cli.commands import (
    cp,
    execute,
    image,
    inspect,
    lifecycle,
    run,
    stats,
)
from berth.cli.commands._common import Subparsers


#: Modules registering container commands, in help order.
CONTAINER_COMMANDS = (run, execute, cp, inspect, stats, lifecycle)

#: Modules registering top-level-only commands.
TOP_LEVEL_COMMANDS = (image,)


def register_container_commands(subparsers: Subparsers) -> None:
    for module in CONTAINER_COMMANDS:
        module.register(subparsers)


__all__ = [
    "CONTAINER_COMMANDS",
    "TOP_LEVEL_COMMANDS",
    "register_container_commands",
]
