# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Command-line surface of berth."""

from berth.cli.env import CommandEnv
from berth.cli.iostreams import ColorScheme, IOStreams, use_color
from berth.cli.main import build_parser, cli, main


__all__ = [
    # Entry points
    "build_parser",
    "cli",
    "main",
    # Plumbing
    "ColorScheme",
    "CommandEnv",
    "IOStreams",
    "use_color",
]
