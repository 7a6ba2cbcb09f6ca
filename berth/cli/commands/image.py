# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Image commands: ``build`` and ``rmi``."""

import argparse
import logging
from pathlib import Path

from berth import __version__
from berth.cli.commands._common import Subparsers
from berth.cli.env import CommandEnv
from berth.engine.names import (
    LABEL_MANAGED,
    LABEL_PROJECT,
    LABEL_VERSION,
    MANAGED_LABEL_VALUE,
    image_tag,
)
from berth.errors import BerthError, PartialError


logger = logging.getLogger(__name__)


def register(subparsers: Subparsers) -> None:
    build = subparsers.add_parser("build", help="Build the project image")
    build.add_argument(
        "-t",
        "--tag",
        help="Image tag (default: berth-<project>:latest)",
    )
    build.add_argument(
        "-f",
        "--file",
        dest="dockerfile",
        help="Dockerfile path, relative to the context",
    )
    build.add_argument(
        "--no-cache",
        action="store_true",
        help="Do not use cache when building the image",
    )
    build.add_argument(
        "context",
        nargs="?",
        default=None,
        help="Build context (default: project root)",
    )
    build.set_defaults(handler=cmd_build)

    rmi = subparsers.add_parser("rmi", help="Remove one or more images")
    rmi.add_argument(
        "-f", "--force", action="store_true", help="Force removal"
    )
    rmi.add_argument("images", nargs="+", metavar="IMAGE")
    rmi.set_defaults(handler=cmd_rmi)


def cmd_build(args: argparse.Namespace, env: CommandEnv) -> int:
    """Build an image labelled for the current project.

    The image gets the managed and project labels, so ``@`` resolves to
    it afterwards.
    """
    config = env.config
    context = args.context or str(config.root or env.workdir or Path.cwd())
    labels = {
        LABEL_MANAGED: MANAGED_LABEL_VALUE,
        LABEL_VERSION: __version__,
    }
    tag = args.tag
    if config.project_key:
        labels[LABEL_PROJECT] = config.project_key
        tag = tag or image_tag(config.project_key)
    logger.debug("Building %s from %s", tag, context)

    for line in env.engine.build(
        context,
        tag=tag,
        dockerfile=args.dockerfile,
        no_cache=args.no_cache,
        labels=labels,
    ):
        env.io.stdout.write(line)
        env.io.stdout.flush()
    if tag:
        env.io.success(f"Built {tag}")
    return 0


def cmd_rmi(args: argparse.Namespace, env: CommandEnv) -> int:
    """Remove images, reporting each one.

    Raises:
        PartialError: If any image could not be removed.
    """
    errors: list[BaseException] = []
    for image in args.images:
        try:
            env.engine.remove_image(image, force=args.force)
        except BerthError as e:
            env.io.error(f"Error: {e}")
            errors.append(e)
            continue
        env.io.print(f"Untagged: {image}")
    if errors:
        raise PartialError(errors, len(args.images))
    return 0

