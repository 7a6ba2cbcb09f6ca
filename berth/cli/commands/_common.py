# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Helpers shared by command handlers."""

import argparse
import logging
from collections.abc import Callable

from berth.cli.env import CommandEnv
from berth.engine.client import ContainerRef
from berth.errors import BerthError, InvalidArgumentError, PartialError


logger = logging.getLogger(__name__)

#: Subparsers action as returned by ``add_subparsers``.
Subparsers = argparse._SubParsersAction

#: Signature of every command handler.
Handler = Callable[[argparse.Namespace, CommandEnv], int]


def add_agent_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--agent",
        action="store_true",
        help="Treat arguments as agent names (berth.<project>.<agent>)",
    )


def parse_labels(values: list[str] | None) -> dict[str, str]:
    """Parse ``key=value`` label flags; a bare key gets an empty value."""
    labels: dict[str, str] = {}
    for value in values or []:
        key, _, val = value.partition("=")
        if not key:
            raise InvalidArgumentError(f"invalid label {value!r}")
        labels[key] = val
    return labels


def run_bulk(
    env: CommandEnv,
    refs: list[str],
    agent: bool,
    action: Callable[[ContainerRef], None],
    *,
    report: Callable[[str, ContainerRef], None] | None = None,
) -> int:
    """Apply *action* to each container, reporting per-item results.

    Successes print the argument as given (or whatever *report*
    prints); failures print ``Error: ...`` on stderr and processing
    continues.

    Raises:
        PartialError: If any container failed.
    """
    errors: list[BaseException] = []
    for ref in refs:
        try:
            container = env.engine.get_container(env.container_ref(ref, agent))
            action(container)
        except BerthError as e:
            logger.debug("Bulk operation on %s failed: %s", ref, e)
            env.io.error(f"Error: {e}")
            errors.append(e)
            continue
        if report is not None:
            report(ref, container)
        else:
            env.io.print(ref)
    if errors:
        raise PartialError(errors, len(refs))
    return 0
