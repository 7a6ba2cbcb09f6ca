# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Copy argument parsing.

A copy argument is either a host path or ``CONTAINER:PATH``.  The
container part may be empty (``:/app``), in which case the container
given separately on the command line is used.
"""

from dataclasses import dataclass
from enum import Enum

from berth.errors import (
    BothSidesContainerError,
    BothSidesHostError,
    InvalidArgumentError,
)


#: Path meaning "host stdin" as a source or "host stdout" as a destination.
STDIO_PATH = "-"


@dataclass(frozen=True)
class CopyArg:
    """One parsed side of a copy.

    Attributes:
        container: Container reference; empty for host paths and for
            container paths with an omitted container part.
        path: Filesystem path on the respective side.
        is_container: True when the argument named a container path.
    """

    container: str
    path: str
    is_container: bool


class Direction(Enum):
    FROM_CONTAINER = "from-container"
    TO_CONTAINER = "to-container"


@dataclass(frozen=True)
class CopyPlan:
    """A validated copy between the host and one container."""

    direction: Direction
    container: str
    container_path: str
    host_path: str


def parse_container_path(arg: str) -> CopyArg:
    """Split *arg* into container and path parts.

    Splits at the first ``:`` unless the left side is a single letter,
    which is read as a Windows drive (``C:\\data``).

    Args:
        arg: Raw command-line argument.

    Returns:
        Parsed argument.
    """
    left, sep, right = arg.partition(":")
    if not sep:
        return CopyArg("", arg, False)
    if len(left) == 1 and left.isalpha():
        return CopyArg("", arg, False)
    return CopyArg(left, right, True)


def plan_copy(
    src: str, dst: str, *, default_container: str | None = None
) -> CopyPlan:
    """Validate a source/destination pair and decide the direction.

    Args:
        src: Source argument.
        dst: Destination argument.
        default_container: Container used for ``:PATH`` arguments.

    Returns:
        The copy plan.

    Raises:
        BothSidesContainerError: If both sides name containers.
        BothSidesHostError: If neither side names a container.
        InvalidArgumentError: If a ``:PATH`` argument has no container
            to combine with, or the container path is empty.
    """
    src_arg = parse_container_path(src)
    dst_arg = parse_container_path(dst)
    if src_arg.is_container and dst_arg.is_container:
        raise BothSidesContainerError()
    if not src_arg.is_container and not dst_arg.is_container:
        raise BothSidesHostError()

    if src_arg.is_container:
        remote, host, direction = src_arg, dst_arg, Direction.FROM_CONTAINER
    else:
        remote, host, direction = dst_arg, src_arg, Direction.TO_CONTAINER

    container = remote.container or default_container
    if not container:
        raise InvalidArgumentError(
            f"no container given for path ':{remote.path}'"
        )
    if not remote.path:
        raise InvalidArgumentError("container path must not be empty")
    return CopyPlan(direction, container, remote.path, host.path)
