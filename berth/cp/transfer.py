# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Copying files between the host and a container."""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import BinaryIO

from berth.cp.archive import ChunkReader, extract_tar, tar_stream
from berth.cp.paths import STDIO_PATH, CopyPlan, Direction
from berth.engine.client import EngineClient


logger = logging.getLogger(__name__)

_STDIN_CHUNK = 64 * 1024


@dataclass(frozen=True)
class CopyOptions:
    """Copy behavior flags.

    Attributes:
        follow_link: Archive symlink targets instead of the links.
        copy_uid_gid: Preserve ownership when extracting in the
            container.
    """

    follow_link: bool = False
    copy_uid_gid: bool = False


def copy_from_container(
    engine: EngineClient,
    container_id: str,
    src_path: str,
    dest_path: str,
    *,
    stdout: BinaryIO | None = None,
) -> None:
    """Copy *src_path* out of a container.

    With *dest_path* ``"-"`` the raw tar stream is written to *stdout*;
    otherwise it is extracted under *dest_path* on the host.

    Raises:
        SourceMissingError: If *src_path* does not exist in the container.
        BadTarStreamError: If the engine's stream is not a tar archive.
    """
    chunks, stat = engine.get_archive(container_id, src_path)
    logger.debug("Copying %s from %s: %s", src_path, container_id, stat)
    if dest_path == STDIO_PATH:
        if stdout is None:
            raise ValueError("stdout is required when copying to '-'")
        for chunk in chunks:
            stdout.write(chunk)
        stdout.flush()
        return
    extract_tar(ChunkReader(chunks), dest_path)


def copy_to_container(
    engine: EngineClient,
    container_id: str,
    src_path: str,
    dest_path: str,
    *,
    stdin: BinaryIO | None = None,
    options: CopyOptions = CopyOptions(),
) -> None:
    """Copy host *src_path* into a container at *dest_path*.

    With *src_path* ``"-"`` host stdin is forwarded unchanged; it must
    already be a tar stream.

    Raises:
        SourceMissingError: If *src_path* does not exist on the host.
    """
    if src_path == STDIO_PATH:
        if stdin is None:
            raise ValueError("stdin is required when copying from '-'")
        data: Iterator[bytes] = _read_chunks(stdin)
    else:
        data = tar_stream(src_path, follow_link=options.follow_link)
    engine.put_archive(
        container_id,
        dest_path,
        data,
        copy_uid_gid=options.copy_uid_gid,
        allow_overwrite_dir_with_file=True,
    )


def run_copy(
    engine: EngineClient,
    plan: CopyPlan,
    *,
    stdin: BinaryIO | None = None,
    stdout: BinaryIO | None = None,
    options: CopyOptions = CopyOptions(),
) -> None:
    """Execute a validated copy plan.

    Raises:
        ContainerNotFoundError: If the plan's container does not exist.
    """
    container = engine.get_container(plan.container)
    if plan.direction is Direction.FROM_CONTAINER:
        copy_from_container(
            engine,
            container.id,
            plan.container_path,
            plan.host_path,
            stdout=stdout,
        )
    else:
        copy_to_container(
            engine,
            container.id,
            plan.host_path,
            plan.container_path,
            stdin=stdin,
            options=options,
        )


def _read_chunks(stream: BinaryIO) -> Iterator[bytes]:
    while chunk := stream.read(_STDIN_CHUNK):
        yield chunk
