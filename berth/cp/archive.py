# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tar pipelines between the host filesystem and engine archive streams.

Two adapters:

- ``tar_stream`` walks a host path and yields an uncompressed tar
  stream in chunks.  The archive is written by a producer thread into a
  pipe so that large trees never sit in memory.
- ``extract_tar`` reads a tar stream (as produced by the engine's
  archive endpoint) and materializes it under a host destination.
"""

import io
import logging
import os
import shutil
import tarfile
import threading
from collections.abc import Iterable, Iterator
from typing import BinaryIO

from berth.errors import BadTarStreamError, BerthError, SourceMissingError


logger = logging.getLogger(__name__)

#: Chunk size for tar streams.
CHUNK_SIZE = 64 * 1024


# ── Host → tar ──────────────────────────────────────────────────────


def archive_root_name(src: str) -> str:
    """Return the archive prefix used for *src* (its basename)."""
    name = os.path.basename(os.path.normpath(src))
    return name if name not in ("", os.sep) else "."


def check_source(src: str, *, follow_link: bool = False) -> os.stat_result:
    """Stat the copy source.

    Raises:
        SourceMissingError: If *src* does not exist (or, when following
            links, if it is a dangling symlink).
    """
    try:
        return os.stat(src) if follow_link else os.lstat(src)
    except FileNotFoundError as e:
        raise SourceMissingError(src) from e


def write_tar(src: str, fileobj: BinaryIO, *, follow_link: bool) -> None:
    """Write a tar archive of *src* to *fileobj*.

    Directories are walked recursively under ``basename(src)``.
    Symlinks are stored verbatim unless *follow_link* is set, in which
    case their targets are archived in their place.  Hard links within
    the tree are stored as hard-link entries.
    """
    with tarfile.open(
        fileobj=fileobj,
        mode="w|",
        format=tarfile.PAX_FORMAT,
        dereference=follow_link,
    ) as tar:
        tar.add(src, arcname=archive_root_name(src), recursive=True)


def tar_stream(
    src: str, *, follow_link: bool = False, chunk_size: int = CHUNK_SIZE
) -> Iterator[bytes]:
    """Yield a tar archive of *src* in chunks.

    The source is stat'ed eagerly, so a missing source fails before the
    first chunk is requested.

    Raises:
        SourceMissingError: If *src* does not exist.
        BerthError: If archiving fails part way through.
    """
    check_source(src, follow_link=follow_link)
    return _pipe_stream(src, follow_link, chunk_size)


def _pipe_stream(
    src: str, follow_link: bool, chunk_size: int
) -> Iterator[bytes]:
    read_fd, write_fd = os.pipe()
    errors: list[Exception] = []

    def produce() -> None:
        try:
            with os.fdopen(write_fd, "wb") as out:
                write_tar(src, out, follow_link=follow_link)
        except BrokenPipeError:
            logger.debug("Tar consumer went away while archiving %s", src)
        except (OSError, tarfile.TarError) as e:
            errors.append(e)

    producer = threading.Thread(
        target=produce, name="tar-producer", daemon=True
    )
    producer.start()
    try:
        with os.fdopen(read_fd, "rb") as reader:
            while chunk := reader.read(chunk_size):
                yield chunk
    finally:
        producer.join()
    if errors:
        raise BerthError(f"archiving {src}: {errors[0]}") from errors[0]


# ── Tar → host ──────────────────────────────────────────────────────


class ChunkReader(io.RawIOBase):
    """Read-only file object over an iterable of byte chunks."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks = iter(chunks)
        self._buffer = b""

    def readable(self) -> bool:
        return True

    def readinto(self, b: bytearray | memoryview) -> int:
        while not self._buffer:
            try:
                self._buffer = next(self._chunks)
            except StopIteration:
                return 0
        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        self._buffer = self._buffer[n:]
        return n


def _member_parts(name: str) -> list[str]:
    parts = [p for p in name.split("/") if p not in ("", ".")]
    if name.startswith("/") or ".." in parts:
        raise BadTarStreamError(f"unsafe path in tar stream: {name!r}")
    return parts


class _Targets:
    """Maps archive member names onto host paths.

    - Destination is an existing directory: members land beneath it.
    - Destination exists but is not a directory: every member overwrites
      the destination itself.
    - Destination is missing: the archive's root entry is created as
      the destination and its children land beneath it.

    Every other target must resolve, after following any symlinks
    already on disk, to a path beneath the destination.
    """

    def __init__(self, dest: str) -> None:
        self.dest = dest
        self.dest_is_dir = os.path.isdir(dest)
        self.dest_exists = os.path.lexists(dest)
        self._real_dest = os.path.realpath(dest)
        self._root: str | None = None

    def resolve(self, name: str) -> str:
        parts = _member_parts(name)
        if self.dest_is_dir:
            return os.path.join(self.dest, *parts)
        if self.dest_exists:
            return self.dest
        if not parts:
            return self.dest
        if self._root is None:
            self._root = parts[0]
        if parts[0] != self._root:
            return os.path.join(self.dest, *parts)
        return os.path.join(self.dest, *parts[1:])

    def check_parent(self, target: str, name: str) -> None:
        """Reject *target* when its directory resolves outside the dest.

        Raises:
            BadTarStreamError: If a symlink redirects the member.
        """
        if target == self.dest:
            return
        self._check(os.path.realpath(os.path.dirname(target)), name)

    def check_link_source(self, source: str, name: str) -> None:
        """Reject a hard-link source that resolves outside the dest."""
        self._check(os.path.realpath(source), name)

    def _check(self, real: str, name: str) -> None:
        if real != self._real_dest and not real.startswith(
            self._real_dest.rstrip(os.sep) + os.sep
        ):
            raise BadTarStreamError(
                f"unsafe path in tar stream: {name!r} escapes destination"
            )


def _remove_existing(path: str) -> None:
    if os.path.islink(path) or (
        os.path.lexists(path) and not os.path.isdir(path)
    ):
        os.unlink(path)


def _extract_member(
    tar: tarfile.TarFile, member: tarfile.TarInfo, targets: _Targets
) -> None:
    target = targets.resolve(member.name)
    targets.check_parent(target, member.name)
    parent = os.path.dirname(target)
    if parent:
        os.makedirs(parent, mode=0o755, exist_ok=True)

    if member.isdir():
        if os.path.islink(target):
            os.unlink(target)
        os.makedirs(target, mode=member.mode or 0o755, exist_ok=True)
    elif member.isreg():
        if os.path.islink(target):
            os.unlink(target)
        source = tar.extractfile(member)
        fd = os.open(
            target,
            os.O_CREAT | os.O_TRUNC | os.O_WRONLY | os.O_NOFOLLOW,
            member.mode or 0o644,
        )
        with os.fdopen(fd, "wb") as out:
            if source is not None:
                shutil.copyfileobj(source, out, CHUNK_SIZE)
    elif member.issym():
        _remove_existing(target)
        os.symlink(member.linkname, target)
    elif member.islnk():
        source = targets.resolve(member.linkname)
        targets.check_link_source(source, member.name)
        if source == target:
            return
        _remove_existing(target)
        os.link(source, target, follow_symlinks=False)
    else:
        logger.debug(
            "Skipping unsupported tar entry %s (type %r)",
            member.name,
            member.type,
        )


def extract_tar(fileobj: BinaryIO, dest: str) -> None:
    """Extract the tar stream in *fileobj* under *dest*.

    Raises:
        BadTarStreamError: If the stream is not a readable tar archive
            or contains unsafe member paths.
        BerthError: If writing to the host filesystem fails.
    """
    targets = _Targets(dest)
    try:
        with tarfile.open(fileobj=fileobj, mode="r|") as tar:
            for member in tar:
                try:
                    _extract_member(tar, member, targets)
                except OSError as e:
                    raise BerthError(
                        f"extracting {member.name} to {dest}: {e}"
                    ) from e
    except tarfile.TarError as e:
        raise BadTarStreamError(f"reading tar stream: {e}") from e
