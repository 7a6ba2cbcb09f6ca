# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Decoder for the engine's multiplexed (non-TTY) stream format.

When a container or exec instance runs without a TTY, attach and logs
streams interleave stdout and stderr in frames::

    byte 0      stream id (0 stdin, 1 stdout, 2 stderr, 3 system error)
    bytes 1-3   reserved
    bytes 4-7   payload length, big-endian uint32
    bytes 8-    payload

``iter_frames`` is a pure decoder over a read function; ``demux`` drives
it into a pair of writers.
"""

import struct
from collections.abc import Callable, Iterator
from typing import BinaryIO

from berth.errors import BerthError, EngineError


STDIN = 0
STDOUT = 1
STDERR = 2
SYSTEM_ERR = 3

HEADER_SIZE = 8

_HEADER = struct.Struct(">BxxxL")


class FramingError(BerthError):
    """A multiplexed stream violated the frame format."""


def _read_exact(read: Callable[[int], bytes], size: int) -> bytes:
    """Read up to *size* bytes, stopping early only at EOF."""
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def encode_frame(channel: int, payload: bytes) -> bytes:
    """Encode one frame (header plus payload)."""
    return _HEADER.pack(channel, len(payload)) + payload


def iter_frames(read: Callable[[int], bytes]) -> Iterator[tuple[int, bytes]]:
    """Decode frames from a byte source.

    Args:
        read: Callable returning up to N bytes, or ``b""`` at EOF.

    Yields:
        ``(channel, payload)`` tuples in stream order.

    Raises:
        FramingError: On an unknown stream id or a truncated frame.
    """
    while True:
        header = _read_exact(read, HEADER_SIZE)
        if not header:
            return
        if len(header) < HEADER_SIZE:
            raise FramingError(
                f"truncated frame header ({len(header)} of {HEADER_SIZE} bytes)"
            )
        channel, length = _HEADER.unpack(header)
        if channel not in (STDIN, STDOUT, STDERR, SYSTEM_ERR):
            raise FramingError(f"unrecognized stream id {channel}")
        payload = _read_exact(read, length)
        if len(payload) < length:
            raise FramingError(
                f"truncated frame payload ({len(payload)} of {length} bytes)"
            )
        yield channel, payload


def demux(
    read: Callable[[int], bytes], stdout: BinaryIO, stderr: BinaryIO
) -> int:
    """Copy a framed stream into separate stdout and stderr writers.

    Stdin frames, which the engine emits when echoing input, go to
    stdout.

    Args:
        read: Byte source of the framed stream.
        stdout: Writer for channel 0 and 1 payloads.
        stderr: Writer for channel 2 payloads.

    Returns:
        Total number of payload bytes written.

    Raises:
        FramingError: On malformed input.
        EngineError: When the engine sends a system-error frame.
    """
    written = 0
    for channel, payload in iter_frames(read):
        if channel == SYSTEM_ERR:
            raise EngineError(
                f"engine stream error: {payload.decode(errors='replace')}"
            )
        target = stderr if channel == STDERR else stdout
        target.write(payload)
        target.flush()
        written += len(payload)
    return written
