# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for berth/engine/framing.py -- multiplexed stream decoding."""

import io
from collections.abc import Callable

import pytest

from berth.engine.framing import (
    STDERR,
    STDIN,
    STDOUT,
    SYSTEM_ERR,
    FramingError,
    demux,
    encode_frame,
    iter_frames,
)
from berth.errors import EngineError


def trickle(data: bytes) -> Callable[[int], bytes]:
    """Return a read function delivering at most 3 bytes per call."""
    source = io.BytesIO(data)
    return lambda size: source.read(min(size, 3))


class TestIterFrames:
    """Tests for the pure frame decoder."""

    def test_empty_stream(self) -> None:
        """No bytes yield no frames."""
        assert list(iter_frames(io.BytesIO(b"").read)) == []

    def test_frames_in_order(self) -> None:
        """Frames are yielded in stream order with their channels."""
        data = encode_frame(STDOUT, b"out") + encode_frame(STDERR, b"err")
        assert list(iter_frames(io.BytesIO(data).read)) == [
            (STDOUT, b"out"),
            (STDERR, b"err"),
        ]

    def test_short_reads_are_reassembled(self) -> None:
        """Headers and payloads split over reads decode intact."""
        data = encode_frame(STDOUT, b"hello world") + encode_frame(
            STDERR, b"!"
        )
        assert list(iter_frames(trickle(data))) == [
            (STDOUT, b"hello world"),
            (STDERR, b"!"),
        ]

    def test_zero_length_payload(self) -> None:
        """A frame may carry no payload."""
        data = encode_frame(STDOUT, b"")
        assert list(iter_frames(io.BytesIO(data).read)) == [(STDOUT, b"")]

    def test_header_is_big_endian(self) -> None:
        """The length field is a big-endian uint32 after three zero bytes."""
        assert encode_frame(STDERR, b"ab") == (
            b"\x02\x00\x00\x00\x00\x00\x00\x02ab"
        )

    def test_truncated_header(self) -> None:
        """A partial header raises FramingError."""
        with pytest.raises(FramingError, match="truncated frame header"):
            list(iter_frames(io.BytesIO(b"\x01\x00\x00").read))

    def test_truncated_payload(self) -> None:
        """A payload shorter than announced raises FramingError."""
        data = encode_frame(STDOUT, b"abcdef")[:-2]
        with pytest.raises(FramingError, match="truncated frame payload"):
            list(iter_frames(io.BytesIO(data).read))

    def test_unknown_stream_id(self) -> None:
        """Stream ids above 3 are rejected."""
        data = b"\x07\x00\x00\x00\x00\x00\x00\x01x"
        with pytest.raises(FramingError, match="unrecognized stream id 7"):
            list(iter_frames(io.BytesIO(data).read))


class TestDemux:
    """Tests for demultiplexing into two writers."""

    def test_alternating_channels(self) -> None:
        """Each writer receives exactly its payloads, in order."""
        frames = [
            (STDOUT, b"one\n"),
            (STDERR, b"two\n"),
            (STDOUT, b"three\n"),
            (STDERR, b"four\n"),
        ]
        data = b"".join(encode_frame(c, p) for c, p in frames)
        stdout, stderr = io.BytesIO(), io.BytesIO()

        written = demux(trickle(data), stdout, stderr)

        assert stdout.getvalue() == b"one\nthree\n"
        assert stderr.getvalue() == b"two\nfour\n"
        assert written == len(b"one\ntwo\nthree\nfour\n")

    def test_stdin_frames_go_to_stdout(self) -> None:
        """Echoed stdin frames are written to stdout."""
        stdout, stderr = io.BytesIO(), io.BytesIO()
        demux(io.BytesIO(encode_frame(STDIN, b"echo")).read, stdout, stderr)
        assert stdout.getvalue() == b"echo"
        assert stderr.getvalue() == b""

    def test_system_error_frame(self) -> None:
        """A system-error frame raises EngineError with its message."""
        data = encode_frame(STDOUT, b"ok") + encode_frame(
            SYSTEM_ERR, b"boom"
        )
        stdout, stderr = io.BytesIO(), io.BytesIO()
        with pytest.raises(EngineError, match="engine stream error: boom"):
            demux(io.BytesIO(data).read, stdout, stderr)
        assert stdout.getvalue() == b"ok"
