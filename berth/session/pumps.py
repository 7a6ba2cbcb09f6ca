# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Stream pumps between host stdio and a hijacked stream.

The output pump copies container output to host stdout/stderr,
demultiplexing framed streams.  The input pump copies host stdin to the
container, watching for the detach sequence; it blocks in ``select`` on
stdin plus an interrupt pipe so cancellation can wake it.
"""

import logging
import os
import select
import threading
from collections.abc import Callable
from typing import BinaryIO

from berth.context import Context
from berth.engine.framing import demux
from berth.engine.hijack import READ_SIZE, HijackedStream
from berth.errors import BerthError
from berth.session.detach import DetachKeyMatcher


logger = logging.getLogger(__name__)


class OutputPump:
    """Copies a hijacked stream to host stdout and stderr.

    Attributes:
        finished: Set once the stream reached EOF or failed.
        error: Failure that ended the pump, if any.
        written: Payload bytes written to the host.
    """

    def __init__(
        self,
        stream: HijackedStream,
        stdout: BinaryIO,
        stderr: BinaryIO,
        on_done: Callable[[], None] | None = None,
    ) -> None:
        self._stream = stream
        self._stdout = stdout
        self._stderr = stderr
        self._on_done = on_done
        self.finished = threading.Event()
        self.error: BaseException | None = None
        self.written = 0
        self._thread = threading.Thread(
            target=self._run, name="output-pump", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the pump; return True if it finished."""
        return self.finished.wait(timeout)

    def _run(self) -> None:
        try:
            if self._stream.framed:
                self.written = demux(
                    self._stream.read, self._stdout, self._stderr
                )
            else:
                while chunk := self._stream.read(READ_SIZE):
                    self._stdout.write(chunk)
                    self._stdout.flush()
                    self.written += len(chunk)
        except (OSError, BerthError) as e:
            if not self._stream.closed:
                logger.debug("Output pump failed: %s", e)
                self.error = e
        finally:
            self.finished.set()
            if self._on_done is not None:
                self._on_done()


class InputPump:
    """Copies host stdin to a hijacked stream until EOF, detach or cancel.

    On every exit path the stream's write side is half-closed.  The
    session never waits for this pump to finish before reporting.

    Attributes:
        finished: Set when the pump returned.
        detached: True when the detach sequence ended the pump.
        error: Failure that ended the pump, if any.
    """

    def __init__(
        self,
        stdin_fd: int,
        stream: HijackedStream,
        ctx: Context,
        matcher: DetachKeyMatcher | None = None,
        on_detach: Callable[[], None] | None = None,
    ) -> None:
        self._stdin_fd = stdin_fd
        self._stream = stream
        self._ctx = ctx
        self._matcher = matcher
        self._on_detach = on_detach
        self.finished = threading.Event()
        self.detached = False
        self.error: BaseException | None = None

        self._interrupt_read, self._interrupt_write = os.pipe()
        self._pipe_lock = threading.Lock()
        self._pipe_closed = False
        self._release: Callable[[], None] | None = None
        self._thread = threading.Thread(
            target=self._run, name="input-pump", daemon=True
        )

    def start(self) -> None:
        self._release = self._ctx.on_cancel(self.interrupt)
        self._thread.start()

    def join(self, timeout: float | None = None) -> bool:
        return self.finished.wait(timeout)

    def interrupt(self) -> None:
        """Wake the pump so it returns without reading further input."""
        with self._pipe_lock:
            if self._pipe_closed:
                return
            try:
                os.write(self._interrupt_write, b"\x00")
            except OSError as e:
                logger.debug("Failed to signal input pump: %s", e)

    def _run(self) -> None:
        try:
            self._copy()
        except OSError as e:
            if not self._stream.closed:
                logger.debug("Input pump failed: %s", e)
                self.error = e
        finally:
            self._stream.close_write()
            if self._release is not None:
                self._release()
            with self._pipe_lock:
                self._pipe_closed = True
                os.close(self._interrupt_read)
                os.close(self._interrupt_write)
            self.finished.set()

    def _copy(self) -> None:
        while not self._ctx.done():
            readable, _, _ = select.select(
                [self._stdin_fd, self._interrupt_read], [], []
            )
            if self._interrupt_read in readable:
                return
            data = os.read(self._stdin_fd, READ_SIZE)
            if not data:
                if self._matcher is not None:
                    tail = self._matcher.flush()
                    if tail:
                        self._stream.write(tail)
                return
            if self._matcher is not None:
                data, detached = self._matcher.feed(data)
            else:
                detached = False
            if data:
                self._stream.write(data)
            if detached:
                logger.debug("Detach sequence received")
                self.detached = True
                if self._on_detach is not None:
                    self._on_detach()
                return
