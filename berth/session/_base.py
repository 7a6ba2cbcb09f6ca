# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared machinery for interactive sessions.

``StreamingSession`` owns the per-session resources (hijacked stream,
pumps, raw terminal, resize subscription, signal proxy) and releases
them exactly once in ``_cleanup``.  Subclasses implement the flow.
"""

import logging
import queue
import signal
import threading
import time
from collections.abc import Callable
from typing import Any

from berth.context import Context
from berth.engine.client import EngineClient
from berth.engine.hijack import HijackedStream
from berth.errors import BerthError, CommandInterrupted, EngineError
from berth.session.detach import DetachKeyMatcher, parse_detach_keys
from berth.session.pumps import InputPump, OutputPump
from berth.session.types import SessionStreams
from berth.term import TerminalController


logger = logging.getLogger(__name__)

#: Seconds to wait for an exit notification after the stream closes
#: before the session is considered detached.
GRACE_PERIOD = 2.0

#: Upper bound on waiting for pumps during cleanup, in seconds.
RESTORE_TIMEOUT = 0.5

#: Signals forwarded to the container by ``SignalProxy``.
PROXIED_SIGNALS = (
    signal.SIGINT,
    signal.SIGTERM,
    signal.SIGHUP,
    signal.SIGQUIT,
    signal.SIGUSR1,
    signal.SIGUSR2,
)


class SignalProxy:
    """Forwards host signals to a container while installed.

    The handler only enqueues the signal number; a forwarding thread
    makes the engine call.  Installing is a no-op off the main thread.
    """

    def __init__(self, forward: Callable[[int], None]) -> None:
        self._forward = forward
        self._queue: queue.SimpleQueue[int | None] = queue.SimpleQueue()
        self._saved: dict[int, Any] = {}
        self._thread: threading.Thread | None = None

    def install(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        self._thread = threading.Thread(
            target=self._loop, name="signal-proxy", daemon=True
        )
        self._thread.start()
        for signum in PROXIED_SIGNALS:
            self._saved[signum] = signal.signal(signum, self._handle)

    def _handle(self, signum: int, frame: object) -> None:
        self._queue.put(signum)

    def _loop(self) -> None:
        while (signum := self._queue.get()) is not None:
            try:
                self._forward(signum)
            except BerthError as e:
                logger.warning("Failed to forward signal %d: %s", signum, e)

    def restore(self) -> None:
        for signum, previous in self._saved.items():
            signal.signal(signum, previous)
        self._saved.clear()
        if self._thread is not None:
            self._queue.put(None)
            self._thread = None


class StreamingSession:
    """Base class for sessions that pump a hijacked stream.

    Thread Safety:
        ``run`` must be called from a single thread.  Pumps, the wait
        listener and the resize dispatcher run on their own threads and
        communicate with ``run`` through events only.
    """

    def __init__(
        self,
        engine: EngineClient,
        streams: SessionStreams,
        terminal: TerminalController,
        ctx: Context,
        detach_keys: str | None,
    ) -> None:
        self._engine = engine
        self._streams = streams
        self._terminal = terminal
        self._scope = ctx.child()
        self._matcher = DetachKeyMatcher(parse_detach_keys(detach_keys))
        self._wake = threading.Event()
        self._detach_requested = threading.Event()
        self._scope.on_cancel(self._wake.set)

        self._stream: HijackedStream | None = None
        self._output: OutputPump | None = None
        self._input: InputPump | None = None
        self._release_resize: Callable[[], None] | None = None
        self._signal_proxy: SignalProxy | None = None
        self._cleaning = False
        self._cleaned_up = False

    # ── Setup helpers ───────────────────────────────────────────────

    def _enter_raw(self) -> None:
        self._terminal.setup(self, on_signal=self._on_signal)

    def _on_signal(self, signum: int) -> None:
        if self._cleaning:
            return
        raise CommandInterrupted()

    def _proxy_signals(self, forward: Callable[[int], None]) -> None:
        self._signal_proxy = SignalProxy(forward)
        self._signal_proxy.install()

    def _start_pumps(self, stream: HijackedStream, stdin_open: bool) -> None:
        self._output = OutputPump(
            stream,
            self._streams.stdout,
            self._streams.stderr,
            on_done=self._wake.set,
        )
        self._output.start()
        if stdin_open:
            self._input = InputPump(
                self._streams.stdin_fd,
                stream,
                self._scope,
                matcher=self._matcher,
                on_detach=self._request_detach,
            )
            self._input.start()

    def _request_detach(self) -> None:
        self._detach_requested.set()
        self._wake.set()

    def _install_resize(self, resize: Callable[[int, int], None]) -> None:
        """Apply the initial size and forward later size changes."""

        def forward(cols: int, rows: int) -> None:
            try:
                resize(cols, rows)
            except BerthError as e:
                logger.debug("Resize to %dx%d failed: %s", cols, rows, e)

        self._terminal.apply_initial_size(forward)
        self._release_resize = self._terminal.on_resize(
            lambda size: forward(size.cols, size.rows)
        )

    # ── Waiting ─────────────────────────────────────────────────────

    def _wait_for(self, *conditions: Callable[[], bool]) -> None:
        """Block until a condition holds or the session scope is cancelled.

        Raises:
            BaseException: The scope's cancellation reason.
        """
        while True:
            self._wake.wait()
            self._wake.clear()
            if self._scope.done():
                raise self._scope.err or CommandInterrupted()
            if any(condition() for condition in conditions):
                return

    def _stream_closed(self) -> bool:
        assert self._output is not None
        return (
            self._output.finished.is_set() or self._detach_requested.is_set()
        )

    def _raise_output_error(self) -> None:
        assert self._output is not None
        error = self._output.error
        if error is None:
            return
        if isinstance(error, BerthError):
            raise error
        raise EngineError(f"streaming output: {error}") from error

    # ── Cleanup ─────────────────────────────────────────────────────

    def _close_resources(self) -> None:
        """Release subclass resources; runs before the terminal restore."""

    def _cleanup(self) -> None:
        """Release every session resource exactly once.

        The terminal restore is the final step and runs even when an
        earlier step fails.
        """
        if self._cleaned_up:
            return
        self._cleaned_up = True
        self._cleaning = True
        try:
            if self._release_resize is not None:
                self._release_resize()
            if self._signal_proxy is not None:
                self._signal_proxy.restore()
            self._scope.cancel()
            if self._stream is not None:
                self._stream.close()
            deadline = time.monotonic() + RESTORE_TIMEOUT
            for pump in (self._output, self._input):
                if pump is not None:
                    pump.join(max(0.0, deadline - time.monotonic()))
            self._close_resources()
        finally:
            self._terminal.restore(self)
