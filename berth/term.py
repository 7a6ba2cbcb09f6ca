# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Host terminal control.

``TerminalController`` owns the host stdio terminal: raw mode, size
queries and resize notifications.  Terminal state is process-wide, so
raw mode has a single owner at a time; a second session trying to enter
raw mode gets ``TerminalBusyError``.

SIGWINCH only marks a resize as pending (the handler enqueues a token);
a dispatcher thread reads the new size and calls subscribers, so engine
calls never run inside a signal handler.
"""

import fcntl
import logging
import os
import queue
import signal
import struct
import sys
import termios
import threading
import tty
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TextIO

from berth.errors import BerthError, TerminalBusyError
from berth.logging import set_interactive_mode


logger = logging.getLogger(__name__)

_RESIZE = object()
_STOP = object()


class NotATerminalError(BerthError):
    """The host stream is not a terminal."""


@dataclass(frozen=True)
class TerminalSize:
    """Terminal dimensions in character cells."""

    cols: int
    rows: int


def _fileno(stream: TextIO | None) -> int:
    """Return the descriptor of *stream*, or -1 if it has none."""
    if stream is None:
        return -1
    try:
        return stream.fileno()
    except (AttributeError, OSError, ValueError):
        return -1


def _isatty(fd: int) -> bool:
    return fd >= 0 and os.isatty(fd)


class TerminalController:
    """Raw mode, size and resize notifications for the host terminal.

    Thread Safety:
        ``setup``/``restore`` are serialized by an internal lock.  Resize
        subscribers are guarded by a separate lock and invoked on the
        dispatcher thread.

    Signal handlers (SIGINT, SIGTERM, SIGWINCH) are only installed when
    running on the main thread, as required by ``signal.signal``.
    """

    def __init__(self, stdin_fd: int = -1, stdout_fd: int = -1) -> None:
        self._stdin_fd = stdin_fd
        self._stdout_fd = stdout_fd
        self._lock = threading.Lock()
        self._owner: object | None = None
        self._saved: list[Any] | None = None
        self._saved_handlers: dict[int, Any] = {}

        self._sub_lock = threading.Lock()
        self._subscribers: dict[int, Callable[[TerminalSize], None]] = {}
        self._next_token = 0
        self._events: queue.SimpleQueue[object] = queue.SimpleQueue()
        self._dispatcher: threading.Thread | None = None
        self._saved_winch: Any = None
        self._winch_installed = False

    @classmethod
    def for_stdio(cls) -> "TerminalController":
        """Create a controller over the process's stdin and stdout."""
        return cls(_fileno(sys.stdin), _fileno(sys.stdout))

    # ── Queries ─────────────────────────────────────────────────────

    def is_tty(self) -> bool:
        """Return True when stdin is a terminal."""
        return _isatty(self._stdin_fd)

    def stdout_is_tty(self) -> bool:
        return _isatty(self._stdout_fd)

    @property
    def is_raw(self) -> bool:
        return self._owner is not None

    def size(self) -> TerminalSize:
        """Return the current terminal size.

        Raises:
            NotATerminalError: If neither stdout nor stdin is a terminal.
        """
        for fd in (self._stdout_fd, self._stdin_fd):
            if not _isatty(fd):
                continue
            packed = fcntl.ioctl(fd, termios.TIOCGWINSZ, b"\0" * 8)
            rows, cols, _, _ = struct.unpack("HHHH", packed)
            return TerminalSize(cols=cols, rows=rows)
        raise NotATerminalError("not a terminal")

    # ── Raw mode ────────────────────────────────────────────────────

    def setup(
        self,
        owner: object,
        on_signal: Callable[[int], None] | None = None,
    ) -> None:
        """Switch stdin to raw mode on behalf of *owner*.

        Idempotent for the same owner and a no-op when stdin is not a
        terminal.  While raw, low-severity logging is muted.

        Args:
            owner: Token identifying the session taking the terminal.
            on_signal: Called with the signal number when SIGINT or
                SIGTERM is delivered while raw.

        Raises:
            TerminalBusyError: If another owner holds raw mode.
        """
        with self._lock:
            if self._owner is not None:
                if self._owner is owner:
                    return
                raise TerminalBusyError(
                    "terminal is already in use by another session"
                )
            if not self.is_tty():
                return
            saved = termios.tcgetattr(self._stdin_fd)
            tty.setraw(self._stdin_fd, termios.TCSANOW)
            self._saved = saved
            self._owner = owner
            if on_signal is not None:
                self._install_signal_handlers(on_signal)
            set_interactive_mode(True)
            logger.debug("Terminal switched to raw mode")

    def restore(self, owner: object | None = None) -> None:
        """Restore the terminal state captured by ``setup``.

        Safe to call repeatedly and after a partial or skipped setup.
        With *owner*, only that owner's raw mode is restored.
        """
        with self._lock:
            if self._owner is None:
                return
            if owner is not None and owner is not self._owner:
                return
            saved = self._saved
            self._owner = None
            self._saved = None
            try:
                if saved is not None:
                    termios.tcsetattr(self._stdin_fd, termios.TCSADRAIN, saved)
            except termios.error as e:
                logger.warning("Failed to restore terminal: %s", e)
            finally:
                self._restore_signal_handlers()
                set_interactive_mode(False)

    def _install_signal_handlers(
        self, on_signal: Callable[[int], None]
    ) -> None:
        if threading.current_thread() is not threading.main_thread():
            return

        def handler(signum: int, frame: object) -> None:
            on_signal(signum)

        for signum in (signal.SIGINT, signal.SIGTERM):
            self._saved_handlers[signum] = signal.signal(signum, handler)

    def _restore_signal_handlers(self) -> None:
        for signum, previous in self._saved_handlers.items():
            signal.signal(signum, previous)
        self._saved_handlers.clear()

    # ── Resize ──────────────────────────────────────────────────────

    def apply_initial_size(self, resize: Callable[[int, int], None]) -> None:
        """Send the current size to *resize* twice, first one cell larger.

        Full-screen programs only redraw when the size actually changes,
        so ``(cols+1, rows+1)`` then ``(cols, rows)`` forces a repaint.
        Does nothing when the size is unknown.

        Args:
            resize: Callable taking ``(cols, rows)``.
        """
        try:
            size = self.size()
        except NotATerminalError:
            return
        resize(size.cols + 1, size.rows + 1)
        resize(size.cols, size.rows)

    def on_resize(
        self, callback: Callable[[TerminalSize], None]
    ) -> Callable[[], None]:
        """Subscribe to terminal size changes.

        Args:
            callback: Called with the new size on the dispatcher thread.

        Returns:
            Release function; calling it more than once is harmless.
        """
        with self._sub_lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback
            if self._dispatcher is None:
                self._start_dispatcher()

        def release() -> None:
            with self._sub_lock:
                if self._subscribers.pop(token, None) is None:
                    return
                if not self._subscribers:
                    self._stop_dispatcher()

        return release

    def notify_resize(self) -> None:
        """Record a terminal size change.

        Async-signal safe; called by the SIGWINCH handler.
        """
        self._events.put(_RESIZE)

    def _start_dispatcher(self) -> None:
        self._events = queue.SimpleQueue()
        self._dispatcher = threading.Thread(
            target=self._dispatch_loop,
            args=(self._events,),
            name="resize-dispatch",
            daemon=True,
        )
        self._dispatcher.start()
        if threading.current_thread() is threading.main_thread():
            self._saved_winch = signal.signal(
                signal.SIGWINCH, lambda signum, frame: self.notify_resize()
            )
            self._winch_installed = True

    def _stop_dispatcher(self) -> None:
        if self._winch_installed:
            signal.signal(signal.SIGWINCH, self._saved_winch)
            self._winch_installed = False
        self._events.put(_STOP)
        self._dispatcher = None

    def _dispatch_loop(self, events: "queue.SimpleQueue[object]") -> None:
        while True:
            item = events.get()
            if item is _STOP:
                return
            try:
                size = self.size()
            except NotATerminalError:
                continue
            with self._sub_lock:
                callbacks = list(self._subscribers.values())
            for callback in callbacks:
                try:
                    callback(size)
                except BerthError as e:
                    logger.debug("Resize forwarding failed: %s", e)


_default: TerminalController | None = None
_default_lock = threading.Lock()


def get_terminal() -> TerminalController:
    """Return the process-wide controller for the real stdio terminal."""
    global _default
    with _default_lock:
        if _default is None:
            _default = TerminalController.for_stdio()
        return _default
