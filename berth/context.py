# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Cancellation scopes for threaded engine work.

A ``Context`` is a one-shot cancellation flag with an optional deadline.
Child contexts are cancelled when their parent is; cancelling a child
never affects the parent.  Long-running tasks (stream pumps, stats
producers, wait listeners) poll ``done()`` or register ``on_cancel``
callbacks that unblock their I/O.

Usage:
    root = Context()
    with root.child(timeout=5.0) as scope:
        worker = threading.Thread(target=pump, args=(scope,))
        worker.start()
        scope.wait()
"""

import threading
import time
from collections.abc import Callable

from berth.errors import BerthError


class ContextCancelled(BerthError):
    """The context was cancelled explicitly."""

    def __init__(self, message: str = "context cancelled") -> None:
        super().__init__(message)


class DeadlineExceeded(ContextCancelled):
    """The context deadline passed."""

    def __init__(self) -> None:
        super().__init__("context deadline exceeded")


class Context:
    """Cancellation scope shared between cooperating threads.

    Thread Safety:
        All methods may be called from any thread.  Cancellation
        callbacks run exactly once, on the thread that cancels.

    Attributes:
        deadline: ``time.monotonic()`` value after which the context is
            cancelled, or None.
    """

    def __init__(
        self,
        *,
        parent: "Context | None" = None,
        timeout: float | None = None,
    ) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._err: BaseException | None = None
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._next_id = 0
        self._timer: threading.Timer | None = None
        self._release_parent: Callable[[], None] | None = None

        self.deadline: float | None = parent.deadline if parent else None
        if timeout is not None:
            candidate = time.monotonic() + timeout
            if self.deadline is None or candidate < self.deadline:
                self.deadline = candidate

        if parent is not None:
            self._release_parent = parent.on_cancel(
                lambda: self.cancel(parent.err)
            )

        if self.deadline is not None and not self.done():
            remaining = self.deadline - time.monotonic()
            if remaining <= 0:
                self.cancel(DeadlineExceeded())
            else:
                self._timer = threading.Timer(
                    remaining, self.cancel, args=(DeadlineExceeded(),)
                )
                self._timer.daemon = True
                self._timer.start()

    def __enter__(self) -> "Context":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()

    @property
    def err(self) -> BaseException | None:
        """Reason for cancellation, or None while the context is live."""
        return self._err

    def done(self) -> bool:
        """Return True once the context has been cancelled."""
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or until *timeout* seconds pass.

        Returns:
            True if the context is cancelled.
        """
        return self._event.wait(timeout)

    def remaining(self) -> float | None:
        """Seconds until the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def child(self, timeout: float | None = None) -> "Context":
        """Derive a cancellation scope from this context.

        Args:
            timeout: Optional timeout in seconds; the child deadline is
                the earlier of this and the parent's.

        Returns:
            New child context.
        """
        return Context(parent=self, timeout=timeout)

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback run when the context is cancelled.

        If the context is already cancelled the callback runs
        immediately.

        Args:
            callback: Zero-argument callable.

        Returns:
            Release function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                key = self._next_id
                self._next_id += 1
                self._callbacks[key] = callback

                def release() -> None:
                    with self._lock:
                        self._callbacks.pop(key, None)

                return release

        callback()
        return lambda: None

    def cancel(self, err: BaseException | None = None) -> None:
        """Cancel the context and every child.

        Only the first call has an effect; later reasons are ignored.

        Args:
            err: Cancellation reason.  Defaults to ``ContextCancelled``.
        """
        with self._lock:
            if self._event.is_set():
                return
            self._err = err if err is not None else ContextCancelled()
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        if self._timer is not None:
            self._timer.cancel()
        if self._release_parent is not None:
            self._release_parent()
        for callback in callbacks:
            callback()
