# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""New-container sessions: ``run``, ``start --attach`` and ``attach``.

The flow attaches before starting so that no output of a short-lived
container is lost, registers the exit notification before start, and
starts the pumps before the container.  When the stream closes without
an exit notification, a short grace period distinguishes a container
exit from a detach.
"""

import logging

from berth.context import Context
from berth.engine.client import EngineClient, WaitCondition, WaitHandle
from berth.errors import BerthError
from berth.session._base import GRACE_PERIOD, StreamingSession
from berth.session.types import (
    AttachOptions,
    SessionOutcome,
    SessionState,
    SessionStreams,
)
from berth.term import TerminalController


logger = logging.getLogger(__name__)


class ContainerSession(StreamingSession):
    """Binds host stdio to a created or running container.

    Usage:
        session = ContainerSession(engine, cid, options, streams, term, ctx)
        outcome = session.run()
        outcome.raise_for_status()

    Attributes:
        container_id: Engine ID of the container.
        options: Attach options.
        state: Current ``SessionState``.
    """

    def __init__(
        self,
        engine: EngineClient,
        container_id: str,
        options: AttachOptions,
        streams: SessionStreams,
        terminal: TerminalController,
        ctx: Context,
    ) -> None:
        super().__init__(engine, streams, terminal, ctx, options.detach_keys)
        self.container_id = container_id
        self.options = options
        self.state = SessionState.CREATED
        self._wait: WaitHandle | None = None

    def wait_condition(self) -> WaitCondition:
        """Select the engine wait condition for this session.

        ``removed`` with auto-remove, so the notification observes the
        removal; ``next-exit`` whenever the session starts the
        container, since a created container already counts as not
        running.
        """
        if self.options.auto_remove:
            return WaitCondition.REMOVED
        if self.options.start:
            return WaitCondition.NEXT_EXIT
        return WaitCondition.NOT_RUNNING

    def run(self) -> SessionOutcome:
        """Run the session to completion.

        Returns:
            ``Exited(code)``, ``Detached`` or ``Error(reason)``.  Cleanup
            has completed and the terminal is restored on return.
        """
        try:
            outcome = self._run()
        except BerthError as e:
            logger.debug("Session for %s failed: %s", self.container_id, e)
            self.state = SessionState.REPORTING
            outcome = SessionOutcome.failed(e)
        finally:
            self._cleanup()
        self.state = SessionState.DONE
        return outcome

    def _run(self) -> SessionOutcome:
        opts = self.options
        cid = self.container_id

        self._stream = self._engine.attach(
            cid,
            stdin=opts.stdin_open,
            framed=not opts.tty,
            detach_keys=opts.detach_keys,
        )
        self.state = SessionState.ATTACHED

        self._wait = self._engine.wait_for_exit(cid, self.wait_condition())
        self._wait.add_done_callback(self._wake.set)

        if opts.tty and opts.stdin_open and self._terminal.is_tty():
            self._enter_raw()
        elif opts.sig_proxy and not opts.tty:
            self._proxy_signals(lambda signum: self._engine.kill(cid, signum))

        self._start_pumps(self._stream, opts.stdin_open)

        if opts.start:
            self._engine.start(cid)
        self.state = SessionState.STARTED

        if opts.tty:
            self._install_resize(
                lambda cols, rows: self._engine.resize(cid, cols, rows)
            )
        self.state = SessionState.STREAMING

        return self._await_outcome()

    def _await_outcome(self) -> SessionOutcome:
        assert self._wait is not None and self._output is not None
        wait = self._wait

        self._wait_for(wait.done, self._stream_closed)

        if wait.done():
            self.state = SessionState.EXIT_OBSERVED
            code = wait.result()
            if not self._output.join(GRACE_PERIOD):
                logger.debug("Output still open after container exit")
            self.state = SessionState.REPORTING
            return SessionOutcome.exited(code)

        self.state = SessionState.STREAM_CLOSED
        if self._detach_requested.is_set() and self._stream is not None:
            self._stream.close()

        if wait.wait(GRACE_PERIOD):
            self.state = SessionState.EXIT_OBSERVED
            code = wait.result()
            self.state = SessionState.REPORTING
            return SessionOutcome.exited(code)

        self._raise_output_error()
        logger.debug("No exit within grace period; session detached")
        self.state = SessionState.REPORTING
        return SessionOutcome.detached()

    def _close_resources(self) -> None:
        if self._wait is not None and not self._wait.done():
            self._wait.close()
