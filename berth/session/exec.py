# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Exec sessions: a secondary process in a running container."""

import logging

from berth.context import Context
from berth.engine.client import EngineClient, ExecConfig
from berth.errors import BerthError, ContainerNotRunningError, EngineError
from berth.session._base import StreamingSession
from berth.session.types import SessionOutcome, SessionStreams
from berth.term import TerminalController


logger = logging.getLogger(__name__)


def start_detached_exec(
    engine: EngineClient, container_ref: str, config: ExecConfig
) -> str:
    """Create and start an exec instance without attaching.

    Args:
        engine: Engine client.
        container_ref: Container name or ID.
        config: Exec configuration.

    Returns:
        The exec instance ID.

    Raises:
        ContainerNotRunningError: If the container is not running.
    """
    container = engine.get_container(container_ref)
    if not container.running:
        raise ContainerNotRunningError(container_ref)
    exec_id = engine.exec_create(container.id, config)
    engine.exec_start_detached(exec_id, tty=config.tty)
    return exec_id


class ExecSession(StreamingSession):
    """Runs an attached exec instance to completion.

    Unlike a container session there is no exit notification: the
    process is running once exec-start returns, and its exit code is
    read with exec-inspect after the stream closes.

    Attributes:
        container_ref: Container name or ID.
        config: Exec configuration.
        exec_id: Exec instance ID once created.
    """

    def __init__(
        self,
        engine: EngineClient,
        container_ref: str,
        config: ExecConfig,
        streams: SessionStreams,
        terminal: TerminalController,
        ctx: Context,
        detach_keys: str | None = None,
    ) -> None:
        super().__init__(engine, streams, terminal, ctx, detach_keys)
        self.container_ref = container_ref
        self.config = config
        self.exec_id: str | None = None

    def run(self) -> SessionOutcome:
        """Run the exec session; cleanup has completed on return."""
        try:
            return self._run()
        except BerthError as e:
            logger.debug("Exec in %s failed: %s", self.container_ref, e)
            return SessionOutcome.failed(e)
        finally:
            self._cleanup()

    def _run(self) -> SessionOutcome:
        config = self.config
        container = self._engine.get_container(self.container_ref)
        if not container.running:
            raise ContainerNotRunningError(self.container_ref)

        exec_id = self._engine.exec_create(container.id, config)
        self.exec_id = exec_id
        self._stream = self._engine.exec_attach(exec_id, tty=config.tty)

        if config.tty and config.attach_stdin and self._terminal.is_tty():
            self._enter_raw()
        self._start_pumps(self._stream, config.attach_stdin)

        if config.tty:
            self._install_resize(
                lambda cols, rows: self._engine.exec_resize(
                    exec_id, cols, rows
                )
            )

        self._wait_for(self._stream_closed)

        if self._detach_requested.is_set():
            self._stream.close()
            return SessionOutcome.detached()

        self._raise_output_error()
        return SessionOutcome.exited(self._exit_code(exec_id))

    def _exit_code(self, exec_id: str) -> int:
        """Read the exec exit code, treating inspect failures as success."""
        try:
            status = self._engine.exec_inspect(exec_id)
        except EngineError as e:
            logger.debug("Inspecting exec %s failed: %s", exec_id, e)
            return 0
        return status.exit_code or 0
