# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for berth/session/exec.py -- exec sessions."""

import io
import os
import threading

import pytest

from berth.context import Context
from berth.engine.client import ContainerState, ExecConfig, ExecStatus
from berth.engine.framing import STDERR, STDOUT, encode_frame
from berth.errors import ContainerNotRunningError, EngineError, ExitError
from berth.session import (
    ExecSession,
    OutcomeKind,
    SessionStreams,
    start_detached_exec,
)
from tests.conftest import FakeEngine, FakeTerminal


NAME = "berth.myapp.dev"


def make_session(
    engine: FakeEngine,
    terminal: FakeTerminal,
    config: ExecConfig,
    *,
    stdin_fd: int = -1,
) -> tuple[ExecSession, io.BytesIO, io.BytesIO]:
    stdout, stderr = io.BytesIO(), io.BytesIO()
    session = ExecSession(
        engine,  # type: ignore[arg-type]
        NAME,
        config,
        SessionStreams(stdin_fd=stdin_fd, stdout=stdout, stderr=stderr),
        terminal,  # type: ignore[arg-type]
        Context(),
    )
    return session, stdout, stderr


def finish_with(engine: FakeEngine, payload: bytes) -> None:
    """Attach hook: emit *payload* then close the stream."""

    def on_attach(exec_id: str) -> None:
        assert engine.peer is not None
        engine.peer.sendall(payload)
        engine.peer.close()

    engine.on_exec_attach = on_attach


class TestExecSession:
    """Tests for attached exec sessions."""

    def test_output_and_exit_code(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        engine.add_container(NAME)
        finish_with(
            engine,
            encode_frame(STDOUT, b"file\n") + encode_frame(STDERR, b"warn\n"),
        )
        engine.exec_status = ExecStatus(running=False, exit_code=0)
        session, stdout, stderr = make_session(
            engine, terminal, ExecConfig(cmd=["ls"])
        )

        outcome = session.run()

        assert outcome.kind is OutcomeKind.EXITED
        assert outcome.exit_code == 0
        assert stdout.getvalue() == b"file\n"
        assert stderr.getvalue() == b"warn\n"
        assert session.exec_id == "e" * 64
        assert engine.names()[-1] == "exec_inspect"

    def test_nonzero_exit(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        engine.add_container(NAME)
        finish_with(engine, b"")
        engine.exec_status = ExecStatus(running=False, exit_code=2)
        session, _, _ = make_session(
            engine, terminal, ExecConfig(cmd=["false"])
        )

        outcome = session.run()

        with pytest.raises(ExitError) as exc_info:
            outcome.raise_for_status()
        assert exc_info.value.code == 2

    def test_inspect_failure_counts_as_success(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        """A failed exec-inspect after the stream closes reports exit 0."""
        engine.add_container(NAME)
        finish_with(engine, b"")
        engine.exec_inspect_error = EngineError("inspecting exec eee: gone")
        session, _, _ = make_session(engine, terminal, ExecConfig(cmd=["ls"]))

        outcome = session.run()

        assert outcome.kind is OutcomeKind.EXITED
        assert outcome.exit_code == 0

    def test_not_running(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        engine.add_container(NAME, state=ContainerState.EXITED)
        session, _, _ = make_session(engine, terminal, ExecConfig(cmd=["ls"]))

        outcome = session.run()

        assert outcome.kind is OutcomeKind.ERROR
        assert isinstance(outcome.error, ContainerNotRunningError)
        assert "exec_create" not in engine.names()
        assert terminal.events == ["restore"]

    def test_tty_resize_targets_exec(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        engine.add_container(NAME)

        def on_attach(exec_id: str) -> None:
            def later() -> None:
                assert engine.peer is not None
                engine.peer.close()

            threading.Timer(0.1, later).start()

        engine.on_exec_attach = on_attach
        session, _, _ = make_session(
            engine, terminal, ExecConfig(cmd=["sh"], tty=True)
        )

        session.run()

        resizes = [c for c in engine.calls if c[0] == "exec_resize"]
        assert [c[2:] for c in resizes] == [(81, 25), (80, 24)]
        assert "resize" not in engine.names()

    def test_detach_keys(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        """The detach sequence ends an exec session as Detached."""
        engine.add_container(NAME)
        read_fd, write_fd = os.pipe()
        try:
            os.write(write_fd, b"\x10\x11")
            session, _, _ = make_session(
                engine,
                terminal,
                ExecConfig(cmd=["sh"], tty=True, attach_stdin=True),
                stdin_fd=read_fd,
            )

            outcome = session.run()
        finally:
            os.close(read_fd)
            os.close(write_fd)

        assert outcome.kind is OutcomeKind.DETACHED
        assert "exec_inspect" not in engine.names()
        assert terminal.events == ["setup", "restore"]


class TestStartDetachedExec:
    """Tests for exec -d."""

    def test_returns_exec_id_without_attach(self, engine: FakeEngine) -> None:
        engine.add_container(NAME)

        exec_id = start_detached_exec(
            engine,  # type: ignore[arg-type]
            NAME,
            ExecConfig(cmd=["sleep", "100"]),
        )

        assert len(exec_id) >= 8
        assert "exec_start_detached" in engine.names()
        assert "exec_attach" not in engine.names()

    def test_requires_running_container(self, engine: FakeEngine) -> None:
        engine.add_container(NAME, state=ContainerState.PAUSED)
        with pytest.raises(ContainerNotRunningError):
            start_detached_exec(
                engine,  # type: ignore[arg-type]
                NAME,
                ExecConfig(cmd=["true"]),
            )
