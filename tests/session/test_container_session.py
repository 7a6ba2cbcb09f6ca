# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for berth/session/container.py -- run/start/attach sessions."""

import io
import os
import pty
import termios
import threading
from collections.abc import Callable, Iterator

import pytest

from berth.context import Context, ContextCancelled
from berth.engine.client import WaitCondition
from berth.engine.framing import STDERR, STDOUT, encode_frame
from berth.errors import EngineError, ExitError
from berth.session import (
    AttachOptions,
    ContainerSession,
    OutcomeKind,
    SessionState,
    SessionStreams,
)
from berth.term import TerminalController
from tests.conftest import FakeEngine, FakeTerminal


CID = "c" * 64


@pytest.fixture(autouse=True)
def short_grace(monkeypatch: pytest.MonkeyPatch) -> None:
    """Shrink the detach grace period to keep tests fast."""
    monkeypatch.setattr("berth.session.container.GRACE_PERIOD", 0.2)


@pytest.fixture
def stdin_pipe() -> Iterator[tuple[int, int]]:
    read_fd, write_fd = os.pipe()
    yield read_fd, write_fd
    for fd in (read_fd, write_fd):
        try:
            os.close(fd)
        except OSError:
            pass


def make_session(
    engine: FakeEngine,
    terminal: FakeTerminal | TerminalController,
    options: AttachOptions,
    *,
    stdin_fd: int = -1,
    ctx: Context | None = None,
) -> tuple[ContainerSession, io.BytesIO, io.BytesIO]:
    stdout, stderr = io.BytesIO(), io.BytesIO()
    session = ContainerSession(
        engine,  # type: ignore[arg-type]
        CID,
        options,
        SessionStreams(stdin_fd=stdin_fd, stdout=stdout, stderr=stderr),
        terminal,  # type: ignore[arg-type]
        ctx or Context(),
    )
    return session, stdout, stderr


def exit_after(
    engine: FakeEngine, payload: bytes, code: int
) -> Callable[[str], None]:
    """Start hook that writes *payload*, closes the stream and exits."""

    def on_start(container_id: str) -> None:
        assert engine.peer is not None
        engine.peer.sendall(payload)
        engine.peer.close()
        engine.waits[-1].fire(code)

    return on_start


# ── Ordering and wait conditions ────────────────────────────────────


class TestOrdering:
    """Tests for the attach-before-start flow."""

    def test_attach_wait_start_order(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        """Attach and wait registration both precede start."""
        engine.on_start = exit_after(engine, encode_frame(STDOUT, b"hi\n"), 0)
        session, stdout, _ = make_session(
            engine, terminal, AttachOptions(stdin_open=False, tty=False)
        )

        outcome = session.run()

        names = engine.names()
        assert names.index("attach") < names.index("wait")
        assert names.index("wait") < names.index("start")
        assert outcome.kind is OutcomeKind.EXITED
        assert outcome.exit_code == 0
        assert stdout.getvalue() == b"hi\n"
        assert session.state is SessionState.DONE

    @pytest.mark.parametrize(
        ("options", "condition"),
        [
            (
                AttachOptions(stdin_open=False, tty=False),
                WaitCondition.NEXT_EXIT,
            ),
            (
                AttachOptions(stdin_open=False, tty=False, auto_remove=True),
                WaitCondition.REMOVED,
            ),
            (
                AttachOptions(stdin_open=False, tty=False, start=False),
                WaitCondition.NOT_RUNNING,
            ),
        ],
    )
    def test_wait_condition(
        self,
        engine: FakeEngine,
        terminal: FakeTerminal,
        options: AttachOptions,
        condition: WaitCondition,
    ) -> None:
        """next-exit before start, removed with --rm, never not-running
        when the session starts the container."""
        session, _, _ = make_session(engine, terminal, options)
        assert session.wait_condition() is condition

    def test_attach_only_does_not_start(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        """Attaching to a running container never calls start."""
        session, stdout, _ = make_session(
            engine,
            terminal,
            AttachOptions(stdin_open=False, tty=False, start=False),
        )

        def finish() -> None:
            assert engine.peer is not None
            engine.peer.sendall(encode_frame(STDOUT, b"tail\n"))
            engine.peer.close()
            engine.waits[-1].fire(0)

        threading.Timer(0.05, finish).start()
        outcome = session.run()

        assert "start" not in engine.names()
        assert engine.waits[0].condition is WaitCondition.NOT_RUNNING
        assert outcome.exit_code == 0
        assert stdout.getvalue() == b"tail\n"


# ── Output and exit ─────────────────────────────────────────────────


class TestOutput:
    """Tests for output pumping and exit propagation."""

    def test_framed_output_is_demultiplexed(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        payload = (
            encode_frame(STDOUT, b"out1 ")
            + encode_frame(STDERR, b"err1 ")
            + encode_frame(STDOUT, b"out2")
            + encode_frame(STDERR, b"err2")
        )
        engine.on_start = exit_after(engine, payload, 0)
        session, stdout, stderr = make_session(
            engine, terminal, AttachOptions(stdin_open=False, tty=False)
        )

        session.run()

        assert stdout.getvalue() == b"out1 out2"
        assert stderr.getvalue() == b"err1 err2"

    def test_tty_output_is_raw(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        """A TTY stream is copied verbatim to stdout."""
        engine.on_start = exit_after(engine, b"\x1b[1mhi\r\n", 0)
        session, stdout, stderr = make_session(
            engine, terminal, AttachOptions(stdin_open=False, tty=True)
        )

        session.run()

        assert engine.calls[0][3] is False
        assert stdout.getvalue() == b"\x1b[1mhi\r\n"
        assert stderr.getvalue() == b""

    def test_nonzero_exit_raises_exit_error(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        """Exit code 42 becomes ExitError(42) with the terminal restored."""
        engine.on_start = exit_after(engine, b"", 42)
        session, _, _ = make_session(
            engine, terminal, AttachOptions(stdin_open=False, tty=True)
        )

        outcome = session.run()

        assert outcome.kind is OutcomeKind.EXITED
        assert outcome.exit_code == 42
        with pytest.raises(ExitError) as exc_info:
            outcome.raise_for_status()
        assert exc_info.value.code == 42
        assert terminal.events[-1] == "restore"
        assert not terminal.is_raw

    def test_exit_before_stream_closes(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        """Output sent before the exit notification is not lost."""

        def on_start(container_id: str) -> None:
            engine.waits[-1].fire(0)
            assert engine.peer is not None
            engine.peer.sendall(encode_frame(STDOUT, b"late"))
            engine.peer.close()

        engine.on_start = on_start
        session, stdout, _ = make_session(
            engine, terminal, AttachOptions(stdin_open=False, tty=False)
        )

        assert session.run().exit_code == 0
        assert stdout.getvalue() == b"late"


# ── Detach window ───────────────────────────────────────────────────


class TestDetachWindow:
    """Tests for telling a detach from an exit after the stream closes."""

    def test_no_exit_within_grace_is_detached(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        def on_start(container_id: str) -> None:
            assert engine.peer is not None
            engine.peer.close()

        engine.on_start = on_start
        session, _, _ = make_session(
            engine, terminal, AttachOptions(stdin_open=False, tty=False)
        )

        outcome = session.run()

        assert outcome.kind is OutcomeKind.DETACHED
        outcome.raise_for_status()
        assert engine.waits[0].closed

    def test_exit_within_grace_is_exited(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        def on_start(container_id: str) -> None:
            assert engine.peer is not None
            engine.peer.close()
            threading.Timer(0.05, engine.waits[-1].fire, args=(3,)).start()

        engine.on_start = on_start
        session, _, _ = make_session(
            engine, terminal, AttachOptions(stdin_open=False, tty=False)
        )

        outcome = session.run()

        assert outcome.kind is OutcomeKind.EXITED
        assert outcome.exit_code == 3

    def test_detach_keys_end_session(
        self,
        engine: FakeEngine,
        terminal: FakeTerminal,
        stdin_pipe: tuple[int, int],
    ) -> None:
        """Ctrl-P Ctrl-Q detaches without forwarding the sequence."""
        read_fd, write_fd = stdin_pipe
        os.write(write_fd, b"ls\n\x10\x11")
        session, _, _ = make_session(
            engine,
            terminal,
            AttachOptions(stdin_open=True, tty=True, start=False),
            stdin_fd=read_fd,
        )

        outcome = session.run()

        assert outcome.kind is OutcomeKind.DETACHED
        assert "kill" not in engine.names()
        assert "stop" not in engine.names()
        assert terminal.events == ["setup", "restore"]
        assert engine.peer is not None
        received = b""
        while chunk := engine.peer.recv(1024):
            received += chunk
        assert received == b"ls\n"


# ── Terminal handling ───────────────────────────────────────────────


class TestTerminal:
    """Tests for raw mode, resize and restore."""

    def test_raw_mode_only_for_interactive_tty(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        engine.on_start = exit_after(engine, b"", 0)
        session, _, _ = make_session(
            engine, terminal, AttachOptions(stdin_open=False, tty=True)
        )
        session.run()
        assert "setup" not in terminal.events

    def test_initial_resize_pair_after_start(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        """Exactly one +1/-1 pair follows start, in that order."""

        def on_start(container_id: str) -> None:
            threading.Timer(
                0.1, exit_after(engine, b"", 0), args=(CID,)
            ).start()

        engine.on_start = on_start
        session, _, _ = make_session(
            engine, terminal, AttachOptions(stdin_open=False, tty=True)
        )

        session.run()

        resizes = [c for c in engine.calls if c[0] == "resize"]
        assert resizes == [
            ("resize", CID, 81, 25),
            ("resize", CID, 80, 24),
        ]
        first_resize = engine.calls.index(resizes[0])
        assert engine.names().index("start") < first_resize

    def test_resize_events_are_forwarded(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        """Each host size change yields one engine resize."""

        def on_start(container_id: str) -> None:
            def later() -> None:
                terminal.emit_resize(100, 30)
                terminal.emit_resize(120, 40)
                exit_after(engine, b"", 0)(CID)

            threading.Timer(0.1, later).start()

        engine.on_start = on_start
        session, _, _ = make_session(
            engine, terminal, AttachOptions(stdin_open=False, tty=True)
        )

        session.run()

        resizes = [c[2:] for c in engine.calls if c[0] == "resize"]
        assert resizes == [(81, 25), (80, 24), (100, 30), (120, 40)]
        assert terminal.subscribers == 0

    def test_no_resize_without_tty(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        engine.on_start = exit_after(engine, b"", 0)
        session, _, _ = make_session(
            engine, terminal, AttachOptions(stdin_open=False, tty=False)
        )
        session.run()
        assert "resize" not in engine.names()

    def test_real_pty_restored_after_exit(self, engine: FakeEngine) -> None:
        """run -it leaves the pty in the exact state captured at setup."""
        master, slave = pty.openpty()
        try:
            before = termios.tcgetattr(slave)
            controller = TerminalController(slave, slave)
            engine.on_start = exit_after(engine, b"hi\r\n", 0)
            session, stdout, _ = make_session(
                engine,
                controller,
                AttachOptions(stdin_open=True, tty=True),
                stdin_fd=slave,
            )

            outcome = session.run()

            assert outcome.exit_code == 0
            assert stdout.getvalue() == b"hi\r\n"
            assert not controller.is_raw
            assert termios.tcgetattr(slave) == before
        finally:
            os.close(master)
            os.close(slave)


# ── Failures ────────────────────────────────────────────────────────


class TestFailures:
    """Tests for error paths; cleanup always runs."""

    def test_start_failure(
        self,
        engine: FakeEngine,
        terminal: FakeTerminal,
        stdin_pipe: tuple[int, int],
    ) -> None:
        engine.start_error = EngineError("starting container ccc: no space")
        session, _, _ = make_session(
            engine,
            terminal,
            AttachOptions(stdin_open=True, tty=True),
            stdin_fd=stdin_pipe[0],
        )

        outcome = session.run()

        assert outcome.kind is OutcomeKind.ERROR
        with pytest.raises(EngineError, match="no space"):
            outcome.raise_for_status()
        assert terminal.events == ["setup", "restore"]
        assert engine.streams[0].closed
        assert engine.waits[0].closed

    def test_attach_failure(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        engine.attach_error = EngineError("attaching to container ccc: no")
        session, _, _ = make_session(
            engine, terminal, AttachOptions(stdin_open=True, tty=True)
        )

        outcome = session.run()

        assert outcome.kind is OutcomeKind.ERROR
        assert "start" not in engine.names()
        assert terminal.events == ["restore"]
        assert not terminal.is_raw

    def test_cancellation(
        self,
        engine: FakeEngine,
        terminal: FakeTerminal,
        stdin_pipe: tuple[int, int],
    ) -> None:
        """Cancelling the context ends the session and restores."""
        ctx = Context()
        session, _, _ = make_session(
            engine,
            terminal,
            AttachOptions(stdin_open=True, tty=True),
            stdin_fd=stdin_pipe[0],
            ctx=ctx,
        )
        threading.Timer(0.1, ctx.cancel).start()

        outcome = session.run()

        assert outcome.kind is OutcomeKind.ERROR
        assert isinstance(outcome.error, ContextCancelled)
        assert terminal.events == ["setup", "restore"]
        assert engine.streams[0].closed

    def test_wait_error_is_reported(
        self, engine: FakeEngine, terminal: FakeTerminal
    ) -> None:
        def on_start(container_id: str) -> None:
            engine.waits[-1].fire(
                0, EngineError("waiting for container ccc: boom")
            )

        engine.on_start = on_start
        session, _, _ = make_session(
            engine, terminal, AttachOptions(stdin_open=False, tty=False)
        )

        outcome = session.run()

        assert outcome.kind is OutcomeKind.ERROR
        assert "boom" in str(outcome.error)
