# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures and fakes used across multiple test packages.

``FakeEngine`` stands in for ``EngineClient``: it records every call in
order and backs attach and exec streams with socket pairs, so sessions
run their real pumps against a peer socket the test controls.
"""

import io
import socket
import threading
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any

import pytest

from berth.cli.env import CommandEnv
from berth.cli.iostreams import ColorScheme, IOStreams
from berth.config import ProjectConfig, ResolvedConfig, UserSettings
from berth.context import Context
from berth.engine.client import (
    ContainerRef,
    ContainerSpec,
    ContainerState,
    CreateResult,
    ExecConfig,
    ExecStatus,
    WaitCondition,
)
from berth.engine.hijack import HijackedStream
from berth.errors import (
    ContainerNotFoundError,
    EngineError,
    SourceMissingError,
)
from berth.term import TerminalSize


# ── Engine fakes ────────────────────────────────────────────────────


class FakeWait:
    """Exit notification completed by the test with ``fire``."""

    def __init__(self, condition: WaitCondition) -> None:
        self.condition = condition
        self.closed = False
        self._done = threading.Event()
        self._code: int | None = None
        self._error: Exception | None = None
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    def fire(self, code: int = 0, error: Exception | None = None) -> None:
        with self._lock:
            self._code = code
            self._error = error
            self._done.set()
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback()

    def done(self) -> bool:
        return self._done.is_set()

    def add_done_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._done.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)

    def result(self) -> int:
        if self._error is not None:
            raise self._error
        assert self._code is not None
        return self._code

    def close(self) -> None:
        self.closed = True


class FakeStatsStream:
    """Yields canned samples, then blocks like a live stream until closed."""

    def __init__(self, samples: Iterable[dict[str, Any]]) -> None:
        self._samples = list(samples)
        self._closed = threading.Event()

    def __iter__(self) -> Iterator[dict[str, Any]]:
        for sample in self._samples:
            if self._closed.is_set():
                return
            yield sample
        self._closed.wait()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()


class FakeEngine:
    """In-memory engine recording calls in order.

    Attributes:
        calls: ``(operation, *args)`` tuples in call order.
        peer: Test side of the most recent attach or exec stream.
        waits: Wait handles returned by ``wait_for_exit``.
        on_start: Hook run by ``start`` (e.g. to emit output and exit).
        on_exec_attach: Hook run after ``exec_attach`` returns a stream.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.containers: dict[str, ContainerRef] = {}
        self.inspect_data: dict[str, dict[str, Any]] = {}
        self.peer: socket.socket | None = None
        self.streams: list[HijackedStream] = []
        self.waits: list[FakeWait] = []
        self.on_start: Callable[[str], None] | None = None
        self.on_exec_attach: Callable[[str], None] | None = None
        self.start_error: Exception | None = None
        self.attach_error: Exception | None = None
        self.exec_status = ExecStatus(running=False, exit_code=0)
        self.exec_inspect_error: Exception | None = None
        self.stats: dict[str, dict[str, Any]] = {}
        self.stats_streams: list[FakeStatsStream] = []
        self.archives: dict[str, bytes] = {}
        self.uploads: dict[str, bytes] = {}
        self.upload_options: dict[str, dict[str, Any]] = {}
        self.images: list[dict[str, Any]] = []
        self.listed: list[dict[str, Any]] = []
        self.created: list[ContainerSpec] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self._peers: list[socket.socket] = []

    # ── Test helpers ────────────────────────────────────────────────

    def add_container(
        self,
        name: str,
        container_id: str | None = None,
        *,
        state: ContainerState = ContainerState.RUNNING,
        tty: bool = False,
        stdin_open: bool = False,
    ) -> ContainerRef:
        ref = ContainerRef(
            id=container_id or (name.replace(".", "") + "0" * 64)[:64],
            name=name,
            state=state,
            tty=tty,
            stdin_open=stdin_open,
        )
        self.containers[name] = ref
        self.containers[ref.id] = ref
        return ref

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def close_peers(self) -> None:
        for peer in self._peers:
            peer.close()

    def _record(self, *call: Any) -> None:
        self.calls.append(call)
        error = self.failures.get((call[0], call[1]))
        if error is not None:
            raise error

    def _pair(self, framed: bool) -> HijackedStream:
        ours, theirs = socket.socketpair()
        self._peers.append(theirs)
        self.peer = theirs
        stream = HijackedStream(ours, framed=framed)
        self.streams.append(stream)
        return stream

    # ── Containers ──────────────────────────────────────────────────

    def close(self) -> None:
        self.calls.append(("close",))

    def get_container(self, ref: str) -> ContainerRef:
        self.calls.append(("get_container", ref))
        if ref not in self.containers:
            raise ContainerNotFoundError(ref)
        return self.containers[ref]

    def inspect_container(self, ref: str) -> dict[str, Any]:
        self.calls.append(("inspect_container", ref))
        if ref not in self.inspect_data:
            raise ContainerNotFoundError(ref)
        return self.inspect_data[ref]

    def list_containers(
        self, *, all: bool = False, labels: list[str] | None = None
    ) -> list[dict[str, Any]]:
        self.calls.append(("list_containers", all, labels))
        return self.listed

    def list_images(self, labels: list[str] | None = None) -> list[dict]:
        self.calls.append(("list_images", labels))
        return self.images

    def create_container(self, spec: ContainerSpec) -> CreateResult:
        self.calls.append(("create", spec.name))
        self.created.append(spec)
        ref = self.add_container(
            spec.name or "created",
            "c" * 64,
            state=ContainerState.CREATED,
            tty=spec.tty,
            stdin_open=spec.stdin_open,
        )
        return CreateResult(id=ref.id)

    def start(self, container_id: str) -> None:
        self._record("start", container_id)
        if self.start_error is not None:
            raise self.start_error
        if self.on_start is not None:
            self.on_start(container_id)

    def stop(self, container_id: str, timeout: int | None = None) -> None:
        self._record("stop", container_id)

    def kill(self, container_id: str, signal: str | int | None = None) -> None:
        self._record("kill", container_id, signal)

    def remove(
        self, container_id: str, *, force: bool = False, volumes: bool = False
    ) -> None:
        self._record("remove", container_id)

    def resize(self, container_id: str, cols: int, rows: int) -> None:
        self.calls.append(("resize", container_id, cols, rows))

    # ── Attach and wait ─────────────────────────────────────────────

    def attach(
        self,
        container_id: str,
        *,
        stdin: bool,
        framed: bool,
        detach_keys: str | None = None,
    ) -> HijackedStream:
        self.calls.append(("attach", container_id, stdin, framed))
        if self.attach_error is not None:
            raise self.attach_error
        return self._pair(framed)

    def wait_for_exit(
        self, container_id: str, condition: WaitCondition
    ) -> FakeWait:
        self.calls.append(("wait", container_id, condition))
        handle = FakeWait(condition)
        self.waits.append(handle)
        return handle

    # ── Exec ────────────────────────────────────────────────────────

    def exec_create(self, container_id: str, config: ExecConfig) -> str:
        self.calls.append(("exec_create", container_id, tuple(config.cmd)))
        return "e" * 64

    def exec_start_detached(self, exec_id: str, *, tty: bool) -> None:
        self.calls.append(("exec_start_detached", exec_id))

    def exec_attach(self, exec_id: str, *, tty: bool) -> HijackedStream:
        self.calls.append(("exec_attach", exec_id))
        stream = self._pair(not tty)
        if self.on_exec_attach is not None:
            self.on_exec_attach(exec_id)
        return stream

    def exec_inspect(self, exec_id: str) -> ExecStatus:
        self.calls.append(("exec_inspect", exec_id))
        if self.exec_inspect_error is not None:
            raise self.exec_inspect_error
        return self.exec_status

    def exec_resize(self, exec_id: str, cols: int, rows: int) -> None:
        self.calls.append(("exec_resize", exec_id, cols, rows))

    # ── Stats ───────────────────────────────────────────────────────

    def stats_once(self, container_id: str) -> dict[str, Any]:
        self.calls.append(("stats_once", container_id))
        if container_id not in self.stats:
            raise EngineError(f"getting stats for {container_id[:12]}: gone")
        return self.stats[container_id]

    def stats_stream(self, container_id: str) -> FakeStatsStream:
        self.calls.append(("stats_stream", container_id))
        stream = FakeStatsStream([self.stats.get(container_id, {})])
        self.stats_streams.append(stream)
        return stream

    # ── Archives ────────────────────────────────────────────────────

    def get_archive(
        self, container_id: str, path: str
    ) -> tuple[Iterator[bytes], dict[str, Any]]:
        self.calls.append(("get_archive", container_id, path))
        if path not in self.archives:
            raise SourceMissingError(path)
        data = self.archives[path]
        chunks = (data[i : i + 1000] for i in range(0, len(data), 1000))
        return chunks, {"name": path.rsplit("/", 1)[-1]}

    def put_archive(
        self,
        container_id: str,
        path: str,
        data: Iterable[bytes],
        **options: Any,
    ) -> None:
        self.calls.append(("put_archive", container_id, path))
        self.uploads[path] = b"".join(data)
        self.upload_options[path] = options


# ── Terminal fake ───────────────────────────────────────────────────


class FakeTerminal:
    """Terminal controller double recording raw-mode transitions."""

    def __init__(
        self, *, tty: bool = True, size: tuple[int, int] = (80, 24)
    ) -> None:
        self.tty = tty
        self.size = size
        self.events: list[str] = []
        self.owner: object | None = None
        self._subscribers: dict[int, Callable[[TerminalSize], None]] = {}
        self._next = 0

    @property
    def is_raw(self) -> bool:
        return self.owner is not None

    def is_tty(self) -> bool:
        return self.tty

    def setup(
        self,
        owner: object,
        on_signal: Callable[[int], None] | None = None,
    ) -> None:
        self.events.append("setup")
        self.owner = owner

    def restore(self, owner: object | None = None) -> None:
        self.events.append("restore")
        if owner is None or owner is self.owner:
            self.owner = None

    def apply_initial_size(self, resize: Callable[[int, int], None]) -> None:
        cols, rows = self.size
        resize(cols + 1, rows + 1)
        resize(cols, rows)

    def on_resize(
        self, callback: Callable[[TerminalSize], None]
    ) -> Callable[[], None]:
        token = self._next
        self._next += 1
        self._subscribers[token] = callback

        def release() -> None:
            self._subscribers.pop(token, None)

        return release

    @property
    def subscribers(self) -> int:
        return len(self._subscribers)

    def emit_resize(self, cols: int, rows: int) -> None:
        for callback in list(self._subscribers.values()):
            callback(TerminalSize(cols=cols, rows=rows))


# ── Stdio helpers ───────────────────────────────────────────────────


def text_stream(data: bytes = b"") -> io.TextIOWrapper:
    """Text stream with a ``.buffer``, as ``sys.stdout`` has."""
    return io.TextIOWrapper(
        io.BytesIO(data), encoding="utf-8", write_through=True
    )


def written(stream: io.TextIOWrapper) -> bytes:
    stream.flush()
    buffer = stream.buffer
    assert isinstance(buffer, io.BytesIO)
    return buffer.getvalue()


def output(stream: io.TextIOWrapper) -> str:
    return written(stream).decode()


def default_config(project: str = "myapp") -> ResolvedConfig:
    return ResolvedConfig(
        project,
        ProjectConfig(project=project),
        UserSettings(),
        Path("/work") / project,
    )


def make_env(
    engine: FakeEngine,
    *,
    terminal: FakeTerminal | None = None,
    config: ResolvedConfig | None = None,
    stdin: bytes = b"",
) -> CommandEnv:
    resolved = config or default_config()
    return CommandEnv(
        io=IOStreams(
            stdin=text_stream(stdin),
            stdout=text_stream(),
            stderr=text_stream(),
            color=ColorScheme(False),
        ),
        engine_factory=lambda: engine,  # type: ignore[arg-type,return-value]
        config_loader=lambda workdir: resolved,
        ctx=Context(),
        terminal=terminal or FakeTerminal(tty=False),  # type: ignore[arg-type]
    )


# ── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture
def engine() -> Iterator[FakeEngine]:
    """Fake engine; peer sockets are closed after the test."""
    fake = FakeEngine()
    yield fake
    fake.close_peers()


@pytest.fixture
def terminal() -> FakeTerminal:
    return FakeTerminal()
