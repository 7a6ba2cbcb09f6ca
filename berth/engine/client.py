# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Container engine client.

``EngineClient`` wraps the ``docker`` SDK's low-level ``APIClient`` and
is the only place that talks to the engine.  It:

- translates SDK and transport exceptions into ``berth.errors`` types
  whose message names the operation that failed;
- returns hijacked streams, wait handles and stats streams whose
  blocking reads another thread can cancel.

Only IDs returned by the engine are used after the first lookup, so a
name reused mid-operation cannot redirect later calls.
"""

import json
import logging
import os
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import docker
import docker.errors
import docker.utils
import requests
import urllib3

from berth.engine.hijack import HijackedStream, shutdown_socket
from berth.errors import (
    ContainerNotFoundError,
    EngineError,
    EngineUnavailableError,
    SourceMissingError,
)


logger = logging.getLogger(__name__)

#: Default request timeout for non-streaming calls, in seconds.
DEFAULT_TIMEOUT = 60


class ContainerState(Enum):
    """Lifecycle state reported by the engine."""

    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    RESTARTING = "restarting"
    REMOVING = "removing"
    EXITED = "exited"
    DEAD = "dead"


class WaitCondition(Enum):
    """Condition for the engine wait endpoint.

    ``NOT_RUNNING`` returns immediately for a created container, so it
    is never used before start.
    """

    NOT_RUNNING = "not-running"
    NEXT_EXIT = "next-exit"
    REMOVED = "removed"


def short_id(container_id: str) -> str:
    """Return the 12-character display form of an ID."""
    return container_id[:12]


@dataclass(frozen=True)
class ContainerRef:
    """A container as observed by one engine call.

    Never cached across commands.

    Attributes:
        id: Full engine ID.
        name: Name without the engine's leading ``/``.
        state: Lifecycle state at inspection time.
        tty: Whether the container was created with a TTY.
        stdin_open: Whether the container keeps stdin open.
    """

    id: str
    name: str
    state: ContainerState
    tty: bool = False
    stdin_open: bool = False

    @property
    def short_id(self) -> str:
        return short_id(self.id)

    @property
    def running(self) -> bool:
        return self.state is ContainerState.RUNNING

    @classmethod
    def from_inspect(cls, data: dict[str, Any]) -> "ContainerRef":
        """Build a ref from an inspect response."""
        config = data.get("Config") or {}
        status = (data.get("State") or {}).get("Status", "dead")
        try:
            state = ContainerState(status)
        except ValueError:
            state = ContainerState.DEAD
        return cls(
            id=data["Id"],
            name=data.get("Name", "").removeprefix("/"),
            state=state,
            tty=bool(config.get("Tty")),
            stdin_open=bool(config.get("OpenStdin")),
        )


@dataclass(frozen=True)
class ContainerSpec:
    """Everything needed to create a container.

    Attributes:
        image: Image reference.
        name: Container name, or None for an engine-generated name.
        command: Command override.
        entrypoint: Entrypoint override.
        env: ``KEY=VALUE`` entries.
        binds: Volume binds (``host:container[:mode]``).
        ports: Port publications (``[host:]container[/proto]``).
        labels: Container labels.
        workdir: Working directory inside the container.
        user: User (``name|uid[:group|gid]``).
        tty: Allocate a pseudo-TTY.
        stdin_open: Keep stdin open.
        attach: Whether a client will attach (sets the attach flags).
        network: Network mode or name.
        auto_remove: Remove the container when it exits.
        restart_policy: Restart policy name (``no``, ``always``, ...).
        memory: Memory limit (engine syntax, e.g. ``512m``).
        memory_swap: Memory plus swap limit.
        privileged: Run privileged.
    """

    image: str
    name: str | None = None
    command: list[str] = field(default_factory=list)
    entrypoint: str | None = None
    env: list[str] = field(default_factory=list)
    binds: list[str] = field(default_factory=list)
    ports: list[str] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    workdir: str | None = None
    user: str | None = None
    tty: bool = False
    stdin_open: bool = False
    attach: bool = False
    network: str | None = None
    auto_remove: bool = False
    restart_policy: str | None = None
    memory: str | None = None
    memory_swap: str | None = None
    privileged: bool = False


@dataclass(frozen=True)
class CreateResult:
    """Result of container creation.

    Attributes:
        id: New container ID.
        warnings: Engine warnings to show the user.
    """

    id: str
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ExecConfig:
    """Configuration of an exec instance.

    Attributes:
        cmd: Command and arguments.
        env: ``KEY=VALUE`` entries.
        workdir: Working directory, or None for the container default.
        user: User override.
        privileged: Extended privileges.
        tty: Allocate a pseudo-TTY.
        attach_stdin: Attach stdin (interactive).
        detach_keys: Engine-side detach key override.
    """

    cmd: list[str]
    env: list[str] = field(default_factory=list)
    workdir: str | None = None
    user: str = ""
    privileged: bool = False
    tty: bool = False
    attach_stdin: bool = False
    detach_keys: str | None = None


@dataclass(frozen=True)
class ExecStatus:
    """Exec instance state from exec-inspect."""

    running: bool
    exit_code: int | None


def _explain(error: docker.errors.APIError) -> str:
    return str(error.explanation or error)


@contextmanager
def _call(action: str, ref: str | None = None) -> Iterator[None]:
    """Translate engine SDK exceptions raised in the block.

    Args:
        action: Operation description used as the message prefix.
        ref: Container reference; when given, 404 responses become
            ``ContainerNotFoundError``.
    """
    try:
        yield
    except docker.errors.NotFound as e:
        if ref is not None:
            raise ContainerNotFoundError(ref) from e
        raise EngineError(f"{action}: {_explain(e)}") from e
    except docker.errors.APIError as e:
        raise EngineError(f"{action}: {_explain(e)}") from e
    except requests.exceptions.ConnectionError as e:
        raise EngineUnavailableError(str(e)) from e
    except docker.errors.DockerException as e:
        raise EngineError(f"{action}: {e}") from e


def _on(action: str, container_id: str) -> Any:
    """Shorthand for ``_call`` on a container operation."""
    return _call(f"{action} {short_id(container_id)}", container_id)


class WaitHandle:
    """Pending exit notification for one container.

    The wait request is registered with the engine before the handle is
    returned; the response body is read on a daemon thread.

    Thread Safety:
        ``wait``, ``result`` and ``close`` may be called from any thread.
    """

    def __init__(self, response: Any, sock: Any, container_id: str) -> None:
        self._response = response
        self._sock = sock
        self._container_id = container_id
        self._done = threading.Event()
        self._code: int | None = None
        self._error: Exception | None = None
        self._closed = False
        self._callbacks: list[Callable[[], None]] = []
        self._callback_lock = threading.Lock()
        self._thread = threading.Thread(
            target=self._run,
            name=f"wait-{short_id(container_id)}",
            daemon=True,
        )
        self._thread.start()

    def _run(self) -> None:
        try:
            body = json.loads(self._response.content or b"{}")
            error = (body.get("Error") or {}).get("Message")
            if error:
                self._error = EngineError(
                    f"waiting for container {short_id(self._container_id)}: "
                    f"{error}"
                )
            else:
                self._code = int(body.get("StatusCode", 0))
        except (requests.exceptions.RequestException, OSError, ValueError) as e:
            if self._closed:
                self._error = EngineError("wait cancelled")
            else:
                self._error = EngineError(
                    f"waiting for container "
                    f"{short_id(self._container_id)}: {e}"
                )
        finally:
            with self._callback_lock:
                self._done.set()
                callbacks = list(self._callbacks)
            for callback in callbacks:
                callback()

    def done(self) -> bool:
        return self._done.is_set()

    def add_done_callback(self, callback: Callable[[], None]) -> None:
        """Call *callback* once the notification arrives.

        Runs immediately if it already has.
        """
        with self._callback_lock:
            if not self._done.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the notification arrives or *timeout* passes.

        Returns:
            True if the notification (or an error) arrived.
        """
        return self._done.wait(timeout)

    def result(self) -> int:
        """Return the exit status.

        Raises:
            EngineError: If the wait failed or was cancelled.
            RuntimeError: If called before ``done()``.
        """
        if not self._done.is_set():
            raise RuntimeError("wait result not available yet")
        if self._error is not None:
            raise self._error
        assert self._code is not None
        return self._code

    def close(self) -> None:
        """Abandon the wait, unblocking the reader thread."""
        if self._closed:
            return
        self._closed = True
        shutdown_socket(self._sock)
        self._response.close()


class StatsStream:
    """Iterator over streaming stats samples for one container.

    ``close`` may be called from another thread to stop a blocked
    iteration; the iterator then ends without raising.
    """

    def __init__(self, api: Any, response: Any, sock: Any) -> None:
        self._api = api
        self._response = response
        self._sock = sock
        self._closed = False

    def __iter__(self) -> Iterator[dict[str, Any]]:
        try:
            yield from self._api._stream_helper(self._response, decode=True)
        except (
            requests.exceptions.RequestException,
            urllib3.exceptions.HTTPError,
            OSError,
            ValueError,
        ) as e:
            if not self._closed:
                raise EngineError(f"streaming stats: {e}") from e

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        shutdown_socket(self._sock)
        self._response.close()


class LogStream:
    """Streaming logs response.

    Reads after ``close`` (from any thread) return EOF instead of
    raising.

    Attributes:
        framed: True when the output is multiplexed (non-TTY container).
    """

    def __init__(self, response: Any, sock: Any, *, framed: bool) -> None:
        self._response = response
        self._sock = sock
        self._closed = False
        self.framed = framed

    @contextmanager
    def _reading(self) -> Iterator[None]:
        try:
            yield
        except (
            requests.exceptions.RequestException,
            urllib3.exceptions.HTTPError,
            OSError,
        ) as e:
            if not self._closed:
                raise EngineError(f"reading logs: {e}") from e

    def read(self, size: int) -> bytes:
        """Read up to *size* bytes of the raw body."""
        if self._closed:
            return b""
        with self._reading():
            return self._response.raw.read(size)
        return b""

    def iter_chunks(self) -> Iterator[bytes]:
        """Yield raw body chunks as they arrive."""
        with self._reading():
            yield from self._response.iter_content(chunk_size=None)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        shutdown_socket(self._sock)
        self._response.close()


class EngineClient:
    """Engine operations used by berth.

    Thread Safety:
        The underlying ``requests`` session is shared; concurrent calls
        from several threads are supported by the SDK's connection pool.
    """

    def __init__(self, api: Any) -> None:
        self._api = api

    @classmethod
    def from_env(cls, timeout: int = DEFAULT_TIMEOUT) -> "EngineClient":
        """Connect using ``BERTH_HOST`` or the standard ``DOCKER_*`` variables.

        Raises:
            EngineUnavailableError: If the engine cannot be reached.
        """
        environment = dict(os.environ)
        host = os.environ.get("BERTH_HOST")
        if host:
            environment["DOCKER_HOST"] = host
        try:
            api = docker.APIClient(
                version="auto",
                timeout=timeout,
                **docker.utils.kwargs_from_env(environment=environment),
            )
        except (
            docker.errors.DockerException,
            requests.exceptions.ConnectionError,
        ) as e:
            raise EngineUnavailableError(str(e)) from e
        return cls(api)

    def close(self) -> None:
        self._api.close()

    # ── Containers ──────────────────────────────────────────────────

    def inspect_container(self, ref: str) -> dict[str, Any]:
        """Return the raw inspect response for a name or ID."""
        with _call(f"inspecting container {ref}", ref):
            return self._api.inspect_container(ref)

    def get_container(self, ref: str) -> ContainerRef:
        """Look up a container by name or ID.

        Raises:
            ContainerNotFoundError: If no container matches.
        """
        return ContainerRef.from_inspect(self.inspect_container(ref))

    def list_containers(
        self,
        *,
        all: bool = False,
        labels: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """List containers, optionally filtered by ``key=value`` labels."""
        filters = {"label": labels} if labels else None
        with _call("listing containers"):
            return self._api.containers(all=all, filters=filters)

    def create_container(self, spec: ContainerSpec) -> CreateResult:
        """Create a container from *spec*."""
        restart = (
            {"Name": spec.restart_policy} if spec.restart_policy else None
        )
        with _call(f"creating container from {spec.image}"):
            host_config = self._api.create_host_config(
                binds=spec.binds or None,
                port_bindings=_port_bindings(spec.ports) or None,
                auto_remove=spec.auto_remove,
                network_mode=spec.network,
                restart_policy=restart,
                mem_limit=spec.memory,
                memswap_limit=spec.memory_swap,
                privileged=spec.privileged,
            )
            response = self._api.create_container(
                spec.image,
                command=spec.command or None,
                name=spec.name,
                entrypoint=spec.entrypoint,
                environment=spec.env or None,
                ports=_exposed_ports(spec.ports) or None,
                labels=spec.labels or None,
                working_dir=spec.workdir,
                user=spec.user,
                tty=spec.tty,
                stdin_open=spec.stdin_open,
                detach=not spec.attach,
                host_config=host_config,
            )
        return CreateResult(
            id=response["Id"], warnings=list(response.get("Warnings") or [])
        )

    def start(self, container_id: str) -> None:
        with _on("starting container", container_id):
            self._api.start(container_id)

    def stop(self, container_id: str, timeout: int | None = None) -> None:
        with _on("stopping container", container_id):
            self._api.stop(container_id, timeout=timeout)

    def restart(self, container_id: str, timeout: int = 10) -> None:
        with _on("restarting container", container_id):
            self._api.restart(container_id, timeout=timeout)

    def kill(self, container_id: str, signal: str | int | None = None) -> None:
        with _on("killing container", container_id):
            self._api.kill(container_id, signal=signal)

    def remove(
        self, container_id: str, *, force: bool = False, volumes: bool = False
    ) -> None:
        with _on("removing container", container_id):
            self._api.remove_container(container_id, v=volumes, force=force)

    def pause(self, container_id: str) -> None:
        with _on("pausing container", container_id):
            self._api.pause(container_id)

    def unpause(self, container_id: str) -> None:
        with _on("unpausing container", container_id):
            self._api.unpause(container_id)

    def rename(self, container_id: str, new_name: str) -> None:
        with _on("renaming container", container_id):
            self._api.rename(container_id, new_name)

    def top(self, container_id: str, ps_args: str | None = None) -> dict:
        with _on("listing processes of", container_id):
            return self._api.top(container_id, ps_args=ps_args)

    def resize(self, container_id: str, cols: int, rows: int) -> None:
        with _on("resizing container", container_id):
            self._api.resize(container_id, height=rows, width=cols)

    def logs(
        self,
        container_id: str,
        *,
        framed: bool,
        follow: bool = False,
        timestamps: bool = False,
        tail: str = "all",
        since: str | None = None,
        until: str | None = None,
        details: bool = False,
    ) -> LogStream:
        """Open the container's log stream.

        Args:
            container_id: Container ID.
            framed: Whether the container runs without a TTY, in which
                case the body is multiplexed.
            follow: Keep streaming new output.
            timestamps: Prefix lines with timestamps.
            tail: Number of trailing lines, or ``all``.
            since: Only logs after this timestamp or duration.
            until: Only logs before this timestamp or duration.
            details: Include extra attributes passed at creation.

        Returns:
            Open log stream; the caller closes it.
        """
        params: dict[str, Any] = {
            "stdout": 1,
            "stderr": 1,
            "follow": int(follow),
            "timestamps": int(timestamps),
            "details": int(details),
            "tail": tail,
        }
        if since:
            params["since"] = since
        if until:
            params["until"] = until
        with _on("reading logs of", container_id):
            response = self._api._get(
                self._api._url("/containers/{0}/logs", container_id),
                params=params,
                stream=True,
                timeout=None,
            )
            self._api._raise_for_status(response)
            sock = self._api._get_raw_response_socket(response)
            self._api._disable_socket_timeout(sock)
        return LogStream(response, sock, framed=framed)

    # ── Attach and wait ─────────────────────────────────────────────

    def attach(
        self,
        container_id: str,
        *,
        stdin: bool,
        framed: bool,
        detach_keys: str | None = None,
    ) -> HijackedStream:
        """Attach to a container's stdio.

        Works on created, not yet started containers, so no output of a
        short-lived container is lost.
        """
        params: dict[str, Any] = {
            "stdin": int(stdin),
            "stdout": 1,
            "stderr": 1,
            "stream": 1,
        }
        if detach_keys:
            params["detachKeys"] = detach_keys
        with _on("attaching to container", container_id):
            sock = self._api.attach_socket(container_id, params=params)
            self._api._disable_socket_timeout(sock)
        return HijackedStream(sock, framed=framed)

    def wait_for_exit(
        self, container_id: str, condition: WaitCondition
    ) -> WaitHandle:
        """Register an exit notification.

        Returns once the engine has accepted the wait request, so a
        container started afterwards cannot exit unobserved.
        """
        with _on("waiting for container", container_id):
            response = self._api._post(
                self._api._url("/containers/{0}/wait", container_id),
                params={"condition": condition.value},
                stream=True,
                timeout=None,
            )
            self._api._raise_for_status(response)
            sock = self._api._get_raw_response_socket(response)
            self._api._disable_socket_timeout(sock)
        return WaitHandle(response, sock, container_id)

    def wait(
        self,
        container_id: str,
        condition: WaitCondition = WaitCondition.NOT_RUNNING,
    ) -> int:
        """Block until the container meets *condition*; return its status."""
        handle = self.wait_for_exit(container_id, condition)
        handle.wait()
        return handle.result()

    # ── Exec ────────────────────────────────────────────────────────

    def exec_create(self, container_id: str, config: ExecConfig) -> str:
        """Create an exec instance and return its ID.

        Raises:
            EngineError: If creation fails or the engine returns no ID.
        """
        with _on("creating exec in", container_id):
            response = self._api.exec_create(
                container_id,
                config.cmd,
                stdout=True,
                stderr=True,
                stdin=config.attach_stdin,
                tty=config.tty,
                privileged=config.privileged,
                user=config.user,
                environment=config.env or None,
                workdir=config.workdir,
                detach_keys=config.detach_keys,
            )
        exec_id = (response or {}).get("Id", "")
        if not exec_id:
            raise EngineError("exec ID is empty")
        return exec_id

    def exec_start_detached(self, exec_id: str, *, tty: bool) -> None:
        with _call(f"starting exec {short_id(exec_id)}"):
            self._api.exec_start(exec_id, detach=True, tty=tty)

    def exec_attach(self, exec_id: str, *, tty: bool) -> HijackedStream:
        """Start an exec instance and return its hijacked stream."""
        with _call(f"attaching to exec {short_id(exec_id)}"):
            sock = self._api.exec_start(
                exec_id, detach=False, tty=tty, socket=True
            )
            self._api._disable_socket_timeout(sock)
        return HijackedStream(sock, framed=not tty)

    def exec_inspect(self, exec_id: str) -> ExecStatus:
        with _call(f"inspecting exec {short_id(exec_id)}"):
            data = self._api.exec_inspect(exec_id)
        return ExecStatus(
            running=bool(data.get("Running")), exit_code=data.get("ExitCode")
        )

    def exec_resize(self, exec_id: str, cols: int, rows: int) -> None:
        with _call(f"resizing exec {short_id(exec_id)}"):
            self._api.exec_resize(exec_id, height=rows, width=cols)

    # ── Stats ───────────────────────────────────────────────────────

    def stats_once(self, container_id: str) -> dict[str, Any]:
        """Return one stats sample with populated previous-CPU fields."""
        with _on("getting stats for", container_id):
            return self._api.stats(container_id, decode=True, stream=False)

    def stats_stream(self, container_id: str) -> StatsStream:
        """Open a streaming stats call."""
        with _on("streaming stats for", container_id):
            response = self._api._get(
                self._api._url("/containers/{0}/stats", container_id),
                params={"stream": True},
                stream=True,
                timeout=None,
            )
            self._api._raise_for_status(response)
            sock = self._api._get_raw_response_socket(response)
        return StatsStream(self._api, response, sock)

    # ── Archives ────────────────────────────────────────────────────

    def get_archive(
        self, container_id: str, path: str
    ) -> tuple[Iterator[bytes], dict[str, Any]]:
        """Fetch a tar stream of *path* inside the container.

        Returns:
            ``(chunks, stat)`` where *stat* is the decoded path stat.

        Raises:
            SourceMissingError: If *path* does not exist in the container.
        """
        try:
            with _call(f"copying {path} from {short_id(container_id)}"):
                chunks, stat = self._api.get_archive(container_id, path)
        except EngineError as e:
            if isinstance(e.__cause__, docker.errors.NotFound):
                raise SourceMissingError(path) from e
            raise
        return _translated_chunks(chunks, path), stat or {}

    def put_archive(
        self,
        container_id: str,
        path: str,
        data: Iterable[bytes],
        *,
        copy_uid_gid: bool = False,
        allow_overwrite_dir_with_file: bool = True,
    ) -> None:
        """Upload a tar stream and extract it at *path* in the container."""
        params = {
            "path": path,
            "noOverwriteDirNonDir": str(
                not allow_overwrite_dir_with_file
            ).lower(),
            "copyUIDGID": str(copy_uid_gid).lower(),
        }
        with _on(f"copying to {path} in", container_id):
            response = self._api._put(
                self._api._url("/containers/{0}/archive", container_id),
                params=params,
                data=data,
            )
            self._api._raise_for_status(response)

    # ── Images ──────────────────────────────────────────────────────

    def list_images(self, labels: list[str] | None = None) -> list[dict]:
        filters = {"label": labels} if labels else None
        with _call("listing images"):
            return self._api.images(filters=filters)

    def remove_image(self, image: str, *, force: bool = False) -> None:
        with _call(f"removing image {image}"):
            self._api.remove_image(image, force=force)

    def build(
        self,
        context: str,
        *,
        tag: str | None = None,
        dockerfile: str | None = None,
        no_cache: bool = False,
        labels: dict[str, str] | None = None,
    ) -> Iterator[str]:
        """Build an image, yielding output lines.

        Raises:
            EngineError: If the engine reports a build error.
        """
        with _call(f"building image from {context}"):
            for chunk in self._api.build(
                path=context,
                tag=tag,
                dockerfile=dockerfile,
                nocache=no_cache,
                rm=True,
                labels=labels,
                decode=True,
            ):
                if "error" in chunk:
                    raise EngineError(f"building image: {chunk['error']}")
                if "stream" in chunk:
                    yield chunk["stream"]


def _translated_chunks(chunks: Iterator[bytes], path: str) -> Iterator[bytes]:
    with _call(f"copying {path}"):
        yield from chunks


def _exposed_ports(ports: list[str]) -> list[tuple[str, str]]:
    """Return ``(port, proto)`` pairs exposed by publication entries."""
    exposed = []
    for entry in ports:
        spec, _, proto = entry.partition("/")
        exposed.append((spec.split(":")[-1], proto or "tcp"))
    return exposed


def _port_bindings(ports: list[str]) -> dict[str, Any]:
    """Convert ``[ip:][host:]container[/proto]`` entries to SDK bindings."""
    bindings: dict[str, Any] = {}
    for entry in ports:
        spec, _, proto = entry.partition("/")
        parts = spec.split(":")
        key = f"{parts[-1]}/{proto or 'tcp'}"
        if len(parts) == 1:
            bindings[key] = None
        elif len(parts) == 2:
            bindings[key] = parts[0] or None
        else:
            bindings[key] = (parts[0], parts[1] or None)
    return bindings
