# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Session options, states and outcomes."""

from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO

from berth.errors import ExitError
from berth.session.detach import DEFAULT_DETACH_KEYS


class SessionState(Enum):
    """Progress of a new-container session.

    Cleanup runs exactly once, from whichever state the session ends in.
    """

    CREATED = "created"
    ATTACHED = "attached"
    STARTED = "started"
    STREAMING = "streaming"
    EXIT_OBSERVED = "exit_observed"
    STREAM_CLOSED = "stream_closed"
    REPORTING = "reporting"
    DONE = "done"


class OutcomeKind(Enum):
    """How a session ended."""

    EXITED = "exited"
    DETACHED = "detached"
    ERROR = "error"


@dataclass(frozen=True)
class SessionOutcome:
    """Result of one interactive session.

    Attributes:
        kind: How the session ended.
        exit_code: Process exit code for ``EXITED`` outcomes.
        error: Failure for ``ERROR`` outcomes.
    """

    kind: OutcomeKind
    exit_code: int | None = None
    error: BaseException | None = None

    @classmethod
    def exited(cls, code: int) -> "SessionOutcome":
        return cls(OutcomeKind.EXITED, exit_code=code)

    @classmethod
    def detached(cls) -> "SessionOutcome":
        return cls(OutcomeKind.DETACHED)

    @classmethod
    def failed(cls, error: BaseException) -> "SessionOutcome":
        return cls(OutcomeKind.ERROR, error=error)

    def raise_for_status(self) -> None:
        """Raise the error this outcome represents, if any.

        Raises:
            ExitError: For a non-zero exit.
            BaseException: The session failure for ``ERROR`` outcomes.
        """
        if self.kind is OutcomeKind.ERROR and self.error is not None:
            raise self.error
        if self.kind is OutcomeKind.EXITED and self.exit_code:
            raise ExitError(self.exit_code)


@dataclass(frozen=True)
class AttachOptions:
    """How a session binds to a container.

    Attributes:
        stdin_open: Forward host stdin.
        tty: The container has a TTY (raw stream, raw host terminal).
        auto_remove: The container is removed on exit; exit is observed
            via the ``removed`` wait condition.
        start: Issue container start after attaching.  False when
            attaching to an already running container.
        detach_keys: Detach key specification.
        sig_proxy: Forward host signals to the container (non-TTY only).
    """

    stdin_open: bool
    tty: bool
    auto_remove: bool = False
    start: bool = True
    detach_keys: str = DEFAULT_DETACH_KEYS
    sig_proxy: bool = False


@dataclass(frozen=True)
class SessionStreams:
    """Host stdio used by a session.

    Attributes:
        stdin_fd: Descriptor read by the input pump.
        stdout: Binary writer for container stdout.
        stderr: Binary writer for container stderr.
    """

    stdin_fd: int
    stdout: BinaryIO
    stderr: BinaryIO
