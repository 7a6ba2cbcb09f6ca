# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Exception hierarchy shared by every berth component.

All exceptions derive from ``BerthError`` so the command surface can map
any failure to an exit code in one place.  Engine SDK exceptions never
escape ``berth.engine``; they are wrapped into ``EngineError`` subclasses
carrying the operation that failed.
"""


class BerthError(Exception):
    """Base exception for berth errors."""


# ── Engine ──────────────────────────────────────────────────────────


class EngineError(BerthError):
    """An engine API call failed.

    The message is always prefixed with the operation, e.g.
    ``starting container 3f2a...: <engine message>``.
    """


class EngineUnavailableError(EngineError):
    """The container engine could not be reached."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"connecting to engine: {detail}")
        self.detail = detail


class ContainerNotFoundError(EngineError):
    """A container name or ID does not resolve."""

    def __init__(self, ref: str) -> None:
        super().__init__(f"container {ref!r} not found")
        self.ref = ref


class ContainerNotRunningError(BerthError):
    """An operation requires a running container."""

    def __init__(self, ref: str) -> None:
        super().__init__(f"container {ref!r} is not running")
        self.ref = ref


# ── Terminal ────────────────────────────────────────────────────────


class TerminalBusyError(BerthError):
    """Another session already holds the terminal in raw mode."""


# ── Arguments and resolution ────────────────────────────────────────


class InvalidArgumentError(BerthError):
    """Command arguments failed validation before any engine call."""


class InvalidAgentError(InvalidArgumentError):
    """An agent name is not a valid resource name."""


class NoImageError(BerthError):
    """The ``@`` image sentinel could not be resolved to an image."""


# ── Copy ────────────────────────────────────────────────────────────


class BadTarStreamError(BerthError):
    """An archive stream is malformed."""


class SourceMissingError(BerthError):
    """The source of a copy does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"source path {path!r} not found")
        self.path = path


class BothSidesHostError(InvalidArgumentError):
    """Neither side of a copy names a container."""

    def __init__(self) -> None:
        super().__init__(
            "one of source or destination must be a container path "
            "(CONTAINER:PATH)"
        )


class BothSidesContainerError(InvalidArgumentError):
    """Both sides of a copy name a container."""

    def __init__(self) -> None:
        super().__init__("copying between containers is not supported")


# ── Outcome signalling ──────────────────────────────────────────────


class PartialError(BerthError):
    """Some items of a bulk operation failed.

    Each failure has already been reported to the user, so the command
    surface prints nothing more unless the command supplied a summary.

    Attributes:
        errors: The individual failures.
        total: Number of items attempted.
        summary: Closing message for the user, or None.
    """

    def __init__(
        self,
        errors: list[BaseException],
        total: int,
        summary: str | None = None,
    ) -> None:
        super().__init__(
            summary or f"{len(errors)} of {total} operation(s) failed"
        )
        self.errors = errors
        self.total = total
        self.summary = summary

    @property
    def count(self) -> int:
        return len(self.errors)


class ExitError(BerthError):
    """An interactive session ended with a non-zero exit code.

    Attributes:
        code: Exit code of the container process, used as the process
            exit code.
    """

    def __init__(self, code: int) -> None:
        super().__init__(f"exit status {code}")
        self.code = code


class SilentError(BerthError):
    """A failure that has already been reported to the user."""


class CommandInterrupted(BerthError):
    """The command was cancelled by an interrupt signal."""

    def __init__(self) -> None:
        super().__init__("interrupted")
