# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Host stdio and terminal styling for commands."""

import os
import sys
from dataclasses import dataclass, field
from typing import BinaryIO, TextIO


# ── Terminal colors ─────────────────────────────────────────────────


def use_color(stream: TextIO | None = None) -> bool:
    """Determine whether to use ANSI color codes on *stream*.

    Returns True when the stream is a TTY and the ``NO_COLOR``
    environment variable is not set.  ``TERM=dumb`` also disables color.
    """
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    stream = stream if stream is not None else sys.stderr
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


class ColorScheme:
    """ANSI escape helpers and status icons.

    All methods return plain text when color is off.
    """

    def __init__(self, color: bool) -> None:
        self.enabled = color

    def _wrap(self, code: str, text: str) -> str:
        if not self.enabled:
            return text
        return f"\033[{code}m{text}\033[0m"

    def bold(self, text: str) -> str:
        return self._wrap("1", text)

    def green(self, text: str) -> str:
        return self._wrap("32", text)

    def red(self, text: str) -> str:
        return self._wrap("31", text)

    def yellow(self, text: str) -> str:
        return self._wrap("33", text)

    def dim(self, text: str) -> str:
        return self._wrap("2", text)

    def success_icon(self) -> str:
        return self.green("✓")

    def failure_icon(self) -> str:
        return self.red("✗")

    def warning_icon(self) -> str:
        return self.yellow("!")


# ── Streams ─────────────────────────────────────────────────────────


def _binary(stream: TextIO) -> BinaryIO:
    buffer = getattr(stream, "buffer", None)
    if buffer is None:
        raise TypeError(f"{stream!r} has no binary buffer")
    return buffer


@dataclass
class IOStreams:
    """The stdio triple a command writes to.

    Text streams carry messages and tables; the binary views carry
    container output and tar streams.

    Attributes:
        stdin: Host stdin.
        stdout: Program output and machine-readable fields.
        stderr: Errors, warnings and status icons.
        color: Color scheme for stderr.
    """

    stdin: TextIO = field(default_factory=lambda: sys.stdin)
    stdout: TextIO = field(default_factory=lambda: sys.stdout)
    stderr: TextIO = field(default_factory=lambda: sys.stderr)
    color: ColorScheme | None = None

    def __post_init__(self) -> None:
        if self.color is None:
            self.color = ColorScheme(use_color(self.stderr))

    @property
    def cs(self) -> ColorScheme:
        assert self.color is not None
        return self.color

    def stdin_fd(self) -> int:
        try:
            return self.stdin.fileno()
        except (AttributeError, OSError, ValueError):
            return -1

    @property
    def stdin_binary(self) -> BinaryIO:
        return _binary(self.stdin)

    @property
    def stdout_binary(self) -> BinaryIO:
        self.stdout.flush()
        return _binary(self.stdout)

    @property
    def stderr_binary(self) -> BinaryIO:
        self.stderr.flush()
        return _binary(self.stderr)

    def print(self, *values: object) -> None:
        print(*values, file=self.stdout)

    def error(self, message: str) -> None:
        print(message, file=self.stderr)

    def warning(self, message: str) -> None:
        print(f"{self.cs.warning_icon()} Warning: {message}", file=self.stderr)

    def success(self, message: str) -> None:
        print(f"{self.cs.success_icon()} {message}", file=self.stderr)

    def failure(self, message: str) -> None:
        print(f"{self.cs.failure_icon()} {message}", file=self.stderr)
