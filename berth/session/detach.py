# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Detach key sequences.

A detach sequence is written as comma-separated keys, each either a
single character or ``ctrl-<x>`` where ``x`` is a letter or one of
``@[\\]^_``.  The default is ``ctrl-p,ctrl-q``.
"""

from berth.errors import InvalidArgumentError


DEFAULT_DETACH_KEYS = "ctrl-p,ctrl-q"

_CTRL_SYMBOLS = {"@": 0, "[": 27, "\\": 28, "]": 29, "^": 30, "_": 31}


def parse_detach_keys(spec: str | None) -> bytes:
    """Convert a detach key specification to the raw byte sequence.

    Args:
        spec: Key specification; empty or None selects the default.

    Returns:
        Bytes the terminal sends for the sequence.

    Raises:
        InvalidArgumentError: If a key is not recognized.
    """
    if not spec:
        spec = DEFAULT_DETACH_KEYS
    sequence = bytearray()
    for key in spec.split(","):
        key = key.strip()
        if len(key) > 1 and key.lower().startswith("ctrl-"):
            char = key[5:].lower()
            if len(char) == 1 and "a" <= char <= "z":
                sequence.append(ord(char) - ord("a") + 1)
            elif len(char) == 1 and char in _CTRL_SYMBOLS:
                sequence.append(_CTRL_SYMBOLS[char])
            else:
                raise InvalidArgumentError(f"unknown detach key {key!r}")
        elif len(key) == 1:
            sequence.extend(key.encode())
        else:
            raise InvalidArgumentError(f"unknown detach key {key!r}")
    return bytes(sequence)


class DetachKeyMatcher:
    """Byte-level scanner for a detach sequence.

    Bytes that could still be the start of the sequence are held back
    until the next byte decides them, so a completed sequence never
    reaches the container.

    Example:
        matcher = DetachKeyMatcher(b"\\x10\\x11")
        matcher.feed(b"ab\\x10")   # (b"ab", False); \\x10 held back
        matcher.feed(b"\\x11zz")   # (b"", True); trailing bytes dropped
    """

    def __init__(self, sequence: bytes) -> None:
        self._sequence = sequence
        self._pending = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes currently held back as a partial match."""
        return bytes(self._pending)

    def feed(self, data: bytes) -> tuple[bytes, bool]:
        """Scan *data*.

        Args:
            data: Next chunk of host input.

        Returns:
            ``(forward, detached)``: bytes safe to forward, and whether
            the sequence completed.  After a detach the rest of *data*
            is discarded.
        """
        if not self._sequence:
            return data, False
        forward = bytearray()
        for byte in data:
            self._pending.append(byte)
            while self._pending and not self._sequence.startswith(
                self._pending
            ):
                forward.append(self._pending.pop(0))
            if self._pending == self._sequence:
                self._pending.clear()
                return bytes(forward), True
        return bytes(forward), False

    def flush(self) -> bytes:
        """Release held-back bytes, e.g. at end of input."""
        pending = bytes(self._pending)
        self._pending.clear()
        return pending
