# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Hijacked engine connections.

Attach and exec-start upgrade their HTTP connection into a raw
bidirectional byte stream.  ``HijackedStream`` wraps that socket with
half-close support and an idempotent ``close`` that also unblocks any
thread parked in ``read``.
"""

import logging
import socket
import threading
from typing import Any


logger = logging.getLogger(__name__)

#: Default read size for stream pumps.
READ_SIZE = 32 * 1024


def unwrap_socket(sock: Any) -> Any:
    """Return the OS-level socket behind an SDK socket object.

    The engine SDK hands back ``socket.SocketIO`` for local sockets;
    its ``_sock`` attribute is the real socket.  TLS sockets are
    returned as-is.
    """
    return getattr(sock, "_sock", sock)


class HijackedStream:
    """Bidirectional byte stream returned by attach and exec-start.

    The stream is framed (see ``berth.engine.framing``) iff the target
    runs without a TTY.

    Thread Safety:
        One reader thread and one writer thread may use the stream
        concurrently.  ``close_write`` and ``close`` are idempotent and
        safe from any thread.

    Attributes:
        framed: True when the stream carries multiplexed frames.
    """

    def __init__(self, sock: Any, *, framed: bool) -> None:
        # Keep the SDK object alive; it holds the HTTP response whose
        # collection would close the connection.
        self._handle = sock
        self._sock = unwrap_socket(sock)
        self.framed = framed
        self._lock = threading.Lock()
        self._write_closed = False
        self._closed = False

    def __enter__(self) -> "HijackedStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def fileno(self) -> int:
        return self._sock.fileno()

    def read(self, size: int = READ_SIZE) -> bytes:
        """Read up to *size* bytes.

        Returns:
            Received bytes, or ``b""`` at EOF or after ``close``.
        """
        if self._closed:
            return b""
        try:
            return self._sock.recv(size)
        except OSError:
            if self._closed:
                return b""
            raise

    def write(self, data: bytes) -> None:
        """Send all of *data* to the container's stdin."""
        self._sock.sendall(data)

    def close_write(self) -> None:
        """Half-close the write side, signalling EOF on container stdin."""
        with self._lock:
            if self._write_closed or self._closed:
                return
            self._write_closed = True
        try:
            self._sock.shutdown(socket.SHUT_WR)
        except OSError as e:
            logger.debug("Half-close of hijacked stream failed: %s", e)

    def close(self) -> None:
        """Close the stream, unblocking any pending ``read``."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug("Shutdown of hijacked stream failed: %s", e)
        try:
            self._sock.close()
        finally:
            close = getattr(self._handle, "close", None)
            if close is not None and self._handle is not self._sock:
                close()


def shutdown_socket(sock: Any) -> None:
    """Shut down both directions of *sock*, ignoring already-closed errors.

    Used to unblock a thread reading a streaming HTTP response.
    """
    try:
        unwrap_socket(sock).shutdown(socket.SHUT_RDWR)
    except OSError as e:
        logger.debug("Socket shutdown failed: %s", e)
