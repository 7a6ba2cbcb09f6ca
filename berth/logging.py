# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Centralized logging configuration with interactive-session muting.

Log output shares stderr with the user's terminal.  While a raw-mode TTY
session is active, informational records would be interleaved with the
container's screen output, so records below WARNING are dropped until
the session ends.

Usage:
    # In entry points (scripts, CLI tools)
    from berth.logging import configure_logging
    configure_logging(level=logging.DEBUG)

    # In library modules
    import logging
    logger = logging.getLogger(__name__)
    logger.debug("Attaching to %s", container_id)
"""

import logging
import threading
from typing import ClassVar


class InteractiveFilter(logging.Filter):
    """Logging filter that mutes low-severity records during TTY sessions.

    The interactive flag is process-wide, matching the process-wide
    terminal state.  The session engine toggles it around raw mode.

    Example:
        handler.addFilter(InteractiveFilter())
        InteractiveFilter.set_interactive_mode(True)
        logger.info("hidden")  # dropped
        logger.warning("shown")
    """

    _interactive: ClassVar[bool] = False
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def filter(self, record: logging.LogRecord) -> bool:
        """Drop records below WARNING while interactive mode is on.

        Args:
            record: The log record to filter.

        Returns:
            False when the record should be suppressed.
        """
        if self._interactive:
            return record.levelno >= logging.WARNING
        return True

    @classmethod
    def set_interactive_mode(cls, enabled: bool) -> None:
        """Enable or disable interactive muting.

        Args:
            enabled: True while a raw-mode session owns the terminal.
        """
        with cls._lock:
            cls._interactive = enabled

    @classmethod
    def is_interactive(cls) -> bool:
        """Return whether interactive muting is active."""
        return cls._interactive


def set_interactive_mode(enabled: bool) -> None:
    """Module-level shortcut for ``InteractiveFilter.set_interactive_mode``."""
    InteractiveFilter.set_interactive_mode(enabled)


def configure_logging(
    level: int = logging.WARNING,
    format_string: str | None = None,
    add_interactive_filter: bool = True,
) -> None:
    """Configure logging for the application.

    Sets up the root logger with a stderr handler and optional
    interactive-session filter.

    Args:
        level: The logging level (e.g., logging.WARNING, logging.DEBUG).
        format_string: Custom format string. If None, uses default format.
        add_interactive_filter: Whether to add the InteractiveFilter.
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string))

    if add_interactive_filter:
        handler.addFilter(InteractiveFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)

    root_logger.addHandler(handler)
