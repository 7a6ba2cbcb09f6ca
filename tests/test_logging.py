# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for berth/logging.py -- interactive-session log muting."""

import logging
from collections.abc import Iterator

import pytest

from berth.logging import (
    InteractiveFilter,
    configure_logging,
    set_interactive_mode,
)


def record(level: int) -> logging.LogRecord:
    return logging.LogRecord("berth.test", level, __file__, 1, "m", (), None)


@pytest.fixture(autouse=True)
def reset_mode() -> Iterator[None]:
    yield
    set_interactive_mode(False)


class TestInteractiveFilter:
    """Tests for InteractiveFilter."""

    def test_passes_everything_by_default(self) -> None:
        log_filter = InteractiveFilter()
        assert log_filter.filter(record(logging.DEBUG))
        assert log_filter.filter(record(logging.INFO))

    def test_mutes_below_warning_when_interactive(self) -> None:
        log_filter = InteractiveFilter()
        set_interactive_mode(True)
        assert InteractiveFilter.is_interactive()
        assert not log_filter.filter(record(logging.INFO))
        assert log_filter.filter(record(logging.WARNING))
        assert log_filter.filter(record(logging.ERROR))


class TestConfigureLogging:
    def test_replaces_root_handlers(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(level=logging.DEBUG)
            configure_logging(level=logging.INFO)
            assert len(root.handlers) == 1
            assert root.level == logging.INFO
            (handler,) = root.handlers
            assert any(
                isinstance(f, InteractiveFilter) for f in handler.filters
            )
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
