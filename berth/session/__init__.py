# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Interactive session engine.

Binds the host terminal to container streams for ``run``, ``start``,
``attach`` and ``exec``:

- ContainerSession: attach-before-start flow with exit/detach detection
- ExecSession: exec instance flow with exec-inspect exit codes
- DetachKeyMatcher: detach sequence scanning for the input pump
"""

from berth.session.container import ContainerSession
from berth.session.detach import (
    DEFAULT_DETACH_KEYS,
    DetachKeyMatcher,
    parse_detach_keys,
)
from berth.session.exec import ExecSession, start_detached_exec
from berth.session.types import (
    AttachOptions,
    OutcomeKind,
    SessionOutcome,
    SessionState,
    SessionStreams,
)


__all__ = [
    # Sessions
    "ContainerSession",
    "ExecSession",
    "start_detached_exec",
    # Types
    "AttachOptions",
    "OutcomeKind",
    "SessionOutcome",
    "SessionState",
    "SessionStreams",
    # Detach keys
    "DEFAULT_DETACH_KEYS",
    "DetachKeyMatcher",
    "parse_detach_keys",
]
