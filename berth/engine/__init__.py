# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Container engine access.

- EngineClient: engine operations with berth error translation
- HijackedStream: bidirectional attach/exec stream
- framing: decoder for multiplexed non-TTY streams
- names: resource naming and labelling conventions
"""

from berth.engine.client import (
    ContainerRef,
    ContainerSpec,
    ContainerState,
    CreateResult,
    EngineClient,
    ExecConfig,
    ExecStatus,
    LogStream,
    StatsStream,
    WaitCondition,
    WaitHandle,
    short_id,
)
from berth.engine.framing import FramingError, demux, iter_frames
from berth.engine.hijack import HijackedStream


__all__ = [
    # Client
    "ContainerRef",
    "ContainerSpec",
    "ContainerState",
    "CreateResult",
    "EngineClient",
    "ExecConfig",
    "ExecStatus",
    "LogStream",
    "StatsStream",
    "WaitCondition",
    "WaitHandle",
    "short_id",
    # Streams
    "FramingError",
    "HijackedStream",
    "demux",
    "iter_frames",
]
