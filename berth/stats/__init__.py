# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Container resource statistics."""

from berth.stats.aggregator import (
    HEADER,
    StatsProducer,
    format_row,
    stats_once,
    stats_stream,
)
from berth.stats.sample import (
    StatsSample,
    calculate_cpu_percent,
    calculate_memory_percent,
    format_bytes,
)


__all__ = [
    "HEADER",
    "StatsProducer",
    "StatsSample",
    "calculate_cpu_percent",
    "calculate_memory_percent",
    "format_bytes",
    "format_row",
    "stats_once",
    "stats_stream",
]
