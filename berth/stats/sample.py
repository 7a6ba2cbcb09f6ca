# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Container resource samples and the values derived from them."""

from dataclasses import dataclass
from typing import Any


_KB = 1024
_MB = _KB * 1024
_GB = _MB * 1024
_TB = _GB * 1024


@dataclass(frozen=True)
class StatsSample:
    """One decoded stats reading.

    Attributes:
        cpu_usage: Cumulative container CPU time (ns).
        pre_cpu_usage: Same, from the previous reading.
        system_usage: Cumulative host CPU time (ns).
        pre_system_usage: Same, from the previous reading.
        online_cpus: CPUs available to the container.
        mem_usage: Memory usage in bytes.
        mem_limit: Memory limit in bytes.
        net_rx: Bytes received, summed over interfaces.
        net_tx: Bytes sent, summed over interfaces.
        block_read: Bytes read from block devices.
        block_write: Bytes written to block devices.
        pids: Number of processes.
    """

    cpu_usage: int = 0
    pre_cpu_usage: int = 0
    system_usage: int = 0
    pre_system_usage: int = 0
    online_cpus: int = 0
    mem_usage: int = 0
    mem_limit: int = 0
    net_rx: int = 0
    net_tx: int = 0
    block_read: int = 0
    block_write: int = 0
    pids: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "StatsSample":
        """Decode an engine stats response.

        Missing sections (e.g. no networks on a ``none``-network
        container) decode as zero.
        """
        cpu = data.get("cpu_stats") or {}
        pre = data.get("precpu_stats") or {}
        memory = data.get("memory_stats") or {}

        online = cpu.get("online_cpus") or len(
            (cpu.get("cpu_usage") or {}).get("percpu_usage") or []
        )

        rx = tx = 0
        for iface in (data.get("networks") or {}).values():
            rx += iface.get("rx_bytes", 0)
            tx += iface.get("tx_bytes", 0)

        read = write = 0
        blkio = (data.get("blkio_stats") or {}).get(
            "io_service_bytes_recursive"
        )
        for entry in blkio or []:
            op = entry.get("op", "")
            if op in ("read", "Read"):
                read += entry.get("value", 0)
            elif op in ("write", "Write"):
                write += entry.get("value", 0)

        return cls(
            cpu_usage=(cpu.get("cpu_usage") or {}).get("total_usage", 0),
            pre_cpu_usage=(pre.get("cpu_usage") or {}).get("total_usage", 0),
            system_usage=cpu.get("system_cpu_usage", 0),
            pre_system_usage=pre.get("system_cpu_usage", 0),
            online_cpus=online,
            mem_usage=memory.get("usage", 0),
            mem_limit=memory.get("limit", 0),
            net_rx=rx,
            net_tx=tx,
            block_read=read,
            block_write=write,
            pids=(data.get("pids_stats") or {}).get("current", 0),
        )


def calculate_cpu_percent(sample: StatsSample) -> float:
    """CPU usage as a percentage of one CPU.

    ``(cpu_delta / system_delta) * online_cpus * 100`` when both deltas
    are positive, otherwise 0.
    """
    cpu_delta = sample.cpu_usage - sample.pre_cpu_usage
    system_delta = sample.system_usage - sample.pre_system_usage
    if cpu_delta > 0 and system_delta > 0:
        return cpu_delta / system_delta * sample.online_cpus * 100.0
    return 0.0


def calculate_memory_percent(sample: StatsSample) -> float:
    if sample.mem_limit > 0:
        return sample.mem_usage / sample.mem_limit * 100.0
    return 0.0


def format_bytes(size: int) -> str:
    """Format a byte count with 1024-based units.

    >>> format_bytes(512)
    '512B'
    >>> format_bytes(1536)
    '1.50KB'
    """
    if size >= _TB:
        return f"{size / _TB:.2f}TB"
    if size >= _GB:
        return f"{size / _GB:.2f}GB"
    if size >= _MB:
        return f"{size / _MB:.2f}MB"
    if size >= _KB:
        return f"{size / _KB:.2f}KB"
    return f"{size}B"
