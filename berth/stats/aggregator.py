# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Multi-container statistics: one-shot tables and live streaming.

Streaming fans out one producer thread per container.  Producers
forward samples through a bounded queue; the renderer owns the
last-sample map and redraws the table on a fixed tick.  Cancelling the
context closes every engine stream, which ends the producers.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import TextIO

from berth.context import Context
from berth.engine.client import ContainerRef, EngineClient, StatsStream
from berth.errors import BerthError, ContainerNotFoundError, PartialError
from berth.stats.sample import (
    StatsSample,
    calculate_cpu_percent,
    calculate_memory_percent,
    format_bytes,
)
from berth.table import format_table


logger = logging.getLogger(__name__)

HEADER = [
    "CONTAINER ID",
    "NAME",
    "CPU %",
    "MEM USAGE / LIMIT",
    "MEM %",
    "NET I/O",
    "BLOCK I/O",
    "PIDS",
]

#: ANSI cursor-home plus clear-screen.
CLEAR_SCREEN = "\033[H\033[2J"

#: Seconds between redraws.
TICK_INTERVAL = 1.0

#: Upper bound on how long the renderer blocks before checking for
#: cancellation, in seconds.
_POLL_INTERVAL = 0.1

#: Seconds to wait for producers to stop after cancellation.
_JOIN_TIMEOUT = 0.4


def format_row(
    container_id: str, name: str, sample: StatsSample, no_trunc: bool = False
) -> list[str]:
    """Render one sample as table cells."""
    display_id = container_id if no_trunc else container_id[:12]
    return [
        display_id,
        name,
        f"{calculate_cpu_percent(sample):.2f}%",
        f"{format_bytes(sample.mem_usage)} / {format_bytes(sample.mem_limit)}",
        f"{calculate_memory_percent(sample):.2f}%",
        f"{format_bytes(sample.net_rx)} / {format_bytes(sample.net_tx)}",
        f"{format_bytes(sample.block_read)} / "
        f"{format_bytes(sample.block_write)}",
        str(sample.pids),
    ]


def stats_once(
    engine: EngineClient,
    refs: list[str],
    out: TextIO,
    err: TextIO,
    *,
    no_trunc: bool = False,
) -> None:
    """Print one table row per container.

    Per-container failures are printed to *err* and do not stop the
    remaining containers.

    Raises:
        PartialError: If any container failed.
    """
    rows = [list(HEADER)]
    errors: list[BaseException] = []
    for ref in refs:
        try:
            container = engine.get_container(ref)
            sample = StatsSample.from_api(engine.stats_once(container.id))
        except ContainerNotFoundError as e:
            print(f"Error: container {ref!r} not found", file=err)
            errors.append(e)
            continue
        except BerthError as e:
            print(f"Error: failed to get stats for {ref!r}: {e}", file=err)
            errors.append(e)
            continue
        rows.append(format_row(container.id, container.name, sample, no_trunc))
    out.write(format_table(rows))
    out.flush()
    if errors:
        raise PartialError(
            errors,
            len(refs),
            f"failed to get stats for {len(errors)} container(s)",
        )


@dataclass(frozen=True)
class _Result:
    name: str
    sample: StatsSample


class StatsProducer:
    """Streams samples for one container into the shared queue.

    A failure is logged and ends this producer only.
    """

    def __init__(
        self,
        engine: EngineClient,
        container: ContainerRef,
        results: "queue.Queue[_Result]",
        ctx: Context,
    ) -> None:
        self._engine = engine
        self.container = container
        self._results = results
        self._ctx = ctx
        self.stream: StatsStream | None = None
        self.finished = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name=f"stats-{container.short_id}",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float | None = None) -> bool:
        return self.finished.wait(timeout)

    def _run(self) -> None:
        name = self.container.name
        try:
            stream = self._engine.stats_stream(self.container.id)
        except BerthError as e:
            logger.warning("%s: %s", name, e)
            self.finished.set()
            return

        self.stream = stream
        release = self._ctx.on_cancel(stream.close)
        try:
            for raw in stream:
                if not self._offer(_Result(name, StatsSample.from_api(raw))):
                    break
        except BerthError as e:
            if not self._ctx.done():
                logger.warning("%s: %s", name, e)
        finally:
            release()
            stream.close()
            self.finished.set()

    def _offer(self, result: _Result) -> bool:
        """Queue *result* unless cancelled first; return False if cancelled."""
        while not self._ctx.done():
            try:
                self._results.put(result, timeout=_POLL_INTERVAL)
                return True
            except queue.Full:
                continue
        return False


def stats_stream(
    engine: EngineClient,
    refs: list[str],
    out: TextIO,
    err: TextIO,
    ctx: Context,
    *,
    no_trunc: bool = False,
    interval: float = TICK_INTERVAL,
) -> None:
    """Render live stats for *refs* until *ctx* is cancelled.

    Each reference is resolved to an ID once; unresolvable references
    are reported as warnings and skipped.

    Raises:
        BerthError: If no reference resolves.
    """
    containers: list[ContainerRef] = []
    for ref in refs:
        try:
            containers.append(engine.get_container(ref))
        except ContainerNotFoundError:
            print(f"Warning: container {ref!r} not found", file=err)
        except BerthError as e:
            print(
                f"Warning: failed to resolve container {ref!r}: {e}",
                file=err,
            )
    if not containers:
        raise BerthError("no valid containers found")

    results: queue.Queue[_Result] = queue.Queue(maxsize=2 * len(containers))
    scope = ctx.child()
    producers = [
        StatsProducer(engine, container, results, scope)
        for container in containers
    ]
    for producer in producers:
        producer.start()

    try:
        _render_loop(containers, results, out, scope, no_trunc, interval)
    finally:
        scope.cancel()
        deadline = time.monotonic() + _JOIN_TIMEOUT
        for producer in producers:
            if not producer.join(max(0.0, deadline - time.monotonic())):
                logger.debug(
                    "Stats producer for %s did not stop",
                    producer.container.name,
                )


def _render_loop(
    containers: list[ContainerRef],
    results: "queue.Queue[_Result]",
    out: TextIO,
    ctx: Context,
    no_trunc: bool,
    interval: float,
) -> None:
    ids = {container.name: container.id for container in containers}
    last: dict[str, StatsSample] = {}

    out.write(format_table([list(HEADER)]))
    out.flush()

    next_tick = time.monotonic() + interval
    while not ctx.done():
        timeout = min(_POLL_INTERVAL, max(0.0, next_tick - time.monotonic()))
        try:
            result = results.get(timeout=timeout)
            last[result.name] = result.sample
        except queue.Empty:
            pass

        if time.monotonic() >= next_tick:
            rows = [list(HEADER)]
            for name, container_id in ids.items():
                if name in last:
                    rows.append(
                        format_row(container_id, name, last[name], no_trunc)
                    )
            out.write(CLEAR_SCREEN)
            out.write(format_table(rows))
            out.flush()
            next_tick += interval
