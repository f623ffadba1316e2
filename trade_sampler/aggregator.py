from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass

from .config import Config
from .handoff import HandoffChannel
from .records import write_global_record
from .runlog import RunLog, monotonic_ns
from .stats import arithmetic_mean


@dataclass(frozen=True, slots=True)
class GlobalSummary:
    per_worker_means: tuple[float, ...]
    global_mean: float


@dataclass(slots=True)
class AggregatorOutcome:
    expected: int
    received: int = 0
    complete: bool = False
    summary: GlobalSummary | None = None
    persisted: bool = False
    error: str | None = None


async def run_aggregator(
    channel: HandoffChannel,
    expected_count: int,
    *,
    config: Config,
    runlog: RunLog | None = None,
    timeout_seconds: float | None = None,
) -> AggregatorOutcome:
    """Collect up to ``expected_count`` local means and persist their mean.

    Means are kept in arrival order. The loop ends early when every producer
    has released its sender, or when ``timeout_seconds`` (a bound on the whole
    wait) runs out; either way the run is treated as abandoned and whatever
    arrived is still summarized.
    """
    runlog = runlog or RunLog.disabled()
    outcome = AggregatorOutcome(expected=expected_count)
    averages: list[float] = []
    deadline_ns = None
    if timeout_seconds is not None and timeout_seconds > 0:
        deadline_ns = monotonic_ns() + int(timeout_seconds * 1_000_000_000)

    for _ in range(expected_count):
        recv_timeout = None
        if deadline_ns is not None:
            recv_timeout = max(0.0, (deadline_ns - monotonic_ns()) / 1_000_000_000)
        try:
            result = await channel.recv(timeout=recv_timeout)
        except asyncio.TimeoutError:
            outcome.error = "timeout"
            break
        if result is None:
            outcome.error = "producers_released"
            break
        print(
            f"Aggregator: Received average from client {result.worker_id}: "
            f"{result.local_mean:.4f}"
        )
        runlog.write(
            "aggregator_result",
            worker_id=result.worker_id,
            local_mean=result.local_mean,
            arrival_index=len(averages),
        )
        averages.append(result.local_mean)
    outcome.received = len(averages)
    outcome.complete = outcome.received == expected_count
    channel.close()

    if not outcome.complete:
        print(
            f"Aggregator: Abandoned after {outcome.received} of {expected_count} averages "
            f"({outcome.error}).",
            file=sys.stderr,
        )
        runlog.write(
            "aggregator_abandoned",
            expected=expected_count,
            received=outcome.received,
            reason=outcome.error,
        )

    global_mean = arithmetic_mean(averages)
    if global_mean is None:
        print("Aggregator: No averages received.", file=sys.stderr)
        runlog.write("aggregator_done", expected=expected_count, received=0, global_mean=None)
        return outcome

    outcome.summary = GlobalSummary(per_worker_means=tuple(averages), global_mean=global_mean)
    print(
        f"Aggregator: Global average {config.instrument_label()} price: {global_mean:.4f}"
    )
    try:
        write_global_record(config.data_dir, averages, global_mean)
    except OSError as exc:
        print(f"Aggregator: Failed to save global data: {exc}", file=sys.stderr)
        runlog.write("persist_error", owner="aggregator", error=str(exc))
    else:
        outcome.persisted = True
    runlog.write(
        "aggregator_done",
        expected=expected_count,
        received=outcome.received,
        per_worker_means=averages,
        global_mean=global_mean,
        persisted=outcome.persisted,
    )
    return outcome
