from __future__ import annotations

import asyncio
import json
import sys
from collections import OrderedDict
from dataclasses import dataclass, field

from .aggregator import AggregatorOutcome, run_aggregator
from .config import Config
from .handoff import HandoffChannel
from .replay import ReplayError, replay_records
from .runlog import RunLog, monotonic_ns
from .worker import WorkerOutcome, run_worker

MODE_COLLECT = "cache"
MODE_REPLAY = "read"
MODES = (MODE_COLLECT, MODE_REPLAY)


@dataclass(slots=True)
class RunSummary:
    ok: bool
    mode: str
    worker_count: int
    duration_seconds: float
    workers_connected: int
    results_received: int
    global_mean: float | None
    elapsed_ms: float
    worker_outcomes: list[WorkerOutcome] = field(default_factory=list)
    aggregator: AggregatorOutcome | None = None
    error: str | None = None


def format_run_summary(summary: RunSummary) -> str:
    payload = OrderedDict()
    payload["ok"] = summary.ok
    payload["mode"] = summary.mode
    payload["worker_count"] = summary.worker_count
    payload["duration_seconds"] = summary.duration_seconds
    payload["workers_connected"] = summary.workers_connected
    payload["results_received"] = summary.results_received
    payload["global_mean"] = summary.global_mean
    payload["elapsed_ms"] = summary.elapsed_ms
    if summary.error:
        payload["error"] = summary.error
    return json.dumps(payload, ensure_ascii=True, separators=(",", ":"))


def _collect_worker_outcomes(
    worker_ids: list[int],
    results: list[WorkerOutcome | BaseException],
    runlog: RunLog,
) -> list[WorkerOutcome]:
    outcomes: list[WorkerOutcome] = []
    for worker_id, result in zip(worker_ids, results):
        if isinstance(result, BaseException):
            error = f"{type(result).__name__}: {result}"
            print(f"Client {worker_id}: Worker failed: {error}", file=sys.stderr)
            runlog.write("worker_crash", worker_id=worker_id, error=error)
            outcomes.append(WorkerOutcome(worker_id=worker_id, error=error))
            continue
        outcomes.append(result)
    return outcomes


async def run_collect(config: Config, *, runlog: RunLog | None = None) -> RunSummary:
    """Fan out ``worker_count`` sampling workers and fan their means in.

    Waits for every worker, then for the aggregator.
    """
    runlog = runlog or RunLog.from_config(config)
    worker_count = config.worker_count
    if worker_count < 0:
        raise ValueError("worker_count must be >= 0")
    duration_seconds = max(0, config.duration_seconds)
    start_ns = monotonic_ns()
    runlog.write(
        "run_start",
        mode=MODE_COLLECT,
        worker_count=worker_count,
        duration_seconds=duration_seconds,
        ws_url=config.feed_ws_url(),
    )

    channel = HandoffChannel(capacity=max(1, worker_count))
    worker_ids = list(range(1, worker_count + 1))
    senders = [channel.sender() for _ in worker_ids]
    aggregator_task = asyncio.create_task(
        run_aggregator(
            channel,
            worker_count,
            config=config,
            runlog=runlog,
            timeout_seconds=config.aggregator_timeout_seconds,
        )
    )
    worker_tasks = [
        asyncio.create_task(
            run_worker(worker_id, duration_seconds, sender, config=config, runlog=runlog)
        )
        for worker_id, sender in zip(worker_ids, senders)
    ]
    print(f"Will listen for {duration_seconds} seconds.")

    results = await asyncio.gather(*worker_tasks, return_exceptions=True)
    worker_outcomes = _collect_worker_outcomes(worker_ids, results, runlog)
    # A worker that crashed before releasing its handle must not stall the aggregator.
    for sender in senders:
        sender.close()
    aggregator = await aggregator_task

    summary = RunSummary(
        ok=aggregator.complete,
        mode=MODE_COLLECT,
        worker_count=worker_count,
        duration_seconds=duration_seconds,
        workers_connected=sum(1 for outcome in worker_outcomes if outcome.connected),
        results_received=aggregator.received,
        global_mean=aggregator.summary.global_mean if aggregator.summary else None,
        elapsed_ms=(monotonic_ns() - start_ns) / 1_000_000.0,
        worker_outcomes=worker_outcomes,
        aggregator=aggregator,
        error=aggregator.error,
    )
    runlog.write(
        "run_end",
        ok=summary.ok,
        workers_connected=summary.workers_connected,
        results_received=summary.results_received,
        global_mean=summary.global_mean,
        elapsed_ms=summary.elapsed_ms,
    )
    return summary


def run_mode(mode: str, config: Config) -> int:
    """Dispatch one CLI mode. Failures are reported on stderr, never by exit code."""
    if mode == MODE_COLLECT:
        try:
            summary = asyncio.run(run_collect(config))
        except ValueError as exc:
            print(f"Invalid configuration: {exc}", file=sys.stderr)
            return 0
        print(format_run_summary(summary))
        return 0
    if mode == MODE_REPLAY:
        try:
            replay_records(config.data_dir, config.worker_count)
        except ReplayError as exc:
            print(f"Failed to read price data: {exc}", file=sys.stderr)
        return 0
    print(f"Invalid mode: {mode}. Use --mode=cache or --mode=read.", file=sys.stderr)
    return 0
