from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass

from .config import Config
from .feed_ws import FeedClosed, FeedConnectError, FeedConnection, open_feed
from .handoff import ChannelClosed, ResultSender, WorkerResult
from .records import write_worker_record
from .runlog import RunLog, monotonic_ns
from .stats import arithmetic_mean
from .trade_decode import PriceObservation, decode_trade


@dataclass(slots=True)
class WorkerOutcome:
    worker_id: int
    connected: bool = False
    observations: int = 0
    decode_errors: int = 0
    local_mean: float | None = None
    sent: bool = False
    persisted: bool = False
    read_error: str | None = None
    error: str | None = None


async def _sample_window(
    feed: FeedConnection,
    outcome: WorkerOutcome,
    duration_seconds: float,
    observations: list[PriceObservation],
    runlog: RunLog,
) -> None:
    worker_id = outcome.worker_id
    deadline_ns = monotonic_ns() + int(max(0.0, duration_seconds) * 1_000_000_000)
    while True:
        remaining_ns = deadline_ns - monotonic_ns()
        if remaining_ns <= 0:
            return
        try:
            raw = await asyncio.wait_for(
                feed.next_message(), timeout=remaining_ns / 1_000_000_000
            )
        except asyncio.TimeoutError:
            return
        except FeedClosed as exc:
            outcome.read_error = str(exc)
            print(f"Client {worker_id}: Failed to receive message: {exc}", file=sys.stderr)
            runlog.write(
                "worker_read_error",
                worker_id=worker_id,
                error=str(exc),
                close_code=exc.code,
                close_reason=exc.reason,
                close_was_clean=exc.clean,
                observations=len(observations),
            )
            return
        result = decode_trade(raw, rx_mono_ns=monotonic_ns())
        if result.error is not None:
            outcome.decode_errors += 1
            runlog.write(
                "worker_decode_error",
                worker_id=worker_id,
                kind=result.error.kind,
                error=str(result.error),
                sample=result.raw_sample,
            )
            continue
        if result.observation is not None:
            observations.append(result.observation)


async def _send_result(
    sender: ResultSender,
    outcome: WorkerOutcome,
    mean: float,
    runlog: RunLog,
) -> None:
    try:
        await sender.send(WorkerResult(worker_id=outcome.worker_id, local_mean=mean))
    except ChannelClosed as exc:
        print(f"Client {outcome.worker_id}: Failed to send average: {exc}", file=sys.stderr)
        runlog.write("worker_send_fail", worker_id=outcome.worker_id, error=str(exc))
        return
    outcome.sent = True


def _persist(
    config: Config,
    outcome: WorkerOutcome,
    prices: list[float],
    mean: float | None,
    runlog: RunLog,
) -> None:
    try:
        path = write_worker_record(config.data_dir, outcome.worker_id, prices, mean)
    except OSError as exc:
        print(f"Client {outcome.worker_id}: Failed to save data: {exc}", file=sys.stderr)
        runlog.write(
            "persist_error",
            owner=f"client_{outcome.worker_id}",
            error=str(exc),
        )
        return
    outcome.persisted = True
    runlog.write("worker_persist", worker_id=outcome.worker_id, path=path)


async def run_worker(
    worker_id: int,
    duration_seconds: float,
    sender: ResultSender,
    *,
    config: Config,
    runlog: RunLog | None = None,
) -> WorkerOutcome:
    """Sample the feed for one observation window and hand off the local mean.

    At most one ``WorkerResult`` is sent. Connection failures end the worker
    without a result; a dropped connection ends the window early but whatever
    was collected is still summarized. The sender is always released.
    """
    runlog = runlog or RunLog.disabled()
    outcome = WorkerOutcome(worker_id=worker_id)
    observations: list[PriceObservation] = []
    try:
        try:
            async with open_feed(config) as feed:
                outcome.connected = True
                print(f"Client {worker_id}: Connected to feed.")
                runlog.write("worker_connect", worker_id=worker_id, ws_url=feed.url)
                await _sample_window(feed, outcome, duration_seconds, observations, runlog)
        except FeedConnectError as exc:
            outcome.error = str(exc)
            print(f"Client {worker_id}: Failed to connect to feed: {exc}", file=sys.stderr)
            runlog.write("worker_connect_fail", worker_id=worker_id, error=str(exc))
            return outcome

        prices = [observation.price for observation in observations]
        outcome.observations = len(prices)
        mean = arithmetic_mean(prices)
        if mean is None:
            print(f"Client {worker_id}: No data points collected.", file=sys.stderr)
            runlog.write(
                "worker_no_data",
                worker_id=worker_id,
                decode_errors=outcome.decode_errors,
            )
            sender.close()
        else:
            outcome.local_mean = mean
            print(
                f"Client {worker_id}: Average {config.instrument_label()} price: {mean:.4f}"
            )
            runlog.write(
                "worker_result",
                worker_id=worker_id,
                observations=len(prices),
                decode_errors=outcome.decode_errors,
                local_mean=mean,
            )
            await _send_result(sender, outcome, mean, runlog)
        _persist(config, outcome, prices, mean, runlog)
        return outcome
    finally:
        sender.close()
