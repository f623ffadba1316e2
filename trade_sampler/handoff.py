from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass


class ChannelClosed(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class WorkerResult:
    worker_id: int
    local_mean: float


class HandoffChannel:
    """Bounded many-producer, single-consumer channel for worker results.

    Producers hold single-use ``ResultSender`` handles. Once every handle has
    been released and the buffer is drained, ``recv`` returns ``None`` rather
    than waiting for results that can no longer arrive.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("handoff capacity must be >= 1")
        self.capacity = capacity
        self._queue: asyncio.Queue[WorkerResult] = asyncio.Queue(maxsize=capacity)
        self._open_senders = 0
        self._senders_issued = 0
        self._senders_done = asyncio.Event()
        self._receiver_closed = False

    @property
    def open_senders(self) -> int:
        return self._open_senders

    def producers_done(self) -> bool:
        return self._senders_issued > 0 and self._open_senders == 0

    def qsize(self) -> int:
        return self._queue.qsize()

    def sender(self) -> "ResultSender":
        if self._receiver_closed or self.producers_done():
            raise ChannelClosed("handoff channel is closed")
        self._open_senders += 1
        self._senders_issued += 1
        return ResultSender(self)

    def _release_sender(self) -> None:
        self._open_senders -= 1
        if self._open_senders == 0:
            self._senders_done.set()

    async def _put(self, result: WorkerResult) -> None:
        if self._receiver_closed:
            raise ChannelClosed("handoff receiver is closed")
        await self._queue.put(result)

    def close(self) -> None:
        """Close the receiving side; later sends raise ``ChannelClosed``."""
        self._receiver_closed = True

    async def recv(self, timeout: float | None = None) -> WorkerResult | None:
        if not self._queue.empty():
            return self._queue.get_nowait()
        if self._senders_done.is_set():
            return None
        get_task = asyncio.create_task(self._queue.get())
        done_task = asyncio.create_task(self._senders_done.wait())
        try:
            done, _pending = await asyncio.wait(
                [get_task, done_task],
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (get_task, done_task):
                if not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
        if get_task.done() and not get_task.cancelled():
            return get_task.result()
        if done_task in done:
            if not self._queue.empty():
                return self._queue.get_nowait()
            return None
        raise asyncio.TimeoutError("timed out waiting for worker result")


class ResultSender:
    def __init__(self, channel: HandoffChannel) -> None:
        self._channel = channel
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, result: WorkerResult) -> None:
        # One result per handle; the handle is spent even if the send fails.
        if self._closed:
            raise ChannelClosed("result sender already used")
        try:
            await self._channel._put(result)
        finally:
            self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._channel._release_sender()

    async def __aenter__(self) -> "ResultSender":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False
