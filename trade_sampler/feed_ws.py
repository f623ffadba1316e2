from __future__ import annotations

import asyncio
import contextlib
import inspect
from typing import Any, AsyncIterator

import websockets

from .config import Config

_CONNECT_PARAMS = inspect.signature(websockets.connect).parameters
CONNECT_SUPPORTS_CLOSE_TIMEOUT = "close_timeout" in _CONNECT_PARAMS
CONNECT_SUPPORTS_OPEN_TIMEOUT = "open_timeout" in _CONNECT_PARAMS
CONNECT_HEADERS_PARAM: str | None
if "extra_headers" in _CONNECT_PARAMS:
    CONNECT_HEADERS_PARAM = "extra_headers"
elif "additional_headers" in _CONNECT_PARAMS:
    CONNECT_HEADERS_PARAM = "additional_headers"
else:
    CONNECT_HEADERS_PARAM = None
DEFAULT_WS_CLOSE_TIMEOUT_SECONDS = 5.0


class FeedConnectError(ConnectionError):
    pass


class FeedClosed(ConnectionError):
    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        reason: str | None = None,
        clean: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.reason = reason
        self.clean = clean


def normalize_ws_keepalive(config: Config) -> tuple[float | None, float | None]:
    ping_interval: float | None = config.ws_ping_interval_seconds
    if ping_interval is not None and ping_interval <= 0:
        ping_interval = None
    ping_timeout: float | None = config.ws_ping_timeout_seconds
    if ping_timeout is not None and ping_timeout <= 0:
        ping_timeout = None
    return ping_interval, ping_timeout


def build_connect_kwargs(config: Config) -> dict[str, Any]:
    ping_interval, ping_timeout = normalize_ws_keepalive(config)
    connect_kwargs: dict[str, Any] = {
        "ping_interval": ping_interval,
        "ping_timeout": ping_timeout,
    }
    if CONNECT_SUPPORTS_OPEN_TIMEOUT and config.ws_open_timeout_seconds > 0:
        connect_kwargs["open_timeout"] = config.ws_open_timeout_seconds
    if CONNECT_SUPPORTS_CLOSE_TIMEOUT:
        connect_kwargs["close_timeout"] = DEFAULT_WS_CLOSE_TIMEOUT_SECONDS
    if config.ws_user_agent and CONNECT_HEADERS_PARAM is not None:
        connect_kwargs[CONNECT_HEADERS_PARAM] = [("User-Agent", config.ws_user_agent)]
    return connect_kwargs


def _close_was_clean(exc: Exception) -> bool | None:
    if isinstance(exc, websockets.exceptions.ConnectionClosedOK):
        return True
    if isinstance(exc, websockets.exceptions.ConnectionClosedError):
        return False
    return None


def _closed_from(exc: websockets.exceptions.ConnectionClosed) -> FeedClosed:
    rcvd = getattr(exc, "rcvd", None)
    code = getattr(rcvd, "code", None)
    reason = getattr(rcvd, "reason", None)
    return FeedClosed(
        f"feed connection closed: {exc}",
        code=code,
        reason=reason,
        clean=_close_was_clean(exc),
    )


class FeedConnection:
    def __init__(self, ws: Any, url: str) -> None:
        self._ws = ws
        self.url = url
        self.frames_received = 0

    async def next_message(self) -> str | bytes:
        try:
            raw = await self._ws.recv()
        except websockets.exceptions.ConnectionClosed as exc:
            raise _closed_from(exc) from exc
        self.frames_received += 1
        return raw


@contextlib.asynccontextmanager
async def open_feed(config: Config) -> AsyncIterator[FeedConnection]:
    url = config.feed_ws_url()
    async with contextlib.AsyncExitStack() as stack:
        try:
            ws = await stack.enter_async_context(
                websockets.connect(url, **build_connect_kwargs(config))
            )
        except (
            OSError,
            asyncio.TimeoutError,
            websockets.exceptions.WebSocketException,
        ) as exc:
            raise FeedConnectError(f"{type(exc).__name__}: {exc}") from exc
        yield FeedConnection(ws, url)
