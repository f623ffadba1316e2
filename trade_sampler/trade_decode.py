from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

import orjson

PRICE_FIELD = "p"

DECODE_MISSING_FIELD = "missing_field"
DECODE_PARSE_ERROR = "parse_error"
DECODE_INVALID_JSON = "invalid_json"


class TradeDecodeError(ValueError):
    kind = "decode_error"


class MissingPriceField(TradeDecodeError):
    kind = DECODE_MISSING_FIELD


class InvalidPrice(TradeDecodeError):
    kind = DECODE_PARSE_ERROR


class InvalidTradePayload(TradeDecodeError):
    kind = DECODE_INVALID_JSON


@dataclass(frozen=True, slots=True)
class PriceObservation:
    price: float
    rx_mono_ns: int | None = None


@dataclass(slots=True)
class TradeDecodeResult:
    observation: PriceObservation | None
    error: TradeDecodeError | None
    raw_sample: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_trade_price(payload: Any, field: str = PRICE_FIELD) -> float:
    if not isinstance(payload, dict):
        raise MissingPriceField(f"trade payload is not an object: {type(payload).__name__}")
    if field not in payload:
        raise MissingPriceField(f"missing price field {field!r}")
    raw_price = payload[field]
    if isinstance(raw_price, bool):
        raise InvalidPrice(f"invalid price: {raw_price!r}")
    if isinstance(raw_price, (int, float)):
        price = float(raw_price)
    elif isinstance(raw_price, str):
        # float() would also take padding and digit separators such as "1_000.5".
        if raw_price != raw_price.strip() or "_" in raw_price:
            raise InvalidPrice(f"invalid price: {raw_price!r}")
        try:
            price = float(raw_price)
        except ValueError as exc:
            raise InvalidPrice(f"invalid price: {raw_price!r}") from exc
    else:
        raise InvalidPrice(f"invalid price type: {type(raw_price).__name__}")
    if not math.isfinite(price):
        raise InvalidPrice(f"non-finite price: {raw_price!r}")
    return price


def decode_trade(
    raw: Any,
    *,
    rx_mono_ns: int | None = None,
    field: str = PRICE_FIELD,
) -> TradeDecodeResult:
    """Decode one trade frame; failures come back tagged instead of raised."""
    if isinstance(raw, (bytes, bytearray, memoryview)):
        raw_payload: str | bytes = bytes(raw)
    else:
        raw_payload = str(raw)
    try:
        payload = orjson.loads(raw_payload)
    except orjson.JSONDecodeError:
        if isinstance(raw_payload, bytes):
            sample = raw_payload.decode("utf-8", errors="ignore")[:50]
        else:
            sample = raw_payload[:50]
        return TradeDecodeResult(
            observation=None,
            error=InvalidTradePayload("trade frame is not valid JSON"),
            raw_sample=sample,
        )
    try:
        price = parse_trade_price(payload, field)
    except TradeDecodeError as exc:
        return TradeDecodeResult(observation=None, error=exc)
    return TradeDecodeResult(
        observation=PriceObservation(price=price, rx_mono_ns=rx_mono_ns),
        error=None,
    )
