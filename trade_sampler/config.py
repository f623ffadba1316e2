from __future__ import annotations

from dataclasses import dataclass, fields
import types
import typing
from typing import Any, get_args, get_origin

ENV_PREFIX = "TRADE_SAMPLER_"


def _parse_bool(value: str) -> bool:
    val = str(value).strip().lower()
    if val in {"1", "true", "yes", "y", "on"}:
        return True
    if val in {"0", "false", "no", "n", "off"}:
        return False
    raise ValueError(f"invalid bool: {value}")


def _parse_number(value: str, target_type: type) -> Any:
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    return value


def _unwrap_optional(field_type: Any) -> tuple[Any, bool]:
    if isinstance(field_type, str):
        # Postponed annotations arrive as text, e.g. "float | None".
        parts = [part.strip() for part in field_type.split("|")]
        if len(parts) == 2 and "None" in parts:
            base = parts[0] if parts[1] == "None" else parts[1]
            return base, True
        return field_type, False
    origin = get_origin(field_type)
    union_type = getattr(types, "UnionType", None)
    if origin not in (typing.Union, union_type):
        return field_type, False
    args = get_args(field_type)
    if args and type(None) in args and len(args) == 2:
        base = args[0] if args[1] is type(None) else args[1]
        return base, True
    return field_type, False


def _base_type_name(field_type: Any) -> str:
    base_type, _is_optional = _unwrap_optional(field_type)
    if isinstance(base_type, str):
        return base_type
    return getattr(base_type, "__name__", str(base_type))


def _is_field_type(field_type: Any, expected: type, expected_name: str) -> bool:
    base_type, _is_optional = _unwrap_optional(field_type)
    if base_type is expected:
        return True
    if isinstance(base_type, str) and base_type == expected_name:
        return True
    return False


def _parse_optional(raw: str, target_name: str) -> Any:
    text = str(raw).strip()
    if text == "":
        return None
    lower = text.lower()
    if lower in {"none", "null"}:
        return None
    if target_name == "bool":
        return _parse_bool(text)
    if target_name == "int":
        return _parse_number(text, int)
    if target_name == "float":
        return _parse_number(text, float)
    return text


@dataclass
class Config:
    feed_ws_base_url: str = "wss://stream.binance.com:9443/ws"
    feed_symbol: str = "btcusdt"
    worker_count: int = 5
    duration_seconds: int = 1
    ws_ping_interval_seconds: float = 20.0
    ws_ping_timeout_seconds: float = 20.0
    ws_open_timeout_seconds: float = 10.0
    ws_user_agent: str = "trade_sampler"
    aggregator_timeout_seconds: float | None = None
    data_dir: str = "."
    runlog_enable: bool = False
    runlog_fsync_on_close: bool = False

    def feed_ws_url(self) -> str:
        base = self.feed_ws_base_url.rstrip("/")
        return f"{base}/{self.feed_symbol.lower()}@trade"

    def instrument_label(self) -> str:
        return self.feed_symbol.upper()

    def apply_overrides(self, overrides: dict[str, Any]) -> "Config":
        for field in fields(self):
            name = field.name
            if name in overrides:
                value = overrides[name]
                if value is None:
                    _base_type, is_optional = _unwrap_optional(field.type)
                    if is_optional:
                        setattr(self, name, None)
                    continue
                setattr(self, name, value)
        return self

    def validate(self) -> "Config":
        if self.worker_count < 0:
            raise ValueError(f"worker_count must be >= 0, got {self.worker_count}")
        if self.duration_seconds < 0:
            raise ValueError(f"duration_seconds must be >= 0, got {self.duration_seconds}")
        return self

    @classmethod
    def from_env_and_cli(cls, cli_overrides: dict[str, Any], env: dict[str, str]) -> "Config":
        # Explicit command-line flags win over the environment.
        cfg = cls()
        for field in fields(cfg):
            env_key = ENV_PREFIX + field.name.upper()
            if env_key not in env:
                continue
            raw = env[env_key]
            _base_type, is_optional = _unwrap_optional(field.type)
            try:
                if is_optional:
                    value = _parse_optional(raw, _base_type_name(field.type))
                elif _is_field_type(field.type, bool, "bool"):
                    value = _parse_bool(raw)
                elif _is_field_type(field.type, int, "int"):
                    value = _parse_number(raw, int)
                elif _is_field_type(field.type, float, "float"):
                    value = _parse_number(raw, float)
                else:
                    value = raw
            except ValueError as exc:
                raise ValueError(f"{env_key}={raw!r}: {exc}") from exc
            setattr(cfg, field.name, value)
        return cfg.apply_overrides(cli_overrides)
