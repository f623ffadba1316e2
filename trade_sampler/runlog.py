from __future__ import annotations

import os
import sys
import time
import uuid
from collections import deque
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import orjson

from .config import Config

RUNLOG_FILENAME = "runlog.ndjson"

_ORJSON_NDJSON_OPTIONS = orjson.OPT_APPEND_NEWLINE
if hasattr(orjson, "OPT_ESCAPE_NON_ASCII"):
    _ORJSON_NDJSON_OPTIONS |= orjson.OPT_ESCAPE_NON_ASCII


def monotonic_ns() -> int:
    # perf_counter_ns is higher resolution than monotonic_ns on some platforms.
    return time.perf_counter_ns()


def default_run_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    suffix = uuid.uuid4().hex[:8]
    return f"{stamp}-{suffix}"


def _normalize_orjson(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    if is_dataclass(value) and not isinstance(value, type):
        return _normalize_orjson(asdict(value))
    if isinstance(value, dict):
        return {str(key): _normalize_orjson(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset, deque)):
        return [_normalize_orjson(item) for item in value]
    return str(value)


def _append_ndjson(path: Path, record: dict[str, Any], *, fsync_on_close: bool = False) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    line = orjson.dumps(record, option=_ORJSON_NDJSON_OPTIONS)
    with path.open("ab") as handle:
        handle.write(line)
        if fsync_on_close:
            handle.flush()
            os.fsync(handle.fileno())


class RunLog:
    """Append-only NDJSON event log shared by the workers and the aggregator.

    Every record is stamped with the run id plus monotonic and wall clock
    timestamps. A failed write disables the log for the rest of the run; the
    failure is reported once on stderr and never interrupts the pipeline.
    """

    def __init__(
        self,
        path: Path | None,
        *,
        run_id: str | None = None,
        fsync_on_close: bool = False,
    ) -> None:
        self.path = path
        self.run_id = run_id or default_run_id()
        self._fsync_on_close = fsync_on_close
        self.failed = False
        self.records_written = 0

    @classmethod
    def from_config(cls, config: Config, run_id: str | None = None) -> "RunLog":
        path = Path(config.data_dir) / RUNLOG_FILENAME if config.runlog_enable else None
        return cls(path, run_id=run_id, fsync_on_close=config.runlog_fsync_on_close)

    @classmethod
    def disabled(cls) -> "RunLog":
        return cls(None)

    def write(self, record_type: str, **fields: Any) -> None:
        if self.path is None or self.failed:
            return
        record: dict[str, Any] = {
            "record_type": record_type,
            "run_id": self.run_id,
            "ts_mono_ns": monotonic_ns(),
            "ts_wall_ns_utc": time.time_ns(),
        }
        record.update(fields)
        try:
            _append_ndjson(
                self.path,
                _normalize_orjson(record),
                fsync_on_close=self._fsync_on_close,
            )
        except (OSError, TypeError) as exc:
            self.failed = True
            print(f"runlog failure: {type(exc).__name__}: {exc}", file=sys.stderr)
            return
        self.records_written += 1
