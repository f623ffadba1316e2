from __future__ import annotations

from pathlib import Path
from typing import Sequence

GLOBAL_RECORD_NAME = "global_data.txt"
NO_DATA_MARKER = "none"


def worker_record_name(worker_id: int) -> str:
    return f"client_{worker_id}_data.txt"


def worker_record_path(data_dir: str | Path, worker_id: int) -> Path:
    return Path(data_dir) / worker_record_name(worker_id)


def global_record_path(data_dir: str | Path) -> Path:
    return Path(data_dir) / GLOBAL_RECORD_NAME


def record_paths(data_dir: str | Path, worker_count: int) -> list[Path]:
    paths = [worker_record_path(data_dir, worker_id) for worker_id in range(1, worker_count + 1)]
    paths.append(global_record_path(data_dir))
    return paths


def format_float_list(values: Sequence[float]) -> str:
    return "[" + ", ".join(repr(float(value)) for value in values) + "]"


def format_mean(value: float | None) -> str:
    if value is None:
        return NO_DATA_MARKER
    return f"{value:.4f}"


def render_worker_record(prices: Sequence[float], average: float | None) -> str:
    return f"Prices: {format_float_list(prices)}\nAverage: {format_mean(average)}\n"


def render_global_record(averages: Sequence[float], global_average: float) -> str:
    return (
        f"Client Averages: {format_float_list(averages)}\n"
        f"Global Average: {format_mean(global_average)}\n"
    )


def _write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # Whole-file overwrite, never append.
    path.write_text(text, encoding="utf-8")


def write_worker_record(
    data_dir: str | Path,
    worker_id: int,
    prices: Sequence[float],
    average: float | None,
) -> Path:
    path = worker_record_path(data_dir, worker_id)
    _write_text(path, render_worker_record(prices, average))
    return path


def write_global_record(
    data_dir: str | Path,
    averages: Sequence[float],
    global_average: float,
) -> Path:
    path = global_record_path(data_dir)
    _write_text(path, render_global_record(averages, global_average))
    return path
