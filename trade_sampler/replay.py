from __future__ import annotations

import sys
from pathlib import Path
from typing import TextIO

from .records import record_paths


class ReplayError(OSError):
    def __init__(self, path: Path, error: Exception, printed: list[Path]) -> None:
        super().__init__(f"{path}: {error}")
        self.path = path
        self.error = error
        self.printed = printed


def replay_records(
    data_dir: str | Path,
    worker_count: int,
    *,
    out: TextIO | None = None,
) -> list[Path]:
    """Print the worker records 1..N and then the global record.

    Stops at the first record that cannot be opened or read; everything read
    before it has already been printed.
    """
    out = out or sys.stdout
    printed: list[Path] = []
    print("Reading prices data ...\n", file=out)
    for path in record_paths(data_dir, worker_count):
        try:
            handle = path.open("r", encoding="utf-8")
        except OSError as exc:
            raise ReplayError(path, exc, printed) from exc
        with handle:
            print(f"\nReading file: {path.name}\n", file=out)
            try:
                for line in handle:
                    print(line.rstrip("\n"), file=out)
            except (OSError, UnicodeDecodeError) as exc:
                raise ReplayError(path, exc, printed) from exc
        printed.append(path)
    return printed
