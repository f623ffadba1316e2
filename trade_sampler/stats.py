from __future__ import annotations

from typing import Sequence


def arithmetic_mean(values: Sequence[float]) -> float | None:
    # None means "no data", which is not the same as a mean of zero.
    if not values:
        return None
    return sum(values) / len(values)
