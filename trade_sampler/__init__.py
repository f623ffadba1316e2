"""Fan-out/fan-in live trade price sampler."""

__all__ = [
    "aggregator",
    "cli",
    "config",
    "coordinator",
    "feed_ws",
    "handoff",
    "records",
    "replay",
    "runlog",
    "stats",
    "trade_decode",
    "worker",
]
