import asyncio
import io
from collections import deque
from pathlib import Path

import orjson
import pytest
import websockets

import trade_sampler.feed_ws as feed_ws
from trade_sampler.config import Config
from trade_sampler.coordinator import run_collect
from trade_sampler.records import write_global_record, write_worker_record
from trade_sampler.replay import ReplayError, replay_records


class FakeWebSocket:
    def __init__(self, recv_events):
        self._recv_events = deque(recv_events)

    async def recv(self):
        await asyncio.sleep(0)
        if not self._recv_events:
            raise websockets.exceptions.ConnectionClosedOK(None, None)
        return self._recv_events.popleft()


class FakeConnect:
    def __init__(self, ws):
        self._ws = ws

    async def __aenter__(self):
        return self._ws

    async def __aexit__(self, exc_type, exc, tb):
        return False


def _write_run(data_dir: Path, worker_count: int) -> None:
    means = []
    for worker_id in range(1, worker_count + 1):
        prices = [100.0 * worker_id, 100.0 * worker_id + 1.0]
        mean = sum(prices) / len(prices)
        means.append(mean)
        write_worker_record(data_dir, worker_id, prices, mean)
    write_global_record(data_dir, means, sum(means) / len(means))


def test_replay_prints_every_record_unchanged(tmp_path: Path, capsys):
    _write_run(tmp_path, 3)
    printed = replay_records(tmp_path, 3)

    assert [path.name for path in printed] == [
        "client_1_data.txt",
        "client_2_data.txt",
        "client_3_data.txt",
        "global_data.txt",
    ]
    out = capsys.readouterr().out
    assert out.startswith("Reading prices data ...\n")
    for path in printed:
        assert f"Reading file: {path.name}" in out
        assert path.read_text(encoding="utf-8") in out
    assert out.index("client_3_data.txt") < out.index("global_data.txt")


def test_replay_halts_at_missing_record(tmp_path: Path, capsys):
    _write_run(tmp_path, 3)
    (tmp_path / "client_2_data.txt").unlink()

    with pytest.raises(ReplayError) as excinfo:
        replay_records(tmp_path, 3)

    assert excinfo.value.path.name == "client_2_data.txt"
    assert [path.name for path in excinfo.value.printed] == ["client_1_data.txt"]
    out = capsys.readouterr().out
    assert "Prices: [100.0, 101.0]" in out
    assert "client_3_data.txt" not in out
    assert "global_data.txt" not in out


def test_replay_missing_global_record(tmp_path: Path, capsys):
    _write_run(tmp_path, 2)
    (tmp_path / "global_data.txt").unlink()
    with pytest.raises(ReplayError) as excinfo:
        replay_records(tmp_path, 2)
    assert len(excinfo.value.printed) == 2


def test_replay_halts_at_undecodable_record(tmp_path: Path):
    _write_run(tmp_path, 3)
    # Past the text reader's first chunk, so the earlier rows are already printed.
    rows = "".join(f"row {index}\n" for index in range(2000)).encode("utf-8")
    (tmp_path / "client_2_data.txt").write_bytes(rows + b"\xff\xfe broken\n")
    out = io.StringIO()

    with pytest.raises(ReplayError) as excinfo:
        replay_records(tmp_path, 3, out=out)

    assert excinfo.value.path == tmp_path / "client_2_data.txt"
    assert isinstance(excinfo.value.error, UnicodeDecodeError)
    assert [path.name for path in excinfo.value.printed] == ["client_1_data.txt"]
    text = out.getvalue()
    assert "Reading file: client_2_data.txt" in text
    assert "row 0\n" in text
    assert "row 1000\n" in text
    assert "client_3_data.txt" not in text
    assert "global_data.txt" not in text


@pytest.mark.asyncio
async def test_replay_prints_what_collect_wrote(tmp_path: Path, monkeypatch):
    feeds = deque(
        [
            ["100.0", "102.0"],
            ["200.5"],
            ["300.0", "301.0", "302.0"],
        ]
    )

    def _connect(*args, **kwargs):
        frames = [orjson.dumps({"e": "trade", "p": price}).decode("utf-8") for price in feeds.popleft()]
        return FakeConnect(FakeWebSocket(frames))

    monkeypatch.setattr(feed_ws.websockets, "connect", _connect)
    config = Config(worker_count=3, duration_seconds=5, data_dir=str(tmp_path))

    summary = await asyncio.wait_for(run_collect(config), timeout=5.0)
    assert summary.ok

    written = {
        path.name: path.read_text(encoding="utf-8")
        for path in sorted(tmp_path.iterdir())
    }
    out = io.StringIO()
    printed = replay_records(tmp_path, 3, out=out)

    assert [path.name for path in printed] == [
        "client_1_data.txt",
        "client_2_data.txt",
        "client_3_data.txt",
        "global_data.txt",
    ]
    text = out.getvalue()
    for path in printed:
        assert f"Reading file: {path.name}\n\n{written[path.name]}" in text
        assert path.read_text(encoding="utf-8") == written[path.name]
    assert set(written) == {path.name for path in printed}
