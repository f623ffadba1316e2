import trade_sampler.cli as cli
import trade_sampler.coordinator as coordinator
from trade_sampler.cli import parse_times
from trade_sampler.records import write_global_record, write_worker_record


def _run_cli(monkeypatch, args, env=None):
    calls = []
    monkeypatch.delenv("TRADE_SAMPLER_DURATION_SECONDS", raising=False)
    monkeypatch.delenv("TRADE_SAMPLER_WORKER_COUNT", raising=False)
    for key, value in (env or {}).items():
        monkeypatch.setenv(key, value)

    def _run_mode(mode, config):
        calls.append((mode, config))
        return 0

    monkeypatch.setattr(cli, "run_mode", _run_mode)
    exit_code = cli.main(args)
    return calls, exit_code


def test_defaults(monkeypatch, capsys):
    calls, exit_code = _run_cli(monkeypatch, [])
    assert exit_code == 0
    mode, config = calls[0]
    assert mode == "cache"
    assert config.duration_seconds == 1
    assert config.worker_count == 5
    assert "Mode: cache" in capsys.readouterr().out


def test_times_and_mode_short_flags(monkeypatch):
    calls, _ = _run_cli(monkeypatch, ["-m", "read", "-t", "7"])
    mode, config = calls[0]
    assert mode == "read"
    assert config.duration_seconds == 7


def test_times_non_numeric_falls_back(monkeypatch):
    calls, _ = _run_cli(monkeypatch, ["--times", "ten"])
    assert calls[0][1].duration_seconds == 1


def test_times_flag_wins_over_env(monkeypatch):
    calls, _ = _run_cli(monkeypatch, ["--times", "7"], env={"TRADE_SAMPLER_DURATION_SECONDS": "4"})
    assert calls[0][1].duration_seconds == 7


def test_env_duration_used_without_times(monkeypatch):
    calls, _ = _run_cli(monkeypatch, [], env={"TRADE_SAMPLER_DURATION_SECONDS": "4"})
    assert calls[0][1].duration_seconds == 4


def test_parse_times():
    assert parse_times("0") == 0
    assert parse_times(" 12 ") == 12
    assert parse_times("-3") == 1
    assert parse_times("1.5") == 1
    assert parse_times(None) == 1


def test_config_flags_override(monkeypatch):
    calls, _ = _run_cli(
        monkeypatch,
        ["--worker-count", "3", "--data-dir", "out", "--no-runlog-enable", "--aggregator-timeout-seconds", "2.5"],
    )
    config = calls[0][1]
    assert config.worker_count == 3
    assert config.data_dir == "out"
    assert config.runlog_enable is False
    assert config.aggregator_timeout_seconds == 2.5


def test_invalid_mode_exits_zero(monkeypatch, capsys):
    monkeypatch.delenv("TRADE_SAMPLER_WORKER_COUNT", raising=False)
    assert cli.main(["--mode", "bogus"]) == 0
    assert "Invalid mode: bogus. Use --mode=cache or --mode=read." in capsys.readouterr().err


def test_read_mode_prints_records(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("TRADE_SAMPLER_WORKER_COUNT", raising=False)
    for worker_id in range(1, 6):
        write_worker_record(tmp_path, worker_id, [float(worker_id)], float(worker_id))
    write_global_record(tmp_path, [1.0, 2.0, 3.0, 4.0, 5.0], 3.0)
    assert cli.main(["--mode", "read", "--data-dir", str(tmp_path)]) == 0
    out = capsys.readouterr().out
    assert "Reading file: client_5_data.txt" in out
    assert "Global Average: 3.0000" in out


def test_read_mode_missing_record_reported_on_stderr(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("TRADE_SAMPLER_WORKER_COUNT", raising=False)
    write_worker_record(tmp_path, 1, [1.0], 1.0)
    assert coordinator.run_mode("read", cli.Config(data_dir=str(tmp_path))) == 0
    captured = capsys.readouterr()
    assert "Reading file: client_1_data.txt" in captured.out
    assert "client_2_data.txt" in captured.err


def test_non_numeric_flag_is_usage_error(monkeypatch, capsys):
    calls, exit_code = _run_cli(monkeypatch, ["--worker-count", "five"])
    assert exit_code == 0
    assert calls == []
    err = capsys.readouterr().err
    assert "--worker-count" in err
    assert "invalid int value" in err


def test_bad_optional_flag_is_usage_error(monkeypatch, capsys):
    calls, exit_code = _run_cli(monkeypatch, ["--aggregator-timeout-seconds", "later"])
    assert exit_code == 0
    assert calls == []
    assert "--aggregator-timeout-seconds" in capsys.readouterr().err


def test_negative_worker_count_reported_on_stderr(monkeypatch, capsys):
    calls, exit_code = _run_cli(monkeypatch, ["--worker-count", "-1"])
    assert exit_code == 0
    assert calls == []
    assert "worker_count must be >= 0" in capsys.readouterr().err


def test_bad_env_value_reported_on_stderr(monkeypatch, capsys):
    calls, exit_code = _run_cli(monkeypatch, [], env={"TRADE_SAMPLER_WORKER_COUNT": "five"})
    assert exit_code == 0
    assert calls == []
    assert "TRADE_SAMPLER_WORKER_COUNT='five'" in capsys.readouterr().err


def test_collect_mode_reports_bad_worker_count(tmp_path, capsys):
    config = cli.Config(worker_count=-1, data_dir=str(tmp_path))
    assert coordinator.run_mode("cache", config) == 0
    captured = capsys.readouterr()
    assert "Invalid configuration: worker_count must be >= 0" in captured.err
    assert list(tmp_path.iterdir()) == []
