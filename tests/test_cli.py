from __future__ import annotations

import json

import pytest

from mt5_journal import cli, metrics_summary, session_cli


def _write_report(tmp_path, html: str):
    path = tmp_path / "ReportHistory.html"
    path.write_text(html, encoding="utf-8")
    return path


def test_cli_lists_trades_newest_first(tmp_path, capsys, report_builder):
    path = _write_report(tmp_path, report_builder())

    code = cli.main([str(path), "--config", str(tmp_path / "none.toml")])

    out = capsys.readouterr().out.splitlines()
    assert code == 0
    assert out[0].startswith("date pair direction")
    assert out[1].startswith("2024.01.17T10:45:00 EURUSD Buy")
    assert out[5].startswith("2024.01.15T11:30:00 EURUSD Buy")
    assert "trades 5" in out
    assert "balance 10057.43" in out
    assert "initial_balance 10004.00" in out


def test_cli_reports_skipped_rows(tmp_path, capsys, report_builder, position_rows):
    position_rows[2] = ("2024.01.16 08:00:00", "1003", "???", "buy") + position_rows[2][4:]
    path = _write_report(tmp_path, report_builder(position_rows))

    code = cli.main([str(path), "--config", str(tmp_path / "none.toml")])

    captured = capsys.readouterr()
    assert code == 0
    assert "Skipped 1 position rows" in captured.err
    assert "trades 4" in captured.out


def test_cli_missing_positions_exits_with_message(tmp_path, capsys):
    path = _write_report(tmp_path, "<html><body><p>Account overview</p></body></html>")

    code = cli.main([str(path), "--config", str(tmp_path / "none.toml")])

    assert code == 2
    assert "No trade history found" in capsys.readouterr().err


def test_cli_unreadable_file(tmp_path, capsys):
    code = cli.main([str(tmp_path / "missing.html"), "--config", str(tmp_path / "none.toml")])

    assert code == 2
    assert "Cannot read" in capsys.readouterr().err


def test_cli_writes_output_file(tmp_path, report_builder):
    path = _write_report(tmp_path, report_builder())
    out = tmp_path / "out" / "trades.txt"

    assert cli.main([str(path), "--config", str(tmp_path / "none.toml"), "--out", str(out)]) == 0
    assert "trades 5" in out.read_text(encoding="utf-8")


def test_metrics_json(tmp_path, capsys, report_builder):
    path = _write_report(tmp_path, report_builder())

    code = metrics_summary.main(
        [str(path), "--config", str(tmp_path / "none.toml"), "--json", "--max-dd", "10", "--target-profit", "100"]
    )

    payload = json.loads(capsys.readouterr().out)
    assert code == 0
    assert payload["total_trades"] == 5
    assert payload["balance"] == 10057.43
    assert payload["initial_balance"] == pytest.approx(10004.0)
    assert payload["thresholds"]["profit_target_pct"] == pytest.approx(53.43)
    assert payload["win_streak"] == 0


def test_metrics_text(tmp_path, capsys, report_builder):
    path = _write_report(tmp_path, report_builder())

    assert metrics_summary.main([str(path), "--config", str(tmp_path / "none.toml"), "--initial-balance", "1000"]) == 0

    out = capsys.readouterr().out.splitlines()
    assert "total_trades 5" in out
    assert "initial_balance 1000" in out
    assert "instrument EURUSD trades=2 net=49.3" in out


def test_session_cli(tmp_path, capsys):
    code = session_cli.main(["2024.01.15 14:20:00", "09:45", "--config", str(tmp_path / "none.toml")])

    out = capsys.readouterr().out.splitlines()
    assert code == 0
    assert out == ["2024.01.15 14:20:00\tLondon Session", "09:45\tSydney + Tokyo"]
