from __future__ import annotations

from datetime import time
from pathlib import Path

from mt5_journal.config.app_config import load_app_config, resolve_config_path
from mt5_journal.ingest.mt5_html import DEFAULT_ENCODINGS
from mt5_journal.metrics.summary import Thresholds
from mt5_journal.reconstruct.trades import ASSUMED_RR


def test_missing_file_uses_defaults(tmp_path):
    config = load_app_config(tmp_path / "missing.toml")

    assert config.app.host == "127.0.0.1"
    assert config.app.port == 8000
    assert config.sessions.report_timezone is None
    assert config.sessions.default_time == time(12, 0)
    assert config.analytics.assumed_rr == ASSUMED_RR
    assert config.imports.encodings == DEFAULT_ENCODINGS
    assert not config.session_clock().converts
    assert config.thresholds() == Thresholds()


def test_sections_are_loaded(tmp_path):
    path = tmp_path / "app.toml"
    path.write_text(
        """
[app]
host = "0.0.0.0"
port = 9000
reload = true

[sessions]
report_timezone = "Europe/Athens"
session_timezone = "Asia/Kolkata"
default_time = "08:30"

[analytics]
initial_balance = 10000
target_profit = 800
max_drawdown_pct = 10
max_daily_drawdown_pct = 5
assumed_rr = 1.5

[import]
encodings = ["utf-16", "cp1252"]
""",
        encoding="utf-8",
    )

    config = load_app_config(path)

    assert config.app.port == 9000
    assert config.app.reload is True
    assert config.analytics.initial_balance == 10000.0
    assert config.analytics.assumed_rr == 1.5
    assert config.imports.encodings == ("utf-16", "cp1252")
    assert config.thresholds() == Thresholds(800.0, 10.0, 5.0)

    clock = config.session_clock()
    assert clock.converts
    assert clock.default_time == time(8, 30)


def test_invalid_values_fall_back_per_field(tmp_path):
    path = tmp_path / "app.toml"
    path.write_text(
        """
[app]
port = "not-a-port"

[sessions]
report_timezone = "Mars/Olympus"
default_time = "26:00"

[analytics]
max_drawdown_pct = -4
assumed_rr = "high"

[import]
encodings = "utf-8"
""",
        encoding="utf-8",
    )

    config = load_app_config(path)

    assert config.app.port == 8000
    assert config.sessions.report_timezone is None
    assert config.sessions.default_time == time(12, 0)
    assert config.analytics.max_drawdown_pct == 0.0
    assert config.analytics.assumed_rr == ASSUMED_RR
    assert config.imports.encodings == DEFAULT_ENCODINGS


def test_resolve_config_path():
    assert resolve_config_path(Path("custom.toml")) == Path("custom.toml")
    assert resolve_config_path(None, env={"MT5_JOURNAL_CONFIG": "/etc/mt5.toml"}) == Path("/etc/mt5.toml")
    assert resolve_config_path(None, env={}) == Path("config/app.toml")
