from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import time
from pathlib import Path
from typing import Any, Mapping

import pytz

from mt5_journal.ingest.mt5_html import DEFAULT_ENCODINGS
from mt5_journal.metrics.summary import Thresholds
from mt5_journal.reconstruct.sessions import NOON, SessionClock
from mt5_journal.reconstruct.trades import ASSUMED_RR

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python <3.11
    import tomli as tomllib

DEFAULT_CONFIG_PATH = Path("config/app.toml")


@dataclass(frozen=True)
class AppSettings:
    host: str
    port: int
    reload: bool


@dataclass(frozen=True)
class SessionSettings:
    report_timezone: str | None
    session_timezone: str | None
    default_time: time


@dataclass(frozen=True)
class AnalyticsSettings:
    initial_balance: float
    target_profit: float
    max_drawdown_pct: float
    max_daily_drawdown_pct: float
    assumed_rr: float


@dataclass(frozen=True)
class ImportSettings:
    encodings: tuple[str, ...]


@dataclass(frozen=True)
class AppConfig:
    app: AppSettings
    sessions: SessionSettings
    analytics: AnalyticsSettings
    imports: ImportSettings

    def session_clock(self) -> SessionClock:
        return SessionClock(
            report_timezone=self.sessions.report_timezone,
            session_timezone=self.sessions.session_timezone,
            default_time=self.sessions.default_time,
        )

    def thresholds(self) -> Thresholds:
        return Thresholds(
            target_profit=self.analytics.target_profit,
            max_drawdown_pct=self.analytics.max_drawdown_pct,
            max_daily_drawdown_pct=self.analytics.max_daily_drawdown_pct,
        )


def resolve_config_path(override: Path | None = None, env: Mapping[str, str] | None = None) -> Path:
    if override:
        return Path(override)
    env = os.environ if env is None else env
    return Path(env.get("MT5_JOURNAL_CONFIG", str(DEFAULT_CONFIG_PATH)))


def load_app_config(path: Path | None = None) -> AppConfig:
    config_path = path or resolve_config_path()
    raw: Mapping[str, Any] = {}
    if config_path.exists():
        raw = tomllib.loads(config_path.read_text(encoding="utf-8"))

    app_raw = _section(raw, "app")
    sessions_raw = _section(raw, "sessions")
    analytics_raw = _section(raw, "analytics")
    import_raw = _section(raw, "import")

    app = AppSettings(
        host=str(app_raw.get("host", "127.0.0.1")),
        port=_int_or_default(app_raw.get("port"), 8000),
        reload=bool(app_raw.get("reload", False)),
    )

    sessions = SessionSettings(
        report_timezone=_timezone_or_none(sessions_raw.get("report_timezone")),
        session_timezone=_timezone_or_none(sessions_raw.get("session_timezone")),
        default_time=_time_or_default(sessions_raw.get("default_time"), NOON),
    )

    analytics = AnalyticsSettings(
        initial_balance=_float_or_default(analytics_raw.get("initial_balance"), 0.0),
        target_profit=_float_or_default(analytics_raw.get("target_profit"), 0.0),
        max_drawdown_pct=_float_or_default(analytics_raw.get("max_drawdown_pct"), 0.0),
        max_daily_drawdown_pct=_float_or_default(analytics_raw.get("max_daily_drawdown_pct"), 0.0),
        assumed_rr=_float_or_default(analytics_raw.get("assumed_rr"), ASSUMED_RR),
    )

    imports = ImportSettings(
        encodings=_string_tuple(import_raw.get("encodings")) or DEFAULT_ENCODINGS,
    )

    return AppConfig(app=app, sessions=sessions, analytics=analytics, imports=imports)


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if isinstance(value, Mapping):
        return value
    return {}


def _int_or_default(value: Any, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float_or_default(value: Any, default: float) -> float:
    if value in (None, ""):
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    if parsed != parsed or parsed < 0:
        return default
    return parsed


def _timezone_or_none(value: Any) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return None
    name = value.strip()
    try:
        pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        return None
    return name


def _time_or_default(value: Any, default: time) -> time:
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        return default
    try:
        total = _minutes(value)
    except ValueError:
        return default
    return time(total // 60, total % 60)


def _minutes(value: str) -> int:
    match = re.match(r"^(\d{1,2}):(\d{2})$", value.strip())
    if not match:
        raise ValueError(f"Invalid time value: {value}")
    hour = int(match.group(1))
    minute = int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time value: {value}")
    return hour * 60 + minute


def _string_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item).strip() for item in value if str(item).strip())
