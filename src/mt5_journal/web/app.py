from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import asdict, replace
from functools import lru_cache
from typing import Any

from fastapi import FastAPI, HTTPException, Request

from mt5_journal.config.app_config import AppConfig, load_app_config
from mt5_journal.ingest.mt5_html import (
    MalformedDocumentError,
    PositionsTableNotFoundError,
    decode_report_bytes,
    parse_report,
)
from mt5_journal.metrics.summary import Thresholds, analytics_to_dict, compute_analytics
from mt5_journal.reconstruct.ordering import sort_descending
from mt5_journal.reconstruct.sessions import classify_session
from mt5_journal.reconstruct.trades import trade_from_mapping, trade_to_dict

logger = logging.getLogger(__name__)

app = FastAPI(title="MT5 Journal")

_MAX_REPORT_BYTES = 20 * 1024 * 1024


@lru_cache(maxsize=1)
def _app_config() -> AppConfig:
    return load_app_config()


@app.get("/api/health")
def health_api() -> dict[str, Any]:
    return {"status": "ok"}


@app.post("/api/reports")
async def import_report_api(
    request: Request,
    initial_balance: float | None = None,
    target_profit: float | None = None,
    max_drawdown_pct: float | None = None,
    max_daily_drawdown_pct: float | None = None,
) -> dict[str, Any]:
    body = await request.body()
    if not body:
        raise HTTPException(status_code=400, detail="Empty upload. Send the MT5 report HTML as the request body.")
    if len(body) > _MAX_REPORT_BYTES:
        raise HTTPException(status_code=413, detail="Report is too large.")

    return await asyncio.to_thread(
        _import_report,
        body,
        _finite(initial_balance),
        _finite(target_profit),
        _finite(max_drawdown_pct),
        _finite(max_daily_drawdown_pct),
    )


def _import_report(
    body: bytes,
    initial_balance: float | None,
    target_profit: float | None,
    max_drawdown_pct: float | None,
    max_daily_drawdown_pct: float | None,
) -> dict[str, Any]:
    app_config = _app_config()
    html = decode_report_bytes(body, encodings=app_config.imports.encodings)
    try:
        result = parse_report(
            html,
            clock=app_config.session_clock(),
            assumed_rr=app_config.analytics.assumed_rr,
        )
    except MalformedDocumentError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PositionsTableNotFoundError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    if result.skipped:
        logger.info("Report import skipped %d position rows", result.skipped)

    thresholds = _thresholds(app_config, target_profit, max_drawdown_pct, max_daily_drawdown_pct)
    analytics = compute_analytics(
        result.trades,
        _initial_balance(app_config, initial_balance),
        thresholds,
        account_balance=result.balance or None,
    )
    return {
        "trades": [trade_to_dict(trade) for trade in sort_descending(result.trades)],
        "balance": result.balance,
        "summary": asdict(result.summary),
        "warnings": [asdict(warning) for warning in result.warnings],
        "skipped": result.skipped,
        "positions_strategy": result.positions_strategy,
        "analytics": analytics_to_dict(analytics),
    }


@app.post("/api/analytics")
def analytics_api(payload: dict[str, Any]) -> dict[str, Any]:
    raw_trades = payload.get("trades")
    if not isinstance(raw_trades, list):
        raise HTTPException(status_code=422, detail="Expected a 'trades' list.")

    app_config = _app_config()
    clock = app_config.session_clock()
    trades = []
    for index, raw in enumerate(raw_trades):
        if not isinstance(raw, dict):
            raise HTTPException(status_code=422, detail=f"Trade {index} is not an object.")
        try:
            trades.append(trade_from_mapping(raw, clock=clock, assumed_rr=app_config.analytics.assumed_rr))
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=f"Trade {index}: {exc}") from exc

    thresholds = _thresholds(
        app_config,
        _optional_float(payload.get("target_profit")),
        _optional_float(payload.get("max_drawdown_pct")),
        _optional_float(payload.get("max_daily_drawdown_pct")),
    )
    analytics = compute_analytics(
        trades,
        _initial_balance(app_config, _optional_float(payload.get("initial_balance"))),
        thresholds,
        account_balance=_optional_float(payload.get("account_balance")),
    )
    return analytics_to_dict(analytics)


@app.get("/api/session")
def session_api(timestamp: str) -> dict[str, Any]:
    clock = _app_config().session_clock()
    return {
        "timestamp": timestamp,
        "session": classify_session(timestamp, clock=clock, default_time=clock.default_time),
    }


def _thresholds(
    app_config: AppConfig,
    target_profit: float | None,
    max_drawdown_pct: float | None,
    max_daily_drawdown_pct: float | None,
) -> Thresholds:
    thresholds = app_config.thresholds()
    if target_profit is not None:
        thresholds = replace(thresholds, target_profit=target_profit)
    if max_drawdown_pct is not None:
        thresholds = replace(thresholds, max_drawdown_pct=max_drawdown_pct)
    if max_daily_drawdown_pct is not None:
        thresholds = replace(thresholds, max_daily_drawdown_pct=max_daily_drawdown_pct)
    return thresholds


def _initial_balance(app_config: AppConfig, override: float | None) -> float:
    if override is not None:
        return override
    return app_config.analytics.initial_balance


def _optional_float(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=422, detail=f"Invalid number: {value!r}") from exc
    return _finite(number)


def _finite(value: float | None) -> float | None:
    if value is not None and not math.isfinite(value):
        raise HTTPException(status_code=422, detail=f"Invalid number: {value!r}")
    return value


def main() -> None:
    import uvicorn

    app_config = _app_config()
    uvicorn.run(
        "mt5_journal.web.app:app",
        host=app_config.app.host,
        port=app_config.app.port,
        reload=app_config.app.reload,
    )


if __name__ == "__main__":
    main()
