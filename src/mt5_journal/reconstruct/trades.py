from __future__ import annotations

from dataclasses import asdict
from typing import Any, Mapping

from mt5_journal.models import DIRECTION_BUY, DIRECTION_SELL, ParsedPosition, Trade
from mt5_journal.reconstruct.sessions import NOON, SESSION_LABELS, SessionClock, classify_session

# Reward/risk recorded for trades that moved money but carry no SL/TP levels.
ASSUMED_RR = 1.0


def normalize_position(
    position: ParsedPosition,
    *,
    clock: SessionClock | None = None,
    assumed_rr: float = ASSUMED_RR,
) -> Trade:
    entry = _finite(position.entry)
    commission = _finite(position.commission)
    swap = _finite(position.swap)
    gross = _finite(position.profit_loss)
    stop_loss = _level(position.stop_loss)
    take_profit = _level(position.take_profit)
    return Trade(
        date=position.date,
        pair=position.pair,
        direction=position.direction,
        entry=entry,
        lot_size=_finite(position.lot_size),
        profit_loss=net_profit_loss(gross, commission, swap),
        gross_profit_loss=gross,
        session=session_for(position.close_time, position.open_time, position.date, clock=clock),
        rr_ratio=rr_ratio(
            position.direction,
            entry,
            stop_loss,
            take_profit,
            profit_loss=gross,
            assumed_rr=assumed_rr,
        ),
        commission=commission,
        swap=swap,
        stop_loss=stop_loss,
        take_profit=take_profit,
        open_time=position.open_time or "",
        close_time=position.close_time or "",
        close_price=_finite(position.close_price) or entry,
        notes=f"Imported from MT5 - Close: {position.close_price or 'N/A'}, Time: {position.close_time or 'N/A'}",
    )


def net_profit_loss(gross: float, commission: float, swap: float) -> float:
    return round(gross + commission + swap, 2)


def rr_ratio(
    direction: str,
    entry: float,
    stop_loss: float | None,
    take_profit: float | None,
    *,
    profit_loss: float = 0.0,
    assumed_rr: float = ASSUMED_RR,
) -> float:
    if stop_loss and take_profit and entry > 0:
        if direction == DIRECTION_BUY:
            risk = entry - stop_loss
            reward = take_profit - entry
        else:
            risk = stop_loss - entry
            reward = entry - take_profit
        if abs(risk) > 0:
            return abs(reward) / abs(risk)
    if profit_loss != 0 and entry > 0:
        return max(0.0, assumed_rr)
    return 0.0


def session_for(
    *candidates: str | None,
    clock: SessionClock | None = None,
) -> str:
    default_time = clock.default_time if clock is not None else NOON
    for value in candidates:
        if value and value.strip():
            return classify_session(value.strip(), clock=clock, default_time=default_time)
    return classify_session(default_time, clock=None)


def trade_from_mapping(
    raw: Mapping[str, Any],
    *,
    clock: SessionClock | None = None,
    assumed_rr: float = ASSUMED_RR,
) -> Trade:
    pair = _pick(raw, "pair", "symbol")
    direction = _normalize_direction(_pick(raw, "direction", "type", "side"))
    date = _pick(raw, "date")
    open_time = str(_pick(raw, "open_time", "openTime") or "")
    close_time = str(_pick(raw, "close_time", "closeTime") or "")
    if not pair:
        raise ValueError("Missing trade symbol")
    if not date:
        date = (open_time or close_time).split(" ")[0].replace(".", "-")
    if not date:
        raise ValueError("Missing trade date")

    entry = _to_float(_pick(raw, "entry", "entry_price", "price"))
    commission = _to_float(_pick(raw, "commission"))
    swap = _to_float(_pick(raw, "swap"))
    gross_raw = _pick(raw, "gross_profit_loss", "grossProfitLoss")
    net_raw = _pick(raw, "profit_loss", "profitLoss", "pnl")
    if gross_raw is not None:
        gross = _to_float(gross_raw)
        net = net_profit_loss(gross, commission, swap)
    else:
        net = round(_to_float(net_raw), 2)
        gross = round(net - commission - swap, 2)

    stop_loss = _level(_to_float(_pick(raw, "stop_loss", "stopLoss")))
    take_profit = _level(_to_float(_pick(raw, "take_profit", "takeProfit")))
    rr_raw = _pick(raw, "rr_ratio", "rrRatio")
    rr = (
        max(0.0, _to_float(rr_raw))
        if rr_raw is not None
        else rr_ratio(direction, entry, stop_loss, take_profit, profit_loss=gross, assumed_rr=assumed_rr)
    )
    session = _pick(raw, "session")
    if session not in SESSION_LABELS:
        session = session_for(close_time, open_time, str(date), clock=clock)
    close_price = _pick(raw, "close_price", "closePrice")

    return Trade(
        date=str(date),
        pair=str(pair).strip().upper(),
        direction=direction,
        entry=entry,
        lot_size=_to_float(_pick(raw, "lot_size", "lotSize", "volume")),
        profit_loss=net,
        gross_profit_loss=gross,
        session=str(session),
        rr_ratio=rr,
        commission=commission,
        swap=swap,
        stop_loss=stop_loss,
        take_profit=take_profit,
        open_time=open_time,
        close_time=close_time,
        close_price=_to_float(close_price) if close_price is not None else None,
        notes=_pick(raw, "notes"),
    )


def trade_to_dict(trade: Trade) -> dict[str, Any]:
    return asdict(trade)


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] not in (None, ""):
            return raw[key]
    return None


def _normalize_direction(value: Any) -> str:
    if value is None:
        raise ValueError("Missing direction")
    text = str(value).strip().upper()
    if text in {"BUY", "B", "LONG"}:
        return DIRECTION_BUY
    if text in {"SELL", "S", "SHORT"}:
        return DIRECTION_SELL
    raise ValueError(f"Unknown direction: {value}")


def _to_float(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return _finite(float(value))
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid numeric field") from exc


def _finite(value: float | None) -> float:
    if value is None or value != value or value in (float("inf"), float("-inf")):
        return 0.0
    return float(value)


def _level(value: float | None) -> float | None:
    value = _finite(value)
    return value if value != 0 else None
