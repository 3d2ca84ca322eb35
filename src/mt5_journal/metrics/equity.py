from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from mt5_journal.models import Trade
from mt5_journal.reconstruct.ordering import resolve_timestamp, sort_ascending, trade_day


@dataclass(frozen=True)
class EquityPoint:
    timestamp: str
    date: str
    profit_loss: float
    equity: float


def equity_curve(trades: Iterable[Trade], initial_balance: float = 0.0) -> list[EquityPoint]:
    points: list[EquityPoint] = []
    equity = float(initial_balance or 0.0)
    for trade in sort_ascending(trades):
        equity += trade.profit_loss
        points.append(
            EquityPoint(
                timestamp=resolve_timestamp(trade).isoformat(),
                date=trade_day(trade),
                profit_loss=trade.profit_loss,
                equity=round(equity, 2),
            )
        )
    return points


def peak_trough_drawdown(start: float, equities: Iterable[float]) -> float:
    peak = start
    lowest = start
    max_drawdown = 0.0
    for equity in equities:
        if equity > peak:
            peak = equity
            lowest = equity
        if equity < lowest:
            lowest = equity
        drawdown = (peak - lowest) / peak * 100.0 if peak > 0 else 0.0
        if drawdown > max_drawdown:
            max_drawdown = drawdown
    return min(max_drawdown, 100.0)


def max_drawdown_pct(trades: Iterable[Trade], initial_balance: float = 0.0) -> float:
    start = float(initial_balance or 0.0)
    equities = _running_equity(start, sort_ascending(trades))
    if not equities or equities[-1] >= start:
        # Measured only while equity sits below the starting reference.
        return 0.0
    return peak_trough_drawdown(start, equities)


def max_daily_drawdown_pct(trades: Iterable[Trade], initial_balance: float = 0.0) -> float:
    by_day: dict[str, list[Trade]] = {}
    for trade in sort_ascending(trades):
        by_day.setdefault(trade_day(trade), []).append(trade)

    day_start = float(initial_balance or 0.0)
    worst = 0.0
    for day in sorted(by_day):
        day_trades = by_day[day]
        worst = max(worst, peak_trough_drawdown(day_start, _running_equity(day_start, day_trades)))
        day_start += sum(trade.profit_loss for trade in day_trades)
    return worst


def daily_profit_loss(trades: Iterable[Trade]) -> dict[str, float]:
    buckets: dict[str, float] = {}
    for trade in trades:
        day = trade_day(trade)
        buckets[day] = buckets.get(day, 0.0) + trade.profit_loss
    return dict(sorted(buckets.items()))


def _running_equity(start: float, trades: list[Trade]) -> list[float]:
    equity = start
    values = []
    for trade in trades:
        equity += trade.profit_loss
        values.append(equity)
    return values
