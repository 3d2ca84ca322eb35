from __future__ import annotations

from dataclasses import asdict, dataclass, field
from statistics import pstdev
from typing import Any, Iterable

from mt5_journal.metrics.equity import (
    EquityPoint,
    daily_profit_loss,
    equity_curve,
    max_daily_drawdown_pct,
    max_drawdown_pct,
)
from mt5_journal.models import Trade
from mt5_journal.reconstruct.ordering import sort_ascending, sort_descending, trade_day
from mt5_journal.reconstruct.sessions import SESSION_LABELS

Outcome = str

OUTCOME_WIN: Outcome = "win"
OUTCOME_LOSS: Outcome = "loss"
OUTCOME_BREAKEVEN: Outcome = "breakeven"

# Reported instead of infinity when there are profits but no losing trades.
PROFIT_FACTOR_SENTINEL = 999.0

SCORE_RR_CAP = 3.0


@dataclass(frozen=True)
class Thresholds:
    target_profit: float = 0.0
    max_drawdown_pct: float = 0.0
    max_daily_drawdown_pct: float = 0.0


@dataclass(frozen=True)
class GroupBreakdown:
    key: str
    trades: int
    volume: float
    net_profit: float
    gross_profit: float
    gross_loss: float
    win_rate: float
    profit_factor: float
    avg_profit: float


@dataclass(frozen=True)
class DailyStats:
    date: str
    profit_loss: float
    trades: int
    win_rate: float
    avg_rr: float


@dataclass(frozen=True)
class ThresholdProgress:
    current_profit: float
    profit_target_pct: float
    drawdown_usage_pct: float
    daily_drawdown_usage_pct: float
    drawdown_breached: bool
    daily_drawdown_breached: bool


@dataclass(frozen=True)
class PerformanceScore:
    score: float
    components: dict[str, float]
    weights: dict[str, float]
    raw: dict[str, float]


@dataclass(frozen=True)
class AnalyticsReport:
    total_trades: int
    wins: int
    losses: int
    breakevens: int
    total_profit_loss: float
    gross_profit: float
    gross_loss: float
    profit_factor: float
    win_rate: float
    avg_rr: float
    expectancy: float
    avg_win: float
    avg_loss: float
    largest_win: float
    largest_loss: float
    win_streak: int
    loss_streak: int
    max_consecutive_wins: int
    max_consecutive_losses: int
    initial_balance: float
    current_balance: float
    max_drawdown_pct: float
    max_daily_drawdown_pct: float
    equity_curve: list[EquityPoint] = field(default_factory=list)
    instruments: list[GroupBreakdown] = field(default_factory=list)
    sessions: list[GroupBreakdown] = field(default_factory=list)
    daily: list[DailyStats] = field(default_factory=list)
    thresholds: ThresholdProgress | None = None
    score: PerformanceScore | None = None
    best_trade: Trade | None = None
    worst_trade: Trade | None = None


def classify_outcome(profit_loss: float) -> Outcome:
    if profit_loss > 0:
        return OUTCOME_WIN
    if profit_loss < 0:
        return OUTCOME_LOSS
    return OUTCOME_BREAKEVEN


def compute_analytics(
    trades: Iterable[Trade],
    initial_balance: float = 0.0,
    thresholds: Thresholds | None = None,
    *,
    account_balance: float | None = None,
) -> AnalyticsReport:
    trade_list = sort_ascending(trades)
    total_trades = len(trade_list)
    total_pl = sum(trade.profit_loss for trade in trade_list)

    starting_balance = float(initial_balance or 0.0)
    if starting_balance <= 0 and account_balance:
        starting_balance = account_balance - total_pl

    wins = [trade.profit_loss for trade in trade_list if trade.profit_loss > 0]
    losses = [trade.profit_loss for trade in trade_list if trade.profit_loss < 0]
    gross_profit = sum(wins)
    gross_loss = abs(sum(losses))

    win_streak, loss_streak = current_streaks(trade_list)
    max_wins, max_losses = _max_streaks(trade_list)
    max_dd = max_drawdown_pct(trade_list, starting_balance)
    max_daily_dd = max_daily_drawdown_pct(trade_list, starting_balance)

    return AnalyticsReport(
        total_trades=total_trades,
        wins=len(wins),
        losses=len(losses),
        breakevens=total_trades - len(wins) - len(losses),
        total_profit_loss=round(total_pl, 2),
        gross_profit=round(gross_profit, 2),
        gross_loss=round(gross_loss, 2),
        profit_factor=profit_factor(gross_profit, gross_loss),
        win_rate=_ratio(len(wins), total_trades) * 100.0,
        avg_rr=_mean([trade.rr_ratio for trade in trade_list]),
        expectancy=_mean([trade.profit_loss for trade in trade_list]),
        avg_win=_mean(wins),
        avg_loss=_mean(losses),
        largest_win=max(wins, default=0.0),
        largest_loss=min(losses, default=0.0),
        win_streak=win_streak,
        loss_streak=loss_streak,
        max_consecutive_wins=max_wins,
        max_consecutive_losses=max_losses,
        initial_balance=starting_balance,
        current_balance=round(starting_balance + total_pl, 2),
        max_drawdown_pct=max_dd,
        max_daily_drawdown_pct=max_daily_dd,
        equity_curve=equity_curve(trade_list, starting_balance),
        instruments=compute_breakdown(trade_list, key=lambda trade: trade.pair),
        sessions=compute_session_breakdown(trade_list),
        daily=compute_daily_stats(trade_list),
        thresholds=threshold_progress(total_pl, max_dd, max_daily_dd, thresholds or Thresholds()),
        score=compute_performance_score(trade_list),
        best_trade=max(trade_list, key=lambda trade: trade.profit_loss, default=None),
        worst_trade=min(trade_list, key=lambda trade: trade.profit_loss, default=None),
    )


def profit_factor(gross_profit: float, gross_loss: float) -> float:
    if gross_loss > 0:
        return gross_profit / gross_loss
    if gross_profit > 0:
        return PROFIT_FACTOR_SENTINEL
    return 0.0


def current_streaks(trades: Iterable[Trade]) -> tuple[int, int]:
    wins = 0
    losses = 0
    for trade in sort_descending(trades):
        if trade.profit_loss > 0 and losses == 0:
            wins += 1
        elif trade.profit_loss < 0 and wins == 0:
            losses += 1
        else:
            break
    return wins, losses


def _max_streaks(trades: list[Trade]) -> tuple[int, int]:
    max_wins = 0
    max_losses = 0
    current_wins = 0
    current_losses = 0

    for trade in trades:
        outcome = classify_outcome(trade.profit_loss)
        if outcome == OUTCOME_WIN:
            current_wins += 1
            current_losses = 0
        elif outcome == OUTCOME_LOSS:
            current_losses += 1
            current_wins = 0
        else:
            current_wins = 0
            current_losses = 0
        max_wins = max(max_wins, current_wins)
        max_losses = max(max_losses, current_losses)

    return max_wins, max_losses


def compute_breakdown(trades: Iterable[Trade], *, key) -> list[GroupBreakdown]:
    buckets: dict[str, list[Trade]] = {}
    for trade in trades:
        buckets.setdefault(key(trade), []).append(trade)
    return [_group_summary(name, items) for name, items in sorted(buckets.items(), key=lambda item: item[0])]


def compute_session_breakdown(trades: Iterable[Trade]) -> list[GroupBreakdown]:
    rows = {row.key: row for row in compute_breakdown(trades, key=lambda trade: trade.session)}
    ordered = [rows.pop(label) for label in SESSION_LABELS if label in rows]
    return ordered + [rows[name] for name in sorted(rows)]


def compute_daily_stats(trades: Iterable[Trade]) -> list[DailyStats]:
    trade_list = list(trades)
    totals = daily_profit_loss(trade_list)
    buckets: dict[str, list[Trade]] = {}
    for trade in trade_list:
        buckets.setdefault(trade_day(trade), []).append(trade)
    rows = []
    for day, items in sorted(buckets.items()):
        wins = sum(1 for trade in items if trade.profit_loss > 0)
        rows.append(
            DailyStats(
                date=day,
                profit_loss=round(totals[day], 2),
                trades=len(items),
                win_rate=_ratio(wins, len(items)) * 100.0,
                avg_rr=_mean([trade.rr_ratio for trade in items]),
            )
        )
    return rows


def threshold_progress(
    current_profit: float,
    drawdown_pct: float,
    daily_drawdown_pct: float,
    thresholds: Thresholds,
) -> ThresholdProgress:
    return ThresholdProgress(
        current_profit=round(current_profit, 2),
        profit_target_pct=_progress(current_profit, thresholds.target_profit),
        drawdown_usage_pct=_progress(drawdown_pct, thresholds.max_drawdown_pct),
        daily_drawdown_usage_pct=_progress(daily_drawdown_pct, thresholds.max_daily_drawdown_pct),
        drawdown_breached=thresholds.max_drawdown_pct > 0 and drawdown_pct >= thresholds.max_drawdown_pct,
        daily_drawdown_breached=(
            thresholds.max_daily_drawdown_pct > 0 and daily_drawdown_pct >= thresholds.max_daily_drawdown_pct
        ),
    )


def compute_performance_score(trades: Iterable[Trade]) -> PerformanceScore:
    trade_list = list(trades)
    weights = {
        "consistency": 0.25,
        "risk_reward": 0.25,
        "win_rate": 0.25,
        "sl_usage": 0.25,
    }
    if not trade_list:
        zero = {key: 0.0 for key in weights}
        return PerformanceScore(score=0.0, components=zero, weights=weights, raw=dict(zero))

    values = [trade.profit_loss for trade in trade_list]
    mean_pl = _mean(values)
    variation = pstdev(values) / (abs(mean_pl) or 1.0)
    consistency = max(0.0, 100.0 - variation * 50.0)

    rr_values = [trade.rr_ratio for trade in trade_list if trade.rr_ratio > 0]
    avg_rr = _mean(rr_values)
    win_rate = _ratio(sum(1 for value in values if value > 0), len(values)) * 100.0
    sl_usage = _ratio(sum(1 for trade in trade_list if trade.stop_loss), len(trade_list)) * 100.0

    components = {
        "consistency": _clamp(consistency, 100.0),
        "risk_reward": _clamp(avg_rr, SCORE_RR_CAP),
        "win_rate": _clamp(win_rate, 100.0),
        "sl_usage": _clamp(sl_usage, 100.0),
    }
    overall = sum(components[key] * weights[key] for key in weights)
    return PerformanceScore(
        score=overall,
        components=components,
        weights=weights,
        raw={
            "consistency": consistency,
            "risk_reward": avg_rr,
            "win_rate": win_rate,
            "sl_usage": sl_usage,
        },
    )


def analytics_to_dict(report: AnalyticsReport) -> dict[str, Any]:
    return asdict(report)


def _group_summary(key: str, items: list[Trade]) -> GroupBreakdown:
    wins = [trade.profit_loss for trade in items if trade.profit_loss > 0]
    losses = [trade.profit_loss for trade in items if trade.profit_loss < 0]
    gross_profit = sum(wins)
    gross_loss = abs(sum(losses))
    net = sum(trade.profit_loss for trade in items)
    return GroupBreakdown(
        key=key,
        trades=len(items),
        volume=round(sum(trade.lot_size for trade in items), 4),
        net_profit=round(net, 2),
        gross_profit=round(gross_profit, 2),
        gross_loss=round(gross_loss, 2),
        win_rate=_ratio(len(wins), len(items)) * 100.0,
        profit_factor=profit_factor(gross_profit, gross_loss),
        avg_profit=_mean([trade.profit_loss for trade in items]),
    )


def _progress(value: float, limit: float) -> float:
    if limit <= 0:
        return 0.0
    return min(100.0, max(0.0, value / limit * 100.0))


def _clamp(value: float, cap: float) -> float:
    return min(100.0, max(0.0, value / cap * 100.0))


def _ratio(part: float, total: float) -> float:
    if not total:
        return 0.0
    return part / total


def _mean(values: list[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)
