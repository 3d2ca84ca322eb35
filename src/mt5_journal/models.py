from __future__ import annotations

from dataclasses import dataclass, field

DIRECTION_BUY = "Buy"
DIRECTION_SELL = "Sell"


@dataclass(frozen=True)
class ParsedPosition:
    date: str
    pair: str
    direction: str
    entry: float
    lot_size: float
    open_time: str
    close_time: str
    close_price: float
    profit_loss: float
    commission: float = 0.0
    swap: float = 0.0
    stop_loss: float | None = None
    take_profit: float | None = None


@dataclass(frozen=True)
class Trade:
    date: str
    pair: str
    direction: str
    entry: float
    lot_size: float
    profit_loss: float
    gross_profit_loss: float
    session: str
    rr_ratio: float = 0.0
    commission: float = 0.0
    swap: float = 0.0
    stop_loss: float | None = None
    take_profit: float | None = None
    open_time: str = ""
    close_time: str = ""
    close_price: float | None = None
    notes: str | None = None

    @property
    def is_buy(self) -> bool:
        return self.direction == DIRECTION_BUY


@dataclass(frozen=True)
class SummaryFigures:
    total_net_profit: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    profit_factor: float = 0.0
    expected_payoff: float = 0.0
    recovery_factor: float = 0.0
    sharpe_ratio: float = 0.0
    total_trades: float = 0.0
    win_rate: float = 0.0
    account_name: str | None = None
    account: str | None = None
    company: str | None = None
    report_date: str | None = None


@dataclass(frozen=True)
class RowWarning:
    row_index: int
    reason: str
    text: str = ""


@dataclass(frozen=True)
class ReportParseResult:
    trades: list[Trade]
    balance: float
    summary: SummaryFigures
    warnings: list[RowWarning] = field(default_factory=list)
    positions_strategy: str | None = None

    @property
    def skipped(self) -> int:
        return len(self.warnings)
