from __future__ import annotations

from typing import Callable, Sequence

import pytest

from mt5_journal.models import Trade

# Time | Position | Symbol | Type | Volume | Price | S/L | T/P | Time | Price | Commission | Swap | Profit
POSITION_ROWS: list[tuple[str, ...]] = [
    (
        "2024.01.15 09:00:00", "1001", "EURUSD", "buy", "0.10", "1.08500", "1.08000", "1.09500",
        "2024.01.15 11:30:00", "1.09000", "-0.70", "0.00", "50.00",
    ),
    (
        "2024.01.15 13:00:00", "1002", "GBPUSD", "sell", "0.20", "1.27000", "0.00000", "0.00000",
        "2024.01.15 15:00:00", "1.27300", "-1.40", "0.00", "-60.00",
    ),
    (
        "2024.01.16 08:00:00", "1003", "XAUUSD", "buy", "0.05", "2030.50", "2020.50", "2050.50",
        "2024.01.16 20:15:00", "2040.00", "-0.35", "-1.20", "47.50",
    ),
    (
        "2024.01.17 02:00:00", "1004", "USDJPY", "sell", "0.10", "148.200", "148.700", "147.200",
        "2024.01.17 04:30:00", "147.900", "-0.70", "0.00", "20.28",
    ),
    (
        "2024.01.17 10:00:00", "1005", "EURUSD", "buy", "0.10", "1.09000", "0.00000", "0.00000",
        "2024.01.17 10:45:00", "1.09000", "0.00", "0.00", "0.00",
    ),
]

COLUMN_NAMES = (
    "Time", "Position", "Symbol", "Type", "Volume", "Price", "S / L", "T / P",
    "Time", "Price", "Commission", "Swap", "Profit",
)

ACCOUNT_HTML = """
<tr><th colspan="14">Trade History Report</th></tr>
<tr><th colspan="4">Name:</th><th colspan="10"><b>Jane Trader</b></th></tr>
<tr><th colspan="4">Account:</th><th colspan="10"><b>5012345 (USD, Demo)</b></th></tr>
<tr><th colspan="4">Company:</th><th colspan="10"><b>Example Markets Ltd</b></th></tr>
<tr><th colspan="4">Date:</th><th colspan="10"><b>2024.01.18 09:00</b></th></tr>
"""

TRAILING_HTML = """
<tr><th colspan="14">Orders</th></tr>
<tr>
  <td>2024.01.15 09:00:00</td><td>1001</td><td>EURUSD</td><td>buy</td><td>0.10 / 0.10</td>
  <td>market</td><td>1.08500</td><td></td><td></td><td>2024.01.15 09:00:00</td><td>filled</td>
</tr>
<tr><th colspan="14">Deals</th></tr>
<tr><th colspan="14">Results</th></tr>
<tr>
  <td colspan="3">Balance:</td><td colspan="2"><b>10 057.43</b></td>
  <td colspan="3">Free Margin:</td><td colspan="2"><b>10 057.43</b></td>
</tr>
<tr>
  <td colspan="3">Total Net Profit:</td><td colspan="2"><b>57.43</b></td>
  <td colspan="3">Gross Profit:</td><td colspan="2"><b>117.78</b></td>
  <td colspan="3">Gross Loss:</td><td><b>-60.00</b></td>
</tr>
<tr>
  <td colspan="3">Profit Factor:</td><td colspan="2"><b>1.96</b></td>
  <td colspan="3">Expected Payoff:</td><td colspan="2"><b>11.49</b></td>
</tr>
<tr>
  <td colspan="3">Recovery Factor:</td><td colspan="2"><b>0.94</b></td>
  <td colspan="3">Sharpe Ratio:</td><td colspan="2"><b>0.31</b></td>
</tr>
<tr>
  <td colspan="3">Total Trades:</td><td colspan="2"><b>5</b></td>
  <td colspan="3">Profit Trades (% of total):</td><td colspan="2"><b>3 (60.00%)</b></td>
</tr>
"""

POSITIONS_TITLES = {
    "plain": '<tr><th colspan="14">Positions</th></tr>',
    "nested": '<tr><th colspan="14"><div><b>Positions</b></div></th></tr>',
    "label": '<tr><td colspan="14"><b>Positions</b></td></tr>',
    "none": "",
}


def position_row_html(values: Sequence[str], *, marker: bool = False) -> str:
    cells = [f"<td>{value}</td>" for value in values]
    if marker:
        cells.insert(4, '<td class="hidden" colspan="8"></td>')
    return "<tr>" + "".join(cells) + "</tr>"


def build_report(
    rows: Sequence[Sequence[str]] = tuple(POSITION_ROWS),
    *,
    title: str = "plain",
    marker: bool = False,
    trailing: str = TRAILING_HTML,
) -> str:
    header = "<tr>" + "".join(f"<td>{name}</td>" for name in COLUMN_NAMES) + "</tr>"
    body = "\n".join(position_row_html(values, marker=marker) for values in rows)
    return (
        "<html><head><title>Trade History Report</title></head><body>"
        '<table cellspacing="1" cellpadding="3" border="0">'
        f"{ACCOUNT_HTML}{POSITIONS_TITLES[title]}\n{header}\n{body}\n{trailing}"
        "</table></body></html>"
    )


def make_trade(
    profit_loss: float,
    *,
    date: str = "2024-01-15",
    open_time: str = "",
    close_time: str = "",
    pair: str = "EURUSD",
    session: str = "London Session",
    rr_ratio: float = 1.0,
    stop_loss: float | None = None,
    lot_size: float = 0.1,
) -> Trade:
    return Trade(
        date=date,
        pair=pair,
        direction="Buy",
        entry=1.1,
        lot_size=lot_size,
        profit_loss=profit_loss,
        gross_profit_loss=profit_loss,
        session=session,
        rr_ratio=rr_ratio,
        stop_loss=stop_loss,
        open_time=open_time,
        close_time=close_time,
    )


@pytest.fixture
def report_builder() -> Callable[..., str]:
    return build_report


@pytest.fixture
def trade_factory() -> Callable[..., Trade]:
    return make_trade


@pytest.fixture
def position_rows() -> list[tuple[str, ...]]:
    return [tuple(row) for row in POSITION_ROWS]
