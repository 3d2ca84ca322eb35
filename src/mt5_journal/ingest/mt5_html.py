"""MT5 trade-history report parsing.

Broker exports are HTML tables without a versioned schema. The Positions
section is located by an ordered list of named strategies, data rows are
filtered by shape, and each row's symbol column and trailing numeric block
are resolved per row because column counts differ between terminal builds.
"""

from __future__ import annotations

import codecs
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from lxml import etree
from lxml import html as lxml_html
from lxml.html import HtmlElement

from mt5_journal.models import (
    DIRECTION_BUY,
    DIRECTION_SELL,
    ParsedPosition,
    ReportParseResult,
    RowWarning,
    SummaryFigures,
)
from mt5_journal.reconstruct.sessions import SessionClock
from mt5_journal.reconstruct.trades import ASSUMED_RR, normalize_position

logger = logging.getLogger(__name__)

DEFAULT_ENCODINGS = ("utf-8", "latin-1")
_WIDE_CODECS = ("utf-16", "utf-32")

MIN_TRADE_CELLS = 10
MIN_BACKTRACK_CELLS = 8
BACKTRACK_ROWS = 20
COLUMN_HEADER_WINDOW = 4
MARKER_COLSPAN = "8"

# Column offsets of the layout without a hidden marker cell:
# Time | Position | Symbol | Type | Volume | Price | S/L | T/P | Time | Price | Commission | Swap | Profit
OFFSET_VOLUME = 4
OFFSET_ENTRY = 5
OFFSET_STOP_LOSS = 6
OFFSET_TAKE_PROFIT = 7
OFFSET_CLOSE_SCAN = 8

_DATE_RE = re.compile(r"\d{4}\.\d{2}\.\d{2}|\d{4}-\d{2}-\d{2}")
_TIME_RE = re.compile(r"\d{2}:\d{2}:\d{2}")
_SIDE_RE = re.compile(r"\b(buy|sell)\b")
_SYMBOL_RE = re.compile(r"^[A-Z0-9]{2,8}(\.[A-Z0-9]+)?$", re.IGNORECASE)
_DIGITS_RE = re.compile(r"^\d+$")
_LEADING_DATE_RE = re.compile(r"^\d{4}[.\-]\d{2}[.\-]\d{2}")
_LEADING_TIME_RE = re.compile(r"^\d{2}:\d{2}:\d{2}")
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_LABEL_NUMBER_RE = re.compile(r"-?\d[\d\s,]*(?:\.\d+)?")
_WIN_RATE_RE = re.compile(r"\((-?\d+(?:\.\d+)?)%\)")

SUMMARY_LABELS = {
    "total_net_profit": "Total Net Profit:",
    "gross_profit": "Gross Profit:",
    "gross_loss": "Gross Loss:",
    "profit_factor": "Profit Factor:",
    "expected_payoff": "Expected Payoff:",
    "recovery_factor": "Recovery Factor:",
    "sharpe_ratio": "Sharpe Ratio:",
    "total_trades": "Total Trades:",
}
HEADER_LABELS = {
    "account_name": "Name:",
    "account": "Account:",
    "company": "Company:",
    "report_date": "Date:",
}


class ReportParseError(ValueError):
    pass


class MalformedDocumentError(ReportParseError):
    pass


class PositionsTableNotFoundError(ReportParseError):
    pass


@dataclass(frozen=True)
class ReportRow:
    index: int
    element: HtmlElement
    text: str
    headers: tuple[HtmlElement, ...]
    cells: tuple[HtmlElement, ...]

    @property
    def lower(self) -> str:
        return self.text.lower()


@dataclass(frozen=True)
class PositionsLocation:
    index: int
    strategy: str


RowStrategy = Callable[[Sequence[ReportRow]], "int | None"]
CellStrategy = Callable[[Sequence[str]], "int | None"]


def parse_report(
    html: str,
    *,
    clock: SessionClock | None = None,
    assumed_rr: float = ASSUMED_RR,
) -> ReportParseResult:
    rows = report_rows(_parse_document(html))
    location = locate_positions(rows)
    positions, warnings = extract_positions(rows, location.index)
    trades = [normalize_position(position, clock=clock, assumed_rr=assumed_rr) for position in positions]
    return ReportParseResult(
        trades=trades,
        balance=extract_balance(rows),
        summary=extract_summary(rows),
        warnings=warnings,
        positions_strategy=location.strategy,
    )


def load_report(
    path: str | Path,
    *,
    clock: SessionClock | None = None,
    assumed_rr: float = ASSUMED_RR,
    encodings: Sequence[str] = DEFAULT_ENCODINGS,
) -> ReportParseResult:
    data = Path(path).read_bytes()
    return parse_report(decode_report_bytes(data, encodings=encodings), clock=clock, assumed_rr=assumed_rr)


def decode_report_bytes(data: bytes, *, encodings: Sequence[str] = DEFAULT_ENCODINGS) -> str:
    if data.startswith(codecs.BOM_UTF8):
        return data[len(codecs.BOM_UTF8):].decode("utf-8", errors="replace")
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return data.decode("utf-16", errors="replace")
    head = data[:256]
    if len(head) > 1 and b"\x00" in head:
        encoding = "utf-16-le" if head[1:2] == b"\x00" else "utf-16-be"
        return data.decode(encoding, errors="replace")
    for encoding in encodings:
        try:
            if codecs.lookup(encoding).name.startswith(_WIDE_CODECS):
                # BOM and NUL sniffing above already cover these.
                continue
            return data.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue
    return data.decode("utf-8", errors="replace")


def report_rows(root: HtmlElement) -> list[ReportRow]:
    rows = []
    for index, element in enumerate(root.xpath("//table//tr")):
        # Exports often omit whitespace between cells; keep cell texts apart.
        parts = [_clean(cell.text_content()) for cell in element.xpath("./th|./td")]
        rows.append(
            ReportRow(
                index=index,
                element=element,
                text=" ".join(part for part in parts if part),
                headers=tuple(element.xpath("./th")),
                cells=tuple(element.xpath("./td")),
            )
        )
    return rows


# --- Positions section ---------------------------------------------------


def _by_header_text(rows: Sequence[ReportRow]) -> int | None:
    for row in rows:
        if not row.headers or _mentions_other_section(row.lower):
            continue
        for header in row.headers:
            own_text = " ".join(header.xpath("text()")).lower()
            if "positions" in own_text:
                return row.index
    return None


def _by_nested_markup(rows: Sequence[ReportRow]) -> int | None:
    for row in rows:
        if not row.headers or _mentions_other_section(row.lower):
            continue
        for header in row.headers:
            for nested in header.xpath(".//b|.//div"):
                if "positions" in nested.text_content().lower():
                    return row.index
    return None


def _by_exact_label(rows: Sequence[ReportRow]) -> int | None:
    for row in rows:
        for cell in row.headers + row.cells:
            candidates = [cell.text_content()] + [nested.text_content() for nested in cell.xpath(".//b|.//div")]
            if any(_clean(text).lower() == "positions" for text in candidates):
                return row.index
    return None


def _by_trade_row_backtrack(rows: Sequence[ReportRow]) -> int | None:
    for position, row in enumerate(rows):
        text = row.lower
        if not _looks_like_trade(text) or len(row.cells) < MIN_BACKTRACK_CELLS:
            continue
        if "symbol" in text or "orders" in text or "deals" in text:
            continue
        for back in range(position - 1, max(-1, position - BACKTRACK_ROWS - 1), -1):
            if "position" in rows[back].lower:
                return rows[back].index
    return None


POSITIONS_STRATEGIES: tuple[tuple[str, RowStrategy], ...] = (
    ("header_text", _by_header_text),
    ("nested_markup", _by_nested_markup),
    ("exact_label", _by_exact_label),
    ("trade_row_backtrack", _by_trade_row_backtrack),
)


def locate_positions(rows: Sequence[ReportRow]) -> PositionsLocation:
    for name, strategy in POSITIONS_STRATEGIES:
        index = strategy(rows)
        if index is not None:
            logger.debug("Positions section at row %d via %s", index, name)
            return PositionsLocation(index=index, strategy=name)
    raise PositionsTableNotFoundError(
        "No trade history found in this file. Export the full MT5 Trade History Report "
        "(HTML) including the Positions section."
    )


def locate_column_header(rows: Sequence[ReportRow], start: int) -> int | None:
    for index in range(start + 1, min(start + 1 + COLUMN_HEADER_WINDOW, len(rows))):
        text = rows[index].lower
        if "time" in text and "symbol" in text and ("position" in text or "volume" in text):
            return index
    return None


# --- Data rows -----------------------------------------------------------


def extract_positions(
    rows: Sequence[ReportRow],
    section_start: int,
) -> tuple[list[ParsedPosition], list[RowWarning]]:
    header = locate_column_header(rows, section_start)
    first = (header if header is not None else section_start) + 1
    positions: list[ParsedPosition] = []
    warnings: list[RowWarning] = []

    for row in rows[first:]:
        if _ends_section(row):
            break
        if not _looks_like_trade(row.lower, require_time=True):
            continue
        try:
            position, reason = parse_position_row(row)
        except (IndexError, ValueError) as exc:
            position, reason = None, f"unreadable row ({exc})"
        if position is None:
            warning = RowWarning(row_index=row.index, reason=reason or "unresolved row", text=row.text[:200])
            logger.warning("Skipping report row %d: %s", warning.row_index, warning.reason)
            warnings.append(warning)
            continue
        positions.append(position)

    return positions, warnings


def parse_position_row(row: ReportRow) -> tuple[ParsedPosition | None, str | None]:
    cells = row.cells
    if len(cells) < MIN_TRADE_CELLS:
        return None, f"only {len(cells)} cells"
    texts = [_clean(cell.text_content()) for cell in cells]

    symbol_index = resolve_symbol_column(texts)
    if symbol_index is None:
        return None, "no symbol column"

    marker = find_marker(cells, symbol_index + 2)
    if marker is not None:
        fields = _fields_after_marker(texts[marker + 1:])
        if fields is None:
            return None, "incomplete columns after marker"
    else:
        fields = _fields_by_offset(texts)

    if fields.entry <= 0 or fields.volume <= 0:
        return None, "non-positive entry or volume"

    open_time = texts[0]
    side = texts[symbol_index + 1].lower()
    return (
        ParsedPosition(
            date=_trade_date(open_time, fields.close_time, row.text),
            pair=texts[symbol_index].upper(),
            direction=DIRECTION_BUY if side == "buy" else DIRECTION_SELL,
            entry=fields.entry,
            lot_size=fields.volume,
            open_time=open_time,
            close_time=fields.close_time,
            close_price=fields.close_price or fields.entry,
            profit_loss=fields.profit,
            commission=fields.commission,
            swap=fields.swap,
            stop_loss=fields.stop_loss or None,
            take_profit=fields.take_profit or None,
        ),
        None,
    )


def _symbol_by_pattern(texts: Sequence[str]) -> int | None:
    for index, text in enumerate(texts[:-1]):
        if not (2 <= len(text) <= 12 and _SYMBOL_RE.match(text)):
            continue
        if _DIGITS_RE.match(text) or _LEADING_DATE_RE.match(text) or _LEADING_TIME_RE.match(text):
            continue
        if _is_side(texts[index + 1]):
            return index
    return None


def _symbol_by_leading_cells(texts: Sequence[str]) -> int | None:
    for index in range(1, min(5, len(texts) - 1)):
        text = texts[index]
        if not re.search(r"[A-Za-z]", text) or _DIGITS_RE.match(text):
            continue
        if 2 <= len(text) <= 12 and _is_side(texts[index + 1]):
            return index
    return None


SYMBOL_STRATEGIES: tuple[tuple[str, CellStrategy], ...] = (
    ("symbol_pattern", _symbol_by_pattern),
    ("leading_cells", _symbol_by_leading_cells),
)


def resolve_symbol_column(texts: Sequence[str]) -> int | None:
    for _name, strategy in SYMBOL_STRATEGIES:
        index = strategy(texts)
        if index is not None:
            return index
    return None


def find_marker(cells: Sequence[HtmlElement], start: int) -> int | None:
    for index in range(start, len(cells)):
        cell = cells[index]
        if "hidden" in (cell.get("class") or "").split() or cell.get("colspan") == MARKER_COLSPAN:
            return index
    return None


@dataclass(frozen=True)
class _TrailingFields:
    volume: float
    entry: float
    stop_loss: float
    take_profit: float
    close_time: str
    close_price: float
    commission: float
    swap: float
    profit: float


def _fields_after_marker(data: Sequence[str]) -> _TrailingFields | None:
    # Volume | Price | S/L | T/P | Time | Price | Commission | Swap | Profit
    if len(data) < 5:
        return None
    complete = len(data) >= 9
    return _TrailingFields(
        volume=to_number(data[0]),
        entry=to_number(data[1]),
        stop_loss=to_number(data[2]),
        take_profit=to_number(data[3]),
        close_time=data[4],
        close_price=to_number(data[5]) if len(data) > 5 else 0.0,
        commission=to_number(data[6]) if complete else 0.0,
        swap=to_number(data[7]) if complete else 0.0,
        profit=to_number(data[8] if complete else data[-1]),
    )


def _fields_by_offset(texts: Sequence[str]) -> _TrailingFields:
    close_time = ""
    close_price = 0.0
    close_price_index: int | None = None
    for index in range(OFFSET_CLOSE_SCAN, len(texts)):
        if _DATE_RE.search(texts[index]):
            close_time = texts[index]
            if index + 1 < len(texts):
                close_price = to_number(texts[index + 1])
                close_price_index = index + 1
            break

    commission = 0.0
    swap = 0.0
    if close_price_index is not None and len(texts) > close_price_index + 3:
        commission = to_number(texts[close_price_index + 1])
        swap = to_number(texts[close_price_index + 2])

    profit = to_number(texts[-1])
    if profit == 0 and len(texts) > 1:
        previous = texts[-2]
        candidate = to_number(previous)
        if candidate != 0 or "-" in previous:
            profit = candidate

    return _TrailingFields(
        volume=to_number(texts[OFFSET_VOLUME]),
        entry=to_number(texts[OFFSET_ENTRY]),
        stop_loss=to_number(texts[OFFSET_STOP_LOSS]),
        take_profit=to_number(texts[OFFSET_TAKE_PROFIT]),
        close_time=close_time,
        close_price=close_price,
        commission=commission,
        swap=swap,
        profit=profit,
    )


# --- Summary figures -----------------------------------------------------


def extract_summary(rows: Sequence[ReportRow]) -> SummaryFigures:
    figures: dict[str, float | str | None] = {}
    for field_name, label in SUMMARY_LABELS.items():
        figures[field_name] = _first_labelled_number(rows, label)
    figures["win_rate"] = _win_rate(rows)
    for field_name, label in HEADER_LABELS.items():
        figures[field_name] = _first_labelled_text(rows, label)
    return SummaryFigures(**figures)


def extract_balance(rows: Sequence[ReportRow]) -> float:
    for row in rows:
        if "Balance:" not in row.text:
            continue
        value = labelled_number(row, "Balance:")
        if value is not None:
            return value
    return 0.0


def labelled_number(row: ReportRow, label: str) -> float | None:
    cells = _row_cells(row)
    position = _label_position(cells, label)
    if position is not None:
        owner = cells[position]
        for cell in cells[position + 1:]:
            bold = cell.xpath(".//b")
            source = bold[0].text_content() if bold else cell.text_content()
            if _NUMBER_RE.search(source):
                return to_number(source)
            if _clean(source):
                break
    else:
        owner = next((cell for cell in cells if label in _clean(cell.text_content())), None)
        if owner is None:
            return None
        # Label and value share a cell, e.g. <td>Balance: <b>1 000.00</b></td>.
        for bold in owner.xpath(".//b"):
            if _NUMBER_RE.search(bold.text_content()):
                return to_number(bold.text_content())
    # Fall back to the label's own cell only.
    tail = _clean(owner.text_content()).split(label, 1)[-1]
    match = _LABEL_NUMBER_RE.search(tail)
    if match:
        return to_number(match.group(0))
    return None


def _first_labelled_number(rows: Sequence[ReportRow], label: str) -> float:
    for row in rows:
        if label in row.text:
            value = labelled_number(row, label)
            if value is not None:
                return value
    return 0.0


def _first_labelled_text(rows: Sequence[ReportRow], label: str) -> str | None:
    for row in rows:
        cells = _row_cells(row)
        position = _label_position(cells, label)
        if position is None:
            continue
        for cell in cells[position + 1:]:
            text = _clean(cell.text_content())
            if text:
                return text
    return None


def _win_rate(rows: Sequence[ReportRow]) -> float:
    for row in rows:
        if "Profit Trades" not in row.text or "%" not in row.text:
            continue
        tail = row.text.split("Profit Trades", 1)[-1]
        match = _WIN_RATE_RE.search(tail)
        if match:
            return float(match.group(1))
    return 0.0


# --- Helpers -------------------------------------------------------------


def to_number(text: str | None) -> float:
    if text is None:
        return 0.0
    cleaned = re.sub(r"\s+", "", str(text).replace("\xa0", "").replace(",", ""))
    cleaned = re.sub(r"[^\d.\-]", "", cleaned)
    if not cleaned:
        return 0.0
    try:
        return float(cleaned)
    except ValueError:
        match = _NUMBER_RE.search(cleaned)
        return float(match.group(0)) if match else 0.0


def _parse_document(html: str) -> HtmlElement:
    if not isinstance(html, str) or not html.strip():
        raise MalformedDocumentError("Report is empty or not text.")
    try:
        return lxml_html.fromstring(html)
    except ValueError:
        # Strings carrying an XML encoding declaration must be handed over as bytes.
        pass
    except (etree.ParserError, etree.XMLSyntaxError) as exc:
        raise MalformedDocumentError(f"Report is not a readable HTML document: {exc}") from exc
    try:
        return lxml_html.fromstring(html.encode("utf-8"))
    except (ValueError, etree.ParserError, etree.XMLSyntaxError) as exc:
        raise MalformedDocumentError(f"Report is not a readable HTML document: {exc}") from exc


def _looks_like_trade(text: str, *, require_time: bool = True) -> bool:
    if not _DATE_RE.search(text) or not _SIDE_RE.search(text):
        return False
    return not require_time or bool(_TIME_RE.search(text))


def _ends_section(row: ReportRow) -> bool:
    if not row.headers:
        return False
    text = " ".join(header.text_content() for header in row.headers).lower()
    return "orders" in text or "deals" in text or "results" in text


def _mentions_other_section(text: str) -> bool:
    return "order" in text or "deal" in text


def _is_side(text: str) -> bool:
    return text.strip().lower() in ("buy", "sell")


def _trade_date(open_time: str, close_time: str, row_text: str) -> str:
    for source in (open_time, close_time, row_text):
        match = _DATE_RE.search(source or "")
        if match:
            return match.group(0).replace(".", "-")
    return ""


def _row_cells(row: ReportRow) -> list[HtmlElement]:
    return list(row.element.xpath("./th|./td"))


def _label_position(cells: Sequence[HtmlElement], label: str) -> int | None:
    for index, cell in enumerate(cells):
        if _clean(cell.text_content()).startswith(label):
            return index
    return None


def _clean(text: str | None) -> str:
    return (text or "").replace("\xa0", " ").strip()
