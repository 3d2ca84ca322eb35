from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Iterable

from mt5_journal.models import Trade

EPOCH = datetime(1970, 1, 1)

_DOTTED_DATE_RE = re.compile(r"(\d{4})\.(\d{2})\.(\d{2})")
_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_SHORT_HOUR_RE = re.compile(r"([ T])(\d):(\d{2})")


def timestamp_text(trade: Trade) -> str:
    open_time = (trade.open_time or "").strip()
    if open_time:
        return open_time
    close_time = (trade.close_time or "").strip()
    if close_time:
        if _has_date(close_time):
            return close_time
        return f"{trade.date or ''} {close_time}".strip()
    return (trade.date or "").strip()


def normalize_timestamp(text: str) -> str:
    value = _DOTTED_DATE_RE.sub(r"\1-\2-\3", text.strip())
    if ":" not in value and "T" not in value:
        value = f"{value} 00:00:00"
    value = _SHORT_HOUR_RE.sub(r"\g<1>0\2:\3", value)
    if " " in value and "T" not in value:
        value = value.replace(" ", "T", 1)
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return value


def parse_timestamp(text: str) -> datetime | None:
    if not text or not text.strip():
        return None
    try:
        parsed = datetime.fromisoformat(normalize_timestamp(text))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def resolve_timestamp(trade: Trade) -> datetime:
    parsed = parse_timestamp(timestamp_text(trade))
    return EPOCH if parsed is None else parsed


def sort_descending(trades: Iterable[Trade]) -> list[Trade]:
    # sorted() keeps equal keys in input order even with reverse=True.
    return sorted(trades, key=resolve_timestamp, reverse=True)


def sort_ascending(trades: Iterable[Trade]) -> list[Trade]:
    return sorted(trades, key=resolve_timestamp)


def trade_day(trade: Trade) -> str:
    resolved = resolve_timestamp(trade)
    if resolved != EPOCH:
        return resolved.date().isoformat()
    fallback = _DOTTED_DATE_RE.sub(r"\1-\2-\3", (trade.date or "").strip())
    match = _DATE_RE.search(fallback)
    return match.group(0) if match else fallback


def _has_date(text: str) -> bool:
    return bool(_DOTTED_DATE_RE.search(text) or _DATE_RE.search(text))
