from __future__ import annotations

from datetime import datetime

from mt5_journal.reconstruct.ordering import (
    EPOCH,
    normalize_timestamp,
    parse_timestamp,
    resolve_timestamp,
    sort_ascending,
    sort_descending,
    timestamp_text,
    trade_day,
)


def test_timestamp_priority(trade_factory):
    both = trade_factory(10, open_time="2024.01.15 09:00:00", close_time="2024.01.15 11:00:00")
    close_only = trade_factory(10, date="2024-01-16", close_time="14:30:00")
    close_with_date = trade_factory(10, date="2024-01-16", close_time="2024.01.17 01:00:00")
    date_only = trade_factory(10, date="2024-01-18")

    assert timestamp_text(both) == "2024.01.15 09:00:00"
    assert timestamp_text(close_only) == "2024-01-16 14:30:00"
    assert timestamp_text(close_with_date) == "2024.01.17 01:00:00"
    assert timestamp_text(date_only) == "2024-01-18"


def test_normalize_timestamp():
    assert normalize_timestamp("2024.01.15 09:00:00") == "2024-01-15T09:00:00"
    assert normalize_timestamp("2024-01-15") == "2024-01-15T00:00:00"
    assert normalize_timestamp("2024-01-15 9:05") == "2024-01-15T09:05"
    assert normalize_timestamp("2024-01-15T09:00:00Z") == "2024-01-15T09:00:00+00:00"


def test_parse_timestamp():
    assert parse_timestamp("2024.01.15 09:00:00") == datetime(2024, 1, 15, 9, 0)
    assert parse_timestamp("2024-01-15") == datetime(2024, 1, 15)
    assert parse_timestamp("2024-01-15T09:00:00+02:00") == datetime(2024, 1, 15, 7, 0)
    assert parse_timestamp("garbage") is None
    assert parse_timestamp("") is None


def test_unresolvable_timestamp_sorts_as_epoch(trade_factory):
    broken = trade_factory(10, date="someday")

    assert resolve_timestamp(broken) == EPOCH
    assert sort_descending([broken, trade_factory(5, date="2024-01-01")])[-1] is broken


def test_sort_descending_orders_newest_first(trade_factory):
    older = trade_factory(1, open_time="2024.01.15 09:00:00")
    newer = trade_factory(2, open_time="2024.01.16 09:00:00")
    newest = trade_factory(3, date="2024-01-16", close_time="23:00:00")

    assert sort_descending([older, newest, newer]) == [newest, newer, older]
    assert sort_ascending([newest, older, newer]) == [older, newer, newest]


def test_sort_is_stable_and_idempotent(trade_factory):
    first = trade_factory(1, open_time="2024.01.15 09:00:00")
    second = trade_factory(2, open_time="2024.01.15 09:00:00")
    third = trade_factory(3, open_time="2024.01.15 09:00:00")
    later = trade_factory(4, open_time="2024.01.15 10:00:00")

    ordered = sort_descending([first, second, later, third])

    assert ordered == [later, first, second, third]
    assert sort_descending(ordered) == ordered


def test_trade_day(trade_factory):
    assert trade_day(trade_factory(1, date="2024-01-15", close_time="2024.01.16 00:30:00")) == "2024-01-16"
    assert trade_day(trade_factory(1, date="2024.01.15 extra")) == "2024-01-15"
