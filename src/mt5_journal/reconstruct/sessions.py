from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time

import pytz

SYDNEY = "Sydney Session"
SYDNEY_TOKYO = "Sydney + Tokyo"
TOKYO = "Tokyo Session"
TOKYO_LONDON = "Tokyo + London"
LONDON = "London Session"
LONDON_NEWYORK = "London + NewYork"
NEWYORK = "NewYork Session"

SESSION_LABELS = (SYDNEY, SYDNEY_TOKYO, TOKYO, TOKYO_LONDON, LONDON, LONDON_NEWYORK, NEWYORK)

MINUTES_PER_DAY = 24 * 60
NOON = time(12, 0)
FALLBACK_SESSION = LONDON

# Half-open [start, end) minutes since midnight in the session reference time.
# NewYork wraps midnight and is listed as two ranges.
SESSION_WINDOWS: tuple[tuple[str, int, int], ...] = (
    (SYDNEY, 210, 330),
    (SYDNEY_TOKYO, 330, 750),
    (TOKYO, 750, 810),
    (TOKYO_LONDON, 810, 870),
    (LONDON, 870, 1170),
    (LONDON_NEWYORK, 1170, 1410),
    (NEWYORK, 1410, MINUTES_PER_DAY),
    (NEWYORK, 0, 210),
)

_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})(?::\d{2})?")
_DATE_RE = re.compile(r"(\d{4})[.\-/](\d{2})[.\-/](\d{2})")
# Wall-clock conversions need a calendar day; date-less inputs use this one.
_REFERENCE_DAY = date(2000, 1, 3)


@dataclass(frozen=True)
class SessionClock:
    """Timezone pair used to move report timestamps onto the session clock.

    The session windows are defined in ``session_timezone`` wall time. Broker
    reports are written in the trade server's zone. Leaving either side unset
    means report time is taken as session time without conversion.
    ``default_time`` places date-only values on the clock.
    """

    report_timezone: str | None = None
    session_timezone: str | None = None
    default_time: time = NOON

    @property
    def converts(self) -> bool:
        return bool(self.report_timezone and self.session_timezone) and (
            self.report_timezone != self.session_timezone
        )

    def to_session_time(self, value: datetime) -> datetime:
        if not self.converts:
            return value
        source = pytz.timezone(self.report_timezone)
        target = pytz.timezone(self.session_timezone)
        if value.tzinfo is None:
            value = source.localize(value)
        return value.astimezone(target).replace(tzinfo=None)


def classify_minute(minute: int) -> str:
    for label, start, end in SESSION_WINDOWS:
        if start <= minute < end:
            return label
    return FALLBACK_SESSION


def minute_of_day(text: str) -> int | None:
    match = _TIME_RE.search(text or "")
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour * 60 + minute


def classify_session(
    value: int | time | datetime | str,
    *,
    clock: SessionClock | None = None,
    default_time: time | None = None,
) -> str:
    if isinstance(value, bool):
        return FALLBACK_SESSION
    if isinstance(value, int):
        return classify_minute(value)
    moment = _as_datetime(value, default_time)
    if moment is None:
        return FALLBACK_SESSION
    if clock is not None:
        moment = clock.to_session_time(moment)
    return classify_minute(moment.hour * 60 + moment.minute)


def _as_datetime(value: time | datetime | str, default_time: time | None) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, time):
        return datetime.combine(_REFERENCE_DAY, value)
    if not isinstance(value, str):
        return None
    minute = minute_of_day(value)
    if minute is None:
        if default_time is None:
            return None
        clock_time = default_time
    else:
        clock_time = time(minute // 60, minute % 60)
    return datetime.combine(_calendar_day(value), clock_time)


def _calendar_day(text: str) -> date:
    match = _DATE_RE.search(text)
    if match:
        try:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError:
            pass
    return _REFERENCE_DAY
