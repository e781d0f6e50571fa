"""
Spoken date/time normalization.

Turns what a caller says ("next monday", "March 3rd", "the 15th", "2:30pm")
into canonical values: `datetime.date` for dates and "HH:MM:SS" strings for
times. Parsers return None for anything they don't recognize; they never raise.

"Today" is always the clinic-local date supplied by the caller of these
functions, never the server's clock.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from dateutil import parser as dtparser

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

MONTHS = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

_MONTH_ALT = "|".join(sorted(MONTHS, key=len, reverse=True))
_ORD = r"(?:st|nd|rd|th)?"

_WEEKDAY_RE = re.compile(rf"^(?:(?:next|this)\s+)?({'|'.join(WEEKDAYS)})$")
_MONTH_DAY_RE = re.compile(rf"^({_MONTH_ALT})\.?\s+(\d{{1,2}}){_ORD}(?:,?\s*(\d{{4}}))?$")
_DAY_MONTH_RE = re.compile(rf"^(\d{{1,2}}){_ORD}\s+(?:of\s+)?({_MONTH_ALT})\.?(?:,?\s*(\d{{4}}))?$")
_THE_DAY_RE = re.compile(rf"^the\s+(\d{{1,2}}){_ORD}$")
_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})(?:/(\d{4}|\d{2}))?$")
_MONTH_WORD_RE = re.compile(rf"\b({_MONTH_ALT})\b")

_SIMPLE_TIME_RE = re.compile(r"^(\d{1,2})\s*(am|pm)$")
_COLON_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*(am|pm)?$")
_FULL_TIME_RE = re.compile(r"^(\d{2}):(\d{2}):(\d{2})$")


def _normalize(text: str) -> str:
    s = re.sub(r"\s+", " ", (text or "").strip().lower())
    s = s.rstrip(".,?!")
    if s.startswith("on "):
        s = s[3:]
    return s


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _roll_year(today: date, month: int, day: int) -> Optional[date]:
    """This year's month/day, or next year's if it has already passed."""
    candidate = _safe_date(today.year, month, day)
    if candidate is None or candidate < today:
        candidate = _safe_date(today.year + 1, month, day)
    return candidate


def _explicit_or_rolled(today: date, month: int, day: int, year_str: Optional[str]) -> Optional[date]:
    if year_str:
        year = int(year_str)
        if year < 100:
            year += 2000
        return _safe_date(year, month, day)
    return _roll_year(today, month, day)


def parse_date(text: Optional[str], today: Optional[date] = None) -> Optional[date]:
    """
    Parse a spoken date relative to `today`.

    Supported, in priority order:
    - "today", "tomorrow"
    - "monday", "next monday", "this friday" (always strictly after today)
    - "January 3rd", "Jan 3", "March 15th, 2026"
    - "3rd of January", "15 March"
    - "the 3rd" (this month, or next month once passed)
    - "1/3", "01/03/26", "1/3/2026"
    - anything python-dateutil understands ("2026-01-03", "Jan 3 2026")
    Year-less dates that have already passed roll forward a year.
    """
    if not text:
        return None
    if today is None:
        today = date.today()
    s = _normalize(text)
    if not s:
        return None

    if s == "today":
        return today
    if s == "tomorrow":
        return today + timedelta(days=1)

    m = _WEEKDAY_RE.match(s)
    if m:
        days_until = WEEKDAYS.index(m.group(1)) - today.weekday()
        if days_until <= 0:
            days_until += 7
        return today + timedelta(days=days_until)

    m = _MONTH_DAY_RE.match(s)
    if m:
        return _explicit_or_rolled(today, MONTHS[m.group(1)], int(m.group(2)), m.group(3))

    m = _DAY_MONTH_RE.match(s)
    if m:
        return _explicit_or_rolled(today, MONTHS[m.group(2)], int(m.group(1)), m.group(3))

    m = _THE_DAY_RE.match(s)
    if m:
        day = int(m.group(1))
        candidate = _safe_date(today.year, today.month, day)
        if candidate is None or candidate < today:
            year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
            candidate = _safe_date(year, month, day)
        return candidate

    m = _SLASH_RE.match(s)
    if m:
        return _explicit_or_rolled(today, int(m.group(1)), int(m.group(2)), m.group(3))

    return _fallback_parse(s, today)


def _fallback_parse(s: str, today: date) -> Optional[date]:
    cleaned = re.sub(r"(\d+)(st|nd|rd|th)\b", r"\1", s)
    # dateutil happily turns bare words like "am" into today's date
    if not re.search(r"\d", cleaned) and not _MONTH_WORD_RE.search(cleaned):
        return None
    try:
        parsed = dtparser.parse(cleaned, default=datetime(today.year, today.month, today.day))
    except (ValueError, OverflowError, TypeError):
        return None

    result = parsed.date()
    if not re.search(r"\d{4}", s) and result < today:
        result = _safe_date(result.year + 1, result.month, result.day)
    return result


def parse_time(text: Optional[str]) -> Optional[str]:
    """
    Parse a spoken time to "HH:MM:SS".

    "9am" -> "09:00:00", "2:30pm" -> "14:30:00", "14:30" -> "14:30:00",
    "12am" -> "00:00:00", "12pm" -> "12:00:00". Anything else -> None.
    """
    if not text:
        return None
    s = re.sub(r"\s+", " ", text.strip().lower()).replace(".", "")

    m = _SIMPLE_TIME_RE.match(s)
    if m:
        hour = int(m.group(1))
        if not 1 <= hour <= 12:
            return None
        return f"{_to_24h(hour, m.group(2)):02d}:00:00"

    m = _COLON_TIME_RE.match(s)
    if m:
        hour, minute, meridiem = int(m.group(1)), int(m.group(2)), m.group(3)
        if minute > 59:
            return None
        if meridiem:
            if not 1 <= hour <= 12:
                return None
            hour = _to_24h(hour, meridiem)
        elif hour > 23:
            return None
        return f"{hour:02d}:{minute:02d}:00"

    m = _FULL_TIME_RE.match(s)
    if m:
        hour, minute, second = (int(g) for g in m.groups())
        if hour > 23 or minute > 59 or second > 59:
            return None
        return s

    return None


def _to_24h(hour: int, meridiem: str) -> int:
    if meridiem == "pm" and hour != 12:
        return hour + 12
    if meridiem == "am" and hour == 12:
        return 0
    return hour


def format_time_12h(time_24: str) -> str:
    """'14:30:00' -> '2:30 PM', '09:00' -> '9:00 AM', '00:15:00' -> '12:15 AM'."""
    parts = (time_24 or "").split(":")
    hour = int(parts[0] or 0)
    minute = parts[1][:2] if len(parts) > 1 else "00"
    ampm = "PM" if hour >= 12 else "AM"
    hour = hour % 12 or 12
    return f"{hour}:{minute} {ampm}"


def format_date_spoken(d: date) -> str:
    """date(2026, 10, 17) -> 'Saturday, October 17'."""
    return f"{d.strftime('%A, %B')} {d.day}"


def today_in_timezone(tz_name: str) -> date:
    return datetime.now(ZoneInfo(tz_name)).date()


def localize(d: date, time_24: str, tz_name: str) -> datetime:
    """Combine a date and 'HH:MM[:SS]' into an aware datetime in `tz_name`."""
    parts = [int(p) for p in time_24.split(":")[:3]]
    while len(parts) < 3:
        parts.append(0)
    return datetime(d.year, d.month, d.day, parts[0], parts[1], parts[2], tzinfo=ZoneInfo(tz_name))
