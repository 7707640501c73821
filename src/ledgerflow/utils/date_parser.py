"""Date parsing utilities.

Two kinds of dates come through here: dates typed on the command line, which
may be relative ("yesterday", "last month"), and statement dates read from
bank exports, which are matched against a fixed list of strptime formats.
"""

from collections import Counter
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _month_start(day: date) -> date:
    return day.replace(day=1)


def _year_start(day: date) -> date:
    return day.replace(month=1, day=1)


def _week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


# "<offset> <unit>" phrases: the first day of the period
_PERIOD_STARTS: dict[str, Callable[[date], date]] = {
    "month": _month_start,
    "year": _year_start,
    "week": _week_start,
}
_PERIOD_STEPS = {
    "month": relativedelta(months=1),
    "year": relativedelta(years=1),
    "week": relativedelta(weeks=1),
}
_OFFSETS = {"last": -1, "this": 0, "next": 1}


def parse_date(date_str: str, today: Optional[date] = None) -> date:
    """Parse a command-line date.

    Accepts absolute dates in any format dateutil understands, plus
    "today", "yesterday", "tomorrow", "last/this/next week|month|year"
    (the first day of that period) and "last <weekday>".

    Raises:
        ValueError: If date string cannot be parsed
    """
    text = " ".join(date_str.strip().lower().split())
    today = today or date.today()

    fixed = {"today": 0, "yesterday": -1, "tomorrow": 1}
    if text in fixed:
        return today + timedelta(days=fixed[text])

    words = text.split(" ")
    if len(words) == 2 and words[0] in _OFFSETS:
        offset, unit = _OFFSETS[words[0]], words[1]
        if unit in _PERIOD_STARTS:
            return _PERIOD_STARTS[unit](today + _PERIOD_STEPS[unit] * offset)
        if unit in WEEKDAYS and offset == -1:
            days_ago = (today.weekday() - WEEKDAYS.index(unit)) % 7 or 7
            return today - timedelta(days=days_ago)

    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{date_str}': {e}") from e


def get_date_range(period: str, today: Optional[date] = None) -> tuple[date, date]:
    """Return (start, end) for a named period such as ``this-month``.

    "this-" periods end today; "last-" periods cover the whole previous
    period.

    Raises:
        ValueError: If the period is not recognized
    """
    today = today or date.today()
    offset, _, unit = period.strip().lower().partition("-")
    if offset not in ("this", "last") or unit not in _PERIOD_STARTS:
        raise ValueError(
            f"Unknown period: '{period}'. Supported periods: this-month, this-year, "
            "this-week, last-month, last-year, last-week"
        )

    current_start = _PERIOD_STARTS[unit](today)
    if offset == "this":
        return current_start, today
    return current_start - _PERIOD_STEPS[unit], current_start - timedelta(days=1)


# strptime formats tried for statement dates, most common first
DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%d %b %Y",
    "%Y/%m/%d",
)

MIN_YEAR = 1900
MAX_YEAR = 2100


def parse_date_with_format(value: str, date_format: Optional[str] = None) -> date:
    """Parse a statement date, using a known format when one is given.

    Without a format every entry of DATE_FORMATS is tried before falling back
    to dateutil. Years outside 1900..2100 are rejected.

    Raises:
        ValueError: If the value cannot be parsed
    """
    value = value.strip()
    if not value:
        raise ValueError("Empty date string")

    formats = (date_format,) if date_format else DATE_FORMATS
    for fmt in formats:
        try:
            parsed = datetime.strptime(value, fmt).date()
        except ValueError:
            continue
        if MIN_YEAR <= parsed.year <= MAX_YEAR:
            return parsed
    if date_format:
        raise ValueError(f"Date '{value}' does not match format '{date_format}'")

    try:
        parsed = date_parser.parse(value).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{value}': {e}") from e
    if not MIN_YEAR <= parsed.year <= MAX_YEAR:
        raise ValueError(f"Date '{value}' is out of range")
    return parsed


def match_date_format(value: str) -> Optional[str]:
    """Return the first entry of DATE_FORMATS that parses value, or None."""
    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(value, fmt)
        except ValueError:
            continue
        if MIN_YEAR <= parsed.year <= MAX_YEAR:
            return fmt
    return None


def detect_date_format(values: Iterable[str]) -> Optional[str]:
    """Pick the format that parses the most values.

    Each format is scored on every value, so "03/04/2024" counts for both the
    US and the European layout and "13/04/2024" settles it. Ties go to the
    earlier entry of DATE_FORMATS.
    """
    values = [v.strip() for v in values if v and v.strip()]
    counts: Counter[str] = Counter()
    for value in values:
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
            except ValueError:
                continue
            if MIN_YEAR <= parsed.year <= MAX_YEAR:
                counts[fmt] += 1
    if not counts:
        return None
    best = max(counts.values())
    return next(fmt for fmt in DATE_FORMATS if counts[fmt] == best)
