from __future__ import annotations

from calendar import monthrange
from datetime import date, datetime, timedelta, tzinfo

WEEKLY_DAYS = 7
FORTNIGHTLY_DAYS = 14
DAYS_IN_WEEK = 7

WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

FREQUENCY_ALIASES = {
    "biweekly": "fortnightly",
    "byweekly": "fortnightly",
    "oneoff": "oneoff",
    "once": "oneoff",
}


def normalize_frequency(value: str | None) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = "".join(ch for ch in value.strip().lower() if ch.isalnum())
    if not normalized:
        return None
    return FREQUENCY_ALIASES.get(normalized, normalized)


def resolve_weekday(value: str | None) -> int | None:
    """Return the Python weekday number (Monday is 0) for a day name.

    Only names are accepted, so a bare number never picks a weekday.
    """
    if not isinstance(value, str):
        return None
    return WEEKDAYS.get(value.strip().lower())


def weekday_name(weekday: int) -> str:
    for name, number in WEEKDAYS.items():
        if number == weekday:
            return name
    raise ValueError(f"Invalid weekday number: {weekday}")


def cycle_interval_days(frequency: str | None) -> int | None:
    normalized = normalize_frequency(frequency)
    if normalized == "weekly":
        return WEEKLY_DAYS
    if normalized == "fortnightly":
        return FORTNIGHTLY_DAYS
    return None


def next_occurrence_of_weekday(from_date: date, weekday: int) -> date:
    """Next date with the given weekday, strictly after ``from_date``."""
    days_ahead = (weekday - from_date.weekday()) % DAYS_IN_WEEK
    if days_ahead == 0:
        days_ahead = DAYS_IN_WEEK
    return from_date + timedelta(days=days_ahead)


def first_weekday_on_or_after(from_date: date, weekday: int) -> date:
    days_ahead = (weekday - from_date.weekday()) % DAYS_IN_WEEK
    return from_date + timedelta(days=days_ahead)


def clamp_day(year: int, month: int, day: int) -> date:
    last_day = monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def add_months(start_date: date, months: int, anchor_day: int) -> date:
    total_month = start_date.month - 1 + months
    year = start_date.year + total_month // 12
    month = total_month % 12 + 1
    return clamp_day(year, month, anchor_day)


def add_cycle(value: date, frequency: str, anchor_day: int | None = None) -> date:
    """Advance ``value`` by one pay cycle.

    Monthly cycles keep ``anchor_day`` (defaulting to ``value.day``) and clamp
    it to the last day of short months, so the 31st maps to the 30th in
    April rather than spilling into May.
    """
    normalized = normalize_frequency(frequency)
    interval = cycle_interval_days(normalized)
    if interval is not None:
        return value + timedelta(days=interval)
    if normalized == "monthly":
        return add_months(value, 1, anchor_day or value.day)
    raise ValueError("Only weekly, fortnightly, or monthly cycles are supported.")


def to_local_date(value: date | datetime, tz: tzinfo | None = None) -> date:
    if isinstance(value, datetime):
        if tz is not None and value.tzinfo is not None:
            value = value.astimezone(tz)
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected a date or datetime, got {type(value).__name__}.")
