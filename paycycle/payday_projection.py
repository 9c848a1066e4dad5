from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List

from paycycle.calendar_utils import (
    add_cycle,
    add_months,
    clamp_day,
    cycle_interval_days,
    first_weekday_on_or_after,
    resolve_weekday,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaySettings:
    actual_pay_amount: Decimal | None = None
    actual_pay_frequency: str = "monthly"
    actual_pay_day_of_month: int | None = None
    desired_pay_frequency: str | None = None
    desired_pay_day_of_week: str | None = None
    desired_pay_amount: Decimal | None = None
    next_actual_payday_date: date | None = None


def next_actual_payday(today: date, day_of_month: int | None) -> date | None:
    """This month's payday if it is today or later, otherwise next month's.

    Days past the end of a short month are clamped to its last day.
    """
    if isinstance(day_of_month, bool) or not isinstance(day_of_month, int):
        return None
    if not 1 <= day_of_month <= 31:
        logger.warning("Invalid actual pay day of month: %r", day_of_month)
        return None
    candidate = clamp_day(today.year, today.month, day_of_month)
    if candidate >= today:
        return candidate
    return add_months(today.replace(day=1), 1, day_of_month)


def first_preferred_payday(
    next_actual_payday_date: date | None, desired_weekday: str | None
) -> date | None:
    # Inclusive: the first allowance may land on the actual payday itself.
    weekday = resolve_weekday(desired_weekday)
    if next_actual_payday_date is None or weekday is None:
        return None
    return first_weekday_on_or_after(next_actual_payday_date, weekday)


def subsequent_paydays(
    first_preferred_payday_date: date | None, frequency: str | None, count: int
) -> List[date]:
    interval = cycle_interval_days(frequency)
    if first_preferred_payday_date is None or interval is None:
        if frequency is not None and interval is None:
            logger.warning("Unsupported preferred pay frequency: %r", frequency)
        return []
    paydays: List[date] = []
    current_date = first_preferred_payday_date
    for _ in range(max(count, 0)):
        paydays.append(current_date)
        current_date = add_cycle(current_date, frequency)
    return paydays


def resolve_cycle_anchor(
    today: date,
    next_actual_payday_date: date | None = None,
    actual_pay_day_of_month: int | None = None,
) -> date:
    if next_actual_payday_date is not None and next_actual_payday_date >= today:
        return next_actual_payday_date
    derived = next_actual_payday(today, actual_pay_day_of_month)
    if derived is not None:
        return derived
    return today


def next_preferred_payday(settings: PaySettings, today: date) -> date | None:
    if cycle_interval_days(settings.desired_pay_frequency) is None:
        return None
    anchor = resolve_cycle_anchor(
        today,
        settings.next_actual_payday_date,
        settings.actual_pay_day_of_month,
    )
    return first_preferred_payday(anchor, settings.desired_pay_day_of_week)
