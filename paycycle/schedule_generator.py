from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Iterable, List

from paycycle.bill_projection import Bill, bills_total
from paycycle.calendar_utils import cycle_interval_days, resolve_weekday
from paycycle.payday_projection import (
    PaySettings,
    first_preferred_payday,
    resolve_cycle_anchor,
    subsequent_paydays,
)

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE_COUNT = 5
DEFAULT_UPCOMING_DAYS = 14


@dataclass(frozen=True)
class ProjectedScheduleItem:
    allowance_date: date
    allowance_amount: Decimal
    bills_due_in_period: Decimal
    leftover_for_period: Decimal


@dataclass(frozen=True)
class DashboardSummary:
    range_start: date
    range_end: date
    upcoming_bills_total: Decimal
    desired_pay_amount: Decimal | None
    leftover_amount: Decimal | None


def generate_projected_schedule(
    settings: PaySettings,
    bills: Iterable[Bill],
    count: int = DEFAULT_SCHEDULE_COUNT,
    today: date | None = None,
    anchor: date | None = None,
    tz: tzinfo | None = None,
) -> List[ProjectedScheduleItem]:
    """Project ``count`` allowances with the bills each one has to cover.

    Period ``i`` spans from allowance ``i`` to allowance ``i + 1`` with both
    ends included, so a bill due on the next allowance date is charged to
    the period that is closing. Incomplete settings yield an empty list.
    """
    allowance_amount = _coerce_optional_amount(settings.desired_pay_amount)
    if (
        not settings.desired_pay_frequency
        or not settings.desired_pay_day_of_week
        or allowance_amount is None
    ):
        logger.info("Cannot generate projected schedule: missing desired pay settings.")
        return []
    interval = cycle_interval_days(settings.desired_pay_frequency)
    if interval is None or resolve_weekday(settings.desired_pay_day_of_week) is None:
        logger.warning(
            "Cannot generate projected schedule: invalid desired pay settings.",
            extra={
                "frequency": settings.desired_pay_frequency,
                "weekday": settings.desired_pay_day_of_week,
            },
        )
        return []
    if count <= 0:
        return []

    if anchor is None:
        anchor = resolve_cycle_anchor(
            today or datetime.now(tz).date(),
            settings.next_actual_payday_date,
            settings.actual_pay_day_of_month,
        )
    first_payday = first_preferred_payday(anchor, settings.desired_pay_day_of_week)
    paydays = subsequent_paydays(first_payday, settings.desired_pay_frequency, count + 1)

    bill_list = list(bills)
    schedule: List[ProjectedScheduleItem] = []
    for period_start, period_end in zip(paydays, paydays[1:]):
        bills_due = bills_total(bill_list, period_start, period_end, tz=tz)
        schedule.append(
            ProjectedScheduleItem(
                allowance_date=period_start,
                allowance_amount=allowance_amount,
                bills_due_in_period=bills_due,
                leftover_for_period=allowance_amount - bills_due,
            )
        )
    return schedule


def summarize_upcoming(
    settings: PaySettings,
    bills: Iterable[Bill],
    today: date,
    days: int = DEFAULT_UPCOMING_DAYS,
    tz: tzinfo | None = None,
) -> DashboardSummary:
    range_end = today + timedelta(days=days)
    upcoming = bills_total(bills, today, range_end, tz=tz)
    desired_amount = _coerce_optional_amount(settings.desired_pay_amount)
    leftover = desired_amount - upcoming if desired_amount is not None else None
    return DashboardSummary(
        range_start=today,
        range_end=range_end,
        upcoming_bills_total=upcoming,
        desired_pay_amount=desired_amount,
        leftover_amount=leftover,
    )


def _coerce_optional_amount(amount: Decimal | int | float | str | None) -> Decimal | None:
    if amount is None or isinstance(amount, bool):
        return None
    if isinstance(amount, Decimal):
        return amount
    try:
        return Decimal(str(amount))
    except InvalidOperation:
        return None
