from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Iterable, List

from paycycle.calendar_utils import (
    FORTNIGHTLY_DAYS,
    WEEKLY_DAYS,
    add_months,
    normalize_frequency,
    to_local_date,
)
from paycycle.exceptions import ComputationLimitExceeded, InvalidBillError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
SUPPORTED_FREQUENCIES = {"oneoff", "weekly", "fortnightly", "monthly"}
MAX_BACKWARD_CYCLES = 1000


@dataclass(frozen=True)
class Bill:
    name: str
    amount: Decimal
    frequency: str
    created_at: datetime | date
    due_date: date | datetime | int | None = None
    is_active: bool = True
    bill_id: int | None = None


@dataclass(frozen=True)
class ProjectedBill:
    date: date
    name: str
    amount: Decimal
    frequency: str
    bill_id: int | None = None


def bill_occurrences(
    bill: Bill,
    range_start: date,
    range_end: date,
    tz: tzinfo | None = None,
) -> List[date]:
    """Due dates of ``bill`` inside ``[range_start, range_end]``, both inclusive.

    One-off bills use ``due_date`` as the moment they fall due, monthly bills
    use it as a day of the month, and weekly/fortnightly bills recur from
    ``created_at``. Raises ``InvalidBillError`` for records that cannot be
    projected and ``ComputationLimitExceeded`` when an iteration guard trips.
    """
    if range_start > range_end:
        raise ValueError("range_start must be on or before range_end.")
    frequency = _validate_frequency(bill)
    if frequency == "oneoff":
        return _one_off_occurrences(bill, range_start, range_end, tz)
    if frequency == "monthly":
        return _monthly_occurrences(bill, range_start, range_end)
    interval = WEEKLY_DAYS if frequency == "weekly" else FORTNIGHTLY_DAYS
    return _interval_occurrences(bill, range_start, range_end, interval, tz)


def project_bills(
    bills: Iterable[Bill],
    range_start: date,
    range_end: date,
    tz: tzinfo | None = None,
) -> List[ProjectedBill]:
    if range_start > range_end:
        raise ValueError("range_start must be on or before range_end.")
    projections: List[ProjectedBill] = []
    for bill in bills:
        occurrences = _safe_occurrences(bill, range_start, range_end, tz)
        if not occurrences:
            continue
        amount = _coerce_amount(bill)
        projections.extend(
            ProjectedBill(
                date=occurrence,
                name=bill.name,
                amount=amount,
                frequency=normalize_frequency(bill.frequency) or bill.frequency,
                bill_id=bill.bill_id,
            )
            for occurrence in occurrences
        )
    projections.sort(key=lambda entry: (entry.date, entry.name))
    return projections


def bills_total(
    bills: Iterable[Bill],
    range_start: date,
    range_end: date,
    tz: tzinfo | None = None,
) -> Decimal:
    """Total of every active bill falling due inside the inclusive range.

    A bad record never aborts the batch: it is logged and left out of the
    total while the remaining bills are still counted.
    """
    if range_start > range_end:
        raise ValueError("range_start must be on or before range_end.")
    total = ZERO
    for bill in bills:
        occurrences = _safe_occurrences(bill, range_start, range_end, tz)
        if occurrences:
            total += _coerce_amount(bill) * len(occurrences)
    return total


def _safe_occurrences(
    bill: Bill, range_start: date, range_end: date, tz: tzinfo | None
) -> List[date]:
    if not bill.is_active:
        return []
    try:
        _coerce_amount(bill)
        occurrences = bill_occurrences(bill, range_start, range_end, tz)
    except InvalidBillError as exc:
        logger.warning(
            "Skipping invalid bill",
            extra={"bill_name": bill.name, "bill_id": bill.bill_id, "reason": str(exc)},
        )
        return []
    except ComputationLimitExceeded as exc:
        logger.error(
            "Bill projection aborted by iteration guard",
            extra={"bill_name": bill.name, "bill_id": bill.bill_id, "reason": str(exc)},
        )
        return []
    for occurrence in occurrences:
        logger.debug(
            "Bill due in range",
            extra={"bill_name": bill.name, "due": occurrence.isoformat()},
        )
    return occurrences


def _validate_frequency(bill: Bill) -> str:
    normalized = normalize_frequency(bill.frequency)
    if normalized not in SUPPORTED_FREQUENCIES:
        raise InvalidBillError(f"Unknown frequency {bill.frequency!r}.")
    return normalized


def _one_off_occurrences(
    bill: Bill, range_start: date, range_end: date, tz: tzinfo | None
) -> List[date]:
    if not isinstance(bill.due_date, date):
        raise InvalidBillError("One-off bills require a due date.")
    due = to_local_date(bill.due_date, tz)
    if range_start <= due <= range_end:
        return [due]
    return []


def _monthly_occurrences(bill: Bill, range_start: date, range_end: date) -> List[date]:
    day = bill.due_date
    if isinstance(day, bool) or not isinstance(day, int) or not 1 <= day <= 31:
        raise InvalidBillError(f"Monthly bills require a day of month 1-31, got {day!r}.")

    month_start = range_start.replace(day=1)
    month_offset = 0
    current_date = add_months(month_start, month_offset, day)
    if current_date < range_start:
        month_offset += 1
        current_date = add_months(month_start, month_offset, day)

    ceiling = _month_ceiling(range_start, range_end)
    occurrences: List[date] = []
    while current_date <= range_end:
        if len(occurrences) >= ceiling:
            raise ComputationLimitExceeded(f"More than {ceiling} monthly occurrences in range.")
        occurrences.append(current_date)
        month_offset += 1
        next_date = add_months(month_start, month_offset, day)
        if next_date <= current_date:
            raise ComputationLimitExceeded(
                f"Monthly date did not advance past {current_date.isoformat()}."
            )
        current_date = next_date
    return occurrences


def _interval_occurrences(
    bill: Bill,
    range_start: date,
    range_end: date,
    interval_days: int,
    tz: tzinfo | None,
) -> List[date]:
    if not isinstance(bill.created_at, date):
        raise InvalidBillError("Recurring bills require a creation timestamp.")
    step = timedelta(days=interval_days)
    current_date = to_local_date(bill.created_at, tz)

    backward_cycles = 0
    while current_date > range_start:
        if backward_cycles >= MAX_BACKWARD_CYCLES:
            raise ComputationLimitExceeded(
                f"Anchor is more than {MAX_BACKWARD_CYCLES} cycles after the range start."
            )
        current_date -= step
        backward_cycles += 1
    current_date = _latest_occurrence_on_or_before(current_date, range_start, interval_days)

    ceiling = _interval_ceiling(current_date, range_end, interval_days)
    occurrences: List[date] = []
    iterations = 0
    while current_date <= range_end:
        if iterations >= ceiling:
            raise ComputationLimitExceeded(f"More than {ceiling} occurrences in range.")
        if current_date >= range_start:
            occurrences.append(current_date)
        next_date = current_date + step
        if next_date <= current_date:
            raise ComputationLimitExceeded(
                f"Recurring date did not advance past {current_date.isoformat()}."
            )
        current_date = next_date
        iterations += 1
    return occurrences


def _month_ceiling(range_start: date, range_end: date) -> int:
    months = (range_end.year - range_start.year) * 12 + range_end.month - range_start.month
    return max(months, 0) + 2


def _interval_ceiling(walk_start: date, range_end: date, interval_days: int) -> int:
    # Steps a correct walk needs to pass range_end, plus slack.
    return max((range_end - walk_start).days, 0) // interval_days + 2


def _latest_occurrence_on_or_before(
    anchor: date, maximum_date: date, interval_days: int
) -> date:
    if anchor >= maximum_date:
        return anchor
    intervals = (maximum_date - anchor).days // interval_days
    return anchor + timedelta(days=interval_days * intervals)


def _coerce_amount(bill: Bill) -> Decimal:
    amount = bill.amount
    if isinstance(amount, bool):
        raise InvalidBillError(f"Invalid amount {amount!r}.")
    if not isinstance(amount, Decimal):
        try:
            amount = Decimal(str(amount))
        except InvalidOperation as exc:
            raise InvalidBillError(f"Invalid amount {bill.amount!r}.") from exc
    if not amount.is_finite() or amount <= ZERO:
        raise InvalidBillError(f"Invalid amount {bill.amount!r}.")
    return amount
