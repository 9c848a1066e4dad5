from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from paycycle.calendar_utils import normalize_frequency

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Policy constants: 26 fortnights and 52 weeks per year, not 365.25 / 14.
CYCLES_PER_YEAR: dict[str, int] = {
    "monthly": 12,
    "fortnightly": 26,
    "weekly": 52,
}


def annualize(
    amount: Decimal | int | float | str | None, frequency: str | None
) -> Decimal | None:
    """Annual equivalent of ``amount`` paid every ``frequency`` cycle.

    Returns ``None`` instead of raising when the amount is missing or not
    positive, or when the frequency is not one of ``CYCLES_PER_YEAR``.
    """
    coerced = _positive_amount(amount)
    multiplier = _cycles_per_year(frequency, "annual calculation")
    if coerced is None or multiplier is None:
        return None
    return coerced * multiplier


def target_cycle_amount(
    annual_amount: Decimal | int | float | str | None, target_frequency: str | None
) -> Decimal | None:
    coerced = _positive_amount(annual_amount)
    divisor = _cycles_per_year(target_frequency, "target cycle calculation")
    if coerced is None or divisor is None:
        return None
    return coerced / divisor


def derive_desired_pay_amount(
    actual_pay_amount: Decimal | int | float | str | None,
    actual_pay_frequency: str | None,
    desired_pay_frequency: str | None,
) -> Decimal | None:
    return target_cycle_amount(
        annualize(actual_pay_amount, actual_pay_frequency),
        desired_pay_frequency,
    )


def _cycles_per_year(frequency: str | None, purpose: str) -> int | None:
    if frequency is None:
        return None
    multiplier = CYCLES_PER_YEAR.get(normalize_frequency(frequency) or "")
    if multiplier is None:
        logger.warning("Unsupported frequency for %s: %r", purpose, frequency)
    return multiplier


def _positive_amount(amount: Decimal | int | float | str | None) -> Decimal | None:
    if amount is None or isinstance(amount, bool):
        return None
    try:
        coerced = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation:
        return None
    if not coerced.is_finite() or coerced <= ZERO:
        return None
    return coerced
