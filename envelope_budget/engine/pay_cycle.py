"""Pay-cycle normalisation and pay-date arithmetic.

Amounts declared at one frequency are converted to another through their
annual equivalent (weekly x52, fortnightly x26, twice-monthly x24, monthly x12,
quarterly x4, annual x1). Date arithmetic steps whole cycles on the calendar
with :class:`dateutil.relativedelta.relativedelta` so month-based cycles don't
drift the way fixed day counts do.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from dateutil.relativedelta import relativedelta

from ..errors import InvalidFrequency
from ..models import DueDate, Envelope, Frequency
from ..money import round_money


ANNUAL_FACTORS: Dict[Frequency, int] = {
    Frequency.WEEKLY: 52,
    Frequency.FORTNIGHTLY: 26,
    Frequency.TWICE_MONTHLY: 24,
    Frequency.MONTHLY: 12,
    Frequency.QUARTERLY: 4,
    Frequency.ANNUAL: 1,
}

FrequencyLike = Union[Frequency, str]


def cycles_per_year(frequency: FrequencyLike) -> int:
    """Return how many times per year ``frequency`` recurs.

    Raises:
        InvalidFrequency: For ``none`` and unrecognised values
    """
    parsed = Frequency.parse(frequency)
    if parsed not in ANNUAL_FACTORS:
        raise InvalidFrequency(frequency)
    return ANNUAL_FACTORS[parsed]


def normalize_amount(amount: float, from_frequency: FrequencyLike, to_frequency: FrequencyLike) -> float:
    """Convert ``amount`` declared at ``from_frequency`` into ``to_frequency``.

    Example:
        >>> normalize_amount(1000, 'weekly', 'fortnightly')
        2000.0
        >>> normalize_amount(3000, 'monthly', 'fortnightly')
        1384.62
    """
    source = cycles_per_year(from_frequency)
    target = cycles_per_year(to_frequency)
    return round_money(Decimal(str(amount)) * source / target)


def per_cycle_contribution(target_amount: float, frequency: FrequencyLike, pay_cycle: FrequencyLike) -> float:
    """Ideal steady-state amount to set aside each pay for a recurring target.

    Envelopes without a frequency have no recurring contribution.
    """
    parsed = Frequency.parse(frequency)
    if parsed is Frequency.NONE or not target_amount:
        cycles_per_year(pay_cycle)
        return 0.0
    return normalize_amount(target_amount, parsed, pay_cycle)


def envelope_pay_cycle_amount(envelope: Envelope, pay_cycle: FrequencyLike) -> float:
    """Per-cycle contribution of ``envelope``; an explicit amount wins."""
    if envelope.pay_cycle_amount is not None:
        return round_money(envelope.pay_cycle_amount)
    return per_cycle_contribution(envelope.target_amount, envelope.frequency, pay_cycle)


def safe_date(year: int, month: int, day: int) -> date:
    """Return a valid date, clamping the day to the last day of the month."""
    last = calendar.monthrange(year, month)[1]
    return date(year, month, max(1, min(day, last)))


def resolve_due_date(due: DueDate, today: date) -> Optional[date]:
    """Turn a stored due date into an absolute date.

    A day-of-month resolves to its next occurrence on or after ``today``.
    """
    if due is None:
        return None
    if isinstance(due, datetime):
        return due.date()
    if isinstance(due, date):
        return due
    if isinstance(due, int) and not isinstance(due, bool):
        if not 1 <= due <= 31:
            raise ValueError(f"Day of month must be between 1 and 31, got {due}")
        candidate = safe_date(today.year, today.month, due)
        if candidate < today:
            following = today + relativedelta(months=1)
            candidate = safe_date(following.year, following.month, due)
        return candidate
    raise ValueError(f"Unsupported due date: {due!r}")


def _cycle_delta(cycles: int, cycle: Frequency) -> Any:
    if cycle is Frequency.WEEKLY:
        return timedelta(weeks=cycles)
    if cycle is Frequency.FORTNIGHTLY:
        return timedelta(weeks=2 * cycles)
    if cycle is Frequency.TWICE_MONTHLY:
        months, half = divmod(cycles, 2)
        return relativedelta(months=months, days=15 * half)
    if cycle is Frequency.MONTHLY:
        return relativedelta(months=cycles)
    if cycle is Frequency.QUARTERLY:
        return relativedelta(months=3 * cycles)
    if cycle is Frequency.ANNUAL:
        return relativedelta(years=cycles)
    raise InvalidFrequency(cycle)


def add_cycles(start: date, cycles: int, cycle: FrequencyLike) -> date:
    """Step ``cycles`` whole cycles from ``start`` (negative steps go back)."""
    return start + _cycle_delta(cycles, Frequency.parse(cycle))


def cycles_between(start: date, end: date, cycle: FrequencyLike) -> int:
    """Count whole cycles ``k >= 1`` with ``start + k cycles <= end``.

    Each step is measured from ``start`` so month lengths never accumulate
    rounding.
    """
    parsed = Frequency.parse(cycle)
    cycles_per_year(parsed)
    if end <= start:
        return 0
    count = 0
    while add_cycles(start, count + 1, parsed) <= end:
        count += 1
    return count


def previous_due_date(due: date, frequency: FrequencyLike) -> date:
    """Start of the saving period that ends on ``due``.

    Envelopes without a frequency are treated as saved for over a year.
    """
    parsed = Frequency.parse(frequency)
    if parsed is Frequency.NONE:
        return due - relativedelta(years=1)
    return add_cycles(due, -1, parsed)
