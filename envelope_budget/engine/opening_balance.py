"""Opening balance calculation for envelopes with a due date.

Works backward from the due date: whatever the planned per-cycle contribution
will not accumulate before the bill falls due must already be sitting in the
envelope today.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from ..formatting import format_currency
from ..models import DueDate, Envelope, Frequency
from ..money import from_cents, to_cents
from .config import get_constant
from .pay_cycle import FrequencyLike, cycles_between, cycles_per_year, envelope_pay_cycle_amount, resolve_due_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpeningBalanceResult:
    opening_balance_needed: float
    cycles_until_due: int
    projected_accumulation: float
    is_fully_funded: bool
    due_date: Optional[date] = None
    warning: Optional[str] = None


def calculate_opening_balance(
    target: float,
    frequency: FrequencyLike,
    due_date: DueDate,
    per_cycle_allocation: float,
    pay_cycle: FrequencyLike,
    *,
    today: Optional[date] = None,
) -> OpeningBalanceResult:
    """Compute how much an envelope must hold today to hit ``target`` on time.

    Args:
        target: Amount the envelope must hold on its due date
        frequency: Bill frequency (validated; ``none`` is allowed)
        due_date: Absolute date, day of month, or ``None``
        per_cycle_allocation: Planned contribution per pay cycle
        pay_cycle: The user's pay cycle
        today: Reference date, defaults to :meth:`date.today`

    Returns:
        :class:`OpeningBalanceResult`. A missing or past due date counts as
        already due, so the whole target is needed up front.

    Example:
        >>> result = calculate_opening_balance(
        ...     1200, 'monthly', date(2024, 4, 1), 300, 'monthly', today=date(2024, 1, 1))
        >>> result.projected_accumulation, result.opening_balance_needed
        (900.0, 300.0)
    """
    Frequency.parse(frequency)
    cycles_per_year(pay_cycle)
    today = today or date.today()

    resolved_due = resolve_due_date(due_date, today)
    cycles_until_due = cycles_between(today, resolved_due, pay_cycle) if resolved_due else 0

    target_cents = to_cents(target)
    accumulation_cents = to_cents(per_cycle_allocation) * cycles_until_due
    needed_cents = max(0, target_cents - accumulation_cents)

    warning = None
    if to_cents(per_cycle_allocation) == 0 and target_cents > 0 and _within_horizon(resolved_due, today):
        due_label = resolved_due.isoformat() if resolved_due else 'now'
        warning = (
            f"No per-cycle contribution planned for a {format_currency(target)} target "
            f"due {due_label}; the full amount is needed up front"
        )
        logger.warning(warning)

    return OpeningBalanceResult(
        opening_balance_needed=from_cents(needed_cents),
        cycles_until_due=cycles_until_due,
        projected_accumulation=from_cents(accumulation_cents),
        is_fully_funded=accumulation_cents >= target_cents,
        due_date=resolved_due,
        warning=warning,
    )


def calculate_envelope_opening_balance(
    envelope: Envelope,
    pay_cycle: FrequencyLike,
    *,
    today: Optional[date] = None,
) -> OpeningBalanceResult:
    """Opening balance for ``envelope`` using its own per-cycle contribution."""
    return calculate_opening_balance(
        envelope.target_amount,
        envelope.frequency,
        envelope.due_date,
        envelope_pay_cycle_amount(envelope, pay_cycle),
        pay_cycle,
        today=today,
    )


def _within_horizon(due: Optional[date], today: date) -> bool:
    if due is None:
        return True
    return (due - today).days <= int(get_constant('planning_horizon_days'))
