"""Month-by-month amortization of a single debt.

Interest accrues monthly at ``apr / 12`` on the outstanding balance and is
rounded to the cent each month; the final payment only covers what is owed.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence, Tuple

import pandas as pd

from ..errors import InvalidAmount, PaymentTooLow, ProjectionDivergent
from ..models import DebtItem, PayoffProjection
from ..money import from_cents, to_cents
from .config import get_constant

logger = logging.getLogger(__name__)

SCHEDULE_COLUMNS = ['month', 'payment', 'interest', 'principal', 'balance']


@dataclass(frozen=True)
class ScheduleRow:
    month: int
    payment: float
    interest: float
    principal: float
    balance: float


@dataclass(frozen=True)
class PayoffResult:
    months_to_payoff: int
    total_interest_paid: float
    total_paid: float
    schedule: List[ScheduleRow] = field(default_factory=list)


@dataclass(frozen=True)
class PaymentComparison:
    minimum: PayoffResult
    increased: PayoffResult
    months_saved: int
    interest_saved: float


def project_payoff(
    balance: float,
    apr: Optional[float],
    monthly_payment: float,
    *,
    max_months: Optional[int] = None,
) -> PayoffResult:
    """Project how long a fixed monthly payment takes to clear ``balance``.

    Args:
        balance: Outstanding balance
        apr: Annual rate as a fraction (``0.24`` for 24%); ``None`` means 0
        monthly_payment: Amount paid each month
        max_months: Cap on the schedule length (defaults to the configured one)

    Returns:
        :class:`PayoffResult` with one schedule row per month

    Raises:
        PaymentTooLow: If a month's payment does not exceed that month's interest
        ProjectionDivergent: If the debt is still owing after ``max_months``

    Example:
        >>> result = project_payoff(1000, 0, 250)
        >>> result.months_to_payoff, result.total_paid
        (4, 1000.0)
    """
    if apr is not None and apr < 0:
        raise InvalidAmount(apr, "APR must not be negative")
    cap = int(max_months if max_months is not None else get_constant('max_projection_months'))
    remaining = to_cents(balance)
    if remaining <= 0:
        return PayoffResult(0, 0.0, 0.0, [])

    rate = Decimal(str(apr or 0)) / 12
    payment = to_cents(monthly_payment)
    schedule: List[ScheduleRow] = []
    total_interest = 0
    total_paid = 0

    while remaining > 0:
        if len(schedule) >= cap:
            raise ProjectionDivergent(cap, from_cents(remaining))
        interest = int((remaining * rate).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
        principal = payment - interest
        if principal <= 0:
            raise PaymentTooLow(from_cents(payment), from_cents(interest))
        if principal > remaining:
            principal = remaining
        paid = principal + interest
        remaining -= principal
        total_interest += interest
        total_paid += paid
        schedule.append(ScheduleRow(
            month=len(schedule) + 1,
            payment=from_cents(paid),
            interest=from_cents(interest),
            principal=from_cents(principal),
            balance=from_cents(remaining),
        ))

    logger.debug(
        "Projected %s at %s APR paying %s: %d months, %s interest",
        balance, apr, monthly_payment, len(schedule), from_cents(total_interest),
    )
    return PayoffResult(
        months_to_payoff=len(schedule),
        total_interest_paid=from_cents(total_interest),
        total_paid=from_cents(total_paid),
        schedule=schedule,
    )


def compare_payments(
    balance: float,
    apr: Optional[float],
    minimum_payment: float,
    increased_payment: float,
) -> PaymentComparison:
    """Compare paying the minimum with paying ``increased_payment`` each month."""
    minimum = project_payoff(balance, apr, minimum_payment)
    increased = project_payoff(balance, apr, increased_payment)
    return PaymentComparison(
        minimum=minimum,
        increased=increased,
        months_saved=minimum.months_to_payoff - increased.months_to_payoff,
        interest_saved=from_cents(to_cents(minimum.total_interest_paid) - to_cents(increased.total_interest_paid)),
    )


def project_debt(debt: DebtItem, extra_payment: float = 0.0) -> PayoffResult:
    """Project payoff for ``debt`` paying its minimum plus ``extra_payment``."""
    if extra_payment < 0:
        raise InvalidAmount(extra_payment)
    payment = (debt.minimum_payment or 0.0) + extra_payment
    return project_payoff(debt.current_balance, debt.interest_rate, payment)


def build_projection_record(
    debt: DebtItem,
    extra_payment: float = 0.0,
    *,
    now: Optional[datetime] = None,
    projection_id: Optional[str] = None,
) -> PayoffProjection:
    """Snapshot a projection for ``debt`` ready to be stored."""
    result = project_debt(debt, extra_payment)
    return PayoffProjection(
        id=projection_id or uuid.uuid4().hex,
        debt_id=debt.id,
        starting_balance=debt.starting_balance,
        current_balance=debt.current_balance,
        apr=debt.interest_rate,
        minimum_payment=debt.minimum_payment or 0.0,
        extra_payment=extra_payment,
        months_to_payoff=result.months_to_payoff,
        total_interest=result.total_interest_paid,
        is_active=True,
        created_at=now or datetime.now(),
    )


def supersede_projection(
    existing: Sequence[PayoffProjection],
    new: PayoffProjection,
) -> Tuple[List[PayoffProjection], PayoffProjection]:
    """Deactivate the debt's current projections in favour of ``new``.

    Returns the deactivated copies of previously active projections for the
    same debt, and ``new`` marked active. At most one projection per debt is
    ever active.
    """
    retired = [
        replace(p, is_active=False)
        for p in existing
        if p.debt_id == new.debt_id and p.is_active and p.id != new.id
    ]
    return retired, replace(new, is_active=True)


def schedule_frame(result: PayoffResult) -> pd.DataFrame:
    """Return the payoff schedule as a DataFrame with cumulative interest."""
    if not result.schedule:
        return pd.DataFrame(columns=SCHEDULE_COLUMNS + ['cumulative_interest'], dtype=float)
    df = pd.DataFrame([asdict(row) for row in result.schedule], columns=SCHEDULE_COLUMNS)
    df['cumulative_interest'] = df['interest'].cumsum().round(2)
    return df
