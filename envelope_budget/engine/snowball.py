"""Debt snowball: pay the smallest balance first, roll the rest forward."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from ..errors import InvalidPaymentAmount
from ..models import DebtItem
from ..money import from_cents, to_cents

logger = logging.getLogger(__name__)

EVENT_DEBT_PAID_OFF = 'debt_paid_off'
EVENT_ALL_DEBTS_CLEARED = 'all_debts_cleared'


@dataclass(frozen=True)
class DebtEvent:
    kind: str
    debt_id: Optional[str] = None
    debt_name: Optional[str] = None
    amount: float = 0.0


@dataclass(frozen=True)
class BalanceChange:
    debt_id: str
    previous_balance: float
    new_balance: float
    amount_applied: float


@dataclass(frozen=True)
class SnowballResult:
    updated_debts: List[DebtItem]
    paid_off_debts: List[DebtItem]
    payment_applied: float
    remaining_payment: float
    events: List[DebtEvent] = field(default_factory=list)
    balance_changes: List[BalanceChange] = field(default_factory=list)

    @property
    def all_cleared(self) -> bool:
        return any(e.kind == EVENT_ALL_DEBTS_CLEARED for e in self.events)


@dataclass(frozen=True)
class DebtSummary:
    total_debt: float
    total_paid_off: float
    total_starting: float
    progress_percent: float
    debt_count: int
    paid_off_count: int
    next_to_payoff: Optional[DebtItem]


def sort_by_snowball(debts: Sequence[DebtItem]) -> List[DebtItem]:
    """Order debts smallest balance first; paid-off debts go last.

    Ties are broken by id so the order never depends on input order.
    """
    active = sorted(
        (d for d in debts if d.is_active),
        key=lambda d: (to_cents(d.current_balance), d.id),
    )
    settled = sorted(
        (d for d in debts if not d.is_active),
        key=lambda d: (d.paid_off_at is None, d.paid_off_at or datetime.min, d.id),
    )
    return active + settled


def apply_snowball_payment(
    debts: Sequence[DebtItem],
    payment_amount: float,
    *,
    now: Optional[datetime] = None,
) -> SnowballResult:
    """Apply one payment to a set of debts using the snowball method.

    Args:
        debts: Snapshots of every debt in the envelope
        payment_amount: Amount paid, must be positive
        now: Timestamp stamped on debts that reach zero

    Returns:
        :class:`SnowballResult`. Any payment left after every debt is cleared
        is reported in ``remaining_payment`` rather than raised.

    Raises:
        InvalidPaymentAmount: If ``payment_amount`` is not a positive number

    Example:
        >>> debts = [DebtItem(str(i), 'env', f'd{i}', b, b) for i, b in enumerate([10, 50, 75, 200])]
        >>> result = apply_snowball_payment(debts, 80)
        >>> [d.current_balance for d in result.updated_debts]
        [55.0, 200.0, 0.0, 0.0]
    """
    payment_cents = _payment_cents(payment_amount)
    now = now or datetime.now()

    remaining = payment_cents
    updated: List[DebtItem] = []
    paid_off: List[DebtItem] = []
    changes: List[BalanceChange] = []
    events: List[DebtEvent] = []

    for debt in debts:
        if debt.paid_off_at is None and to_cents(debt.current_balance) <= 0:
            # Already at zero but never stamped.
            updated.append(replace(debt, current_balance=0.0, paid_off_at=now))
        elif not debt.is_active:
            updated.append(debt)

    for debt in sorted((d for d in debts if d.is_active), key=lambda d: (to_cents(d.current_balance), d.id)):
        balance = to_cents(debt.current_balance)
        applied = min(remaining, balance)
        if applied == 0:
            updated.append(debt)
            continue
        remaining -= applied
        new_balance = balance - applied
        if new_balance == 0:
            debt = replace(debt, current_balance=0.0, paid_off_at=now)
            paid_off.append(debt)
            events.append(DebtEvent(EVENT_DEBT_PAID_OFF, debt.id, debt.name, debt.starting_balance))
            logger.info("Debt %s (%s) paid off", debt.id, debt.name)
        else:
            debt = replace(debt, current_balance=from_cents(new_balance))
        changes.append(BalanceChange(debt.id, from_cents(balance), from_cents(new_balance), from_cents(applied)))
        updated.append(debt)

    if paid_off and not any(d.is_active for d in updated):
        events.append(DebtEvent(EVENT_ALL_DEBTS_CLEARED))
        logger.info("All debts cleared")

    applied_total = payment_cents - remaining
    logger.debug(
        "Snowball payment %s: applied %s across %d debts, %s left over",
        payment_amount, from_cents(applied_total), len(changes), from_cents(remaining),
    )
    return SnowballResult(
        updated_debts=sort_by_snowball(updated),
        paid_off_debts=paid_off,
        payment_applied=from_cents(applied_total),
        remaining_payment=from_cents(remaining),
        events=events,
        balance_changes=changes,
    )


def summarize_debts(debts: Sequence[DebtItem]) -> DebtSummary:
    """Totals and progress across the debts of one envelope."""
    total_debt = sum(to_cents(d.current_balance) for d in debts if d.is_active)
    total_starting = sum(to_cents(d.starting_balance) for d in debts)
    total_paid = sum(to_cents(d.amount_paid_off) for d in debts)
    ordered = sort_by_snowball(debts)
    next_up = ordered[0] if ordered and ordered[0].is_active else None
    return DebtSummary(
        total_debt=from_cents(total_debt),
        total_paid_off=from_cents(total_paid),
        total_starting=from_cents(total_starting),
        progress_percent=(total_paid / total_starting * 100) if total_starting > 0 else 0.0,
        debt_count=len(debts),
        paid_off_count=sum(1 for d in debts if not d.is_active),
        next_to_payoff=next_up,
    )


def _payment_cents(amount: float) -> int:
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
        raise InvalidPaymentAmount(amount)
    try:
        cents = to_cents(amount)
    except (ArithmeticError, ValueError):
        raise InvalidPaymentAmount(amount) from None
    if cents <= 0:
        raise InvalidPaymentAmount(amount)
    return cents
