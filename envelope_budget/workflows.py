"""Store-backed operations.

Each workflow opens one write transaction, re-reads the state it needs inside
it, runs the pure engine and writes the outcome before committing. Concurrent
callers are serialised by the database write lock, so a payment or transfer
is never applied twice or lost. Results handed back are re-read after commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence

from . import db
from .engine.income_allocation import AllocationEdit, AllocationResult, allocate_income, commit_allocations
from .engine.pay_cycle import FrequencyLike
from .engine.payday import PaydayAllocation, compute_payday_allocation
from .engine.payoff import build_projection_record
from .engine.rebalance import RebalancePlan, partition_envelopes, plan_rebalance
from .engine.snowball import DebtSummary, SnowballResult, apply_snowball_payment, sort_by_snowball, summarize_debts
from .errors import TransferRejected
from .models import DebtItem, Envelope, PayoffProjection, Transfer
from .money import to_cents

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentOutcome:
    result: SnowballResult
    debts: List[DebtItem]
    summary: DebtSummary


@dataclass(frozen=True)
class RebalanceOutcome:
    plan: RebalancePlan
    envelopes: List[Envelope]


def apply_payment(envelope_id: str, amount: float, *, now: Optional[datetime] = None) -> PaymentOutcome:
    """Apply a snowball payment to the debts held in ``envelope_id``.

    Raises:
        UnknownEntity: If the envelope doesn't exist
        InvalidPaymentAmount: If ``amount`` is not positive
    """
    with db.write_transaction() as conn:
        db.fetch_envelope(envelope_id, conn=conn)
        debts = db.fetch_debts(envelope_id, conn=conn)
        result = apply_snowball_payment(debts, amount, now=now)

        stamped_before = {d.id for d in debts if d.paid_off_at is not None}
        db.apply_balance_deltas(
            debt_deltas={c.debt_id: -c.amount_applied for c in result.balance_changes},
            paid_off={
                d.id: d.paid_off_at
                for d in result.updated_debts
                if d.paid_off_at is not None and d.id not in stamped_before
            },
            conn=conn,
        )

    for event in result.events:
        logger.info("Debt event %s for envelope %s: %s", event.kind, envelope_id, event.debt_name or '')
    debts_after = db.fetch_debts(envelope_id)
    return PaymentOutcome(result, sort_by_snowball(debts_after), summarize_debts(debts_after))


def execute_rebalance(plan: Optional[RebalancePlan] = None, *, now: Optional[datetime] = None) -> RebalanceOutcome:
    """Move money from surplus envelopes into overspent ones.

    Without ``plan`` a fresh one is computed from the stored balances. A plan
    previewed earlier is re-validated against the current balances first.

    Raises:
        TransferRejected: If any transfer is invalid; nothing is applied
    """
    with db.write_transaction() as conn:
        envelopes = db.fetch_envelopes(conn=conn)
        if plan is None:
            overspent, surplus = partition_envelopes(envelopes)
            plan = plan_rebalance(overspent, surplus, now=now)
        _validate_transfers(plan.transfers, envelopes)
        if plan.transfers:
            db.apply_balance_deltas(
                envelope_deltas=plan.balance_deltas(),
                transfers=plan.transfers,
                conn=conn,
            )
    return RebalanceOutcome(plan, db.fetch_envelopes())


def commit_budget(
    edits: Iterable[AllocationEdit] = (),
    auto_distribute: bool = False,
    *,
    pay_cycle: Optional[FrequencyLike] = None,
) -> AllocationResult:
    """Apply allocation edits and store them if every income source balances.

    Raises:
        UnbalancedAllocation: If the edited budget isn't zero-based
    """
    with db.write_transaction() as conn:
        envelopes = db.fetch_envelopes(conn=conn)
        sources = db.fetch_income_sources(conn=conn)
        result = allocate_income(
            envelopes, sources, edits, pay_cycle=pay_cycle, auto_distribute=auto_distribute,
        )
        committed = commit_allocations(result)
        db.replace_allocations({env.id: committed.get(env.id, {}) for env in envelopes}, conn=conn)
    logger.info("Committed budget across %d envelopes (%s)", len(envelopes), result.routing)
    return result


def refresh_projection(
    debt_id: str,
    extra_payment: float = 0.0,
    *,
    now: Optional[datetime] = None,
) -> PayoffProjection:
    """Recompute and store the payoff projection for ``debt_id``.

    Raises:
        UnknownEntity: If the debt doesn't exist
        PaymentTooLow: If minimum plus extra doesn't cover the monthly interest
    """
    with db.write_transaction() as conn:
        debt = db.fetch_debt(debt_id, conn=conn)
        record = build_projection_record(debt, extra_payment, now=now)
        return db.insert_projection(record, conn=conn)


def plan_payday(
    pay_amount: float,
    *,
    pay_cycle: Optional[FrequencyLike] = None,
    today: Optional[date] = None,
) -> PaydayAllocation:
    """Payday allocation for the stored envelopes (read-only)."""
    return compute_payday_allocation(pay_amount, db.fetch_envelopes(), pay_cycle=pay_cycle, today=today)


def _validate_transfers(transfers: Sequence[Transfer], envelopes: Sequence[Envelope]) -> None:
    balances: Dict[str, int] = {env.id: to_cents(env.current_amount) for env in envelopes}
    for t in transfers:
        amount = to_cents(t.amount)
        reason = None
        if t.from_id == t.to_id:
            reason = "source and destination are the same envelope"
        elif t.from_id not in balances:
            reason = f"unknown source envelope {t.from_id}"
        elif t.to_id not in balances:
            reason = f"unknown destination envelope {t.to_id}"
        elif amount <= 0:
            reason = "amount must be positive"
        elif balances[t.from_id] < amount:
            reason = "source envelope no longer holds enough"
        if reason:
            raise TransferRejected(t.from_id, t.to_id, t.amount, reason)
        balances[t.from_id] -= amount
        balances[t.to_id] += amount
