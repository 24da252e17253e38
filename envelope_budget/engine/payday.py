"""Payday allocation: split one pay between regular allocations and surplus.

For a single income event the allocator sums what each envelope normally
receives per pay, reports the surplus or shortfall, checks every envelope
against where its funding schedule says it should be, and ranks suggestions
for any surplus.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..formatting import format_currency
from ..models import Envelope, Frequency, Priority
from ..money import from_cents, split_proportionally, to_cents
from .config import get_constant, get_engine_config
from .pay_cycle import (
    FrequencyLike,
    cycles_between,
    cycles_per_year,
    envelope_pay_cycle_amount,
    previous_due_date,
    resolve_due_date,
)

logger = logging.getLogger(__name__)

STATUS_AVAILABLE = 'available'
STATUS_EXACT = 'exact'
STATUS_SHORTFALL = 'shortfall'

GAP_AHEAD = 'ahead'
GAP_ON_TRACK = 'on-track'
GAP_BEHIND = 'behind'

SUGGEST_TOP_UP = 'top-up'
SUGGEST_SPLIT = 'split'
SUGGEST_NEW_GOAL = 'new-goal'
SUGGEST_BUFFER = 'buffer'


@dataclass(frozen=True)
class RegularAllocation:
    envelope_id: str
    name: str
    priority: Priority
    amount: float


@dataclass(frozen=True)
class EnvelopeHealth:
    envelope_id: str
    name: str
    priority: Priority
    due_date: Optional[date]
    total_due_amount: float
    current_balance: float
    should_have_saved: float
    gap: float
    gap_status: str
    percent_complete: float
    regular_per_pay: float
    pays_until_due: Optional[int]


@dataclass(frozen=True)
class SurplusSuggestion:
    rank: int
    type: str
    suggested_amount: float
    reason: str
    impact: str
    envelope_id: Optional[str] = None
    envelope_name: Optional[str] = None
    # Per-envelope amounts for split suggestions.
    allocations: Tuple[Tuple[str, float], ...] = ()


@dataclass(frozen=True)
class PaydaySummary:
    essential_total: float
    important_total: float
    discretionary_total: float
    behind_count: int
    total_gap: float


@dataclass(frozen=True)
class PaydayAllocation:
    pay_amount: float
    pay_cycle: Frequency
    regular_allocations: List[RegularAllocation]
    total_regular: float
    surplus: float
    surplus_status: str
    envelope_health: List[EnvelopeHealth]
    suggestions: List[SurplusSuggestion]
    summary: PaydaySummary


@dataclass(frozen=True)
class SurplusApplication:
    regular_allocations: List[RegularAllocation]
    surplus_allocations: List[Tuple[str, float]]
    remaining_surplus: float


@dataclass(frozen=True)
class DistributionLine:
    envelope_id: str
    name: str
    amount: float
    percent_of_needed: float


@dataclass(frozen=True)
class InitialDistribution:
    envelope_health: List[EnvelopeHealth]
    total_needed: float
    can_fully_fund: bool
    allocations: List[DistributionLine] = field(default_factory=list)
    remaining_balance: float = 0.0


def compute_payday_allocation(
    pay_amount: float,
    envelopes: Sequence[Envelope],
    *,
    pay_cycle: Optional[FrequencyLike] = None,
    today: Optional[date] = None,
) -> PaydayAllocation:
    """Work out how a single pay should be split across envelopes.

    Args:
        pay_amount: The incoming pay
        envelopes: Live envelope snapshots
        pay_cycle: The user's pay cycle (defaults to the configured one)
        today: Reference date for the health checks

    Returns:
        :class:`PaydayAllocation` with regular allocations grouped by priority
        tier, the surplus and its status, per-envelope health and ranked
        surplus suggestions.
    """
    cycle = Frequency.parse(pay_cycle or get_constant('default_pay_cycle'))
    cycles_per_year(cycle)
    today = today or date.today()
    tolerance = to_cents(get_constant('balance_tolerance'))
    order = _creation_order(envelopes)

    regular = _regular_allocations(envelopes, cycle, order)
    total_regular_cents = sum(to_cents(a.amount) for a in regular)
    surplus_cents = to_cents(pay_amount) - total_regular_cents
    if surplus_cents > tolerance:
        status = STATUS_AVAILABLE
    elif surplus_cents < -tolerance:
        status = STATUS_SHORTFALL
    else:
        status = STATUS_EXACT

    health = calculate_all_envelope_health(envelopes, cycle, today=today)
    behind = _ranked_behind(health, order)
    suggestions = _surplus_suggestions(behind, surplus_cents if status == STATUS_AVAILABLE else 0, tolerance)

    tier_totals = {p: 0 for p in Priority}
    for alloc in regular:
        tier_totals[alloc.priority] += to_cents(alloc.amount)

    logger.debug(
        "Payday %s: regular %s, surplus %s (%s), %d suggestions",
        pay_amount, from_cents(total_regular_cents), from_cents(surplus_cents), status, len(suggestions),
    )
    return PaydayAllocation(
        pay_amount=from_cents(to_cents(pay_amount)),
        pay_cycle=cycle,
        regular_allocations=regular,
        total_regular=from_cents(total_regular_cents),
        surplus=from_cents(surplus_cents),
        surplus_status=status,
        envelope_health=health,
        suggestions=suggestions,
        summary=PaydaySummary(
            essential_total=from_cents(tier_totals[Priority.ESSENTIAL]),
            important_total=from_cents(tier_totals[Priority.IMPORTANT]),
            discretionary_total=from_cents(tier_totals[Priority.DISCRETIONARY]),
            behind_count=len(behind),
            total_gap=from_cents(sum(to_cents(h.gap) for h in behind)),
        ),
    )


def calculate_envelope_health(envelope: Envelope, pay_cycle: FrequencyLike, *, today: date) -> EnvelopeHealth:
    """Compare an envelope's balance with where its saving schedule should be.

    The saving period runs from the previous due date to the next one. The
    envelope should have put aside ``target / pays in period`` for every pay
    so far, capped at the target. A bill that recurs more often than the pay
    cycle should already hold its whole target.
    """
    due = resolve_due_date(envelope.due_date, today)
    target = envelope.target_amount or 0.0
    balance = envelope.current_amount or 0.0
    per_pay = envelope_pay_cycle_amount(envelope, pay_cycle)
    if due is None:
        return EnvelopeHealth(
            envelope_id=envelope.id, name=envelope.name, priority=envelope.priority,
            due_date=None, total_due_amount=target, current_balance=balance,
            should_have_saved=0.0, gap=0.0, gap_status=GAP_ON_TRACK,
            percent_complete=100.0, regular_per_pay=per_pay, pays_until_due=None,
        )

    start = previous_due_date(due, envelope.frequency)
    pays_in_period = cycles_between(start, due, pay_cycle)
    pays_so_far = cycles_between(start, today, pay_cycle)
    if pays_in_period == 0 and due > start:
        # Bill recurs faster than the pay cycle: the next pay has to cover all of it.
        regular_per_pay = target
        should_have_saved = target
    else:
        regular_per_pay = target / pays_in_period if pays_in_period > 0 else 0.0
        should_have_saved = min(regular_per_pay * pays_so_far, target)
    gap_cents = to_cents(should_have_saved) - to_cents(balance)

    band = to_cents(get_constant('on_track_band'))
    if gap_cents < -band:
        gap_status = GAP_AHEAD
    elif gap_cents > band:
        gap_status = GAP_BEHIND
    else:
        gap_status = GAP_ON_TRACK

    return EnvelopeHealth(
        envelope_id=envelope.id,
        name=envelope.name,
        priority=envelope.priority,
        due_date=due,
        total_due_amount=target,
        current_balance=balance,
        should_have_saved=from_cents(to_cents(should_have_saved)),
        gap=from_cents(gap_cents),
        gap_status=gap_status,
        percent_complete=(balance / should_have_saved * 100) if should_have_saved > 0 else 100.0,
        regular_per_pay=from_cents(to_cents(regular_per_pay)),
        pays_until_due=cycles_between(today, due, pay_cycle),
    )


def calculate_all_envelope_health(
    envelopes: Sequence[Envelope],
    pay_cycle: FrequencyLike,
    *,
    today: Optional[date] = None,
) -> List[EnvelopeHealth]:
    """Health for every envelope that receives money (tracking-only skipped)."""
    today = today or date.today()
    return [
        calculate_envelope_health(env, pay_cycle, today=today)
        for env in envelopes
        if not env.is_tracking_only
    ]


def apply_surplus_suggestion(allocation: PaydayAllocation, index: int) -> SurplusApplication:
    """Turn the suggestion at ``index`` into concrete surplus allocations.

    An out-of-range index leaves the surplus untouched.
    """
    if not 0 <= index < len(allocation.suggestions):
        return SurplusApplication(allocation.regular_allocations, [], allocation.surplus)
    suggestion = allocation.suggestions[index]
    surplus_cents = to_cents(allocation.surplus)

    if suggestion.type == SUGGEST_TOP_UP and suggestion.envelope_id:
        amount = to_cents(suggestion.suggested_amount)
        return SurplusApplication(
            allocation.regular_allocations,
            [(suggestion.envelope_id, from_cents(amount))],
            from_cents(surplus_cents - amount),
        )
    if suggestion.type == SUGGEST_SPLIT:
        spent = sum(to_cents(amount) for _, amount in suggestion.allocations)
        return SurplusApplication(
            allocation.regular_allocations,
            list(suggestion.allocations),
            from_cents(surplus_cents - spent),
        )
    return SurplusApplication(allocation.regular_allocations, [], allocation.surplus)


def calculate_initial_distribution(
    current_balance: float,
    envelopes: Sequence[Envelope],
    *,
    pay_cycle: Optional[FrequencyLike] = None,
    today: Optional[date] = None,
) -> InitialDistribution:
    """Distribute money already in the bank to bring envelopes up to schedule.

    Every envelope that is behind gets its full gap when the balance allows;
    otherwise the balance is shared in proportion to each gap.
    """
    cycle = Frequency.parse(pay_cycle or get_constant('default_pay_cycle'))
    health = calculate_all_envelope_health(envelopes, cycle, today=today)
    needed = [max(0, to_cents(h.gap)) for h in health]
    total_needed = sum(needed)
    balance_cents = to_cents(current_balance)

    if balance_cents >= total_needed:
        amounts = needed
        remaining = balance_cents - total_needed
    else:
        amounts = split_proportionally(max(0, balance_cents), needed)
        remaining = 0

    lines = [
        DistributionLine(
            envelope_id=h.envelope_id,
            name=h.name,
            amount=from_cents(amount),
            percent_of_needed=(amount / need * 100) if need > 0 else 100.0,
        )
        for h, amount, need in zip(health, amounts, needed)
    ]
    return InitialDistribution(
        envelope_health=health,
        total_needed=from_cents(total_needed),
        can_fully_fund=balance_cents >= total_needed,
        allocations=lines,
        remaining_balance=from_cents(remaining),
    )


def _creation_order(envelopes: Sequence[Envelope]) -> Dict[str, Tuple[Any, ...]]:
    order: Dict[str, Tuple[Any, ...]] = {}
    for env in envelopes:
        if isinstance(env.created_at, datetime):
            order[env.id] = (0, env.created_at.timestamp())
        else:
            order[env.id] = (1, 0.0)
    return order


def _regular_allocations(
    envelopes: Sequence[Envelope],
    pay_cycle: Frequency,
    order: Dict[str, Tuple[Any, ...]],
) -> List[RegularAllocation]:
    tiers = [Priority(p) for p in get_engine_config()['priority_order']]
    rows = []
    for env in envelopes:
        if env.is_tracking_only:
            continue
        amount = envelope_pay_cycle_amount(env, pay_cycle)
        if amount <= 0:
            continue
        rows.append(RegularAllocation(env.id, env.name, env.priority, amount))
    return sorted(rows, key=lambda r: (tiers.index(r.priority), order[r.envelope_id], r.envelope_id))


def _ranked_behind(health: Sequence[EnvelopeHealth], order: Dict[str, Tuple[Any, ...]]) -> List[EnvelopeHealth]:
    behind = [h for h in health if h.gap_status == GAP_BEHIND and h.gap > 0]
    return sorted(behind, key=lambda h: (-to_cents(h.gap), order[h.envelope_id], h.envelope_id))


def _surplus_suggestions(
    behind: Sequence[EnvelopeHealth],
    surplus_cents: int,
    tolerance: int,
) -> List[SurplusSuggestion]:
    if surplus_cents <= 0:
        return []
    texts = get_engine_config()['suggestions']
    suggestions: List[SurplusSuggestion] = []
    remaining = surplus_cents

    for health in behind:
        if remaining <= 0:
            break
        gap = to_cents(health.gap)
        amount = min(remaining, gap)
        remaining -= amount
        suggestions.append(SurplusSuggestion(
            rank=len(suggestions) + 1,
            type=SUGGEST_TOP_UP,
            suggested_amount=from_cents(amount),
            reason=f"{health.pays_until_due} pays until due, {format_currency(health.gap)} behind schedule",
            impact=f"This will reduce the gap to {format_currency(from_cents(gap - amount))}",
            envelope_id=health.envelope_id,
            envelope_name=health.name,
        ))

    gaps = [to_cents(h.gap) for h in behind]
    if len(behind) > 1 and surplus_cents < sum(gaps):
        shares = split_proportionally(surplus_cents, gaps)
        suggestions.append(SurplusSuggestion(
            rank=len(suggestions) + 1,
            type=SUGGEST_SPLIT,
            suggested_amount=from_cents(surplus_cents),
            reason=f"Split {format_currency(from_cents(surplus_cents))} across {len(behind)} behind envelopes",
            impact=texts['split_impact'],
            allocations=tuple((h.envelope_id, from_cents(s)) for h, s in zip(behind, shares)),
        ))

    if remaining > tolerance:
        for kind, reason, impact in (
            (SUGGEST_NEW_GOAL, texts['new_goal_reason'], texts['new_goal_impact']),
            (SUGGEST_BUFFER, texts['buffer_reason'], texts['buffer_impact']),
        ):
            suggestions.append(SurplusSuggestion(
                rank=len(suggestions) + 1,
                type=kind,
                suggested_amount=from_cents(remaining),
                reason=reason,
                impact=impact,
            ))
    return suggestions
