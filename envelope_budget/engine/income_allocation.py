"""Income allocation across envelopes (zero-based budgeting).

Each envelope records how much of its per-cycle contribution every income
source funds. A budget is balanced when, for each active income source, the
allocations across all envelopes add up to exactly that source's amount.

The engine never auto-balances cells the user did not touch. It recomputes the
per-source totals for display and refuses to commit an unbalanced budget.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..errors import InvalidAmount, UnbalancedAllocation, UnknownEntity
from ..models import Envelope, IncomeSource
from ..money import from_cents, split_evenly, to_cents
from .config import get_constant
from .pay_cycle import FrequencyLike, envelope_pay_cycle_amount

logger = logging.getLogger(__name__)

ROUTING_MANUAL = 'manual'
ROUTING_AUTO = 'auto-distribute'
ROUTING_SINGLE_SOURCE = 'single-source'


@dataclass(frozen=True)
class AllocationEdit:
    """Set the amount ``source_id`` contributes to ``envelope_id`` each cycle."""

    envelope_id: str
    source_id: str
    amount: float


@dataclass(frozen=True)
class SourceTotals:
    source_id: str
    name: str
    amount: float
    allocated: float
    remaining: float
    is_balanced: bool


@dataclass(frozen=True)
class AllocationResult:
    updated_allocations: Dict[str, Dict[str, float]]
    per_source_totals: Dict[str, SourceTotals]
    balanced: bool
    # Non-exempt envelopes whose funding differs from their contribution
    # (allocated minus required).
    envelope_mismatches: Dict[str, float]
    routing: str = ROUTING_MANUAL

    @property
    def unbalanced_sources(self) -> Dict[str, float]:
        return {
            sid: totals.remaining
            for sid, totals in self.per_source_totals.items()
            if not totals.is_balanced
        }

    def apply_to(self, envelopes: Iterable[Envelope]) -> List[Envelope]:
        """Return copies of ``envelopes`` carrying the updated allocations."""
        return [
            replace(env, income_allocations=dict(self.updated_allocations.get(env.id, {})))
            for env in envelopes
        ]


def allocate_income(
    envelopes: Sequence[Envelope],
    income_sources: Sequence[IncomeSource],
    edits: Iterable[AllocationEdit] = (),
    *,
    pay_cycle: Optional[FrequencyLike] = None,
    auto_distribute: bool = False,
) -> AllocationResult:
    """Apply allocation edits and report per-source totals.

    Args:
        envelopes: Envelope snapshots with their current allocations
        income_sources: Income sources, amounts already per pay cycle
        edits: Cell updates to apply, in order
        pay_cycle: The user's pay cycle (defaults to the configured one)
        auto_distribute: Split each envelope's contribution evenly across
            active sources before applying ``edits``

    Returns:
        :class:`AllocationResult`. With exactly one active income source every
        envelope's contribution is routed to it and ``edits`` are ignored.

    Raises:
        UnknownEntity: If an edit names an unknown envelope or source
        InvalidAmount: If an edit is negative or targets a tracking-only envelope
    """
    pay_cycle = pay_cycle or get_constant('default_pay_cycle')
    edits = list(edits)
    envelope_index = {env.id: env for env in envelopes}
    source_index = {src.id: src for src in income_sources}
    active = [src for src in income_sources if src.is_active]
    _validate_edits(edits, envelope_index, source_index)

    funded = [env for env in envelopes if not env.is_tracking_only]
    required = {env.id: to_cents(envelope_pay_cycle_amount(env, pay_cycle)) for env in funded}
    cells: Dict[str, Dict[str, int]] = {
        env.id: {sid: to_cents(amount) for sid, amount in env.income_allocations.items()}
        for env in funded
    }

    if len(active) == 1:
        routing = ROUTING_SINGLE_SOURCE
        only = active[0].id
        for env in funded:
            cells[env.id] = {only: required[env.id]}
        if edits:
            logger.debug("Ignoring %d allocation edits: single active income source %s", len(edits), only)
    else:
        routing = ROUTING_MANUAL
        if auto_distribute and active:
            routing = ROUTING_AUTO
            for env in funded:
                shares = split_evenly(required[env.id], len(active))
                for src, share in zip(active, shares):
                    cells[env.id][src.id] = share
        for edit in edits:
            cells[edit.envelope_id][edit.source_id] = to_cents(edit.amount)

    totals, balanced = _source_totals(active, cells)
    if not active and any(required[env.id] for env in funded if not env.is_exempt):
        # No income can fund the non-exempt contributions.
        balanced = False
    mismatches = _envelope_mismatches(funded, cells, required, {src.id for src in active})
    if not balanced:
        logger.debug("Budget unbalanced for sources: %s", sorted(
            sid for sid, t in totals.items() if not t.is_balanced
        ))

    return AllocationResult(
        updated_allocations={
            env_id: {sid: from_cents(c) for sid, c in row.items() if c}
            for env_id, row in cells.items()
        },
        per_source_totals=totals,
        balanced=balanced,
        envelope_mismatches=mismatches,
        routing=routing,
    )


def commit_allocations(result: AllocationResult) -> Dict[str, Dict[str, float]]:
    """Finalize a budget, refusing to commit one that isn't zero-based.

    Raises:
        UnbalancedAllocation: If any active source has money left over or is
            over-allocated beyond the tolerance
    """
    if not result.balanced:
        raise UnbalancedAllocation(result.unbalanced_sources)
    return {env_id: dict(row) for env_id, row in result.updated_allocations.items()}


def _validate_edits(
    edits: Sequence[AllocationEdit],
    envelope_index: Mapping[str, Envelope],
    source_index: Mapping[str, IncomeSource],
) -> None:
    for edit in edits:
        envelope = envelope_index.get(edit.envelope_id)
        if envelope is None:
            raise UnknownEntity('envelope', edit.envelope_id)
        if edit.source_id not in source_index:
            raise UnknownEntity('income source', edit.source_id)
        if to_cents(edit.amount) < 0:
            raise InvalidAmount(edit.amount)
        if envelope.is_tracking_only:
            raise InvalidAmount(edit.amount, f"envelope {envelope.id} is tracking-only")


def _source_totals(
    active: Sequence[IncomeSource],
    cells: Mapping[str, Mapping[str, int]],
) -> Tuple[Dict[str, SourceTotals], bool]:
    tolerance = to_cents(get_constant('balance_tolerance'))
    totals: Dict[str, SourceTotals] = {}
    for src in active:
        allocated = sum(row.get(src.id, 0) for row in cells.values())
        remaining = to_cents(src.amount) - allocated
        totals[src.id] = SourceTotals(
            source_id=src.id,
            name=src.name,
            amount=from_cents(to_cents(src.amount)),
            allocated=from_cents(allocated),
            remaining=from_cents(remaining),
            is_balanced=abs(remaining) <= tolerance,
        )
    return totals, all(t.is_balanced for t in totals.values())


def _envelope_mismatches(
    funded: Sequence[Envelope],
    cells: Mapping[str, Mapping[str, int]],
    required: Mapping[str, int],
    active_ids: set,
) -> Dict[str, float]:
    mismatches: Dict[str, float] = {}
    for env in funded:
        if env.is_exempt:
            continue
        allocated = sum(c for sid, c in cells[env.id].items() if sid in active_ids)
        diff = allocated - required[env.id]
        if diff:
            mismatches[env.id] = from_cents(diff)
    return mismatches
