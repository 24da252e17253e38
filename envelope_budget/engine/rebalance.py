"""Cover overspent envelopes by drawing from envelopes with money to spare."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..errors import InsufficientSurplus
from ..models import Envelope, Transfer
from ..money import from_cents, to_cents
from .config import get_engine_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RebalancePlan:
    transfers: List[Transfer]
    can_balance: bool
    total_overspent: float
    total_surplus: float
    created_at: Optional[datetime] = field(default=None, compare=False)

    @property
    def shortfall(self) -> float:
        """Overspending the surplus cannot cover (0 when fully balanced)."""
        return from_cents(max(0, to_cents(self.total_overspent) - to_cents(self.total_surplus)))

    @property
    def total_transferred(self) -> float:
        return from_cents(sum(to_cents(t.amount) for t in self.transfers))

    def balance_deltas(self) -> Dict[str, float]:
        """Net change to each envelope's balance if the plan is applied."""
        deltas: Dict[str, int] = {}
        for t in self.transfers:
            cents = to_cents(t.amount)
            deltas[t.from_id] = deltas.get(t.from_id, 0) - cents
            deltas[t.to_id] = deltas.get(t.to_id, 0) + cents
        return {env_id: from_cents(c) for env_id, c in deltas.items()}

    def apply_to(self, envelopes: Iterable[Envelope]) -> List[Envelope]:
        """Return envelope snapshots with the transfers applied."""
        deltas = {k: to_cents(v) for k, v in self.balance_deltas().items()}
        return [
            replace(env, current_amount=from_cents(to_cents(env.current_amount) + deltas[env.id]))
            if env.id in deltas else env
            for env in envelopes
        ]

    def require_balanced(self) -> 'RebalancePlan':
        """Return the plan, or raise if it leaves overspending uncovered.

        Raises:
            InsufficientSurplus: If the surplus is smaller than the overspending
        """
        if not self.can_balance:
            raise InsufficientSurplus(self.total_overspent, self.total_surplus)
        return self


def partition_envelopes(envelopes: Iterable[Envelope]) -> Tuple[List[Envelope], List[Envelope]]:
    """Split envelopes into (overspent, surplus).

    Overspent envelopes have a negative balance. Surplus envelopes hold a
    positive balance and have a target, so untargeted holding envelopes are
    never raided.
    """
    overspent: List[Envelope] = []
    surplus: List[Envelope] = []
    for env in envelopes:
        if to_cents(env.current_amount) < 0:
            overspent.append(env)
        elif to_cents(env.current_amount) > 0 and to_cents(env.target_amount) > 0:
            surplus.append(env)
    return overspent, surplus


def plan_rebalance(
    overspent_envelopes: Sequence[Envelope],
    surplus_envelopes: Sequence[Envelope],
    *,
    now: Optional[datetime] = None,
) -> RebalancePlan:
    """Plan transfers that pull surplus money into overspent envelopes.

    The most overspent envelope is covered first, drawing on the largest
    surplus first. A plan that cannot cover everything still moves whatever
    is available; check ``can_balance``.

    Example:
        >>> plan = plan_rebalance(
        ...     [Envelope('food', 'Food', 200, -50)],
        ...     [Envelope('fun', 'Fun', 100, 80)])
        >>> [(t.from_id, t.to_id, t.amount) for t in plan.transfers]
        [('fun', 'food', 50.0)]
    """
    now = now or datetime.now()
    template = get_engine_config()['transfer_note_template']
    overspent, _ = partition_envelopes(overspent_envelopes)
    _, surplus = partition_envelopes(surplus_envelopes)
    overspent_ids = {env.id for env in overspent}
    surplus = [env for env in surplus if env.id not in overspent_ids]

    deficits = _ranked(overspent, lambda env: -to_cents(env.current_amount))
    sources = _ranked(surplus, lambda env: to_cents(env.current_amount))
    available = {env.id: to_cents(env.current_amount) for env in sources}
    total_overspent = sum(-to_cents(env.current_amount) for env in deficits)
    total_surplus = sum(available.values())

    transfers: List[Transfer] = []
    for target in deficits:
        needed = -to_cents(target.current_amount)
        for source in sources:
            if needed == 0:
                break
            amount = min(available[source.id], needed)
            if amount == 0:
                continue
            available[source.id] -= amount
            needed -= amount
            transfers.append(Transfer(
                from_id=source.id,
                to_id=target.id,
                amount=from_cents(amount),
                created_at=now,
                note=template.format(from_name=source.name, to_name=target.name),
            ))

    can_balance = total_surplus >= total_overspent
    if not can_balance:
        logger.warning(
            "Surplus %s cannot cover %s overspent",
            from_cents(total_surplus), from_cents(total_overspent),
        )
    logger.debug("Planned %d rebalance transfers", len(transfers))
    return RebalancePlan(
        transfers=transfers,
        can_balance=can_balance,
        total_overspent=from_cents(total_overspent),
        total_surplus=from_cents(total_surplus),
        created_at=now,
    )


def _ranked(envelopes: Sequence[Envelope], amount_key) -> List[Envelope]:
    """Largest amount first; ties by creation time, then id."""
    def key(env):
        created = (0, env.created_at.timestamp()) if env.created_at else (1, 0.0)
        return (-amount_key(env), created, env.id)

    return sorted(envelopes, key=key)
