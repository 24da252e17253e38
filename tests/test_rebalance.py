"""Unit tests for envelope_budget.engine.rebalance."""

from datetime import datetime

import pytest

from envelope_budget.engine.rebalance import partition_envelopes, plan_rebalance
from envelope_budget.errors import InsufficientSurplus
from envelope_budget.models import Envelope

NOW = datetime(2024, 6, 1)


def _envelopes():
    return [
        Envelope('food', 'Food', target_amount=400, current_amount=-50),
        Envelope('rent', 'Rent', target_amount=1000, current_amount=-100),
        Envelope('fun', 'Fun', target_amount=100, current_amount=80),
        Envelope('gifts', 'Gifts', target_amount=200, current_amount=120),
        Envelope('float', 'Float', target_amount=0, current_amount=500),
    ]


def test_partition_envelopes():
    overspent, surplus = partition_envelopes(_envelopes())
    assert [e.id for e in overspent] == ['food', 'rent']
    assert [e.id for e in surplus] == ['fun', 'gifts']


def test_largest_deficit_drawn_from_largest_surplus():
    overspent, surplus = partition_envelopes(_envelopes())
    plan = plan_rebalance(overspent, surplus, now=NOW)

    assert [(t.from_id, t.to_id, t.amount) for t in plan.transfers] == [
        ('gifts', 'rent', 100.0),
        ('gifts', 'food', 20.0),
        ('fun', 'food', 30.0),
    ]
    assert plan.transfers[0].note == 'Auto-balance: Gifts -> Rent'
    assert plan.transfers[0].created_at == NOW
    assert plan.can_balance
    assert plan.total_overspent == 150.0
    assert plan.total_surplus == 200.0
    assert plan.total_transferred == 150.0
    assert plan.shortfall == 0.0
    assert plan.require_balanced() is plan


def test_balance_deltas_and_apply_to():
    envelopes = _envelopes()
    plan = plan_rebalance(*partition_envelopes(envelopes), now=NOW)
    assert plan.balance_deltas() == {'gifts': -120.0, 'rent': 100.0, 'food': 50.0, 'fun': -30.0}

    balances = {e.id: e.current_amount for e in plan.apply_to(envelopes)}
    assert balances == {'food': 0.0, 'rent': 0.0, 'fun': 50.0, 'gifts': 0.0, 'float': 500}
    assert envelopes[0].current_amount == -50


def test_insufficient_surplus_moves_what_it_can():
    overspent = [Envelope('rent', 'Rent', 1000, -300)]
    surplus = [Envelope('fun', 'Fun', 100, 100)]
    plan = plan_rebalance(overspent, surplus, now=NOW)

    assert [(t.from_id, t.amount) for t in plan.transfers] == [('fun', 100.0)]
    assert not plan.can_balance
    assert plan.shortfall == 200.0
    with pytest.raises(InsufficientSurplus) as excinfo:
        plan.require_balanced()
    assert excinfo.value.shortfall == 200.0


def test_inputs_are_refiltered():
    overspent = [Envelope('rent', 'Rent', 1000, -30), Envelope('ok', 'Fine', 100, 20)]
    surplus = [Envelope('fun', 'Fun', 100, 50), Envelope('float', 'Float', 0, 500), Envelope('rent', 'Rent', 1000, -30)]
    plan = plan_rebalance(overspent, surplus, now=NOW)
    assert [(t.from_id, t.to_id, t.amount) for t in plan.transfers] == [('fun', 'rent', 30.0)]


def test_equal_surplus_drawn_in_creation_order():
    overspent = [Envelope('rent', 'Rent', 1000, -30)]
    surplus = [
        Envelope('a', 'Newer', 100, 50, created_at=datetime(2024, 2, 1)),
        Envelope('b', 'Older', 100, 50, created_at=datetime(2024, 1, 1)),
    ]
    plan = plan_rebalance(overspent, surplus, now=NOW)
    assert [t.from_id for t in plan.transfers] == ['b']


def test_transfers_sum_exactly_in_cents():
    overspent = [Envelope('a', 'A', 10, -0.1), Envelope('b', 'B', 10, -0.2)]
    surplus = [Envelope('c', 'C', 10, 0.3)]
    plan = plan_rebalance(overspent, surplus, now=NOW)
    assert sum(round(t.amount * 100) for t in plan.transfers) == 30
    assert plan.can_balance


def test_nothing_overspent_gives_empty_plan():
    plan = plan_rebalance([], [Envelope('fun', 'Fun', 100, 80)], now=NOW)
    assert plan.transfers == []
    assert plan.can_balance
