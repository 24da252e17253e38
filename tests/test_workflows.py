"""Tests for the store-backed operations in envelope_budget.workflows."""

import threading
from datetime import datetime

import pytest

from envelope_budget import db, workflows
from envelope_budget.engine.income_allocation import AllocationEdit
from envelope_budget.engine.rebalance import partition_envelopes, plan_rebalance
from envelope_budget.errors import TransferRejected, UnbalancedAllocation, UnknownEntity
from envelope_budget.models import DebtItem, Envelope, IncomeSource

NOW = datetime(2024, 6, 1, 12, 0)


@pytest.fixture
def store(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_PATH", tmp_path / "budget.db")
    db.init_db()
    return db


def _seed_debts(store, balances):
    store.save_envelope(Envelope('cards', 'Credit cards', is_tracking_only=True))
    for debt_id, balance in balances.items():
        store.save_debt(DebtItem(debt_id, 'cards', f'Debt {debt_id}', balance, balance))


def test_apply_payment_persists_snowball(store):
    _seed_debts(store, {'a': 10, 'b': 50, 'c': 75, 'd': 200})
    outcome = workflows.apply_payment('cards', 80, now=NOW)

    assert [d.id for d in outcome.result.paid_off_debts] == ['a', 'b']
    stored = {d.id: d for d in store.fetch_debts('cards')}
    assert stored['c'].current_balance == 55.0
    assert stored['a'].paid_off_at == NOW
    assert stored['d'].paid_off_at is None
    assert outcome.summary.total_debt == 255.0
    assert [d.id for d in outcome.debts] == ['c', 'd', 'a', 'b']


def test_apply_payment_unknown_envelope(store):
    with pytest.raises(UnknownEntity):
        workflows.apply_payment('nope', 10)


def test_concurrent_payments_are_serialised(store):
    _seed_debts(store, {'small': 100, 'large': 200})
    barrier = threading.Barrier(4)
    errors = []

    def pay():
        barrier.wait()
        try:
            workflows.apply_payment('cards', 30, now=NOW)
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=pay) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    stored = {d.id: d for d in store.fetch_debts('cards')}
    assert stored['small'].current_balance == 0.0
    assert stored['small'].paid_off_at == NOW
    assert stored['large'].current_balance == 180.0


def _seed_envelopes(store):
    store.save_envelope(Envelope('food', 'Food', 400, -50, created_at=datetime(2024, 1, 1)))
    store.save_envelope(Envelope('rent', 'Rent', 1000, -100, created_at=datetime(2024, 1, 2)))
    store.save_envelope(Envelope('fun', 'Fun', 100, 80, created_at=datetime(2024, 1, 3)))
    store.save_envelope(Envelope('gifts', 'Gifts', 200, 120, created_at=datetime(2024, 1, 4)))


def test_execute_rebalance_moves_money_and_logs_transfers(store):
    _seed_envelopes(store)
    outcome = workflows.execute_rebalance(now=NOW)

    balances = {e.id: e.current_amount for e in outcome.envelopes}
    assert balances == {'food': 0.0, 'rent': 0.0, 'fun': 50.0, 'gifts': 0.0}
    assert len(store.fetch_transfers()) == 3


def test_stale_plan_is_rejected_without_partial_application(store):
    _seed_envelopes(store)
    plan = plan_rebalance(*partition_envelopes(store.fetch_envelopes()), now=NOW)
    store.save_envelope(Envelope('gifts', 'Gifts', 200, 10, created_at=datetime(2024, 1, 4)))

    with pytest.raises(TransferRejected) as excinfo:
        workflows.execute_rebalance(plan)
    assert excinfo.value.from_id == 'gifts'

    balances = {e.id: e.current_amount for e in store.fetch_envelopes()}
    assert balances == {'food': -50.0, 'rent': -100.0, 'fun': 80.0, 'gifts': 10.0}
    assert store.fetch_transfers().empty


def test_commit_budget(store):
    store.save_envelope(Envelope('rent', 'Rent', pay_cycle_amount=1000))
    store.save_envelope(Envelope('food', 'Food', pay_cycle_amount=500))
    store.save_income_source(IncomeSource('job', 'Job', 1000))
    store.save_income_source(IncomeSource('side', 'Side', 500))

    with pytest.raises(UnbalancedAllocation):
        workflows.commit_budget([AllocationEdit('rent', 'job', 900)])
    assert store.fetch_allocations() == {}

    result = workflows.commit_budget([AllocationEdit('rent', 'job', 1000), AllocationEdit('food', 'side', 500)])
    assert result.balanced
    assert store.fetch_allocations() == {'food': {'side': 500.0}, 'rent': {'job': 1000.0}}


def test_refresh_projection_keeps_one_active(store):
    store.save_debt(DebtItem('visa', 'cards', 'Visa', 1500, 1000, interest_rate=0.24, minimum_payment=50))
    first = workflows.refresh_projection('visa', now=NOW)
    second = workflows.refresh_projection('visa', 50, now=NOW)

    assert first.months_to_payoff == 26
    active = store.fetch_active_projection('visa')
    assert active.id == second.id
    assert active.extra_payment == 50.0
    assert active.months_to_payoff == second.months_to_payoff


def test_plan_payday_reads_store(store):
    store.save_envelope(Envelope('fun', 'Fun', is_spending=True, pay_cycle_amount=80))
    allocation = workflows.plan_payday(100, pay_cycle='fortnightly')
    assert allocation.total_regular == 80.0
    assert allocation.surplus == 20.0
