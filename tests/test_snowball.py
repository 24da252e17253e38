"""Unit tests for envelope_budget.engine.snowball."""

from datetime import datetime

import pytest

from envelope_budget.engine.snowball import (
    EVENT_ALL_DEBTS_CLEARED,
    EVENT_DEBT_PAID_OFF,
    apply_snowball_payment,
    sort_by_snowball,
    summarize_debts,
)
from envelope_budget.errors import InvalidPaymentAmount
from envelope_budget.models import DebtItem

NOW = datetime(2024, 6, 1, 12, 0)


def _debt(debt_id, balance, starting=None, paid_off_at=None):
    return DebtItem(
        debt_id, 'cards', f'Debt {debt_id}',
        starting_balance=starting if starting is not None else balance,
        current_balance=balance,
        paid_off_at=paid_off_at,
    )


def test_smallest_balances_paid_first_and_remainder_rolls():
    debts = [_debt('d', 200), _debt('b', 50), _debt('a', 10), _debt('c', 75)]
    result = apply_snowball_payment(debts, 80, now=NOW)

    balances = {d.id: d.current_balance for d in result.updated_debts}
    assert balances == {'a': 0.0, 'b': 0.0, 'c': 55.0, 'd': 200.0}
    assert [d.id for d in result.paid_off_debts] == ['a', 'b']
    assert all(d.paid_off_at == NOW for d in result.paid_off_debts)
    assert result.payment_applied == 80.0
    assert result.remaining_payment == 0.0
    assert [e.kind for e in result.events] == [EVENT_DEBT_PAID_OFF, EVENT_DEBT_PAID_OFF]
    assert [d.id for d in result.updated_debts] == ['c', 'd', 'a', 'b']


def test_balance_changes_record_each_debt_touched():
    result = apply_snowball_payment([_debt('a', 10), _debt('b', 50)], 30, now=NOW)
    changes = [(c.debt_id, c.previous_balance, c.new_balance, c.amount_applied) for c in result.balance_changes]
    assert changes == [('a', 10.0, 0.0, 10.0), ('b', 50.0, 30.0, 20.0)]


def test_overpayment_clears_everything_and_reports_residual():
    result = apply_snowball_payment([_debt('a', 10), _debt('b', 20)], 50, now=NOW)
    assert result.payment_applied == 30.0
    assert result.remaining_payment == 20.0
    assert result.events[-1].kind == EVENT_ALL_DEBTS_CLEARED
    assert result.all_cleared


def test_equal_balances_break_ties_by_id():
    result = apply_snowball_payment([_debt('b', 50), _debt('a', 50)], 50, now=NOW)
    assert [d.id for d in result.paid_off_debts] == ['a']


def test_cent_exact_rollover():
    result = apply_snowball_payment([_debt('a', 0.1), _debt('b', 0.2)], 0.3, now=NOW)
    assert [d.id for d in result.paid_off_debts] == ['a', 'b']
    assert result.remaining_payment == 0.0


@pytest.mark.parametrize('amount', [0, -5, float('nan'), float('inf'), True, '80'])
def test_invalid_payment_amount(amount):
    with pytest.raises(InvalidPaymentAmount):
        apply_snowball_payment([_debt('a', 10)], amount)


def test_zero_balance_debt_is_stamped_but_not_reported():
    debts = [_debt('z', 0.0, starting=100), _debt('x', 40)]
    result = apply_snowball_payment(debts, 10, now=NOW)

    stale = next(d for d in result.updated_debts if d.id == 'z')
    assert stale.paid_off_at == NOW
    assert result.paid_off_debts == []
    assert result.events == []


def test_previously_paid_debts_are_untouched():
    earlier = datetime(2024, 1, 1)
    paid = _debt('p', 0.0, starting=300, paid_off_at=earlier)
    result = apply_snowball_payment([paid, _debt('x', 40)], 40, now=NOW)

    assert [d.id for d in result.paid_off_debts] == ['x']
    assert result.updated_debts[0] is paid
    assert result.all_cleared


def test_no_active_debts_returns_whole_payment():
    result = apply_snowball_payment([], 25, now=NOW)
    assert result.payment_applied == 0.0
    assert result.remaining_payment == 25.0
    assert result.events == []


def test_sort_by_snowball_puts_paid_debts_last():
    paid_late = _debt('p2', 0.0, starting=10, paid_off_at=datetime(2024, 3, 1))
    paid_early = _debt('p1', 0.0, starting=10, paid_off_at=datetime(2024, 2, 1))
    ordered = sort_by_snowball([paid_late, _debt('big', 500), paid_early, _debt('small', 5)])
    assert [d.id for d in ordered] == ['small', 'big', 'p1', 'p2']


def test_summarize_debts():
    debts = [
        _debt('a', 40, starting=100),
        _debt('b', 0.0, starting=50, paid_off_at=datetime(2024, 2, 1)),
    ]
    summary = summarize_debts(debts)
    assert summary.total_debt == 40.0
    assert summary.total_paid_off == 110.0
    assert summary.total_starting == 150.0
    assert summary.progress_percent == pytest.approx(73.333, rel=1e-3)
    assert summary.debt_count == 2
    assert summary.paid_off_count == 1
    assert summary.next_to_payoff.id == 'a'
