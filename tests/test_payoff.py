"""Unit tests for envelope_budget.engine.payoff."""

from datetime import datetime

import pytest

from envelope_budget.engine.payoff import (
    build_projection_record,
    compare_payments,
    project_debt,
    project_payoff,
    schedule_frame,
    supersede_projection,
)
from envelope_budget.errors import InvalidAmount, PaymentTooLow, ProjectionDivergent
from envelope_budget.models import DebtItem, PayoffProjection


def _debt(**kwargs):
    values = dict(
        id='visa', envelope_id='cards', name='Visa', starting_balance=1500.0,
        current_balance=1000.0, interest_rate=0.24, minimum_payment=50.0,
    )
    values.update(kwargs)
    return DebtItem(**values)


def test_projection_terminates_and_final_month_pays_what_is_owed():
    result = project_payoff(1000, 0.24, 50)
    assert result.months_to_payoff == 26
    assert result.schedule[0].interest == 20.0
    assert result.schedule[0].principal == 30.0
    assert result.schedule[-1].balance == 0.0
    assert result.schedule[-1].payment < 50.0
    assert result.total_paid == pytest.approx(1000 + result.total_interest_paid)


def test_payment_below_interest_raises():
    with pytest.raises(PaymentTooLow) as excinfo:
        project_payoff(1000, 0.24, 19)
    assert excinfo.value.interest == 20.0
    with pytest.raises(PaymentTooLow):
        project_payoff(1000, 0.24, 20)


def test_zero_balance_has_empty_schedule():
    result = project_payoff(0, 0.24, 50)
    assert result.months_to_payoff == 0
    assert result.schedule == []


def test_missing_apr_means_no_interest():
    result = project_payoff(1000, None, 250)
    assert result.months_to_payoff == 4
    assert result.total_interest_paid == 0.0
    assert result.total_paid == 1000.0


def test_projection_cap():
    with pytest.raises(ProjectionDivergent) as excinfo:
        project_payoff(1000, 0, 10, max_months=12)
    assert excinfo.value.remaining_balance == 880.0


def test_negative_apr_rejected():
    with pytest.raises(InvalidAmount):
        project_payoff(1000, -0.1, 50)


def test_compare_payments():
    comparison = compare_payments(1000, 0.24, 50, 100)
    assert comparison.months_saved == comparison.minimum.months_to_payoff - comparison.increased.months_to_payoff
    assert comparison.months_saved > 10
    assert comparison.interest_saved > 0


def test_project_debt_adds_extra_payment():
    assert project_debt(_debt(), 50) == project_payoff(1000, 0.24, 100)
    with pytest.raises(InvalidAmount):
        project_debt(_debt(), -1)


def test_build_projection_record():
    now = datetime(2024, 5, 1)
    record = build_projection_record(_debt(), 25, now=now, projection_id='p1')
    assert record.id == 'p1'
    assert record.debt_id == 'visa'
    assert record.monthly_payment == 75.0
    assert record.months_to_payoff == project_payoff(1000, 0.24, 75).months_to_payoff
    assert record.is_active
    assert record.created_at == now


def test_supersede_keeps_one_active_projection():
    def projection(pid, debt_id, active):
        return PayoffProjection(pid, debt_id, 1500, 1000, 0.24, 50, is_active=active)

    existing = [projection('old', 'visa', True), projection('older', 'visa', False), projection('x', 'amex', True)]
    retired, current = supersede_projection(existing, projection('new', 'visa', False))
    assert [(p.id, p.is_active) for p in retired] == [('old', False)]
    assert current.id == 'new'
    assert current.is_active


def test_schedule_frame_has_cumulative_interest():
    result = project_payoff(1000, 0.24, 50)
    df = schedule_frame(result)
    assert list(df.columns) == ['month', 'payment', 'interest', 'principal', 'balance', 'cumulative_interest']
    assert len(df) == 26
    assert df['cumulative_interest'].iloc[-1] == pytest.approx(result.total_interest_paid)


def test_schedule_frame_empty():
    df = schedule_frame(project_payoff(0, 0.1, 10))
    assert df.empty
    assert 'cumulative_interest' in df.columns
