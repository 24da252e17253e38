"""Unit tests for envelope_budget.engine.payday.

The fixtures use a fortnightly pay cycle with today fixed at 2024-07-01 and
annual bills due on 2024-12-31, so each saving period holds 26 pays.
"""

from datetime import date, datetime

from envelope_budget.engine.payday import (
    GAP_BEHIND,
    GAP_ON_TRACK,
    STATUS_AVAILABLE,
    STATUS_EXACT,
    STATUS_SHORTFALL,
    SUGGEST_BUFFER,
    SUGGEST_NEW_GOAL,
    SUGGEST_SPLIT,
    SUGGEST_TOP_UP,
    apply_surplus_suggestion,
    calculate_initial_distribution,
    compute_payday_allocation,
)
from envelope_budget.models import Envelope, Frequency, Priority

TODAY = date(2024, 7, 1)
DUE = date(2024, 12, 31)


def _annual(env_id, name, target, current, priority, **kwargs):
    return Envelope(
        env_id, name, target_amount=target, current_amount=current,
        frequency=Frequency.ANNUAL, due_date=DUE, priority=priority, **kwargs,
    )


def _envelopes():
    return [
        _annual('insurance', 'Insurance', 2600, 0, Priority.ESSENTIAL),
        _annual('car', 'Car rego', 1300, 500, Priority.IMPORTANT),
        _annual('phone', 'Phone', 520, 260, Priority.ESSENTIAL),
        Envelope('fun', 'Fun money', is_spending=True, pay_cycle_amount=80),
        Envelope('card', 'Card', is_tracking_only=True, pay_cycle_amount=999),
    ]


def _payday(pay_amount, envelopes=None):
    return compute_payday_allocation(
        pay_amount, envelopes or _envelopes(), pay_cycle='fortnightly', today=TODAY,
    )


def test_regular_allocations_grouped_by_priority():
    result = _payday(1000)
    assert [(a.envelope_id, a.amount) for a in result.regular_allocations] == [
        ('insurance', 100.0),
        ('phone', 20.0),
        ('car', 50.0),
        ('fun', 80.0),
    ]
    assert result.total_regular == 250.0
    assert result.summary.essential_total == 120.0
    assert result.summary.important_total == 50.0
    assert result.summary.discretionary_total == 80.0


def test_surplus_status():
    assert _payday(1000).surplus_status == STATUS_AVAILABLE
    assert _payday(250).surplus_status == STATUS_EXACT
    shortfall = _payday(200)
    assert shortfall.surplus_status == STATUS_SHORTFALL
    assert shortfall.surplus == -50.0
    assert shortfall.suggestions == []


def test_envelope_health():
    health = {h.envelope_id: h for h in _payday(1000).envelope_health}

    insurance = health['insurance']
    assert insurance.regular_per_pay == 100.0
    assert insurance.should_have_saved == 1300.0
    assert insurance.gap == 1300.0
    assert insurance.gap_status == GAP_BEHIND
    assert insurance.pays_until_due == 13

    assert health['car'].gap == 150.0
    assert health['car'].gap_status == GAP_BEHIND
    assert health['phone'].gap == 0.0
    assert health['phone'].gap_status == GAP_ON_TRACK
    assert health['fun'].gap_status == GAP_ON_TRACK
    assert 'card' not in health


def test_small_gap_is_on_track():
    envelopes = [_annual('car', 'Car rego', 1300, 610, Priority.IMPORTANT)]
    health = _payday(1000, envelopes).envelope_health[0]
    assert health.gap == 40.0
    assert health.gap_status == GAP_ON_TRACK


def test_bill_more_frequent_than_pay_needs_full_target():
    water = Envelope(
        'water', 'Water', target_amount=100, current_amount=0,
        frequency=Frequency.WEEKLY, due_date=date(2024, 7, 4), priority=Priority.ESSENTIAL,
    )
    result = compute_payday_allocation(500, [water], pay_cycle='monthly', today=TODAY)

    health = result.envelope_health[0]
    assert health.regular_per_pay == 100.0
    assert health.should_have_saved == 100.0
    assert health.gap == 100.0
    assert health.gap_status == GAP_BEHIND

    assert result.total_regular == 433.33
    top_up = result.suggestions[0]
    assert top_up.type == SUGGEST_TOP_UP
    assert top_up.envelope_id == 'water'
    assert top_up.suggested_amount == 66.67


def test_surplus_tops_up_largest_gap_then_offers_split():
    result = _payday(1000)
    assert result.surplus == 750.0
    assert result.summary.behind_count == 2
    assert result.summary.total_gap == 1450.0

    top_up, split = result.suggestions
    assert top_up.rank == 1
    assert top_up.type == SUGGEST_TOP_UP
    assert top_up.envelope_id == 'insurance'
    assert top_up.suggested_amount == 750.0
    assert top_up.reason == "13 pays until due, $1,300.00 behind schedule"
    assert top_up.impact == "This will reduce the gap to $550.00"

    assert split.rank == 2
    assert split.type == SUGGEST_SPLIT
    assert split.suggested_amount == 750.0
    assert split.allocations == (('insurance', 672.41), ('car', 77.59))


def test_surplus_left_after_gaps_becomes_goal_and_buffer():
    result = _payday(3000)
    assert [(s.rank, s.type, s.suggested_amount) for s in result.suggestions] == [
        (1, SUGGEST_TOP_UP, 1300.0),
        (2, SUGGEST_TOP_UP, 150.0),
        (3, SUGGEST_NEW_GOAL, 1300.0),
        (4, SUGGEST_BUFFER, 1300.0),
    ]


def test_equal_gaps_rank_by_creation_order():
    envelopes = [
        _annual('a', 'Newer', 1300, 500, Priority.IMPORTANT, created_at=datetime(2024, 2, 1)),
        _annual('b', 'Older', 1300, 500, Priority.IMPORTANT, created_at=datetime(2024, 1, 1)),
    ]
    result = _payday(2000, envelopes)
    top_ups = [s.envelope_id for s in result.suggestions if s.type == SUGGEST_TOP_UP]
    assert top_ups == ['b', 'a']


def test_apply_top_up_suggestion():
    allocation = _payday(1000)
    applied = apply_surplus_suggestion(allocation, 0)
    assert applied.surplus_allocations == [('insurance', 750.0)]
    assert applied.remaining_surplus == 0.0
    assert applied.regular_allocations == allocation.regular_allocations


def test_apply_split_suggestion():
    applied = apply_surplus_suggestion(_payday(1000), 1)
    assert applied.surplus_allocations == [('insurance', 672.41), ('car', 77.59)]
    assert applied.remaining_surplus == 0.0


def test_apply_out_of_range_suggestion_keeps_surplus():
    applied = apply_surplus_suggestion(_payday(1000), 7)
    assert applied.surplus_allocations == []
    assert applied.remaining_surplus == 750.0


def test_initial_distribution_proportional_when_short():
    result = calculate_initial_distribution(1000, _envelopes(), pay_cycle='fortnightly', today=TODAY)
    assert result.total_needed == 1450.0
    assert not result.can_fully_fund
    amounts = {line.envelope_id: line.amount for line in result.allocations}
    assert amounts['insurance'] == 896.55
    assert amounts['car'] == 103.45
    assert amounts['phone'] == 0.0
    assert result.remaining_balance == 0.0


def test_initial_distribution_funds_every_gap():
    result = calculate_initial_distribution(2000, _envelopes(), pay_cycle='fortnightly', today=TODAY)
    assert result.can_fully_fund
    amounts = {line.envelope_id: line.amount for line in result.allocations}
    assert amounts['insurance'] == 1300.0
    assert amounts['car'] == 150.0
    assert result.remaining_balance == 550.0
