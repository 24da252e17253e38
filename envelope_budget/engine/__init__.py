"""Budget allocation and debt-payoff computations.

This package holds the pure engine used by the store workflows and the
dashboard:
- Pay-cycle normalisation and pay-date arithmetic
- Opening balances and zero-based income allocation
- Payday allocation with envelope health and surplus suggestions
- Debt snowball payments and payoff projections
- Rebalancing overspent envelopes
"""

from .pay_cycle import (
    cycles_per_year,
    normalize_amount,
    per_cycle_contribution,
    envelope_pay_cycle_amount,
    resolve_due_date,
    add_cycles,
    cycles_between,
)
from .opening_balance import (
    OpeningBalanceResult,
    calculate_opening_balance,
    calculate_envelope_opening_balance,
)
from .income_allocation import (
    AllocationEdit,
    AllocationResult,
    SourceTotals,
    allocate_income,
    commit_allocations,
)
from .payday import (
    EnvelopeHealth,
    PaydayAllocation,
    SurplusSuggestion,
    compute_payday_allocation,
    calculate_envelope_health,
    apply_surplus_suggestion,
    calculate_initial_distribution,
)
from .snowball import (
    DebtEvent,
    DebtSummary,
    SnowballResult,
    apply_snowball_payment,
    sort_by_snowball,
    summarize_debts,
)
from .payoff import (
    PayoffResult,
    ScheduleRow,
    project_payoff,
    compare_payments,
    project_debt,
    build_projection_record,
    supersede_projection,
    schedule_frame,
)
from .rebalance import (
    RebalancePlan,
    partition_envelopes,
    plan_rebalance,
)

__all__ = [
    # Pay cycles
    'cycles_per_year',
    'normalize_amount',
    'per_cycle_contribution',
    'envelope_pay_cycle_amount',
    'resolve_due_date',
    'add_cycles',
    'cycles_between',
    # Opening balance
    'OpeningBalanceResult',
    'calculate_opening_balance',
    'calculate_envelope_opening_balance',
    # Income allocation
    'AllocationEdit',
    'AllocationResult',
    'SourceTotals',
    'allocate_income',
    'commit_allocations',
    # Payday
    'EnvelopeHealth',
    'PaydayAllocation',
    'SurplusSuggestion',
    'compute_payday_allocation',
    'calculate_envelope_health',
    'apply_surplus_suggestion',
    'calculate_initial_distribution',
    # Snowball
    'DebtEvent',
    'DebtSummary',
    'SnowballResult',
    'apply_snowball_payment',
    'sort_by_snowball',
    'summarize_debts',
    # Payoff
    'PayoffResult',
    'ScheduleRow',
    'project_payoff',
    'compare_payments',
    'project_debt',
    'build_projection_record',
    'supersede_projection',
    'schedule_frame',
    # Rebalance
    'RebalancePlan',
    'partition_envelopes',
    'plan_rebalance',
]
