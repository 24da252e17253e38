"""Streamlit app for the envelope budget.

The dashboard is a thin client of the engine and the store workflows: every
number it shows comes from :mod:`envelope_budget.engine` and every change it
makes goes through :mod:`envelope_budget.workflows`.

To run the dashboard from the command line::

    streamlit run envelope_budget/dashboard.py

or use ``run_dashboard.py`` at the project root.
"""

from __future__ import annotations

import os
import sys
from typing import Dict, List, Optional, Sequence

import pandas as pd
import streamlit as st

# Conditional imports to support execution both as part of a package and via
# ``streamlit run envelope_budget/dashboard.py``.
if __package__:
    from . import config, db, workflows
    from . import visualization as viz
    from .engine.income_allocation import AllocationResult, allocate_income
    from .engine.payday import STATUS_SHORTFALL, PaydayAllocation, compute_payday_allocation
    from .engine.payoff import project_debt
    from .engine.rebalance import RebalancePlan, partition_envelopes, plan_rebalance
    from .engine.snowball import sort_by_snowball, summarize_debts
    from .errors import BudgetEngineError, PaymentTooLow, ProjectionDivergent
    from .formatting import escape_dollar_for_markdown, escape_markdown_dollars, format_currency
    from .models import PAY_CYCLES, DebtItem, Envelope, IncomeSource
else:
    CURRENT_DIR = os.path.dirname(os.path.abspath(__file__))
    PARENT_DIR = os.path.dirname(CURRENT_DIR)
    if PARENT_DIR not in sys.path:
        sys.path.insert(0, PARENT_DIR)
    from envelope_budget import config, db, workflows  # type: ignore
    from envelope_budget import visualization as viz  # type: ignore
    from envelope_budget.engine.income_allocation import AllocationResult, allocate_income  # type: ignore
    from envelope_budget.engine.payday import STATUS_SHORTFALL, PaydayAllocation, compute_payday_allocation  # type: ignore
    from envelope_budget.engine.payoff import project_debt  # type: ignore
    from envelope_budget.engine.rebalance import RebalancePlan, partition_envelopes, plan_rebalance  # type: ignore
    from envelope_budget.engine.snowball import sort_by_snowball, summarize_debts  # type: ignore
    from envelope_budget.errors import BudgetEngineError, PaymentTooLow, ProjectionDivergent  # type: ignore
    from envelope_budget.formatting import escape_dollar_for_markdown, escape_markdown_dollars, format_currency  # type: ignore
    from envelope_budget.models import PAY_CYCLES, DebtItem, Envelope, IncomeSource  # type: ignore

PAGES = ["Payday", "Income allocation", "Debts", "Rebalance"]


def render_payday(envelopes: Sequence[Envelope], pay_cycle: str) -> Optional[PaydayAllocation]:
    """Split an incoming pay and show surplus suggestions."""
    st.subheader("Payday")
    pay_amount = st.number_input("Pay amount", min_value=0.0, value=0.0, step=50.0)
    if not pay_amount:
        st.info("Enter a pay amount to see how it should be split.")
        return None

    allocation = compute_payday_allocation(pay_amount, envelopes, pay_cycle=pay_cycle)
    st.metric("Regular allocations", format_currency(allocation.total_regular))
    st.metric("Surplus", format_currency(allocation.surplus))
    if allocation.surplus_status == STATUS_SHORTFALL:
        st.warning(f"This pay is {format_currency(-allocation.surplus)} short of the regular allocations.")

    st.dataframe(pd.DataFrame(
        [
            {"Envelope": a.name, "Priority": a.priority.value, "Amount": a.amount}
            for a in allocation.regular_allocations
        ],
        columns=["Envelope", "Priority", "Amount"],
    ))
    st.plotly_chart(viz.create_envelope_health_chart(allocation.envelope_health))

    for suggestion in allocation.suggestions:
        st.markdown(
            f"**{suggestion.rank}. {suggestion.type}** "
            f"{escape_dollar_for_markdown(suggestion.suggested_amount)}: "
            f"{escape_markdown_dollars(suggestion.reason)}"
        )
    return allocation


def render_allocation(
    envelopes: Sequence[Envelope],
    sources: Sequence[IncomeSource],
    pay_cycle: str,
) -> AllocationResult:
    """Show per-source totals and commit the budget when it balances."""
    st.subheader("Income allocation")
    result = allocate_income(envelopes, sources, pay_cycle=pay_cycle)
    st.plotly_chart(viz.create_source_allocation_chart(result.per_source_totals))

    if result.balanced:
        st.success("Every income source is fully allocated.")
    else:
        for source_id, remaining in result.unbalanced_sources.items():
            name = result.per_source_totals[source_id].name
            label = "left to allocate" if remaining > 0 else "over-allocated"
            st.warning(f"{name}: {format_currency(abs(remaining))} {label}")

    auto = st.checkbox("Split contributions evenly across sources", value=False)
    if st.button("Commit budget"):
        try:
            committed = workflows.commit_budget(auto_distribute=auto, pay_cycle=pay_cycle)
        except BudgetEngineError as exc:
            st.error(str(exc))
        else:
            st.success(f"Budget committed ({committed.routing}).")
    return result


def render_debts(envelopes: Sequence[Envelope], debts: Sequence[DebtItem]) -> None:
    """Debt progress, snowball payments and payoff projections per envelope."""
    st.subheader("Debts")
    by_envelope: Dict[str, List[DebtItem]] = {}
    for debt in debts:
        by_envelope.setdefault(debt.envelope_id, []).append(debt)
    if not by_envelope:
        st.info("No debts recorded.")
        return

    names = {env.id: env.name for env in envelopes}
    for envelope_id, items in by_envelope.items():
        summary = summarize_debts(items)
        st.markdown(f"### {names.get(envelope_id, envelope_id)}")
        st.metric("Total owing", format_currency(summary.total_debt))
        st.metric("Progress", f"{summary.progress_percent:.1f}%")
        st.plotly_chart(viz.create_debt_progress_chart(sort_by_snowball(items)))

        amount = st.number_input("Payment", min_value=0.0, value=0.0, step=10.0, key=f"pay-{envelope_id}")
        if st.button("Apply payment", key=f"apply-{envelope_id}") and amount:
            try:
                outcome = workflows.apply_payment(envelope_id, amount)
            except BudgetEngineError as exc:
                st.error(str(exc))
            else:
                for debt in outcome.result.paid_off_debts:
                    st.success(f"{debt.name} is paid off!")
                if outcome.result.all_cleared:
                    st.success("Every debt in this envelope is cleared.")

        for debt in sort_by_snowball(items):
            if not debt.is_active or not debt.minimum_payment:
                continue
            try:
                result = project_debt(debt)
            except (PaymentTooLow, ProjectionDivergent) as exc:
                st.warning(f"{debt.name}: {exc}")
                continue
            st.plotly_chart(viz.create_payoff_chart(result, title=f"{debt.name}: {result.months_to_payoff} months"))


def render_rebalance(envelopes: Sequence[Envelope]) -> Optional[RebalancePlan]:
    """Preview and execute transfers covering overspent envelopes."""
    st.subheader("Rebalance")
    overspent, surplus = partition_envelopes(envelopes)
    if not overspent:
        st.success("No envelopes are overspent.")
        return None

    plan = plan_rebalance(overspent, surplus)
    st.dataframe(pd.DataFrame(
        [{"From": t.from_id, "To": t.to_id, "Amount": t.amount, "Note": t.note} for t in plan.transfers],
        columns=["From", "To", "Amount", "Note"],
    ))
    if not plan.can_balance:
        st.warning(f"Surplus falls {format_currency(plan.shortfall)} short of covering every overspent envelope.")
    if plan.transfers and st.button("Execute transfers"):
        try:
            workflows.execute_rebalance(plan)
        except BudgetEngineError as exc:
            st.error(str(exc))
        else:
            st.success(f"Moved {format_currency(plan.total_transferred)}.")
    return plan


def main() -> None:
    """Entry point for the Streamlit app."""
    st.set_page_config(page_title="Envelope Budget", layout="wide", initial_sidebar_state="expanded")
    st.title("Envelope Budget")
    config.configure_logging()
    config.ensure_data_directories()
    db.init_db()

    st.sidebar.header("Configuration")
    cycle_labels = [c.value for c in PAY_CYCLES]
    pay_cycle = st.sidebar.selectbox("Pay cycle", options=cycle_labels, index=cycle_labels.index("fortnightly"))
    page = st.sidebar.radio("View", options=PAGES, index=0)

    envelopes = db.fetch_envelopes()
    if page == "Payday":
        render_payday(envelopes, pay_cycle)
    elif page == "Income allocation":
        render_allocation(envelopes, db.fetch_income_sources(), pay_cycle)
    elif page == "Debts":
        render_debts(envelopes, db.fetch_debts())
    else:
        render_rebalance(envelopes)


if __name__ == "__main__":  # pragma: no cover
    main()
