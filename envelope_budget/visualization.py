"""Plotly visualisation helpers for the budget dashboard.

Each function accepts the records returned by the engine (envelope health,
payoff results, per-source totals, debts) and produces an interactive Plotly
figure that Streamlit renders via ``st.plotly_chart``. Empty inputs give an
empty figure titled "No data to display".
"""

from __future__ import annotations

from typing import Mapping, Sequence

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from .engine.payday import GAP_AHEAD, GAP_BEHIND, GAP_ON_TRACK, EnvelopeHealth
from .engine.payoff import PayoffResult, schedule_frame
from .engine.income_allocation import SourceTotals
from .models import DebtItem

STATUS_COLORS = {
    GAP_AHEAD: "#2ca02c",
    GAP_ON_TRACK: "#1f77b4",
    GAP_BEHIND: "#d62728",
}


def _empty_figure() -> go.Figure:
    fig = go.Figure()
    fig.update_layout(title="No data to display")
    return fig


def envelope_health_frame(health: Sequence[EnvelopeHealth]) -> pd.DataFrame:
    """Tabulate envelope health for display.

    Parameters
    ----------
    health : sequence of EnvelopeHealth
        Output of :func:`envelope_budget.engine.payday.calculate_all_envelope_health`.

    Returns
    -------
    pandas.DataFrame
        One row per envelope with balance, expected balance, gap and status.
    """
    rows = [
        {
            "Envelope": h.name,
            "Priority": h.priority.value,
            "Due": h.due_date,
            "Balance": h.current_balance,
            "Should Have": h.should_have_saved,
            "Gap": h.gap,
            "Status": h.gap_status,
            "Pays Until Due": h.pays_until_due,
        }
        for h in health
    ]
    return pd.DataFrame(rows, columns=["Envelope", "Priority", "Due", "Balance", "Should Have", "Gap", "Status", "Pays Until Due"])


def create_envelope_health_chart(health: Sequence[EnvelopeHealth], title: str | None = None) -> go.Figure:
    """Bar chart comparing each envelope's balance with where it should be.

    Parameters
    ----------
    health : sequence of EnvelopeHealth
        Envelopes to plot. Envelopes without a due date are skipped.
    title : str, optional
        Chart title.

    Returns
    -------
    plotly.graph_objects.Figure
        Grouped bars of balance vs expected balance, coloured by status.
    """
    df = envelope_health_frame([h for h in health if h.due_date is not None])
    if df.empty:
        return _empty_figure()
    colors = df["Status"].map(STATUS_COLORS).fillna("#7f7f7f")
    fig = go.Figure()
    fig.add_bar(x=df["Envelope"], y=df["Should Have"], name="Should have saved", marker_color="#c7c7c7")
    fig.add_bar(x=df["Envelope"], y=df["Balance"], name="Balance", marker_color=colors)
    fig.update_layout(
        title=title or "Envelope health",
        barmode="group",
        xaxis_title="Envelope",
        yaxis_title="Amount",
    )
    return fig


def create_payoff_chart(result: PayoffResult, title: str | None = None) -> go.Figure:
    """Line chart of remaining balance and cumulative interest by month.

    Parameters
    ----------
    result : PayoffResult
        Output of :func:`envelope_budget.engine.payoff.project_payoff`.
    title : str, optional
        Chart title.

    Returns
    -------
    plotly.graph_objects.Figure
        Two lines sharing the month axis.
    """
    df = schedule_frame(result)
    if df.empty:
        return _empty_figure()
    long = df.melt(
        id_vars="month",
        value_vars=["balance", "cumulative_interest"],
        var_name="Series",
        value_name="Amount",
    )
    long["Series"] = long["Series"].map({"balance": "Balance", "cumulative_interest": "Interest paid"})
    fig = px.line(long, x="month", y="Amount", color="Series")
    fig.update_layout(
        title=title or f"Paid off in {result.months_to_payoff} months",
        xaxis_title="Month",
        yaxis_title="Amount",
    )
    return fig


def create_source_allocation_chart(totals: Mapping[str, SourceTotals], title: str | None = None) -> go.Figure:
    """Stacked bars of allocated vs unallocated income per source.

    Over-allocation is drawn as a negative "Remaining" bar so it stands out.
    """
    if not totals:
        return _empty_figure()
    names = [t.name for t in totals.values()]
    allocated = np.array([t.allocated for t in totals.values()], dtype=float)
    remaining = np.array([t.remaining for t in totals.values()], dtype=float)
    fig = go.Figure()
    fig.add_bar(x=names, y=allocated, name="Allocated", marker_color="#1f77b4")
    fig.add_bar(
        x=names,
        y=remaining,
        name="Remaining",
        marker_color=np.where(remaining < 0, "#d62728", "#2ca02c").tolist(),
    )
    fig.update_layout(
        title=title or "Income allocation by source",
        barmode="relative",
        xaxis_title="Income source",
        yaxis_title="Amount",
    )
    return fig


def create_debt_progress_chart(debts: Sequence[DebtItem], title: str | None = None) -> go.Figure:
    """Horizontal bars of paid-off vs remaining balance for each debt."""
    if not debts:
        return _empty_figure()
    names = [d.name for d in debts]
    remaining = np.clip(np.array([d.current_balance for d in debts], dtype=float), 0, None)
    paid = np.array([d.amount_paid_off for d in debts], dtype=float)
    fig = go.Figure()
    fig.add_bar(y=names, x=paid, name="Paid off", orientation="h", marker_color="#2ca02c")
    fig.add_bar(y=names, x=remaining, name="Remaining", orientation="h", marker_color="#d62728")
    fig.update_layout(
        title=title or "Debt progress",
        barmode="stack",
        xaxis_title="Amount",
        yaxis={"autorange": "reversed"},
    )
    return fig
