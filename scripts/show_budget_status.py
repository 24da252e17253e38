#!/usr/bin/env python3
"""Print envelope health, per-source allocation totals and debt progress."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from envelope_budget import config, db
from envelope_budget.engine import allocate_income, compute_payday_allocation, summarize_debts
from envelope_budget.formatting import format_currency
from envelope_budget.visualization import envelope_health_frame


def main(pay_cycle: str = 'fortnightly', pay_amount: Optional[float] = None, export: bool = False) -> None:
    config.configure_logging()
    db.init_db()
    envelopes = db.fetch_envelopes()
    if not envelopes:
        print("No envelopes found.")
        return

    payday = compute_payday_allocation(pay_amount or 0.0, envelopes, pay_cycle=pay_cycle)
    health = envelope_health_frame(payday.envelope_health)
    print(f"Envelopes: {len(envelopes)}  (behind schedule: {payday.summary.behind_count})")
    print(health.to_string(index=False))

    if pay_amount:
        print(f"\nRegular allocations: {format_currency(payday.total_regular)}")
        print(f"Surplus: {format_currency(payday.surplus)} ({payday.surplus_status})")
        for suggestion in payday.suggestions:
            print(f"  {suggestion.rank}. [{suggestion.type}] {format_currency(suggestion.suggested_amount)} - {suggestion.reason}")

    result = allocate_income(envelopes, db.fetch_income_sources(), pay_cycle=pay_cycle)
    print("\nIncome sources:")
    for totals in result.per_source_totals.values():
        flag = 'ok' if totals.is_balanced else 'UNBALANCED'
        print(f"  {totals.name}: {format_currency(totals.allocated)} of {format_currency(totals.amount)} [{flag}]")

    debts = db.fetch_debts()
    if debts:
        summary = summarize_debts(debts)
        print(f"\nDebt: {format_currency(summary.total_debt)} owing, {summary.progress_percent:.1f}% paid off")
        if summary.next_to_payoff is not None:
            print(f"Next to pay off: {summary.next_to_payoff.name} ({format_currency(summary.next_to_payoff.current_balance)})")

    if export:
        config.ensure_data_directories()
        path = config.EXPORTS_DIR / 'envelope_health.csv'
        health.to_csv(path, index=False)
        print(f"\nExported envelope health to {path}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Show envelope budget status.')
    parser.add_argument('--pay-cycle', default='fortnightly', help='Pay cycle used for per-pay amounts')
    parser.add_argument('--pay-amount', type=float, default=None, help='Show how this pay would be split')
    parser.add_argument('--export', action='store_true', help='Write envelope health to the exports directory')
    args = parser.parse_args()
    main(pay_cycle=args.pay_cycle, pay_amount=args.pay_amount, export=args.export)
