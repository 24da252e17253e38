"""Error kinds raised by the engine and the store boundary.

Validation errors also derive from ``ValueError`` so callers that only know
about built-in exceptions can still catch them. Partial-success outcomes
(insufficient surplus, residual payment) are returned as data instead.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class BudgetEngineError(Exception):
    """Base class for every error raised by this package."""


class InvalidFrequency(BudgetEngineError, ValueError):
    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Unrecognised frequency: {value!r}")


class InvalidPaymentAmount(BudgetEngineError, ValueError):
    def __init__(self, amount: Any):
        self.amount = amount
        super().__init__(f"Payment amount must be greater than 0, got {amount!r}")


class InvalidAmount(BudgetEngineError, ValueError):
    def __init__(self, amount: Any, reason: str = "amount must not be negative"):
        self.amount = amount
        super().__init__(f"Invalid amount {amount!r}: {reason}")


class UnknownEntity(BudgetEngineError, KeyError):
    def __init__(self, kind: str, entity_id: Any):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"Unknown {kind}: {entity_id!r}")

    def __str__(self) -> str:
        return self.args[0]


class UnbalancedAllocation(BudgetEngineError, ValueError):
    """Raised when a budget is committed while income is not fully allocated.

    ``remaining`` maps each offending income source id to its unallocated
    (positive) or over-allocated (negative) amount.
    """

    def __init__(self, remaining: Dict[str, float]):
        self.remaining = dict(remaining)
        detail = ", ".join(f"{sid}: {amount:+.2f}" for sid, amount in sorted(self.remaining.items()))
        super().__init__(f"Income not fully allocated ({detail or 'no active income source'})")


class PaymentTooLow(BudgetEngineError, ValueError):
    def __init__(self, payment: float, interest: float):
        self.payment = payment
        self.interest = interest
        super().__init__(
            f"Monthly payment {payment:.2f} does not cover interest of {interest:.2f}; "
            "the debt would never be paid off"
        )


class ProjectionDivergent(BudgetEngineError):
    def __init__(self, max_months: int, remaining_balance: float):
        self.max_months = max_months
        self.remaining_balance = remaining_balance
        super().__init__(
            f"Debt not paid off within {max_months} months "
            f"({remaining_balance:.2f} still owing)"
        )


class InsufficientSurplus(BudgetEngineError):
    def __init__(self, total_overspent: float, total_surplus: float):
        self.total_overspent = total_overspent
        self.total_surplus = total_surplus
        self.shortfall = round(total_overspent - total_surplus, 2)
        super().__init__(
            f"Surplus of {total_surplus:.2f} cannot cover {total_overspent:.2f} overspent"
        )


class RecordValidationError(BudgetEngineError, ValueError):
    """A stored row could not be parsed into a typed record."""

    def __init__(self, kind: str, message: str, row: Optional[Dict[str, Any]] = None):
        self.kind = kind
        self.row = row
        super().__init__(f"Invalid {kind} record: {message}")


class TransferRejected(BudgetEngineError):
    """A transfer in a batch failed validation; the whole batch was aborted."""

    def __init__(self, from_id: str, to_id: str, amount: float, reason: str):
        self.from_id = from_id
        self.to_id = to_id
        self.amount = amount
        self.reason = reason
        super().__init__(f"Transfer {from_id} -> {to_id} of {amount:.2f} rejected: {reason}")
