"""Typed records passed between the store boundary and the engine.

Every record is a frozen dataclass: the engine receives snapshots and returns
new snapshots (via :func:`dataclasses.replace`) instead of mutating shared
state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from .errors import InvalidFrequency


class Frequency(str, Enum):
    NONE = 'none'
    WEEKLY = 'weekly'
    FORTNIGHTLY = 'fortnightly'
    TWICE_MONTHLY = 'twice_monthly'
    MONTHLY = 'monthly'
    QUARTERLY = 'quarterly'
    ANNUAL = 'annual'

    @classmethod
    def parse(cls, value: Any) -> 'Frequency':
        """Parse a frequency label, accepting common aliases.

        Raises:
            InvalidFrequency: If the value is not a recognised frequency
        """
        if isinstance(value, Frequency):
            return value
        if value is None:
            return cls.NONE
        if not isinstance(value, str):
            raise InvalidFrequency(value)
        key = value.strip().lower().replace('-', '_').replace(' ', '_')
        key = FREQUENCY_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise InvalidFrequency(value) from None


FREQUENCY_ALIASES: Dict[str, str] = {
    '': 'none',
    'biweekly': 'fortnightly',
    'semi_monthly': 'twice_monthly',
    'semimonthly': 'twice_monthly',
    'annually': 'annual',
    'yearly': 'annual',
    # One-off bills are saved for over a year, like the annual ones.
    'once': 'annual',
}

# Frequencies a user can be paid on.
PAY_CYCLES = (Frequency.WEEKLY, Frequency.FORTNIGHTLY, Frequency.TWICE_MONTHLY, Frequency.MONTHLY)


class Priority(str, Enum):
    ESSENTIAL = 'essential'
    IMPORTANT = 'important'
    DISCRETIONARY = 'discretionary'

    @classmethod
    def parse(cls, value: Any) -> 'Priority':
        if isinstance(value, Priority):
            return value
        if value is None or (isinstance(value, str) and not value.strip()):
            return cls.DISCRETIONARY
        return cls(str(value).strip().lower())


# A due date is either an absolute date or a day of the month.
DueDate = Union[date, int, None]


@dataclass(frozen=True)
class Envelope:
    id: str
    name: str
    target_amount: float = 0.0
    current_amount: float = 0.0
    frequency: Frequency = Frequency.NONE
    due_date: DueDate = None
    priority: Priority = Priority.DISCRETIONARY
    is_goal: bool = False
    is_spending: bool = False
    is_tracking_only: bool = False
    income_allocations: Mapping[str, float] = field(default_factory=dict)
    # Explicit per-cycle contribution; derived from target/frequency when None.
    pay_cycle_amount: Optional[float] = None
    opening_balance: float = 0.0
    created_at: Optional[datetime] = None

    @property
    def is_exempt(self) -> bool:
        """Exempt envelopes don't have to balance their income allocations."""
        return self.is_goal or self.is_spending or self.is_tracking_only

    @property
    def allocated_total(self) -> float:
        return round(sum(self.income_allocations.values()), 2)


@dataclass(frozen=True)
class IncomeSource:
    id: str
    name: str
    amount: float
    frequency: Frequency = Frequency.FORTNIGHTLY
    is_active: bool = True
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class DebtItem:
    id: str
    envelope_id: str
    name: str
    starting_balance: float
    current_balance: float
    debt_type: str = 'other'
    interest_rate: Optional[float] = None
    minimum_payment: Optional[float] = None
    paid_off_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_paid_off(self) -> bool:
        return self.paid_off_at is not None

    @property
    def is_active(self) -> bool:
        return self.paid_off_at is None and self.current_balance > 0

    @property
    def amount_paid_off(self) -> float:
        return round(max(0.0, self.starting_balance - self.current_balance), 2)

    @property
    def progress_percent(self) -> float:
        if self.starting_balance <= 0:
            return 0.0
        return min(100.0, self.amount_paid_off / self.starting_balance * 100)


@dataclass(frozen=True)
class PayoffProjection:
    id: str
    debt_id: str
    starting_balance: float
    current_balance: float
    apr: Optional[float]
    minimum_payment: float
    extra_payment: float = 0.0
    months_to_payoff: Optional[int] = None
    total_interest: Optional[float] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

    @property
    def monthly_payment(self) -> float:
        return round(self.minimum_payment + self.extra_payment, 2)


@dataclass(frozen=True)
class Transfer:
    from_id: str
    to_id: str
    amount: float
    created_at: Optional[datetime] = None
    note: str = ''
