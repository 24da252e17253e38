"""Cent-exact money helpers.

Amounts travel through the package as floats rounded to cents, the way the
rest of the dashboard code stores them. Arithmetic that must satisfy exact-sum
invariants (snowball roll-over, rebalance transfers, even splits) is carried
out on integer cents and converted back at the edge.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Union

Number = Union[int, float, Decimal]


def to_cents(amount: Number) -> int:
    """Convert an amount to integer cents, rounding half away from zero."""
    if isinstance(amount, float) and not math.isfinite(amount):
        raise ValueError(f"Amount must be finite, got {amount!r}")
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return int(value * 100)


def from_cents(cents: int) -> float:
    return cents / 100


def round_money(amount: Number) -> float:
    """Round an amount to cents using half-up rounding.

    Example:
        >>> round_money(1384.615)
        1384.62
    """
    return from_cents(to_cents(amount))


def split_evenly(cents: int, parts: int) -> List[int]:
    """Split ``cents`` into ``parts`` integers that sum exactly to ``cents``.

    Leftover cents go to the earliest parts.

    Example:
        >>> split_evenly(10000, 3)
        [3334, 3333, 3333]
    """
    if parts <= 0:
        return []
    base, leftover = divmod(cents, parts)
    return [base + (1 if i < leftover else 0) for i in range(parts)]


def split_proportionally(cents: int, weights: Iterable[int]) -> List[int]:
    """Split ``cents`` proportionally to integer ``weights`` (largest remainder).

    The parts always sum to ``cents``; ties in the remainder go to the
    earliest weight.
    """
    weights = list(weights)
    total = sum(weights)
    if cents <= 0 or total <= 0:
        return [0 for _ in weights]
    shares = [cents * w // total for w in weights]
    remainders = [cents * w % total for w in weights]
    leftover = cents - sum(shares)
    order = sorted(range(len(weights)), key=lambda i: (-remainders[i], i))
    for i in order[:leftover]:
        shares[i] += 1
    return shares


def within_tolerance(amount: Number, tolerance: float) -> bool:
    return abs(to_cents(amount)) <= to_cents(tolerance)
