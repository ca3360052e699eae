from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence


@dataclass(frozen=True)
class TaxBracket:
    cap: Optional[float]
    rate: float

    @property
    def upper(self) -> float:
        return math.inf if self.cap is None else float(self.cap)


def sort_brackets(brackets: Iterable[TaxBracket]) -> List[TaxBracket]:
    return sorted(brackets, key=lambda bracket: bracket.upper)


def calculate_tax(income: float, brackets: Sequence[TaxBracket]) -> float:
    """
    Progressive tax over ascending brackets.

    Each bracket taxes the slice between the previous cap and its own cap.
    A slice that is zero or negative (duplicate or out-of-order caps) taxes
    everything that is left at that bracket's rate. An unbounded bracket has
    an infinite slice. Income at or below zero owes nothing.
    """
    remaining = float(income)
    total = 0.0
    previous_cap = 0.0
    for bracket in sort_brackets(brackets):
        if remaining <= 0:
            break
        slice_size = bracket.upper - previous_cap
        taxable = remaining if slice_size <= 0 else min(remaining, slice_size)
        total += taxable * bracket.rate
        remaining -= taxable
        previous_cap = bracket.upper
    return total


def taxable_income(income: float, deductions: float = 0.0) -> float:
    return max(0.0, float(income) - float(deductions or 0.0))
