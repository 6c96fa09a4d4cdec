"""
Evaluation weight normalization.

A course's evaluation breakdown must sum to exactly 100%.
Syllabi often round (e.g. 33/33/33), so totals within ±2 are accepted
and rebalanced:

- total == 100  -> unchanged
- total == 0    -> equal split, remainder to the FIRST item
- otherwise     -> floor(p / total * 100), remainder to the LARGEST item
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from kosengrade.model import EvaluationItem


TOLERANCE = 2


def total(items: Sequence[EvaluationItem]) -> float:
    return sum(item.percentage for item in items)


def is_valid(items: Sequence[EvaluationItem]) -> bool:
    """
    True iff items is non-empty and the total is within ±2 of 100.
    """
    if not items:
        return False
    return abs(total(items) - 100) <= TOLERANCE


def normalize(items: Sequence[EvaluationItem]) -> list[EvaluationItem]:
    """
    Return a new list whose percentages sum to exactly 100.
    """
    if not items:
        return []

    s = total(items)

    if s == 100:
        return list(items)

    if s == 0:
        equal = 100 // len(items)
        remainder = 100 - equal * len(items)
        return [item.model_copy(update={"percentage": equal + (remainder if i == 0 else 0)}) for i, item in enumerate(items)]

    scaled = [item.model_copy(update={"percentage": math.floor(item.percentage / s * 100)}) for item in items]

    diff = 100 - sum(item.percentage for item in scaled)
    if diff != 0:
        # first occurrence wins on ties
        max_idx = 0
        for i, item in enumerate(scaled):
            if item.percentage > scaled[max_idx].percentage:
                max_idx = i
        scaled[max_idx] = scaled[max_idx].model_copy(update={"percentage": scaled[max_idx].percentage + diff})

    return scaled
