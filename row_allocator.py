"""
row_allocator.py

Distributes child-table row counts across parent businesses.

Two policies, both exactly conserving the requested total:
- budgets: every business gets one, the rest go round-robin from index 0
- cards: every business gets one, the rest go round-robin skipping businesses
  already at max_cards_per_business; fewer cards than businesses means the
  first N businesses get one card each and the others none

resolve_row_plan() reconciles the requested table sizes before generation
starts (derived business count, card capacity cap, budget floor).
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Set

import numpy as np

from generation_errors import AllocationDriftError

DEFAULT_ROWS = {
    "business": 200,
    "budget": 400,
    "card": 1000,
}
DEFAULT_MAX_CARDS_PER_BUSINESS = 1000
DEFAULT_BUDGETS_PER_BUSINESS = max(1, int(math.floor(DEFAULT_ROWS["budget"] / DEFAULT_ROWS["business"] + 0.5)))

logger = logging.getLogger(__name__)


@dataclass
class RowPlan:
    """Resolved row counts for one run, plus any adjustments made to them."""
    business: int
    budget: int
    card: int
    max_cards_per_business: int
    adjustments: List[str] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"Plan: businesses={self.business}, budgets={self.budget}, "
            f"cards={self.card}, maxCardsPerBusiness={self.max_cards_per_business}"
        )


@dataclass
class BusinessPlan:
    """Budget pool and planned card count for a single business."""
    id: str
    budget_ids: List[str]
    card_count: int


def allocate_budget_counts(business_count: int, budget_count: int) -> List[int]:
    """
    Give every business one budget, then hand out the rest round-robin.

    The caller raises budget_count to business_count beforehand; see
    resolve_row_plan().
    """
    if business_count <= 0:
        return []

    counts = [1] * business_count
    remaining = budget_count - business_count
    index = 0
    while remaining > 0:
        counts[index % business_count] += 1
        remaining -= 1
        index += 1
    return counts


def allocate_card_counts(business_count: int, card_count: int, max_cards_per_business: int) -> List[int]:
    """
    Spread cards over businesses without exceeding the per-business cap.

    Requests beyond business_count * max_cards_per_business are truncated
    to that capacity.
    """
    if business_count <= 0:
        return []

    counts = [0] * business_count
    if card_count < business_count:
        for i in range(max(card_count, 0)):
            counts[i] = 1
        return counts

    counts = [1] * business_count
    capacity = business_count * max(max_cards_per_business, 1)
    remaining = min(card_count, capacity) - business_count

    index = 0
    while remaining > 0:
        if counts[index] < max_cards_per_business:
            counts[index] += 1
            remaining -= 1
        index = (index + 1) % business_count
    return counts


def check_allocation(table_name: str, counts: Sequence[int], requested: int) -> None:
    """Raise AllocationDriftError when counts do not add up to requested."""
    planned = sum(counts)
    if planned != requested:
        raise AllocationDriftError(table_name, planned, requested)


def resolve_row_plan(
    rows: Mapping[str, int],
    explicit_rows: Set[str],
    max_cards_per_business: int = DEFAULT_MAX_CARDS_PER_BUSINESS,
) -> RowPlan:
    """
    Reconcile requested table sizes.

    Args:
        rows: Requested row counts keyed by table name
        explicit_rows: Tables whose counts were set explicitly by the user
        max_cards_per_business: Per-business card cap

    Returns:
        RowPlan with corrected counts; every correction is logged as a warning
    """
    plan = RowPlan(
        business=rows.get("business", DEFAULT_ROWS["business"]),
        budget=rows.get("budget", DEFAULT_ROWS["budget"]),
        card=rows.get("card", DEFAULT_ROWS["card"]),
        max_cards_per_business=max_cards_per_business,
    )

    if plan.card > 0 and "business" not in explicit_rows:
        plan.business = max(1, math.ceil(plan.card / max_cards_per_business))

    capacity = plan.business * max_cards_per_business
    if plan.card > capacity:
        _adjust(
            plan,
            f"Requested {plan.card} cards exceeds capacity {capacity} "
            f"({plan.business} businesses * {max_cards_per_business} max). "
            f"Capping card rows to {capacity}.",
        )
        plan.card = capacity

    if "budget" not in explicit_rows:
        plan.budget = plan.business * DEFAULT_BUDGETS_PER_BUSINESS

    if plan.budget < plan.business:
        _adjust(
            plan,
            f"Budget rows ({plan.budget}) less than business rows ({plan.business}). "
            f"Increasing budgets to {plan.business}.",
        )
        plan.budget = plan.business

    logger.info(plan.summary())
    return plan


def _adjust(plan: RowPlan, message: str) -> None:
    logger.warning(message)
    plan.adjustments.append(message)


def build_business_plans(
    business_ids: Sequence[str],
    budgets_by_business: Mapping[str, List[str]],
    card_counts: Sequence[int],
) -> List[BusinessPlan]:
    """Pair each business, in generation order, with its budgets and card count."""
    plans = []
    for index, business_id in enumerate(business_ids):
        plans.append(BusinessPlan(
            id=business_id,
            budget_ids=list(budgets_by_business.get(business_id, [])),
            card_count=card_counts[index] if index < len(card_counts) else 0,
        ))
    return plans


def summarize_counts(counts: Sequence[int]) -> Optional[Dict[str, float]]:
    """Min/max/mean of a per-business allocation, or None when empty."""
    if not counts:
        return None
    values = np.asarray(counts)
    return {
        "businesses": int(values.size),
        "min": int(values.min()),
        "max": int(values.max()),
        "mean": round(float(values.mean()), 2),
        "empty": int((values == 0).sum()),
    }
