"""
table_generator.py

Row driver for the business -> budget -> card hierarchy.

For every row index the driver applies the table's RowSeed (pre-decided ids
and foreign keys), fills the remaining columns with the ValueGenerator, then
records the row's new keys into the shared GenerationContext before the row
is handed to the sink. Tables run strictly one after another: budgets are
allocated only once every business exists, and card plans are built only
once every budget exists.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from column_profiler import ColumnProfile
from row_allocator import (
    BusinessPlan,
    RowPlan,
    allocate_budget_counts,
    allocate_card_counts,
    build_business_plans,
    check_allocation,
)
from value_generator import ValueGenerator

Row = Dict[str, Optional[str]]
RowSeed = Callable[[int], Row]
RowSink = Callable[[str, List[str], Iterator[Row]], int]

TABLE_ORDER = ("business", "budget", "card")


@dataclass
class GenerationContext:
    """Keys of rows generated so far, in insertion order."""
    business_ids: List[str] = field(default_factory=list)
    budget_ids: List[str] = field(default_factory=list)
    application_ids: List[str] = field(default_factory=list)
    budgets_by_business: Dict[str, List[str]] = field(default_factory=dict)


# =============================================================================
# Row Seeds
# =============================================================================

def build_budget_seed(
    business_ids: Sequence[str],
    budget_counts: Sequence[int],
    new_id: Callable[[], str],
) -> RowSeed:
    """
    Seed budget rows business by business following budget_counts.

    The seed walks the plan sequentially, so it must be called once per row
    in increasing index order. Once the plan is exhausted it seeds nothing.
    """
    business_index = 0
    remaining = budget_counts[0] if budget_counts else 0

    def seed(index: int) -> Row:
        nonlocal business_index, remaining
        while business_index < len(business_ids) and remaining == 0:
            business_index += 1
            remaining = budget_counts[business_index] if business_index < len(budget_counts) else 0
        if business_index >= len(business_ids):
            return {}
        remaining -= 1
        return {
            "id": new_id(),
            "business_uuid": business_ids[business_index],
            "parent_budget_id": None,
        }

    return seed


def build_card_seed(
    plans: Sequence[BusinessPlan],
    fallback_budget_ids: Sequence[str],
    new_id: Callable[[], str],
) -> RowSeed:
    """
    Seed card rows business by business following each plan's card count.

    Within a business, cards cycle through its budgets in order; a business
    without budgets draws from the global budget pool instead.
    """
    business_index = 0
    remaining = plans[0].card_count if plans else 0
    budget_index = 0

    def seed(index: int) -> Row:
        nonlocal business_index, remaining, budget_index
        while business_index < len(plans) and remaining == 0:
            business_index += 1
            remaining = plans[business_index].card_count if business_index < len(plans) else 0
            budget_index = 0

        plan = plans[business_index] if business_index < len(plans) else None
        budget_pool = plan.budget_ids if plan and plan.budget_ids else fallback_budget_ids
        if budget_pool:
            budget_id = budget_pool[budget_index % len(budget_pool)]
        else:
            budget_id = new_id()
        budget_index += 1
        if remaining > 0:
            remaining -= 1
        return {
            "id": new_id(),
            "budget_id": budget_id,
        }

    return seed


# =============================================================================
# Fill Order
# =============================================================================

def fill_order_for(profiles: Sequence[ColumnProfile]) -> List[ColumnProfile]:
    """
    Header order, except created_at is moved just ahead of a preceding updated_at.

    updated_at is drawn from the row's created_at, which must already be set.
    """
    names = [p.name for p in profiles]
    if "created_at" not in names or "updated_at" not in names:
        return list(profiles)
    created = names.index("created_at")
    updated = names.index("updated_at")
    if created < updated:
        return list(profiles)
    order = list(profiles)
    order.insert(updated, order.pop(created))
    return order


# =============================================================================
# Table Generator
# =============================================================================

class TableGenerator:
    """Generates the rows of one table and records their keys."""

    def __init__(self, value_generator: ValueGenerator, context: GenerationContext,
                 progress_every: int = 0):
        self.value_generator = value_generator
        self.context = context
        self.progress_every = progress_every
        self.logger = logging.getLogger(self.__class__.__name__)

    def generate_rows(
        self,
        table_name: str,
        profiles: Sequence[ColumnProfile],
        row_count: int,
        row_seed: Optional[RowSeed] = None,
    ) -> Iterator[Row]:
        """
        Yield row_count rows in header order.

        Keys are recorded into the context before each row is yielded, so a
        downstream table sees a complete pool only after this iterator is
        exhausted.
        """
        if row_count > 0:
            self.logger.info(f"Generating {table_name} ({row_count} rows)...")
        fill_order = fill_order_for(profiles)

        for index in range(row_count):
            row: Row = dict(row_seed(index)) if row_seed else {}
            for profile in fill_order:
                if profile.name in row:
                    continue
                row[profile.name] = self.value_generator.generate_value(
                    profile, table_name, row, self.context
                )

            self._record_keys(table_name, row)
            yield {profile.name: row.get(profile.name) for profile in profiles}

            if self.progress_every > 0 and (index + 1) % self.progress_every == 0:
                self.logger.info(f"[{table_name}] {index + 1}/{row_count} rows generated")

        if self.progress_every > 0 and row_count > 0:
            self.logger.info(f"[{table_name}] {row_count}/{row_count} rows generated")

    def _record_keys(self, table_name: str, row: Row) -> None:
        row_id = row.get("id")
        if table_name == "business":
            if row_id:
                self.context.business_ids.append(row_id)
            if row.get("business_owner_application_id"):
                self.context.application_ids.append(row["business_owner_application_id"])
        elif table_name == "budget" and row_id:
            self.context.budget_ids.append(row_id)
            business_id = row.get("business_uuid")
            if business_id:
                self.context.budgets_by_business.setdefault(business_id, []).append(row_id)


# =============================================================================
# Hierarchy Generator
# =============================================================================

class HierarchyGenerator:
    """Runs business, budget and card generation in order against one context."""

    def __init__(self, value_generator: ValueGenerator, progress_every: int = 0,
                 context: Optional[GenerationContext] = None):
        self.value_generator = value_generator
        self.context = context or GenerationContext()
        self.table_generator = TableGenerator(value_generator, self.context, progress_every)
        self.logger = logging.getLogger(self.__class__.__name__)

        self.budget_counts: List[int] = []
        self.card_counts: List[int] = []
        self.business_plans: List[BusinessPlan] = []

    def run(self, profiles: Mapping[str, Sequence[ColumnProfile]], plan: RowPlan,
            sink: RowSink) -> Dict[str, int]:
        """
        Generate all three tables, passing each table's rows to sink.

        The sink must consume the iterator fully before returning; the next
        table's allocation depends on the keys it records.

        Returns:
            Rows written per table, as reported by the sink
        """
        written: Dict[str, int] = {}

        business_profiles = profiles["business"]
        written["business"] = sink(
            "business",
            [p.name for p in business_profiles],
            self.table_generator.generate_rows("business", business_profiles, plan.business),
        )

        business_ids = self.context.business_ids
        self.budget_counts = allocate_budget_counts(len(business_ids), plan.budget)
        if business_ids:
            check_allocation("budget", self.budget_counts, plan.budget)
        budget_seed = build_budget_seed(business_ids, self.budget_counts, self.value_generator.uuid)

        budget_profiles = profiles["budget"]
        written["budget"] = sink(
            "budget",
            [p.name for p in budget_profiles],
            self.table_generator.generate_rows("budget", budget_profiles, plan.budget, budget_seed),
        )

        self.card_counts = allocate_card_counts(len(business_ids), plan.card, plan.max_cards_per_business)
        if business_ids:
            check_allocation("card", self.card_counts, plan.card)
        self.business_plans = build_business_plans(
            business_ids, self.context.budgets_by_business, self.card_counts
        )
        card_seed = build_card_seed(self.business_plans, self.context.budget_ids, self.value_generator.uuid)

        card_profiles = profiles["card"]
        written["card"] = sink(
            "card",
            [p.name for p in card_profiles],
            self.table_generator.generate_rows("card", card_profiles, plan.card, card_seed),
        )

        return written
