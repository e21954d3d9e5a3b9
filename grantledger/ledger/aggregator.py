"""Mini README: Balance computation for one project.

Structure:
    * CategoryBalance - used / remaining / percent for one category.
    * BalanceSnapshot - totals plus all five category rows.
    * BalanceAggregator - recomputes a snapshot from a project and its full expense set.

Aggregation always starts from the complete expense set rather than applying
deltas, so a missed notification can never leave a balance drifting. Sums
are commutative, so the output does not depend on the order expenses arrive
in. Over-budget rows are flagged, never rejected: the ledger records what
happened.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from ..logging_utils import get_logger
from .models import CATEGORY_ORDER, Category, Expense, Project

LOGGER = get_logger(__name__)


def percent_used(used: int, budget: int) -> float:
    """Share of ``budget`` consumed; unbudgeted spending counts as fully used."""

    if budget > 0:
        return used / budget * 100
    return 100.0 if used > 0 else 0.0


@dataclass(frozen=True, slots=True)
class CategoryBalance:
    """Usage of a single spending category."""

    category: Category
    budget: int
    used: int

    @property
    def remaining(self) -> int:
        return self.budget - self.used

    @property
    def percent_used(self) -> float:
        return percent_used(self.used, self.budget)

    @property
    def over_budget(self) -> bool:
        return self.used > self.budget

    @property
    def unbudgeted(self) -> bool:
        """True when no money was earmarked for this category."""

        return self.budget == 0

    @property
    def reportable(self) -> bool:
        """Rows with neither budget nor spending are left out of summaries."""

        return self.budget > 0 or self.used > 0

    def as_dict(self) -> Dict[str, object]:
        return {
            "category": self.category.value,
            "label": self.category.label,
            "budget": self.budget,
            "used": self.used,
            "remaining": self.remaining,
            "percent_used": self.percent_used,
            "over_budget": self.over_budget,
            "unbudgeted": self.unbudgeted,
        }


@dataclass(frozen=True, slots=True)
class BalanceSnapshot:
    """Point-in-time balance of a project, overall and per category."""

    project_id: str
    total_budget: int
    total_used: int
    categories: Tuple[CategoryBalance, ...]
    expense_count: int = 0

    @property
    def total_remaining(self) -> int:
        return self.total_budget - self.total_used

    @property
    def percent_used(self) -> float:
        return percent_used(self.total_used, self.total_budget)

    @property
    def over_budget(self) -> bool:
        return self.total_used > self.total_budget

    def category(self, category: Category) -> CategoryBalance:
        """Return the row for ``category``."""

        wanted = Category.from_str(category)
        for row in self.categories:
            if row.category is wanted:
                return row
        raise KeyError(f"Category {wanted.value} missing from snapshot")

    @property
    def reportable_categories(self) -> List[CategoryBalance]:
        return [row for row in self.categories if row.reportable]

    @property
    def over_budget_categories(self) -> List[CategoryBalance]:
        return [row for row in self.categories if row.over_budget]

    def as_dict(self) -> Dict[str, object]:
        """Export the snapshot with serialisable values for JSON responses."""

        return {
            "project_id": self.project_id,
            "total_budget": self.total_budget,
            "total_used": self.total_used,
            "total_remaining": self.total_remaining,
            "percent_used": self.percent_used,
            "over_budget": self.over_budget,
            "expense_count": self.expense_count,
            "categories": [row.as_dict() for row in self.categories],
        }


class BalanceAggregator:
    """Compute balance snapshots from stored records."""

    @staticmethod
    def aggregate(project: Project, expenses: Iterable[Expense]) -> BalanceSnapshot:
        """Recompute the full snapshot for ``project`` from ``expenses``.

        ``expenses`` must be the complete current set for the project. Rows
        belonging to another project are a caller bug and raise ``ValueError``.
        """

        used: Dict[Category, int] = {category: 0 for category in CATEGORY_ORDER}
        count = 0
        for expense in expenses:
            if expense.project_id != project.project_id:
                raise ValueError(
                    f"Expense {expense.expense_id} belongs to {expense.project_id}, "
                    f"not {project.project_id}"
                )
            used[Category.from_str(expense.category)] += expense.amount
            count += 1

        rows = tuple(
            CategoryBalance(
                category=category,
                budget=project.allocation.for_category(category),
                used=used[category],
            )
            for category in CATEGORY_ORDER
        )
        snapshot = BalanceSnapshot(
            project_id=project.project_id,
            total_budget=project.total_budget,
            total_used=sum(used.values()),
            categories=rows,
            expense_count=count,
        )
        LOGGER.debug(
            "Aggregated %s expenses for project %s -> used %s of %s",
            count,
            project.project_id,
            snapshot.total_used,
            snapshot.total_budget,
        )
        return snapshot
