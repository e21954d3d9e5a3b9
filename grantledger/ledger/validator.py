"""Mini README: Consistency checks run before any ledger write.

Structure:
    * ValidationResult - explicit accept/reject outcome with the computed sums.
    * BudgetValidator - checks a project allocation (non-negative, categories fit the total).
    * validate_project_details - checks the descriptive project fields.
    * validate_expense_fields - checks category, amount and description of an expense.

Every check is pure and synchronous. Nothing here raises for bad input; the
caller receives a ``ValidationResult`` and decides how to surface it. The
write service turns a rejection into ``ValidationError`` so rejected data
never reaches the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from .models import BudgetAllocation, Category, ProjectDetails, CATEGORY_ORDER


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of a validation pass."""

    accepted: bool
    reason: str = ""
    allocated_sum: int = 0
    total: int = 0
    invalid_fields: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def excess(self) -> int:
        """Amount the category budgets exceed the total by, or zero."""

        return max(self.allocated_sum - self.total, 0)

    def __bool__(self) -> bool:
        return self.accepted

    @classmethod
    def ok(cls, allocated_sum: int = 0, total: int = 0) -> "ValidationResult":
        return cls(accepted=True, allocated_sum=allocated_sum, total=total)

    @classmethod
    def rejected(
        cls,
        reason: str,
        *,
        allocated_sum: int = 0,
        total: int = 0,
        invalid_fields: Tuple[str, ...] = (),
    ) -> "ValidationResult":
        return cls(
            accepted=False,
            reason=reason,
            allocated_sum=allocated_sum,
            total=total,
            invalid_fields=tuple(invalid_fields),
        )


class BudgetValidator:
    """Validate budget allocations in base currency units."""

    @staticmethod
    def validate(allocation: BudgetAllocation) -> ValidationResult:
        """Accept ``allocation`` when all six fields are non-negative integers
        and the five category budgets fit inside the total."""

        values = allocation.as_dict()
        not_integers = tuple(
            name
            for name, value in values.items()
            if isinstance(value, bool) or not isinstance(value, int)
        )
        if not_integers:
            return ValidationResult.rejected(
                "Budget amounts must be whole base currency units: " + ", ".join(not_integers),
                invalid_fields=not_integers,
            )

        allocated_sum = allocation.allocated_sum
        total = allocation.total_budget
        negative = tuple(name for name, value in values.items() if value < 0)
        if negative:
            return ValidationResult.rejected(
                "Budget amounts cannot be negative: " + ", ".join(negative),
                allocated_sum=allocated_sum,
                total=total,
                invalid_fields=negative,
            )
        if allocated_sum > total:
            return ValidationResult.rejected(
                f"Category budgets total {allocated_sum} which exceeds the total budget "
                f"{total} by {allocated_sum - total}.",
                allocated_sum=allocated_sum,
                total=total,
                invalid_fields=tuple(category.value for category in CATEGORY_ORDER),
            )
        return ValidationResult.ok(allocated_sum=allocated_sum, total=total)


def validate_project_details(details: ProjectDetails) -> ValidationResult:
    """Require a project name and a responsible-party email."""

    missing = []
    if not (details.name or "").strip():
        missing.append("name")
    email = (details.responsible_email or "").strip()
    if not email or "@" not in email:
        missing.append("responsible_email")
    if missing:
        return ValidationResult.rejected(
            "Project requires: " + ", ".join(missing), invalid_fields=tuple(missing)
        )
    return ValidationResult.ok()


def validate_expense_fields(
    fields: Mapping[str, object], *, partial: bool = False
) -> ValidationResult:
    """Check expense ``category``, ``amount`` and ``description`` values.

    With ``partial`` set, absent keys are allowed so that in-place edits can
    send only the fields they change.
    """

    problems = []
    if "category" in fields or not partial:
        try:
            Category.from_str(fields.get("category"))
        except ValueError:
            problems.append("category")
    if "amount" in fields or not partial:
        amount: Optional[object] = fields.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            problems.append("amount")
    if "description" in fields or not partial:
        description = fields.get("description")
        if not isinstance(description, str) or not description.strip():
            problems.append("description")
    if problems:
        return ValidationResult.rejected(
            "Invalid expense fields: " + ", ".join(problems), invalid_fields=tuple(problems)
        )
    return ValidationResult.ok()
