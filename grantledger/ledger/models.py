"""Mini README: Record types for projects, allocations and expenses.

Structure:
    * Category - closed enumeration of the five spending categories.
    * BudgetAllocation - total budget plus the five category sub-budgets.
    * ProjectDetails - descriptive project fields (name and responsible party).
    * Project - stored project record with identity and allocation.
    * Expense - stored expenditure against one project and one category.
    * ChangeEvent / ExpenseChange - change notifications emitted by stores.

All amounts are integers in the smallest currency unit. Conversion from the
"thousands" units typed into forms happens through ``to_base_units`` and
``BudgetAllocation.from_display_units`` at the presentation edge only.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Mapping, Optional


class Category(str, Enum):
    """Enumerate the fixed spending categories of a grant."""

    MATERIALS = "materials"
    STUDENT_LABOR = "student_labor"
    EQUIPMENT = "equipment"
    ACTIVITY = "activity"
    ALLOWANCE = "allowance"

    @classmethod
    def from_str(cls, value: object) -> "Category":
        """Coerce arbitrary casing into a valid category tag."""

        if isinstance(value, Category):
            return value
        try:
            normalised = str(value).strip().lower()
            return cls(normalised)
        except (ValueError, AttributeError) as error:
            raise ValueError(f"Unsupported expense category: {value}") from error

    @property
    def label(self) -> str:
        """Human readable label used in API payloads and logs."""

        return self.value.replace("_", " ").title()


CATEGORY_ORDER = tuple(Category)


def to_base_units(raw: object, scale: int = 1000, field_name: str = "amount") -> int:
    """Convert a value typed in display units into whole base currency units.

    Parsing goes through ``Decimal`` so inputs such as ``2.01`` thousands land
    exactly on 2010 and very large values keep every digit.
    """

    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError) as error:
        raise ValueError(f"Budget field '{field_name}' must be numeric, got {raw!r}") from error
    if not value.is_finite():
        raise ValueError(f"Budget field '{field_name}' must be numeric, got {raw!r}")
    scaled = value * scale
    if scaled % 1 != 0:
        raise ValueError(
            f"Budget field '{field_name}' does not resolve to whole currency units."
        )
    return int(scaled)


def to_display_amount(value: int, scale: int = 1000) -> Decimal:
    """Inverse of ``to_base_units``, exact for any integer amount."""

    return Decimal(value) / scale


@dataclass(frozen=True, slots=True)
class BudgetAllocation:
    """Total budget and the five category sub-budgets, in base units."""

    total_budget: int
    materials: int = 0
    student_labor: int = 0
    equipment: int = 0
    activity: int = 0
    allowance: int = 0

    def for_category(self, category: Category) -> int:
        """Return the sub-budget earmarked for ``category``."""

        return getattr(self, Category.from_str(category).value)

    @property
    def allocated_sum(self) -> int:
        """Sum of the five category sub-budgets."""

        return sum(self.for_category(category) for category in CATEGORY_ORDER)

    def as_dict(self) -> Dict[str, int]:
        return {field.name: getattr(self, field.name) for field in fields(self)}

    @classmethod
    def from_display_units(
        cls, values: Mapping[str, object], scale: int = 1000
    ) -> "BudgetAllocation":
        """Build an allocation from form values typed in display units.

        Blank or missing entries count as zero, matching how the budget form
        treats untouched inputs. Values are multiplied by ``scale`` and must
        land on whole base units.
        """

        converted: Dict[str, int] = {}
        for field in fields(cls):
            raw = values.get(field.name)
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                converted[field.name] = 0
                continue
            converted[field.name] = to_base_units(raw, scale, field.name)
        return cls(**converted)

    def to_display_units(self, scale: int = 1000) -> Dict[str, Decimal]:
        """Inverse of ``from_display_units`` for pre-filling edit forms."""

        return {name: to_display_amount(value, scale) for name, value in self.as_dict().items()}


@dataclass(frozen=True, slots=True)
class ProjectDetails:
    """Descriptive fields an administrator supplies for a project."""

    name: str
    responsible_email: str
    responsible_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Project:
    """A funded research project as held by the ledger store."""

    project_id: str
    name: str
    responsible_email: str
    allocation: BudgetAllocation
    created_at: datetime
    responsible_name: Optional[str] = None
    responsible_identity_id: Optional[str] = None

    @property
    def total_budget(self) -> int:
        return self.allocation.total_budget

    def as_dict(self) -> Dict[str, object]:
        """Export the project with serialisable values."""

        return {
            "project_id": self.project_id,
            "name": self.name,
            "responsible_name": self.responsible_name,
            "responsible_email": self.responsible_email,
            "responsible_identity_id": self.responsible_identity_id,
            "created_at": self.created_at.isoformat(),
            **self.allocation.as_dict(),
        }


@dataclass(frozen=True, slots=True)
class Expense:
    """A single recorded expenditure."""

    expense_id: str
    project_id: str
    category: Category
    amount: int
    description: str
    created_at: datetime

    def as_dict(self) -> Dict[str, object]:
        return {
            "expense_id": self.expense_id,
            "project_id": self.project_id,
            "category": self.category.value,
            "amount": self.amount,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }


class ChangeEvent(str, Enum):
    """Kinds of expense mutation reported to subscribers."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class ExpenseChange:
    """Notification payload describing one committed expense write.

    ``expense_id`` is ``None`` when a project without expenses was deleted.
    """

    event: ChangeEvent
    project_id: str
    expense_id: Optional[str]
