"""Mini README: Ledger store capability and an in-memory implementation.

Structure:
    * Subscription - handle returned by ``subscribe_expense_changes``.
    * LedgerStore - abstract coroutine interface for the durable record store.
    * InMemoryLedgerStore - dictionary backed store used by tests and the demo API.

The store is the single source of truth for projects and expenses. It
assigns identifiers and ``created_at`` timestamps, returns expenses newest
first, and emits one ``ExpenseChange`` per committed expense write to the
subscribers of the owning project. Deleting a project removes its expenses
in the same step. Stores do not validate budgets; callers go through
``BudgetLedgerService`` for that.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ..errors import NotFoundError
from ..logging_utils import get_logger
from .models import (
    BudgetAllocation,
    Category,
    ChangeEvent,
    Expense,
    ExpenseChange,
    Project,
    ProjectDetails,
)

LOGGER = get_logger(__name__)

ChangeCallback = Callable[[ExpenseChange], None]
DropCallback = Callable[[], None]

EDITABLE_EXPENSE_FIELDS = frozenset({"category", "amount", "description"})


class Subscription:
    """Registration of one listener for one project's expense changes."""

    def __init__(
        self,
        project_id: str,
        on_change: ChangeCallback,
        on_drop: Optional[DropCallback] = None,
        on_cancel: Optional[Callable[["Subscription"], None]] = None,
    ) -> None:
        self.project_id = project_id
        self._on_change = on_change
        self._on_drop = on_drop
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop delivery. Cancelling twice is harmless."""

        if not self._active:
            return
        self._active = False
        if self._on_cancel is not None:
            self._on_cancel(self)

    def deliver(self, change: ExpenseChange) -> None:
        if self._active:
            self._on_change(change)

    def drop(self) -> None:
        """Mark the channel as lost and tell the listener about it."""

        if not self._active:
            return
        self._active = False
        if self._on_cancel is not None:
            self._on_cancel(self)
        if self._on_drop is not None:
            self._on_drop()


class LedgerStore(ABC):
    """Coroutine interface to the durable project and expense records."""

    @abstractmethod
    async def get_project(self, project_id: str) -> Optional[Project]:
        """Return the project or ``None`` when it does not exist."""

    @abstractmethod
    async def list_projects(self) -> List[Project]:
        """Return every project, newest first."""

    @abstractmethod
    async def insert_project(
        self, details: ProjectDetails, allocation: BudgetAllocation
    ) -> Project:
        """Persist a new project and return it with its assigned identity."""

    @abstractmethod
    async def update_project(
        self,
        project_id: str,
        allocation: BudgetAllocation,
        details: Optional[ProjectDetails] = None,
    ) -> Project:
        """Replace the whole allocation (and optionally the details) of a project."""

    @abstractmethod
    async def delete_project(self, project_id: str) -> None:
        """Delete a project together with all of its expenses."""

    @abstractmethod
    async def claim_project(self, project_id: str, identity_id: str) -> Project:
        """Record the identity id of the project's responsible party."""

    @abstractmethod
    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        """Return the expense or ``None`` when it does not exist."""

    @abstractmethod
    async def list_expenses(self, project_id: str) -> List[Expense]:
        """Return the project's expenses, newest created first."""

    @abstractmethod
    async def insert_expense(
        self, project_id: str, category: Category, amount: int, description: str
    ) -> Expense:
        """Persist a new expense against ``project_id``."""

    @abstractmethod
    async def update_expense(self, expense_id: str, changes: Mapping[str, object]) -> Expense:
        """Apply in-place edits to ``category``, ``amount`` or ``description``."""

    @abstractmethod
    async def delete_expense(self, expense_id: str) -> None:
        """Delete one expense."""

    @abstractmethod
    async def subscribe_expense_changes(
        self,
        project_id: str,
        on_change: ChangeCallback,
        on_drop: Optional[DropCallback] = None,
    ) -> Subscription:
        """Register ``on_change`` for every committed expense write of a project."""

    @abstractmethod
    async def find_projects_by_responsible_party(
        self, email: str, identity_id: Optional[str]
    ) -> List[Project]:
        """Return projects whose email OR stored identity id matches."""


def _normalise_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class InMemoryLedgerStore(LedgerStore):
    """Store projects and expenses in dictionaries for a single process.

    Each coroutine finishes its mutation without suspending, so every write
    (including the project cascade delete) is applied atomically with
    respect to other tasks on the event loop.
    """

    def __init__(
        self,
        *,
        seed_demo_data: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._projects: Dict[str, Project] = {}
        self._project_order: Dict[str, int] = {}
        self._expenses: Dict[str, Expense] = {}
        self._expense_order: Dict[str, int] = {}
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._project_sequence = 0
        self._expense_sequence = 0
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        if seed_demo_data:
            self._seed_demo_data()
        LOGGER.debug(
            "In-memory ledger store initialised with %s projects and %s expenses",
            len(self._projects),
            len(self._expenses),
        )

    def _seed_demo_data(self) -> None:
        """Populate the store with a deterministic demonstration grant."""

        project = self._put_project(
            ProjectDetails(
                name="NSF Grant #2049",
                responsible_email="prof@univ.edu",
                responsible_name="Prof. Kim",
            ),
            BudgetAllocation(
                total_budget=10_000_000,
                materials=4_000_000,
                student_labor=3_000_000,
                equipment=1_500_000,
                activity=1_000_000,
                allowance=500_000,
            ),
        )
        demo_expenses = [
            (Category.MATERIALS, 1_250_000, "Reagents and lab consumables"),
            (Category.STUDENT_LABOR, 900_000, "Graduate assistant stipend"),
            (Category.ACTIVITY, 320_000, "Conference registration"),
        ]
        for category, amount, description in demo_expenses:
            self._put_expense(project.project_id, category, amount, description)

    def _next_project_id(self) -> str:
        self._project_sequence += 1
        return f"prj_{self._project_sequence:04d}"

    def _next_expense_id(self) -> str:
        self._expense_sequence += 1
        return f"exp_{self._expense_sequence:04d}"

    def _put_project(self, details: ProjectDetails, allocation: BudgetAllocation) -> Project:
        project = Project(
            project_id=self._next_project_id(),
            name=details.name.strip(),
            responsible_email=details.responsible_email.strip(),
            responsible_name=(details.responsible_name or "").strip() or None,
            allocation=allocation,
            created_at=self._clock(),
        )
        self._projects[project.project_id] = project
        self._project_order[project.project_id] = self._project_sequence
        return project

    def _put_expense(
        self, project_id: str, category: Category, amount: int, description: str
    ) -> Expense:
        expense = Expense(
            expense_id=self._next_expense_id(),
            project_id=project_id,
            category=Category.from_str(category),
            amount=amount,
            description=description.strip(),
            created_at=self._clock(),
        )
        self._expenses[expense.expense_id] = expense
        self._expense_order[expense.expense_id] = self._expense_sequence
        return expense

    def _require_project(self, project_id: str) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    def _require_expense(self, expense_id: str) -> Expense:
        expense = self._expenses.get(expense_id)
        if expense is None:
            raise NotFoundError("expense", expense_id)
        return expense

    def _notify(self, event: ChangeEvent, project_id: str, expense_id: Optional[str]) -> None:
        change = ExpenseChange(event=event, project_id=project_id, expense_id=expense_id)
        for subscription in list(self._subscriptions.get(project_id, ())):
            subscription.deliver(change)

    def _remove_subscription(self, subscription: Subscription) -> None:
        listeners = self._subscriptions.get(subscription.project_id, [])
        if subscription in listeners:
            listeners.remove(subscription)
        if not listeners:
            self._subscriptions.pop(subscription.project_id, None)

    def _newest_first(self, records: Iterable, order: Dict[str, int], key: str) -> list:
        return sorted(
            records,
            key=lambda record: (record.created_at, order[getattr(record, key)]),
            reverse=True,
        )

    async def get_project(self, project_id: str) -> Optional[Project]:
        return self._projects.get(project_id)

    async def list_projects(self) -> List[Project]:
        return self._newest_first(self._projects.values(), self._project_order, "project_id")

    async def insert_project(
        self, details: ProjectDetails, allocation: BudgetAllocation
    ) -> Project:
        project = self._put_project(details, allocation)
        LOGGER.info("Stored project %s (%s)", project.project_id, project.name)
        return project

    async def update_project(
        self,
        project_id: str,
        allocation: BudgetAllocation,
        details: Optional[ProjectDetails] = None,
    ) -> Project:
        current = self._require_project(project_id)
        changes: Dict[str, object] = {"allocation": allocation}
        if details is not None:
            changes.update(
                name=details.name.strip(),
                responsible_email=details.responsible_email.strip(),
                responsible_name=(details.responsible_name or "").strip() or None,
            )
        updated = replace(current, **changes)
        self._projects[project_id] = updated
        LOGGER.info("Replaced allocation of project %s", project_id)
        return updated

    async def delete_project(self, project_id: str) -> None:
        self._require_project(project_id)
        removed: List[str] = [
            expense_id
            for expense_id, expense in self._expenses.items()
            if expense.project_id == project_id
        ]
        for expense_id in removed:
            del self._expenses[expense_id]
            del self._expense_order[expense_id]
        del self._projects[project_id]
        del self._project_order[project_id]
        LOGGER.info("Deleted project %s with %s expenses", project_id, len(removed))
        for expense_id in removed:
            self._notify(ChangeEvent.DELETE, project_id, expense_id)
        if not removed:
            # Observers still need to learn that the project itself is gone.
            self._notify(ChangeEvent.DELETE, project_id, None)

    async def claim_project(self, project_id: str, identity_id: str) -> Project:
        current = self._require_project(project_id)
        claimed = replace(current, responsible_identity_id=identity_id)
        self._projects[project_id] = claimed
        LOGGER.info("Project %s claimed by identity %s", project_id, identity_id)
        return claimed

    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        return self._expenses.get(expense_id)

    async def list_expenses(self, project_id: str) -> List[Expense]:
        expenses = [
            expense for expense in self._expenses.values() if expense.project_id == project_id
        ]
        return self._newest_first(expenses, self._expense_order, "expense_id")

    async def insert_expense(
        self, project_id: str, category: Category, amount: int, description: str
    ) -> Expense:
        self._require_project(project_id)
        expense = self._put_expense(project_id, category, amount, description)
        LOGGER.info(
            "Recorded expense %s on project %s: %s %s",
            expense.expense_id,
            project_id,
            expense.category.value,
            amount,
        )
        self._notify(ChangeEvent.INSERT, project_id, expense.expense_id)
        return expense

    async def update_expense(self, expense_id: str, changes: Mapping[str, object]) -> Expense:
        current = self._require_expense(expense_id)
        unsupported = set(changes) - EDITABLE_EXPENSE_FIELDS
        if unsupported:
            raise ValueError(
                "Expense fields cannot be changed: " + ", ".join(sorted(unsupported))
            )
        coerced: Dict[str, object] = {}
        for key, value in changes.items():
            if value is None:
                continue
            if key == "category":
                coerced[key] = Category.from_str(value)
            elif key == "description":
                coerced[key] = str(value).strip()
            else:
                coerced[key] = value
        updated = replace(current, **coerced)
        self._expenses[expense_id] = updated
        LOGGER.info("Updated expense %s (%s)", expense_id, ", ".join(sorted(coerced)) or "no changes")
        self._notify(ChangeEvent.UPDATE, updated.project_id, expense_id)
        return updated

    async def delete_expense(self, expense_id: str) -> None:
        expense = self._require_expense(expense_id)
        del self._expenses[expense_id]
        del self._expense_order[expense_id]
        LOGGER.info("Deleted expense %s from project %s", expense_id, expense.project_id)
        self._notify(ChangeEvent.DELETE, expense.project_id, expense_id)

    async def subscribe_expense_changes(
        self,
        project_id: str,
        on_change: ChangeCallback,
        on_drop: Optional[DropCallback] = None,
    ) -> Subscription:
        subscription = Subscription(
            project_id, on_change, on_drop=on_drop, on_cancel=self._remove_subscription
        )
        self._subscriptions.setdefault(project_id, []).append(subscription)
        LOGGER.debug("Subscribed to expense changes for project %s", project_id)
        return subscription

    def subscriber_count(self, project_id: str) -> int:
        return len(self._subscriptions.get(project_id, ()))

    def drop_subscriptions(self, project_id: Optional[str] = None) -> int:
        """Simulate a lost notification channel for one or all projects."""

        if project_id is None:
            targets: Tuple[Subscription, ...] = tuple(
                subscription
                for listeners in self._subscriptions.values()
                for subscription in listeners
            )
        else:
            targets = tuple(self._subscriptions.get(project_id, ()))
        for subscription in targets:
            LOGGER.warning("Dropping expense subscription for project %s", subscription.project_id)
            subscription.drop()
        return len(targets)

    async def find_projects_by_responsible_party(
        self, email: str, identity_id: Optional[str]
    ) -> List[Project]:
        wanted_email = _normalise_email(email)
        matches = [
            project
            for project in self._projects.values()
            if (wanted_email and _normalise_email(project.responsible_email) == wanted_email)
            or (identity_id and project.responsible_identity_id == identity_id)
        ]
        return self._newest_first(matches, self._project_order, "project_id")


__all__ = [
    "EDITABLE_EXPENSE_FIELDS",
    "InMemoryLedgerStore",
    "LedgerStore",
    "Subscription",
]
