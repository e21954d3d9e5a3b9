"""Mini README: Validator-gated write path for projects and expenses.

Structure:
    * BudgetLedgerService - wraps a ``LedgerStore`` with validation, lookups and logging.

Every create or edit runs the pure validators first; a rejection raises
``ValidationError`` before the store is touched, so rejected writes are
never partially applied. Store failures are logged and re-raised to the
caller unchanged. Missing records raise ``NotFoundError``.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Tuple

from ..errors import NotFoundError, StoreError, ValidationError
from ..logging_utils import get_logger
from .aggregator import BalanceAggregator, BalanceSnapshot
from .models import BudgetAllocation, Category, Expense, Project, ProjectDetails
from .store import EDITABLE_EXPENSE_FIELDS, LedgerStore
from .validator import (
    BudgetValidator,
    ValidationResult,
    validate_expense_fields,
    validate_project_details,
)

LOGGER = get_logger(__name__)


def _reject(result: ValidationResult) -> None:
    if not result:
        LOGGER.warning("Rejected write: %s", result.reason)
        raise ValidationError(result.reason, result)


class BudgetLedgerService:
    """Coordinate validated writes and lookups against a ledger store."""

    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    async def get_project(self, project_id: str) -> Project:
        project = await self.store.get_project(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    async def list_projects(self) -> List[Project]:
        return await self.store.list_projects()

    async def create_project(
        self, details: ProjectDetails, allocation: BudgetAllocation
    ) -> Project:
        """Validate and persist a new project."""

        _reject(validate_project_details(details))
        _reject(BudgetValidator.validate(allocation))
        try:
            return await self.store.insert_project(details, allocation)
        except StoreError:
            LOGGER.error("Store rejected new project %s", details.name, exc_info=True)
            raise

    async def update_project(
        self,
        project_id: str,
        allocation: BudgetAllocation,
        details: Optional[ProjectDetails] = None,
    ) -> Project:
        """Replace a project's allocation as a whole record."""

        if details is not None:
            _reject(validate_project_details(details))
        _reject(BudgetValidator.validate(allocation))
        await self.get_project(project_id)
        try:
            return await self.store.update_project(project_id, allocation, details)
        except StoreError:
            LOGGER.error("Store rejected update of project %s", project_id, exc_info=True)
            raise

    async def delete_project(self, project_id: str) -> None:
        """Delete a project and, with it, every expense recorded against it."""

        await self.get_project(project_id)
        try:
            await self.store.delete_project(project_id)
        except StoreError:
            LOGGER.error("Store rejected deletion of project %s", project_id, exc_info=True)
            raise

    async def get_expense(self, expense_id: str) -> Expense:
        expense = await self.store.get_expense(expense_id)
        if expense is None:
            raise NotFoundError("expense", expense_id)
        return expense

    async def record_expense(
        self, project_id: str, category: object, amount: int, description: str
    ) -> Expense:
        """Record an expense. Overspending is allowed and only shows up in balances."""

        _reject(
            validate_expense_fields(
                {"category": category, "amount": amount, "description": description}
            )
        )
        await self.get_project(project_id)
        try:
            return await self.store.insert_expense(
                project_id, Category.from_str(category), amount, description
            )
        except StoreError:
            LOGGER.error("Store rejected expense for project %s", project_id, exc_info=True)
            raise

    async def edit_expense(self, expense_id: str, changes: Mapping[str, object]) -> Expense:
        """Edit category, amount or description of an existing expense."""

        unsupported = sorted(set(changes) - EDITABLE_EXPENSE_FIELDS)
        if unsupported:
            _reject(
                ValidationResult.rejected(
                    "Expense fields cannot be changed: " + ", ".join(unsupported),
                    invalid_fields=tuple(unsupported),
                )
            )
        cleaned: Dict[str, object] = {
            key: value for key, value in changes.items() if value is not None
        }
        _reject(validate_expense_fields(cleaned, partial=True))
        await self.get_expense(expense_id)
        try:
            return await self.store.update_expense(expense_id, cleaned)
        except StoreError:
            LOGGER.error("Store rejected edit of expense %s", expense_id, exc_info=True)
            raise

    async def remove_expense(self, expense_id: str) -> None:
        await self.get_expense(expense_id)
        try:
            await self.store.delete_expense(expense_id)
        except StoreError:
            LOGGER.error("Store rejected deletion of expense %s", expense_id, exc_info=True)
            raise

    async def recent_expenses(self, project_id: str, limit: Optional[int] = None) -> List[Expense]:
        """Return the newest ``limit`` expenses of a project (all when ``None``)."""

        expenses, _ = await self.expense_history(project_id, limit)
        return expenses

    async def expense_history(
        self, project_id: str, limit: Optional[int] = None
    ) -> Tuple[List[Expense], int]:
        """Newest ``limit`` expenses plus the full count, from a single store read."""

        await self.get_project(project_id)
        expenses = await self.store.list_expenses(project_id)
        total_count = len(expenses)
        if limit is not None:
            expenses = expenses[: max(limit, 0)]
        return expenses, total_count

    async def balance(self, project_id: str) -> BalanceSnapshot:
        """One-off snapshot without a live session."""

        project = await self.get_project(project_id)
        expenses = await self.store.list_expenses(project_id)
        return BalanceAggregator.aggregate(project, expenses)
