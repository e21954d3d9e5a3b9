"""Mini README: Budget ledger and live reconciliation for research grants.

This package holds the record types, the validation and aggregation rules,
the ledger store capability with its in-memory implementation, the
validator-gated write service, and the live reconciliation session that
keeps balance snapshots current for open views.
"""

from .aggregator import BalanceAggregator, BalanceSnapshot, CategoryBalance
from .models import (
    BudgetAllocation,
    Category,
    ChangeEvent,
    Expense,
    ExpenseChange,
    Project,
    ProjectDetails,
    to_base_units,
    to_display_amount,
)
from .service import BudgetLedgerService
from .session import ReconciliationSession, SessionState, SnapshotUpdate
from .store import InMemoryLedgerStore, LedgerStore, Subscription
from .validator import BudgetValidator, ValidationResult

__all__ = [
    "BalanceAggregator",
    "BalanceSnapshot",
    "BudgetAllocation",
    "BudgetLedgerService",
    "BudgetValidator",
    "Category",
    "CategoryBalance",
    "ChangeEvent",
    "Expense",
    "ExpenseChange",
    "InMemoryLedgerStore",
    "LedgerStore",
    "Project",
    "ProjectDetails",
    "ReconciliationSession",
    "SessionState",
    "SnapshotUpdate",
    "Subscription",
    "ValidationResult",
    "to_base_units",
    "to_display_amount",
]
