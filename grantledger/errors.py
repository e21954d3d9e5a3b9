"""Mini README: Error taxonomy shared by the ledger, session and router.

Structure:
    * LedgerError - common base class.
    * ValidationError - a proposed write failed its consistency checks.
    * NotFoundError - a project or expense id does not exist.
    * StoreError - the ledger store failed; the message is the store's own.
    * SubscriptionError - the change notification channel could not be held.

Validation and lookup misses are ordinary outcomes for the pure components,
which return explicit results. These exceptions are raised at the write
service and API seams where a caller has to stop and show something.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .ledger.validator import ValidationResult


class LedgerError(Exception):
    """Base class for every error raised by the grant ledger."""


class ValidationError(LedgerError, ValueError):
    """Raised when a write is rejected before reaching the store."""

    def __init__(self, message: str, result: Optional["ValidationResult"] = None) -> None:
        super().__init__(message)
        self.result = result

    @property
    def excess(self) -> int:
        """Amount by which category budgets exceed the total, if applicable."""

        return self.result.excess if self.result is not None else 0


class NotFoundError(LedgerError, KeyError):
    """Raised when a project or expense id does not resolve."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind.capitalize()} {identifier} not found")
        self.kind = kind
        self.identifier = identifier

    def __str__(self) -> str:
        # KeyError would otherwise wrap the message in quotes.
        return str(self.args[0])


class StoreError(LedgerError):
    """Raised when the ledger store is unreachable or refuses a write."""


class SubscriptionError(StoreError):
    """Raised when a change subscription cannot be established or re-established."""
