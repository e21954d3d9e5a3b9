"""Mini README: Tests for the in-memory ledger store.

Structure:
    * ordering - newest-first listings with insertion order breaking timestamp ties.
    * cascade delete - removing a project removes its expenses in one step.
    * edits - allocations replaced whole, expense identity and owner immutable.
    * notifications - subscribers hear about their own project only.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List

import pytest

from grantledger.ledger import (
    BudgetAllocation,
    Category,
    ChangeEvent,
    ExpenseChange,
    InMemoryLedgerStore,
    ProjectDetails,
)

FIXED = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


def _details(email: str = "prof@univ.edu") -> ProjectDetails:
    return ProjectDetails(name="Soil carbon survey", responsible_email=email, responsible_name="Prof. Lee")


@pytest.mark.asyncio
async def test_expenses_listed_newest_first_with_insertion_tiebreak() -> None:
    """Identical timestamps fall back to insertion order, newest first."""

    store = InMemoryLedgerStore(clock=lambda: FIXED)
    project = await store.insert_project(_details(), BudgetAllocation(total_budget=1_000))
    first = await store.insert_expense(project.project_id, Category.MATERIALS, 10, "First")
    second = await store.insert_expense(project.project_id, Category.MATERIALS, 20, "Second")
    third = await store.insert_expense(project.project_id, Category.ACTIVITY, 30, "Third")

    listed = await store.list_expenses(project.project_id)

    assert [expense.expense_id for expense in listed] == [
        third.expense_id,
        second.expense_id,
        first.expense_id,
    ]


@pytest.mark.asyncio
async def test_delete_project_cascades_expenses() -> None:
    store = InMemoryLedgerStore()
    keep = await store.insert_project(_details("a@u.edu"), BudgetAllocation(total_budget=100))
    doomed = await store.insert_project(_details("b@u.edu"), BudgetAllocation(total_budget=100))
    kept_expense = await store.insert_expense(keep.project_id, Category.MATERIALS, 5, "Keep")
    doomed_expense = await store.insert_expense(doomed.project_id, Category.MATERIALS, 5, "Drop")

    await store.delete_project(doomed.project_id)

    assert await store.get_project(doomed.project_id) is None
    assert await store.get_expense(doomed_expense.expense_id) is None
    assert await store.list_expenses(doomed.project_id) == []
    assert await store.get_expense(kept_expense.expense_id) == kept_expense


@pytest.mark.asyncio
async def test_update_project_replaces_allocation_whole() -> None:
    store = InMemoryLedgerStore()
    project = await store.insert_project(
        _details(), BudgetAllocation(total_budget=100, materials=50, equipment=20)
    )

    updated = await store.update_project(
        project.project_id, BudgetAllocation(total_budget=200, activity=10)
    )

    assert updated.allocation == BudgetAllocation(total_budget=200, activity=10)
    assert updated.project_id == project.project_id
    assert updated.name == project.name


@pytest.mark.asyncio
async def test_update_expense_rejects_identity_and_owner_changes() -> None:
    store = InMemoryLedgerStore()
    project = await store.insert_project(_details(), BudgetAllocation(total_budget=100))
    expense = await store.insert_expense(project.project_id, Category.MATERIALS, 5, "Gloves")

    with pytest.raises(ValueError):
        await store.update_expense(expense.expense_id, {"project_id": "prj_9999"})

    edited = await store.update_expense(
        expense.expense_id, {"category": "equipment", "amount": 7, "description": "Centrifuge"}
    )
    assert edited.category is Category.EQUIPMENT
    assert edited.amount == 7
    assert edited.expense_id == expense.expense_id
    assert edited.project_id == project.project_id
    assert edited.created_at == expense.created_at


@pytest.mark.asyncio
async def test_subscribers_receive_only_their_project_changes() -> None:
    store = InMemoryLedgerStore()
    watched = await store.insert_project(_details("a@u.edu"), BudgetAllocation(total_budget=100))
    other = await store.insert_project(_details("b@u.edu"), BudgetAllocation(total_budget=100))
    received: List[ExpenseChange] = []
    subscription = await store.subscribe_expense_changes(watched.project_id, received.append)

    expense = await store.insert_expense(watched.project_id, Category.MATERIALS, 5, "Tape")
    await store.insert_expense(other.project_id, Category.MATERIALS, 5, "Tape")
    await store.update_expense(expense.expense_id, {"amount": 6})
    await store.delete_expense(expense.expense_id)
    subscription.cancel()
    subscription.cancel()
    await store.insert_expense(watched.project_id, Category.MATERIALS, 5, "After cancel")

    assert [change.event for change in received] == [
        ChangeEvent.INSERT,
        ChangeEvent.UPDATE,
        ChangeEvent.DELETE,
    ]
    assert store.subscriber_count(watched.project_id) == 0


@pytest.mark.asyncio
async def test_dropped_subscription_reports_loss() -> None:
    store = InMemoryLedgerStore()
    project = await store.insert_project(_details(), BudgetAllocation(total_budget=100))
    drops: List[str] = []
    subscription = await store.subscribe_expense_changes(
        project.project_id, lambda change: None, on_drop=lambda: drops.append("dropped")
    )

    assert store.drop_subscriptions(project.project_id) == 1

    assert drops == ["dropped"]
    assert subscription.active is False


@pytest.mark.asyncio
async def test_find_projects_matches_email_or_identity() -> None:
    store = InMemoryLedgerStore()
    by_email = await store.insert_project(_details("X@U.edu"), BudgetAllocation(total_budget=1))
    by_identity = await store.insert_project(_details("old@u.edu"), BudgetAllocation(total_budget=1))
    await store.claim_project(by_identity.project_id, "uid-42")
    await store.insert_project(_details("someone@else.edu"), BudgetAllocation(total_budget=1))

    matches = await store.find_projects_by_responsible_party(" x@u.edu ", "uid-42")

    assert {project.project_id for project in matches} == {
        by_email.project_id,
        by_identity.project_id,
    }


@pytest.mark.asyncio
async def test_demo_seed_is_deterministic() -> None:
    store = InMemoryLedgerStore(seed_demo_data=True)

    project = await store.get_project("prj_0001")
    assert project.name == "NSF Grant #2049"
    assert len(await store.list_expenses("prj_0001")) == 3
