"""Mini README: Tests for budget allocation and expense field validation.

Structure:
    * allocation checks - category sums against the total, negatives, exact excess.
    * display units - conversion of form values typed in thousands.
    * details / expense checks - required project and expense fields.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from grantledger.ledger import BudgetAllocation, BudgetValidator, ProjectDetails, to_base_units
from grantledger.ledger.validator import validate_expense_fields, validate_project_details


def test_allocation_within_total_is_accepted() -> None:
    """Scenario A allocation: 7M of categories inside a 10M total."""

    allocation = BudgetAllocation(
        total_budget=10_000_000, materials=4_000_000, student_labor=3_000_000
    )

    result = BudgetValidator.validate(allocation)

    assert result.accepted
    assert result.allocated_sum == 7_000_000
    assert result.excess == 0


def test_allocation_exactly_at_total_is_accepted() -> None:
    allocation = BudgetAllocation(
        total_budget=500,
        materials=100,
        student_labor=100,
        equipment=100,
        activity=100,
        allowance=100,
    )

    assert BudgetValidator.validate(allocation)


def test_over_allocation_reports_exact_excess() -> None:
    """Scenario B: 1.1M of categories against a 1M total is short by 100k."""

    allocation = BudgetAllocation(
        total_budget=1_000_000, materials=600_000, student_labor=500_000
    )

    result = BudgetValidator.validate(allocation)

    assert not result.accepted
    assert result.allocated_sum == 1_100_000
    assert result.total == 1_000_000
    assert result.excess == 100_000
    assert "100000" in result.reason


@pytest.mark.parametrize(
    "total, categories",
    [
        (0, (1, 0, 0, 0, 0)),
        (10, (3, 3, 3, 1, 1)),
        (999, (0, 0, 0, 0, 1_000)),
    ],
)
def test_excess_always_equals_sum_minus_total(total: int, categories: tuple) -> None:
    allocation = BudgetAllocation(total, *categories)

    result = BudgetValidator.validate(allocation)

    assert not result.accepted
    assert result.excess == sum(categories) - total


def test_negative_amounts_are_rejected() -> None:
    allocation = BudgetAllocation(total_budget=1_000, materials=-1)

    result = BudgetValidator.validate(allocation)

    assert not result.accepted
    assert result.invalid_fields == ("materials",)


def test_fractional_amounts_are_rejected() -> None:
    allocation = BudgetAllocation(total_budget=1_000, equipment=12.5)  # type: ignore[arg-type]

    result = BudgetValidator.validate(allocation)

    assert not result.accepted
    assert "equipment" in result.invalid_fields


def test_from_display_units_scales_and_treats_blanks_as_zero() -> None:
    """Forms are typed in thousands; untouched inputs count as zero."""

    allocation = BudgetAllocation.from_display_units(
        {"total_budget": "10000", "materials": 4000, "student_labor": "", "equipment": None},
        scale=1000,
    )

    assert allocation == BudgetAllocation(total_budget=10_000_000, materials=4_000_000)
    assert allocation.to_display_units(1000)["materials"] == Decimal("4000")


def test_from_display_units_rejects_non_numeric_values() -> None:
    with pytest.raises(ValueError):
        BudgetAllocation.from_display_units({"total_budget": "lots"})


@pytest.mark.parametrize(
    ("typed", "expected"),
    [
        (2.01, 2010),
        (4.03, 4030),
        ("0.001", 1),
        ("9007199254740993", 9_007_199_254_740_993_000),
    ],
)
def test_display_units_convert_exactly(typed, expected) -> None:
    """Values that are not exact binary fractions still land on whole base units."""

    assert to_base_units(typed, 1000) == expected
    allocation = BudgetAllocation.from_display_units({"total_budget": typed}, scale=1000)
    assert allocation.total_budget == expected


def test_display_units_below_one_base_unit_are_rejected() -> None:
    with pytest.raises(ValueError):
        to_base_units("0.0005", 1000)
    with pytest.raises(ValueError):
        to_base_units("Infinity", 1000)


def test_display_amounts_round_trip_without_float_error() -> None:
    allocation = BudgetAllocation(total_budget=4030, materials=2010)

    assert allocation.to_display_units(1000)["total_budget"] == Decimal("4.03")
    assert allocation.to_display_units(1000)["materials"] == Decimal("2.01")


def test_project_details_require_name_and_email() -> None:
    result = validate_project_details(ProjectDetails(name=" ", responsible_email=""))

    assert not result.accepted
    assert result.invalid_fields == ("name", "responsible_email")
    assert validate_project_details(ProjectDetails(name="Grant", responsible_email="p@u.edu"))


def test_expense_fields_checks_category_amount_description() -> None:
    result = validate_expense_fields({"category": "travel", "amount": -5, "description": ""})

    assert not result.accepted
    assert set(result.invalid_fields) == {"category", "amount", "description"}
    assert validate_expense_fields(
        {"category": "Materials", "amount": 0, "description": "Pipettes"}
    )


def test_partial_expense_fields_only_check_supplied_keys() -> None:
    assert validate_expense_fields({"amount": 10}, partial=True)
    assert not validate_expense_fields({"description": "  "}, partial=True)
