"""
Test Helper Functions - Builders

Line item builders keep tests focused on the one or two inputs that
matter: everything else defaults to a plausible, neutral value.
"""

from decimal import Decimal
from typing import Any

from rate_study.ledger.models import BudgetLineItem, Enterprise, Ledger, Section


def create_line_item(
    account: str,
    section: Section | str,
    budget: Decimal | str = "0",
    monthly: Decimal | str | None = None,
    label: str | None = None,
    **inputs: Any,
) -> BudgetLineItem:
    """
    Builder for line items

    Args:
        account: Account number
        section: Section (enum or free text)
        budget: Current FY budget
        monthly: Monthly input (defaults to budget / 12, kept to cents)
        label: Description (defaults to "Item {account}")
        **inputs: Any other BudgetLineItem field

    Returns:
        BudgetLineItem with derived fields at zero

    Example:
        >>> item = create_line_item("S401.00", Section.OPERATING, "12000")
        >>> item.monthly_input
        Decimal('1000.00')
    """
    budget = Decimal(str(budget))
    if monthly is None:
        monthly = (budget / 12).quantize(Decimal("0.01"))
    return BudgetLineItem(
        account=account,
        label=label if label is not None else f"Item {account}",
        section=section,
        current_fy_budget=budget,
        monthly_input=Decimal(str(monthly)),
        **inputs,
    )


def create_revenue(account: str, budget: Decimal | str, **inputs: Any) -> BudgetLineItem:
    """Builder for Revenue items"""
    return create_line_item(account, Section.REVENUE, budget, **inputs)


def create_operating(account: str, budget: Decimal | str, **inputs: Any) -> BudgetLineItem:
    """Builder for Operating items"""
    return create_line_item(account, Section.OPERATING, budget, **inputs)


def create_admin(account: str, budget: Decimal | str, **inputs: Any) -> BudgetLineItem:
    """Builder for Admin items"""
    return create_line_item(account, Section.ADMIN, budget, **inputs)


def create_ledger(
    *items: BudgetLineItem,
    category: Enterprise = Enterprise.SANITATION_DISTRICT,
) -> Ledger:
    """Builder for a ledger holding the given items in order"""
    return Ledger(category=category, items=list(items))


def balanced_ledger() -> Ledger:
    """
    Small ledger whose revenue covers its expenses

    Revenue 70,000 against Operating 12,000 + 24,000 and Admin 30,000
    (coverage ratio 70,000 / 66,000, about 106%).
    """
    return create_ledger(
        create_revenue("S301.00", "70000"),
        create_operating("S401.00", "12000"),
        create_operating("S415.00", "24000"),
        create_admin("S460.00", "30000"),
    )
