"""
Ledger Aggregator - ledger-wide totals as an explicit value object

Per-item required rates depend on totals across the whole ledger (an
Operating item's share of expenses, an Admin item's share of admin
costs). Instead of letting formulas reach into the ledger for those
sums, a recompute pass computes them once, from the ledger's current
state, and threads the frozen result through every formula call.
"""

from collections.abc import Iterable
from decimal import Decimal

from pydantic import BaseModel, Field

from rate_study.ledger.models import ZERO, BudgetLineItem, Section, saturating


class LedgerAggregates(BaseModel):
    """
    Totals over one ledger at one moment

    Attributes:
        total_revenue: Sum of budgets over Revenue items
        total_expenses: Sum of budgets over Operating and Admin items
        total_admin_costs: Sum of budgets over Admin items
        customer_base: Ratepayer count supplied by the caller
        section_totals: Budget sum per section (Unknown included)
        scenario1_total: Sum of scenario 1 over all items
        scenario2_total: Sum of scenario 2 over all items
        scenario3_total: Sum of scenario 3 over all items
        total_ytd_spending: Sum of year-to-date spending
        total_budget_remaining: Sum of remaining budget
        total_required_rate: Sum of required rates
        item_count: Number of line items
        unsummed_accounts: Items left out of the totals because their
            amounts could not be added without leaving the decimal range

    Derived ratios are evaluated in a saturating context: a result too
    large to represent reads as Infinity rather than raising.
    """

    total_revenue: Decimal = ZERO
    total_expenses: Decimal = ZERO
    total_admin_costs: Decimal = ZERO
    customer_base: int = Field(default=0, ge=0)
    section_totals: dict[Section, Decimal] = Field(default_factory=dict)
    scenario1_total: Decimal = ZERO
    scenario2_total: Decimal = ZERO
    scenario3_total: Decimal = ZERO
    total_ytd_spending: Decimal = ZERO
    total_budget_remaining: Decimal = ZERO
    total_required_rate: Decimal = ZERO
    item_count: int = 0
    unsummed_accounts: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def total_budget(self) -> Decimal:
        """Revenue plus expenses, the district's overall budget size"""
        with saturating():
            return self.total_revenue + self.total_expenses

    @property
    def net_income(self) -> Decimal:
        with saturating():
            return self.total_revenue - self.total_expenses

    @property
    def deficit(self) -> Decimal:
        """How far expenses exceed revenue (0 when covered)"""
        with saturating():
            return max(ZERO, self.total_expenses - self.total_revenue)

    @property
    def coverage_ratio(self) -> Decimal:
        """Revenue / expenses, 0 when there are no expenses"""
        if self.total_expenses <= 0:
            return ZERO
        with saturating():
            return self.total_revenue / self.total_expenses

    @property
    def budget_utilization(self) -> Decimal:
        """Year-to-date spending over all budgets, 0 when nothing is budgeted"""
        with saturating():
            all_budgets = sum(self.section_totals.values(), ZERO)
            if all_budgets > 0:
                return self.total_ytd_spending / all_budgets
        return ZERO

    @property
    def average_required_rate(self) -> Decimal:
        if self.item_count == 0:
            return ZERO
        return self.total_required_rate / self.item_count

    def summary(self) -> dict[str, Decimal]:
        """Dashboard figures for the ledger"""
        return {
            "total_revenue": self.total_revenue,
            "total_expenses": self.total_expenses,
            "net_income": self.net_income,
            "coverage_ratio": self.coverage_ratio,
            "average_required_rate": self.average_required_rate,
            "total_ytd_spending": self.total_ytd_spending,
            "total_budget_remaining": self.total_budget_remaining,
            "budget_utilization": self.budget_utilization,
            "scenario1_total": self.scenario1_total,
            "scenario2_total": self.scenario2_total,
            "scenario3_total": self.scenario3_total,
        }


def aggregate(items: Iterable[BudgetLineItem], customer_base: int) -> LedgerAggregates:
    """
    Compute ledger-wide totals from the items' current state

    An item whose amounts cannot be added to the running totals (the sum
    would leave the decimal range) is left out entirely and listed in
    `unsummed_accounts`, so every total stays a finite number.

    Args:
        items: Line items of one ledger
        customer_base: Ratepayer count (external input, never derived)

    Returns:
        Fresh LedgerAggregates; nothing is cached between calls
    """
    section_totals: dict[Section, Decimal] = {section: ZERO for section in Section}
    total_expenses = ZERO
    scenario_totals = (ZERO, ZERO, ZERO)
    total_ytd = ZERO
    total_remaining = ZERO
    total_rate = ZERO
    unsummed: list[str] = []
    count = 0

    for item in items:
        count += 1
        try:
            section_total = section_totals[item.section] + item.current_fy_budget
            expenses = (
                total_expenses + item.current_fy_budget
                if item.section.is_expense
                else total_expenses
            )
            scenarios = (
                scenario_totals[0] + item.scenario1,
                scenario_totals[1] + item.scenario2,
                scenario_totals[2] + item.scenario3,
            )
            ytd = total_ytd + item.year_to_date_spending
            remaining = total_remaining + item.budget_remaining
            rate = total_rate + item.required_rate
        except ArithmeticError:
            unsummed.append(item.account)
            continue

        section_totals[item.section] = section_total
        total_expenses = expenses
        scenario_totals = scenarios
        total_ytd = ytd
        total_remaining = remaining
        total_rate = rate

    return LedgerAggregates(
        total_revenue=section_totals[Section.REVENUE],
        total_expenses=total_expenses,
        total_admin_costs=section_totals[Section.ADMIN],
        customer_base=max(customer_base, 0),
        section_totals=section_totals,
        scenario1_total=scenario_totals[0],
        scenario2_total=scenario_totals[1],
        scenario3_total=scenario_totals[2],
        total_ytd_spending=total_ytd,
        total_budget_remaining=total_remaining,
        total_required_rate=total_rate,
        item_count=count,
        unsummed_accounts=unsummed,
    )
