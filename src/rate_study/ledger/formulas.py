"""
Formula Library - derived fields of a single line item

Pure functions: each takes a line item (plus the ledger aggregates or the
scenario set where needed) and returns a value. Nothing here mutates the
item or raises for bad data. Division by zero resolves to a defined
fallback, and arithmetic that cannot complete (amounts beyond the decimal
range) degrades to zero. The `evaluate_*` variants report the reason
alongside the zero so callers can surface it; the `compute_*` variants
return the bare value.

Rounding: monetary results are kept to cents, required rates to four
places, percent of budget to six, all ROUND_HALF_UP. The year-to-date cap
is the one exception: it rounds toward zero so a projection clamped to it
never exceeds budget x cap ratio.
"""

from collections.abc import Callable
from datetime import datetime
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

from pydantic import BaseModel

from rate_study.kernel.config import RatePolicy, ScenarioDefinition, default_scenarios
from rate_study.kernel.logging import get_logger
from rate_study.ledger.aggregates import LedgerAggregates
from rate_study.ledger.models import ONE, ZERO, BudgetLineItem, Section

logger = get_logger(__name__)

MONEY_QUANTUM = Decimal("0.01")
RATE_QUANTUM = Decimal("0.0001")
PERCENT_QUANTUM = Decimal("0.000001")
MONTHS_PER_YEAR = 12
QUARTERS_PER_YEAR = 4

DEFAULT_POLICY = RatePolicy()


def _quantize(value: Decimal, quantum: Decimal, rounding: str = ROUND_HALF_UP) -> Decimal:
    # Values too large for the context precision keep their full form
    try:
        return value.quantize(quantum, rounding=rounding)
    except InvalidOperation:
        return value


class FormulaOutcome(BaseModel):
    """A derived amount plus the reason it degraded to zero, if it did"""

    value: Decimal = ZERO
    failure: str | None = None

    model_config = {"frozen": True}


def _guarded(label: str, item: BudgetLineItem, compute: Callable[[], Decimal]) -> FormulaOutcome:
    try:
        return FormulaOutcome(value=compute())
    except ArithmeticError as exc:
        logger.warning(
            "Derived field degraded to zero",
            field=label,
            account=item.account,
            section=item.section.value,
            error=repr(exc),
        )
        return FormulaOutcome(failure=f"{label} calculation failed: {exc!r}")


class ScenarioAmounts(BaseModel):
    """
    Projected monthly amounts under the three financing scenarios

    Attributes:
        scenario1: Equipment replacement
        scenario2: Reserve fund build-up
        scenario3: Grant repayment
        failure: Why the amounts degraded to zero, if they did
    """

    scenario1: Decimal = ZERO
    scenario2: Decimal = ZERO
    scenario3: Decimal = ZERO
    failure: str | None = None

    model_config = {"frozen": True}

    def as_tuple(self) -> tuple[Decimal, Decimal, Decimal]:
        return (self.scenario1, self.scenario2, self.scenario3)


class RequiredRateOutcome(BaseModel):
    """Required rate plus the reason it degraded to zero, if it did"""

    rate: Decimal = ZERO
    failure: str | None = None

    model_config = {"frozen": True}


def fiscal_month(moment: datetime, start_month: int = 1) -> int:
    """
    Month number within the fiscal year (1-12)

    Args:
        moment: Point in time
        start_month: Calendar month the fiscal year begins in

    Returns:
        1 for the first fiscal month, 12 for the last
    """
    return (moment.month - start_month) % MONTHS_PER_YEAR + 1


def _year_to_date(item: BudgetLineItem, current_month: int, policy: RatePolicy) -> Decimal:
    base = item.monthly_input * current_month
    if item.section == Section.REVENUE:
        seasonal_impact = item.seasonal_adjustment * item.seasonal_revenue_factor
    else:
        seasonal_impact = item.seasonal_adjustment

    projected = _quantize(base + seasonal_impact, MONEY_QUANTUM)
    cap = _quantize(item.current_fy_budget * policy.ytd_cap_ratio, MONEY_QUANTUM, ROUND_DOWN)
    return max(ZERO, min(projected, cap))


def evaluate_year_to_date(
    item: BudgetLineItem,
    current_month: int,
    policy: RatePolicy = DEFAULT_POLICY,
) -> FormulaOutcome:
    """Year-to-date spending, or zero with the reason it could not be projected"""
    return _guarded(
        "year-to-date spending", item, lambda: _year_to_date(item, current_month, policy)
    )


def compute_year_to_date_spending(
    item: BudgetLineItem,
    current_month: int,
    policy: RatePolicy = DEFAULT_POLICY,
) -> Decimal:
    """
    Project spending through the current fiscal month

    Revenue items scale their seasonal adjustment by the seasonal revenue
    factor; expense items apply it as-is. The projection is clamped to
    [0, budget x ytd_cap_ratio], the cap rounded down to the cent.

    Args:
        item: Line item
        current_month: Fiscal month number (1-12)
        policy: Supplies the cap ratio

    Returns:
        Year-to-date spending in cents (0 if the projection overflowed)
    """
    return evaluate_year_to_date(item, current_month, policy).value


def evaluate_budget_remaining(item: BudgetLineItem) -> FormulaOutcome:
    return _guarded(
        "budget remaining", item, lambda: item.current_fy_budget - item.year_to_date_spending
    )


def compute_budget_remaining(item: BudgetLineItem) -> Decimal:
    """Budget minus year-to-date spending (negative when overspent)"""
    return evaluate_budget_remaining(item).value


def _percent_of_budget(item: BudgetLineItem) -> Decimal:
    if item.current_fy_budget > 0:
        return _quantize(item.year_to_date_spending / item.current_fy_budget, PERCENT_QUANTUM)
    return ZERO


def evaluate_percent_of_budget(item: BudgetLineItem) -> FormulaOutcome:
    return _guarded("percent of budget", item, lambda: _percent_of_budget(item))


def compute_percent_of_budget(item: BudgetLineItem) -> Decimal:
    """Year-to-date spending as a fraction of budget, 0 when there is no budget"""
    return evaluate_percent_of_budget(item).value


def evaluate_total(item: BudgetLineItem) -> FormulaOutcome:
    return _guarded(
        "total",
        item,
        lambda: item.current_fy_budget + item.seasonal_adjustment + item.goal_adjustment,
    )


def compute_total(item: BudgetLineItem) -> Decimal:
    """Budget plus seasonal and goal adjustments"""
    return evaluate_total(item).value


def _scenario_bases(
    item: BudgetLineItem,
    impacts: tuple[Decimal, Decimal, Decimal],
    policy: RatePolicy,
) -> tuple[Decimal, Decimal, Decimal]:
    base = item.monthly_input
    equipment, reserve, grant = impacts

    if item.section == Section.REVENUE:
        share = item.percent_allocation
        return (base + equipment * share, base + reserve * share, base + grant * share)

    if item.section == Section.OPERATING:
        return (
            base + equipment + item.goal_adjustment,
            base + item.reserve_target / MONTHS_PER_YEAR + reserve,
            base + grant,
        )

    if item.section == Section.ADMIN:
        share = (
            item.percent_allocation
            if item.percent_allocation > 0
            else policy.admin_scenario_factor_default
        )
        return (base + equipment * share, base + reserve * share, base + grant * share)

    # Unknown section: no scenario impact
    return (base, base, base)


def evaluate_scenarios(
    item: BudgetLineItem,
    scenarios: list[ScenarioDefinition] | None = None,
    policy: RatePolicy = DEFAULT_POLICY,
) -> ScenarioAmounts:
    """
    Project the item's monthly amount under each financing scenario

    The section decides how the scenario's monthly impact lands on the
    item (see `_scenario_bases`). Positive time-of-use and affordability
    factors then scale every scenario, and each result is floored at zero.

    Args:
        item: Line item
        scenarios: Three scenario definitions (defaults when None)
        policy: Supplies the admin default share

    Returns:
        ScenarioAmounts; all zero with `failure` set if arithmetic failed
    """
    definitions = scenarios if scenarios is not None else default_scenarios()
    try:
        impacts = tuple(definition.monthly_impact for definition in definitions[:3])
        amounts = list(_scenario_bases(item, impacts, policy))  # type: ignore[arg-type]

        if item.time_of_use_factor > 0:
            amounts = [amount * item.time_of_use_factor for amount in amounts]
        if item.customer_affordability_index > 0:
            amounts = [amount * item.customer_affordability_index for amount in amounts]

        floored = [
            max(ZERO, amount).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
            for amount in amounts
        ]
        return ScenarioAmounts(scenario1=floored[0], scenario2=floored[1], scenario3=floored[2])
    except (ArithmeticError, ValueError) as exc:
        logger.warning(
            "Scenario calculation degraded to zero",
            account=item.account,
            section=item.section.value,
            error=repr(exc),
        )
        return ScenarioAmounts(failure=f"scenario calculation failed: {exc!r}")


def compute_scenarios(
    item: BudgetLineItem,
    scenarios: list[ScenarioDefinition] | None = None,
    policy: RatePolicy = DEFAULT_POLICY,
) -> tuple[Decimal, Decimal, Decimal]:
    """Scenario 1-3 amounts for the item (zeros if the calculation failed)"""
    return evaluate_scenarios(item, scenarios, policy).as_tuple()


def _section_rate(
    item: BudgetLineItem,
    aggregates: LedgerAggregates,
    policy: RatePolicy,
) -> Decimal:
    customer_base = Decimal(aggregates.customer_base)
    if customer_base <= 0:
        return ZERO

    if item.section == Section.REVENUE:
        # This item's share of revenue carries the same share of expenses
        if aggregates.total_revenue == 0:
            return ZERO
        revenue_share = item.current_fy_budget / aggregates.total_revenue
        return aggregates.total_expenses * revenue_share / customer_base / MONTHS_PER_YEAR

    if item.section == Section.OPERATING:
        return item.current_fy_budget / customer_base / MONTHS_PER_YEAR

    if item.section == Section.ADMIN:
        if aggregates.total_admin_costs <= 0:
            return ZERO
        admin_share = item.current_fy_budget / aggregates.total_admin_costs
        allocation = (
            item.percent_allocation
            if item.percent_allocation > 0
            else policy.admin_rate_allocation_default
        )
        return (
            aggregates.total_admin_costs * admin_share * allocation
            / customer_base
            / MONTHS_PER_YEAR
        )

    return ZERO


def evaluate_required_rate(
    item: BudgetLineItem,
    aggregates: LedgerAggregates,
    policy: RatePolicy = DEFAULT_POLICY,
) -> RequiredRateOutcome:
    """
    Monthly per-customer charge needed to fund the line item

    Revenue items carry their proportional share of total expenses;
    Operating items their own budget; Admin items their allocated share
    of admin costs. All are spread over the customer base and twelve
    months. Time-of-use and affordability factors apply when set and not
    neutral. The result is floored at zero.

    Args:
        item: Line item
        aggregates: Ledger totals from the current recompute pass
        policy: Supplies the admin default allocation

    Returns:
        RequiredRateOutcome; rate 0 with `failure` set if arithmetic failed
    """
    try:
        rate = _section_rate(item, aggregates, policy)

        if item.time_of_use_factor > 0 and item.time_of_use_factor != ONE:
            rate *= item.time_of_use_factor
        if item.customer_affordability_index > 0 and item.customer_affordability_index != ONE:
            rate *= item.customer_affordability_index

        rate = max(ZERO, rate).quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)
        return RequiredRateOutcome(rate=rate)
    except (ArithmeticError, ValueError) as exc:
        logger.warning(
            "Required rate degraded to zero",
            account=item.account,
            section=item.section.value,
            error=repr(exc),
        )
        return RequiredRateOutcome(failure=f"required rate calculation failed: {exc!r}")


def compute_required_rate(
    item: BudgetLineItem,
    aggregates: LedgerAggregates,
    policy: RatePolicy = DEFAULT_POLICY,
) -> Decimal:
    """Required monthly rate per customer (0 if the calculation failed)"""
    return evaluate_required_rate(item, aggregates, policy).rate


def evaluate_quarterly_summary(item: BudgetLineItem) -> FormulaOutcome:
    return _guarded(
        "quarterly summary",
        item,
        lambda: _quantize(
            item.monthly_input * 3 + item.seasonal_adjustment / QUARTERS_PER_YEAR,
            MONEY_QUANTUM,
        ),
    )


def compute_quarterly_summary(item: BudgetLineItem) -> Decimal:
    """Three months of input plus a quarter of the seasonal adjustment"""
    return evaluate_quarterly_summary(item).value
