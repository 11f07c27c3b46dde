"""
Validation Engine - field, business, scenario and ledger-wide rules

Validation never mutates the ledger and never stops at the first problem:
every layer runs and every issue is collected.

Layers:
1. FIELD: required text present, section recognized, accounts unique,
   no negative amounts or factors
2. BUSINESS: allocation limits, seasonal factor band, rate plausibility,
   account prefix convention, internal consistency of derived fields,
   plus the Apartments, Water and Trash specific bands
3. SCENARIO: Operating items whose scenarios dwarf their budget
4. LEDGER: revenue/expense balance, coverage ratio, total budget size,
   aggregate scenario exposure
5. COMPUTATION: calculations that degraded to zero on the last recompute,
   and rules whose arithmetic could not complete on this run

Errors are meant to block a save; warnings are advisory. The caller
decides.
"""

from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from rate_study.kernel.config import EngineConfig, RatePolicy
from rate_study.kernel.logging import get_logger, ledger_context
from rate_study.kernel.metrics import (
    ledger_coverage_ratio,
    track_duration,
    validation_duration_seconds,
    validation_issues_total,
    validation_runs_total,
)
from rate_study.ledger.aggregates import LedgerAggregates, aggregate
from rate_study.ledger.formulas import compute_budget_remaining, compute_percent_of_budget
from rate_study.ledger.models import BudgetLineItem, Enterprise, Ledger, Section, saturating

logger = get_logger(__name__)


class Severity(str, Enum):
    ERROR = "Error"
    WARNING = "Warning"


class IssueCategory(str, Enum):
    """Which validation layer raised an issue"""

    FIELD = "FIELD"
    BUSINESS = "BUSINESS"
    SCENARIO = "SCENARIO"
    LEDGER = "LEDGER"
    COMPUTATION = "COMPUTATION"


class ValidationIssue(BaseModel):
    """
    One problem found in a ledger

    Created fresh on every validation run, never mutated.

    Attributes:
        severity: Error (blocks save by convention) or Warning
        category: Validation layer that raised it
        message: Human-readable description
        account: Line item the issue is about (None for ledger-wide issues)
        field: Field the issue is about, when there is one
        row: 1-based position of the line item in the ledger
    """

    severity: Severity
    category: IssueCategory
    message: str
    account: str | None = None
    field: str | None = None
    row: int | None = None

    model_config = {"frozen": True}

    def describe(self) -> str:
        if self.row is not None:
            return f"Row {self.row} ({self.account or '-'}): {self.message}"
        return self.message


class ValidationReport(BaseModel):
    """Issues from one validation run, split by severity"""

    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def issues(self) -> list[ValidationIssue]:
        return [*self.errors, *self.warnings]

    def for_account(self, account: str) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.account == account]

    def by_category(self, category: IssueCategory) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.category == category]

    def add(self, issue: ValidationIssue) -> None:
        if issue.severity == Severity.ERROR:
            self.errors.append(issue)
        else:
            self.warnings.append(issue)

    def summary(self) -> str:
        """Plain-text listing, errors first"""
        if not self.errors and not self.warnings:
            return "All validations passed."

        blocks = []
        if self.errors:
            lines = [f"Errors ({len(self.errors)}):"]
            lines += [f"  - {issue.describe()}" for issue in self.errors]
            blocks.append("\n".join(lines))
        if self.warnings:
            lines = [f"Warnings ({len(self.warnings)}):"]
            lines += [f"  - {issue.describe()}" for issue in self.warnings]
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks)


# Amounts beyond this many integer digits are shown in exponent form
_MONEY_DIGITS_MAX = 15


def _money(value: Decimal) -> str:
    if value.is_finite() and value.adjusted() >= _MONEY_DIGITS_MAX:
        return f"${value:.3E}"
    return f"${value:,.2f}"


def _percent(value: Decimal) -> str:
    with saturating():
        return f"{value * 100:.1f}%"


@contextmanager
def _evaluating(
    report: ValidationReport,
    rule: str,
    account: str | None = None,
    field: str | None = None,
    row: int | None = None,
) -> Iterator[None]:
    """Report a rule whose arithmetic cannot complete instead of raising"""
    try:
        yield
    except ArithmeticError as exc:
        logger.warning(
            "Validation rule could not be evaluated", rule=rule, account=account, error=repr(exc)
        )
        report.add(
            ValidationIssue(
                severity=Severity.WARNING,
                category=IssueCategory.COMPUTATION,
                message=f"Could not evaluate the {rule} check: {exc!r}",
                account=account,
                field=field,
                row=row,
            )
        )


# Inputs that must not be negative. Seasonal and goal adjustments are
# signed by nature and are not listed.
_NON_NEGATIVE_INPUTS = {
    "current_fy_budget": "Current FY budget",
    "monthly_input": "Monthly input",
    "seasonal_revenue_factor": "Seasonal revenue factor",
    "reserve_target": "Reserve target",
    "percent_allocation": "Percent allocation",
    "time_of_use_factor": "Time-of-use factor",
    "customer_affordability_index": "Customer affordability index",
    "monthly_usage": "Monthly usage",
    "prior_fy_actual": "Prior FY actual",
    "two_years_prior_actual": "Two-years-prior actual",
}


class _RowChecker:
    """Collects issues for one line item"""

    def __init__(self, report: ValidationReport, item: BudgetLineItem, row: int) -> None:
        self.report = report
        self.item = item
        self.row = row

    def _add(
        self,
        severity: Severity,
        category: IssueCategory,
        message: str,
        field: str | None,
    ) -> None:
        self.report.add(
            ValidationIssue(
                severity=severity,
                category=category,
                message=message,
                account=self.item.account or None,
                field=field,
                row=self.row,
            )
        )

    def error(self, category: IssueCategory, message: str, field: str | None = None) -> None:
        self._add(Severity.ERROR, category, message, field)

    def warning(self, category: IssueCategory, message: str, field: str | None = None) -> None:
        self._add(Severity.WARNING, category, message, field)

    def evaluating(self, rule: str, field: str | None = None) -> AbstractContextManager[None]:
        return _evaluating(
            self.report, rule, account=self.item.account or None, field=field, row=self.row
        )


def validate_fields(
    checker: _RowChecker,
    policy: RatePolicy,
    first_row_by_account: dict[str, int],
) -> None:
    """Layer 1: required fields, closed section set, uniqueness, signs"""
    item = checker.item

    if not item.account.strip():
        checker.error(IssueCategory.FIELD, "Missing account number", "account")
    elif item.account in first_row_by_account:
        checker.error(
            IssueCategory.FIELD,
            f"Duplicate account {item.account} (first used on row "
            f"{first_row_by_account[item.account]})",
            "account",
        )
    else:
        first_row_by_account[item.account] = checker.row

    if not item.label.strip():
        checker.error(IssueCategory.FIELD, "Missing label/description", "label")

    if item.section == Section.UNKNOWN:
        valid = ", ".join(section.value for section in Section.known())
        if item.section_label.strip():
            message = f"Section {item.section_label!r} is not recognized; must be one of: {valid}"
        else:
            message = f"Missing section; must be one of: {valid}"
        checker.error(IssueCategory.FIELD, message, "section")

    for name, display in _NON_NEGATIVE_INPUTS.items():
        if getattr(item, name) < 0:
            checker.error(IssueCategory.FIELD, f"{display} cannot be negative", name)

    if item.current_fy_budget > policy.max_budget_amount:
        checker.error(
            IssueCategory.FIELD,
            f"Current FY budget {_money(item.current_fy_budget)} exceeds "
            f"{_money(policy.max_budget_amount)}",
            "current_fy_budget",
        )


def validate_business_rules(
    checker: _RowChecker,
    policy: RatePolicy,
    enterprise: Enterprise,
) -> None:
    """Layer 2: allocation, seasonal band, rate plausibility, prefix, consistency"""
    item = checker.item

    if item.section == Section.REVENUE and item.percent_allocation > policy.max_percent_allocation:
        checker.error(
            IssueCategory.BUSINESS,
            f"Percent allocation {_percent(item.percent_allocation)} exceeds "
            f"{_percent(policy.max_percent_allocation)}",
            "percent_allocation",
        )

    factor = item.seasonal_revenue_factor
    if factor < policy.seasonal_factor_min or factor > policy.seasonal_factor_max:
        checker.warning(
            IssueCategory.BUSINESS,
            f"Seasonal revenue factor {factor} is outside the typical range "
            f"{policy.seasonal_factor_min}-{policy.seasonal_factor_max}",
            "seasonal_revenue_factor",
        )

    if item.required_rate > policy.high_rate_threshold:
        checker.warning(
            IssueCategory.BUSINESS,
            f"Required rate {_money(item.required_rate)} seems unusually high",
            "required_rate",
        )
    if item.required_rate > policy.max_required_rate:
        checker.error(
            IssueCategory.BUSINESS,
            f"Required rate {_money(item.required_rate)} exceeds "
            f"{_money(policy.max_required_rate)}",
            "required_rate",
        )

    prefix = enterprise.account_prefix
    if item.account.strip() and not item.account.startswith(prefix):
        checker.error(
            IssueCategory.BUSINESS,
            f"{enterprise.value} accounts must start with {prefix!r}",
            "account",
        )

    budget = item.current_fy_budget
    if budget > 0 and item.monthly_input > 0:
        with checker.evaluating("monthly input consistency", "monthly_input"):
            annualized = item.monthly_input * 12
            if abs(annualized - budget) / budget > policy.monthly_input_variance_max:
                checker.warning(
                    IssueCategory.BUSINESS,
                    f"Monthly input x 12 ({_money(annualized)}) differs from the "
                    f"annual budget ({_money(budget)}) by more than "
                    f"{_percent(policy.monthly_input_variance_max)}",
                    "monthly_input",
                )

    if item.percent_of_budget > policy.utilization_warn_ratio:
        checker.warning(
            IssueCategory.BUSINESS,
            f"Budget utilization {_percent(item.percent_of_budget)} is over "
            f"{_percent(policy.utilization_warn_ratio)}",
            "percent_of_budget",
        )

    if (
        item.budget_remaining != compute_budget_remaining(item)
        or item.percent_of_budget != compute_percent_of_budget(item)
    ):
        checker.warning(
            IssueCategory.BUSINESS,
            "Derived fields are out of date; recompute before saving",
            "budget_remaining",
        )


def validate_enterprise_rules(
    checker: _RowChecker,
    policy: RatePolicy,
    enterprise: Enterprise,
) -> None:
    """Layer 2 (cont.): bands that apply to one enterprise only"""
    item = checker.item

    if enterprise == Enterprise.APARTMENTS:
        index = item.customer_affordability_index
        low, high = policy.affordability_index_min, policy.affordability_index_max
        if index > 0 and not low <= index <= high:
            checker.error(
                IssueCategory.BUSINESS,
                f"Customer affordability index {index} must be between {low} and {high}",
                "customer_affordability_index",
            )

    elif enterprise == Enterprise.WATER:
        factor = item.time_of_use_factor
        low, high = policy.time_of_use_factor_min, policy.time_of_use_factor_max
        if factor > 0 and not low <= factor <= high:
            checker.error(
                IssueCategory.BUSINESS,
                f"Time-of-use factor {factor} must be between {low} and {high}",
                "time_of_use_factor",
            )

    elif enterprise == Enterprise.TRASH:
        with checker.evaluating("trash seasonal adjustment", "seasonal_adjustment"):
            limit = item.current_fy_budget * policy.trash_seasonal_adjustment_max_ratio
            if item.seasonal_adjustment < 0 or item.seasonal_adjustment > limit:
                checker.error(
                    IssueCategory.BUSINESS,
                    "Seasonal adjustment must be positive and not exceed "
                    f"{_percent(policy.trash_seasonal_adjustment_max_ratio)} of the annual budget",
                    "seasonal_adjustment",
                )


def validate_scenarios(checker: _RowChecker, policy: RatePolicy) -> None:
    """Layer 3: Operating scenarios that dwarf the item's budget"""
    item = checker.item
    if item.section != Section.OPERATING:
        return

    with checker.evaluating("scenario 1 size", "scenario1"):
        if item.scenario1 > item.current_fy_budget * policy.scenario1_budget_multiple:
            checker.warning(
                IssueCategory.SCENARIO,
                f"Scenario 1 (equipment replacement) {_money(item.scenario1)} is more than "
                f"{policy.scenario1_budget_multiple}x the current budget",
                "scenario1",
            )
    with checker.evaluating("scenario 2 size", "scenario2"):
        if item.scenario2 > item.current_fy_budget * policy.scenario2_budget_multiple:
            checker.warning(
                IssueCategory.SCENARIO,
                f"Scenario 2 (reserve fund) {_money(item.scenario2)} is more than "
                f"{policy.scenario2_budget_multiple}x the current budget",
                "scenario2",
            )


def validate_ledger_rules(
    report: ValidationReport,
    aggregates: LedgerAggregates,
    policy: RatePolicy,
    enterprise: Enterprise,
) -> None:
    """Layer 4: balance, coverage, size plausibility, imbalance, scenario exposure"""

    def warn(message: str) -> None:
        report.add(
            ValidationIssue(
                severity=Severity.WARNING,
                category=IssueCategory.LEDGER,
                message=message,
            )
        )

    revenue = aggregates.total_revenue
    expenses = aggregates.total_expenses

    if revenue <= 0:
        warn("No revenue is budgeted")
    if expenses <= 0:
        warn("No expenses are budgeted")

    if expenses > revenue:
        warn(
            f"Budget imbalance: total expenses ({_money(expenses)}) exceed total "
            f"revenue ({_money(revenue)}) by a deficit of {_money(aggregates.deficit)}"
        )

    ratio = aggregates.coverage_ratio
    if ratio < policy.coverage_ratio_min and revenue > 0 and expenses > 0:
        warn(
            f"Revenue coverage ratio {_percent(ratio)} is below "
            f"{_percent(policy.coverage_ratio_min)}; consider rate increases"
        )
    elif ratio > policy.coverage_ratio_max:
        warn(
            f"Revenue coverage ratio {_percent(ratio)} is above "
            f"{_percent(policy.coverage_ratio_max)}; consider rate decreases or reserve funding"
        )

    total_budget = aggregates.total_budget
    if total_budget < policy.total_budget_min:
        warn(
            f"Total budget {_money(total_budget)} seems low for a municipal "
            f"{enterprise.value} (under {_money(policy.total_budget_min)})"
        )
    elif total_budget > policy.total_budget_max:
        warn(
            f"Total budget {_money(total_budget)} seems high (over "
            f"{_money(policy.total_budget_max)}); verify all amounts"
        )

    if revenue > 0 and expenses > 0:
        with _evaluating(report, "revenue/expense imbalance"):
            gap = abs(revenue - expenses) / max(revenue, expenses)
            if gap > policy.imbalance_ratio_max:
                warn(
                    "Large imbalance between revenue and expenses: they differ by "
                    f"{_percent(gap)} of the larger total (over "
                    f"{_percent(policy.imbalance_ratio_max)})"
                )

    with _evaluating(report, "scenario exposure"):
        if aggregates.scenario1_total > revenue * policy.scenario1_revenue_multiple:
            warn(
                f"Total scenario 1 impact ({_money(aggregates.scenario1_total)}) is more than "
                f"{policy.scenario1_revenue_multiple}x total revenue and may require "
                "significant rate increases"
            )

    if aggregates.unsummed_accounts:
        warn(
            "Left out of ledger totals, amounts too large to sum: "
            + ", ".join(account or "-" for account in aggregates.unsummed_accounts)
        )


def validate_computations(report: ValidationReport, ledger: Ledger) -> None:
    """Layer 5: calculations that degraded to zero during the last recompute"""
    rows = {item.account: index for index, item in enumerate(ledger.items, start=1)}
    for account, reason in ledger.computation_failures.items():
        report.add(
            ValidationIssue(
                severity=Severity.WARNING,
                category=IssueCategory.COMPUTATION,
                message=f"Calculation fell back to zero: {reason}",
                account=account or None,
                row=rows.get(account),
            )
        )


@track_duration(validation_duration_seconds)
def validate(ledger: Ledger, config: EngineConfig) -> ValidationReport:
    """
    Run every validation layer over the ledger

    Args:
        ledger: Ledger to check (not modified)
        config: Supplies the policy thresholds and customer base

    Returns:
        ValidationReport with errors and warnings
    """
    policy = config.policy
    enterprise = ledger.category.value
    report = ValidationReport()
    first_row_by_account: dict[str, int] = {}

    with ledger_context(enterprise):
        for row, item in enumerate(ledger.items, start=1):
            checker = _RowChecker(report, item, row)
            validate_fields(checker, policy, first_row_by_account)
            validate_business_rules(checker, policy, ledger.category)
            validate_enterprise_rules(checker, policy, ledger.category)
            validate_scenarios(checker, policy)

        aggregates = aggregate(ledger.items, config.customer_base)
        validate_ledger_rules(report, aggregates, policy, ledger.category)
        validate_computations(report, ledger)

        logger.info(
            "Ledger validated",
            items=len(ledger.items),
            errors=len(report.errors),
            warnings=len(report.warnings),
        )

    validation_runs_total.labels(enterprise=enterprise).inc()
    ledger_coverage_ratio.labels(enterprise=enterprise).set(float(aggregates.coverage_ratio))
    for issue in report.issues:
        validation_issues_total.labels(
            severity=issue.severity.value, category=issue.category.value
        ).inc()
    return report
