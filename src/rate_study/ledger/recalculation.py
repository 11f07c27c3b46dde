"""
Recalculation Orchestrator - writes derived fields back into the ledger

Every recompute pass:
1. Computes ledger aggregates from the ledger's current inputs
2. Runs the formula library over each target item in a fixed order:
   YTD spending -> budget remaining -> percent of budget -> total ->
   scenarios -> required rate -> quarterly summary
3. Records every calculation that degraded to zero, and every item left
   out of the ledger totals, on the ledger so the validation engine can
   report it

Aggregates depend only on inputs, and a pass writes only derived fields,
so computing them once at the start of the pass is the same as
recomputing them before each item.

Two modes:
- FULL (default): any edit recomputes every item, because a changed
  budget moves the totals that every sibling's required rate reads
- LOCAL: only the edited items are recomputed; siblings keep required
  rates computed against the old totals until the next FULL pass
"""

from collections.abc import Iterable
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, Field

from rate_study.kernel.config import EngineConfig
from rate_study.kernel.logging import LogOperation, get_logger, ledger_context
from rate_study.kernel.metrics import (
    line_items_recomputed_total,
    recompute_duration_seconds,
    recompute_passes_total,
    required_rate_failures_total,
)
from rate_study.kernel.time import TimeProvider, default_time_provider
from rate_study.ledger.aggregates import LedgerAggregates, aggregate
from rate_study.ledger.formulas import (
    MONEY_QUANTUM,
    evaluate_budget_remaining,
    evaluate_percent_of_budget,
    evaluate_quarterly_summary,
    evaluate_required_rate,
    evaluate_scenarios,
    evaluate_total,
    evaluate_year_to_date,
    fiscal_month,
)
from rate_study.ledger.models import BudgetLineItem, Enterprise, Ledger, Section

logger = get_logger(__name__)

UNSUMMED_FAILURE = "left out of ledger totals: amounts too large to sum"


class RecomputeMode(str, Enum):
    """Which items an edit recomputes"""

    FULL = "full"  # whole ledger
    LOCAL = "local"  # edited items only


class RecomputeReport(BaseModel):
    """
    Outcome of one recompute pass

    Attributes:
        category: Enterprise of the ledger
        mode: Mode the caller invoked
        edited_accounts: Accounts the caller named (empty for a whole-ledger pass)
        recomputed_accounts: Accounts whose derived fields were rewritten
        fiscal_month: Month number used for YTD projection
        aggregates: Ledger totals after the pass
        failures: account -> reason for calculations that degraded to zero
    """

    category: Enterprise
    mode: RecomputeMode
    edited_accounts: list[str] = Field(default_factory=list)
    recomputed_accounts: list[str] = Field(default_factory=list)
    fiscal_month: int
    aggregates: LedgerAggregates
    failures: dict[str, str] = Field(default_factory=dict)

    @property
    def is_clean(self) -> bool:
        return not self.failures


def recompute_item(
    item: BudgetLineItem,
    aggregates: LedgerAggregates,
    config: EngineConfig,
    current_month: int,
) -> list[str]:
    """
    Rewrite one item's derived fields in dependency order

    A field whose calculation cannot complete is written as zero and the
    reason is returned; later fields still compute from what was written.

    Args:
        item: Line item to update in place
        aggregates: Totals for the pass
        config: Scenarios and policy
        current_month: Fiscal month for the YTD projection

    Returns:
        Failure messages (empty when every calculation succeeded)
    """
    ytd = evaluate_year_to_date(item, current_month, config.policy)
    item.year_to_date_spending = ytd.value
    remaining = evaluate_budget_remaining(item)
    item.budget_remaining = remaining.value
    percent = evaluate_percent_of_budget(item)
    item.percent_of_budget = percent.value
    total = evaluate_total(item)
    item.total = total.value

    scenarios = evaluate_scenarios(item, config.scenarios, config.policy)
    item.scenario1, item.scenario2, item.scenario3 = scenarios.as_tuple()

    outcome = evaluate_required_rate(item, aggregates, config.policy)
    item.required_rate = outcome.rate
    if outcome.failure:
        required_rate_failures_total.labels(section=item.section.value).inc()

    quarterly = evaluate_quarterly_summary(item)
    item.quarterly_summary = quarterly.value

    line_items_recomputed_total.labels(section=item.section.value).inc()
    return [
        result.failure
        for result in (ytd, remaining, percent, total, scenarios, outcome, quarterly)
        if result.failure
    ]


def _record_failure(ledger: Ledger, account: str, reason: str) -> None:
    existing = ledger.computation_failures.get(account)
    ledger.computation_failures[account] = f"{existing}; {reason}" if existing else reason


def recompute(
    ledger: Ledger,
    config: EngineConfig,
    edited_accounts: Iterable[str] | None = None,
    mode: RecomputeMode = RecomputeMode.FULL,
    now: datetime | None = None,
    time_provider: TimeProvider | None = None,
) -> RecomputeReport:
    """
    Recompute derived fields after an edit

    Args:
        ledger: Ledger to update in place
        config: Engine configuration (customer base, scenarios, policy)
        edited_accounts: Accounts that changed; None means the whole ledger
        mode: FULL recomputes every item regardless of which were edited;
              LOCAL recomputes only the edited accounts
        now: Moment for the YTD projection (defaults to the time provider)
        time_provider: Clock used when `now` is not given

    Returns:
        RecomputeReport describing the pass

    Raises:
        LineItemNotFound: If an edited account is not in the ledger
    """
    edited = list(dict.fromkeys(edited_accounts)) if edited_accounts is not None else []
    for account in edited:
        ledger.require(account)

    if edited_accounts is None or mode == RecomputeMode.FULL:
        targets = list(ledger.items)
    else:
        wanted = set(edited)
        targets = [item for item in ledger.items if item.account in wanted]

    moment = now or (time_provider or default_time_provider).now()
    month = fiscal_month(moment, config.fiscal_year_start_month)

    with ledger_context(ledger.category.value), LogOperation(
        logger,
        "recompute",
        mode=mode.value,
        edited=len(edited),
        targets=len(targets),
        fiscal_month=month,
    ) as operation:
        aggregates = aggregate(ledger.items, config.customer_base)

        for item in targets:
            ledger.computation_failures.pop(item.account, None)
        for item in targets:
            failures = recompute_item(item, aggregates, config, month)
            if failures:
                ledger.computation_failures[item.account] = "; ".join(failures)

        totals = aggregate(ledger.items, config.customer_base)
        for item in targets:
            if item.account in totals.unsummed_accounts:
                _record_failure(ledger, item.account, UNSUMMED_FAILURE)

        report = RecomputeReport(
            category=ledger.category,
            mode=mode,
            edited_accounts=edited,
            recomputed_accounts=[item.account for item in targets],
            fiscal_month=month,
            aggregates=totals,
            failures={
                item.account: ledger.computation_failures[item.account]
                for item in targets
                if item.account in ledger.computation_failures
            },
        )

    recompute_passes_total.labels(mode=mode.value).inc()
    recompute_duration_seconds.labels(mode=mode.value).observe(operation.elapsed_seconds)
    return report


def apply_bulk_adjustment(
    ledger: Ledger,
    section: Section,
    adjustment: Decimal,
    config: EngineConfig,
    now: datetime | None = None,
    time_provider: TimeProvider | None = None,
) -> RecomputeReport:
    """
    Scale budget and monthly input of every item in a section

    Each matching item's `current_fy_budget` and `monthly_input` are
    multiplied by (1 + adjustment) and kept to cents, then the whole
    ledger is recomputed. An item whose scaled amounts cannot be
    represented keeps its old inputs; the skip is recorded as a
    computation failure on the ledger and in the returned report.

    Args:
        ledger: Ledger to update in place
        section: Section whose items are adjusted
        adjustment: Fractional change (0.05 = +5%, -0.10 = -10%)
        config: Engine configuration

    Returns:
        RecomputeReport of the full pass that followed
    """
    factor = 1 + adjustment
    adjusted: list[str] = []
    skipped: dict[str, str] = {}
    for item in ledger.by_section(section):
        try:
            budget = (item.current_fy_budget * factor).quantize(
                MONEY_QUANTUM, rounding=ROUND_HALF_UP
            )
            monthly = (item.monthly_input * factor).quantize(
                MONEY_QUANTUM, rounding=ROUND_HALF_UP
            )
        except ArithmeticError as exc:
            skipped[item.account] = f"bulk adjustment skipped: {exc!r}"
            continue
        item.current_fy_budget = budget
        item.monthly_input = monthly
        adjusted.append(item.account)

    logger.info(
        "Bulk adjustment applied",
        category=ledger.category.value,
        section=section.value,
        adjustment=str(adjustment),
        items=len(adjusted),
        skipped=len(skipped),
    )
    report = recompute(
        ledger,
        config,
        edited_accounts=adjusted,
        mode=RecomputeMode.FULL,
        now=now,
        time_provider=time_provider,
    )
    if not skipped:
        return report

    for account, reason in skipped.items():
        _record_failure(ledger, account, reason)
    failures = {
        account: ledger.computation_failures[account]
        for account in report.recomputed_accounts
        if account in ledger.computation_failures
    }
    return report.model_copy(update={"failures": failures})
