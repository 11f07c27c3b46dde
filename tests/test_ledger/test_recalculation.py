"""
Tests for the recalculation orchestrator

Covers the pass-level guarantees: derived fields consistent with inputs,
idempotence, FULL vs LOCAL reach, failure recording and bulk adjustment.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from rate_study.kernel.config import EngineConfig
from rate_study.kernel.errors import LineItemNotFound
from rate_study.kernel.metrics import line_items_recomputed_total, recompute_passes_total
from rate_study.ledger.models import Section
from rate_study.ledger.recalculation import (
    UNSUMMED_FAILURE,
    RecomputeMode,
    apply_bulk_adjustment,
    recompute,
)
from tests.helpers import balanced_ledger, create_ledger, create_operating, create_revenue

JAN = datetime(2025, 1, 15, tzinfo=timezone.utc)
HUGE = Decimal("1E+999999")
TOO_BIG = "9E+999999"


def test_full_pass_fills_derived_fields(config: EngineConfig) -> None:
    ledger = balanced_ledger()

    report = recompute(ledger, config, now=JAN)

    assert report.mode == RecomputeMode.FULL
    assert report.fiscal_month == 1
    assert report.recomputed_accounts == ledger.accounts()
    assert report.is_clean

    operating = ledger.require("S401.00")
    assert operating.year_to_date_spending == Decimal("1000.00")
    assert operating.budget_remaining == Decimal("11000.00")
    assert operating.required_rate == Decimal("1.0000")
    assert ledger.require("S301.00").required_rate == Decimal("5.5000")  # 66000 / 1000 / 12
    assert ledger.require("S460.00").required_rate == Decimal("0.5000")  # 30000 x 0.2 / 12000


def test_budget_remaining_invariant_holds_for_every_item(sample_ledger, config) -> None:
    recompute(sample_ledger, config, now=JAN)

    for item in sample_ledger.items:
        assert item.budget_remaining == item.current_fy_budget - item.year_to_date_spending
        assert Decimal("0") <= item.year_to_date_spending <= item.current_fy_budget * Decimal("1.2")
        assert min(item.scenario1, item.scenario2, item.scenario3, item.required_rate) >= 0


def test_recompute_is_idempotent(sample_ledger, config) -> None:
    recompute(sample_ledger, config, now=JAN)
    first = [item.derived_fields() for item in sample_ledger.items]

    recompute(sample_ledger, config, now=JAN)
    second = [item.derived_fields() for item in sample_ledger.items]

    assert first == second


def test_fiscal_month_follows_config(config: EngineConfig) -> None:
    ledger = balanced_ledger()
    july_start = config.model_copy(update={"fiscal_year_start_month": 7})

    report = recompute(ledger, july_start, now=JAN)

    assert report.fiscal_month == 7
    assert ledger.require("S401.00").year_to_date_spending == Decimal("7000.00")


def test_time_provider_supplies_default_moment(config, test_time) -> None:
    ledger = balanced_ledger()
    test_time.set_time(datetime(2025, 3, 1, tzinfo=timezone.utc))

    report = recompute(ledger, config, time_provider=test_time)

    assert report.fiscal_month == 3


class TestModes:
    def test_full_mode_refreshes_sibling_rates(self, config: EngineConfig) -> None:
        ledger = balanced_ledger()
        recompute(ledger, config, now=JAN)

        ledger.require("S401.00").current_fy_budget = Decimal("24000")
        report = recompute(ledger, config, edited_accounts=["S401.00"], now=JAN)

        assert report.edited_accounts == ["S401.00"]
        assert len(report.recomputed_accounts) == 4
        # Revenue now carries 78000 of expenses
        assert ledger.require("S301.00").required_rate == Decimal("6.5000")

    def test_local_mode_leaves_siblings_stale(self, config: EngineConfig) -> None:
        ledger = balanced_ledger()
        recompute(ledger, config, now=JAN)

        ledger.require("S401.00").current_fy_budget = Decimal("24000")
        report = recompute(
            ledger, config, edited_accounts=["S401.00"], mode=RecomputeMode.LOCAL, now=JAN
        )

        assert report.recomputed_accounts == ["S401.00"]
        assert ledger.require("S401.00").required_rate == Decimal("2.0000")
        assert ledger.require("S301.00").required_rate == Decimal("5.5000")

    def test_report_aggregates_reflect_pass(self, config: EngineConfig) -> None:
        ledger = balanced_ledger()

        report = recompute(ledger, config, now=JAN)

        assert report.aggregates.total_expenses == Decimal("66000")
        assert report.aggregates.total_required_rate == Decimal("9.0000")

    def test_unknown_edited_account_raises(self, config: EngineConfig) -> None:
        with pytest.raises(LineItemNotFound):
            recompute(balanced_ledger(), config, edited_accounts=["S999.00"], now=JAN)


class TestFailures:
    def test_overflow_is_recorded_not_raised(self, config: EngineConfig) -> None:
        ledger = create_ledger(
            create_revenue("S301.00", "100000"),
            create_operating(
                "S401.00",
                "12000",
                monthly="1000",
                time_of_use_factor=HUGE,
                customer_affordability_index=HUGE,
            ),
        )

        report = recompute(ledger, config, now=JAN)

        item = ledger.require("S401.00")
        assert item.required_rate == Decimal("0")
        assert item.scenario1 == Decimal("0")
        assert not report.is_clean
        assert "required rate calculation failed" in ledger.computation_failures["S401.00"]
        assert "scenario calculation failed" in report.failures["S401.00"]

    def test_fixed_item_clears_failure(self, config: EngineConfig) -> None:
        ledger = create_ledger(
            create_operating(
                "S401.00",
                "12000",
                time_of_use_factor=HUGE,
                customer_affordability_index=HUGE,
            )
        )
        recompute(ledger, config, now=JAN)
        assert "S401.00" in ledger.computation_failures

        item = ledger.require("S401.00")
        item.time_of_use_factor = Decimal("1")
        item.customer_affordability_index = Decimal("1")
        recompute(ledger, config, edited_accounts=["S401.00"], now=JAN)

        assert ledger.computation_failures == {}

    def test_huge_budget_and_monthly_input_do_not_raise(self, config: EngineConfig) -> None:
        ledger = create_ledger(
            create_revenue("S301.00", "100000"),
            create_operating("S401.00", TOO_BIG, monthly="1000"),
            create_operating("S415.00", "12000", monthly=TOO_BIG),
        )

        report = recompute(ledger, config, now=JAN)

        assert "year-to-date spending calculation failed" in report.failures["S401.00"]
        monthly_heavy = ledger.require("S415.00")
        assert monthly_heavy.year_to_date_spending == Decimal("0")
        assert monthly_heavy.quarterly_summary == Decimal("0")
        assert "quarterly summary calculation failed" in report.failures["S415.00"]
        assert "S301.00" in ledger.accounts()

    def test_items_too_large_to_sum_are_recorded(self, config: EngineConfig) -> None:
        ledger = create_ledger(
            create_revenue("S301.00", "100000"),
            create_operating("S401.00", TOO_BIG, monthly="0"),
            create_operating("S415.00", TOO_BIG, monthly="0"),
        )

        report = recompute(ledger, config, now=JAN)

        assert report.aggregates.unsummed_accounts == ["S415.00"]
        assert UNSUMMED_FAILURE in ledger.computation_failures["S415.00"]
        assert report.aggregates.total_expenses == Decimal(TOO_BIG)


class TestBulkAdjustment:
    def test_scales_section_inputs(self, sample_ledger, config) -> None:
        report = apply_bulk_adjustment(
            sample_ledger, Section.OPERATING, Decimal("0.10"), config, now=JAN
        )

        capital = sample_ledger.require("S415.00")
        assert capital.current_fy_budget == Decimal("27500.00")
        assert capital.monthly_input == Decimal("2291.66")
        assert sample_ledger.require("S301.00").current_fy_budget == Decimal("100000.00")
        assert report.mode == RecomputeMode.FULL
        assert len(report.recomputed_accounts) == len(sample_ledger.items)

    def test_negative_adjustment(self, config: EngineConfig) -> None:
        ledger = balanced_ledger()

        apply_bulk_adjustment(ledger, Section.ADMIN, Decimal("-0.10"), config, now=JAN)

        assert ledger.require("S460.00").current_fy_budget == Decimal("27000.00")
        assert ledger.require("S460.00").required_rate == Decimal("0.4500")

    def test_unscalable_item_is_skipped_and_recorded(self, config: EngineConfig) -> None:
        ledger = balanced_ledger()
        ledger.add_item(create_operating("S470.00", "1E+50", monthly="0"))

        report = apply_bulk_adjustment(ledger, Section.OPERATING, Decimal("0.10"), config, now=JAN)

        assert ledger.require("S470.00").current_fy_budget == Decimal("1E+50")
        assert ledger.require("S401.00").current_fy_budget == Decimal("13200.00")
        assert "bulk adjustment skipped" in report.failures["S470.00"]
        assert "bulk adjustment skipped" in ledger.computation_failures["S470.00"]


def test_metrics_recorded(config: EngineConfig) -> None:
    before_passes = recompute_passes_total.labels(mode="local")._value.get()
    before_items = line_items_recomputed_total.labels(section="Operating")._value.get()

    recompute(
        balanced_ledger(), config, edited_accounts=["S401.00"], mode=RecomputeMode.LOCAL, now=JAN
    )

    assert recompute_passes_total.labels(mode="local")._value.get() == before_passes + 1
    assert (
        line_items_recomputed_total.labels(section="Operating")._value.get()
        == before_items + 1
    )
