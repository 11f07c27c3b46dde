"""
Test infrastructure components: logging, metrics, time.
"""

from datetime import datetime, timedelta, timezone

import pytest
import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Histogram

from rate_study.kernel.logging import (
    LogOperation,
    configure_logging,
    get_correlation_id,
    get_logger,
    ledger_context,
    set_correlation_id,
)
from rate_study.kernel.metrics import track_duration
from rate_study.kernel.time import RealTimeProvider, TestTimeProvider
from rate_study.ledger.recalculation import recompute
from rate_study.ledger.validation import validate
from tests.helpers import balanced_ledger

UTC = timezone.utc


class TestLoggingFramework:
    """Test structured logging framework."""

    def test_configure_logging_console(self) -> None:
        configure_logging(json_output=False, log_level="INFO")
        assert get_logger(__name__) is not None

    def test_configure_logging_json(self) -> None:
        configure_logging(json_output=True, log_level="DEBUG")
        assert get_logger(__name__) is not None

    def test_correlation_id(self) -> None:
        cid = get_correlation_id()
        assert cid

        set_correlation_id("rate-study-123")
        assert get_correlation_id() == "rate-study-123"

    def test_log_operation_times_block(self) -> None:
        configure_logging(json_output=False, log_level="INFO")
        logger = get_logger(__name__)

        with LogOperation(logger, "test_operation", account="S401.00") as operation:
            pass

        assert operation.elapsed_seconds >= 0

    def test_configure_logging_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("RATE_STUDY_LOG_FORMAT", "json")
        monkeypatch.setenv("RATE_STUDY_LOG_LEVEL", "warning")

        configure_logging()
        assert get_logger(__name__) is not None
        configure_logging(json_output=False, log_level="INFO")

    def test_ledger_context_binds_and_restores(self) -> None:
        with ledger_context("Water", account="W100.00"):
            assert structlog.contextvars.get_contextvars()["category"] == "Water"
            with ledger_context("Trash"):
                assert structlog.contextvars.get_contextvars()["category"] == "Trash"
            bound = structlog.contextvars.get_contextvars()
            assert bound["category"] == "Water"
            assert bound["account"] == "W100.00"

        assert "category" not in structlog.contextvars.get_contextvars()

    def test_log_operation_reraises(self) -> None:
        configure_logging(json_output=False, log_level="INFO")
        logger = get_logger(__name__)

        with pytest.raises(ValueError):
            with LogOperation(logger, "failing_operation"):
                raise ValueError("Test error")


class TestMetrics:
    """Test Prometheus metrics helpers."""

    def test_track_duration_observes_histogram(self) -> None:
        registry = CollectorRegistry()
        histogram = Histogram(
            "rate_study_test_duration_seconds", "test histogram", registry=registry
        )

        @track_duration(histogram)
        def work(value: int) -> int:
            return value * 2

        assert work(21) == 42
        assert registry.get_sample_value("rate_study_test_duration_seconds_count") == 1
        assert work.__name__ == "work"

    def test_validation_duration_recorded(self, config) -> None:
        name = "rate_study_validation_duration_seconds_count"
        before = REGISTRY.get_sample_value(name) or 0

        validate(balanced_ledger(), config)

        assert REGISTRY.get_sample_value(name) == before + 1


class TestTimeProviders:
    def test_real_time_is_utc(self) -> None:
        assert RealTimeProvider().now().tzinfo == timezone.utc

    def test_test_time_is_controllable(self) -> None:
        start = datetime(2025, 1, 15, tzinfo=timezone.utc)
        clock = TestTimeProvider(start)

        clock.advance_days(31)
        assert clock.now() == start + timedelta(days=31)

        clock.set_time(start)
        assert clock.now() == start

    @pytest.mark.parametrize(
        "start, months, expected",
        [
            (datetime(2025, 1, 31, tzinfo=UTC), 1, datetime(2025, 2, 28, tzinfo=UTC)),
            (datetime(2025, 1, 15, tzinfo=UTC), 12, datetime(2026, 1, 15, tzinfo=UTC)),
            (datetime(2025, 11, 30, tzinfo=UTC), 3, datetime(2026, 2, 28, tzinfo=UTC)),
        ],
    )
    def test_advance_months(self, start: datetime, months: int, expected: datetime) -> None:
        clock = TestTimeProvider(start)

        clock.advance_months(months)

        assert clock.now() == expected

    def test_advance_months_steps_fiscal_month(self, config) -> None:
        clock = TestTimeProvider(datetime(2025, 1, 15, tzinfo=timezone.utc))
        ledger = balanced_ledger()

        clock.advance_months(2)
        report = recompute(ledger, config, time_provider=clock)

        assert report.fiscal_month == 3
