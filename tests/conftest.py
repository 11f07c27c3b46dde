"""
Pytest configuration and shared fixtures

Every fixture builds fresh objects: ledgers are mutated in place by the
engine, so nothing is shared between tests.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest

from rate_study.kernel.config import EngineConfig
from rate_study.kernel.time import TestTimeProvider
from rate_study.ledger.models import Ledger
from rate_study.ledger.samples import sanitation_sample_ledger
from rate_study.study import RateStudy


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC, the first month of a calendar
    fiscal year, so YTD projections cover exactly one month.
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def config() -> EngineConfig:
    """Engine configuration with a round customer base of 1000"""
    return EngineConfig(customer_base=1000)


@pytest.fixture
def sample_ledger(test_time: TestTimeProvider) -> Ledger:
    """The sample sanitation district ledger, derived fields not yet computed"""
    return sanitation_sample_ledger(now=test_time.now())


@pytest.fixture
def sample_study(
    sample_ledger: Ledger, config: EngineConfig, test_time: TestTimeProvider
) -> RateStudy:
    """Editing session over the sample ledger, already recomputed"""
    study = RateStudy(sample_ledger, config, time_provider=test_time)
    study.recompute()
    return study


@pytest.fixture
def ledger_file(tmp_path: Path, sample_study: RateStudy) -> Iterator[Path]:
    """Sample ledger saved as JSON in a temporary directory"""
    path = tmp_path / "ledger.json"
    sample_study.save(path)
    yield path
