"""
Kernel - configuration, errors, logging, metrics and time

Shared infrastructure the ledger engine builds on. Nothing here knows
about line items.
"""

from rate_study.kernel.config import EngineConfig, RatePolicy, ScenarioDefinition
from rate_study.kernel.errors import (
    ConfigurationError,
    DerivedFieldEdit,
    DuplicateAccount,
    InvalidScenarioDefinition,
    LedgerError,
    LedgerFileError,
    LineItemNotFound,
    RateStudyError,
)
from rate_study.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # Config
    "EngineConfig",
    "RatePolicy",
    "ScenarioDefinition",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Errors
    "RateStudyError",
    "LedgerError",
    "LineItemNotFound",
    "DuplicateAccount",
    "DerivedFieldEdit",
    "LedgerFileError",
    "ConfigurationError",
    "InvalidScenarioDefinition",
]
