"""
Rate Study Engine - budget recalculation and ledger validation for
municipal utility rate studies

Keeps each line item's derived figures (year-to-date spending, scenario
projections, required customer rate) consistent with its inputs as the
ledger is edited, and checks the ledger against field, business,
scenario and ledger-wide rules before it is saved.
"""

from rate_study.study import RateStudy

__version__ = "0.1.0"
__all__ = ["RateStudy", "__version__"]
