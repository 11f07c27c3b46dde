"""
Ledger - budget line items, derived-field formulas and validation

Formulas turn a line item's inputs into year-to-date spending, scenario
projections and a required customer rate; the validation engine checks
the resulting ledger before it is saved or reported on.
"""

from rate_study.ledger.aggregates import LedgerAggregates, aggregate
from rate_study.ledger.models import BudgetLineItem, Enterprise, Ledger, Section
from rate_study.ledger.recalculation import (
    RecomputeMode,
    RecomputeReport,
    apply_bulk_adjustment,
    recompute,
)
from rate_study.ledger.validation import (
    IssueCategory,
    Severity,
    ValidationIssue,
    ValidationReport,
    validate,
)

__all__ = [
    # Models
    "BudgetLineItem",
    "Enterprise",
    "Ledger",
    "Section",
    # Aggregates
    "LedgerAggregates",
    "aggregate",
    # Recalculation
    "RecomputeMode",
    "RecomputeReport",
    "recompute",
    "apply_bulk_adjustment",
    # Validation
    "IssueCategory",
    "Severity",
    "ValidationIssue",
    "ValidationReport",
    "validate",
]
