"""
Prometheus metrics collection for the rate study engine.

Counts recompute passes, validation runs and the issues they raise, so a
long-running host (UI server, batch job) can watch ledger health.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# Recalculation Metrics
# ============================================================================

recompute_passes_total = Counter(
    "rate_study_recompute_passes_total",
    "Total number of recompute passes",
    ["mode"],  # mode: full, local
)

recompute_duration_seconds = Histogram(
    "rate_study_recompute_duration_seconds",
    "Duration of a recompute pass in seconds",
    ["mode"],
    buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
)

line_items_recomputed_total = Counter(
    "rate_study_line_items_recomputed_total",
    "Total number of line items whose derived fields were recomputed",
    ["section"],
)

required_rate_failures_total = Counter(
    "rate_study_required_rate_failures_total",
    "Required-rate computations that degraded to zero",
    ["section"],
)

# ============================================================================
# Validation Metrics
# ============================================================================

validation_runs_total = Counter(
    "rate_study_validation_runs_total",
    "Total number of ledger validation runs",
    ["enterprise"],
)

validation_issues_total = Counter(
    "rate_study_validation_issues_total",
    "Total number of validation issues raised",
    ["severity", "category"],
)

validation_duration_seconds = Histogram(
    "rate_study_validation_duration_seconds",
    "Duration of a validation run in seconds",
    buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
)

ledger_coverage_ratio = Gauge(
    "rate_study_ledger_coverage_ratio",
    "Revenue / expense coverage ratio at the last validation",
    ["enterprise"],
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_duration(
    histogram: Histogram, **labels: Any
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator to observe a function's duration on a histogram.

    Args:
        histogram: Histogram to observe
        **labels: Label values for the histogram

    Returns:
        Decorated function that tracks duration
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                target = histogram.labels(**labels) if labels else histogram
                target.observe(time.perf_counter() - start)

        return wrapper

    return decorator

