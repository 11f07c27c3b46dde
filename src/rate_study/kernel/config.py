"""
Engine configuration - financing scenarios, policy thresholds, customer base

The three capital/financing scenarios and every threshold the validation
engine checks against live here rather than inside the formulas, so a
changed financing assumption or a different district's plausibility band
is a configuration edit, not a code edit.
"""

from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from rate_study.kernel.errors import InvalidScenarioDefinition, LedgerFileError

CENT = Decimal("0.01")


class ScenarioDefinition(BaseModel):
    """
    One what-if financing assumption

    The monthly dollar impact is what the formulas consume. The optional
    financing terms record where the figure came from; use
    `from_financing` to derive the impact from them.

    Attributes:
        name: Short identifier (e.g., "equipment_replacement")
        description: Human-readable description
        monthly_impact: Monthly dollar impact added to affected line items
        principal: Amount financed, if the scenario is a loan or fund
        annual_rate: Nominal annual interest rate (0.05 = 5%)
        term_years: Repayment or build-up period in years
    """

    name: str = Field(min_length=1)
    description: str = ""
    monthly_impact: Decimal = Field(ge=0)
    principal: Decimal | None = Field(default=None, ge=0)
    annual_rate: Decimal | None = Field(default=None, ge=0)
    term_years: int | None = Field(default=None, ge=1)

    model_config = {"frozen": True}

    @classmethod
    def from_financing(
        cls,
        name: str,
        principal: Decimal,
        annual_rate: Decimal,
        term_years: int,
        description: str = "",
    ) -> "ScenarioDefinition":
        """
        Derive the monthly impact from level-payment financing terms

        Uses the standard amortization payment with monthly compounding.
        A zero rate spreads the principal evenly over the term.

        Args:
            name: Scenario identifier
            principal: Amount financed
            annual_rate: Nominal annual rate
            term_years: Term in years

        Returns:
            ScenarioDefinition with monthly_impact quantized to cents
        """
        if term_years < 1:
            raise InvalidScenarioDefinition(f"{name}: term must be at least one year")
        payments = term_years * 12
        if annual_rate == 0:
            payment = principal / payments
        else:
            monthly_rate = annual_rate / 12
            factor = (1 + monthly_rate) ** payments
            payment = principal * monthly_rate * factor / (factor - 1)

        return cls(
            name=name,
            description=description,
            monthly_impact=payment.quantize(CENT, rounding=ROUND_HALF_UP),
            principal=principal,
            annual_rate=annual_rate,
            term_years=term_years,
        )


def default_scenarios() -> list[ScenarioDefinition]:
    """The rate study's three standard financing scenarios"""
    return [
        ScenarioDefinition(
            name="equipment_replacement",
            description="Equipment replacement, $385,000 over 12 years",
            monthly_impact=Decimal("2673.61"),
            principal=Decimal("385000"),
            annual_rate=Decimal("0"),
            term_years=12,
        ),
        ScenarioDefinition(
            name="reserve_fund",
            description="Reserve fund build-up, $50,000 over 5 years",
            monthly_impact=Decimal("833.33"),
            principal=Decimal("50000"),
            annual_rate=Decimal("0"),
            term_years=5,
        ),
        ScenarioDefinition(
            name="grant_repayment",
            description="Grant repayment schedule",
            monthly_impact=Decimal("1825.63"),
        ),
    ]


class RatePolicy(BaseModel):
    """
    Thresholds for projections and ledger validation

    Defaults follow the municipal rate study methodology: a 120% cap on
    year-to-date projections, a 95%-120% revenue coverage band, and a
    $50,000-$5,000,000 plausibility band for a district's total budget.
    """

    # Projection
    ytd_cap_ratio: Decimal = Field(
        default=Decimal("1.2"),
        ge=0,
        description="Year-to-date spending is capped at budget times this ratio",
    )
    admin_scenario_factor_default: Decimal = Field(
        default=Decimal("0.15"),
        ge=0,
        description="Admin scenario share when the item has no percent allocation",
    )
    admin_rate_allocation_default: Decimal = Field(
        default=Decimal("0.20"),
        ge=0,
        description="Admin required-rate allocation when the item has none",
    )

    # Per-item rules
    max_percent_allocation: Decimal = Field(
        default=Decimal("1.0"),
        description="Revenue percent allocation may not exceed this (100%)",
    )
    seasonal_factor_min: Decimal = Field(default=Decimal("0.5"))
    seasonal_factor_max: Decimal = Field(default=Decimal("2.0"))
    high_rate_threshold: Decimal = Field(
        default=Decimal("1000"),
        description="Required rates above this are flagged as unusually high",
    )
    max_required_rate: Decimal = Field(
        default=Decimal("10000"),
        description="Required rates above this are rejected outright",
    )
    max_budget_amount: Decimal = Field(
        default=Decimal("10000000"),
        description="Largest plausible single line-item budget",
    )
    monthly_input_variance_max: Decimal = Field(
        default=Decimal("0.10"),
        description="Allowed relative gap between monthly input x 12 and budget",
    )
    utilization_warn_ratio: Decimal = Field(
        default=Decimal("2.0"),
        description="Percent-of-budget above this is flagged",
    )

    # Enterprise-specific rules
    affordability_index_min: Decimal = Field(
        default=Decimal("0.1"),
        description="Apartments: lowest customer affordability index (when set)",
    )
    affordability_index_max: Decimal = Field(default=Decimal("2.0"))
    time_of_use_factor_min: Decimal = Field(
        default=Decimal("0.1"),
        description="Water: lowest time-of-use factor (when set)",
    )
    time_of_use_factor_max: Decimal = Field(default=Decimal("3.0"))
    trash_seasonal_adjustment_max_ratio: Decimal = Field(
        default=Decimal("0.5"),
        description="Trash: seasonal adjustment may not exceed this share of budget",
    )

    # Scenario sanity (Operating items)
    scenario1_budget_multiple: Decimal = Field(default=Decimal("2"))
    scenario2_budget_multiple: Decimal = Field(default=Decimal("1.5"))

    # Ledger-wide rules
    coverage_ratio_min: Decimal = Field(default=Decimal("0.95"))
    coverage_ratio_max: Decimal = Field(default=Decimal("1.20"))
    total_budget_min: Decimal = Field(default=Decimal("50000"))
    total_budget_max: Decimal = Field(default=Decimal("5000000"))
    scenario1_revenue_multiple: Decimal = Field(default=Decimal("1.5"))
    imbalance_ratio_max: Decimal = Field(
        default=Decimal("0.5"),
        description="Revenue and expenses may differ by this share of the larger",
    )


class EngineConfig(BaseModel):
    """
    Everything the engine needs besides the ledger itself

    Attributes:
        customer_base: Total ratepayers, supplied by the caller
        scenarios: Exactly three financing scenarios, in order
        policy: Projection and validation thresholds
        fiscal_year_start_month: Calendar month the fiscal year starts in
    """

    customer_base: int = Field(ge=0)
    scenarios: list[ScenarioDefinition] = Field(default_factory=default_scenarios)
    policy: RatePolicy = Field(default_factory=RatePolicy)
    fiscal_year_start_month: int = Field(default=1, ge=1, le=12)

    @field_validator("scenarios")
    @classmethod
    def _exactly_three(cls, value: list[ScenarioDefinition]) -> list[ScenarioDefinition]:
        if len(value) != 3:
            raise InvalidScenarioDefinition(
                f"expected 3 scenarios, got {len(value)}"
            )
        return value

    @classmethod
    def from_file(cls, path: str | Path, **overrides: object) -> "EngineConfig":
        """
        Load configuration from a JSON file

        Args:
            path: JSON file holding EngineConfig fields
            **overrides: Field values that replace the file's (e.g. customer_base)

        Raises:
            LedgerFileError: If the file is missing or does not parse
        """
        path = Path(path)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise LedgerFileError(str(path), exc.strerror or str(exc)) from exc

        try:
            config = cls.model_validate_json(raw)
            if overrides:
                config = cls.model_validate({**config.model_dump(), **overrides})
        except ValidationError as exc:
            raise LedgerFileError(str(path), str(exc)) from exc
        return config
