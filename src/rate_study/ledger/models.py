"""
Ledger Domain Models - Line items and the ledger that holds them

These models are the one shape shared by every collaborator: the editor
that mutates inputs, the engine that fills in derived fields, and the
reporting layer that reads them.

Key concepts:
- Inputs vs derived: editors own the input fields; the engine owns the
  derived ones and overwrites them on every recompute
- Tolerant construction: a line item with a negative budget, an empty
  account or an unknown section still loads; validation reports it
- Fixed-point money: every amount is a Decimal, floats are converted
  through their string form
"""

from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, Overflow, localcontext
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from rate_study.kernel.errors import DuplicateAccount, LineItemNotFound

ZERO = Decimal("0")
ONE = Decimal("1")


@contextmanager
def saturating() -> Iterator[None]:
    """Decimal context in which an overflowing result becomes signed Infinity"""
    with localcontext() as ctx:
        ctx.traps[Overflow] = False
        yield


class Section(str, Enum):
    """
    Line item classification

    UNKNOWN is where any unrecognized or missing section lands. It is
    never silently treated as one of the real sections: formulas give it
    no scenario impact and a zero rate, and validation always flags it.
    """

    REVENUE = "Revenue"
    OPERATING = "Operating"
    ADMIN = "Admin"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, raw: Any) -> "Section":
        """Map free-form section text onto the closed set"""
        if isinstance(raw, Section):
            return raw
        if not isinstance(raw, str):
            return cls.UNKNOWN
        text = raw.strip().lower()
        for section in (cls.REVENUE, cls.OPERATING, cls.ADMIN):
            if section.value.lower() == text:
                return section
        return cls.UNKNOWN

    @classmethod
    def known(cls) -> tuple["Section", ...]:
        return (cls.REVENUE, cls.OPERATING, cls.ADMIN)

    @property
    def is_expense(self) -> bool:
        return self in (Section.OPERATING, Section.ADMIN)


class Enterprise(str, Enum):
    """
    Utility enterprise a ledger belongs to

    Each enterprise numbers its accounts with its own prefix.
    """

    SANITATION_DISTRICT = "SanitationDistrict"
    WATER = "Water"
    TRASH = "Trash"
    APARTMENTS = "Apartments"

    @property
    def account_prefix(self) -> str:
        return {
            Enterprise.SANITATION_DISTRICT: "S",
            Enterprise.WATER: "W",
            Enterprise.TRASH: "T",
            Enterprise.APARTMENTS: "APT",
        }[self]


INPUT_FIELDS = frozenset(
    {
        "current_fy_budget",
        "seasonal_adjustment",
        "monthly_input",
        "seasonal_revenue_factor",
        "goal_adjustment",
        "reserve_target",
        "percent_allocation",
        "time_of_use_factor",
        "customer_affordability_index",
        "monthly_usage",
        "prior_fy_actual",
        "two_years_prior_actual",
    }
)

DERIVED_FIELDS = frozenset(
    {
        "year_to_date_spending",
        "percent_of_budget",
        "budget_remaining",
        "total",
        "scenario1",
        "scenario2",
        "scenario3",
        "required_rate",
        "quarterly_summary",
    }
)

_DEFAULT_ONE = frozenset(
    {"seasonal_revenue_factor", "time_of_use_factor", "customer_affordability_index"}
)


class BudgetLineItem(BaseModel):
    """
    One budgeted account in an enterprise ledger

    Attributes:
        account: Account number, unique within a ledger
        label: Description of the account
        section: Revenue, Operating or Admin (Unknown when unrecognized)
        section_label: Section text exactly as the editor supplied it
        current_fy_budget: Annual budget for the current fiscal year
        seasonal_adjustment: Seasonal dollar adjustment to the projection
        monthly_input: Expected monthly amount
        seasonal_revenue_factor: Multiplier on seasonal adjustment (Revenue)
        goal_adjustment: Council goal adjustment (dollars)
        reserve_target: Annual reserve contribution target
        percent_allocation: Share of scenario impact carried (0-1)
        time_of_use_factor: Billing multiplier (1 = neutral)
        customer_affordability_index: Affordability multiplier (1 = neutral)
        monthly_usage: Metered usage, informational
        prior_fy_actual: Last fiscal year's actual
        two_years_prior_actual: Actual from two fiscal years back
        notes: Free text
        entry_date: When the item was added to the ledger

    Derived fields are written by the recalculation orchestrator only.
    """

    account: str = ""
    label: str = ""
    section: Section = Section.UNKNOWN
    section_label: str = ""

    # Inputs
    current_fy_budget: Decimal = ZERO
    seasonal_adjustment: Decimal = ZERO
    monthly_input: Decimal = ZERO
    seasonal_revenue_factor: Decimal = ONE
    goal_adjustment: Decimal = ZERO
    reserve_target: Decimal = ZERO
    percent_allocation: Decimal = ZERO
    time_of_use_factor: Decimal = ONE
    customer_affordability_index: Decimal = ONE
    monthly_usage: Decimal = ZERO
    prior_fy_actual: Decimal = ZERO
    two_years_prior_actual: Decimal = ZERO
    notes: str = ""

    # Derived
    year_to_date_spending: Decimal = ZERO
    percent_of_budget: Decimal = ZERO
    budget_remaining: Decimal = ZERO
    total: Decimal = ZERO
    scenario1: Decimal = ZERO
    scenario2: Decimal = ZERO
    scenario3: Decimal = ZERO
    required_rate: Decimal = ZERO
    quarterly_summary: Decimal = ZERO

    entry_date: datetime | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "account": "S301.00",
                    "label": "Sewage Sales",
                    "section": "Revenue",
                    "current_fy_budget": "100000.00",
                    "monthly_input": "8333.33",
                    "seasonal_revenue_factor": "1.2",
                    "time_of_use_factor": "1.1",
                    "customer_affordability_index": "0.9",
                }
            ]
        }
    }

    @model_validator(mode="before")
    @classmethod
    def _split_section(cls, data: Any) -> Any:
        if isinstance(data, dict) and "section" in data:
            raw = data["section"]
            data = dict(data)
            if not data.get("section_label"):
                data["section_label"] = raw.value if isinstance(raw, Section) else str(raw or "")
            data["section"] = Section.parse(raw)
        return data

    @field_validator("account", "label", "notes", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator(*sorted(INPUT_FIELDS | DERIVED_FIELDS), mode="before")
    @classmethod
    def _to_decimal(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or value == "":
            return ONE if info.field_name in _DEFAULT_ONE else ZERO
        if isinstance(value, float):
            return Decimal(str(value))
        return value

    def derived_fields(self) -> dict[str, Decimal]:
        """Snapshot of the engine-owned fields"""
        return {name: getattr(self, name) for name in sorted(DERIVED_FIELDS)}

    def input_fields(self) -> dict[str, Decimal]:
        """Snapshot of the editor-owned numeric fields"""
        return {name: getattr(self, name) for name in sorted(INPUT_FIELDS)}


class Ledger(BaseModel):
    """
    Ordered line items for one enterprise

    A ledger is created when an editing session starts and handed back to
    the caller for storage. It may hold duplicate accounts; `get` returns
    the first and validation reports the rest.

    Attributes:
        category: Enterprise this ledger belongs to
        items: Line items in display order
        computation_failures: account -> reason for required rates that
            degraded to zero on the last recompute
    """

    category: Enterprise = Enterprise.SANITATION_DISTRICT
    items: list[BudgetLineItem] = Field(default_factory=list)
    computation_failures: dict[str, str] = Field(default_factory=dict)

    def get(self, account: str) -> BudgetLineItem | None:
        """Get the first line item with this account"""
        for item in self.items:
            if item.account == account:
                return item
        return None

    def require(self, account: str) -> BudgetLineItem:
        """
        Get a line item or fail

        Raises:
            LineItemNotFound: If the account is not in the ledger
        """
        item = self.get(account)
        if item is None:
            raise LineItemNotFound(category=self.category.value, account=account)
        return item

    def index_of(self, account: str) -> int:
        for index, item in enumerate(self.items):
            if item.account == account:
                return index
        raise LineItemNotFound(category=self.category.value, account=account)

    def add_item(
        self,
        item: BudgetLineItem,
        *,
        strict: bool = False,
        now: datetime | None = None,
    ) -> BudgetLineItem:
        """
        Append a line item

        Args:
            item: Item to append
            strict: Refuse an account that is already present
            now: Entry date to stamp when the item has none

        Raises:
            DuplicateAccount: In strict mode, if the account exists
        """
        if strict and self.get(item.account) is not None:
            raise DuplicateAccount(category=self.category.value, account=item.account)
        if item.entry_date is None and now is not None:
            item.entry_date = now
        self.items.append(item)
        return item

    def replace_item(self, account: str, item: BudgetLineItem) -> None:
        """Swap the first item with this account for a new version"""
        self.items[self.index_of(account)] = item

    def remove_item(self, account: str) -> BudgetLineItem:
        """Remove and return the first item with this account"""
        removed = self.items.pop(self.index_of(account))
        self.computation_failures.pop(account, None)
        return removed

    def accounts(self) -> list[str]:
        return [item.account for item in self.items]

    def by_section(self, section: Section) -> list[BudgetLineItem]:
        return [item for item in self.items if item.section == section]

    def duplicate_accounts(self) -> list[str]:
        """Accounts that appear more than once (non-empty only)"""
        counts = Counter(item.account for item in self.items if item.account.strip())
        return [account for account, count in counts.items() if count > 1]
