"""
RateStudy - Main façade class

The primary interface for an editing session over one enterprise ledger.
It wraps the recalculation orchestrator and the validation engine so that
every edit leaves the ledger's derived fields consistent with its inputs.

Example:
    >>> from rate_study import RateStudy
    >>> from rate_study.kernel import EngineConfig
    >>> from rate_study.ledger.samples import sanitation_sample_ledger
    >>> study = RateStudy(sanitation_sample_ledger(), EngineConfig(customer_base=850))
    >>> _ = study.recompute()
    >>> _ = study.edit("S415.00", current_fy_budget="30000.00")
    >>> report = study.validate()
    >>> report.is_valid
    True
"""

from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from rate_study.kernel.config import EngineConfig
from rate_study.kernel.errors import DerivedFieldEdit, LedgerFileError
from rate_study.kernel.logging import get_logger
from rate_study.kernel.time import RealTimeProvider, TimeProvider
from rate_study.ledger.aggregates import LedgerAggregates, aggregate
from rate_study.ledger.models import DERIVED_FIELDS, BudgetLineItem, Ledger, Section
from rate_study.ledger.recalculation import (
    RecomputeMode,
    RecomputeReport,
    apply_bulk_adjustment,
    recompute,
)
from rate_study.ledger.validation import ValidationReport, validate

logger = get_logger(__name__)


class RateStudy:
    """
    Rate study editing session

    Provides a unified API for:
    - Editing line item inputs (derived fields follow automatically)
    - Adding and removing line items
    - Section-wide bulk adjustments
    - Ledger validation and the save gate
    - Dashboard summary figures
    """

    def __init__(
        self,
        ledger: Ledger,
        config: EngineConfig,
        time_provider: TimeProvider | None = None,
        mode: RecomputeMode = RecomputeMode.FULL,
    ) -> None:
        """
        Initialize a session

        Args:
            ledger: Ledger to edit (mutated in place)
            config: Customer base, scenarios and policy
            time_provider: Clock for YTD projection and entry dates (real time if None)
            mode: How far an edit's recompute reaches
        """
        self.ledger = ledger
        self.config = config
        self.time_provider = time_provider or RealTimeProvider()
        self.mode = mode

    # Persistence

    @classmethod
    def load(
        cls,
        path: str | Path,
        config: EngineConfig,
        time_provider: TimeProvider | None = None,
        mode: RecomputeMode = RecomputeMode.FULL,
    ) -> "RateStudy":
        """
        Open a session over a ledger saved as JSON

        Raises:
            LedgerFileError: If the file is missing or is not a ledger
        """
        return cls(load_ledger(path), config, time_provider, mode)

    def save(self, path: str | Path) -> None:
        """Write the ledger as JSON"""
        save_ledger(self.ledger, path)

    # Editing

    def edit(self, account: str, **changes: Any) -> RecomputeReport:
        """
        Change a line item's inputs and recompute

        Args:
            account: Account of the item to edit
            **changes: Field name -> new value (text or numeric inputs)

        Returns:
            RecomputeReport of the pass that followed

        Raises:
            LineItemNotFound: If the account is not in the ledger
            DerivedFieldEdit: If a change names an engine-owned field
            ValueError: If a change names a field line items do not have
        """
        derived = [name for name in changes if name in DERIVED_FIELDS]
        if derived:
            raise DerivedFieldEdit(account=account, fields=derived)
        unknown = sorted(set(changes) - set(BudgetLineItem.model_fields))
        if unknown:
            raise ValueError(f"Unknown line item fields: {', '.join(unknown)}")

        current = self.ledger.require(account)
        data = current.model_dump()
        if "section" in changes and "section_label" not in changes:
            data.pop("section_label")
        data.update(changes)
        updated = BudgetLineItem.model_validate(data)

        self.ledger.replace_item(account, updated)
        if updated.account != account:
            self.ledger.computation_failures.pop(account, None)

        logger.info(
            "Line item edited",
            category=self.ledger.category.value,
            account=updated.account,
            fields=sorted(changes),
        )
        return self._recompute([updated.account])

    def add_item(self, item: BudgetLineItem, strict: bool = False) -> RecomputeReport:
        """
        Append a line item and recompute

        Raises:
            DuplicateAccount: In strict mode, if the account exists
        """
        self.ledger.add_item(item, strict=strict, now=self.time_provider.now())
        logger.info(
            "Line item added",
            category=self.ledger.category.value,
            account=item.account,
            section=item.section.value,
        )
        return self._recompute([item.account])

    def remove_item(self, account: str) -> RecomputeReport:
        """
        Remove a line item and recompute the remaining ledger

        Removal changes the ledger totals, so the remaining items are
        always recomputed in full regardless of the session mode.

        Raises:
            LineItemNotFound: If the account is not in the ledger
        """
        self.ledger.remove_item(account)
        logger.info("Line item removed", category=self.ledger.category.value, account=account)
        return self.recompute()

    def bulk_adjust(self, section: Section | str, adjustment: Decimal | str) -> RecomputeReport:
        """
        Scale every budget and monthly input in a section

        Args:
            section: Section to adjust
            adjustment: Fractional change (0.05 = +5%)
        """
        return apply_bulk_adjustment(
            self.ledger,
            Section.parse(section),
            Decimal(str(adjustment)),
            self.config,
            time_provider=self.time_provider,
        )

    def recompute(self) -> RecomputeReport:
        """Recompute every item in the ledger"""
        return recompute(
            self.ledger,
            self.config,
            edited_accounts=None,
            mode=RecomputeMode.FULL,
            time_provider=self.time_provider,
        )

    def _recompute(self, accounts: list[str]) -> RecomputeReport:
        return recompute(
            self.ledger,
            self.config,
            edited_accounts=accounts,
            mode=self.mode,
            time_provider=self.time_provider,
        )

    # Reporting

    def validate(self) -> ValidationReport:
        """Run every validation layer over the ledger"""
        return validate(self.ledger, self.config)

    def can_submit(self) -> bool:
        """True when validation finds no errors (warnings do not block)"""
        return self.validate().is_valid

    def aggregates(self) -> LedgerAggregates:
        """Fresh ledger totals"""
        return aggregate(self.ledger.items, self.config.customer_base)

    def summary(self) -> dict[str, Decimal]:
        """Dashboard figures for the ledger"""
        return self.aggregates().summary()


def load_ledger(path: str | Path) -> Ledger:
    """
    Read a ledger from a JSON file

    Raises:
        LedgerFileError: If the file cannot be read or does not parse
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise LedgerFileError(str(path), exc.strerror or str(exc)) from exc

    try:
        return Ledger.model_validate_json(raw)
    except ValidationError as exc:
        raise LedgerFileError(str(path), str(exc)) from exc


def save_ledger(ledger: Ledger, path: str | Path) -> None:
    """Write a ledger to a JSON file"""
    Path(path).write_text(ledger.model_dump_json(indent=2), encoding="utf-8")
