"""
Rate Study CLI

Command-line interface for the rate study engine.
Works on ledgers saved as JSON: recompute derived fields, validate,
summarize and apply section-wide adjustments.

Usage:
    rate-study sample --out ledger.json
    rate-study recompute --ledger ledger.json --customer-base 850
    rate-study validate --ledger ledger.json --customer-base 850
    rate-study summary --ledger ledger.json --customer-base 850 --json
    rate-study adjust --ledger ledger.json --customer-base 850 --section Operating --by 0.05
"""

import json
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import NoReturn, Optional

import typer
from typing_extensions import Annotated

from rate_study.kernel.config import EngineConfig
from rate_study.kernel.errors import ConfigurationError, LedgerError, LedgerFileError
from rate_study.kernel.logging import configure_logging
from rate_study.kernel.time import RealTimeProvider
from rate_study.ledger.models import Section
from rate_study.ledger.recalculation import RecomputeMode, RecomputeReport, recompute
from rate_study.ledger.samples import sanitation_sample_ledger
from rate_study.study import RateStudy, save_ledger

# Logs go to stderr so JSON output on stdout stays parseable.
# RATE_STUDY_LOG_LEVEL / RATE_STUDY_LOG_FORMAT adjust them.
configure_logging()

app = typer.Typer(
    name="rate-study",
    help="Rate Study Engine - budget recalculation and ledger validation",
    add_completion=False,
)

DEFAULT_CUSTOMER_BASE = 850

LedgerOption = Annotated[Path, typer.Option("--ledger", help="Ledger JSON file")]
CustomerBaseOption = Annotated[
    Optional[int],
    typer.Option("--customer-base", min=0, help="Number of ratepayers"),
]
ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", help="Engine configuration JSON file"),
]


def fail(message: str) -> NoReturn:
    """Print an error to stderr and exit with status 1"""
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


def get_config(customer_base: Optional[int], config_path: Optional[Path]) -> EngineConfig:
    """Build the engine configuration from CLI options"""
    try:
        if config_path is not None:
            overrides = {} if customer_base is None else {"customer_base": customer_base}
            return EngineConfig.from_file(config_path, **overrides)
    except (LedgerFileError, ConfigurationError) as exc:
        fail(str(exc))

    if customer_base is None:
        fail("--customer-base is required when no --config file is given")
    return EngineConfig(customer_base=customer_base)


def get_study(ledger_path: Path, config: EngineConfig) -> RateStudy:
    """Open a session over a ledger file"""
    try:
        return RateStudy.load(ledger_path, config)
    except LedgerFileError as exc:
        fail(str(exc))


def print_report(report: RecomputeReport) -> None:
    totals = report.aggregates
    typer.echo(
        f"✓ Recomputed {len(report.recomputed_accounts)} line items "
        f"({report.mode.value}, fiscal month {report.fiscal_month})"
    )
    typer.echo(f"  Revenue: ${totals.total_revenue:,.2f}")
    typer.echo(f"  Expenses: ${totals.total_expenses:,.2f}")
    typer.echo(f"  Coverage: {totals.coverage_ratio * 100:.1f}%")
    for account, reason in report.failures.items():
        typer.echo(f"  ⚠️  {account}: {reason}")


@app.command()
def sample(
    out: Annotated[Path, typer.Option("--out", help="Where to write the ledger")],
    customer_base: Annotated[
        int,
        typer.Option("--customer-base", min=0, help="Number of ratepayers"),
    ] = DEFAULT_CUSTOMER_BASE,
) -> None:
    """Write the sample sanitation district ledger"""
    time_provider = RealTimeProvider()
    study = RateStudy(
        sanitation_sample_ledger(now=time_provider.now()),
        EngineConfig(customer_base=customer_base),
        time_provider=time_provider,
    )
    study.recompute()
    study.save(out)
    typer.echo(f"✓ Wrote sample ledger: {out}")
    typer.echo(f"  Line items: {len(study.ledger.items)}")


@app.command("recompute")
def recompute_command(
    ledger: LedgerOption,
    customer_base: CustomerBaseOption = None,
    config: ConfigOption = None,
    as_of: Annotated[
        Optional[datetime],
        typer.Option("--as-of", formats=["%Y-%m-%d"], help="Projection date"),
    ] = None,
    accounts: Annotated[
        Optional[list[str]],
        typer.Option("--account", help="Edited account (repeatable)"),
    ] = None,
    local: Annotated[
        bool,
        typer.Option("--local", help="Recompute only the edited accounts"),
    ] = False,
    out: Annotated[
        Optional[Path],
        typer.Option("--out", help="Write here instead of back to --ledger"),
    ] = None,
) -> None:
    """Recompute derived fields and write the ledger back"""
    engine_config = get_config(customer_base, config)
    study = get_study(ledger, engine_config)

    now = as_of.replace(tzinfo=timezone.utc) if as_of else None
    try:
        report = recompute(
            study.ledger,
            engine_config,
            edited_accounts=accounts or None,
            mode=RecomputeMode.LOCAL if local else RecomputeMode.FULL,
            now=now,
            time_provider=study.time_provider,
        )
    except LedgerError as exc:
        fail(str(exc))

    save_ledger(study.ledger, out or ledger)
    print_report(report)


@app.command()
def validate(
    ledger: LedgerOption,
    customer_base: CustomerBaseOption = None,
    config: ConfigOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Validate a ledger (exit code 1 when errors are found)"""
    study = get_study(ledger, get_config(customer_base, config))
    report = study.validate()

    if json_output:
        typer.echo(json.dumps(report.model_dump(mode="json"), indent=2))
    else:
        status = "✓ Valid" if report.is_valid else "✗ Invalid"
        typer.echo(
            f"{status}: {len(report.errors)} errors, {len(report.warnings)} warnings\n"
        )
        typer.echo(report.summary())

    if not report.is_valid:
        raise typer.Exit(1)


@app.command()
def summary(
    ledger: LedgerOption,
    customer_base: CustomerBaseOption = None,
    config: ConfigOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show ledger totals"""
    study = get_study(ledger, get_config(customer_base, config))
    figures = study.summary()

    if json_output:
        typer.echo(json.dumps(figures, indent=2, default=str))
        return

    typer.echo(f"\n{study.ledger.category.value} ledger ({len(study.ledger.items)} items)")
    typer.echo(f"  Total Revenue: ${figures['total_revenue']:,.2f}")
    typer.echo(f"  Total Expenses: ${figures['total_expenses']:,.2f}")
    typer.echo(f"  Net Income: ${figures['net_income']:,.2f}")
    typer.echo(f"  Coverage Ratio: {figures['coverage_ratio'] * 100:.1f}%")
    typer.echo(f"  Average Required Rate: ${figures['average_required_rate']:,.2f}")
    typer.echo(f"  Budget Utilization: {figures['budget_utilization'] * 100:.1f}%")
    typer.echo("\nScenario Totals:")
    typer.echo(f"  Equipment Replacement: ${figures['scenario1_total']:,.2f}")
    typer.echo(f"  Reserve Fund: ${figures['scenario2_total']:,.2f}")
    typer.echo(f"  Grant Repayment: ${figures['scenario3_total']:,.2f}")


@app.command()
def adjust(
    ledger: LedgerOption,
    section: Annotated[str, typer.Option("--section", help="Revenue, Operating or Admin")],
    by: Annotated[str, typer.Option("--by", help="Fractional change (0.05 = +5%)")],
    customer_base: CustomerBaseOption = None,
    config: ConfigOption = None,
    out: Annotated[
        Optional[Path],
        typer.Option("--out", help="Write here instead of back to --ledger"),
    ] = None,
) -> None:
    """Scale budgets and monthly inputs of one section"""
    target = Section.parse(section)
    if target == Section.UNKNOWN:
        fail(f"Unknown section: {section}")
    try:
        adjustment = Decimal(by)
    except InvalidOperation:
        fail(f"Not a number: {by}")

    study = get_study(ledger, get_config(customer_base, config))
    report = study.bulk_adjust(target, adjustment)
    study.save(out or ledger)
    typer.echo(f"✓ Adjusted {target.value} by {adjustment * 100:.1f}%")
    print_report(report)


def main() -> None:
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
