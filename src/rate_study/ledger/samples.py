"""
Sample ledger - a sanitation district's rate study line items

Used by the CLI `sample` command and by tests as a realistic, balanced
ledger (revenue covers expenses within the policy band).
"""

from datetime import datetime
from decimal import Decimal

from rate_study.ledger.models import BudgetLineItem, Enterprise, Ledger, Section

# account, label, budget, monthly input, seasonal adjustment,
# seasonal revenue factor, time-of-use factor, affordability index
_REVENUE = [
    ("S311.00", "Specific Ownership Taxes", "15500.00", "1291.67", "0", "1.0", "1.0", "1.0"),
    ("S301.00", "Sewage Sales", "100000.00", "8333.33", "0", "1.2", "1.1", "0.9"),
    ("S310.10", "Delinquent Taxes", "2500.00", "208.33", "0", "1.0", "1.0", "1.0"),
    ("S313.00", "Senior Homestead Exemption", "100.00", "8.33", "0", "1.0", "1.0", "1.0"),
    ("S320.00", "Penalties and Interest", "15000.00", "1250.00", "0", "1.0", "1.0", "1.0"),
    ("S321.00", "Misc Income", "2000.00", "166.67", "0", "1.0", "1.0", "1.0"),
    ("S315.00", "Interest on Investments", "48500.00", "4041.67", "0", "1.0", "1.0", "1.0"),
    ("S322.00", "Grant", "0.00", "0.00", "0", "1.0", "1.0", "1.0"),
]

# account, label, budget, monthly input, seasonal adjustment, time-of-use factor
_OPERATING = [
    ("S401.00", "Permits and Assessments", "976.00", "81.33", "0", "1.0"),
    ("S401.10", "Bank Service", "85.00", "7.08", "0", "1.0"),
    ("S405.00", "Outside Service Lab Fees", "650.00", "54.17", "0", "1.0"),
    ("S405.10", "Budget, Audit, Legal", "2000.00", "166.67", "0", "1.0"),
    ("S410.00", "Office Supplies / Postage", "1000.00", "83.33", "0", "1.0"),
    ("S413.40", "Education", "8325.00", "693.75", "0", "1.0"),
    ("S415.00", "Capital Outlay", "25000.00", "2083.33", "0", "1.0"),
    ("S416.00", "Dues and Subscriptions", "100.00", "8.33", "0", "1.0"),
    ("S418.00", "Lift Station Utilities", "15000.00", "1250.00", "500", "1.2"),
    ("S420.00", "Collection Fee", "12000.00", "1000.00", "0", "1.0"),
    ("S425.00", "Supplies and Expenses", "2000.00", "166.67", "0", "1.0"),
    ("S430.00", "Insurance", "3500.00", "291.67", "0", "1.0"),
    ("S432.53", "Sewer Cleaning", "7600.00", "633.33", "1500", "1.5"),
    ("S445.00", "Treasurer Fees", "2000.00", "166.67", "0", "1.0"),
    ("S484.00", "Property Taxes", "1200.00", "100.00", "0", "1.0"),
    ("S486.00", "Equipment Repairs", "3000.00", "250.00", "800", "1.3"),
    ("S489.00", "Pickup Usage Fee", "2400.00", "200.00", "0", "1.0"),
    ("S491.00", "Fuel", "4500.00", "375.00", "200", "1.2"),
    ("S491.01", "Misc Operating", "500.00", "41.67", "0", "1.0"),
]

# account, label, budget, monthly input
_ADMIN = [
    ("S460.00", "Supt Salaries", "26000.00", "2166.67"),
    ("S460.10", "Clerk Salaries", "26000.00", "2166.67"),
    ("S460.12", "Part-Time Clerk Salaries", "5000.00", "416.67"),
    ("S465.00", "Office Supplies/Postage", "3000.00", "250.00"),
    ("S480.00", "Outside Service-Lab", "2000.00", "166.67"),
    ("S480.01", "Insurance: Building/HCL", "1200.00", "100.00"),
    ("S480.10", "Insurance: Workmans Comp", "1500.00", "125.00"),
    ("S483.00", "Insurance: Trash Truck", "2000.00", "166.67"),
    ("S487.00", "Payroll Taxes", "6100.00", "508.33"),
    ("S491.10", "Interest", "1300.00", "108.33"),
    ("S491.11", "Employee Benefits", "16000.00", "1333.33"),
]

ADMIN_ALLOCATION = Decimal("0.40")


def sanitation_sample_ledger(now: datetime | None = None) -> Ledger:
    """
    Build the sample sanitation district ledger

    Derived fields are left at zero; run a recompute before reading them.

    Args:
        now: Entry date stamped on every item

    Returns:
        Ledger with 8 revenue, 19 operating and 11 admin line items
    """
    ledger = Ledger(category=Enterprise.SANITATION_DISTRICT)

    for account, label, budget, monthly, seasonal, factor, tou, cai in _REVENUE:
        ledger.add_item(
            BudgetLineItem(
                account=account,
                label=label,
                section=Section.REVENUE,
                current_fy_budget=Decimal(budget),
                monthly_input=Decimal(monthly),
                seasonal_adjustment=Decimal(seasonal),
                seasonal_revenue_factor=Decimal(factor),
                time_of_use_factor=Decimal(tou),
                customer_affordability_index=Decimal(cai),
            ),
            now=now,
        )

    for account, label, budget, monthly, seasonal, tou in _OPERATING:
        ledger.add_item(
            BudgetLineItem(
                account=account,
                label=label,
                section=Section.OPERATING,
                current_fy_budget=Decimal(budget),
                monthly_input=Decimal(monthly),
                seasonal_adjustment=Decimal(seasonal),
                time_of_use_factor=Decimal(tou),
            ),
            now=now,
        )

    for account, label, budget, monthly in _ADMIN:
        ledger.add_item(
            BudgetLineItem(
                account=account,
                label=label,
                section=Section.ADMIN,
                current_fy_budget=Decimal(budget),
                monthly_input=Decimal(monthly),
                percent_allocation=ADMIN_ALLOCATION,
            ),
            now=now,
        )

    return ledger
