"""
Deduplication, ordering and accounting checks over a full transaction set.
"""
import re
import logging
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from categories import CATEGORY_NAMES
from schema import AccountingSummary, Assets, Direction, ReconciliationReport, Transaction

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = Decimal("0.01")
ZERO = Decimal("0")

_SUSPICIOUS_DESCRIPTION = re.compile(
    r'^(Check#?|Checks|Amount|Date|Balance|continued)$|ATM and debit card|\bthru\b.*/',
    re.IGNORECASE,
)


def signature(txn: Transaction) -> Tuple[date, str, Decimal]:
    return txn.date, txn.description, txn.amount


def deduplicate(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Drop transactions whose (date, description, amount) was already seen, keeping the first."""
    seen = set()
    unique = []
    for txn in transactions:
        key = signature(txn)
        if key in seen:
            continue
        seen.add(key)
        unique.append(txn)
    return unique


def sort_transactions(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Chronological order; transactions on the same day keep their relative order."""
    return sorted(transactions, key=lambda t: t.date)


def total(transactions: Iterable[Transaction], direction: Optional[Direction] = None) -> Decimal:
    return sum((t.amount for t in transactions if direction is None or t.direction is direction), ZERO)


def calculate_summary(transactions: List[Transaction], assets: Assets) -> AccountingSummary:
    """
    Build the property-on-hand and cash-flow figures for the accounting.

    Non-cash property is carried at its appraised value, unchanged over the
    period.

    Args:
        transactions: Classified transactions for the period
        assets: Bank accounts and non-cash property

    Returns:
        AccountingSummary
    """
    beginning_non_cash = (
        sum((p.appraised_value for p in assets.real_property), ZERO)
        + sum((a.value for a in assets.other_non_cash_assets), ZERO)
    )
    return AccountingSummary(
        beginning_cash_assets=sum((a.opening_balance for a in assets.bank_accounts), ZERO),
        beginning_non_cash_assets=beginning_non_cash,
        total_receipts=total(transactions, Direction.RECEIPT),
        total_disbursements=total(transactions, Direction.DISBURSEMENT),
        ending_cash_assets=sum((a.closing_balance for a in assets.bank_accounts), ZERO),
        ending_non_cash_assets=beginning_non_cash,
    )


def validate_reconciliation(summary: AccountingSummary) -> ReconciliationReport:
    """
    Check that charges equal credits.

    Charges are property on hand at the beginning plus everything received;
    credits are everything paid out plus property on hand at the end.
    """
    charges = (
        summary.beginning_cash_assets
        + summary.beginning_non_cash_assets
        + summary.total_receipts
        + summary.gains_on_sales
        + summary.net_income_from_business
        + summary.other_charges
    )
    credits = (
        summary.total_disbursements
        + summary.losses_on_sales
        + summary.distributions_to_conservatee
        + summary.net_loss_from_business
        + summary.other_credits
        + summary.ending_cash_assets
        + summary.ending_non_cash_assets
    )
    difference = abs(charges - credits)
    return ReconciliationReport(
        is_balanced=difference < BALANCE_TOLERANCE,
        charges=charges,
        credits=credits,
        difference=difference,
    )


def organize_schedules(transactions: Iterable[Transaction]) -> Dict[str, Dict]:
    """
    Group transactions into Schedule A and Schedule C sections.

    Returns:
        {"A": {code: section}, "C": {code: section}} where each section is
        {"name", "total", "transactions", "sub_categories": {sub: {"total", "transactions"}}}
    """
    schedules: Dict[str, Dict] = {"A": OrderedDict(), "C": OrderedDict()}
    for code, name in CATEGORY_NAMES.items():
        schedules[code[0]][code] = {"name": name, "total": ZERO, "transactions": [], "sub_categories": {}}

    for txn in transactions:
        schedule = "A" if txn.direction is Direction.RECEIPT else "C"
        section = schedules[schedule].get(txn.category)
        if section is None:
            logger.warning(f"Transaction in unknown category {txn.category}: {txn.description}")
            continue
        section["transactions"].append(txn)
        section["total"] += txn.amount
        if txn.sub_category:
            sub = section["sub_categories"].setdefault(txn.sub_category, {"total": ZERO, "transactions": []})
            sub["transactions"].append(txn)
            sub["total"] += txn.amount

    return schedules


def validate_transactions(transactions: List[Transaction], min_expected: int = 5,
                          large_disbursement: Decimal = Decimal("10000"),
                          today: Optional[date] = None) -> List[str]:
    """
    Soft checks that flag a parse worth a second look.

    Args:
        transactions: Final transaction list
        min_expected: Fewer transactions than this is suspicious
        large_disbursement: Disbursements above this are flagged
        today: Reference date for the future-date check

    Returns:
        Human-readable warning strings
    """
    warnings = []
    today = today or date.today()

    if len(transactions) < min_expected:
        warnings.append(
            f"Only {len(transactions)} transactions found. The statement may not have been read completely"
        )

    large = [t for t in transactions if t.direction is Direction.DISBURSEMENT and t.amount > large_disbursement]
    if large:
        listing = ", ".join(f"{t.date} {t.description[:30]} ${t.amount:,.2f}" for t in large[:5])
        warnings.append(f"{len(large)} disbursements over ${large_disbursement:,.0f}: {listing}")

    suspicious = [t for t in transactions if _SUSPICIOUS_DESCRIPTION.search(t.description)]
    if suspicious:
        warnings.append(
            f"{len(suspicious)} transactions have descriptions that look like statement headers: "
            + ", ".join(repr(t.description[:30]) for t in suspicious[:5])
        )

    future = [t for t in transactions if t.date > today]
    if future:
        warnings.append(f"{len(future)} transactions are dated in the future; check the statement year")

    return warnings
