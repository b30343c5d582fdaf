from decimal import Decimal

import pytest

from config import Settings
from filters import SkipFilter
from institutions import BANK_OF_AMERICA


@pytest.fixture
def skip_filter():
    return SkipFilter()


@pytest.mark.parametrize("line", [
    "Beginning balance on April 1 $1,000.00",
    "Page 2 of 5",
    "Member FDIC",
    "Statement Period 04/01/24 - 04/30/24",
    "Total deposits and other additions $1,234.00",
    "-----",
    "",
])
def test_should_skip_boilerplate(skip_filter, line):
    assert skip_filter.should_skip(line)


def test_should_not_skip_transaction_line(skip_filter):
    assert not skip_filter.should_skip("04/02/24 SAFEWAY #123 45.67")


def test_should_skip_institution_patterns(skip_filter):
    line = "Bank of America advertisement"
    assert not skip_filter.should_skip(line)
    assert skip_filter.should_skip(line, BANK_OF_AMERICA.skip_patterns)


def test_excluded_accounts():
    skip_filter = SkipFilter(excluded_accounts=["12345678"])
    assert skip_filter.should_skip("04/02/24 Payment to 12345678 5.00")
    assert skip_filter.rejection_reason("Payment to acct 12345678", Decimal("5")) == "excluded account number"


@pytest.mark.parametrize("description, reason", [
    ("ab", "description too short"),
    ("1234 5678", "description has no text"),
    ("Balance", "description is a header keyword"),
    ("Check#", "description is a header keyword"),
    ("TRANSFER TO SHARE 01", "internal transfer between own accounts"),
])
def test_rejection_reasons(skip_filter, description, reason):
    assert skip_filter.rejection_reason(description, Decimal("10.00")) == reason


def test_amount_ceiling(skip_filter):
    assert "above ceiling" in skip_filter.rejection_reason("Wire to escrow", Decimal("75000"))
    assert "above ceiling" in skip_filter.rejection_reason("Wire to escrow", Decimal("-60000"))
    assert skip_filter.rejection_reason("Wire to escrow", Decimal("75000"), apply_ceiling=False) is None
    assert skip_filter.rejection_reason("SAFEWAY STORE", Decimal("-45.67")) is None


def test_is_header_row(skip_filter):
    assert skip_filter.is_header_row(["Date", "Description", "Amount", "Balance"])
    assert skip_filter.is_header_row(["Posting Date", "", "Withdrawals", "Deposits"])
    assert not skip_filter.is_header_row(["04/01", "Deposit", "75.99"])
    assert not skip_filter.is_header_row(["Date", ""])
    assert not skip_filter.is_header_row(["Notes", "Whatever"])


def test_from_settings():
    settings = Settings(amount_ceiling=Decimal("100"), excluded_accounts=frozenset({"999"}))
    skip_filter = SkipFilter.from_settings(settings)
    assert skip_filter.amount_ceiling == Decimal("100")
    assert skip_filter.excluded_accounts == ("999",)
    assert "above ceiling" in skip_filter.rejection_reason("Grocery run", Decimal("100.01"))
