"""Shared fixtures for the statement pipeline tests.

Every test runs with the ledger and layout-service environment variables
cleared, so settings always start from their defaults and nothing reaches
the network unless a test injects a fake.
"""

import os
from datetime import date
from decimal import Decimal

import pytest

from config import ENDPOINT_VAR, KEY_VAR, PREFIX
from schema import Direction, StatementPeriod, Transaction


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith(PREFIX) or name in (ENDPOINT_VAR, KEY_VAR):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def april_2024() -> StatementPeriod:
    return StatementPeriod(start=date(2024, 4, 1), end=date(2024, 4, 30))


@pytest.fixture
def make_transaction():
    """Factory for classified transactions with sensible defaults."""

    def _make(**overrides) -> Transaction:
        fields = {
            "date": date(2024, 4, 1),
            "description": "SAFEWAY STORE 123",
            "amount": Decimal("45.10"),
            "direction": Direction.DISBURSEMENT,
            "category": "C7_LIVING_EXPENSES",
            "sub_category": "DINING_FOOD",
            "confidence": 75,
            "source_tag": "test",
        }
        fields.update(overrides)
        return Transaction(**fields)

    return _make


@pytest.fixture
def sample_csv() -> bytes:
    return (
        b"Date,Description,Amount,Balance\n"
        b'04/01/2024,SSA TREAS 310 XXSOC SEC,"1,234.00","2,234.00"\n'
        b'04/02/2024,CVS PHARMACY #1234,-45.67,"2,188.33"\n'
        b'04/02/2024,CVS PHARMACY #1234,-45.67,"2,188.33"\n'
        b'04/05/2024,STARBUCKS #55,-5.25,"2,183.08"\n'
    )
