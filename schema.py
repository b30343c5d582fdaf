import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Direction(str, Enum):
    RECEIPT = "RECEIPT"
    DISBURSEMENT = "DISBURSEMENT"


class FileKind(str, Enum):
    DELIMITED = "delimited"
    SPREADSHEET = "spreadsheet"
    PDF = "pdf"


class RawDocument(BaseModel):
    """Uploaded document bytes plus the kind declared by its extension."""
    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., description="Raw file contents")
    filename: str = Field(..., description="Original file name, used as the source tag")
    kind: FileKind = Field(..., description="Ingestion path selected from the extension")


class StatementPeriod(BaseModel):
    """Coverage window printed in a statement header."""
    model_config = ConfigDict(frozen=True)

    start: Optional[datetime.date] = Field(None, description="First day covered, when printed")
    end: datetime.date = Field(..., description="Last day covered")


class CandidateTransaction(BaseModel):
    """Provisional record produced by an extractor before classification."""

    date: Optional[datetime.date] = Field(None, description="Transaction date, if one was found")
    description: str = Field("", description="Free-text description")
    amount: Optional[Decimal] = Field(None, description="Signed amount as printed")
    raw_source: str = Field("", description="Line or row the record came from")
    direction: Optional[Direction] = Field(None, description="Direction stated by the source")
    check_number: Optional[str] = Field(None, description="Check number, if any")
    source_tag: str = Field("", description="Document and strategy the record came from")

    @field_validator('description', mode='before')
    @classmethod
    def collapse_whitespace(cls, v):
        if v is None:
            return ""
        return " ".join(str(v).split())

    @property
    def is_complete(self) -> bool:
        """True when date, description and a non-zero amount are all present."""
        return (
            self.date is not None
            and self.amount is not None
            and self.amount != 0
            and bool(self.description)
        )


class Transaction(BaseModel):
    """Classified ledger transaction."""
    model_config = ConfigDict(frozen=True)

    date: datetime.date = Field(..., description="Transaction date")
    description: str = Field(..., min_length=1, description="Transaction description")
    amount: Decimal = Field(..., gt=0, description="Absolute transaction amount")
    direction: Direction = Field(..., description="Money in or money out")
    category: str = Field(..., description="Statutory schedule category code")
    sub_category: Optional[str] = Field(None, description="Optional subcategory within the schedule")
    confidence: int = Field(..., ge=0, le=100, description="Classifier certainty, 0-100")
    check_number: Optional[str] = Field(None, description="Check number, if any")
    source_tag: str = Field("", description="Document and strategy the record came from")


class ClassificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    sub_category: Optional[str] = None
    confidence: int = Field(..., ge=0, le=100)
    matched_keywords: List[str] = Field(default_factory=list)


class ParseResult(BaseModel):
    """Outcome of parsing one document (or a whole batch once merged)."""

    transactions: List[Transaction] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def merge(self, other: "ParseResult") -> "ParseResult":
        return ParseResult(
            transactions=self.transactions + other.transactions,
            errors=self.errors + other.errors,
            warnings=self.warnings + other.warnings,
        )


class ReconciliationReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_balanced: bool
    charges: Decimal
    credits: Decimal
    difference: Decimal


class BankAccount(BaseModel):
    name: str = Field(..., description="Institution or account nickname")
    account_number: Optional[str] = Field(None, description="Masked or full account number")
    opening_balance: Decimal = Field(Decimal("0"), description="Balance at the start of the period")
    closing_balance: Decimal = Field(Decimal("0"), description="Balance at the end of the period")


class RealProperty(BaseModel):
    description: str
    appraised_value: Decimal = Decimal("0")


class OtherAsset(BaseModel):
    description: str
    value: Decimal = Decimal("0")


class Assets(BaseModel):
    """Property on hand reported alongside the transaction ledger."""

    bank_accounts: List[BankAccount] = Field(default_factory=list)
    real_property: List[RealProperty] = Field(default_factory=list)
    other_non_cash_assets: List[OtherAsset] = Field(default_factory=list)


class AccountingSummary(BaseModel):
    beginning_cash_assets: Decimal = Decimal("0")
    beginning_non_cash_assets: Decimal = Decimal("0")
    total_receipts: Decimal = Decimal("0")
    total_disbursements: Decimal = Decimal("0")
    ending_cash_assets: Decimal = Decimal("0")
    ending_non_cash_assets: Decimal = Decimal("0")
    gains_on_sales: Decimal = Decimal("0")
    losses_on_sales: Decimal = Decimal("0")
    net_income_from_business: Decimal = Decimal("0")
    net_loss_from_business: Decimal = Decimal("0")
    distributions_to_conservatee: Decimal = Decimal("0")
    other_charges: Decimal = Decimal("0")
    other_credits: Decimal = Decimal("0")
