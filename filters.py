import re
import logging
from decimal import Decimal
from typing import Iterable, Optional, Pattern, Sequence

from preprocess import is_amount_token, is_date_token

logger = logging.getLogger(__name__)

DEFAULT_SKIP_PATTERNS = (
    # Column headers
    r'^Date\s+(Description|Check|Transaction)',
    r'^Description\s+Amount',
    r'^Check\s*#?\s+(Date|Amount)',

    # Totals and balance summaries
    r'^(Sub)?total\b',
    r'^(Beginning|Ending|Opening|Closing|Previous|New) balance',
    r'^Daily (ledger )?balance',
    r'^Average (daily )?balance',
    r'^Balance (forward|brought forward)',
    r'^Account summary',
    r'^Service fees?\b',
    r'^Interest summary',
    r'^Annual Percentage',
    r'^Dividends Earned',

    # Page markers
    r'^Page \d+',
    r'^\d+\s+of\s+\d+$',
    r'continued on',
    r'^Statement Period',

    # Institution boilerplate
    r'P\.\s?O\.\s?Box',
    r'^Customer service',
    r'www\.[a-z0-9\-]+\.(com|org)',
    r'Member FDIC',
    r'\bNCUA\b',
    r'Equal Housing',

    # Marketing and legal text
    r'approximately 30 days',
    r'enrolling in',
    r'terms and conditions',
    r'For more information',

    # Rules and separators
    r'^[\*\-=_\s]+$',
)

INTERNAL_TRANSFER_PATTERNS = (
    r'TRANSFER\s+(TO|FROM)\s+SHARE',
    r'LOGIX.*TRANSFER',
    r'INTERNAL\s+TRANSFER',
    r'ACCOUNT\s+TRANSFER',
    r'TRANSFER\s+BETWEEN',
)

HEADER_KEYWORDS = {
    '#', 'amount', 'balance', 'check', 'check#', 'checks', 'continued', 'credit', 'credits',
    'date', 'debit', 'debits', 'deposits', 'description', 'memo', 'withdrawals',
}

COLUMN_HEADER_WORDS = HEADER_KEYWORDS | {
    'posted', 'posting date', 'transaction date', 'details', 'payee', 'reference',
    'running balance', 'check number', 'deposits/credits', 'withdrawals/debits',
}

_NO_LETTERS = re.compile(r'^[^A-Za-z]+$')


def _compile(patterns: Iterable[str]) -> tuple:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


class SkipFilter:
    """Rejects non-transaction lines and implausible transactions."""

    def __init__(self,
                 skip_patterns: Sequence[str] = DEFAULT_SKIP_PATTERNS,
                 min_description_length: int = 3,
                 amount_ceiling: Optional[Decimal] = Decimal('50000'),
                 excluded_accounts: Iterable[str] = (),
                 internal_transfer_patterns: Sequence[str] = INTERNAL_TRANSFER_PATTERNS):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.skip_patterns = _compile(skip_patterns)
        self.internal_transfer_patterns = _compile(internal_transfer_patterns)
        self.min_description_length = min_description_length
        self.amount_ceiling = amount_ceiling
        self.excluded_accounts = tuple(a for a in excluded_accounts if a)

    @classmethod
    def from_settings(cls, settings) -> "SkipFilter":
        return cls(
            amount_ceiling=settings.amount_ceiling,
            excluded_accounts=settings.excluded_accounts,
        )

    def should_skip(self, line: str, extra_patterns: Sequence[Pattern] = ()) -> bool:
        """
        Check a raw text line against the non-transaction patterns.

        Args:
            line: Stripped text line
            extra_patterns: Institution-specific compiled patterns

        Returns:
            True if the line is a header, footer, summary or boilerplate
        """
        if not line or not line.strip():
            return True
        if any(p.search(line) for p in self.skip_patterns):
            return True
        if any(p.search(line) for p in extra_patterns):
            return True
        return self._mentions_excluded_account(line)

    def rejection_reason(self, description: str, amount: Optional[Decimal] = None,
                         apply_ceiling: bool = True) -> Optional[str]:
        """
        Validate a matched transaction.

        Args:
            description: Cleaned description
            amount: Parsed amount, if known
            apply_ceiling: Whether the amount sanity ceiling applies to this source

        Returns:
            Short reason string if the transaction should be dropped, else None
        """
        text = (description or '').strip()

        if len(text) < self.min_description_length:
            return "description too short"
        if _NO_LETTERS.match(text):
            return "description has no text"
        if text.lower().rstrip(':') in HEADER_KEYWORDS:
            return "description is a header keyword"
        if any(p.search(text) for p in self.internal_transfer_patterns):
            return "internal transfer between own accounts"
        if self._mentions_excluded_account(text):
            return "excluded account number"
        if (apply_ceiling and amount is not None and self.amount_ceiling is not None
                and abs(amount) > self.amount_ceiling):
            return f"amount {amount} above ceiling {self.amount_ceiling}"
        return None

    def is_header_row(self, cells: Sequence[str]) -> bool:
        """True for a table row made of column titles rather than values."""
        values = [str(c).strip().lower() for c in cells if c is not None and str(c).strip()]
        if not values:
            return False
        if any(is_date_token(v) or is_amount_token(v) for v in values):
            return False
        hits = sum(1 for v in values if v.rstrip(':') in COLUMN_HEADER_WORDS)
        return hits >= 2

    def _mentions_excluded_account(self, text: str) -> bool:
        return any(account in text for account in self.excluded_accounts)
