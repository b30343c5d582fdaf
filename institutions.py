"""
Per-institution scanning configuration.

The line scanner is shared by every statement layout; what differs between
institutions is captured here as data: how to recognise the institution,
which lines open and close statement sections, which keywords mark money
coming in, extra boilerplate to skip, and the shape of a transaction line.
"""
import re
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Pattern, Tuple

from schema import Direction

logger = logging.getLogger(__name__)

_FLAGS = re.IGNORECASE

# Leading characters OCR tends to emit before the date column
_OCR_GARBAGE = r"""^[,.\s•I'"#$%&*\-~|\[\]\\`]*"""
_FULL_DATE = r'\d{1,2}\s*/\s*\d{1,2}\s*/\s*\d{2,4}'
_AMOUNT = r'\(?-?\$?[\d,]+\.\d{2}\)?-?'
_TRAILING_AMOUNT = re.compile(r'\d\.\d{2}\)?-?\s*$')

GENERIC_RECEIPT_PATTERN = re.compile(
    r'DEPOSIT|(?<![A-Z])CREDIT(?!\s+CARD)|REFUND|INTEREST|DIVIDEND|WIRE.*\bIN\b|INCOMING\s+WIRE'
    r'|TRANSFER.*\bIN\b|PAYROLL|SALARY|PENSION|ANNUIT|SOCIAL\s+SECURITY|\bSSA\b'
    r'|REIMBURSEMENT|ACH.*CREDIT',
    _FLAGS,
)


class Section(str, Enum):
    NONE = "none"
    DEPOSITS = "deposits"
    WITHDRAWALS = "withdrawals"
    CHECKS = "checks"

    @property
    def direction(self) -> Optional[Direction]:
        if self is Section.DEPOSITS:
            return Direction.RECEIPT
        if self in (Section.WITHDRAWALS, Section.CHECKS):
            return Direction.DISBURSEMENT
        return None


@dataclass(frozen=True)
class InstitutionProfile:
    key: str
    name: str
    detect_patterns: Tuple[Pattern, ...]
    line_pattern: Pattern
    receipt_keywords: Tuple[Pattern, ...] = ()
    section_markers: Tuple[Tuple[Pattern, Section], ...] = ()
    skip_patterns: Tuple[Pattern, ...] = ()
    check_pattern: Optional[Pattern] = None

    def matches(self, text: str) -> bool:
        return any(p.search(text) for p in self.detect_patterns)

    def section_for(self, line: str) -> Optional[Section]:
        """Section opened (or closed) by a header line, if it is one."""
        if _TRAILING_AMOUNT.search(line):
            # Summary rows such as "Deposits and other additions 1,234.56"
            return None
        for pattern, section in self.section_markers:
            if pattern.search(line):
                return section
        return None

    def infer_direction(self, description: str, section: Section = Section.NONE) -> Direction:
        """
        Direction for a positive amount without an explicit column.

        Institution keywords win over the current section, which wins over
        the generic keyword list.
        """
        if any(p.search(description) for p in self.receipt_keywords):
            return Direction.RECEIPT
        if section.direction is not None:
            return section.direction
        if GENERIC_RECEIPT_PATTERN.search(description):
            return Direction.RECEIPT
        return Direction.DISBURSEMENT


def _patterns(*patterns: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, _FLAGS) for p in patterns)


CHECK_PAIR_PATTERN = re.compile(
    r'(?P<date>\d{1,2}/\d{1,2}/\d{2,4})\s+[+*#]*\s*(?P<check>\d+)\s*[*+]*\s+[^\d\-]*?\s*'
    r'(?P<amount>-?[\d,]+\.\d{2})'
)

BANK_OF_AMERICA = InstitutionProfile(
    key='bank_of_america',
    name='Bank of America',
    detect_patterns=_patterns(r'BANK OF AMERICA', r'bankofamerica\.com'),
    line_pattern=re.compile(
        _OCR_GARBAGE
        + rf'(?P<date>{_FULL_DATE})\s+(?P<description>.+?)\s+(?P<amount>-?\$?[\d,]+\.\d{{2}})\s*$'
    ),
    receipt_keywords=_patterns(
        r'SSA\s+TREAS', r'FLETCHER\s+JONES', r'Interest\s+Earned', r'WIRE.*\bIN\b', r'DEPOSIT', r'REFUND',
    ),
    section_markers=(
        (re.compile(r'^Deposits and other additions', _FLAGS), Section.DEPOSITS),
        (re.compile(r'^ATM and debit card subtractions', _FLAGS), Section.WITHDRAWALS),
        (re.compile(r'^Withdrawals and other subtractions', _FLAGS), Section.WITHDRAWALS),
        (re.compile(r'^Other subtractions', _FLAGS), Section.WITHDRAWALS),
        (re.compile(r'^Checks\s*$', _FLAGS), Section.CHECKS),
        (re.compile(r'^(Account summary|Service fees?|Interest summary|Daily (ledger )?balance)', _FLAGS),
         Section.NONE),
    ),
    skip_patterns=_patterns(r'^Bank of America\b', r'bankofamerica\.com', r'^Your (checking|savings) account'),
    check_pattern=CHECK_PAIR_PATTERN,
)

LOGIX = InstitutionProfile(
    key='logix',
    name='Logix Federal Credit Union',
    detect_patterns=_patterns(r'\bLogix\b'),
    # MM/DD, description, optional dividend rate, amount, optional running balance
    line_pattern=re.compile(
        _OCR_GARBAGE
        + r'(?P<date>\d{1,2}/\d{1,2}(?:/\d{2,4})?)\s+(?P<description>.+?)\s+'
        + r'(?:\d+\.\d+%\s+)?(?P<amount>-?\$?[\d,]+\.\d{2})(?:\s+-?\$?[\d,]+\.\d{2})?\s*$'
    ),
    receipt_keywords=_patterns(r'Deposit\s+Dividend', r'\bDividend\b', r'^Deposit\b'),
    skip_patterns=_patterns(
        r'\bLogix\b', r'JUMBO CERTIFICATE', r'PROMO CERTIFICATE', r'Matures on', r'Promotion ends',
        r'Federal Credit Union', r'^Dividends? (Earned|Rate)',
    ),
)

GENERIC = InstitutionProfile(
    key='generic',
    name='Generic',
    detect_patterns=(),
    line_pattern=re.compile(
        _OCR_GARBAGE
        + rf'(?P<date>{_FULL_DATE}|\d{{4}}-\d{{2}}-\d{{2}})\s+(?P<description>.+?)\s+'
        + rf'(?P<amount>{_AMOUNT})(?:\s+-?\$?[\d,]+\.\d{{2}})?\s*$'
    ),
    section_markers=(
        (re.compile(r'^(Deposits|Credits|Additions)\b', _FLAGS), Section.DEPOSITS),
        (re.compile(r'^(Withdrawals|Debits|Subtractions|Other subtractions|Electronic withdrawals|'
                    r'ATM and debit card)\b', _FLAGS), Section.WITHDRAWALS),
        (re.compile(r'^Checks( paid)?\s*$', _FLAGS), Section.CHECKS),
        (re.compile(r'^(Account summary|Daily (ending )?balance)', _FLAGS), Section.NONE),
    ),
    check_pattern=CHECK_PAIR_PATTERN,
)

PROFILES: Dict[str, InstitutionProfile] = {
    profile.key: profile for profile in (BANK_OF_AMERICA, LOGIX, GENERIC)
}


def get_profile(key: str) -> InstitutionProfile:
    try:
        return PROFILES[key]
    except KeyError:
        raise ValueError(f"Unknown institution '{key}'. Known: {', '.join(sorted(PROFILES))}")


def detect_institution(text: str) -> InstitutionProfile:
    """
    Pick the profile whose markers appear in the document text.

    Args:
        text: Full or partial document text

    Returns:
        Matching profile, or the generic profile
    """
    for profile in PROFILES.values():
        if profile.detect_patterns and profile.matches(text):
            logger.info(f"Detected institution: {profile.name}")
            return profile
    logger.info("No known institution detected, using generic layout")
    return GENERIC
