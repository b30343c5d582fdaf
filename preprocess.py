import re
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence, Union

import pandas as pd
from dateutil import parser as date_parser

from errors import AmountParseError, DateParseError
from schema import StatementPeriod

logger = logging.getLogger(__name__)

DEFAULT_DATE_FORMATS = (
    '%m/%d/%Y',             # MM/DD/YYYY, M/D/YYYY
    '%m-%d-%Y',             # MM-DD-YYYY
    '%Y-%m-%d',             # YYYY-MM-DD
    '%Y-%m-%d %H:%M:%S',    # spreadsheet timestamps
    '%Y/%m/%d',             # YYYY/MM/DD
    '%m/%d/%y',             # MM/DD/YY
    '%m-%d-%y',             # MM-DD-YY
    '%m.%d.%Y',             # MM.DD.YYYY
    '%b %d, %Y',            # Jan 5, 2024
    '%B %d, %Y',            # January 5, 2024
    '%d-%b-%Y',             # 05-Jan-2024
)

# Amount tokens always carry cents, which keeps check numbers and reference
# ids out of amount columns.
AMOUNT_TOKEN = r'\$?\(?[-+]?\$?\s?(?:\d{1,3}(?:,\d{3})+|\d+)\.\d{2}\)?-?'
FULL_DATE_TOKEN = r'\d{1,2}\s*[/\-]\s*\d{1,2}\s*[/\-]\s*\d{2,4}|\d{4}-\d{2}-\d{2}'
PARTIAL_DATE_TOKEN = r'\d{1,2}/\d{1,2}'

_AMOUNT_CELL = re.compile(rf'^{AMOUNT_TOKEN}$')
_FULL_DATE_CELL = re.compile(rf'^(?:{FULL_DATE_TOKEN})$')
_PARTIAL_DATE_CELL = re.compile(r'^(\d{1,2})\s*/\s*(\d{1,2})$')
_AMOUNT_BODY = re.compile(r'^(?:\d+(?:\.\d+)?|\.\d+)$')
_SEPARATOR_SPACING = re.compile(r'\s*([/\-])\s*')
_ZERO_CENTURY = re.compile(r'^(\d{1,2}[/\-.]\d{1,2}[/\-.])00(\d{2})$')
_MISSING_LEADING_ONE = re.compile(r'^0([/\-.]\d{1,2}[/\-.]\d{2,4})$')

_PERIOD_RANGE = re.compile(
    rf'statement\s+period[:\s]*({FULL_DATE_TOKEN})\s*(?:-|to|thru|through)\s*({FULL_DATE_TOKEN})',
    re.IGNORECASE,
)
_PERIOD_THRU = re.compile(rf'\b(?:thru|through)\s+({FULL_DATE_TOKEN})', re.IGNORECASE)
_PERIOD_VERBOSE = re.compile(
    r'\bfor\s+([A-Z][a-z]+\.?\s+\d{1,2},?\s+\d{4})\s+(?:to|through|-)\s+([A-Z][a-z]+\.?\s+\d{1,2},?\s+\d{4})',
    re.IGNORECASE,
)


def parse_amount(token: Union[str, int, float, Decimal]) -> Decimal:
    """
    Parse a monetary amount token.

    Currency symbols, thousands separators and whitespace are stripped.
    Parentheses, a leading minus or a trailing minus mark a negative value.

    Args:
        token: Raw amount as printed, or an already numeric value

    Returns:
        Signed Decimal amount

    Raises:
        AmountParseError: if what remains is not a number
    """
    if isinstance(token, bool) or token is None:
        raise AmountParseError(token)
    if isinstance(token, Decimal):
        if not token.is_finite():
            raise AmountParseError(token)
        return token
    if isinstance(token, (int, float)):
        if isinstance(token, float) and token != token:
            raise AmountParseError(token)
        return Decimal(str(token))

    text = re.sub(r"[$,\s]", "", str(token))
    negative = False

    if text.startswith('(') and text.endswith(')'):
        negative = True
        text = text[1:-1]
    if text.endswith('-'):
        negative = True
        text = text[:-1]

    if text.startswith('-'):
        negative = True
        text = text[1:]
    elif text.startswith('+'):
        text = text[1:]

    if not _AMOUNT_BODY.match(text):
        raise AmountParseError(token)

    try:
        value = Decimal(text)
    except InvalidOperation:
        raise AmountParseError(token)
    return -value if negative else value


def _date_candidates(text: str) -> List[str]:
    """Apply the OCR repairs and return the spellings worth trying, in order."""
    text = _SEPARATOR_SPACING.sub(r'\1', text.strip())

    # OCR drops the "20" of the century: 03/15/0023 -> 03/15/2023
    text = _ZERO_CENTURY.sub(r'\g<1>20\g<2>', text)

    # OCR drops the leading "1" of months 10-12: 0/15/23 -> 10/15/23, else 01/15/23
    match = _MISSING_LEADING_ONE.match(text)
    if match:
        return ['1' + text, '01' + match.group(1)]
    return [text]


def parse_date(token: Union[str, date, datetime], formats: Sequence[str] = DEFAULT_DATE_FORMATS) -> date:
    """
    Parse a full date token, repairing common OCR corruption first.

    Args:
        token: Raw date as printed (or a date/datetime object)
        formats: strptime formats to try, in order

    Returns:
        Parsed calendar date

    Raises:
        DateParseError: if no format yields a valid date
    """
    if isinstance(token, datetime):
        return token.date()
    if isinstance(token, date):
        return token
    if token is None:
        raise DateParseError(token)

    for candidate in _date_candidates(str(token)):
        for fmt in formats:
            try:
                return datetime.strptime(candidate, fmt).date()
            except ValueError:
                continue

    raise DateParseError(token)


def infer_year(month: int, day: int, period: Optional[StatementPeriod] = None,
               today: Optional[date] = None) -> int:
    """
    Pick the year for a date printed without one.

    With a statement period the latest year that puts the date on or before
    the period end is used. Without one the current year is used unless the
    month is more than one month ahead of today, in which case the date
    belongs to the previous year.

    Args:
        month: Month number as printed
        day: Day of month as printed
        period: Statement period anchor found in the document header
        today: Reference date for the fallback heuristic

    Returns:
        Four-digit year
    """
    if period is not None:
        anchor = period.end
        for year in (anchor.year, anchor.year - 1):
            try:
                candidate = date(year, month, day)
            except ValueError:
                continue
            if candidate <= anchor:
                return year
        raise DateParseError(f"{month:02d}/{day:02d}")

    today = today or date.today()
    base_year = today.year if month <= today.month + 1 else today.year - 1
    for year in (base_year, base_year - 1):
        try:
            date(year, month, day)
            return year
        except ValueError:
            continue
    raise DateParseError(f"{month:02d}/{day:02d}")


def parse_partial_date(token: str, period: Optional[StatementPeriod] = None,
                       today: Optional[date] = None) -> date:
    """Parse an MM/DD token, inferring its year."""
    match = _PARTIAL_DATE_CELL.match(str(token).strip())
    if not match:
        raise DateParseError(token)
    month, day = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise DateParseError(token)
    year = infer_year(month, day, period=period, today=today)
    return date(year, month, day)


def parse_any_date(token: str, period: Optional[StatementPeriod] = None,
                   today: Optional[date] = None) -> date:
    """Parse a full date, or a partial one when no year is printed."""
    text = str(token).strip()
    if _PARTIAL_DATE_CELL.match(text):
        return parse_partial_date(text, period=period, today=today)
    return parse_date(text)


def is_amount_token(value: str) -> bool:
    return bool(_AMOUNT_CELL.match(str(value).strip()))


def is_date_token(value: str) -> bool:
    text = str(value).strip()
    return bool(_FULL_DATE_CELL.match(text) or _PARTIAL_DATE_CELL.match(text))


def find_statement_period(text: Union[str, Iterable[str]]) -> Optional[StatementPeriod]:
    """
    Locate the statement coverage window in header text.

    Args:
        text: Document text, or an iterable of lines/paragraphs

    Returns:
        StatementPeriod, or None when no header is recognised
    """
    if not isinstance(text, str):
        text = '\n'.join(text)

    match = _PERIOD_RANGE.search(text)
    if match:
        try:
            return StatementPeriod(start=parse_date(match.group(1)), end=parse_date(match.group(2)))
        except DateParseError as e:
            logger.debug(f"Unreadable statement period '{match.group(0)}': {e}")

    match = _PERIOD_VERBOSE.search(text)
    if match:
        try:
            start = date_parser.parse(match.group(1)).date()
            end = date_parser.parse(match.group(2)).date()
            return StatementPeriod(start=start, end=end)
        except (ValueError, OverflowError) as e:
            logger.debug(f"Unreadable statement period '{match.group(0)}': {e}")

    match = _PERIOD_THRU.search(text)
    if match:
        try:
            return StatementPeriod(end=parse_date(match.group(1)))
        except DateParseError as e:
            logger.debug(f"Unreadable statement end '{match.group(0)}': {e}")

    return None


class DataPreprocessor:
    """Normalizes raw loader output into lines and string cell grids."""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def preprocess_text_data(self, text_data: Union[str, List[str]]) -> List[str]:
        """
        Split text blocks into stripped, non-empty lines in reading order.

        Header and section lines are kept; the extractor needs them to track
        which part of the statement it is in.

        Args:
            text_data: Raw text or list of page texts

        Returns:
            List of cleaned text lines
        """
        if isinstance(text_data, str):
            text_data = [text_data]

        lines = []
        for block in text_data:
            for line in block.splitlines():
                line = ' '.join(line.split())
                if line:
                    lines.append(line)

        self.logger.info(f"Preprocessed text data: {len(lines)} lines")
        return lines

    def preprocess_structured_data(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Drop empty rows/columns and turn every cell into a stripped string.

        Args:
            df: Raw DataFrame as loaded (no header row assumed)

        Returns:
            Cleaned DataFrame of strings
        """
        self.logger.info(f"Preprocessing structured data with {len(df)} rows")

        df = df.dropna(how='all').dropna(axis=1, how='all')
        df = df.fillna('').astype(str)
        for col in df.columns:
            df[col] = df[col].str.strip()
        df = df[(df != '').any(axis=1)].reset_index(drop=True)
        df.columns = range(len(df.columns))

        self.logger.info(f"After preprocessing: {len(df)} rows remain")
        return df
