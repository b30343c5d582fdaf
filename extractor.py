import re
import logging
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd
from rapidfuzz import fuzz, process

from filters import SkipFilter
from institutions import GENERIC, PROFILES, InstitutionProfile, Section, detect_institution, get_profile
from preprocess import (
    AMOUNT_TOKEN,
    DataPreprocessor,
    find_statement_period,
    is_amount_token,
    is_date_token,
    parse_amount,
    parse_any_date,
)
from schema import CandidateTransaction, Direction, StatementPeriod

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 200
HEADER_SCAN_ROWS = 10

CHECK_NUMBER_PATTERN = re.compile(r'(?:CHECK|CHK|CK)\s*#?\s*(\d+)', re.IGNORECASE)
PERCENT_AMOUNT_PATTERN = re.compile(rf'^\d+(?:\.\d+)?%\s+({AMOUNT_TOKEN})$')
_EDGE_GARBAGE = re.compile(r'^[\s,.•*#|~_\-]+|[\s,•*|~_\-]+$')


def clean_description(description: str) -> str:
    """Collapse whitespace, trim OCR debris at the edges and cap the length."""
    text = ' '.join(str(description or '').split())
    text = _EDGE_GARBAGE.sub('', text)
    return text[:MAX_DESCRIPTION_LENGTH]


@dataclass(frozen=True)
class ScanState:
    """Where the line scanner is within a statement."""

    profile: InstitutionProfile
    section: Section = Section.NONE
    period: Optional[StatementPeriod] = None

    def advance(self, line: str, detect: bool = False) -> "ScanState":
        """
        Return the state after reading a non-transaction line.

        Args:
            line: Header, footer or other non-transaction text
            detect: Whether a different institution's banner may switch profiles

        Returns:
            The next state (self when nothing changes)
        """
        period = find_statement_period(line)
        if period is not None and period != self.period:
            return replace(self, period=period)

        if detect:
            for profile in PROFILES.values():
                if profile is not self.profile and profile.detect_patterns and profile.matches(line):
                    logger.debug(f"Switching institution to {profile.name} at '{line}'")
                    return replace(self, profile=profile, section=Section.NONE)

        section = self.profile.section_for(line)
        if section is not None and section is not self.section:
            logger.debug(f"Section {self.section.value} -> {section.value} at '{line}'")
            return replace(self, section=section)
        return self


class TransactionExtractor:
    """Extracts candidate transactions from statement lines, tables and spreadsheets."""

    def __init__(self, profile: Optional[InstitutionProfile] = None,
                 skip_filter: Optional[SkipFilter] = None,
                 today: Optional[date] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.profile = profile
        self.skip_filter = skip_filter or SkipFilter()
        self.preprocessor = DataPreprocessor()
        self.today = today

        # Checked in this order so "Debit Amount" maps to debit and
        # "Running Balance" never maps to amount
        self.column_mappings = {
            'balance': ['balance'],
            'debit': ['debit', 'withdrawal', 'outgoing', 'paid out', 'money out', 'payment'],
            'credit': ['credit', 'deposit', 'incoming', 'paid in', 'money in', 'receipt'],
            'date': ['date', 'posted', 'posting'],
            'description': ['description', 'desc', 'memo', 'details', 'detail', 'payee', 'narrative'],
            'reference': ['reference', 'ref', 'check', 'cheque', 'chk', 'transaction id'],
            'amount': ['amount', 'amt', 'value'],
        }

    @classmethod
    def for_institution(cls, key: Optional[str], **kwargs) -> "TransactionExtractor":
        """
        Build an extractor for a known institution layout.

        Args:
            key: Institution key (see institutions.PROFILES), or None to detect per document
            **kwargs: Passed through to the constructor

        Returns:
            Configured extractor
        """
        profile = get_profile(key) if key else None
        return cls(profile=profile, **kwargs)

    def extract_from_text_data(self, text_data: Union[str, List[str]], source_tag: str = 'text',
                               period: Optional[StatementPeriod] = None) -> List[CandidateTransaction]:
        """
        Extract transactions from page text.

        Args:
            text_data: Raw text or list of page texts
            source_tag: Tag recorded on every candidate
            period: Statement period anchor, if already known

        Returns:
            List of candidate transactions in reading order
        """
        lines = self.preprocessor.preprocess_text_data(text_data)
        return self.extract_from_lines(lines, source_tag=source_tag, period=period)

    def extract_from_lines(self, lines: Sequence[str], source_tag: str = 'text',
                           period: Optional[StatementPeriod] = None) -> List[CandidateTransaction]:
        self.logger.info(f"Extracting transactions from text data ({len(lines)} lines)")

        profile = self.profile or detect_institution('\n'.join(lines))
        state = ScanState(profile=profile, period=period or find_statement_period(lines))
        detect = self.profile is None

        candidates = []
        for line_num, line in enumerate(lines):
            if self.skip_filter.should_skip(line, state.profile.skip_patterns):
                state = state.advance(line, detect=detect)
                continue

            found = self._match_line(line, state, source_tag)
            if found is None:
                state = state.advance(line, detect=detect)
                continue
            candidates.extend(found)

        self.logger.info(f"Extracted {len(candidates)} transactions from text data")
        return candidates

    def extract_from_table(self, rows: Sequence[Sequence[Any]], source_tag: str = 'table',
                           period: Optional[StatementPeriod] = None,
                           apply_ceiling: bool = True) -> List[CandidateTransaction]:
        """
        Extract transactions from a grid of cells, one row at a time.

        Each row needs a date cell (full or MM/DD), an amount-shaped cell and
        some descriptive text. The first amount cell is taken, so a trailing
        running balance is ignored. A header row naming debit/credit columns
        makes amounts in those columns carry their direction.

        Args:
            rows: Table rows, each a sequence of cell values
            source_tag: Tag recorded on every candidate
            period: Statement period anchor for partial dates
            apply_ceiling: Whether the amount sanity ceiling applies

        Returns:
            List of candidate transactions
        """
        state = ScanState(profile=self.profile or GENERIC, period=period)
        column_directions: Dict[int, Direction] = {}

        candidates = []
        for row_idx, row in enumerate(rows):
            cells = ['' if c is None else str(c).strip() for c in row]
            if not any(cells):
                continue
            if self.skip_filter.is_header_row(cells):
                column_directions = self._header_directions(cells)
                continue

            candidate = self._candidate_from_cells(cells, state, source_tag, column_directions, apply_ceiling)
            if candidate is None:
                self.logger.debug(f"Dropped table row {row_idx}: {cells}")
                continue
            candidates.append(candidate)

        self.logger.info(f"Extracted {len(candidates)} transactions from {len(rows)} table rows")
        return candidates

    def extract_from_structured_data(self, df: pd.DataFrame,
                                     source_tag: str = 'spreadsheet') -> List[CandidateTransaction]:
        """
        Extract transactions from a CSV/Excel frame loaded without a header.

        Args:
            df: Raw DataFrame, header row still among the data rows
            source_tag: Tag recorded on every candidate

        Returns:
            List of candidate transactions
        """
        df = self.preprocessor.preprocess_structured_data(df)
        self.logger.info(f"Extracting transactions from structured data ({len(df)} rows)")

        header_idx, column_map = self._find_header(df)
        if header_idx is None:
            self.logger.info("No header row found, scanning rows as table cells")
            return self.extract_from_table(df.values.tolist(), source_tag=source_tag, apply_ceiling=False)

        self.logger.info(f"Header at row {header_idx}, column mapping: {column_map}")
        state = ScanState(profile=self.profile or GENERIC)
        body = df.iloc[header_idx + 1:]
        signed = self._amount_column_is_signed(body, column_map)

        candidates = []
        for idx, row in body.iterrows():
            candidate = self._candidate_from_mapped_row(row.tolist(), column_map, signed, state, source_tag)
            if candidate is None:
                self.logger.debug(f"Dropped row {idx}: {row.tolist()}")
                continue
            candidates.append(candidate)

        self.logger.info(f"Extracted {len(candidates)} transactions from structured data")
        return candidates

    def build_candidate(self, date_token: str, description: str, amount_token: Any, raw_source: str,
                        state: ScanState, source_tag: str, direction: Optional[Direction] = None,
                        apply_ceiling: bool = True,
                        check_number: Optional[str] = None) -> Optional[CandidateTransaction]:
        """
        Normalize and validate one matched record.

        Returns:
            A complete candidate, or None when normalization or validation fails
        """
        try:
            txn_date = parse_any_date(date_token, period=state.period, today=self.today)
        except ValueError as e:
            self.logger.debug(f"{e} in '{raw_source}'")
            return None
        try:
            amount = parse_amount(amount_token)
        except ValueError as e:
            self.logger.debug(f"{e} in '{raw_source}'")
            return None
        if amount == 0:
            return None

        description = clean_description(description)
        reason = self.skip_filter.rejection_reason(description, amount, apply_ceiling=apply_ceiling)
        if reason:
            self.logger.debug(f"Rejected '{raw_source}': {reason}")
            return None

        if check_number is None:
            match = CHECK_NUMBER_PATTERN.search(description)
            check_number = match.group(1) if match else None
        if direction is None:
            direction = self.resolve_direction(amount, description, state)

        return CandidateTransaction(
            date=txn_date,
            description=description,
            amount=amount,
            raw_source=raw_source,
            direction=direction,
            check_number=check_number,
            source_tag=source_tag,
        )

    def resolve_direction(self, amount: Decimal, description: str, state: ScanState) -> Direction:
        """Negative amounts are money out; otherwise keywords and section decide."""
        if amount < 0:
            return Direction.DISBURSEMENT
        return state.profile.infer_direction(description, state.section)

    def _match_line(self, line: str, state: ScanState,
                    source_tag: str) -> Optional[List[CandidateTransaction]]:
        """Candidates on a transaction line, or None if the line is not one."""
        if state.section is Section.CHECKS and state.profile.check_pattern is not None:
            matches = list(state.profile.check_pattern.finditer(line))
            if matches:
                found = []
                for m in matches:
                    candidate = self.build_candidate(
                        m.group('date'), f"Check #{m.group('check')}", m.group('amount'), line,
                        state, source_tag, direction=Direction.DISBURSEMENT,
                        check_number=m.group('check'),
                    )
                    if candidate is not None:
                        found.append(candidate)
                return found

        match = state.profile.line_pattern.match(line)
        if not match:
            return None

        candidate = self.build_candidate(
            match.group('date'), match.group('description'), match.group('amount'), line, state, source_tag,
        )
        return [candidate] if candidate is not None else []

    def _candidate_from_cells(self, cells: List[str], state: ScanState, source_tag: str,
                              column_directions: Dict[int, Direction],
                              apply_ceiling: bool) -> Optional[CandidateTransaction]:
        date_token = None
        amount_token = None
        amount_col = None
        description_parts = []

        for col, cell in enumerate(cells):
            if not cell:
                continue
            if date_token is None and is_date_token(cell):
                date_token = cell
                continue
            if is_amount_token(cell):
                if amount_token is None:
                    amount_token, amount_col = cell, col
                continue
            percent = PERCENT_AMOUNT_PATTERN.match(cell)
            if percent:
                if amount_token is None:
                    amount_token, amount_col = percent.group(1), col
                continue
            if len(cell) > 3 and re.search(r'[A-Za-z]', cell):
                description_parts.append(cell)

        if date_token is None or amount_token is None or not description_parts:
            return None
        description = ' '.join(description_parts)
        if self.skip_filter.should_skip(description, state.profile.skip_patterns):
            return None

        return self.build_candidate(
            date_token, description, amount_token, ' | '.join(cells), state, source_tag,
            direction=column_directions.get(amount_col), apply_ceiling=apply_ceiling,
        )

    def _header_directions(self, cells: List[str]) -> Dict[int, Direction]:
        directions = {}
        for col, cell in enumerate(cells):
            low = cell.lower()
            is_debit = any(w in low for w in ('debit', 'withdrawal', 'subtraction', 'payment'))
            is_credit = any(w in low for w in ('credit', 'deposit', 'addition'))
            if is_debit and not is_credit:
                directions[col] = Direction.DISBURSEMENT
            elif is_credit and not is_debit:
                directions[col] = Direction.RECEIPT
        return directions

    def _map_columns(self, columns: List[str]) -> Dict[str, int]:
        """Map column titles to standard field names, by keyword then fuzzy match."""
        column_map: Dict[str, int] = {}
        columns_lower = [str(col).lower().strip() for col in columns]

        for col_idx, col_name in enumerate(columns_lower):
            if not col_name:
                continue
            for standard_field, possible_names in self.column_mappings.items():
                if standard_field in column_map:
                    continue
                if any(possible_name in col_name for possible_name in possible_names):
                    column_map[standard_field] = col_idx
                    break

        assigned = set(column_map.values())
        choices = {name: field for field, names in self.column_mappings.items() for name in names}
        for col_idx, col_name in enumerate(columns_lower):
            if col_idx in assigned or len(col_name) < 4:
                continue
            best = process.extractOne(col_name, list(choices), scorer=fuzz.ratio, score_cutoff=80)
            if best is None:
                continue
            standard_field = choices[best[0]]
            if standard_field not in column_map:
                self.logger.debug(f"Fuzzy matched column '{col_name}' to {standard_field} ({best[1]:.0f})")
                column_map[standard_field] = col_idx
                assigned.add(col_idx)

        return column_map

    def _find_header(self, df: pd.DataFrame) -> Tuple[Optional[int], Dict[str, int]]:
        for idx in range(min(HEADER_SCAN_ROWS, len(df))):
            row = df.iloc[idx].tolist()
            if any(is_date_token(v) or is_amount_token(v) for v in row):
                continue
            column_map = self._map_columns(row)
            has_amount = any(f in column_map for f in ('amount', 'debit', 'credit'))
            if 'date' in column_map and has_amount:
                return idx, column_map
        return None, {}

    def _amount_column_is_signed(self, body: pd.DataFrame, column_map: Dict[str, int]) -> bool:
        """True when the single amount column carries negative values."""
        if 'amount' not in column_map:
            return False
        for value in body[column_map['amount']]:
            try:
                if parse_amount(value) < 0:
                    return True
            except ValueError:
                continue
        return False

    def _candidate_from_mapped_row(self, row: List[str], column_map: Dict[str, int], signed: bool,
                                   state: ScanState, source_tag: str) -> Optional[CandidateTransaction]:
        def cell(field):
            idx = column_map.get(field)
            return row[idx] if idx is not None and idx < len(row) else ''

        date_value = cell('date')
        if not date_value:
            return None

        description = cell('description')
        if not description:
            mapped = set(column_map.values())
            description = ' '.join(
                v for i, v in enumerate(row) if i not in mapped and re.search(r'[A-Za-z]', v)
            )

        amount_token = None
        direction = None
        for field, field_direction in (('debit', Direction.DISBURSEMENT), ('credit', Direction.RECEIPT)):
            value = cell(field)
            if not value:
                continue
            try:
                parsed = parse_amount(value)
            except ValueError:
                continue
            if parsed != 0:
                amount_token, direction = abs(parsed), field_direction
                break

        if amount_token is None:
            amount_token = cell('amount')
            if not amount_token:
                return None
            if signed:
                try:
                    parsed = parse_amount(amount_token)
                except ValueError as e:
                    self.logger.debug(f"{e} in row {row}")
                    return None
                direction = Direction.DISBURSEMENT if parsed < 0 else Direction.RECEIPT

        reference = cell('reference')
        check_number = reference if reference.isdigit() else None

        return self.build_candidate(
            date_value, description, amount_token, ' | '.join(row), state, source_tag,
            direction=direction, apply_ceiling=False, check_number=check_number,
        )
