"""
Extraction through an external document layout analysis service.

The service returns detected tables and paragraphs for the whole document.
Tables are scanned first; paragraphs catch rows the service failed to
detect as a table. Results from both are merged so a row found twice is
kept once.
"""
import re
import time
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import requests

from errors import LayoutServiceError
from extractor import PERCENT_AMOUNT_PATTERN, ScanState, TransactionExtractor
from institutions import GENERIC
from preprocess import find_statement_period, is_amount_token, is_date_token
from schema import CandidateTransaction, StatementPeriod

logger = logging.getLogger(__name__)

API_VERSION = "2023-07-31"
MODEL_ID = "prebuilt-layout"
AMOUNT_TOLERANCE = Decimal("0.01")
DESCRIPTION_KEY_LENGTH = 20


@dataclass(frozen=True)
class LayoutCell:
    row_index: int
    column_index: int
    content: str


@dataclass(frozen=True)
class LayoutTable:
    row_count: int
    column_count: int
    cells: Tuple[LayoutCell, ...] = ()

    def rows(self) -> List[List[str]]:
        """Cells arranged as a row-major grid of strings."""
        row_count = max([self.row_count] + [c.row_index + 1 for c in self.cells])
        column_count = max([self.column_count] + [c.column_index + 1 for c in self.cells])
        grid = [[''] * column_count for _ in range(row_count)]
        for cell in self.cells:
            existing = grid[cell.row_index][cell.column_index]
            grid[cell.row_index][cell.column_index] = f"{existing} {cell.content}".strip()
        return grid


@dataclass(frozen=True)
class LayoutResult:
    tables: Tuple[LayoutTable, ...] = ()
    paragraphs: Tuple[str, ...] = ()

    @classmethod
    def from_analyze_result(cls, payload: Dict[str, Any]) -> "LayoutResult":
        """
        Build from the analyzeResult object of a prebuilt-layout response.

        Args:
            payload: analyzeResult JSON object

        Returns:
            LayoutResult with tables and paragraphs in document order
        """
        tables = []
        for table in payload.get("tables") or []:
            cells = tuple(
                LayoutCell(
                    row_index=int(cell.get("rowIndex", 0)),
                    column_index=int(cell.get("columnIndex", 0)),
                    content=str(cell.get("content") or "").strip(),
                )
                for cell in table.get("cells") or []
            )
            tables.append(LayoutTable(
                row_count=int(table.get("rowCount", 0)),
                column_count=int(table.get("columnCount", 0)),
                cells=cells,
            ))

        paragraphs = [str(p.get("content") or "").strip() for p in payload.get("paragraphs") or []]
        if not any(paragraphs):
            # Older API versions only report page lines
            paragraphs = [
                str(line.get("content") or "").strip()
                for page in payload.get("pages") or []
                for line in page.get("lines") or []
            ]

        return cls(tables=tuple(tables), paragraphs=tuple(p for p in paragraphs if p))


class LayoutAnalyzer(Protocol):
    def analyze(self, data: bytes) -> LayoutResult:
        ...


class AzureLayoutClient:
    """Azure Document Intelligence prebuilt-layout model over its REST API."""

    def __init__(self, endpoint: str, key: str, timeout: float = 120.0,
                 max_document_bytes: int = 50 * 1024 * 1024, poll_interval: float = 1.0,
                 session: Optional[requests.Session] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.endpoint = endpoint.rstrip('/')
        self.key = key
        self.timeout = timeout
        self.max_document_bytes = max_document_bytes
        self.poll_interval = poll_interval
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings) -> Optional["AzureLayoutClient"]:
        if not settings.layout_configured:
            return None
        return cls(
            endpoint=settings.layout_endpoint,
            key=settings.layout_key,
            timeout=settings.layout_timeout,
            max_document_bytes=settings.max_document_bytes,
        )

    def analyze(self, data: bytes) -> LayoutResult:
        if len(data) > self.max_document_bytes:
            raise LayoutServiceError(
                f"Document is {len(data) / 1024 / 1024:.1f} MB, over the "
                f"{self.max_document_bytes / 1024 / 1024:.0f} MB layout service limit"
            )

        url = f"{self.endpoint}/formrecognizer/documentModels/{MODEL_ID}:analyze"
        self.logger.info(f"Submitting {len(data)} bytes to layout service")
        try:
            response = self.session.post(
                url,
                params={"api-version": API_VERSION},
                headers={
                    "Ocp-Apim-Subscription-Key": self.key,
                    "Content-Type": "application/octet-stream",
                },
                data=data,
                timeout=min(30, self.timeout),
            )
        except requests.exceptions.RequestException as e:
            raise LayoutServiceError(f"Layout service request failed: {e}")

        if response.status_code != 202:
            raise LayoutServiceError(
                f"Layout service returned HTTP {response.status_code}: {response.text[:200]}"
            )

        operation_url = response.headers.get("Operation-Location")
        if not operation_url:
            raise LayoutServiceError("Layout service response had no Operation-Location header")

        payload = self._poll(operation_url)
        try:
            return LayoutResult.from_analyze_result(payload)
        except (AttributeError, TypeError, ValueError, KeyError) as e:
            raise LayoutServiceError(f"Layout service returned an unexpected result: {e}")

    def _poll(self, operation_url: str) -> Dict[str, Any]:
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                response = self.session.get(
                    operation_url,
                    headers={"Ocp-Apim-Subscription-Key": self.key},
                    timeout=min(30, self.timeout),
                )
            except requests.exceptions.RequestException as e:
                raise LayoutServiceError(f"Layout service polling failed: {e}")

            if response.status_code != 200:
                raise LayoutServiceError(f"Layout service polling returned HTTP {response.status_code}")
            try:
                body = response.json()
            except ValueError:
                raise LayoutServiceError("Layout service returned a non-JSON response")
            if not isinstance(body, dict):
                raise LayoutServiceError("Layout service returned an unexpected response")

            status = body.get("status")
            if status == "succeeded":
                return body.get("analyzeResult") or {}
            if status == "failed":
                message = (body.get("error") or {}).get("message", "unknown error")
                raise LayoutServiceError(f"Layout analysis failed: {message}")

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise LayoutServiceError(f"Layout analysis timed out after {self.timeout:g}s")
            try:
                wait = float(response.headers.get("Retry-After", self.poll_interval))
            except ValueError:
                wait = self.poll_interval
            time.sleep(min(wait, remaining))


def _same_transaction(a: CandidateTransaction, b: CandidateTransaction) -> bool:
    return (
        a.date == b.date
        and abs(abs(a.amount) - abs(b.amount)) < AMOUNT_TOLERANCE
        and a.description.lower()[:DESCRIPTION_KEY_LENGTH] == b.description.lower()[:DESCRIPTION_KEY_LENGTH]
    )


def merge_candidates(primary: Sequence[CandidateTransaction],
                     secondary: Sequence[CandidateTransaction]) -> List[CandidateTransaction]:
    """
    Combine two strategies' candidates, dropping secondary rows already in primary.

    Rows are the same when their dates match, amounts differ by less than a
    cent, and the first 20 characters of the descriptions agree.
    """
    by_date: Dict[Any, List[CandidateTransaction]] = {}
    for candidate in primary:
        by_date.setdefault(candidate.date, []).append(candidate)

    merged = list(primary)
    for candidate in secondary:
        if any(_same_transaction(candidate, p) for p in by_date.get(candidate.date, ())):
            continue
        merged.append(candidate)
    return merged


class LayoutAdapter:
    """Maps layout service output onto candidate transactions."""

    def __init__(self, analyzer: LayoutAnalyzer, extractor: Optional[TransactionExtractor] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.analyzer = analyzer
        self.extractor = extractor or TransactionExtractor()

    def extract(self, data: bytes, source_tag: str = 'layout') -> List[CandidateTransaction]:
        """
        Analyze a document and extract its transactions.

        Args:
            data: Raw document bytes
            source_tag: Prefix for the candidates' source tags

        Returns:
            Merged candidates from the table and paragraph strategies

        Raises:
            LayoutServiceError: if the analysis service fails
        """
        result = self.analyzer.analyze(data)
        return self.extract_from_layout(result, source_tag=source_tag)

    def extract_from_layout(self, result: LayoutResult, source_tag: str = 'layout') -> List[CandidateTransaction]:
        period = find_statement_period(result.paragraphs)
        if period is None:
            period = find_statement_period(
                cell.content for table in result.tables for cell in table.cells
            )
        if period is not None:
            self.logger.info(f"Statement period: {period.start} to {period.end}")

        table_candidates = self._from_tables(result.tables, period, f"{source_tag}:table")
        paragraph_candidates = self._from_paragraphs(result.paragraphs, period, f"{source_tag}:paragraph")
        merged = merge_candidates(table_candidates, paragraph_candidates)

        self.logger.info(
            f"Layout extraction: {len(table_candidates)} from tables, "
            f"{len(paragraph_candidates)} from paragraphs, {len(merged)} after merge"
        )
        return merged

    def _from_tables(self, tables: Sequence[LayoutTable], period: Optional[StatementPeriod],
                     source_tag: str) -> List[CandidateTransaction]:
        candidates = []
        for table_num, table in enumerate(tables):
            if table.column_count < 2:
                self.logger.debug(f"Skipping single-column table {table_num}")
                continue
            candidates.extend(self.extractor.extract_from_table(table.rows(), source_tag=source_tag, period=period))
        return candidates

    def _from_paragraphs(self, paragraphs: Sequence[str], period: Optional[StatementPeriod],
                         source_tag: str) -> List[CandidateTransaction]:
        state = ScanState(profile=self.extractor.profile or GENERIC, period=period)
        candidates = []
        consumed = set()

        # Date, description and amount each detected as their own paragraph
        i = 0
        while i + 2 < len(paragraphs):
            date_text, description, amount_text = paragraphs[i:i + 3]
            amount_token = _amount_token(amount_text)
            if (is_date_token(date_text) and amount_token and _is_description(description)
                    and not self.extractor.skip_filter.should_skip(description)):
                candidate = self.extractor.build_candidate(
                    date_text, description, amount_token, ' | '.join(paragraphs[i:i + 3]), state, source_tag,
                )
                if candidate is not None:
                    candidates.append(candidate)
                consumed.update((i, i + 1, i + 2))
                i += 3
                continue
            i += 1

        remaining = [p for idx, p in enumerate(paragraphs) if idx not in consumed]
        candidates.extend(self.extractor.extract_from_text_data(remaining, source_tag=source_tag, period=period))
        return candidates


def _amount_token(text: str) -> Optional[str]:
    text = text.strip()
    if is_amount_token(text):
        return text
    percent = PERCENT_AMOUNT_PATTERN.match(text)
    return percent.group(1) if percent else None


def _is_description(text: str) -> bool:
    return len(text) > 3 and bool(re.search(r'[A-Za-z]', text)) and not is_date_token(text)
