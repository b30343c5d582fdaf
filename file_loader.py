import io
import csv
import logging
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

import pandas as pd
import pdfplumber

from errors import NoFileError, UnsupportedFileError
from schema import FileKind, RawDocument

logger = logging.getLogger(__name__)


class FileLoader:
    """Handles loading of various file formats."""

    SUPPORTED_EXTENSIONS = {
        '.csv': FileKind.DELIMITED,
        '.tsv': FileKind.DELIMITED,
        '.xlsx': FileKind.SPREADSHEET,
        '.xls': FileKind.SPREADSHEET,
        '.pdf': FileKind.PDF,
    }
    ENCODINGS = ['utf-8-sig', 'cp1252', 'latin1']
    DELIMITERS = ',;\t|'

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def document(self, filename: Optional[str], data: Optional[bytes]) -> RawDocument:
        """
        Wrap uploaded bytes, choosing the ingestion path from the extension.

        Args:
            filename: Original file name
            data: File contents

        Returns:
            RawDocument

        Raises:
            NoFileError: if no file was given
            UnsupportedFileError: if the extension has no ingestion path
        """
        if data is None or not filename:
            raise NoFileError()

        file_ext = Path(filename).suffix.lower()
        kind = self.SUPPORTED_EXTENSIONS.get(file_ext)
        if kind is None:
            raise UnsupportedFileError(file_ext, self.SUPPORTED_EXTENSIONS)
        return RawDocument(data=data, filename=Path(filename).name, kind=kind)

    def load_file(self, file_path: str) -> RawDocument:
        """Read a document from disk."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        self.logger.info(f"Loading {path.suffix.lower()} file: {file_path}")
        return self.document(path.name, path.read_bytes())

    def load_delimited(self, data: bytes) -> pd.DataFrame:
        """
        Load CSV/TSV bytes with encoding and delimiter detection.

        Rows are read without a header and every cell as a string, since
        exports often carry preamble lines above the column titles.
        """
        text = self._decode(data)
        lines = [line for line in text.splitlines() if line.strip()]
        if not lines:
            raise ValueError("Delimited file is empty")

        sample = '\n'.join(lines[:50])
        try:
            delimiter = csv.Sniffer().sniff(sample, delimiters=self.DELIMITERS).delimiter
        except csv.Error:
            delimiter = max(self.DELIMITERS, key=sample.count)

        width = max(len(row) for row in csv.reader(lines, delimiter=delimiter))
        df = pd.read_csv(
            io.StringIO('\n'.join(lines)),
            sep=delimiter,
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            engine='python',
        )
        self.logger.info(f"Loaded delimited file: {len(df)} rows, {width} columns, delimiter {delimiter!r}")
        return df

    def load_spreadsheet(self, data: bytes) -> pd.DataFrame:
        """Load an Excel workbook, picking the sheet most likely to hold transactions."""
        try:
            excel_file = pd.ExcelFile(io.BytesIO(data))
        except Exception as e:
            raise ValueError(f"Error reading Excel file: {str(e)}")

        sheet_name = excel_file.sheet_names[0]
        if len(excel_file.sheet_names) > 1:
            transaction_keywords = ['transaction', 'statement', 'activity', 'history', 'register']
            for name in excel_file.sheet_names:
                if any(keyword in str(name).lower() for keyword in transaction_keywords):
                    sheet_name = name
                    break

        self.logger.info(f"Using sheet: {sheet_name}")
        df = excel_file.parse(sheet_name, header=None)
        return self._render_cells(df)

    def load_pdf_text(self, data: bytes) -> List[str]:
        """Extract the text layer of each PDF page with pdfplumber."""
        pages_text = []
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                for i, page in enumerate(pdf.pages):
                    text = page.extract_text() or ''
                    pages_text.append(text)
                    self.logger.debug(f"Extracted {len(text)} characters from page {i + 1}")
        except Exception as e:
            raise ValueError(f"Error reading PDF file: {str(e)}")

        if not any(t.strip() for t in pages_text):
            self.logger.warning("No text extracted from PDF - may need OCR")
        return pages_text

    def _render_cells(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Turn native workbook values into the strings a printed statement would show.

        Dates become MM/DD/YYYY. Numbers in a column holding any fractional
        value are written with cents; whole-number columns (check numbers,
        reference ids) stay integers.
        """
        rendered = {}
        for col in df.columns:
            values = df[col].tolist()
            has_cents = any(
                pd.api.types.is_float(v) and not pd.isna(v) and not float(v).is_integer()
                for v in values
            )
            rendered[col] = [_cell_text(v, has_cents) for v in values]
        return pd.DataFrame(rendered, index=df.index, columns=df.columns)

    def _decode(self, data: bytes) -> str:
        for encoding in self.ENCODINGS:
            try:
                text = data.decode(encoding)
                self.logger.debug(f"Decoded delimited file with {encoding} encoding")
                return text
            except UnicodeDecodeError:
                continue
        raise ValueError(f"Could not decode file with any of the tried encodings: {self.ENCODINGS}")


def _cell_text(value, has_cents: bool) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ''
    if isinstance(value, (datetime, date)):
        return value.strftime('%m/%d/%Y')
    if pd.api.types.is_bool(value):
        return str(value)
    if pd.api.types.is_number(value):
        if has_cents:
            return f"{float(value):.2f}"
        if float(value).is_integer():
            return str(int(value))
        return str(value)
    return str(value).strip()
