import io
import json
from datetime import date, datetime
from decimal import Decimal

import pandas as pd
import pytest

from config import Settings
from errors import InsufficientTextError, LayoutServiceError, NoFileError, OCREngineUnavailableError, UnsupportedFileError
from extract import BankStatementProcessor, main
from layout_adapter import LayoutAdapter, LayoutResult
from ocr_processor import OCRProcessor, OCRResult
from schema import Direction

PDF_PAGES = [
    "Statement Period 04/01/2024 - 04/30/2024\n"
    "04/03/2024 SAFEWAY STORE 123 45.10\n"
    "04/05/2024 CHEVRON 0123 40.00\n"
    "04/30/2024 INTEREST EARNED 1.25\n"
]


class FailingAnalyzer:
    def analyze(self, data):
        raise LayoutServiceError("Layout service returned HTTP 503")


class BrokenAnalyzer:
    def analyze(self, data):
        raise RuntimeError("analyzer crashed")


class StaticAnalyzer:
    def __init__(self, paragraphs):
        self.result = LayoutResult(paragraphs=tuple(paragraphs))

    def analyze(self, data):
        return self.result


class FakeOCR(OCRProcessor):
    def __init__(self, result=None, error=None):
        super().__init__()
        self.result = result
        self.error = error

    def process_scanned_pdf(self, pdf_bytes):
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def processor():
    return BankStatementProcessor(settings=Settings())


def _pdf_processor(monkeypatch, pages, **kwargs):
    processor = BankStatementProcessor(settings=Settings(), **kwargs)
    monkeypatch.setattr(processor.file_loader, "load_pdf_text", lambda data: list(pages))
    return processor


def test_csv_end_to_end(processor, sample_csv):
    result = processor.process_document(sample_csv, "stmt.csv")

    assert result.errors == []
    assert [(t.date, t.category, t.amount, t.direction) for t in result.transactions] == [
        (date(2024, 4, 1), "A5_SOCIAL_SECURITY_VA", Decimal("1234.00"), Direction.RECEIPT),
        (date(2024, 4, 2), "C6_MEDICAL", Decimal("45.67"), Direction.DISBURSEMENT),
        (date(2024, 4, 5), "C7_LIVING_EXPENSES", Decimal("5.25"), Direction.DISBURSEMENT),
    ]
    assert result.transactions[0].source_tag == "stmt.csv:csv"
    assert any("Only 3 transactions found" in w for w in result.warnings)


def test_missing_and_unsupported_files(processor):
    with pytest.raises(NoFileError):
        processor.process_document(None, "stmt.csv")
    with pytest.raises(UnsupportedFileError, match=r"\.docx"):
        processor.process_document(b"x", "stmt.docx")


def test_file_without_transactions(processor):
    result = processor.process_document(b"Date,Description,Amount\n", "empty.csv")
    assert result.transactions == []
    assert result.errors == ["empty.csv: No transactions found. The file may not be a supported statement layout"]


def test_layout_failure_falls_back_to_text(monkeypatch):
    processor = _pdf_processor(monkeypatch, PDF_PAGES, layout_adapter=LayoutAdapter(FailingAnalyzer()))
    result = processor.process_document(b"%PDF-1.7", "stmt.pdf")

    assert [t.description for t in result.transactions] == ["SAFEWAY STORE 123", "CHEVRON 0123", "INTEREST EARNED"]
    assert result.transactions[-1].direction is Direction.RECEIPT
    assert all(t.source_tag == "stmt.pdf:pdf" for t in result.transactions)
    assert any("Layout analysis failed" in w and "HTTP 503" in w for w in result.warnings)
    assert result.errors == []


def test_unexpected_layout_error_falls_back_to_text(monkeypatch):
    processor = _pdf_processor(monkeypatch, PDF_PAGES, layout_adapter=LayoutAdapter(BrokenAnalyzer()))
    result = processor.process_document(b"%PDF-1.7", "stmt.pdf")

    assert len(result.transactions) == 3
    assert all(t.source_tag == "stmt.pdf:pdf" for t in result.transactions)
    assert any("Layout analysis failed" in w and "analyzer crashed" in w for w in result.warnings)
    assert result.errors == []


def test_layout_success_skips_text_extraction(monkeypatch):
    adapter = LayoutAdapter(StaticAnalyzer(["04/03/2024 SAFEWAY STORE 123 45.10"]))
    processor = _pdf_processor(monkeypatch, [], layout_adapter=adapter)
    result = processor.process_document(b"%PDF-1.7", "stmt.pdf")

    assert len(result.transactions) == 1
    assert result.transactions[0].source_tag == "stmt.pdf:layout:paragraph"


def test_scanned_pdf_uses_ocr(monkeypatch):
    ocr = FakeOCR(OCRResult(text=PDF_PAGES[0], pages_processed=1, page_count=2))
    processor = _pdf_processor(monkeypatch, [""], ocr=ocr)
    result = processor.process_document(b"%PDF-1.7", "scan.pdf")

    assert len(result.transactions) == 3
    assert all(t.source_tag == "scan.pdf:ocr" for t in result.transactions)
    assert any("Only the first 1 of 2 pages" in w for w in result.warnings)


def test_ocr_infrastructure_error(monkeypatch):
    processor = _pdf_processor(monkeypatch, [""], ocr=FakeOCR(error=OCREngineUnavailableError()))
    result = processor.process_document(b"%PDF-1.7", "scan.pdf")

    assert result.transactions == []
    assert result.errors[0].startswith("scan.pdf: OCR is not available on this system.")


def test_ocr_content_error(monkeypatch):
    processor = _pdf_processor(monkeypatch, [""], ocr=FakeOCR(error=InsufficientTextError(12, 50)))
    result = processor.process_document(b"%PDF-1.7", "scan.pdf")

    assert result.errors[0].startswith("scan.pdf: Could not read the scanned PDF.")
    assert "12 characters" in result.errors[0]


def test_batch_continues_past_failed_file(processor, sample_csv):
    result = processor.process_batch([("notes.docx", b"x"), ("stmt.csv", sample_csv)])

    assert len(result.transactions) == 3
    assert len(result.errors) == 1
    assert result.errors[0].startswith("notes.docx: Unsupported file type: .docx")


def test_batch_deduplicates_across_files(sample_csv):
    processor = BankStatementProcessor(settings=Settings(dedup_warning=2))
    result = processor.process_batch([("march.csv", sample_csv), ("april.csv", sample_csv)])

    assert len(result.transactions) == 3
    assert [t.source_tag for t in result.transactions] == ["march.csv:csv"] * 3
    assert any("3 duplicate transactions were removed" in w for w in result.warnings)


def test_empty_batch(processor):
    with pytest.raises(NoFileError):
        processor.process_batch([])


def test_process_files_reports_unreadable_paths(processor, tmp_path, sample_csv):
    path = tmp_path / "stmt.csv"
    path.write_bytes(sample_csv)
    result = processor.process_files([str(tmp_path / "missing.csv"), str(path)])

    assert len(result.transactions) == 3
    assert "missing.csv: Could not read file" in result.errors[0]


def test_cli_writes_json(tmp_path, monkeypatch, sample_csv, capsys):
    monkeypatch.chdir(tmp_path)
    source = tmp_path / "stmt.csv"
    source.write_bytes(sample_csv)
    output = tmp_path / "out.json"

    main([str(source), "-o", str(output), "--summary"])

    data = json.loads(output.read_text())
    assert data["transactions"][0]["date"] == "2024-04-01"
    assert data["transactions"][0]["amount"] == "1234.00"
    assert data["transactions"][0]["direction"] == "RECEIPT"
    err = capsys.readouterr().err
    assert "Schedule A(5)" in err
    assert "Schedule C:" in err


def test_cli_reconciles_with_assets(tmp_path, monkeypatch, sample_csv, capsys):
    monkeypatch.chdir(tmp_path)
    source = tmp_path / "stmt.csv"
    source.write_bytes(sample_csv)
    assets = tmp_path / "assets.json"
    assets.write_text(json.dumps({
        "bank_accounts": [{"name": "Checking", "opening_balance": "1000.00", "closing_balance": "2183.08"}],
    }))

    main([str(source), "--assets", str(assets)])

    assert "(balanced)" in capsys.readouterr().err


def test_cli_exit_code_without_transactions(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    source = tmp_path / "notes.docx"
    source.write_bytes(b"x")

    with pytest.raises(SystemExit) as excinfo:
        main([str(source)])
    assert excinfo.value.code == 1


def test_headerless_workbook_end_to_end(processor):
    buffer = io.BytesIO()
    pd.DataFrame([
        [datetime(2024, 4, 1), "Safeway Store", 45.1],
        [datetime(2024, 4, 2), "Chevron Gas", 40.0],
    ]).to_excel(buffer, index=False, header=False, engine="openpyxl")

    result = processor.process_document(buffer.getvalue(), "stmt.xlsx")

    assert result.errors == []
    assert [(t.date, t.amount) for t in result.transactions] == [
        (date(2024, 4, 1), Decimal("45.10")),
        (date(2024, 4, 2), Decimal("40.00")),
    ]
    assert result.transactions[0].source_tag == "stmt.xlsx:spreadsheet"


def test_document_warnings_for_duplicates_and_large_disbursements(monkeypatch):
    pages = [
        "Statement Period 04/01/2024 - 04/30/2024\n"
        "04/03/2024 SAFEWAY STORE 123 45.10\n"
        "04/03/2024 SAFEWAY STORE 123 45.10\n"
        "04/03/2024 SAFEWAY STORE 123 45.10\n"
        "04/10/2024 HOME DEPOT STORE 12,000.00\n"
    ]
    processor = BankStatementProcessor(settings=Settings(dedup_warning=2))
    monkeypatch.setattr(processor.file_loader, "load_pdf_text", lambda data: list(pages))

    result = processor.process_document(b"%PDF-1.7", "stmt.pdf")

    assert len(result.transactions) == 2
    assert "stmt.pdf: 2 duplicate transactions were removed. Check the statement for repeated pages" in result.warnings
    assert any("1 disbursements over $10,000" in w for w in result.warnings)
