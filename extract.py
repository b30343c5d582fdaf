"""
Main entry point for the bank statement processing pipeline.
"""
import argparse
import json
import logging
import sys
from collections import Counter
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from dotenv import find_dotenv, load_dotenv

from categories import category_name
from categorizer import TransactionCategorizer
from config import Settings
from errors import LayoutServiceError, NoFileError, OCRError, StatementError
from extractor import TransactionExtractor
from file_loader import FileLoader
from filters import SkipFilter
from institutions import PROFILES
from layout_adapter import AzureLayoutClient, LayoutAdapter
from ocr_processor import OCRProcessor
from reconcile import (
    calculate_summary,
    deduplicate,
    organize_schedules,
    sort_transactions,
    validate_reconciliation,
    validate_transactions,
)
from schema import Assets, CandidateTransaction, FileKind, ParseResult, RawDocument

logger = logging.getLogger(__name__)


class BankStatementProcessor:
    """Main processor for bank statements."""

    def __init__(self, settings: Optional[Settings] = None,
                 extractor: Optional[TransactionExtractor] = None,
                 categorizer: Optional[TransactionCategorizer] = None,
                 ocr: Optional[OCRProcessor] = None,
                 layout_adapter: Optional[LayoutAdapter] = None,
                 institution: Optional[str] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.settings = settings or Settings.from_env()
        self.file_loader = FileLoader()
        self.extractor = extractor or TransactionExtractor.for_institution(
            institution, skip_filter=SkipFilter.from_settings(self.settings),
        )
        self.categorizer = categorizer or TransactionCategorizer()
        self.ocr = ocr or OCRProcessor.from_settings(self.settings)

        if layout_adapter is None:
            analyzer = AzureLayoutClient.from_settings(self.settings)
            if analyzer is not None:
                layout_adapter = LayoutAdapter(analyzer, self.extractor)
        self.layout_adapter = layout_adapter

    def process_document(self, data: Optional[bytes], filename: Optional[str]) -> ParseResult:
        """
        Process one statement end-to-end.

        Args:
            data: Raw file contents
            filename: Original file name; its extension picks the ingestion path

        Returns:
            ParseResult with sorted, deduplicated transactions plus any errors and warnings

        Raises:
            NoFileError: if no file was given
            UnsupportedFileError: if the extension has no ingestion path
        """
        document = self.file_loader.document(filename, data)
        self.logger.info(f"Starting processing of file: {document.filename} ({document.kind.value})")
        result = ParseResult()

        try:
            candidates = self._extract(document, result)
        except OCRError as e:
            self.logger.error(f"OCR failed for {document.filename}: {e}")
            if e.infrastructure:
                result.errors.append(f"{document.filename}: OCR is not available on this system. {e}")
            else:
                result.errors.append(f"{document.filename}: Could not read the scanned PDF. {e}")
            return result
        except ValueError as e:
            self.logger.error(f"Error reading {document.filename}: {e}")
            result.errors.append(f"{document.filename}: {e}")
            return result

        transactions = self.categorizer.categorize_all(candidates)
        if not transactions:
            result.errors.append(
                f"{document.filename}: No transactions found. The file may not be a supported "
                "statement layout"
            )
            return result

        unique = deduplicate(transactions)
        removed = len(transactions) - len(unique)
        if removed:
            self.logger.info(f"Removed {removed} duplicate transactions from {document.filename}")
        if removed and removed >= self.settings.dedup_warning:
            result.warnings.append(
                f"{document.filename}: {removed} duplicate transactions were removed. Check the "
                "statement for repeated pages"
            )
        result.transactions = sort_transactions(unique)
        result.warnings.extend(
            f"{document.filename}: {warning}"
            for warning in validate_transactions(
                result.transactions,
                min_expected=self.settings.min_transactions,
                large_disbursement=self.settings.large_disbursement,
            )
        )

        self.logger.info(f"Successfully processed {len(result.transactions)} transactions from {document.filename}")
        return result

    def process_batch(self, files: Sequence[Tuple[str, Optional[bytes]]]) -> ParseResult:
        """
        Process several statements in order as one accounting.

        A file that fails is reported in the result's errors and the rest of
        the batch still runs.

        Args:
            files: (filename, contents) pairs in submission order

        Returns:
            Aggregated ParseResult, deduplicated across files and sorted by date

        Raises:
            NoFileError: if the batch is empty
        """
        if not files:
            raise NoFileError()

        aggregated = ParseResult()
        for filename, data in files:
            try:
                result = self.process_document(data, filename)
            except StatementError as e:
                self.logger.error(f"Error processing file {filename}: {e}")
                result = ParseResult(errors=[f"{filename or '(unnamed)'}: {e}"])
            except Exception as e:
                self.logger.exception(f"Unexpected error processing file {filename}")
                result = ParseResult(errors=[f"{filename or '(unnamed)'}: Unexpected error: {e}"])
            aggregated = aggregated.merge(result)

        unique = deduplicate(aggregated.transactions)
        removed = len(aggregated.transactions) - len(unique)
        if removed:
            self.logger.info(f"Removed {removed} duplicate transactions across files")
        if removed and removed >= self.settings.dedup_warning:
            aggregated.warnings.append(
                f"{removed} duplicate transactions were removed. Check whether overlapping "
                "statements were uploaded"
            )
        aggregated.transactions = sort_transactions(unique)

        self.logger.info(
            f"Batch complete: {len(aggregated.transactions)} transactions, "
            f"{len(aggregated.errors)} errors, {len(aggregated.warnings)} warnings"
        )
        return aggregated

    def process_files(self, paths: Iterable[str]) -> ParseResult:
        """Read statements from disk and process them as one batch."""
        files = []
        unreadable = ParseResult()
        for path in paths:
            try:
                files.append((Path(path).name, Path(path).read_bytes()))
            except OSError as e:
                self.logger.error(f"Could not read {path}: {e}")
                unreadable.errors.append(f"{path}: Could not read file ({e.strerror or e})")

        if not files:
            if unreadable.errors:
                return unreadable
            raise NoFileError()
        return unreadable.merge(self.process_batch(files))

    def _extract(self, document: RawDocument, result: ParseResult) -> List[CandidateTransaction]:
        if document.kind is FileKind.DELIMITED:
            df = self.file_loader.load_delimited(document.data)
            return self.extractor.extract_from_structured_data(df, source_tag=f"{document.filename}:csv")
        if document.kind is FileKind.SPREADSHEET:
            df = self.file_loader.load_spreadsheet(document.data)
            return self.extractor.extract_from_structured_data(df, source_tag=f"{document.filename}:spreadsheet")
        return self._extract_pdf(document, result)

    def _extract_pdf(self, document: RawDocument, result: ParseResult) -> List[CandidateTransaction]:
        """Layout service first, then the PDF text layer, then OCR."""
        if self.layout_adapter is not None:
            try:
                candidates = self.layout_adapter.extract(document.data, source_tag=f"{document.filename}:layout")
            except Exception as e:
                if isinstance(e, LayoutServiceError):
                    self.logger.warning(f"Layout analysis failed for {document.filename}, falling back: {e}")
                else:
                    self.logger.exception(f"Layout analysis raised for {document.filename}, falling back")
                result.warnings.append(
                    f"{document.filename}: Layout analysis failed ({e}). Fell back to text extraction"
                )
            else:
                if candidates:
                    return candidates
                self.logger.warning(f"Layout analysis found no transactions in {document.filename}")
                result.warnings.append(
                    f"{document.filename}: Layout analysis found no transactions. Fell back to text extraction"
                )

        pages = self.file_loader.load_pdf_text(document.data)
        source_tag = f"{document.filename}:pdf"
        if self.ocr.is_scanned('\n'.join(pages)):
            self.logger.info(f"{document.filename} has little or no text layer, running OCR")
            ocr_result = self.ocr.process_scanned_pdf(document.data)
            if ocr_result.truncated:
                result.warnings.append(
                    f"{document.filename}: Only the first {ocr_result.pages_processed} of "
                    f"{ocr_result.page_count} pages were read by OCR"
                )
            pages = [ocr_result.text]
            source_tag = f"{document.filename}:ocr"

        return self.extractor.extract_from_text_data(pages, source_tag=source_tag)


def configure_logging(verbose: bool = False, log_file: Optional[str] = None):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def print_summary(result: ParseResult, assets: Optional[Assets] = None):
    """Write schedule totals, and the reconciliation when assets are known, to stderr."""
    schedules = organize_schedules(result.transactions)
    for schedule, sections in schedules.items():
        print(f"\nSchedule {schedule}:", file=sys.stderr)
        for code, section in sections.items():
            if not section["transactions"]:
                continue
            print(f"- {section['name']}: {len(section['transactions'])} transactions, "
                  f"${section['total']:,.2f}", file=sys.stderr)
            for sub_category, sub in sorted(section["sub_categories"].items()):
                print(f"    {sub_category}: ${sub['total']:,.2f}", file=sys.stderr)

    if assets is not None:
        report = validate_reconciliation(calculate_summary(result.transactions, assets))
        status = "balanced" if report.is_balanced else f"OUT OF BALANCE by ${report.difference:,.2f}"
        print(f"\nReconciliation: charges ${report.charges:,.2f}, credits ${report.credits:,.2f} ({status})",
              file=sys.stderr)


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description='Extract and classify transactions from bank statements')
    parser.add_argument('files', nargs='+', metavar='FILE', help='Statement files (CSV, TSV, Excel or PDF)')
    parser.add_argument('-o', '--output', help='Output JSON file path')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    parser.add_argument('--log-file', help='Also write logs to this file')
    parser.add_argument('--institution', choices=sorted(PROFILES),
                        help='Statement layout to use instead of detecting it')
    parser.add_argument('--summary', action='store_true', help='Print schedule totals')
    parser.add_argument('--assets', help='JSON file of account balances and property, for reconciliation')

    args = parser.parse_args(argv)

    load_dotenv(find_dotenv(usecwd=True), override=False)
    configure_logging(args.verbose, args.log_file)

    try:
        assets = Assets.model_validate_json(Path(args.assets).read_text()) if args.assets else None
        processor = BankStatementProcessor(settings=Settings.from_env(), institution=args.institution)
        result = processor.process_files(args.files)
    except Exception as e:
        logger.error(f"Processing failed: {str(e)}")
        print(f"Error: {str(e)}", file=sys.stderr)
        sys.exit(1)

    output_data = result.model_dump(mode='json')
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            json.dump(output_data, f, indent=2, ensure_ascii=False)
        print(f"Results written to: {args.output}", file=sys.stderr)
    else:
        print(json.dumps(output_data, indent=2, ensure_ascii=False))

    print(f"\nTotal transactions: {len(result.transactions)}", file=sys.stderr)
    categories = Counter(t.category for t in result.transactions)
    if categories:
        print("\nCategory Breakdown:", file=sys.stderr)
        for category, count in sorted(categories.items()):
            print(f"- {category_name(category)}: {count} transactions", file=sys.stderr)
    for error in result.errors:
        print(f"ERROR: {error}", file=sys.stderr)
    for warning in result.warnings:
        print(f"WARNING: {warning}", file=sys.stderr)

    if args.summary or assets is not None:
        print_summary(result, assets)

    if not result.transactions and result.errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
