"""
OCR fallback for scanned statements using PyMuPDF and Tesseract.
"""
import io
import time
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from errors import (
    InsufficientTextError,
    OCREngineUnavailableError,
    OCRError,
    OCRTimeoutError,
    RasterizerUnavailableError,
)

try:
    import fitz  # PyMuPDF for PDF rasterization
    RASTERIZER_AVAILABLE = True
except ImportError:
    fitz = None
    RASTERIZER_AVAILABLE = False

try:
    import pytesseract
    from PIL import Image
    OCR_AVAILABLE = True
except ImportError:
    pytesseract = None
    Image = None
    OCR_AVAILABLE = False

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OCRResult:
    text: str
    pages_processed: int
    page_count: int

    @property
    def truncated(self) -> bool:
        return self.pages_processed < self.page_count


class OCRProcessor:
    """Handles OCR processing for scanned documents."""

    def __init__(self, dpi: int = 300, page_limit: int = 100, page_timeout: float = 120.0,
                 min_text_chars: int = 50, lang: str = 'eng', config: str = '--oem 1 --psm 3',
                 workers: int = 1, total_timeout: Optional[float] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.dpi = dpi
        self.page_limit = page_limit
        self.page_timeout = page_timeout
        self.min_text_chars = min_text_chars
        self.lang = lang
        self.config = config
        self.workers = max(1, workers)
        self.total_timeout = total_timeout

    @classmethod
    def from_settings(cls, settings) -> "OCRProcessor":
        return cls(
            dpi=settings.ocr_dpi,
            page_limit=settings.ocr_page_limit,
            page_timeout=settings.ocr_timeout,
            min_text_chars=settings.ocr_min_chars,
            lang=settings.ocr_lang,
            workers=settings.ocr_workers,
        )

    def is_scanned(self, text: str) -> bool:
        """Too little direct text means the PDF is an image scan."""
        return len((text or '').strip()) < self.min_text_chars

    def process_scanned_pdf(self, pdf_bytes: bytes) -> OCRResult:
        """
        Rasterize each page and OCR it, keeping page order.

        Args:
            pdf_bytes: Raw PDF contents

        Returns:
            OCRResult with the text of all processed pages

        Raises:
            RasterizerUnavailableError: PyMuPDF is missing
            OCREngineUnavailableError: pytesseract or the tesseract binary is missing
            OCRTimeoutError: a page or the whole document ran past its time budget
            InsufficientTextError: OCR finished but produced too little text
            OCRError: the PDF could not be opened
        """
        if not RASTERIZER_AVAILABLE:
            raise RasterizerUnavailableError("PyMuPDF is not installed")
        if not OCR_AVAILABLE:
            raise OCREngineUnavailableError("pytesseract is not installed")
        self._check_engine()

        try:
            document = fitz.open(stream=pdf_bytes, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise OCRError(f"Could not open PDF for OCR: {e}")

        with document:
            page_count = document.page_count
            pages_to_process = min(page_count, self.page_limit)
            if page_count > self.page_limit:
                self.logger.warning(f"PDF has {page_count} pages, only the first {self.page_limit} will be OCR'd")

            self.logger.info(f"Processing scanned PDF with OCR: {pages_to_process} pages at {self.dpi} DPI")
            budget = self.total_timeout or self.page_timeout * max(pages_to_process, 1)
            images = self._rasterize_pages(document, pages_to_process)
            texts = self._recognize_pages(images, budget)

        text = '\n'.join(t for t in texts if t)
        chars = len(text.strip())
        self.logger.info(f"OCR extracted {chars} characters from {pages_to_process} pages")
        if chars < self.min_text_chars:
            raise InsufficientTextError(chars, self.min_text_chars)

        return OCRResult(text=text, pages_processed=pages_to_process, page_count=page_count)

    def _check_engine(self):
        try:
            pytesseract.get_tesseract_version()
        except pytesseract.TesseractNotFoundError as e:
            raise OCREngineUnavailableError(str(e))

    def _rasterize_pages(self, document, page_total: int) -> Iterator[Tuple[int, Optional[bytes]]]:
        zoom = self.dpi / 72
        matrix = fitz.Matrix(zoom, zoom)
        for page_num in range(page_total):
            try:
                page = document.load_page(page_num)
                pix = page.get_pixmap(matrix=matrix)
                yield page_num, pix.tobytes("png")
            except RuntimeError as e:
                self.logger.warning(f"Could not rasterize page {page_num + 1}: {e}")
                yield page_num, None

    def _recognize_pages(self, images: Iterator[Tuple[int, Optional[bytes]]], budget: float) -> List[str]:
        deadline = time.monotonic() + budget

        if self.workers == 1:
            texts = []
            for page_num, png in images:
                if time.monotonic() > deadline:
                    raise OCRTimeoutError(budget, page_num)
                texts.append(self._ocr_page(page_num, png))
            return texts

        items = list(images)
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            results = pool.map(lambda item: self._ocr_page(*item), items,
                               timeout=max(deadline - time.monotonic(), 0.001))
            texts = []
            try:
                for text in results:
                    texts.append(text)
            except FuturesTimeoutError:
                raise OCRTimeoutError(budget, len(texts))
        return texts

    def _ocr_page(self, page_num: int, png: Optional[bytes]) -> str:
        if png is None:
            return ''

        image = Image.open(io.BytesIO(png))
        try:
            text = pytesseract.image_to_string(
                image, lang=self.lang, config=self.config, timeout=self.page_timeout,
            )
        except pytesseract.TesseractNotFoundError as e:
            raise OCREngineUnavailableError(str(e))
        except pytesseract.TesseractError as e:
            self.logger.warning(f"OCR failed on page {page_num + 1}: {e}")
            return ''
        except RuntimeError as e:
            if 'timeout' in str(e).lower():
                raise OCRTimeoutError(self.page_timeout, page_num)
            raise

        self.logger.info(f"Extracted {len(text.strip())} characters from page {page_num + 1}")
        return text
