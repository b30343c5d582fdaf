"""
Exception types raised while turning statements into ledger transactions.

The messages are shown to end users as-is, so they say what went wrong and
what to do about it.
"""


class StatementError(Exception):
    """Base class for all statement processing errors."""


class NoFileError(StatementError):
    """Raised when a processing call is made without any document."""

    def __init__(self, message: str = "No file provided"):
        super().__init__(message)


class UnsupportedFileError(StatementError):
    """Raised for extensions the pipeline has no ingestion path for."""

    def __init__(self, extension: str, supported=None):
        self.extension = extension
        supported_list = ", ".join(sorted(supported)) if supported else ""
        message = f"Unsupported file type: {extension or '(none)'}"
        if supported_list:
            message += f". Supported types: {supported_list}"
        super().__init__(message)


class OCRError(StatementError):
    """Base class for OCR fallback failures."""

    infrastructure = False


class RasterizerUnavailableError(OCRError):
    infrastructure = True

    def __init__(self, detail: str = ""):
        message = (
            "PDF rasterizer is not available. Install PyMuPDF (pip install PyMuPDF) "
            "to process scanned PDFs"
        )
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class OCREngineUnavailableError(OCRError):
    infrastructure = True

    def __init__(self, detail: str = ""):
        message = (
            "Tesseract OCR engine is not installed or not on PATH. "
            "Install tesseract-ocr to process scanned PDFs"
        )
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class OCRTimeoutError(OCRError):
    def __init__(self, seconds: float, pages_done: int = 0):
        self.seconds = seconds
        self.pages_done = pages_done
        super().__init__(
            f"OCR timed out after {seconds:g}s ({pages_done} pages processed). "
            "Try splitting the PDF into smaller files"
        )


class InsufficientTextError(OCRError):
    def __init__(self, chars_found: int, minimum: int):
        self.chars_found = chars_found
        self.minimum = minimum
        super().__init__(
            f"OCR produced too little text ({chars_found} characters, need {minimum}). "
            "The scan may be blank or too low quality to read"
        )


class LayoutServiceError(StatementError):
    """Raised when the document layout analysis service call fails."""


class AmountParseError(ValueError):
    """Raised when a token cannot be read as a monetary amount."""

    def __init__(self, token):
        self.token = token
        super().__init__(f"Could not parse amount: {token!r}")


class DateParseError(ValueError):
    """Raised when a token matches none of the known date formats."""

    def __init__(self, token):
        self.token = token
        super().__init__(f"Could not parse date: {token!r}")
