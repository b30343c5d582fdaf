"""
Environment-driven settings for the statement pipeline.

Every value has a default so the pipeline runs with an empty environment;
the layout analysis path is only enabled when both the endpoint and the key
are present.
"""
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import FrozenSet, Mapping, Optional

ENDPOINT_VAR = "AZURE_DOCUMENT_INTELLIGENCE_ENDPOINT"
KEY_VAR = "AZURE_DOCUMENT_INTELLIGENCE_KEY"
PREFIX = "LEDGER_"


def _get_int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValueError(f"{PREFIX + name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{PREFIX + name} must be >= {minimum}, got {value}")
    return value


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        raise ValueError(f"{PREFIX + name} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{PREFIX + name} must be positive, got {value}")
    return value


def _get_decimal(env: Mapping[str, str], name: str, default: Decimal) -> Decimal:
    raw = env.get(PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return Decimal(raw.strip().replace(",", ""))
    except InvalidOperation:
        raise ValueError(f"{PREFIX + name} must be a decimal amount, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    layout_endpoint: Optional[str] = None
    layout_key: Optional[str] = None
    layout_timeout: float = 120.0
    max_document_bytes: int = 50 * 1024 * 1024

    ocr_page_limit: int = 100
    ocr_dpi: int = 300
    ocr_timeout: float = 120.0
    ocr_min_chars: int = 50
    ocr_lang: str = "eng"
    ocr_workers: int = 1

    amount_ceiling: Decimal = Decimal("50000")
    large_disbursement: Decimal = Decimal("10000")
    min_transactions: int = 5
    dedup_warning: int = 5
    excluded_accounts: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def layout_configured(self) -> bool:
        return bool(self.layout_endpoint and self.layout_key)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read from, defaults to os.environ

        Returns:
            Settings instance
        """
        if env is None:
            env = os.environ

        excluded = env.get(PREFIX + "EXCLUDED_ACCOUNTS", "")
        return cls(
            layout_endpoint=(env.get(ENDPOINT_VAR) or "").strip().rstrip("/") or None,
            layout_key=(env.get(KEY_VAR) or "").strip() or None,
            layout_timeout=_get_float(env, "LAYOUT_TIMEOUT", 120.0),
            max_document_bytes=_get_int(env, "MAX_DOCUMENT_MB", 50, minimum=1) * 1024 * 1024,
            ocr_page_limit=_get_int(env, "OCR_PAGE_LIMIT", 100, minimum=1),
            ocr_dpi=_get_int(env, "OCR_DPI", 300, minimum=72),
            ocr_timeout=_get_float(env, "OCR_TIMEOUT", 120.0),
            ocr_min_chars=_get_int(env, "OCR_MIN_CHARS", 50),
            ocr_lang=(env.get(PREFIX + "OCR_LANG") or "eng").strip(),
            ocr_workers=_get_int(env, "OCR_WORKERS", 1, minimum=1),
            amount_ceiling=_get_decimal(env, "AMOUNT_CEILING", Decimal("50000")),
            large_disbursement=_get_decimal(env, "LARGE_DISBURSEMENT", Decimal("10000")),
            min_transactions=_get_int(env, "MIN_TRANSACTIONS", 5),
            dedup_warning=_get_int(env, "DEDUP_WARNING", 5),
            excluded_accounts=frozenset(
                part.strip() for part in excluded.split(",") if part.strip()
            ),
        )
