"""Receipt text extraction package."""

from expense_tracker.extraction.receipt_parser import (
    AMOUNT_PATTERNS,
    STORE_NAME_PATTERNS,
    ReceiptTextExtractor,
    extract_amount,
    extract_store_name,
    normalize_amount,
    normalize_store_name,
    parse_structured,
)

__all__ = [
    "AMOUNT_PATTERNS",
    "STORE_NAME_PATTERNS",
    "ReceiptTextExtractor",
    "extract_amount",
    "extract_store_name",
    "normalize_amount",
    "normalize_store_name",
    "parse_structured",
]
