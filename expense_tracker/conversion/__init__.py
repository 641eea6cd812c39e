"""Store-name conversion package."""

from expense_tracker.conversion.table import (
    CONVERTED_DESCRIPTION,
    SCANNED_DESCRIPTION,
    StoreConversionTable,
    find_best_match,
)

__all__ = [
    "CONVERTED_DESCRIPTION",
    "SCANNED_DESCRIPTION",
    "StoreConversionTable",
    "find_best_match",
]
