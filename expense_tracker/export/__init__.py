"""Spreadsheet export package."""

from expense_tracker.export.excel import (
    BREAKDOWN_SHEET,
    EXPENSES_SHEET,
    SUMMARY_SHEET,
    ExpenseWorkbookBuilder,
    export_filename,
)

__all__ = [
    "BREAKDOWN_SHEET",
    "EXPENSES_SHEET",
    "SUMMARY_SHEET",
    "ExpenseWorkbookBuilder",
    "export_filename",
]
