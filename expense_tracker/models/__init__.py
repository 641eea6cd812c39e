"""Data models package."""

from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from expense_tracker.models.expense import (
    CategoryBreakdownRow,
    ConversionEntry,
    Expense,
    ExpenseCategory,
    ExpenseTotals,
    ExtractedReceiptData,
    MonthlySummary,
    NewExpense,
    Person,
    ReceiptPrefill,
    ReceiptScanResult,
    SharedAccountSettings,
    ValidationIssue,
    ValidationResult,
    VisionResult,
)

__all__ = [
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    "CategoryBreakdownRow",
    "ConversionEntry",
    "Expense",
    "ExpenseCategory",
    "ExpenseTotals",
    "ExtractedReceiptData",
    "MonthlySummary",
    "NewExpense",
    "Person",
    "ReceiptPrefill",
    "ReceiptScanResult",
    "SharedAccountSettings",
    "ValidationIssue",
    "ValidationResult",
    "VisionResult",
]
