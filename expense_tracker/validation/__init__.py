"""Input validation package."""

from expense_tracker.validation.validator import ExpenseValidator

__all__ = ["ExpenseValidator"]
