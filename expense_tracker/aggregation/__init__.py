"""Expense aggregation package."""

from expense_tracker.aggregation.aggregator import (
    MonthWindow,
    available_months,
    category_breakdown,
    compute_totals,
    current_month_key,
    filter_by_month,
    format_expense_date,
    format_month_display,
    month_key,
    monthly_summary,
    person_balance,
    select_expenses,
    shared_account_remaining,
    sort_expenses,
    suggest_stores,
    unique_store_names,
)

__all__ = [
    "MonthWindow",
    "available_months",
    "category_breakdown",
    "compute_totals",
    "current_month_key",
    "filter_by_month",
    "format_expense_date",
    "format_month_display",
    "month_key",
    "monthly_summary",
    "person_balance",
    "select_expenses",
    "shared_account_remaining",
    "sort_expenses",
    "suggest_stores",
    "unique_store_names",
]
