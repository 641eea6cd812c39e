"""
Expense Aggregation

Pure functions over lists of expenses: month bucketing, ordering,
"load more" month paging, totals, balances and per-category breakdowns.
Nothing here touches storage; callers pass in what they loaded.

Month keys are "YYYY-MM" strings derived from the DD/MM/YYYY date field,
so they sort chronologically as plain strings.
"""

import calendar
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from expense_tracker.models.expense import (
    EXPENSE_DATE_FORMAT,
    CategoryBreakdownRow,
    Expense,
    ExpenseCategory,
    ExpenseTotals,
    MonthlySummary,
    Person,
    SharedAccountSettings,
    round_money,
)


ZERO = Decimal("0")


# =============================================================================
# MONTH BUCKETS
# =============================================================================

def month_key(expense_date: str) -> Optional[str]:
    """
    "05/03/2024" -> "2024-03". Returns None for malformed dates.
    """
    parts = (expense_date or "").strip().split("/")
    if len(parts) != 3:
        return None
    _, month, year = parts
    if not (month.isdigit() and year.isdigit() and len(year) == 4):
        return None
    if not 1 <= int(month) <= 12:
        return None
    return f"{year}-{int(month):02d}"


def current_month_key(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"{today.year}-{today.month:02d}"


def available_months(expenses: Iterable[Expense]) -> list[str]:
    """Distinct month keys present in the data, newest first."""
    keys = {month_key(expense.date) for expense in expenses}
    keys.discard(None)
    return sorted(keys, reverse=True)


def filter_by_month(expenses: Iterable[Expense], key: str) -> list[Expense]:
    return [expense for expense in expenses if month_key(expense.date) == key]


def format_month_display(key: str) -> str:
    """ "2024-03" -> "March 2024" """
    year, month = key.split("-")
    return f"{calendar.month_name[int(month)]} {year}"


def format_expense_date(day: date) -> str:
    return day.strftime(EXPENSE_DATE_FORMAT)


# =============================================================================
# ORDERING
# =============================================================================

def sort_expenses(expenses: Iterable[Expense]) -> list[Expense]:
    """
    Calendar date descending, ties broken by id descending.

    Records with unparseable dates go last.
    """
    def sort_key(expense: Expense) -> tuple:
        return (expense.calendar_date or datetime.min, expense.id)

    return sorted(expenses, key=sort_key, reverse=True)


class MonthWindow:
    """
    "Load more" paging over months.

    Candidate months are the current calendar month plus every month that
    has data, newest first. The window starts at the current month only
    and each load_more() adds the next older candidate.
    """

    def __init__(
        self,
        expenses: Iterable[Expense],
        today: Optional[date] = None,
        months_shown: int = 1,
    ):
        current = current_month_key(today)
        self._months = sorted(set(available_months(expenses)) | {current}, reverse=True)
        self._shown = max(1, min(months_shown, len(self._months)))

    @property
    def months(self) -> list[str]:
        return list(self._months)

    @property
    def visible_months(self) -> list[str]:
        return self._months[:self._shown]

    @property
    def months_shown(self) -> int:
        return self._shown

    @property
    def has_more(self) -> bool:
        return self._shown < len(self._months)

    def load_more(self) -> list[str]:
        if self.has_more:
            self._shown += 1
        return self.visible_months

    def visible_expenses(self, expenses: Iterable[Expense]) -> list[Expense]:
        visible = set(self.visible_months)
        return sort_expenses(e for e in expenses if month_key(e.date) in visible)


def select_expenses(
    expenses: Iterable[Expense],
    window: MonthWindow,
    search_month: Optional[str] = None,
) -> list[Expense]:
    """
    Expenses for the list view.

    A selected search month overrides the load-more window.
    """
    expenses = list(expenses)
    if search_month:
        return sort_expenses(filter_by_month(expenses, search_month))
    return window.visible_expenses(expenses)


# =============================================================================
# TOTALS & BALANCES
# =============================================================================

def compute_totals(expenses: Iterable[Expense]) -> ExpenseTotals:
    by_person = {person: ZERO for person in Person}
    total = ZERO
    for expense in expenses:
        by_person[expense.person] += expense.amount
        total += expense.amount
    return ExpenseTotals(total=total, by_person=by_person)


def person_balance(spent: Decimal, expected: Decimal) -> Decimal:
    """Positive when the person spent more than expected."""
    return spent - expected


def shared_account_remaining(balance: Decimal, month_total: Decimal) -> Decimal:
    """What is left in the shared account; negative when overspent."""
    return balance - month_total


def monthly_summary(
    expenses: Iterable[Expense],
    settings: SharedAccountSettings,
    month: Optional[str] = None,
    today: Optional[date] = None,
) -> MonthlySummary:
    """
    Dashboard figures for one month (the current month by default).

    Each person's balance is measured against an equal share of the
    month's total, so the two balances always sum to zero.
    """
    key = month or current_month_key(today)
    totals = compute_totals(filter_by_month(expenses, key))
    share = round_money(totals.total / len(Person))
    return MonthlySummary(
        month=key,
        totals=totals,
        shared_account_balance=settings.shared_account_balance,
        remaining_balance=shared_account_remaining(
            settings.shared_account_balance, totals.total
        ),
        person_balances={
            person: person_balance(totals.spent_by(person), share)
            for person in Person
        },
    )


def category_breakdown(expenses: Iterable[Expense]) -> list[CategoryBreakdownRow]:
    """
    Per-category totals, counts and per-person amounts.

    Only categories with at least one expense are returned, largest first.
    """
    rows: dict[ExpenseCategory, CategoryBreakdownRow] = {}
    for expense in expenses:
        row = rows.get(expense.category)
        if row is None:
            row = CategoryBreakdownRow(
                category=expense.category,
                total=ZERO,
                count=0,
                by_person={person: ZERO for person in Person},
            )
            rows[expense.category] = row
        row.total += expense.amount
        row.count += 1
        row.by_person[expense.person] += expense.amount
    return sorted(rows.values(), key=lambda r: (-r.total, r.category.value))


# =============================================================================
# STORE SUGGESTIONS
# =============================================================================

def unique_store_names(expenses: Iterable[Expense]) -> list[str]:
    names = {expense.store_name.strip() for expense in expenses}
    names.discard("")
    return sorted(names)


def suggest_stores(
    expenses: Iterable[Expense],
    typed: str,
    limit: int = 10,
) -> list[str]:
    """Previously used store names containing the typed text (case-insensitive)."""
    needle = (typed or "").strip().lower()
    names = unique_store_names(expenses)
    if needle:
        names = [name for name in names if needle in name.lower()]
    return names[:limit]
