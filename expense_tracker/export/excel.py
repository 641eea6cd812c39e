"""
Spreadsheet Export

Builds the downloadable expenses report with openpyxl. Three sheets:

- "Expenses": one row per expense
- "Summary": totals, shared account balance, per-person spend and balances
- "Category Breakdown": per-category totals and counts

Sheet names and column headers are read by people who keep the exported
files, so they stay fixed.
"""

from datetime import date
from io import BytesIO
from typing import Iterable, Optional

import structlog
from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from expense_tracker.aggregation import (
    category_breakdown,
    compute_totals,
    format_month_display,
    monthly_summary,
    sort_expenses,
)
from expense_tracker.models.expense import (
    Expense,
    Person,
    SharedAccountSettings,
)


logger = structlog.get_logger(__name__)

EXPENSES_SHEET = "Expenses"
SUMMARY_SHEET = "Summary"
BREAKDOWN_SHEET = "Category Breakdown"

EXPENSE_HEADERS = ["Date", "Store Name", "Category", "Person", "Amount (₪)", "Description"]
EXPENSE_WIDTHS = [12, 20, 15, 10, 12, 30]

SUMMARY_HEADERS = ["Category", "Amount (₪)"]
SUMMARY_WIDTHS = [25, 15]

BREAKDOWN_HEADERS = [
    "Category",
    "Total Amount (₪)",
    "Number of Expenses",
    f"{Person.ANA.display_name} Amount (₪)",
    f"{Person.HUSBAND.display_name} Amount (₪)",
]
BREAKDOWN_WIDTHS = [15, 15, 18, 15, 15]


def _money(value) -> str:
    return f"{value:.2f}"


def export_filename(today: Optional[date] = None) -> str:
    """expenses-report-YYYY-MM-DD.xlsx"""
    return f"expenses-report-{(today or date.today()).isoformat()}.xlsx"


def _write_sheet(
    ws: Worksheet,
    headers: list[str],
    rows: Iterable[list],
    widths: list[int],
) -> None:
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append(row)
    for index, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(index)].width = width


class ExpenseWorkbookBuilder:
    """
    Builds the three-sheet report for a set of expenses.
    """

    def __init__(
        self,
        expenses: Iterable[Expense],
        settings: SharedAccountSettings,
        today: Optional[date] = None,
    ):
        self._expenses = sort_expenses(expenses)
        self._settings = settings
        self._today = today or date.today()

    def build(self) -> Workbook:
        workbook = Workbook()
        # Drop the default empty sheet
        workbook.remove(workbook.active)

        _write_sheet(
            workbook.create_sheet(EXPENSES_SHEET),
            EXPENSE_HEADERS,
            self._expense_rows(),
            EXPENSE_WIDTHS,
        )
        _write_sheet(
            workbook.create_sheet(SUMMARY_SHEET),
            SUMMARY_HEADERS,
            self._summary_rows(),
            SUMMARY_WIDTHS,
        )
        _write_sheet(
            workbook.create_sheet(BREAKDOWN_SHEET),
            BREAKDOWN_HEADERS,
            self._breakdown_rows(),
            BREAKDOWN_WIDTHS,
        )
        return workbook

    def to_bytes(self) -> bytes:
        buffer = BytesIO()
        self.build().save(buffer)
        logger.info("workbook_exported", expenses=len(self._expenses))
        return buffer.getvalue()

    def _expense_rows(self) -> list[list]:
        return [
            [
                expense.date,
                expense.store_name,
                expense.category.value,
                expense.person.display_name,
                float(expense.amount),
                expense.description,
            ]
            for expense in self._expenses
        ]

    def _summary_rows(self) -> list[list]:
        all_totals = compute_totals(self._expenses)
        month = monthly_summary(self._expenses, self._settings, today=self._today)
        return [
            ["Total Expenses", _money(all_totals.total)],
            [f"Monthly Spending ({format_month_display(month.month)})", _money(month.totals.total)],
            ["Shared Account Balance", _money(month.shared_account_balance)],
            ["Remaining Balance", _money(month.remaining_balance)],
            ["", ""],
            [
                f"{Person.ANA.display_name} - Actual Spent",
                _money(month.totals.spent_by(Person.ANA)),
            ],
            [
                f"{Person.HUSBAND.display_name} - Actual Spent",
                _money(month.totals.spent_by(Person.HUSBAND)),
            ],
            [
                f"{Person.ANA.display_name} - Balance",
                _money(month.balance_of(Person.ANA)),
            ],
            [
                f"{Person.HUSBAND.display_name} - Balance",
                _money(month.balance_of(Person.HUSBAND)),
            ],
            ["", ""],
            ["Export Date", self._today.strftime("%d/%m/%Y")],
        ]

    def _breakdown_rows(self) -> list[list]:
        return [
            [
                row.category.value,
                _money(row.total),
                row.count,
                _money(row.spent_by(Person.ANA)),
                _money(row.spent_by(Person.HUSBAND)),
            ]
            for row in category_breakdown(self._expenses)
        ]
