"""
Tests for expense aggregation: months, ordering, paging, totals.
"""

from datetime import date
from decimal import Decimal

from conftest import build_expense
from expense_tracker.aggregation import (
    MonthWindow,
    available_months,
    category_breakdown,
    compute_totals,
    format_expense_date,
    format_month_display,
    month_key,
    monthly_summary,
    person_balance,
    select_expenses,
    shared_account_remaining,
    sort_expenses,
    suggest_stores,
)
from expense_tracker.models.expense import (
    ExpenseCategory,
    Person,
    SharedAccountSettings,
)


TODAY = date(2024, 3, 20)


class TestMonthKeys:
    """Month bucketing of DD/MM/YYYY dates."""

    def test_month_key(self):
        assert month_key("05/03/2024") == "2024-03"
        assert month_key("5/3/2024") == "2024-03"

    def test_malformed_dates_have_no_month(self):
        assert month_key("2024-03-05") is None
        assert month_key("05/13/2024") is None
        assert month_key("") is None

    def test_available_months_newest_first(self):
        expenses = [
            build_expense(1, date="10/01/2024"),
            build_expense(2, date="05/03/2024"),
            build_expense(3, date="28/01/2024"),
        ]
        assert available_months(expenses) == ["2024-03", "2024-01"]

    def test_display_helpers(self):
        assert format_month_display("2024-03") == "March 2024"
        assert format_expense_date(date(2024, 3, 5)) == "05/03/2024"


class TestSortExpenses:
    """Ordering of the expense list."""

    def test_date_descending_then_id_descending(self):
        expenses = [
            build_expense(100, date="01/03/2024"),
            build_expense(200, date="15/02/2024"),
            build_expense(300, date="01/03/2024"),
        ]
        assert [e.id for e in sort_expenses(expenses)] == [300, 100, 200]

    def test_uses_calendar_date_not_string_order(self):
        expenses = [
            build_expense(1, date="31/01/2024"),
            build_expense(2, date="01/02/2024"),
        ]
        assert [e.id for e in sort_expenses(expenses)] == [2, 1]


class TestMonthWindow:
    """Load-more paging over months."""

    def test_starts_at_current_month(self):
        expenses = [build_expense(1, date="05/01/2024")]
        window = MonthWindow(expenses, today=TODAY)

        assert window.months == ["2024-03", "2024-01"]
        assert window.visible_months == ["2024-03"]
        assert window.has_more

    def test_load_more_adds_next_month(self):
        expenses = [
            build_expense(1, date="05/01/2024"),
            build_expense(2, date="05/02/2024"),
            build_expense(3, date="05/03/2024"),
        ]
        window = MonthWindow(expenses, today=TODAY)

        assert window.load_more() == ["2024-03", "2024-02"]
        assert [e.id for e in window.visible_expenses(expenses)] == [3, 2]
        window.load_more()
        assert not window.has_more
        assert window.load_more() == ["2024-03", "2024-02", "2024-01"]

    def test_months_shown_is_clamped(self):
        window = MonthWindow([], today=TODAY, months_shown=5)
        assert window.months_shown == 1
        assert not window.has_more

    def test_search_month_overrides_window(self):
        expenses = [
            build_expense(1, date="05/01/2024"),
            build_expense(2, date="05/03/2024"),
        ]
        window = MonthWindow(expenses, today=TODAY)

        assert [e.id for e in select_expenses(expenses, window)] == [2]
        assert [e.id for e in select_expenses(expenses, window, "2024-01")] == [1]


class TestTotalsAndBalances:
    """Totals, person balances and the shared account."""

    def test_compute_totals(self):
        totals = compute_totals([
            build_expense(1, amount="10.10", person=Person.ANA),
            build_expense(2, amount="20.20", person=Person.HUSBAND),
            build_expense(3, amount="0.70", person=Person.ANA),
        ])
        assert totals.total == Decimal("31.00")
        assert totals.spent_by(Person.ANA) == Decimal("10.80")
        assert totals.spent_by(Person.HUSBAND) == Decimal("20.20")

    def test_empty_totals(self):
        totals = compute_totals([])
        assert totals.total == 0
        assert totals.spent_by(Person.ANA) == 0

    def test_balances_keep_sign(self):
        assert person_balance(Decimal("150"), Decimal("100")) == Decimal("50")
        assert person_balance(Decimal("80"), Decimal("100")) == Decimal("-20")
        assert shared_account_remaining(Decimal("100"), Decimal("130")) == Decimal("-30")

    def test_monthly_summary_uses_one_month(self):
        expenses = [
            build_expense(1, date="05/03/2024", amount="40"),
            build_expense(2, date="06/03/2024", amount="30", person=Person.HUSBAND),
            build_expense(3, date="05/02/2024", amount="500"),
        ]
        settings = SharedAccountSettings(shared_account_balance="100")

        summary = monthly_summary(expenses, settings, today=TODAY)

        assert summary.month == "2024-03"
        assert summary.totals.total == Decimal("70")
        assert summary.remaining_balance == Decimal("30")
        assert summary.balance_of(Person.ANA) == Decimal("5.00")
        assert summary.balance_of(Person.HUSBAND) == Decimal("-5.00")

        february = monthly_summary(expenses, settings, month="2024-02")
        assert february.remaining_balance == Decimal("-400")
        assert february.balance_of(Person.HUSBAND) == Decimal("-250.00")

    def test_summary_wire_shape(self):
        summary = monthly_summary(
            [build_expense(1, amount="12.5")],
            SharedAccountSettings(shared_account_balance="20"),
            month="2024-03",
        )
        body = summary.model_dump(by_alias=True, mode="json")
        assert body["sharedAccountBalance"] == 20.0
        assert body["remainingBalance"] == 7.5
        assert body["totals"] == {"total": 12.5, "byPerson": {"ana": 12.5, "husband": 0.0}}
        assert body["personBalances"] == {"ana": 6.25, "husband": -6.25}


class TestCategoryBreakdown:
    """Per-category rows."""

    def test_rows_largest_first(self):
        rows = category_breakdown([
            build_expense(1, amount="10", category=ExpenseCategory.BAKERY),
            build_expense(2, amount="50", category=ExpenseCategory.GROCERIES),
            build_expense(3, amount="15", category=ExpenseCategory.BAKERY, person=Person.HUSBAND),
        ])

        assert [row.category for row in rows] == [ExpenseCategory.GROCERIES, ExpenseCategory.BAKERY]
        bakery = rows[1]
        assert bakery.total == Decimal("25")
        assert bakery.count == 2
        assert bakery.spent_by(Person.ANA) == Decimal("10")
        assert bakery.spent_by(Person.HUSBAND) == Decimal("15")

    def test_empty_categories_are_omitted(self):
        assert category_breakdown([]) == []


class TestSuggestStores:
    """Store-name suggestions for the entry form."""

    def test_case_insensitive_contains(self):
        expenses = [
            build_expense(1, store_name="Shufersal"),
            build_expense(2, store_name="Super-Pharm"),
            build_expense(3, store_name="shufersal deal"),
            build_expense(4, store_name="Shufersal"),
        ]
        assert suggest_stores(expenses, "SHUF") == ["Shufersal", "shufersal deal"]

    def test_blank_input_lists_everything(self):
        expenses = [build_expense(i, store_name=f"Store {i}") for i in range(1, 15)]
        assert len(suggest_stores(expenses, "")) == 10
