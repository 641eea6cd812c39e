"""
Input Validation

Every write that comes from a user (new expense, conversion entry,
settings) is checked here before it reaches storage.

IMPORTANT: Validation NEVER silently fixes issues.
All violations are collected and reported together so the form can
show every problem at once. The only normalization is the documented
one: trimming text and rounding amounts to 2 decimals.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from pydantic import ValidationError

from expense_tracker.models.expense import (
    EXPENSE_DATE_FORMAT,
    MAX_COMMENT_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    MAX_EXPENSE_AMOUNT,
    MAX_STORE_NAME_LENGTH,
    ExpenseCategory,
    NewExpense,
    Person,
    ValidationIssue,
    ValidationResult,
    parse_expense_date,
    round_money,
)


AMOUNT_MESSAGE = "Amount must be a positive number less than 1,000,000"
STORE_NAME_MESSAGE = f"Store name must be between 1-{MAX_STORE_NAME_LENGTH} characters"
DESCRIPTION_MESSAGE = f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters"
CATEGORY_MESSAGE = "Invalid category"
PERSON_MESSAGE = "Invalid person"
DATE_MESSAGE = "Date must be a valid day in DD/MM/YYYY format"
BALANCE_MESSAGE = "Invalid shared account balance value"

CATEGORY_VALUES = frozenset(c.value for c in ExpenseCategory)
PERSON_VALUES = frozenset(p.value for p in Person)


def _pick(payload: dict, *keys: str) -> Any:
    """First present key, so both camelCase and snake_case input work."""
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _error(field: str, issue_type: str, message: str) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
    )


class ExpenseValidator:
    """
    Validates user input for expenses, conversion entries and settings.
    """

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    def validate_new_expense(
        self,
        payload: dict,
        today: Optional[date] = None,
    ) -> tuple[ValidationResult, Optional[NewExpense]]:
        """
        Validate a new-expense payload.

        Returns:
            (result, expense) - expense is None whenever result has errors
        """
        issues: list[ValidationIssue] = []

        amount = self._check_amount(_pick(payload, "amount"), issues)

        store_name = _pick(payload, "storeName", "store_name")
        if not isinstance(store_name, str) or not (
            1 <= len(store_name.strip()) <= MAX_STORE_NAME_LENGTH
        ):
            issues.append(_error("storeName", "invalid_length", STORE_NAME_MESSAGE))

        description = _pick(payload, "description")
        if description is None:
            description = ""
        if not isinstance(description, str):
            issues.append(_error("description", "invalid_type", "Description must be text"))
        elif len(description.strip()) > MAX_DESCRIPTION_LENGTH:
            issues.append(_error("description", "too_long", DESCRIPTION_MESSAGE))

        category = _pick(payload, "category")
        if not isinstance(category, str) or category not in CATEGORY_VALUES:
            issues.append(_error("category", "invalid_value", CATEGORY_MESSAGE))

        person = _pick(payload, "person")
        if not isinstance(person, str) or person not in PERSON_VALUES:
            issues.append(_error("person", "invalid_value", PERSON_MESSAGE))

        expense_date = _pick(payload, "date")
        if expense_date is None or expense_date == "":
            expense_date = (today or date.today()).strftime(EXPENSE_DATE_FORMAT)
        elif not isinstance(expense_date, str) or parse_expense_date(expense_date) is None:
            issues.append(_error("date", "invalid_format", DATE_MESSAGE))

        result = ValidationResult(issues=issues)
        if result.has_errors:
            return result, None

        try:
            expense = NewExpense(
                description=description,
                amount=amount,
                category=category,
                person=person,
                store_name=store_name,
                date=expense_date,
            )
        except ValidationError as e:
            for error in e.errors():
                field = ".".join(str(part) for part in error["loc"]) or "expense"
                issues.append(_error(field, "invalid_value", error["msg"]))
            return ValidationResult(issues=issues), None

        return result, expense

    def _check_amount(self, value: Any, issues: list[ValidationIssue]) -> Optional[Decimal]:
        if isinstance(value, str):
            value = value.strip()
        try:
            amount = round_money(value)
        except ValueError:
            issues.append(_error("amount", "invalid_type", AMOUNT_MESSAGE))
            return None
        if amount <= 0 or amount > MAX_EXPENSE_AMOUNT:
            issues.append(_error("amount", "out_of_range", AMOUNT_MESSAGE))
            return None
        return amount

    # -------------------------------------------------------------------------
    # Conversion entries
    # -------------------------------------------------------------------------

    def validate_conversion_entry(
        self,
        payload: dict,
        require_id: bool = False,
    ) -> tuple[ValidationResult, dict]:
        """
        Validate a conversion entry payload (POST, or PUT with require_id).

        Returns:
            (result, cleaned) - cleaned holds trimmed values ready for the table
        """
        issues: list[ValidationIssue] = []
        cleaned: dict[str, Any] = {}

        if require_id:
            entry_id = payload.get("id")
            if isinstance(entry_id, bool) or not isinstance(entry_id, int) or entry_id < 1:
                issues.append(_error("id", "invalid_value", "Valid id is required"))
            else:
                cleaned["entry_id"] = entry_id

        for field in ("id_name", "store_name"):
            value = payload.get(field)
            if not isinstance(value, str) or not value.strip():
                issues.append(_error(field, "missing", f"{field} is required"))
            elif len(value.strip()) > MAX_STORE_NAME_LENGTH:
                issues.append(_error(
                    field,
                    "too_long",
                    f"{field} cannot exceed {MAX_STORE_NAME_LENGTH} characters",
                ))
            else:
                cleaned[field] = value.strip()

        category = payload.get("category")
        if category is None or category == "":
            issues.append(_error("category", "missing", "category is required"))
        elif not isinstance(category, str) or category not in CATEGORY_VALUES:
            issues.append(_error("category", "invalid_value", CATEGORY_MESSAGE))
        else:
            cleaned["category"] = ExpenseCategory(category)

        comment = payload.get("comment") or ""
        if not isinstance(comment, str):
            issues.append(_error("comment", "invalid_type", "comment must be text"))
        elif len(comment.strip()) > MAX_COMMENT_LENGTH:
            issues.append(_error(
                "comment",
                "too_long",
                f"comment cannot exceed {MAX_COMMENT_LENGTH} characters",
            ))
        else:
            cleaned["comment"] = comment.strip()

        if "id_name" in cleaned:
            cleaned["id_name"] = cleaned["id_name"].lower()

        return ValidationResult(issues=issues), cleaned

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def validate_settings(
        self,
        payload: dict,
    ) -> tuple[ValidationResult, Optional[Decimal]]:
        """
        The balance must be a JSON number (not a string or bool) and >= 0.
        """
        value = _pick(payload, "sharedAccountBalance", "shared_account_balance")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return ValidationResult(issues=[
                _error("sharedAccountBalance", "invalid_type", BALANCE_MESSAGE)
            ]), None
        try:
            balance = round_money(value)
        except ValueError:
            balance = None
        if balance is None or balance < 0:
            return ValidationResult(issues=[
                _error("sharedAccountBalance", "out_of_range", BALANCE_MESSAGE)
            ]), None
        return ValidationResult(), balance

    # -------------------------------------------------------------------------
    # Presentation
    # -------------------------------------------------------------------------

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Summary shown above the form.
        """
        if result.is_valid:
            return "✅ All checks passed!"
        lines = ["❌ Please fix the following:"]
        lines.extend(f"   • {message}" for message in result.messages)
        return "\n".join(lines)
