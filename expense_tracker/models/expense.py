"""
Core Data Models for Expense Tracker

These models define the strict schemas for all data flowing through the system:
expenses, store-name conversion entries, the shared-account settings document,
receipt extraction results and the aggregates shown on the dashboard.

DESIGN DECISION: Money is held as Decimal (2 dp, half-up) inside the system
and serialized as a JSON number at the edges. Wire names are camelCase
(storeName, createdAt, sharedAccountBalance); either name is accepted on input.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# LIMITS
# =============================================================================

MAX_EXPENSE_AMOUNT = Decimal("999999")
MAX_STORE_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_COMMENT_LENGTH = 500
EXPENSE_DATE_FORMAT = "%d/%m/%Y"
EXPENSE_DATE_PATTERN = r"^\d{1,2}/\d{1,2}/\d{4}$"
UNKNOWN_STORE = "Unknown"

CENT = Decimal("0.01")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def round_money(value: Any) -> Decimal:
    """
    Quantize a money value to 2 decimal places (half-up).

    Raises ValueError for anything that is not a finite number.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError("Amount must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"Amount must be a number, got {value!r}")
    if not amount.is_finite():
        raise ValueError("Amount must be a finite number")
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Amount is out of range, got {value!r}")


def format_amount(value: Any) -> str:
    """
    Render an amount the way the entry form shows it.

    12.5 -> "12.5", 12.0 -> "12", 12.25 -> "12.25"
    """
    text = f"{round_money(value):.2f}"
    return text.rstrip("0").rstrip(".")


def parse_expense_date(value: str) -> Optional[datetime]:
    """Parse a DD/MM/YYYY expense date. Returns None when malformed."""
    try:
        return datetime.strptime(value.strip(), EXPENSE_DATE_FORMAT)
    except (AttributeError, ValueError):
        return None


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ExpenseCategory(str, Enum):
    """
    Supported expense categories.

    The values are stored in the document store as-is.
    """
    GROCERIES = "groceries"
    BAKERY = "bakery"
    PHARM = "pharm"
    RESTAURANT = "restaurant"
    ENTERTAINMENT = "entertainment"
    BEAUTY = "beauty"
    TRANSPORT = "transport"
    HEALTH = "health"
    CLOTHING = "clothing"
    SUBSCRIPTIONS = "subscriptions"
    ELECTRONICS = "electronics"
    TRAVEL = "travel"
    EDUCATION = "education"
    GIFTS = "gifts"
    APARTMENT = "apartment"
    ELECTRICITY = "electricity"
    WATER = "water"
    GAS = "gas"
    INTERNET = "internet"
    INSURANCE = "insurance"
    MOBILE = "mobile"
    OTHER = "other"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class Person(str, Enum):
    """Who paid for an expense."""
    ANA = "ana"
    HUSBAND = "husband"

    @property
    def display_name(self) -> str:
        return PERSON_DISPLAY_NAMES[self]


PERSON_DISPLAY_NAMES = {
    Person.ANA: "Ana",
    Person.HUSBAND: "Eido",
}


# =============================================================================
# EXPENSES
# =============================================================================

class NewExpense(BaseModel):
    """
    Validated input for creating an expense.

    The server assigns id and createdAt; everything else comes from the user
    (or from a receipt prefill the user has reviewed).
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    description: str = Field(
        default="",
        max_length=MAX_DESCRIPTION_LENGTH,
        description="Free-text note"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        le=MAX_EXPENSE_AMOUNT,
        description="Amount in ₪, rounded to 2 decimals"
    )
    category: ExpenseCategory
    person: Person
    store_name: str = Field(
        ...,
        min_length=1,
        max_length=MAX_STORE_NAME_LENGTH,
        description="Store name as entered"
    )
    date: str = Field(
        ...,
        pattern=EXPENSE_DATE_PATTERN,
        description="Purchase day as DD/MM/YYYY"
    )

    @field_validator('amount', mode='before')
    @classmethod
    def round_amount(cls, v: Any) -> Decimal:
        return round_money(v)

    @field_validator('description', mode='before')
    @classmethod
    def default_description(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_serializer('amount')
    def serialize_amount(self, v: Decimal) -> float:
        return float(v)


class Expense(NewExpense):
    """
    A persisted expense record.

    Immutable once created; removed only by an explicit delete.
    """

    id: int = Field(
        ...,
        gt=0,
        description="Millisecond creation timestamp, unique per record"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the record was created"
    )

    @classmethod
    def from_new(
        cls,
        new_expense: NewExpense,
        expense_id: int,
        created_at: Optional[datetime] = None,
    ) -> "Expense":
        return cls(
            id=expense_id,
            created_at=created_at or utc_now(),
            **new_expense.model_dump(),
        )

    @property
    def calendar_date(self) -> Optional[datetime]:
        return parse_expense_date(self.date)

    def to_document(self) -> dict:
        """Convert to the document layout used by the expenses collection."""
        document = self.model_dump(by_alias=True)
        document["category"] = self.category.value
        document["person"] = self.person.value
        return document


# =============================================================================
# CONVERSION TABLE
# =============================================================================

class ConversionEntry(BaseModel):
    """
    Maps a noisy store name (as a vision model reads it) to a canonical
    store name and category.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(
        ...,
        ge=1,
        description="Sequential identifier (max + 1)"
    )
    id_name: str = Field(
        ...,
        min_length=1,
        max_length=MAX_STORE_NAME_LENGTH,
        description="Lowercased matching key"
    )
    store_name: str = Field(
        ...,
        min_length=1,
        max_length=MAX_STORE_NAME_LENGTH,
        description="Canonical store name"
    )
    category: ExpenseCategory
    comment: str = Field(
        default="",
        max_length=MAX_COMMENT_LENGTH,
    )

    @field_validator('id_name')
    @classmethod
    def lowercase_id_name(cls, v: str) -> str:
        return v.lower()

    @field_validator('comment', mode='before')
    @classmethod
    def default_comment(cls, v: Any) -> Any:
        return "" if v is None else v


# =============================================================================
# SETTINGS
# =============================================================================

class SharedAccountSettings(BaseModel):
    """
    The singleton settings document.

    Only the latest value is kept; writes are last-write-wins.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    shared_account_balance: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Current balance of the shared account in ₪"
    )
    updated_at: Optional[datetime] = None

    @field_validator('shared_account_balance', mode='before')
    @classmethod
    def round_balance(cls, v: Any) -> Decimal:
        return round_money(v)

    @field_serializer('shared_account_balance')
    def serialize_balance(self, v: Decimal) -> float:
        return float(v)


# =============================================================================
# RECEIPT PROCESSING
# =============================================================================

class VisionResult(BaseModel):
    """Raw answer from the first vision model that responded."""

    raw_text: str
    model: str = Field(
        ...,
        description="Full model identifier, e.g. qwen/qwen2.5-vl-72b-instruct:free"
    )

    @property
    def short_model(self) -> str:
        return short_model_name(self.model)


def short_model_name(model: str) -> str:
    """Drop the provider prefix: 'google/gemma-3-27b:free' -> 'gemma-3-27b:free'."""
    return model.split("/", 1)[1] if "/" in model else model


class ExtractedReceiptData(BaseModel):
    """
    Store name and total recovered from a model answer.

    CRITICAL: This is a PROPOSAL. It pre-fills the entry form and is only
    saved after the user submits it.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    store_name: str = Field(
        default=UNKNOWN_STORE,
        min_length=1,
        max_length=MAX_STORE_NAME_LENGTH,
    )
    total_amount: float = Field(
        default=0.0,
        ge=0,
        le=float(MAX_EXPENSE_AMOUNT),
    )


class ReceiptPrefill(BaseModel):
    """Values used to pre-fill the expense form after a scan."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    store_name: str
    amount: str = Field(
        ...,
        description="Amount as the form shows it, e.g. '12.5'"
    )
    category: Optional[ExpenseCategory] = None
    description: str = ""
    converted: bool = Field(
        default=False,
        description="True when a conversion entry supplied name and category"
    )


class ReceiptScanResult(BaseModel):
    """Everything the receipt endpoint returns on success."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    data: ExtractedReceiptData
    used_model: str
    raw_response: str
    prefill: ReceiptPrefill

    def to_response(self) -> dict:
        return {"success": True, **self.model_dump(by_alias=True, mode="json")}


# =============================================================================
# AGGREGATES
# =============================================================================

class ExpenseTotals(BaseModel):
    """Grand total and per-person totals for a set of expenses."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    total: Decimal = Decimal("0")
    by_person: dict[Person, Decimal] = Field(
        default_factory=lambda: {person: Decimal("0") for person in Person}
    )

    def spent_by(self, person: Person) -> Decimal:
        return self.by_person.get(person, Decimal("0"))

    @field_serializer('total')
    def serialize_total(self, v: Decimal) -> float:
        return float(v)

    @field_serializer('by_person')
    def serialize_by_person(self, v: dict[Person, Decimal]) -> dict[str, float]:
        return {person.value: float(amount) for person, amount in v.items()}


class MonthlySummary(BaseModel):
    """Dashboard figures for one month."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    month: str = Field(
        ...,
        description="Month key, YYYY-MM"
    )
    totals: ExpenseTotals
    shared_account_balance: Decimal
    remaining_balance: Decimal = Field(
        ...,
        description="Shared balance minus this month's spend; negative when overspent"
    )
    person_balances: dict[Person, Decimal] = Field(
        default_factory=dict,
        description="Spend minus an equal share of the month's total; positive means owed money"
    )

    def balance_of(self, person: Person) -> Decimal:
        return self.person_balances.get(person, Decimal("0"))

    @field_serializer('shared_account_balance', 'remaining_balance')
    def serialize_money(self, v: Decimal) -> float:
        return float(v)

    @field_serializer('person_balances')
    def serialize_balances(self, v: dict[Person, Decimal]) -> dict[str, float]:
        return {person.value: float(amount) for person, amount in v.items()}


class CategoryBreakdownRow(BaseModel):
    """One row of the per-category breakdown."""

    category: ExpenseCategory
    total: Decimal
    count: int = Field(ge=0)
    by_person: dict[Person, Decimal]

    def spent_by(self, person: Person) -> Decimal:
        return self.by_person.get(person, Decimal("0"))


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'too_long')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of validating user input.

    All issues are collected; nothing is corrected silently.
    """

    validated_at: datetime = Field(
        default_factory=utc_now
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def messages(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "error"]
