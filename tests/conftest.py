"""
Shared fixtures for Expense Tracker tests.

Test strategy:
1. Unit tests for individual components (models, extractor, aggregator)
2. Integration tests for flows and the HTTP API (in-memory storage)
3. No real API calls in tests (fake vision models, mocked SDK clients)
"""

import base64
from decimal import Decimal
from typing import Optional

import pytest

from expense_tracker.audit import AuditLogger
from expense_tracker.conversion import StoreConversionTable
from expense_tracker.models.expense import (
    ConversionEntry,
    Expense,
    ExpenseCategory,
    Person,
)
from expense_tracker.orchestrator import ExpenseFlow, ExpenseIdGenerator, ReceiptScanFlow
from expense_tracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryConversionStorage,
    InMemoryExpenseStorage,
    InMemorySettingsStorage,
)
from expense_tracker.services.vision import VisionModel, VisionModelFallbackChain


SAMPLE_IMAGE = "data:image/png;base64," + base64.b64encode(b"\x89PNG fake receipt bytes").decode()

WALMART_ANSWER = 'Based on the receipt: {"storeName":"Walmart","totalAmount":"12.50"}'


class FakeVisionModel(VisionModel):
    """Vision model that returns a canned answer or raises a canned error."""

    def __init__(self, name: str, response: Optional[str] = None, error: Optional[Exception] = None):
        super().__init__(name)
        self.response = response
        self.error = error
        self.calls = 0
        self.prompts: list[str] = []

    async def describe_receipt(self, image: str, prompt: str) -> str:
        self.calls += 1
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


def build_expense(
    expense_id: int = 1,
    date: str = "05/03/2024",
    amount: str = "10.00",
    person: Person = Person.ANA,
    category: ExpenseCategory = ExpenseCategory.GROCERIES,
    store_name: str = "Shufersal",
    description: str = "",
) -> Expense:
    return Expense(
        id=expense_id,
        date=date,
        amount=Decimal(amount),
        person=person,
        category=category,
        store_name=store_name,
        description=description,
    )


@pytest.fixture
def make_expense():
    """Factory for Expense records with sensible defaults."""
    return build_expense


@pytest.fixture
def expense_storage() -> InMemoryExpenseStorage:
    return InMemoryExpenseStorage()


@pytest.fixture
def settings_storage() -> InMemorySettingsStorage:
    return InMemorySettingsStorage()


@pytest.fixture
def conversion_storage() -> InMemoryConversionStorage:
    return InMemoryConversionStorage([
        ConversionEntry(
            id=1,
            id_name="edeka",
            store_name="EDEKA Markt",
            category=ExpenseCategory.GROCERIES,
            comment="German supermarket",
        ),
        ConversionEntry(
            id=2,
            id_name="super-pharm",
            store_name="Super-Pharm",
            category=ExpenseCategory.PHARM,
        ),
    ])


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def expense_flow(expense_storage, settings_storage, audit_logger) -> ExpenseFlow:
    return ExpenseFlow(
        expense_storage=expense_storage,
        settings_storage=settings_storage,
        audit_logger=audit_logger,
        id_generator=ExpenseIdGenerator(clock=lambda: 1_700_000_000.0),
        default_balance=Decimal("0"),
    )


@pytest.fixture
def conversion_table(conversion_storage, audit_logger) -> StoreConversionTable:
    return StoreConversionTable(conversion_storage, audit_logger)


@pytest.fixture
def make_receipt_flow(conversion_table, audit_logger):
    """Factory: ReceiptScanFlow over the given fake models."""

    def factory(*models: VisionModel) -> ReceiptScanFlow:
        return ReceiptScanFlow(
            vision_chain=VisionModelFallbackChain(list(models)),
            conversion_table=conversion_table,
            audit_logger=audit_logger,
            max_image_bytes=1024 * 1024,
        )

    return factory
