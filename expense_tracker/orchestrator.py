"""
Main Orchestrator for Expense Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Expenses (validate → assign id → save → audit), settings and summaries
2. Receipt scan (image → vision fallback chain → extract → convert → prefill)

The orchestrator enforces the boundaries:
- A scanned receipt only pre-fills the form; nothing is saved until
  the user submits it as a normal expense
- Invalid input is rejected with every violation listed
- Every user action is audited

Both the HTTP API and the Streamlit UI go through these flows.
"""

import time
from datetime import date
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from expense_tracker.aggregation import monthly_summary
from expense_tracker.audit import AuditLogger, create_correlation_id
from expense_tracker.config import get_settings
from expense_tracker.conversion import StoreConversionTable
from expense_tracker.export import ExpenseWorkbookBuilder
from expense_tracker.extraction import ReceiptTextExtractor
from expense_tracker.models.audit import AuditEventBuilder
from expense_tracker.models.expense import (
    Expense,
    MonthlySummary,
    ReceiptScanResult,
    SharedAccountSettings,
    ValidationIssue,
    ValidationResult,
)
from expense_tracker.services.storage import (
    ExpenseStorageInterface,
    InMemoryConversionStorage,
    InMemoryExpenseStorage,
    InMemorySettingsStorage,
    MongoAuditStorage,
    MongoConversionStorage,
    MongoDBClient,
    MongoExpenseStorage,
    MongoSettingsStorage,
    NotFoundError,
    SettingsStorageInterface,
    StorageError,
)
from expense_tracker.services.vision import (
    AllModelsFailedError,
    VisionModelError,
    VisionModelFallbackChain,
    build_fallback_chain,
    image_payload_size,
)
from expense_tracker.validation import ExpenseValidator


logger = structlog.get_logger(__name__)


class InvalidInputError(Exception):
    """User input failed validation; carries every issue found."""

    def __init__(self, result: ValidationResult, message: str = "Validation failed"):
        super().__init__(message)
        self.result = result

    @property
    def messages(self) -> list[str]:
        return self.result.messages


class ExpenseIdGenerator:
    """
    Millisecond-timestamp ids, strictly increasing within the process.

    Two expenses created in the same millisecond get consecutive ids.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0

    def next_id(self) -> int:
        candidate = int(self._clock() * 1000)
        self._last = max(candidate, self._last + 1)
        return self._last


class ExpenseFlow:
    """
    Expense, settings and summary operations.
    """

    def __init__(
        self,
        expense_storage: ExpenseStorageInterface,
        settings_storage: SettingsStorageInterface,
        validator: Optional[ExpenseValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        id_generator: Optional[ExpenseIdGenerator] = None,
        default_balance: Optional[Decimal] = None,
    ):
        self._expense_storage = expense_storage
        self._settings_storage = settings_storage
        self._validator = validator or ExpenseValidator()
        self._audit_logger = audit_logger
        self._ids = id_generator or ExpenseIdGenerator()
        if default_balance is None:
            default_balance = Decimal(str(get_settings().app.default_shared_account_balance))
        self._default_balance = default_balance

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def list_expenses(self) -> list[Expense]:
        """All expenses, newest first by id."""
        return await self._expense_storage.list_expenses()

    async def add_expense(
        self,
        payload: dict,
        correlation_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> Expense:
        """
        Validate and save a new expense.

        Raises:
            InvalidInputError: With every violation when the payload is invalid
            StorageError: If the save fails
        """
        result, new_expense = self._validator.validate_new_expense(payload, today=today)
        if new_expense is None:
            await self._audit(AuditEventBuilder.validation_failed(
                entity_type="expense",
                issues=[issue.model_dump() for issue in result.issues],
                correlation_id=correlation_id,
            ))
            raise InvalidInputError(result)

        expense = Expense.from_new(new_expense, self._ids.next_id())
        try:
            await self._expense_storage.insert_expense(expense)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="mongodb",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        await self._audit(AuditEventBuilder.expense_added(
            expense_id=expense.id,
            store_name=expense.store_name,
            amount=f"{expense.amount:.2f}",
            person=expense.person.value,
            correlation_id=correlation_id,
        ))
        return expense

    async def delete_expense(
        self,
        expense_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Raises:
            NotFoundError: If no expense has this id
        """
        if not await self._expense_storage.delete_expense(expense_id):
            raise NotFoundError(f"Expense not found: {expense_id}")
        await self._audit(AuditEventBuilder.expense_deleted(
            expense_id=expense_id,
            correlation_id=correlation_id,
        ))

    async def clear_all(self) -> tuple[int, int]:
        """
        Delete every expense one by one, then reset the settings.

        Best effort: a failed delete is counted and skipped, nothing is
        rolled back.

        Returns:
            (deleted, failed)
        """
        correlation_id = create_correlation_id()
        deleted = failed = 0

        for expense in await self._expense_storage.list_expenses():
            try:
                if await self._expense_storage.delete_expense(expense.id):
                    deleted += 1
                else:
                    failed += 1
            except StorageError as e:
                failed += 1
                logger.warning("clear_all_delete_failed", expense_id=expense.id, error=str(e))

        await self._settings_storage.upsert_settings(self.default_settings())
        await self._audit(AuditEventBuilder.data_cleared(
            deleted=deleted,
            failed=failed,
            correlation_id=correlation_id,
        ))
        return deleted, failed

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def default_settings(self) -> SharedAccountSettings:
        return SharedAccountSettings(shared_account_balance=self._default_balance)

    async def get_settings(self) -> SharedAccountSettings:
        """Stored settings, or the defaults when none were saved yet."""
        return await self._settings_storage.get_settings() or self.default_settings()

    async def update_settings(
        self,
        payload: dict,
        correlation_id: Optional[UUID] = None,
    ) -> SharedAccountSettings:
        """
        Raises:
            InvalidInputError: If the balance is not a number >= 0
        """
        result, balance = self._validator.validate_settings(payload)
        if balance is None:
            raise InvalidInputError(result, message=result.messages[0])

        saved = await self._settings_storage.upsert_settings(
            SharedAccountSettings(shared_account_balance=balance)
        )
        await self._audit(AuditEventBuilder.settings_updated(
            shared_account_balance=f"{saved.shared_account_balance:.2f}",
            correlation_id=correlation_id,
        ))
        return saved

    # -------------------------------------------------------------------------
    # Summaries & export
    # -------------------------------------------------------------------------

    async def get_summary(
        self,
        month: Optional[str] = None,
        today: Optional[date] = None,
    ) -> MonthlySummary:
        expenses = await self._expense_storage.list_expenses()
        return monthly_summary(expenses, await self.get_settings(), month=month, today=today)

    async def export_workbook(self, today: Optional[date] = None) -> bytes:
        expenses = await self._expense_storage.list_expenses()
        builder = ExpenseWorkbookBuilder(expenses, await self.get_settings(), today=today)
        return builder.to_bytes()

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)


class ReceiptScanFlow:
    """
    Orchestrates a receipt scan.

    Flow:
    1. Check the image payload (present, within the upload limit)
    2. Vision fallback chain → raw answer from the first model that responds
    3. Extract storeName / totalAmount from the answer
    4. Apply the conversion table → form prefill

    The result is a PROPOSAL for the entry form. The user reviews it and
    submits it as a normal expense.
    """

    def __init__(
        self,
        vision_chain: VisionModelFallbackChain,
        conversion_table: StoreConversionTable,
        extractor: Optional[ReceiptTextExtractor] = None,
        audit_logger: Optional[AuditLogger] = None,
        max_image_bytes: Optional[int] = None,
    ):
        self._vision_chain = vision_chain
        self._conversion_table = conversion_table
        self._extractor = extractor or ReceiptTextExtractor()
        self._audit_logger = audit_logger
        self._max_image_bytes = max_image_bytes or get_settings().app.max_upload_size_bytes

    @property
    def conversion_table(self) -> StoreConversionTable:
        return self._conversion_table

    @property
    def vision_chain(self) -> VisionModelFallbackChain:
        return self._vision_chain

    def check_image(self, image: Optional[str]) -> str:
        """
        Raises:
            InvalidInputError: If the image is missing or too large
        """
        if not isinstance(image, str) or not image.strip():
            raise InvalidInputError(
                ValidationResult(issues=[ValidationIssue(
                    field="image",
                    issue_type="missing",
                    message="No image provided",
                )]),
                message="No image provided",
            )
        if image_payload_size(image) > self._max_image_bytes:
            limit_mb = self._max_image_bytes // (1024 * 1024)
            raise InvalidInputError(
                ValidationResult(issues=[ValidationIssue(
                    field="image",
                    issue_type="too_large",
                    message=f"Image exceeds the {limit_mb} MB upload limit",
                )]),
                message="Image too large",
            )
        return image.strip()

    async def scan(
        self,
        image: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> ReceiptScanResult:
        """
        Scan a receipt image.

        Raises:
            InvalidInputError: If the image is missing or too large
            AllModelsFailedError: If no vision model answered
        """
        correlation_id = correlation_id or create_correlation_id()
        image = self.check_image(image)

        async def on_model_failure(error: VisionModelError) -> None:
            await self._audit(AuditEventBuilder.vision_model_failed(
                model=error.model,
                error_message=error.message,
                error_code=error.code,
                correlation_id=correlation_id,
            ))

        try:
            vision = await self._vision_chain.run(image, on_failure=on_model_failure)
        except AllModelsFailedError as e:
            last_error = e.last_error
            await self._audit(AuditEventBuilder.all_models_failed(
                attempted=e.attempted_models,
                last_error=str(last_error) if last_error else None,
                error_code=e.error_code,
                correlation_id=correlation_id,
            ))
            raise

        extracted = self._extractor.extract(vision.raw_text)
        prefill = await self._conversion_table.apply(extracted, correlation_id=correlation_id)

        await self._audit(AuditEventBuilder.receipt_scanned(
            model=vision.model,
            store_name=extracted.store_name,
            total_amount=extracted.total_amount,
            correlation_id=correlation_id,
        ))
        return ReceiptScanResult(
            data=extracted,
            used_model=vision.short_model,
            raw_response=vision.raw_text,
            prefill=prefill,
        )

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)


def create_app_components(
    use_storage: bool = True,
) -> tuple[ExpenseFlow, ReceiptScanFlow, Optional[MongoDBClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use MongoDB.
                    Set to False to run on in-memory storage.

    Returns:
        (expense_flow, receipt_flow, mongo_client)
    """
    mongo_client = None

    if use_storage:
        try:
            mongo_client = MongoDBClient()
        except ValidationError as e:
            # MongoDB not configured - continue on in-memory storage
            logger.warning("storage_not_configured", error=str(e))
            mongo_client = None

    if mongo_client is not None:
        expense_storage = MongoExpenseStorage(mongo_client)
        settings_storage = MongoSettingsStorage(mongo_client)
        conversion_storage = MongoConversionStorage(mongo_client)
        audit_logger = AuditLogger(MongoAuditStorage(mongo_client))
    else:
        expense_storage = InMemoryExpenseStorage()
        settings_storage = InMemorySettingsStorage()
        conversion_storage = InMemoryConversionStorage()
        audit_logger = AuditLogger()  # Local-only logging

    expense_flow = ExpenseFlow(
        expense_storage=expense_storage,
        settings_storage=settings_storage,
        audit_logger=audit_logger,
    )
    receipt_flow = ReceiptScanFlow(
        vision_chain=build_fallback_chain(),
        conversion_table=StoreConversionTable(conversion_storage, audit_logger),
        audit_logger=audit_logger,
    )

    return expense_flow, receipt_flow, mongo_client
