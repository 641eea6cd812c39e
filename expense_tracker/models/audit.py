"""
Audit Models for Expense Tracker

Every user action and every external-service failure is logged as an
AuditEvent. This provides:
1. Traceability of who added or removed what
2. Debugging information when vision models or the store misbehave
3. Ability to reconstruct history after a "clear all"

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Expenses
    EXPENSE_ADDED = "expense_added"
    EXPENSE_DELETED = "expense_deleted"
    DATA_CLEARED = "data_cleared"

    # Settings
    SETTINGS_UPDATED = "settings_updated"

    # Conversion table
    CONVERSION_ENTRY_ADDED = "conversion_entry_added"
    CONVERSION_ENTRY_UPDATED = "conversion_entry_updated"
    CONVERSION_ENTRY_DELETED = "conversion_entry_deleted"
    CONVERSION_APPLIED = "conversion_applied"

    # Receipt processing
    RECEIPT_SCANNED = "receipt_scanned"
    VISION_MODEL_FAILED = "vision_model_failed"
    ALL_MODELS_FAILED = "all_models_failed"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # System events
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'conversion_entry', 'receipt')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one receipt scan)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_document(self) -> dict:
        """Convert to the layout stored in the audit collection."""
        document = self.to_log_dict()
        document["timestamp"] = self.timestamp
        return document


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_added(expense_id, store, amount, correlation_id)
        event = AuditEventBuilder.vision_model_failed(model, error, correlation_id)
    """

    @staticmethod
    def expense_added(
        expense_id: int,
        store_name: str,
        amount: str,
        person: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            entity_type="expense",
            entity_id=str(expense_id),
            correlation_id=correlation_id,
            description=f"Expense added: {store_name} - ₪{amount}",
            details={
                "store_name": store_name,
                "amount": amount,
                "person": person,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(
        expense_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=str(expense_id),
            correlation_id=correlation_id,
            description=f"Expense deleted: {expense_id}",
            is_user_action=True,
        )

    @staticmethod
    def data_cleared(
        deleted: int,
        failed: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_CLEARED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="expense",
            correlation_id=correlation_id,
            description=f"All data cleared: {deleted} deleted, {failed} failed",
            details={
                "deleted": deleted,
                "failed": failed,
            },
            is_user_action=True,
        )

    @staticmethod
    def settings_updated(
        shared_account_balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTINGS_UPDATED,
            entity_type="settings",
            entity_id="sharedAccount",
            correlation_id=correlation_id,
            description=f"Shared account balance set to ₪{shared_account_balance}",
            details={
                "shared_account_balance": shared_account_balance,
            },
            is_user_action=True,
        )

    @staticmethod
    def conversion_entry_changed(
        action: str,
        entry_id: int,
        id_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = {
            "added": AuditEventType.CONVERSION_ENTRY_ADDED,
            "updated": AuditEventType.CONVERSION_ENTRY_UPDATED,
            "deleted": AuditEventType.CONVERSION_ENTRY_DELETED,
        }[action]
        return AuditEvent(
            event_type=event_type,
            entity_type="conversion_entry",
            entity_id=str(entry_id),
            correlation_id=correlation_id,
            description=f"Conversion entry {action}: {id_name}",
            details={
                "id_name": id_name,
            },
            is_user_action=True,
        )

    @staticmethod
    def conversion_applied(
        original_name: str,
        store_name: str,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONVERSION_APPLIED,
            entity_type="receipt",
            correlation_id=correlation_id,
            description=f"Store name converted: {original_name} -> {store_name}",
            details={
                "original_name": original_name,
                "store_name": store_name,
                "category": category,
            },
        )

    @staticmethod
    def receipt_scanned(
        model: str,
        store_name: str,
        total_amount: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_SCANNED,
            entity_type="receipt",
            correlation_id=correlation_id,
            description=f"Receipt scanned by {model}: {store_name} - ₪{total_amount}",
            details={
                "model": model,
                "store_name": store_name,
                "total_amount": total_amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def vision_model_failed(
        model: str,
        error_message: str,
        error_code: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VISION_MODEL_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="receipt",
            correlation_id=correlation_id,
            description=f"Vision model failed: {model}",
            error_code=error_code,
            error_message=error_message,
            details={
                "model": model,
            },
        )

    @staticmethod
    def all_models_failed(
        attempted: list[str],
        last_error: Optional[str],
        error_code: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALL_MODELS_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="receipt",
            correlation_id=correlation_id,
            description=f"All {len(attempted)} vision models failed",
            error_code=error_code,
            error_message=last_error,
            details={
                "attempted": attempted,
            },
        )

    @staticmethod
    def validation_failed(
        entity_type: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"Validation failed with {len(issues)} issues",
            details={
                "issues": issues,
            },
            is_user_action=True,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
