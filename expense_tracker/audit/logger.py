"""
Audit Logger

Every user action (add, delete, clear, settings change, conversion edit,
receipt scan) and every external-service failure is logged.

The audit logger:
- Always logs locally through structlog
- Also appends to the audit collection when storage is configured
- Never lets a storage failure break the user's action
- Supports correlation IDs to trace one receipt scan across events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_tracker.models.audit import AuditEvent, AuditEventBuilder
from expense_tracker.services.storage import AuditStorageInterface, StorageError


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit collection (when storage is available)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("expense_tracker.audit")

    @property
    def has_storage(self) -> bool:
        return self._storage is not None

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except StorageError as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a receipt scan).
    Pass it through all subsequent operations.
    """
    return uuid4()
