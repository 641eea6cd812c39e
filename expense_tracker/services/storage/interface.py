"""
Abstract Storage Interface

DESIGN DECISION: Business logic talks to storage only through these
interfaces. This allows us to:
1. Run against MongoDB in production
2. Use in-memory storage for testing and when no database is configured
3. Keep flows decoupled from the document layout

The interface is intentionally simple - we're not building a full ORM.
Just the operations the expense, settings and conversion flows need.
"""

from abc import ABC, abstractmethod
from typing import Optional

from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.expense import (
    ConversionEntry,
    Expense,
    SharedAccountSettings,
)


class ExpenseStorageInterface(ABC):
    """
    Abstract interface for expense storage operations.
    """

    @abstractmethod
    async def insert_expense(self, expense: Expense) -> Expense:
        """
        Persist a new expense.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def list_expenses(self) -> list[Expense]:
        """
        List all expenses, newest first by id.
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: int) -> bool:
        """
        Delete an expense by id.

        Returns:
            True if a record was deleted, False if none matched
        """
        pass


class SettingsStorageInterface(ABC):
    """
    Abstract interface for the singleton settings document.
    """

    @abstractmethod
    async def get_settings(self) -> Optional[SharedAccountSettings]:
        """
        Get the stored settings.

        Returns:
            The settings if ever saved, None otherwise
        """
        pass

    @abstractmethod
    async def upsert_settings(
        self,
        settings: SharedAccountSettings,
    ) -> SharedAccountSettings:
        """
        Create or replace the settings document (last write wins).
        """
        pass


class ConversionStorageInterface(ABC):
    """
    Abstract interface for the store-name conversion table.
    """

    @abstractmethod
    async def list_entries(self) -> list[ConversionEntry]:
        """List all entries ordered by id."""
        pass

    @abstractmethod
    async def next_id(self) -> int:
        """Get max(id) + 1, or 1 for an empty table."""
        pass

    @abstractmethod
    async def insert_entry(self, entry: ConversionEntry) -> ConversionEntry:
        """Persist a new entry."""
        pass

    @abstractmethod
    async def update_entry(self, entry: ConversionEntry) -> Optional[ConversionEntry]:
        """
        Replace the entry with the same id.

        Returns:
            The updated entry, or None if no entry has that id
        """
        pass

    @abstractmethod
    async def delete_entry(self, entry_id: int) -> bool:
        """
        Delete an entry by id.

        Returns:
            True if deleted, False if no entry has that id
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
