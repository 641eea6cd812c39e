"""
In-Memory Storage Implementation

Used by the test suite and as the fallback when no MongoDB URI is
configured. Data lives for the lifetime of the process only.
"""

from typing import Optional

from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.expense import (
    ConversionEntry,
    Expense,
    SharedAccountSettings,
)
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConversionStorageInterface,
    ExpenseStorageInterface,
    SettingsStorageInterface,
)


class InMemoryExpenseStorage(ExpenseStorageInterface):
    """Expenses kept in a dict keyed by id."""

    def __init__(self, expenses: Optional[list[Expense]] = None):
        self._expenses: dict[int, Expense] = {
            expense.id: expense for expense in expenses or []
        }

    async def insert_expense(self, expense: Expense) -> Expense:
        self._expenses[expense.id] = expense
        return expense

    async def list_expenses(self) -> list[Expense]:
        return sorted(self._expenses.values(), key=lambda e: e.id, reverse=True)

    async def delete_expense(self, expense_id: int) -> bool:
        return self._expenses.pop(expense_id, None) is not None


class InMemorySettingsStorage(SettingsStorageInterface):

    def __init__(self, settings: Optional[SharedAccountSettings] = None):
        self._settings = settings

    async def get_settings(self) -> Optional[SharedAccountSettings]:
        return self._settings

    async def upsert_settings(
        self,
        settings: SharedAccountSettings,
    ) -> SharedAccountSettings:
        self._settings = settings
        return settings


class InMemoryConversionStorage(ConversionStorageInterface):

    def __init__(self, entries: Optional[list[ConversionEntry]] = None):
        self._entries: dict[int, ConversionEntry] = {
            entry.id: entry for entry in entries or []
        }

    async def list_entries(self) -> list[ConversionEntry]:
        return [self._entries[key] for key in sorted(self._entries)]

    async def next_id(self) -> int:
        return max(self._entries, default=0) + 1

    async def insert_entry(self, entry: ConversionEntry) -> ConversionEntry:
        self._entries[entry.id] = entry
        return entry

    async def update_entry(self, entry: ConversionEntry) -> Optional[ConversionEntry]:
        if entry.id not in self._entries:
            return None
        self._entries[entry.id] = entry
        return entry

    async def delete_entry(self, entry_id: int) -> bool:
        return self._entries.pop(entry_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
