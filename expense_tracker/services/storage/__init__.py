"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
MongoDB is the production backend; the in-memory backend serves tests and
runs without a configured database.
"""

from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ConversionStorageInterface,
    ExpenseStorageInterface,
    NotFoundError,
    SettingsStorageInterface,
    StorageError,
)
from expense_tracker.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryConversionStorage,
    InMemoryExpenseStorage,
    InMemorySettingsStorage,
)
from expense_tracker.services.storage.mongodb import (
    MongoAuditStorage,
    MongoConversionStorage,
    MongoDBClient,
    MongoExpenseStorage,
    MongoSettingsStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ConversionStorageInterface",
    "ExpenseStorageInterface",
    "SettingsStorageInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryConversionStorage",
    "InMemoryExpenseStorage",
    "InMemorySettingsStorage",
    # MongoDB implementation
    "MongoAuditStorage",
    "MongoConversionStorage",
    "MongoDBClient",
    "MongoExpenseStorage",
    "MongoSettingsStorage",
]
