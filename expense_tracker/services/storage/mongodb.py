"""
MongoDB Storage Implementation

DESIGN DECISION: One MongoClient per process, created on first use and
checked with a ping. The client owns its own connection pool, so every
storage class shares the same MongoDBClient.

TRADEOFFS:
- No transactions (settings are last-write-wins, deletes are per record)
- Conversion lookups filter in Python (the table is small)

A transient connection failure drops the cached client and the operation
is tried once more with a fresh one before surfacing ConnectionError.
"""

import asyncio
from typing import Callable, Optional, TypeVar

import structlog
from pydantic import ValidationError
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import ConnectionFailure, PyMongoError
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from expense_tracker.config import MongoSettings, get_settings
from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.expense import (
    ConversionEntry,
    Expense,
    SharedAccountSettings,
    utc_now,
)
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ConversionStorageInterface,
    ExpenseStorageInterface,
    SettingsStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")

SETTINGS_FILTER = {"type": "sharedAccount"}


class MongoDBClient:
    """
    Low-level MongoDB client wrapper.

    Handles connection setup, health checks and reconnects.
    """

    def __init__(self, settings: Optional[MongoSettings] = None):
        self._client: Optional[MongoClient] = None
        self._settings = settings or get_settings().mongodb

    @property
    def settings(self) -> MongoSettings:
        return self._settings

    def connect(self) -> MongoClient:
        """
        Get the shared client, creating and pinging it on first use.
        """
        if self._client is None:
            client = MongoClient(
                self._settings.uri,
                maxPoolSize=self._settings.max_pool_size,
                serverSelectionTimeoutMS=self._settings.server_selection_timeout_ms,
                socketTimeoutMS=self._settings.socket_timeout_ms,
            )
            try:
                client.admin.command("ping")
            except PyMongoError as e:
                client.close()
                raise ConnectionError(f"Failed to connect to MongoDB: {e}")
            logger.info("mongodb_connected", database=self._settings.database)
            self._client = client
        return self._client

    def reset(self) -> None:
        """Drop the cached client so the next call reconnects."""
        if self._client is not None:
            try:
                self._client.close()
            except PyMongoError as e:
                logger.warning("mongodb_close_failed", error=str(e))
            self._client = None

    def ping(self) -> bool:
        """Health check used by the settings page."""
        try:
            self.connect().admin.command("ping")
            return True
        except (ConnectionError, PyMongoError) as e:
            logger.warning("mongodb_ping_failed", error=str(e))
            self.reset()
            return False

    def collection(self, name: str) -> Collection:
        return self.connect()[self._settings.database][name]


def _reset_client(retry_state) -> None:
    storage = retry_state.args[0]
    logger.warning(
        "mongodb_retrying_with_fresh_client",
        operation=retry_state.fn.__name__,
        attempt=retry_state.attempt_number,
    )
    storage._client.reset()


retry_with_fresh_client = retry(
    stop=stop_after_attempt(2),
    retry=retry_if_exception_type(ConnectionError),
    before_sleep=_reset_client,
    reraise=True,
)


class _MongoStorage:
    """Shared plumbing for the collection-backed storages."""

    collection_setting: str = ""

    def __init__(self, client: Optional[MongoDBClient] = None):
        self._client = client or MongoDBClient()

    def _collection(self) -> Collection:
        name = getattr(self._client.settings, self.collection_setting)
        return self._client.collection(name)

    @staticmethod
    def _wrap(action: str, error: PyMongoError) -> StorageError:
        if isinstance(error, ConnectionFailure):
            return ConnectionError(f"Failed to {action}: {error}")
        return StorageError(f"Failed to {action}: {error}")

    async def _run(self, action: str, operation: Callable[[Collection], T]) -> T:
        """
        Run a blocking collection call in a worker thread.

        Connecting happens inside the thread too, so a server selection
        timeout never stalls the event loop.
        """
        def call() -> T:
            try:
                return operation(self._collection())
            except PyMongoError as e:
                raise self._wrap(action, e)

        return await asyncio.to_thread(call)


class MongoExpenseStorage(_MongoStorage, ExpenseStorageInterface):
    """Expenses in the expenses collection, one document per record."""

    collection_setting = "expenses_collection"

    @retry_with_fresh_client
    async def insert_expense(self, expense: Expense) -> Expense:
        document = expense.to_document()
        await self._run("save expense", lambda c: c.insert_one(document))
        return expense

    @retry_with_fresh_client
    async def list_expenses(self) -> list[Expense]:
        documents = await self._run(
            "list expenses",
            lambda c: list(c.find({}, {"_id": 0}).sort("id", DESCENDING)),
        )

        expenses = []
        for document in documents:
            try:
                expenses.append(Expense.model_validate(document))
            except ValidationError as e:
                # Skip malformed legacy records rather than failing the whole list
                logger.warning(
                    "expense_document_invalid",
                    expense_id=document.get("id"),
                    error=str(e),
                )
        return expenses

    @retry_with_fresh_client
    async def delete_expense(self, expense_id: int) -> bool:
        result = await self._run(
            "delete expense",
            lambda c: c.delete_one({"id": expense_id}),
        )
        return result.deleted_count > 0


class MongoSettingsStorage(_MongoStorage, SettingsStorageInterface):
    """The singleton settings document, selected by type."""

    collection_setting = "settings_collection"

    @retry_with_fresh_client
    async def get_settings(self) -> Optional[SharedAccountSettings]:
        document = await self._run(
            "load settings",
            lambda c: c.find_one(SETTINGS_FILTER, {"_id": 0}),
        )
        if document is None:
            return None
        return SharedAccountSettings.model_validate(document)

    @retry_with_fresh_client
    async def upsert_settings(
        self,
        settings: SharedAccountSettings,
    ) -> SharedAccountSettings:
        stored = settings.model_copy(update={"updated_at": utc_now()})
        update = {"$set": {**SETTINGS_FILTER, **stored.model_dump(by_alias=True)}}
        await self._run(
            "save settings",
            lambda c: c.update_one(SETTINGS_FILTER, update, upsert=True),
        )
        return stored


class MongoConversionStorage(_MongoStorage, ConversionStorageInterface):

    collection_setting = "conversion_collection"

    @retry_with_fresh_client
    async def list_entries(self) -> list[ConversionEntry]:
        documents = await self._run(
            "list conversion entries",
            lambda c: list(c.find({}, {"_id": 0}).sort("id", ASCENDING)),
        )

        entries = []
        for document in documents:
            try:
                entries.append(ConversionEntry.model_validate(document))
            except ValidationError as e:
                logger.warning(
                    "conversion_document_invalid",
                    entry_id=document.get("id"),
                    error=str(e),
                )
        return entries

    @retry_with_fresh_client
    async def next_id(self) -> int:
        last = await self._run(
            "read conversion ids",
            lambda c: c.find_one({}, {"id": 1}, sort=[("id", DESCENDING)]),
        )
        return int(last["id"]) + 1 if last and "id" in last else 1

    @retry_with_fresh_client
    async def insert_entry(self, entry: ConversionEntry) -> ConversionEntry:
        document = entry.model_dump(mode="json")
        await self._run("save conversion entry", lambda c: c.insert_one(document))
        return entry

    @retry_with_fresh_client
    async def update_entry(self, entry: ConversionEntry) -> Optional[ConversionEntry]:
        document = entry.model_dump(mode="json")
        result = await self._run(
            "update conversion entry",
            lambda c: c.replace_one({"id": entry.id}, document),
        )
        return entry if result.matched_count else None

    @retry_with_fresh_client
    async def delete_entry(self, entry_id: int) -> bool:
        result = await self._run(
            "delete conversion entry",
            lambda c: c.delete_one({"id": entry_id}),
        )
        return result.deleted_count > 0


class MongoAuditStorage(_MongoStorage, AuditStorageInterface):
    """Append-only audit collection."""

    collection_setting = "audit_collection"

    async def append_event(self, event: AuditEvent) -> bool:
        document = event.to_document()
        await self._run("append audit event", lambda c: c.insert_one(document))
        return True

    @retry_with_fresh_client
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        documents = await self._run(
            "read audit events",
            lambda c: list(
                c.find({}, {"_id": 0}).sort("timestamp", DESCENDING).limit(limit)
            ),
        )
        return [AuditEvent.model_validate(document) for document in documents]
