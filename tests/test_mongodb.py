"""
Tests for the MongoDB storages.

The pymongo collection is mocked; no database is needed.
"""

import asyncio
import threading
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from pymongo import DESCENDING
from pymongo.errors import AutoReconnect, OperationFailure

from conftest import build_expense
from expense_tracker.config import MongoSettings
from expense_tracker.models.expense import ConversionEntry, ExpenseCategory, SharedAccountSettings
from expense_tracker.services.storage import (
    ConnectionError,
    MongoConversionStorage,
    MongoExpenseStorage,
    MongoSettingsStorage,
    StorageError,
)


@pytest.fixture
def collection() -> MagicMock:
    return MagicMock()


@pytest.fixture
def client(collection) -> MagicMock:
    client = MagicMock()
    client.settings = MongoSettings(uri="mongodb://localhost:27017")
    client.collection.return_value = collection
    return client


class TestMongoExpenseStorage:
    """Expense documents in the expenses collection."""

    @pytest.mark.asyncio
    async def test_insert_uses_wire_layout(self, client, collection):
        storage = MongoExpenseStorage(client)
        expense = build_expense(7, amount="12.50")

        await storage.insert_expense(expense)

        client.collection.assert_called_with("expenses-data")
        document = collection.insert_one.call_args.args[0]
        assert document["id"] == 7
        assert document["storeName"] == "Shufersal"
        assert document["amount"] == 12.5
        assert document["category"] == "groceries"

    @pytest.mark.asyncio
    async def test_list_skips_malformed_documents(self, client, collection):
        good = build_expense(2).to_document()
        collection.find.return_value.sort.return_value = [good, {"id": 1, "amount": "abc"}]

        expenses = await MongoExpenseStorage(client).list_expenses()

        assert [e.id for e in expenses] == [2]
        collection.find.assert_called_with({}, {"_id": 0})
        collection.find.return_value.sort.assert_called_with("id", DESCENDING)

    @pytest.mark.asyncio
    async def test_delete_reports_missing(self, client, collection):
        collection.delete_one.return_value.deleted_count = 0
        assert await MongoExpenseStorage(client).delete_expense(99) is False
        collection.delete_one.assert_called_with({"id": 99})

    @pytest.mark.asyncio
    async def test_collection_calls_run_off_the_event_loop(self, client, collection):
        loop_thread = threading.get_ident()
        call_threads = []

        def find(*args):
            call_threads.append(threading.get_ident())
            cursor = MagicMock()
            cursor.sort.return_value = []
            return cursor

        collection.find.side_effect = find
        storage = MongoExpenseStorage(client)

        await asyncio.gather(storage.list_expenses(), storage.list_expenses())

        assert len(call_threads) == 2
        assert loop_thread not in call_threads

    @pytest.mark.asyncio
    async def test_connection_failure_retried_with_fresh_client(self, client, collection):
        collection.delete_one.side_effect = [
            AutoReconnect("connection reset"),
            MagicMock(deleted_count=1),
        ]

        assert await MongoExpenseStorage(client).delete_expense(5) is True
        client.reset.assert_called_once()
        assert collection.delete_one.call_count == 2

    @pytest.mark.asyncio
    async def test_persistent_connection_failure(self, client, collection):
        collection.delete_one.side_effect = AutoReconnect("down")

        with pytest.raises(ConnectionError):
            await MongoExpenseStorage(client).delete_expense(5)
        assert collection.delete_one.call_count == 2

    @pytest.mark.asyncio
    async def test_operation_failure_not_retried(self, client, collection):
        collection.insert_one.side_effect = OperationFailure("not authorized")

        with pytest.raises(StorageError) as exc_info:
            await MongoExpenseStorage(client).insert_expense(build_expense())

        assert not isinstance(exc_info.value, ConnectionError)
        assert collection.insert_one.call_count == 1
        client.reset.assert_not_called()


class TestMongoSettingsStorage:
    """The singleton settings document."""

    @pytest.mark.asyncio
    async def test_missing_document(self, client, collection):
        collection.find_one.return_value = None
        assert await MongoSettingsStorage(client).get_settings() is None

    @pytest.mark.asyncio
    async def test_reads_document(self, client, collection):
        collection.find_one.return_value = {"type": "sharedAccount", "sharedAccountBalance": 900}

        settings = await MongoSettingsStorage(client).get_settings()

        assert settings.shared_account_balance == Decimal("900.00")
        collection.find_one.assert_called_with({"type": "sharedAccount"}, {"_id": 0})

    @pytest.mark.asyncio
    async def test_upsert(self, client, collection):
        stored = await MongoSettingsStorage(client).upsert_settings(
            SharedAccountSettings(shared_account_balance=250)
        )

        assert stored.updated_at is not None
        filter_, update = collection.update_one.call_args.args
        assert filter_ == {"type": "sharedAccount"}
        assert update["$set"]["sharedAccountBalance"] == 250.0
        assert update["$set"]["type"] == "sharedAccount"
        assert collection.update_one.call_args.kwargs == {"upsert": True}


class TestMongoConversionStorage:
    """Conversion entries."""

    @pytest.mark.asyncio
    async def test_next_id(self, client, collection):
        collection.find_one.return_value = {"id": 4}
        assert await MongoConversionStorage(client).next_id() == 5

        collection.find_one.return_value = None
        assert await MongoConversionStorage(client).next_id() == 1

    @pytest.mark.asyncio
    async def test_update_missing_entry(self, client, collection):
        collection.replace_one.return_value.matched_count = 0
        entry = ConversionEntry(
            id=9, id_name="x", store_name="X", category=ExpenseCategory.OTHER,
        )

        assert await MongoConversionStorage(client).update_entry(entry) is None
        filter_, document = collection.replace_one.call_args.args
        assert filter_ == {"id": 9}
        assert document["category"] == "other"
