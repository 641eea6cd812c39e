"""
Store Conversion Table

Vision models read store names the way they are printed ("SHUFERSAL DEAL
TLV 123", "edeka markt"). The conversion table maps such noisy names to a
canonical store name and category.

MATCHING:
- Case-insensitive substring match in either direction between the
  lowercased extracted name and an entry's id_name
- Ties are broken deterministically: exact match, then the longest
  id_name, then the lowest id (the entry created first)

A failing lookup never blocks a scan: the extracted values are used as-is.
"""

from typing import Optional
from uuid import UUID

import structlog

from expense_tracker.audit import AuditLogger
from expense_tracker.models.audit import AuditEventBuilder
from expense_tracker.models.expense import (
    UNKNOWN_STORE,
    ConversionEntry,
    ExpenseCategory,
    ExtractedReceiptData,
    ReceiptPrefill,
    format_amount,
)
from expense_tracker.services.storage import (
    ConversionStorageInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)

SCANNED_DESCRIPTION = "Added from receipt scan"
CONVERTED_DESCRIPTION = "Auto-converted from: {original}"


def match_rank(entry: ConversionEntry, query: str) -> Optional[tuple]:
    """
    Rank an entry against a lowercased query; None when it does not match.

    Lower tuples rank first.
    """
    id_name = entry.id_name
    if not id_name or not query:
        return None
    if id_name not in query and query not in id_name:
        return None
    return (0 if id_name == query else 1, -len(id_name), entry.id)


def find_best_match(
    entries: list[ConversionEntry],
    store_name: str,
) -> Optional[ConversionEntry]:
    query = (store_name or "").strip().lower()
    ranked = [
        (rank, entry)
        for entry in entries
        if (rank := match_rank(entry, query)) is not None
    ]
    if not ranked:
        return None
    return min(ranked, key=lambda pair: pair[0])[1]


class StoreConversionTable:
    """
    Lookup and maintenance of store-name conversion entries.
    """

    def __init__(
        self,
        storage: ConversionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    async def lookup(self, store_name: str) -> Optional[ConversionEntry]:
        """
        Find the best entry for an extracted store name.

        Raises:
            StorageError: If the table cannot be read
        """
        if not store_name or not store_name.strip():
            return None
        entries = await self._storage.list_entries()
        return find_best_match(entries, store_name)

    async def apply(
        self,
        extracted: ExtractedReceiptData,
        correlation_id: Optional[UUID] = None,
    ) -> ReceiptPrefill:
        """
        Build the form prefill for an extracted receipt.

        Uses the matching entry's canonical name and category when one
        exists. On no match, or when the lookup fails, the extracted values
        are used unchanged.
        """
        entry = None
        if extracted.store_name != UNKNOWN_STORE:
            try:
                entry = await self.lookup(extracted.store_name)
            except StorageError as e:
                logger.warning(
                    "conversion_lookup_failed",
                    store_name=extracted.store_name,
                    error=str(e),
                )

        amount = format_amount(extracted.total_amount)

        if entry is None:
            return ReceiptPrefill(
                store_name=extracted.store_name,
                amount=amount,
                description=SCANNED_DESCRIPTION,
            )

        logger.info(
            "conversion_applied",
            original=extracted.store_name,
            store_name=entry.store_name,
            entry_id=entry.id,
        )
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.conversion_applied(
                    original_name=extracted.store_name,
                    store_name=entry.store_name,
                    category=entry.category.value,
                    correlation_id=correlation_id,
                )
            )
        return ReceiptPrefill(
            store_name=entry.store_name,
            amount=amount,
            category=entry.category,
            description=CONVERTED_DESCRIPTION.format(original=extracted.store_name),
            converted=True,
        )

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def list_entries(self) -> list[ConversionEntry]:
        return await self._storage.list_entries()

    async def add_entry(
        self,
        id_name: str,
        store_name: str,
        category: ExpenseCategory,
        comment: str = "",
    ) -> ConversionEntry:
        """Create an entry with the next sequential id."""
        entry = ConversionEntry(
            id=await self._storage.next_id(),
            id_name=id_name,
            store_name=store_name,
            category=category,
            comment=comment,
        )
        await self._storage.insert_entry(entry)
        await self._audit("added", entry.id, entry.id_name)
        return entry

    async def update_entry(
        self,
        entry_id: int,
        id_name: str,
        store_name: str,
        category: ExpenseCategory,
        comment: str = "",
    ) -> ConversionEntry:
        """
        Replace an existing entry.

        Raises:
            NotFoundError: If no entry has this id
        """
        entry = ConversionEntry(
            id=entry_id,
            id_name=id_name,
            store_name=store_name,
            category=category,
            comment=comment,
        )
        updated = await self._storage.update_entry(entry)
        if updated is None:
            raise NotFoundError(f"Conversion entry not found: {entry_id}")
        await self._audit("updated", updated.id, updated.id_name)
        return updated

    async def delete_entry(self, entry_id: int) -> None:
        """
        Raises:
            NotFoundError: If no entry has this id
        """
        entries = {entry.id: entry for entry in await self._storage.list_entries()}
        if not await self._storage.delete_entry(entry_id):
            raise NotFoundError(f"Conversion entry not found: {entry_id}")
        removed = entries.get(entry_id)
        await self._audit("deleted", entry_id, removed.id_name if removed else "")

    async def _audit(self, action: str, entry_id: int, id_name: str) -> None:
        if not self._audit_logger:
            return
        await self._audit_logger.log(
            AuditEventBuilder.conversion_entry_changed(
                action=action,
                entry_id=entry_id,
                id_name=id_name,
            )
        )
