"""
Conversion Table API Endpoints

Endpoints:
- GET /api/conversion?id_name=x  - Best entry for a store name (or null)
- GET /api/conversion            - All entries
- POST /api/conversion           - Add an entry (next sequential id)
- PUT /api/conversion            - Replace an entry by id
- DELETE /api/conversion?id=N    - Remove an entry

Error bodies carry ``"success": false`` alongside ``error``.
"""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from expense_tracker.api.dependencies import get_conversion_table, parse_id_param
from expense_tracker.api.errors import ApiError
from expense_tracker.conversion import StoreConversionTable
from expense_tracker.services.storage import NotFoundError
from expense_tracker.validation import ExpenseValidator


router = APIRouter(prefix="/conversion", tags=["conversion"])

_validator = ExpenseValidator()

FAILED = {"success": False}


def _entry_dump(entry) -> Optional[dict]:
    return entry.model_dump(mode="json") if entry is not None else None


def _checked(payload: dict, require_id: bool) -> dict:
    result, cleaned = _validator.validate_conversion_entry(payload, require_id=require_id)
    if result.has_errors:
        raise ApiError(400, result.messages[0], details=result.messages, extra=FAILED)
    return cleaned


@router.get("")
async def get_entries(
    id_name: Optional[str] = Query(None),
    table: StoreConversionTable = Depends(get_conversion_table),
) -> dict:
    if id_name:
        entry = await table.lookup(id_name)
        return {"success": True, "entry": _entry_dump(entry)}
    entries = await table.list_entries()
    return {"success": True, "entries": [_entry_dump(entry) for entry in entries]}


@router.post("")
async def add_entry(
    payload: dict[str, Any] = Body(...),
    table: StoreConversionTable = Depends(get_conversion_table),
) -> dict:
    cleaned = _checked(payload, require_id=False)
    entry = await table.add_entry(
        id_name=cleaned["id_name"],
        store_name=cleaned["store_name"],
        category=cleaned["category"],
        comment=cleaned.get("comment", ""),
    )
    return {"success": True, "entry": _entry_dump(entry)}


@router.put("")
async def update_entry(
    payload: dict[str, Any] = Body(...),
    table: StoreConversionTable = Depends(get_conversion_table),
) -> dict:
    cleaned = _checked(payload, require_id=True)
    try:
        entry = await table.update_entry(
            entry_id=cleaned["entry_id"],
            id_name=cleaned["id_name"],
            store_name=cleaned["store_name"],
            category=cleaned["category"],
            comment=cleaned.get("comment", ""),
        )
    except NotFoundError:
        raise ApiError(404, "Conversion entry not found", extra=FAILED)
    return {"success": True, "entry": _entry_dump(entry)}


@router.delete("")
async def delete_entry(
    id: Optional[str] = Query(None),
    table: StoreConversionTable = Depends(get_conversion_table),
) -> dict:
    try:
        entry_id = parse_id_param(id, "ID is required", "Invalid ID")
    except ApiError as e:
        e.extra = FAILED
        raise
    try:
        await table.delete_entry(entry_id)
    except NotFoundError:
        raise ApiError(404, "Conversion entry not found", extra=FAILED)
    return {"success": True, "message": "Conversion entry deleted successfully"}
