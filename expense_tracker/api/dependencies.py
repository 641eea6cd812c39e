"""Route dependencies resolving the flows held on app.state."""

from fastapi import Request

from expense_tracker.api.errors import ApiError
from expense_tracker.conversion import StoreConversionTable
from expense_tracker.orchestrator import ExpenseFlow, ReceiptScanFlow


def get_expense_flow(request: Request) -> ExpenseFlow:
    return request.app.state.expense_flow


def get_receipt_flow(request: Request) -> ReceiptScanFlow:
    return request.app.state.receipt_flow


def get_conversion_table(request: Request) -> StoreConversionTable:
    return request.app.state.receipt_flow.conversion_table


def parse_id_param(raw, missing_message: str, invalid_message: str) -> int:
    """Query-string id to int; raises a 400 ApiError when absent or not numeric."""
    if raw is None or not str(raw).strip():
        raise ApiError(400, missing_message)
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ApiError(400, invalid_message)
