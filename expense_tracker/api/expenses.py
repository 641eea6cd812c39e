"""
Expense API Endpoints

Endpoints:
- GET /api/expenses          - List all expenses, newest first
- POST /api/expenses         - Add an expense
- DELETE /api/expenses?id=N  - Delete one expense

All three are rate limited per client IP.
"""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from expense_tracker.api.dependencies import get_expense_flow, parse_id_param
from expense_tracker.api.errors import ApiError
from expense_tracker.api.rate_limit import enforce_rate_limit
from expense_tracker.audit import create_correlation_id
from expense_tracker.orchestrator import ExpenseFlow
from expense_tracker.services.storage import NotFoundError


router = APIRouter(
    prefix="/expenses",
    tags=["expenses"],
    dependencies=[Depends(enforce_rate_limit)],
)


@router.get("")
async def list_expenses(flow: ExpenseFlow = Depends(get_expense_flow)) -> dict:
    expenses = await flow.list_expenses()
    return {"expenses": [e.model_dump(by_alias=True, mode="json") for e in expenses]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_expense(
    payload: dict[str, Any] = Body(...),
    flow: ExpenseFlow = Depends(get_expense_flow),
) -> dict:
    expense = await flow.add_expense(payload, correlation_id=create_correlation_id())
    return {"expense": expense.model_dump(by_alias=True, mode="json")}


@router.delete("")
async def delete_expense(
    id: Optional[str] = Query(None),
    flow: ExpenseFlow = Depends(get_expense_flow),
) -> dict:
    expense_id = parse_id_param(id, "Expense ID is required", "Invalid expense ID")
    try:
        await flow.delete_expense(expense_id, correlation_id=create_correlation_id())
    except NotFoundError:
        raise ApiError(404, "Expense not found")
    return {"success": True}
