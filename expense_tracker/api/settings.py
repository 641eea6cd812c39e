"""
Settings API Endpoints

Endpoints:
- GET /api/settings   - Current shared account settings (defaults when none saved)
- POST /api/settings  - Save {sharedAccountBalance}
"""

from typing import Any

from fastapi import APIRouter, Body, Depends

from expense_tracker.api.dependencies import get_expense_flow
from expense_tracker.api.rate_limit import enforce_rate_limit
from expense_tracker.audit import create_correlation_id
from expense_tracker.orchestrator import ExpenseFlow


router = APIRouter(
    prefix="/settings",
    tags=["settings"],
    dependencies=[Depends(enforce_rate_limit)],
)


@router.get("")
async def get_settings(flow: ExpenseFlow = Depends(get_expense_flow)) -> dict:
    settings = await flow.get_settings()
    return {"settings": settings.model_dump(by_alias=True, mode="json")}


@router.post("")
async def update_settings(
    payload: dict[str, Any] = Body(...),
    flow: ExpenseFlow = Depends(get_expense_flow),
) -> dict:
    settings = await flow.update_settings(payload, correlation_id=create_correlation_id())
    return {
        "success": True,
        "settings": settings.model_dump(by_alias=True, mode="json"),
    }
