"""
Summary & Export API Endpoints

Endpoints:
- GET /api/summary?month=YYYY-MM  - Monthly figures (current month by default)
- GET /api/export                 - Expenses report as an .xlsx download
"""

import re
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from expense_tracker.aggregation import available_months
from expense_tracker.api.dependencies import get_expense_flow
from expense_tracker.api.errors import ApiError
from expense_tracker.export import export_filename
from expense_tracker.orchestrator import ExpenseFlow


router = APIRouter(tags=["reports"])

MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("/summary")
async def get_summary(
    month: Optional[str] = Query(None),
    flow: ExpenseFlow = Depends(get_expense_flow),
) -> dict:
    if month is not None and not MONTH_PATTERN.match(month):
        raise ApiError(400, "Month must be in YYYY-MM format")
    summary = await flow.get_summary(month=month)
    expenses = await flow.list_expenses()
    return {
        "summary": summary.model_dump(by_alias=True, mode="json"),
        "availableMonths": available_months(expenses),
    }


@router.get("/export")
async def export_expenses(flow: ExpenseFlow = Depends(get_expense_flow)) -> Response:
    content = await flow.export_workbook()
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )
