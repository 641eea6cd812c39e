"""
Receipt Scan API Endpoint

POST /api/receipt  {image: data URI}

Returns the extracted store name and total, the model that answered, its
raw text and the form prefill. Nothing is saved; the client submits the
reviewed form through POST /api/expenses.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends

from expense_tracker.api.dependencies import get_receipt_flow
from expense_tracker.api.errors import ApiError
from expense_tracker.audit import create_correlation_id
from expense_tracker.orchestrator import InvalidInputError, ReceiptScanFlow
from expense_tracker.services.vision import AllModelsFailedError


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/receipt", tags=["receipt"])

FAILURE_MESSAGES = {
    "ALL_MODELS_FAILED": (
        "All AI models are currently unavailable. "
        "Please try again later or enter details manually."
    ),
    "RATE_LIMIT_EXCEEDED": "Rate limit exceeded. Please wait a moment and try again.",
    "INVALID_API_KEY": "Invalid API key. Please check your OpenRouter configuration.",
}
PROCESSING_MESSAGE = "Failed to process receipt. Please try again later."


@router.post("")
async def scan_receipt(
    payload: dict[str, Any] = Body(...),
    flow: ReceiptScanFlow = Depends(get_receipt_flow),
) -> dict:
    correlation_id = create_correlation_id()
    try:
        result = await flow.scan(payload.get("image"), correlation_id=correlation_id)
    except InvalidInputError as e:
        raise ApiError(400, str(e), details=e.messages)
    except AllModelsFailedError as e:
        last_error = e.last_error
        raise ApiError(
            e.status_code,
            FAILURE_MESSAGES[e.error_code],
            code=e.error_code,
            extra={"lastError": last_error.message if last_error else "Unknown error"},
        )
    except Exception as e:
        logger.exception(
            "receipt_processing_failed",
            correlation_id=str(correlation_id),
            error=str(e),
        )
        raise ApiError(500, PROCESSING_MESSAGE, code="PROCESSING_ERROR", details=str(e))

    return result.to_response()
