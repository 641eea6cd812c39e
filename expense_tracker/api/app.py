"""
HTTP API application.

Build with create_app(); flows and the rate limiter are injected so tests
run against in-memory storage and fake vision models. Without arguments
the components come from create_app_components() and configuration.
"""

import logging
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from expense_tracker import __version__
from expense_tracker.api import conversion, expenses, receipt, reports, settings
from expense_tracker.api.errors import register_exception_handlers
from expense_tracker.api.rate_limit import RateLimiter
from expense_tracker.config import Settings, get_settings
from expense_tracker.orchestrator import ExpenseFlow, ReceiptScanFlow, create_app_components
from expense_tracker.services.storage import MongoDBClient


logger = structlog.get_logger(__name__)


def create_app(
    expense_flow: Optional[ExpenseFlow] = None,
    receipt_flow: Optional[ReceiptScanFlow] = None,
    rate_limiter: Optional[RateLimiter] = None,
    app_settings: Optional[Settings] = None,
    mongo_client: Optional[MongoDBClient] = None,
) -> FastAPI:
    config = app_settings or get_settings()

    if expense_flow is None or receipt_flow is None:
        default_expense_flow, default_receipt_flow, mongo_client = create_app_components()
        expense_flow = expense_flow or default_expense_flow
        receipt_flow = receipt_flow or default_receipt_flow

    app = FastAPI(
        title="Expense Tracker API",
        description="Shared household expenses with receipt scanning.",
        version=__version__,
    )
    app.state.expense_flow = expense_flow
    app.state.receipt_flow = receipt_flow
    app.state.mongo_client = mongo_client
    app.state.rate_limiter = rate_limiter or RateLimiter(
        max_requests=config.app.rate_limit_max_requests,
        window_seconds=config.app.rate_limit_window_seconds,
    )

    origins = [config.app.url_domain] if config.app.is_production else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    register_exception_handlers(app)

    prefix = config.app.api_prefix
    for module in (expenses, settings, conversion, receipt, reports):
        app.include_router(module.router, prefix=prefix)

    @app.get(f"{prefix}/health", tags=["health"])
    def health_check() -> dict:
        client: Optional[MongoDBClient] = app.state.mongo_client
        return {
            "status": "healthy",
            "storage": "mongodb" if client is not None else "memory",
            "storageConnected": client.ping() if client is not None else True,
            "visionModels": receipt_flow.vision_chain.model_names,
        }

    logger.info(
        "api_created",
        prefix=prefix,
        environment=config.app.app_environment,
        storage="mongodb" if mongo_client is not None else "memory",
    )
    return app


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    config = get_settings()
    uvicorn.run(
        "expense_tracker.api.app:create_app",
        factory=True,
        host=config.app.api_host,
        port=config.app.api_port,
        log_level="debug" if config.app.debug_mode else "info",
    )
