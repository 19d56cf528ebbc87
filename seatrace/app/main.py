"""
FastAPI Application Entry Point.

This is the main application file for the Sea Trace Backend.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from seatrace.app.core.config import settings
from seatrace.app.api.v1.router import router as api_v1_router
from seatrace.app.db.session import engine, Base
from seatrace.app.core.observability import ObservabilityMiddleware, configure_logging
from seatrace.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from seatrace.app.services.chain_gateway import close_chain_gateway
from seatrace.app.services.reconciliation import run_reconcile_loop

# Import models to ensure they are registered with Base
from seatrace.app.models.company import Company  # noqa: F401
from seatrace.app.models.user import User  # noqa: F401
from seatrace.app.models.goods import Good  # noqa: F401
from seatrace.app.models.stage_records import (  # noqa: F401
    GoodsProduction, GoodsTransport, GoodsInspection, GoodsDelivery
)
from seatrace.app.models.chain_transaction import ChainTransaction  # noqa: F401
from seatrace.app.models.audit_log import AuditLog  # noqa: F401

configure_logging(settings.log_level)
logger = logging.getLogger("seatrace")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Starts the chain reconciliation loop when an interval is configured.
    3. Stops the loop and closes the chain gateway client on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    stop = asyncio.Event()
    reconcile_task = None
    if settings.reconcile_interval_seconds > 0:
        reconcile_task = asyncio.create_task(run_reconcile_loop(settings.reconcile_interval_seconds, stop))

    logger.info("%s started [chain=%s]", settings.app_name, settings.chain_gateway_url)
    yield

    stop.set()
    if reconcile_task is not None:
        await reconcile_task
    await close_chain_gateway()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Supply-chain traceability backend with on-chain attestation of every lifecycle stage",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Sea Trace Backend API",
        "docs": "/docs",
        "health": "/health",
    }
