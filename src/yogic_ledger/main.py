# src/yogic_ledger/main.py
"""Main entry point for the Yogic Ledger application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from yogic_ledger.api.v1 import (
    activity_router,
    auth_router,
    internal_router,
    referrals_router,
    rewards_router,
    system_router,
)
from yogic_ledger.api.v1.errors import to_http_exception
from yogic_ledger.core.settings import settings
from yogic_ledger.services.errors import LedgerError

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Yogic Ledger API",
    description="Reward accrual and abuse-resistance engine for walk-to-earn",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(auth_router, prefix="/api/v1")
app.include_router(activity_router, prefix="/api/v1")
app.include_router(rewards_router, prefix="/api/v1")
app.include_router(referrals_router, prefix="/api/v1")
app.include_router(internal_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Map ledger errors that escape an endpoint onto their HTTP status."""
    http_exc = to_http_exception(exc)
    if http_exc.status_code >= 500:
        logger.error("Ledger failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"detail": http_exc.detail},
        headers=http_exc.headers,
    )


@app.on_event("startup")
async def on_startup() -> None:
    logger.info("Ledger days roll over at midnight %s", settings.ledger_timezone)
    if not settings.twilio_configured:
        logger.warning("Twilio is not configured; OTP codes are written to the log only")
    if not settings.internal_api_key:
        logger.warning("INTERNAL_API_KEY is unset; internal endpoints will refuse every call")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("yogic_ledger.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
