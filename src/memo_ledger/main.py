# src/memo_ledger/main.py
"""Main entry point for the Memo Ledger application."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from memo_ledger import __version__
from memo_ledger.api.v1 import auth_router, memos_router
from memo_ledger.api.v1.dependencies import close_horizon_server
from memo_ledger.core.settings import settings

# Configure logger for this module
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Ledger-backed memo history with challenge/response authentication",
    version=__version__,
)

# Include API routers
app.include_router(auth_router, prefix="/api/v1")
app.include_router(memos_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    logging.basicConfig(level=settings.log_level.upper())
    logger.info("Starting %s %s against %s", settings.app_name, __version__, settings.horizon_url)
    if not settings.auth_enabled:
        logger.warning(
            "SERVER_SECRET_SEED is not set; challenge authentication is disabled"
        )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await close_horizon_server()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "horizon": settings.horizon_url,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("memo_ledger.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
