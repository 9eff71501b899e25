# src/protocol_forum/main.py
"""Main entry point for the Protocol Forum application."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from protocol_forum.api.v1 import (
    broadcasting_router,
    chat_rooms_router,
    users_router,
    votes_router,
)
from protocol_forum.core.settings import settings
from protocol_forum.services.presence_sweep import PresenceSweepWorker

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Voting and real-time presence API for protocol discussions",
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
app.include_router(votes_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(chat_rooms_router, prefix="/api/v1")
app.include_router(broadcasting_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    if settings.presence_sweep_enabled:
        worker = PresenceSweepWorker()
        await worker.start()
        app.state.presence_worker = worker
    else:
        app.state.presence_worker = None


@app.on_event("shutdown")
async def on_shutdown() -> None:
    worker: PresenceSweepWorker | None = getattr(app.state, "presence_worker", None)
    if worker:
        await worker.stop()


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
    uvicorn.run("protocol_forum.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
