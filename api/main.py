"""
Lead Ownership Sync API - Main Application.

FastAPI application with CORS enabled for frontend communication.

The record store is opened once per process (in-memory or Supabase, chosen by
CRM_STORE) and shared by every request; each request builds its own Session
for the actor named in the `X-Actor` header.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from api.routers import agenda, chat, leads, tasks, transfers
from domain.errors import (
    AlreadyResolvedError,
    ConflictError,
    CrmError,
    DuplicatePendingRequestError,
    NotFoundError,
    StoreError,
    UnauthorizedError,
)
from domain.time import Clock, utc_now
from repositories.client import Settings, load_settings
from repositories.factory import open_store
from repositories.store import CollectionKind, RecordStore
from repositories.supabase_store import SupabaseRecordStore

logger = logging.getLogger(__name__)


def _status_for(exc: CrmError) -> int:
    if isinstance(exc, (ConflictError, DuplicatePendingRequestError, AlreadyResolvedError)):
        return 409
    if isinstance(exc, UnauthorizedError):
        return 403
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, StoreError):
        return 503 if exc.blocking else 502
    return 500


def _error_body(exc: Exception, status_code: int) -> dict:
    return {
        "error": type(exc).__name__,
        "detail": str(exc),
        "status_code": status_code,
        "owner": getattr(exc, "owner", None),
    }


def create_app(
    store: Optional[RecordStore] = None,
    settings: Optional[Settings] = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """
    Build the application. Tests pass their own store and settings; otherwise
    both come from the environment when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.settings = settings if settings is not None else load_settings()
        app.state.store = store if store is not None else open_store(app.state.settings)
        app.state.clock = clock

        listening = isinstance(app.state.store, SupabaseRecordStore)
        if listening:
            await app.state.store.listen(list(CollectionKind))
        logger.info(
            f"API started with {app.state.settings.store_backend} store",
            extra={"administrators": sorted(app.state.settings.administrators)},
        )
        try:
            yield
        finally:
            if listening:
                await app.state.store.stop_listening()

    app = FastAPI(
        title="Lead Ownership Sync API",
        description="Shared lead records with single ownership, transfer handshakes and a live agenda",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Configure CORS - Allow all origins for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CrmError)
    async def crm_error_handler(request: Request, exc: CrmError) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error(
                f"{request.method} {request.url.path} failed: {exc}",
                extra={"error_type": type(exc).__name__},
            )
        return JSONResponse(status_code=status_code, content=_error_body(exc, status_code))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_error_body(exc, 400))

    @app.get("/health", tags=["Health"])
    def health_check():
        """
        Health check endpoint.

        Returns the API status and version.
        """
        return {
            "status": "healthy",
            "version": __version__,
            "service": "lead-ownership-sync-api",
            "store": app.state.settings.store_backend,
        }

    @app.get("/", tags=["Root"])
    def root():
        """
        Root endpoint with API information.
        """
        return {
            "message": "Lead Ownership Sync API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    app.include_router(leads.router, prefix="/api/v1", tags=["Leads"])
    app.include_router(transfers.router, prefix="/api/v1", tags=["Transfers"])
    app.include_router(tasks.router, prefix="/api/v1", tags=["Tasks"])
    app.include_router(agenda.router, prefix="/api/v1", tags=["Agenda"])
    app.include_router(chat.router, prefix="/api/v1", tags=["Chat"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
