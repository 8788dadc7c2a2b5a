"""
main.py
-------
FastAPI application factory and entry point.

Application lifecycle:
  1. App is created by create_application().
  2. lifespan context manager runs on startup / shutdown.
  3. Routers are registered.
  4. Global exception handlers turn AppError subclasses into their status
     codes and normalise unexpected errors.

Run with:
    uvicorn main:app --reload              # development
    uvicorn main:app --workers 4           # production (no --reload)
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from projecthub.api.routes import documents, members, notes, projects, webhooks
from projecthub.core.config import settings
from projecthub.core.errors import AppError, NotFoundError
from projecthub.core.logging import bind_request_context, clear_request_context, configure_logging, get_logger
from projecthub.db.session import engine
from projecthub.services.invalidation import PurgeHook, view_invalidator

logger = get_logger(__name__)

# Seconds a client should wait before retrying a miss caused by
# identity-provider propagation lag.
RETRY_AFTER_SECONDS = "2"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup / shutdown lifecycle hook.

    Startup:
      - Configure structured logging
      - Subscribe the view purge hook when VIEW_PURGE_URL is set

    Shutdown:
      - Drain and close the purge hook
      - Dispose the async engine (graceful connection pool drain)
    """
    configure_logging()
    logger.info(
        "Starting up",
        app=settings.APP_NAME,
        env=settings.APP_ENV,
        debug=settings.DEBUG,
    )
    purge_hook = None
    if settings.VIEW_PURGE_URL:
        purge_hook = PurgeHook(settings.VIEW_PURGE_URL)
        view_invalidator.subscribe(purge_hook)
        logger.info("View purge hook registered", url=settings.VIEW_PURGE_URL)
    yield
    if purge_hook is not None:
        view_invalidator.unsubscribe(purge_hook)
        await purge_hook.aclose()
    logger.info("Shutting down, disposing DB engine")
    await engine.dispose()


def create_application() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Multi-tenant project management backend: projects, members, "
            "documents and notes, with identity mirrored from an external provider."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Request context ───────────────────────────────────────────────────────

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        clear_request_context()
        bind_request_context(method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        # Reads always reflect the latest committed state.
        if request.method == "GET":
            response.headers.setdefault("Cache-Control", "no-store")
        return response

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(webhooks.router)
    app.include_router(projects.router)
    app.include_router(members.router)
    app.include_router(documents.router)
    app.include_router(notes.router)

    # ── Global Exception Handlers ─────────────────────────────────────────────

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        logger.info(
            "Request failed",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            reason=exc.reason,
        )
        headers = None
        if isinstance(exc, NotFoundError) and exc.retryable:
            headers = {"Retry-After": RETRY_AFTER_SECONDS}
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    # ── Health Check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], summary="Service health check")
    async def health() -> dict:
        return {"status": "ok", "app": settings.APP_NAME, "env": settings.APP_ENV}

    return app


app = create_application()
