"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import health, location, nearby, notifications, onboarding, visits
from .context import AppContext
from .errors import ErrorKind, FieldOpsError, LocationPermissionRefused, NoOpenVisitError, describe_error
from .schemas.errors import ErrorResponse

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.HARDWARE_UNAVAILABLE: 503,
    ErrorKind.CONFLICT: 409,
    ErrorKind.CANCELLED: 499,
    ErrorKind.NETWORK_UNREACHABLE: 502,
    ErrorKind.SERVER: 502,
    ErrorKind.UNKNOWN: 502,
    ErrorKind.TIMEOUT: 504,
}

# Errors that are never shown as an alert still need a body for the caller.
SILENT_TITLES: dict[ErrorKind, str] = {
    ErrorKind.CANCELLED: "Cancelled",
    ErrorKind.UNAUTHORIZED: "Session expired",
}


def error_response(error: FieldOpsError) -> JSONResponse:
    status_code = 404 if isinstance(error, NoOpenVisitError) else STATUS_BY_KIND.get(error.kind, 400)
    described = describe_error(error)
    if described is None:
        body = ErrorResponse(kind=error.kind.value, title=SILENT_TITLES.get(error.kind, "Error"), message=str(error))
    else:
        body = ErrorResponse(kind=error.kind.value, title=described.title, message=described.message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app(context: AppContext | None = None) -> FastAPI:
    app_context = context or AppContext()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await app_context.start()
        except LocationPermissionRefused as exc:
            logger.error(f"Startup aborted: {exc}")
            raise SystemExit(1) from exc
        try:
            yield
        finally:
            await app_context.aclose()

    cfg = app_context.settings
    app = FastAPI(title=cfg.app_name, root_path="", lifespan=lifespan)
    app.state.context = app_context
    if cfg.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(cfg.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(FieldOpsError)
    async def handle_fieldops_error(request: Request, exc: FieldOpsError) -> JSONResponse:
        return error_response(exc)

    # Root endpoint for diagnostics
    @app.get("/")
    def root():
        return {
            "service": cfg.app_name,
            "status": "running",
            "api_prefix": cfg.api_prefix,
            "health": f"{cfg.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=cfg.api_prefix)
    app.include_router(location.router, prefix=cfg.api_prefix)
    app.include_router(nearby.router, prefix=cfg.api_prefix)
    app.include_router(visits.router, prefix=cfg.api_prefix)
    app.include_router(onboarding.router, prefix=cfg.api_prefix)
    app.include_router(notifications.router, prefix=cfg.api_prefix)
    return app


app = create_app()
