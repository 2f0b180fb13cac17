"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from multistore.api.v1.router import api_router
from multistore.core.config import settings
from multistore.core.database import engine
from multistore.core.exceptions import MultiStoreError, UpstreamError
from multistore.core.logging_config import (
    generate_request_id,
    request_id_var,
    setup_logging,
)
from multistore.core.rate_limit import limiter
from multistore.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging(debug=settings.debug)
    logger.info(
        "Starting %s v%s (%s): selector=%s, max_backup_stores=%d",
        settings.project_name,
        settings.version,
        settings.environment,
        settings.backup_selector,
        settings.max_backup_stores,
    )
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


def _init_error_tracking() -> None:
    """Report unhandled errors to Sentry when a DSN is configured."""
    if not settings.sentry_dsn:
        return

    import sentry_sdk

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"multistore-failover@{settings.version}",
        traces_sample_rate=0.1,
        send_default_pii=False,
    )


async def multi_store_error_handler(_request: Request, exc: MultiStoreError) -> JSONResponse:
    """Render domain errors with their status code and machine-readable code."""
    body = ErrorResponse(
        error=exc.code,
        detail=exc.message,
        code=exc.code,
        upstream_status=exc.upstream_status if isinstance(exc, UpstreamError) else None,
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Returned as a normal response so CORS headers are still attached
    logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


async def request_id_middleware(request: Request, call_next: Any) -> Response:
    """Tag logs for this request with its X-Request-ID and echo it back."""
    rid = request.headers.get("X-Request-ID") or generate_request_id()
    token = request_id_var.set(rid)
    try:
        response: Response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-ID"] = rid
    return response


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    _init_error_tracking()

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        openapi_url=f"{settings.api_v1_prefix}/openapi.json",
        docs_url=f"{settings.api_v1_prefix}/docs",
        redoc_url=f"{settings.api_v1_prefix}/redoc",
        lifespan=lifespan,
    )

    # Rate limiting (public checkout endpoint)
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    # Dashboard origins send credentials. The storefront cart script calls
    # /checkout-redirect from any shop domain, so other origins are echoed.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_origin_regex=r"https?://.+",
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    app.middleware("http")(request_id_middleware)

    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]
    app.add_exception_handler(MultiStoreError, multi_store_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url=f"{settings.api_v1_prefix}/docs")

    @app.get("/")
    async def root() -> dict[str, Any]:
        return {
            "name": settings.project_name,
            "version": settings.version,
            "docs": f"{settings.api_v1_prefix}/docs",
            "health": f"{settings.api_v1_prefix}/health",
            "checkout_redirect": f"{settings.api_v1_prefix}/multi-store/checkout-redirect",
        }

    return app


app = create_app()
