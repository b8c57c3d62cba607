"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from cryptocadet.api.payments import SESSIONS_PATH, validation_error_response
from cryptocadet.api.router import api_router
from cryptocadet.core.config import settings
from cryptocadet.core.logging_config import (
    generate_request_id,
    request_id_var,
    setup_logging,
    shop_var,
)
from cryptocadet.core.rate_limit import limiter
from cryptocadet.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"

# Shopify admin, storefronts and dev tunnels
CORS_ORIGIN_REGEX = r"https://([a-z0-9\-]+\.myshopify\.com|[a-z0-9\-]+\.ngrok-free\.app|[a-z0-9\-]+\.ngrok\.io)"

# No CSP here: the admin page sets frame-ancestors itself, storefront scripts need none
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Permitted-Cross-Domain-Policies": "none",
}


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging(debug=settings.debug)
    logger.info("Starting %s v%s", settings.project_name, settings.version)
    logger.info("Environment: %s", settings.environment)
    logger.info("Public app URL: %s", settings.app_url)
    if not settings.is_configured:
        if not settings.shopify_api_key:
            logger.warning("SHOPIFY_API_KEY not set in environment variables")
        if not settings.shopify_api_secret:
            logger.warning("SHOPIFY_API_SECRET not set in environment variables")
    yield
    logger.info("Shutting down...")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    # Sentry/GlitchTip init (before middleware)
    if settings.sentry_dsn:
        import sentry_sdk

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            traces_sample_rate=0.1,
        )

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        lifespan=lifespan,
    )

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]
    app.add_middleware(SlowAPIMiddleware)

    # CORS: admin origin listed explicitly, shop and tunnel domains via regex
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=CORS_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )

    # Request ID, security headers and ngrok interstitial bypass
    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next: Any) -> Response:
        rid = request.headers.get("X-Request-ID") or generate_request_id()
        request_id_var.set(rid)
        shop_var.set("")
        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        response.headers["ngrok-skip-browser-warning"] = "true"
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    app.include_router(api_router)
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Unknown routes get a descriptive 404; everything else keeps ``detail``."""
        if exc.status_code == 404 and exc.detail == "Not Found":
            body = ErrorResponse(
                error="Not found",
                message=f"Route {request.method} {request.url.path} not found",
            )
            return JSONResponse(status_code=404, content=body.model_dump())
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Payment session requests get the payments-app envelope; other routes keep FastAPI's."""
        if request.url.path.rstrip("/") == SESSIONS_PATH:
            return validation_error_response(exc)
        return await request_validation_exception_handler(request, exc)

    # Global exception handler to ensure CORS headers are present on 500 errors
    @app.exception_handler(Exception)
    async def global_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
        """Handle unhandled exceptions with proper JSON response."""
        logger.exception("Unhandled exception: %s", exc)
        body = ErrorResponse(
            error="Internal server error",
            message=str(exc) if settings.environment == "development" else "Something went wrong",
        )
        return JSONResponse(status_code=500, content=body.model_dump())

    # Root endpoint
    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "message": f"{settings.project_name} API",
            "name": settings.project_name,
            "version": settings.version,
            "docs": "/docs",
            "endpoints": {
                "health": "/health",
                "auth": "/auth",
                "payments": "/payments",
                "webhooks": "/webhooks",
                "storefront": "/storefront/crypto-button.js",
            },
        }

    return app


app = create_app()
