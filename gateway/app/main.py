"""
FastAPI Gateway Application Factory
===================================

Entry point for the generation gateway that sits between client apps and
the upstream generative model API.

Architecture:
    Client Apps → Gateway (this service) → Gemini generateContent

Routes:
    - /api/generate : Authenticated, validated, retried generation proxy
    - /health       : Health check, reports degraded mode
    - /             : Service metadata

Environment Variables:
    - GEMINI_API_KEY: Upstream API key (required to serve requests)
    - FIREBASE_SERVICE_ACCOUNT_KEY: JSON service account bundle (required when REQUIRE_AUTH)
    - REQUIRE_AUTH: Gate requests on a verified Firebase ID token (default: true)
    - GEMINI_MODEL / GEMINI_API_BASE_URL: Upstream model and base URL
    - UPSTREAM_MAX_ATTEMPTS: Total upstream attempts per request, first try included (default: 3)
    - UPSTREAM_BASE_DELAY_MS / UPSTREAM_TIMEOUT_SECONDS: Backoff base and client timeout
    - ALLOWED_ORIGINS: Comma-separated CORS origins
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn gateway.app.main:app --reload --host 0.0.0.0 --port 8080

    Production:
        uvicorn gateway.app.main:app --host 0.0.0.0 --port 8080 --workers 4
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .auth.verifier import build_verifier
from .config import GatewayConfig, Settings, build_gateway_config, get_settings
from .errors import GatewayError
from .models import HealthResponse
from .proxy.handler import GenerateHandler
from .proxy.routes import router as proxy_router
from .proxy.upstream import ResilientCaller, Sleep

SERVICE_NAME = "generation-gateway"


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    # httpx request lines include the upstream URL, whose query carries the API key.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def create_app(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Optional[Sleep] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Settings to use instead of the environment
        transport: httpx transport for all outbound calls (tests pass a
            ``httpx.MockTransport``)
        sleep: Replacement for ``asyncio.sleep`` between upstream retries

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Build the process-wide configuration, the shared HTTP client and the
        request handler once; close the client on shutdown.
        """
        setup_logging(settings.LOG_LEVEL)
        logger = logging.getLogger("gateway.main")

        config = build_gateway_config(settings)
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.upstream_timeout),
            transport=transport,
        )

        verifier = None
        if config.auth_required:
            verifier = build_verifier(
                config.identity,
                client,
                config.jwks_url,
                config.jwks_cache_seconds,
            )

        caller = ResilientCaller(
            client,
            config.upstream_url,
            config.api_key,
            config.retry_policy,
            sleep=sleep or asyncio.sleep,
        )

        app.state.gateway_config = config
        app.state.generate_handler = GenerateHandler(config, caller, verifier)

        logger.info(
            f"Gateway service started: model={config.model} "
            f"auth_required={config.auth_required} degraded={config.degraded} "
            f"max_attempts={config.retry_policy.max_attempts}",
            extra={
                "model": config.model,
                "auth_required": config.auth_required,
                "degraded": config.degraded,
                "max_attempts": config.retry_policy.max_attempts,
            },
        )

        yield

        logger.info("Shutting down gateway service")
        await client.aclose()

    app = FastAPI(
        title="Generation Gateway",
        description="Authenticated proxy in front of a generative model API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    if settings.allowed_origins_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins_list,
            allow_credentials=True,
            allow_methods=["POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )

    app.include_router(proxy_router, prefix="/api", tags=["Generation"])

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """Report whether the gateway can serve requests."""
        config: Optional[GatewayConfig] = getattr(request.app.state, "gateway_config", None)
        if config is None:
            return HealthResponse(
                status="starting",
                service=SERVICE_NAME,
                version=__version__,
                auth_required=settings.REQUIRE_AUTH,
            )

        return HealthResponse(
            status="degraded" if config.degraded else "ok",
            service=SERVICE_NAME,
            version=__version__,
            auth_required=config.auth_required,
            problems=list(config.problems),
        )

    @app.get("/", tags=["System"])
    async def root() -> Dict[str, Any]:
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "endpoints": {
                "generate": "/api/generate",
                "health": "/health",
                "docs": "/docs",
            },
        }

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        logging.getLogger("gateway.main").error(
            f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.reason}",
            extra={"path": request.url.path, "method": request.method},
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Routing failures (unknown path, unrouted method) use the gateway error shape."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Last-resort handler; internal detail is logged, never returned."""
        logging.getLogger("gateway.main").error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error during fetch."},
        )

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "gateway.app.main:app",
        host=settings.GATEWAY_HOST,
        port=settings.GATEWAY_PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
