"""
FastAPI application factory for the site engine.

This module creates the app with:
- CORS configuration for the admin frontend
- Store and audit publisher lifecycle management
- Error kind to HTTP status mapping

Invariants:
    - Every SiteEngineError is returned as {"error", "error_code", "details"}
      with the error's status code
    - Unexpected exceptions are logged and returned as 500 without details

How to change safely:
    - Add routes in routes.py, not here
    - Keep the error body shape stable; the admin UI parses it
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .._version import __version__
from ..access.authorizer import Authorizer, TokenVerifier
from ..access.secrets import SecretCache, secrets_manager_loader
from ..audit.publisher import AuditPublisher, create_audit_publisher
from ..config import ServerConfig
from ..errors import SiteEngineError, ValidationError
from ..service import SiteService
from ..store.base import KeyValueStore, create_store
from .routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage store and audit publisher lifecycle."""
    store: KeyValueStore = app.state.store
    audit: AuditPublisher = app.state.audit

    await store.connect()
    logger.info("Site engine started", extra={"version": __version__})

    yield

    await audit.close()
    await store.close()
    logger.info("Site engine stopped")


def build_authorizer(
    config: ServerConfig, verifier: Optional[TokenVerifier] = None
) -> Authorizer:
    """Authorizer with the master key loaded from Secrets Manager, if configured."""
    loader = None
    if config.auth.master_key_secret_name:
        loader = secrets_manager_loader(
            config.auth.master_key_secret_name,
            config.auth.region,
            config.auth.endpoint_url,
        )
    return Authorizer(SecretCache(loader), verifier)


def create_app(
    config: Optional[ServerConfig] = None,
    store: Optional[KeyValueStore] = None,
    audit: Optional[AuditPublisher] = None,
    authorizer: Optional[Authorizer] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Server configuration (defaults suit local development)
        store: Key-value store; built from config if omitted
        audit: Audit publisher; built from config if omitted
        authorizer: Credential resolver; built from config if omitted
    """
    config = config or ServerConfig()
    store = store or create_store(config)
    audit = audit or create_audit_publisher(config.event_bus)
    authorizer = authorizer or build_authorizer(config)

    app = FastAPI(
        title="Site Engine",
        description="Tenant-scoped content routing and catalog consistency.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store
    app.state.audit = audit
    app.state.authorizer = authorizer
    app.state.service = SiteService(
        store, audit=audit, tenant_defaults=config.tenant_defaults
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.http.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Tenant-ID", "X-Api-Key"],
    )

    @app.exception_handler(SiteEngineError)
    async def site_engine_error_handler(request: Request, exc: SiteEngineError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "Request failed",
                extra={"path": request.url.path, "error_code": exc.code, "error": exc.message},
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        error = ValidationError("Invalid request", errors=errors)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"HTTP handler error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "error_code": "INTERNAL", "details": {}},
        )

    app.include_router(router)

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "healthy" if store.is_connected else "degraded",
            "service": "site-engine",
            "version": __version__,
            "store_backend": config.store_backend.value,
        }

    return app
