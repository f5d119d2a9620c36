"""FastAPI application configuration (Ledger operations API)."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from ..envs.settings import Settings, get_settings
from ..infrastructure.cache import RateLimitedCache
from ..infrastructure.ledger.ledger_client import LedgerClientRegistry
from ..infrastructure.vending.vending_client import AsyncVendingClient
from .routers import cache, deals, payouts, rpc

logger = logging.getLogger(__name__)

settings = get_settings()


def build_registry(settings: Settings) -> LedgerClientRegistry:
    response_cache = RateLimitedCache(
        settings.ledger_cache_ttl_seconds,
        sweep_interval=settings.ledger_cache_sweep_seconds,
    )
    return LedgerClientRegistry(
        settings.credentials(),
        response_cache,
        endpoints=settings.endpoints(),
        timeout=settings.ledger_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    registry: LedgerClientRegistry = app.state.ledger_registry
    registry.cache.start()
    layers = ", ".join(layer.value for layer in registry.configured_layers()) or "none"
    logger.info("Ledger layers configured: %s", layers)
    try:
        yield
    finally:
        await registry.aclose()
        vending_client: Optional[AsyncVendingClient] = app.state.vending_client
        if vending_client is not None:
            await vending_client.aclose()


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure FastAPI application."""
    app_settings = app_settings or settings
    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        description="Nominal account operations API",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.ledger_registry = build_registry(app_settings)
    app.state.vending_client = (
        AsyncVendingClient(
            app_settings.vending_api_key, base_url=app_settings.vending_base_url
        )
        if app_settings.vending_api_key
        else None
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Include routers
    app.include_router(rpc.router, prefix="/api/v1")
    app.include_router(deals.router, prefix="/api/v1")
    app.include_router(cache.router, prefix="/api/v1")
    app.include_router(payouts.router, prefix="/api/v1")

    app.mount("/metrics", make_asgi_app())

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": f"Welcome to {app_settings.app_name} API",
            "version": app_settings.app_version,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check() -> dict[str, object]:
        """Health check endpoint."""
        registry: LedgerClientRegistry = app.state.ledger_registry
        return {
            "status": "healthy",
            "service": app_settings.app_name,
            "version": app_settings.app_version,
            "layers": [layer.value for layer in registry.configured_layers()],
        }

    return app


app = create_app()
