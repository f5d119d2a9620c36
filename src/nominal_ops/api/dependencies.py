"""FastAPI dependencies for the ledger API."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Query, Request, status

from ..application.deals.use_cases import DealService
from ..domain.errors import LayerNotConfiguredError
from ..domain.ledger.entities import Layer
from ..infrastructure.cache import RateLimitedCache
from ..infrastructure.ledger.ledger_client import LedgerClient, LedgerClientRegistry
from ..infrastructure.vending.vending_client import AsyncVendingClient


def get_ledger_registry(request: Request) -> LedgerClientRegistry:
    """Get the per-layer client registry built at app creation."""
    return request.app.state.ledger_registry


def get_ledger_client(
    layer: Layer = Query(Layer.PRE, description="Upstream layer"),
    registry: LedgerClientRegistry = Depends(get_ledger_registry),
) -> LedgerClient:
    """Get the ledger client for the requested layer."""
    try:
        return registry.get(layer)
    except LayerNotConfiguredError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)
        ) from e


def get_cache(
    registry: LedgerClientRegistry = Depends(get_ledger_registry),
) -> RateLimitedCache:
    """Get the shared response cache."""
    return registry.cache


def get_deal_service(
    client: LedgerClient = Depends(get_ledger_client),
) -> DealService:
    """Get deal service."""
    return DealService(client)


def get_vending_client(request: Request) -> Optional[AsyncVendingClient]:
    """Get the vending client, or None when no API key is configured."""
    return getattr(request.app.state, "vending_client", None)
