"""Response cache inspection routes."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...domain.ledger.entities import Layer
from ...infrastructure.cache import RATE_LIMITED_METHODS, RateLimitedCache
from ..dependencies import get_cache

router = APIRouter(prefix="/cache", tags=["cache"])


@router.get("")
async def get_cache_stats(
    cache: RateLimitedCache = Depends(get_cache),
) -> dict[str, Any]:
    return {
        "stats": cache.stats().model_dump(),
        "rate_limited_methods": sorted(RATE_LIMITED_METHODS),
    }


@router.delete("")
async def invalidate_cache(
    method: Optional[str] = Query(None, description="Drop only this method"),
    layer: Layer = Query(Layer.PRE, description="Layer for method invalidation"),
    cache: RateLimitedCache = Depends(get_cache),
) -> dict[str, Any]:
    """Drop cached entries: one method on one layer, or everything."""
    if method is None:
        size = cache.stats().size
        cache.clear()
        return {"removed": size}
    if method not in RATE_LIMITED_METHODS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Method "{method}" is not cached',
        )
    return {"removed": cache.invalidate_method(method, layer)}
