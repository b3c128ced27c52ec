"""Cache administration endpoints."""

import logging
from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends

from ..services.cache import TTLCache, get_strapi_cache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cache"])


class InvalidateRequest(BaseModel):
    """Tag to invalidate."""
    tag: str = Field(..., min_length=1)


@router.get("/cache/stats")
async def cache_stats(cache: TTLCache = Depends(get_strapi_cache)):
    """Cache size, configuration and hit/miss counters."""
    return cache.stats()


@router.post("/cache/invalidate")
async def invalidate_tag(request: InvalidateRequest, cache: TTLCache = Depends(get_strapi_cache)):
    """Drop every cached response carrying the given tag."""
    removed = cache.invalidate_tag(request.tag)
    logger.info("Invalidated tag %r (%d entries)", request.tag, removed)
    return {"tag": request.tag, "removed": removed}


@router.delete("/cache")
async def clear_cache(cache: TTLCache = Depends(get_strapi_cache)):
    """Clear the whole response cache."""
    cache.clear()
    logger.info("Response cache cleared")
    return {"success": True}


@router.delete("/cache/entries/{key:path}")
async def delete_entry(key: str, cache: TTLCache = Depends(get_strapi_cache)):
    """Remove a single cached response."""
    cache.delete(key)
    return {"success": True, "key": key}
