"""Health check endpoint."""

import platform
import sys
from fastapi import APIRouter, Depends

from ..config import get_settings
from ..services.cache import TTLCache, get_strapi_cache

router = APIRouter(tags=["stats"])


@router.get("/health")
async def health_check(cache: TTLCache = Depends(get_strapi_cache)):
    """Health check and status endpoint."""
    settings = get_settings()

    return {
        "status": "ok",
        "version": "1.0.0",
        "strapiUrl": settings.strapi_base_url,
        "cacheSize": len(cache),
        "platform": platform.system().lower(),
        "pythonVersion": sys.version,
    }
