"""Services for the Strapi cache server."""

from .cache import TTLCache, get_strapi_cache, invalidate_strapi_cache_by_tag
from .strapi_client import StrapiClient, StrapiError, StrapiUnavailable, get_strapi_client

__all__ = [
    "TTLCache",
    "get_strapi_cache",
    "invalidate_strapi_cache_by_tag",
    "StrapiClient",
    "StrapiError",
    "StrapiUnavailable",
    "get_strapi_client",
]
