"""API Routers for the Strapi cache server."""

from .stats import router as stats_router
from .faqs import router as faqs_router
from .forum import router as forum_router
from .cache import router as cache_router

__all__ = [
    "stats_router",
    "faqs_router",
    "forum_router",
    "cache_router",
]
