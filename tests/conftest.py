import pytest

from app.config import get_settings
from app.services.cache import TTLCache, get_strapi_cache
from app.services.strapi_client import get_strapi_client


class FakeClock:
    """Millisecond clock the tests move by hand."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(default_ttl_ms=5000, max_entries=16, clock=clock)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Each test gets fresh settings, cache and client instances."""
    get_settings.cache_clear()
    get_strapi_cache.cache_clear()
    get_strapi_client.cache_clear()
    yield
    get_settings.cache_clear()
    get_strapi_cache.cache_clear()
    get_strapi_client.cache_clear()
