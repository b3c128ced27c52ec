import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.services.cache import TTLCache, get_strapi_cache
from app.services.strapi_client import StrapiClient, get_strapi_client

FAQ = {"id": 1, "documentId": "faq-1", "question": "Refunds?", "answer": "Within 30 days"}
POST = {"id": 7, "documentId": "post-7", "name": "Welcome", "category": "general"}


@pytest.fixture
def strapi_calls():
    return []


@pytest.fixture
def routes():
    return {
        ("GET", "/api/faqs"): lambda request: httpx.Response(200, json={"data": [FAQ]}),
        ("GET", "/api/forum-forums"): lambda request: httpx.Response(200, json={"data": [POST]}),
        ("POST", "/api/forum-forums"): lambda request: httpx.Response(200, json={"data": dict(POST, id=8)}),
    }


@pytest.fixture
def cache():
    return TTLCache(default_ttl_ms=60_000, max_entries=32)


@pytest.fixture
def client(routes, cache, strapi_calls):
    def handler(request):
        strapi_calls.append(request)
        responder = routes.get((request.method, request.url.path))
        if responder is None:
            return httpx.Response(404, json={"error": "not found"})
        return responder(request)

    strapi = StrapiClient("http://strapi.test", cache=cache, transport=httpx.MockTransport(handler))

    app = create_app()
    app.dependency_overrides[get_strapi_cache] = lambda: cache
    app.dependency_overrides[get_strapi_client] = lambda: strapi
    return TestClient(app)


def test_health(client, cache):
    cache.set("k", 1)

    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["cacheSize"] == 1


def test_faqs_cached_between_requests(client, strapi_calls):
    first = client.get("/api/faqs")
    second = client.get("/api/faqs")

    assert first.status_code == 200
    assert first.json()["meta"]["total"] == 1
    assert second.json()["data"] == first.json()["data"]
    assert len(strapi_calls) == 1


def test_faqs_refresh_refetches(client, strapi_calls):
    client.get("/api/faqs")
    client.get("/api/faqs", params={"refresh": "1"})

    assert len(strapi_calls) == 2


def test_faqs_not_found_when_nothing_valid(client, routes):
    routes[("GET", "/api/faqs")] = lambda request: httpx.Response(200, json={"data": [{"id": 1}]})

    response = client.get("/api/faqs")

    assert response.status_code == 404


def test_faqs_upstream_error_passes_status(client, routes):
    routes[("GET", "/api/faqs")] = lambda request: httpx.Response(503, text="down")

    response = client.get("/api/faqs")

    assert response.status_code == 503
    assert response.json()["detail"]["message"] == "down"


def test_forum_post_not_found(client, routes):
    routes[("GET", "/api/forum-forums")] = lambda request: httpx.Response(200, json={"data": []})

    response = client.get("/api/forum/posts/99")

    assert response.status_code == 404


def test_creating_post_invalidates_listing(client, strapi_calls):
    client.get("/api/forum/posts")
    client.get("/api/forum/posts")
    assert len(strapi_calls) == 1

    created = client.post(
        "/api/forum/posts",
        json={"name": "New thread"},
        headers={"Authorization": "Bearer user-jwt"},
    )
    assert created.status_code == 201
    assert created.json()["id"] == 8
    assert strapi_calls[-1].headers["Authorization"] == "Bearer user-jwt"

    client.get("/api/forum/posts")
    assert len(strapi_calls) == 3


def test_invalidate_tag_endpoint(client, cache):
    cache.set("a", 1, tags=["courses"])
    cache.set("b", 2, tags=["courses", "blog"])
    cache.set("c", 3, tags=["blog"])

    response = client.post("/api/cache/invalidate", json={"tag": "courses"})

    assert response.json() == {"tag": "courses", "removed": 2}
    assert cache.get("c") == 3


def test_invalidate_requires_tag(client):
    response = client.post("/api/cache/invalidate", json={"tag": ""})

    assert response.status_code == 422


def test_cache_stats_and_clear(client, cache):
    cache.set("a", 1)
    cache.get("a")

    stats = client.get("/api/cache/stats").json()
    assert stats["size"] == 1
    assert stats["hits"] == 1

    assert client.delete("/api/cache").status_code == 200
    assert len(cache) == 0


def test_delete_single_entry(client, cache):
    cache.set("forum-post-7", 1)
    cache.set("other", 2)

    response = client.delete("/api/cache/entries/forum-post-7")

    assert response.status_code == 200
    assert cache.get("forum-post-7") is None
    assert cache.get("other") == 2
