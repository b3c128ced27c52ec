"""Strapi REST client that reads through the response cache."""

import json
import logging
import math
from typing import Any, Awaitable, Callable, Optional
from functools import lru_cache
from urllib.parse import urlencode

import httpx

from ..config import get_settings
from .cache import TTLCache, get_strapi_cache

logger = logging.getLogger(__name__)

FORUM_COLLECTION = "/api/forum-forums"
FAQ_COLLECTION = "/api/faqs"

FORUM_TAG = "forum"
FAQ_TAG = "faqs"

FORUM_POPULATE = [
    "author",
    "author.avatar",
    "forum_tags",
    "comments",
    "comments.author",
    "comments.author.avatar",
    "comments.replies",
    "comments.replies.author",
    "comments.replies.author.avatar",
]

FORUM_SORT = {
    "recent": "createdAt:desc",
    "popular": "likes:desc,createdAt:desc",
    "views": "views:desc,createdAt:desc",
    "replies": "repliesCount:desc,createdAt:desc",
}


class StrapiError(Exception):
    """Strapi answered with an error status or could not be reached."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class StrapiUnavailable(StrapiError):
    """The request never got an answer from Strapi."""

    def __init__(self, message: str):
        super().__init__(502, message)


def _parse_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value)) or None
    except (TypeError, ValueError):
        return None


def _unwrap(value: Any) -> Any:
    """Strip the v4 ``{"data": ...}`` relation wrapper if present."""
    if isinstance(value, dict) and "data" in value:
        return value["data"]
    return value


def _extract_items(payload: Any) -> list:
    data = payload.get("data") if isinstance(payload, dict) else None
    if isinstance(data, list):
        return data
    if data:
        return [data]
    if isinstance(payload, list):
        return payload
    return []


def sanitize_faqs(items: list) -> list[dict]:
    """Normalize Strapi v4/v5 FAQ records and drop incomplete ones."""
    faqs = []
    for item in items:
        if not isinstance(item, dict):
            continue
        nested = item.get("attributes") or {}

        if item.get("documentId") or (item.get("question") and item.get("answer")):
            # v5: attributes at root level
            attributes = {
                "question": item.get("question"),
                "answer": item.get("answer"),
                "buttonText": item.get("buttonText") or None,
                "order": item.get("order"),
                "group": item.get("group") or nested.get("group"),
                "category": item.get("category") or nested.get("category"),
                "isPublished": item.get("isPublished"),
                "publishedAt": item.get("publishedAt"),
            }
        elif nested:
            attributes = nested
        else:
            attributes = {
                key: item.get(key) or nested.get(key)
                for key in ("question", "answer", "order", "group", "category", "isPublished", "publishedAt")
            }
            attributes["buttonText"] = item.get("buttonText") or None

        faq_id = _parse_id(item.get("id"))
        question = attributes.get("question")
        answer = attributes.get("answer")
        if faq_id is None:
            continue
        if not isinstance(question, str) or not isinstance(answer, str):
            continue
        if not question or not answer:
            continue
        faqs.append({"id": faq_id, "attributes": attributes})
    return faqs


def normalize_forum_post(post: Optional[dict]) -> dict:
    """Flatten a Strapi forum post into the shape the front-end expects."""
    if not post:
        return {}

    attrs = post.get("attributes") or post
    post_id = _parse_id(post.get("id", attrs.get("id")))
    document_id = post.get("documentId") or attrs.get("documentId") or (str(post["id"]) if post.get("id") else "")

    author = None
    author_data = _unwrap(attrs.get("author"))
    if isinstance(author_data, dict):
        author_attrs = author_data.get("attributes") or author_data
        author_id = _parse_id(author_data.get("id", author_attrs.get("id")))
        if author_id is not None:
            author = {
                "id": author_id,
                "documentId": author_data.get("documentId") or author_attrs.get("documentId") or str(author_id),
                "username": author_attrs.get("username") or author_attrs.get("email") or "",
                "name": author_attrs.get("name") or author_attrs.get("username") or author_attrs.get("email") or "Anonymous",
                "email": author_attrs.get("email"),
            }

    tags = []
    forum_tags = _unwrap(attrs.get("forum_tags"))
    for tag in forum_tags if isinstance(forum_tags, list) else []:
        if not isinstance(tag, dict):
            continue
        tag_attrs = tag.get("attributes") or tag
        tag_id = _parse_id(tag.get("id", tag_attrs.get("id")))
        if tag_id is not None:
            tags.append({"id": tag_id, "name": tag_attrs.get("name", ""), "code": tag_attrs.get("code")})

    comments = _unwrap(attrs.get("comments"))
    if isinstance(comments, list):
        replies_count = len(comments)
    else:
        comments = []
        replies_count = attrs.get("repliesCount", 0)

    likes = attrs.get("likes", attrs.get("liked", 0))
    dislikes = attrs.get("dislikes", attrs.get("dislike", 0))
    status = attrs.get("forum_status") or attrs.get("status") or "published"

    return {
        "id": post_id or 0,
        "documentId": document_id,
        "title": attrs.get("name") or attrs.get("title") or "",
        "content": attrs.get("content", ""),
        "name": attrs.get("name", ""),
        "description": attrs.get("description", ""),
        "author": author,
        "category": attrs.get("category") or "general",
        "forum_status": status,
        "status": status,
        "isPinned": attrs.get("isPinned", False),
        "isAnswered": attrs.get("isAnswered", False),
        "views": attrs.get("views", 0),
        "repliesCount": replies_count,
        "likes": likes,
        "dislikes": dislikes,
        "lastActivity": attrs.get("lastActivity") or attrs.get("updatedAt") or attrs.get("createdAt"),
        "tags": tags,
        "comments": comments,
        "createdAt": attrs.get("createdAt"),
        "updatedAt": attrs.get("updatedAt"),
        "publishedAt": attrs.get("publishedAt"),
        "locale": attrs.get("locale"),
    }


def build_forum_query(
    status: Optional[str] = None,
    search: Optional[str] = None,
    is_pinned: Optional[bool] = None,
    sort_by: str = "recent",
) -> list[tuple[str, str]]:
    """Strapi query params for the forum listing. Category is never sent."""
    params: list[tuple[str, str]] = []
    index = 0

    if status and status != "all":
        if status == "published":
            params.append((f"filters[{index}][publishedAt][$notNull]", "true"))
        else:
            params.append((f"filters[{index}][forum_status][$eq]", status))
        index += 1

    if is_pinned is not None:
        params.append((f"filters[{index}][isPinned][$eq]", str(is_pinned).lower()))
        index += 1

    if search:
        for i, column in enumerate(("title", "content", "name", "description")):
            params.append((f"filters[$or][{i}][{column}][$containsi]", search))

    for i, relation in enumerate(FORUM_POPULATE):
        params.append((f"populate[{i}]", relation))

    params.append(("sort", FORUM_SORT.get(sort_by, FORUM_SORT["recent"])))
    return params


def filter_forum_posts(
    posts: list[dict],
    category: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> list[dict]:
    """Apply the listing filters to normalized posts in memory."""
    if category and category != "all":
        posts = [post for post in posts if post.get("category") == category]

    if status and status != "all":
        if status == "published":
            posts = [post for post in posts if post.get("publishedAt") is not None]
        else:
            posts = [post for post in posts if status in (post.get("status"), post.get("forum_status"))]

    if search:
        needle = search.lower()

        def matches(post: dict) -> bool:
            fields = (post.get("name") or post.get("title") or "", post.get("content") or "", post.get("description") or "")
            if any(needle in str(field).lower() for field in fields):
                return True
            for tag in post.get("tags") or []:
                label = tag.get("name") or tag.get("code")
                if isinstance(label, str) and needle in label.lower():
                    return True
            return False

        posts = [post for post in posts if matches(post)]

    return posts


class StrapiClient:
    """Async Strapi client with cache-aside reads and tag invalidation on writes."""

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        cache: Optional[TTLCache] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        forum_ttl_ms: float = 60_000,
        faq_ttl_ms: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.cache = cache if cache is not None else TTLCache()
        self.timeout = timeout
        self.forum_ttl_ms = forum_ttl_ms
        self.faq_ttl_ms = faq_ttl_ms
        self._transport = transport

    def _client(self, token: Optional[str] = None) -> httpx.AsyncClient:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        bearer = token or self.api_token
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def cache_key(path: str, params=None) -> str:
        """Stable key for a GET request: path plus sorted query string."""
        if not params:
            return path
        items = params.items() if isinstance(params, dict) else params
        return f"{path}?{urlencode(sorted((str(k), str(v)) for k, v in items))}"

    async def _request(
        self,
        method: str,
        path: str,
        params=None,
        json_body: Optional[dict] = None,
        token: Optional[str] = None,
    ) -> Any:
        logger.debug("Strapi %s %s", method, path)
        try:
            async with self._client(token) as client:
                response = await client.request(method, path, params=params, json=json_body)
        except httpx.HTTPError as exc:
            logger.warning("Strapi %s %s failed: %s", method, path, exc)
            raise StrapiUnavailable(f"Strapi unreachable: {exc}") from exc

        if response.status_code >= 400:
            logger.warning("Strapi %s %s responded %s", method, path, response.status_code)
            raise StrapiError(response.status_code, response.text)

        if not response.content:
            return None
        return response.json()

    async def _read_through(
        self,
        key: str,
        load: Callable[[], Awaitable[Any]],
        *,
        ttl_ms: Optional[float] = None,
        tags: Optional[list[str]] = None,
        refresh: bool = False,
        cache_if: Callable[[Any], bool] = lambda value: value is not None,
    ) -> Any:
        """Serve ``key`` from the cache, or run ``load`` and store its result."""
        if not refresh:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        value = await load()
        if cache_if(value):
            self.cache.set(key, value, ttl_ms=ttl_ms, tags=tags)
        return value

    async def fetch_json(
        self,
        path: str,
        params=None,
        *,
        ttl_ms: Optional[float] = None,
        tags: Optional[list[str]] = None,
        use_cache: bool = True,
    ) -> Any:
        """GET ``path`` through the cache."""
        return await self._read_through(
            self.cache_key(path, params),
            lambda: self._request("GET", path, params=params),
            ttl_ms=ttl_ms,
            tags=tags,
            refresh=not use_cache,
        )

    async def get_faqs(self, refresh: bool = False) -> list[dict]:
        """Published FAQs, sanitized and sorted by ``order``."""
        return await self._read_through(
            "faqs:sanitized",
            self._load_faqs,
            ttl_ms=self.faq_ttl_ms,
            tags=[FAQ_TAG],
            refresh=refresh,
            cache_if=bool,
        )

    async def _load_faqs(self) -> list[dict]:
        params = {
            "publicationState": "live",
            "populate": "*",
            "sort": "order:asc",
            "filters[isPublished][$eq]": "true",
            "pagination[pageSize]": "100",
        }
        try:
            payload = await self._request("GET", FAQ_COLLECTION, params=params)
        except StrapiUnavailable:
            raise
        except StrapiError as exc:
            logger.info("FAQ fetch failed (%s), retrying without publicationState", exc.status_code)
            params.pop("publicationState")
            payload = await self._request("GET", FAQ_COLLECTION, params=params)

        return sanitize_faqs(_extract_items(payload))

    async def get_forum_posts(
        self,
        category: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        is_pinned: Optional[bool] = None,
        sort_by: str = "recent",
        page: int = 1,
        page_size: int = 6,
        refresh: bool = False,
    ) -> dict:
        """One page of forum posts; category is filtered after fetching.

        If Strapi rejects the filtered query with 400 or 500, the listing is
        refetched with only pinning and sort applied and every other filter
        runs in memory.
        """
        filters = {
            "category": category,
            "status": status,
            "search": search,
            "isPinned": is_pinned,
            "sortBy": sort_by,
            "pageSize": page_size,
        }

        async def load() -> dict:
            params = build_forum_query(status=status, search=search, is_pinned=is_pinned, sort_by=sort_by)
            params.append(("pagination[page]", str(page)))
            params.append(("pagination[pageSize]", str(page_size)))
            try:
                payload = await self._request("GET", FORUM_COLLECTION, params=params) or {}
            except StrapiError as exc:
                if exc.status_code not in (400, 500):
                    raise
                logger.info("Forum query rejected (%s), filtering in memory", exc.status_code)
                return await self._load_forum_posts_unfiltered(
                    category, status, search, is_pinned, sort_by, page, page_size
                )

            posts = filter_forum_posts(
                [normalize_forum_post(item) for item in _extract_items(payload)],
                category=category,
            )
            pagination = (payload.get("meta") or {}).get("pagination") if isinstance(payload, dict) else None
            return {
                "data": posts,
                "pagination": {
                    "page": pagination.get("page", page),
                    "pageSize": pagination.get("pageSize", page_size),
                    "pageCount": pagination.get("pageCount"),
                    "total": pagination.get("total"),
                } if pagination else None,
            }

        return await self._read_through(
            f"forum-posts-{json.dumps(filters, sort_keys=True)}-page-{page}",
            load,
            ttl_ms=self.forum_ttl_ms,
            tags=[FORUM_TAG],
            refresh=refresh,
        )

    async def _load_forum_posts_unfiltered(
        self, category, status, search, is_pinned, sort_by, page, page_size
    ) -> dict:
        params = build_forum_query(is_pinned=is_pinned, sort_by=sort_by)
        payload = await self._request("GET", FORUM_COLLECTION, params=params) or {}
        posts = filter_forum_posts(
            [normalize_forum_post(item) for item in _extract_items(payload)],
            category=category,
            status=status,
            search=search,
        )
        return {
            "data": posts,
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "pageCount": math.ceil(len(posts) / page_size),
                "total": len(posts),
            },
        }

    async def get_forum_post(self, post_id: str, refresh: bool = False) -> Optional[dict]:
        """Single post by numeric id or Strapi documentId, or None."""
        post_id = str(post_id)

        async def load() -> Optional[dict]:
            populate = [(f"populate[{i}]", relation) for i, relation in enumerate(FORUM_POPULATE)]
            if post_id.isdigit():
                payload = await self._request(
                    "GET", FORUM_COLLECTION, params=[("filters[id][$eq]", post_id)] + populate
                )
            else:
                try:
                    payload = await self._request("GET", f"{FORUM_COLLECTION}/{post_id}", params=populate)
                except StrapiError as exc:
                    if exc.status_code != 404:
                        raise
                    payload = await self._request(
                        "GET", FORUM_COLLECTION, params=[("filters[documentId][$eq]", post_id)] + populate
                    )

            items = _extract_items(payload)
            if not items:
                return None
            post = normalize_forum_post(items[0])
            return post if post.get("id") else None

        return await self._read_through(
            f"forum-post-{post_id}",
            load,
            ttl_ms=self.forum_ttl_ms,
            tags=[FORUM_TAG],
            refresh=refresh,
        )

    async def create_forum_post(self, data: dict, user_token: Optional[str] = None) -> dict:
        """Create a post and drop every cached forum response."""
        payload = await self._request("POST", FORUM_COLLECTION, json_body={"data": data}, token=user_token)
        self.cache.invalidate_tag(FORUM_TAG)
        return normalize_forum_post(_unwrap(payload))

    async def delete_forum_post(self, document_id: str, user_token: Optional[str] = None) -> None:
        """Delete a post and drop every cached forum response."""
        await self._request("DELETE", f"{FORUM_COLLECTION}/{document_id}", token=user_token)
        self.cache.invalidate_tag(FORUM_TAG)


@lru_cache()
def get_strapi_client() -> StrapiClient:
    """Get the shared Strapi client bound to the process-wide cache."""
    settings = get_settings()
    return StrapiClient(
        base_url=settings.strapi_base_url,
        api_token=settings.strapi_api_token,
        cache=get_strapi_cache(),
        timeout=settings.strapi_timeout,
        forum_ttl_ms=settings.forum_cache_ttl_ms,
        faq_ttl_ms=settings.faq_cache_ttl_ms,
    )
