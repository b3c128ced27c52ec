"""Forum endpoints: cached reads, writes that invalidate the forum tag."""

from typing import Literal, Optional
from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends, Header, HTTPException, Query

from ..services.strapi_client import StrapiClient, StrapiError, get_strapi_client

router = APIRouter(tags=["forum"])


class ForumPostCreate(BaseModel):
    """New forum post."""
    name: str = Field(..., min_length=1)
    content: str = ""
    description: str = ""
    category: str = "general"
    isPinned: bool = False


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


def _upstream_error(exc: StrapiError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail={"error": "Strapi request failed", "message": exc.message})


@router.get("/forum/posts")
async def list_posts(
    category: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    is_pinned: Optional[bool] = Query(None, alias="isPinned"),
    sort_by: Literal["recent", "popular", "views", "replies"] = Query("recent", alias="sortBy"),
    page: int = Query(1, ge=1),
    page_size: int = Query(6, ge=1, le=100, alias="pageSize"),
    refresh: Optional[str] = Query(None),
    client: StrapiClient = Depends(get_strapi_client),
):
    """Get a page of forum posts."""
    try:
        return await client.get_forum_posts(
            category=category,
            status=status,
            search=search,
            is_pinned=is_pinned,
            sort_by=sort_by,
            page=page,
            page_size=page_size,
            refresh=refresh == "1",
        )
    except StrapiError as exc:
        raise _upstream_error(exc)


@router.get("/forum/posts/{post_id}")
async def get_post(
    post_id: str,
    refresh: Optional[str] = Query(None),
    client: StrapiClient = Depends(get_strapi_client),
):
    """Get a single forum post by id or documentId."""
    try:
        post = await client.get_forum_post(post_id, refresh=refresh == "1")
    except StrapiError as exc:
        raise _upstream_error(exc)

    if not post:
        raise HTTPException(status_code=404, detail="Forum post not found")

    return post


@router.post("/forum/posts", status_code=201)
async def create_post(
    body: ForumPostCreate,
    authorization: Optional[str] = Header(None),
    client: StrapiClient = Depends(get_strapi_client),
):
    """Create a forum post; cached forum listings are invalidated."""
    try:
        return await client.create_forum_post(body.model_dump(), user_token=_bearer(authorization))
    except StrapiError as exc:
        raise _upstream_error(exc)


@router.delete("/forum/posts/{document_id}")
async def delete_post(
    document_id: str,
    authorization: Optional[str] = Header(None),
    client: StrapiClient = Depends(get_strapi_client),
):
    """Delete a forum post; cached forum listings are invalidated."""
    try:
        await client.delete_forum_post(document_id, user_token=_bearer(authorization))
    except StrapiError as exc:
        raise _upstream_error(exc)

    return {"success": True}
