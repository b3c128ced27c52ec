"""FAQ endpoint backed by the Strapi response cache."""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query

from ..services.strapi_client import StrapiClient, StrapiError, get_strapi_client

router = APIRouter(tags=["faqs"])


@router.get("/faqs")
async def get_faqs(
    refresh: Optional[str] = Query(None),
    client: StrapiClient = Depends(get_strapi_client),
):
    """Get published FAQs from Strapi."""
    try:
        faqs = await client.get_faqs(refresh=refresh == "1")
    except StrapiError as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail={
                "error": "Failed to fetch FAQs from Strapi",
                "message": exc.message,
                "strapiUrl": client.base_url,
            },
        )

    if not faqs:
        raise HTTPException(
            status_code=404,
            detail={
                "error": "No valid FAQs found",
                "message": "Strapi returned no FAQs with both a question and an answer",
            },
        )

    return {
        "data": faqs,
        "meta": {
            "source": "strapi",
            "total": len(faqs),
            "strapiUrl": client.base_url,
        },
    }
