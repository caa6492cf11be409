"""
FastAPI route: server-side image verification.

    POST /functions/v1/verify-image

Reports whose crime category is sensitive go to human moderation;
everything else is approved for publishing.
"""

from __future__ import annotations

from fastapi import APIRouter

from backend.app.api.schemas import VerifyImageRequest, VerifyImageResponse
from backend.app.core.config import settings
from backend.app.moderation.image_check import verify_report

router = APIRouter(prefix="/functions/v1", tags=["edge-functions"])


@router.post(
    "/verify-image",
    response_model=VerifyImageResponse,
    summary="Verify a report image",
)
async def verify_image(request: VerifyImageRequest):
    record = verify_report(
        request.report_id,
        request.image_url,
        request.user_id or "",
        request.crime_category,
        client_check=request.verification_data,
        sensitive_categories=settings.SENSITIVE_CATEGORIES,
    )
    return VerifyImageResponse(
        overall_status=record.overall_status.value,
        is_sensitive=record.is_sensitive,
        next_step=record.next_step.value,
    )
