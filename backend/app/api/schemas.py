"""
Pydantic schemas for the edge-function API.

Separated from the route handlers so they are reusable across the
codebase (workers, tests). Field names follow what the mobile app
already sends: snake_case for emergency-push, camelCase for
verify-image.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.emergency.models import EmergencyEvent


# ---------------------------------------------------------------------------
# Emergency push
# ---------------------------------------------------------------------------

class EmergencyPushRequest(BaseModel):
    """
    Request body for POST /functions/v1/emergency-push.

    Every field is required; coordinates must be finite and in range so
    a missing or garbled position can never reach the directory query.
    """
    model_config = ConfigDict(allow_inf_nan=False, str_strip_whitespace=True)

    emergency_id: str = Field(..., min_length=1, examples=["EMG-2024-0001"])
    user_id: str = Field(..., min_length=1, description="Reporter; excluded from fan-out")
    type: str = Field(..., min_length=1, examples=["Medical"])
    lat: float = Field(..., ge=-90.0, le=90.0, examples=[23.8103])
    lng: float = Field(..., ge=-180.0, le=180.0, examples=[90.4125])

    def to_event(self) -> EmergencyEvent:
        return EmergencyEvent(
            emergency_id=self.emergency_id,
            reporter_id=self.user_id,
            emergency_type=self.type,
            lat=self.lat,
            lng=self.lng,
        )


class EmergencyPushResponse(BaseModel):
    """Aggregate fan-out result."""
    success: bool = True
    sent: int
    failed: int
    details: List[Dict[str, Any]]


# ---------------------------------------------------------------------------
# Image verification
# ---------------------------------------------------------------------------

class VerifyImageRequest(BaseModel):
    """Request body for POST /functions/v1/verify-image."""
    model_config = ConfigDict(populate_by_name=True)

    report_id: str = Field(..., alias="reportId", min_length=1)
    image_url: str = Field(..., alias="imageUrl", min_length=1)
    verification_data: Optional[Dict[str, Any]] = Field(
        None, alias="verificationData",
        description="Result of the client-side image checks",
    )
    user_id: Optional[str] = Field(None, alias="userId")
    crime_category: str = Field(..., alias="crimeCategory", examples=["theft"])


class VerifyImageResponse(BaseModel):
    success: bool = True
    message: str = "Verification received"
    overall_status: str
    is_sensitive: bool
    next_step: str
