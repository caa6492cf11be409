"""
FastAPI route: proximity emergency push.

    POST /functions/v1/emergency-push

Finds app users within ~500 m of the reporter and sends each one a
high-priority push. Individual push failures are reported in
``details``; only a directory failure fails the request.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from backend.app.api.schemas import EmergencyPushRequest, EmergencyPushResponse
from backend.app.core.config import settings
from backend.app.emergency.channels import PushTransport, get_push_transport
from backend.app.emergency.directory import LocationDirectory, get_location_directory
from backend.app.emergency.dispatcher import FanoutDispatcher
from backend.app.emergency.service import EmergencyPushService

router = APIRouter(prefix="/functions/v1", tags=["edge-functions"])


def get_push_service(
    directory: LocationDirectory = Depends(get_location_directory),
    transport: PushTransport = Depends(get_push_transport),
) -> EmergencyPushService:
    dispatcher = FanoutDispatcher(
        transport,
        max_concurrency=settings.PUSH_MAX_CONCURRENCY,
        timeout_seconds=settings.FANOUT_TIMEOUT_SECONDS,
    )
    return EmergencyPushService(directory, dispatcher)


@router.post(
    "/emergency-push",
    response_model=EmergencyPushResponse,
    summary="Notify users near an emergency",
    description=(
        "Looks up users inside the proximity box around (lat, lng), "
        "excluding the reporter and users without a push token, and "
        "sends each one an emergency push. Returns per-user outcomes."
    ),
)
async def emergency_push(
    request: EmergencyPushRequest,
    service: EmergencyPushService = Depends(get_push_service),
):
    result = await service.notify_nearby(request.to_event())
    return EmergencyPushResponse(success=True, **result.to_dict())
