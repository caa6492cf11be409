"""
service.py — One emergency in, one aggregate delivery report out.

    EmergencyEvent ──► directory.find_nearby ──► dispatcher.dispatch ──► FanoutResult

Stateless: nothing is kept between events. A directory failure fails
the whole event before any push is sent; push failures never do.
"""

from __future__ import annotations

import logging
import time

from backend.app.core.errors import DirectoryError
from backend.app.core.logging_config import bind_log_context
from backend.app.emergency.directory import LocationDirectory
from backend.app.emergency.dispatcher import FanoutDispatcher
from backend.app.emergency.models import EmergencyEvent, FanoutResult
from backend.app.emergency.proximity import Coordinate

logger = logging.getLogger(__name__)


class EmergencyPushService:
    """Look up users near an emergency and push the alert to each of them."""

    def __init__(self, directory: LocationDirectory, dispatcher: FanoutDispatcher):
        self.directory = directory
        self.dispatcher = dispatcher

    async def notify_nearby(self, event: EmergencyEvent) -> FanoutResult:
        bind_log_context(emergency_id=event.emergency_id)
        logger.info(
            "Emergency push for %s (%s) at %.5f,%.5f",
            event.emergency_id, event.emergency_type, event.lat, event.lng,
            extra={"emergency_id": event.emergency_id, "lat": event.lat, "lng": event.lng},
        )
        start = time.perf_counter()

        center = Coordinate(event.lat, event.lng)
        try:
            candidates = await self.directory.find_nearby(center, event.reporter_id)
        except DirectoryError:
            raise
        except Exception as exc:
            raise DirectoryError(str(exc), exception=type(exc).__name__) from exc

        logger.info(
            "Found %d nearby user(s) for %s", len(candidates), event.emergency_id,
            extra={"emergency_id": event.emergency_id, "candidate_count": len(candidates)},
        )

        result = await self.dispatcher.dispatch(event, candidates)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Emergency %s: sent=%d failed=%d (%.1fms)",
            event.emergency_id, result.sent_count, result.failed_count, duration_ms,
            extra={
                "emergency_id": event.emergency_id,
                "sent": result.sent_count,
                "failed": result.failed_count,
                "duration_ms": duration_ms,
            },
        )
        return result
