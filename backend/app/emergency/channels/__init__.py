"""
channels — Push-delivery transports.

Each transport exposes:
    async send(token, payload) → receipt dict   (raises DispatchError)

Transports make exactly one delivery attempt per call; fan-out and
failure isolation live in the dispatcher.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from backend.app.core.config import settings
from backend.app.core.errors import ConfigurationError
from backend.app.emergency.channels.base import PushTransport
from backend.app.emergency.channels.fcm_push import FcmPushTransport
from backend.app.emergency.channels.simulated import SimulatedPushTransport

logger = logging.getLogger(__name__)

__all__ = [
    "PushTransport",
    "FcmPushTransport",
    "SimulatedPushTransport",
    "get_push_transport",
    "close_push_transport",
]


@lru_cache()
def get_push_transport() -> PushTransport:
    """FastAPI dependency: the transport selected by ``PUSH_PROVIDER``."""
    provider = settings.PUSH_PROVIDER.lower()
    if provider == "simulation":
        logger.warning("PUSH_PROVIDER=simulation — notifications are only logged")
        return SimulatedPushTransport()
    if provider == "fcm":
        return FcmPushTransport(
            settings.FCM_SERVER_KEY,
            send_url=settings.FCM_SEND_URL,
            timeout_seconds=settings.PUSH_TIMEOUT_SECONDS,
        )
    raise ConfigurationError(
        "PUSH_PROVIDER",
        f"Unknown push provider '{settings.PUSH_PROVIDER}'. Must be 'fcm' or 'simulation'",
    )


async def close_push_transport() -> None:
    """Release the shared transport's connections, if one was built."""
    if get_push_transport.cache_info().currsize:
        await get_push_transport().aclose()
        get_push_transport.cache_clear()
