"""
simulated.py — Log-only push transport for local development.

Selected with ``PUSH_PROVIDER=simulation``. Nothing leaves the process;
each send is logged and answered with a receipt shaped like FCM's so
the rest of the pipeline behaves exactly as in production.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict

from backend.app.emergency.channels.base import PushTransport, token_prefix
from backend.app.emergency.models import NotificationPayload

logger = logging.getLogger(__name__)


class SimulatedPushTransport(PushTransport):

    name = "simulation"

    async def send(self, token: str, payload: NotificationPayload) -> Dict[str, Any]:
        logger.info(
            "[PUSH-SIM] %s → %s: %s",
            payload.data.get("emergency_id", "?"), token_prefix(token), payload.body,
        )
        return {
            "mode": "simulated",
            "success": 1,
            "failure": 0,
            "results": [{"message_id": f"sim-{uuid.uuid4().hex[:12]}"}],
        }
