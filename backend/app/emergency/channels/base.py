"""Common interface for push-delivery transports."""

from __future__ import annotations

from typing import Any, Dict

from backend.app.emergency.models import NotificationPayload


class PushTransport:
    """One delivery attempt to one device token."""

    name = "base"

    async def send(self, token: str, payload: NotificationPayload) -> Dict[str, Any]:
        """
        Deliver ``payload`` to the device identified by ``token``.

        Returns the provider's delivery receipt. Raises ``DispatchError``
        when the provider rejects the message or cannot be reached.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release any held connections."""
        return None


def token_prefix(token: str) -> str:
    """Loggable form of a device token."""
    return token[:12] + "..." if len(token) > 12 else token
