"""
fcm_push.py — Firebase Cloud Messaging transport (legacy HTTP API).

Delivery mechanism:
    • POST https://fcm.googleapis.com/fcm/send
    • Authorization: key=<FCM_SERVER_KEY>
    • One request per device token (``to`` field)

Message shape:

    {
      "to": "<token>",
      "notification": {"title", "body", "sound": "emergency_alarm",
                       "priority": "high"},
      "data": {...string values...},
      "android": {"priority": "high",
                  "notification": {"channelId": "emergency_fcm_channel",
                                   "fullScreenIntent": true,
                                   "priority": "max"}}
    }

The ``emergency_fcm_channel`` channel and the ``emergency_alarm`` sound
are registered by the mobile app; full-screen intent lets the alert
wake a locked phone.

═══════════════════════════════════════════════════════════════════════════
FAILURE MAPPING
═══════════════════════════════════════════════════════════════════════════

    Condition                               DispatchError.reason
    ─────────────────────────────────       ────────────────────
    Request timed out                       timeout
    Connection / protocol error             transport_error
    HTTP status outside 2xx                 http_status
    Body is not JSON                        bad_response
    200 with "failure" > 0                  rejected  (NotRegistered,
                                                       InvalidRegistration, ...)

FCM answers HTTP 200 even when the token is dead, so the body has to
be inspected; a 200 alone is not a delivery receipt.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from backend.app.core.errors import ConfigurationError, DispatchError
from backend.app.emergency.channels.base import PushTransport, token_prefix
from backend.app.emergency.models import NotificationPayload

logger = logging.getLogger(__name__)

FCM_SEND_URL = "https://fcm.googleapis.com/fcm/send"
ANDROID_CHANNEL_ID = "emergency_fcm_channel"
ALARM_SOUND = "emergency_alarm"


def build_fcm_message(token: str, payload: NotificationPayload) -> Dict[str, Any]:
    """Request body for one device."""
    return {
        "to": token,
        "notification": {
            "title": payload.title,
            "body": payload.body,
            "sound": ALARM_SOUND,
            "priority": "high",
        },
        "data": dict(payload.data),
        "android": {
            "priority": "high",
            "notification": {
                "channelId": ANDROID_CHANNEL_ID,
                "fullScreenIntent": True,
                "priority": "max",
            },
        },
    }


class FcmPushTransport(PushTransport):
    """
    Sends through the FCM legacy HTTP endpoint with a server key.

    Usage:
        transport = FcmPushTransport(settings.FCM_SERVER_KEY)
        receipt = await transport.send(token, payload)
        await transport.aclose()
    """

    name = "fcm"

    def __init__(
        self,
        server_key: Optional[str],
        *,
        send_url: str = FCM_SEND_URL,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not server_key:
            raise ConfigurationError("FCM_SERVER_KEY")
        self._server_key = server_key
        self.send_url = send_url
        self.timeout_seconds = timeout_seconds
        self._http_client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http_client

    async def aclose(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def send(self, token: str, payload: NotificationPayload) -> Dict[str, Any]:
        client = await self._get_client()
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"key={self._server_key}",
        }

        try:
            response = await client.post(
                self.send_url,
                json=build_fcm_message(token, payload),
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            raise DispatchError(
                f"FCM request timed out after {self.timeout_seconds}s",
                reason="timeout",
            ) from exc
        except httpx.HTTPError as exc:
            raise DispatchError(
                f"FCM request failed: {exc}", reason="transport_error",
            ) from exc

        if not response.is_success:
            raise DispatchError(
                f"FCM returned HTTP {response.status_code}",
                reason="http_status",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise DispatchError(
                "FCM returned a non-JSON response", reason="bad_response",
            ) from exc

        if not isinstance(body, dict):
            raise DispatchError(
                f"FCM returned an unexpected JSON {type(body).__name__}",
                reason="bad_response",
            )

        if body.get("failure"):
            errors = [
                r["error"] for r in body.get("results", [])
                if isinstance(r, dict) and r.get("error")
            ]
            raise DispatchError(
                f"FCM rejected token: {', '.join(errors) or 'unknown error'}",
                reason="rejected",
                fcm_errors=errors,
            )

        logger.debug("[FCM] delivered to %s", token_prefix(token))
        return body
