"""
test_fcm_push.py — Tests for the push-delivery transports.

Covers:
    • FCM message shape (notification, data, android hints)
    • Server key in the Authorization header
    • Failure mapping (timeout, connection, HTTP status, bad body, rejected token)
    • Simulated transport receipt
    • Transport selection from settings

Run with:
    pytest tests/test_fcm_push.py -v
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from backend.app.core.errors import ConfigurationError, DispatchError
from backend.app.emergency import channels
from backend.app.emergency.channels import (
    FcmPushTransport,
    SimulatedPushTransport,
    get_push_transport,
)
from backend.app.emergency.channels.fcm_push import build_fcm_message
from backend.app.emergency.models import NotificationPayload

PAYLOAD = NotificationPayload(
    title="🚨 EMERGENCY NEARBY",
    body="Fire emergency within 500m! Tap to respond.",
    data={"emergency_id": "E1", "type": "Fire", "lat": "23.8103", "lng": "90.4125"},
)

OK_BODY = {"multicast_id": 1, "success": 1, "failure": 0,
           "results": [{"message_id": "0:abc"}]}


def _send(handler, token="device-token-123456"):
    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = FcmPushTransport("server-key", client=client, timeout_seconds=3.0)
        try:
            return await transport.send(token, PAYLOAD)
        finally:
            await transport.aclose()
    return asyncio.run(run())


class TestBuildFcmMessage:

    def test_shape(self):
        msg = build_fcm_message("tok", PAYLOAD)
        assert msg["to"] == "tok"
        assert msg["notification"]["title"] == PAYLOAD.title
        assert msg["notification"]["body"] == PAYLOAD.body
        assert msg["notification"]["sound"] == "emergency_alarm"
        assert msg["data"] == PAYLOAD.data
        assert msg["android"]["priority"] == "high"
        assert msg["android"]["notification"]["channelId"] == "emergency_fcm_channel"
        assert msg["android"]["notification"]["fullScreenIntent"] is True


class TestFcmPushTransport:

    def test_missing_server_key(self):
        with pytest.raises(ConfigurationError):
            FcmPushTransport(None)

    def test_success_returns_receipt(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=OK_BODY)

        receipt = _send(handler)
        assert receipt == OK_BODY
        assert seen["auth"] == "key=server-key"
        assert seen["url"] == "https://fcm.googleapis.com/fcm/send"
        assert seen["body"]["to"] == "device-token-123456"

    def test_rejected_token(self):
        def handler(request):
            return httpx.Response(200, json={
                "success": 0, "failure": 1, "results": [{"error": "NotRegistered"}],
            })

        with pytest.raises(DispatchError, match="NotRegistered") as exc_info:
            _send(handler)
        assert exc_info.value.reason == "rejected"

    def test_http_error_status(self):
        def handler(request):
            return httpx.Response(401, text="Unauthorized")

        with pytest.raises(DispatchError, match="HTTP 401") as exc_info:
            _send(handler)
        assert exc_info.value.reason == "http_status"

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(DispatchError, match="timed out") as exc_info:
            _send(handler)
        assert exc_info.value.reason == "timeout"

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(DispatchError) as exc_info:
            _send(handler)
        assert exc_info.value.reason == "transport_error"

    def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(DispatchError) as exc_info:
            _send(handler)
        assert exc_info.value.reason == "bad_response"

    @pytest.mark.parametrize("body", [[1], "ok", 42])
    def test_non_object_json_body(self, body):
        def handler(request):
            return httpx.Response(200, json=body)

        with pytest.raises(DispatchError, match="unexpected JSON") as exc_info:
            _send(handler)
        assert exc_info.value.reason == "bad_response"


class TestSimulatedTransport:

    def test_receipt(self):
        receipt = asyncio.run(SimulatedPushTransport().send("tok-abc", PAYLOAD))
        assert receipt["mode"] == "simulated"
        assert receipt["failure"] == 0
        assert receipt["results"][0]["message_id"].startswith("sim-")


class TestGetPushTransport:

    @pytest.fixture(autouse=True)
    def _reset_cache(self):
        get_push_transport.cache_clear()
        yield
        get_push_transport.cache_clear()

    def test_simulation_provider(self, monkeypatch):
        monkeypatch.setattr(channels.settings, "PUSH_PROVIDER", "simulation")
        assert isinstance(get_push_transport(), SimulatedPushTransport)

    def test_fcm_provider(self, monkeypatch):
        monkeypatch.setattr(channels.settings, "PUSH_PROVIDER", "fcm")
        monkeypatch.setattr(channels.settings, "FCM_SERVER_KEY", "abc")
        assert isinstance(get_push_transport(), FcmPushTransport)

    def test_fcm_without_key(self, monkeypatch):
        monkeypatch.setattr(channels.settings, "PUSH_PROVIDER", "fcm")
        monkeypatch.setattr(channels.settings, "FCM_SERVER_KEY", None)
        with pytest.raises(ConfigurationError):
            get_push_transport()

    def test_unknown_provider(self, monkeypatch):
        monkeypatch.setattr(channels.settings, "PUSH_PROVIDER", "carrier-pigeon")
        with pytest.raises(ConfigurationError, match="Unknown push provider"):
            get_push_transport()
