"""Tests for the OpenClaw gateway websocket client."""

import asyncio

import pytest
from conftest import ok_response, wait_until

from trendclaw.gateway.client import PROTOCOL_VERSION, ConnectionState, GatewayClient
from trendclaw.gateway.errors import (
    GatewayConnectionError,
    GatewayHandshakeError,
    GatewayNotConnectedError,
    GatewayRequestError,
    GatewayTimeoutError,
)
from trendclaw.gateway.identity import build_device_auth_payload, verify_signature


class TestHandshake:
    async def test_connect_sends_signed_handshake(self, gateway, connector):
        await gateway.connect()

        assert gateway.is_connected()
        assert gateway.state == ConnectionState.CONNECTED
        frame = connector.last.sent[0]
        assert frame["type"] == "req"
        assert frame["method"] == "connect"
        assert frame["id"].startswith("handshake-")

        params = frame["params"]
        assert params["minProtocol"] == PROTOCOL_VERSION
        assert params["maxProtocol"] == PROTOCOL_VERSION
        assert params["client"]["id"] == "gateway-client"
        assert params["client"]["mode"] == "backend"
        assert params["role"] == "operator"
        assert params["scopes"] == ["operator.admin"]
        assert params["caps"] == []
        assert params["auth"] == {"token": "gw-token"}

        device = params["device"]
        assert device["id"] == gateway.identity.device_id
        payload = build_device_auth_payload(
            device_id=device["id"],
            client_id="gateway-client",
            client_mode="backend",
            role="operator",
            scopes=["operator.admin"],
            signed_at_ms=device["signedAt"],
            token="gw-token",
        )
        assert verify_signature(device["publicKey"], payload, device["signature"])

        await gateway.disconnect()

    def test_handshake_omits_auth_without_token(self, identity, connector):
        client = GatewayClient("ws://gateway.test", identity, None, connector=connector)

        params = client.build_handshake_params(signed_at_ms=1)

        assert "auth" not in params
        assert params["device"]["signedAt"] == 1

    def test_signature_is_bound_to_scopes(self, gateway):
        params = gateway.build_handshake_params(signed_at_ms=42)
        payload = build_device_auth_payload(
            device_id=gateway.identity.device_id,
            client_id="gateway-client",
            client_mode="backend",
            role="operator",
            scopes=["operator.admin", "operator.write"],
            signed_at_ms=42,
            token="gw-token",
        )

        assert not verify_signature(params["device"]["publicKey"], payload, params["device"]["signature"])

    async def test_rejected_handshake_raises_and_schedules_reconnect(self, gateway, connector):
        connector.handshake_ok = False

        with pytest.raises(GatewayHandshakeError, match="device not paired"):
            await gateway.connect()

        assert not gateway.is_connected()
        assert gateway.reconnect_scheduled
        await gateway.disconnect()
        assert not gateway.reconnect_scheduled

    async def test_handshake_timeout(self, identity, connector):
        connector.handshake_ok = None
        client = GatewayClient(
            "ws://gateway.test", identity, connector=connector, handshake_timeout=0.05, reconnect_delay=10
        )

        with pytest.raises(GatewayTimeoutError, match="handshake timed out"):
            await client.connect()

        assert client.pending_count == 0
        await client.disconnect()

    async def test_transport_failure_schedules_reconnect(self, gateway, connector):
        connector.fail_with = OSError("connection refused")

        with pytest.raises(GatewayConnectionError, match="connection refused"):
            await gateway.connect()

        assert gateway.reconnect_scheduled
        assert gateway.state == ConnectionState.RECONNECT_SCHEDULED

        connector.fail_with = None
        await wait_until(gateway.is_connected)
        assert connector.calls == 2
        await gateway.disconnect()


class TestRequests:
    async def test_request_when_disconnected_sends_nothing(self, gateway, connector):
        with pytest.raises(GatewayNotConnectedError):
            await gateway.request("cron.list", {"includeDisabled": True})

        assert connector.calls == 0
        assert gateway.pending_count == 0

    async def test_request_returns_result(self, connected_gateway, connector):
        connector.last.responder = lambda frame: ok_response(frame, {"jobs": [{"id": "j1"}]})

        result = await connected_gateway.request("cron.list", {"includeDisabled": True})

        assert result == {"jobs": [{"id": "j1"}]}
        sent = connector.last.requests[0]
        assert sent["method"] == "cron.list"
        assert sent["params"] == {"includeDisabled": True}
        assert connected_gateway.pending_count == 0

    async def test_payload_used_when_result_missing(self, connected_gateway, connector):
        connector.last.responder = lambda frame: {"type": "res", "id": frame["id"], "ok": True, "payload": {"id": "p"}}

        assert await connected_gateway.request("cron.status") == {"id": "p"}

    async def test_out_of_order_responses_reach_their_callers(self, connected_gateway, connector):
        ws = connector.last

        first = asyncio.create_task(connected_gateway.request("cron.runs", {"id": "a"}))
        second = asyncio.create_task(connected_gateway.request("cron.runs", {"id": "b"}))
        await wait_until(lambda: len(ws.requests) == 2)

        frame_a, frame_b = ws.requests
        assert frame_a["id"] != frame_b["id"]
        ws.push(ok_response(frame_b, "runs-b"))
        ws.push(ok_response(frame_a, "runs-a"))

        assert await first == "runs-a"
        assert await second == "runs-b"

    async def test_remote_error_message(self, connected_gateway, connector):
        connector.last.responder = lambda frame: {
            "type": "res",
            "id": frame["id"],
            "ok": False,
            "error": {"message": "job not found", "code": "NOT_FOUND"},
        }

        with pytest.raises(GatewayRequestError, match="job not found") as exc_info:
            await connected_gateway.request("cron.run", {"jobId": "missing"})

        assert exc_info.value.code == "NOT_FOUND"

    async def test_remote_error_without_message(self, connected_gateway, connector):
        connector.last.responder = lambda frame: {"type": "res", "id": frame["id"], "ok": False}

        with pytest.raises(GatewayRequestError, match="OpenClaw request failed"):
            await connected_gateway.request("cron.remove", {"id": "x"})

    async def test_timeout_names_method_and_late_reply_is_ignored(self, identity, connector):
        client = GatewayClient("ws://gateway.test", identity, connector=connector, request_timeout=0.05)
        await client.connect()
        ws = connector.last

        with pytest.raises(GatewayTimeoutError, match="cron.list"):
            await client.request("cron.list")

        assert client.pending_count == 0
        ws.push(ok_response(ws.requests[0], {"late": True}))
        await asyncio.sleep(0.01)
        assert client.is_connected()
        assert client.pending_count == 0
        await client.disconnect()

    async def test_events_and_garbage_frames_are_ignored(self, connected_gateway, connector):
        ws = connector.last
        ws.push({"type": "evt", "event": "tick", "payload": {"ts": 1}})
        ws.push("not json at all")
        ws.responder = lambda frame: ok_response(frame, "pong")

        assert await connected_gateway.request("health") == "pong"
        assert connected_gateway.is_connected()


class TestConnectionLoss:
    async def test_drop_fails_pending_requests(self, connected_gateway, connector):
        ws = connector.last
        pending = asyncio.create_task(connected_gateway.request("cron.runs", {"id": "a"}))
        await wait_until(lambda: len(ws.requests) == 1)

        ws.drop()

        with pytest.raises(GatewayConnectionError):
            await pending
        assert connected_gateway.pending_count == 0

    async def test_repeated_close_schedules_single_reconnect(self, connected_gateway, connector):
        connector.last.drop()
        await wait_until(lambda: not connected_gateway.is_connected())

        assert connected_gateway.reconnect_scheduled
        handle = connected_gateway._reconnect_handle
        connected_gateway._handle_close("closed")
        connected_gateway._handle_close("socket error")
        assert connected_gateway._reconnect_handle is handle
        assert connected_gateway.state == ConnectionState.RECONNECT_SCHEDULED

        await wait_until(connected_gateway.is_connected)
        assert connector.calls == 2
        assert not connected_gateway.reconnect_scheduled

    async def test_failed_reconnect_retries(self, connected_gateway, connector):
        connector.fail_with = OSError("still down")
        connector.last.drop()

        await wait_until(lambda: connector.calls >= 3)
        assert not connected_gateway.is_connected()

        connector.fail_with = None
        await wait_until(connected_gateway.is_connected)

    async def test_disconnect_is_idempotent_and_stops_reconnects(self, connected_gateway, connector):
        ws = connector.last

        await connected_gateway.disconnect()
        await connected_gateway.disconnect()

        assert ws.closed
        assert not connected_gateway.is_connected()
        assert not connected_gateway.reconnect_scheduled
        await asyncio.sleep(0.1)
        assert connector.calls == 1

    async def test_disconnect_fails_in_flight_requests(self, connected_gateway, connector):
        ws = connector.last
        pending = asyncio.create_task(connected_gateway.request("cron.status"))
        await wait_until(lambda: len(ws.requests) == 1)

        await connected_gateway.disconnect()

        with pytest.raises(GatewayConnectionError):
            await pending
