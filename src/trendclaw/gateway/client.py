"""
OpenClaw Gateway WebSocket Client.

Keeps one authenticated connection to the gateway for the lifetime of the
process, correlates request/response frames by id, and reconnects on a fixed
delay whenever the socket drops.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog
import websockets
from websockets.exceptions import ConnectionClosed

from trendclaw import __version__
from trendclaw.gateway.errors import (
    GatewayConnectionError,
    GatewayError,
    GatewayHandshakeError,
    GatewayNotConnectedError,
    GatewayRequestError,
    GatewayTimeoutError,
)
from trendclaw.gateway.identity import DeviceIdentity, build_device_auth_payload, load_or_create

if TYPE_CHECKING:
    from trendclaw.config import Settings

logger = structlog.get_logger()

PROTOCOL_VERSION = 3
HANDSHAKE_METHOD = "connect"

Connector = Callable[..., Awaitable[Any]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    CONNECTED = "connected"
    RECONNECT_SCHEDULED = "reconnect_scheduled"


@dataclass(frozen=True)
class ClientDescriptor:
    """Static client block announced in the connect handshake."""

    id: str = "gateway-client"
    display_name: str = "TrendClaw Backend"
    version: str = __version__
    platform: str = "python"
    mode: str = "backend"

    def as_params(self) -> dict[str, str]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "version": self.version,
            "platform": self.platform,
            "mode": self.mode,
        }


@dataclass
class PendingRequest:
    """In-flight call awaiting its response frame."""

    correlation_id: str
    method: str
    future: asyncio.Future[Any]
    timeout_handle: asyncio.TimerHandle


@dataclass
class _Timeouts:
    handshake: float = 15.0
    request: float = 30.0
    reconnect_delay: float = 5.0


class GatewayClient:
    """
    Persistent WebSocket client for the OpenClaw Gateway.

    Usage:
        client = GatewayClient.from_settings(settings)
        await client.connect()
        jobs = await client.request("cron.list", {"includeDisabled": True})
        await client.disconnect()
    """

    def __init__(
        self,
        gateway_url: str,
        identity: DeviceIdentity,
        token: str | None = None,
        *,
        client: ClientDescriptor | None = None,
        role: str = "operator",
        scopes: tuple[str, ...] = ("operator.admin",),
        handshake_timeout: float = 15.0,
        request_timeout: float = 30.0,
        reconnect_delay: float = 5.0,
        connector: Connector | None = None,
    ) -> None:
        self.gateway_url = gateway_url
        self.identity = identity
        self.token = token
        self.client = client or ClientDescriptor()
        self.role = role
        self.scopes = list(scopes)
        self.timeouts = _Timeouts(handshake_timeout, request_timeout, reconnect_delay)
        self._connector: Connector = connector or websockets.connect

        self._ws: Any | None = None
        self._state = ConnectionState.DISCONNECTED
        self._connected = False
        self._closing = False
        self._pending: dict[str, PendingRequest] = {}
        self._reader_task: asyncio.Task[None] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._connect_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, connector: Connector | None = None) -> GatewayClient:
        return cls(
            settings.openclaw_gateway_url,
            load_or_create(settings.identity_path),
            settings.gateway_token,
            handshake_timeout=settings.gateway_handshake_timeout_seconds,
            request_timeout=settings.gateway_request_timeout_seconds,
            reconnect_delay=settings.gateway_reconnect_delay_seconds,
            connector=connector,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_connected(self) -> bool:
        return self._connected

    # Handshake

    def build_handshake_params(self, signed_at_ms: int | None = None) -> dict[str, Any]:
        """Connect params including the signed device-auth block."""
        if signed_at_ms is None:
            signed_at_ms = int(time.time() * 1000)
        payload = build_device_auth_payload(
            device_id=self.identity.device_id,
            client_id=self.client.id,
            client_mode=self.client.mode,
            role=self.role,
            scopes=self.scopes,
            signed_at_ms=signed_at_ms,
            token=self.token,
        )
        params: dict[str, Any] = {
            "minProtocol": PROTOCOL_VERSION,
            "maxProtocol": PROTOCOL_VERSION,
            "client": self.client.as_params(),
            "caps": [],
            "role": self.role,
            "scopes": list(self.scopes),
            "device": {
                "id": self.identity.device_id,
                "publicKey": self.identity.public_key_b64url,
                "signature": self.identity.sign(payload),
                "signedAt": signed_at_ms,
            },
        }
        if self.token:
            params["auth"] = {"token": self.token}
        return params

    async def connect(self) -> None:
        """Open the socket and complete the authenticated handshake."""
        async with self._connect_lock:
            if self._connected:
                return
            self._closing = False
            self._state = ConnectionState.CONNECTING
            logger.info("gateway.connecting", url=self.gateway_url)

            try:
                ws = await asyncio.wait_for(
                    self._connector(self.gateway_url, ping_interval=30, ping_timeout=10),
                    timeout=self.timeouts.handshake,
                )
            except asyncio.TimeoutError:
                self._handle_close("connect timeout")
                raise GatewayTimeoutError(f"Timeout connecting to {self.gateway_url}") from None
            except (OSError, websockets.exceptions.WebSocketException) as exc:
                logger.error("gateway.transport_error", error=str(exc))
                self._handle_close("transport error")
                raise GatewayConnectionError(f"Failed to connect to OpenClaw gateway: {exc}") from exc

            self._ws = ws
            self._state = ConnectionState.HANDSHAKING
            self._reader_task = asyncio.create_task(self._read_frames(ws))

            handshake_id = f"handshake-{uuid4()}"
            future = self._register(handshake_id, HANDSHAKE_METHOD, self.timeouts.handshake)
            frame = {
                "type": "req",
                "id": handshake_id,
                "method": HANDSHAKE_METHOD,
                "params": self.build_handshake_params(),
            }
            try:
                await ws.send(json.dumps(frame))
                await future
            except GatewayRequestError as exc:
                await self._abort(ws, "handshake rejected")
                raise GatewayHandshakeError(f"OpenClaw handshake failed: {exc}") from exc
            except GatewayTimeoutError:
                await self._abort(ws, "handshake timeout")
                raise GatewayTimeoutError("OpenClaw handshake timed out") from None
            except (GatewayError, ConnectionClosed) as exc:
                self._discard(handshake_id)
                await self._abort(ws, "handshake interrupted")
                if isinstance(exc, GatewayError):
                    raise
                raise GatewayConnectionError(f"Connection closed during handshake: {exc}") from exc

            self._connected = True
            self._state = ConnectionState.CONNECTED
            if self._reconnect_handle is not None:
                self._reconnect_handle.cancel()
                self._reconnect_handle = None
            logger.info("gateway.connected", device_id=self.identity.device_id[:16])

    async def disconnect(self) -> None:
        """Tear down the connection and stop reconnecting. Safe to call repeatedly."""
        self._closing = True
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        reconnect_task = self._reconnect_task
        self._reconnect_task = None
        if reconnect_task is not None and reconnect_task is not asyncio.current_task() and not reconnect_task.done():
            reconnect_task.cancel()

        ws = self._ws
        self._ws = None
        was_connected = self._connected
        self._connected = False
        self._state = ConnectionState.DISCONNECTED
        self._fail_pending(GatewayConnectionError("Gateway client disconnected"))

        if ws is not None:
            try:
                await ws.close()
            except (OSError, ConnectionClosed) as exc:
                logger.debug("gateway.close_error", error=str(exc))
        reader = self._reader_task
        self._reader_task = None
        if reader is not None and not reader.done():
            reader.cancel()

        if was_connected:
            logger.info("gateway.disconnected", reason="requested")

    # Requests

    async def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send a request frame and wait for its matching response."""
        ws = self._ws
        if not self._connected or ws is None:
            raise GatewayNotConnectedError()

        correlation_id = str(uuid4())
        future = self._register(correlation_id, method, self.timeouts.request)
        frame = {"type": "req", "id": correlation_id, "method": method, "params": params or {}}
        try:
            await ws.send(json.dumps(frame))
        except (OSError, ConnectionClosed) as exc:
            self._discard(correlation_id)
            raise GatewayConnectionError(f"Failed to send {method}: {exc}") from exc

        logger.debug("gateway.request.sent", method=method, id=correlation_id)
        return await future

    def _register(self, correlation_id: str, method: str, timeout: float) -> asyncio.Future[Any]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        handle = loop.call_later(timeout, self._expire, correlation_id)
        self._pending[correlation_id] = PendingRequest(correlation_id, method, future, handle)
        return future

    def _discard(self, correlation_id: str) -> PendingRequest | None:
        entry = self._pending.get(correlation_id)
        if entry is None:
            return None
        entry.timeout_handle.cancel()
        del self._pending[correlation_id]
        return entry

    def _expire(self, correlation_id: str) -> None:
        entry = self._pending.pop(correlation_id, None)
        if entry is None or entry.future.done():
            return
        logger.warning("gateway.request.timeout", method=entry.method, id=correlation_id)
        entry.future.set_exception(GatewayTimeoutError(f"OpenClaw request timed out: {entry.method}"))

    def _settle(self, frame: dict[str, Any]) -> None:
        correlation_id = frame.get("id")
        entry = self._discard(correlation_id) if isinstance(correlation_id, str) else None
        if entry is None:
            logger.debug("gateway.response.dropped", id=correlation_id)
            return
        if entry.future.done():
            return

        if frame.get("ok"):
            result = frame["result"] if "result" in frame else frame.get("payload")
            entry.future.set_result(result)
            return

        error = frame.get("error")
        code = None
        if isinstance(error, dict):
            message = error.get("message") or "OpenClaw request failed"
            code = error.get("code")
        elif isinstance(error, str) and error:
            message = error
        else:
            message = "OpenClaw request failed"
        logger.warning("gateway.request.failed", method=entry.method, error=message)
        entry.future.set_exception(GatewayRequestError(str(message), code=code))

    def _fail_pending(self, exc: GatewayError) -> None:
        for correlation_id in list(self._pending):
            entry = self._discard(correlation_id)
            if entry is not None and not entry.future.done():
                entry.future.set_exception(exc)

    # Frames

    def _handle_message(self, raw: str | bytes) -> None:
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("gateway.frame.unparseable", error=str(exc))
            return
        if not isinstance(frame, dict):
            return

        frame_type = frame.get("type")
        if frame_type == "res":
            self._settle(frame)
        elif frame_type in ("evt", "event"):
            logger.debug("gateway.event.ignored", event=frame.get("event"))
        else:
            logger.debug("gateway.frame.unknown", type=frame_type)

    async def _read_frames(self, ws: Any) -> None:
        reason = "closed"
        try:
            async for raw in ws:
                self._handle_message(raw)
        except ConnectionClosed as exc:
            reason = f"closed: {exc}"
        except OSError as exc:
            reason = f"socket error: {exc}"
            logger.error("gateway.socket_error", error=str(exc))
        finally:
            if ws is self._ws:
                self._handle_close(reason)

    # Reconnect state machine

    async def _abort(self, ws: Any, reason: str) -> None:
        if ws is self._ws:
            self._ws = None
        try:
            await ws.close()
        except (OSError, ConnectionClosed) as exc:
            logger.debug("gateway.close_error", error=str(exc))
        self._handle_close(reason)

    def _handle_close(self, reason: str = "closed") -> None:
        was_connected = self._connected
        self._connected = False
        self._ws = None
        self._state = ConnectionState.DISCONNECTED
        self._fail_pending(GatewayConnectionError(f"Connection to OpenClaw gateway lost ({reason})"))
        if was_connected:
            logger.warning("gateway.disconnected", reason=reason)
        if not self._closing:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closing:
            return
        self._state = ConnectionState.RECONNECT_SCHEDULED
        if self._reconnect_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.timeouts.reconnect_delay, self._fire_reconnect)
        logger.debug("gateway.reconnect.scheduled", delay=self.timeouts.reconnect_delay)

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        self._reconnect_task = asyncio.ensure_future(self._reconnect())

    async def _reconnect(self) -> None:
        try:
            await self.connect()
        except GatewayError as exc:
            logger.warning("gateway.reconnect.failed", error=str(exc))

