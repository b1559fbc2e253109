"""
FastAPI application factory.

The gateway client is built once per app and stored on ``app.state``; the
lifespan starts the connection in the background so the HTTP server comes up
even while the gateway is unreachable.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trendclaw import __version__
from trendclaw.api.routes import health, monitoring, signals, webhooks
from trendclaw.config import Settings
from trendclaw.db import SessionScope, get_db
from trendclaw.gateway.client import GatewayClient
from trendclaw.gateway.errors import GatewayError, GatewayNotConnectedError
from trendclaw.gateway.provisioning import JobProvisioner
from trendclaw.logging import configure_logging

logger = structlog.get_logger()

API_PREFIX = "/api"


async def _connect_gateway(gateway: GatewayClient) -> None:
    try:
        await gateway.connect()
    except GatewayError as exc:
        # The client has already scheduled its own reconnect.
        logger.warning("gateway.initial_connect_failed", error=str(exc))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    gateway: GatewayClient = app.state.gateway
    connect_task = asyncio.create_task(_connect_gateway(gateway))
    logger.info("api.started", gateway_url=gateway.gateway_url)
    try:
        yield
    finally:
        if not connect_task.done():
            connect_task.cancel()
            with suppress(asyncio.CancelledError):
                await connect_task
        await gateway.disconnect()
        logger.info("api.stopped")


async def _gateway_unavailable(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"ok": False, "error": str(exc)})


async def _gateway_failed(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("api.gateway_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"ok": False, "error": str(exc)})


def create_app(
    settings: Settings | None = None,
    gateway: GatewayClient | None = None,
    session_factory: SessionScope | None = None,
) -> FastAPI:
    if settings is None:
        from trendclaw.config import settings as default_settings

        settings = default_settings
        configure_logging(settings.log_level)
    if gateway is None:
        gateway = GatewayClient.from_settings(settings)
    if session_factory is None:
        session_factory = get_db

    app = FastAPI(title="TrendClaw", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.session_factory = session_factory
    app.state.provisioner = JobProvisioner(gateway, session_factory, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GatewayNotConnectedError, _gateway_unavailable)
    app.add_exception_handler(GatewayError, _gateway_failed)

    for module in (health, webhooks, monitoring, signals):
        app.include_router(module.router, prefix=API_PREFIX)

    return app
