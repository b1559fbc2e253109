"""FastAPI dependencies resolving per-app collaborators from ``app.state``."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from trendclaw.config import Settings
from trendclaw.db import SessionScope
from trendclaw.gateway.client import GatewayClient
from trendclaw.gateway.provisioning import JobProvisioner


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_gateway(request: Request) -> GatewayClient:
    return request.app.state.gateway


def get_provisioner(request: Request) -> JobProvisioner:
    return request.app.state.provisioner


def get_session_factory(request: Request) -> SessionScope:
    return request.app.state.session_factory


SettingsDep = Annotated[Settings, Depends(get_settings)]
GatewayDep = Annotated[GatewayClient, Depends(get_gateway)]
ProvisionerDep = Annotated[JobProvisioner, Depends(get_provisioner)]
SessionFactoryDep = Annotated[SessionScope, Depends(get_session_factory)]
