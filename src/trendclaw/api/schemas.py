"""Pydantic request/response models for the HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from trendclaw.webhooks.ingest import WebhookPayload

__all__ = [
    "HealthResponse",
    "ProvisionResponse",
    "RemoveJobResponse",
    "RunJobResponse",
    "SignalList",
    "SignalOut",
    "WebhookPayload",
    "WebhookResponse",
]


class APIModel(BaseModel):
    """Serializes with camelCase keys for the dashboard."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class HealthResponse(APIModel):
    status: str = "ok"
    openclaw_connected: bool


class WebhookResponse(APIModel):
    ok: bool
    signals: int | None = None
    skipped: bool | None = None
    error: str | None = None


class ProvisionResponse(APIModel):
    ok: bool = True
    cron_job_id: str
    created: bool = Field(..., description="False when the entity was already provisioned")


class RunJobResponse(APIModel):
    ok: bool = True
    cron_job_id: str
    result: Any | None = None


class RemoveJobResponse(APIModel):
    ok: bool = True
    cron_job_id: str
    removed: bool


class SignalOut(APIModel):
    id: UUID
    tenant_id: UUID
    client_id: UUID | None = None
    niche_id: UUID | None = None
    type: str
    title: str
    summary: str
    source_url: str | None = None
    source_name: str | None = None
    confidence: float
    raw_data: Any | None = None
    detected_at: datetime | None = None


class SignalList(APIModel):
    signals: list[SignalOut]
    total: int
