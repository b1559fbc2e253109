"""
Monitoring job provisioning.

Turns a monitored client or niche into a recurring agent job on the gateway and
keeps the local mapping row that lets webhook callbacks find their way back to
the tenant entity.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from trendclaw.db import SessionScope, get_db
from trendclaw.gateway.errors import GatewayError, GatewayNotConnectedError
from trendclaw.gateway.prompts import build_client_prompt, build_niche_prompt
from trendclaw.models import JOB_TYPE_CLIENT, JOB_TYPE_NICHE, Client, MonitoringJob, Niche

if TYPE_CHECKING:
    from uuid import UUID

    from trendclaw.config import Settings
    from trendclaw.gateway.client import GatewayClient

logger = structlog.get_logger()

JOB_INTERVAL_MS = 12 * 60 * 60 * 1000
JOB_SCHEDULE_LABEL = "every:12h"
RUNS_PAGE_SIZE = 10

JOB_DESCRIPTIONS = {
    JOB_TYPE_CLIENT: "Monitor {name} for buying signals",
    JOB_TYPE_NICHE: "Track trending topics for {name}",
}


def job_name(tenant_id: UUID | str, target_id: UUID | str, job_type: str) -> str:
    return f"tc:{tenant_id}:{target_id}:{job_type}"


def _job_type(entity: Client | Niche) -> str:
    if isinstance(entity, Client):
        return JOB_TYPE_CLIENT
    if isinstance(entity, Niche):
        return JOB_TYPE_NICHE
    raise TypeError(f"Cannot provision monitoring for {type(entity).__name__}")


def _remote_job_id(result: Any) -> str | None:
    if not isinstance(result, dict):
        return None
    for key in ("id", "jobId"):
        value = result.get(key)
        if value:
            return str(value)
    return None


class JobProvisioner:
    """Create, trigger and remove gateway cron jobs for monitored entities."""

    def __init__(
        self,
        gateway: GatewayClient,
        session_factory: SessionScope = get_db,
        settings: Settings | None = None,
    ) -> None:
        if settings is None:
            from trendclaw.config import settings as default_settings

            settings = default_settings
        self.gateway = gateway
        self.session_factory = session_factory
        self.settings = settings

    def _require_connection(self) -> None:
        if not self.gateway.is_connected():
            raise GatewayNotConnectedError()

    def build_job_params(self, tenant_id: UUID | str, entity: Client | Niche) -> dict[str, Any]:
        """Parameters for ``cron.add``."""
        job_type = _job_type(entity)
        message = build_client_prompt(entity) if job_type == JOB_TYPE_CLIENT else build_niche_prompt(entity)
        return {
            "name": job_name(tenant_id, entity.id, job_type),
            "description": JOB_DESCRIPTIONS[job_type].format(name=entity.name),
            "enabled": True,
            "schedule": {"kind": "every", "everyMs": JOB_INTERVAL_MS},
            "sessionTarget": "isolated",
            "wakeMode": "now",
            "payload": {"kind": "agentTurn", "message": message},
            "delivery": {"mode": "webhook", "to": self.settings.webhook_url},
        }

    async def provision(self, tenant_id: UUID, entity: Client | Niche) -> str | None:
        """Register a recurring job for the entity.

        Returns the remote job id, or None when the gateway is offline or did not
        hand back an id. Remote failures propagate as GatewayError.
        """
        if not self.gateway.is_connected():
            logger.warning("provision.skipped_offline", target_id=str(entity.id))
            return None

        job_type = _job_type(entity)
        params = self.build_job_params(tenant_id, entity)
        result = await self.gateway.request("cron.add", params)

        cron_job_id = _remote_job_id(result)
        if cron_job_id is None:
            logger.error("provision.no_job_id", name=params["name"], result=result)
            return None

        with self.session_factory() as session:
            session.add(
                MonitoringJob(
                    tenant_id=tenant_id,
                    cron_job_id=cron_job_id,
                    job_type=job_type,
                    target_id=entity.id,
                    schedule=JOB_SCHEDULE_LABEL,
                )
            )
            target = session.get(type(entity), entity.id)
            if target is not None:
                target.cron_job_id = cron_job_id
            session.flush()

        logger.info("provision.created", cron_job_id=cron_job_id, job_type=job_type, target_id=str(entity.id))
        return cron_job_id

    async def force_run(self, cron_job_id: str) -> Any:
        """Trigger an immediate run; results arrive later via webhook."""
        self._require_connection()
        result = await self.gateway.request("cron.run", {"jobId": cron_job_id, "mode": "force"})
        logger.info("provision.force_run", cron_job_id=cron_job_id)
        return result

    async def deprovision(self, cron_job_id: str) -> bool:
        """Remove the remote job if possible, then always drop the local mapping.

        Returns True when a local mapping row existed.
        """
        if self.gateway.is_connected():
            try:
                await self.gateway.request("cron.remove", {"id": cron_job_id})
            except GatewayError as exc:
                logger.warning("provision.remote_remove_failed", cron_job_id=cron_job_id, error=str(exc))
        else:
            logger.warning("provision.remote_remove_skipped", cron_job_id=cron_job_id)

        with self.session_factory() as session:
            job = session.query(MonitoringJob).filter_by(cron_job_id=cron_job_id).first()
            if job is not None:
                session.delete(job)
            for model in (Client, Niche):
                for entity in session.query(model).filter_by(cron_job_id=cron_job_id).all():
                    entity.cron_job_id = None
            session.flush()

        logger.info("provision.removed", cron_job_id=cron_job_id, had_local_row=job is not None)
        return job is not None

    async def list_jobs(self) -> Any:
        self._require_connection()
        return await self.gateway.request("cron.list", {"includeDisabled": True})

    async def job_status(self) -> Any:
        self._require_connection()
        return await self.gateway.request("cron.status", {})

    async def job_runs(self, cron_job_id: str) -> Any:
        self._require_connection()
        return await self.gateway.request("cron.runs", {"id": cron_job_id, "limit": RUNS_PAGE_SIZE})
