"""Ingest gateway job-completion callbacks into stored signals."""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from trendclaw.models import JOB_STATUS_LENGTH, JOB_TYPE_CLIENT, JOB_TYPE_NICHE, MonitoringJob, Signal
from trendclaw.webhooks.parse import ExtractionStatus, SignalCandidate, extract_signals

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from trendclaw.config import Settings

logger = structlog.get_logger()

FINISHED_ACTION = "finished"
PARSE_FAILURE_MESSAGE = "Failed to parse summary"


class WebhookAuthError(Exception):
    """Callback carried a missing or wrong bearer token."""


class UnknownJobError(LookupError):
    """Callback referenced a job with no local mapping."""

    def __init__(self, job_id: str | None) -> None:
        super().__init__(f"Unknown job: {job_id}")
        self.job_id = job_id


class WebhookPayload(BaseModel):
    """Job-completion callback body sent by the gateway."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    action: str | None = None
    job_id: str | None = Field(None, alias="jobId")
    status: str | None = None
    summary: str | None = None


@dataclass
class IngestResult:
    signals: int = 0
    skipped: bool = False
    error: str | None = None

    def as_response(self) -> dict[str, Any]:
        if self.skipped:
            return {"ok": True, "skipped": True}
        body: dict[str, Any] = {"ok": True, "signals": self.signals}
        if self.error:
            body["error"] = self.error
        return body


def verify_webhook_token(authorization: str | None, settings: Settings) -> None:
    """Check the ``Authorization: Bearer`` header against the configured token.

    With no token configured every callback is accepted. A mismatch raises
    WebhookAuthError unless ``allow_unauthenticated_webhooks`` is set.
    """
    expected = settings.webhook_token
    if expected is None:
        return

    presented = ""
    if authorization and authorization.startswith("Bearer "):
        presented = authorization[len("Bearer ") :].strip()
    if hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
        return

    if settings.allow_unauthenticated_webhooks:
        logger.warning(
            "webhook.unauthenticated_accepted",
            reason="token mismatch",
            hint="set ALLOW_UNAUTHENTICATED_WEBHOOKS=false to reject",
        )
        return
    raise WebhookAuthError("Invalid webhook token")


def build_signal(job: MonitoringJob, candidate: SignalCandidate) -> Signal:
    return Signal(
        tenant_id=job.tenant_id,
        client_id=job.target_id if job.job_type == JOB_TYPE_CLIENT else None,
        niche_id=job.target_id if job.job_type == JOB_TYPE_NICHE else None,
        type=candidate.type,
        title=candidate.title,
        summary=candidate.summary,
        source_url=candidate.source_url,
        source_name=candidate.source_name,
        confidence=candidate.confidence,
        raw_data=candidate.raw_data,
    )


def ingest_callback(session: Session, payload: WebhookPayload) -> IngestResult:
    """Resolve the job, record the run and persist any extracted signals.

    Raises UnknownJobError before touching storage when the job id has no
    local mapping. The run stamp is committed before any signal is written,
    so a storage error on the insert propagates for a retry without losing it.
    """
    if payload.action != FINISHED_ACTION:
        logger.debug("webhook.skipped", action=payload.action, job_id=payload.job_id)
        return IngestResult(skipped=True)

    job = None
    if payload.job_id:
        job = session.query(MonitoringJob).filter_by(cron_job_id=payload.job_id).first()
    if job is None:
        logger.warning("webhook.unknown_job", job_id=payload.job_id)
        raise UnknownJobError(payload.job_id)

    job.last_run_at = datetime.now(UTC)
    job.last_status = payload.status[:JOB_STATUS_LENGTH] if payload.status is not None else None
    session.commit()

    log = logger.bind(job_id=payload.job_id, job_type=job.job_type, tenant_id=str(job.tenant_id))

    if payload.status != "ok" or not payload.summary:
        log.info("webhook.no_output", status=payload.status)
        return IngestResult()

    extraction = extract_signals(payload.summary)
    if extraction.status == ExtractionStatus.NOT_JSON:
        log.warning("webhook.parse_failed")
        return IngestResult(error=PARSE_FAILURE_MESSAGE)
    if extraction.status == ExtractionStatus.EMPTY:
        log.info("webhook.no_signals")
        return IngestResult()

    rows = [build_signal(job, candidate) for candidate in extraction.candidates]
    session.add_all(rows)
    session.flush()

    log.info("webhook.signals_stored", count=len(rows), skipped=extraction.skipped)
    return IngestResult(signals=len(rows))
