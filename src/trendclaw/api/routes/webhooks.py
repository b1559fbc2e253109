"""Gateway job-completion webhook."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Header, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from trendclaw.api.deps import SessionFactoryDep, SettingsDep
from trendclaw.api.schemas import WebhookPayload, WebhookResponse
from trendclaw.webhooks.ingest import UnknownJobError, WebhookAuthError, ingest_callback, verify_webhook_token

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/openclaw", response_model=WebhookResponse, response_model_exclude_none=True)
def openclaw_webhook(
    payload: WebhookPayload,
    settings: SettingsDep,
    session_factory: SessionFactoryDep,
    authorization: Annotated[str | None, Header()] = None,
) -> WebhookResponse | JSONResponse:
    try:
        verify_webhook_token(authorization, settings)
    except WebhookAuthError:
        logger.warning("webhook.unauthorized", job_id=payload.job_id)
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"ok": False, "error": "Unauthorized"})

    try:
        with session_factory() as session:
            result = ingest_callback(session, payload)
    except UnknownJobError:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"ok": False, "error": "Unknown job"})
    except SQLAlchemyError as exc:
        logger.error("webhook.storage_failed", job_id=payload.job_id, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"ok": False, "error": "Failed to store signals"},
        )

    return WebhookResponse.model_validate(result.as_response())
