"""Signal listing for the dashboard."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query
from sqlalchemy import func, select

from trendclaw.api.deps import SessionFactoryDep
from trendclaw.api.schemas import SignalList, SignalOut
from trendclaw.models import Signal

router = APIRouter(prefix="/signals", tags=["signals"])

MAX_PAGE_SIZE = 100


@router.get("", response_model=SignalList)
def list_signals(
    session_factory: SessionFactoryDep,
    tenant_id: UUID,
    client_id: UUID | None = None,
    niche_id: UUID | None = None,
    signal_type: Annotated[str | None, Query(alias="type")] = None,
    detected_from: Annotated[datetime | None, Query(alias="from")] = None,
    detected_to: Annotated[datetime | None, Query(alias="to")] = None,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> SignalList:
    """Newest-first signals for a tenant.

    Optionally narrowed by entity or category, and to an inclusive
    ``from``/``to`` window on detection time.
    """
    filters = [Signal.tenant_id == tenant_id]
    if client_id is not None:
        filters.append(Signal.client_id == client_id)
    if niche_id is not None:
        filters.append(Signal.niche_id == niche_id)
    if signal_type:
        filters.append(Signal.type == signal_type)
    if detected_from is not None:
        filters.append(Signal.detected_at >= detected_from)
    if detected_to is not None:
        filters.append(Signal.detected_at <= detected_to)

    with session_factory() as session:
        total = session.scalar(select(func.count()).select_from(Signal).where(*filters)) or 0
        rows = session.scalars(
            select(Signal).where(*filters).order_by(Signal.detected_at.desc()).limit(limit).offset(offset)
        ).all()
        signals = [SignalOut.model_validate(row) for row in rows]

    return SignalList(signals=signals, total=total)
