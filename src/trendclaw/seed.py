"""Monitored entity seeding from entities.yaml."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from uuid import UUID

import structlog
import yaml  # type: ignore[import-untyped]

from trendclaw.db import SessionScope, get_db
from trendclaw.models import Client, Niche
from trendclaw.signal_types import SIGNAL_TYPES

logger = structlog.get_logger()

CLIENT_FIELDS = (
    "domain",
    "description",
    "industry",
    "linkedin_url",
    "twitter_url",
    "facebook_url",
    "instagram_url",
)
CLIENT_LIST_FIELDS = ("custom_urls", "keywords", "monitor_signals")
NICHE_LIST_FIELDS = ("keywords", "sources")


def load_entities(path: str | Path) -> dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Entities file not found: {path}")
    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path.name} must contain a top-level mapping")
    if "tenant_id" not in data:
        raise ValueError(f"{path.name} must set tenant_id")
    for key in ("clients", "niches"):
        if not isinstance(data.get(key, []), list):
            raise ValueError(f"{path.name} must contain a list under '{key}'")
    return data


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value if item]


def _apply(entity: Client | Niche, fields: dict[str, Any]) -> bool:
    updated = False
    for field_name, value in fields.items():
        if getattr(entity, field_name) != value:
            setattr(entity, field_name, value)
            updated = True
    return updated


def _client_fields(data: dict[str, Any]) -> dict[str, Any]:
    fields: dict[str, Any] = {name: data.get(name) for name in CLIENT_FIELDS}
    fields.update({name: _string_list(data.get(name)) for name in CLIENT_LIST_FIELDS})
    unknown = [key for key in fields["monitor_signals"] if key not in SIGNAL_TYPES]
    if unknown:
        logger.warning("seed.unknown_signal_types", client=data["name"], unknown=unknown)
    fields["is_active"] = data.get("active", True)
    return fields


def _niche_fields(data: dict[str, Any]) -> dict[str, Any]:
    fields: dict[str, Any] = {name: _string_list(data.get(name)) for name in NICHE_LIST_FIELDS}
    fields["is_active"] = data.get("active", True)
    return fields


def seed_entities(entities_path: str = "entities.yaml", session_factory: SessionScope | None = None) -> dict[str, int]:
    """Upsert clients and niches from YAML, keyed by tenant and name.

    Returns:
        dict with counts:
            {clients_created, clients_updated, clients_unchanged,
             niches_created, niches_updated, niches_unchanged}
    """
    data = load_entities(entities_path)
    tenant_id = UUID(str(data["tenant_id"]))
    stats = dict.fromkeys(
        (
            "clients_created",
            "clients_updated",
            "clients_unchanged",
            "niches_created",
            "niches_updated",
            "niches_unchanged",
        ),
        0,
    )

    with (session_factory or get_db)() as session:
        for client_data in data.get("clients", []):
            fields = _client_fields(client_data)
            existing = session.query(Client).filter_by(tenant_id=tenant_id, name=client_data["name"]).first()
            if existing is None:
                session.add(Client(tenant_id=tenant_id, name=client_data["name"], **fields))
                session.flush()
                stats["clients_created"] += 1
            elif _apply(existing, fields):
                stats["clients_updated"] += 1
            else:
                stats["clients_unchanged"] += 1

        for niche_data in data.get("niches", []):
            fields = _niche_fields(niche_data)
            existing = session.query(Niche).filter_by(tenant_id=tenant_id, name=niche_data["name"]).first()
            if existing is None:
                session.add(Niche(tenant_id=tenant_id, name=niche_data["name"], **fields))
                session.flush()
                stats["niches_created"] += 1
            elif _apply(existing, fields):
                stats["niches_updated"] += 1
            else:
                stats["niches_unchanged"] += 1

        session.flush()

    logger.info("seed.completed", tenant_id=str(tenant_id), **stats)
    return stats
