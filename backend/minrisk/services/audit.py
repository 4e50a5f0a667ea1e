from __future__ import annotations

from dataclasses import dataclass
import logging
import uuid
from typing import Any, Iterable, Optional

from fastapi.encoders import jsonable_encoder
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.models.audit import AuditEntry

logger = logging.getLogger(__name__)

# Never copied into audit rows.
REDACTED_FIELDS = frozenset({"hashed_password", "token_version"})


@dataclass(frozen=True)
class RequestMeta:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def snapshot(obj: Any, fields: Iterable[str] | None = None) -> dict[str, Any]:
    """JSON-safe copy of a model's fields for old_values/new_values."""
    data = obj if isinstance(obj, dict) else obj.model_dump()
    if fields is not None:
        wanted = set(fields)
        data = {key: value for key, value in data.items() if key in wanted}
    return jsonable_encoder({key: value for key, value in data.items() if key not in REDACTED_FIELDS})


def diff(old: dict[str, Any], new: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Reduce two snapshots to the keys whose values changed."""
    changed = [key for key in new if old.get(key) != new.get(key)]
    return {key: old.get(key) for key in changed}, {key: new[key] for key in changed}


async def record_event(
    session: AsyncSession,
    *,
    actor: Any,
    action_type: str,
    entity_type: str,
    entity_id: uuid.UUID | None = None,
    entity_code: str | None = None,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
    organization_id: uuid.UUID | None = None,
    meta: RequestMeta | None = None,
) -> AuditEntry | None:
    organization_id = organization_id or getattr(actor, "organization_id", None)
    if organization_id is None:
        # The trail is organization-scoped; events outside any tenant only go to the log.
        logger.info("audit %s %s %s (no organization)", action_type, entity_type, entity_id)
        return None
    meta = meta or RequestMeta()
    entry = AuditEntry(
        organization_id=organization_id,
        user_id=getattr(actor, "id", None) or getattr(actor, "user_id", None),
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_code=entity_code,
        old_values=old_values,
        new_values=new_values,
        metadata_=metadata,
        ip_address=meta.ip_address,
        user_agent=meta.user_agent,
    )
    session.add(entry)
    await session.flush()
    logger.debug("audit %s %s %s", action_type, entity_type, entity_code or entity_id)
    return entry


async def list_events(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID | None = None,
    entity_type: str | None = None,
    entity_id: uuid.UUID | None = None,
    action_type: str | None = None,
    user_id: uuid.UUID | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[AuditEntry]:
    """Newest first. Visibility (own organization, or all for super admins) comes from RLS."""
    stmt = select(AuditEntry)
    if organization_id is not None:
        stmt = stmt.where(AuditEntry.organization_id == organization_id)
    if entity_type:
        stmt = stmt.where(AuditEntry.entity_type == entity_type)
    if entity_id is not None:
        stmt = stmt.where(AuditEntry.entity_id == entity_id)
    if action_type:
        stmt = stmt.where(AuditEntry.action_type == action_type)
    if user_id is not None:
        stmt = stmt.where(AuditEntry.user_id == user_id)
    stmt = stmt.order_by(AuditEntry.performed_at.desc()).offset(offset).limit(limit)
    result = await session.exec(stmt)
    return list(result.all())
