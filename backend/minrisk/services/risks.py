from __future__ import annotations

from datetime import datetime, timezone
import logging
import uuid
from typing import Any

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.messages import RiskMessages
from minrisk.models.risk import Risk, RiskOwnerHistory, RiskStatus
from minrisk.models.user_profile import UserProfile
from minrisk.services import audit as audit_service
from minrisk.services import codes
from minrisk.services.errors import NotFoundError
from minrisk.services.policies import Operation, authorize, with_changes
from minrisk.services.rls import principal_for, require_editor

logger = logging.getLogger(__name__)

# Fields a risk update may touch. owner_id goes through transfer_ownership.
EDITABLE_FIELDS = frozenset(
    {
        "risk_title",
        "risk_description",
        "division",
        "department",
        "category",
        "owner",
        "likelihood_inherent",
        "impact_inherent",
        "residual_likelihood",
        "residual_impact",
        "status",
        "is_priority",
    }
)

AUDITED_FIELDS = sorted(EDITABLE_FIELDS | {"risk_code", "owner_id"})


async def generate_next_risk_code(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID,
    division: str,
    category: str,
) -> str:
    prefix = codes.risk_code_prefix(division, category)
    return await codes.next_code(session, Risk.risk_code, organization_id, prefix)


async def get_risk(session: AsyncSession, risk_id: uuid.UUID) -> Risk:
    result = await session.exec(select(Risk).where(Risk.id == risk_id))
    risk = result.one_or_none()
    if risk is None:
        raise NotFoundError(RiskMessages.NOT_FOUND)
    return risk


async def list_risks(
    session: AsyncSession,
    *,
    status: RiskStatus | None = None,
    division: str | None = None,
    category: str | None = None,
    owner_id: uuid.UUID | None = None,
    is_priority: bool | None = None,
) -> list[Risk]:
    stmt = select(Risk)
    if status is not None:
        stmt = stmt.where(Risk.status == status)
    if division:
        stmt = stmt.where(Risk.division == division)
    if category:
        stmt = stmt.where(Risk.category == category)
    if owner_id is not None:
        stmt = stmt.where(Risk.owner_id == owner_id)
    if is_priority is not None:
        stmt = stmt.where(Risk.is_priority == is_priority)
    result = await session.exec(stmt.order_by(Risk.risk_code))
    return list(result.all())


async def _ensure_member(session: AsyncSession, user_id: uuid.UUID) -> None:
    # is_org_member() is SECURITY DEFINER: plain members cannot read other profiles.
    result = await session.exec(select(func.is_org_member(user_id)))
    if not result.one():
        raise NotFoundError(RiskMessages.OWNER_NOT_FOUND)


async def create_risk(
    session: AsyncSession,
    *,
    actor: UserProfile,
    data: dict[str, Any],
    meta: audit_service.RequestMeta | None = None,
) -> Risk:
    require_editor(actor)
    organization_id = actor.organization_id
    values = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
    risk_code = (data.get("risk_code") or "").strip().upper()
    owner_id = data.get("owner_id")
    if owner_id is not None:
        await _ensure_member(session, owner_id)

    risk = Risk(
        organization_id=organization_id,
        user_id=actor.id,
        owner_id=owner_id,
        risk_code=risk_code,
        **values,
    )
    authorize(principal_for(actor), "risks", Operation.insert, risk)

    async def draw_code() -> str:
        return await generate_next_risk_code(
            session,
            organization_id=organization_id,
            division=values["division"],
            category=values["category"],
        )

    await codes.insert_with_code(
        session,
        risk,
        "risk_code",
        generate=None if risk_code else draw_code,
        conflict_detail=RiskMessages.CODE_EXISTS,
    )

    await audit_service.record_event(
        session,
        actor=actor,
        action_type="create",
        entity_type="risk",
        entity_id=risk.id,
        entity_code=risk.risk_code,
        new_values=audit_service.snapshot(risk, AUDITED_FIELDS),
        meta=meta,
    )
    logger.info("Risk %s created by %s", risk.risk_code, actor.id)
    return risk


async def update_risk(
    session: AsyncSession,
    *,
    actor: UserProfile,
    risk_id: uuid.UUID,
    data: dict[str, Any],
    meta: audit_service.RequestMeta | None = None,
) -> Risk:
    require_editor(actor)
    risk = await get_risk(session, risk_id)
    changes = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
    if not changes:
        return risk
    authorize(principal_for(actor), "risks", Operation.update, risk, with_changes(risk, changes))
    before = audit_service.snapshot(risk, changes.keys())
    for field, value in changes.items():
        setattr(risk, field, value)
    risk.updated_at = datetime.now(timezone.utc)
    session.add(risk)
    await session.flush()
    old_values, new_values = audit_service.diff(before, audit_service.snapshot(risk, changes.keys()))
    if new_values:
        await audit_service.record_event(
            session,
            actor=actor,
            action_type="update",
            entity_type="risk",
            entity_id=risk.id,
            entity_code=risk.risk_code,
            old_values=old_values,
            new_values=new_values,
            meta=meta,
        )
    return risk


async def delete_risk(
    session: AsyncSession,
    *,
    actor: UserProfile,
    risk_id: uuid.UUID,
    meta: audit_service.RequestMeta | None = None,
) -> None:
    """Delete a risk; its controls, links and owner history cascade."""
    require_editor(actor)
    risk = await get_risk(session, risk_id)
    authorize(principal_for(actor), "risks", Operation.delete, risk)
    snapshot = audit_service.snapshot(risk, AUDITED_FIELDS)
    await session.delete(risk)
    await session.flush()
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="delete",
        entity_type="risk",
        entity_id=risk_id,
        entity_code=snapshot["risk_code"],
        old_values=snapshot,
        meta=meta,
    )
    logger.info("Risk %s deleted by %s", snapshot["risk_code"], actor.id)


async def transfer_ownership(
    session: AsyncSession,
    *,
    actor: UserProfile,
    risk_id: uuid.UUID,
    new_owner_id: uuid.UUID,
    reason: str | None = None,
    meta: audit_service.RequestMeta | None = None,
) -> Risk:
    require_editor(actor)
    risk = await get_risk(session, risk_id)
    if risk.owner_id == new_owner_id:
        return risk
    await _ensure_member(session, new_owner_id)
    authorize(
        principal_for(actor),
        "risks",
        Operation.update,
        risk,
        with_changes(risk, {"owner_id": new_owner_id}),
    )
    previous_owner_id = risk.owner_id
    risk.owner_id = new_owner_id
    risk.updated_at = datetime.now(timezone.utc)
    session.add(risk)

    history = RiskOwnerHistory(
        organization_id=risk.organization_id,
        risk_id=risk.id,
        risk_code=risk.risk_code,
        previous_owner_id=previous_owner_id,
        new_owner_id=new_owner_id,
        transferred_by=actor.id,
        reason=reason,
    )
    authorize(principal_for(actor), "risk_owner_history", Operation.insert, history)
    session.add(history)
    await session.flush()

    await audit_service.record_event(
        session,
        actor=actor,
        action_type="transfer_ownership",
        entity_type="risk",
        entity_id=risk.id,
        entity_code=risk.risk_code,
        old_values={"owner_id": str(previous_owner_id) if previous_owner_id else None},
        new_values={"owner_id": str(new_owner_id)},
        metadata={"reason": reason} if reason else None,
        meta=meta,
    )
    logger.info("Risk %s transferred to %s by %s", risk.risk_code, new_owner_id, actor.id)
    return risk


async def list_owner_history(session: AsyncSession, risk_id: uuid.UUID) -> list[RiskOwnerHistory]:
    await get_risk(session, risk_id)
    result = await session.exec(
        select(RiskOwnerHistory)
        .where(RiskOwnerHistory.risk_id == risk_id)
        .order_by(RiskOwnerHistory.transferred_at.desc())
    )
    return list(result.all())
