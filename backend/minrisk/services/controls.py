from __future__ import annotations

from datetime import datetime, timezone
import logging
import uuid
from typing import Any

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.messages import RiskMessages
from minrisk.models.control import DIME_FIELDS, Control
from minrisk.models.user_profile import UserProfile
from minrisk.services import audit as audit_service
from minrisk.services import codes
from minrisk.services import risks as risks_service
from minrisk.services.errors import NotFoundError
from minrisk.services.policies import Operation, authorize, with_changes
from minrisk.services.rls import principal_for, require_editor

logger = logging.getLogger(__name__)

CONTROL_PREFIX = "CTRL"
EDITABLE_FIELDS = frozenset({"description", "target", *DIME_FIELDS})


async def generate_next_control_code(session: AsyncSession, organization_id: uuid.UUID) -> str:
    return await codes.next_code(session, Control.control_code, organization_id, CONTROL_PREFIX)


async def get_control(session: AsyncSession, control_id: uuid.UUID) -> Control:
    result = await session.exec(select(Control).where(Control.id == control_id))
    control = result.one_or_none()
    if control is None:
        raise NotFoundError(RiskMessages.CONTROL_NOT_FOUND)
    return control


async def list_controls(session: AsyncSession, risk_id: uuid.UUID) -> list[Control]:
    await risks_service.get_risk(session, risk_id)
    result = await session.exec(
        select(Control).where(Control.risk_id == risk_id).order_by(Control.control_code)
    )
    return list(result.all())


async def create_control(
    session: AsyncSession,
    *,
    actor: UserProfile,
    risk_id: uuid.UUID,
    data: dict[str, Any],
    meta: audit_service.RequestMeta | None = None,
) -> Control:
    require_editor(actor)
    risk = await risks_service.get_risk(session, risk_id)
    values = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
    control_code = (data.get("control_code") or "").strip().upper()
    control = Control(
        organization_id=risk.organization_id,
        risk_id=risk.id,
        control_code=control_code,
        created_by=actor.id,
        **values,
    )
    authorize(principal_for(actor), "controls", Operation.insert, control)
    await codes.insert_with_code(
        session,
        control,
        "control_code",
        generate=None if control_code else lambda: generate_next_control_code(session, risk.organization_id),
        conflict_detail=RiskMessages.CONTROL_CODE_EXISTS,
    )
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="create",
        entity_type="control",
        entity_id=control.id,
        entity_code=control.control_code,
        new_values=audit_service.snapshot(control, ["risk_id", "description", "target", *DIME_FIELDS]),
        meta=meta,
    )
    logger.info("Control %s added to %s", control.control_code, risk.risk_code)
    return control


async def update_control(
    session: AsyncSession,
    *,
    actor: UserProfile,
    control_id: uuid.UUID,
    data: dict[str, Any],
    meta: audit_service.RequestMeta | None = None,
) -> Control:
    require_editor(actor)
    control = await get_control(session, control_id)
    changes = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
    if not changes:
        return control
    authorize(principal_for(actor), "controls", Operation.update, control, with_changes(control, changes))
    before = audit_service.snapshot(control, changes.keys())
    for field, value in changes.items():
        setattr(control, field, value)
    control.updated_at = datetime.now(timezone.utc)
    session.add(control)
    await session.flush()
    old_values, new_values = audit_service.diff(before, audit_service.snapshot(control, changes.keys()))
    if new_values:
        await audit_service.record_event(
            session,
            actor=actor,
            action_type="update",
            entity_type="control",
            entity_id=control.id,
            entity_code=control.control_code,
            old_values=old_values,
            new_values=new_values,
            meta=meta,
        )
    return control


async def delete_control(
    session: AsyncSession,
    *,
    actor: UserProfile,
    control_id: uuid.UUID,
    meta: audit_service.RequestMeta | None = None,
) -> None:
    control = await get_control(session, control_id)
    authorize(principal_for(actor), "controls", Operation.delete, control)
    code = control.control_code
    await session.delete(control)
    await session.flush()
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="delete",
        entity_type="control",
        entity_id=control_id,
        entity_code=code,
        meta=meta,
    )
