from __future__ import annotations

from datetime import datetime, timezone
import logging
import uuid
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.messages import IncidentMessages
from minrisk.models.incident import Incident, IncidentRiskLink, IncidentStatus
from minrisk.models.risk import Risk
from minrisk.models.user_profile import UserProfile
from minrisk.services import audit as audit_service
from minrisk.services import codes
from minrisk.services import risks as risks_service
from minrisk.services.errors import ConflictError, NotFoundError, ServiceError
from minrisk.services.policies import Operation, authorize, with_changes
from minrisk.services.rls import principal_for, require_editor

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "incident_date",
        "division",
        "department",
        "incident_type",
        "severity",
        "financial_impact",
        "status",
        "root_cause",
        "corrective_actions",
    }
)


def incident_code_prefix(year: int) -> str:
    return f"INC-{year}"


async def generate_next_incident_code(session: AsyncSession, organization_id: uuid.UUID, year: int) -> str:
    return await codes.next_code(session, Incident.incident_code, organization_id, incident_code_prefix(year))


async def get_incident(session: AsyncSession, incident_id: uuid.UUID) -> Incident:
    result = await session.exec(select(Incident).where(Incident.id == incident_id))
    incident = result.one_or_none()
    if incident is None:
        raise NotFoundError(IncidentMessages.NOT_FOUND)
    return incident


async def list_incidents(
    session: AsyncSession,
    *,
    status: IncidentStatus | None = None,
    severity: int | None = None,
) -> list[Incident]:
    stmt = select(Incident)
    if status is not None:
        stmt = stmt.where(Incident.status == status)
    if severity is not None:
        stmt = stmt.where(Incident.severity == severity)
    result = await session.exec(stmt.order_by(Incident.incident_date.desc(), Incident.incident_code.desc()))
    return list(result.all())


async def create_incident(
    session: AsyncSession,
    *,
    actor: UserProfile,
    data: dict[str, Any],
    meta: audit_service.RequestMeta | None = None,
) -> Incident:
    require_editor(actor)
    values = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
    incident_code = (data.get("incident_code") or "").strip().upper()
    incident = Incident(
        organization_id=actor.organization_id,
        user_id=actor.id,
        incident_code=incident_code,
        **values,
    )
    authorize(principal_for(actor), "incidents", Operation.insert, incident)
    await codes.insert_with_code(
        session,
        incident,
        "incident_code",
        generate=None
        if incident_code
        else lambda: generate_next_incident_code(session, actor.organization_id, values["incident_date"].year),
        conflict_detail=IncidentMessages.CODE_EXISTS,
    )
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="create",
        entity_type="incident",
        entity_id=incident.id,
        entity_code=incident.incident_code,
        new_values=audit_service.snapshot(incident, sorted(EDITABLE_FIELDS)),
        meta=meta,
    )
    logger.info("Incident %s reported by %s", incident.incident_code, actor.id)
    return incident


async def update_incident(
    session: AsyncSession,
    *,
    actor: UserProfile,
    incident_id: uuid.UUID,
    data: dict[str, Any],
    meta: audit_service.RequestMeta | None = None,
) -> Incident:
    require_editor(actor)
    incident = await get_incident(session, incident_id)
    changes = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
    if not changes:
        return incident
    authorize(principal_for(actor), "incidents", Operation.update, incident, with_changes(incident, changes))
    before = audit_service.snapshot(incident, changes.keys())
    for field, value in changes.items():
        setattr(incident, field, value)
    incident.updated_at = datetime.now(timezone.utc)
    session.add(incident)
    await session.flush()
    old_values, new_values = audit_service.diff(before, audit_service.snapshot(incident, changes.keys()))
    if new_values:
        await audit_service.record_event(
            session,
            actor=actor,
            action_type="update",
            entity_type="incident",
            entity_id=incident.id,
            entity_code=incident.incident_code,
            old_values=old_values,
            new_values=new_values,
            meta=meta,
        )
    return incident


async def delete_incident(
    session: AsyncSession,
    *,
    actor: UserProfile,
    incident_id: uuid.UUID,
    meta: audit_service.RequestMeta | None = None,
) -> None:
    incident = await get_incident(session, incident_id)
    authorize(principal_for(actor), "incidents", Operation.delete, incident)
    code = incident.incident_code
    await session.delete(incident)
    await session.flush()
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="delete",
        entity_type="incident",
        entity_id=incident_id,
        entity_code=code,
        meta=meta,
    )
    logger.info("Incident %s deleted by %s", code, actor.id)


# ---------------------------------------------------------------------------
# Incident-risk links
# ---------------------------------------------------------------------------

async def get_link(session: AsyncSession, incident_id: uuid.UUID, risk_id: uuid.UUID) -> IncidentRiskLink:
    result = await session.exec(
        select(IncidentRiskLink).where(
            IncidentRiskLink.incident_id == incident_id,
            IncidentRiskLink.risk_id == risk_id,
        )
    )
    link = result.one_or_none()
    if link is None:
        raise NotFoundError(IncidentMessages.LINK_NOT_FOUND)
    return link


async def link_incident_to_risk(
    session: AsyncSession,
    *,
    actor: UserProfile,
    incident_id: uuid.UUID,
    risk_id: uuid.UUID,
    link_type: str = "related",
    notes: str | None = None,
    meta: audit_service.RequestMeta | None = None,
) -> IncidentRiskLink:
    """Link an incident to a risk in the same organization.

    The ``incident_risk_links`` trigger refreshes the risk's incident count
    and last incident date.
    """
    require_editor(actor)
    incident = await get_incident(session, incident_id)
    risk = await risks_service.get_risk(session, risk_id)
    if incident.organization_id != risk.organization_id:
        # Only a super admin can see both sides of a cross-organization pair.
        raise ServiceError(IncidentMessages.CROSS_ORGANIZATION)
    link = IncidentRiskLink(
        organization_id=incident.organization_id,
        incident_id=incident.id,
        risk_id=risk.id,
        link_type=link_type,
        notes=notes,
        linked_by=actor.id,
    )
    authorize(principal_for(actor), "incident_risk_links", Operation.insert, link)
    try:
        async with session.begin_nested():
            session.add(link)
            await session.flush()
    except IntegrityError as exc:
        raise ConflictError(IncidentMessages.LINK_EXISTS) from exc
    await session.refresh(risk)
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="link",
        entity_type="incident",
        entity_id=incident.id,
        entity_code=incident.incident_code,
        new_values={"risk_id": str(risk.id), "risk_code": risk.risk_code, "link_type": link_type},
        meta=meta,
    )
    return link


async def unlink_incident_from_risk(
    session: AsyncSession,
    *,
    actor: UserProfile,
    incident_id: uuid.UUID,
    risk_id: uuid.UUID,
    meta: audit_service.RequestMeta | None = None,
) -> None:
    require_editor(actor)
    incident = await get_incident(session, incident_id)
    link = await get_link(session, incident_id, risk_id)
    authorize(principal_for(actor), "incident_risk_links", Operation.delete, link)
    await session.delete(link)
    await session.flush()
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="unlink",
        entity_type="incident",
        entity_id=incident.id,
        entity_code=incident.incident_code,
        old_values={"risk_id": str(risk_id)},
        meta=meta,
    )


async def list_linked_risks(session: AsyncSession, incident_id: uuid.UUID) -> list[Risk]:
    await get_incident(session, incident_id)
    result = await session.exec(
        select(Risk)
        .join(IncidentRiskLink, IncidentRiskLink.risk_id == Risk.id)
        .where(IncidentRiskLink.incident_id == incident_id)
        .order_by(Risk.risk_code)
        .execution_options(populate_existing=True)
    )
    return list(result.all())


async def list_linked_incidents(session: AsyncSession, risk_id: uuid.UUID) -> list[Incident]:
    await risks_service.get_risk(session, risk_id)
    result = await session.exec(
        select(Incident)
        .join(IncidentRiskLink, IncidentRiskLink.incident_id == Incident.id)
        .where(IncidentRiskLink.risk_id == risk_id)
        .order_by(Incident.incident_date.desc())
    )
    return list(result.all())
