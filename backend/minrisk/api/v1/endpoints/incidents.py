from typing import List, Optional
import uuid

from fastapi import APIRouter, Query, status

from minrisk.api.deps import CurrentUser, RequestMetaDep, UserSessionDep
from minrisk.models.incident import Incident, IncidentRiskLink, IncidentStatus
from minrisk.models.risk import Risk
from minrisk.schemas.incident import (
    IncidentCreate,
    IncidentRead,
    IncidentRiskLinkCreate,
    IncidentRiskLinkRead,
    IncidentUpdate,
)
from minrisk.schemas.risk import RiskRead
from minrisk.services import incidents as incidents_service

router = APIRouter()


@router.get("/", response_model=List[IncidentRead])
async def list_incidents(
    session: UserSessionDep,
    current_user: CurrentUser,
    status_filter: Optional[IncidentStatus] = Query(default=None, alias="status"),
    severity: Optional[int] = Query(default=None, ge=1, le=5),
) -> List[Incident]:
    return await incidents_service.list_incidents(session, status=status_filter, severity=severity)


@router.post("/", response_model=IncidentRead, status_code=status.HTTP_201_CREATED)
async def create_incident(
    incident_in: IncidentCreate,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> Incident:
    incident = await incidents_service.create_incident(
        session, actor=current_user, data=incident_in.model_dump(exclude_unset=True), meta=meta
    )
    await session.commit()
    return incident


@router.get("/{incident_id}", response_model=IncidentRead)
async def read_incident(incident_id: uuid.UUID, session: UserSessionDep, current_user: CurrentUser) -> Incident:
    return await incidents_service.get_incident(session, incident_id)


@router.patch("/{incident_id}", response_model=IncidentRead)
async def update_incident(
    incident_id: uuid.UUID,
    incident_in: IncidentUpdate,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> Incident:
    incident = await incidents_service.update_incident(
        session,
        actor=current_user,
        incident_id=incident_id,
        data=incident_in.model_dump(exclude_unset=True),
        meta=meta,
    )
    await session.commit()
    return incident


@router.delete("/{incident_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_incident(
    incident_id: uuid.UUID,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> None:
    await incidents_service.delete_incident(session, actor=current_user, incident_id=incident_id, meta=meta)
    await session.commit()


@router.get("/{incident_id}/risks", response_model=List[RiskRead])
async def list_linked_risks(
    incident_id: uuid.UUID,
    session: UserSessionDep,
    current_user: CurrentUser,
) -> List[Risk]:
    return await incidents_service.list_linked_risks(session, incident_id)


@router.post(
    "/{incident_id}/risks",
    response_model=IncidentRiskLinkRead,
    status_code=status.HTTP_201_CREATED,
)
async def link_risk(
    incident_id: uuid.UUID,
    link_in: IncidentRiskLinkCreate,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> IncidentRiskLink:
    link = await incidents_service.link_incident_to_risk(
        session,
        actor=current_user,
        incident_id=incident_id,
        risk_id=link_in.risk_id,
        link_type=link_in.link_type,
        notes=link_in.notes,
        meta=meta,
    )
    await session.commit()
    return link


@router.delete("/{incident_id}/risks/{risk_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unlink_risk(
    incident_id: uuid.UUID,
    risk_id: uuid.UUID,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> None:
    await incidents_service.unlink_incident_from_risk(
        session, actor=current_user, incident_id=incident_id, risk_id=risk_id, meta=meta
    )
    await session.commit()
