from typing import List, Optional
import uuid

from fastapi import APIRouter, Query, status

from minrisk.api.deps import CurrentUser, RequestMetaDep, UserSessionDep
from minrisk.models.control import Control
from minrisk.models.incident import Incident
from minrisk.models.risk import Risk, RiskOwnerHistory, RiskStatus
from minrisk.schemas.incident import IncidentRead
from minrisk.schemas.risk import (
    ControlCreate,
    ControlRead,
    ControlUpdate,
    RiskCreate,
    RiskOwnerHistoryRead,
    RiskOwnerTransfer,
    RiskRead,
    RiskUpdate,
)
from minrisk.services import controls as controls_service
from minrisk.services import incidents as incidents_service
from minrisk.services import risks as risks_service

router = APIRouter()


@router.get("/", response_model=List[RiskRead])
async def list_risks(
    session: UserSessionDep,
    current_user: CurrentUser,
    status_filter: Optional[RiskStatus] = Query(default=None, alias="status"),
    division: Optional[str] = None,
    category: Optional[str] = None,
    owner_id: Optional[uuid.UUID] = None,
    is_priority: Optional[bool] = None,
) -> List[Risk]:
    return await risks_service.list_risks(
        session,
        status=status_filter,
        division=division,
        category=category,
        owner_id=owner_id,
        is_priority=is_priority,
    )


@router.post("/", response_model=RiskRead, status_code=status.HTTP_201_CREATED)
async def create_risk(
    risk_in: RiskCreate,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> Risk:
    risk = await risks_service.create_risk(
        session, actor=current_user, data=risk_in.model_dump(exclude_unset=True), meta=meta
    )
    await session.commit()
    return risk


@router.get("/next-code")
async def next_risk_code(
    division: str,
    category: str,
    session: UserSessionDep,
    current_user: CurrentUser,
) -> dict[str, str]:
    code = await risks_service.generate_next_risk_code(
        session,
        organization_id=current_user.organization_id,
        division=division,
        category=category,
    )
    return {"risk_code": code}


# Controls are addressed by their own id once created.
@router.patch("/controls/{control_id}", response_model=ControlRead)
async def update_control(
    control_id: uuid.UUID,
    control_in: ControlUpdate,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> Control:
    control = await controls_service.update_control(
        session,
        actor=current_user,
        control_id=control_id,
        data=control_in.model_dump(exclude_unset=True),
        meta=meta,
    )
    await session.commit()
    return control


@router.delete("/controls/{control_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_control(
    control_id: uuid.UUID,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> None:
    await controls_service.delete_control(session, actor=current_user, control_id=control_id, meta=meta)
    await session.commit()


@router.get("/{risk_id}", response_model=RiskRead)
async def read_risk(risk_id: uuid.UUID, session: UserSessionDep, current_user: CurrentUser) -> Risk:
    return await risks_service.get_risk(session, risk_id)


@router.patch("/{risk_id}", response_model=RiskRead)
async def update_risk(
    risk_id: uuid.UUID,
    risk_in: RiskUpdate,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> Risk:
    risk = await risks_service.update_risk(
        session,
        actor=current_user,
        risk_id=risk_id,
        data=risk_in.model_dump(exclude_unset=True),
        meta=meta,
    )
    await session.commit()
    return risk


@router.delete("/{risk_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_risk(
    risk_id: uuid.UUID,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> None:
    await risks_service.delete_risk(session, actor=current_user, risk_id=risk_id, meta=meta)
    await session.commit()


@router.post("/{risk_id}/transfer", response_model=RiskRead)
async def transfer_risk_ownership(
    risk_id: uuid.UUID,
    payload: RiskOwnerTransfer,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> Risk:
    risk = await risks_service.transfer_ownership(
        session,
        actor=current_user,
        risk_id=risk_id,
        new_owner_id=payload.new_owner_id,
        reason=payload.reason,
        meta=meta,
    )
    await session.commit()
    return risk


@router.get("/{risk_id}/owner-history", response_model=List[RiskOwnerHistoryRead])
async def read_owner_history(
    risk_id: uuid.UUID,
    session: UserSessionDep,
    current_user: CurrentUser,
) -> List[RiskOwnerHistory]:
    return await risks_service.list_owner_history(session, risk_id)


@router.get("/{risk_id}/incidents", response_model=List[IncidentRead])
async def read_linked_incidents(
    risk_id: uuid.UUID,
    session: UserSessionDep,
    current_user: CurrentUser,
) -> List[Incident]:
    return await incidents_service.list_linked_incidents(session, risk_id)


@router.get("/{risk_id}/controls", response_model=List[ControlRead])
async def list_controls(
    risk_id: uuid.UUID,
    session: UserSessionDep,
    current_user: CurrentUser,
) -> List[Control]:
    return await controls_service.list_controls(session, risk_id)


@router.post("/{risk_id}/controls", response_model=ControlRead, status_code=status.HTTP_201_CREATED)
async def create_control(
    risk_id: uuid.UUID,
    control_in: ControlCreate,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> Control:
    control = await controls_service.create_control(
        session,
        actor=current_user,
        risk_id=risk_id,
        data=control_in.model_dump(exclude_unset=True),
        meta=meta,
    )
    await session.commit()
    return control
