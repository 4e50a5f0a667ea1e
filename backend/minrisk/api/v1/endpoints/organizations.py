from typing import List
import uuid

from fastapi import APIRouter, HTTPException, status

from minrisk.api.deps import (
    AdminSessionDep,
    CurrentUser,
    RequestMetaDep,
    SuperAdminUser,
    UserSessionDep,
)
from minrisk.core.messages import AuthMessages
from minrisk.models.organization import Organization
from minrisk.schemas.organization import (
    OrganizationCreate,
    OrganizationRead,
    OrganizationStatusChange,
    OrganizationSuspend,
    OrganizationUpdate,
)
from minrisk.services import organizations as organizations_service

router = APIRouter()


@router.get("/me", response_model=OrganizationRead)
async def read_my_organization(session: UserSessionDep, current_user: CurrentUser) -> Organization:
    if current_user.organization_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=AuthMessages.NO_ORGANIZATION)
    return await organizations_service.get_organization(session, current_user.organization_id)


@router.get("/", response_model=List[OrganizationRead])
async def list_organizations(session: UserSessionDep, current_user: SuperAdminUser) -> List[Organization]:
    return await organizations_service.list_organizations(session)


# Creation and suspension are platform-wide: they run on the admin session.
@router.post("/", response_model=OrganizationRead, status_code=status.HTTP_201_CREATED)
async def create_organization(
    organization_in: OrganizationCreate,
    admin_session: AdminSessionDep,
    current_user: SuperAdminUser,
    meta: RequestMetaDep,
) -> Organization:
    organization = await organizations_service.create_organization(
        admin_session, actor=current_user, name=organization_in.name, meta=meta
    )
    await admin_session.commit()
    return organization


@router.patch("/{organization_id}", response_model=OrganizationRead)
async def update_organization(
    organization_id: uuid.UUID,
    organization_in: OrganizationUpdate,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> Organization:
    organization = await organizations_service.update_organization(
        session,
        actor=current_user,
        organization_id=organization_id,
        name=organization_in.name,
        meta=meta,
    )
    await session.commit()
    return organization


@router.post("/{organization_id}/suspend", response_model=OrganizationStatusChange)
async def suspend_organization(
    organization_id: uuid.UUID,
    payload: OrganizationSuspend,
    admin_session: AdminSessionDep,
    current_user: SuperAdminUser,
    meta: RequestMetaDep,
) -> OrganizationStatusChange:
    organization, users_affected = await organizations_service.suspend_organization(
        admin_session,
        actor=current_user,
        organization_id=organization_id,
        reason=payload.reason,
        meta=meta,
    )
    await admin_session.commit()
    return OrganizationStatusChange(
        organization=OrganizationRead.model_validate(organization),
        users_affected=users_affected,
    )


@router.post("/{organization_id}/reactivate", response_model=OrganizationStatusChange)
async def reactivate_organization(
    organization_id: uuid.UUID,
    admin_session: AdminSessionDep,
    current_user: SuperAdminUser,
    meta: RequestMetaDep,
) -> OrganizationStatusChange:
    organization, users_affected = await organizations_service.reactivate_organization(
        admin_session, actor=current_user, organization_id=organization_id, meta=meta
    )
    await admin_session.commit()
    return OrganizationStatusChange(
        organization=OrganizationRead.model_validate(organization),
        users_affected=users_affected,
    )
