"""Service tests for organization management and the audit trail it leaves."""

import pytest
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.messages import OrganizationMessages
from minrisk.models.organization import OrganizationStatus
from minrisk.models.user_profile import UserRole
from minrisk.services import audit as audit_service
from minrisk.services import organizations as organizations_service
from minrisk.services.errors import ConflictError, ServiceError
from minrisk.services.policies import PolicyViolation
from minrisk.testing import act_as, create_organization, create_user_profile


@pytest.mark.unit
@pytest.mark.service
async def test_super_admin_creates_organization(session: AsyncSession):
    super_admin = await create_user_profile(session, role=UserRole.super_admin)

    organization = await organizations_service.create_organization(
        session, actor=super_admin, name="  Acme Clearing  "
    )

    assert organization.name == "Acme Clearing"
    assert organization.status == OrganizationStatus.active
    events = await audit_service.list_events(session, organization_id=organization.id)
    assert [event.action_type for event in events] == ["create"]


@pytest.mark.unit
@pytest.mark.service
async def test_org_admin_cannot_create_organizations(session: AsyncSession):
    org = await create_organization(session)
    admin = await create_user_profile(session, organization=org, role=UserRole.primary_admin)

    with pytest.raises(PermissionError, match=OrganizationMessages.SUPER_ADMIN_REQUIRED):
        await organizations_service.create_organization(session, actor=admin, name="Shadow Org")


@pytest.mark.unit
@pytest.mark.service
async def test_suspend_and_reactivate(session: AsyncSession):
    org = await create_organization(session)
    super_admin = await create_user_profile(session, role=UserRole.super_admin)
    await create_user_profile(session, organization=org)
    await create_user_profile(session, organization=org)

    suspended, affected = await organizations_service.suspend_organization(
        session, actor=super_admin, organization_id=org.id, reason="Unpaid"
    )
    assert suspended.status == OrganizationStatus.suspended
    assert suspended.suspended_by == super_admin.id
    assert affected == 2

    with pytest.raises(ConflictError):
        await organizations_service.suspend_organization(session, actor=super_admin, organization_id=org.id)

    reactivated, _ = await organizations_service.reactivate_organization(
        session, actor=super_admin, organization_id=org.id
    )
    assert reactivated.status == OrganizationStatus.active
    assert reactivated.suspended_at is None


@pytest.mark.unit
@pytest.mark.service
async def test_rename_is_limited_to_own_organization_admins(session: AsyncSession, rls_session: AsyncSession):
    org = await create_organization(session, name="Before")
    member = await create_user_profile(session, organization=org)
    admin = await create_user_profile(session, organization=org, role=UserRole.secondary_admin)

    actor = await act_as(rls_session, member)
    with pytest.raises(PolicyViolation):
        await organizations_service.update_organization(
            rls_session, actor=actor, organization_id=org.id, name="Hijacked"
        )

    actor = await act_as(rls_session, admin)
    with pytest.raises(ServiceError):
        await organizations_service.update_organization(rls_session, actor=actor, organization_id=org.id, name=" ")
    renamed = await organizations_service.update_organization(
        rls_session, actor=actor, organization_id=org.id, name="After"
    )
    assert renamed.name == "After"
