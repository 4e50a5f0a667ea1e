"""
Service tests for incidents and incident-risk links.

Linking refreshes the risk's incident statistics through a database trigger,
including when the caller could not edit the risk itself.
"""

from datetime import date

import pytest
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.messages import IncidentMessages
from minrisk.models.user_profile import UserRole
from minrisk.services import incidents as incidents_service
from minrisk.services import risks as risks_service
from minrisk.services.errors import ConflictError, NotFoundError, ServiceError
from minrisk.services.policies import PolicyViolation
from minrisk.testing import (
    act_as,
    create_incident,
    create_organization,
    create_risk,
    create_user_profile,
)


@pytest.mark.unit
@pytest.mark.service
async def test_create_incident_codes_by_incident_year(session: AsyncSession, rls_session: AsyncSession):
    org = await create_organization(session)
    user = await create_user_profile(session, organization=org)
    actor = await act_as(rls_session, user)

    first = await incidents_service.create_incident(
        rls_session, actor=actor, data={"title": "Outage", "incident_date": date(2025, 11, 3)}
    )
    second = await incidents_service.create_incident(
        rls_session, actor=actor, data={"title": "Late file", "incident_date": date(2026, 2, 1)}
    )
    third = await incidents_service.create_incident(
        rls_session, actor=actor, data={"title": "Late file again", "incident_date": date(2026, 3, 9)}
    )

    assert first.incident_code == "INC-2025-001"
    assert second.incident_code == "INC-2026-001"
    assert third.incident_code == "INC-2026-002"
    assert third.user_id == user.id


@pytest.mark.unit
@pytest.mark.service
async def test_only_admins_delete_incidents(session: AsyncSession, rls_session: AsyncSession):
    org = await create_organization(session)
    reporter = await create_user_profile(session, organization=org)
    incident = await create_incident(session, reporter)
    actor = await act_as(rls_session, reporter)

    with pytest.raises(PolicyViolation):
        await incidents_service.delete_incident(rls_session, actor=actor, incident_id=incident.id)


@pytest.mark.unit
@pytest.mark.service
async def test_linking_updates_risk_statistics(session: AsyncSession, rls_session: AsyncSession):
    org = await create_organization(session)
    admin = await create_user_profile(session, organization=org, role=UserRole.primary_admin)
    member = await create_user_profile(session, organization=org)
    risk = await create_risk(session, admin)
    incident = await create_incident(session, member, incident_date=date(2026, 5, 17))
    actor = await act_as(rls_session, member)

    link = await incidents_service.link_incident_to_risk(
        rls_session, actor=actor, incident_id=incident.id, risk_id=risk.id, notes="Root cause overlap"
    )

    assert link.organization_id == org.id
    assert link.linked_by == member.id
    linked = await risks_service.get_risk(rls_session, risk.id)
    assert linked.linked_incident_count == 1
    assert linked.last_incident_date is not None

    risks = await incidents_service.list_linked_risks(rls_session, incident.id)
    assert [item.id for item in risks] == [risk.id]
    incidents = await incidents_service.list_linked_incidents(rls_session, risk.id)
    assert [item.id for item in incidents] == [incident.id]


@pytest.mark.unit
@pytest.mark.service
async def test_incident_date_change_moves_last_incident_date(session: AsyncSession, rls_session: AsyncSession):
    org = await create_organization(session)
    user = await create_user_profile(session, organization=org)
    risk = await create_risk(session, user)
    incident = await create_incident(session, user, incident_date=date(2026, 1, 10))
    actor = await act_as(rls_session, user)
    await incidents_service.link_incident_to_risk(rls_session, actor=actor, incident_id=incident.id, risk_id=risk.id)
    linked = await risks_service.get_risk(rls_session, risk.id)
    before = linked.last_incident_date

    await incidents_service.update_incident(
        rls_session, actor=actor, incident_id=incident.id, data={"incident_date": date(2026, 4, 10)}
    )
    await rls_session.refresh(linked)

    assert linked.last_incident_date > before


@pytest.mark.unit
@pytest.mark.service
async def test_duplicate_link_conflicts_and_unlink_resets_count(session: AsyncSession, rls_session: AsyncSession):
    org = await create_organization(session)
    user = await create_user_profile(session, organization=org)
    risk = await create_risk(session, user)
    incident = await create_incident(session, user)
    actor = await act_as(rls_session, user)
    await incidents_service.link_incident_to_risk(rls_session, actor=actor, incident_id=incident.id, risk_id=risk.id)

    with pytest.raises(ConflictError) as exc_info:
        await incidents_service.link_incident_to_risk(
            rls_session, actor=actor, incident_id=incident.id, risk_id=risk.id
        )
    assert exc_info.value.detail == IncidentMessages.LINK_EXISTS

    await incidents_service.unlink_incident_from_risk(
        rls_session, actor=actor, incident_id=incident.id, risk_id=risk.id
    )
    linked = await risks_service.get_risk(rls_session, risk.id)
    await rls_session.refresh(linked)
    assert linked.linked_incident_count == 0
    assert linked.last_incident_date is None

    with pytest.raises(NotFoundError):
        await incidents_service.get_link(rls_session, incident.id, risk.id)


@pytest.mark.unit
@pytest.mark.service
async def test_member_cannot_link_to_another_organizations_risk(session: AsyncSession, rls_session: AsyncSession):
    org_a = await create_organization(session)
    org_b = await create_organization(session)
    user_a = await create_user_profile(session, organization=org_a)
    user_b = await create_user_profile(session, organization=org_b)
    foreign_risk = await create_risk(session, user_b)
    incident = await create_incident(session, user_a)
    actor = await act_as(rls_session, user_a)

    with pytest.raises(NotFoundError):
        await incidents_service.link_incident_to_risk(
            rls_session, actor=actor, incident_id=incident.id, risk_id=foreign_risk.id
        )


@pytest.mark.unit
@pytest.mark.service
async def test_super_admin_cannot_link_across_organizations(session: AsyncSession, rls_session: AsyncSession):
    org_a = await create_organization(session)
    org_b = await create_organization(session)
    user_a = await create_user_profile(session, organization=org_a)
    user_b = await create_user_profile(session, organization=org_b)
    super_admin = await create_user_profile(session, role=UserRole.super_admin)
    foreign_risk = await create_risk(session, user_b)
    incident = await create_incident(session, user_a)
    actor = await act_as(rls_session, super_admin)

    with pytest.raises(ServiceError) as exc_info:
        await incidents_service.link_incident_to_risk(
            rls_session, actor=actor, incident_id=incident.id, risk_id=foreign_risk.id
        )

    assert exc_info.value.detail == IncidentMessages.CROSS_ORGANIZATION
