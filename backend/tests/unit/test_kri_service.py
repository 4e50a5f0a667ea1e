"""Service tests for key risk indicators."""

from datetime import date

import pytest
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.models.audit import AuditEntry
from minrisk.models.kri import AlertStatus, ThresholdDirection
from minrisk.services import kri as kri_service
from minrisk.services.errors import NotFoundError, ServiceError
from minrisk.testing import act_as, create_kri, create_organization, create_risk, create_user_profile


@pytest.mark.unit
@pytest.mark.service
async def test_create_definition_generates_code_and_links_risk(session: AsyncSession, rls_session: AsyncSession):
    org = await create_organization(session)
    user = await create_user_profile(session, organization=org)
    risk = await create_risk(session, user)
    actor = await act_as(rls_session, user)

    definition = await kri_service.create_definition(
        rls_session,
        actor=actor,
        data={
            "name": "Failed settlements",
            "lower_threshold": 3,
            "upper_threshold": 8,
            "threshold_direction": ThresholdDirection.above,
            "linked_risk_id": risk.id,
        },
    )

    assert definition.kri_code == "KRI-001"
    assert definition.linked_risk_id == risk.id
    listed = await kri_service.list_definitions(rls_session, linked_risk_id=risk.id)
    assert [item.id for item in listed] == [definition.id]


@pytest.mark.unit
@pytest.mark.service
async def test_definition_cannot_link_foreign_risk(session: AsyncSession, rls_session: AsyncSession):
    org_a = await create_organization(session)
    org_b = await create_organization(session)
    user_a = await create_user_profile(session, organization=org_a)
    user_b = await create_user_profile(session, organization=org_b)
    foreign_risk = await create_risk(session, user_b)
    actor = await act_as(rls_session, user_a)

    with pytest.raises(NotFoundError):
        await kri_service.create_definition(
            rls_session, actor=actor, data={"name": "Breaks", "linked_risk_id": foreign_risk.id}
        )


@pytest.mark.unit
@pytest.mark.service
async def test_update_rejects_inverted_thresholds(session: AsyncSession, rls_session: AsyncSession):
    org = await create_organization(session)
    user = await create_user_profile(session, organization=org)
    definition = await create_kri(session, user, lower_threshold=5.0, upper_threshold=10.0)
    actor = await act_as(rls_session, user)

    with pytest.raises(ServiceError):
        await kri_service.update_definition(
            rls_session, actor=actor, kri_id=definition.id, data={"lower_threshold": 11.0}
        )


@pytest.mark.unit
@pytest.mark.service
async def test_record_entry_classifies_and_audits_breaches(session: AsyncSession, rls_session: AsyncSession):
    org = await create_organization(session)
    user = await create_user_profile(session, organization=org)
    definition = await create_kri(session, user, lower_threshold=5.0, upper_threshold=10.0)
    actor = await act_as(rls_session, user)

    calm = await kri_service.record_entry(
        rls_session, actor=actor, kri_id=definition.id, data={"value": 2, "measurement_date": date(2026, 1, 31)}
    )
    breach = await kri_service.record_entry(
        rls_session, actor=actor, kri_id=definition.id, data={"value": 12, "measurement_date": date(2026, 2, 28)}
    )

    assert calm.alert_status == AlertStatus.green
    assert breach.alert_status == AlertStatus.red
    assert breach.organization_id == org.id
    entries = await kri_service.list_entries(rls_session, definition.id)
    assert [entry.id for entry in entries] == [breach.id, calm.id]

    alerts = (
        await rls_session.exec(select(AuditEntry).where(AuditEntry.action_type == "kri_alert"))
    ).all()
    assert len(alerts) == 1
    assert alerts[0].new_values == {"value": 12, "alert_status": "red"}
