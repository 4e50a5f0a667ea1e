"""
Integration tests for risk, control and incident endpoints.

Tests the API at /api/v1/risks and /api/v1/incidents including:
- Code generation and computed scores
- Organization isolation
- Read-only viewers
- Ownership transfer and incident linking
"""

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.models.user_profile import UserRole
from minrisk.testing import (
    create_incident,
    create_organization,
    create_risk,
    create_user_profile,
    get_auth_headers,
)

RISK_PAYLOAD = {
    "risk_title": "Margin model failure",
    "division": "Clearing",
    "department": "Quant/Risk",
    "category": "Market",
    "owner": "Head of Risk",
    "likelihood_inherent": 4,
    "impact_inherent": 5,
}


@pytest.mark.integration
async def test_create_and_list_risks(client: AsyncClient, session: AsyncSession):
    org = await create_organization(session)
    user = await create_user_profile(session, organization=org)
    headers = get_auth_headers(user)

    next_code = await client.get(
        "/api/v1/risks/next-code", params={"division": "Clearing", "category": "Market"}, headers=headers
    )
    assert next_code.json() == {"risk_code": "CLE-MAR-001"}

    response = await client.post("/api/v1/risks/", json=RISK_PAYLOAD, headers=headers)
    assert response.status_code == 201
    body = response.json()
    assert body["risk_code"] == "CLE-MAR-001"
    assert body["inherent_score"] == 20
    assert body["residual_score"] is None
    assert body["user_id"] == str(user.id)

    listed = await client.get("/api/v1/risks/", headers=headers)
    assert [item["risk_code"] for item in listed.json()] == ["CLE-MAR-001"]


@pytest.mark.integration
async def test_risks_do_not_cross_organizations(client: AsyncClient, session: AsyncSession):
    org_a = await create_organization(session)
    org_b = await create_organization(session)
    user_a = await create_user_profile(session, organization=org_a)
    admin_b = await create_user_profile(session, organization=org_b, role=UserRole.primary_admin)
    risk = await create_risk(session, user_a)
    headers = get_auth_headers(admin_b)

    listed = await client.get("/api/v1/risks/", headers=headers)
    read = await client.get(f"/api/v1/risks/{risk.id}", headers=headers)
    patched = await client.patch(f"/api/v1/risks/{risk.id}", json={"is_priority": True}, headers=headers)
    deleted = await client.delete(f"/api/v1/risks/{risk.id}", headers=headers)

    assert listed.json() == []
    assert read.status_code == 404
    assert patched.status_code == 404
    assert deleted.status_code == 404


@pytest.mark.integration
async def test_viewer_is_read_only(client: AsyncClient, session: AsyncSession):
    org = await create_organization(session)
    creator = await create_user_profile(session, organization=org)
    viewer = await create_user_profile(session, organization=org, role=UserRole.viewer)
    await create_risk(session, creator)
    headers = get_auth_headers(viewer)

    listed = await client.get("/api/v1/risks/", headers=headers)
    created = await client.post("/api/v1/risks/", json=RISK_PAYLOAD, headers=headers)

    assert len(listed.json()) == 1
    assert created.status_code == 403


@pytest.mark.integration
async def test_only_creator_owner_or_admin_edits(client: AsyncClient, session: AsyncSession):
    org = await create_organization(session)
    creator = await create_user_profile(session, organization=org)
    colleague = await create_user_profile(session, organization=org)
    admin = await create_user_profile(session, organization=org, role=UserRole.secondary_admin)
    risk = await create_risk(session, creator)

    denied = await client.patch(
        f"/api/v1/risks/{risk.id}", json={"is_priority": True}, headers=get_auth_headers(colleague)
    )
    allowed = await client.patch(
        f"/api/v1/risks/{risk.id}", json={"is_priority": True}, headers=get_auth_headers(admin)
    )

    assert denied.status_code == 403
    assert allowed.status_code == 200
    assert allowed.json()["is_priority"] is True


@pytest.mark.integration
async def test_invalid_payload_is_rejected(client: AsyncClient, session: AsyncSession):
    org = await create_organization(session)
    user = await create_user_profile(session, organization=org)

    response = await client.post(
        "/api/v1/risks/", json={**RISK_PAYLOAD, "impact_inherent": 9}, headers=get_auth_headers(user)
    )

    assert response.status_code == 422


@pytest.mark.integration
async def test_transfer_and_history(client: AsyncClient, session: AsyncSession):
    org = await create_organization(session)
    creator = await create_user_profile(session, organization=org)
    successor = await create_user_profile(session, organization=org)
    risk = await create_risk(session, creator)
    headers = get_auth_headers(creator)

    response = await client.post(
        f"/api/v1/risks/{risk.id}/transfer",
        json={"new_owner_id": str(successor.id), "reason": "Role change"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["owner_id"] == str(successor.id)

    history = await client.get(f"/api/v1/risks/{risk.id}/owner-history", headers=headers)
    assert [entry["new_owner_id"] for entry in history.json()] == [str(successor.id)]


@pytest.mark.integration
async def test_controls_lifecycle(client: AsyncClient, session: AsyncSession):
    org = await create_organization(session)
    user = await create_user_profile(session, organization=org)
    admin = await create_user_profile(session, organization=org, role=UserRole.primary_admin)
    risk = await create_risk(session, user)
    headers = get_auth_headers(user)

    created = await client.post(
        f"/api/v1/risks/{risk.id}/controls",
        json={"description": "Four-eyes check", "target": "Impact", "design": 2, "implementation": 2},
        headers=headers,
    )
    assert created.status_code == 201
    control = created.json()
    assert control["control_code"] == "CTRL-001"

    updated = await client.patch(
        f"/api/v1/risks/controls/{control['id']}", json={"monitoring": 3}, headers=headers
    )
    assert updated.json()["monitoring"] == 3

    denied = await client.delete(f"/api/v1/risks/controls/{control['id']}", headers=headers)
    assert denied.status_code == 403
    removed = await client.delete(f"/api/v1/risks/controls/{control['id']}", headers=get_auth_headers(admin))
    assert removed.status_code == 204

    listed = await client.get(f"/api/v1/risks/{risk.id}/controls", headers=headers)
    assert listed.json() == []


@pytest.mark.integration
async def test_incident_link_updates_risk_counters(client: AsyncClient, session: AsyncSession):
    org = await create_organization(session)
    admin = await create_user_profile(session, organization=org, role=UserRole.primary_admin)
    member = await create_user_profile(session, organization=org)
    risk = await create_risk(session, admin)
    incident = await create_incident(session, member)
    headers = get_auth_headers(member)

    linked = await client.post(
        f"/api/v1/incidents/{incident.id}/risks", json={"risk_id": str(risk.id)}, headers=headers
    )
    assert linked.status_code == 201

    read = await client.get(f"/api/v1/risks/{risk.id}", headers=headers)
    assert read.json()["linked_incident_count"] == 1
    incidents = await client.get(f"/api/v1/risks/{risk.id}/incidents", headers=headers)
    assert [item["id"] for item in incidents.json()] == [str(incident.id)]

    duplicate = await client.post(
        f"/api/v1/incidents/{incident.id}/risks", json={"risk_id": str(risk.id)}, headers=headers
    )
    assert duplicate.status_code == 409

    unlinked = await client.delete(f"/api/v1/incidents/{incident.id}/risks/{risk.id}", headers=headers)
    assert unlinked.status_code == 204
    read = await client.get(f"/api/v1/risks/{risk.id}", headers=headers)
    assert read.json()["linked_incident_count"] == 0


@pytest.mark.integration
async def test_report_incident_with_generated_code(client: AsyncClient, session: AsyncSession):
    org = await create_organization(session)
    user = await create_user_profile(session, organization=org)

    response = await client.post(
        "/api/v1/incidents/",
        json={"title": "Payment batch rejected", "incident_date": "2026-03-14", "severity": 4},
        headers=get_auth_headers(user),
    )

    assert response.status_code == 201
    assert response.json()["incident_code"] == "INC-2026-001"


@pytest.mark.integration
async def test_kri_entries_are_classified(client: AsyncClient, session: AsyncSession):
    org = await create_organization(session)
    user = await create_user_profile(session, organization=org)
    headers = get_auth_headers(user)

    created = await client.post(
        "/api/v1/kri/",
        json={"name": "Failed settlements", "lower_threshold": 5, "upper_threshold": 10},
        headers=headers,
    )
    assert created.status_code == 201
    kri = created.json()
    assert kri["kri_code"] == "KRI-001"

    entry = await client.post(
        f"/api/v1/kri/{kri['id']}/entries",
        json={"value": 12, "measurement_date": "2026-10-01"},
        headers=headers,
    )
    assert entry.status_code == 201
    assert entry.json()["alert_status"] == "red"

    at_upper = await client.post(
        f"/api/v1/kri/{kri['id']}/entries",
        json={"value": 10, "measurement_date": "2026-10-08"},
        headers=headers,
    )
    assert at_upper.json()["alert_status"] == "yellow"

    inverted = await client.patch(
        f"/api/v1/kri/{kri['id']}", json={"lower_threshold": 20}, headers=headers
    )
    assert inverted.status_code == 400
