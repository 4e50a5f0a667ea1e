"""
Integration tests for sign-up, sign-in and token handling.

Tests the endpoints at /api/v1/auth and /api/v1/users/me including:
- Pending sign-ups without an invitation
- The invitation flow end to end
- Token revocation through token_version
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.messages import AuthMessages, InvitationMessages
from minrisk.core.security import create_access_token
from minrisk.models.invitation import InvitationStatus
from minrisk.models.user_profile import UserRole, UserStatus
from minrisk.testing import (
    DEFAULT_PASSWORD,
    create_invitation,
    create_organization,
    create_user_profile,
    get_auth_headers,
)


async def _login(client: AsyncClient, email: str, password: str = DEFAULT_PASSWORD):
    return await client.post("/api/v1/auth/token", data={"username": email, "password": password})


@pytest.mark.integration
async def test_version(client: AsyncClient):
    response = await client.get("/api/v1/version")

    assert response.status_code == 200
    assert "version" in response.json()


@pytest.mark.integration
async def test_signup_without_invitation_waits_for_approval(client: AsyncClient):
    response = await client.post(
        "/api/v1/auth/register",
        json={"email": "new@example.com", "password": "password123", "full_name": "New Person"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["organization_id"] is None

    login = await _login(client, "new@example.com", "password123")
    assert login.status_code == 400
    assert login.json()["detail"] == AuthMessages.ACCOUNT_PENDING


@pytest.mark.integration
async def test_duplicate_signup_conflicts(client: AsyncClient, session: AsyncSession):
    await create_user_profile(session, email="taken@example.com")

    response = await client.post(
        "/api/v1/auth/register", json={"email": "taken@example.com", "password": "password123"}
    )

    assert response.status_code == 409


@pytest.mark.integration
async def test_invitation_flow(client: AsyncClient, session: AsyncSession):
    org = await create_organization(session)
    admin = await create_user_profile(session, organization=org, role=UserRole.primary_admin)

    created = await client.post(
        "/api/v1/invitations/",
        json={"email": "analyst@example.com", "role": "secondary_admin"},
        headers=get_auth_headers(admin),
    )
    assert created.status_code == 201
    code = created.json()["invite_code"]

    check = await client.post(
        "/api/v1/invitations/validate", json={"code": code, "email": "analyst@example.com"}
    )
    assert check.status_code == 200
    assert check.json()["is_valid"] is True

    registered = await client.post(
        "/api/v1/auth/register",
        json={"email": "analyst@example.com", "password": "password123", "invite_code": code},
    )
    assert registered.status_code == 201
    assert registered.json()["status"] == "approved"
    assert registered.json()["organization_id"] == str(org.id)

    login = await _login(client, "analyst@example.com", "password123")
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["role"] == "secondary_admin"

    reused = await client.post(
        "/api/v1/invitations/validate", json={"code": code, "email": "analyst@example.com"}
    )
    assert reused.json()["is_valid"] is False


@pytest.mark.integration
async def test_signup_with_stale_invitation_marks_it_expired(client: AsyncClient, session: AsyncSession):
    org = await create_organization(session)
    admin = await create_user_profile(session, organization=org, role=UserRole.primary_admin)
    now = datetime.now(timezone.utc)
    invitation = await create_invitation(
        session,
        admin,
        email="late@example.com",
        created_at=now - timedelta(days=10),
        expires_at=now - timedelta(days=1),
    )
    payload = {"email": "late@example.com", "password": "password123", "invite_code": invitation.invite_code}

    refused = await client.post("/api/v1/auth/register", json=payload)
    assert refused.status_code == 400
    assert refused.json()["detail"] == InvitationMessages.EXPIRED

    await session.refresh(invitation)
    assert invitation.status == InvitationStatus.expired

    again = await client.post("/api/v1/auth/register", json=payload)
    assert again.status_code == 400
    assert again.json()["detail"] == InvitationMessages.already("expired")


@pytest.mark.integration
async def test_invalid_token_is_unauthorized(client: AsyncClient):
    response = await client.get("/api/v1/users/me", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401


@pytest.mark.integration
async def test_password_change_revokes_existing_tokens(client: AsyncClient, session: AsyncSession):
    org = await create_organization(session)
    user = await create_user_profile(session, organization=org)
    headers = get_auth_headers(user)

    response = await client.patch("/api/v1/users/me", json={"password": "a-brand-new-one"}, headers=headers)
    assert response.status_code == 200

    stale = await client.get("/api/v1/users/me", headers=headers)
    assert stale.status_code == 401

    fresh = create_access_token(user.id, token_version=user.token_version + 1)
    current = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {fresh}"})
    assert current.status_code == 200


@pytest.mark.integration
async def test_suspended_user_is_refused(client: AsyncClient, session: AsyncSession):
    org = await create_organization(session)
    user = await create_user_profile(session, organization=org, status=UserStatus.suspended)

    response = await client.get("/api/v1/users/me", headers=get_auth_headers(user))

    assert response.status_code == 403
    assert response.json()["detail"] == AuthMessages.ACCOUNT_SUSPENDED
