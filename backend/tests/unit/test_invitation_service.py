"""Service tests for invitations."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.messages import InvitationMessages
from minrisk.models.invitation import InvitationStatus, UserInvitation
from minrisk.models.user_profile import UserRole
from minrisk.services import invitations as invitations_service
from minrisk.services.errors import ConflictError, ServiceError
from minrisk.testing import act_as, create_invitation, create_organization, create_user_profile


def _stale(**overrides):
    now = datetime.now(timezone.utc)
    return {"created_at": now - timedelta(days=10), "expires_at": now - timedelta(days=1), **overrides}


@pytest.mark.unit
@pytest.mark.service
async def test_admin_creates_invitation_for_own_organization(session: AsyncSession, rls_session: AsyncSession):
    org = await create_organization(session)
    admin = await create_user_profile(session, organization=org, role=UserRole.primary_admin)
    actor = await act_as(rls_session, admin)

    invitation = await invitations_service.create_invitation(
        rls_session, actor=actor, email=" Analyst@Example.com", role=UserRole.secondary_admin, expires_in_days=3
    )

    assert len(invitation.invite_code) == invitations_service.INVITE_CODE_LENGTH
    assert invitation.email == "analyst@example.com"
    assert invitation.organization_id == org.id
    assert invitation.status == InvitationStatus.pending
    assert invitation.expires_at - invitation.created_at == timedelta(days=3)


@pytest.mark.unit
@pytest.mark.service
async def test_invite_code_collision_draws_a_fresh_code(
    session: AsyncSession, rls_session: AsyncSession, monkeypatch
):
    org = await create_organization(session)
    admin = await create_user_profile(session, organization=org, role=UserRole.primary_admin)
    existing = await create_invitation(session, admin, invite_code="TAKEN234")
    actor = await act_as(rls_session, admin)
    drawn = iter([existing.invite_code, "FRESH234"])
    monkeypatch.setattr(invitations_service, "generate_invite_code", lambda: next(drawn))

    invitation = await invitations_service.create_invitation(
        rls_session, actor=actor, email="second@example.com", role=UserRole.user
    )

    assert invitation.invite_code == "FRESH234"
    stored = (
        await rls_session.exec(select(UserInvitation).where(UserInvitation.email == "second@example.com"))
    ).one()
    assert stored.id == invitation.id


@pytest.mark.unit
@pytest.mark.service
async def test_invite_code_generation_gives_up_after_max_attempts(
    session: AsyncSession, rls_session: AsyncSession, monkeypatch
):
    org = await create_organization(session)
    admin = await create_user_profile(session, organization=org, role=UserRole.primary_admin)
    existing = await create_invitation(session, admin, invite_code="TAKEN567")
    actor = await act_as(rls_session, admin)
    calls = []

    def always_taken() -> str:
        calls.append(existing.invite_code)
        return existing.invite_code

    monkeypatch.setattr(invitations_service, "generate_invite_code", always_taken)

    with pytest.raises(ConflictError) as exc_info:
        await invitations_service.create_invitation(
            rls_session, actor=actor, email="second@example.com", role=UserRole.user
        )

    assert exc_info.value.detail == InvitationMessages.CODE_GENERATION_FAILED
    assert len(calls) == invitations_service.MAX_CODE_ATTEMPTS


@pytest.mark.unit
@pytest.mark.service
async def test_invitation_role_limits(session: AsyncSession, rls_session: AsyncSession):
    org = await create_organization(session)
    secondary = await create_user_profile(session, organization=org, role=UserRole.secondary_admin)
    actor = await act_as(rls_session, secondary)

    with pytest.raises(ServiceError) as exc_info:
        await invitations_service.create_invitation(rls_session, actor=actor, email="v@example.com", role=UserRole.viewer)
    assert exc_info.value.detail == InvitationMessages.INVALID_ROLE

    with pytest.raises(PermissionError):
        await invitations_service.create_invitation(
            rls_session, actor=actor, email="p@example.com", role=UserRole.primary_admin
        )


@pytest.mark.unit
@pytest.mark.service
async def test_members_cannot_invite(session: AsyncSession, rls_session: AsyncSession):
    org = await create_organization(session)
    member = await create_user_profile(session, organization=org)
    actor = await act_as(rls_session, member)

    with pytest.raises(PermissionError):
        await invitations_service.create_invitation(rls_session, actor=actor, email="x@example.com")


@pytest.mark.unit
@pytest.mark.service
async def test_validate_flips_stale_invitation_to_expired(session: AsyncSession):
    org = await create_organization(session)
    admin = await create_user_profile(session, organization=org, role=UserRole.primary_admin)
    invitation = await create_invitation(session, admin, **_stale())

    is_valid, found, error = await invitations_service.validate_invitation(
        session, code=invitation.invite_code, email=invitation.email
    )

    assert is_valid is False
    assert found.status == InvitationStatus.expired
    assert error == InvitationMessages.EXPIRED

    _, _, error = await invitations_service.validate_invitation(
        session, code=invitation.invite_code, email=invitation.email
    )
    assert error == InvitationMessages.already("expired")


@pytest.mark.unit
@pytest.mark.service
async def test_revoke_is_one_way(session: AsyncSession, rls_session: AsyncSession):
    org = await create_organization(session)
    admin = await create_user_profile(session, organization=org, role=UserRole.primary_admin)
    invitation = await create_invitation(session, admin)
    actor = await act_as(rls_session, admin)

    revoked = await invitations_service.revoke_invitation(
        rls_session, actor=actor, invitation_id=invitation.id, reason="Sent to the wrong person"
    )

    assert revoked.status == InvitationStatus.revoked
    assert revoked.revoked_by == admin.id
    with pytest.raises(ConflictError):
        await invitations_service.revoke_invitation(rls_session, actor=actor, invitation_id=invitation.id)


@pytest.mark.unit
@pytest.mark.service
async def test_cleanup_only_reaches_own_organization(session: AsyncSession, rls_session: AsyncSession):
    org_a = await create_organization(session)
    org_b = await create_organization(session)
    admin_a = await create_user_profile(session, organization=org_a, role=UserRole.primary_admin)
    admin_b = await create_user_profile(session, organization=org_b, role=UserRole.primary_admin)
    await create_invitation(session, admin_a, **_stale())
    await create_invitation(session, admin_a)
    foreign = await create_invitation(session, admin_b, **_stale())
    actor = await act_as(rls_session, admin_a)

    expired = await invitations_service.cleanup_expired_invitations(rls_session)

    assert expired == 1
    assert actor.organization_id == org_a.id
    status = (
        await session.exec(select(UserInvitation.status).where(UserInvitation.id == foreign.id))
    ).one()
    assert status == InvitationStatus.pending


@pytest.mark.unit
@pytest.mark.service
async def test_invitations_are_invisible_across_organizations(session: AsyncSession, rls_session: AsyncSession):
    org_a = await create_organization(session)
    org_b = await create_organization(session)
    admin_a = await create_user_profile(session, organization=org_a, role=UserRole.primary_admin)
    admin_b = await create_user_profile(session, organization=org_b, role=UserRole.primary_admin)
    own = await create_invitation(session, admin_a)
    await create_invitation(session, admin_b)
    await act_as(rls_session, admin_a)

    invitations = await invitations_service.list_invitations(rls_session)

    assert [item.id for item in invitations] == [own.id]
