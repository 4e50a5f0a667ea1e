from __future__ import annotations

from datetime import datetime, timezone
import logging
import uuid
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.messages import AuthMessages, UserMessages
from minrisk.core.security import get_password_hash, verify_password
from minrisk.models.organization import Organization
from minrisk.models.user_profile import UserProfile, UserRole, UserStatus
from minrisk.services import audit as audit_service
from minrisk.services import invitations as invitations_service
from minrisk.services.errors import ConflictError, InvitationRejected, NotFoundError, ServiceError
from minrisk.services.policies import Operation, authorize, with_changes
from minrisk.services.rls import (
    assert_can_assign_role,
    assert_can_manage_user,
    principal_for,
)

logger = logging.getLogger(__name__)

# Statuses an admin may set directly; pending/rejected go through approve/reject.
ASSIGNABLE_STATUSES = frozenset({UserStatus.approved, UserStatus.suspended})

STATUS_ERRORS = {
    UserStatus.pending: AuthMessages.ACCOUNT_PENDING,
    UserStatus.rejected: AuthMessages.ACCOUNT_REJECTED,
    UserStatus.suspended: AuthMessages.ACCOUNT_SUSPENDED,
}


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user(session: AsyncSession, user_id: uuid.UUID) -> UserProfile:
    result = await session.exec(select(UserProfile).where(UserProfile.id == user_id))
    user = result.one_or_none()
    if user is None:
        raise NotFoundError(UserMessages.NOT_FOUND)
    return user


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[UserProfile]:
    result = await session.exec(select(UserProfile).where(UserProfile.email == normalize_email(email)))
    return result.one_or_none()


async def list_users(
    session: AsyncSession,
    *,
    status: UserStatus | None = None,
    organization_id: uuid.UUID | None = None,
) -> list[UserProfile]:
    """Profiles the caller may see: itself, its organization for admins, everything for super admins."""
    stmt = select(UserProfile)
    if status is not None:
        stmt = stmt.where(UserProfile.status == status)
    if organization_id is not None:
        stmt = stmt.where(UserProfile.organization_id == organization_id)
    result = await session.exec(stmt.order_by(UserProfile.created_at))
    return list(result.all())


async def register_user(
    session: AsyncSession,
    *,
    email: str,
    password: str,
    full_name: str | None = None,
    invite_code: str | None = None,
    meta: audit_service.RequestMeta | None = None,
) -> UserProfile:
    """Create a profile. Runs on the admin session: there is no identity yet.

    Without an invitation the profile is ``pending`` and has no organization
    until a super admin approves it. A valid invitation creates an approved
    profile with the invitation's role and organization.
    """
    email = normalize_email(email)
    if await get_user_by_email(session, email):
        raise ConflictError(AuthMessages.EMAIL_TAKEN)

    invitation = None
    if invite_code:
        is_valid, invitation, error = await invitations_service.validate_invitation(
            session, code=invite_code, email=email
        )
        if not is_valid:
            raise InvitationRejected(error or UserMessages.INVITATION_REJECTED)

    now = datetime.now(timezone.utc)
    user = UserProfile(
        email=email,
        full_name=full_name,
        hashed_password=get_password_hash(password),
        role=invitation.role if invitation else UserRole.user,
        status=UserStatus.approved if invitation else UserStatus.pending,
        organization_id=invitation.organization_id if invitation else None,
        approved_at=now if invitation else None,
        approved_by=invitation.created_by if invitation else None,
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError as exc:
        raise ConflictError(AuthMessages.EMAIL_TAKEN) from exc

    if invitation:
        await invitations_service.use_invitation(session, code=invitation.invite_code, user_id=user.id)
        await audit_service.record_event(
            session,
            actor=user,
            action_type="register",
            entity_type="user",
            entity_id=user.id,
            new_values=audit_service.snapshot(user, ["email", "role", "status"]),
            metadata={"invite_code": invitation.invite_code},
            meta=meta,
        )
    logger.info("Registered %s (%s)", user.id, user.status.value)
    return user


async def authenticate(session: AsyncSession, *, email: str, password: str) -> UserProfile:
    """Check credentials and account state. Runs on the admin session."""
    user = await get_user_by_email(session, email)
    if user is None or not verify_password(password, user.hashed_password):
        raise PermissionError(AuthMessages.INVALID_CREDENTIALS)
    await ensure_can_sign_in(session, user)
    user.last_login_at = datetime.now(timezone.utc)
    session.add(user)
    await session.flush()
    return user


async def ensure_can_sign_in(session: AsyncSession, user: UserProfile) -> None:
    """Raise PermissionError unless the account and its organization are active."""
    if user.status != UserStatus.approved:
        raise PermissionError(STATUS_ERRORS.get(user.status, AuthMessages.INVALID_CREDENTIALS))
    if user.is_super_admin:
        return
    if user.organization_id is None:
        raise PermissionError(AuthMessages.NO_ORGANIZATION)
    organization = await session.get(Organization, user.organization_id)
    if organization is None or organization.is_suspended:
        raise PermissionError(AuthMessages.ORGANIZATION_SUSPENDED)


async def update_own_profile(
    session: AsyncSession,
    *,
    actor: UserProfile,
    full_name: str | None = None,
    password: str | None = None,
) -> UserProfile:
    changes: dict[str, Any] = {}
    if full_name is not None:
        changes["full_name"] = full_name
    if password:
        changes["hashed_password"] = get_password_hash(password)
        # Existing tokens stop working after a password change.
        changes["token_version"] = actor.token_version + 1
    if not changes:
        return actor
    authorize(principal_for(actor), "user_profiles", Operation.update, actor, with_changes(actor, changes))
    for field, value in changes.items():
        setattr(actor, field, value)
    actor.updated_at = datetime.now(timezone.utc)
    session.add(actor)
    await session.flush()
    return actor


async def _apply_admin_change(
    session: AsyncSession,
    *,
    actor: UserProfile,
    target: UserProfile,
    changes: dict[str, Any],
    action_type: str,
    meta: audit_service.RequestMeta | None,
) -> UserProfile:
    authorize(principal_for(actor), "user_profiles", Operation.update, target, with_changes(target, changes))
    before = audit_service.snapshot(target, changes.keys())
    for field, value in changes.items():
        setattr(target, field, value)
    target.updated_at = datetime.now(timezone.utc)
    session.add(target)
    await session.flush()
    old_values, new_values = audit_service.diff(before, audit_service.snapshot(target, changes.keys()))
    await audit_service.record_event(
        session,
        actor=actor,
        action_type=action_type,
        entity_type="user",
        entity_id=target.id,
        entity_code=target.email,
        old_values=old_values,
        new_values=new_values,
        organization_id=target.organization_id or actor.organization_id,
        meta=meta,
    )
    logger.info("%s: %s on %s", action_type, actor.id, target.id)
    return target


async def approve_user(
    session: AsyncSession,
    *,
    actor: UserProfile,
    user_id: uuid.UUID,
    role: UserRole | None = None,
    organization_id: uuid.UUID | None = None,
    meta: audit_service.RequestMeta | None = None,
) -> UserProfile:
    target = await get_user(session, user_id)
    if target.status != UserStatus.pending:
        raise ConflictError(UserMessages.NOT_PENDING)
    assert_can_manage_user(actor, target)
    changes: dict[str, Any] = {
        "status": UserStatus.approved,
        "approved_at": datetime.now(timezone.utc),
        "approved_by": actor.id,
    }
    if role is not None and role != target.role:
        assert_can_assign_role(actor, role)
        changes["role"] = role
    if organization_id is not None and organization_id != target.organization_id:
        # Only super admins place users into an organization.
        if not actor.is_super_admin:
            raise PermissionError(UserMessages.CROSS_ORGANIZATION)
        changes["organization_id"] = organization_id
    if (changes.get("organization_id") or target.organization_id) is None:
        raise ServiceError(UserMessages.ORGANIZATION_REQUIRED)
    return await _apply_admin_change(
        session, actor=actor, target=target, changes=changes, action_type="approve", meta=meta
    )


async def reject_user(
    session: AsyncSession,
    *,
    actor: UserProfile,
    user_id: uuid.UUID,
    meta: audit_service.RequestMeta | None = None,
) -> UserProfile:
    target = await get_user(session, user_id)
    if target.status != UserStatus.pending:
        raise ConflictError(UserMessages.NOT_PENDING)
    assert_can_manage_user(actor, target)
    return await _apply_admin_change(
        session,
        actor=actor,
        target=target,
        changes={"status": UserStatus.rejected},
        action_type="reject",
        meta=meta,
    )


async def update_user_role(
    session: AsyncSession,
    *,
    actor: UserProfile,
    user_id: uuid.UUID,
    role: UserRole,
    meta: audit_service.RequestMeta | None = None,
) -> UserProfile:
    target = await get_user(session, user_id)
    assert_can_manage_user(actor, target)
    assert_can_assign_role(actor, role)
    if role == target.role:
        return target
    return await _apply_admin_change(
        session,
        actor=actor,
        target=target,
        changes={"role": role, "token_version": target.token_version + 1},
        action_type="role_change",
        meta=meta,
    )


async def update_user_status(
    session: AsyncSession,
    *,
    actor: UserProfile,
    user_id: uuid.UUID,
    status: UserStatus,
    meta: audit_service.RequestMeta | None = None,
) -> UserProfile:
    if status not in ASSIGNABLE_STATUSES:
        raise ServiceError(UserMessages.INVALID_STATUS)
    target = await get_user(session, user_id)
    assert_can_manage_user(actor, target)
    if status == target.status:
        return target
    changes: dict[str, Any] = {"status": status}
    if status == UserStatus.suspended:
        changes["token_version"] = target.token_version + 1
    return await _apply_admin_change(
        session, actor=actor, target=target, changes=changes, action_type="status_change", meta=meta
    )


async def delete_user(
    session: AsyncSession,
    *,
    actor: UserProfile,
    user_id: uuid.UUID,
    meta: audit_service.RequestMeta | None = None,
) -> None:
    target = await get_user(session, user_id)
    assert_can_manage_user(actor, target)
    authorize(principal_for(actor), "user_profiles", Operation.delete, target)
    snapshot = audit_service.snapshot(target, ["email", "role", "status"])
    organization_id = target.organization_id or actor.organization_id
    try:
        async with session.begin_nested():
            await session.delete(target)
            await session.flush()
    except IntegrityError as exc:
        raise ConflictError(UserMessages.HAS_RECORDS) from exc
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="delete",
        entity_type="user",
        entity_id=user_id,
        entity_code=snapshot["email"],
        old_values=snapshot,
        organization_id=organization_id,
        meta=meta,
    )
    logger.info("User %s deleted by %s", user_id, actor.id)


async def ensure_first_superuser(
    session: AsyncSession,
    *,
    email: str,
    password: str,
    full_name: str | None = None,
) -> UserProfile | None:
    """Create the bootstrap super admin if no profile uses ``email``. Admin session only."""
    email = normalize_email(email)
    if await get_user_by_email(session, email):
        return None
    now = datetime.now(timezone.utc)
    user = UserProfile(
        email=email,
        full_name=full_name,
        hashed_password=get_password_hash(password),
        role=UserRole.super_admin,
        status=UserStatus.approved,
        approved_at=now,
    )
    session.add(user)
    await session.flush()
    logger.info("Created bootstrap super admin %s", email)
    return user
