from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
import secrets
import uuid
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.config import settings
from minrisk.core.messages import InvitationMessages, UserMessages
from minrisk.models.invitation import INVITABLE_ROLES, InvitationStatus, UserInvitation
from minrisk.models.user_profile import UserProfile, UserRole
from minrisk.services import audit as audit_service
from minrisk.services.errors import ConflictError, NotFoundError, ServiceError
from minrisk.services.policies import Operation, authorize, with_changes
from minrisk.services.rls import assert_can_assign_role, principal_for, require_admin

logger = logging.getLogger(__name__)

# No 0/O or 1/I, so codes survive being read aloud.
INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 10


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def normalize_code(code: str) -> str:
    return code.strip().upper()


def _is_expired(invitation: UserInvitation, now: datetime) -> bool:
    expires_at = invitation.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= now


async def get_invitation(session: AsyncSession, invitation_id: uuid.UUID) -> UserInvitation:
    result = await session.exec(select(UserInvitation).where(UserInvitation.id == invitation_id))
    invitation = result.one_or_none()
    if invitation is None:
        raise NotFoundError(InvitationMessages.NOT_FOUND)
    return invitation


async def list_invitations(
    session: AsyncSession,
    *,
    status: InvitationStatus | None = None,
) -> list[UserInvitation]:
    stmt = select(UserInvitation)
    if status is not None:
        stmt = stmt.where(UserInvitation.status == status)
    result = await session.exec(stmt.order_by(UserInvitation.created_at.desc()))
    return list(result.all())


async def create_invitation(
    session: AsyncSession,
    *,
    actor: UserProfile,
    email: str,
    role: UserRole = UserRole.user,
    expires_in_days: int | None = None,
    notes: str | None = None,
    meta: audit_service.RequestMeta | None = None,
) -> UserInvitation:
    """Invite ``email`` into the actor's organization with ``role``.

    Codes are drawn at random; a collision on the unique index is retried
    inside a savepoint so the outer transaction survives.
    """
    require_admin(actor)
    if role not in INVITABLE_ROLES:
        raise ServiceError(InvitationMessages.INVALID_ROLE)
    assert_can_assign_role(actor, role)
    if actor.organization_id is None:
        raise ServiceError(UserMessages.ORGANIZATION_REQUIRED)

    days = expires_in_days if expires_in_days is not None else settings.INVITATION_EXPIRY_DAYS
    now = datetime.now(timezone.utc)
    principal = principal_for(actor)
    for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
        invitation = UserInvitation(
            invite_code=generate_invite_code(),
            email=email.strip().lower(),
            organization_id=actor.organization_id,
            role=role,
            expires_at=now + timedelta(days=days),
            created_by=actor.id,
            created_at=now,
            notes=notes,
        )
        authorize(principal, "user_invitations", Operation.insert, invitation)
        try:
            async with session.begin_nested():
                session.add(invitation)
                await session.flush()
        except IntegrityError:
            logger.debug("Invite code collision on attempt %d", attempt)
            continue
        break
    else:
        raise ConflictError(InvitationMessages.CODE_GENERATION_FAILED)

    await audit_service.record_event(
        session,
        actor=actor,
        action_type="invite",
        entity_type="invitation",
        entity_id=invitation.id,
        entity_code=invitation.invite_code,
        new_values=audit_service.snapshot(invitation, ["email", "role", "expires_at"]),
        meta=meta,
    )
    logger.info("Invitation %s created for %s", invitation.invite_code, invitation.email)
    return invitation


async def validate_invitation(
    session: AsyncSession,
    *,
    code: str,
    email: str,
) -> tuple[bool, Optional[UserInvitation], Optional[str]]:
    """Return ``(is_valid, invitation, error_message)`` for a code/email pair.

    A pending invitation found past its expiry is flipped to ``expired``.
    """
    result = await session.exec(
        select(UserInvitation).where(
            UserInvitation.invite_code == normalize_code(code),
            UserInvitation.email == email.strip().lower(),
        )
    )
    invitation = result.one_or_none()
    if invitation is None:
        return False, None, InvitationMessages.INVALID
    if invitation.status != InvitationStatus.pending:
        return False, invitation, InvitationMessages.already(invitation.status.value)
    if _is_expired(invitation, datetime.now(timezone.utc)):
        invitation.status = InvitationStatus.expired
        session.add(invitation)
        await session.flush()
        return False, invitation, InvitationMessages.EXPIRED
    return True, invitation, None


async def use_invitation(session: AsyncSession, *, code: str, user_id: uuid.UUID) -> UserInvitation:
    result = await session.exec(
        select(UserInvitation).where(UserInvitation.invite_code == normalize_code(code))
    )
    invitation = result.one_or_none()
    if invitation is None:
        raise NotFoundError(InvitationMessages.NOT_FOUND)
    if invitation.status != InvitationStatus.pending:
        raise ConflictError(InvitationMessages.already(invitation.status.value))
    invitation.status = InvitationStatus.used
    invitation.used_by = user_id
    invitation.used_at = datetime.now(timezone.utc)
    session.add(invitation)
    await session.flush()
    return invitation


async def revoke_invitation(
    session: AsyncSession,
    *,
    actor: UserProfile,
    invitation_id: uuid.UUID,
    reason: str | None = None,
    meta: audit_service.RequestMeta | None = None,
) -> UserInvitation:
    invitation = await get_invitation(session, invitation_id)
    if invitation.status != InvitationStatus.pending:
        raise ConflictError(InvitationMessages.NOT_PENDING)
    changes = {
        "status": InvitationStatus.revoked,
        "revoked_by": actor.id,
        "revoked_at": datetime.now(timezone.utc),
        "revoke_reason": reason,
    }
    authorize(
        principal_for(actor),
        "user_invitations",
        Operation.update,
        invitation,
        with_changes(invitation, changes),
    )
    for field, value in changes.items():
        setattr(invitation, field, value)
    session.add(invitation)
    await session.flush()
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="revoke",
        entity_type="invitation",
        entity_id=invitation.id,
        entity_code=invitation.invite_code,
        old_values={"status": InvitationStatus.pending.value},
        new_values={"status": InvitationStatus.revoked.value},
        metadata={"reason": reason} if reason else None,
        organization_id=invitation.organization_id,
        meta=meta,
    )
    return invitation


async def cleanup_expired_invitations(session: AsyncSession) -> int:
    """Expire every pending invitation past its expiry; returns how many changed.

    On an RLS session this only reaches invitations the caller can see.
    """
    result = await session.exec(
        update(UserInvitation)
        .where(
            UserInvitation.status == InvitationStatus.pending,
            UserInvitation.expires_at <= datetime.now(timezone.utc),
        )
        .values(status=InvitationStatus.expired)
        .execution_options(synchronize_session=False)
    )
    count = result.rowcount or 0
    if count:
        logger.info("Expired %d stale invitations", count)
    return count
