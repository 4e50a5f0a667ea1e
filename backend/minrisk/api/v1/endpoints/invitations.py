from typing import List, Optional
import uuid

from fastapi import APIRouter, Query, Request, status

from minrisk.api.deps import AdminSessionDep, AdminUser, RequestMetaDep, UserSessionDep
from minrisk.core.rate_limit import INVITE_VALIDATION_LIMIT, limiter
from minrisk.models.invitation import InvitationStatus, UserInvitation
from minrisk.schemas.invitation import (
    InvitationCleanupResponse,
    InvitationCreate,
    InvitationRead,
    InvitationRevoke,
    InvitationValidateRequest,
    InvitationValidateResponse,
)
from minrisk.services import invitations as invitations_service

router = APIRouter()


@router.get("/", response_model=List[InvitationRead])
async def list_invitations(
    session: UserSessionDep,
    current_user: AdminUser,
    status_filter: Optional[InvitationStatus] = Query(default=None, alias="status"),
) -> List[UserInvitation]:
    return await invitations_service.list_invitations(session, status=status_filter)


@router.post("/", response_model=InvitationRead, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    invitation_in: InvitationCreate,
    session: UserSessionDep,
    current_user: AdminUser,
    meta: RequestMetaDep,
) -> UserInvitation:
    invitation = await invitations_service.create_invitation(
        session,
        actor=current_user,
        email=invitation_in.email,
        role=invitation_in.role,
        expires_in_days=invitation_in.expires_in_days,
        notes=invitation_in.notes,
        meta=meta,
    )
    await session.commit()
    return invitation


@router.post("/validate", response_model=InvitationValidateResponse)
@limiter.limit(INVITE_VALIDATION_LIMIT)
async def validate_invitation(
    request: Request,
    payload: InvitationValidateRequest,
    admin_session: AdminSessionDep,
) -> InvitationValidateResponse:
    """Pre-signup check. Answers only for the matching email, never reveals the organization."""
    is_valid, invitation, error = await invitations_service.validate_invitation(
        admin_session, code=payload.code, email=payload.email
    )
    # Persist an auto-expiry.
    await admin_session.commit()
    if not is_valid:
        return InvitationValidateResponse(is_valid=False, error=error)
    return InvitationValidateResponse(is_valid=True, role=invitation.role, expires_at=invitation.expires_at)


@router.post("/{invitation_id}/revoke", response_model=InvitationRead)
async def revoke_invitation(
    invitation_id: uuid.UUID,
    payload: InvitationRevoke,
    session: UserSessionDep,
    current_user: AdminUser,
    meta: RequestMetaDep,
) -> UserInvitation:
    invitation = await invitations_service.revoke_invitation(
        session,
        actor=current_user,
        invitation_id=invitation_id,
        reason=payload.reason,
        meta=meta,
    )
    await session.commit()
    return invitation


@router.post("/cleanup", response_model=InvitationCleanupResponse)
async def cleanup_expired_invitations(session: UserSessionDep, current_user: AdminUser) -> InvitationCleanupResponse:
    expired = await invitations_service.cleanup_expired_invitations(session)
    await session.commit()
    return InvitationCleanupResponse(expired=expired)
