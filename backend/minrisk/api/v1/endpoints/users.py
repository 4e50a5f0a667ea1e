from typing import List, Optional
import uuid

from fastapi import APIRouter, Query, status

from minrisk.api.deps import AdminUser, CurrentUser, RequestMetaDep, UserSessionDep
from minrisk.models.user_profile import UserProfile, UserStatus
from minrisk.schemas.user import (
    UserApprove,
    UserRead,
    UserRoleUpdate,
    UserSelfUpdate,
    UserStatusUpdate,
)
from minrisk.services import users as users_service

router = APIRouter()


@router.get("/me", response_model=UserRead)
async def read_users_me(current_user: CurrentUser) -> UserProfile:
    return current_user


@router.patch("/me", response_model=UserRead)
async def update_users_me(
    user_in: UserSelfUpdate,
    session: UserSessionDep,
    current_user: CurrentUser,
) -> UserProfile:
    user = await users_service.update_own_profile(
        session,
        actor=current_user,
        full_name=user_in.full_name,
        password=user_in.password,
    )
    await session.commit()
    return user


@router.get("/", response_model=List[UserRead])
async def list_users(
    session: UserSessionDep,
    current_user: AdminUser,
    status_filter: Optional[UserStatus] = Query(default=None, alias="status"),
    organization_id: Optional[uuid.UUID] = None,
) -> List[UserProfile]:
    """Org admins see their organization; super admins see every profile, pending ones included."""
    return await users_service.list_users(session, status=status_filter, organization_id=organization_id)


@router.get("/{user_id}", response_model=UserRead)
async def read_user(user_id: uuid.UUID, session: UserSessionDep, current_user: CurrentUser) -> UserProfile:
    return await users_service.get_user(session, user_id)


@router.post("/{user_id}/approve", response_model=UserRead)
async def approve_user(
    user_id: uuid.UUID,
    payload: UserApprove,
    session: UserSessionDep,
    current_user: AdminUser,
    meta: RequestMetaDep,
) -> UserProfile:
    user = await users_service.approve_user(
        session,
        actor=current_user,
        user_id=user_id,
        role=payload.role,
        organization_id=payload.organization_id,
        meta=meta,
    )
    await session.commit()
    return user


@router.post("/{user_id}/reject", response_model=UserRead)
async def reject_user(
    user_id: uuid.UUID,
    session: UserSessionDep,
    current_user: AdminUser,
    meta: RequestMetaDep,
) -> UserProfile:
    user = await users_service.reject_user(session, actor=current_user, user_id=user_id, meta=meta)
    await session.commit()
    return user


@router.patch("/{user_id}/role", response_model=UserRead)
async def update_user_role(
    user_id: uuid.UUID,
    payload: UserRoleUpdate,
    session: UserSessionDep,
    current_user: AdminUser,
    meta: RequestMetaDep,
) -> UserProfile:
    user = await users_service.update_user_role(
        session, actor=current_user, user_id=user_id, role=payload.role, meta=meta
    )
    await session.commit()
    return user


@router.patch("/{user_id}/status", response_model=UserRead)
async def update_user_status(
    user_id: uuid.UUID,
    payload: UserStatusUpdate,
    session: UserSessionDep,
    current_user: AdminUser,
    meta: RequestMetaDep,
) -> UserProfile:
    user = await users_service.update_user_status(
        session, actor=current_user, user_id=user_id, status=payload.status, meta=meta
    )
    await session.commit()
    return user


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: uuid.UUID,
    session: UserSessionDep,
    current_user: AdminUser,
    meta: RequestMetaDep,
) -> None:
    await users_service.delete_user(session, actor=current_user, user_id=user_id, meta=meta)
    await session.commit()
