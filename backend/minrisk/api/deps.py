from collections.abc import Callable
from typing import Annotated
import uuid

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import ValidationError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.config import settings
from minrisk.core.messages import AuthMessages, UserMessages
from minrisk.core.rate_limit import get_client_ip
from minrisk.core.security import decode_access_token
from minrisk.db.session import get_admin_session, get_session, set_rls_context
from minrisk.models.user_profile import UserProfile, UserRole
from minrisk.schemas.token import TokenPayload
from minrisk.services import users as users_service
from minrisk.services.audit import RequestMeta

SessionDep = Annotated[AsyncSession, Depends(get_session)]
# BYPASSRLS. Only for flows without an identity yet or platform-wide administration.
AdminSessionDep = Annotated[AsyncSession, Depends(get_admin_session)]

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/token")


def _credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=AuthMessages.INVALID_TOKEN,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    session: SessionDep,
) -> UserProfile:
    """Resolve the bearer token and bind its profile to the request's RLS session.

    The profile is read back through RLS (``user_profiles_select_own``), so it
    stays attached to the same session the endpoint works with.
    """
    try:
        token_data = TokenPayload(**decode_access_token(token))
        user_id = uuid.UUID(token_data.sub or "")
    except (JWTError, ValidationError, ValueError) as exc:
        raise _credentials_error() from exc

    await set_rls_context(session, user_id=user_id)
    result = await session.exec(select(UserProfile).where(UserProfile.id == user_id))
    user = result.one_or_none()
    if user is None:
        raise _credentials_error()
    # Password and role changes bump token_version, revoking older tokens.
    if token_data.ver != user.token_version:
        raise _credentials_error()
    try:
        await users_service.ensure_can_sign_in(session, user)
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return user


CurrentUser = Annotated[UserProfile, Depends(get_current_user)]


async def get_user_session(session: SessionDep, current_user: CurrentUser) -> AsyncSession:
    # get_current_user already applied set_rls_context on this (cached) session.
    return session


UserSessionDep = Annotated[AsyncSession, Depends(get_user_session)]


def require_roles(*roles: UserRole) -> Callable:
    async def dependency(current_user: CurrentUser) -> UserProfile:
        if roles and current_user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=UserMessages.ADMIN_REQUIRED)
        return current_user

    return dependency


AdminUser = Annotated[
    UserProfile,
    Depends(require_roles(UserRole.super_admin, UserRole.primary_admin, UserRole.secondary_admin)),
]
SuperAdminUser = Annotated[UserProfile, Depends(require_roles(UserRole.super_admin))]


def get_request_meta(request: Request) -> RequestMeta:
    return RequestMeta(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


RequestMetaDep = Annotated[RequestMeta, Depends(get_request_meta)]
