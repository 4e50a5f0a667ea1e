import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm

from minrisk.api.deps import AdminSessionDep, RequestMetaDep
from minrisk.core.rate_limit import LOGIN_LIMIT, SIGNUP_LIMIT, limiter
from minrisk.core.security import create_access_token
from minrisk.models.user_profile import UserProfile
from minrisk.schemas.token import Token
from minrisk.schemas.user import UserCreate, UserRead
from minrisk.services import users as users_service
from minrisk.services.errors import InvitationRejected

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(SIGNUP_LIMIT)
async def register_user(
    request: Request,
    user_in: UserCreate,
    session: AdminSessionDep,
    meta: RequestMetaDep,
) -> UserProfile:
    """Sign up. Without an invite code the account waits for super admin approval."""
    try:
        user = await users_service.register_user(
            session,
            email=user_in.email,
            password=user_in.password,
            full_name=user_in.full_name,
            invite_code=user_in.invite_code,
            meta=meta,
        )
    except InvitationRejected:
        # Nothing was created; keep an expiry flip made while checking the code.
        await session.commit()
        raise
    await session.commit()
    return user


@router.post("/token", response_model=Token)
@limiter.limit(LOGIN_LIMIT)
async def login_access_token(
    request: Request,
    session: AdminSessionDep,
    form_data: OAuth2PasswordRequestForm = Depends(),
) -> Token:
    try:
        user = await users_service.authenticate(session, email=form_data.username, password=form_data.password)
    except PermissionError as exc:
        logger.info("Login refused for %s: %s", form_data.username, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    await session.commit()
    return Token(access_token=create_access_token(user.id, token_version=user.token_version))
