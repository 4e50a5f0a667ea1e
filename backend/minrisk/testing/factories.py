"""
Test data factories for creating database models.

Factories write through whatever session they are given. Tests normally pass
the owner ``session`` fixture, which is not subject to row-level security, so
fixtures can set up rows across organizations freely.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any
import uuid

from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.security import create_access_token, get_password_hash
from minrisk.db.session import set_rls_context
from minrisk.models.incident import Incident
from minrisk.models.invitation import UserInvitation
from minrisk.models.kri import KRIDefinition
from minrisk.models.organization import Organization
from minrisk.models.risk import Risk
from minrisk.models.user_profile import UserProfile, UserRole, UserStatus

DEFAULT_PASSWORD = "testpassword123"


def _unique() -> str:
    return uuid.uuid4().hex[:8]


async def _save(session: AsyncSession, obj: Any, commit: bool) -> Any:
    session.add(obj)
    if commit:
        await session.commit()
        await session.refresh(obj)
    else:
        await session.flush()
    return obj


async def create_organization(session: AsyncSession, commit: bool = True, **overrides: Any) -> Organization:
    defaults = {"name": f"Test Org {_unique()}"}
    return await _save(session, Organization(**{**defaults, **overrides}), commit)


async def create_user_profile(
    session: AsyncSession,
    organization: Organization | None = None,
    role: UserRole = UserRole.user,
    commit: bool = True,
    **overrides: Any,
) -> UserProfile:
    """
    Create an approved profile in ``organization``.

    Example:
        admin = await create_user_profile(session, organization=org, role=UserRole.primary_admin)
    """
    defaults = {
        "email": f"user-{_unique()}@example.com",
        "full_name": "Test User",
        "hashed_password": get_password_hash(overrides.pop("password", DEFAULT_PASSWORD)),
        "role": role,
        "status": UserStatus.approved,
        "organization_id": organization.id if organization else None,
        "approved_at": datetime.now(timezone.utc),
    }
    return await _save(session, UserProfile(**{**defaults, **overrides}), commit)


async def create_risk(
    session: AsyncSession,
    creator: UserProfile,
    commit: bool = True,
    **overrides: Any,
) -> Risk:
    defaults = {
        "organization_id": creator.organization_id,
        "user_id": creator.id,
        "owner_id": creator.id,
        "risk_code": f"OPE-OPE-{_unique()}",
        "risk_title": "Settlement failure",
        "division": "Operations",
        "department": "IT Ops",
        "category": "Operational",
        "owner": creator.full_name or "Owner",
        "likelihood_inherent": 3,
        "impact_inherent": 4,
    }
    return await _save(session, Risk(**{**defaults, **overrides}), commit)


async def create_incident(
    session: AsyncSession,
    reporter: UserProfile,
    commit: bool = True,
    **overrides: Any,
) -> Incident:
    defaults = {
        "organization_id": reporter.organization_id,
        "user_id": reporter.id,
        "incident_code": f"INC-{_unique()}",
        "title": "Batch job overran",
        "incident_date": date.today(),
        "severity": 3,
    }
    return await _save(session, Incident(**{**defaults, **overrides}), commit)


async def create_kri(
    session: AsyncSession,
    creator: UserProfile,
    commit: bool = True,
    **overrides: Any,
) -> KRIDefinition:
    defaults = {
        "organization_id": creator.organization_id,
        "kri_code": f"KRI-{_unique()}",
        "name": "Failed trades",
        "lower_threshold": 5.0,
        "upper_threshold": 10.0,
        "created_by": creator.id,
    }
    return await _save(session, KRIDefinition(**{**defaults, **overrides}), commit)


async def create_invitation(
    session: AsyncSession,
    creator: UserProfile,
    commit: bool = True,
    **overrides: Any,
) -> UserInvitation:
    now = datetime.now(timezone.utc)
    defaults = {
        "invite_code": _unique().upper(),
        "email": f"invitee-{_unique()}@example.com",
        "organization_id": creator.organization_id,
        "role": UserRole.user,
        "created_by": creator.id,
        "created_at": now,
        "expires_at": now + timedelta(days=7),
    }
    return await _save(session, UserInvitation(**{**defaults, **overrides}), commit)


async def act_as(session: AsyncSession, user: UserProfile) -> UserProfile:
    """
    Bind ``user`` as the RLS identity of ``session`` and return the profile as
    loaded through it, the same way a request resolves its current user.
    """
    await set_rls_context(session, user_id=user.id)
    profile = await session.get(UserProfile, user.id)
    assert profile is not None, "profile not visible to itself"
    return profile


def get_auth_token(user: UserProfile) -> str:
    return create_access_token(user.id, token_version=user.token_version)


def get_auth_headers(user: UserProfile) -> dict[str, str]:
    """
    Get authorization headers for API requests.

    Example:
        response = await client.get("/api/v1/users/me", headers=get_auth_headers(user))
    """
    return {"Authorization": f"Bearer {get_auth_token(user)}"}
