from __future__ import annotations

from datetime import datetime, timezone
import logging
import uuid

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.messages import OrganizationMessages
from minrisk.models.organization import Organization, OrganizationStatus
from minrisk.models.user_profile import UserProfile
from minrisk.services import audit as audit_service
from minrisk.services.errors import ConflictError, NotFoundError, ServiceError
from minrisk.services.policies import Operation, authorize, with_changes
from minrisk.services.rls import principal_for, require_super_admin

logger = logging.getLogger(__name__)


async def get_organization(session: AsyncSession, organization_id: uuid.UUID) -> Organization:
    result = await session.exec(select(Organization).where(Organization.id == organization_id))
    organization = result.one_or_none()
    if organization is None:
        raise NotFoundError(OrganizationMessages.NOT_FOUND)
    return organization


async def list_organizations(session: AsyncSession) -> list[Organization]:
    result = await session.exec(select(Organization).order_by(Organization.name))
    return list(result.all())


async def count_members(session: AsyncSession, organization_id: uuid.UUID) -> int:
    result = await session.exec(
        select(func.count(UserProfile.id)).where(UserProfile.organization_id == organization_id)
    )
    return int(result.one())


async def create_organization(
    session: AsyncSession,
    *,
    actor: UserProfile,
    name: str,
    meta: audit_service.RequestMeta | None = None,
) -> Organization:
    require_super_admin(actor)
    name = name.strip()
    if not name:
        raise ServiceError(OrganizationMessages.NAME_REQUIRED)
    organization = Organization(name=name)
    authorize(principal_for(actor), "organizations", Operation.insert, organization)
    session.add(organization)
    await session.flush()
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="create",
        entity_type="organization",
        entity_id=organization.id,
        new_values=audit_service.snapshot(organization, ["name", "status"]),
        organization_id=organization.id,
        meta=meta,
    )
    logger.info("Organization %s created by %s", organization.id, actor.id)
    return organization


async def update_organization(
    session: AsyncSession,
    *,
    actor: UserProfile,
    organization_id: uuid.UUID,
    name: str,
    meta: audit_service.RequestMeta | None = None,
) -> Organization:
    organization = await get_organization(session, organization_id)
    name = name.strip()
    if not name:
        raise ServiceError(OrganizationMessages.NAME_REQUIRED)
    authorize(
        principal_for(actor),
        "organizations",
        Operation.update,
        organization,
        with_changes(organization, {"name": name}),
    )
    old_name = organization.name
    organization.name = name
    organization.updated_at = datetime.now(timezone.utc)
    session.add(organization)
    await session.flush()
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="update",
        entity_type="organization",
        entity_id=organization.id,
        old_values={"name": old_name},
        new_values={"name": name},
        organization_id=organization.id,
        meta=meta,
    )
    return organization


async def suspend_organization(
    session: AsyncSession,
    *,
    actor: UserProfile,
    organization_id: uuid.UUID,
    reason: str | None = None,
    meta: audit_service.RequestMeta | None = None,
) -> tuple[Organization, int]:
    """Suspend an organization and return it with the number of users affected.

    Members of a suspended organization can no longer log in, and tokens they
    already hold are rejected on the next request. Platform-wide operation:
    callers pass the admin session.
    """
    require_super_admin(actor)
    organization = await get_organization(session, organization_id)
    if organization.is_suspended:
        raise ConflictError(OrganizationMessages.ALREADY_SUSPENDED)
    now = datetime.now(timezone.utc)
    organization.status = OrganizationStatus.suspended
    organization.suspended_at = now
    organization.suspended_by = actor.id
    organization.updated_at = now
    session.add(organization)
    await session.flush()
    users_affected = await count_members(session, organization_id)
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="suspend",
        entity_type="organization",
        entity_id=organization.id,
        old_values={"status": OrganizationStatus.active.value},
        new_values={"status": OrganizationStatus.suspended.value},
        metadata={"reason": reason, "users_affected": users_affected},
        organization_id=organization.id,
        meta=meta,
    )
    logger.warning(
        "Organization %s suspended by %s (%d users affected)",
        organization.id,
        actor.id,
        users_affected,
    )
    return organization, users_affected


async def reactivate_organization(
    session: AsyncSession,
    *,
    actor: UserProfile,
    organization_id: uuid.UUID,
    meta: audit_service.RequestMeta | None = None,
) -> tuple[Organization, int]:
    require_super_admin(actor)
    organization = await get_organization(session, organization_id)
    if not organization.is_suspended:
        raise ConflictError(OrganizationMessages.NOT_SUSPENDED)
    organization.status = OrganizationStatus.active
    organization.suspended_at = None
    organization.suspended_by = None
    organization.updated_at = datetime.now(timezone.utc)
    session.add(organization)
    await session.flush()
    users_affected = await count_members(session, organization_id)
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="reactivate",
        entity_type="organization",
        entity_id=organization.id,
        old_values={"status": OrganizationStatus.suspended.value},
        new_values={"status": OrganizationStatus.active.value},
        metadata={"users_affected": users_affected},
        organization_id=organization.id,
        meta=meta,
    )
    logger.info("Organization %s reactivated by %s", organization.id, actor.id)
    return organization, users_affected
