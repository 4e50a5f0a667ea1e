"""Application-side access checks layered on top of row-level security.

The database enforces tenant isolation through the policies registered in
``policies.py``. This module adds what RLS cannot express cleanly:

  1. Role gates: admin-only and super-admin-only operations.
  2. The role hierarchy: an actor manages only profiles with a strictly
     lower level, and assigns only strictly lower roles. Non-super admins
     stay inside their own organization.

Checks raise ``PermissionError``; endpoints translate it to 403.
"""

from __future__ import annotations

from typing import Any

from minrisk.core.messages import OrganizationMessages, UserMessages
from minrisk.models.user_profile import ROLE_LEVELS, UserRole
from minrisk.services.policies import Principal


def principal_for(profile: Any) -> Principal:
    if isinstance(profile, Principal):
        return profile
    return Principal.from_profile(profile)


def role_level(role: UserRole | str | None) -> int:
    """Return the privilege level of ``role``; unknown roles rank below viewer."""
    if role is None:
        return -1
    try:
        return ROLE_LEVELS[UserRole(role)]
    except ValueError:
        return -1


# ---------------------------------------------------------------------------
# Role gates
# ---------------------------------------------------------------------------

def require_admin(actor: Any) -> None:
    if not principal_for(actor).is_admin:
        raise PermissionError(UserMessages.ADMIN_REQUIRED)


def require_super_admin(actor: Any) -> None:
    if not principal_for(actor).is_super_admin:
        raise PermissionError(OrganizationMessages.SUPER_ADMIN_REQUIRED)


def require_editor(actor: Any) -> None:
    """Viewers are read-only everywhere."""
    principal = principal_for(actor)
    if principal.role is None or principal.role == UserRole.viewer:
        raise PermissionError(UserMessages.READ_ONLY)


# ---------------------------------------------------------------------------
# Role hierarchy
# ---------------------------------------------------------------------------

def can_manage_user(actor: Any, target: Any) -> bool:
    """True when ``actor`` outranks ``target`` and, unless super admin, shares its organization."""
    actor_principal = principal_for(actor)
    if not actor_principal.is_admin:
        return False
    if role_level(actor_principal.role) <= role_level(target.role):
        return False
    if actor_principal.is_super_admin:
        return True
    return (
        actor_principal.organization_id is not None
        and actor_principal.organization_id == target.organization_id
    )


def can_assign_role(actor: Any, role: UserRole | str) -> bool:
    actor_principal = principal_for(actor)
    if not actor_principal.is_admin:
        return False
    return role_level(role) < role_level(actor_principal.role)


def assert_can_manage_user(actor: Any, target: Any) -> None:
    actor_principal = principal_for(actor)
    if actor_principal.user_id is not None and actor_principal.user_id == target.id:
        raise PermissionError(UserMessages.CANNOT_MANAGE_SELF)
    if (
        not actor_principal.is_super_admin
        and target.organization_id is not None
        and actor_principal.organization_id != target.organization_id
    ):
        raise PermissionError(UserMessages.CROSS_ORGANIZATION)
    if not can_manage_user(actor_principal, target):
        raise PermissionError(UserMessages.CANNOT_MANAGE)


def assert_can_assign_role(actor: Any, role: UserRole | str) -> None:
    if not can_assign_role(actor, role):
        raise PermissionError(UserMessages.CANNOT_ASSIGN_ROLE)
