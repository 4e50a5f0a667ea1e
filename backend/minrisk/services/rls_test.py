"""Tests for role gates and the role hierarchy."""

import uuid
from types import SimpleNamespace

import pytest

from minrisk.core.messages import OrganizationMessages, UserMessages
from minrisk.models.user_profile import UserRole
from minrisk.services.policies import Principal
from minrisk.services.rls import (
    assert_can_assign_role,
    assert_can_manage_user,
    can_assign_role,
    can_manage_user,
    require_admin,
    require_super_admin,
    role_level,
)

ORG_A = uuid.uuid4()
ORG_B = uuid.uuid4()


def _actor(role: UserRole, org: uuid.UUID | None = ORG_A) -> Principal:
    return Principal(user_id=uuid.uuid4(), organization_id=org, role=role)


def _target(role: UserRole, org: uuid.UUID | None = ORG_A) -> SimpleNamespace:
    return SimpleNamespace(id=uuid.uuid4(), organization_id=org, role=role)


@pytest.mark.unit
def test_role_levels_are_strictly_ordered():
    levels = [role_level(role) for role in (
        UserRole.viewer,
        UserRole.user,
        UserRole.secondary_admin,
        UserRole.primary_admin,
        UserRole.super_admin,
    )]
    assert levels == sorted(levels)
    assert len(set(levels)) == len(levels)


@pytest.mark.unit
def test_role_level_of_unknown_role_ranks_lowest():
    assert role_level("janitor") < role_level(UserRole.viewer)
    assert role_level(None) < role_level(UserRole.viewer)


@pytest.mark.unit
def test_require_admin():
    require_admin(_actor(UserRole.secondary_admin))
    with pytest.raises(PermissionError) as exc_info:
        require_admin(_actor(UserRole.user))
    assert str(exc_info.value) == UserMessages.ADMIN_REQUIRED


@pytest.mark.unit
def test_require_super_admin():
    require_super_admin(_actor(UserRole.super_admin))
    with pytest.raises(PermissionError) as exc_info:
        require_super_admin(_actor(UserRole.primary_admin))
    assert str(exc_info.value) == OrganizationMessages.SUPER_ADMIN_REQUIRED


@pytest.mark.unit
@pytest.mark.parametrize(
    ("actor_role", "target_role", "expected"),
    [
        (UserRole.primary_admin, UserRole.secondary_admin, True),
        (UserRole.primary_admin, UserRole.user, True),
        (UserRole.primary_admin, UserRole.primary_admin, False),
        (UserRole.secondary_admin, UserRole.user, True),
        (UserRole.secondary_admin, UserRole.secondary_admin, False),
        (UserRole.secondary_admin, UserRole.primary_admin, False),
        (UserRole.user, UserRole.viewer, False),
        (UserRole.super_admin, UserRole.primary_admin, True),
        (UserRole.super_admin, UserRole.super_admin, False),
    ],
)
def test_can_manage_user_requires_strictly_higher_level(actor_role, target_role, expected):
    assert can_manage_user(_actor(actor_role), _target(target_role)) is expected


@pytest.mark.unit
def test_non_super_admin_cannot_manage_other_organization():
    assert can_manage_user(_actor(UserRole.primary_admin), _target(UserRole.user, ORG_B)) is False


@pytest.mark.unit
def test_super_admin_manages_across_organizations():
    assert can_manage_user(_actor(UserRole.super_admin, ORG_A), _target(UserRole.user, ORG_B)) is True


@pytest.mark.unit
def test_can_assign_role_only_below_own_level():
    primary = _actor(UserRole.primary_admin)

    assert can_assign_role(primary, UserRole.secondary_admin) is True
    assert can_assign_role(primary, "user") is True
    assert can_assign_role(primary, UserRole.primary_admin) is False
    assert can_assign_role(primary, UserRole.super_admin) is False
    assert can_assign_role(_actor(UserRole.user), UserRole.viewer) is False


@pytest.mark.unit
def test_assert_can_manage_user_messages():
    admin = _actor(UserRole.secondary_admin)

    with pytest.raises(PermissionError) as exc_info:
        assert_can_manage_user(admin, _target(UserRole.user, ORG_B))
    assert str(exc_info.value) == UserMessages.CROSS_ORGANIZATION

    with pytest.raises(PermissionError) as exc_info:
        assert_can_manage_user(admin, _target(UserRole.primary_admin))
    assert str(exc_info.value) == UserMessages.CANNOT_MANAGE

    myself = SimpleNamespace(id=admin.user_id, organization_id=ORG_A, role=UserRole.user)
    with pytest.raises(PermissionError) as exc_info:
        assert_can_manage_user(admin, myself)
    assert str(exc_info.value) == UserMessages.CANNOT_MANAGE_SELF


@pytest.mark.unit
def test_assert_can_assign_role():
    assert_can_assign_role(_actor(UserRole.primary_admin), UserRole.user)
    with pytest.raises(PermissionError) as exc_info:
        assert_can_assign_role(_actor(UserRole.secondary_admin), UserRole.primary_admin)
    assert str(exc_info.value) == UserMessages.CANNOT_ASSIGN_ROLE
