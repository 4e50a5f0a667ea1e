"""Row-level security policies, mirrored in Python.

Every protected table has a list of policies. Each policy pairs a command
(``ALL``, ``SELECT``, ``INSERT``, ``UPDATE``, ``DELETE``) with up to two
predicates:

* ``using`` filters existing rows (SELECT, UPDATE, DELETE)
* ``with_check`` validates rows being written (INSERT, UPDATE)

A :class:`Predicate` renders to the SQL fragment that PostgreSQL evaluates
and also evaluates the same condition in Python against a
:class:`Principal` and a row. The database is the enforcement point. The
Python side exists so services can reject a write with a precise 403 before
the database silently filters it to zero rows, and so the matrix can be unit
tested without PostgreSQL.

Combination follows PostgreSQL's permissive-policy semantics. For one
operation, all applicable policies are OR'd together. A table with no
applicable policy denies the operation.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from minrisk.core.messages import PolicyMessages
from minrisk.models.user_profile import ADMIN_ROLES, UserRole, UserStatus


class Operation(str, Enum):
    select = "select"
    insert = "insert"
    update = "update"
    delete = "delete"


class PolicyCommand(str, Enum):
    ALL = "ALL"
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class Principal:
    """The acting profile as the database sees it."""

    user_id: Optional[uuid.UUID]
    organization_id: Optional[uuid.UUID]
    role: Optional[UserRole]

    @classmethod
    def from_profile(cls, profile: Any) -> "Principal":
        """Resolve a profile the way ``current_org_id()``/``current_user_role()`` do.

        Only approved profiles carry an organization and a role.
        """
        if row_value(profile, "status") != UserStatus.approved.value:
            return cls(user_id=profile.id, organization_id=None, role=None)
        return cls(
            user_id=profile.id,
            organization_id=profile.organization_id,
            role=UserRole(profile.role) if profile.role is not None else None,
        )

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.super_admin


ANONYMOUS = Principal(user_id=None, organization_id=None, role=None)

Row = Any
Evaluator = Callable[[Principal, Row], bool]


def row_value(row: Row, column: str) -> Any:
    if isinstance(row, Mapping):
        value = row.get(column)
    else:
        value = getattr(row, column, None)
    if isinstance(value, Enum):
        return value.value
    return value


def with_changes(row: Row, changes: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``row`` as it would read after applying ``changes``."""
    base = dict(row) if isinstance(row, Mapping) else row.model_dump()
    base.update(changes)
    return base


def _same(left: Any, right: Any) -> bool:
    # SQL equality: NULL never matches, not even NULL.
    if left is None or right is None:
        return False
    if isinstance(left, Enum):
        left = left.value
    if isinstance(right, Enum):
        right = right.value
    return str(left) == str(right)


def _not_distinct(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    return _same(left, right)


@dataclass(frozen=True)
class Predicate:
    sql: str
    evaluate: Evaluator = field(compare=False, repr=False)
    operator: Optional[str] = None

    def __call__(self, principal: Principal, row: Row) -> bool:
        return bool(self.evaluate(principal, row))

    def _operand(self, operator: str) -> str:
        if self.operator is None or self.operator == operator:
            return self.sql
        return f"({self.sql})"

    def __and__(self, other: "Predicate") -> "Predicate":
        return Predicate(
            sql=f"{self._operand('AND')} AND {other._operand('AND')}",
            evaluate=lambda p, r: self(p, r) and other(p, r),
            operator="AND",
        )

    def __or__(self, other: "Predicate") -> "Predicate":
        return Predicate(
            sql=f"{self._operand('OR')} OR {other._operand('OR')}",
            evaluate=lambda p, r: self(p, r) or other(p, r),
            operator="OR",
        )


def same_org(column: str = "organization_id") -> Predicate:
    """Organization scoping: the row belongs to the caller's organization."""
    return Predicate(
        sql=f"{column} = current_org_id()",
        evaluate=lambda p, row: _same(row_value(row, column), p.organization_id),
    )


def owns_row(column: str = "user_id") -> Predicate:
    """Ownership scoping: the row was created by (or is) the caller."""
    return Predicate(
        sql=f"{column} = current_profile_id()",
        evaluate=lambda p, row: _same(row_value(row, column), p.user_id),
    )


def is_admin() -> Predicate:
    return Predicate(sql="is_admin()", evaluate=lambda p, row: p.is_admin)


def is_super_admin() -> Predicate:
    return Predicate(sql="is_super_admin()", evaluate=lambda p, row: p.is_super_admin)


def org_admin(column: str = "organization_id") -> Predicate:
    """Admin override, bounded by the organization."""
    return same_org(column) & is_admin()


def always() -> Predicate:
    return Predicate(sql="true", evaluate=lambda p, row: True)


def keeps_own_role() -> Predicate:
    """A profile write must not change its role or move it to another organization.

    ``current_user_role()`` and ``current_org_id()`` read the stored profile,
    so comparing the new row against them pins both values.
    """
    return Predicate(
        sql="role::text = current_user_role() AND organization_id IS NOT DISTINCT FROM current_org_id()",
        evaluate=lambda p, row: (
            _same(row_value(row, "role"), p.role)
            and _not_distinct(row_value(row, "organization_id"), p.organization_id)
        ),
        operator="AND",
    )


def role_is_not(role: UserRole) -> Predicate:
    return Predicate(
        sql=f"role <> '{role.value}'",
        evaluate=lambda p, row: row_value(row, "role") not in (None, role.value),
    )


@dataclass(frozen=True)
class Policy:
    name: str
    table: str
    command: PolicyCommand
    using: Optional[Predicate] = None
    with_check: Optional[Predicate] = None

    def __post_init__(self) -> None:
        if self.command in (PolicyCommand.SELECT, PolicyCommand.DELETE) and self.with_check is not None:
            raise ValueError(f"{self.name}: {self.command.value} policies take USING only")
        if self.command == PolicyCommand.INSERT and self.using is not None:
            raise ValueError(f"{self.name}: INSERT policies take WITH CHECK only")
        if self.using is None and self.with_check is None:
            raise ValueError(f"{self.name}: policy needs USING or WITH CHECK")

    def applies_to(self, operation: Operation) -> bool:
        return self.command == PolicyCommand.ALL or self.command.value == operation.value.upper()

    @property
    def check_expression(self) -> Optional[Predicate]:
        """Expression applied to new rows; PostgreSQL falls back to USING."""
        return self.with_check if self.with_check is not None else self.using


class PolicyViolation(PermissionError):
    def __init__(self, table: str, operation: Operation, message: str = PolicyMessages.DENIED):
        self.table = table
        self.operation = operation
        super().__init__(message)


def render_policy_sql(policy: Policy) -> str:
    lines = [f"CREATE POLICY {policy.name} ON {policy.table}", f"    FOR {policy.command.value}"]
    if policy.using is not None:
        lines.append(f"    USING ({policy.using.sql})")
    if policy.with_check is not None:
        lines.append(f"    WITH CHECK ({policy.with_check.sql})")
    return "\n".join(lines)


class PolicyRegistry:
    def __init__(self, policies: Iterable[Policy] = ()):
        self._by_table: dict[str, list[Policy]] = {}
        for policy in policies:
            self.register(policy)

    def register(self, policy: Policy) -> None:
        existing = self._by_table.setdefault(policy.table, [])
        if any(item.name == policy.name for item in existing):
            raise ValueError(f"Duplicate policy {policy.name} on {policy.table}")
        existing.append(policy)

    def tables(self) -> list[str]:
        return list(self._by_table)

    def policies_for(self, table: str) -> list[Policy]:
        return list(self._by_table.get(table, ()))

    def applicable(self, table: str, operation: Operation) -> list[Policy]:
        return [policy for policy in self._by_table.get(table, ()) if policy.applies_to(operation)]

    def is_visible(self, principal: Principal, table: str, row: Row) -> bool:
        return any(
            policy.using(principal, row)
            for policy in self.applicable(table, Operation.select)
            if policy.using is not None
        )

    def can_insert(self, principal: Principal, table: str, new_row: Row) -> bool:
        return any(
            policy.check_expression(principal, new_row)
            for policy in self.applicable(table, Operation.insert)
            if policy.check_expression is not None
        )

    def can_update(self, principal: Principal, table: str, old_row: Row, new_row: Row | None = None) -> bool:
        if new_row is None:
            new_row = old_row
        if not self.is_visible(principal, table, old_row):
            return False
        policies = self.applicable(table, Operation.update)
        targets_row = any(policy.using(principal, old_row) for policy in policies if policy.using is not None)
        if not targets_row:
            return False
        return any(
            policy.check_expression(principal, new_row)
            for policy in policies
            if policy.check_expression is not None
        )

    def can_delete(self, principal: Principal, table: str, row: Row) -> bool:
        if not self.is_visible(principal, table, row):
            return False
        return any(
            policy.using(principal, row)
            for policy in self.applicable(table, Operation.delete)
            if policy.using is not None
        )

    def is_permitted(
        self,
        principal: Principal,
        table: str,
        operation: Operation,
        row: Row,
        new_row: Row | None = None,
    ) -> bool:
        if operation == Operation.select:
            return self.is_visible(principal, table, row)
        if operation == Operation.insert:
            return self.can_insert(principal, table, row)
        if operation == Operation.update:
            return self.can_update(principal, table, row, new_row)
        return self.can_delete(principal, table, row)

    def authorize(
        self,
        principal: Principal,
        table: str,
        operation: Operation,
        row: Row,
        new_row: Row | None = None,
    ) -> None:
        if not self.is_permitted(principal, table, operation, row, new_row):
            raise PolicyViolation(table, operation)

    def render_table_sql(self, table: str) -> list[str]:
        return [render_policy_sql(policy) for policy in self._by_table.get(table, ())]


def _org_scoped_read(table: str) -> list[Policy]:
    return [
        Policy(f"{table}_select", table, PolicyCommand.SELECT, using=same_org()),
        Policy(f"{table}_select_super_admin", table, PolicyCommand.SELECT, using=is_super_admin()),
    ]


def _org_scoped_writes(table: str, *, delete: Predicate | None = None) -> list[Policy]:
    return [
        Policy(f"{table}_insert", table, PolicyCommand.INSERT, with_check=same_org()),
        Policy(f"{table}_update", table, PolicyCommand.UPDATE, using=same_org(), with_check=same_org()),
        Policy(f"{table}_delete", table, PolicyCommand.DELETE, using=delete or same_org()),
    ]


def build_default_policies() -> list[Policy]:
    policies: list[Policy] = []

    # organizations: the row's own id is the organization key
    policies += [
        Policy("organizations_select", "organizations", PolicyCommand.SELECT, using=same_org("id")),
        Policy("organizations_select_super_admin", "organizations", PolicyCommand.SELECT, using=is_super_admin()),
        Policy("organizations_insert", "organizations", PolicyCommand.INSERT, with_check=is_super_admin()),
        Policy(
            "organizations_update",
            "organizations",
            PolicyCommand.UPDATE,
            using=org_admin("id"),
            with_check=org_admin("id"),
        ),
        Policy("organizations_delete", "organizations", PolicyCommand.DELETE, using=is_super_admin()),
    ]

    policies += [
        Policy("user_profiles_select_own", "user_profiles", PolicyCommand.SELECT, using=owns_row("id")),
        Policy("user_profiles_select_org_admin", "user_profiles", PolicyCommand.SELECT, using=org_admin()),
        Policy("user_profiles_select_super_admin", "user_profiles", PolicyCommand.SELECT, using=is_super_admin()),
        Policy("user_profiles_insert", "user_profiles", PolicyCommand.INSERT, with_check=is_super_admin()),
        Policy(
            "user_profiles_update_own",
            "user_profiles",
            PolicyCommand.UPDATE,
            using=owns_row("id"),
            with_check=owns_row("id") & keeps_own_role(),
        ),
        Policy(
            "user_profiles_update_org_admin",
            "user_profiles",
            PolicyCommand.UPDATE,
            using=org_admin(),
            with_check=org_admin() & role_is_not(UserRole.super_admin),
        ),
        Policy(
            "user_profiles_update_super_admin",
            "user_profiles",
            PolicyCommand.UPDATE,
            using=is_super_admin(),
            with_check=is_super_admin(),
        ),
        Policy("user_profiles_delete_org_admin", "user_profiles", PolicyCommand.DELETE, using=org_admin()),
        Policy("user_profiles_delete_super_admin", "user_profiles", PolicyCommand.DELETE, using=is_super_admin()),
    ]

    # app_configs: private to the owner
    policies += [
        Policy("app_configs_select_own", "app_configs", PolicyCommand.SELECT, using=owns_row("user_id")),
        Policy("app_configs_select_super_admin", "app_configs", PolicyCommand.SELECT, using=is_super_admin()),
        Policy(
            "app_configs_insert",
            "app_configs",
            PolicyCommand.INSERT,
            with_check=owns_row("user_id") & same_org(),
        ),
        Policy(
            "app_configs_update",
            "app_configs",
            PolicyCommand.UPDATE,
            using=owns_row("user_id"),
            with_check=owns_row("user_id") & same_org(),
        ),
        Policy("app_configs_delete", "app_configs", PolicyCommand.DELETE, using=owns_row("user_id")),
    ]

    # risks: org-wide visibility; creator, accountable owner or admin may edit
    risk_editor = same_org() & (owns_row("user_id") | owns_row("owner_id") | is_admin())
    policies += _org_scoped_read("risks") + [
        Policy("risks_insert", "risks", PolicyCommand.INSERT, with_check=same_org() & owns_row("user_id")),
        Policy("risks_update", "risks", PolicyCommand.UPDATE, using=risk_editor, with_check=same_org()),
        Policy("risks_delete", "risks", PolicyCommand.DELETE, using=risk_editor),
    ]

    policies += _org_scoped_read("controls") + _org_scoped_writes("controls", delete=org_admin())

    policies += _org_scoped_read("incidents") + [
        Policy(
            "incidents_insert",
            "incidents",
            PolicyCommand.INSERT,
            with_check=same_org() & owns_row("user_id"),
        ),
        Policy("incidents_update", "incidents", PolicyCommand.UPDATE, using=same_org(), with_check=same_org()),
        Policy("incidents_delete", "incidents", PolicyCommand.DELETE, using=org_admin()),
    ]

    for table in ("incident_risk_links", "kri_definitions", "kri_data_entries"):
        policies += _org_scoped_read(table) + _org_scoped_writes(table)

    policies += [
        Policy("user_invitations_select", "user_invitations", PolicyCommand.SELECT, using=org_admin()),
        Policy("user_invitations_insert", "user_invitations", PolicyCommand.INSERT, with_check=org_admin()),
        Policy(
            "user_invitations_update",
            "user_invitations",
            PolicyCommand.UPDATE,
            using=org_admin(),
            with_check=org_admin(),
        ),
    ]

    # Append-only history tables
    for table in ("audit_trail", "risk_owner_history"):
        policies += _org_scoped_read(table) + [
            Policy(f"{table}_insert", table, PolicyCommand.INSERT, with_check=same_org()),
        ]
    # Super admins act across tenants and leave a trail in the organization they touched.
    policies.append(
        Policy("audit_trail_insert_super_admin", "audit_trail", PolicyCommand.INSERT, with_check=is_super_admin())
    )

    return policies


REGISTRY = PolicyRegistry(build_default_policies())

PROTECTED_TABLES = tuple(REGISTRY.tables())


def is_visible(principal: Principal, table: str, row: Row) -> bool:
    return REGISTRY.is_visible(principal, table, row)


def can_insert(principal: Principal, table: str, new_row: Row) -> bool:
    return REGISTRY.can_insert(principal, table, new_row)


def can_update(principal: Principal, table: str, old_row: Row, new_row: Row | None = None) -> bool:
    return REGISTRY.can_update(principal, table, old_row, new_row)


def can_delete(principal: Principal, table: str, row: Row) -> bool:
    return REGISTRY.can_delete(principal, table, row)


def is_permitted(
    principal: Principal,
    table: str,
    operation: Operation,
    row: Row,
    new_row: Row | None = None,
) -> bool:
    return REGISTRY.is_permitted(principal, table, operation, row, new_row)


def authorize(
    principal: Principal,
    table: str,
    operation: Operation,
    row: Row,
    new_row: Row | None = None,
) -> None:
    REGISTRY.authorize(principal, table, operation, row, new_row)


def render_table_sql(table: str) -> list[str]:
    return REGISTRY.render_table_sql(table)
