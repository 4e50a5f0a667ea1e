"""Enable row level security and create the tenant policies

Revision ID: 20261019_0003
Revises: 20261019_0002
Create Date: 2026-10-19

Every protected table gets ENABLE + FORCE ROW LEVEL SECURITY so even the
table owner is filtered. Policies are permissive: PostgreSQL ORs every
policy that applies to a command, and a command with no policy is denied.

Predicates used below:
  ORG          organization_id = current_org_id()
  OWN(col)     col = current_profile_id()
  ORG_ADMIN    ORG AND is_admin()
  SUPER        is_super_admin()

This list must match minrisk.services.policies.REGISTRY; a unit test
compares the two.
"""

from alembic import op


revision = "20261019_0003"
down_revision = "20261019_0002"
branch_labels = None
depends_on = None


ORG = "organization_id = current_org_id()"
ORG_ADMIN = f"{ORG} AND is_admin()"
SUPER = "is_super_admin()"


def OWN(column: str) -> str:
    return f"{column} = current_profile_id()"


def _org_read(table: str) -> list[tuple]:
    return [
        (table, f"{table}_select", "SELECT", ORG, None),
        (table, f"{table}_select_super_admin", "SELECT", SUPER, None),
    ]


def _org_write(table: str, delete_using: str = ORG) -> list[tuple]:
    return [
        (table, f"{table}_insert", "INSERT", None, ORG),
        (table, f"{table}_update", "UPDATE", ORG, ORG),
        (table, f"{table}_delete", "DELETE", delete_using, None),
    ]


RISK_EDITOR = f"{ORG} AND ({OWN('user_id')} OR {OWN('owner_id')} OR is_admin())"

# (table, policy name, command, USING, WITH CHECK)
POLICIES: list[tuple] = [
    ("organizations", "organizations_select", "SELECT", "id = current_org_id()", None),
    ("organizations", "organizations_select_super_admin", "SELECT", SUPER, None),
    ("organizations", "organizations_insert", "INSERT", None, SUPER),
    (
        "organizations",
        "organizations_update",
        "UPDATE",
        "id = current_org_id() AND is_admin()",
        "id = current_org_id() AND is_admin()",
    ),
    ("organizations", "organizations_delete", "DELETE", SUPER, None),

    ("user_profiles", "user_profiles_select_own", "SELECT", OWN("id"), None),
    ("user_profiles", "user_profiles_select_org_admin", "SELECT", ORG_ADMIN, None),
    ("user_profiles", "user_profiles_select_super_admin", "SELECT", SUPER, None),
    ("user_profiles", "user_profiles_insert", "INSERT", None, SUPER),
    (
        "user_profiles",
        "user_profiles_update_own",
        "UPDATE",
        OWN("id"),
        f"{OWN('id')} AND role::text = current_user_role() "
        "AND organization_id IS NOT DISTINCT FROM current_org_id()",
    ),
    (
        "user_profiles",
        "user_profiles_update_org_admin",
        "UPDATE",
        ORG_ADMIN,
        f"{ORG_ADMIN} AND role <> 'super_admin'",
    ),
    ("user_profiles", "user_profiles_update_super_admin", "UPDATE", SUPER, SUPER),
    ("user_profiles", "user_profiles_delete_org_admin", "DELETE", ORG_ADMIN, None),
    ("user_profiles", "user_profiles_delete_super_admin", "DELETE", SUPER, None),

    ("app_configs", "app_configs_select_own", "SELECT", OWN("user_id"), None),
    ("app_configs", "app_configs_select_super_admin", "SELECT", SUPER, None),
    ("app_configs", "app_configs_insert", "INSERT", None, f"{OWN('user_id')} AND {ORG}"),
    ("app_configs", "app_configs_update", "UPDATE", OWN("user_id"), f"{OWN('user_id')} AND {ORG}"),
    ("app_configs", "app_configs_delete", "DELETE", OWN("user_id"), None),

    *_org_read("risks"),
    ("risks", "risks_insert", "INSERT", None, f"{ORG} AND {OWN('user_id')}"),
    ("risks", "risks_update", "UPDATE", RISK_EDITOR, ORG),
    ("risks", "risks_delete", "DELETE", RISK_EDITOR, None),

    *_org_read("controls"),
    *_org_write("controls", delete_using=ORG_ADMIN),

    *_org_read("incidents"),
    ("incidents", "incidents_insert", "INSERT", None, f"{ORG} AND {OWN('user_id')}"),
    ("incidents", "incidents_update", "UPDATE", ORG, ORG),
    ("incidents", "incidents_delete", "DELETE", ORG_ADMIN, None),

    *_org_read("incident_risk_links"),
    *_org_write("incident_risk_links"),
    *_org_read("kri_definitions"),
    *_org_write("kri_definitions"),
    *_org_read("kri_data_entries"),
    *_org_write("kri_data_entries"),

    # No DELETE policy: invitations are revoked, never removed.
    ("user_invitations", "user_invitations_select", "SELECT", ORG_ADMIN, None),
    ("user_invitations", "user_invitations_insert", "INSERT", None, ORG_ADMIN),
    ("user_invitations", "user_invitations_update", "UPDATE", ORG_ADMIN, ORG_ADMIN),

    # Append-only: no UPDATE or DELETE policies.
    *_org_read("audit_trail"),
    ("audit_trail", "audit_trail_insert", "INSERT", None, ORG),
    ("audit_trail", "audit_trail_insert_super_admin", "INSERT", None, SUPER),
    *_org_read("risk_owner_history"),
    ("risk_owner_history", "risk_owner_history_insert", "INSERT", None, ORG),
]

PROTECTED_TABLES = list(dict.fromkeys(policy[0] for policy in POLICIES))


def _create_policy(table: str, name: str, command: str, using: str | None, check: str | None) -> None:
    clauses = [f"CREATE POLICY {name} ON {table}", f"FOR {command}"]
    if using is not None:
        clauses.append(f"USING ({using})")
    if check is not None:
        clauses.append(f"WITH CHECK ({check})")
    op.execute("\n".join(clauses))


def upgrade() -> None:
    for table in PROTECTED_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        # FORCE ensures RLS applies even to table owners
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")

    for policy in POLICIES:
        _create_policy(*policy)


def downgrade() -> None:
    for table, name, *_ in reversed(POLICIES):
        op.execute(f"DROP POLICY IF EXISTS {name} ON {table}")
    for table in PROTECTED_TABLES:
        op.execute(f"ALTER TABLE {table} NO FORCE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
