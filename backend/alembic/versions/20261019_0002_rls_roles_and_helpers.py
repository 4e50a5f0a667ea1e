"""Create app_user/app_admin roles and the RLS identity helper functions

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19

app_user is the non-superuser role every request runs as; all protected
tables are filtered for it. app_admin carries BYPASSRLS for signup, login
lookups and platform administration. Passwords are taken from
DATABASE_URL_APP / DATABASE_URL_ADMIN. Without a password the role is still
created (NOLOGIN) so grants and policies can reference it.

The helper functions resolve the caller from the transaction-local setting
app.current_user_id. Organization and role are read from user_profiles by
SECURITY DEFINER functions, so the client only ever supplies its profile id.
Only approved profiles resolve to an organization or role. is_org_member()
lets a plain member check a colleague without being able to read profiles.
"""

import os
from urllib.parse import urlparse

from alembic import op
from sqlalchemy import text


revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


HELPER_FUNCTIONS = {
    "current_profile_id()": """
        CREATE OR REPLACE FUNCTION current_profile_id()
        RETURNS uuid
        LANGUAGE sql
        STABLE
        AS $$
            SELECT NULLIF(current_setting('app.current_user_id', true), '')::uuid
        $$
    """,
    "current_org_id()": """
        CREATE OR REPLACE FUNCTION current_org_id()
        RETURNS uuid
        LANGUAGE sql
        SECURITY DEFINER
        STABLE
        SET search_path = public
        AS $$
            SELECT organization_id FROM user_profiles
            WHERE id = current_profile_id()
            AND status = 'approved'
        $$
    """,
    "current_user_role()": """
        CREATE OR REPLACE FUNCTION current_user_role()
        RETURNS text
        LANGUAGE sql
        SECURITY DEFINER
        STABLE
        SET search_path = public
        AS $$
            SELECT role::text FROM user_profiles
            WHERE id = current_profile_id()
            AND status = 'approved'
        $$
    """,
    "is_admin()": """
        CREATE OR REPLACE FUNCTION is_admin()
        RETURNS boolean
        LANGUAGE sql
        STABLE
        AS $$
            SELECT COALESCE(current_user_role() IN ('super_admin', 'primary_admin', 'secondary_admin'), false)
        $$
    """,
    "is_super_admin()": """
        CREATE OR REPLACE FUNCTION is_super_admin()
        RETURNS boolean
        LANGUAGE sql
        STABLE
        AS $$
            SELECT COALESCE(current_user_role() = 'super_admin', false)
        $$
    """,
    "is_org_member(uuid)": """
        CREATE OR REPLACE FUNCTION is_org_member(p_profile_id uuid)
        RETURNS boolean
        LANGUAGE sql
        SECURITY DEFINER
        STABLE
        SET search_path = public
        AS $$
            SELECT EXISTS (
                SELECT 1 FROM user_profiles
                WHERE id = p_profile_id
                AND organization_id = current_org_id()
                AND status = 'approved'
            )
        $$
    """,
}


def _role_exists(connection, rolname: str) -> bool:
    result = connection.execute(
        text("SELECT 1 FROM pg_roles WHERE rolname = :name"),
        {"name": rolname},
    )
    return result.fetchone() is not None


def _password_from_url(env_var: str) -> str | None:
    """Extract the password component from a DATABASE_URL env var.

    Checks os.environ first, then the settings object which also reads .env.
    """
    url = os.environ.get(env_var)
    if not url:
        from minrisk.core.config import settings

        url = getattr(settings, env_var, None)
    if not url:
        return None
    return urlparse(url).password


def _exec_role_ddl(connection, ddl_template: str, password: str | None) -> None:
    """Run CREATE/ALTER ROLE with an optional password.

    Role DDL takes no bind parameters, so the password travels through
    set_config() and is quoted with format('%L') inside a DO block.
    """
    if password is None:
        connection.execute(text(ddl_template))
        return
    connection.execute(
        text("SELECT set_config('app._migration_pw', :pw, true)"),
        {"pw": password},
    )
    connection.execute(text(
        "DO $$ BEGIN "
        f"EXECUTE format('{ddl_template} PASSWORD %L', "
        "current_setting('app._migration_pw')); "
        "END $$"
    ))
    connection.execute(text("SELECT set_config('app._migration_pw', '', true)"))


def _ensure_role(connection, name: str, attributes: str, env_var: str) -> None:
    password = _password_from_url(env_var)
    if _role_exists(connection, name):
        # Leave LOGIN alone when no password is configured; it may have been set by hand.
        login = "LOGIN " if password else ""
        _exec_role_ddl(connection, f"ALTER ROLE {name} WITH {login}{attributes}", password)
    else:
        login = "LOGIN" if password else "NOLOGIN"
        _exec_role_ddl(connection, f"CREATE ROLE {name} WITH {login} {attributes}", password)


def upgrade() -> None:
    connection = op.get_bind()

    _ensure_role(connection, "app_user", "NOINHERIT NOBYPASSRLS", "DATABASE_URL_APP")
    _ensure_role(connection, "app_admin", "BYPASSRLS", "DATABASE_URL_ADMIN")

    op.execute("GRANT USAGE ON SCHEMA public TO app_user, app_admin")
    op.execute("GRANT SELECT, INSERT, UPDATE, DELETE ON ALL TABLES IN SCHEMA public TO app_user")
    op.execute("GRANT USAGE, SELECT ON ALL SEQUENCES IN SCHEMA public TO app_user")
    op.execute(
        "ALTER DEFAULT PRIVILEGES IN SCHEMA public "
        "GRANT SELECT, INSERT, UPDATE, DELETE ON TABLES TO app_user"
    )
    op.execute("GRANT ALL PRIVILEGES ON ALL TABLES IN SCHEMA public TO app_admin")
    op.execute("GRANT ALL PRIVILEGES ON ALL SEQUENCES IN SCHEMA public TO app_admin")
    op.execute("ALTER DEFAULT PRIVILEGES IN SCHEMA public GRANT ALL ON TABLES TO app_admin")

    for signature, ddl in HELPER_FUNCTIONS.items():
        op.execute(ddl)
        # Harden: revoke default public execute, grant only to the app roles
        op.execute(f"REVOKE EXECUTE ON FUNCTION {signature} FROM PUBLIC")
        op.execute(f"GRANT EXECUTE ON FUNCTION {signature} TO app_user, app_admin")


def downgrade() -> None:
    for signature in reversed(list(HELPER_FUNCTIONS)):
        op.execute(f"DROP FUNCTION IF EXISTS {signature}")

    connection = op.get_bind()
    if _role_exists(connection, "app_user"):
        op.execute(
            "ALTER DEFAULT PRIVILEGES IN SCHEMA public "
            "REVOKE SELECT, INSERT, UPDATE, DELETE ON TABLES FROM app_user"
        )
        op.execute("REVOKE ALL PRIVILEGES ON ALL TABLES IN SCHEMA public FROM app_user")
    if _role_exists(connection, "app_admin"):
        op.execute("ALTER DEFAULT PRIVILEGES IN SCHEMA public REVOKE ALL ON TABLES FROM app_admin")
        op.execute("REVOKE ALL PRIVILEGES ON ALL TABLES IN SCHEMA public FROM app_admin")
    # Roles are left in place: they may own connections or manual configuration.
