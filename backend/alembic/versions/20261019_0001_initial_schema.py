"""Initial MinRisk schema.

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS: dict[str, tuple[str, ...]] = {
    "organization_status": ("active", "suspended"),
    "user_role": ("super_admin", "primary_admin", "secondary_admin", "user", "viewer"),
    "user_status": ("pending", "approved", "rejected", "suspended"),
    "risk_status": ("Open", "In Progress", "Closed"),
    "control_target": ("Likelihood", "Impact"),
    "incident_status": ("Reported", "Under Investigation", "Resolved", "Closed"),
    "kri_threshold_direction": ("above", "below", "between"),
    "kri_alert_status": ("green", "yellow", "red"),
    "invitation_status": ("pending", "used", "revoked", "expired"),
}


def _create_enum_if_not_exists(name: str, values: tuple[str, ...]) -> None:
    quoted_values = ", ".join(f"'{value}'" for value in values)
    op.execute(
        sa.text(
            f"""
            DO $$
            BEGIN
                IF NOT EXISTS (
                    SELECT 1 FROM pg_type WHERE typname = '{name}'
                ) THEN
                    CREATE TYPE {name} AS ENUM ({quoted_values});
                END IF;
            END;
            $$;
            """
        )
    )


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    for enum_name, values in ENUMS.items():
        _create_enum_if_not_exists(enum_name, values)

    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("status", _enum("organization_status"), nullable=False, server_default="active"),
        sa.Column("suspended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("suspended_by", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_organizations_status"), "organizations", ["status"], unique=False)

    op.create_table(
        "user_profiles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("hashed_password", sa.String(), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False, server_default="user"),
        sa.Column("status", _enum("user_status"), nullable=False, server_default="pending"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.Uuid(), nullable=True),
        sa.Column("token_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_profiles_email"), "user_profiles", ["email"], unique=True)
    op.create_index(op.f("ix_user_profiles_organization_id"), "user_profiles", ["organization_id"], unique=False)

    op.create_table(
        "app_configs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("matrix_size", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("likelihood_labels", postgresql.JSONB(), nullable=False),
        sa.Column("impact_labels", postgresql.JSONB(), nullable=False),
        sa.Column("divisions", postgresql.JSONB(), nullable=False),
        sa.Column("departments", postgresql.JSONB(), nullable=False),
        sa.Column("categories", postgresql.JSONB(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("matrix_size IN (5, 6)", name="ck_app_configs_matrix_size"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", name="uq_app_configs_user_id"),
    )
    op.create_index(op.f("ix_app_configs_organization_id"), "app_configs", ["organization_id"], unique=False)

    op.create_table(
        "risks",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=True),
        sa.Column("risk_code", sa.String(length=32), nullable=False),
        sa.Column("risk_title", sa.String(), nullable=False),
        sa.Column("risk_description", sa.Text(), nullable=True),
        sa.Column("division", sa.String(), nullable=False),
        sa.Column("department", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("owner", sa.String(), nullable=False),
        sa.Column("likelihood_inherent", sa.Integer(), nullable=False),
        sa.Column("impact_inherent", sa.Integer(), nullable=False),
        sa.Column("residual_likelihood", sa.Integer(), nullable=True),
        sa.Column("residual_impact", sa.Integer(), nullable=True),
        sa.Column("status", _enum("risk_status"), nullable=False, server_default="Open"),
        sa.Column("is_priority", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("linked_incident_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_incident_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("likelihood_inherent BETWEEN 1 AND 6", name="ck_risks_likelihood_inherent"),
        sa.CheckConstraint("impact_inherent BETWEEN 1 AND 6", name="ck_risks_impact_inherent"),
        sa.CheckConstraint(
            "residual_likelihood IS NULL OR residual_likelihood BETWEEN 1 AND 6",
            name="ck_risks_residual_likelihood",
        ),
        sa.CheckConstraint(
            "residual_impact IS NULL OR residual_impact BETWEEN 1 AND 6",
            name="ck_risks_residual_impact",
        ),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"]),
        sa.ForeignKeyConstraint(["owner_id"], ["user_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "risk_code", name="uq_risks_org_code"),
    )
    op.create_index(op.f("ix_risks_organization_id"), "risks", ["organization_id"], unique=False)
    op.create_index(op.f("ix_risks_user_id"), "risks", ["user_id"], unique=False)

    op.create_table(
        "risk_owner_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("risk_id", sa.Uuid(), nullable=False),
        sa.Column("risk_code", sa.String(), nullable=False),
        sa.Column("previous_owner_id", sa.Uuid(), nullable=True),
        sa.Column("new_owner_id", sa.Uuid(), nullable=True),
        sa.Column("transferred_by", sa.Uuid(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("transferred_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["risk_id"], ["risks.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_risk_owner_history_organization_id"), "risk_owner_history", ["organization_id"], unique=False
    )
    op.create_index(op.f("ix_risk_owner_history_risk_id"), "risk_owner_history", ["risk_id"], unique=False)

    dime_columns = ("design", "implementation", "monitoring", "effectiveness_evaluation")
    op.create_table(
        "controls",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("risk_id", sa.Uuid(), nullable=False),
        sa.Column("control_code", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("target", _enum("control_target"), nullable=False),
        *(sa.Column(name, sa.Integer(), nullable=False, server_default="0") for name in dime_columns),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        *_timestamps(),
        *(sa.CheckConstraint(f"{name} BETWEEN 0 AND 3", name=f"ck_controls_{name}") for name in dime_columns),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["risk_id"], ["risks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["user_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "control_code", name="uq_controls_org_code"),
    )
    op.create_index(op.f("ix_controls_organization_id"), "controls", ["organization_id"], unique=False)
    op.create_index(op.f("ix_controls_risk_id"), "controls", ["risk_id"], unique=False)

    op.create_table(
        "incidents",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("incident_code", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("incident_date", sa.Date(), nullable=False),
        sa.Column("division", sa.String(), nullable=True),
        sa.Column("department", sa.String(), nullable=True),
        sa.Column("incident_type", sa.String(), nullable=True),
        sa.Column("severity", sa.Integer(), nullable=True),
        sa.Column("financial_impact", sa.Numeric(18, 2), nullable=True),
        sa.Column("status", _enum("incident_status"), nullable=False, server_default="Reported"),
        sa.Column("root_cause", sa.Text(), nullable=True),
        sa.Column("corrective_actions", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("severity IS NULL OR severity BETWEEN 1 AND 5", name="ck_incidents_severity"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "incident_code", name="uq_incidents_org_code"),
    )
    op.create_index(op.f("ix_incidents_organization_id"), "incidents", ["organization_id"], unique=False)
    op.create_index(op.f("ix_incidents_user_id"), "incidents", ["user_id"], unique=False)

    op.create_table(
        "incident_risk_links",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("incident_id", sa.Uuid(), nullable=False),
        sa.Column("risk_id", sa.Uuid(), nullable=False),
        sa.Column("link_type", sa.String(length=50), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("linked_by", sa.Uuid(), nullable=True),
        sa.Column("linked_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["incident_id"], ["incidents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["risk_id"], ["risks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["linked_by"], ["user_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("incident_id", "risk_id", name="uq_incident_risk_links_pair"),
    )
    op.create_index(
        op.f("ix_incident_risk_links_organization_id"), "incident_risk_links", ["organization_id"], unique=False
    )
    op.create_index(op.f("ix_incident_risk_links_incident_id"), "incident_risk_links", ["incident_id"], unique=False)
    op.create_index(op.f("ix_incident_risk_links_risk_id"), "incident_risk_links", ["risk_id"], unique=False)

    op.create_table(
        "kri_definitions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("kri_code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("unit", sa.String(length=50), nullable=True),
        sa.Column("frequency", sa.String(length=20), nullable=False),
        sa.Column("lower_threshold", sa.Float(), nullable=True),
        sa.Column("upper_threshold", sa.Float(), nullable=True),
        sa.Column(
            "threshold_direction",
            _enum("kri_threshold_direction"),
            nullable=False,
            server_default="above",
        ),
        sa.Column("linked_risk_id", sa.Uuid(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["linked_risk_id"], ["risks.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["user_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "kri_code", name="uq_kri_definitions_org_code"),
    )
    op.create_index(op.f("ix_kri_definitions_organization_id"), "kri_definitions", ["organization_id"], unique=False)

    op.create_table(
        "kri_data_entries",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("kri_id", sa.Uuid(), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("measurement_date", sa.Date(), nullable=False),
        sa.Column("alert_status", _enum("kri_alert_status"), nullable=False, server_default="green"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("entered_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["kri_id"], ["kri_definitions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["entered_by"], ["user_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_kri_data_entries_organization_id"), "kri_data_entries", ["organization_id"], unique=False
    )
    op.create_index(op.f("ix_kri_data_entries_kri_id"), "kri_data_entries", ["kri_id"], unique=False)

    op.create_table(
        "user_invitations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("invite_code", sa.String(length=8), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False),
        sa.Column("status", _enum("invitation_status"), nullable=False, server_default="pending"),
        sa.Column("used_by", sa.Uuid(), nullable=True),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_by", sa.Uuid(), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoke_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.CheckConstraint("expires_at > created_at", name="ck_user_invitations_valid_expiry"),
        sa.CheckConstraint(
            "(status = 'used' AND used_at IS NOT NULL) "
            "OR (status <> 'used' AND used_by IS NULL AND used_at IS NULL)",
            name="ck_user_invitations_used_fields",
        ),
        sa.CheckConstraint(
            "(status = 'revoked' AND revoked_by IS NOT NULL AND revoked_at IS NOT NULL) "
            "OR status <> 'revoked'",
            name="ck_user_invitations_revoked_fields",
        ),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["used_by"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["user_profiles.id"]),
        sa.ForeignKeyConstraint(["revoked_by"], ["user_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_invitations_invite_code"), "user_invitations", ["invite_code"], unique=True)
    op.create_index(op.f("ix_user_invitations_email"), "user_invitations", ["email"], unique=False)
    op.create_index(
        op.f("ix_user_invitations_organization_id"), "user_invitations", ["organization_id"], unique=False
    )

    op.create_table(
        "audit_trail",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("action_type", sa.String(length=50), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=True),
        sa.Column("entity_code", sa.String(), nullable=True),
        sa.Column("old_values", postgresql.JSONB(), nullable=True),
        sa.Column("new_values", postgresql.JSONB(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("performed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("organization_id", "user_id", "action_type", "entity_type", "entity_code", "performed_at"):
        op.create_index(op.f(f"ix_audit_trail_{column}"), "audit_trail", [column], unique=False)


def downgrade() -> None:
    for table in (
        "audit_trail",
        "user_invitations",
        "kri_data_entries",
        "kri_definitions",
        "incident_risk_links",
        "incidents",
        "controls",
        "risk_owner_history",
        "risks",
        "app_configs",
        "user_profiles",
        "organizations",
    ):
        op.drop_table(table)

    for enum_name in reversed(list(ENUMS)):
        op.execute(sa.text(f"DROP TYPE IF EXISTS {enum_name} CASCADE"))
