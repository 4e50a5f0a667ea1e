"""Keep risks.linked_incident_count and last_incident_date in sync

Revision ID: 20261019_0004
Revises: 20261019_0003
Create Date: 2026-10-19

Linking an incident to a risk must update the risk's counters even when the
caller may not edit that risk (any org member may link, only the risk's
owner or an admin may update it). The trigger function is SECURITY DEFINER
and only ever touches rows of the link's own organization.
"""

from alembic import op


revision = "20261019_0004"
down_revision = "20261019_0003"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION refresh_risk_incident_stats(p_risk_id uuid, p_organization_id uuid)
        RETURNS void
        LANGUAGE sql
        SECURITY DEFINER
        SET search_path = public
        AS $$
            UPDATE risks SET
                linked_incident_count = (
                    SELECT COUNT(*) FROM incident_risk_links l
                    WHERE l.risk_id = p_risk_id
                ),
                last_incident_date = (
                    SELECT MAX(i.incident_date) FROM incidents i
                    JOIN incident_risk_links l ON l.incident_id = i.id
                    WHERE l.risk_id = p_risk_id
                )
            WHERE id = p_risk_id
            AND organization_id = p_organization_id
        $$
    """)
    op.execute("REVOKE EXECUTE ON FUNCTION refresh_risk_incident_stats(uuid, uuid) FROM PUBLIC")

    op.execute("""
        CREATE OR REPLACE FUNCTION sync_incident_link_stats()
        RETURNS trigger
        LANGUAGE plpgsql
        SECURITY DEFINER
        SET search_path = public
        AS $$
        BEGIN
            IF TG_OP = 'INSERT' OR TG_OP = 'UPDATE' THEN
                PERFORM refresh_risk_incident_stats(NEW.risk_id, NEW.organization_id);
            END IF;
            IF TG_OP = 'DELETE' OR (TG_OP = 'UPDATE' AND OLD.risk_id <> NEW.risk_id) THEN
                PERFORM refresh_risk_incident_stats(OLD.risk_id, OLD.organization_id);
            END IF;
            RETURN NULL;
        END;
        $$
    """)
    op.execute("""
        CREATE TRIGGER incident_risk_links_sync_stats
        AFTER INSERT OR UPDATE OR DELETE ON incident_risk_links
        FOR EACH ROW EXECUTE FUNCTION sync_incident_link_stats()
    """)

    op.execute("""
        CREATE OR REPLACE FUNCTION sync_incident_date_stats()
        RETURNS trigger
        LANGUAGE plpgsql
        SECURITY DEFINER
        SET search_path = public
        AS $$
        DECLARE
            v_risk_id uuid;
        BEGIN
            FOR v_risk_id IN
                SELECT risk_id FROM incident_risk_links WHERE incident_id = NEW.id
            LOOP
                PERFORM refresh_risk_incident_stats(v_risk_id, NEW.organization_id);
            END LOOP;
            RETURN NULL;
        END;
        $$
    """)
    op.execute("""
        CREATE TRIGGER incidents_sync_incident_date
        AFTER UPDATE OF incident_date ON incidents
        FOR EACH ROW EXECUTE FUNCTION sync_incident_date_stats()
    """)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS incidents_sync_incident_date ON incidents")
    op.execute("DROP TRIGGER IF EXISTS incident_risk_links_sync_stats ON incident_risk_links")
    op.execute("DROP FUNCTION IF EXISTS sync_incident_date_stats()")
    op.execute("DROP FUNCTION IF EXISTS sync_incident_link_stats()")
    op.execute("DROP FUNCTION IF EXISTS refresh_risk_incident_stats(uuid, uuid)")
