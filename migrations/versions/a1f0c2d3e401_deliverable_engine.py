"""Deliverable engine: catalog, commitments, deliverables, events, runs

Revision ID: a1f0c2d3e401
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "a1f0c2d3e401"
down_revision = None
branch_labels = None
depends_on = None


def _tenant_fk():
    return sa.Column(
        "tenant_id", sa.Integer(),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True,
    )


def upgrade():
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── Catalog ──────────────────────────────────────────────────────
    op.create_table(
        "offerings",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("code", sa.String(50)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), index=True),
    )
    op.create_table(
        "deliverable_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("offering_entity_id", sa.Integer(), sa.ForeignKey("offerings.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("estimated_minutes", sa.Integer()),
        sa.Column("required_resource_type", sa.String(60)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), index=True),
    )
    op.create_index(
        "ix_deliverable_templates_tenant_offering", "deliverable_templates",
        ["tenant_id", "offering_entity_id"],
    )
    op.create_index(
        "uq_deliverable_templates_active_name", "deliverable_templates",
        ["tenant_id", "offering_entity_id", "name"], unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
        sqlite_where=sa.text("deleted_at IS NULL"),
    )

    # ── Commitments ──────────────────────────────────────────────────
    op.create_table(
        "commitments",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("commitment_type", sa.String(20), nullable=False, server_default="order"),
        sa.Column("customer_entity_id", sa.Integer()),
        sa.Column("status", sa.String(20), server_default="draft"),
        sa.Column("total_value", sa.Numeric(18, 2)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), index=True),
        sa.CheckConstraint(
            "commitment_type IN ('contract','order','subscription')",
            name="ck_commitment_type",
        ),
    )
    op.create_table(
        "commitment_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("commitment_id", sa.Integer(), sa.ForeignKey("commitments.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("offering_entity_id", sa.Integer(), sa.ForeignKey("offerings.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("price", sa.Numeric(18, 2)),
        sa.Column("requires_fulfillment", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), index=True),
    )
    op.create_index("ix_commitment_items_tenant_commitment", "commitment_items", ["tenant_id", "commitment_id"])

    op.create_table(
        "commitment_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("commitment_id", sa.Integer(), sa.ForeignKey("commitments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_type", sa.String(60), nullable=False),
        sa.Column("payload_json", sa.JSON(), nullable=False),
        sa.Column("actor_user_id", sa.Integer()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_commitment_events_tenant_commitment_created", "commitment_events",
        ["tenant_id", "commitment_id", "created_at"],
    )

    # ── Deliverables ─────────────────────────────────────────────────
    op.create_table(
        "deliverables",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("commitment_id", sa.Integer(), sa.ForeignKey("commitments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("entity_id", sa.Integer(), sa.ForeignKey("offerings.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", sa.String(20), server_default="planned"),
        sa.Column("owner_user_id", sa.Integer()),
        sa.Column("due_date", sa.Date()),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), index=True),
    )
    op.create_index("ix_deliverables_tenant_commitment_id", "deliverables", ["tenant_id", "commitment_id"])
    op.create_index("ix_deliverables_tenant_status_due_date", "deliverables", ["tenant_id", "status", "due_date"])

    op.create_table(
        "deliverable_dependencies",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("deliverable_id", sa.Integer(), sa.ForeignKey("deliverables.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("depends_on_deliverable_id", sa.Integer(), sa.ForeignKey("deliverables.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), index=True),
        sa.CheckConstraint(
            "deliverable_id != depends_on_deliverable_id",
            name="ck_deliverable_dep_no_self_loop",
        ),
    )
    op.create_index(
        "uq_deliverable_dependencies_active", "deliverable_dependencies",
        ["tenant_id", "deliverable_id", "depends_on_deliverable_id"], unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
        sqlite_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "deliverable_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("deliverable_id", sa.Integer(), sa.ForeignKey("deliverables.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_type", sa.String(60), nullable=False),
        sa.Column("before", sa.JSON()),
        sa.Column("after", sa.JSON()),
        sa.Column("actor_user_id", sa.Integer()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_deliverable_events_tenant_deliverable_created", "deliverable_events",
        ["tenant_id", "deliverable_id", "created_at"],
    )

    op.create_table(
        "orchestration_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column("commitment_id", sa.Integer(), sa.ForeignKey("commitments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("deliverables_created", sa.Integer()),
        sa.Column("dependencies_created", sa.Integer()),
        sa.Column("request_id", sa.String(64)),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("tenant_id", "commitment_id", name="uq_orchestration_run_commitment"),
        sa.CheckConstraint("status IN ('running','completed')", name="ck_orchestration_run_status"),
    )

    # ── Audit ledger ─────────────────────────────────────────────────
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(60), nullable=False),
        sa.Column("actor", sa.String(150), nullable=False, server_default="system"),
        sa.Column("actor_user_id", sa.Integer()),
        sa.Column("request_id", sa.String(64)),
        sa.Column("diff_json", sa.Text(), server_default="{}"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_action", "audit_logs", ["action"])
    op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    op.drop_table("audit_logs")
    op.drop_table("orchestration_runs")
    op.drop_table("deliverable_events")
    op.drop_index("uq_deliverable_dependencies_active", table_name="deliverable_dependencies")
    op.drop_table("deliverable_dependencies")
    op.drop_table("deliverables")
    op.drop_table("commitment_events")
    op.drop_table("commitment_items")
    op.drop_table("commitments")
    op.drop_index("uq_deliverable_templates_active_name", table_name="deliverable_templates")
    op.drop_table("deliverable_templates")
    op.drop_table("offerings")
    op.drop_table("tenants")
