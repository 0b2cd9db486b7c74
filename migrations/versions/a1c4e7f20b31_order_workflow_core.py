"""Order workflow core tables

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "a1c4e7f20b31"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ── Catalog ──
    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("type", sa.String(20), nullable=False, server_default="DIRECT"),
        sa.Column("team_id", sa.Integer(), nullable=True, index=True),
        sa.Column("is_mandatory", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("auto_assign_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_assign_user_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )
    op.create_table(
        "order_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "order_type_services",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_type_id", sa.Integer(),
                  sa.ForeignKey("order_types.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("service_id", sa.Integer(),
                  sa.ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.UniqueConstraint("order_type_id", "service_id", name="uq_order_type_service"),
    )

    # ── Orders ──
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_number", sa.String(40), nullable=False, unique=True),
        sa.Column("customer_name", sa.String(200), nullable=False, server_default=""),
        sa.Column("order_type_id", sa.Integer(),
                  sa.ForeignKey("order_types.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("folder_link", sa.String(1000), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("is_customized", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("delivery_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )
    op.create_table(
        "order_service_instances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(),
                  sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("service_id", sa.Integer(),
                  sa.ForeignKey("services.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )
    op.create_index("idx_instance_order_service", "order_service_instances", ["order_id", "service_id"])

    # ── Work units ──
    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(),
                  sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("service_instance_id", sa.Integer(),
                  sa.ForeignKey("order_service_instances.id", ondelete="CASCADE"),
                  nullable=True, unique=True),
        sa.Column("service_id", sa.Integer(),
                  sa.ForeignKey("services.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("team_id", sa.Integer(), nullable=True, index=True),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="NOT_ASSIGNED"),
        sa.Column("assigned_to", sa.String(64), nullable=True, index=True),
        sa.Column("priority", sa.String(10), nullable=False, server_default="MEDIUM"),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )
    op.create_index("idx_task_order_assignee", "tasks", ["order_id", "assigned_to"])

    op.create_table(
        "asking_tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(),
                  sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("service_instance_id", sa.Integer(),
                  sa.ForeignKey("order_service_instances.id", ondelete="CASCADE"),
                  nullable=True, unique=True),
        sa.Column("service_id", sa.Integer(),
                  sa.ForeignKey("services.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("team_id", sa.Integer(), nullable=True, index=True),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("current_stage", sa.String(20), nullable=False, server_default="ASKED"),
        sa.Column("assigned_to", sa.String(64), nullable=True, index=True),
        sa.Column("priority", sa.String(10), nullable=False, server_default="MEDIUM"),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_mandatory", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_flagged", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("notes_updated_by", sa.String(64), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.String(64), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )
    op.create_table(
        "asking_task_stages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("asking_task_id", sa.Integer(),
                  sa.ForeignKey("asking_tasks.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("stage", sa.String(20), nullable=False),
        sa.Column("fields_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("updated_by", sa.String(64), nullable=False, server_default="system"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_asking_stage_task_stage", "asking_task_stages", ["asking_task_id", "stage"])

    # ── Audit ──
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(60), nullable=False),
        sa.Column("actor", sa.String(150), nullable=False, server_default="system"),
        sa.Column("description", sa.Text(), server_default=""),
        sa.Column("old_value_json", sa.Text(), server_default="null"),
        sa.Column("new_value_json", sa.Text(), server_default="null"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_actor", "audit_logs", ["actor"])
    op.create_index("idx_audit_action", "audit_logs", ["action"])
    op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    op.drop_table("audit_logs")
    op.drop_table("asking_task_stages")
    op.drop_table("asking_tasks")
    op.drop_table("tasks")
    op.drop_table("order_service_instances")
    op.drop_table("orders")
    op.drop_table("order_type_services")
    op.drop_table("order_types")
    op.drop_table("services")
