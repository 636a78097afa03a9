"""branches, users, properties, approval runs/steps, audit log

Revision ID: 0001_approval_workflow
Revises:
Create Date: 2025-08-26
"""
from alembic import op
import sqlalchemy as sa


revision = "0001_approval_workflow"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "app_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=200), nullable=False),
        sa.Column("first_name", sa.String(length=80), nullable=True),
        sa.Column("last_name", sa.String(length=80), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="agent"),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_app_users_email", "app_users", ["email"], unique=True)
    op.create_index("ix_app_users_branch_id", "app_users", ["branch_id"])

    # -------------------------
    # Properties
    # -------------------------
    op.create_table(
        "properties",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=40), nullable=False, unique=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("listing_type", sa.String(length=20), nullable=False),
        sa.Column("property_category", sa.String(length=60), nullable=True),
        sa.Column("property_subcategory", sa.String(length=60), nullable=True),
        sa.Column("area_m2", sa.Float(), nullable=True),
        sa.Column("buy_price", sa.Float(), nullable=True),
        sa.Column("sell_price", sa.Float(), nullable=True),
        sa.Column("owner_first_name", sa.String(length=80), nullable=True),
        sa.Column("owner_last_name", sa.String(length=80), nullable=True),
        sa.Column("owner_contact", sa.String(length=120), nullable=True),
        sa.Column("brokerage_commission_percent", sa.Float(), nullable=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'active', 'rejected', 'archived', 'sold')",
            name="ck_properties_status_valid",
        ),
        sa.CheckConstraint(
            "listing_type IN ('agency_owned', 'branch_owned', 'brokerage')",
            name="ck_properties_listing_type_valid",
        ),
    )
    op.create_index("ix_properties_status", "properties", ["status"])
    op.create_index("ix_properties_branch_id", "properties", ["branch_id"])
    op.create_index(
        "ix_properties_status_listing_created", "properties", ["status", "listing_type", "created_at"]
    )

    # -------------------------
    # Approval runs + steps
    # -------------------------
    op.create_table(
        "approvals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("property_id", sa.Integer(), sa.ForeignKey("properties.id"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="in_progress"),
        sa.Column("started_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_approvals_property_id", "approvals", ["property_id"])
    op.create_index(
        "uq_approvals_property_in_progress",
        "approvals",
        ["property_id"],
        unique=True,
        sqlite_where=sa.text("status = 'in_progress'"),
        postgresql_where=sa.text("status = 'in_progress'"),
    )

    op.create_table(
        "approval_steps",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("approval_id", sa.Integer(), sa.ForeignKey("approvals.id"), nullable=False),
        sa.Column("step", sa.String(length=40), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("required_role", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("approved_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_approval_steps_approval_order", "approval_steps", ["approval_id", "step_order"], unique=True
    )
    op.create_index("ix_approval_steps_status_role", "approval_steps", ["status", "required_role"])

    # -------------------------
    # Audit log
    # -------------------------
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("actor_role", sa.String(length=20), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=80), nullable=False),
        sa.Column("entity_id", sa.String(length=80), nullable=False),
        sa.Column("before_json", sa.Text(), nullable=True),
        sa.Column("after_json", sa.Text(), nullable=True),
        sa.Column("meta_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_audit_events_entity_lookup", "audit_events", ["entity_type", "entity_id", "created_at"]
    )
    op.create_index(
        "ix_audit_events_actor_lookup", "audit_events", ["actor_user_id", "action", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_audit_events_actor_lookup", table_name="audit_events")
    op.drop_index("ix_audit_events_entity_lookup", table_name="audit_events")
    op.drop_table("audit_events")

    op.drop_index("ix_approval_steps_status_role", table_name="approval_steps")
    op.drop_index("ix_approval_steps_approval_order", table_name="approval_steps")
    op.drop_table("approval_steps")

    op.drop_index("uq_approvals_property_in_progress", table_name="approvals")
    op.drop_index("ix_approvals_property_id", table_name="approvals")
    op.drop_table("approvals")

    op.drop_index("ix_properties_status_listing_created", table_name="properties")
    op.drop_index("ix_properties_branch_id", table_name="properties")
    op.drop_index("ix_properties_status", table_name="properties")
    op.drop_table("properties")

    op.drop_index("ix_app_users_branch_id", table_name="app_users")
    op.drop_index("ix_app_users_email", table_name="app_users")
    op.drop_table("app_users")

    op.drop_table("branches")
