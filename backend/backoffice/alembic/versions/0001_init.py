"""init back-office schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


ROLES = "('admin', 'director', 'vp', 'manager', 'agent', 'call_center')"

LISTING_TYPE_FIELDS_CHECK = (
    "(listing_type = 'brokerage' AND "
    "owner_first_name IS NOT NULL AND "
    "owner_last_name IS NOT NULL AND "
    "owner_contact IS NOT NULL AND "
    "brokerage_commission_percent IS NOT NULL) OR "
    "(listing_type IN ('agency_owned', 'branch_owned') AND buy_price_azn IS NOT NULL)"
)


def upgrade():
    op.create_table(
        "app_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=200), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="agent"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email", name="uq_app_users_email"),
        sa.CheckConstraint(f"role IN {ROLES}", name="ck_app_users_role"),
    )
    op.create_index("ix_app_users_email", "app_users", ["email"])

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("type", sa.String(length=20), nullable=False, server_default="buyer"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("type IN ('seller', 'buyer', 'tenant')", name="ck_customers_type"),
        sa.CheckConstraint("phone IS NOT NULL OR email IS NOT NULL", name="ck_customers_contact"),
    )

    op.create_table(
        "properties",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("property_category", sa.String(length=20), nullable=False, server_default="residential"),
        sa.Column("listing_type", sa.String(length=20), nullable=False),
        sa.Column("category", sa.String(length=10), nullable=False, server_default="sale"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("district", sa.String(length=100), nullable=True),
        sa.Column("area_m2", sa.Float(), nullable=True),
        sa.Column("rooms_count", sa.Integer(), nullable=True),
        sa.Column("buy_price_azn", sa.Float(), nullable=True),
        sa.Column("target_price_azn", sa.Float(), nullable=True),
        sa.Column("sell_price_azn", sa.Float(), nullable=True),
        sa.Column("owner_first_name", sa.String(length=100), nullable=True),
        sa.Column("owner_last_name", sa.String(length=100), nullable=True),
        sa.Column("owner_contact", sa.String(length=200), nullable=True),
        sa.Column("brokerage_commission_percent", sa.Float(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("agent_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("updated_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("archived_at", sa.DateTime(), nullable=True),
        sa.Column("sold_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("code", name="uq_properties_code"),
        sa.CheckConstraint(
            "status IN ('pending', 'active', 'sold', 'archived', 'rejected')", name="ck_properties_status"
        ),
        sa.CheckConstraint(
            "listing_type IN ('agency_owned', 'branch_owned', 'brokerage')", name="ck_properties_listing_type"
        ),
        sa.CheckConstraint(
            "property_category IN ('residential', 'commercial')", name="ck_properties_property_category"
        ),
        sa.CheckConstraint("category IN ('sale', 'rent')", name="ck_properties_category"),
        sa.CheckConstraint(LISTING_TYPE_FIELDS_CHECK, name="ck_properties_listing_type_fields"),
        sa.CheckConstraint("area_m2 IS NULL OR area_m2 > 0", name="ck_properties_area"),
    )
    op.create_index("ix_properties_code", "properties", ["code"])
    op.create_index("ix_properties_status", "properties", ["status"])
    op.create_index("ix_properties_created_by_id", "properties", ["created_by_id"])
    op.create_index("ix_properties_agent_id", "properties", ["agent_id"])
    op.create_index("ix_properties_pending_approvals", "properties", ["status", "listing_type", "created_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entity", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=80), nullable=False),
        sa.Column("action", sa.String(length=40), nullable=False),
        sa.Column("actor_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("actor_role", sa.String(length=20), nullable=False),
        sa.Column("before_json", sa.Text(), nullable=True),
        sa.Column("after_json", sa.Text(), nullable=True),
        sa.Column("meta_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_logs_entity_lookup", "audit_logs", ["entity", "entity_id", "created_at"])
    op.create_index("ix_audit_logs_actor_lookup", "audit_logs", ["actor_id", "action", "created_at"])

    op.create_table(
        "approvals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("property_id", sa.Integer(), sa.ForeignKey("properties.id"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="in_progress"),
        sa.Column("started_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("status IN ('in_progress', 'approved', 'rejected')", name="ck_approvals_status"),
    )
    op.create_index("ix_approvals_property_id", "approvals", ["property_id"])
    op.create_index(
        "uq_approvals_property_in_progress",
        "approvals",
        ["property_id"],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
        sqlite_where=sa.text("status = 'in_progress'"),
    )

    op.create_table(
        "approval_steps",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("approval_id", sa.Integer(), sa.ForeignKey("approvals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("step", sa.String(length=40), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("required_role", sa.String(length=20), nullable=False),
        sa.Column("approved_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("approval_id", "step_order", name="uq_approval_steps_order"),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_approval_steps_status"),
    )
    op.create_index("ix_approval_steps_status_role", "approval_steps", ["status", "required_role"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("property_id", sa.Integer(), sa.ForeignKey("properties.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="ACTIVE"),
        sa.Column("booking_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=False),
        sa.Column("deposit_amount_azn", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("sale_price_azn", sa.Float(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("converted_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("expired_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "status IN ('ACTIVE', 'EXPIRED', 'CONVERTED', 'CANCELLED')", name="ck_bookings_status"
        ),
        sa.CheckConstraint("deposit_amount_azn IS NULL OR deposit_amount_azn >= 0", name="ck_bookings_deposit"),
    )
    op.create_index("ix_bookings_property_id", "bookings", ["property_id"])
    op.create_index("ix_bookings_customer_id", "bookings", ["customer_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_end_date", "bookings", ["end_date"])
    op.create_index(
        "uq_bookings_property_active",
        "bookings",
        ["property_id"],
        unique=True,
        postgresql_where=sa.text("status = 'ACTIVE'"),
        sqlite_where=sa.text("status = 'ACTIVE'"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("recipient_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=False),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_property_id", sa.Integer(), sa.ForeignKey("properties.id"), nullable=True),
        sa.Column("related_booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])
    op.create_index("ix_notifications_type", "notifications", ["type"])


def downgrade():
    op.drop_table("notifications")
    op.drop_index("uq_bookings_property_active", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("approval_steps")
    op.drop_index("uq_approvals_property_in_progress", table_name="approvals")
    op.drop_table("approvals")
    op.drop_table("audit_logs")
    op.drop_table("properties")
    op.drop_table("customers")
    op.drop_table("app_users")
