from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

SHIPMENT_STATUS = ("PENDING", "APPROVED", "REJECTED", "IN_TRANSIT", "DELIVERED")
SERVICE_LEVEL = ("ECO", "STANDARD", "EXPRESS")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.Enum("USER", "ADMIN", name="userrole"), nullable=False),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("minimum_balance", sa.BigInteger()),
        sa.Column("price_multiplier", sa.Numeric(8, 4)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "shipments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.Enum(*SHIPMENT_STATUS, name="shipmentstatus"), nullable=False),
        sa.Column("rejection_reason", sa.Text()),
        sa.Column("sender_name", sa.String(length=255), nullable=False),
        sa.Column("sender_country", sa.String(length=2), nullable=False),
        sa.Column("sender_city", sa.String(length=128)),
        sa.Column("sender_postal_code", sa.String(length=32)),
        sa.Column("receiver_name", sa.String(length=255), nullable=False),
        sa.Column("receiver_country", sa.String(length=2), nullable=False),
        sa.Column("receiver_city", sa.String(length=128), nullable=False),
        sa.Column("receiver_postal_code", sa.String(length=32), nullable=False),
        sa.Column("receiver_address", sa.Text()),
        sa.Column("package_length", sa.Numeric(10, 2), nullable=False),
        sa.Column("package_width", sa.Numeric(10, 2), nullable=False),
        sa.Column("package_height", sa.Numeric(10, 2), nullable=False),
        sa.Column("package_weight", sa.Numeric(10, 3), nullable=False),
        sa.Column("piece_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("item_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("package_contents", sa.Text()),
        sa.Column("service_level", sa.Enum(*SERVICE_LEVEL, name="servicelevel"), nullable=False),
        sa.Column("carrier_id", sa.String(length=64)),
        sa.Column("carrier_name", sa.String(length=128)),
        sa.Column("shipping_terms", sa.Enum("DAP", "DDP", name="shippingterms"), nullable=False),
        sa.Column("customs_value", sa.BigInteger()),
        sa.Column("hs_code", sa.String(length=16)),
        sa.Column("is_insured", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("base_price", sa.BigInteger()),
        sa.Column("fuel_charge", sa.BigInteger()),
        sa.Column("total_price", sa.BigInteger()),
        sa.Column("original_base_price", sa.BigInteger()),
        sa.Column("original_fuel_charge", sa.BigInteger()),
        sa.Column("original_total_price", sa.BigInteger()),
        sa.Column("applied_multiplier", sa.Numeric(8, 4)),
        sa.Column("insurance_cost", sa.BigInteger()),
        sa.Column("ddp_duty_amount", sa.BigInteger()),
        sa.Column("ddp_processing_fee", sa.BigInteger()),
        sa.Column("price_dirty", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tracking_number", sa.String(length=64)),
        sa.Column("approved_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_shipments_user_id", "shipments", ["user_id"])
    op.create_index("ix_shipments_status", "shipments", ["status"])

    op.create_table(
        "price_history",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("shipment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("previous_base_price", sa.BigInteger()),
        sa.Column("previous_fuel_charge", sa.BigInteger()),
        sa.Column("previous_total_price", sa.BigInteger()),
        sa.Column("new_base_price", sa.BigInteger(), nullable=False),
        sa.Column("new_fuel_charge", sa.BigInteger(), nullable=False),
        sa.Column("new_total_price", sa.BigInteger(), nullable=False),
        sa.Column("dimensions_changed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("weight_changed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("address_changed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("service_level_changed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_auto_recalculation", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("change_reason", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_price_history_shipment_id", "price_history", ["shipment_id"])

    op.create_table(
        "balance_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column(
            "transaction_type",
            sa.Enum("DEPOSIT", "PURCHASE", "REFUND", name="transactiontype"),
            nullable=False,
        ),
        sa.Column("description", sa.String(length=512), nullable=False),
        sa.Column("related_shipment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("shipments.id")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_balance_transactions_user_id", "balance_transactions", ["user_id"])

    op.create_table(
        "system_settings",
        sa.Column("key", sa.String(length=64), primary_key=True),
        sa.Column("value", sa.String(length=255), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "insurance_ranges",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("min_value", sa.BigInteger(), nullable=False),
        sa.Column("max_value", sa.BigInteger(), nullable=False),
        sa.Column("insurance_cost", sa.BigInteger(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("min_value", "max_value", name="uq_insurance_range_value"),
    )

    op.create_table(
        "duty_rate_overrides",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("destination_country", sa.String(length=2), nullable=False),
        sa.Column("hs_code", sa.String(length=16), nullable=False),
        sa.Column("duty_rate", sa.Numeric(8, 4), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("destination_country", "hs_code", name="uq_duty_override_dest_hs"),
    )


def downgrade() -> None:
    op.drop_table("duty_rate_overrides")
    op.drop_table("insurance_ranges")
    op.drop_table("system_settings")
    op.drop_index("ix_balance_transactions_user_id", table_name="balance_transactions")
    op.drop_table("balance_transactions")
    op.drop_index("ix_price_history_shipment_id", table_name="price_history")
    op.drop_table("price_history")
    op.drop_index("ix_shipments_status", table_name="shipments")
    op.drop_index("ix_shipments_user_id", table_name="shipments")
    op.drop_table("shipments")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    for enum_name in ("transactiontype", "shippingterms", "servicelevel", "shipmentstatus", "userrole"):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
