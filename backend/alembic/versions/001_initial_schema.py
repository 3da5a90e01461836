# backend/alembic/versions/001_initial_schema.py
"""Activities, customers, reservations, promo codes and gift cards

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-09-28 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=True,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create the reservation engine tables."""
    print("Creating activity tables...")
    op.create_table(
        "activities",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("venue_id", sa.String(26), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("operating_days", sa.JSON(), nullable=False),
        sa.Column("open_time", sa.Time(), nullable=False),
        sa.Column("close_time", sa.Time(), nullable=False),
        sa.Column("slot_interval_minutes", sa.Integer(), nullable=True),
        sa.Column("custom_hours", sa.JSON(), nullable=True),
        sa.Column("advance_booking_days", sa.Integer(), nullable=True),
        sa.Column("min_party_size", sa.Integer(), nullable=False),
        sa.Column("max_party_size", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("duration_minutes > 0", name="ck_activities_duration_positive"),
        sa.CheckConstraint(
            "slot_interval_minutes IS NULL OR slot_interval_minutes > 0",
            name="ck_activities_interval_positive",
        ),
        sa.CheckConstraint("unit_price_cents >= 0", name="ck_activities_price_non_negative"),
        sa.CheckConstraint(
            "min_party_size >= 1 AND max_party_size >= min_party_size",
            name="ck_activities_party_bounds",
        ),
    )
    op.create_index("ix_activities_id", "activities", ["id"])
    op.create_index("ix_activities_venue_id", "activities", ["venue_id"])

    op.create_table(
        "activity_blocked_dates",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("activity_id", sa.String(26), nullable=False),
        sa.Column("blocked_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        comment="Full-day or partial closures for an activity",
    )
    op.create_index(
        "ix_activity_blocked_dates_activity_id", "activity_blocked_dates", ["activity_id"]
    )

    op.create_table(
        "activity_custom_dates",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("activity_id", sa.String(26), nullable=False),
        sa.Column("available_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("activity_id", "available_date", name="uq_activity_custom_date"),
        comment="Dates opened outside the weekly schedule",
    )
    op.create_index(
        "ix_activity_custom_dates_activity_id", "activity_custom_dates", ["activity_id"]
    )

    print("Creating customers table...")
    op.create_table(
        "customers",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_customers_id", "customers", ["id"])
    op.create_index("ix_customers_email", "customers", ["email"], unique=True)

    print("Creating reservations table...")
    op.create_table(
        "reservations",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("confirmation_code", sa.String(16), nullable=False),
        sa.Column("activity_id", sa.String(26), nullable=False),
        sa.Column("venue_id", sa.String(26), nullable=False),
        sa.Column("customer_id", sa.String(26), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("party_size", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("promo_code", sa.String(64), nullable=True),
        sa.Column("promo_discount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("gift_card_code", sa.String(64), nullable=True),
        sa.Column("gift_card_credit_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("final_amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("payment_intent_id", sa.String(255), nullable=True, comment="Stripe payment intent"),
        sa.Column("payment_client_secret", sa.String(255), nullable=True),
        sa.Column("payment_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("discounts_redeemed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["activity_id"], ["activities.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("confirmation_code"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'canceled')",
            name="ck_reservations_status",
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'refunded')",
            name="ck_reservations_payment_status",
        ),
        sa.CheckConstraint("end_time > start_time", name="ck_reservations_time_order"),
        sa.CheckConstraint("party_size > 0", name="ck_reservations_party_positive"),
        sa.CheckConstraint("final_amount_cents >= 0", name="ck_reservations_final_non_negative"),
        sa.CheckConstraint(
            "promo_discount_cents >= 0 AND gift_card_credit_cents >= 0",
            name="ck_reservations_discounts_non_negative",
        ),
    )
    op.create_index("ix_reservations_id", "reservations", ["id"])
    op.create_index("ix_reservations_venue_id", "reservations", ["venue_id"])
    op.create_index("ix_reservations_customer_id", "reservations", ["customer_id"])
    op.create_index("ix_reservations_activity_date", "reservations", ["activity_id", "booking_date"])
    op.create_index(
        "uq_reservations_active_slot",
        "reservations",
        ["activity_id", "booking_date", "start_time"],
        unique=True,
        postgresql_where=sa.text("status <> 'canceled'"),
        sqlite_where=sa.text("status <> 'canceled'"),
    )

    print("Creating promo code and gift card tables...")
    op.create_table(
        "promo_codes",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("discount_type", sa.String(20), nullable=False),
        sa.Column("discount_value", sa.Integer(), nullable=False),
        sa.Column("min_order_cents", sa.Integer(), nullable=True),
        sa.Column("max_discount_cents", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("uses_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "discount_type IN ('percentage', 'fixed')", name="ck_promo_codes_discount_type"
        ),
        sa.CheckConstraint("discount_value >= 0", name="ck_promo_codes_value_non_negative"),
    )
    op.create_index("ix_promo_codes_id", "promo_codes", ["id"])
    op.create_index("ix_promo_codes_code", "promo_codes", ["code"], unique=True)

    op.create_table(
        "promo_code_usages",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("promo_code_id", sa.String(26), nullable=False),
        sa.Column("reservation_id", sa.String(26), nullable=False),
        sa.Column("customer_id", sa.String(26), nullable=True),
        sa.Column("discount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "used_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
        ),
        sa.ForeignKeyConstraint(["promo_code_id"], ["promo_codes.id"]),
        sa.ForeignKeyConstraint(["reservation_id"], ["reservations.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("reservation_id"),
    )
    op.create_index("ix_promo_code_usages_promo_code_id", "promo_code_usages", ["promo_code_id"])

    op.create_table(
        "gift_cards",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("original_value_cents", sa.Integer(), nullable=False),
        sa.Column("remaining_balance_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('active', 'partially_used', 'fully_used')", name="ck_gift_cards_status"
        ),
        sa.CheckConstraint(
            "remaining_balance_cents >= 0 AND remaining_balance_cents <= original_value_cents",
            name="ck_gift_cards_balance_bounds",
        ),
    )
    op.create_index("ix_gift_cards_id", "gift_cards", ["id"])
    op.create_index("ix_gift_cards_code", "gift_cards", ["code"], unique=True)

    op.create_table(
        "gift_card_redemptions",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("gift_card_id", sa.String(26), nullable=False),
        sa.Column("reservation_id", sa.String(26), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "redeemed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
        ),
        sa.ForeignKeyConstraint(["gift_card_id"], ["gift_cards.id"]),
        sa.ForeignKeyConstraint(["reservation_id"], ["reservations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount_cents > 0", name="ck_gift_card_redemptions_positive"),
    )
    op.create_index(
        "ix_gift_card_redemptions_gift_card_id", "gift_card_redemptions", ["gift_card_id"]
    )


def downgrade() -> None:
    """Drop the reservation engine tables."""
    print("Dropping reservation engine tables...")
    op.drop_table("gift_card_redemptions")
    op.drop_table("gift_cards")
    op.drop_table("promo_code_usages")
    op.drop_table("promo_codes")
    op.drop_index("uq_reservations_active_slot", table_name="reservations")
    op.drop_table("reservations")
    op.drop_table("customers")
    op.drop_table("activity_custom_dates")
    op.drop_table("activity_blocked_dates")
    op.drop_table("activities")
