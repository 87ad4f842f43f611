"""Create listings, orders and order_line_items tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            index=True,
        ),
    ]


def _address(prefix: str, nullable: bool) -> list[sa.Column]:
    return [
        sa.Column(f"{prefix}_name", sa.String(255), nullable=nullable),
        sa.Column(f"{prefix}_street1", sa.String(255), nullable=nullable),
        sa.Column(f"{prefix}_street2", sa.String(255), nullable=True),
        sa.Column(f"{prefix}_city", sa.String(100), nullable=nullable),
        sa.Column(f"{prefix}_state", sa.String(100), nullable=nullable),
        sa.Column(f"{prefix}_postal_code", sa.String(20), nullable=nullable),
        sa.Column(f"{prefix}_country", sa.String(2), nullable=nullable),
    ]


def upgrade() -> None:
    """Create listings, orders and order_line_items tables."""
    op.create_table(
        "listings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("status", sa.String(20), nullable=False, index=True),
        # Book info
        sa.Column("isbn", sa.String(20), nullable=False, index=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("author", sa.String(255), nullable=False),
        sa.Column("condition", sa.String(20), nullable=False),
        sa.Column("cover_image_url", sa.String(1000), nullable=True),
        sa.Column("publisher", sa.String(255), nullable=True),
        sa.Column("publish_year", sa.Integer, nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        # Provenance
        sa.Column("source_appraisal_id", sa.String(36), nullable=False),
        sa.Column("purchase_request_id", sa.String(36), nullable=False),
        # Pricing
        sa.Column("offer_price_cents", sa.Integer, nullable=False),
        sa.Column("listing_price_cents", sa.Integer, nullable=False, index=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        # Hold / sale
        sa.Column("held_by_order_id", sa.String(36), nullable=True, index=True),
        sa.Column("held_until", sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column("sold_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sold_to_order_id", sa.String(36), nullable=True),
        sa.Column("withdraw_reason", sa.Text, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("customer_id", sa.String(100), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False, index=True),
        *_address("shipping", nullable=False),
        *_address("billing", nullable=True),
        # Charges
        sa.Column("tax_cents", sa.Integer, nullable=False, server_default="0"),
        sa.Column("shipping_cents", sa.Integer, nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        # Payment
        sa.Column("payment_method", sa.String(20), nullable=True),
        sa.Column("payment_amount_cents", sa.Integer, nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=True),
        sa.Column("payment_transaction_id", sa.String(100), nullable=True),
        sa.Column("payment_processed_at", sa.DateTime(timezone=True), nullable=True),
        # Shipping info
        sa.Column("carrier", sa.String(100), nullable=True),
        sa.Column("tracking_number", sa.String(100), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        # Cancellation
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.Text, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "order_line_items",
        sa.Column(
            "order_id",
            sa.String(36),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("listing_id", sa.String(36), primary_key=True),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("isbn", sa.String(20), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("author", sa.String(255), nullable=False),
        sa.Column("condition", sa.String(20), nullable=False),
        sa.Column("price_cents", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
    )
    op.create_index("ix_order_line_items_listing_id", "order_line_items", ["listing_id"])


def downgrade() -> None:
    """Drop order_line_items, orders and listings tables."""
    op.drop_index("ix_order_line_items_listing_id", table_name="order_line_items")
    op.drop_table("order_line_items")
    op.drop_table("orders")
    op.drop_table("listings")
