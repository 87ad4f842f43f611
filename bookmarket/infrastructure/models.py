"""SQLAlchemy models for database tables.

Provides ORM models for the listings, orders, and order_line_items tables.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from bookmarket.infrastructure.database import Base


# ============================================================================
# Listing Models
# ============================================================================


class ListingModel(Base):
    """Listing model for database persistence.

    One row per sellable book copy. ``version`` backs optimistic locking.
    """

    __tablename__ = "listings"

    id = Column(String(36), primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default="available", index=True)

    # Book info
    isbn = Column(String(20), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    author = Column(String(255), nullable=False)
    condition = Column(String(20), nullable=False)
    cover_image_url = Column(String(1000), nullable=True)
    publisher = Column(String(255), nullable=True)
    publish_year = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)

    # Provenance
    source_appraisal_id = Column(String(36), nullable=False)
    purchase_request_id = Column(String(36), nullable=False)

    # Pricing
    offer_price_cents = Column(Integer, nullable=False)
    listing_price_cents = Column(Integer, nullable=False, index=True)
    currency = Column(String(3), nullable=False, default="USD")

    # Hold / sale
    held_by_order_id = Column(String(36), nullable=True, index=True)
    held_until = Column(DateTime(timezone=True), nullable=True, index=True)
    sold_at = Column(DateTime(timezone=True), nullable=True)
    sold_to_order_id = Column(String(36), nullable=True)
    withdraw_reason = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


# ============================================================================
# Order Models
# ============================================================================


class OrderModel(Base):
    """Order model for database persistence.

    Addresses, payment and tracking are flattened into columns the way
    they are read back. ``version`` backs optimistic locking.
    """

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    customer_id = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="draft", index=True)

    # Shipping address
    shipping_name = Column(String(255), nullable=False)
    shipping_street1 = Column(String(255), nullable=False)
    shipping_street2 = Column(String(255), nullable=True)
    shipping_city = Column(String(100), nullable=False)
    shipping_state = Column(String(100), nullable=False)
    shipping_postal_code = Column(String(20), nullable=False)
    shipping_country = Column(String(2), nullable=False)

    # Billing address
    billing_name = Column(String(255), nullable=True)
    billing_street1 = Column(String(255), nullable=True)
    billing_street2 = Column(String(255), nullable=True)
    billing_city = Column(String(100), nullable=True)
    billing_state = Column(String(100), nullable=True)
    billing_postal_code = Column(String(20), nullable=True)
    billing_country = Column(String(2), nullable=True)

    # Charges
    tax_cents = Column(Integer, nullable=False, default=0)
    shipping_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")

    # Payment
    payment_method = Column(String(20), nullable=True)
    payment_amount_cents = Column(Integer, nullable=True)
    payment_status = Column(String(20), nullable=True)
    payment_transaction_id = Column(String(100), nullable=True)
    payment_processed_at = Column(DateTime(timezone=True), nullable=True)

    # Shipping info
    carrier = Column(String(100), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    # Cancellation
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    # Relationships
    line_items = relationship(
        "OrderLineItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLineItemModel.position",
        lazy="selectin",
    )


class OrderLineItemModel(Base):
    """Order line item model for database persistence.

    Represents one listing snapshot within an order.
    """

    __tablename__ = "order_line_items"

    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        primary_key=True,
    )
    listing_id = Column(String(36), primary_key=True)
    position = Column(Integer, nullable=False)
    isbn = Column(String(20), nullable=False)
    title = Column(String(500), nullable=False)
    author = Column(String(255), nullable=False)
    condition = Column(String(20), nullable=False)
    price_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(20), nullable=False, default="pending")

    # Relationships
    order = relationship("OrderModel", back_populates="line_items")
