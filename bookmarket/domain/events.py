"""Domain events for the book marketplace.

Domain events represent significant occurrences in the domain.
They are used for:
- Integration between the order and listing bounded contexts
- Triggering side effects (fulfillment, notifications)
- Audit logging
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from bookmarket.domain.base import DomainEvent


# ============================================================================
# Order Events
# ============================================================================


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Event raised when a new order is created."""

    event_type: ClassVar[str] = "order.created"

    order_id: str = ""
    customer_id: str = ""

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {"order_id": self.order_id, "customer_id": self.customer_id}


@dataclass(frozen=True)
class OrderCheckoutStarted(DomainEvent):
    """Event raised when every listing of an order has been held."""

    event_type: ClassVar[str] = "order.checkout_started"

    order_id: str = ""
    listing_ids: tuple[str, ...] = ()

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {"order_id": self.order_id, "listing_ids": list(self.listing_ids)}


@dataclass(frozen=True)
class OrderPaymentProcessed(DomainEvent):
    """Event raised when payment for an order has been taken."""

    event_type: ClassVar[str] = "order.payment_processed"

    order_id: str = ""
    amount_cents: int = 0
    currency: str = "USD"
    method: str = ""
    transaction_id: str = ""

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "method": self.method,
            "transaction_id": self.transaction_id,
        }


@dataclass(frozen=True)
class OrderConfirmed(DomainEvent):
    """Event raised when an order is paid and its listings are sold.

    Carries what fulfillment needs: a snapshot of the line items and
    the shipping address.
    """

    event_type: ClassVar[str] = "order.confirmed"

    order_id: str = ""
    customer_id: str = ""
    line_items: tuple[dict[str, Any], ...] = ()
    shipping_address: dict[str, Any] = field(default_factory=dict)

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "order_id": self.order_id,
            "customer_id": self.customer_id,
            "line_items": [dict(item) for item in self.line_items],
            "shipping_address": dict(self.shipping_address),
        }


@dataclass(frozen=True)
class OrderShipped(DomainEvent):
    """Event raised when an order is shipped."""

    event_type: ClassVar[str] = "order.shipped"

    order_id: str = ""
    carrier: str = ""
    tracking_number: str = ""

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "order_id": self.order_id,
            "carrier": self.carrier,
            "tracking_number": self.tracking_number,
        }


@dataclass(frozen=True)
class OrderDelivered(DomainEvent):
    """Event raised when an order is delivered."""

    event_type: ClassVar[str] = "order.delivered"

    order_id: str = ""
    delivered_at: datetime | None = None

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "order_id": self.order_id,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
        }


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Event raised when an order is cancelled."""

    event_type: ClassVar[str] = "order.cancelled"

    order_id: str = ""
    reason: str | None = None
    released_listing_ids: tuple[str, ...] = ()

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "order_id": self.order_id,
            "reason": self.reason,
            "released_listing_ids": list(self.released_listing_ids),
        }


# ============================================================================
# Listing Events
# ============================================================================


@dataclass(frozen=True)
class ListingCreated(DomainEvent):
    """Event raised when an appraised book is put up for sale."""

    event_type: ClassVar[str] = "listing.created"

    listing_id: str = ""
    isbn: str = ""
    title: str = ""
    author: str = ""
    condition: str = ""
    listing_price_cents: int = 0
    source_appraisal_id: str = ""

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "listing_id": self.listing_id,
            "isbn": self.isbn,
            "title": self.title,
            "author": self.author,
            "condition": self.condition,
            "listing_price_cents": self.listing_price_cents,
            "source_appraisal_id": self.source_appraisal_id,
        }


@dataclass(frozen=True)
class ListingHeld(DomainEvent):
    """Event raised when a listing is reserved for an order."""

    event_type: ClassVar[str] = "listing.held"

    listing_id: str = ""
    order_id: str = ""
    held_until: datetime | None = None

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "listing_id": self.listing_id,
            "order_id": self.order_id,
            "held_until": self.held_until.isoformat() if self.held_until else None,
        }


@dataclass(frozen=True)
class ListingHoldReleased(DomainEvent):
    """Event raised when a hold ends without a sale."""

    event_type: ClassVar[str] = "listing.hold_released"

    listing_id: str = ""
    previous_order_id: str = ""

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {"listing_id": self.listing_id, "previous_order_id": self.previous_order_id}


@dataclass(frozen=True)
class ListingSold(DomainEvent):
    """Event raised when a held listing is sold to its order."""

    event_type: ClassVar[str] = "listing.sold"

    listing_id: str = ""
    order_id: str = ""
    sold_at: datetime | None = None
    sale_price_cents: int = 0

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "listing_id": self.listing_id,
            "order_id": self.order_id,
            "sold_at": self.sold_at.isoformat() if self.sold_at else None,
            "sale_price_cents": self.sale_price_cents,
        }


@dataclass(frozen=True)
class ListingWithdrawn(DomainEvent):
    """Event raised when a listing is taken off sale."""

    event_type: ClassVar[str] = "listing.withdrawn"

    listing_id: str = ""
    reason: str | None = None

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {"listing_id": self.listing_id, "reason": self.reason}


# ============================================================================
# Event Registry
# ============================================================================


EVENT_REGISTRY: dict[str, type[DomainEvent]] = {
    # Order events
    OrderCreated.event_type: OrderCreated,
    OrderCheckoutStarted.event_type: OrderCheckoutStarted,
    OrderPaymentProcessed.event_type: OrderPaymentProcessed,
    OrderConfirmed.event_type: OrderConfirmed,
    OrderShipped.event_type: OrderShipped,
    OrderDelivered.event_type: OrderDelivered,
    OrderCancelled.event_type: OrderCancelled,
    # Listing events
    ListingCreated.event_type: ListingCreated,
    ListingHeld.event_type: ListingHeld,
    ListingHoldReleased.event_type: ListingHoldReleased,
    ListingSold.event_type: ListingSold,
    ListingWithdrawn.event_type: ListingWithdrawn,
}


def get_event_class(event_type: str) -> type[DomainEvent] | None:
    """Get event class by event type string.

    Args:
        event_type: Event type identifier (e.g., 'order.created').

    Returns:
        Event class if found, None otherwise.
    """
    return EVENT_REGISTRY.get(event_type)
