"""Domain entities for the book marketplace.

Entities are domain objects with identity that persists across state changes.
This module contains the core aggregates: Listing and Order, plus the
OrderLineItem snapshot owned by an order.

All aggregates are immutable. Each transition validates its guard and
returns a new value; the caller persists that value.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Self
from uuid import uuid4

from bookmarket.domain.base import AggregateRoot, utc_now
from bookmarket.domain.events import (
    ListingCreated,
    ListingHeld,
    ListingHoldReleased,
    ListingSold,
    ListingWithdrawn,
    OrderCancelled,
    OrderCheckoutStarted,
    OrderConfirmed,
    OrderCreated,
    OrderDelivered,
    OrderPaymentProcessed,
    OrderShipped,
)
from bookmarket.domain.exceptions import (
    CurrencyMismatchError,
    DuplicateLineItemError,
    EmptyOrderError,
    HoldsNotConfirmedError,
    LineItemNotFoundError,
    ListingAlreadyHeldError,
    ListingAlreadySoldError,
    ListingNotAvailableError,
    ListingNotHeldError,
    ListingNotWithdrawableError,
    OrderNotCancellableError,
    OrderNotEditableError,
    ValidationError,
)
from bookmarket.domain.state_machines import (
    LineItemStatus,
    ListingStatus,
    OrderStatus,
    validate_line_item_transition,
    validate_listing_transition,
    validate_order_transition,
)
from bookmarket.domain.value_objects import (
    Address,
    BookCondition,
    BookInfo,
    Money,
    Payment,
    PaymentMethod,
    ShipmentTracking,
)


def new_id() -> str:
    """Generate a new aggregate identifier."""
    return str(uuid4())


# ============================================================================
# Listing Aggregate
# ============================================================================


@dataclass(frozen=True, eq=False, kw_only=True)
class Listing(AggregateRoot[str]):
    """A sellable copy of a book.

    A listing is created when an appraisal completes and is only ever
    changed through ``hold``, ``release``, ``mark_sold`` and ``withdraw``.
    It is never deleted; it ends in SOLD or WITHDRAWN.

    Attributes:
        book_info: Bibliographic description and condition.
        source_appraisal_id: Appraisal the listing was created from.
        purchase_request_id: Intake request the book arrived with.
        offer_price: Price paid to the seller.
        listing_price: Price asked from buyers.
        status: Current listing status.
        held_by_order_id: Order holding the listing (HELD only).
        held_until: Hold expiry (HELD only).
        sold_at: Sale timestamp (SOLD only).
        sold_to_order_id: Order the listing was sold to (SOLD only).
        withdraw_reason: Optional reason given on withdrawal.
    """

    book_info: BookInfo
    source_appraisal_id: str
    purchase_request_id: str
    offer_price: Money
    listing_price: Money
    status: ListingStatus = ListingStatus.AVAILABLE
    held_by_order_id: str | None = None
    held_until: datetime | None = None
    sold_at: datetime | None = None
    sold_to_order_id: str | None = None
    withdraw_reason: str | None = None

    def __post_init__(self) -> None:
        """Check the hold and sale field invariants."""
        held = self.status == ListingStatus.HELD
        if (self.held_by_order_id is not None) != held or (self.held_until is not None) != held:
            raise ValidationError(
                "hold",
                "held_by_order_id and held_until must be set exactly when the listing is held",
            )
        if (self.sold_at is not None) != (self.status == ListingStatus.SOLD):
            raise ValidationError("sold_at", "must be set exactly when the listing is sold")

    @classmethod
    def create(
        cls,
        book_info: BookInfo,
        source_appraisal_id: str,
        purchase_request_id: str,
        offer_price: Money,
        listing_price: Money,
        listing_id: str | None = None,
    ) -> Self:
        """Create a new available listing.

        Args:
            book_info: Book being sold.
            source_appraisal_id: Appraisal that priced the book.
            purchase_request_id: Intake request the book came from.
            offer_price: Price paid to the seller.
            listing_price: Asking price.
            listing_id: Optional explicit ID (for testing).

        Returns:
            New Listing with a pending ListingCreated event.

        Raises:
            ValidationError: If a reference ID is blank.
        """
        if not source_appraisal_id or not source_appraisal_id.strip():
            raise ValidationError("source_appraisal_id", "is required")
        if not purchase_request_id or not purchase_request_id.strip():
            raise ValidationError("purchase_request_id", "is required")

        lid = listing_id or new_id()
        listing = cls(
            id=lid,
            book_info=book_info,
            source_appraisal_id=source_appraisal_id,
            purchase_request_id=purchase_request_id,
            offer_price=offer_price,
            listing_price=listing_price,
        )
        return listing._evolve(
            ListingCreated(
                aggregate_id=lid,
                aggregate_type="Listing",
                listing_id=lid,
                isbn=book_info.isbn,
                title=book_info.title,
                author=book_info.author,
                condition=book_info.condition.value,
                listing_price_cents=listing_price.amount_cents,
                source_appraisal_id=source_appraisal_id,
            ),
            updated_at=listing.created_at,
        )

    # ------------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------------

    def is_hold_expired(self, now: datetime | None = None) -> bool:
        """Check whether the hold has run past its deadline.

        Pure query: expiry is only acted on when a sweep releases the hold.

        Args:
            now: Reference time (defaults to current UTC time).

        Returns:
            True iff the listing is held and ``now`` is past ``held_until``.
        """
        if self.status != ListingStatus.HELD or self.held_until is None:
            return False
        return (now or utc_now()) > self.held_until

    # ------------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------------

    def hold(self, order_id: str, duration_minutes: float, now: datetime | None = None) -> Self:
        """Reserve the listing for an order.

        Args:
            order_id: Order taking the hold.
            duration_minutes: Hold length. Negative values produce an
                already-expired hold.
            now: Reference time (defaults to current UTC time).

        Returns:
            Held listing.

        Raises:
            ListingAlreadyHeldError: If another hold is in place.
            ListingAlreadySoldError: If the listing was sold.
            ListingNotAvailableError: If the listing was withdrawn.
        """
        if self.status == ListingStatus.HELD:
            raise ListingAlreadyHeldError(self.id, self.held_by_order_id)
        if self.status == ListingStatus.SOLD:
            raise ListingAlreadySoldError(self.id)
        if self.status != ListingStatus.AVAILABLE:
            raise ListingNotAvailableError(self.id, self.status.value)
        if not order_id or not order_id.strip():
            raise ValidationError("order_id", "is required")

        now = now or utc_now()
        held_until = now + timedelta(minutes=duration_minutes)
        return self._evolve(
            ListingHeld(
                aggregate_id=self.id,
                aggregate_type="Listing",
                listing_id=self.id,
                order_id=order_id,
                held_until=held_until,
            ),
            status=ListingStatus.HELD,
            held_by_order_id=order_id,
            held_until=held_until,
        )

    def release(self) -> Self:
        """Drop the hold and make the listing available again.

        Raises:
            ListingNotHeldError: If the listing is not held.
        """
        if self.status != ListingStatus.HELD or self.held_by_order_id is None:
            raise ListingNotHeldError(self.id, self.status.value)
        validate_listing_transition(self.id, self.status, ListingStatus.AVAILABLE)
        return self._evolve(
            ListingHoldReleased(
                aggregate_id=self.id,
                aggregate_type="Listing",
                listing_id=self.id,
                previous_order_id=self.held_by_order_id,
            ),
            status=ListingStatus.AVAILABLE,
            held_by_order_id=None,
            held_until=None,
        )

    def mark_sold(self, now: datetime | None = None) -> Self:
        """Convert the hold into a sale to the holding order.

        Raises:
            ListingNotHeldError: If the listing is not held.
        """
        if self.status != ListingStatus.HELD or self.held_by_order_id is None:
            raise ListingNotHeldError(self.id, self.status.value)
        validate_listing_transition(self.id, self.status, ListingStatus.SOLD)
        sold_at = now or utc_now()
        return self._evolve(
            ListingSold(
                aggregate_id=self.id,
                aggregate_type="Listing",
                listing_id=self.id,
                order_id=self.held_by_order_id,
                sold_at=sold_at,
                sale_price_cents=self.listing_price.amount_cents,
            ),
            status=ListingStatus.SOLD,
            sold_at=sold_at,
            sold_to_order_id=self.held_by_order_id,
            held_by_order_id=None,
            held_until=None,
        )

    def withdraw(self, reason: str | None = None) -> Self:
        """Take the listing off sale, dropping any hold.

        Raises:
            ListingNotWithdrawableError: If the listing is sold or already withdrawn.
        """
        if not self.status.can_transition_to(ListingStatus.WITHDRAWN):
            raise ListingNotWithdrawableError(self.id, self.status.value)
        return self._evolve(
            ListingWithdrawn(
                aggregate_id=self.id,
                aggregate_type="Listing",
                listing_id=self.id,
                reason=reason,
            ),
            status=ListingStatus.WITHDRAWN,
            withdraw_reason=reason,
            held_by_order_id=None,
            held_until=None,
        )


# ============================================================================
# Order Line Item
# ============================================================================


@dataclass(frozen=True)
class OrderLineItem:
    """Snapshot of one listing inside an order.

    Price and condition are frozen when the item is added and do not
    follow later listing changes. The status shadows the listing's
    reservation state as seen by the owning order.
    """

    listing_id: str
    isbn: str
    title: str
    author: str
    condition: BookCondition
    price: Money
    status: LineItemStatus = LineItemStatus.PENDING

    @classmethod
    def create(
        cls,
        listing_id: str,
        isbn: str,
        title: str,
        author: str,
        condition: BookCondition | str,
        price: Money,
    ) -> Self:
        """Create a pending line item.

        Raises:
            ValidationError: If a required text field is blank.
        """
        values = {"listing_id": listing_id, "isbn": isbn, "title": title, "author": author}
        for name, value in values.items():
            if not value or not value.strip():
                raise ValidationError(name, "is required")
        return cls(
            listing_id=listing_id.strip(),
            isbn=isbn.strip(),
            title=title.strip(),
            author=author.strip(),
            condition=BookCondition(condition),
            price=price,
        )

    def _move_to(self, target: LineItemStatus) -> Self:
        validate_line_item_transition(self.listing_id, self.status, target)
        return replace(self, status=target)

    def mark_held(self) -> Self:
        return self._move_to(LineItemStatus.HELD)

    def mark_sold(self) -> Self:
        return self._move_to(LineItemStatus.SOLD)

    def release(self) -> Self:
        return self._move_to(LineItemStatus.RELEASED)

    def to_snapshot(self) -> dict[str, Any]:
        """Serialize for event payloads."""
        return {
            "listing_id": self.listing_id,
            "isbn": self.isbn,
            "title": self.title,
            "author": self.author,
            "condition": self.condition.value,
            "price_cents": self.price.amount_cents,
            "currency": self.price.currency,
        }


# ============================================================================
# Order Aggregate
# ============================================================================


def _address_dict(address: Address) -> dict[str, Any]:
    return {
        "name": address.name,
        "street1": address.street1,
        "street2": address.street2,
        "city": address.city,
        "state": address.state,
        "postal_code": address.postal_code,
        "country": address.country,
    }


@dataclass(frozen=True, eq=False, kw_only=True)
class Order(AggregateRoot[str]):
    """A customer's purchase of one or more listings.

    The order owns its line items and their shadow status. It only
    references listings by id; keeping the two in agreement is the job
    of the checkout saga in the order service.

    Attributes:
        customer_id: Customer placing the order.
        shipping_address: Where to ship.
        billing_address: Optional billing address.
        line_items: Ordered line items, unique by listing id.
        status: Current order status.
        tax: Tax charged on top of the subtotal.
        shipping: Shipping charged on top of the subtotal.
        payment: Payment record, set on confirmation.
        shipment_tracking: Tracking info, set on shipment.
        cancelled_at: Cancellation timestamp.
        cancel_reason: Optional cancellation reason.
    """

    customer_id: str
    shipping_address: Address
    billing_address: Address | None = None
    line_items: tuple[OrderLineItem, ...] = ()
    status: OrderStatus = OrderStatus.DRAFT
    tax: Money = field(default_factory=Money.zero)
    shipping: Money = field(default_factory=Money.zero)
    payment: Payment | None = None
    shipment_tracking: ShipmentTracking | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None

    def __post_init__(self) -> None:
        """Check line item uniqueness and currency consistency."""
        listing_ids = [item.listing_id for item in self.line_items]
        if len(listing_ids) != len(set(listing_ids)):
            raise ValidationError("line_items", "listing ids must be unique")
        if self.tax.currency != self.shipping.currency:
            raise CurrencyMismatchError(self.tax.currency, self.shipping.currency)

    @classmethod
    def create(
        cls,
        customer_id: str,
        shipping_address: Address,
        billing_address: Address | None = None,
        tax: Money | None = None,
        shipping: Money | None = None,
        order_id: str | None = None,
        currency: str = "USD",
    ) -> Self:
        """Create a new draft order.

        Args:
            customer_id: Customer placing the order.
            shipping_address: Where to ship.
            billing_address: Optional billing address.
            tax: Tax amount (defaults to zero).
            shipping: Shipping amount (defaults to zero).
            order_id: Optional explicit ID (for testing).
            currency: Currency used when tax/shipping are omitted.

        Returns:
            New Order with a pending OrderCreated event.

        Raises:
            ValidationError: If customer_id is blank.
        """
        if not customer_id or not customer_id.strip():
            raise ValidationError("customer_id", "is required")

        oid = order_id or new_id()
        order = cls(
            id=oid,
            customer_id=customer_id.strip(),
            shipping_address=shipping_address,
            billing_address=billing_address,
            tax=tax or Money.zero(currency),
            shipping=shipping or Money.zero(currency),
        )
        return order._evolve(
            OrderCreated(
                aggregate_id=oid,
                aggregate_type="Order",
                order_id=oid,
                customer_id=order.customer_id,
            ),
            updated_at=order.created_at,
        )

    # ------------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------------

    @property
    def currency(self) -> str:
        return self.tax.currency

    @property
    def subtotal(self) -> Money:
        """Sum of line item prices."""
        return Money.sum_of((item.price for item in self.line_items), self.currency)

    @property
    def total(self) -> Money:
        """Subtotal plus tax and shipping."""
        return self.subtotal + self.tax + self.shipping

    @property
    def listing_ids(self) -> list[str]:
        return [item.listing_id for item in self.line_items]

    @property
    def held_listing_ids(self) -> list[str]:
        """Listings this order believes it holds."""
        return [item.listing_id for item in self.line_items if item.status == LineItemStatus.HELD]

    @property
    def is_empty(self) -> bool:
        return not self.line_items

    def line_item(self, listing_id: str) -> OrderLineItem | None:
        """Find the line item for a listing.

        Args:
            listing_id: Listing to look up.

        Returns:
            OrderLineItem if present, None otherwise.
        """
        for item in self.line_items:
            if item.listing_id == listing_id:
                return item
        return None

    def is_checkout_expired(self, timeout_minutes: float, now: datetime | None = None) -> bool:
        """Check whether the checkout window has lapsed.

        Args:
            timeout_minutes: Checkout window length.
            now: Reference time (defaults to current UTC time).

        Returns:
            True if the order awaits payment and was last touched
            before ``now - timeout_minutes``.
        """
        if not self.status.is_awaiting_payment():
            return False
        cutoff = (now or utc_now()) - timedelta(minutes=timeout_minutes)
        return self.updated_at < cutoff

    # ------------------------------------------------------------------------
    # Line item editing
    # ------------------------------------------------------------------------

    def _require_editable(self) -> None:
        if not self.status.is_editable():
            raise OrderNotEditableError(self.id, self.status.value)

    def add_line_item(self, item: OrderLineItem) -> Self:
        """Add a listing snapshot to a draft order.

        Raises:
            OrderNotEditableError: If the order is not a draft.
            DuplicateLineItemError: If the listing is already in the order.
            CurrencyMismatchError: If the price is in another currency.
        """
        self._require_editable()
        if self.line_item(item.listing_id) is not None:
            raise DuplicateLineItemError(self.id, item.listing_id)
        if item.price.currency != self.currency:
            raise CurrencyMismatchError(self.currency, item.price.currency)
        return self._evolve(line_items=self.line_items + (item,))

    def remove_line_item(self, listing_id: str) -> Self:
        """Remove a listing from a draft order.

        Raises:
            OrderNotEditableError: If the order is not a draft.
            LineItemNotFoundError: If the listing is not in the order.
        """
        self._require_editable()
        if self.line_item(listing_id) is None:
            raise LineItemNotFoundError(self.id, listing_id)
        return self._evolve(
            line_items=tuple(item for item in self.line_items if item.listing_id != listing_id)
        )

    # ------------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------------

    def start_checkout(self) -> Self:
        """Move a non-empty draft order into checkout.

        Raises:
            InvalidStateTransitionError: If not in DRAFT.
            EmptyOrderError: If the order has no line items.
        """
        validate_order_transition(self.id, self.status, OrderStatus.CHECKING_OUT)
        if self.is_empty:
            raise EmptyOrderError(self.id)
        return self._evolve(status=OrderStatus.CHECKING_OUT)

    def confirm_holdings(self, held_listing_ids: Iterable[str]) -> Self:
        """Record that every listing of the order is held.

        Args:
            held_listing_ids: Listings successfully held for this order.

        Returns:
            Order in PAYMENT_PENDING with every line item HELD.

        Raises:
            InvalidStateTransitionError: If not in CHECKING_OUT.
            HoldsNotConfirmedError: If a line item's listing is missing.
        """
        validate_order_transition(self.id, self.status, OrderStatus.PAYMENT_PENDING)
        held = set(held_listing_ids)
        missing = [lid for lid in self.listing_ids if lid not in held]
        if missing:
            raise HoldsNotConfirmedError(self.id, missing)
        return self._evolve(
            OrderCheckoutStarted(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                listing_ids=tuple(self.listing_ids),
            ),
            status=OrderStatus.PAYMENT_PENDING,
            line_items=tuple(item.mark_held() for item in self.line_items),
        )

    def process_payment(self, method: PaymentMethod | str, transaction_id: str) -> Self:
        """Attach a completed payment and confirm the order.

        Args:
            method: Payment method used.
            transaction_id: Processor transaction reference.

        Returns:
            Confirmed order with every line item SOLD.

        Raises:
            InvalidStateTransitionError: If not in PAYMENT_PENDING.
            ValidationError: If transaction_id is blank.
        """
        validate_order_transition(self.id, self.status, OrderStatus.CONFIRMED)
        payment = Payment.create(method, self.total).complete(transaction_id)
        line_items = tuple(item.mark_sold() for item in self.line_items)
        return self._evolve(
            OrderPaymentProcessed(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                amount_cents=payment.amount.amount_cents,
                currency=payment.amount.currency,
                method=payment.method.value,
                transaction_id=payment.transaction_id or "",
            ),
            OrderConfirmed(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                customer_id=self.customer_id,
                line_items=tuple(item.to_snapshot() for item in line_items),
                shipping_address=_address_dict(self.shipping_address),
            ),
            status=OrderStatus.CONFIRMED,
            payment=payment,
            line_items=line_items,
        )

    def ship(self, carrier: str, tracking_number: str) -> Self:
        """Mark a confirmed order as shipped.

        Raises:
            InvalidStateTransitionError: If not in CONFIRMED.
            ValidationError: If carrier or tracking number is blank.
        """
        validate_order_transition(self.id, self.status, OrderStatus.SHIPPED)
        tracking = ShipmentTracking.create(carrier, tracking_number)
        return self._evolve(
            OrderShipped(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                carrier=tracking.carrier,
                tracking_number=tracking.tracking_number,
            ),
            status=OrderStatus.SHIPPED,
            shipment_tracking=tracking,
        )

    def mark_delivered(self) -> Self:
        """Mark a shipped order as delivered, completing it.

        Raises:
            InvalidStateTransitionError: If not in SHIPPED.
        """
        validate_order_transition(self.id, self.status, OrderStatus.COMPLETED)
        if self.shipment_tracking is None:
            raise ValidationError("shipment_tracking", "is required to mark delivery")
        tracking = self.shipment_tracking.mark_delivered()
        return self._evolve(
            OrderDelivered(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                delivered_at=tracking.delivered_at,
            ),
            status=OrderStatus.COMPLETED,
            shipment_tracking=tracking,
        )

    def cancel(self, reason: str | None = None) -> Self:
        """Cancel the order, releasing held line items.

        Args:
            reason: Optional cancellation reason.

        Returns:
            Cancelled order; HELD items become RELEASED.

        Raises:
            OrderNotCancellableError: If shipped, completed or already cancelled.
        """
        if not self.status.is_cancellable():
            raise OrderNotCancellableError(self.id, self.status.value)

        released = tuple(self.held_listing_ids)
        line_items = tuple(
            item.release() if item.status == LineItemStatus.HELD else item
            for item in self.line_items
        )
        return self._evolve(
            OrderCancelled(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                reason=reason,
                released_listing_ids=released,
            ),
            status=OrderStatus.CANCELLED,
            line_items=line_items,
            cancelled_at=utc_now(),
            cancel_reason=reason,
        )
