"""Tests for the Order aggregate and its line items."""

from datetime import timedelta

import pytest

from bookmarket.domain import (
    Address,
    CurrencyMismatchError,
    DuplicateLineItemError,
    EmptyOrderError,
    HoldsNotConfirmedError,
    InvalidStateTransitionError,
    LineItemNotFoundError,
    LineItemStatus,
    Money,
    Order,
    OrderCancelled,
    OrderCheckoutStarted,
    OrderConfirmed,
    OrderCreated,
    OrderDelivered,
    OrderLineItem,
    OrderNotCancellableError,
    OrderNotEditableError,
    OrderPaymentProcessed,
    OrderShipped,
    OrderStatus,
    PaymentStatus,
    ValidationError,
)
from bookmarket.domain.base import utc_now


def line_item(listing_id: str = "L1", price_cents: int = 1999, currency: str = "USD") -> OrderLineItem:
    return OrderLineItem.create(
        listing_id=listing_id,
        isbn="9780441013593",
        title="Dune",
        author="Frank Herbert",
        condition="good",
        price=Money(price_cents, currency),
    )


@pytest.fixture
def draft(address: Address) -> Order:
    """A draft order with two items, tax and shipping."""
    order = Order.create(
        customer_id="c1",
        shipping_address=address,
        tax=Money(160),
        shipping=Money(399),
        order_id="O1",
    )
    return order.add_line_item(line_item("L1", 1999)).add_line_item(line_item("L2", 1000))


@pytest.fixture
def pending(draft: Order) -> Order:
    """An order whose listings are all held."""
    return draft.start_checkout().confirm_holdings(["L1", "L2"])


class TestOrderLineItem:
    """Tests for OrderLineItem."""

    def test_create_is_pending(self) -> None:
        """New line items have not been held yet."""
        item = line_item()
        assert item.status == LineItemStatus.PENDING
        assert item.to_snapshot()["price_cents"] == 1999

    def test_blank_listing_id_raises(self) -> None:
        """Listing id is required."""
        with pytest.raises(ValidationError):
            OrderLineItem.create("", "1", "T", "A", "good", Money(1))

    def test_cannot_sell_pending_item(self) -> None:
        """Line items are sold only after being held."""
        with pytest.raises(InvalidStateTransitionError):
            line_item().mark_sold()


class TestOrderCreate:
    """Tests for creating orders."""

    def test_create(self, address: Address) -> None:
        """New orders are empty drafts."""
        order = Order.create(customer_id="c1", shipping_address=address)

        assert order.status == OrderStatus.DRAFT
        assert order.is_empty
        assert order.total == Money.zero()
        assert isinstance(order.collect_events()[0], OrderCreated)

    def test_blank_customer_raises(self, address: Address) -> None:
        """Customer is required."""
        with pytest.raises(ValidationError):
            Order.create(customer_id="", shipping_address=address)

    def test_tax_and_shipping_currency_must_match(self, address: Address) -> None:
        """Extra charges share one currency."""
        with pytest.raises(CurrencyMismatchError):
            Order.create(
                customer_id="c1",
                shipping_address=address,
                tax=Money(1, "USD"),
                shipping=Money(1, "EUR"),
            )


class TestOrderLineItems:
    """Tests for editing line items."""

    def test_totals(self, draft: Order) -> None:
        """Total is subtotal plus tax plus shipping."""
        assert draft.subtotal == Money(2999)
        assert draft.total == Money(2999 + 160 + 399)

    def test_duplicate_listing_raises(self, draft: Order) -> None:
        """A listing appears at most once per order."""
        with pytest.raises(DuplicateLineItemError):
            draft.add_line_item(line_item("L1"))

    def test_currency_mismatch_raises(self, draft: Order) -> None:
        """Items must be priced in the order currency."""
        with pytest.raises(CurrencyMismatchError):
            draft.add_line_item(line_item("L3", currency="EUR"))

    def test_remove(self, draft: Order) -> None:
        """Removing an item updates totals."""
        order = draft.remove_line_item("L2")
        assert order.listing_ids == ["L1"]
        assert order.subtotal == Money(1999)

    def test_remove_missing_raises(self, draft: Order) -> None:
        """Removing an unknown listing fails."""
        with pytest.raises(LineItemNotFoundError):
            draft.remove_line_item("L9")

    def test_items_frozen_after_checkout(self, draft: Order) -> None:
        """Only drafts are editable."""
        checking_out = draft.start_checkout()
        with pytest.raises(OrderNotEditableError):
            checking_out.add_line_item(line_item("L3"))
        with pytest.raises(OrderNotEditableError):
            checking_out.remove_line_item("L1")


class TestOrderCheckout:
    """Tests for checkout transitions."""

    def test_empty_order_cannot_checkout(self, address: Address) -> None:
        """Checkout requires at least one item."""
        with pytest.raises(EmptyOrderError):
            Order.create(customer_id="c1", shipping_address=address).start_checkout()

    def test_confirm_holdings(self, draft: Order) -> None:
        """Confirming holdings marks every item held."""
        order = draft.start_checkout().confirm_holdings(["L2", "L1"])

        assert order.status == OrderStatus.PAYMENT_PENDING
        assert order.held_listing_ids == ["L1", "L2"]
        event = order.collect_events()[-1]
        assert isinstance(event, OrderCheckoutStarted)
        assert event.listing_ids == ("L1", "L2")

    def test_confirm_holdings_missing_raises(self, draft: Order) -> None:
        """Every line item needs a hold."""
        with pytest.raises(HoldsNotConfirmedError) as exc_info:
            draft.start_checkout().confirm_holdings(["L1"])
        assert exc_info.value.details["missing_listing_ids"] == ["L2"]

    def test_confirm_holdings_from_draft_raises(self, draft: Order) -> None:
        """Holdings are confirmed only during checkout."""
        with pytest.raises(InvalidStateTransitionError):
            draft.confirm_holdings(["L1", "L2"])

    def test_checkout_expiry(self, draft: Order) -> None:
        """Checkout expiry is measured from the last update."""
        order = draft.start_checkout()
        later = order.updated_at + timedelta(minutes=16)

        assert order.is_checkout_expired(15, now=later)
        assert not order.is_checkout_expired(15, now=order.updated_at)
        assert not draft.is_checkout_expired(15, now=later)


class TestOrderFulfillment:
    """Tests for payment, shipment and delivery."""

    def test_process_payment(self, pending: Order) -> None:
        """Payment confirms the order and sells every item."""
        order = pending.process_payment("credit_card", "txn-1")

        assert order.status == OrderStatus.CONFIRMED
        assert order.payment is not None
        assert order.payment.status == PaymentStatus.COMPLETED
        assert order.payment.amount == pending.total
        assert all(item.status == LineItemStatus.SOLD for item in order.line_items)
        processed, confirmed = order.collect_events()[-2:]
        assert isinstance(processed, OrderPaymentProcessed)
        assert processed.amount_cents == pending.total.amount_cents
        assert isinstance(confirmed, OrderConfirmed)
        assert len(confirmed.line_items) == 2
        assert confirmed.shipping_address["city"] == "Portland"

    def test_payment_requires_holds(self, draft: Order) -> None:
        """Payment before checkout is rejected."""
        with pytest.raises(InvalidStateTransitionError):
            draft.process_payment("credit_card", "txn-1")

    def test_ship_and_deliver(self, pending: Order) -> None:
        """Confirmed orders ship and then complete."""
        shipped = pending.process_payment("paypal", "txn-1").ship("USPS", "9400")
        assert shipped.status == OrderStatus.SHIPPED
        assert isinstance(shipped.collect_events()[-1], OrderShipped)

        delivered = shipped.mark_delivered()
        assert delivered.status == OrderStatus.COMPLETED
        assert delivered.shipment_tracking is not None
        assert delivered.shipment_tracking.is_delivered
        assert isinstance(delivered.collect_events()[-1], OrderDelivered)

    def test_ship_before_payment_raises(self, pending: Order) -> None:
        """Only confirmed orders ship."""
        with pytest.raises(InvalidStateTransitionError):
            pending.ship("USPS", "9400")


class TestOrderCancel:
    """Tests for cancelling orders."""

    def test_cancel_releases_held_items(self, pending: Order) -> None:
        """Cancellation releases held items and lists them in the event."""
        before = utc_now()
        cancelled = pending.cancel("changed my mind")

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancel_reason == "changed my mind"
        assert cancelled.cancelled_at is not None and cancelled.cancelled_at >= before
        assert all(item.status == LineItemStatus.RELEASED for item in cancelled.line_items)
        event = cancelled.collect_events()[-1]
        assert isinstance(event, OrderCancelled)
        assert event.released_listing_ids == ("L1", "L2")

    def test_cancel_draft_releases_nothing(self, draft: Order) -> None:
        """Pending items stay pending on cancellation."""
        cancelled = draft.cancel()
        assert cancelled.collect_events()[-1].released_listing_ids == ()
        assert all(item.status == LineItemStatus.PENDING for item in cancelled.line_items)

    def test_cancel_cancelled_raises(self, draft: Order) -> None:
        """Cancellation is not repeatable."""
        with pytest.raises(OrderNotCancellableError):
            draft.cancel().cancel()

    def test_cancel_shipped_raises(self, pending: Order) -> None:
        """Shipped orders cannot be cancelled."""
        shipped = pending.process_payment("paypal", "txn-1").ship("UPS", "1Z")
        with pytest.raises(OrderNotCancellableError):
            shipped.cancel()
