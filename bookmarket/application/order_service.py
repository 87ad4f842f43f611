"""Order application service.

Orchestrates the order lifecycle including:
- Creating draft orders and editing their line items
- The checkout saga: hold every listing or none
- Payment, shipment and delivery
- Cancellation, releasing whatever the order still holds
- Cancelling orders whose checkout window lapsed

Listings are only ever reached through a ``ListingClient``; the saga
keeps line item status and listing holds in agreement.
"""

from datetime import datetime
from functools import partial

import structlog

from bookmarket.application.event_bus import EventBus
from bookmarket.application.locking import KeyedLock
from bookmarket.application.saga import CompensationStack
from bookmarket.application.sweeper import SweepResult
from bookmarket.domain.base import utc_now
from bookmarket.domain.entities import Order, OrderLineItem
from bookmarket.domain.exceptions import (
    DomainError,
    ListingAlreadyHeldError,
    ListingNotFoundError,
    ListingNotHeldError,
    OrderNotFoundError,
)
from bookmarket.domain.state_machines import OrderStatus
from bookmarket.domain.value_objects import Address, Money, PaymentMethod
from bookmarket.infrastructure.listing_client import ListingClient
from bookmarket.infrastructure.order_repository import OrderRepository

logger = structlog.get_logger()

CHECKOUT_TIMEOUT_REASON = "Checkout timeout"


class OrderService:
    """Application service for managing orders.

    Every read-modify-write of one order runs under that order's lock.
    Domain errors propagate to the caller unchanged.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        listing_client: ListingClient,
        event_bus: EventBus,
        locks: KeyedLock | None = None,
        request_id: str | None = None,
    ) -> None:
        """Initialize service.

        Args:
            order_repo: Order storage.
            listing_client: Channel to the listing domain.
            event_bus: Bus receiving order events.
            locks: Per-order locks, shared by every service instance
                working on the same storage.
            request_id: Request ID for correlation.
        """
        self.order_repo = order_repo
        self.listing_client = listing_client
        self.event_bus = event_bus
        self.locks = locks or KeyedLock()
        self.request_id = request_id

    async def _save(self, order: Order) -> Order:
        """Persist an order and publish the events it raised."""
        events = order.collect_events()
        stored = await self.order_repo.save(order)
        await self.event_bus.publish(events)
        return stored

    async def _load(self, order_id: str) -> Order:
        order = await self.order_repo.find_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    # ========================================================================
    # Creation and queries
    # ========================================================================

    async def create_order(
        self,
        customer_id: str,
        shipping_address: Address,
        billing_address: Address | None = None,
        tax: Money | None = None,
        shipping: Money | None = None,
        currency: str = "USD",
    ) -> Order:
        """Create a draft order.

        Args:
            customer_id: Customer placing the order.
            shipping_address: Where to ship.
            billing_address: Optional billing address.
            tax: Tax amount (defaults to zero).
            shipping: Shipping amount (defaults to zero).
            currency: Currency used when tax/shipping are omitted.

        Returns:
            The stored draft order.
        """
        order = Order.create(
            customer_id=customer_id,
            shipping_address=shipping_address,
            billing_address=billing_address,
            tax=tax,
            shipping=shipping,
            currency=currency,
        )
        stored = await self._save(order)

        logger.info(
            "Order created",
            order_id=stored.id,
            customer_id=stored.customer_id,
            request_id=self.request_id,
        )
        return stored

    async def get_order(self, order_id: str) -> Order:
        """Get an order.

        Raises:
            OrderNotFoundError: If the order does not exist.
        """
        return await self._load(order_id)

    async def list_orders_for_customer(self, customer_id: str) -> list[Order]:
        """List a customer's orders, newest first."""
        return await self.order_repo.find_by_customer_id(customer_id)

    # ========================================================================
    # Line items
    # ========================================================================

    async def add_line_item(self, order_id: str, listing_id: str) -> Order:
        """Add a snapshot of a listing to a draft order.

        Raises:
            OrderNotFoundError: If the order does not exist.
            ListingNotFoundError: If the listing does not exist.
            OrderNotEditableError: If the order is not a draft.
            DuplicateLineItemError: If the listing is already in the order.
        """
        async with self.locks.hold(order_id):
            order = await self._load(order_id)
            snapshot = await self.listing_client.get_by_id(listing_id)
            if snapshot is None:
                raise ListingNotFoundError(listing_id)

            item = OrderLineItem.create(
                listing_id=snapshot.id,
                isbn=snapshot.isbn,
                title=snapshot.title,
                author=snapshot.author,
                condition=snapshot.condition,
                price=snapshot.listing_price,
            )
            stored = await self._save(order.add_line_item(item))

        logger.info(
            "Line item added",
            order_id=order_id,
            listing_id=listing_id,
            price_cents=item.price.amount_cents,
            request_id=self.request_id,
        )
        return stored

    async def remove_line_item(self, order_id: str, listing_id: str) -> Order:
        """Remove a listing from a draft order.

        Raises:
            OrderNotFoundError: If the order does not exist.
            OrderNotEditableError: If the order is not a draft.
            LineItemNotFoundError: If the listing is not in the order.
        """
        async with self.locks.hold(order_id):
            order = await self._load(order_id)
            stored = await self._save(order.remove_line_item(listing_id))

        logger.info(
            "Line item removed",
            order_id=order_id,
            listing_id=listing_id,
            request_id=self.request_id,
        )
        return stored

    # ========================================================================
    # Checkout saga
    # ========================================================================

    async def checkout(self, order_id: str) -> Order:
        """Hold every listing of the order, or none of them.

        The order is stored in CHECKING_OUT before any hold is attempted.
        Listings are then held in line item order; each success registers
        its release. If a hold fails, the holds taken so far are released
        and the original error is re-raised with ``order_status`` and
        ``rolled_back_listing_ids`` added to its details. The order stays
        in CHECKING_OUT, and calling checkout again retries the holds.

        Args:
            order_id: Order to check out.

        Returns:
            Order in PAYMENT_PENDING with every line item HELD.

        Raises:
            OrderNotFoundError: If the order does not exist.
            InvalidStateTransitionError: If the order is neither a draft
                nor already checking out.
            EmptyOrderError: If the order has no line items.
            ListingError: If a hold failed (after rollback).
        """
        async with self.locks.hold(order_id):
            order = await self._load(order_id)
            if order.status != OrderStatus.CHECKING_OUT:
                order = await self._save(order.start_checkout())
            else:
                logger.info(
                    "Resuming checkout",
                    order_id=order_id,
                    request_id=self.request_id,
                )

            stack = CompensationStack("checkout", order_id, request_id=self.request_id)
            held: list[str] = []
            try:
                for item in order.line_items:
                    await self._hold(item.listing_id, order_id)
                    held.append(item.listing_id)
                    stack.push(
                        item.listing_id,
                        partial(self.listing_client.release_hold, item.listing_id),
                    )
                stored = await self._save(order.confirm_holdings(held))
            except Exception as e:
                unwound = await stack.unwind()
                logger.warning(
                    "Checkout failed, holds rolled back",
                    order_id=order_id,
                    error=str(e),
                    rolled_back_listing_ids=unwound.compensated,
                    release_failed_listing_ids=list(unwound.failed),
                    request_id=self.request_id,
                )
                if isinstance(e, DomainError):
                    e.details["order_status"] = OrderStatus.CHECKING_OUT.value
                    e.details["rolled_back_listing_ids"] = unwound.compensated
                    if unwound.failed:
                        e.details["release_failed_listing_ids"] = list(unwound.failed)
                raise

        logger.info(
            "Checkout completed",
            order_id=order_id,
            listing_ids=held,
            total_cents=stored.total.amount_cents,
            request_id=self.request_id,
        )
        return stored

    async def _hold(self, listing_id: str, order_id: str) -> None:
        """Hold one listing, accepting a hold this order already has.

        A hold can outlive an interrupted checkout; resuming treats it as
        taken by this pass.
        """
        try:
            await self.listing_client.hold_for_order(listing_id, order_id)
        except ListingAlreadyHeldError as e:
            if e.details.get("held_by_order_id") != order_id:
                raise

    # ========================================================================
    # Payment and fulfilment
    # ========================================================================

    async def process_payment(
        self,
        order_id: str,
        method: PaymentMethod | str,
        transaction_id: str,
    ) -> Order:
        """Record a completed payment and sell every listing of the order.

        Args:
            order_id: Order being paid.
            method: Payment method.
            transaction_id: Processor transaction reference.

        Returns:
            Confirmed order with every line item SOLD.

        Raises:
            OrderNotFoundError: If the order does not exist.
            InvalidStateTransitionError: If not in PAYMENT_PENDING.
            ListingNotFoundError: If a listing no longer exists.
            ListingNotHeldError: If a listing is not held for this order.
                No listing is sold in that case.
        """
        async with self.locks.hold(order_id):
            order = await self._load(order_id)
            confirmed = order.process_payment(method, transaction_id)

            # every hold is checked before the first sale
            for listing_id in order.listing_ids:
                await self._require_hold(listing_id, order_id)
            for listing_id in order.listing_ids:
                await self.listing_client.mark_sold(listing_id)

            stored = await self._save(confirmed)

        logger.info(
            "Payment processed",
            order_id=order_id,
            amount_cents=stored.total.amount_cents,
            method=stored.payment.method.value if stored.payment else None,
            request_id=self.request_id,
        )
        return stored

    async def _require_hold(self, listing_id: str, order_id: str) -> None:
        snapshot = await self.listing_client.get_by_id(listing_id)
        if snapshot is None:
            raise ListingNotFoundError(listing_id)
        if snapshot.held_by_order_id != order_id:
            raise ListingNotHeldError(listing_id, snapshot.status.value)

    async def mark_shipped(self, order_id: str, carrier: str, tracking_number: str) -> Order:
        """Attach tracking and mark a confirmed order shipped."""
        async with self.locks.hold(order_id):
            order = await self._load(order_id)
            stored = await self._save(order.ship(carrier, tracking_number))

        logger.info(
            "Order shipped",
            order_id=order_id,
            carrier=carrier,
            tracking_number=tracking_number,
            request_id=self.request_id,
        )
        return stored

    async def mark_delivered(self, order_id: str) -> Order:
        async with self.locks.hold(order_id):
            order = await self._load(order_id)
            stored = await self._save(order.mark_delivered())

        logger.info("Order delivered", order_id=order_id, request_id=self.request_id)
        return stored

    # ========================================================================
    # Cancellation
    # ========================================================================

    async def cancel_order(self, order_id: str, reason: str | None = None) -> Order:
        """Cancel an order, releasing the listings it holds.

        Releases are best effort: a failed release is logged and the
        cancellation still goes through.

        Raises:
            OrderNotFoundError: If the order does not exist.
            OrderNotCancellableError: If shipped, completed or cancelled.
        """
        async with self.locks.hold(order_id):
            order = await self._load(order_id)
            return await self._cancel(order, reason)

    async def _cancel(self, order: Order, reason: str | None) -> Order:
        cancelled = order.cancel(reason)

        # an interrupted checkout can leave holds the order never recorded
        if order.status == OrderStatus.CHECKING_OUT:
            candidates = order.listing_ids
        else:
            candidates = list(order.held_listing_ids)
        to_release = await self._held_by(order, candidates)

        released: list[str] = []
        for listing_id in to_release:
            try:
                await self.listing_client.release_hold(listing_id)
                released.append(listing_id)
            except Exception as e:
                logger.warning(
                    "Failed to release listing on cancel",
                    order_id=order.id,
                    listing_id=listing_id,
                    error=str(e),
                    request_id=self.request_id,
                )

        stored = await self._save(cancelled)

        logger.info(
            "Order cancelled",
            order_id=order.id,
            reason=reason,
            released_listing_ids=released,
            request_id=self.request_id,
        )
        return stored

    async def _held_by(self, order: Order, listing_ids: list[str]) -> list[str]:
        """Keep the listings currently held for ``order``.

        A hold that expired may since have been taken by another order;
        those listings are left alone.
        """
        held: list[str] = []
        for listing_id in listing_ids:
            try:
                snapshot = await self.listing_client.get_by_id(listing_id)
            except DomainError as e:
                logger.warning(
                    "Failed to look up listing on cancel",
                    order_id=order.id,
                    listing_id=listing_id,
                    error=str(e),
                    request_id=self.request_id,
                )
                continue
            if snapshot is not None and snapshot.held_by_order_id == order.id:
                held.append(listing_id)
        return held

    # ========================================================================
    # Expiry sweep
    # ========================================================================

    async def release_expired_checkouts(
        self,
        timeout_minutes: float,
        now: datetime | None = None,
    ) -> SweepResult:
        """Cancel every order whose checkout window lapsed.

        Each order is re-read under its lock and skipped if it moved on
        since the scan. One order's failure is logged and does not stop
        the sweep.

        Args:
            timeout_minutes: Checkout window length.
            now: Reference time (defaults to current UTC time).

        Returns:
            SweepResult with cancelled and failed order IDs.
        """
        now = now or utc_now()
        result = SweepResult()

        for candidate in await self.order_repo.find_expired_checkouts(timeout_minutes, now):
            try:
                async with self.locks.hold(candidate.id):
                    order = await self._load(candidate.id)
                    if not order.is_checkout_expired(timeout_minutes, now):
                        continue
                    await self._cancel(order, CHECKOUT_TIMEOUT_REASON)
                result.processed_ids.append(candidate.id)
            except Exception as e:
                result.failed_ids.append(candidate.id)
                logger.warning(
                    "Failed to cancel expired checkout",
                    order_id=candidate.id,
                    error=str(e),
                )

        if result.processed_ids or result.failed_ids:
            logger.info(
                "Order sweep finished",
                cancelled=len(result.processed_ids),
                failed=len(result.failed_ids),
            )
        return result
