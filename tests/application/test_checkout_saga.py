"""Tests for the checkout saga: all holds or none."""

import asyncio
from collections.abc import Awaitable, Callable

import pytest

from bookmarket.application import EventBus, ListingService, OrderService
from bookmarket.domain import (
    Address,
    DomainEvent,
    EmptyOrderError,
    InvalidStateTransitionError,
    LineItemStatus,
    Listing,
    ListingAlreadyHeldError,
    ListingClientError,
    ListingNotAvailableError,
    ListingStatus,
    Money,
    Order,
    OrderCheckoutStarted,
    OrderStatus,
)
from bookmarket.infrastructure.listing_client import InProcessListingClient
from bookmarket.infrastructure.order_repository import InMemoryOrderRepository

SeedListing = Callable[..., Awaitable[Listing]]
DraftOrder = Callable[..., Awaitable[Order]]


class FailingReleaseClient(InProcessListingClient):
    """In-process client whose release fails for selected listings."""

    def __init__(self, listing_service: ListingService, failing_ids: set[str]) -> None:
        super().__init__(listing_service)
        self.failing_ids = failing_ids

    async def release_hold(self, listing_id: str) -> None:
        if listing_id in self.failing_ids:
            raise ListingClientError("listing service unavailable", 503)
        await super().release_hold(listing_id)


class TestCheckoutSuccess:
    """Tests for checkouts where every hold succeeds."""

    @pytest.mark.asyncio
    async def test_single_item_checkout(
        self,
        order_service: OrderService,
        listing_service: ListingService,
        seed_listing: SeedListing,
        draft_order: DraftOrder,
    ) -> None:
        """Checkout holds the listing and prices the order."""
        listing = await seed_listing(price_cents=1999)
        order = await draft_order(listing.id, tax_cents=160, shipping_cents=399)

        result = await order_service.checkout(order.id)

        assert result.status == OrderStatus.PAYMENT_PENDING
        assert result.subtotal == Money(1999)
        assert result.total == Money(2558)
        assert result.line_items[0].status == LineItemStatus.HELD
        held = await listing_service.get_listing(listing.id)
        assert held.status == ListingStatus.HELD
        assert held.held_by_order_id == order.id

    @pytest.mark.asyncio
    async def test_checkout_publishes_checkout_started(
        self,
        order_service: OrderService,
        seed_listing: SeedListing,
        draft_order: DraftOrder,
        published: list[DomainEvent],
    ) -> None:
        """Listing holds are published before the order event."""
        a = await seed_listing()
        b = await seed_listing()
        order = await draft_order(a.id, b.id)
        published.clear()

        await order_service.checkout(order.id)

        types = [event.event_type for event in published]
        assert types == ["listing.held", "listing.held", "order.checkout_started"]
        started = published[-1]
        assert isinstance(started, OrderCheckoutStarted)
        assert started.listing_ids == (a.id, b.id)

    @pytest.mark.asyncio
    async def test_empty_order_cannot_checkout(
        self,
        order_service: OrderService,
        draft_order: DraftOrder,
    ) -> None:
        """Checkout of an empty order fails before any hold."""
        order = await draft_order()
        with pytest.raises(EmptyOrderError):
            await order_service.checkout(order.id)
        assert (await order_service.get_order(order.id)).status == OrderStatus.DRAFT

    @pytest.mark.asyncio
    async def test_checkout_twice_fails(
        self,
        order_service: OrderService,
        seed_listing: SeedListing,
        draft_order: DraftOrder,
    ) -> None:
        """A payment-pending order cannot be checked out again."""
        listing = await seed_listing()
        order = await draft_order(listing.id)
        await order_service.checkout(order.id)

        with pytest.raises(InvalidStateTransitionError):
            await order_service.checkout(order.id)


class TestCheckoutRollback:
    """Tests for compensation when a hold fails."""

    @pytest.mark.asyncio
    async def test_failed_hold_releases_earlier_holds(
        self,
        order_service: OrderService,
        listing_service: ListingService,
        seed_listing: SeedListing,
        draft_order: DraftOrder,
    ) -> None:
        """When the third hold fails the first two are released."""
        a = await seed_listing()
        b = await seed_listing()
        c = await seed_listing()
        order = await draft_order(a.id, b.id, c.id)
        await listing_service.withdraw(c.id, "damaged")

        with pytest.raises(ListingNotAvailableError) as exc_info:
            await order_service.checkout(order.id)

        details = exc_info.value.details
        assert details["order_status"] == "checking_out"
        assert details["rolled_back_listing_ids"] == [b.id, a.id]
        assert "release_failed_listing_ids" not in details

        for listing_id in (a.id, b.id):
            listing = await listing_service.get_listing(listing_id)
            assert listing.status == ListingStatus.AVAILABLE
            assert listing.held_by_order_id is None

        stored = await order_service.get_order(order.id)
        assert stored.status == OrderStatus.CHECKING_OUT
        assert all(item.status == LineItemStatus.PENDING for item in stored.line_items)

    @pytest.mark.asyncio
    async def test_listing_held_by_another_order(
        self,
        order_service: OrderService,
        listing_service: ListingService,
        seed_listing: SeedListing,
        draft_order: DraftOrder,
    ) -> None:
        """A listing held elsewhere fails the checkout and frees the rest."""
        l1 = await seed_listing()
        l2 = await seed_listing()
        order = await draft_order(l1.id, l2.id)
        await listing_service.hold_for_order(l2.id, "other-order")

        with pytest.raises(ListingAlreadyHeldError) as exc_info:
            await order_service.checkout(order.id)

        assert exc_info.value.details["held_by_order_id"] == "other-order"
        assert exc_info.value.details["rolled_back_listing_ids"] == [l1.id]
        assert (await listing_service.get_listing(l1.id)).status == ListingStatus.AVAILABLE
        assert (await listing_service.get_listing(l2.id)).held_by_order_id == "other-order"

    @pytest.mark.asyncio
    async def test_retry_after_failure(
        self,
        order_service: OrderService,
        listing_service: ListingService,
        seed_listing: SeedListing,
        draft_order: DraftOrder,
    ) -> None:
        """Checkout resumes from CHECKING_OUT once the conflict clears."""
        l1 = await seed_listing()
        l2 = await seed_listing()
        order = await draft_order(l1.id, l2.id)
        await listing_service.hold_for_order(l2.id, "other-order")
        with pytest.raises(ListingAlreadyHeldError):
            await order_service.checkout(order.id)

        await listing_service.release_hold(l2.id)
        result = await order_service.checkout(order.id)

        assert result.status == OrderStatus.PAYMENT_PENDING
        assert result.held_listing_ids == [l1.id, l2.id]

    @pytest.mark.asyncio
    async def test_resume_accepts_holds_already_taken(
        self,
        order_service: OrderService,
        listing_service: ListingService,
        seed_listing: SeedListing,
        draft_order: DraftOrder,
    ) -> None:
        """A hold left behind by an interrupted pass counts as taken."""
        listing = await seed_listing()
        order = await draft_order(listing.id)
        await listing_service.hold_for_order(listing.id, order.id)

        result = await order_service.checkout(order.id)

        assert result.status == OrderStatus.PAYMENT_PENDING
        assert (await listing_service.get_listing(listing.id)).held_by_order_id == order.id

    @pytest.mark.asyncio
    async def test_failed_release_is_reported(
        self,
        listing_service: ListingService,
        event_bus: EventBus,
        seed_listing: SeedListing,
        address: Address,
    ) -> None:
        """A release that fails during rollback is listed in the error details."""
        a = await seed_listing()
        b = await seed_listing()
        blocked = await seed_listing()
        service = OrderService(
            order_repo=InMemoryOrderRepository(),
            listing_client=FailingReleaseClient(listing_service, failing_ids={a.id}),
            event_bus=event_bus,
        )
        order = await service.create_order(customer_id="c1", shipping_address=address)
        for listing_id in (a.id, b.id, blocked.id):
            order = await service.add_line_item(order.id, listing_id)
        await listing_service.hold_for_order(blocked.id, "other-order")

        with pytest.raises(ListingAlreadyHeldError) as exc_info:
            await service.checkout(order.id)

        details = exc_info.value.details
        assert details["rolled_back_listing_ids"] == [b.id]
        assert details["release_failed_listing_ids"] == [a.id]
        assert (await listing_service.get_listing(b.id)).status == ListingStatus.AVAILABLE
        assert (await listing_service.get_listing(a.id)).held_by_order_id == order.id


class TestCheckoutConcurrency:
    """Tests for competing checkouts."""

    @pytest.mark.asyncio
    async def test_at_most_one_order_holds_a_listing(
        self,
        order_service: OrderService,
        listing_service: ListingService,
        seed_listing: SeedListing,
        draft_order: DraftOrder,
    ) -> None:
        """Of two concurrent checkouts for one listing, exactly one wins.

        Each order also holds a listing of its own first, so the loser has
        a partial hold to roll back.
        """
        listing = await seed_listing()
        first_own = await seed_listing(title="Emma")
        second_own = await seed_listing(title="Ulysses")
        first = await draft_order(first_own.id, listing.id)
        second = await draft_order(second_own.id, listing.id)
        own = {first.id: first_own.id, second.id: second_own.id}

        results = await asyncio.gather(
            order_service.checkout(first.id),
            order_service.checkout(second.id),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, Order)]
        losers = [r for r in results if isinstance(r, ListingAlreadyHeldError)]
        assert len(winners) == 1
        assert len(losers) == 1
        held = await listing_service.get_listing(listing.id)
        assert held.held_by_order_id == winners[0].id

        winner_id = winners[0].id
        loser_id = second.id if winner_id == first.id else first.id
        assert losers[0].details["rolled_back_listing_ids"] == [own[loser_id]]
        loser_own = await listing_service.get_listing(own[loser_id])
        assert loser_own.status == ListingStatus.AVAILABLE
        assert loser_own.held_by_order_id is None
        winner_own = await listing_service.get_listing(own[winner_id])
        assert winner_own.held_by_order_id == winner_id
