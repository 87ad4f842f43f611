"""Tests for the reservation sweeps."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta

import pytest

from bookmarket.application import EventBus, ListingService, OrderService, ReservationSweeper
from bookmarket.application.order_service import CHECKOUT_TIMEOUT_REASON
from bookmarket.domain import (
    Address,
    BookInfo,
    DomainEvent,
    Listing,
    ListingHoldReleased,
    ListingStatus,
    Money,
    Order,
    OrderCancelled,
    OrderStatus,
)
from bookmarket.domain.base import utc_now
from bookmarket.infrastructure.listing_client import InProcessListingClient
from bookmarket.infrastructure.listing_repository import InMemoryListingRepository
from bookmarket.infrastructure.order_repository import InMemoryOrderRepository

SeedListing = Callable[..., Awaitable[Listing]]
DraftOrder = Callable[..., Awaitable[Order]]


class FlakyListingRepository(InMemoryListingRepository):
    """Listing storage that rejects saves for selected listings."""

    def __init__(self) -> None:
        super().__init__()
        self.failing_ids: set[str] = set()

    async def save(self, listing: Listing) -> Listing:
        if listing.id in self.failing_ids:
            raise RuntimeError("storage unavailable")
        return await super().save(listing)


class FlakyOrderRepository(InMemoryOrderRepository):
    """Order storage that rejects saves for selected orders."""

    def __init__(self) -> None:
        super().__init__()
        self.failing_ids: set[str] = set()

    async def save(self, order: Order) -> Order:
        if order.id in self.failing_ids:
            raise RuntimeError("storage unavailable")
        return await super().save(order)


class TestListingSweep:
    """Tests for releasing expired listing holds."""

    @pytest.mark.asyncio
    async def test_expired_hold_is_released_once(
        self,
        listing_service: ListingService,
        seed_listing: SeedListing,
        published: list[DomainEvent],
    ) -> None:
        """An already-expired hold goes back to available with one event."""
        listing = await seed_listing()
        await listing_service.hold_for_order(listing.id, "O1", duration_minutes=-1)

        result = await listing_service.release_expired_holds()
        again = await listing_service.release_expired_holds()

        assert result.processed_ids == [listing.id]
        assert again.processed_ids == []
        released = await listing_service.get_listing(listing.id)
        assert released.status == ListingStatus.AVAILABLE
        assert released.held_by_order_id is None
        events = [e for e in published if isinstance(e, ListingHoldReleased)]
        assert len(events) == 1
        assert events[0].previous_order_id == "O1"

    @pytest.mark.asyncio
    async def test_live_hold_is_kept(
        self,
        listing_service: ListingService,
        seed_listing: SeedListing,
    ) -> None:
        """Holds inside their window are untouched."""
        listing = await seed_listing()
        await listing_service.hold_for_order(listing.id, "O1")

        result = await listing_service.release_expired_holds()

        assert result.processed_ids == []
        assert (await listing_service.get_listing(listing.id)).status == ListingStatus.HELD

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_sweep(
        self,
        event_bus: EventBus,
        make_book: Callable[..., BookInfo],
    ) -> None:
        """One listing's failure is recorded and the others still release."""
        repo = FlakyListingRepository()
        service = ListingService(repo, event_bus)
        ids = []
        for title in ("A", "B"):
            listing = await service.create_listing(make_book(title=title), "a1", "p1", Money(100))
            await service.hold_for_order(listing.id, "O1", duration_minutes=-1)
            ids.append(listing.id)
        repo.failing_ids = {ids[0]}

        result = await service.release_expired_holds()

        assert result.failed_ids == [ids[0]]
        assert result.processed_ids == [ids[1]]
        assert (await service.get_listing(ids[0])).status == ListingStatus.HELD
        assert (await service.get_listing(ids[1])).status == ListingStatus.AVAILABLE


class TestOrderSweep:
    """Tests for cancelling expired checkouts."""

    @pytest.mark.asyncio
    async def test_expired_checkout_is_cancelled(
        self,
        order_service: OrderService,
        listing_service: ListingService,
        seed_listing: SeedListing,
        draft_order: DraftOrder,
        published: list[DomainEvent],
    ) -> None:
        """Lapsed checkouts are cancelled and their holds released."""
        listing = await seed_listing()
        order = await draft_order(listing.id)
        await order_service.checkout(order.id)

        result = await order_service.release_expired_checkouts(
            15, now=utc_now() + timedelta(minutes=16)
        )

        assert result.processed_ids == [order.id]
        cancelled = await order_service.get_order(order.id)
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancel_reason == CHECKOUT_TIMEOUT_REASON == "Checkout timeout"
        assert (await listing_service.get_listing(listing.id)).status == ListingStatus.AVAILABLE
        event = published[-1]
        assert isinstance(event, OrderCancelled)
        assert event.reason == "Checkout timeout"

    @pytest.mark.asyncio
    async def test_fresh_checkout_is_kept(
        self,
        order_service: OrderService,
        seed_listing: SeedListing,
        draft_order: DraftOrder,
    ) -> None:
        """Checkouts inside their window and draft orders are untouched."""
        listing = await seed_listing()
        order = await draft_order(listing.id)
        await order_service.checkout(order.id)
        draft = await draft_order()

        result = await order_service.release_expired_checkouts(15)

        assert result.processed_ids == []
        assert (await order_service.get_order(order.id)).status == OrderStatus.PAYMENT_PENDING
        assert (await order_service.get_order(draft.id)).status == OrderStatus.DRAFT

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_sweep(
        self,
        listing_service: ListingService,
        event_bus: EventBus,
        seed_listing: SeedListing,
        address: Address,
    ) -> None:
        """One order's failure is recorded and the others are still cancelled."""
        repo = FlakyOrderRepository()
        service = OrderService(repo, InProcessListingClient(listing_service), event_bus)
        ids = []
        for _ in range(2):
            listing = await seed_listing()
            order = await service.create_order(customer_id="c1", shipping_address=address)
            await service.add_line_item(order.id, listing.id)
            await service.checkout(order.id)
            ids.append(order.id)
        repo.failing_ids = {ids[0]}

        result = await service.release_expired_checkouts(15, now=utc_now() + timedelta(minutes=16))

        assert result.failed_ids == [ids[0]]
        assert result.processed_ids == [ids[1]]
        assert (await service.get_order(ids[1])).status == OrderStatus.CANCELLED


class TestReservationSweeper:
    """Tests for the combined sweeper."""

    @pytest.mark.asyncio
    async def test_run_once_sweeps_listings_then_orders(
        self,
        order_service: OrderService,
        listing_service: ListingService,
        seed_listing: SeedListing,
        draft_order: DraftOrder,
    ) -> None:
        """Both expired holds and expired checkouts are reconciled in one tick."""
        listing = await seed_listing()
        order = await draft_order(listing.id)
        await order_service.checkout(order.id)
        sweeper = ReservationSweeper(listing_service, order_service, hold_duration_minutes=15)

        report = await sweeper.run_once(now=utc_now() + timedelta(minutes=16))

        assert report.listings.processed_ids == [listing.id]
        assert report.orders.processed_ids == [order.id]
        assert (await listing_service.get_listing(listing.id)).status == ListingStatus.AVAILABLE
        assert (await order_service.get_order(order.id)).status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_start_and_stop(
        self,
        order_service: OrderService,
        listing_service: ListingService,
    ) -> None:
        """The background task runs until stopped."""
        sweeper = ReservationSweeper(
            listing_service, order_service, hold_duration_minutes=15, interval_seconds=0.01
        )

        sweeper.start()
        await asyncio.sleep(0.03)
        assert sweeper.is_running

        await sweeper.stop()
        assert not sweeper.is_running
