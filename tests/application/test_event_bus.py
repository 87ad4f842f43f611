"""Tests for the in-process event bus."""

from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from bookmarket.application import EventBus, ListingService
from bookmarket.domain import DomainEvent, Listing, ListingHeld, ListingStatus, OrderCreated
from bookmarket.infrastructure.listing_repository import InMemoryListingRepository


class TestEventBus:
    """Tests for EventBus subscription and delivery."""

    @pytest.mark.asyncio
    async def test_delivers_to_matching_handlers(self) -> None:
        """Handlers receive only the types they subscribed to."""
        bus = EventBus()
        created = MagicMock()
        held = MagicMock()
        bus.subscribe("order.created", created)
        bus.subscribe("listing.held", held)

        event = OrderCreated(order_id="O1", customer_id="c1")
        await bus.publish(event)

        created.assert_called_once_with(event)
        held.assert_not_called()

    @pytest.mark.asyncio
    async def test_async_handlers_are_awaited(self) -> None:
        """Coroutine handlers run before publish returns."""
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe("order.created", handler)

        await bus.publish([OrderCreated(order_id="O1"), OrderCreated(order_id="O2")])

        assert handler.await_count == 2
        assert [c.args[0].order_id for c in handler.await_args_list] == ["O1", "O2"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self) -> None:
        """A raising handler is skipped and later handlers still run."""
        bus = EventBus()
        broken = MagicMock(side_effect=RuntimeError("boom"))
        received: list[DomainEvent] = []
        bus.subscribe("order.created", broken)
        bus.subscribe("order.created", received.append)

        await bus.publish(OrderCreated(order_id="O1"))

        broken.assert_called_once()
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        """Unsubscribed handlers stop receiving events."""
        bus = EventBus()
        handler = MagicMock()
        unsubscribe = bus.subscribe("order.created", handler)
        assert bus.handler_count("order.created") == 1

        unsubscribe()
        await bus.publish(OrderCreated(order_id="O1"))

        handler.assert_not_called()
        assert bus.handler_count() == 0

    @pytest.mark.asyncio
    async def test_subscribe_all_and_clear(self) -> None:
        """Catch-all handlers see every event until cleared."""
        bus = EventBus()
        handler = MagicMock()
        bus.subscribe_all(handler)

        await bus.publish([OrderCreated(), ListingHeld()])
        assert handler.call_count == 2

        bus.clear()
        await bus.publish(OrderCreated())
        assert handler.call_count == 2

    @pytest.mark.asyncio
    async def test_events_published_after_save(self, make_listing: Callable[..., Listing]) -> None:
        """Handlers observe the state the event describes."""
        repo = InMemoryListingRepository()
        bus = EventBus()
        service = ListingService(repo, bus)
        seen: list[ListingStatus] = []

        async def on_held(event: DomainEvent) -> None:
            stored = await repo.find_by_id(event.aggregate_id)
            seen.append(stored.status)

        bus.subscribe("listing.held", on_held)
        listing = make_listing()
        await repo.save(listing.persisted(0))

        await service.hold_for_order(listing.id, "O1")

        assert seen == [ListingStatus.HELD]
