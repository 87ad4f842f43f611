"""Shared fixtures for application service tests.

Services are wired the way the container wires them for the in-process
deployment: the order service reaches listings through an
``InProcessListingClient`` over a real ``ListingService``.
"""

from collections.abc import Awaitable, Callable

import pytest

from bookmarket.application import EventBus, ListingService, OrderService
from bookmarket.domain import Address, BookInfo, DomainEvent, Listing, Money, Order
from bookmarket.infrastructure.listing_client import InProcessListingClient
from bookmarket.infrastructure.listing_repository import InMemoryListingRepository
from bookmarket.infrastructure.order_repository import InMemoryOrderRepository


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def published(event_bus: EventBus) -> list[DomainEvent]:
    """Every event published on the bus, in order."""
    events: list[DomainEvent] = []
    event_bus.subscribe_all(events.append)
    return events


@pytest.fixture
def listing_repo() -> InMemoryListingRepository:
    return InMemoryListingRepository()


@pytest.fixture
def order_repo() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def listing_service(
    listing_repo: InMemoryListingRepository,
    event_bus: EventBus,
) -> ListingService:
    return ListingService(listing_repo=listing_repo, event_bus=event_bus)


@pytest.fixture
def order_service(
    order_repo: InMemoryOrderRepository,
    listing_service: ListingService,
    event_bus: EventBus,
) -> OrderService:
    return OrderService(
        order_repo=order_repo,
        listing_client=InProcessListingClient(listing_service),
        event_bus=event_bus,
    )


@pytest.fixture
def seed_listing(
    listing_service: ListingService,
    make_book: Callable[..., BookInfo],
) -> Callable[..., Awaitable[Listing]]:
    """Create an available listing with an explicit price."""

    async def _seed(price_cents: int = 1999, title: str = "Dune", isbn: str = "9780441013593") -> Listing:
        return await listing_service.create_listing(
            book_info=make_book(isbn=isbn, title=title),
            source_appraisal_id="appraisal-1",
            purchase_request_id="purchase-1",
            offer_price=Money(price_cents // 2),
            listing_price=Money(price_cents),
        )

    return _seed


@pytest.fixture
def draft_order(
    order_service: OrderService,
    address: Address,
) -> Callable[..., Awaitable[Order]]:
    """Create a draft order containing the given listings."""

    async def _draft(*listing_ids: str, tax_cents: int = 0, shipping_cents: int = 0) -> Order:
        order = await order_service.create_order(
            customer_id="customer-1",
            shipping_address=address,
            tax=Money(tax_cents),
            shipping=Money(shipping_cents),
        )
        for listing_id in listing_ids:
            order = await order_service.add_line_item(order.id, listing_id)
        return order

    return _draft
