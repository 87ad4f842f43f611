"""Application wiring.

Builds the long-lived collaborators once (repositories, event bus,
locks, listing client, sweeper) and hands out request-scoped services
over them.
"""

import structlog

from bookmarket.application.event_bus import EventBus
from bookmarket.application.listing_service import ListingService
from bookmarket.application.locking import KeyedLock
from bookmarket.application.order_service import OrderService
from bookmarket.application.pricing import ConditionMarkupPricing
from bookmarket.application.sweeper import ReservationSweeper
from bookmarket.infrastructure.config import Settings, settings
from bookmarket.infrastructure.database import get_session_factory
from bookmarket.infrastructure.listing_client import (
    HttpListingClient,
    InProcessListingClient,
    ListingClient,
)
from bookmarket.infrastructure.listing_repository import (
    InMemoryListingRepository,
    ListingRepository,
    SqlListingRepository,
)
from bookmarket.infrastructure.order_repository import (
    InMemoryOrderRepository,
    OrderRepository,
    SqlOrderRepository,
)

logger = structlog.get_logger()


class Container:
    """Holds the shared collaborators of one running application."""

    def __init__(
        self,
        config: Settings | None = None,
        listing_repo: ListingRepository | None = None,
        order_repo: OrderRepository | None = None,
        listing_client: ListingClient | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        """Initialize container.

        Args:
            config: Settings to wire from (defaults to the global settings).
            listing_repo: Listing storage override.
            order_repo: Order storage override.
            listing_client: Listing client override.
            event_bus: Event bus override.
        """
        self.config = config or settings

        if self.config.storage_backend == "sql":
            session_factory = get_session_factory()
            self.listing_repo = listing_repo or SqlListingRepository(session_factory)
            self.order_repo = order_repo or SqlOrderRepository(session_factory)
        else:
            self.listing_repo = listing_repo or InMemoryListingRepository()
            self.order_repo = order_repo or InMemoryOrderRepository()

        self.event_bus = event_bus or EventBus()
        self.pricing = ConditionMarkupPricing()
        self.listing_locks = KeyedLock()
        self.order_locks = KeyedLock()

        if listing_client is not None:
            self.listing_client = listing_client
        elif self.config.listing_service_url:
            self.listing_client = HttpListingClient(
                base_url=self.config.listing_service_url,
                timeout=self.config.listing_client_timeout_seconds,
            )
        else:
            self.listing_client = InProcessListingClient(self.listing_service())

        self.sweeper = ReservationSweeper(
            listing_service=self.listing_service(),
            order_service=self.order_service(),
            hold_duration_minutes=self.config.hold_duration_minutes,
            interval_seconds=self.config.sweep_interval_seconds,
        )

        logger.debug(
            "Container wired",
            storage_backend=self.config.storage_backend,
            listing_client=type(self.listing_client).__name__,
        )

    def listing_service(self, request_id: str | None = None) -> ListingService:
        """Create a listing service over the shared collaborators."""
        return ListingService(
            listing_repo=self.listing_repo,
            event_bus=self.event_bus,
            pricing=self.pricing,
            hold_duration_minutes=self.config.hold_duration_minutes,
            locks=self.listing_locks,
            request_id=request_id,
        )

    def order_service(self, request_id: str | None = None) -> OrderService:
        """Create an order service over the shared collaborators."""
        return OrderService(
            order_repo=self.order_repo,
            listing_client=self.listing_client,
            event_bus=self.event_bus,
            locks=self.order_locks,
            request_id=request_id,
        )

    async def close(self) -> None:
        """Stop background work and release transport resources."""
        await self.sweeper.stop()
        await self.listing_client.close()


# Global container instance
_container: Container | None = None


def get_container() -> Container:
    """Get container singleton."""
    global _container
    if _container is None:
        _container = Container()
    return _container


def reset_container(container: Container | None = None) -> Container:
    """Replace the container (for testing)."""
    global _container
    _container = container or Container()
    return _container
