"""Listing application service.

Owns every transition of the Listing aggregate:
- Creating listings when an appraisal completes
- Browsing and searching available listings
- Holding, releasing and selling listings for orders
- Withdrawing listings
- Releasing holds whose deadline has passed

Every transition of one listing runs under that listing's lock, so a
hold is a check-and-set: of two concurrent holds on the same listing,
exactly one succeeds.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from bookmarket.application.event_bus import EventBus
from bookmarket.application.locking import KeyedLock
from bookmarket.application.pricing import ConditionMarkupPricing, PricingPolicy
from bookmarket.application.sweeper import SweepResult
from bookmarket.domain.base import utc_now
from bookmarket.domain.entities import Listing
from bookmarket.domain.exceptions import ListingNotFoundError, ListingNotHeldError
from bookmarket.domain.value_objects import BookInfo, ListingSearchCriteria, Money
from bookmarket.infrastructure.listing_repository import ListingRepository

logger = structlog.get_logger()

DEFAULT_HOLD_DURATION_MINUTES = 15.0


# ============================================================================
# Service Types
# ============================================================================


@dataclass(frozen=True)
class AppraisedBook:
    """One book priced by a completed appraisal.

    ``listing_price`` overrides the pricing policy when set.
    """

    book_info: BookInfo
    offer_price: Money
    listing_price: Money | None = None


@dataclass
class SearchResult:
    """A page of listing search results."""

    items: list[Listing] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0


# ============================================================================
# Listing Service
# ============================================================================


class ListingService:
    """Application service for managing listings."""

    def __init__(
        self,
        listing_repo: ListingRepository,
        event_bus: EventBus,
        pricing: PricingPolicy | None = None,
        hold_duration_minutes: float = DEFAULT_HOLD_DURATION_MINUTES,
        locks: KeyedLock | None = None,
        request_id: str | None = None,
    ) -> None:
        """Initialize service.

        Args:
            listing_repo: Listing storage.
            event_bus: Bus receiving listing events.
            pricing: Policy turning offer prices into listing prices.
            hold_duration_minutes: Length of a hold.
            locks: Per-listing locks, shared by every service instance
                working on the same storage.
            request_id: Request ID for correlation.
        """
        self.listing_repo = listing_repo
        self.event_bus = event_bus
        self.pricing = pricing or ConditionMarkupPricing()
        self.hold_duration_minutes = hold_duration_minutes
        self.locks = locks or KeyedLock()
        self.request_id = request_id

    async def _save(self, listing: Listing) -> Listing:
        """Persist a listing and publish the events it raised."""
        events = listing.collect_events()
        stored = await self.listing_repo.save(listing)
        await self.event_bus.publish(events)
        return stored

    async def _load(self, listing_id: str) -> Listing:
        listing = await self.listing_repo.find_by_id(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing

    # ------------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------------

    async def create_listing(
        self,
        book_info: BookInfo,
        source_appraisal_id: str,
        purchase_request_id: str,
        offer_price: Money,
        listing_price: Money | None = None,
    ) -> Listing:
        """Create an available listing.

        Args:
            book_info: Book being sold.
            source_appraisal_id: Appraisal the book was priced by.
            purchase_request_id: Intake request the book arrived with.
            offer_price: Price paid to the seller.
            listing_price: Asking price; derived from the pricing policy
                when omitted.

        Returns:
            The stored listing.
        """
        price = listing_price
        if price is None:
            price = self.pricing.listing_price(offer_price, book_info.condition)
        listing = Listing.create(
            book_info=book_info,
            source_appraisal_id=source_appraisal_id,
            purchase_request_id=purchase_request_id,
            offer_price=offer_price,
            listing_price=price,
        )
        stored = await self._save(listing)

        logger.info(
            "Listing created",
            listing_id=stored.id,
            isbn=book_info.isbn,
            listing_price_cents=price.amount_cents,
            request_id=self.request_id,
        )
        return stored

    async def handle_appraisal_completed(
        self,
        appraisal_id: str,
        purchase_request_id: str,
        books: Iterable[AppraisedBook],
    ) -> list[Listing]:
        """Create one listing per book of a completed appraisal.

        Args:
            appraisal_id: Completed appraisal.
            purchase_request_id: Intake request the books arrived with.
            books: Appraised books with their offer prices.

        Returns:
            Created listings, in input order.
        """
        listings = [
            await self.create_listing(
                book_info=book.book_info,
                source_appraisal_id=appraisal_id,
                purchase_request_id=purchase_request_id,
                offer_price=book.offer_price,
                listing_price=book.listing_price,
            )
            for book in books
        ]
        logger.info(
            "Listings created from appraisal",
            appraisal_id=appraisal_id,
            count=len(listings),
            request_id=self.request_id,
        )
        return listings

    # ------------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------------

    async def get_listing(self, listing_id: str) -> Listing:
        """Get a listing.

        Raises:
            ListingNotFoundError: If the listing does not exist.
        """
        return await self._load(listing_id)

    async def find_listing(self, listing_id: str) -> Listing | None:
        return await self.listing_repo.find_by_id(listing_id)

    async def get_by_isbn(self, isbn: str) -> Listing | None:
        """Get the first available or held listing for an ISBN."""
        return await self.listing_repo.find_by_isbn(isbn)

    async def search(self, criteria: ListingSearchCriteria) -> SearchResult:
        """Search available listings."""
        items, total = await self.listing_repo.search(criteria)
        return SearchResult(
            items=items,
            total=total,
            page=criteria.page,
            page_size=criteria.page_size,
        )

    # ------------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------------

    async def hold_for_order(
        self,
        listing_id: str,
        order_id: str,
        duration_minutes: float | None = None,
        now: datetime | None = None,
    ) -> Listing:
        """Reserve a listing for an order.

        Args:
            listing_id: Listing to hold.
            order_id: Order taking the hold.
            duration_minutes: Hold length (defaults to the service setting).
            now: Reference time (for testing).

        Returns:
            The held listing.

        Raises:
            ListingNotFoundError: If the listing does not exist.
            ListingAlreadyHeldError: If another hold is in place.
            ListingAlreadySoldError: If the listing was sold.
            ListingNotAvailableError: If the listing was withdrawn.
        """
        duration = self.hold_duration_minutes if duration_minutes is None else duration_minutes
        async with self.locks.hold(listing_id):
            listing = await self._load(listing_id)
            stored = await self._save(listing.hold(order_id, duration, now=now))

        logger.info(
            "Listing held",
            listing_id=listing_id,
            order_id=order_id,
            held_until=stored.held_until.isoformat() if stored.held_until else None,
            request_id=self.request_id,
        )
        return stored

    async def release_hold(self, listing_id: str) -> Listing:
        """Make a held listing available again.

        Raises:
            ListingNotFoundError: If the listing does not exist.
            ListingNotHeldError: If the listing is not held.
        """
        async with self.locks.hold(listing_id):
            listing = await self._load(listing_id)
            previous_order_id = listing.held_by_order_id
            stored = await self._save(listing.release())

        logger.info(
            "Listing hold released",
            listing_id=listing_id,
            previous_order_id=previous_order_id,
            request_id=self.request_id,
        )
        return stored

    async def mark_sold(self, listing_id: str) -> Listing:
        """Convert a listing's hold into a sale.

        Raises:
            ListingNotFoundError: If the listing does not exist.
            ListingNotHeldError: If the listing is not held.
        """
        async with self.locks.hold(listing_id):
            listing = await self._load(listing_id)
            stored = await self._save(listing.mark_sold())

        logger.info(
            "Listing sold",
            listing_id=listing_id,
            order_id=stored.sold_to_order_id,
            request_id=self.request_id,
        )
        return stored

    async def withdraw(self, listing_id: str, reason: str | None = None) -> Listing:
        """Take a listing off sale.

        Raises:
            ListingNotFoundError: If the listing does not exist.
            ListingNotWithdrawableError: If the listing is sold or withdrawn.
        """
        async with self.locks.hold(listing_id):
            listing = await self._load(listing_id)
            dropped_hold = listing.held_by_order_id
            stored = await self._save(listing.withdraw(reason))

        logger.info(
            "Listing withdrawn",
            listing_id=listing_id,
            reason=reason,
            dropped_hold_order_id=dropped_hold,
            request_id=self.request_id,
        )
        return stored

    # ------------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------------

    async def release_expired_holds(self, now: datetime | None = None) -> SweepResult:
        """Release every hold whose deadline has passed.

        Each listing is re-read under its lock, so a hold renewed or
        converted since the scan is left alone. One listing's failure
        is logged and does not stop the sweep.

        Args:
            now: Reference time (defaults to current UTC time).

        Returns:
            SweepResult with released and failed listing IDs.
        """
        now = now or utc_now()
        result = SweepResult()

        for candidate in await self.listing_repo.find_expired_holds(now):
            try:
                async with self.locks.hold(candidate.id):
                    listing = await self._load(candidate.id)
                    if not listing.is_hold_expired(now):
                        continue
                    await self._save(listing.release())
                result.processed_ids.append(candidate.id)
                logger.info(
                    "Expired hold released",
                    listing_id=candidate.id,
                    previous_order_id=listing.held_by_order_id,
                )
            except ListingNotHeldError:
                continue
            except Exception as e:
                result.failed_ids.append(candidate.id)
                logger.warning(
                    "Failed to release expired hold",
                    listing_id=candidate.id,
                    error=str(e),
                )

        if result.processed_ids or result.failed_ids:
            logger.info(
                "Listing sweep finished",
                released=len(result.processed_ids),
                failed=len(result.failed_ids),
            )
        return result
