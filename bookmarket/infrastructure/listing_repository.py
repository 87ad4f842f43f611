"""Listing repositories.

The listing domain persists ``Listing`` aggregates through the
``ListingRepository`` contract. Two interchangeable adapters are
provided: an in-memory store (default, used by tests) and an async
SQLAlchemy store.

Both adapters use optimistic versioning: ``save`` only succeeds when
the stored version equals the version the caller read, and returns
the aggregate with its new version.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookmarket.domain.base import utc_now
from bookmarket.domain.entities import Listing
from bookmarket.domain.exceptions import ConcurrentModificationError
from bookmarket.domain.state_machines import ListingStatus
from bookmarket.domain.value_objects import (
    BookCondition,
    BookInfo,
    ListingSearchCriteria,
    ListingSort,
    Money,
)
from bookmarket.infrastructure.models import ListingModel


class ListingRepository(ABC):
    """Storage contract for listings."""

    @abstractmethod
    async def save(self, listing: Listing) -> Listing:
        """Persist a listing.

        Args:
            listing: Listing to store, carrying the version it was read at.

        Returns:
            Stored listing with bumped version and no pending events.

        Raises:
            ConcurrentModificationError: If the stored version moved on.
        """

    @abstractmethod
    async def find_by_id(self, listing_id: str) -> Listing | None:
        """Get a listing by ID."""

    @abstractmethod
    async def find_by_isbn(self, isbn: str) -> Listing | None:
        """Get the first available or held listing for an ISBN."""

    @abstractmethod
    async def search(self, criteria: ListingSearchCriteria) -> tuple[list[Listing], int]:
        """Search available listings.

        Returns:
            Page of listings and the total number of matches.
        """

    @abstractmethod
    async def find_expired_holds(self, now: datetime | None = None) -> list[Listing]:
        """Get held listings whose hold deadline has passed."""


# ============================================================================
# In-Memory Listing Repository
# ============================================================================


_SORT_KEYS = {
    ListingSort.PRICE_ASC: (lambda item: item.listing_price.amount_cents, False),
    ListingSort.PRICE_DESC: (lambda item: item.listing_price.amount_cents, True),
    ListingSort.DATE_NEWEST: (lambda item: item.created_at, True),
    ListingSort.DATE_OLDEST: (lambda item: item.created_at, False),
    ListingSort.TITLE: (lambda item: item.book_info.title.casefold(), False),
}


class InMemoryListingRepository(ListingRepository):
    """In-memory repository for listings.

    Stored values are immutable, so handing them out needs no copying.
    """

    def __init__(self) -> None:
        self._listings: dict[str, Listing] = {}

    async def save(self, listing: Listing) -> Listing:
        """Save a listing."""
        current = self._listings.get(listing.id)
        stored_version = current.version if current else 0
        if listing.version != stored_version:
            raise ConcurrentModificationError("Listing", listing.id, listing.version, stored_version)
        stored = listing.persisted(stored_version + 1)
        self._listings[listing.id] = stored
        return stored

    async def find_by_id(self, listing_id: str) -> Listing | None:
        """Get listing by ID."""
        return self._listings.get(listing_id)

    async def find_by_isbn(self, isbn: str) -> Listing | None:
        """Get first purchasable listing by ISBN."""
        for listing in self._listings.values():
            if listing.book_info.isbn == isbn and listing.status.is_purchasable():
                return listing
        return None

    async def search(self, criteria: ListingSearchCriteria) -> tuple[list[Listing], int]:
        """Filter, sort and page available listings."""
        results = [
            listing for listing in self._listings.values()
            if listing.status == ListingStatus.AVAILABLE
        ]

        if criteria.query:
            needle = criteria.query.casefold()
            results = [
                listing for listing in results
                if needle in listing.book_info.title.casefold()
                or needle in listing.book_info.author.casefold()
                or needle in listing.book_info.isbn.casefold()
            ]
        if criteria.conditions:
            results = [r for r in results if r.book_info.condition in criteria.conditions]
        if criteria.min_price_cents is not None:
            results = [r for r in results if r.listing_price.amount_cents >= criteria.min_price_cents]
        if criteria.max_price_cents is not None:
            results = [r for r in results if r.listing_price.amount_cents <= criteria.max_price_cents]

        key, reverse = _SORT_KEYS[criteria.sort]
        results.sort(key=key, reverse=reverse)

        total = len(results)
        return results[criteria.offset:criteria.offset + criteria.page_size], total

    async def find_expired_holds(self, now: datetime | None = None) -> list[Listing]:
        """Get listings whose hold has lapsed."""
        now = now or utc_now()
        return [listing for listing in self._listings.values() if listing.is_hold_expired(now)]


# ============================================================================
# SQL Listing Repository
# ============================================================================


def listing_to_model(listing: Listing, model: ListingModel | None = None) -> ListingModel:
    """Copy a listing aggregate onto an ORM row."""
    model = model or ListingModel(id=listing.id)
    info = listing.book_info
    model.status = listing.status.value
    model.isbn = info.isbn
    model.title = info.title
    model.author = info.author
    model.condition = info.condition.value
    model.cover_image_url = info.cover_image_url
    model.publisher = info.publisher
    model.publish_year = info.publish_year
    model.description = info.description
    model.source_appraisal_id = listing.source_appraisal_id
    model.purchase_request_id = listing.purchase_request_id
    model.offer_price_cents = listing.offer_price.amount_cents
    model.listing_price_cents = listing.listing_price.amount_cents
    model.currency = listing.listing_price.currency
    model.held_by_order_id = listing.held_by_order_id
    model.held_until = listing.held_until
    model.sold_at = listing.sold_at
    model.sold_to_order_id = listing.sold_to_order_id
    model.withdraw_reason = listing.withdraw_reason
    model.created_at = listing.created_at
    model.updated_at = listing.updated_at
    return model


def listing_from_model(model: ListingModel) -> Listing:
    """Rebuild a listing aggregate from an ORM row."""
    return Listing(
        id=model.id,
        version=model.version,
        created_at=model.created_at,
        updated_at=model.updated_at,
        book_info=BookInfo(
            isbn=model.isbn,
            title=model.title,
            author=model.author,
            condition=BookCondition(model.condition),
            cover_image_url=model.cover_image_url,
            publisher=model.publisher,
            publish_year=model.publish_year,
            description=model.description,
        ),
        source_appraisal_id=model.source_appraisal_id,
        purchase_request_id=model.purchase_request_id,
        offer_price=Money(model.offer_price_cents, model.currency),
        listing_price=Money(model.listing_price_cents, model.currency),
        status=ListingStatus(model.status),
        held_by_order_id=model.held_by_order_id,
        held_until=model.held_until,
        sold_at=model.sold_at,
        sold_to_order_id=model.sold_to_order_id,
        withdraw_reason=model.withdraw_reason,
    )


_SQL_SORT = {
    ListingSort.PRICE_ASC: ListingModel.listing_price_cents.asc(),
    ListingSort.PRICE_DESC: ListingModel.listing_price_cents.desc(),
    ListingSort.DATE_NEWEST: ListingModel.created_at.desc(),
    ListingSort.DATE_OLDEST: ListingModel.created_at.asc(),
    ListingSort.TITLE: func.lower(ListingModel.title).asc(),
}


class SqlListingRepository(ListingRepository):
    """Async SQLAlchemy repository for listings.

    Each call runs in its own session and commits on success. The
    version check is a conditional UPDATE, so two processes saving the
    same listing cannot both win.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize repository.

        Args:
            session_factory: Factory producing async sessions.
        """
        self.session_factory = session_factory

    async def save(self, listing: Listing) -> Listing:
        """Insert or version-checked update of a listing."""
        async with self.session_factory() as session:
            async with session.begin():
                if listing.version == 0:
                    model = listing_to_model(listing)
                    model.version = 1
                    session.add(model)
                    await session.flush()
                    return listing.persisted(1)

                result = await session.execute(
                    select(ListingModel)
                    .where(ListingModel.id == listing.id)
                    .with_for_update()
                )
                model = result.scalar_one_or_none()
                stored_version = model.version if model else 0
                if model is None or model.version != listing.version:
                    raise ConcurrentModificationError(
                        "Listing", listing.id, listing.version, stored_version
                    )
                listing_to_model(listing, model)
                model.version = listing.version + 1
                await session.flush()
                return listing.persisted(model.version)

    async def find_by_id(self, listing_id: str) -> Listing | None:
        """Get listing by ID."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ListingModel).where(ListingModel.id == listing_id)
            )
            model = result.scalar_one_or_none()
            return listing_from_model(model) if model else None

    async def find_by_isbn(self, isbn: str) -> Listing | None:
        """Get first purchasable listing by ISBN."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ListingModel)
                .where(
                    ListingModel.isbn == isbn,
                    ListingModel.status.in_(
                        [ListingStatus.AVAILABLE.value, ListingStatus.HELD.value]
                    ),
                )
                .order_by(ListingModel.created_at.asc())
                .limit(1)
            )
            model = result.scalar_one_or_none()
            return listing_from_model(model) if model else None

    async def search(self, criteria: ListingSearchCriteria) -> tuple[list[Listing], int]:
        """Filter, sort and page available listings in SQL."""
        conditions = [ListingModel.status == ListingStatus.AVAILABLE.value]
        if criteria.query:
            pattern = f"%{criteria.query.lower()}%"
            conditions.append(
                or_(
                    func.lower(ListingModel.title).like(pattern),
                    func.lower(ListingModel.author).like(pattern),
                    func.lower(ListingModel.isbn).like(pattern),
                )
            )
        if criteria.conditions:
            conditions.append(ListingModel.condition.in_([c.value for c in criteria.conditions]))
        if criteria.min_price_cents is not None:
            conditions.append(ListingModel.listing_price_cents >= criteria.min_price_cents)
        if criteria.max_price_cents is not None:
            conditions.append(ListingModel.listing_price_cents <= criteria.max_price_cents)

        async with self.session_factory() as session:
            total = (
                await session.execute(select(func.count(ListingModel.id)).where(*conditions))
            ).scalar_one()
            result = await session.execute(
                select(ListingModel)
                .where(*conditions)
                .order_by(_SQL_SORT[criteria.sort])
                .offset(criteria.offset)
                .limit(criteria.page_size)
            )
            return [listing_from_model(m) for m in result.scalars().all()], total

    async def find_expired_holds(self, now: datetime | None = None) -> list[Listing]:
        """Get held listings whose hold deadline has passed."""
        now = now or utc_now()
        async with self.session_factory() as session:
            result = await session.execute(
                select(ListingModel).where(
                    ListingModel.status == ListingStatus.HELD.value,
                    ListingModel.held_until < now,
                )
            )
            return [listing_from_model(m) for m in result.scalars().all()]
