"""Shared fixtures: factories for domain objects used across test packages."""

from collections.abc import Callable
from typing import Any

import pytest

from bookmarket.domain import Address, BookInfo, Listing, Money


@pytest.fixture
def make_book() -> Callable[..., BookInfo]:
    """Factory for book descriptions."""

    def _make(
        isbn: str = "9780441013593",
        title: str = "Dune",
        author: str = "Frank Herbert",
        condition: str = "good",
        **kwargs: Any,
    ) -> BookInfo:
        return BookInfo(isbn=isbn, title=title, author=author, condition=condition, **kwargs)

    return _make


@pytest.fixture
def make_listing(make_book: Callable[..., BookInfo]) -> Callable[..., Listing]:
    """Factory for persisted, available listings."""

    def _make(
        listing_id: str = "L1",
        price_cents: int = 1999,
        isbn: str = "9780441013593",
        title: str = "Dune",
        author: str = "Frank Herbert",
        condition: str = "good",
    ) -> Listing:
        listing = Listing.create(
            book_info=make_book(isbn=isbn, title=title, author=author, condition=condition),
            source_appraisal_id="appraisal-1",
            purchase_request_id="purchase-1",
            offer_price=Money(price_cents // 2),
            listing_price=Money(price_cents),
            listing_id=listing_id,
        )
        return listing.persisted(1)

    return _make


@pytest.fixture
def address() -> Address:
    """A valid shipping address."""
    return Address(
        name="Ada Reader",
        street1="1 Library Way",
        city="Portland",
        state="OR",
        postal_code="97201",
    )
