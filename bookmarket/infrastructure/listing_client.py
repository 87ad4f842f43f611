"""Listing client: the order domain's only channel to listings.

Defines the ``ListingClient`` contract the checkout saga is written
against, plus three transports:

- ``InMemoryListingClient``: a local table, used as a test double
- ``InProcessListingClient``: calls the listing service in this process
- ``HttpListingClient``: talks to the listing API over HTTP

Every transport raises the same domain errors, so order logic does not
change when the transport does.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from bookmarket.domain.entities import Listing
from bookmarket.domain.exceptions import (
    DomainError,
    ListingAlreadyHeldError,
    ListingAlreadySoldError,
    ListingClientError,
    ListingNotAvailableError,
    ListingNotFoundError,
    ListingNotHeldError,
)
from bookmarket.domain.state_machines import ListingStatus
from bookmarket.domain.value_objects import BookCondition, Money

if TYPE_CHECKING:
    from bookmarket.application.listing_service import ListingService

logger = structlog.get_logger()


# ============================================================================
# Listing Snapshot
# ============================================================================


@dataclass(frozen=True)
class ListingSnapshot:
    """What the order domain may know about a listing."""

    id: str
    isbn: str
    title: str
    author: str
    condition: BookCondition
    listing_price: Money
    status: ListingStatus
    held_by_order_id: str | None = None

    @classmethod
    def from_listing(cls, listing: Listing) -> "ListingSnapshot":
        """Create from a listing aggregate."""
        return cls(
            id=listing.id,
            isbn=listing.book_info.isbn,
            title=listing.book_info.title,
            author=listing.book_info.author,
            condition=listing.book_info.condition,
            listing_price=listing.listing_price,
            status=listing.status,
            held_by_order_id=listing.held_by_order_id,
        )

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ListingSnapshot":
        """Create from listing API response data."""
        price = data.get("listing_price", {})
        return cls(
            id=data["id"],
            isbn=data["isbn"],
            title=data["title"],
            author=data["author"],
            condition=BookCondition(data["condition"]),
            listing_price=Money(price.get("amount_cents", 0), price.get("currency", "USD")),
            status=ListingStatus(data["status"]),
            held_by_order_id=data.get("held_by_order_id"),
        )


# ============================================================================
# Listing Client Contract
# ============================================================================


class ListingClient(ABC):
    """Operations the order domain may perform on listings."""

    @abstractmethod
    async def get_by_id(self, listing_id: str) -> ListingSnapshot | None:
        """Fetch a listing snapshot.

        Returns:
            Snapshot if the listing exists, None otherwise.
        """

    @abstractmethod
    async def hold_for_order(self, listing_id: str, order_id: str) -> None:
        """Reserve a listing for an order.

        Raises:
            ListingNotFoundError: If the listing does not exist.
            ListingAlreadyHeldError: If the listing is held.
            ListingAlreadySoldError: If the listing is sold.
            ListingNotAvailableError: If the listing was withdrawn.
            ListingClientError: On transport failure or timeout.
        """

    @abstractmethod
    async def release_hold(self, listing_id: str) -> None:
        """Release a listing's hold.

        Raises:
            ListingNotHeldError: If the listing is not held.
            ListingClientError: On transport failure or timeout.
        """

    @abstractmethod
    async def mark_sold(self, listing_id: str) -> None:
        """Convert a listing's hold into a sale.

        Raises:
            ListingNotHeldError: If the listing is not held.
            ListingClientError: On transport failure or timeout.
        """

    async def close(self) -> None:
        """Release transport resources."""
        return None


# ============================================================================
# In-Memory Listing Client
# ============================================================================


class InMemoryListingClient(ListingClient):
    """Listing client backed by a local table.

    Mirrors the listing-side guards so the order saga can be exercised
    without a listing service.
    """

    def __init__(self, listings: list[ListingSnapshot] | None = None) -> None:
        self._listings: dict[str, ListingSnapshot] = {}
        for snapshot in listings or []:
            self.add_listing(snapshot)

    def add_listing(self, snapshot: ListingSnapshot) -> None:
        """Add or replace a listing in the table."""
        self._listings[snapshot.id] = snapshot

    def is_held(self, listing_id: str) -> bool:
        snapshot = self._listings.get(listing_id)
        return snapshot is not None and snapshot.status == ListingStatus.HELD

    def is_sold(self, listing_id: str) -> bool:
        snapshot = self._listings.get(listing_id)
        return snapshot is not None and snapshot.status == ListingStatus.SOLD

    def held_by(self, listing_id: str) -> str | None:
        snapshot = self._listings.get(listing_id)
        return snapshot.held_by_order_id if snapshot else None

    def _require(self, listing_id: str) -> ListingSnapshot:
        snapshot = self._listings.get(listing_id)
        if snapshot is None:
            raise ListingNotFoundError(listing_id)
        return snapshot

    async def get_by_id(self, listing_id: str) -> ListingSnapshot | None:
        return self._listings.get(listing_id)

    async def hold_for_order(self, listing_id: str, order_id: str) -> None:
        snapshot = self._require(listing_id)
        if snapshot.status == ListingStatus.HELD:
            raise ListingAlreadyHeldError(listing_id, snapshot.held_by_order_id)
        if snapshot.status == ListingStatus.SOLD:
            raise ListingAlreadySoldError(listing_id)
        if snapshot.status != ListingStatus.AVAILABLE:
            raise ListingNotAvailableError(listing_id, snapshot.status.value)
        self._listings[listing_id] = replace(
            snapshot, status=ListingStatus.HELD, held_by_order_id=order_id
        )

    async def release_hold(self, listing_id: str) -> None:
        snapshot = self._require(listing_id)
        if snapshot.status != ListingStatus.HELD:
            raise ListingNotHeldError(listing_id, snapshot.status.value)
        self._listings[listing_id] = replace(
            snapshot, status=ListingStatus.AVAILABLE, held_by_order_id=None
        )

    async def mark_sold(self, listing_id: str) -> None:
        snapshot = self._require(listing_id)
        if snapshot.status != ListingStatus.HELD:
            raise ListingNotHeldError(listing_id, snapshot.status.value)
        self._listings[listing_id] = replace(
            snapshot, status=ListingStatus.SOLD, held_by_order_id=None
        )


# ============================================================================
# In-Process Listing Client
# ============================================================================


class InProcessListingClient(ListingClient):
    """Listing client calling a ``ListingService`` in the same process."""

    def __init__(self, listing_service: "ListingService") -> None:
        self.listing_service = listing_service

    async def get_by_id(self, listing_id: str) -> ListingSnapshot | None:
        listing = await self.listing_service.find_listing(listing_id)
        return ListingSnapshot.from_listing(listing) if listing else None

    async def hold_for_order(self, listing_id: str, order_id: str) -> None:
        await self.listing_service.hold_for_order(listing_id, order_id)

    async def release_hold(self, listing_id: str) -> None:
        await self.listing_service.release_hold(listing_id)

    async def mark_sold(self, listing_id: str) -> None:
        await self.listing_service.mark_sold(listing_id)


# ============================================================================
# HTTP Listing Client
# ============================================================================


# error_code in listing API error bodies -> domain error factory
_ERROR_CODES: dict[str, Any] = {
    ListingAlreadyHeldError.error_code: lambda lid, details: ListingAlreadyHeldError(
        lid, details.get("held_by_order_id")
    ),
    ListingAlreadySoldError.error_code: lambda lid, details: ListingAlreadySoldError(lid),
    ListingNotHeldError.error_code: lambda lid, details: ListingNotHeldError(
        lid, details.get("current_status", "unknown")
    ),
    ListingNotAvailableError.error_code: lambda lid, details: ListingNotAvailableError(
        lid, details.get("current_status", "unknown")
    ),
    ListingNotFoundError.error_code: lambda lid, details: ListingNotFoundError(lid),
}


class HttpListingClient(ListingClient):
    """HTTP client for the listing API.

    Maps non-2xx responses onto the listing error taxonomy. Transport
    failures, including timeouts, become ``ListingClientError`` so the
    saga compensates them like any other failed hold.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        request_id: str | None = None,
    ) -> None:
        """Initialize listing client.

        Args:
            base_url: Listing API root URL.
            timeout: Request timeout in seconds.
            request_id: Optional request ID for correlation.
        """
        self.base_url = base_url
        self.timeout = timeout
        self.request_id = request_id
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {}
            if self.request_id:
                headers["X-Request-ID"] = self.request_id
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _raise_for_error(self, listing_id: str, response: httpx.Response) -> None:
        """Translate an error response into a domain error."""
        if response.status_code == 404:
            raise ListingNotFoundError(listing_id)

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        factory = _ERROR_CODES.get(body.get("error_code", ""))
        if factory is not None and response.status_code in (400, 409):
            error: DomainError = factory(listing_id, body.get("details") or {})
            raise error

        raise ListingClientError(
            f"Listing API returned {response.status_code} for listing {listing_id}: "
            f"{body.get('message') or response.text}",
            response.status_code,
        )

    async def _request(
        self,
        method: str,
        listing_id: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            client = await self._get_client()
            return await client.request(method, path, json=json)
        except httpx.RequestError as e:
            logger.error(
                "Listing API request failed",
                listing_id=listing_id,
                path=path,
                error=str(e),
            )
            raise ListingClientError(f"Request failed: {str(e)}") from e

    async def get_by_id(self, listing_id: str) -> ListingSnapshot | None:
        """Get listing by ID.

        Returns:
            Snapshot if found, None on 404.

        Raises:
            ListingClientError: On API error (except 404).
        """
        response = await self._request("GET", listing_id, f"/listings/{listing_id}")
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            self._raise_for_error(listing_id, response)
        return ListingSnapshot.from_api_response(response.json())

    async def hold_for_order(self, listing_id: str, order_id: str) -> None:
        response = await self._request(
            "POST", listing_id, f"/listings/{listing_id}/hold", json={"order_id": order_id}
        )
        if response.status_code != 200:
            self._raise_for_error(listing_id, response)

    async def release_hold(self, listing_id: str) -> None:
        response = await self._request("POST", listing_id, f"/listings/{listing_id}/release")
        if response.status_code != 200:
            self._raise_for_error(listing_id, response)

    async def mark_sold(self, listing_id: str) -> None:
        response = await self._request("POST", listing_id, f"/listings/{listing_id}/sold")
        if response.status_code != 200:
            self._raise_for_error(listing_id, response)
