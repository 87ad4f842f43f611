"""Listing API endpoints.

Provides endpoints for browsing listings and for the listing contract
the order domain uses over HTTP:
- GET /listings - search available listings
- GET /listings/isbn/{isbn} - first available or held listing for an ISBN
- GET /listings/{id} - listing details
- POST /listings - list the books of a completed appraisal
- POST /listings/{id}/hold - hold for an order
- POST /listings/{id}/release - release a hold
- POST /listings/{id}/sold - convert a hold into a sale
- POST /listings/{id}/withdraw - take off sale
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from bookmarket.api.errors import listing_http_error
from bookmarket.api.schemas import (
    ErrorResponse,
    HoldRequest,
    ListingCreateRequest,
    ListingResponse,
    ListingsListResponse,
    WithdrawRequest,
)
from bookmarket.application.listing_service import AppraisedBook, ListingService
from bookmarket.domain.exceptions import DomainError
from bookmarket.domain.value_objects import BookCondition, ListingSearchCriteria, ListingSort
from bookmarket.infrastructure.container import get_container

router = APIRouter(prefix="/listings", tags=["Listings"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


# ============================================================================
# Dependencies
# ============================================================================


def get_service(request: Request) -> ListingService:
    """Get listing service with request ID."""
    request_id = getattr(request.state, "request_id", None)
    return get_container().listing_service(request_id=request_id)


Service = Annotated[ListingService, Depends(get_service)]


# ============================================================================
# Queries
# ============================================================================


@router.get(
    "",
    response_model=ListingsListResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Search listings",
)
async def search_listings(
    service: Service,
    query: Annotated[str | None, Query(description="Matches title, author or ISBN")] = None,
    condition: Annotated[list[BookCondition] | None, Query()] = None,
    min_price_cents: Annotated[int | None, Query(ge=0)] = None,
    max_price_cents: Annotated[int | None, Query(ge=0)] = None,
    sort: ListingSort = ListingSort.DATE_NEWEST,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
) -> ListingsListResponse:
    """Search available listings with filters, sorting and pagination."""
    try:
        criteria = ListingSearchCriteria(
            query=query,
            conditions=tuple(condition or ()),
            min_price_cents=min_price_cents,
            max_price_cents=max_price_cents,
            sort=sort,
            page=page,
            page_size=page_size,
        )
        result = await service.search(criteria)
    except DomainError as e:
        raise listing_http_error(e) from e

    return ListingsListResponse(
        items=[ListingResponse.from_listing(listing) for listing in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )


@router.get(
    "/isbn/{isbn}",
    response_model=ListingResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get listing by ISBN",
)
async def get_listing_by_isbn(isbn: str, service: Service) -> ListingResponse:
    listing = await service.get_by_isbn(isbn)
    if listing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error_code": "LISTING_NOT_FOUND",
                "message": f"No available listing for ISBN {isbn}",
                "details": {"isbn": isbn},
            },
        )
    return ListingResponse.from_listing(listing)


@router.get(
    "/{listing_id}",
    response_model=ListingResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get listing",
)
async def get_listing(listing_id: str, service: Service) -> ListingResponse:
    try:
        listing = await service.get_listing(listing_id)
    except DomainError as e:
        raise listing_http_error(e) from e
    return ListingResponse.from_listing(listing)


# ============================================================================
# Creation
# ============================================================================


@router.post(
    "",
    response_model=list[ListingResponse],
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Create listings from an appraisal",
)
async def create_listings(
    request: ListingCreateRequest,
    service: Service,
) -> list[ListingResponse]:
    """Create one available listing per appraised book.

    Books without an explicit listing price are priced by condition.
    """
    try:
        books = [
            AppraisedBook(
                book_info=book.book.to_book_info(),
                offer_price=book.offer_price.to_money(),
                listing_price=book.listing_price.to_money() if book.listing_price else None,
            )
            for book in request.books
        ]
        listings = await service.handle_appraisal_completed(
            appraisal_id=request.appraisal_id,
            purchase_request_id=request.purchase_request_id,
            books=books,
        )
    except DomainError as e:
        raise listing_http_error(e) from e
    return [ListingResponse.from_listing(listing) for listing in listings]


# ============================================================================
# Transitions
# ============================================================================


@router.post(
    "/{listing_id}/hold",
    response_model=ListingResponse,
    responses=ERROR_RESPONSES,
    summary="Hold listing",
)
async def hold_listing(listing_id: str, request: HoldRequest, service: Service) -> ListingResponse:
    """Hold a listing for an order.

    Returns 409 if the listing is already held or sold, 400 if withdrawn.
    """
    try:
        listing = await service.hold_for_order(listing_id, request.order_id)
    except DomainError as e:
        raise listing_http_error(e) from e
    return ListingResponse.from_listing(listing)


@router.post(
    "/{listing_id}/release",
    response_model=ListingResponse,
    responses=ERROR_RESPONSES,
    summary="Release hold",
)
async def release_listing(listing_id: str, service: Service) -> ListingResponse:
    try:
        listing = await service.release_hold(listing_id)
    except DomainError as e:
        raise listing_http_error(e) from e
    return ListingResponse.from_listing(listing)


@router.post(
    "/{listing_id}/sold",
    response_model=ListingResponse,
    responses=ERROR_RESPONSES,
    summary="Mark sold",
)
async def mark_listing_sold(listing_id: str, service: Service) -> ListingResponse:
    try:
        listing = await service.mark_sold(listing_id)
    except DomainError as e:
        raise listing_http_error(e) from e
    return ListingResponse.from_listing(listing)


@router.post(
    "/{listing_id}/withdraw",
    response_model=ListingResponse,
    responses=ERROR_RESPONSES,
    summary="Withdraw listing",
)
async def withdraw_listing(
    listing_id: str,
    service: Service,
    request: WithdrawRequest | None = None,
) -> ListingResponse:
    """Take a listing off sale, dropping any hold.

    Sold and already withdrawn listings cannot be withdrawn.
    """
    try:
        listing = await service.withdraw(listing_id, request.reason if request else None)
    except DomainError as e:
        raise listing_http_error(e) from e
    return ListingResponse.from_listing(listing)
