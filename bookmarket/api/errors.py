"""Domain error to HTTP error mapping."""

from fastapi import HTTPException, status

from bookmarket.domain.exceptions import (
    ConcurrentModificationError,
    DomainError,
    ListingAlreadyHeldError,
    ListingAlreadySoldError,
    ListingNotHeldError,
    NotFoundError,
    OrderNotFoundError,
)

# Listing contract errors that report a conflict with the listing's current owner
LISTING_CONFLICTS: tuple[type[DomainError], ...] = (
    ListingAlreadyHeldError,
    ListingAlreadySoldError,
    ListingNotHeldError,
    ConcurrentModificationError,
)


def _http_error(status_code: int, error: DomainError) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={
            "error_code": error.error_code,
            "message": error.message,
            "details": error.details,
        },
    )


def order_http_error(error: DomainError) -> HTTPException:
    """Map an error raised on an order endpoint.

    Missing orders or listings are 404; every other domain error is 400.
    """
    if isinstance(error, NotFoundError):
        return _http_error(status.HTTP_404_NOT_FOUND, error)
    return _http_error(status.HTTP_400_BAD_REQUEST, error)


def saga_http_error(error: DomainError) -> HTTPException:
    """Map an error raised while checking out or paying for an order.

    Only a missing order is 404. A listing that cannot be held or sold,
    missing ones included, fails the step with 400.
    """
    if isinstance(error, OrderNotFoundError):
        return _http_error(status.HTTP_404_NOT_FOUND, error)
    return _http_error(status.HTTP_400_BAD_REQUEST, error)


def listing_http_error(error: DomainError) -> HTTPException:
    """Map an error raised on a listing endpoint.

    Missing listings are 404, ownership conflicts 409, other guard
    violations 400.
    """
    if isinstance(error, NotFoundError):
        return _http_error(status.HTTP_404_NOT_FOUND, error)
    if isinstance(error, LISTING_CONFLICTS):
        return _http_error(status.HTTP_409_CONFLICT, error)
    return _http_error(status.HTTP_400_BAD_REQUEST, error)
