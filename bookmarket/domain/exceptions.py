"""Domain exceptions.

All domain-level errors that represent business rule violations.
These exceptions are raised by aggregates, state machines and the
listing client when invariants are violated or invalid operations
are attempted.

Every error carries a stable ``error_code`` so the API layer can map
it to a status code and callers can discriminate failures.
"""

from typing import Any, ClassVar


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    error_code: ClassVar[str] = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(DomainError):
    """Raised when an aggregate or value object receives malformed input."""

    error_code: ClassVar[str] = "VALIDATION_ERROR"

    def __init__(self, field_name: str, reason: str) -> None:
        super().__init__(
            f"Invalid {field_name}: {reason}",
            details={"field": field_name, "reason": reason},
        )


class ConcurrentModificationError(DomainError):
    """Raised when an aggregate was saved by someone else since it was read."""

    error_code: ClassVar[str] = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str, expected: int, actual: int) -> None:
        """Initialize concurrent modification error.

        Args:
            entity_type: Type of aggregate (e.g., "Order", "Listing").
            entity_id: ID of the aggregate.
            expected: Version the caller read.
            actual: Version currently stored.
        """
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently "
            f"(expected version {expected}, found {actual})",
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "expected_version": expected,
                "actual_version": actual,
            },
        )


# ============================================================================
# Not Found Errors
# ============================================================================


class NotFoundError(DomainError):
    """Base class for lookups of absent aggregates."""

    error_code: ClassVar[str] = "NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    """Raised when an order does not exist."""

    error_code: ClassVar[str] = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str) -> None:
        super().__init__(
            f"Order {order_id} not found",
            details={"order_id": order_id},
        )


class ListingNotFoundError(NotFoundError):
    """Raised when a listing does not exist."""

    error_code: ClassVar[str] = "LISTING_NOT_FOUND"

    def __init__(self, listing_id: str) -> None:
        super().__init__(
            f"Listing {listing_id} not found",
            details={"listing_id": listing_id},
        )


class LineItemNotFoundError(NotFoundError):
    """Raised when an order has no line item for a listing."""

    error_code: ClassVar[str] = "LINE_ITEM_NOT_FOUND"

    def __init__(self, order_id: str, listing_id: str) -> None:
        super().__init__(
            f"Listing {listing_id} is not in order {order_id}",
            details={"order_id": order_id, "listing_id": listing_id},
        )


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateTransitionError(DomainError):
    """Raised when an invalid state transition is attempted.

    This error indicates that the requested operation cannot be performed
    in the current state of the entity.
    """

    error_code: ClassVar[str] = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
        message: str | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "Listing", "Order").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
            message: Optional message replacing the generic one.
        """
        allowed = allowed_transitions or []
        if message is None:
            message = (
                f"Cannot transition {entity_type}({entity_id}) "
                f"from '{current_state}' to '{target_state}'. "
                f"Allowed transitions: {allowed}"
            )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


# ============================================================================
# Order Errors
# ============================================================================


class OrderError(DomainError):
    """Base class for order-related errors."""

    error_code: ClassVar[str] = "ORDER_ERROR"


class DuplicateLineItemError(OrderError):
    """Raised when a listing is added to an order twice."""

    error_code: ClassVar[str] = "DUPLICATE_LINE_ITEM"

    def __init__(self, order_id: str, listing_id: str) -> None:
        super().__init__(
            f"Listing {listing_id} is already in order {order_id}",
            details={"order_id": order_id, "listing_id": listing_id},
        )


class OrderNotEditableError(InvalidStateTransitionError):
    """Raised when trying to change the line items of a non-draft order."""

    error_code: ClassVar[str] = "ORDER_NOT_EDITABLE"

    def __init__(self, order_id: str, current_status: str) -> None:
        super().__init__(
            entity_type="Order",
            entity_id=order_id,
            current_state=current_status,
            target_state=current_status,
            message=f"Can only change items of draft orders; order {order_id} is '{current_status}'",
        )


class EmptyOrderError(InvalidStateTransitionError):
    """Raised when trying to check out an order without line items."""

    error_code: ClassVar[str] = "EMPTY_ORDER"

    def __init__(self, order_id: str) -> None:
        super().__init__(
            entity_type="Order",
            entity_id=order_id,
            current_state="draft",
            target_state="checking_out",
            message=f"Cannot check out empty order {order_id}",
        )


class HoldsNotConfirmedError(InvalidStateTransitionError):
    """Raised when confirming holdings that do not cover every line item."""

    error_code: ClassVar[str] = "HOLDS_NOT_CONFIRMED"

    def __init__(self, order_id: str, missing_listing_ids: list[str]) -> None:
        super().__init__(
            entity_type="Order",
            entity_id=order_id,
            current_state="checking_out",
            target_state="payment_pending",
            message=f"Order {order_id} has line items without a hold: {missing_listing_ids}",
        )
        self.details["missing_listing_ids"] = missing_listing_ids


class OrderNotCancellableError(InvalidStateTransitionError):
    """Raised when trying to cancel an order that cannot be cancelled."""

    error_code: ClassVar[str] = "ORDER_NOT_CANCELLABLE"

    def __init__(self, order_id: str, current_status: str) -> None:
        """Initialize order not cancellable error.

        Args:
            order_id: ID of the order.
            current_status: Current status of the order.
        """
        super().__init__(
            entity_type="Order",
            entity_id=order_id,
            current_state=current_status,
            target_state="cancelled",
            message=f"Order {order_id} cannot be cancelled in status '{current_status}'",
        )


# ============================================================================
# Listing Errors
# ============================================================================


class ListingError(DomainError):
    """Base class for listing contract errors."""

    error_code: ClassVar[str] = "LISTING_ERROR"


class ListingNotAvailableError(ListingError):
    """Raised when a listing cannot be held because it is not available."""

    error_code: ClassVar[str] = "LISTING_NOT_AVAILABLE"

    def __init__(self, listing_id: str, current_status: str) -> None:
        super().__init__(
            f"Listing {listing_id} is not available (status '{current_status}')",
            details={"listing_id": listing_id, "current_status": current_status},
        )


class ListingAlreadyHeldError(ListingError):
    """Raised when holding a listing that an order already holds."""

    error_code: ClassVar[str] = "LISTING_ALREADY_HELD"

    def __init__(self, listing_id: str, held_by_order_id: str | None = None) -> None:
        super().__init__(
            f"Listing {listing_id} is already held",
            details={"listing_id": listing_id, "held_by_order_id": held_by_order_id},
        )


class ListingAlreadySoldError(ListingError):
    """Raised when holding a listing that has been sold."""

    error_code: ClassVar[str] = "LISTING_ALREADY_SOLD"

    def __init__(self, listing_id: str) -> None:
        super().__init__(
            f"Listing {listing_id} is already sold",
            details={"listing_id": listing_id},
        )


class ListingNotHeldError(ListingError):
    """Raised when releasing or selling a listing that is not held."""

    error_code: ClassVar[str] = "LISTING_NOT_HELD"

    def __init__(self, listing_id: str, current_status: str) -> None:
        super().__init__(
            f"Listing {listing_id} is not held (status '{current_status}')",
            details={"listing_id": listing_id, "current_status": current_status},
        )


class ListingNotWithdrawableError(ListingError):
    """Raised when withdrawing a sold or already withdrawn listing."""

    error_code: ClassVar[str] = "LISTING_NOT_WITHDRAWABLE"

    def __init__(self, listing_id: str, current_status: str) -> None:
        reason = (
            "Cannot withdraw a sold listing"
            if current_status == "sold"
            else "Listing is already withdrawn"
        )
        super().__init__(
            f"{reason} ({listing_id})",
            details={"listing_id": listing_id, "current_status": current_status},
        )


class ListingClientError(ListingError):
    """Raised when the listing service cannot be reached or answers unexpectedly."""

    error_code: ClassVar[str] = "LISTING_CLIENT_ERROR"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, details={"status_code": status_code})
        self.status_code = status_code


# ============================================================================
# Money Errors
# ============================================================================


class MoneyError(DomainError):
    """Base class for money-related errors."""

    error_code: ClassVar[str] = "MONEY_ERROR"


class CurrencyMismatchError(MoneyError):
    """Raised when attempting to combine money with different currencies."""

    error_code: ClassVar[str] = "CURRENCY_MISMATCH"

    def __init__(self, currency1: str, currency2: str) -> None:
        """Initialize currency mismatch error.

        Args:
            currency1: First currency code.
            currency2: Second currency code.
        """
        super().__init__(
            f"Cannot combine money with different currencies: {currency1} and {currency2}",
            details={"currency1": currency1, "currency2": currency2},
        )


class NegativeMoneyError(MoneyError):
    """Raised when attempting to create money with negative amount."""

    error_code: ClassVar[str] = "NEGATIVE_MONEY"

    def __init__(self, amount: int) -> None:
        """Initialize negative money error.

        Args:
            amount: The negative amount in cents.
        """
        super().__init__(
            f"Money amount cannot be negative: {amount}",
            details={"amount": amount},
        )
