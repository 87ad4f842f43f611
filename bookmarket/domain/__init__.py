"""Domain layer - Aggregates, value objects, state machines, domain events.

This module exports the core domain building blocks following DDD patterns:

- **Aggregates**: Immutable objects with identity (Listing, Order)
- **Value Objects**: Immutable objects compared by value (Money, Address, BookInfo)
- **State Machines**: Deterministic state transitions (OrderStatus, ListingStatus, LineItemStatus)
- **Domain Events**: Represent significant domain occurrences
- **Exceptions**: Domain-specific errors and invariant violations

Example usage:
    from bookmarket.domain import Address, Money, Order, OrderLineItem

    order = Order.create(
        customer_id="c1",
        shipping_address=Address(
            name="Ada", street1="1 Main St", city="Springfield",
            state="IL", postal_code="62701",
        ),
    )
    order = order.add_line_item(
        OrderLineItem.create("L1", "9780134685991", "Effective Java",
                             "Joshua Bloch", "good", Money(1999)),
    )
    print(order.total)  # $19.99 USD
"""

# Base classes
from bookmarket.domain.base import AggregateRoot, DomainEvent, Entity, ValueObject

# Aggregates
from bookmarket.domain.entities import Listing, Order, OrderLineItem

# Domain Events
from bookmarket.domain.events import (
    EVENT_REGISTRY,
    ListingCreated,
    ListingHeld,
    ListingHoldReleased,
    ListingSold,
    ListingWithdrawn,
    OrderCancelled,
    OrderCheckoutStarted,
    OrderConfirmed,
    OrderCreated,
    OrderDelivered,
    OrderPaymentProcessed,
    OrderShipped,
    get_event_class,
)

# Exceptions
from bookmarket.domain.exceptions import (
    ConcurrentModificationError,
    CurrencyMismatchError,
    DomainError,
    DuplicateLineItemError,
    EmptyOrderError,
    HoldsNotConfirmedError,
    InvalidStateTransitionError,
    LineItemNotFoundError,
    ListingAlreadyHeldError,
    ListingAlreadySoldError,
    ListingClientError,
    ListingError,
    ListingNotAvailableError,
    ListingNotFoundError,
    ListingNotHeldError,
    ListingNotWithdrawableError,
    MoneyError,
    NegativeMoneyError,
    NotFoundError,
    OrderError,
    OrderNotCancellableError,
    OrderNotEditableError,
    OrderNotFoundError,
    ValidationError,
)

# State Machines
from bookmarket.domain.state_machines import (
    LineItemStatus,
    ListingStatus,
    OrderStatus,
)

# Value Objects
from bookmarket.domain.value_objects import (
    Address,
    BookCondition,
    BookInfo,
    Money,
    Payment,
    PaymentMethod,
    PaymentStatus,
    ShipmentTracking,
)

__all__ = [
    # Base
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "ValueObject",
    # Aggregates
    "Listing",
    "Order",
    "OrderLineItem",
    # Events
    "EVENT_REGISTRY",
    "get_event_class",
    "ListingCreated",
    "ListingHeld",
    "ListingHoldReleased",
    "ListingSold",
    "ListingWithdrawn",
    "OrderCancelled",
    "OrderCheckoutStarted",
    "OrderConfirmed",
    "OrderCreated",
    "OrderDelivered",
    "OrderPaymentProcessed",
    "OrderShipped",
    # Exceptions
    "ConcurrentModificationError",
    "CurrencyMismatchError",
    "DomainError",
    "DuplicateLineItemError",
    "EmptyOrderError",
    "HoldsNotConfirmedError",
    "InvalidStateTransitionError",
    "LineItemNotFoundError",
    "ListingAlreadyHeldError",
    "ListingAlreadySoldError",
    "ListingClientError",
    "ListingError",
    "ListingNotAvailableError",
    "ListingNotFoundError",
    "ListingNotHeldError",
    "ListingNotWithdrawableError",
    "MoneyError",
    "NegativeMoneyError",
    "NotFoundError",
    "OrderError",
    "OrderNotCancellableError",
    "OrderNotEditableError",
    "OrderNotFoundError",
    "ValidationError",
    # State Machines
    "LineItemStatus",
    "ListingStatus",
    "OrderStatus",
    # Value Objects
    "Address",
    "BookCondition",
    "BookInfo",
    "Money",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "ShipmentTracking",
]
