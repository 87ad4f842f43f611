"""State machines for domain entities.

Deterministic state machines that define valid state transitions
for orders, order line items, and listings. State machines enforce
business rules about what operations are valid in each state.
"""

from enum import Enum

from bookmarket.domain.exceptions import InvalidStateTransitionError


# ============================================================================
# Order State Machine
# ============================================================================


class OrderStatus(str, Enum):
    """Order lifecycle states.

    State diagram:
        DRAFT ─────────────────────────────────────────► CANCELLED
          │                                                ▲
          │ start_checkout                                 │
          ▼                                                │
        CHECKING_OUT ──────────────────────────────────────┤
          │                                                │
          │ confirm_holdings                               │
          ▼                                                │
        PAYMENT_PENDING ───────────────────────────────────┤
          │                                                │
          │ process_payment                                │
          ▼                                                │
        CONFIRMED ─────────────────────────────────────────┘
          │
          │ ship
          ▼
        SHIPPED
          │
          │ mark_delivered
          ▼
        COMPLETED
    """

    DRAFT = "draft"
    CHECKING_OUT = "checking_out"
    PAYMENT_PENDING = "payment_pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _ORDER_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["OrderStatus"]:
        """Get list of valid target states.

        Returns:
            List of states that can be transitioned to.
        """
        return sorted(_ORDER_TRANSITIONS.get(self, set()), key=lambda s: s.value)

    def is_editable(self) -> bool:
        """Check if line items can be added or removed.

        Returns:
            True only for draft orders.
        """
        return self == OrderStatus.DRAFT

    def is_cancellable(self) -> bool:
        """Check if order can be cancelled.

        Returns:
            True if order can be cancelled.
        """
        return self.can_transition_to(OrderStatus.CANCELLED)

    def is_awaiting_payment(self) -> bool:
        """Check if the order is inside its time-bounded checkout window.

        Returns:
            True for orders the checkout sweep may expire.
        """
        return self in {OrderStatus.CHECKING_OUT, OrderStatus.PAYMENT_PENDING}

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state.

        Returns:
            True if no further transitions are possible.
        """
        return len(_ORDER_TRANSITIONS.get(self, set())) == 0


# Order state transitions (defined outside enum to avoid Enum restrictions)
_ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.DRAFT: {OrderStatus.CHECKING_OUT, OrderStatus.CANCELLED},
    OrderStatus.CHECKING_OUT: {OrderStatus.PAYMENT_PENDING, OrderStatus.CANCELLED},
    OrderStatus.PAYMENT_PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: set(),  # Terminal state
    OrderStatus.CANCELLED: set(),  # Terminal state
}


# ============================================================================
# Order Line Item State Machine
# ============================================================================


class LineItemStatus(str, Enum):
    """Shadow status an order keeps for each listing it references.

    State diagram:
        PENDING ──hold──► HELD ──sell──► SOLD
                           │
                           └──release──► RELEASED
    """

    PENDING = "pending"
    HELD = "held"
    SOLD = "sold"
    RELEASED = "released"

    def can_transition_to(self, target: "LineItemStatus") -> bool:
        """Check if transition to target state is valid."""
        return target in _LINE_ITEM_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["LineItemStatus"]:
        """Get list of valid target states."""
        return sorted(_LINE_ITEM_TRANSITIONS.get(self, set()), key=lambda s: s.value)


_LINE_ITEM_TRANSITIONS: dict[LineItemStatus, set[LineItemStatus]] = {
    LineItemStatus.PENDING: {LineItemStatus.HELD},
    LineItemStatus.HELD: {LineItemStatus.SOLD, LineItemStatus.RELEASED},
    LineItemStatus.SOLD: set(),  # Terminal state
    LineItemStatus.RELEASED: set(),  # Terminal state
}


# ============================================================================
# Listing State Machine
# ============================================================================


class ListingStatus(str, Enum):
    """Listing lifecycle states.

    State diagram:
        AVAILABLE ◄──release── HELD ──mark_sold──► SOLD
          │  └──────hold──────►  │
          │                      │
          │ withdraw             │ withdraw
          ▼                      │
        WITHDRAWN ◄──────────────┘

    Once SOLD or WITHDRAWN a listing never returns to AVAILABLE.
    """

    AVAILABLE = "available"
    HELD = "held"
    SOLD = "sold"
    WITHDRAWN = "withdrawn"

    def can_transition_to(self, target: "ListingStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _LISTING_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["ListingStatus"]:
        """Get list of valid target states.

        Returns:
            List of states that can be transitioned to.
        """
        return sorted(_LISTING_TRANSITIONS.get(self, set()), key=lambda s: s.value)

    def is_purchasable(self) -> bool:
        """Check if the listing is visible to buyers (available or reserved)."""
        return self in {ListingStatus.AVAILABLE, ListingStatus.HELD}

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state."""
        return len(_LISTING_TRANSITIONS.get(self, set())) == 0


_LISTING_TRANSITIONS: dict[ListingStatus, set[ListingStatus]] = {
    ListingStatus.AVAILABLE: {ListingStatus.HELD, ListingStatus.WITHDRAWN},
    ListingStatus.HELD: {ListingStatus.AVAILABLE, ListingStatus.SOLD, ListingStatus.WITHDRAWN},
    ListingStatus.SOLD: set(),  # Terminal state
    ListingStatus.WITHDRAWN: set(),  # Terminal state
}


# ============================================================================
# State Machine Helpers
# ============================================================================


def validate_order_transition(
    order_id: str,
    current_status: OrderStatus,
    target_status: OrderStatus,
) -> None:
    """Validate and raise if order state transition is invalid.

    Args:
        order_id: Order identifier for error message.
        current_status: Current order status.
        target_status: Target order status.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="Order",
            entity_id=order_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )


def validate_line_item_transition(
    listing_id: str,
    current_status: LineItemStatus,
    target_status: LineItemStatus,
) -> None:
    """Validate and raise if line item state transition is invalid.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="OrderLineItem",
            entity_id=listing_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )


def validate_listing_transition(
    listing_id: str,
    current_status: ListingStatus,
    target_status: ListingStatus,
) -> None:
    """Validate and raise if listing state transition is invalid.

    Args:
        listing_id: Listing identifier for error message.
        current_status: Current listing status.
        target_status: Target listing status.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="Listing",
            entity_id=listing_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )
