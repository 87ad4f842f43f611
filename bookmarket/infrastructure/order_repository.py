"""Order repositories.

The order domain persists ``Order`` aggregates through the
``OrderRepository`` contract, with an in-memory adapter (default) and an
async SQLAlchemy adapter. Saves are optimistically versioned.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookmarket.domain.base import utc_now
from bookmarket.domain.entities import Order, OrderLineItem
from bookmarket.domain.exceptions import ConcurrentModificationError
from bookmarket.domain.state_machines import LineItemStatus, OrderStatus
from bookmarket.domain.value_objects import (
    Address,
    BookCondition,
    Money,
    Payment,
    PaymentMethod,
    PaymentStatus,
    ShipmentTracking,
)
from bookmarket.infrastructure.models import OrderLineItemModel, OrderModel

EXPIRABLE_STATUSES = (OrderStatus.CHECKING_OUT, OrderStatus.PAYMENT_PENDING)


class OrderRepository(ABC):
    """Storage contract for orders."""

    @abstractmethod
    async def save(self, order: Order) -> Order:
        """Persist an order.

        Args:
            order: Order to store, carrying the version it was read at.

        Returns:
            Stored order with bumped version and no pending events.

        Raises:
            ConcurrentModificationError: If the stored version moved on.
        """

    @abstractmethod
    async def find_by_id(self, order_id: str) -> Order | None:
        """Get an order by ID."""

    @abstractmethod
    async def find_by_customer_id(self, customer_id: str) -> list[Order]:
        """Get a customer's orders, newest first."""

    @abstractmethod
    async def find_expired_checkouts(
        self,
        timeout_minutes: float,
        now: datetime | None = None,
    ) -> list[Order]:
        """Get orders stuck in checkout or payment longer than the timeout.

        Args:
            timeout_minutes: Checkout window length.
            now: Reference time (defaults to current UTC time).
        """


# ============================================================================
# In-Memory Order Repository
# ============================================================================


class InMemoryOrderRepository(OrderRepository):
    """In-memory repository for orders."""

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}

    async def save(self, order: Order) -> Order:
        """Save an order."""
        current = self._orders.get(order.id)
        stored_version = current.version if current else 0
        if order.version != stored_version:
            raise ConcurrentModificationError("Order", order.id, order.version, stored_version)
        stored = order.persisted(stored_version + 1)
        self._orders[order.id] = stored
        return stored

    async def find_by_id(self, order_id: str) -> Order | None:
        """Get order by ID."""
        return self._orders.get(order_id)

    async def find_by_customer_id(self, customer_id: str) -> list[Order]:
        """Get orders by customer, newest first."""
        orders = [o for o in self._orders.values() if o.customer_id == customer_id]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    async def find_expired_checkouts(
        self,
        timeout_minutes: float,
        now: datetime | None = None,
    ) -> list[Order]:
        """Get orders whose checkout window lapsed."""
        now = now or utc_now()
        return [o for o in self._orders.values() if o.is_checkout_expired(timeout_minutes, now)]


# ============================================================================
# SQL Order Repository
# ============================================================================


def _address_columns(prefix: str, address: Address | None) -> dict[str, str | None]:
    keys = ("name", "street1", "street2", "city", "state", "postal_code", "country")
    return {f"{prefix}_{key}": getattr(address, key) if address else None for key in keys}


def _address_from(model: OrderModel, prefix: str) -> Address | None:
    if getattr(model, f"{prefix}_street1") is None:
        return None
    return Address(
        name=getattr(model, f"{prefix}_name"),
        street1=getattr(model, f"{prefix}_street1"),
        street2=getattr(model, f"{prefix}_street2"),
        city=getattr(model, f"{prefix}_city"),
        state=getattr(model, f"{prefix}_state"),
        postal_code=getattr(model, f"{prefix}_postal_code"),
        country=getattr(model, f"{prefix}_country"),
    )


def order_to_model(order: Order, model: OrderModel) -> OrderModel:
    """Copy an order aggregate onto an ORM row, syncing its line items."""
    model.customer_id = order.customer_id
    model.status = order.status.value
    for column, value in {
        **_address_columns("shipping", order.shipping_address),
        **_address_columns("billing", order.billing_address),
    }.items():
        setattr(model, column, value)
    model.tax_cents = order.tax.amount_cents
    model.shipping_cents = order.shipping.amount_cents
    model.currency = order.currency

    payment = order.payment
    model.payment_method = payment.method.value if payment else None
    model.payment_amount_cents = payment.amount.amount_cents if payment else None
    model.payment_status = payment.status.value if payment else None
    model.payment_transaction_id = payment.transaction_id if payment else None
    model.payment_processed_at = payment.processed_at if payment else None

    tracking = order.shipment_tracking
    model.carrier = tracking.carrier if tracking else None
    model.tracking_number = tracking.tracking_number if tracking else None
    model.shipped_at = tracking.shipped_at if tracking else None
    model.delivered_at = tracking.delivered_at if tracking else None

    model.cancelled_at = order.cancelled_at
    model.cancel_reason = order.cancel_reason
    model.created_at = order.created_at
    model.updated_at = order.updated_at

    existing = {item.listing_id: item for item in model.line_items}
    rows = []
    for position, item in enumerate(order.line_items):
        row = existing.get(item.listing_id) or OrderLineItemModel(
            order_id=order.id, listing_id=item.listing_id
        )
        row.position = position
        row.isbn = item.isbn
        row.title = item.title
        row.author = item.author
        row.condition = item.condition.value
        row.price_cents = item.price.amount_cents
        row.currency = item.price.currency
        row.status = item.status.value
        rows.append(row)
    model.line_items = rows
    return model


def order_from_model(model: OrderModel) -> Order:
    """Rebuild an order aggregate from an ORM row."""
    payment = None
    if model.payment_method is not None:
        payment = Payment(
            method=PaymentMethod(model.payment_method),
            amount=Money(model.payment_amount_cents, model.currency),
            status=PaymentStatus(model.payment_status),
            transaction_id=model.payment_transaction_id,
            processed_at=model.payment_processed_at,
        )
    tracking = None
    if model.tracking_number is not None:
        tracking = ShipmentTracking(
            carrier=model.carrier,
            tracking_number=model.tracking_number,
            shipped_at=model.shipped_at,
            delivered_at=model.delivered_at,
        )
    return Order(
        id=model.id,
        version=model.version,
        created_at=model.created_at,
        updated_at=model.updated_at,
        customer_id=model.customer_id,
        shipping_address=_address_from(model, "shipping"),
        billing_address=_address_from(model, "billing"),
        line_items=tuple(
            OrderLineItem(
                listing_id=row.listing_id,
                isbn=row.isbn,
                title=row.title,
                author=row.author,
                condition=BookCondition(row.condition),
                price=Money(row.price_cents, row.currency),
                status=LineItemStatus(row.status),
            )
            for row in model.line_items
        ),
        status=OrderStatus(model.status),
        tax=Money(model.tax_cents, model.currency),
        shipping=Money(model.shipping_cents, model.currency),
        payment=payment,
        shipment_tracking=tracking,
        cancelled_at=model.cancelled_at,
        cancel_reason=model.cancel_reason,
    )


class SqlOrderRepository(OrderRepository):
    """Async SQLAlchemy repository for orders."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize repository.

        Args:
            session_factory: Factory producing async sessions.
        """
        self.session_factory = session_factory

    async def save(self, order: Order) -> Order:
        """Insert or version-checked update of an order."""
        async with self.session_factory() as session:
            async with session.begin():
                if order.version == 0:
                    model = OrderModel(id=order.id, line_items=[])
                    order_to_model(order, model)
                    model.version = 1
                    session.add(model)
                    await session.flush()
                    return order.persisted(1)

                result = await session.execute(
                    select(OrderModel).where(OrderModel.id == order.id).with_for_update()
                )
                model = result.scalar_one_or_none()
                stored_version = model.version if model else 0
                if model is None or model.version != order.version:
                    raise ConcurrentModificationError("Order", order.id, order.version, stored_version)
                order_to_model(order, model)
                model.version = order.version + 1
                await session.flush()
                return order.persisted(model.version)

    async def find_by_id(self, order_id: str) -> Order | None:
        """Get order by ID."""
        async with self.session_factory() as session:
            result = await session.execute(select(OrderModel).where(OrderModel.id == order_id))
            model = result.scalar_one_or_none()
            return order_from_model(model) if model else None

    async def find_by_customer_id(self, customer_id: str) -> list[Order]:
        """Get orders by customer, newest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(OrderModel)
                .where(OrderModel.customer_id == customer_id)
                .order_by(OrderModel.created_at.desc())
            )
            return [order_from_model(m) for m in result.scalars().all()]

    async def find_expired_checkouts(
        self,
        timeout_minutes: float,
        now: datetime | None = None,
    ) -> list[Order]:
        """Get orders whose checkout window lapsed."""
        cutoff = (now or utc_now()) - timedelta(minutes=timeout_minutes)
        async with self.session_factory() as session:
            result = await session.execute(
                select(OrderModel).where(
                    OrderModel.status.in_([s.value for s in EXPIRABLE_STATUSES]),
                    OrderModel.updated_at < cutoff,
                )
            )
            return [order_from_model(m) for m in result.scalars().all()]
