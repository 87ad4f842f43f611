"""API schemas for the bookmarket API.

Pydantic models for request/response validation and serialization.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from bookmarket.domain.entities import Listing, Order, OrderLineItem
from bookmarket.domain.state_machines import LineItemStatus, ListingStatus, OrderStatus
from bookmarket.domain.value_objects import (
    Address,
    BookCondition,
    BookInfo,
    Money,
    PaymentMethod,
)

# ============================================================================
# Common Schemas
# ============================================================================


class MoneySchema(BaseModel):
    """Amount of money."""

    amount_cents: int = Field(..., ge=0, description="Amount in smallest currency unit (cents)")
    currency: str = Field(default="USD", min_length=3, max_length=3, description="Currency code")

    @classmethod
    def from_money(cls, money: Money) -> "MoneySchema":
        return cls(amount_cents=money.amount_cents, currency=money.currency)

    def to_money(self) -> Money:
        return Money(self.amount_cents, self.currency.upper())


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | list[Any] = Field(
        default_factory=dict, description="Additional error details"
    )
    request_id: str | None = Field(default=None, description="Request ID for correlation")


class AddressSchema(BaseModel):
    """Postal address."""

    name: str = Field(..., min_length=1)
    street1: str = Field(..., min_length=1)
    street2: str | None = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = "US"

    @classmethod
    def from_address(cls, address: Address) -> "AddressSchema":
        return cls(
            name=address.name,
            street1=address.street1,
            street2=address.street2,
            city=address.city,
            state=address.state,
            postal_code=address.postal_code,
            country=address.country,
        )

    def to_address(self) -> Address:
        return Address(
            name=self.name,
            street1=self.street1,
            street2=self.street2,
            city=self.city,
            state=self.state,
            postal_code=self.postal_code,
            country=self.country,
        )


# ============================================================================
# Listing Schemas
# ============================================================================


class BookInfoSchema(BaseModel):
    """Bibliographic description of a book copy."""

    isbn: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    condition: BookCondition
    cover_image_url: str | None = None
    publisher: str | None = None
    publish_year: int | None = None
    description: str | None = None

    def to_book_info(self) -> BookInfo:
        return BookInfo(**self.model_dump())


class AppraisedBookSchema(BaseModel):
    """One appraised book and the price paid for it."""

    book: BookInfoSchema
    offer_price: MoneySchema
    listing_price: MoneySchema | None = Field(
        default=None, description="Asking price; derived from condition when omitted"
    )


class ListingCreateRequest(BaseModel):
    """Request to list the books of a completed appraisal."""

    appraisal_id: str = Field(..., min_length=1)
    purchase_request_id: str = Field(..., min_length=1)
    books: list[AppraisedBookSchema] = Field(..., min_length=1)


class HoldRequest(BaseModel):
    """Request to hold a listing for an order."""

    order_id: str = Field(..., min_length=1)


class WithdrawRequest(BaseModel):
    """Request to withdraw a listing."""

    reason: str | None = None


class ListingResponse(BaseModel):
    """Listing details."""

    id: str
    isbn: str
    title: str
    author: str
    condition: BookCondition
    cover_image_url: str | None = None
    publisher: str | None = None
    publish_year: int | None = None
    description: str | None = None
    source_appraisal_id: str
    purchase_request_id: str
    offer_price: MoneySchema
    listing_price: MoneySchema
    status: ListingStatus
    held_by_order_id: str | None = None
    held_until: datetime | None = None
    sold_at: datetime | None = None
    withdraw_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_listing(cls, listing: Listing) -> "ListingResponse":
        book = listing.book_info
        return cls(
            id=listing.id,
            isbn=book.isbn,
            title=book.title,
            author=book.author,
            condition=book.condition,
            cover_image_url=book.cover_image_url,
            publisher=book.publisher,
            publish_year=book.publish_year,
            description=book.description,
            source_appraisal_id=listing.source_appraisal_id,
            purchase_request_id=listing.purchase_request_id,
            offer_price=MoneySchema.from_money(listing.offer_price),
            listing_price=MoneySchema.from_money(listing.listing_price),
            status=listing.status,
            held_by_order_id=listing.held_by_order_id,
            held_until=listing.held_until,
            sold_at=listing.sold_at,
            withdraw_reason=listing.withdraw_reason,
            created_at=listing.created_at,
            updated_at=listing.updated_at,
        )


class ListingsListResponse(BaseModel):
    """Paginated list of listings."""

    items: list[ListingResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# ============================================================================
# Order Schemas
# ============================================================================


class OrderCreateRequest(BaseModel):
    """Request to create a draft order."""

    customer_id: str = Field(..., min_length=1)
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    tax: MoneySchema | None = None
    shipping: MoneySchema | None = None


class AddLineItemRequest(BaseModel):
    """Request to add a listing to an order."""

    listing_id: str = Field(..., min_length=1)


class PaymentRequest(BaseModel):
    """Request to record a payment."""

    method: PaymentMethod
    transaction_id: str = Field(..., min_length=1)


class ShipRequest(BaseModel):
    """Request to mark an order shipped."""

    carrier: str = Field(..., min_length=1)
    tracking_number: str = Field(..., min_length=1)


class CancelRequest(BaseModel):
    """Request to cancel an order."""

    reason: str | None = None


class LineItemSchema(BaseModel):
    """Order line item."""

    listing_id: str
    isbn: str
    title: str
    author: str
    condition: BookCondition
    price: MoneySchema
    status: LineItemStatus

    @classmethod
    def from_item(cls, item: OrderLineItem) -> "LineItemSchema":
        return cls(
            listing_id=item.listing_id,
            isbn=item.isbn,
            title=item.title,
            author=item.author,
            condition=item.condition,
            price=MoneySchema.from_money(item.price),
            status=item.status,
        )


class PaymentSchema(BaseModel):
    """Payment record."""

    method: PaymentMethod
    amount: MoneySchema
    status: str
    transaction_id: str | None = None
    processed_at: datetime | None = None


class TrackingSchema(BaseModel):
    """Shipment tracking."""

    carrier: str
    tracking_number: str
    shipped_at: datetime
    delivered_at: datetime | None = None


class OrderResponse(BaseModel):
    """Order details."""

    id: str
    customer_id: str
    status: OrderStatus
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    line_items: list[LineItemSchema]
    subtotal: MoneySchema
    tax: MoneySchema
    shipping: MoneySchema
    total: MoneySchema
    payment: PaymentSchema | None = None
    shipment_tracking: TrackingSchema | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        payment = None
        if order.payment:
            payment = PaymentSchema(
                method=order.payment.method,
                amount=MoneySchema.from_money(order.payment.amount),
                status=order.payment.status.value,
                transaction_id=order.payment.transaction_id,
                processed_at=order.payment.processed_at,
            )
        tracking = None
        if order.shipment_tracking:
            tracking = TrackingSchema(
                carrier=order.shipment_tracking.carrier,
                tracking_number=order.shipment_tracking.tracking_number,
                shipped_at=order.shipment_tracking.shipped_at,
                delivered_at=order.shipment_tracking.delivered_at,
            )
        return cls(
            id=order.id,
            customer_id=order.customer_id,
            status=order.status,
            shipping_address=AddressSchema.from_address(order.shipping_address),
            billing_address=(
                AddressSchema.from_address(order.billing_address)
                if order.billing_address
                else None
            ),
            line_items=[LineItemSchema.from_item(item) for item in order.line_items],
            subtotal=MoneySchema.from_money(order.subtotal),
            tax=MoneySchema.from_money(order.tax),
            shipping=MoneySchema.from_money(order.shipping),
            total=MoneySchema.from_money(order.total),
            payment=payment,
            shipment_tracking=tracking,
            cancelled_at=order.cancelled_at,
            cancel_reason=order.cancel_reason,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrdersListResponse(BaseModel):
    """List of a customer's orders."""

    items: list[OrderResponse]
    total: int


# ============================================================================
# Maintenance Schemas
# ============================================================================


class SweepResponse(BaseModel):
    """Outcome of one reservation sweep."""

    released_listing_ids: list[str]
    failed_listing_ids: list[str]
    cancelled_order_ids: list[str]
    failed_order_ids: list[str]
