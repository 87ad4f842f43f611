"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. They are interchangeable when their values are equal.
"""

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Self

from bookmarket.domain.base import ValueObject, utc_now
from bookmarket.domain.exceptions import (
    CurrencyMismatchError,
    InvalidStateTransitionError,
    NegativeMoneyError,
    ValidationError,
)

EARLIEST_PUBLISH_YEAR = 1450


def _require(field_name: str, value: str | None) -> str:
    """Strip a required text field and reject blanks."""
    if value is None or not value.strip():
        raise ValidationError(field_name, "is required")
    return value.strip()


def _optional(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


# ============================================================================
# Money Value Object
# ============================================================================


@dataclass(frozen=True)
class Money(ValueObject):
    """Represents monetary value with currency.

    Money is stored in the smallest currency unit (cents for USD/EUR)
    to avoid floating-point precision issues. It cannot represent debt:
    any operation producing a negative amount fails.

    Attributes:
        amount_cents: Amount in smallest currency unit (e.g., cents).
        currency: ISO 4217 currency code (e.g., 'USD', 'EUR').
    """

    amount_cents: int
    currency: str = "USD"

    def __post_init__(self) -> None:
        """Validate money constraints."""
        if isinstance(self.amount_cents, bool) or not isinstance(self.amount_cents, int):
            raise ValidationError("amount_cents", "must be an integer number of minor units")
        if self.amount_cents < 0:
            raise NegativeMoneyError(self.amount_cents)
        # Normalize currency to uppercase
        object.__setattr__(self, "currency", self.currency.upper())

    @classmethod
    def zero(cls, currency: str = "USD") -> Self:
        """Create zero amount money.

        Args:
            currency: Currency code.

        Returns:
            Money with zero amount.
        """
        return cls(amount_cents=0, currency=currency)

    @classmethod
    def from_decimal(cls, amount: Decimal, currency: str = "USD") -> Self:
        """Create money from decimal amount.

        Args:
            amount: Decimal amount in major units (e.g., dollars).
            currency: Currency code.

        Returns:
            Money instance.
        """
        cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return cls(amount_cents=cents, currency=currency)

    @classmethod
    def sum_of(cls, amounts: Iterable["Money"], currency: str = "USD") -> "Money":
        """Add up a sequence of amounts.

        Args:
            amounts: Money values, all in the same currency.
            currency: Currency of the result when ``amounts`` is empty.

        Returns:
            Total amount.

        Raises:
            CurrencyMismatchError: If the amounts mix currencies.
        """
        total: Money | None = None
        for amount in amounts:
            total = amount if total is None else total + amount
        return total if total is not None else cls.zero(currency)

    def to_decimal(self) -> Decimal:
        """Convert to decimal amount in major units.

        Returns:
            Decimal amount (e.g., dollars from cents).
        """
        return Decimal(self.amount_cents) / 100

    def _check_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        """Add two money amounts.

        Args:
            other: Money to add.

        Returns:
            New Money with sum.

        Raises:
            CurrencyMismatchError: If currencies don't match.
        """
        self._check_currency(other)
        return Money(
            amount_cents=self.amount_cents + other.amount_cents,
            currency=self.currency,
        )

    def __sub__(self, other: "Money") -> "Money":
        """Subtract money amounts.

        Args:
            other: Money to subtract.

        Returns:
            New Money with difference.

        Raises:
            CurrencyMismatchError: If currencies don't match.
            NegativeMoneyError: If result would be negative.
        """
        self._check_currency(other)
        return Money(
            amount_cents=self.amount_cents - other.amount_cents,
            currency=self.currency,
        )

    def __mul__(self, factor: int | float | Decimal) -> "Money":
        """Multiply money by a non-negative factor.

        The product is rounded half-up to the nearest minor unit.

        Args:
            factor: Multiplier.

        Returns:
            New Money with product.

        Raises:
            ValidationError: If factor is negative.
        """
        factor = Decimal(str(factor))
        if factor < 0:
            raise ValidationError("factor", "cannot be negative")
        cents = (Decimal(self.amount_cents) * factor).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return Money(amount_cents=int(cents), currency=self.currency)

    def __rmul__(self, factor: int | float | Decimal) -> "Money":
        return self.__mul__(factor)

    def __lt__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount_cents < other.amount_cents

    def __le__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount_cents <= other.amount_cents

    def __gt__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount_cents > other.amount_cents

    def __ge__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount_cents >= other.amount_cents

    def __str__(self) -> str:
        """Return formatted string representation.

        Returns:
            Formatted money string (e.g., '$12.99 USD').
        """
        symbol = {"USD": "$", "EUR": "€", "GBP": "£"}.get(self.currency, "")
        return f"{symbol}{self.to_decimal():.2f} {self.currency}"

    def is_zero(self) -> bool:
        """Check if amount is zero.

        Returns:
            True if amount is zero.
        """
        return self.amount_cents == 0


# ============================================================================
# Book Description
# ============================================================================


class BookCondition(str, Enum):
    """Physical condition of a used book, as graded at appraisal."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


@dataclass(frozen=True)
class BookInfo(ValueObject):
    """Bibliographic description of one book copy.

    Attributes:
        isbn: ISBN of the edition.
        title: Book title.
        author: Author name(s).
        condition: Graded condition of this copy.
        cover_image_url: Optional cover image.
        publisher: Optional publisher name.
        publish_year: Optional year of publication.
        description: Optional free-text description.
    """

    isbn: str
    title: str
    author: str
    condition: BookCondition
    cover_image_url: str | None = None
    publisher: str | None = None
    publish_year: int | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        """Normalize text fields and validate the publish year."""
        object.__setattr__(self, "isbn", _require("isbn", self.isbn))
        object.__setattr__(self, "title", _require("title", self.title))
        object.__setattr__(self, "author", _require("author", self.author))
        object.__setattr__(self, "condition", BookCondition(self.condition))
        object.__setattr__(self, "publisher", _optional(self.publisher))
        object.__setattr__(self, "description", _optional(self.description))
        if self.publish_year is not None:
            current_year = utc_now().year
            if not EARLIEST_PUBLISH_YEAR <= self.publish_year <= current_year:
                raise ValidationError(
                    "publish_year",
                    f"must be between {EARLIEST_PUBLISH_YEAR} and {current_year}",
                )


# ============================================================================
# Address
# ============================================================================


@dataclass(frozen=True)
class Address(ValueObject):
    """Postal address used for shipping and billing.

    Attributes:
        name: Recipient name.
        street1: First street line.
        city: City.
        state: State or region.
        postal_code: Postal code.
        street2: Optional second street line.
        country: ISO country code, defaults to US.
    """

    name: str
    street1: str
    city: str
    state: str
    postal_code: str
    street2: str | None = None
    country: str = "US"

    def __post_init__(self) -> None:
        """Validate required fields and strip whitespace."""
        for field_name in ("name", "street1", "city", "state", "postal_code"):
            object.__setattr__(self, field_name, _require(field_name, getattr(self, field_name)))
        object.__setattr__(self, "street2", _optional(self.street2))
        object.__setattr__(self, "country", (self.country or "").strip() or "US")


# ============================================================================
# Payment
# ============================================================================


class PaymentMethod(str, Enum):
    """Supported payment methods."""

    CREDIT_CARD = "credit_card"
    PAYPAL = "paypal"
    STORE_CREDIT = "store_credit"


class PaymentStatus(str, Enum):
    """Payment record states."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


@dataclass(frozen=True)
class Payment(ValueObject):
    """Payment attached to an order when it is confirmed.

    Attributes:
        method: How the customer paid.
        amount: Amount charged.
        status: Payment record state.
        transaction_id: Processor transaction reference, set on completion.
        processed_at: When the processor settled or failed the payment.
    """

    method: PaymentMethod
    amount: Money
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: str | None = None
    processed_at: datetime | None = None

    @classmethod
    def create(cls, method: PaymentMethod | str, amount: Money) -> Self:
        """Create a pending payment.

        Args:
            method: Payment method.
            amount: Amount to charge.

        Returns:
            Pending payment.
        """
        return cls(method=PaymentMethod(method), amount=amount)

    def _require_status(self, expected: PaymentStatus, target: PaymentStatus) -> None:
        if self.status != expected:
            raise InvalidStateTransitionError(
                entity_type="Payment",
                entity_id=self.transaction_id or "-",
                current_state=self.status.value,
                target_state=target.value,
                message=f"Can only move {expected.value} payments to {target.value}",
            )

    def complete(self, transaction_id: str) -> Self:
        """Mark the payment as settled.

        Args:
            transaction_id: Processor transaction reference.

        Returns:
            Completed payment.

        Raises:
            InvalidStateTransitionError: If payment is not pending.
            ValidationError: If transaction_id is blank.
        """
        self._require_status(PaymentStatus.PENDING, PaymentStatus.COMPLETED)
        return replace(
            self,
            status=PaymentStatus.COMPLETED,
            transaction_id=_require("transaction_id", transaction_id),
            processed_at=utc_now(),
        )

    def fail(self) -> Self:
        """Mark the payment as declined."""
        self._require_status(PaymentStatus.PENDING, PaymentStatus.FAILED)
        return replace(self, status=PaymentStatus.FAILED, processed_at=utc_now())

    def refund(self) -> Self:
        """Mark a completed payment as refunded."""
        self._require_status(PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)
        return replace(self, status=PaymentStatus.REFUNDED)


# ============================================================================
# Shipment Tracking
# ============================================================================


@dataclass(frozen=True)
class ShipmentTracking(ValueObject):
    """Carrier tracking attached to a shipped order.

    Attributes:
        carrier: Carrier name.
        tracking_number: Carrier tracking number.
        shipped_at: When the parcel was handed to the carrier.
        delivered_at: When the carrier reported delivery.
    """

    carrier: str
    tracking_number: str
    shipped_at: datetime
    delivered_at: datetime | None = None

    @classmethod
    def create(cls, carrier: str, tracking_number: str) -> Self:
        """Start tracking a parcel shipped now.

        Raises:
            ValidationError: If carrier or tracking number is blank.
        """
        return cls(
            carrier=_require("carrier", carrier),
            tracking_number=_require("tracking_number", tracking_number),
            shipped_at=utc_now(),
        )

    @property
    def is_delivered(self) -> bool:
        return self.delivered_at is not None

    def mark_delivered(self) -> Self:
        """Record delivery.

        Raises:
            InvalidStateTransitionError: If already delivered.
        """
        if self.is_delivered:
            raise InvalidStateTransitionError(
                entity_type="ShipmentTracking",
                entity_id=self.tracking_number,
                current_state="delivered",
                target_state="delivered",
                message=f"Shipment {self.tracking_number} is already delivered",
            )
        return replace(self, delivered_at=utc_now())


# ============================================================================
# Listing Search
# ============================================================================


class ListingSort(str, Enum):
    """Sort orders offered by listing search."""

    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    DATE_NEWEST = "date_newest"
    DATE_OLDEST = "date_oldest"
    TITLE = "title"


@dataclass(frozen=True)
class ListingSearchCriteria(ValueObject):
    """Filters for browsing available listings.

    Attributes:
        query: Case-insensitive text matched against title, author and ISBN.
        conditions: Only listings in one of these conditions.
        min_price_cents: Inclusive lower bound on listing price.
        max_price_cents: Inclusive upper bound on listing price.
        sort: Result order (defaults to newest first).
        page: 1-based page number.
        page_size: Items per page.
    """

    query: str | None = None
    conditions: tuple[BookCondition, ...] = ()
    min_price_cents: int | None = None
    max_price_cents: int | None = None
    sort: ListingSort = ListingSort.DATE_NEWEST
    page: int = 1
    page_size: int = 20

    def __post_init__(self) -> None:
        """Validate paging bounds."""
        if self.page < 1:
            raise ValidationError("page", "must be at least 1")
        if not 1 <= self.page_size <= 100:
            raise ValidationError("page_size", "must be between 1 and 100")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size
