"""Tests for domain value objects."""

from datetime import timedelta
from decimal import Decimal

import pytest

from bookmarket.domain import (
    Address,
    BookCondition,
    BookInfo,
    Money,
    Payment,
    PaymentMethod,
    PaymentStatus,
    ShipmentTracking,
)
from bookmarket.domain.base import utc_now
from bookmarket.domain.exceptions import (
    CurrencyMismatchError,
    InvalidStateTransitionError,
    NegativeMoneyError,
    ValidationError,
)
from bookmarket.domain.value_objects import ListingSearchCriteria


class TestMoney:
    """Tests for Money value object."""

    def test_create_from_cents(self) -> None:
        """Money can be created from cents."""
        money = Money(amount_cents=1999, currency="USD")
        assert money.amount_cents == 1999
        assert money.currency == "USD"

    def test_create_from_decimal(self) -> None:
        """Money can be created from Decimal."""
        money = Money.from_decimal(Decimal("19.99"))
        assert money.amount_cents == 1999

    def test_to_decimal(self) -> None:
        """Money can be converted to Decimal."""
        assert Money(1999).to_decimal() == Decimal("19.99")

    def test_zero(self) -> None:
        """Zero money can be created."""
        money = Money.zero("EUR")
        assert money.is_zero()
        assert money.currency == "EUR"

    def test_currency_normalized_to_uppercase(self) -> None:
        """Currency code is normalized to uppercase."""
        assert Money(100, "usd").currency == "USD"

    def test_negative_amount_raises(self) -> None:
        """Money cannot represent debt."""
        with pytest.raises(NegativeMoneyError):
            Money(-1)

    def test_fractional_amount_raises(self) -> None:
        """Amounts are whole minor units."""
        with pytest.raises(ValidationError):
            Money(19.99)  # type: ignore[arg-type]

    def test_add(self) -> None:
        """Same-currency amounts add."""
        assert Money(1000) + Money(999) == Money(1999)

    def test_add_different_currency_raises(self) -> None:
        """Adding different currencies raises error."""
        with pytest.raises(CurrencyMismatchError):
            Money(100, "USD") + Money(100, "EUR")

    def test_subtract(self) -> None:
        """Same-currency amounts subtract."""
        assert Money(1999) - Money(999) == Money(1000)

    def test_subtract_below_zero_raises(self) -> None:
        """A negative difference is rejected."""
        with pytest.raises(NegativeMoneyError):
            Money(100) - Money(101)

    def test_multiply_rounds_half_up(self) -> None:
        """Multiplication rounds to the nearest minor unit."""
        assert (Money(1999) * Decimal("1.5")).amount_cents == 2999  # 2998.5
        assert (Money(1000) * 3).amount_cents == 3000
        assert (2 * Money(250)).amount_cents == 500

    def test_multiply_by_negative_raises(self) -> None:
        """Negative factors are rejected."""
        with pytest.raises(ValidationError):
            Money(100) * -1

    def test_comparison(self) -> None:
        """Money compares by amount within a currency."""
        assert Money(100) < Money(200)
        assert Money(200) >= Money(200)

    def test_comparison_different_currency_raises(self) -> None:
        """Comparing different currencies raises error."""
        with pytest.raises(CurrencyMismatchError):
            _ = Money(100, "USD") < Money(200, "EUR")

    def test_sum_of(self) -> None:
        """A sequence of amounts can be totalled."""
        assert Money.sum_of([Money(100), Money(250), Money(1)]) == Money(351)

    def test_sum_of_empty_is_zero(self) -> None:
        """Empty sums are zero in the requested currency."""
        assert Money.sum_of([], "GBP") == Money.zero("GBP")

    def test_str(self) -> None:
        """Money formats with symbol and code."""
        assert str(Money(1999)) == "$19.99 USD"


class TestBookInfo:
    """Tests for BookInfo value object."""

    def test_create(self) -> None:
        """Book info strips text fields and coerces condition."""
        info = BookInfo(isbn=" 9780441013593 ", title="Dune", author="Frank Herbert", condition="good")
        assert info.isbn == "9780441013593"
        assert info.condition == BookCondition.GOOD

    def test_blank_title_raises(self) -> None:
        """Title is required."""
        with pytest.raises(ValidationError):
            BookInfo(isbn="9780441013593", title="  ", author="Frank Herbert", condition="good")

    def test_unknown_condition_raises(self) -> None:
        """Condition must be a known grade."""
        with pytest.raises(ValueError):
            BookInfo(isbn="1", title="Dune", author="Frank Herbert", condition="mint")

    def test_publish_year_out_of_range_raises(self) -> None:
        """Publish year must be plausible."""
        with pytest.raises(ValidationError):
            BookInfo(
                isbn="1",
                title="Dune",
                author="Frank Herbert",
                condition="good",
                publish_year=1200,
            )
        with pytest.raises(ValidationError):
            BookInfo(
                isbn="1",
                title="Dune",
                author="Frank Herbert",
                condition="good",
                publish_year=utc_now().year + 1,
            )


class TestAddress:
    """Tests for Address value object."""

    def test_create_with_defaults(self) -> None:
        """Country defaults to US."""
        address = Address(
            name="Ada Reader",
            street1="1 Library Way",
            city="Portland",
            state="OR",
            postal_code="97201",
        )
        assert address.country == "US"
        assert address.street2 is None

    def test_missing_required_field_raises(self) -> None:
        """Required fields cannot be blank."""
        with pytest.raises(ValidationError):
            Address(name="Ada", street1="", city="Portland", state="OR", postal_code="97201")


class TestPayment:
    """Tests for Payment value object."""

    def test_complete(self) -> None:
        """Pending payment can complete."""
        payment = Payment.create("credit_card", Money(1999)).complete("t1")
        assert payment.method == PaymentMethod.CREDIT_CARD
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.transaction_id == "t1"
        assert payment.processed_at is not None

    def test_complete_requires_transaction_id(self) -> None:
        """A completed payment carries a transaction reference."""
        with pytest.raises(ValidationError):
            Payment.create(PaymentMethod.PAYPAL, Money(100)).complete(" ")

    def test_refund_completed(self) -> None:
        """Completed payment can be refunded."""
        payment = Payment.create("paypal", Money(100)).complete("t1").refund()
        assert payment.status == PaymentStatus.REFUNDED

    def test_refund_pending_raises(self) -> None:
        """Pending payments cannot be refunded."""
        with pytest.raises(InvalidStateTransitionError):
            Payment.create("paypal", Money(100)).refund()

    def test_fail_completed_raises(self) -> None:
        """Completed payments cannot fail."""
        with pytest.raises(InvalidStateTransitionError):
            Payment.create("store_credit", Money(100)).complete("t1").fail()


class TestShipmentTracking:
    """Tests for ShipmentTracking value object."""

    def test_mark_delivered(self) -> None:
        """Tracking records delivery once."""
        tracking = ShipmentTracking.create("USPS", "9400100000000000000000")
        assert not tracking.is_delivered

        delivered = tracking.mark_delivered()
        assert delivered.is_delivered
        assert delivered.delivered_at >= tracking.shipped_at - timedelta(seconds=1)

    def test_mark_delivered_twice_raises(self) -> None:
        """Delivery cannot be recorded twice."""
        delivered = ShipmentTracking.create("UPS", "1Z999").mark_delivered()
        with pytest.raises(InvalidStateTransitionError):
            delivered.mark_delivered()


class TestListingSearchCriteria:
    """Tests for listing search criteria."""

    def test_offset(self) -> None:
        """Offset follows page and page size."""
        assert ListingSearchCriteria(page=3, page_size=10).offset == 20

    def test_invalid_paging_raises(self) -> None:
        """Page and page size are bounded."""
        with pytest.raises(ValidationError):
            ListingSearchCriteria(page=0)
        with pytest.raises(ValidationError):
            ListingSearchCriteria(page_size=101)
