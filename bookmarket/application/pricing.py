"""Listing price policy.

Turns the price paid to a seller into an asking price. The appraisal
arithmetic itself lives elsewhere; this only applies the resale markup.
"""

from decimal import Decimal
from typing import Protocol

from bookmarket.domain.value_objects import BookCondition, Money

CONDITION_MARKUP: dict[BookCondition, Decimal] = {
    BookCondition.EXCELLENT: Decimal("0.60"),
    BookCondition.GOOD: Decimal("0.50"),
    BookCondition.FAIR: Decimal("0.40"),
    BookCondition.POOR: Decimal("0.30"),
}


class PricingPolicy(Protocol):
    """Computes a listing price."""

    def listing_price(self, offer_price: Money, condition: BookCondition) -> Money:
        """Return the asking price for a book bought at ``offer_price``."""
        ...


class ConditionMarkupPricing:
    """Markup over the offer price that shrinks as condition worsens.

    Excellent copies sell at +60%, good at +50%, fair at +40%, poor at +30%.
    """

    def __init__(self, markups: dict[BookCondition, Decimal] | None = None) -> None:
        self.markups = markups or CONDITION_MARKUP

    def listing_price(self, offer_price: Money, condition: BookCondition) -> Money:
        return offer_price * (Decimal(1) + self.markups[BookCondition(condition)])
