"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from bookmarket.application.event_bus import EventBus
from bookmarket.application.listing_service import AppraisedBook, ListingService, SearchResult
from bookmarket.application.locking import KeyedLock
from bookmarket.application.order_service import OrderService
from bookmarket.application.pricing import ConditionMarkupPricing, PricingPolicy
from bookmarket.application.saga import CompensationStack, UnwindResult
from bookmarket.application.sweeper import ReservationSweeper, SweepReport, SweepResult

__all__ = [
    "AppraisedBook",
    "CompensationStack",
    "ConditionMarkupPricing",
    "EventBus",
    "KeyedLock",
    "ListingService",
    "OrderService",
    "PricingPolicy",
    "ReservationSweeper",
    "SearchResult",
    "SweepReport",
    "SweepResult",
    "UnwindResult",
]
