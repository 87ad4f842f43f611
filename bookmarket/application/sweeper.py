"""Reservation sweeper.

Reconciles time-expired reservations on both sides of the marketplace:
listings whose hold lapsed go back to available, and orders whose
checkout window lapsed are cancelled through the regular cancel path.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from bookmarket.domain.base import utc_now

if TYPE_CHECKING:
    from bookmarket.application.listing_service import ListingService
    from bookmarket.application.order_service import OrderService

logger = structlog.get_logger()


@dataclass
class SweepResult:
    """Outcome of one sweep.

    Attributes:
        processed_ids: Aggregates reconciled by the sweep.
        failed_ids: Aggregates whose reconciliation raised.
    """

    processed_ids: list[str] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)


@dataclass
class SweepReport:
    """Results of one sweeper tick."""

    listings: SweepResult
    orders: SweepResult


class ReservationSweeper:
    """Runs the listing sweep and the order sweep, once or periodically.

    Both sweeps share one tick: expired listing holds are released
    first, then expired checkouts are cancelled.
    """

    def __init__(
        self,
        listing_service: "ListingService",
        order_service: "OrderService",
        hold_duration_minutes: float,
        interval_seconds: float = 60.0,
    ) -> None:
        """Initialize sweeper.

        Args:
            listing_service: Service owning listing holds.
            order_service: Service owning orders.
            hold_duration_minutes: Checkout timeout for the order sweep.
            interval_seconds: Delay between ticks of the background task.
        """
        self.listing_service = listing_service
        self.order_service = order_service
        self.hold_duration_minutes = hold_duration_minutes
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, now: datetime | None = None) -> SweepReport:
        """Run both sweeps once.

        Args:
            now: Reference time (defaults to current UTC time).

        Returns:
            SweepReport with both results.
        """
        now = now or utc_now()
        listings = await self.listing_service.release_expired_holds(now)
        orders = await self.order_service.release_expired_checkouts(
            self.hold_duration_minutes, now
        )
        return SweepReport(listings=listings, orders=orders)

    async def _run(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Reservation sweep failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Start the background task."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("Reservation sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop the background task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reservation sweeper stopped")
