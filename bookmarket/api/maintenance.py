"""Maintenance endpoints.

POST /maintenance/sweep runs the reservation sweeps once, for use by an
external scheduler when the in-process sweeper is disabled.
"""

from fastapi import APIRouter

from bookmarket.api.schemas import SweepResponse
from bookmarket.infrastructure.container import get_container

router = APIRouter(prefix="/maintenance", tags=["Maintenance"])


@router.post("/sweep", response_model=SweepResponse, summary="Run reservation sweeps")
async def run_sweep() -> SweepResponse:
    """Release expired listing holds, then cancel expired checkouts."""
    report = await get_container().sweeper.run_once()
    return SweepResponse(
        released_listing_ids=report.listings.processed_ids,
        failed_listing_ids=report.listings.failed_ids,
        cancelled_order_ids=report.orders.processed_ids,
        failed_order_ids=report.orders.failed_ids,
    )
