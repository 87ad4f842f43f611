"""Order API endpoints.

Provides endpoints for the order lifecycle:
- POST /orders - create a draft order
- GET /orders/{id} - order details
- GET /orders/customer/{customer_id} - a customer's orders
- POST /orders/{id}/items - add a listing
- DELETE /orders/{id}/items/{listing_id} - remove a listing
- POST /orders/{id}/checkout - hold every listing or none
- POST /orders/{id}/payment - record payment, sell listings
- POST /orders/{id}/ship - attach tracking
- POST /orders/{id}/delivered - complete the order
- POST /orders/{id}/cancel - cancel, releasing held listings
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from bookmarket.api.errors import order_http_error, saga_http_error
from bookmarket.api.schemas import (
    AddLineItemRequest,
    CancelRequest,
    ErrorResponse,
    OrderCreateRequest,
    OrderResponse,
    OrdersListResponse,
    PaymentRequest,
    ShipRequest,
)
from bookmarket.application.order_service import OrderService
from bookmarket.domain.exceptions import DomainError
from bookmarket.infrastructure.container import get_container

router = APIRouter(prefix="/orders", tags=["Orders"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


# ============================================================================
# Dependencies
# ============================================================================


def get_service(request: Request) -> OrderService:
    """Get order service with request ID."""
    request_id = getattr(request.state, "request_id", None)
    return get_container().order_service(request_id=request_id)


Service = Annotated[OrderService, Depends(get_service)]


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Create order",
)
async def create_order(request: OrderCreateRequest, service: Service) -> OrderResponse:
    """Create a draft order for a customer."""
    try:
        order = await service.create_order(
            customer_id=request.customer_id,
            shipping_address=request.shipping_address.to_address(),
            billing_address=(
                request.billing_address.to_address() if request.billing_address else None
            ),
            tax=request.tax.to_money() if request.tax else None,
            shipping=request.shipping.to_money() if request.shipping else None,
            currency=get_container().config.default_currency,
        )
    except DomainError as e:
        raise order_http_error(e) from e
    return OrderResponse.from_order(order)


@router.get(
    "/customer/{customer_id}",
    response_model=OrdersListResponse,
    summary="List customer orders",
)
async def list_customer_orders(customer_id: str, service: Service) -> OrdersListResponse:
    """List a customer's orders, newest first."""
    orders = await service.list_orders_for_customer(customer_id)
    return OrdersListResponse(
        items=[OrderResponse.from_order(order) for order in orders],
        total=len(orders),
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get order",
)
async def get_order(order_id: str, service: Service) -> OrderResponse:
    """Get an order by ID."""
    try:
        order = await service.get_order(order_id)
    except DomainError as e:
        raise order_http_error(e) from e
    return OrderResponse.from_order(order)


@router.post(
    "/{order_id}/items",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    summary="Add line item",
)
async def add_line_item(
    order_id: str,
    request: AddLineItemRequest,
    service: Service,
) -> OrderResponse:
    """Add a snapshot of a listing to a draft order.

    Returns 404 if the order or listing is missing, 400 if the listing
    is already in the order or the order is no longer a draft.
    """
    try:
        order = await service.add_line_item(order_id, request.listing_id)
    except DomainError as e:
        raise order_http_error(e) from e
    return OrderResponse.from_order(order)


@router.delete(
    "/{order_id}/items/{listing_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    summary="Remove line item",
)
async def remove_line_item(order_id: str, listing_id: str, service: Service) -> OrderResponse:
    """Remove a listing from a draft order."""
    try:
        order = await service.remove_line_item(order_id, listing_id)
    except DomainError as e:
        raise order_http_error(e) from e
    return OrderResponse.from_order(order)


@router.post(
    "/{order_id}/checkout",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    summary="Check out order",
)
async def checkout(order_id: str, service: Service) -> OrderResponse:
    """Hold every listing of the order.

    On success the order is payment pending. If a hold fails, the holds
    already taken are released and the 400 response carries
    ``details.order_status`` ("checking_out") and
    ``details.rolled_back_listing_ids``.
    """
    try:
        order = await service.checkout(order_id)
    except DomainError as e:
        raise saga_http_error(e) from e
    return OrderResponse.from_order(order)


@router.post(
    "/{order_id}/payment",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    summary="Process payment",
)
async def process_payment(
    order_id: str,
    request: PaymentRequest,
    service: Service,
) -> OrderResponse:
    """Record a completed payment; the order is confirmed and its listings sold."""
    try:
        order = await service.process_payment(order_id, request.method, request.transaction_id)
    except DomainError as e:
        raise saga_http_error(e) from e
    return OrderResponse.from_order(order)


@router.post(
    "/{order_id}/ship",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    summary="Mark shipped",
)
async def ship(order_id: str, request: ShipRequest, service: Service) -> OrderResponse:
    try:
        order = await service.mark_shipped(order_id, request.carrier, request.tracking_number)
    except DomainError as e:
        raise order_http_error(e) from e
    return OrderResponse.from_order(order)


@router.post(
    "/{order_id}/delivered",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    summary="Mark delivered",
)
async def mark_delivered(order_id: str, service: Service) -> OrderResponse:
    try:
        order = await service.mark_delivered(order_id)
    except DomainError as e:
        raise order_http_error(e) from e
    return OrderResponse.from_order(order)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    summary="Cancel order",
)
async def cancel_order(
    order_id: str,
    service: Service,
    request: CancelRequest | None = None,
) -> OrderResponse:
    """Cancel an order, releasing any listings it holds.

    Shipped, completed and cancelled orders cannot be cancelled.
    """
    try:
        order = await service.cancel_order(order_id, request.reason if request else None)
    except DomainError as e:
        raise order_http_error(e) from e
    return OrderResponse.from_order(order)
