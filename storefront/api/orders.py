from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from typing import Optional

from storefront.api.dependencies import get_order_service
from storefront.database import MAX_INTEGER
from storefront.exceptions import InsufficientStockError, InvalidInputError, NotFoundError
from storefront.services.order_service import OrderService
from storefront.schemas.order import (
    OrderCreate,
    OrderResponse,
    OrderListResponse,
    OrderStatusUpdate,
)
from storefront.models.order import OrderStatus

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post(
    "/",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new order",
    description="""
    Place an order for one or more products.

    **Race Condition Handling:**
    Products are locked with SELECT FOR UPDATE for the duration of the
    transaction, so concurrent orders can never oversell:
    - Stock is checked and decremented atomically
    - Losing requests receive a 400 error naming the product that ran out

    Prices are always taken from the catalog, never from the request.
    """
)
def create_order(
    order_data: OrderCreate,
    service: OrderService = Depends(get_order_service)
):
    """
    Create an order.

    - **customer_name**: Customer name (required)
    - **customer_email**: Customer email (required)
    - **items**: List of `{product_id, quantity}` (at least one)
    """
    try:
        return service.create_order(order_data)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except (InsufficientStockError, InvalidInputError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.get(
    "/",
    response_model=OrderListResponse,
    summary="List all orders",
    description="Get a paginated list of orders with their items and optional status filter."
)
def list_orders(
    page: int = Query(1, ge=1, le=MAX_INTEGER, description="Page number"),
    page_size: int = Query(10, ge=1, le=100, description="Items per page"),
    status: Optional[OrderStatus] = Query(None, description="Filter by order status"),
    service: OrderService = Depends(get_order_service)
):
    """Get paginated list of orders."""
    orders, total, total_pages = service.get_orders(page, page_size, status)

    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
    description="Get detailed information about a specific order."
)
def get_order(
    order_id: int = Path(..., le=MAX_INTEGER),
    service: OrderService = Depends(get_order_service)
):
    """Get an order by ID."""
    try:
        return service.get_order(order_id)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Update order status",
    description="Overwrite the status of an order. Any status may follow any other."
)
def update_order_status(
    status_data: OrderStatusUpdate,
    order_id: int = Path(..., le=MAX_INTEGER),
    service: OrderService = Depends(get_order_service)
):
    """Set a new status on an order."""
    try:
        return service.update_status(order_id, status_data.status)
    except InvalidInputError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
