from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from decimal import Decimal
from typing import Optional

from storefront.database import MAX_INTEGER
from storefront.models.order import OrderStatus


class OrderItemCreate(BaseModel):
    """A requested line: which product and how many."""
    product_id: int = Field(..., ge=1, le=MAX_INTEGER, description="ID of the product to purchase")
    quantity: int = Field(..., ge=1, le=MAX_INTEGER, description="Quantity to purchase")


class OrderCreate(BaseModel):
    """Schema for creating a new order. Prices are always read from the store."""
    model_config = ConfigDict(str_strip_whitespace=True)

    customer_name: str = Field(..., min_length=1, max_length=255, description="Customer name")
    customer_email: str = Field(
        ...,
        min_length=3,
        max_length=255,
        pattern=r"^[^@\s]+@[^@\s]+$",
        description="Customer email address",
    )
    items: list[OrderItemCreate] = Field(..., min_length=1, description="Products and quantities to order")


class OrderStatusUpdate(BaseModel):
    """Schema for overwriting an order's status."""
    status: OrderStatus


class OrderItemResponse(BaseModel):
    """Schema for an order line in responses."""
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    """Schema for order response."""
    id: int
    customer_name: str
    customer_email: str
    total_amount: Decimal
    status: OrderStatus
    items: list[OrderItemResponse] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderListResponse(BaseModel):
    """Schema for paginated order list response."""
    items: list[OrderResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
