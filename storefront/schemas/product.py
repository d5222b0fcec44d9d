from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from decimal import Decimal
from typing import Optional

from storefront.database import MAX_INTEGER


class ProductBase(BaseModel):
    """Base schema for Product with common attributes."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255, description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2, description="Unit price (non-negative)")
    category: str = Field(..., min_length=1, max_length=100, description="Catalog category")
    stock: int = Field(0, ge=0, le=MAX_INTEGER, description="Available stock (must be non-negative)")
    image_url: Optional[str] = Field(None, description="Image reference")


class ProductCreate(ProductBase):
    """Schema for creating a new product."""
    pass


class ProductUpdate(BaseModel):
    """Schema for updating an existing product. All fields are optional."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=255, description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2, description="Unit price")
    category: Optional[str] = Field(None, min_length=1, max_length=100, description="Catalog category")
    stock: Optional[int] = Field(None, ge=0, le=MAX_INTEGER, description="Available stock")
    image_url: Optional[str] = Field(None, description="Image reference")


class ProductResponse(ProductBase):
    """Schema for product response including all fields."""
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
