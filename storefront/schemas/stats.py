from pydantic import BaseModel
from decimal import Decimal


class StatsResponse(BaseModel):
    """Aggregate order and catalog statistics."""
    total_orders: int
    total_products: int
    total_revenue: Decimal
    pending_orders: int
