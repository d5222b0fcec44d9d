from sqlalchemy import func, select
from sqlalchemy.orm import Session

from storefront.config import get_settings
from storefront.database import atomic
from storefront.models.order import Order, OrderStatus
from storefront.models.product import Product
from storefront.schemas.stats import StatsResponse
from storefront.utils.cache import CacheCoordinator, STATS_KEY


class StatsService:
    """Aggregate order and catalog statistics, cached for a short TTL."""

    def __init__(self, db: Session, cache: CacheCoordinator):
        self.db = db
        self.cache = cache
        self.settings = get_settings()

    def get_stats(self) -> StatsResponse:
        data = self.cache.read_through(STATS_KEY, self.settings.CACHE_TTL_STATS, self._load_stats)
        return StatsResponse.model_validate(data)

    def _load_stats(self) -> dict:
        # Separate scalar subqueries: joining orders to products would
        # multiply the revenue by the product count.
        query = select(
            select(func.count(Order.id)).scalar_subquery().label("total_orders"),
            select(func.count(Product.id))
            .where(Product.is_active.is_(True))
            .scalar_subquery()
            .label("total_products"),
            select(func.coalesce(func.sum(Order.total_amount), 0)).scalar_subquery().label("total_revenue"),
            select(func.count(Order.id))
            .where(Order.status == OrderStatus.PENDING)
            .scalar_subquery()
            .label("pending_orders"),
        )
        with atomic(self.db, "get_stats"):
            row = self.db.execute(query).one()

        stats = StatsResponse(
            total_orders=row.total_orders,
            total_products=row.total_products,
            total_revenue=row.total_revenue,
            pending_orders=row.pending_orders,
        )
        return stats.model_dump(mode="json")
