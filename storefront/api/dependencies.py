from fastapi import Depends, Request
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.services.order_service import OrderService
from storefront.services.product_service import ProductService
from storefront.services.stats_service import StatsService
from storefront.utils.cache import CacheCoordinator


def get_cache(request: Request) -> CacheCoordinator:
    """Dependency returning the coordinator built at application startup."""
    return request.app.state.cache


def get_product_service(
    db: Session = Depends(get_db),
    cache: CacheCoordinator = Depends(get_cache),
) -> ProductService:
    return ProductService(db, cache)


def get_order_service(
    db: Session = Depends(get_db),
    cache: CacheCoordinator = Depends(get_cache),
) -> OrderService:
    return OrderService(db, cache)


def get_stats_service(
    db: Session = Depends(get_db),
    cache: CacheCoordinator = Depends(get_cache),
) -> StatsService:
    return StatsService(db, cache)
