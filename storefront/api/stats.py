from fastapi import APIRouter, Depends

from storefront.api.dependencies import get_stats_service
from storefront.schemas.stats import StatsResponse
from storefront.services.stats_service import StatsService

router = APIRouter(prefix="/stats", tags=["Stats"])


@router.get(
    "/",
    response_model=StatsResponse,
    summary="Order statistics",
    description="Order counts, active product count and revenue. Cached for a short TTL."
)
def get_stats(service: StatsService = Depends(get_stats_service)):
    """Get aggregate statistics."""
    return service.get_stats()
