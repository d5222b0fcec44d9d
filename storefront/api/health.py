from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from storefront.api.dependencies import get_cache
from storefront.database import get_db
from storefront.utils.cache import CacheCoordinator

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "/",
    summary="Health check",
    description="Basic health check endpoint."
)
def health_check():
    """Simple health check."""
    return {"status": "healthy"}


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the database is reachable and report the cache state."
)
def readiness_check(
    db: Session = Depends(get_db),
    cache: CacheCoordinator = Depends(get_cache)
):
    """
    Readiness check for all dependencies.

    Only the database decides readiness: the service keeps working, more
    slowly, while the cache is down. Not ready is reported as 503.
    """
    checks = {
        "database": False,
        "cache": cache.ping()
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        checks["database_error"] = str(e)
    finally:
        db.rollback()

    if not checks["database"]:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "checks": checks}
        )

    return {
        "status": "ready",
        "checks": checks
    }


@router.get(
    "/cache/stats",
    summary="Cache statistics",
    description="Hit/miss counters and connection state of the cache coordinator."
)
def cache_stats(cache: CacheCoordinator = Depends(get_cache)):
    """Get cache statistics."""
    return cache.stats()
