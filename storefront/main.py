from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from storefront.config import get_settings
from storefront.database import engine, Base
from storefront.exceptions import StoreUnavailableError
from storefront.utils.cache import create_cache_coordinator
from storefront.api import products, orders, stats, health

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    # Startup
    logger.info("Starting up application...")

    # Create database tables
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")

    app.state.cache = create_cache_coordinator(settings)
    logger.info(f"Cache coordinator ready ({type(app.state.cache.backend).__name__})")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    engine.dispose()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Product catalog and order service with a read-through cache.

    - **Catalog**: create, update and soft-delete products
    - **Orders**: multi-item orders with atomic stock reservation
    - **Stats**: aggregate order and revenue figures

    ## Consistency

    ### Stock
    Order creation locks the purchased products with `SELECT FOR UPDATE`, so
    concurrent orders can never oversell. Orders either fully commit or leave
    no trace.

    ### Caching
    Catalog reads and statistics are served from Redis when possible.
    Every committed mutation invalidates the affected keys, so a read after
    a write never returns pre-write data. The service stays correct, only
    slower, while Redis is down.
    """,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(orders.router, prefix="/api/v1")
app.include_router(stats.router, prefix="/api/v1")


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    """Database trouble is retriable: tell the client to try again."""
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": str(exc), "retriable": True},
        headers={"Retry-After": "1"},
    )


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/api/v1/health"
    }
