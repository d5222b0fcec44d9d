import os

# Must be set before the application modules read their settings
os.environ["DATABASE_URL"] = "sqlite://"

import threading
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.main import app
from storefront.database import Base, create_db_engine, get_db
from storefront.api.dependencies import get_cache
from storefront.models.product import Product
from storefront.utils.cache import CacheCoordinator, ReconnectBackoff


# Create test database (SQLite in-memory for testing)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
)


def override_get_db():
    """Override database dependency for testing."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


# Override the dependency
app.dependency_overrides[get_db] = override_get_db


class FakeClock:
    """Manually advanced clock for TTL and backoff tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MemoryCacheBackend:
    """
    In-process stand-in for the redis client, covering the calls the
    coordinator makes (``get``, ``setex``, ``delete``, ``ping``). Entries
    expire after their TTL according to ``clock``.
    """

    def __init__(self, clock):
        self._clock = clock
        self._entries = {}
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def setex(self, key, ttl, value):
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)
        return True

    def delete(self, *keys):
        with self._lock:
            return sum(1 for key in keys if self._entries.pop(key, None) is not None)

    def ping(self):
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_backend(clock):
    return MemoryCacheBackend(clock=clock)


@pytest.fixture
def cache(cache_backend, clock):
    return CacheCoordinator(cache_backend, backoff=ReconnectBackoff(0.05, 0.5), clock=clock)


@pytest.fixture(scope="function")
def client(cache):
    """Create test client with fresh database and cache for each test."""
    Base.metadata.create_all(bind=engine)
    app.dependency_overrides[get_cache] = lambda: cache

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.pop(get_cache, None)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create database session for direct database access in tests."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def file_engine(tmp_path):
    """File-backed SQLite engine configured like production (bounded pool, BEGIN IMMEDIATE)."""
    store_engine = create_db_engine(f"sqlite:///{tmp_path / 'store.db'}")
    Base.metadata.create_all(bind=store_engine)

    yield store_engine

    store_engine.dispose()


@pytest.fixture
def session_factory(file_engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=file_engine)


@pytest.fixture
def store_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_product(session_factory):
    """Insert a product directly into the store and return its ID."""
    def _make(name="Widget", price="10.00", stock=5, category="Tools", is_active=True):
        session = session_factory()
        try:
            product = Product(
                name=name,
                price=Decimal(price),
                stock=stock,
                category=category,
                is_active=is_active,
            )
            session.add(product)
            session.commit()
            return product.id
        finally:
            session.close()

    return _make


@pytest.fixture
def stock_of(session_factory):
    """Read a product's stock straight from the store."""
    def _stock(product_id):
        session = session_factory()
        try:
            return session.get(Product, product_id).stock
        finally:
            session.close()

    return _stock
