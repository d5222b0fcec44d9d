from contextlib import contextmanager
from decimal import Decimal
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import DataError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from storefront.config import Settings, get_settings
from storefront.exceptions import InvalidInputError, StoreUnavailableError, StorefrontError

logger = logging.getLogger(__name__)

# Largest values the integer and Numeric(10, 2) columns can hold
MAX_INTEGER = 2**31 - 1
MAX_AMOUNT = Decimal("99999999.99")


def create_db_engine(url: str, settings: Settings = None) -> Engine:
    """
    Create a SQLAlchemy engine with a bounded connection pool.

    The pool never grows past ``DB_POOL_SIZE``; callers block for at most
    ``DB_POOL_TIMEOUT`` seconds waiting for a connection before SQLAlchemy
    raises a pool timeout.

    SQLite has no row locks, so every SQLite transaction is opened with
    ``BEGIN IMMEDIATE``, which takes the database write lock up front and
    serializes concurrent writers the way ``SELECT ... FOR UPDATE`` does on
    PostgreSQL.
    """
    settings = settings or get_settings()
    url_obj = make_url(url)
    backend = url_obj.get_backend_name()
    in_memory = backend == "sqlite" and url_obj.database in (None, "", ":memory:")

    kwargs = {}
    if not in_memory:
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=0,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_pre_ping=True,
        )

    if backend == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
    elif backend == "postgresql":
        kwargs["connect_args"] = {
            "connect_timeout": max(1, int(settings.DB_POOL_TIMEOUT)),
            "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}",
        }

    engine = create_engine(url, **kwargs)

    if backend == "sqlite":
        _configure_sqlite(engine)

    return engine


def _configure_sqlite(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself instead of pysqlite's deferred BEGIN
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


settings = get_settings()

engine = create_db_engine(settings.DATABASE_URL, settings)

# Objects stay loaded after commit so responses can be built without
# reopening a transaction.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# Base class for models
Base = declarative_base()


def get_db():
    """
    Dependency to get database session.
    Yields a database session and closes it after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session, operation: str):
    """
    Run a unit of work in a single transaction.

    Commits on success. On any failure the transaction is rolled back
    before the error propagates, and store-level failures are translated
    into ``StoreUnavailableError`` so callers can retry the whole operation.
    """
    try:
        yield db
        db.commit()
    except StorefrontError:
        db.rollback()
        raise
    except PoolTimeoutError as e:
        db.rollback()
        logger.error(f"Connection pool exhausted during {operation}: {e}")
        raise StoreUnavailableError(
            f"Timed out waiting for a database connection during {operation}"
        ) from e
    except IntegrityError as e:
        # Constraint violations here mean a concurrent writer got in first
        db.rollback()
        logger.error(f"Integrity error during {operation}: {e}")
        raise StoreUnavailableError(
            f"Concurrent modification detected during {operation}, retry the request"
        ) from e
    except DataError as e:
        # Out-of-range or malformed values; retrying cannot help
        db.rollback()
        logger.warning(f"Rejected data during {operation}: {e}")
        raise InvalidInputError(f"Value out of range for the store during {operation}") from e
    except (OperationalError, InterfaceError) as e:
        db.rollback()
        logger.error(f"Database error during {operation}: {e}")
        raise StoreUnavailableError(f"Database unavailable during {operation}") from e
    except Exception:
        db.rollback()
        raise
