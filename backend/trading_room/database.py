from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from trading_room.core.config import settings
import os
import logging
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Determine database URL
# Priority: 1) DATABASE_URL env var, 2) settings.DATABASE_URL, 3) SQLite fallback
database_url = os.getenv("DATABASE_URL", settings.DATABASE_URL or "")

# Only fallback to SQLite if no DB is configured and we're running locally/in tests
if not database_url:
    if settings.ENVIRONMENT in ("local", "test"):
        database_url = "sqlite:///./trading_room.db"
        logger.info("Using SQLite fallback database: trading_room.db")
    else:
        raise RuntimeError("DATABASE_URL must be set outside local/test environments")

# Configure engine with appropriate settings
if database_url.startswith("sqlite"):
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False},  # Required for SQLite with FastAPI
        pool_pre_ping=True,
        echo=False
    )
    logger.info("Database engine configured for SQLite")
else:
    # Lazy connection - nothing connects until the first query
    engine = create_engine(
        database_url,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,  # Verify connections before use
        connect_args={"connect_timeout": 10},
    )
    parsed = urlparse(database_url)
    logger.info(f"Database engine configured for {parsed.scheme} at {parsed.hostname or 'unknown'}")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def check_database_connection() -> tuple[bool, str]:
    """
    Test database connection and return (success, message).
    Used by the health endpoint.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True, "Database connection successful"
    except Exception as e:
        return False, f"Database connection failed: {e}"


def init_db(db_engine=None):
    """Create all tables that do not exist yet."""
    # Import models so they register on Base.metadata
    import trading_room.models  # noqa: F401

    Base.metadata.create_all(bind=db_engine or engine)


def get_db():
    """Dependency for getting a database session.

    Services commit explicitly. Anything left uncommitted when the handler
    raises is rolled back here, and the session is always closed.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        # Rollback on exception to release transaction locks
        db.rollback()
        raise
    finally:
        db.close()
