"""
Database engine and session management
PostgreSQL in staging/prod, SQLite allowed for local development and tests
"""
import logging
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import config

logger = logging.getLogger(__name__)


def build_engine(database_url: str):
    """Create an engine with pool settings appropriate for the backend"""
    if database_url.startswith("sqlite"):
        sqlite_engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        @event.listens_for(sqlite_engine, "connect")
        def _enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        logger.info("SQLite engine configured (dev/test only)")
        return sqlite_engine

    pg_engine = create_engine(
        database_url,
        pool_pre_ping=True,  # Detect dead connections before use
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW,
        pool_recycle=config.DB_POOL_RECYCLE,
        pool_timeout=config.DB_POOL_TIMEOUT,
        echo=False,
        connect_args={
            "connect_timeout": 10,
            "application_name": "content_studio",
        },
    )
    logger.info(
        f"PostgreSQL engine configured: pool_size={config.DB_POOL_SIZE}, "
        f"max_overflow={config.DB_MAX_OVERFLOW}, pool_recycle={config.DB_POOL_RECYCLE}s"
    )
    return pg_engine


engine = build_engine(config.DATABASE_URL or "sqlite://")

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator:
    """
    Get database session.
    Use as FastAPI dependency: db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_connection() -> bool:
    """Run SELECT 1 against the database; used by the health endpoint"""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
