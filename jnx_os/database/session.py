"""
Database session management with connection pooling.

Provides a shared FastAPI dependency for database sessions across all routes.
Uses SQLAlchemy with connection pooling for the managed Postgres service.

Usage:
    from jnx_os.database.session import get_db_session

    @router.get("/items")
    def get_items(db: Session = Depends(get_db_session)):
        return db.query(Item).all()
"""

import logging
from typing import Generator, Optional

from fastapi import HTTPException, status
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from jnx_os.config.settings import get_settings

logger = logging.getLogger(__name__)

# Module-level engine singleton
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


class DatabaseNotConfiguredError(RuntimeError):
    """Raised when DATABASE_URL is not set."""


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """
    Let pysqlite honour SAVEPOINT.

    The driver opens transactions lazily on its own; hand BEGIN over to
    SQLAlchemy so nested transactions behave as they do on Postgres.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    Postgres gets a pooled engine:
    - pool_size: 5 connections
    - max_overflow: 10 additional connections under load
    - pool_pre_ping: Verify connections before use
    SQLite (tests and local runs) gets a single shared connection.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        _enable_sqlite_savepoints(engine)
        return engine

    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connection health
        pool_recycle=1800,   # Recycle connections after 30 minutes
    )


def get_engine() -> Engine:
    """Get or create the database engine singleton."""
    global _engine
    if _engine is None:
        database_url = get_settings().database_url
        if not database_url:
            raise DatabaseNotConfiguredError("DATABASE_URL environment variable is not set")
        _engine = create_db_engine(database_url)
        logger.info("Database engine created with connection pooling")
    return _engine


def get_session_factory() -> sessionmaker:
    """Get or create the session factory singleton."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=get_engine(),
        )
    return _SessionLocal


def get_db_session() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.

    Creates a new session for each request and ensures proper cleanup.
    Raises HTTP 503 if database is not configured.
    """
    try:
        SessionLocal = get_session_factory()
    except DatabaseNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_optional_db_session() -> Generator[Optional[Session], None, None]:
    """Like get_db_session, but yields None instead of failing when DATABASE_URL is unset."""
    try:
        SessionLocal = get_session_factory()
    except DatabaseNotConfiguredError:
        yield None
        return

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
