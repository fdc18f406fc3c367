"""
Database connection management for CivicTrack
Supports PostgreSQL and SQLite through SQLAlchemy
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.exc import SQLAlchemyError

from civictrack.core.config import settings
from .models import Base

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """
    Database connection manager with connection pooling.

    SQLite URLs get a thread-shareable connection; in-memory SQLite uses a
    single static connection so every session sees the same database.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        pool_size: Optional[int] = None,
        max_overflow: Optional[int] = None,
        pool_timeout: Optional[int] = None,
        echo: Optional[bool] = None
    ):
        """
        Initialize database connection.

        Args:
            database_url: SQLAlchemy connection URL (default from settings)
            pool_size: Connection pool size
            max_overflow: Max connections beyond pool_size
            pool_timeout: Timeout for getting connection from pool
            echo: Log every SQL statement
        """
        self.database_url = database_url or settings.database_url
        echo = settings.db_echo if echo is None else echo

        if self.is_sqlite:
            engine_kwargs = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in self.database_url or self.database_url.rstrip("/") == "sqlite:":
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs = {
                "poolclass": QueuePool,
                "pool_size": pool_size or settings.db_pool_size,
                "max_overflow": max_overflow if max_overflow is not None else settings.db_max_overflow,
                "pool_timeout": pool_timeout or settings.db_pool_timeout,
                "pool_pre_ping": True,  # Verify connections before use
            }

        self.engine = create_engine(self.database_url, echo=echo, **engine_kwargs)

        # Session factory
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine
        )

        logger.info(f"Database connection initialized: {self._mask_url(self.database_url)}")

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def _mask_url(self, url: str) -> str:
        """Mask password in connection URL for logging."""
        if "@" in url and ":" in url:
            parts = url.split("@")
            credentials = parts[0].split(":")
            if len(credentials) >= 3:
                credentials[-1] = "****"
            return ":".join(credentials) + "@" + parts[1]
        return url

    def create_tables(self) -> None:
        """Create all database tables."""
        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables created successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create tables: {e}")
            raise

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        try:
            Base.metadata.drop_all(bind=self.engine)
            logger.warning("All database tables dropped")
        except SQLAlchemyError as e:
            logger.error(f"Failed to drop tables: {e}")
            raise

    def check_connection(self) -> bool:
        """
        Check if database connection is healthy.

        Returns:
            True if connection is healthy
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Context manager for database sessions.

        Commits on success, rolls back on any exception.

        Yields:
            SQLAlchemy session
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            if isinstance(e, SQLAlchemyError):
                logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def close(self) -> None:
        """Close database connection and dispose engine."""
        self.engine.dispose()
        logger.info("Database connection closed")

    def __enter__(self) -> "DatabaseConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
