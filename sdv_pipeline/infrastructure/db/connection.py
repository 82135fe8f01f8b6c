import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlmodel import create_engine, Session, SQLModel, select
from sqlalchemy.pool import StaticPool
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ...core.config import get_settings
from ...core.exceptions import AppException, DatabaseError

# Register every table on SQLModel.metadata
from . import models  # noqa: F401

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Database connection manager.

    Sessions are synchronous; services await around them the same way the
    rest of the code base does.
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        self.settings = get_settings()
        self.url = url or self.settings.database.url
        self.echo = self.settings.database.echo if echo is None else echo
        self._engine: Optional[Engine] = None

    def _get_database_config(self) -> dict:
        """Get engine configuration based on URL."""
        config = {"echo": self.echo, "pool_pre_ping": True}

        if self.url.startswith("sqlite"):
            config["connect_args"] = {"check_same_thread": False}
            if self.url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in self.url:
                config["poolclass"] = StaticPool
        else:
            config.update({
                "pool_size": self.settings.database.pool_size,
                "max_overflow": self.settings.database.max_overflow,
                "pool_recycle": self.settings.database.pool_recycle,
            })

        return config

    def get_engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            try:
                self._engine = create_engine(self.url, **self._get_database_config())
                logger.info(f"Database engine created: {self._engine.url.render_as_string(hide_password=True)}")
            except (SQLAlchemyError, ValueError) as e:
                logger.error(f"Failed to create database engine: {e}")
                raise DatabaseError(f"Database engine creation failed: {e}")
        return self._engine

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """Get database session with automatic commit, rollback and cleanup."""
        session = Session(self.get_engine())

        try:
            yield session
            session.commit()

        except AppException:
            session.rollback()
            raise

        except SQLAlchemyError as e:
            logger.error(f"Database session error: {e}")
            session.rollback()
            raise DatabaseError(f"Database operation failed: {e}")

        except Exception:
            session.rollback()
            raise

        finally:
            session.close()

    def create_tables(self) -> None:
        """Create all database tables."""
        try:
            SQLModel.metadata.create_all(bind=self.get_engine())
            logger.info("Database tables created successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}")
            raise DatabaseError(f"Database table creation failed: {e}")

    def drop_tables(self) -> None:
        """Drop all database tables."""
        try:
            logger.warning("Dropping all database tables...")
            SQLModel.metadata.drop_all(bind=self.get_engine())
        except SQLAlchemyError as e:
            logger.error(f"Failed to drop database tables: {e}")
            raise DatabaseError(f"Database table drop failed: {e}")

    def health_check(self) -> bool:
        try:
            with Session(self.get_engine()) as session:
                return session.exec(select(1)).one() == 1
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.info("Database engine disposed")


# Global database manager instance
database_manager = DatabaseManager()
