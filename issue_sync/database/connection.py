"""
Database Connection Module
Handles engine creation and transactional session management using SQLAlchemy.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from issue_sync.config_manager import ConfigManager
from issue_sync.database.models import Base
from issue_sync.exceptions import StoreError
from issue_sync.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_DATABASE_URL = 'sqlite:///./data/issue_sync.db'


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite leaves foreign keys off unless asked, per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseConnection:
    """Manages the engine and hands out transaction-scoped sessions."""

    def __init__(self, url: str = None, echo: bool = None):
        """
        Create the engine.

        Args:
            url: SQLAlchemy URL; defaults to the configured database.url
            echo: Log SQL statements; defaults to database.echo
        """
        db_config = ConfigManager().get_database_config()

        self.url = url or db_config.get('url') or DEFAULT_DATABASE_URL
        self.batch_size = db_config.get('batch_size', 50)
        if echo is None:
            echo = bool(db_config.get('echo', False))

        self._engine = self._create_engine(self.url, echo, db_config)
        self._session_factory = sessionmaker(bind=self._engine)

        logger.info(f"Database engine initialized for {self._engine.url.render_as_string(hide_password=True)}")

    def _create_engine(self, url: str, echo: bool, db_config: dict) -> Engine:
        """Create an engine suited to the backend in the URL."""
        parsed = make_url(url)

        if parsed.get_backend_name() == 'sqlite':
            database = parsed.database
            if not database or database == ':memory:':
                # One shared connection so every session sees the same memory DB
                engine = create_engine(
                    url,
                    echo=echo,
                    connect_args={'check_same_thread': False},
                    poolclass=StaticPool
                )
            else:
                Path(database).parent.mkdir(parents=True, exist_ok=True)
                engine = create_engine(
                    url,
                    echo=echo,
                    connect_args={'check_same_thread': False}
                )
            event.listen(engine, 'connect', _enable_sqlite_foreign_keys)
            return engine

        return create_engine(
            url,
            echo=echo,
            pool_size=db_config.get('pool_size', 5),
            max_overflow=db_config.get('max_overflow', 10),
            pool_timeout=db_config.get('pool_timeout', 30),
            pool_pre_ping=True  # Enable connection health checks
        )

    @property
    def engine(self) -> Engine:
        """Get the SQLAlchemy engine."""
        return self._engine

    def create_schema(self) -> None:
        """Create the sync tables if they do not exist yet."""
        try:
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Schema creation failed: {e}", e) from e

    def drop_schema(self) -> None:
        """Drop the sync tables."""
        try:
            Base.metadata.drop_all(self._engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Dropping the schema failed: {e}", e) from e

    def get_session(self) -> Session:
        """Create a new database session."""
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Everything inside the block commits together or not at all.
        Database failures surface as StoreError after the rollback.

        Usage:
            with db.session_scope() as session:
                session.query(...)
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise StoreError(f"Database operation failed: {e}", e) from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def check_connection(self) -> bool:
        """
        Check if database connection is healthy.

        Returns:
            bool: True if connection is healthy, False otherwise.
        """
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.debug("Database connection health check passed")
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection health check failed: {e}")
            return False

    def dispose(self) -> None:
        """Dispose of the connection pool."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database connection pool disposed")


_default_db: DatabaseConnection = None


def get_db() -> DatabaseConnection:
    """Get the shared database connection built from configuration."""
    global _default_db
    if _default_db is None:
        _default_db = DatabaseConnection()
    return _default_db
