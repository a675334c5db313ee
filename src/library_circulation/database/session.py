"""
Database session management for the Library Circulation server.

Sessions are short-lived: read paths open one per resource request through
``session_scope()``, and every circulation write gets a fresh session per
attempt from :class:`~.serialized.SerializedAccess`.
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .errors import RepositoryException, StoreUnavailableError
from .schema import Base
from .serialized import SerializedAccess

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_in_memory(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:")


class DatabaseManager:
    """
    Owns the engine, the session factory and the per-book serializer.

    One instance is shared by the whole server through ``get_db_manager()``;
    tests build their own against a temporary database.
    """

    def __init__(self, database_url: str | None = None, max_retries: int | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses the configured
                SQLite file.
            max_retries: Attempts per circulation transaction. If None, uses
                ``transaction_max_retries`` from configuration.
        """
        if database_url is None:
            database_url = get_config().get_database_url()
            logger.info("Using database at: %s", database_url)

        self.database_url = database_url
        self._max_retries = max_retries
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None
        self._serialized_access: SerializedAccess | None = None

    @property
    def engine(self) -> Engine:
        """
        Get or create the database engine.

        SQLite file databases get a normal connection pool so concurrent
        transactions really use separate connections; in-memory databases
        share one connection through StaticPool.
        """
        if self._engine is None:
            if self.database_url.startswith("sqlite"):
                if _is_in_memory(self.database_url):
                    self._engine = create_engine(
                        self.database_url,
                        poolclass=StaticPool,
                        connect_args={"check_same_thread": False},
                        echo=False,
                    )
                else:
                    self._engine = create_engine(
                        self.database_url,
                        connect_args={
                            "check_same_thread": False,
                            "timeout": get_config().sqlite_busy_timeout,
                        },
                        echo=False,
                    )

                @event.listens_for(self._engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=False,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    @property
    def max_retries(self) -> int:
        if self._max_retries is None:
            return get_config().transaction_max_retries
        return self._max_retries

    @property
    def serialized_access(self) -> SerializedAccess:
        """Per-book serializer used by every circulation write."""
        if self._serialized_access is None:
            self._serialized_access = SerializedAccess(self.session_factory, self.max_retries)
        return self._serialized_access

    def create_session(self) -> Session:
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            book = session.get(Book, book_id)
        ```

        Expected repository failures roll back quietly; anything else is
        logged before it is re-raised.
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except RepositoryException:
            session.rollback()
            raise
        except Exception:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Create the schema.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """Return True if a trivial query succeeds. Used at server start."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except SQLAlchemyError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None
        self._serialized_access = None


_db_manager: DatabaseManager | None = None


def get_db_manager(database_url: str | None = None) -> DatabaseManager:
    """
    Get the global database manager instance.

    Args:
        database_url: Database URL (only used on first call)
    """
    global _db_manager  # noqa: PLW0603 - process-wide database manager

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)

    return _db_manager


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    with get_db_manager().session_scope() as session:
        yield session


def safe_commit(session: Session, operation: str) -> None:
    """
    Commit, translating driver failures into repository exceptions.

    Raises:
        StoreUnavailableError: If the database could not be reached
        RepositoryException: For any other database failure
    """
    try:
        session.commit()
    except OperationalError as e:
        session.rollback()
        raise StoreUnavailableError(f"Database operation '{operation}' failed: {e.orig}") from e
    except SQLAlchemyError as e:
        session.rollback()
        raise RepositoryException(f"Database operation '{operation}' failed: {e!s}") from e


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Run a read, translating driver failures into repository exceptions.

    Raises:
        StoreUnavailableError: If the database could not be reached
        RepositoryException: For any other database failure
    """
    try:
        return query_func(session)
    except OperationalError as e:
        logger.warning("%s: database unavailable: %s", error_msg, e.orig)
        raise StoreUnavailableError(f"{error_msg}: database unavailable") from e
    except SQLAlchemyError as e:
        logger.exception("Query failed")
        raise RepositoryException(f"{error_msg}: Database query failed") from e
