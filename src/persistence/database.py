"""
Database Module.

Engine and session management for the record layer.
"""

from collections.abc import Generator
from contextlib import contextmanager
from functools import lru_cache

import structlog
from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.config.settings import DatabaseSettings, get_settings
from src.observability.logging import configure_from_settings, redact_database_url, unit_of_work
from src.persistence.model import Base

logger = structlog.get_logger(__name__)


class Database:
    """
    SQLAlchemy engine and session factory.

    Usage:
        ```python
        database = Database(DatabaseSettings(url="sqlite://"))
        database.create_all()

        with database.session_scope() as session:
            Subscription.query(session).expire()
        ```
    """

    def __init__(self, settings: DatabaseSettings | None = None) -> None:
        self._settings = settings or get_settings().database
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self.connect()
        return self._engine

    def connect(self) -> None:
        """Create the engine. Idempotent."""
        if self._engine is not None:
            return

        url = make_url(self._settings.url)
        kwargs: dict = {"echo": self._settings.echo, "pool_pre_ping": self._settings.pool_pre_ping}

        # In-memory SQLite lives in a single connection
        if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}

        self._engine = create_engine(url, **kwargs)
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)

        logger.info(
            "Database engine created",
            backend=url.get_backend_name(),
            url=redact_database_url(self._settings.url),
        )

    def disconnect(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")

    def create_all(self) -> None:
        """Create tables for every record type declared on the shared base."""
        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(self.engine)

    def session(self) -> Session:
        if self._session_factory is None:
            self.connect()
        return self._session_factory()

    @contextmanager
    def session_scope(self, unit_id: str | None = None) -> Generator[Session, None, None]:
        """
        Session committed on success and rolled back on error.

        Log events emitted inside the block carry a ``unit_of_work`` id.
        """
        session = self.session()
        with unit_of_work(unit_id):
            try:
                yield session
                session.commit()
            except Exception:
                logger.warning("Unit of work rolled back", exc_info=True)
                session.rollback()
                raise
            finally:
                session.close()


@lru_cache
def get_database() -> Database:
    """
    Get the process-wide database instance.

    Logging is configured from the same settings on first use.
    """
    settings = get_settings()
    configure_from_settings(settings)
    return Database(settings.database)
