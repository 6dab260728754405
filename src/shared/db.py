"""Database engine, session scope and schema helpers (SQLAlchemy)."""

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for every durable table."""


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):  # noqa: ARG001
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_uri: str) -> Engine:
    """Create an engine; in-memory SQLite is shared across sessions and threads."""
    if database_uri.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_uri in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_uri, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(database_uri, pool_pre_ping=True)


class Database:
    """Owns the engine and hands out short-lived sessions."""

    def __init__(self, database_uri: str) -> None:
        self.database_uri = database_uri
        self.engine = build_engine(database_uri)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Transactional scope: commit on success, rollback on any exception."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()


def setup_db(database: Database) -> None:
    """Create every table registered on ``Base``."""
    Base.metadata.create_all(database.engine)
    logger.debug("Database schema created", tables=sorted(Base.metadata.tables))


def drop_db(database: Database) -> None:
    """Drop every table registered on ``Base``."""
    Base.metadata.drop_all(database.engine)
