"""Engine and session plumbing shared by the API, the CLI and the services."""

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import DatabaseSettings, get_settings

logger = logging.getLogger(__name__)

# Applied to every new SQLite connection.
SQLITE_PRAGMAS: tuple[str, ...] = (
    "PRAGMA foreign_keys=ON",
    "PRAGMA journal_mode=WAL",
    "PRAGMA busy_timeout=30000",
    "PRAGMA synchronous=NORMAL",
)

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _apply_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    cur = dbapi_conn.cursor()
    for pragma in SQLITE_PRAGMAS:
        cur.execute(pragma)
    cur.close()


def _build_engine(db: DatabaseSettings, echo: bool) -> Engine:
    if db._use_postgres():
        return create_engine(
            db.url,
            echo=echo,
            pool_size=db.pool_size,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
            pool_pre_ping=True,
        )
    engine = create_engine(db.url, echo=echo)
    event.listen(engine, "connect", _apply_sqlite_pragmas)
    return engine


def get_engine() -> Engine:
    """Shared engine for the configured backend, built on first use."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = _build_engine(settings.database, settings.debug)
        logger.info("Engine ready: %s", settings.database.db_info_for_logging())
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


def init_database(drop: bool = False) -> list[str]:
    """Create the declared schema, optionally dropping it first.

    Returns the names of the tables that did not exist beforehand.
    """
    from db.models import Base

    engine = get_engine()
    if drop:
        Base.metadata.drop_all(engine)
        logger.warning("Dropped all back-office tables")
    existing: set[str] = set(inspect(engine).get_table_names())
    Base.metadata.create_all(engine)
    created: list[str] = sorted(set(Base.metadata.tables) - existing)
    if created:
        logger.info("Created tables: %s", ", ".join(created))
    return created


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Session that commits on success and rolls back on any error."""
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one committed-or-rolled-back session per request."""
    with get_session() as session:
        yield session
