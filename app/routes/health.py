"""Health endpoints."""

import logging
import os

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from backoffice.services._types import DbInfoDict
from backoffice.services.policy import TablePolicyRegistry
from config import DatabaseSettings, get_settings
from db.connection import get_engine
from db.models import Base

logger: logging.Logger = logging.getLogger(__name__)


def _backend(db: DatabaseSettings) -> tuple[str, str]:
    if db._use_postgres():
        return "postgres", db._redacted_postgres_dsn()
    return "sqlite", db._resolved_sqlite_path().as_posix()


def get_db_info(policy: TablePolicyRegistry | None = None) -> DbInfoDict:
    """Schema status for the configured database. Never raises.

    ``tables_missing`` covers every declared model table; when a policy is
    given, whitelisted tables absent from the database are listed too so a
    misconfigured override file shows up here rather than as failed requests.
    """
    try:
        backend_type, location = _backend(get_settings().database)
        engine: Engine = get_engine()
        try:
            existing: set[str] = set(inspect(engine).get_table_names())
        except Exception as e:
            logger.warning("Could not inspect DB: %s", e)
            existing = set()

        expected: set[str] = set(Base.metadata.tables)
        if policy is not None:
            expected |= set(policy.tables)
        missing: list[str] = sorted(expected - existing)
        if missing:
            logger.warning("Schema incomplete, missing tables: %s", ", ".join(missing))

        return DbInfoDict(
            backend_type=backend_type,
            database_url_or_path=location,
            tables_present=sorted(existing),
            tables_missing=missing,
            schema_initialized=not missing,
            pid=os.getpid(),
        )
    except Exception as e:
        logger.exception("Health DB check failed: %s", e)
        return DbInfoDict(
            backend_type="unknown",
            database_url_or_path=None,
            tables_present=[],
            tables_missing=[],
            schema_initialized=False,
            error=str(e),
            pid=os.getpid(),
        )
