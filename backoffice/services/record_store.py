"""Table-agnostic record store over SQLAlchemy Core.

The bulk engine talks to tables by name, never through ORM classes, so one
code path serves every whitelisted table. Callers must vet table and column
names against the table policy before handing them to the store.
"""

from collections.abc import Iterator, Sequence
from typing import Protocol

import structlog
from sqlalchemy import ColumnElement, Table, delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.services._helpers import Record
from backoffice.services.errors import StoreFailure, UnknownTableError
from db.models import Base

logger = structlog.get_logger(__name__)

# Keeps IN (...) lists well under driver bind-parameter limits.
ID_CHUNK_SIZE = 500


class RecordStore(Protocol):
    """Primitives the bulk engine needs from the underlying store."""

    def table(self, name: str) -> Table: ...

    def fetch(self, table: Table, predicate: ColumnElement[bool]) -> list[Record]: ...

    def update_many(self, table: Table, ids: Sequence[object], values: Record) -> int: ...

    def update_one(self, table: Table, record_id: object, values: Record) -> int: ...

    def delete_many(self, table: Table, ids: Sequence[object]) -> int: ...


def _chunks(ids: Sequence[object], size: int | None = None) -> Iterator[Sequence[object]]:
    size = size or ID_CHUNK_SIZE
    for start in range(0, len(ids), size):
        yield ids[start : start + size]


class SqlRecordStore:
    """RecordStore backed by the application's SQLAlchemy session.

    Every mutation runs inside its own SAVEPOINT: a failed write is rolled
    back on its own and surfaces as StoreFailure, leaving earlier writes in
    the surrounding transaction untouched.
    """

    def __init__(self, session: Session) -> None:
        self.session: Session = session

    def table(self, name: str) -> Table:
        table: Table | None = Base.metadata.tables.get(name)
        if table is None:
            raise UnknownTableError(name)
        return table

    def fetch(self, table: Table, predicate: ColumnElement[bool]) -> list[Record]:
        try:
            rows = self.session.execute(select(table).where(predicate)).all()
        except SQLAlchemyError as e:
            logger.error("Record fetch failed", table=table.name, error=str(e))
            raise StoreFailure("Failed to query matching records") from e
        return [dict(row._mapping) for row in rows]

    def update_many(self, table: Table, ids: Sequence[object], values: Record) -> int:
        count = 0
        try:
            with self.session.begin_nested():
                for chunk in _chunks(ids):
                    result = self.session.execute(
                        update(table).where(table.c.id.in_(chunk)).values(**values)
                    )
                    count += result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error("Bulk update failed", table=table.name, ids=len(ids), error=str(e))
            raise StoreFailure("Failed to update records") from e
        return count

    def update_one(self, table: Table, record_id: object, values: Record) -> int:
        try:
            with self.session.begin_nested():
                result = self.session.execute(
                    update(table).where(table.c.id == record_id).values(**values)
                )
        except SQLAlchemyError as e:
            logger.error("Record update failed", table=table.name, record_id=record_id, error=str(e))
            raise StoreFailure(f"Failed to update record {record_id}") from e
        return result.rowcount or 0

    def delete_many(self, table: Table, ids: Sequence[object]) -> int:
        count = 0
        try:
            with self.session.begin_nested():
                for chunk in _chunks(ids):
                    result = self.session.execute(delete(table).where(table.c.id.in_(chunk)))
                    count += result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error("Bulk delete failed", table=table.name, ids=len(ids), error=str(e))
            raise StoreFailure("Failed to delete records") from e
        return count
