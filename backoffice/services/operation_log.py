"""Append-only bulk operation history."""

from collections.abc import Sequence

import structlog
from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.services._helpers import (
    JsonDict,
    Record,
    dump_json,
    load_json,
    load_json_list,
    new_id,
    now_iso,
)
from backoffice.services._types import OperationLogDict
from db.enums import OperationStatus
from db.models import BulkOperationLogs

logger = structlog.get_logger(__name__)

HISTORY_DEFAULT_LIMIT = 50
HISTORY_MAX_LIMIT = 100


def clamp_limit(
    limit: int | None,
    default: int = HISTORY_DEFAULT_LIMIT,
    maximum: int = HISTORY_MAX_LIMIT,
) -> int:
    if limit is None:
        return default
    return max(1, min(limit, maximum))


def _load_filters(raw: str | None) -> list | JsonDict | None:
    if not raw:
        return None
    return load_json_list(raw) if raw.lstrip().startswith("[") else load_json(raw)


def entry_to_dict(entry: BulkOperationLogs) -> OperationLogDict:
    return OperationLogDict(
        id=entry.id,
        operation_type=entry.operation_type,
        target_table=entry.target_table,
        affected_count=entry.affected_count,
        parameters=load_json(entry.parameters),
        filters=_load_filters(entry.filters),
        changes=load_json(entry.changes),
        status=entry.status,
        has_rollback_data=bool(load_json_list(entry.rollback_data)),
        performed_by=entry.performed_by,
        created_at=entry.created_at,
    )


class OperationLog:
    """Writes and reads ``bulk_operation_logs``. Entries are never updated."""

    def __init__(
        self,
        session: Session,
        default_limit: int = HISTORY_DEFAULT_LIMIT,
        max_limit: int = HISTORY_MAX_LIMIT,
    ) -> None:
        self.session: Session = session
        self.default_limit: int = default_limit
        self.max_limit: int = max_limit

    def record(
        self,
        operation_type: str,
        target_table: str,
        affected_count: int,
        performed_by: str,
        parameters: JsonDict | None = None,
        filters: Sequence[object] | JsonDict | None = None,
        changes: JsonDict | None = None,
        rollback_data: Sequence[Record] | None = None,
        status: OperationStatus = OperationStatus.COMPLETED,
    ) -> str | None:
        """Append an entry and return its id, or None when the write failed.

        Called after the data change has already happened, so a failed write is
        logged and swallowed rather than reported as a failed operation.
        """
        entry = BulkOperationLogs(
            id=new_id(),
            operation_type=operation_type,
            target_table=target_table,
            affected_count=affected_count,
            parameters=dump_json(parameters or {}),
            filters=dump_json(filters if filters is not None else []),
            changes=dump_json(changes) if changes is not None else None,
            status=status.value,
            rollback_data=dump_json(rollback_data) if rollback_data is not None else None,
            performed_by=performed_by,
            created_at=now_iso(),
        )
        try:
            with self.session.begin_nested():
                self.session.add(entry)
                self.session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to log bulk operation",
                operation_type=operation_type,
                target_table=target_table,
                error=str(e),
            )
            return None
        logger.info(
            "Logged bulk operation",
            operation_id=entry.id,
            operation_type=operation_type,
            target_table=target_table,
            affected_count=affected_count,
        )
        return entry.id

    def get(self, operation_id: str) -> BulkOperationLogs | None:
        return self.session.get(BulkOperationLogs, operation_id)

    def list_recent(self, limit: int | None = None) -> list[OperationLogDict]:
        stmt: Select[tuple[BulkOperationLogs]] = (
            select(BulkOperationLogs)
            .order_by(BulkOperationLogs.created_at.desc())
            .limit(clamp_limit(limit, self.default_limit, self.max_limit))
        )
        return [entry_to_dict(e) for e in self.session.scalars(stmt).all()]
