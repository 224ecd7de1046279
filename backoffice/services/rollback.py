"""Rollback engine: restores the snapshot captured by a reversible bulk operation.

Restores run one record at a time, each in its own savepoint, so a single bad
row is counted as failed without undoing the rows already restored. The
rollback itself is appended to the operation log as ``rollback_<operation>``.
"""

from collections.abc import Sequence
from dataclasses import dataclass

import structlog
from sqlalchemy import Table
from sqlalchemy.orm import Session

from backoffice.services._helpers import Record, load_json_list
from backoffice.services._types import RollbackDict
from backoffice.services.audit import AuditEvent, AuditSink, SqlAuditSink
from backoffice.services.errors import (
    NoRollbackDataError,
    NotReversibleError,
    OperationNotFoundError,
    StoreFailure,
    UnknownTableError,
)
from backoffice.services.operation_log import OperationLog
from backoffice.services.operators import Operator
from backoffice.services.policy import TablePolicyRegistry
from backoffice.services.record_store import RecordStore, SqlRecordStore
from db.enums import REVERSIBLE_OPERATIONS, ROLLBACK_PREFIX, AuditAction, AuditResourceType
from db.models import BulkOperationLogs

logger = structlog.get_logger(__name__)


@dataclass
class RollbackResult:
    operation_id: str
    operation_type: str
    target_table: str
    restored_count: int
    failed_count: int
    rollback_operation_id: str | None = None

    @property
    def message(self) -> str:
        if self.failed_count:
            return f"Rolled back {self.restored_count} records; {self.failed_count} failed"
        return f"Successfully rolled back {self.restored_count} records"

    def to_dict(self) -> RollbackDict:
        return RollbackDict(
            success=True,
            restored_count=self.restored_count,
            failed_count=self.failed_count,
            message=self.message,
        )


class RollbackEngine:
    def __init__(
        self,
        store: RecordStore,
        policy: TablePolicyRegistry,
        operation_log: OperationLog,
        audit: AuditSink,
    ) -> None:
        self.store: RecordStore = store
        self.policy: TablePolicyRegistry = policy
        self.operation_log: OperationLog = operation_log
        self.audit: AuditSink = audit

    @classmethod
    def for_session(cls, session: Session, policy: TablePolicyRegistry) -> "RollbackEngine":
        return cls(
            store=SqlRecordStore(session),
            policy=policy,
            operation_log=OperationLog(session),
            audit=SqlAuditSink(session),
        )

    def _snapshot(self, entry: BulkOperationLogs) -> list[Record]:
        try:
            snapshot: list[Record] | None = load_json_list(entry.rollback_data)
        except ValueError as e:
            logger.error("Unreadable rollback snapshot", operation_id=entry.id, error=str(e))
            raise NoRollbackDataError(entry.id) from e
        if not snapshot:
            raise NoRollbackDataError(entry.id)
        return snapshot

    def rollback(self, operation_id: str, actor: Operator) -> RollbackResult:
        """Restore every snapshotted record of a logged operation.

        Raises:
            OperationNotFoundError: no log entry with this id.
            NotReversibleError: the operation was a delete, export or rollback.
            NoRollbackDataError: the entry carries no usable snapshot.
            UnknownTableError: the target table is no longer whitelisted.
        """
        entry: BulkOperationLogs | None = self.operation_log.get(operation_id)
        if entry is None:
            raise OperationNotFoundError(operation_id)
        if entry.operation_type not in REVERSIBLE_OPERATIONS:
            raise NotReversibleError(entry.operation_type)
        snapshot: list[Record] = self._snapshot(entry)
        if not self.policy.is_table_mutable(entry.target_table):
            raise UnknownTableError(entry.target_table)

        table: Table = self.store.table(entry.target_table)
        restorable: frozenset[str] = self.policy.updatable_fields(entry.target_table)
        restored, failed = self._restore_all(table, snapshot, restorable)

        rollback_type: str = f"{ROLLBACK_PREFIX}{entry.operation_type}"
        rollback_id: str | None = self.operation_log.record(
            operation_type=rollback_type,
            target_table=entry.target_table,
            affected_count=restored,
            performed_by=actor.email,
            parameters={},
            filters={},
            changes={
                "original_operation_id": operation_id,
                "success_count": restored,
                "fail_count": failed,
            },
        )
        self.audit.log_event(
            AuditEvent(
                actor=actor,
                action=AuditAction.UPDATE,
                resource_type=AuditResourceType.BULK_OPERATION,
                resource_id=operation_id,
                description=(
                    f"Rolled back {entry.operation_type} on {entry.target_table}: "
                    f"{restored} restored, {failed} failed"
                ),
                metadata={
                    "operation": rollback_type,
                    "original_operation_id": operation_id,
                    "rollback_operation_id": rollback_id,
                    "target_table": entry.target_table,
                    "success_count": restored,
                    "fail_count": failed,
                },
            )
        )
        logger.info(
            "Rollback finished",
            operation_id=operation_id,
            target_table=entry.target_table,
            restored=restored,
            failed=failed,
        )
        return RollbackResult(
            operation_id=operation_id,
            operation_type=entry.operation_type,
            target_table=entry.target_table,
            restored_count=restored,
            failed_count=failed,
            rollback_operation_id=rollback_id,
        )

    def _restore_all(
        self,
        table: Table,
        snapshot: Sequence[Record],
        restorable: frozenset[str],
    ) -> tuple[int, int]:
        restored = 0
        failed = 0
        for original in snapshot:
            if self._restore(table, original, restorable):
                restored += 1
            else:
                failed += 1
        return restored, failed

    def _restore(self, table: Table, original: Record, restorable: frozenset[str]) -> bool:
        record_id: object = original.get("id")
        values: Record = {k: v for k, v in original.items() if k != "id" and k in restorable}
        if record_id is None or not values:
            logger.warning(
                "Skipping unrestorable snapshot row",
                table=table.name,
                record_id=record_id,
                fields=sorted(original),
            )
            return False
        try:
            rows: int = self.store.update_one(table, record_id, values)
        except StoreFailure as e:
            logger.error("Failed to restore record", table=table.name, record_id=record_id, error=str(e))
            return False
        if rows == 0:
            logger.warning("Snapshot record no longer exists", table=table.name, record_id=record_id)
            return False
        return True
