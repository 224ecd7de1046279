"""Bulk operation executor.

Runs one filtered operation (status change, cohort reassignment, deletion or
export) against a whitelisted table:

    policy checks -> compile filters -> fetch matches -> [dry run: preview]
    -> capture rollback snapshot -> mutate -> operation log -> audit event

Each bulk operation is the forward half of a compensating-action pair; the
backward half lives in ``backoffice.services.rollback``. Nothing here spans a
multi-table transaction.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import Table
from sqlalchemy.orm import Session

from backoffice.services._helpers import Record
from backoffice.services._types import DryRunDict, ExecutionDict
from backoffice.services.audit import AuditEvent, AuditSink, SqlAuditSink
from backoffice.services.errors import (
    BulkValidationError,
    ConfirmationRequiredError,
    FieldNotUpdatableError,
    MissingParameterError,
    UnknownTableError,
    UnsupportedOperationError,
)
from backoffice.services.export import ExportPayload, ExportRenderer, parse_export_format
from backoffice.services.filters import FilterCompiler, FilterCondition
from backoffice.services.operation_log import OperationLog
from backoffice.services.operators import Operator
from backoffice.services.policy import TablePolicyRegistry
from backoffice.services.record_store import RecordStore, SqlRecordStore
from db.enums import AuditAction, AuditResourceType, OperationKind, OperationStatus

logger = structlog.get_logger(__name__)

DEFAULT_PREVIEW_LIMIT = 20

# operation -> (column it rewrites, request parameter carrying the new value)
FIELD_UPDATES: dict[OperationKind, tuple[str, str]] = {
    OperationKind.UPDATE_STATUS: ("status", "new_status"),
    OperationKind.ASSIGN_COHORT: ("cohort_id", "cohort_id"),
}


@dataclass
class BulkOperationRequest:
    operation: str
    target_table: str
    filters: list[FilterCondition] = field(default_factory=list)
    parameters: dict[str, Any] = field(default_factory=dict)
    dry_run: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BulkOperationRequest":
        raw_filters: object = data.get("filters") or []
        if not isinstance(raw_filters, list):
            raise BulkValidationError("filters must be a list of conditions")
        parameters: object = data.get("parameters") or {}
        if not isinstance(parameters, dict):
            raise BulkValidationError("parameters must be an object")
        if not all(isinstance(f, Mapping) for f in raw_filters):
            raise BulkValidationError("each filter must be an object")
        return cls(
            operation=str(data.get("operation") or ""),
            target_table=str(data.get("target_table") or ""),
            filters=[FilterCondition.from_dict(f) for f in raw_filters],
            parameters=dict(parameters),
            dry_run=bool(data.get("dry_run", False)),
        )


@dataclass
class ExecutionResult:
    operation: OperationKind
    target_table: str
    affected_count: int
    dry_run: bool = False
    preview: list[Record] = field(default_factory=list)
    operation_id: str | None = None
    status: OperationStatus = OperationStatus.COMPLETED
    message: str = ""
    export: ExportPayload | None = None

    def to_dict(self) -> DryRunDict | ExecutionDict:
        if self.dry_run:
            return DryRunDict(
                success=True,
                dry_run=True,
                affected_count=self.affected_count,
                preview=self.preview,
                total_matching=self.affected_count,
            )
        return ExecutionDict(
            success=True,
            operation_id=self.operation_id,
            affected_count=self.affected_count,
            status=self.status.value,
            message=self.message,
        )


@dataclass
class _Outcome:
    message: str
    rollback_data: list[Record] | None = None
    export: ExportPayload | None = None


def _audit_action(kind: OperationKind) -> AuditAction:
    match kind:
        case OperationKind.DELETE_RECORDS:
            return AuditAction.DELETE
        case OperationKind.EXPORT_RECORDS:
            return AuditAction.EXPORT
        case OperationKind.UPDATE_STATUS | OperationKind.ASSIGN_COHORT:
            return AuditAction.UPDATE


class BulkOperationExecutor:
    """Validates, previews and executes bulk operations."""

    def __init__(
        self,
        store: RecordStore,
        policy: TablePolicyRegistry,
        compiler: FilterCompiler,
        operation_log: OperationLog,
        audit: AuditSink,
        renderer: ExportRenderer | None = None,
        preview_limit: int = DEFAULT_PREVIEW_LIMIT,
    ) -> None:
        self.store: RecordStore = store
        self.policy: TablePolicyRegistry = policy
        self.compiler: FilterCompiler = compiler
        self.operation_log: OperationLog = operation_log
        self.audit: AuditSink = audit
        self.renderer: ExportRenderer = renderer or ExportRenderer()
        self.preview_limit: int = preview_limit

    @classmethod
    def for_session(
        cls,
        session: Session,
        policy: TablePolicyRegistry,
        strict_filters: bool = True,
        preview_limit: int = DEFAULT_PREVIEW_LIMIT,
    ) -> "BulkOperationExecutor":
        return cls(
            store=SqlRecordStore(session),
            policy=policy,
            compiler=FilterCompiler(policy, strict=strict_filters),
            operation_log=OperationLog(session),
            audit=SqlAuditSink(session),
            preview_limit=preview_limit,
        )

    # ------------------------------------------------------------------
    # Validation (no store access)
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_kind(operation: str) -> OperationKind:
        try:
            return OperationKind(operation)
        except ValueError as e:
            raise UnsupportedOperationError(operation) from e

    def _check_policy(self, kind: OperationKind, table_name: str) -> None:
        if kind in FIELD_UPDATES:
            column, _ = FIELD_UPDATES[kind]
            if not self.policy.is_updatable(table_name, column):
                raise FieldNotUpdatableError(table_name, column)

    @staticmethod
    def _check_parameters(kind: OperationKind, parameters: Mapping[str, Any]) -> None:
        match kind:
            case OperationKind.UPDATE_STATUS | OperationKind.ASSIGN_COHORT:
                _, param = FIELD_UPDATES[kind]
                if not parameters.get(param):
                    raise MissingParameterError(param, kind.value)
            case OperationKind.DELETE_RECORDS:
                if parameters.get("confirmed") is not True:
                    raise ConfirmationRequiredError()
            case OperationKind.EXPORT_RECORDS:
                parse_export_format(parameters.get("format"))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, request: BulkOperationRequest, actor: Operator) -> ExecutionResult:
        if not self.policy.is_table_mutable(request.target_table):
            raise UnknownTableError(request.target_table)
        kind: OperationKind = self._parse_kind(request.operation)
        self._check_policy(kind, request.target_table)
        conditions: list[FilterCondition] = self.compiler.accepted(request.target_table, request.filters)
        if not request.dry_run:
            self._check_parameters(kind, request.parameters)

        table: Table = self.store.table(request.target_table)
        predicate = self.compiler.compile(table, conditions)
        records: list[Record] = self.store.fetch(table, predicate)
        affected: int = len(records)

        if request.dry_run:
            logger.info(
                "Bulk operation dry run",
                operation=kind.value,
                target_table=table.name,
                matching=affected,
                actor=actor.email,
            )
            return ExecutionResult(
                operation=kind,
                target_table=table.name,
                affected_count=affected,
                dry_run=True,
                preview=records[: self.preview_limit],
            )

        if affected == 0:
            return ExecutionResult(
                operation=kind,
                target_table=table.name,
                affected_count=0,
                message="No records matched the specified filters",
            )

        match kind:
            case OperationKind.UPDATE_STATUS | OperationKind.ASSIGN_COHORT:
                outcome: _Outcome = self._update_field(kind, table, records, request.parameters)
            case OperationKind.DELETE_RECORDS:
                outcome = self._delete(table, records)
            case OperationKind.EXPORT_RECORDS:
                outcome = self._export(table, records, request, actor)

        filters: list[dict[str, object]] = [dict(f.to_dict()) for f in request.filters]
        operation_id: str | None = self.operation_log.record(
            operation_type=kind.value,
            target_table=table.name,
            affected_count=affected,
            performed_by=actor.email,
            parameters=request.parameters,
            filters=filters,
            rollback_data=outcome.rollback_data,
        )
        self.audit.log_event(
            AuditEvent(
                actor=actor,
                action=_audit_action(kind),
                resource_type=AuditResourceType.BULK_OPERATION,
                resource_id=operation_id,
                description=f"Bulk {kind.value} on {table.name}: {affected} records",
                metadata={
                    "operation": kind.value,
                    "target_table": table.name,
                    "filters": filters,
                    "parameters": request.parameters,
                    "affected_count": affected,
                    "operation_id": operation_id,
                },
            )
        )

        return ExecutionResult(
            operation=kind,
            target_table=table.name,
            affected_count=affected,
            operation_id=operation_id,
            message=outcome.message,
            export=outcome.export,
        )

    def _update_field(
        self,
        kind: OperationKind,
        table: Table,
        records: Sequence[Record],
        parameters: Mapping[str, Any],
    ) -> _Outcome:
        column, param = FIELD_UPDATES[kind]
        new_value: Any = parameters[param]
        # Snapshot before the write; this is all rollback has to work with.
        snapshot: list[Record] = [{"id": r["id"], column: r.get(column)} for r in records]
        ids: list[object] = [r["id"] for r in records]

        updated: int = self.store.update_many(table, ids, {column: new_value})
        logger.info(
            "Bulk field update applied",
            operation=kind.value,
            target_table=table.name,
            column=column,
            matched=len(ids),
            updated=updated,
        )
        return _Outcome(
            message=f"Successfully updated {len(ids)} records",
            rollback_data=snapshot,
        )

    def _delete(self, table: Table, records: Sequence[Record]) -> _Outcome:
        # Full rows kept for the audit trail only; deletions are not restorable.
        snapshot: list[Record] = [dict(r) for r in records]
        ids: list[object] = [r["id"] for r in records]

        deleted: int = self.store.delete_many(table, ids)
        logger.info("Bulk delete applied", target_table=table.name, matched=len(ids), deleted=deleted)
        return _Outcome(
            message=f"Successfully deleted {len(ids)} records",
            rollback_data=snapshot,
        )

    def _export(
        self,
        table: Table,
        records: Sequence[Record],
        request: BulkOperationRequest,
        actor: Operator,
    ) -> _Outcome:
        payload: ExportPayload = self.renderer.render_records(
            table.name,
            records,
            parse_export_format(request.parameters.get("format")),
            exported_by=actor.email,
            filters=[f.to_dict() for f in request.filters],
        )
        return _Outcome(message=f"Exported {payload.record_count} records", export=payload)


def export_operation_history(
    operation_log: OperationLog,
    audit: AuditSink,
    actor: Operator,
    fmt: object = None,
    limit: int | None = None,
    renderer: ExportRenderer | None = None,
) -> ExportPayload:
    """Render the recent operation history as a download and audit the export."""
    export_format = parse_export_format(fmt)
    entries = operation_log.list_recent(limit)
    payload: ExportPayload = (renderer or ExportRenderer()).render_history(
        entries, export_format, exported_by=actor.email
    )
    audit.log_event(
        AuditEvent(
            actor=actor,
            action=AuditAction.EXPORT,
            resource_type=AuditResourceType.BULK_OPERATION,
            description=f"Exported bulk operation history: {payload.record_count} entries",
            metadata={"format": export_format.value, "record_count": payload.record_count},
        )
    )
    return payload
