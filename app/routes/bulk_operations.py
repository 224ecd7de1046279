"""Bulk operation endpoints — thin routes, logic in services."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from app.dependencies import (
    get_api_key,
    get_audit_sink,
    get_current_operator,
    get_executor,
    get_operation_log,
    get_rollback_engine,
)
from app.schemas.bulk_operations import (
    BulkOperationBody,
    OperationHistoryResponse,
    RollbackResponse,
)
from app.schemas.common import ErrorResponse
from backoffice.services._types import DryRunDict, ExecutionDict, OperationHistoryDict, RollbackDict
from backoffice.services.audit import SqlAuditSink
from backoffice.services.bulk_operations import (
    BulkOperationExecutor,
    ExecutionResult,
    export_operation_history,
)
from backoffice.services.errors import (
    BulkOperationError,
    OperationNotFoundError,
    StoreFailure,
)
from backoffice.services.export import ExportPayload
from backoffice.services.operation_log import OperationLog
from backoffice.services.operators import Operator
from backoffice.services.rollback import RollbackEngine, RollbackResult

logger: logging.Logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/bulk-operations",
    tags=["bulk-operations"],
    responses={code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 500)},
)


def _http_error(exc: BulkOperationError) -> HTTPException:
    match exc:
        case OperationNotFoundError():
            return HTTPException(status_code=404, detail=str(exc))
        case StoreFailure():
            logger.error("Bulk operation store failure: %s", exc.__cause__ or exc)
            return HTTPException(status_code=500, detail=str(exc))
        case _:
            return HTTPException(status_code=400, detail=str(exc))


def _file_response(payload: ExportPayload, operation_id: str | None = None) -> Response:
    headers: dict[str, str] = {
        "Content-Disposition": f'attachment; filename="{payload.filename}"',
        "X-Affected-Count": str(payload.record_count),
        "X-Export-Bytes": str(payload.byte_count),
    }
    if operation_id:
        headers["X-Operation-Id"] = operation_id
    return Response(content=payload.content, media_type=payload.media_type, headers=headers)


@router.get("", response_model=OperationHistoryResponse)
def list_operations(
    limit: int | None = Query(None),
    log: OperationLog = Depends(get_operation_log),
    _operator: Operator = Depends(get_current_operator),
) -> OperationHistoryDict:
    return OperationHistoryDict(success=True, operations=log.list_recent(limit))


@router.post("", response_model=None)
def run_operation(
    body: BulkOperationBody,
    executor: BulkOperationExecutor = Depends(get_executor),
    operator: Operator = Depends(get_current_operator),
    _key: str = Depends(get_api_key),
) -> Response | DryRunDict | ExecutionDict:
    try:
        result: ExecutionResult = executor.execute(body.to_request(), operator)
    except BulkOperationError as e:
        raise _http_error(e) from e

    if result.export is not None:
        return _file_response(result.export, result.operation_id)
    return result.to_dict()


@router.post("/{operation_id}/rollback", response_model=RollbackResponse)
def rollback_operation(
    operation_id: str,
    engine: RollbackEngine = Depends(get_rollback_engine),
    operator: Operator = Depends(get_current_operator),
    _key: str = Depends(get_api_key),
) -> RollbackDict:
    try:
        result: RollbackResult = engine.rollback(operation_id, operator)
    except BulkOperationError as e:
        raise _http_error(e) from e
    return result.to_dict()


@router.get("/history/export", response_model=None)
def export_history(
    format: str = Query("csv"),
    limit: int | None = Query(None),
    log: OperationLog = Depends(get_operation_log),
    audit: SqlAuditSink = Depends(get_audit_sink),
    operator: Operator = Depends(get_current_operator),
) -> Response:
    try:
        payload: ExportPayload = export_operation_history(log, audit, operator, format, limit)
    except BulkOperationError as e:
        raise _http_error(e) from e
    return _file_response(payload)
