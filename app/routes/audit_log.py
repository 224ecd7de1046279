"""Audit log viewer endpoint."""

from fastapi import APIRouter, Depends, HTTPException, Query

from app.dependencies import get_audit_sink, get_current_operator
from app.schemas.audit_log import AuditLogPageResponse
from app.schemas.common import ErrorResponse
from backoffice.services._types import AuditLogPageDict
from backoffice.services.audit import AuditQuery, SqlAuditSink
from backoffice.services.operators import Operator
from db.enums import AuditAction, AuditResourceType

router = APIRouter(
    prefix="/api/admin",
    tags=["audit-log"],
    responses={code: {"model": ErrorResponse} for code in (400, 401, 403)},
)


@router.get("/audit-log", response_model=AuditLogPageResponse)
def list_audit_log(
    user_id: str | None = Query(None),
    user_email: str | None = Query(None),
    action: str | None = Query(None),
    resource_type: str | None = Query(None),
    resource_id: str | None = Query(None),
    start_date: str | None = Query(None),
    end_date: str | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    audit: SqlAuditSink = Depends(get_audit_sink),
    _operator: Operator = Depends(get_current_operator),
) -> AuditLogPageDict:
    try:
        query = AuditQuery(
            user_id=user_id,
            user_email=user_email,
            action=AuditAction(action) if action else None,
            resource_type=AuditResourceType(resource_type) if resource_type else None,
            resource_id=resource_id,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=offset,
        )
    except ValueError as e:
        raise HTTPException(400, detail=str(e)) from e
    return audit.list_events(query)
