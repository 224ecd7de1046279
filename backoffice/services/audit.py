"""Compliance audit trail.

Audit events are human-readable records of who did what; unlike the bulk
operation log they carry no restore capability. Writing an event never
raises: a broken audit sink must not turn a completed change into an error.
"""

from dataclasses import dataclass, field
from typing import Protocol

import structlog
from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.services._helpers import JsonDict, dump_json, load_json, new_id, now_iso
from backoffice.services._types import AuditLogDict, AuditLogPageDict
from backoffice.services.operators import Operator
from db.enums import AuditAction, AuditResourceType
from db.models import AuditLog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    actor: Operator | None
    action: AuditAction
    resource_type: AuditResourceType
    description: str
    metadata: JsonDict = field(default_factory=dict)
    resource_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class AuditQuery:
    user_id: str | None = None
    user_email: str | None = None
    action: AuditAction | None = None
    resource_type: AuditResourceType | None = None
    resource_id: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    limit: int = 50
    offset: int = 0


class AuditSink(Protocol):
    def log_event(self, event: AuditEvent) -> bool: ...


def _to_dict(row: AuditLog) -> AuditLogDict:
    return AuditLogDict(
        id=row.id,
        user_id=row.user_id,
        user_email=row.user_email,
        user_role=row.user_role,
        action=row.action,
        resource_type=row.resource_type,
        resource_id=row.resource_id,
        resource_description=row.resource_description,
        metadata=load_json(row.event_metadata),
        created_at=row.created_at,
    )


class SqlAuditSink:
    """Writes audit events to the ``audit_log`` table with failure isolation."""

    def __init__(self, session: Session) -> None:
        self.session: Session = session

    def log_event(self, event: AuditEvent) -> bool:
        """Persist the event; returns False (and logs) instead of raising on failure."""
        actor: Operator | None = event.actor
        row = AuditLog(
            id=new_id(),
            user_id=actor.id if actor else None,
            user_email=actor.email if actor else None,
            user_role=actor.role if actor else None,
            action=event.action.value,
            resource_type=event.resource_type.value,
            resource_id=event.resource_id,
            resource_description=event.description,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            event_metadata=dump_json(event.metadata) if event.metadata else None,
            created_at=now_iso(),
        )
        try:
            with self.session.begin_nested():
                self.session.add(row)
                self.session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Audit logging failed",
                action=event.action.value,
                description=event.description,
                error=str(e),
            )
            return False
        return True

    def list_events(self, query: AuditQuery) -> AuditLogPageDict:
        """Newest-first page of audit events matching every given filter."""
        conditions: list = []
        if query.user_id:
            conditions.append(AuditLog.user_id == query.user_id)
        if query.user_email:
            conditions.append(AuditLog.user_email.icontains(query.user_email, autoescape=True))
        if query.action:
            conditions.append(AuditLog.action == query.action.value)
        if query.resource_type:
            conditions.append(AuditLog.resource_type == query.resource_type.value)
        if query.resource_id:
            conditions.append(AuditLog.resource_id == query.resource_id)
        if query.start_date:
            conditions.append(AuditLog.created_at >= query.start_date)
        if query.end_date:
            conditions.append(AuditLog.created_at <= query.end_date)

        total: int = self.session.scalar(
            select(func.count()).select_from(AuditLog).where(*conditions)
        ) or 0
        stmt: Select[tuple[AuditLog]] = (
            select(AuditLog)
            .where(*conditions)
            .order_by(AuditLog.created_at.desc())
            .offset(query.offset)
            .limit(query.limit)
        )
        return AuditLogPageDict(
            logs=[_to_dict(r) for r in self.session.scalars(stmt).all()],
            total=total,
        )
