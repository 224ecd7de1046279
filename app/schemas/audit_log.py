"""Audit log viewer schemas."""

from typing import Any

from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    id: str
    user_id: str | None
    user_email: str | None
    user_role: str | None
    action: str
    resource_type: str
    resource_id: str | None
    resource_description: str | None
    metadata: dict[str, Any] | None
    created_at: str


class AuditLogPageResponse(BaseModel):
    logs: list[AuditLogResponse]
    total: int
