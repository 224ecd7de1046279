"""Bulk operation request/response schemas.

Field names stay snake_case on the wire; the admin UI posts them verbatim.
"""

from typing import Any

from pydantic import BaseModel, Field

from backoffice.services.bulk_operations import BulkOperationRequest
from backoffice.services.filters import FilterCondition


class FilterConditionBody(BaseModel):
    field: str
    # Plain string so an unknown operator is reported as a 400, not a 422.
    operator: str
    value: Any = None


class BulkOperationBody(BaseModel):
    operation: str
    target_table: str
    filters: list[FilterConditionBody] = Field(default_factory=list)
    parameters: dict[str, Any] = Field(default_factory=dict)
    dry_run: bool = False

    def to_request(self) -> BulkOperationRequest:
        return BulkOperationRequest(
            operation=self.operation,
            target_table=self.target_table,
            filters=[FilterCondition.from_dict(f.model_dump()) for f in self.filters],
            parameters=dict(self.parameters),
            dry_run=self.dry_run,
        )



class RollbackResponse(BaseModel):
    success: bool
    restored_count: int
    failed_count: int
    message: str


class OperationLogResponse(BaseModel):
    id: str
    operation_type: str
    target_table: str
    affected_count: int
    parameters: dict[str, Any] | None
    filters: list[dict[str, Any]] | dict[str, Any] | None
    changes: dict[str, Any] | None
    status: str
    has_rollback_data: bool
    performed_by: str
    created_at: str


class OperationHistoryResponse(BaseModel):
    success: bool
    operations: list[OperationLogResponse]
