"""Typed dicts for service-layer return values.

Keeps route-facing methods explicit about their shape instead of returning bare dicts.
"""

import sys

if sys.version_info >= (3, 12):
    from typing import TypedDict
else:
    from typing_extensions import TypedDict

from backoffice.services._helpers import JsonDict, Record

# -- Bulk operations -------------------------------------------------------


class FilterConditionDict(TypedDict):
    field: str
    operator: str
    value: object


class DryRunDict(TypedDict):
    success: bool
    dry_run: bool
    affected_count: int
    preview: list[Record]
    total_matching: int


class ExecutionDict(TypedDict):
    success: bool
    operation_id: str | None
    affected_count: int
    status: str
    message: str


class RollbackDict(TypedDict):
    success: bool
    restored_count: int
    failed_count: int
    message: str


# -- Operation log ---------------------------------------------------------


class OperationLogDict(TypedDict):
    id: str
    operation_type: str
    target_table: str
    affected_count: int
    parameters: JsonDict | None
    filters: list[FilterConditionDict] | JsonDict | None
    changes: JsonDict | None
    status: str
    has_rollback_data: bool
    performed_by: str
    created_at: str


class OperationHistoryDict(TypedDict):
    success: bool
    operations: list[OperationLogDict]


# -- Audit -----------------------------------------------------------------


class AuditLogDict(TypedDict):
    id: str
    user_id: str | None
    user_email: str | None
    user_role: str | None
    action: str
    resource_type: str
    resource_id: str | None
    resource_description: str | None
    metadata: JsonDict | None
    created_at: str


class AuditLogPageDict(TypedDict):
    logs: list[AuditLogDict]
    total: int


# -- Health ----------------------------------------------------------------


class DbInfoDict(TypedDict, total=False):
    backend_type: str
    database_url_or_path: str | None
    tables_present: list[str]
    tables_missing: list[str]
    schema_initialized: bool
    pid: int
    error: str
