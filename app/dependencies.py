"""FastAPI dependencies — DB sessions, auth and bulk services."""

from functools import lru_cache
from pathlib import Path

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from backoffice.services.audit import SqlAuditSink
from backoffice.services.bulk_operations import BulkOperationExecutor
from backoffice.services.operation_log import OperationLog
from backoffice.services.operators import Operator, find_operator
from backoffice.services.policy import TablePolicyRegistry, load_table_policy
from backoffice.services.rollback import RollbackEngine
from config import BulkSettings, get_settings
from db.connection import get_db as get_db  # noqa: F401 — re-exported for routes


def get_api_key(x_api_key: str = Header(default="")) -> str:
    """Validate API key on mutation endpoints."""
    expected: str | None = get_settings().api_key
    if not expected:
        return ""  # auth disabled when no key configured
    if x_api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return x_api_key


def get_current_operator(
    x_user_email: str = Header(default=""),
    db: Session = Depends(get_db),
) -> Operator:
    """Admin-level staff member named by the upstream auth layer."""
    if not x_user_email.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    operator: Operator | None = find_operator(db, x_user_email)
    if operator is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not operator.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return operator


@lru_cache
def _policy_for(policy_file: Path | None) -> TablePolicyRegistry:
    return load_table_policy(policy_file)


def get_policy() -> TablePolicyRegistry:
    return _policy_for(get_settings().bulk.policy_file)


def get_operation_log(db: Session = Depends(get_db)) -> OperationLog:
    bulk: BulkSettings = get_settings().bulk
    return OperationLog(db, bulk.history_default_limit, bulk.history_max_limit)


def get_audit_sink(db: Session = Depends(get_db)) -> SqlAuditSink:
    return SqlAuditSink(db)


def get_executor(
    db: Session = Depends(get_db),
    policy: TablePolicyRegistry = Depends(get_policy),
) -> BulkOperationExecutor:
    bulk: BulkSettings = get_settings().bulk
    return BulkOperationExecutor.for_session(
        db,
        policy,
        strict_filters=bulk.strict_filter_fields,
        preview_limit=bulk.preview_limit,
    )


def get_rollback_engine(
    db: Session = Depends(get_db),
    policy: TablePolicyRegistry = Depends(get_policy),
) -> RollbackEngine:
    return RollbackEngine.for_session(db, policy)
