"""Enumeration types for the training back office."""

from enum import Enum


class OperationKind(str, Enum):
    """Bulk operations an administrator can run."""

    UPDATE_STATUS = "update_status"
    ASSIGN_COHORT = "assign_cohort"
    DELETE_RECORDS = "delete_records"
    EXPORT_RECORDS = "export_records"


REVERSIBLE_OPERATIONS: frozenset[str] = frozenset(
    {OperationKind.UPDATE_STATUS.value, OperationKind.ASSIGN_COHORT.value}
)

ROLLBACK_PREFIX = "rollback_"


class FilterOperator(str, Enum):
    """Comparison applied by a single filter condition."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN_LIST = "in_list"


class OperationStatus(str, Enum):
    """Outcome recorded on an operation log entry."""

    COMPLETED = "completed"
    FAILED = "failed"


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


class AuditAction(str, Enum):
    """Compliance audit actions."""

    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    EXPORT = "export"
    LOGIN = "login"
    LOGOUT = "logout"
    ACCESS_DENIED = "access_denied"


class AuditResourceType(str, Enum):
    STUDENT = "student"
    STUDENT_LIST = "student_list"
    COHORT = "cohort"
    LAB_DAY = "lab_day"
    USER = "user"
    BULK_OPERATION = "bulk_operation"
    AUDIT_LOG = "audit_log"


class UserRole(str, Enum):
    """Staff roles, lowest to highest privilege."""

    GUEST = "guest"
    INSTRUCTOR = "instructor"
    LEAD_INSTRUCTOR = "lead_instructor"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


ROLE_LEVELS: dict[str, int] = {
    UserRole.SUPERADMIN.value: 5,
    UserRole.ADMIN.value: 4,
    UserRole.LEAD_INSTRUCTOR.value: 3,
    UserRole.INSTRUCTOR.value: 2,
    UserRole.GUEST.value: 1,
}


def role_level(role: str | None) -> int:
    return ROLE_LEVELS.get(role or "", 0)


def can_access_admin(role: str | None) -> bool:
    return role_level(role) >= ROLE_LEVELS[UserRole.ADMIN.value]
