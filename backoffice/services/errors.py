"""Shared exception hierarchy for back-office services."""

# ── Bulk operations ───────────────────────────────────────────────────────────


class BulkOperationError(Exception):
    """Base exception for bulk operation and rollback errors."""


# ── Policy violations: rejected before any read or write ─────────────────────


class PolicyViolation(BulkOperationError):
    """Request touches a table, field or operation outside the whitelist."""


class UnknownTableError(PolicyViolation):
    def __init__(self, table: str) -> None:
        super().__init__(f'Table "{table}" is not allowed for bulk operations')
        self.table = table


class UnsupportedOperationError(PolicyViolation):
    def __init__(self, operation: str) -> None:
        super().__init__(f'Operation "{operation}" is not supported')
        self.operation = operation


class FieldNotUpdatableError(PolicyViolation):
    def __init__(self, table: str, field: str) -> None:
        super().__init__(f'Field "{field}" on table "{table}" cannot be bulk updated')
        self.table = table
        self.field = field


class DisallowedFilterFieldError(PolicyViolation):
    def __init__(self, table: str, field: str) -> None:
        super().__init__(f'Field "{field}" is not filterable on table "{table}"')
        self.table = table
        self.field = field


# ── Validation: malformed request, rejected before fetch ─────────────────────


class BulkValidationError(BulkOperationError):
    """Request is missing a parameter or carries a malformed value."""


class MissingParameterError(BulkValidationError):
    def __init__(self, parameter: str, operation: str) -> None:
        super().__init__(f"{parameter} parameter is required for {operation} operation")
        self.parameter = parameter


class ConfirmationRequiredError(BulkValidationError):
    def __init__(self) -> None:
        super().__init__("confirmed parameter must be true to delete records")


class InvalidFilterError(BulkValidationError):
    """Filter condition is structurally invalid (e.g. unknown operator)."""


class InvalidFilterValueError(BulkValidationError):
    """Filter value cannot be coerced to the column's type."""


# ── Rollback ──────────────────────────────────────────────────────────────────


class OperationNotFoundError(BulkOperationError):
    def __init__(self, operation_id: str) -> None:
        super().__init__(f"Operation {operation_id} not found")
        self.operation_id = operation_id


class NotReversibleError(BulkOperationError):
    def __init__(self, operation_type: str) -> None:
        super().__init__(
            f'Operation type "{operation_type}" cannot be rolled back. '
            "Only update_status and assign_cohort operations are reversible."
        )
        self.operation_type = operation_type


class NoRollbackDataError(BulkOperationError):
    def __init__(self, operation_id: str) -> None:
        super().__init__("No rollback data available for this operation")
        self.operation_id = operation_id


# ── Store ─────────────────────────────────────────────────────────────────────


class StoreFailure(BulkOperationError):
    """The record store rejected a read or write.

    The message is safe to show; the underlying driver error is kept on
    ``__cause__`` and only ever logged server-side.
    """
