"""Filter compiler: declarative filter conditions -> SQLAlchemy predicates."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import structlog
from sqlalchemy import Column, ColumnElement, Integer, String, Table, and_, cast, true

from backoffice.services._types import FilterConditionDict
from backoffice.services.errors import (
    DisallowedFilterFieldError,
    InvalidFilterError,
    InvalidFilterValueError,
)
from backoffice.services.policy import TablePolicyRegistry
from db.enums import FilterOperator

logger = structlog.get_logger(__name__)

_TRUE_TOKENS = frozenset({"true", "t", "1", "yes"})
_FALSE_TOKENS = frozenset({"false", "f", "0", "no"})


@dataclass(frozen=True, slots=True)
class FilterCondition:
    field: str
    operator: FilterOperator
    value: object

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "FilterCondition":
        field: object = data.get("field")
        if not isinstance(field, str) or not field:
            raise InvalidFilterError("Filter condition requires a field name")
        try:
            operator = FilterOperator(data.get("operator"))
        except ValueError as e:
            raise InvalidFilterError(
                f"Unknown filter operator {data.get('operator')!r} for field {field!r}"
            ) from e
        return cls(field=field, operator=operator, value=data.get("value"))

    def to_dict(self) -> FilterConditionDict:
        return FilterConditionDict(field=self.field, operator=self.operator.value, value=self.value)


def split_list_value(value: object) -> list[object]:
    """in_list values: lists pass through, scalars are comma-split, trimmed, blanks dropped."""
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    if value is None:
        return []
    return [item.strip() for item in str(value).split(",") if item.strip()]


def _python_type(column: Column) -> type | None:
    try:
        return column.type.python_type
    except NotImplementedError:
        return None


def coerce_value(column: Column, value: object) -> object:
    """Coerce a request value to the Python type the column holds."""
    if value is None:
        return None
    target: type | None = _python_type(column)
    if target is bool:
        if isinstance(value, bool):
            return value
        token: str = str(value).strip().lower()
        if token in _TRUE_TOKENS:
            return True
        if token in _FALSE_TOKENS:
            return False
        raise InvalidFilterValueError(f"{value!r} is not a boolean value for {column.name}")
    if target in (int, float) and not isinstance(value, bool):
        try:
            return target(value)
        except (TypeError, ValueError) as e:
            raise InvalidFilterValueError(
                f"{value!r} is not a valid {target.__name__} for {column.name}"
            ) from e
    if target is str:
        return str(value)
    return value


def _text_column(column: Column) -> ColumnElement:
    return column if _python_type(column) is str else cast(column, String)


def _ordered_operands(column: Column, condition: FilterCondition) -> tuple[ColumnElement, object]:
    """Operands for greater_than / less_than. Booleans compare as 0/1."""
    coerced: object = coerce_value(column, condition.value)
    if coerced is None:
        raise InvalidFilterValueError(
            f"{condition.operator.value} on {column.name} requires a value"
        )
    if isinstance(coerced, bool):
        return cast(column, Integer), int(coerced)
    return column, coerced


class FilterCompiler:
    """Validates conditions against the table policy and builds one AND-ed predicate.

    In strict mode a condition on a non-filterable field rejects the whole
    request; in lenient mode the condition is dropped and logged.
    """

    def __init__(self, policy: TablePolicyRegistry, strict: bool = True) -> None:
        self.policy: TablePolicyRegistry = policy
        self.strict: bool = strict

    def accepted(
        self,
        table_name: str,
        conditions: Sequence[FilterCondition],
    ) -> list[FilterCondition]:
        """Conditions that survive the field whitelist."""
        allowed: frozenset[str] = self.policy.filterable_fields(table_name)
        kept: list[FilterCondition] = []
        for condition in conditions:
            if condition.field in allowed:
                kept.append(condition)
                continue
            if self.strict:
                raise DisallowedFilterFieldError(table_name, condition.field)
            logger.warning(
                "Dropping filter on non-filterable field",
                table=table_name,
                field=condition.field,
            )
        return kept

    def compile(
        self,
        table: Table,
        conditions: Sequence[FilterCondition],
    ) -> ColumnElement[bool]:
        """AND of every accepted condition; no conditions matches every row."""
        clauses: list[ColumnElement[bool]] = []
        for condition in self.accepted(table.name, conditions):
            if condition.field not in table.c:
                raise InvalidFilterError(f"Table {table.name!r} has no column {condition.field!r}")
            clauses.append(self._clause(table.c[condition.field], condition))
        if not clauses:
            return true()
        return and_(*clauses)

    @staticmethod
    def _clause(column: Column, condition: FilterCondition) -> ColumnElement[bool]:
        value: object = condition.value
        match condition.operator:
            case FilterOperator.EQUALS:
                coerced = coerce_value(column, value)
                return column.is_(None) if coerced is None else column == coerced
            case FilterOperator.NOT_EQUALS:
                coerced = coerce_value(column, value)
                return column.is_not(None) if coerced is None else column != coerced
            case FilterOperator.CONTAINS:
                return _text_column(column).icontains("" if value is None else str(value), autoescape=True)
            case FilterOperator.GREATER_THAN:
                left, right = _ordered_operands(column, condition)
                return left > right
            case FilterOperator.LESS_THAN:
                left, right = _ordered_operands(column, condition)
                return left < right
            case FilterOperator.IN_LIST:
                return column.in_([coerce_value(column, v) for v in split_list_value(value)])
