"""Table/field whitelist for bulk operations.

Every table name and column name that reaches the record store from a bulk
request is checked here first. Lookups never raise: unknown tables and fields
simply report ``False`` / empty.
"""

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class TablePolicy:
    table_name: str
    filterable_fields: frozenset[str]
    updatable_fields: frozenset[str]

    @classmethod
    def build(
        cls,
        table_name: str,
        filterable: Iterable[str],
        updatable: Iterable[str],
    ) -> "TablePolicy":
        return cls(table_name, frozenset(filterable), frozenset(updatable))


class TablePolicyRegistry:
    """Immutable lookup of mutable tables and their whitelisted columns."""

    __slots__ = ("_tables",)

    def __init__(self, policies: Iterable[TablePolicy]) -> None:
        self._tables: Mapping[str, TablePolicy] = MappingProxyType(
            {p.table_name: p for p in policies}
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TablePolicyRegistry":
        """Build from ``{table: {"filterable": [...], "updatable": [...]}}``."""
        policies: list[TablePolicy] = []
        for table, spec in data.items():
            if not isinstance(spec, Mapping):
                raise ValueError(f"Policy for table {table!r} must be an object")
            policies.append(
                TablePolicy.build(
                    table,
                    filterable=spec.get("filterable", []),
                    updatable=spec.get("updatable", []),
                )
            )
        return cls(policies)

    @classmethod
    def from_file(cls, path: Path) -> "TablePolicyRegistry":
        registry = cls.from_mapping(json.loads(path.read_text(encoding="utf-8")))
        logger.info("Loaded table policy", path=str(path), tables=registry.tables)
        return registry

    @property
    def tables(self) -> list[str]:
        return sorted(self._tables)

    def is_table_mutable(self, table: str) -> bool:
        return table in self._tables

    def filterable_fields(self, table: str) -> frozenset[str]:
        policy: TablePolicy | None = self._tables.get(table)
        return policy.filterable_fields if policy else frozenset()

    def updatable_fields(self, table: str) -> frozenset[str]:
        policy: TablePolicy | None = self._tables.get(table)
        return policy.updatable_fields if policy else frozenset()

    def is_filterable(self, table: str, field: str) -> bool:
        return field in self.filterable_fields(table)

    def is_updatable(self, table: str, field: str) -> bool:
        return field in self.updatable_fields(table)


DEFAULT_TABLE_POLICY: TablePolicyRegistry = TablePolicyRegistry(
    [
        TablePolicy.build(
            "students",
            filterable=["status", "cohort_id", "agency", "created_at", "first_name", "last_name"],
            updatable=["status", "cohort_id"],
        ),
        TablePolicy.build(
            "lab_days",
            filterable=["is_active", "cohort_id", "date", "created_at"],
            updatable=["is_active", "cohort_id"],
        ),
        TablePolicy.build(
            "shifts",
            filterable=["status", "department", "date", "created_at", "instructor_id"],
            updatable=["status"],
        ),
        TablePolicy.build(
            "lab_users",
            filterable=["role", "is_active", "created_at", "email"],
            updatable=["role", "is_active"],
        ),
        TablePolicy.build(
            "student_internships",
            filterable=["status", "cohort_id", "current_phase", "created_at"],
            updatable=["status", "current_phase"],
        ),
    ]
)


def load_table_policy(policy_file: Path | None) -> TablePolicyRegistry:
    """Return the policy for this environment: the override file if configured, else the default."""
    if policy_file is None:
        return DEFAULT_TABLE_POLICY
    return TablePolicyRegistry.from_file(policy_file)
