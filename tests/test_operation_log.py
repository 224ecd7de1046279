"""Tests for backoffice.services.operation_log."""

import pytest
from sqlalchemy.orm import Session

from backoffice.services._helpers import new_id
from backoffice.services._types import OperationLogDict
from backoffice.services.operation_log import OperationLog, clamp_limit
from db.models import BulkOperationLogs


def _seed_entry(session: Session, created_at: str, **overrides: object) -> BulkOperationLogs:
    defaults: dict[str, object] = {
        "id": new_id(),
        "operation_type": "update_status",
        "target_table": "students",
        "affected_count": 1,
        "status": "completed",
        "performed_by": "dana.admin@example.edu",
        "created_at": created_at,
    }
    defaults.update(overrides)
    entry = BulkOperationLogs(**defaults)
    session.add(entry)
    session.flush()
    return entry


class TestClampLimit:
    @pytest.mark.parametrize(
        ("limit", "expected"),
        [(None, 50), (10, 10), (0, 1), (-5, 1), (100, 100), (1000, 100)],
    )
    def test_bounds(self, limit: int | None, expected: int) -> None:
        assert clamp_limit(limit) == expected


class TestRecord:
    def test_round_trip(self, session: Session) -> None:
        log = OperationLog(session)
        op_id: str | None = log.record(
            operation_type="assign_cohort",
            target_table="students",
            affected_count=2,
            performed_by="dana.admin@example.edu",
            parameters={"cohort_id": "cohort-z"},
            filters=[{"field": "status", "operator": "equals", "value": "active"}],
            rollback_data=[{"id": "a", "cohort_id": "cohort-a"}],
        )
        assert op_id is not None
        entry: BulkOperationLogs | None = log.get(op_id)
        assert entry is not None
        assert entry.status == "completed"

        listed: OperationLogDict = log.list_recent()[0]
        assert listed["parameters"] == {"cohort_id": "cohort-z"}
        assert listed["filters"] == [{"field": "status", "operator": "equals", "value": "active"}]
        assert listed["has_rollback_data"] is True
        assert listed["changes"] is None

    def test_get_missing(self, session: Session) -> None:
        assert OperationLog(session).get("missing") is None


class TestListRecent:
    def test_newest_first_and_limited(self, session: Session) -> None:
        for day in ("01", "02", "03"):
            _seed_entry(session, created_at=f"2026-05-{day}T00:00:00+00:00", affected_count=int(day))
        entries: list[OperationLogDict] = OperationLog(session).list_recent(2)
        assert [e["affected_count"] for e in entries] == [3, 2]

    def test_configured_maximum(self, session: Session) -> None:
        for day in ("01", "02", "03"):
            _seed_entry(session, created_at=f"2026-05-{day}T00:00:00+00:00")
        assert len(OperationLog(session, default_limit=1, max_limit=2).list_recent()) == 1
        assert len(OperationLog(session, default_limit=1, max_limit=2).list_recent(50)) == 2

    def test_rollback_entry_filters_object(self, session: Session) -> None:
        _seed_entry(session, created_at="2026-05-01T00:00:00+00:00", filters="{}", operation_type="rollback_update_status")
        entry: OperationLogDict = OperationLog(session).list_recent()[0]
        assert entry["filters"] == {}
        assert entry["has_rollback_data"] is False
