"""Tests for all API routes via FastAPI TestClient."""

import json
from collections.abc import Generator, Sequence
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Table, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.dependencies import get_executor
from app.routes import audit_log, bulk_operations
from backoffice.services.audit import SqlAuditSink
from backoffice.services.bulk_operations import BulkOperationExecutor
from backoffice.services.errors import StoreFailure
from backoffice.services.filters import FilterCompiler
from backoffice.services.operation_log import OperationLog
from backoffice.services.policy import DEFAULT_TABLE_POLICY
from backoffice.services.record_store import SqlRecordStore
from config import get_settings
from db.connection import get_db
from db.models import Base, BulkOperationLogs, LabUsers, Students

ADMIN: dict[str, str] = {"X-User-Email": "dana.admin@example.edu"}


def _create_test_app() -> FastAPI:
    """Minimal app without lifespan (no schema creation)."""
    test_app: FastAPI = FastAPI()

    @test_app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    test_app.include_router(bulk_operations.router)
    test_app.include_router(audit_log.router)
    return test_app


_test_app: FastAPI = _create_test_app()


@pytest.fixture(autouse=True)
def _settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.delenv("BACKOFFICE_API_KEY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def _route_engine() -> Generator[Engine, None, None]:
    """In-memory SQLite engine with check_same_thread=False for TestClient."""
    eng: Engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def _route_session(_route_engine: Engine) -> Generator[Session, None, None]:
    factory: sessionmaker[Session] = sessionmaker(
        bind=_route_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    sess: Session = factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture()
def client(_route_session: Session) -> Generator[TestClient, None, None]:
    """TestClient with DB dependency overridden to use test session."""

    def _override_db() -> Generator[Session, None, None]:
        yield _route_session

    _test_app.dependency_overrides[get_db] = _override_db
    with TestClient(_test_app, raise_server_exceptions=True) as c:
        yield c
    _test_app.dependency_overrides.clear()


@pytest.fixture()
def session(_route_session: Session) -> Session:
    """Alias so seed helpers can use the same session as the client."""
    return _route_session


@pytest.fixture(autouse=True)
def _staff(session: Session) -> None:
    session.add_all(
        [
            LabUsers(name="Dana Admin", email="dana.admin@example.edu", role="admin"),
            LabUsers(name="Ira Instructor", email="ira@example.edu", role="instructor"),
            LabUsers(name="Old Admin", email="old.admin@example.edu", role="superadmin", is_active=False),
        ]
    )
    session.flush()


# ---------- seed helpers ----------


def _seed_student(session: Session, **overrides: object) -> Students:
    defaults: dict[str, object] = {
        "first_name": "Alex",
        "last_name": "Rivera",
        "status": "active",
        "cohort_id": "cohort-a",
    }
    defaults.update(overrides)
    student = Students(**defaults)
    session.add(student)
    session.flush()
    return student


def _seed_roster(session: Session) -> list[Students]:
    return [
        _seed_student(session, first_name="Ana"),
        _seed_student(session, first_name="Ben"),
        _seed_student(session, first_name="Cy", status="withdrawn"),
    ]


def _body(operation: str, **overrides: object) -> dict[str, object]:
    body: dict[str, object] = {
        "operation": operation,
        "target_table": "students",
        "filters": [{"field": "status", "operator": "equals", "value": "active"}],
        "parameters": {},
        "dry_run": False,
    }
    body.update(overrides)
    return body


# ===================================================================
# Health
# ===================================================================


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


# ===================================================================
# Authorization
# ===================================================================


class TestAuthorization:
    def test_missing_identity(self, client: TestClient) -> None:
        resp = client.get("/api/admin/bulk-operations")
        assert resp.status_code == 401

    def test_unknown_user(self, client: TestClient) -> None:
        resp = client.get("/api/admin/bulk-operations", headers={"X-User-Email": "ghost@example.edu"})
        assert resp.status_code == 401

    def test_inactive_user(self, client: TestClient) -> None:
        resp = client.get("/api/admin/bulk-operations", headers={"X-User-Email": "old.admin@example.edu"})
        assert resp.status_code == 401

    def test_instructor_forbidden(self, client: TestClient, session: Session) -> None:
        _seed_roster(session)
        resp = client.post(
            "/api/admin/bulk-operations",
            json=_body("update_status", parameters={"new_status": "graduated"}),
            headers={"X-User-Email": "ira@example.edu"},
        )
        assert resp.status_code == 403
        assert session.scalar(select(func.count()).select_from(BulkOperationLogs)) == 0

    def test_api_key_enforced_when_configured(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BACKOFFICE_API_KEY", "secret")
        get_settings.cache_clear()
        resp = client.post("/api/admin/bulk-operations", json=_body("update_status", dry_run=True), headers=ADMIN)
        assert resp.status_code == 401
        resp = client.post(
            "/api/admin/bulk-operations",
            json=_body("update_status", dry_run=True),
            headers={**ADMIN, "X-API-Key": "secret"},
        )
        assert resp.status_code == 200


# ===================================================================
# Bulk operations
# ===================================================================


class TestRunOperation:
    def test_dry_run(self, client: TestClient, session: Session) -> None:
        _seed_roster(session)
        resp = client.post("/api/admin/bulk-operations", json=_body("update_status", dry_run=True), headers=ADMIN)
        assert resp.status_code == 200
        data: dict[str, Any] = resp.json()
        assert data["success"] is True
        assert data["dry_run"] is True
        assert data["affected_count"] == 2
        assert data["total_matching"] == 2
        assert len(data["preview"]) == 2

    def test_update_status(self, client: TestClient, session: Session) -> None:
        roster: list[Students] = _seed_roster(session)
        resp = client.post(
            "/api/admin/bulk-operations",
            json=_body("update_status", parameters={"new_status": "graduated"}),
            headers=ADMIN,
        )
        assert resp.status_code == 200
        data: dict[str, Any] = resp.json()
        assert data["affected_count"] == 2
        assert data["status"] == "completed"
        assert data["message"] == "Successfully updated 2 records"
        assert data["operation_id"]
        assert session.scalar(select(Students.status).where(Students.id == roster[0].id)) == "graduated"

    def test_no_matches(self, client: TestClient, session: Session) -> None:
        resp = client.post(
            "/api/admin/bulk-operations",
            json=_body("update_status", parameters={"new_status": "graduated"}),
            headers=ADMIN,
        )
        assert resp.status_code == 200
        assert resp.json()["affected_count"] == 0
        assert resp.json()["message"] == "No records matched the specified filters"

    def test_csv_export_is_file_download(self, client: TestClient, session: Session) -> None:
        _seed_roster(session)
        resp = client.post(
            "/api/admin/bulk-operations",
            json=_body("export_records", parameters={"format": "csv"}),
            headers=ADMIN,
        )
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        disposition: str = resp.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="bulk-export-students-')
        assert disposition.endswith('.csv"')
        assert resp.headers["x-affected-count"] == "2"
        assert resp.headers["x-operation-id"]
        assert int(resp.headers["x-export-bytes"]) == len(resp.content)
        lines: list[str] = resp.text.split("\n")
        assert lines[0].startswith("id,first_name,last_name")
        assert len(lines) == 3

    def test_json_export(self, client: TestClient, session: Session) -> None:
        _seed_roster(session)
        resp = client.post(
            "/api/admin/bulk-operations",
            json=_body("export_records", filters=[], parameters={"format": "json"}),
            headers=ADMIN,
        )
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/json")
        doc: dict[str, Any] = resp.json()
        assert doc["export_type"] == "bulk_students"
        assert doc["exported_by"] == "dana.admin@example.edu"
        assert doc["record_count"] == 3


class TestRunOperationErrors:
    @pytest.mark.parametrize(
        ("body", "detail"),
        [
            (_body("delete_records", target_table="audit_log"), 'Table "audit_log" is not allowed for bulk operations'),
            (_body("truncate"), 'Operation "truncate" is not supported'),
            (_body("update_status"), "new_status parameter is required for update_status operation"),
            (_body("delete_records"), "confirmed parameter must be true to delete records"),
            (
                _body("update_status", filters=[{"field": "email", "operator": "equals", "value": "x"}]),
                'Field "email" is not filterable on table "students"',
            ),
            (
                _body("update_status", filters=[{"field": "status", "operator": "like", "value": "x"}]),
                "Unknown filter operator",
            ),
            (
                _body("update_status", filters=[{"field": "created_at", "operator": "less_than"}], dry_run=True),
                "less_than on created_at requires a value",
            ),
        ],
    )
    def test_rejected_with_400(
        self, client: TestClient, session: Session, body: dict[str, object], detail: str
    ) -> None:
        roster: list[Students] = _seed_roster(session)
        resp = client.post("/api/admin/bulk-operations", json=body, headers=ADMIN)
        assert resp.status_code == 400
        assert detail in resp.json()["detail"]
        assert session.scalar(select(func.count()).select_from(Students)) == len(roster)
        assert session.scalar(select(func.count()).select_from(BulkOperationLogs)) == 0

    def test_store_failure_is_500(self, client: TestClient, session: Session) -> None:
        class _FailingStore(SqlRecordStore):
            def update_many(self, table: Table, ids: Sequence[object], values: dict[str, object]) -> int:
                raise StoreFailure("Failed to update records")

        def _failing_executor() -> BulkOperationExecutor:
            return BulkOperationExecutor(
                store=_FailingStore(session),
                policy=DEFAULT_TABLE_POLICY,
                compiler=FilterCompiler(DEFAULT_TABLE_POLICY),
                operation_log=OperationLog(session),
                audit=SqlAuditSink(session),
            )

        _seed_roster(session)
        _test_app.dependency_overrides[get_executor] = _failing_executor
        resp = client.post(
            "/api/admin/bulk-operations",
            json=_body("update_status", parameters={"new_status": "graduated"}),
            headers=ADMIN,
        )
        assert resp.status_code == 500
        assert resp.json()["detail"] == "Failed to update records"


class TestHistoryAndRollback:
    def _update(self, client: TestClient) -> str:
        resp = client.post(
            "/api/admin/bulk-operations",
            json=_body("update_status", parameters={"new_status": "graduated"}),
            headers=ADMIN,
        )
        assert resp.status_code == 200
        return str(resp.json()["operation_id"])

    def test_history_lists_operations(self, client: TestClient, session: Session) -> None:
        _seed_roster(session)
        op_id: str = self._update(client)
        resp = client.get("/api/admin/bulk-operations?limit=10", headers=ADMIN)
        assert resp.status_code == 200
        data: dict[str, Any] = resp.json()
        assert data["success"] is True
        ops: list[dict[str, Any]] = data["operations"]
        assert ops[0]["id"] == op_id
        assert ops[0]["has_rollback_data"] is True
        assert ops[0]["performed_by"] == "dana.admin@example.edu"

    def test_rollback_round_trip(self, client: TestClient, session: Session) -> None:
        roster: list[Students] = _seed_roster(session)
        op_id: str = self._update(client)
        resp = client.post(f"/api/admin/bulk-operations/{op_id}/rollback", headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "restored_count": 2,
            "failed_count": 0,
            "message": "Successfully rolled back 2 records",
        }
        assert session.scalar(select(Students.status).where(Students.id == roster[0].id)) == "active"

    def test_rollback_not_found(self, client: TestClient) -> None:
        resp = client.post("/api/admin/bulk-operations/missing/rollback", headers=ADMIN)
        assert resp.status_code == 404

    def test_rollback_of_delete_rejected(self, client: TestClient, session: Session) -> None:
        _seed_roster(session)
        resp = client.post(
            "/api/admin/bulk-operations",
            json=_body("delete_records", parameters={"confirmed": True}),
            headers=ADMIN,
        )
        op_id: str = resp.json()["operation_id"]
        resp = client.post(f"/api/admin/bulk-operations/{op_id}/rollback", headers=ADMIN)
        assert resp.status_code == 400
        assert "cannot be rolled back" in resp.json()["detail"]

    def test_history_export(self, client: TestClient, session: Session) -> None:
        _seed_roster(session)
        self._update(client)
        resp = client.get("/api/admin/bulk-operations/history/export?format=json", headers=ADMIN)
        assert resp.status_code == 200
        assert 'filename="bulk-operations-history-' in resp.headers["content-disposition"]
        doc: dict[str, object] = json.loads(resp.text)
        assert doc["record_count"] == 1

    def test_history_export_bad_format(self, client: TestClient) -> None:
        resp = client.get("/api/admin/bulk-operations/history/export?format=pdf", headers=ADMIN)
        assert resp.status_code == 400


# ===================================================================
# Audit log
# ===================================================================


class TestAuditLogRoutes:
    def test_lists_bulk_operation_events(self, client: TestClient, session: Session) -> None:
        _seed_roster(session)
        client.post(
            "/api/admin/bulk-operations",
            json=_body("update_status", parameters={"new_status": "graduated"}),
            headers=ADMIN,
        )
        resp = client.get("/api/admin/audit-log?action=update", headers=ADMIN)
        assert resp.status_code == 200
        data: dict[str, Any] = resp.json()
        assert data["total"] == 1
        assert data["logs"][0]["resource_type"] == "bulk_operation"

    def test_invalid_action(self, client: TestClient) -> None:
        resp = client.get("/api/admin/audit-log?action=teleport", headers=ADMIN)
        assert resp.status_code == 400

    def test_requires_admin(self, client: TestClient) -> None:
        resp = client.get("/api/admin/audit-log", headers={"X-User-Email": "ira@example.edu"})
        assert resp.status_code == 403


class TestDbInfo:
    def test_reports_missing_tables(self, monkeypatch: pytest.MonkeyPatch, _route_engine: Engine) -> None:
        from app.routes import health
        from backoffice.services.policy import TablePolicyRegistry

        monkeypatch.setattr(health, "get_engine", lambda: _route_engine)
        policy: TablePolicyRegistry = TablePolicyRegistry.from_mapping({"cohorts": {"filterable": ["name"]}})
        info = health.get_db_info(policy)
        assert info["tables_missing"] == ["cohorts"]
        assert info["schema_initialized"] is False
        assert "bulk_operation_logs" in info["tables_present"]

    def test_complete_schema(self, monkeypatch: pytest.MonkeyPatch, _route_engine: Engine) -> None:
        from app.routes import health

        monkeypatch.setattr(health, "get_engine", lambda: _route_engine)
        info = health.get_db_info(DEFAULT_TABLE_POLICY)
        assert info["tables_missing"] == []
        assert info["schema_initialized"] is True
