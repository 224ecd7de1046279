"""SQLAlchemy ORM models for the training back office.

Domain tables hold only the columns the bulk tooling and its exports rely on;
the full CRUD schema lives with the screens that own it.
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


def generate_uuid() -> str:
    return str(uuid4())


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


# ---------------------------------------------------------------------------
# Program records
# ---------------------------------------------------------------------------


class Students(Base):
    __tablename__ = "students"

    id: Mapped[str] = mapped_column(primary_key=True, default=generate_uuid)
    first_name: Mapped[str] = mapped_column(nullable=False)
    last_name: Mapped[str] = mapped_column(nullable=False)
    email: Mapped[str | None] = mapped_column()
    status: Mapped[str] = mapped_column(nullable=False, default="active")
    cohort_id: Mapped[str | None] = mapped_column()
    agency: Mapped[str | None] = mapped_column()
    created_at: Mapped[str] = mapped_column(nullable=False, default=utc_now_iso)


class LabDays(Base):
    __tablename__ = "lab_days"

    id: Mapped[str] = mapped_column(primary_key=True, default=generate_uuid)
    title: Mapped[str | None] = mapped_column()
    date: Mapped[str] = mapped_column(nullable=False)
    cohort_id: Mapped[str | None] = mapped_column()
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[str] = mapped_column(nullable=False, default=utc_now_iso)


class Shifts(Base):
    __tablename__ = "shifts"

    id: Mapped[str] = mapped_column(primary_key=True, default=generate_uuid)
    title: Mapped[str | None] = mapped_column()
    department: Mapped[str | None] = mapped_column()
    date: Mapped[str] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(nullable=False, default="open")
    instructor_id: Mapped[str | None] = mapped_column()
    created_at: Mapped[str] = mapped_column(nullable=False, default=utc_now_iso)


class LabUsers(Base):
    __tablename__ = "lab_users"

    id: Mapped[str] = mapped_column(primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(nullable=False)
    email: Mapped[str] = mapped_column(nullable=False, unique=True)
    role: Mapped[str] = mapped_column(nullable=False, default="instructor")
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[str] = mapped_column(nullable=False, default=utc_now_iso)


class StudentInternships(Base):
    __tablename__ = "student_internships"

    id: Mapped[str] = mapped_column(primary_key=True, default=generate_uuid)
    student_id: Mapped[str] = mapped_column(nullable=False)
    cohort_id: Mapped[str | None] = mapped_column()
    agency: Mapped[str | None] = mapped_column()
    status: Mapped[str] = mapped_column(nullable=False, default="not_started")
    current_phase: Mapped[str | None] = mapped_column()
    created_at: Mapped[str] = mapped_column(nullable=False, default=utc_now_iso)


# ---------------------------------------------------------------------------
# Bulk operation history and compliance audit
# ---------------------------------------------------------------------------


class BulkOperationLogs(Base):
    """Append-only history of bulk operations and their rollbacks."""

    __tablename__ = "bulk_operation_logs"

    id: Mapped[str] = mapped_column(primary_key=True, default=generate_uuid)
    operation_type: Mapped[str] = mapped_column(nullable=False)
    target_table: Mapped[str] = mapped_column(nullable=False)
    affected_count: Mapped[int] = mapped_column(nullable=False, default=0)
    parameters: Mapped[str | None] = mapped_column()
    filters: Mapped[str | None] = mapped_column()
    changes: Mapped[str | None] = mapped_column()
    status: Mapped[str] = mapped_column(nullable=False, default="completed")
    rollback_data: Mapped[str | None] = mapped_column()
    performed_by: Mapped[str] = mapped_column(nullable=False)
    created_at: Mapped[str] = mapped_column(nullable=False, default=utc_now_iso)


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[str] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[str | None] = mapped_column()
    user_email: Mapped[str | None] = mapped_column()
    user_role: Mapped[str | None] = mapped_column()
    action: Mapped[str] = mapped_column(nullable=False)
    resource_type: Mapped[str] = mapped_column(nullable=False)
    resource_id: Mapped[str | None] = mapped_column()
    resource_description: Mapped[str | None] = mapped_column()
    ip_address: Mapped[str | None] = mapped_column()
    user_agent: Mapped[str | None] = mapped_column()
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[str | None] = mapped_column("metadata")
    created_at: Mapped[str] = mapped_column(nullable=False, default=utc_now_iso)
