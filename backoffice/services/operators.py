"""Resolving the staff member behind a request."""

from dataclasses import dataclass

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from db.enums import can_access_admin
from db.models import LabUsers


@dataclass(frozen=True, slots=True)
class Operator:
    """Authenticated staff identity as seen by the audit trail."""

    id: str | None
    email: str
    role: str
    name: str = ""

    @property
    def is_admin(self) -> bool:
        return can_access_admin(self.role)


def find_operator(session: Session, email: str) -> Operator | None:
    """Active lab user with this email (case-insensitive), or None."""
    stmt: Select[tuple[LabUsers]] = select(LabUsers).where(
        func.lower(LabUsers.email) == email.strip().lower(),
        LabUsers.is_active.is_(True),
    )
    user: LabUsers | None = session.scalars(stmt).first()
    if user is None:
        return None
    return Operator(id=user.id, email=user.email, role=user.role, name=user.name)
