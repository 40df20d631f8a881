"""
Profile model — one per account; carries the role used for authorization.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String

from app.db.base import Base

ROLE_ADMIN = "admin"
ROLE_COLLABORATOR = "collaborator"
ROLE_MEMBER = "member"
ROLES = (ROLE_ADMIN, ROLE_COLLABORATOR, ROLE_MEMBER)


class Profile(Base):
    __tablename__ = "profiles"

    # Same value as accounts.id
    id: str = Column(String(36), primary_key=True)  # type: ignore[assignment]
    email: str | None = Column(String(320), nullable=True, index=True)  # type: ignore[assignment]
    full_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    phone: str | None = Column(String(30), nullable=True)  # type: ignore[assignment]
    designation: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    role: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default=ROLE_MEMBER,
        server_default=ROLE_MEMBER,
    )  # admin | collaborator | member
    present: bool = Column(Boolean, default=False, server_default="false")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or "Unknown"
