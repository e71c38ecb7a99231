"""
User model for authentication and permissions.

Users are managed by the identity service; this API only reads them.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.database import Base

if TYPE_CHECKING:
    from models.result import Result


ROLE_USER = "ROLE_USER"
ROLE_ADMIN = "ROLE_ADMIN"


class User(Base):
    """User model representing authenticated users."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    roles: Mapped[list[str]] = mapped_column(
        JSONB, nullable=False, default=list
    )  # e.g. ['ROLE_USER'] or ['ROLE_USER', 'ROLE_ADMIN']
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=True
    )

    # Relationships
    results: Mapped[list["Result"]] = relationship("Result", back_populates="user")

    def has_role(self, role: str) -> bool:
        return role in (self.roles or [])

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "email": self.email,
            "roles": list(self.roles or []),
        }
