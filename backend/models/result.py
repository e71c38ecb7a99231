"""
Result model - a numeric measurement owned by a single user.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from config import format_timestamp
from models.database import Base

if TYPE_CHECKING:
    from models.user import User


class Result(Base):
    """Result model representing one recorded measurement."""

    __tablename__ = "results"
    __table_args__ = (
        Index("idx_results_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    result: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
    )
    time: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User", back_populates="results", lazy="joined", innerjoin=True
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "result": self.result,
            "user": self.user.to_dict() if self.user is not None else None,
            "time": format_timestamp(self.time),
        }
