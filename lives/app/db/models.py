from datetime import date, datetime
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from lives.app.db.base import Base


def _new_id() -> str:
    return str(uuid4())


class QuotaRecord(Base):
    """Per-user, per-day lives counter.

    One row is created the first time a user is touched on a calendar day
    that has no row yet. The current row for a user is the one with the
    latest last_reset_date; older rows are kept as history.
    """

    __tablename__ = "daily_lives"
    __table_args__ = (
        UniqueConstraint("user_id", "last_reset_date", name="uq_daily_lives_user_date"),
        CheckConstraint("units_remaining >= 0", name="ck_daily_lives_units_non_negative"),
        Index("idx_daily_lives_user", "user_id"),
        Index("idx_daily_lives_user_date", "user_id", "last_reset_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    units_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    last_reset_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<QuotaRecord(user_id={self.user_id!r}, units={self.units_remaining}, "
            f"date={self.last_reset_date})>"
        )

    @property
    def has_units_available(self) -> bool:
        return self.units_remaining > 0
