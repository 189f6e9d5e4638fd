"""Quota balance and idempotent debit tables."""

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from renderq.db.base import Base, TimestampMixin
from renderq.services.clock import utcnow


class QuotaBalanceRow(Base, TimestampMixin):
    __tablename__ = "quota_balances"

    account_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    period_start: Mapped[date] = mapped_column(Date, primary_key=True)
    total_units: Mapped[int] = mapped_column(Integer, nullable=False)
    consumed_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Null allotment means unlimited
    images_quota: Mapped[int | None] = mapped_column(Integer, nullable=True)
    images_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    videos_quota: Mapped[int | None] = mapped_column(Integer, nullable=True)
    videos_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class QuotaDebitRow(Base):
    __tablename__ = "quota_debits"

    job_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    account_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    units: Mapped[int] = mapped_column(Integer, nullable=False)
    asset_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
