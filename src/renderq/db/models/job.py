"""Job table."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from renderq.db.base import Base, TimestampMixin


class JobRow(Base, TimestampMixin):
    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_claim", "status", "scheduled_for", "created_at"),
        Index("ix_jobs_account_status", "account_id", "status"),
    )

    job_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    order_id: Mapped[str | None] = mapped_column(
        String(128), ForeignKey("orders.order_id"), nullable=True, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    account_id: Mapped[str] = mapped_column(String(128), nullable=False)
    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(256), nullable=True, unique=True)
    asset_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    asset_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    cost_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
