"""Order table: the user-visible grouping of sibling jobs."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from renderq.db.base import Base, TimestampMixin


class OrderRow(Base, TimestampMixin):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("account_id", "idempotency_key", name="uq_orders_account_idempotency"),
    )

    order_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    account_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    brief: Mapped[dict] = mapped_column(JSON, nullable=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    required_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Cached aggregate, refreshed in the same transaction as child writes
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
