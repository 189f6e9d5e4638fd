"""SQLAlchemy ORM models - import all to register with Base.metadata."""

from renderq.db.models.order import OrderRow
from renderq.db.models.job import JobRow
from renderq.db.models.job_event import JobEventRow
from renderq.db.models.quota import QuotaBalanceRow, QuotaDebitRow

__all__ = [
    "OrderRow",
    "JobRow",
    "JobEventRow",
    "QuotaBalanceRow",
    "QuotaDebitRow",
]
