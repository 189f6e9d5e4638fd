"""Order repository."""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from renderq.db.models.order import OrderRow
from renderq.repositories.base import BaseRepository


class OrderRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, OrderRow)

    async def get(self, order_id: str) -> OrderRow | None:
        stmt = select(OrderRow).where(OrderRow.order_id == order_id).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_idempotency_key(self, account_id: str, key: str) -> OrderRow | None:
        stmt = select(OrderRow).where(
            OrderRow.account_id == account_id,
            OrderRow.idempotency_key == key,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_account(self, account_id: str, limit: int = 50) -> list[OrderRow]:
        stmt = (
            select(OrderRow)
            .where(OrderRow.account_id == account_id)
            .order_by(OrderRow.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def set_status(self, order_id: str, status: str, now: datetime) -> None:
        stmt = (
            update(OrderRow)
            .where(OrderRow.order_id == order_id)
            .values(status=status, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def mark_cancelled(self, order_id: str, now: datetime) -> bool:
        stmt = (
            update(OrderRow)
            .where(OrderRow.order_id == order_id, OrderRow.cancelled_at.is_(None))
            .values(cancelled_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def is_cancelled(self, order_id: str) -> bool:
        stmt = select(OrderRow.cancelled_at).where(OrderRow.order_id == order_id)
        return (await self.session.execute(stmt)).scalar() is not None
