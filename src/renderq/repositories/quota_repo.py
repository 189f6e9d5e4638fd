"""Quota balance and debit repositories."""

from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from renderq.db.models.quota import QuotaBalanceRow, QuotaDebitRow
from renderq.repositories.base import BaseRepository


class QuotaBalanceRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, QuotaBalanceRow)

    async def get(self, account_id: str, period: date) -> QuotaBalanceRow | None:
        stmt = (
            select(QuotaBalanceRow)
            .where(
                QuotaBalanceRow.account_id == account_id,
                QuotaBalanceRow.period_start == period,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_latest_before(self, account_id: str, period: date) -> QuotaBalanceRow | None:
        stmt = (
            select(QuotaBalanceRow)
            .where(
                QuotaBalanceRow.account_id == account_id,
                QuotaBalanceRow.period_start < period,
            )
            .order_by(QuotaBalanceRow.period_start.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def increment_consumed(
        self,
        account_id: str,
        period: date,
        units: int,
        images: int = 0,
        videos: int = 0,
        now: datetime | None = None,
    ) -> bool:
        """Atomic in-place increment; never read-modify-write."""
        values = {
            "consumed_units": QuotaBalanceRow.consumed_units + units,
            "images_used": QuotaBalanceRow.images_used + images,
            "videos_used": QuotaBalanceRow.videos_used + videos,
        }
        if now is not None:
            values["updated_at"] = now
        stmt = (
            update(QuotaBalanceRow)
            .where(
                QuotaBalanceRow.account_id == account_id,
                QuotaBalanceRow.period_start == period,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def add_total(self, account_id: str, period: date, units: int) -> bool:
        stmt = (
            update(QuotaBalanceRow)
            .where(
                QuotaBalanceRow.account_id == account_id,
                QuotaBalanceRow.period_start == period,
            )
            .values(total_units=QuotaBalanceRow.total_units + units)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1


class QuotaDebitRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, QuotaDebitRow)

    async def get(self, job_id: str) -> QuotaDebitRow | None:
        return await self.get_by_id("job_id", job_id)

    async def record(self, **values) -> bool:
        """Insert the debit keyed by job_id; False when it already exists."""
        return await self.insert_ignore(["job_id"], **values)

    async def list_by_account(self, account_id: str, period: date) -> list[QuotaDebitRow]:
        stmt = select(QuotaDebitRow).where(
            QuotaDebitRow.account_id == account_id,
            QuotaDebitRow.period_start == period,
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
