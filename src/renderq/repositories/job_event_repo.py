"""Job event (audit trail) repository. Insert-only."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from renderq.db.models.job import JobRow
from renderq.db.models.job_event import JobEventRow
from renderq.repositories.base import BaseRepository
from renderq.services.id_generator import generate_id


class JobEventRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, JobEventRow)

    async def append(
        self,
        job_id: str,
        account_id: str,
        status: str,
        message: str,
        level: str = "info",
        at: datetime | None = None,
    ) -> JobEventRow:
        values = dict(
            event_id=generate_id("evt_"),
            job_id=job_id,
            account_id=account_id,
            level=level,
            status=status,
            message=message,
        )
        if at is not None:
            values["created_at"] = at
        return await self.create(**values)

    async def list_by_job(self, job_id: str) -> list[JobEventRow]:
        stmt = (
            select(JobEventRow)
            .where(JobEventRow.job_id == job_id)
            .order_by(JobEventRow.created_at, JobEventRow.event_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_recent(
        self, account_id: str | None = None, limit: int = 15
    ) -> list[tuple[JobEventRow, JobRow]]:
        """Latest transitions with the job they belong to."""
        stmt = (
            select(JobEventRow, JobRow)
            .join(JobRow, JobRow.job_id == JobEventRow.job_id)
            .order_by(JobEventRow.created_at.desc())
            .limit(limit)
        )
        if account_id:
            stmt = stmt.where(JobEventRow.account_id == account_id)
        result = await self.session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]
