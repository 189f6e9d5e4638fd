"""Job repository: the durable queue and its conditional state transitions.

Every transition out of ``queued`` or ``running`` is a single conditional
UPDATE whose WHERE clause restates the state the caller believes the row is
in; callers check the affected-row count to learn whether they won.
"""

from datetime import datetime, timedelta

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from renderq.db.models.job import JobRow
from renderq.models.enums import JobStatus
from renderq.models.policies import JOB_TYPE_POLICIES
from renderq.repositories.base import BaseRepository


def _stuck_clause(now: datetime, grace_seconds: int):
    """Running jobs whose claim is older than their type's timeout plus grace."""
    per_type = [
        and_(
            JobRow.job_type == job_type.value,
            JobRow.claimed_at < now - timedelta(seconds=policy.timeout_seconds + grace_seconds),
        )
        for job_type, policy in JOB_TYPE_POLICIES.items()
    ]
    return and_(JobRow.status == JobStatus.RUNNING.value, or_(*per_type))


class JobRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, JobRow)

    async def get(self, job_id: str) -> JobRow | None:
        return await self.get_by_id("job_id", job_id)

    async def refresh(self, job_id: str) -> JobRow | None:
        """Re-read a job, bypassing the identity map."""
        stmt = select(JobRow).where(JobRow.job_id == job_id).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_many(self, rows: list[JobRow]) -> None:
        self.session.add_all(rows)
        await self.session.flush()

    async def list_by_order(self, order_id: str) -> list[JobRow]:
        stmt = (
            select(JobRow)
            .where(JobRow.order_id == order_id)
            .order_by(JobRow.position, JobRow.job_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def statuses_for_order(self, order_id: str) -> list[str]:
        stmt = select(JobRow.status).where(JobRow.order_id == order_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Claim
    # ------------------------------------------------------------------

    async def list_claim_candidates(self, now: datetime, limit: int) -> list[str]:
        """Oldest eligible queued job ids. Reading them grants nothing."""
        stmt = (
            select(JobRow.job_id)
            .where(
                JobRow.status == JobStatus.QUEUED.value,
                or_(JobRow.scheduled_for.is_(None), JobRow.scheduled_for <= now),
                JobRow.attempts < JobRow.max_attempts,
            )
            .order_by(JobRow.created_at, JobRow.job_id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def try_claim(self, job_id: str, now: datetime) -> bool:
        """Compare-and-swap queued -> running; counts the attempt."""
        stmt = (
            update(JobRow)
            .where(
                JobRow.job_id == job_id,
                JobRow.status == JobStatus.QUEUED.value,
                JobRow.attempts < JobRow.max_attempts,
            )
            .values(
                status=JobStatus.RUNNING.value,
                claimed_at=now,
                attempts=JobRow.attempts + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Write-back (all conditional on the claim still being ours)
    # ------------------------------------------------------------------

    async def _transition_claimed(self, job_id: str, stamp: datetime, **values) -> bool:
        stmt = (
            update(JobRow)
            .where(
                JobRow.job_id == job_id,
                JobRow.status == JobStatus.RUNNING.value,
                JobRow.claimed_at == stamp,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def complete(self, job_id: str, stamp: datetime, result: dict, now: datetime) -> bool:
        return await self._transition_claimed(
            job_id,
            stamp,
            status=JobStatus.COMPLETED.value,
            result=result,
            error=None,
            finished_at=now,
            updated_at=now,
        )

    async def requeue(
        self,
        job_id: str,
        stamp: datetime,
        error: str,
        now: datetime,
        scheduled_for: datetime | None = None,
    ) -> bool:
        return await self._transition_claimed(
            job_id,
            stamp,
            status=JobStatus.QUEUED.value,
            claimed_at=None,
            error=error,
            scheduled_for=scheduled_for,
            updated_at=now,
        )

    async def fail(self, job_id: str, stamp: datetime, error: str, now: datetime) -> bool:
        return await self._transition_claimed(
            job_id,
            stamp,
            status=JobStatus.FAILED.value,
            error=error,
            finished_at=now,
            updated_at=now,
        )

    async def discard(self, job_id: str, stamp: datetime, now: datetime) -> bool:
        """Finish a claimed job as cancelled, dropping its result."""
        return await self._transition_claimed(
            job_id,
            stamp,
            status=JobStatus.CANCELLED.value,
            error="Order cancelled; result discarded",
            finished_at=now,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def list_queued_ids_for_order(self, order_id: str) -> list[str]:
        stmt = select(JobRow.job_id).where(
            JobRow.order_id == order_id,
            JobRow.status == JobStatus.QUEUED.value,
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def cancel_queued(self, job_id: str, now: datetime) -> bool:
        stmt = (
            update(JobRow)
            .where(JobRow.job_id == job_id, JobRow.status == JobStatus.QUEUED.value)
            .values(
                status=JobStatus.CANCELLED.value,
                error="Cancelled by user",
                finished_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Stuck detection
    # ------------------------------------------------------------------

    async def list_stuck(self, now: datetime, grace_seconds: int, limit: int = 200) -> list[JobRow]:
        stmt = (
            select(JobRow)
            .where(_stuck_clause(now, grace_seconds))
            .order_by(JobRow.claimed_at)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Read-side aggregates
    # ------------------------------------------------------------------

    async def count_by_status(self, account_id: str | None = None) -> dict[str, int]:
        stmt = select(JobRow.status, func.count()).group_by(JobRow.status)
        if account_id:
            stmt = stmt.where(JobRow.account_id == account_id)
        result = await self.session.execute(stmt)
        return {row[0]: row[1] for row in result.all()}

    async def count_completed_since(self, since: datetime, account_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(JobRow).where(
            JobRow.status == JobStatus.COMPLETED.value,
            JobRow.finished_at >= since,
        )
        if account_id:
            stmt = stmt.where(JobRow.account_id == account_id)
        return (await self.session.execute(stmt)).scalar() or 0

    async def oldest_queued_created_at(self, account_id: str | None = None) -> datetime | None:
        stmt = select(func.min(JobRow.created_at)).where(JobRow.status == JobStatus.QUEUED.value)
        if account_id:
            stmt = stmt.where(JobRow.account_id == account_id)
        return (await self.session.execute(stmt)).scalar()

    async def count_stuck(self, now: datetime, grace_seconds: int, account_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(JobRow).where(_stuck_clause(now, grace_seconds))
        if account_id:
            stmt = stmt.where(JobRow.account_id == account_id)
        return (await self.session.execute(stmt)).scalar() or 0
