"""Queue health snapshot. Read-only."""

from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from renderq.config import settings
from renderq.models.enums import JobType, MonitorScope
from renderq.models.monitor import MonitorSnapshot, RecentTransition, StatusCounts, StuckSummary
from renderq.models.policies import stuck_threshold_seconds
from renderq.repositories.job_event_repo import JobEventRepository
from renderq.repositories.job_repo import JobRepository
from renderq.services.clock import as_utc, utcnow

RECENT_LIMIT = 15


async def snapshot(
    session: AsyncSession,
    account_id: str | None = None,
    now: datetime | None = None,
) -> MonitorSnapshot:
    """Counts, backlog age, stuck jobs and recent transitions.

    ``account_id=None`` gives the global view.
    """
    now = now or utcnow()
    grace = settings.reclaim_grace_seconds
    jobs = JobRepository(session)

    by_status = await jobs.count_by_status(account_id)
    counts = StatusCounts(
        **{status: by_status.get(status, 0) for status in ("queued", "running", "completed", "failed", "cancelled")},
        completed_24h=await jobs.count_completed_since(now - timedelta(hours=24), account_id),
    )

    oldest = as_utc(await jobs.oldest_queued_created_at(account_id))
    backlog = max(0, int((now - oldest).total_seconds())) if oldest else None

    stuck = StuckSummary(
        count=await jobs.count_stuck(now, grace, account_id),
        threshold_seconds={t.value: stuck_threshold_seconds(t, grace) for t in JobType},
    )

    recent = [
        RecentTransition(
            job_id=job.job_id,
            job_type=job.job_type,
            status=event.status,
            message=event.message,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            at=as_utc(event.created_at),
        )
        for event, job in await JobEventRepository(session).list_recent(account_id, limit=RECENT_LIMIT)
    ]

    return MonitorSnapshot(
        scope=MonitorScope.ACCOUNT if account_id else MonitorScope.GLOBAL,
        account_id=account_id,
        now=now,
        counts=counts,
        backlog_seconds=backlog,
        stuck=stuck,
        recent=recent,
    )
