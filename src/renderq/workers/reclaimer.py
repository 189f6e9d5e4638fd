"""Stuck-job reclaimer.

A job is stuck when it has been ``running`` longer than its type's timeout
plus a grace period, which only happens if the dispatcher that claimed it
died or lost its write-back. Each stuck job is moved in its own transaction,
conditional on the exact claim it was found with, so a worker that finishes
at the same moment either wins cleanly or finds its claim gone.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from renderq.config import settings
from renderq.db.models.job import JobRow
from renderq.events.publisher import publish_transitions
from renderq.models.enums import EventLevel, JobStatus
from renderq.models.policies import stuck_threshold_seconds
from renderq.repositories.job_event_repo import JobEventRepository
from renderq.repositories.job_repo import JobRepository
from renderq.repositories.order_repo import OrderRepository
from renderq.services.clock import utcnow
from renderq.services.order_status import refresh_order_status

logger = logging.getLogger(__name__)


@dataclass
class ReclaimReport:
    examined: int = 0
    requeued: int = 0
    failed: int = 0
    discarded: int = 0
    lost: int = 0
    errors: int = 0
    job_ids: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)


async def _reclaim_one(session: AsyncSession, job: JobRow, now: datetime, grace: int) -> str | None:
    repo = JobRepository(session)
    events = JobEventRepository(session)
    stamp = job.claimed_at
    threshold = stuck_threshold_seconds(job.job_type, grace)
    message = f"Timed out: no result within {threshold}s of claim"

    if job.order_id and await OrderRepository(session).is_cancelled(job.order_id):
        if not await repo.discard(job.job_id, stamp, now):
            return None
        status, level = JobStatus.CANCELLED, EventLevel.WARNING
    elif job.attempts < job.max_attempts:
        if not await repo.requeue(job.job_id, stamp, message, now):
            return None
        status, level = JobStatus.QUEUED, EventLevel.WARNING
        message = f"{message}; requeued after attempt {job.attempts}/{job.max_attempts}"
    else:
        if not await repo.fail(job.job_id, stamp, message, now):
            return None
        status, level = JobStatus.FAILED, EventLevel.ERROR

    await events.append(job.job_id, job.account_id, status.value, message, level=level.value, at=now)
    if job.order_id:
        await refresh_order_status(session, job.order_id, now)
    return status.value


async def run_reclaim_tick(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    now: datetime | None = None,
    redis=None,
    grace_seconds: int | None = None,
    limit: int = 200,
) -> ReclaimReport:
    """Return stuck running jobs to the queue, or fail them when out of attempts."""
    now = now or utcnow()
    grace = settings.reclaim_grace_seconds if grace_seconds is None else grace_seconds
    report = ReclaimReport()

    async with session_factory() as session:
        stuck = await JobRepository(session).list_stuck(now, grace, limit=limit)
    report.examined = len(stuck)

    transitions = []
    for job in stuck:
        try:
            async with session_factory() as session:
                status = await _reclaim_one(session, job, now, grace)
                if status is None:
                    await session.rollback()
                    report.lost += 1
                    continue
                await session.commit()
        except Exception:
            report.errors += 1
            logger.exception("Failed to reclaim job %s", job.job_id)
            continue

        report.job_ids.append(job.job_id)
        if status == JobStatus.QUEUED.value:
            report.requeued += 1
        elif status == JobStatus.FAILED.value:
            report.failed += 1
        else:
            report.discarded += 1
        logger.warning("Reclaimed stuck job %s -> %s (attempts=%d)", job.job_id, status, job.attempts)
        transitions.append(
            {
                "job_id": job.job_id,
                "order_id": job.order_id,
                "account_id": job.account_id,
                "status": status,
                "attempts": job.attempts,
            }
        )

    await publish_transitions(redis, transitions)
    if report.examined:
        logger.info(
            "Reclaim tick: examined=%d requeued=%d failed=%d discarded=%d lost=%d errors=%d",
            report.examined, report.requeued, report.failed, report.discarded, report.lost, report.errors,
        )
    return report
