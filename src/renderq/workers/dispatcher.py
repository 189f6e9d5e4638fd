"""Dispatcher tick: claim a small batch of queued jobs, render them, write back.

A tick holds no state between invocations and never holds a transaction
open across a renderer call:

1. claim: each candidate is claimed in its own short transaction by a
   compare-and-swap on ``status``; losing the race just skips the job.
2. render: outside any transaction, bounded by the job type's timeout.
3. write-back: one transaction conditional on ``status=running`` and the
   ``claimed_at`` stamp of our claim. If the reclaimer got there first the
   update matches nothing and the late result is dropped.

Overlapping ticks (cron, the embedded scheduler, a manual operator call)
are therefore safe. Errors while processing one job are contained to that
job; errors while claiming propagate to the caller.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from renderq.config import settings
from renderq.db.models.job import JobRow
from renderq.errors.exceptions import RenderError
from renderq.events.publisher import publish_transitions
from renderq.logging_config import bind_job_context, clear_job_context
from renderq.models.enums import EventLevel, JobStatus
from renderq.models.policies import policy_for
from renderq.repositories.job_event_repo import JobEventRepository
from renderq.repositories.job_repo import JobRepository
from renderq.repositories.order_repo import OrderRepository
from renderq.services.clock import utcnow
from renderq.services.order_status import refresh_order_status
from renderq.services.quota import ledger
from renderq.workers.registry import get_renderer
from renderq.workers.renderer import Renderer, RenderResult

logger = logging.getLogger(__name__)

# Write-back outcome -> TickReport counter
_REPORT_FIELDS = {
    JobStatus.COMPLETED.value: "completed",
    JobStatus.QUEUED.value: "retried",
    JobStatus.FAILED.value: "failed",
    JobStatus.CANCELLED.value: "discarded",
}

# Candidates read per claimed slot; extra ids absorb races with other ticks
_CANDIDATE_FACTOR = 4


@dataclass
class TickReport:
    claimed: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    discarded: int = 0
    lost: int = 0
    errors: int = 0
    job_ids: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class _Failure:
    message: str
    retryable: bool


def backoff_seconds(attempts: int) -> float:
    """Delay before the next attempt: base * 2**(attempts-1), capped."""
    base = settings.retry_backoff_base_seconds
    cap = settings.retry_backoff_cap_seconds
    return min(cap, base * 2 ** max(0, attempts - 1))


async def _claim_batch(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime,
    batch_size: int,
) -> list[JobRow]:
    async with session_factory() as session:
        candidates = await JobRepository(session).list_claim_candidates(now, batch_size * _CANDIDATE_FACTOR)

    claimed: list[JobRow] = []
    for job_id in candidates:
        if len(claimed) >= batch_size:
            break
        async with session_factory() as session:
            repo = JobRepository(session)
            if not await repo.try_claim(job_id, now):
                await session.rollback()
                continue
            job = await repo.refresh(job_id)
            await JobEventRepository(session).append(
                job_id,
                job.account_id,
                JobStatus.RUNNING.value,
                f"Attempt {job.attempts}/{job.max_attempts} started",
                at=now,
            )
            await session.commit()
            claimed.append(job)
    return claimed


async def _render(renderer: Renderer | None, job: JobRow) -> RenderResult | _Failure:
    if renderer is None:
        return _Failure(f"No renderer registered for job type '{job.job_type}'", retryable=False)

    timeout = policy_for(job.job_type).timeout_seconds
    try:
        return await asyncio.wait_for(renderer.render(job.job_type, job.payload), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Renderer timed out after %ds", timeout)
        return _Failure(f"Renderer timed out after {timeout}s", retryable=True)
    except RenderError as exc:
        logger.warning("Renderer error (retryable=%s): %s", exc.retryable, exc)
        return _Failure(str(exc), retryable=exc.retryable)
    except Exception as exc:
        logger.exception("Renderer raised unexpectedly")
        return _Failure(f"{type(exc).__name__}: {exc}", retryable=True)


async def _write_success(
    session: AsyncSession, job: JobRow, stamp: datetime, result: RenderResult, at: datetime
) -> str | None:
    repo = JobRepository(session)
    events = JobEventRepository(session)

    if job.order_id and await OrderRepository(session).is_cancelled(job.order_id):
        if not await repo.discard(job.job_id, stamp, at):
            return None
        await events.append(
            job.job_id, job.account_id, JobStatus.CANCELLED.value, "Order cancelled; result discarded",
            level=EventLevel.WARNING.value, at=at,
        )
        logger.info("Discarded result of job in cancelled order")
        return JobStatus.CANCELLED.value

    if not await repo.complete(job.job_id, stamp, result.to_dict(), at):
        return None
    await ledger.debit(
        session,
        job.account_id,
        job.job_id,
        job.cost_units,
        asset_kind=job.asset_kind,
        quantity=job.asset_quantity,
        now=at,
    )
    await events.append(job.job_id, job.account_id, JobStatus.COMPLETED.value, "Asset rendered", at=at)
    logger.info("Job completed (attempt %d/%d)", job.attempts, job.max_attempts)

    thresholds = await ledger.threshold_reached(session, job.account_id, at)
    if thresholds.units or thresholds.images or thresholds.video:
        logger.warning("Quota alert threshold reached: %s", thresholds.model_dump())
    return JobStatus.COMPLETED.value


async def _write_failure(
    session: AsyncSession, job: JobRow, stamp: datetime, failure: _Failure, at: datetime
) -> str | None:
    repo = JobRepository(session)
    events = JobEventRepository(session)

    if job.order_id and await OrderRepository(session).is_cancelled(job.order_id):
        if not await repo.discard(job.job_id, stamp, at):
            return None
        await events.append(
            job.job_id, job.account_id, JobStatus.CANCELLED.value, "Order cancelled after failed attempt",
            level=EventLevel.WARNING.value, at=at,
        )
        return JobStatus.CANCELLED.value

    if failure.retryable and job.attempts < job.max_attempts:
        delay = backoff_seconds(job.attempts)
        if not await repo.requeue(
            job.job_id, stamp, failure.message, at, scheduled_for=at + timedelta(seconds=delay)
        ):
            return None
        await events.append(
            job.job_id,
            job.account_id,
            JobStatus.QUEUED.value,
            f"Attempt {job.attempts}/{job.max_attempts} failed: {failure.message}; retry in {delay:g}s",
            level=EventLevel.WARNING.value,
            at=at,
        )
        logger.info("Job requeued for retry in %gs", delay)
        return JobStatus.QUEUED.value

    if not await repo.fail(job.job_id, stamp, failure.message, at):
        return None
    await events.append(
        job.job_id,
        job.account_id,
        JobStatus.FAILED.value,
        f"Failed after {job.attempts}/{job.max_attempts} attempts: {failure.message}",
        level=EventLevel.ERROR.value,
        at=at,
    )
    logger.warning("Job failed permanently: %s", failure.message)
    return JobStatus.FAILED.value


async def _process(
    session_factory: async_sessionmaker[AsyncSession],
    job: JobRow,
    renderer: Renderer | None,
    clock: Callable[[], datetime],
    report: TickReport,
) -> dict | None:
    stamp = job.claimed_at
    outcome = await _render(renderer, job)
    at = clock()

    async with session_factory() as session:
        if isinstance(outcome, RenderResult):
            status = await _write_success(session, job, stamp, outcome, at)
        else:
            status = await _write_failure(session, job, stamp, outcome, at)

        if status is None:
            await session.rollback()
            report.lost += 1
            logger.warning("Claim lost before write-back; result dropped")
            return None

        if job.order_id:
            await refresh_order_status(session, job.order_id, at)
        await session.commit()

    counter = _REPORT_FIELDS[status]
    setattr(report, counter, getattr(report, counter) + 1)
    return {
        "job_id": job.job_id,
        "order_id": job.order_id,
        "account_id": job.account_id,
        "status": status,
        "attempts": job.attempts,
    }


async def run_dispatch_tick(
    session_factory: async_sessionmaker[AsyncSession],
    registry: Mapping[str, Renderer] | None = None,
    *,
    batch_size: int | None = None,
    now: datetime | None = None,
    redis=None,
) -> TickReport:
    """Run one dispatcher tick and return what happened.

    ``now`` pins the clock for the whole tick; by default the claim uses the
    tick start and each write-back the current time.
    """
    batch_size = batch_size or settings.dispatch_batch_size

    def clock() -> datetime:
        return now or utcnow()

    resolve = registry.get if registry is not None else get_renderer
    report = TickReport()

    claimed = await _claim_batch(session_factory, clock(), batch_size)
    report.claimed = len(claimed)

    for job in claimed:
        report.job_ids.append(job.job_id)
        bind_job_context(job.job_id, job.order_id, job.account_id)
        try:
            transition = await _process(session_factory, job, resolve(job.job_type), clock, report)
        except Exception:
            # Left running; the reclaimer recovers it
            report.errors += 1
            logger.exception("Write-back failed")
            continue
        finally:
            clear_job_context()
        if transition:
            await publish_transitions(redis, [transition])

    if report.claimed:
        logger.info(
            "Dispatch tick: claimed=%d completed=%d retried=%d failed=%d discarded=%d lost=%d errors=%d",
            report.claimed, report.completed, report.retried, report.failed,
            report.discarded, report.lost, report.errors,
        )
    return report
