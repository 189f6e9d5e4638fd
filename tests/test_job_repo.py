"""Tests for the job store's conditional transitions."""

from datetime import timedelta

import pytest

from conftest import NOW
from renderq.models.enums import JobStatus
from renderq.repositories.job_repo import JobRepository


async def _first_job_id(enqueue) -> list[str]:
    result = await enqueue()
    return result.job_ids[:1]


@pytest.mark.asyncio
async def test_claim_is_exclusive(session_factory, enqueue):
    [job_id] = await _first_job_id(enqueue)

    async with session_factory() as session:
        assert await JobRepository(session).try_claim(job_id, NOW) is True
        await session.commit()
    async with session_factory() as session:
        assert await JobRepository(session).try_claim(job_id, NOW) is False
        job = await JobRepository(session).get(job_id)
    assert job.status == JobStatus.RUNNING.value
    assert job.attempts == 1


@pytest.mark.asyncio
async def test_candidates_respect_schedule_and_attempts(session_factory, enqueue):
    result = await enqueue()
    job_id = result.job_ids[0]

    async with session_factory() as session:
        repo = JobRepository(session)
        await repo.try_claim(job_id, NOW)
        await repo.requeue(job_id, NOW, "boom", NOW, scheduled_for=NOW + timedelta(seconds=30))
        await session.commit()

    async with session_factory() as session:
        repo = JobRepository(session)
        assert await repo.list_claim_candidates(NOW + timedelta(seconds=10), 10) == []
        assert await repo.list_claim_candidates(NOW + timedelta(seconds=30), 10) == [job_id]


@pytest.mark.asyncio
async def test_write_back_requires_matching_claim(session_factory, enqueue):
    [job_id] = await _first_job_id(enqueue)
    first_claim = NOW
    second_claim = NOW + timedelta(minutes=5)

    async with session_factory() as session:
        repo = JobRepository(session)
        await repo.try_claim(job_id, first_claim)
        # Reclaimed and claimed again by someone else
        assert await repo.requeue(job_id, first_claim, "stuck", second_claim)
        assert await repo.try_claim(job_id, second_claim)
        await session.commit()

    async with session_factory() as session:
        repo = JobRepository(session)
        assert await repo.complete(job_id, first_claim, {"asset_url": "late"}, second_claim) is False
        assert await repo.complete(job_id, second_claim, {"asset_url": "ok"}, second_claim) is True
        await session.commit()

    async with session_factory() as session:
        job = await JobRepository(session).get(job_id)
    assert job.status == JobStatus.COMPLETED.value
    assert job.result == {"asset_url": "ok"}
    assert job.attempts == 2


@pytest.mark.asyncio
async def test_exhausted_job_is_not_claimable(session_factory, enqueue):
    [job_id] = await _first_job_id(enqueue)
    async with session_factory() as session:
        repo = JobRepository(session)
        for _ in range(3):
            assert await repo.try_claim(job_id, NOW)
            await repo.requeue(job_id, NOW, "boom", NOW)
        assert await repo.try_claim(job_id, NOW) is False
        assert await repo.list_claim_candidates(NOW, 10) == []
        await session.commit()


@pytest.mark.asyncio
async def test_cancel_queued_only_touches_queued(session_factory, enqueue):
    result = await enqueue()
    job_id = result.job_ids[0]
    async with session_factory() as session:
        repo = JobRepository(session)
        await repo.try_claim(job_id, NOW)
        assert await repo.cancel_queued(job_id, NOW) is False
        await session.commit()


@pytest.mark.asyncio
async def test_requeue_releases_claim(session_factory, enqueue):
    [job_id] = await _first_job_id(enqueue)

    async with session_factory() as session:
        repo = JobRepository(session)
        assert await repo.try_claim(job_id, NOW)
        assert await repo.requeue(job_id, NOW, "upstream 503", NOW) is True
        await session.commit()

    async with session_factory() as session:
        job = await JobRepository(session).get(job_id)
    assert job.status == JobStatus.QUEUED.value
    assert job.claimed_at is None
    assert job.error == "upstream 503"
    assert job.attempts == 1
