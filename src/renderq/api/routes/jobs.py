"""Job status polling endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from renderq.db.models.job import JobRow
from renderq.dependencies import OPERATOR_ROLES, get_current_user, get_db, has_role
from renderq.errors.exceptions import NotFoundError
from renderq.models.job import JobEventView, JobView
from renderq.repositories.job_event_repo import JobEventRepository
from renderq.repositories.job_repo import JobRepository

router = APIRouter(tags=["Jobs"])


async def _visible_job(job_id: str, db: AsyncSession, user: dict) -> JobRow:
    row = await JobRepository(db).get(job_id)
    if not row or (row.account_id != user["sub"] and not has_role(user, *OPERATOR_ROLES)):
        raise NotFoundError("Job", job_id)
    return row


@router.get("/jobs/{job_id}")
async def get_job_status(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
) -> dict:
    row = await _visible_job(job_id, db, user)
    return JobView.model_validate(row).model_dump(mode="json")


@router.get("/jobs/{job_id}/events")
async def get_job_events(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
) -> list[dict]:
    await _visible_job(job_id, db, user)
    rows = await JobEventRepository(db).list_by_job(job_id)
    return [JobEventView.model_validate(row).model_dump(mode="json") for row in rows]
