"""Pydantic models for job and order views."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from renderq.models.enums import EventLevel, JobStatus, JobType, OrderStatus


class JobView(BaseModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)

    job_id: str
    order_id: str | None = None
    account_id: str
    job_type: JobType
    status: JobStatus
    attempts: int
    max_attempts: int
    cost_units: int
    scheduled_for: datetime | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime
    finished_at: datetime | None = None


class JobEventView(BaseModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)

    event_id: str
    job_id: str
    level: EventLevel
    status: JobStatus
    message: str
    created_at: datetime


class OrderView(BaseModel):
    """Order with its child jobs; partial success stays visible per job."""

    model_config = ConfigDict(extra="forbid")

    order_id: str
    account_id: str
    status: OrderStatus
    required_units: int
    total_jobs: int
    completed_jobs: int
    failed_jobs: int
    cancelled_at: datetime | None = None
    created_at: datetime
    jobs: list[JobView] = Field(default_factory=list)


class EnqueueResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    order_id: str
    job_ids: list[str]
    required_units: int
    deduplicated: bool = False


class CancelResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    order_id: str
    status: OrderStatus
    cancelled_jobs: int
