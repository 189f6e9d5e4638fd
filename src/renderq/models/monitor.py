"""Pydantic models for the queue health snapshot."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from renderq.models.enums import JobStatus, JobType, MonitorScope


class StatusCounts(BaseModel):
    model_config = ConfigDict(extra="forbid")

    queued: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    completed_24h: int = 0


class StuckSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    count: int = 0
    threshold_seconds: dict[str, int] = Field(default_factory=dict)


class RecentTransition(BaseModel):
    model_config = ConfigDict(extra="forbid")

    job_id: str
    job_type: JobType
    status: JobStatus
    message: str
    attempts: int
    max_attempts: int
    at: datetime


class MonitorSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    scope: MonitorScope
    account_id: str | None = None
    now: datetime
    counts: StatusCounts
    backlog_seconds: int | None = None
    stuck: StuckSummary
    recent: list[RecentTransition] = Field(default_factory=list)
