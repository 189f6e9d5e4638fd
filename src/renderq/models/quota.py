"""Pydantic models for quota ledger results."""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field


class QuotaDecision(BaseModel):
    """Outcome of a read-only authorization check."""

    model_config = ConfigDict(extra="forbid")

    allowed: bool
    remaining: int
    required: int
    consumed: int
    total: int
    hard_limit: int


class QuotaThresholds(BaseModel):
    """Advisory flags: consumption crossed the alert fraction of an allotment."""

    model_config = ConfigDict(extra="forbid")

    units: bool = False
    images: bool = False
    video: bool = False


class QuotaBalanceView(BaseModel):
    model_config = ConfigDict(extra="forbid")

    account_id: str
    period_start: date
    total_units: int
    consumed_units: int
    remaining_units: int
    images_quota: int | None = None
    images_used: int
    videos_quota: int | None = None
    videos_used: int
    thresholds: QuotaThresholds


class CreditRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    units: int = Field(..., gt=0, le=1_000_000)
