"""Quota ledger: authorize, debit and report a prepaid per-account budget.

Balances are kept per calendar month. A period row is created lazily the
first time it is written to, carrying over the previous period's allotments
with counters reset to zero. ``authorize`` and ``threshold_reached`` never
write; over-quota is an ordinary ``allowed=False`` decision.

Debits are keyed by job id: the debit row insert and the balance increment
run in the caller's transaction, and the increment only happens when the
insert actually wrote a row, so replays are harmless.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from renderq.config import settings
from renderq.db.models.quota import QuotaBalanceRow
from renderq.models.enums import AssetKind
from renderq.models.quota import QuotaBalanceView, QuotaDecision, QuotaThresholds
from renderq.repositories.quota_repo import QuotaBalanceRepository, QuotaDebitRepository
from renderq.services.clock import period_start, utcnow

logger = logging.getLogger(__name__)

_IMAGE_KINDS = {AssetKind.IMAGE, AssetKind.CAROUSEL_SLIDE}


@dataclass
class _Balance:
    account_id: str
    period_start: date
    total_units: int
    consumed_units: int
    images_quota: int | None
    images_used: int
    videos_quota: int | None
    videos_used: int


def _from_row(row: QuotaBalanceRow) -> _Balance:
    return _Balance(
        account_id=row.account_id,
        period_start=row.period_start,
        total_units=row.total_units,
        consumed_units=row.consumed_units,
        images_quota=row.images_quota,
        images_used=row.images_used,
        videos_quota=row.videos_quota,
        videos_used=row.videos_used,
    )


async def _opening_balance(repo: QuotaBalanceRepository, account_id: str, period: date) -> _Balance:
    """What a fresh period row would contain: carried allotments, zero usage."""
    previous = await repo.get_latest_before(account_id, period)
    if previous:
        total, images_quota, videos_quota = previous.total_units, previous.images_quota, previous.videos_quota
    else:
        total = settings.default_total_units
        images_quota = settings.default_images_quota
        videos_quota = settings.default_videos_quota
    return _Balance(
        account_id=account_id,
        period_start=period,
        total_units=total,
        consumed_units=0,
        images_quota=images_quota,
        images_used=0,
        videos_quota=videos_quota,
        videos_used=0,
    )


async def _read_balance(session: AsyncSession, account_id: str, now: datetime) -> _Balance:
    repo = QuotaBalanceRepository(session)
    period = period_start(now)
    row = await repo.get(account_id, period)
    if row:
        return _from_row(row)
    return await _opening_balance(repo, account_id, period)


async def ensure_balance(session: AsyncSession, account_id: str, now: datetime | None = None) -> QuotaBalanceRow:
    """Return the current period row, creating it on rollover."""
    now = now or utcnow()
    repo = QuotaBalanceRepository(session)
    period = period_start(now)
    row = await repo.get(account_id, period)
    if row:
        return row

    opening = await _opening_balance(repo, account_id, period)
    created = await repo.insert_ignore(
        ["account_id", "period_start"],
        account_id=account_id,
        period_start=period,
        total_units=opening.total_units,
        consumed_units=0,
        images_quota=opening.images_quota,
        images_used=0,
        videos_quota=opening.videos_quota,
        videos_used=0,
    )
    if created:
        logger.info(
            "Opened quota period %s for account %s (total=%d)", period, account_id, opening.total_units
        )
    return await repo.get(account_id, period)


def hard_limit(total_units: int, multiplier: float | None = None) -> int:
    multiplier = settings.hard_stop_multiplier if multiplier is None else multiplier
    # Round first so float noise such as 114.99999999999999 cannot drop a unit
    return math.floor(round(total_units * multiplier, 6))


async def authorize(
    session: AsyncSession,
    account_id: str,
    required_units: int,
    now: datetime | None = None,
) -> QuotaDecision:
    """Read-only check: consumed + required <= total * hard_stop_multiplier."""
    current = await _read_balance(session, account_id, now or utcnow())
    limit = hard_limit(current.total_units)
    allowed = current.consumed_units + required_units <= limit
    return QuotaDecision(
        allowed=allowed,
        remaining=max(0, current.total_units - current.consumed_units),
        required=required_units,
        consumed=current.consumed_units,
        total=current.total_units,
        hard_limit=limit,
    )


async def debit(
    session: AsyncSession,
    account_id: str,
    job_id: str,
    units: int,
    asset_kind: AssetKind | str = AssetKind.IMAGE,
    quantity: int = 1,
    now: datetime | None = None,
) -> bool:
    """Apply the debit for ``job_id`` exactly once. Returns True if this call applied it.

    Does not commit; run it inside the transaction that completes the job.
    """
    now = now or utcnow()
    kind = AssetKind(asset_kind)
    row = await ensure_balance(session, account_id, now)

    applied = await QuotaDebitRepository(session).record(
        job_id=job_id,
        account_id=account_id,
        period_start=row.period_start,
        units=units,
        asset_kind=kind.value,
        quantity=quantity,
        created_at=now,
    )
    if not applied:
        logger.info("Debit for job %s already applied; skipping", job_id)
        return False

    await QuotaBalanceRepository(session).increment_consumed(
        account_id,
        row.period_start,
        units,
        images=quantity if kind in _IMAGE_KINDS else 0,
        videos=quantity if kind == AssetKind.VIDEO else 0,
        now=now,
    )
    logger.info("Debited %d units from account %s for job %s", units, account_id, job_id)
    return True


def _crossed(used: int, allotment: int | None, fraction: float) -> bool:
    if allotment is None:
        return False
    if allotment <= 0:
        return used > 0
    return used / allotment >= fraction


def _thresholds(balance: _Balance) -> QuotaThresholds:
    fraction = settings.alert_fraction
    return QuotaThresholds(
        units=_crossed(balance.consumed_units, balance.total_units, fraction),
        images=_crossed(balance.images_used, balance.images_quota, fraction),
        video=_crossed(balance.videos_used, balance.videos_quota, fraction),
    )


async def threshold_reached(
    session: AsyncSession, account_id: str, now: datetime | None = None
) -> QuotaThresholds:
    """Advisory per-category flags; never blocks anything."""
    return _thresholds(await _read_balance(session, account_id, now or utcnow()))


async def balance(session: AsyncSession, account_id: str, now: datetime | None = None) -> QuotaBalanceView:
    current = await _read_balance(session, account_id, now or utcnow())
    return QuotaBalanceView(
        account_id=current.account_id,
        period_start=current.period_start,
        total_units=current.total_units,
        consumed_units=current.consumed_units,
        remaining_units=max(0, current.total_units - current.consumed_units),
        images_quota=current.images_quota,
        images_used=current.images_used,
        videos_quota=current.videos_quota,
        videos_used=current.videos_used,
        thresholds=_thresholds(current),
    )


async def credit(
    session: AsyncSession, account_id: str, units: int, now: datetime | None = None
) -> QuotaBalanceView:
    """Add purchased units to the current period. Caller commits."""
    now = now or utcnow()
    row = await ensure_balance(session, account_id, now)
    await QuotaBalanceRepository(session).add_total(account_id, row.period_start, units)
    logger.info("Credited %d units to account %s", units, account_id)
    return await balance(session, account_id, now)
