"""Quota balance, authorization preview and admin credit routes."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from renderq.dependencies import RequireAdmin, get_current_user, get_db
from renderq.models.quota import CreditRequest
from renderq.services.quota import ledger

router = APIRouter(tags=["Quota"])


@router.get("/quota")
async def get_quota(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
) -> dict:
    view = await ledger.balance(db, user["sub"])
    return view.model_dump(mode="json")


@router.get("/quota/authorize")
async def authorize_units(
    units: int = Query(..., ge=0),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
) -> dict:
    """Preview whether ``units`` would be accepted right now. Reserves nothing."""
    decision = await ledger.authorize(db, user["sub"], units)
    return decision.model_dump(mode="json")


@router.post("/admin/quota/{account_id}/credit", dependencies=[RequireAdmin])
async def credit_account(
    account_id: str,
    body: CreditRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    view = await ledger.credit(db, account_id, body.units)
    await db.commit()
    return view.model_dump(mode="json")
