"""Queue health snapshot route."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from renderq.dependencies import OPERATOR_ROLES, get_current_user, get_db, has_role
from renderq.errors.exceptions import AuthorizationError
from renderq.models.enums import MonitorScope
from renderq.services import monitor

router = APIRouter(tags=["Monitor"])


@router.get("/monitor")
async def get_snapshot(
    scope: MonitorScope = Query(MonitorScope.ACCOUNT),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
) -> dict:
    if scope == MonitorScope.GLOBAL:
        if not has_role(user, *OPERATOR_ROLES):
            raise AuthorizationError("Global monitor requires operator or admin")
        account_id = None
    else:
        account_id = user["sub"]
    result = await monitor.snapshot(db, account_id)
    return result.model_dump(mode="json")
