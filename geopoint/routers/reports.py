from datetime import date, datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from geopoint.db import get_db
from geopoint.schemas import DailyBalanceRead
from geopoint.security import ensure_can_view_user, get_caller_id
from geopoint.services.daily_balances import list_daily_balances

router = APIRouter(tags=["reports"])

DEFAULT_REPORT_DAYS = 30


@router.get("/api/reports/balance/{user_id}", response_model=list[DailyBalanceRead])
def get_daily_balance(
    user_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> list[DailyBalanceRead]:
    ensure_can_view_user(db, caller_id=caller_id, user_id=user_id)
    end = end_date or datetime.now(timezone.utc).date()
    start = start_date or end - timedelta(days=DEFAULT_REPORT_DAYS - 1)
    return list_daily_balances(db, user_id=user_id, start_date=start, end_date=end)
