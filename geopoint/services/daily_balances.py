"""Daily worked-time balance computed from punches.

Days are UTC calendar days. Worked time is the sum of ENTRY -> EXIT pairs. An
ENTRY left open, or an EXIT with no ENTRY before it, marks the day
``INCOMPLETE`` and the day carries no balance. Days covered by an accepted
vacation or medical certificate are ``EXCUSED`` with nothing planned.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy.orm import Session

from geopoint.errors import ApiError, user_not_found
from geopoint.models import TimeEntry, TimeEntryType
from geopoint.services.directory import get_user, list_entries_between, list_excused_dates, normalize_ts
from geopoint.services.work_schedules import get_work_schedule

MAX_RANGE_DAYS = 92


@dataclass(frozen=True, slots=True)
class DailyBalance:
    reference_date: date
    total_worked_minutes: int
    planned_minutes: int
    balance_minutes: int
    overtime_minutes: int
    status: str


def calculate_day_balance(
    reference_date: date,
    entries: Sequence[TimeEntry],
    *,
    planned_minutes: int,
    tolerance_minutes: int,
) -> DailyBalance:
    worked_seconds = 0
    open_ts: datetime | None = None
    incomplete = False
    for entry in entries:
        ts = normalize_ts(entry.ts_utc)
        if entry.type == TimeEntryType.ENTRY:
            if open_ts is not None:
                incomplete = True
            open_ts = ts
        elif open_ts is None:
            incomplete = True
        else:
            worked_seconds += int((ts - open_ts).total_seconds())
            open_ts = None
    if open_ts is not None:
        incomplete = True

    worked_minutes = worked_seconds // 60
    if incomplete:
        return DailyBalance(reference_date, worked_minutes, planned_minutes, 0, 0, "INCOMPLETE")
    if not entries:
        status = "ABSENT" if planned_minutes > 0 else "OFF"
        return DailyBalance(reference_date, 0, planned_minutes, -planned_minutes, 0, status)

    balance = worked_minutes - planned_minutes
    if balance > tolerance_minutes:
        status = "OVERTIME"
    elif balance < -tolerance_minutes:
        status = "DEFICIT"
    else:
        status = "OK"
    overtime = balance if status == "OVERTIME" else 0
    return DailyBalance(reference_date, worked_minutes, planned_minutes, balance, overtime, status)


def _invalid_range(message: str) -> ApiError:
    return ApiError(status_code=422, code="INVALID_DATE_RANGE", message=message)


def list_daily_balances(db: Session, *, user_id: int, start_date: date, end_date: date) -> list[DailyBalance]:
    """Balances for every day in ``[start_date, end_date]``, newest first."""
    user = get_user(db, user_id)
    if user is None:
        raise user_not_found()
    if end_date < start_date:
        raise _invalid_range("end_date must not be before start_date.")
    if (end_date - start_date).days + 1 > MAX_RANGE_DAYS:
        raise _invalid_range(f"A balance report covers at most {MAX_RANGE_DAYS} days.")

    range_start = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
    range_end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
    entries_by_day: dict[date, list[TimeEntry]] = defaultdict(list)
    for entry in list_entries_between(db, user_id, range_start, range_end):
        entries_by_day[normalize_ts(entry.ts_utc).date()].append(entry)
    excused = list_excused_dates(db, user_id, start_date, end_date)

    schedule = get_work_schedule(user.work_schedule)
    balances: list[DailyBalance] = []
    day = end_date
    while day >= start_date:
        entries = entries_by_day.get(day, [])
        if day in excused and not entries:
            balances.append(DailyBalance(day, 0, 0, 0, 0, "EXCUSED"))
        else:
            planned = schedule.planned_minutes if schedule.is_work_day(day) and day not in excused else 0
            balances.append(
                calculate_day_balance(
                    day,
                    entries,
                    planned_minutes=planned,
                    tolerance_minutes=schedule.tolerance_minutes,
                )
            )
        day -= timedelta(days=1)
    return balances
