"""Read paths the time-entry and request services depend on.

Every function takes the caller's ``Session``; none of them commits. Reads of
soft-deletable rows state their ``is_deleted`` predicate explicitly so that
audit paths can opt out of it deliberately.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from geopoint.models import (
    Attachment,
    Department,
    EmployeeRequest,
    Location,
    RequestStatus,
    RequestType,
    TimeEntry,
    User,
)


def normalize_ts(ts_utc: datetime | None) -> datetime:
    if ts_utc is None:
        return datetime.now(timezone.utc)

    if ts_utc.tzinfo is None:
        return ts_utc.replace(tzinfo=timezone.utc)

    return ts_utc.astimezone(timezone.utc)


def utc_day_bounds(reference_ts_utc: datetime) -> tuple[datetime, datetime]:
    day = normalize_ts(reference_ts_utc).date()
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def get_user(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def lock_user(db: Session, user_id: int) -> User | None:
    return db.scalar(
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def lock_department_users(db: Session, department: Department) -> None:
    db.scalars(
        select(User.id).where(User.department == department).order_by(User.id).with_for_update()
    ).all()


def count_users_in_department(db: Session, department: Department) -> int:
    return int(db.scalar(select(func.count(User.id)).where(User.department == department)) or 0)


def count_pending_by_requester(db: Session, requester_id: int) -> int:
    return int(
        db.scalar(
            select(func.count(EmployeeRequest.id)).where(
                EmployeeRequest.requester_id == requester_id,
                EmployeeRequest.status == RequestStatus.PENDING,
                EmployeeRequest.is_deleted.is_(False),
            )
        )
        or 0
    )


def count_accepted_vacations_on_date(db: Session, department: Department, target_date: date) -> int:
    return int(
        db.scalar(
            select(func.count(EmployeeRequest.id))
            .join(User, User.id == EmployeeRequest.requester_id)
            .where(
                User.department == department,
                EmployeeRequest.type == RequestType.VACATION,
                EmployeeRequest.status == RequestStatus.ACCEPTED,
                EmployeeRequest.target_date == target_date,
                EmployeeRequest.is_deleted.is_(False),
            )
        )
        or 0
    )


def get_last_entry(db: Session, user_id: int) -> TimeEntry | None:
    return db.scalar(
        select(TimeEntry)
        .where(TimeEntry.user_id == user_id)
        .order_by(TimeEntry.ts_utc.desc(), TimeEntry.id.desc())
        .limit(1)
    )


def get_first_entry_on_day(db: Session, user_id: int, reference_ts_utc: datetime) -> TimeEntry | None:
    day_start, day_end = utc_day_bounds(reference_ts_utc)
    return db.scalar(
        select(TimeEntry)
        .where(
            TimeEntry.user_id == user_id,
            TimeEntry.ts_utc >= day_start,
            TimeEntry.ts_utc < day_end,
        )
        .order_by(TimeEntry.ts_utc.asc(), TimeEntry.id.asc())
        .limit(1)
    )


def get_zones_for_user(db: Session, user_id: int) -> list[Location]:
    return list(
        db.scalars(
            select(Location)
            .where(or_(Location.user_id.is_(None), Location.user_id == user_id))
            .order_by(Location.id.asc())
        ).all()
    )


def get_request(db: Session, request_id: int) -> EmployeeRequest | None:
    return db.scalar(
        select(EmployeeRequest)
        .options(selectinload(EmployeeRequest.attachments))
        .where(
            EmployeeRequest.id == request_id,
            EmployeeRequest.is_deleted.is_(False),
        )
    )


def get_request_including_deleted(db: Session, request_id: int) -> EmployeeRequest | None:
    return db.scalar(
        select(EmployeeRequest)
        .options(selectinload(EmployeeRequest.attachments))
        .where(EmployeeRequest.id == request_id)
    )


def lock_request(db: Session, request_id: int) -> EmployeeRequest | None:
    # populate_existing so status and version_id are re-read under the lock
    return db.scalar(
        select(EmployeeRequest)
        .where(
            EmployeeRequest.id == request_id,
            EmployeeRequest.is_deleted.is_(False),
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def get_attachment(db: Session, attachment_id: int) -> Attachment | None:
    return db.scalar(
        select(Attachment)
        .join(EmployeeRequest, EmployeeRequest.id == Attachment.request_id)
        .where(
            Attachment.id == attachment_id,
            Attachment.is_deleted.is_(False),
            EmployeeRequest.is_deleted.is_(False),
        )
    )


def list_entries_between(db: Session, user_id: int, start_utc: datetime, end_utc: datetime) -> list[TimeEntry]:
    return list(
        db.scalars(
            select(TimeEntry)
            .where(
                TimeEntry.user_id == user_id,
                TimeEntry.ts_utc >= start_utc,
                TimeEntry.ts_utc < end_utc,
            )
            .order_by(TimeEntry.ts_utc.asc(), TimeEntry.id.asc())
        ).all()
    )


def list_excused_dates(db: Session, user_id: int, start_date: date, end_date: date) -> set[date]:
    return set(
        db.scalars(
            select(EmployeeRequest.target_date).where(
                EmployeeRequest.requester_id == user_id,
                EmployeeRequest.type.in_((RequestType.VACATION, RequestType.CERTIFICATE)),
                EmployeeRequest.status == RequestStatus.ACCEPTED,
                EmployeeRequest.is_deleted.is_(False),
                EmployeeRequest.target_date >= start_date,
                EmployeeRequest.target_date <= end_date,
            )
        ).all()
    )
