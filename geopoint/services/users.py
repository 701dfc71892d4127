from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from geopoint.audit import stage_audit
from geopoint.errors import ApiError, user_not_found
from geopoint.models import Department, JobTitle, User, UserStatus, WorkScheduleType
from geopoint.schemas import UserCreate, UserUpdate
from geopoint.services.directory import get_user, lock_user

logger = logging.getLogger("geopoint.users")


def _email_taken(email: str | None = None) -> ApiError:
    return ApiError(
        status_code=409,
        code="EMAIL_ALREADY_EXISTS",
        message="Email is already registered.",
        details={"email": email} if email else None,
    )


def _ensure_hierarchy(work_schedule: WorkScheduleType, job_title: JobTitle, *, index: int | None = None) -> None:
    if work_schedule == WorkScheduleType.INTERN and job_title == JobTitle.MANAGER:
        raise ApiError(
            status_code=422,
            code="HIERARCHY_VIOLATION",
            message="An intern cannot hold the manager job title.",
            details={"index": index} if index is not None else None,
        )


def _audit_value(value: Any) -> Any:
    return value.value if isinstance(value, enum.Enum) else value


def _new_user(payload: UserCreate) -> User:
    return User(
        full_name=payload.full_name.strip(),
        email=payload.email,
        role=payload.role,
        department=payload.department,
        job_title=payload.job_title,
        status=UserStatus.ACTIVE,
        work_schedule=payload.work_schedule,
    )


def _stage_user_created(db: Session, user: User, *, actor_id: int) -> None:
    stage_audit(
        db,
        actor_id=actor_id,
        action="USER_CREATED",
        entity_type="user",
        entity_id=user.id,
        new_value={
            "email": user.email,
            "role": user.role.value,
            "department": user.department.value,
            "job_title": user.job_title.value,
            "work_schedule": user.work_schedule.value,
        },
    )


def create_user(db: Session, payload: UserCreate, *, actor_id: int) -> User:
    _ensure_hierarchy(payload.work_schedule, payload.job_title)
    if db.scalar(select(User.id).where(User.email == payload.email)) is not None:
        raise _email_taken()

    user = _new_user(payload)
    db.add(user)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise _email_taken() from exc

    _stage_user_created(db, user, actor_id=actor_id)
    db.commit()
    db.refresh(user)
    logger.info("user_created", extra={"user_id": user.id, "department": user.department.value})
    return user


def create_users_bulk(db: Session, payloads: Sequence[UserCreate], *, actor_id: int) -> list[User]:
    """Create every user in ``payloads`` or none of them.

    Every item is validated before the first insert: hierarchy rule, duplicate
    emails inside the batch and emails already registered.
    """
    if not payloads:
        raise ApiError(status_code=422, code="EMPTY_BATCH", message="The user list is empty.")

    seen: set[str] = set()
    for index, payload in enumerate(payloads):
        _ensure_hierarchy(payload.work_schedule, payload.job_title, index=index)
        if payload.email in seen:
            raise _email_taken(payload.email)
        seen.add(payload.email)

    existing = db.scalars(select(User.email).where(User.email.in_(seen)).order_by(User.email)).first()
    if existing is not None:
        raise _email_taken(existing)

    users = [_new_user(payload) for payload in payloads]
    db.add_all(users)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise _email_taken() from exc

    for user in users:
        _stage_user_created(db, user, actor_id=actor_id)
    db.commit()
    logger.info("users_bulk_created", extra={"count": len(users), "actor_id": actor_id})
    return users


def update_user(db: Session, user_id: int, payload: UserUpdate, *, actor_id: int) -> User:
    user = lock_user(db, user_id)
    if user is None:
        raise user_not_found()

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "full_name" in changes:
        changes["full_name"] = changes["full_name"].strip()
    changes = {key: value for key, value in changes.items() if getattr(user, key) != value}
    if not changes:
        return user

    _ensure_hierarchy(
        changes.get("work_schedule", user.work_schedule),
        changes.get("job_title", user.job_title),
    )
    if "email" in changes and db.scalar(select(User.id).where(User.email == changes["email"])) is not None:
        raise _email_taken(changes["email"])

    old_value = {key: _audit_value(getattr(user, key)) for key in changes}
    for key, value in changes.items():
        setattr(user, key, value)

    stage_audit(
        db,
        actor_id=actor_id,
        action="USER_UPDATED",
        entity_type="user",
        entity_id=user.id,
        old_value=old_value,
        new_value={key: _audit_value(value) for key, value in changes.items()},
    )
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise _email_taken(changes.get("email")) from exc
    db.refresh(user)
    logger.info("user_updated", extra={"user_id": user.id, "fields": sorted(changes)})
    return user


def get_user_or_404(db: Session, user_id: int) -> User:
    user = get_user(db, user_id)
    if user is None:
        raise user_not_found()
    return user


def list_users(db: Session, *, department: Department | None = None) -> list[User]:
    stmt = select(User).order_by(User.id.asc())
    if department is not None:
        stmt = stmt.where(User.department == department)
    return list(db.scalars(stmt).all())


def deactivate_user(db: Session, user_id: int, *, actor_id: int) -> User:
    user = lock_user(db, user_id)
    if user is None:
        raise user_not_found()
    if user.status == UserStatus.INACTIVE:
        return user

    old_status = user.status
    user.status = UserStatus.INACTIVE
    stage_audit(
        db,
        actor_id=actor_id,
        action="USER_DEACTIVATED",
        entity_type="user",
        entity_id=user.id,
        old_value={"status": old_status.value},
        new_value={"status": user.status.value},
    )
    db.commit()
    db.refresh(user)
    logger.info("user_deactivated", extra={"user_id": user.id, "previous_status": old_status.value})
    return user
