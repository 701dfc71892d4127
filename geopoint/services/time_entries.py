from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from geopoint.audit import stage_audit
from geopoint.errors import ApiError, user_not_found
from geopoint.models import TimeEntry, TimeEntryOrigin, TimeEntryType
from geopoint.services.directory import (
    get_first_entry_on_day,
    get_last_entry,
    get_user,
    lock_user,
    normalize_ts,
)
from geopoint.services.geofence import OutsideAllZonesError, is_within_any_zone
from geopoint.settings import get_settings

logger = logging.getLogger("geopoint.time_entries")

COORDINATE_QUANTUM = Decimal("0.00000001")
TIME_ENTRY_LIST_LIMIT = 50


@dataclass(frozen=True, slots=True)
class PunchResult:
    entry: TimeEntry
    zone_name: str


def _to_coordinate(value: float) -> Decimal:
    return Decimal(str(value)).quantize(COORDINATE_QUANTUM)


def _ensure_cooldown_elapsed(db: Session, *, user_id: int, now_utc: datetime) -> None:
    cooldown = timedelta(seconds=get_settings().punch_cooldown_seconds)
    last_entry = get_last_entry(db, user_id)
    if last_entry is None:
        return
    elapsed = now_utc - normalize_ts(last_entry.ts_utc)
    if elapsed < cooldown:
        retry_after_seconds = int((cooldown - elapsed).total_seconds()) + 1
        raise ApiError(
            status_code=429,
            code="TOO_SOON",
            message="A punch was already recorded less than a minute ago.",
            details={"retry_after_seconds": retry_after_seconds},
        )


def _ensure_inside_geofence(db: Session, *, user_id: int, lat: float, lon: float) -> str:
    try:
        match = is_within_any_zone(db, user_id, lat, lon)
    except OutsideAllZonesError as exc:
        details: dict[str, float] = {"latitude": exc.lat, "longitude": exc.lon}
        if exc.closest_distance_m is not None:
            details["closest_distance_m"] = round(exc.closest_distance_m, 2)
        raise ApiError(
            status_code=403,
            code="OUTSIDE_GEOFENCE",
            message="You are outside every permitted work location.",
            details=details,
        ) from exc
    return match.zone_name


def _ensure_shift_within_cap(db: Session, *, user_id: int, now_utc: datetime) -> None:
    max_shift = timedelta(hours=get_settings().max_shift_hours)
    first_today = get_first_entry_on_day(db, user_id, now_utc)
    if first_today is None:
        return
    if now_utc - normalize_ts(first_today.ts_utc) > max_shift:
        raise ApiError(
            status_code=409,
            code="SHIFT_TOO_LONG",
            message="Shift exceeds the maximum duration. Ask a manager to adjust it.",
        )


def record_punch(
    db: Session,
    *,
    user_id: int,
    entry_type: TimeEntryType,
    origin: TimeEntryOrigin,
    lat: float,
    lon: float,
    now_utc: datetime | None = None,
) -> PunchResult:
    now = normalize_ts(now_utc)

    # Row lock serializes punches of the same user through the commit below.
    user = lock_user(db, user_id)
    if user is None:
        raise user_not_found()

    _ensure_cooldown_elapsed(db, user_id=user_id, now_utc=now)
    zone_name = _ensure_inside_geofence(db, user_id=user_id, lat=lat, lon=lon)
    _ensure_shift_within_cap(db, user_id=user_id, now_utc=now)

    entry = TimeEntry(
        user_id=user_id,
        ts_utc=now,
        type=entry_type,
        origin=origin,
        latitude_recorded=_to_coordinate(lat),
        longitude_recorded=_to_coordinate(lon),
        is_manual_adjustment=False,
        matched_location_name=zone_name,
    )
    db.add(entry)
    db.flush()
    stage_audit(
        db,
        actor_id=user_id,
        action="TIME_ENTRY_CREATED",
        entity_type="time_entry",
        entity_id=entry.id,
        new_value={
            "type": entry_type.value,
            "origin": origin.value,
            "ts_utc": now.isoformat(),
            "zone_name": zone_name,
        },
        ts_utc=now,
    )
    db.commit()
    db.refresh(entry)

    logger.info(
        "punch_recorded",
        extra={
            "user_id": user_id,
            "time_entry_id": entry.id,
            "entry_type": entry_type.value,
            "origin": origin.value,
            "zone_name": zone_name,
        },
    )
    return PunchResult(entry=entry, zone_name=zone_name)


def list_time_entries(db: Session, *, user_id: int, limit: int = TIME_ENTRY_LIST_LIMIT) -> list[TimeEntry]:
    if get_user(db, user_id) is None:
        raise user_not_found()
    return list(
        db.scalars(
            select(TimeEntry)
            .where(TimeEntry.user_id == user_id)
            .order_by(TimeEntry.ts_utc.desc(), TimeEntry.id.desc())
            .limit(limit)
        ).all()
    )
