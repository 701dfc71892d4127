from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from geopoint.audit import stage_audit
from geopoint.errors import user_not_found
from geopoint.models import Location
from geopoint.schemas import LocationCreate
from geopoint.services.directory import get_user

logger = logging.getLogger("geopoint.locations")


def create_location(db: Session, payload: LocationCreate, *, actor_id: int) -> Location:
    if payload.user_id is not None and get_user(db, payload.user_id) is None:
        raise user_not_found()

    location = Location(
        user_id=payload.user_id,
        name=payload.name.strip(),
        type=payload.type,
        latitude=Decimal(str(payload.latitude)),
        longitude=Decimal(str(payload.longitude)),
        radius_m=payload.radius_m,
    )
    db.add(location)
    db.flush()
    stage_audit(
        db,
        actor_id=actor_id,
        action="LOCATION_CREATED",
        entity_type="location",
        entity_id=location.id,
        new_value={
            "name": location.name,
            "type": location.type.value,
            "user_id": location.user_id,
            "latitude": payload.latitude,
            "longitude": payload.longitude,
            "radius_m": location.radius_m,
        },
    )
    db.commit()
    db.refresh(location)
    logger.info(
        "location_created",
        extra={"location_id": location.id, "owner_user_id": location.user_id, "radius_m": location.radius_m},
    )
    return location


def list_locations(db: Session, *, user_id: int | None = None) -> list[Location]:
    stmt = select(Location).order_by(Location.id.asc())
    if user_id is not None:
        stmt = stmt.where(Location.user_id == user_id)
    return list(db.scalars(stmt).all())
