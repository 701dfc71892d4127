from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from geopoint.models import AuditActorType, AuditLog

AUDIT_LIST_LIMIT = 50


def stage_audit(
    db: Session,
    *,
    actor_id: int | str,
    action: str,
    entity_type: str,
    entity_id: int | str | None,
    old_value: dict[str, Any] | None = None,
    new_value: dict[str, Any] | None = None,
    ts_utc: datetime | None = None,
) -> AuditLog:
    # Added to the caller's transaction; committed together with the change it describes.
    audit = AuditLog(
        ts_utc=ts_utc or datetime.now(timezone.utc),
        actor_type=AuditActorType.USER,
        actor_id=str(actor_id),
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        old_value=old_value,
        new_value=new_value,
        success=True,
        details={},
    )
    db.add(audit)
    return audit


def list_audit_logs(
    db: Session,
    *,
    actor_id: str | None = None,
    entity_type: str | None = None,
    limit: int = AUDIT_LIST_LIMIT,
) -> list[AuditLog]:
    stmt = select(AuditLog).order_by(AuditLog.ts_utc.desc(), AuditLog.id.desc())
    if actor_id is not None:
        stmt = stmt.where(AuditLog.actor_id == actor_id)
    if entity_type:
        stmt = stmt.where(func.lower(AuditLog.entity_type) == entity_type.strip().lower())
    return list(db.scalars(stmt.limit(limit)).all())
