from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from geopoint.db import get_db
from geopoint.schemas import TimeEntryCreate, TimeEntryRead
from geopoint.security import ensure_can_view_user, get_caller_id
from geopoint.services.time_entries import list_time_entries, record_punch

router = APIRouter(tags=["time-entries"])


@router.post("/api/time-entries", response_model=TimeEntryRead, status_code=status.HTTP_201_CREATED)
def create_time_entry(
    payload: TimeEntryCreate,
    request: Request,
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> TimeEntryRead:
    request.state.actor = "employee"
    result = record_punch(
        db,
        user_id=caller_id,
        entry_type=payload.type,
        origin=payload.origin,
        lat=payload.latitude,
        lon=payload.longitude,
    )
    request.state.time_entry_id = result.entry.id
    return result.entry


@router.get("/api/time-entries/user/{user_id}", response_model=list[TimeEntryRead])
def get_user_time_entries(
    user_id: int,
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> list[TimeEntryRead]:
    ensure_can_view_user(db, caller_id=caller_id, user_id=user_id)
    return list_time_entries(db, user_id=user_id)
