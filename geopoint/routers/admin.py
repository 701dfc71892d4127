from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from geopoint.audit import list_audit_logs
from geopoint.db import get_db
from geopoint.models import Department, WorkScheduleType
from geopoint.schemas import (
    AuditLogRead,
    LocationCreate,
    LocationRead,
    RequestAuditRead,
    UserCreate,
    UserRead,
    UserUpdate,
    WorkScheduleRead,
)
from geopoint.security import ensure_can_view_user, get_caller_id, require_admin
from geopoint.services.employee_requests import get_request_for_audit
from geopoint.services.locations import create_location, list_locations
from geopoint.services.users import (
    create_user,
    create_users_bulk,
    deactivate_user,
    get_user_or_404,
    list_users,
    update_user,
)
from geopoint.services.work_schedules import get_work_schedule, list_work_schedules

router = APIRouter(tags=["admin"])


@router.post("/api/locations", response_model=LocationRead, status_code=status.HTTP_201_CREATED)
def add_location(
    payload: LocationCreate,
    request: Request,
    admin_id: int = Depends(require_admin),
    db: Session = Depends(get_db),
) -> LocationRead:
    request.state.actor = "admin"
    return create_location(db, payload, actor_id=admin_id)


@router.get("/api/locations", response_model=list[LocationRead], dependencies=[Depends(require_admin)])
def get_locations(
    user_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
) -> list[LocationRead]:
    return list_locations(db, user_id=user_id)


@router.post("/api/users", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def add_user(
    payload: UserCreate,
    request: Request,
    admin_id: int = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserRead:
    request.state.actor = "admin"
    return create_user(db, payload, actor_id=admin_id)


@router.post("/api/users/bulk", response_model=list[UserRead], status_code=status.HTTP_201_CREATED)
def add_users_bulk(
    payload: list[UserCreate],
    request: Request,
    admin_id: int = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[UserRead]:
    request.state.actor = "admin"
    return create_users_bulk(db, payload, actor_id=admin_id)


@router.get("/api/users", response_model=list[UserRead], dependencies=[Depends(require_admin)])
def get_users(
    department: Department | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[UserRead]:
    return list_users(db, department=department)


@router.get("/api/users/{user_id}", response_model=UserRead)
def get_user_detail(
    user_id: int,
    caller_id: int = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> UserRead:
    ensure_can_view_user(db, caller_id=caller_id, user_id=user_id)
    return get_user_or_404(db, user_id)


@router.put("/api/users/{user_id}", response_model=UserRead)
def edit_user(
    user_id: int,
    payload: UserUpdate,
    request: Request,
    admin_id: int = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserRead:
    request.state.actor = "admin"
    return update_user(db, user_id, payload, actor_id=admin_id)


@router.delete("/api/users/{user_id}", response_model=UserRead)
def remove_user(
    user_id: int,
    request: Request,
    admin_id: int = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserRead:
    request.state.actor = "admin"
    return deactivate_user(db, user_id, actor_id=admin_id)


@router.get("/api/work-schedules", response_model=list[WorkScheduleRead], dependencies=[Depends(get_caller_id)])
def get_work_schedules() -> list[WorkScheduleRead]:
    return [WorkScheduleRead(**item.as_dict()) for item in list_work_schedules()]


@router.get(
    "/api/work-schedules/{schedule_type}",
    response_model=WorkScheduleRead,
    dependencies=[Depends(get_caller_id)],
)
def get_work_schedule_detail(schedule_type: WorkScheduleType) -> WorkScheduleRead:
    return WorkScheduleRead(**get_work_schedule(schedule_type).as_dict())


@router.get("/api/audit-logs", response_model=list[AuditLogRead], dependencies=[Depends(require_admin)])
def get_audit_logs(
    actor_id: str | None = Query(default=None),
    entity: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[AuditLogRead]:
    return list_audit_logs(db, actor_id=actor_id, entity_type=entity, limit=limit)


@router.get(
    "/api/audit-logs/requests/{request_id}",
    response_model=RequestAuditRead,
    dependencies=[Depends(require_admin)],
)
def get_request_audit_view(
    request_id: int,
    db: Session = Depends(get_db),
) -> RequestAuditRead:
    return get_request_for_audit(db, request_id)
