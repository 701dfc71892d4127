from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from geopoint.models import (
    AuditActorType,
    Department,
    JobTitle,
    LocationType,
    RequestStatus,
    RequestType,
    TimeEntryOrigin,
    TimeEntryType,
    UserRole,
    UserStatus,
    WorkScheduleType,
)


def _normalize_email(value: str) -> str:
    cleaned = value.strip().lower()
    local, _, domain = cleaned.partition("@")
    if not local or "." not in domain:
        raise ValueError("email must look like name@domain.tld")
    return cleaned


class UserCreate(BaseModel):
    full_name: str = Field(min_length=2, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    role: UserRole = UserRole.EMPLOYEE
    department: Department
    job_title: JobTitle
    work_schedule: WorkScheduleType = WorkScheduleType.COMMERCIAL

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class UserUpdate(BaseModel):
    full_name: str | None = Field(default=None, min_length=2, max_length=255)
    email: str | None = Field(default=None, min_length=3, max_length=255)
    role: UserRole | None = None
    department: Department | None = None
    job_title: JobTitle | None = None
    work_schedule: WorkScheduleType | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str | None) -> str | None:
        return _normalize_email(value) if value is not None else None


class UserRead(BaseModel):
    id: int
    full_name: str
    email: str
    role: UserRole
    department: Department
    job_title: JobTitle
    status: UserStatus
    work_schedule: WorkScheduleType
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LocationCreate(BaseModel):
    user_id: int | None = Field(default=None, ge=1)
    name: str = Field(min_length=2, max_length=255)
    type: LocationType
    latitude: float = Field(ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(ge=-180, le=180, allow_inf_nan=False)
    radius_m: int = Field(default=100, ge=1)


class LocationRead(BaseModel):
    id: int
    user_id: int | None
    name: str
    type: LocationType
    latitude: float
    longitude: float
    radius_m: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TimeEntryCreate(BaseModel):
    type: TimeEntryType
    origin: TimeEntryOrigin = TimeEntryOrigin.WEB
    latitude: float = Field(ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(ge=-180, le=180, allow_inf_nan=False)


class TimeEntryRead(BaseModel):
    id: int
    user_id: int
    ts_utc: datetime
    type: TimeEntryType
    origin: TimeEntryOrigin
    latitude_recorded: Decimal
    longitude_recorded: Decimal
    is_manual_adjustment: bool
    matched_location_name: str | None

    model_config = ConfigDict(from_attributes=True)


class AttachmentRead(BaseModel):
    id: int
    file_name: str
    content_type: str | None
    size_bytes: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AttachmentFailureRead(BaseModel):
    file_name: str
    code: str
    message: str

    model_config = ConfigDict(from_attributes=True)


class RequestRead(BaseModel):
    id: int
    requester_id: int
    reviewer_id: int | None
    type: RequestType
    target_date: date
    status: RequestStatus
    justification_user: str | None
    justification_reviewer: str | None
    created_at: datetime
    reviewed_at: datetime | None
    attachments: list[AttachmentRead] = Field(default_factory=list, validation_alias="active_attachments")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class RequestAuditRead(RequestRead):
    is_deleted: bool
    deleted_at: datetime | None


class RequestCreateResponse(BaseModel):
    request: RequestRead
    failed_attachments: list[AttachmentFailureRead] = Field(default_factory=list)


class ReviewRequest(BaseModel):
    new_status: Literal[RequestStatus.ACCEPTED, RequestStatus.REJECTED]
    comment: str | None = Field(default=None, max_length=2000)


class RequestUpdate(BaseModel):
    target_date: date
    justification: str | None = Field(default=None, max_length=2000)


class WorkScheduleRead(BaseModel):
    type: WorkScheduleType
    start_time: str
    end_time: str
    tolerance_minutes: int
    work_days: list[str]


class AuditLogRead(BaseModel):
    id: int
    ts_utc: datetime
    actor_type: AuditActorType
    actor_id: str
    action: str
    entity_type: str | None
    entity_id: str | None
    old_value: dict[str, Any] | None
    new_value: dict[str, Any] | None
    ip: str | None
    user_agent: str | None
    success: bool
    details: dict[str, Any]

    model_config = ConfigDict(from_attributes=True)


class DailyBalanceRead(BaseModel):
    reference_date: date
    total_worked_minutes: int
    planned_minutes: int
    balance_minutes: int
    overtime_minutes: int
    status: str

    model_config = ConfigDict(from_attributes=True)
