from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from geopoint.db import Base

JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class UserRole(str, enum.Enum):
    EMPLOYEE = "EMPLOYEE"
    ADMIN = "ADMIN"


class Department(str, enum.Enum):
    IT = "IT"
    HR = "HR"
    FINANCE = "FINANCE"
    MARKETING = "MARKETING"
    SALES = "SALES"
    OPERATIONS = "OPERATIONS"
    LEGAL = "LEGAL"
    BOARD = "BOARD"


class JobTitle(str, enum.Enum):
    SOFTWARE_ENGINEER = "SOFTWARE_ENGINEER"
    DEVELOPER = "DEVELOPER"
    TECH_LEAD = "TECH_LEAD"
    PRODUCT_OWNER = "PRODUCT_OWNER"
    SCRUM_MASTER = "SCRUM_MASTER"
    ARCHITECT = "ARCHITECT"
    HR_ANALYST = "HR_ANALYST"
    MANAGER = "MANAGER"
    DATA_ENGINEER = "DATA_ENGINEER"
    SUPPORT = "SUPPORT"
    DIRECTOR = "DIRECTOR"


class UserStatus(str, enum.Enum):
    MATERNITY_LEAVE = "MATERNITY_LEAVE"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ON_VACATION = "ON_VACATION"
    DOCTORS_NOTE = "DOCTORS_NOTE"
    TEMPORARY_DISABILITY = "TEMPORARY_DISABILITY"


class WorkScheduleType(str, enum.Enum):
    COMMERCIAL = "COMMERCIAL"
    INTERN = "INTERN"
    CONTRACTOR = "CONTRACTOR"


class LocationType(str, enum.Enum):
    OFFICE = "OFFICE"
    HOME = "HOME"


class TimeEntryType(str, enum.Enum):
    ENTRY = "ENTRY"
    EXIT = "EXIT"


class TimeEntryOrigin(str, enum.Enum):
    WEB = "WEB"
    MOBILE = "MOBILE"


class RequestType(str, enum.Enum):
    FORGOT_PUNCH = "FORGOT_PUNCH"
    CERTIFICATE = "CERTIFICATE"
    VACATION = "VACATION"


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class AuditActorType(str, enum.Enum):
    USER = "USER"
    SYSTEM = "SYSTEM"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.EMPLOYEE,
    )
    department: Mapped[Department] = mapped_column(
        Enum(Department, name="department"),
        nullable=False,
        index=True,
    )
    job_title: Mapped[JobTitle] = mapped_column(
        Enum(JobTitle, name="job_title"),
        nullable=False,
    )
    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, name="user_status"),
        nullable=False,
        default=UserStatus.ACTIVE,
        server_default=text("'ACTIVE'"),
    )
    work_schedule: Mapped[WorkScheduleType] = mapped_column(
        Enum(WorkScheduleType, name="work_schedule_type"),
        nullable=False,
        default=WorkScheduleType.COMMERCIAL,
        server_default=text("'COMMERCIAL'"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class Location(Base):
    __tablename__ = "locations"
    __table_args__ = (CheckConstraint("radius_m > 0", name="ck_locations_radius_positive"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[LocationType] = mapped_column(
        Enum(LocationType, name="location_type"),
        nullable=False,
    )
    latitude: Mapped[Decimal] = mapped_column(Numeric(10, 8), nullable=False)
    longitude: Mapped[Decimal] = mapped_column(Numeric(11, 8), nullable=False)
    radius_m: Mapped[int] = mapped_column(Integer, nullable=False, default=100, server_default=text("100"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    ts_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    type: Mapped[TimeEntryType] = mapped_column(
        Enum(TimeEntryType, name="time_entry_type"),
        nullable=False,
    )
    origin: Mapped[TimeEntryOrigin] = mapped_column(
        Enum(TimeEntryOrigin, name="time_entry_origin"),
        nullable=False,
    )
    latitude_recorded: Mapped[Decimal] = mapped_column(Numeric(10, 8), nullable=False)
    longitude_recorded: Mapped[Decimal] = mapped_column(Numeric(11, 8), nullable=False)
    is_manual_adjustment: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    matched_location_name: Mapped[str | None] = mapped_column(String(255), nullable=True)


class EmployeeRequest(Base):
    __tablename__ = "requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    requester_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reviewer_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    type: Mapped[RequestType] = mapped_column(
        Enum(RequestType, name="request_type"),
        nullable=False,
    )
    target_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus, name="request_status"),
        nullable=False,
        default=RequestStatus.PENDING,
        server_default=text("'PENDING'"),
        index=True,
    )
    justification_user: Mapped[str | None] = mapped_column(Text, nullable=True)
    justification_reviewer: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default=text("1"))

    attachments: Mapped[list[Attachment]] = relationship(
        order_by="Attachment.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def active_attachments(self) -> list[Attachment]:
        return [item for item in self.attachments if not item.is_deleted]


class Attachment(Base):
    __tablename__ = "attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(
        ForeignKey("requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    old_value: Mapped[dict[str, Any] | None] = mapped_column(JsonDocument, nullable=True)
    new_value: Mapped[dict[str, Any] | None] = mapped_column(JsonDocument, nullable=True)
    ip: Mapped[str | None] = mapped_column(String(128), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    details: Mapped[dict[str, Any]] = mapped_column(
        JsonDocument,
        nullable=False,
        default=dict,
    )
