"""Initial geopoint schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = postgresql.ENUM("EMPLOYEE", "ADMIN", name="user_role", create_type=False)
department = postgresql.ENUM(
    "IT",
    "HR",
    "FINANCE",
    "MARKETING",
    "SALES",
    "OPERATIONS",
    "LEGAL",
    "BOARD",
    name="department",
    create_type=False,
)
job_title = postgresql.ENUM(
    "SOFTWARE_ENGINEER",
    "DEVELOPER",
    "TECH_LEAD",
    "PRODUCT_OWNER",
    "SCRUM_MASTER",
    "ARCHITECT",
    "HR_ANALYST",
    "MANAGER",
    "DATA_ENGINEER",
    "SUPPORT",
    "DIRECTOR",
    name="job_title",
    create_type=False,
)
user_status = postgresql.ENUM(
    "MATERNITY_LEAVE",
    "ACTIVE",
    "INACTIVE",
    "ON_VACATION",
    "DOCTORS_NOTE",
    "TEMPORARY_DISABILITY",
    name="user_status",
    create_type=False,
)
work_schedule_type = postgresql.ENUM(
    "COMMERCIAL",
    "INTERN",
    "CONTRACTOR",
    name="work_schedule_type",
    create_type=False,
)
location_type = postgresql.ENUM("OFFICE", "HOME", name="location_type", create_type=False)
time_entry_type = postgresql.ENUM("ENTRY", "EXIT", name="time_entry_type", create_type=False)
time_entry_origin = postgresql.ENUM("WEB", "MOBILE", name="time_entry_origin", create_type=False)
request_type = postgresql.ENUM(
    "FORGOT_PUNCH",
    "CERTIFICATE",
    "VACATION",
    name="request_type",
    create_type=False,
)
request_status = postgresql.ENUM(
    "PENDING",
    "ACCEPTED",
    "REJECTED",
    name="request_status",
    create_type=False,
)
audit_actor_type = postgresql.ENUM("USER", "SYSTEM", name="audit_actor_type", create_type=False)

ALL_ENUMS = (
    user_role,
    department,
    job_title,
    user_status,
    work_schedule_type,
    location_type,
    time_entry_type,
    time_entry_origin,
    request_type,
    request_status,
    audit_actor_type,
)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("department", department, nullable=False),
        sa.Column("job_title", job_title, nullable=False),
        sa.Column("status", user_status, nullable=False, server_default=sa.text("'ACTIVE'")),
        sa.Column(
            "work_schedule",
            work_schedule_type,
            nullable=False,
            server_default=sa.text("'COMMERCIAL'"),
        ),
        _created_at(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_department", "users", ["department"])

    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", location_type, nullable=False),
        sa.Column("latitude", sa.Numeric(10, 8), nullable=False),
        sa.Column("longitude", sa.Numeric(11, 8), nullable=False),
        sa.Column("radius_m", sa.Integer(), nullable=False, server_default=sa.text("100")),
        _created_at(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("radius_m > 0", name="ck_locations_radius_positive"),
    )
    op.create_index("ix_locations_user_id", "locations", ["user_id"])

    op.create_table(
        "time_entries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("ts_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("type", time_entry_type, nullable=False),
        sa.Column("origin", time_entry_origin, nullable=False),
        sa.Column("latitude_recorded", sa.Numeric(10, 8), nullable=False),
        sa.Column("longitude_recorded", sa.Numeric(11, 8), nullable=False),
        sa.Column(
            "is_manual_adjustment",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column("matched_location_name", sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_time_entries_user_id", "time_entries", ["user_id"])
    op.create_index("ix_time_entries_ts_utc", "time_entries", ["ts_utc"])

    op.create_table(
        "requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("requester_id", sa.Integer(), nullable=False),
        sa.Column("reviewer_id", sa.Integer(), nullable=True),
        sa.Column("type", request_type, nullable=False),
        sa.Column("target_date", sa.Date(), nullable=False),
        sa.Column("status", request_status, nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("justification_user", sa.Text(), nullable=True),
        sa.Column("justification_reviewer", sa.Text(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["requester_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reviewer_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_requests_requester_id", "requests", ["requester_id"])
    op.create_index("ix_requests_target_date", "requests", ["target_date"])
    op.create_index("ix_requests_status", "requests", ["status"])

    op.create_table(
        "attachments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("storage_ref", sa.String(length=255), nullable=False),
        sa.Column("content_type", sa.String(length=100), nullable=True),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["request_id"], ["requests.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_attachments_request_id", "attachments", ["request_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "ts_utc",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("old_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("new_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"])
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_actor_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_attachments_request_id", table_name="attachments")
    op.drop_table("attachments")
    op.drop_index("ix_requests_status", table_name="requests")
    op.drop_index("ix_requests_target_date", table_name="requests")
    op.drop_index("ix_requests_requester_id", table_name="requests")
    op.drop_table("requests")
    op.drop_index("ix_time_entries_ts_utc", table_name="time_entries")
    op.drop_index("ix_time_entries_user_id", table_name="time_entries")
    op.drop_table("time_entries")
    op.drop_index("ix_locations_user_id", table_name="locations")
    op.drop_table("locations")
    op.drop_index("ix_users_department", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in reversed(ALL_ENUMS):
        enum_type.drop(bind, checkfirst=True)
