from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from geopoint.audit import stage_audit
from geopoint.errors import (
    ApiError,
    already_finalized,
    dependency_unavailable,
    forbidden,
    request_not_found,
    user_not_found,
)
from geopoint.models import (
    Attachment,
    Department,
    EmployeeRequest,
    JobTitle,
    RequestStatus,
    RequestType,
    User,
    UserRole,
    UserStatus,
)
from geopoint.services.blob_store import BlobStore, BlobStoreUnavailable, UploadedFile
from geopoint.services.directory import (
    count_accepted_vacations_on_date,
    count_pending_by_requester,
    count_users_in_department,
    get_request,
    get_attachment,
    get_request_including_deleted,
    get_user,
    lock_department_users,
    lock_request,
    lock_user,
    normalize_ts,
)
from geopoint.settings import get_allowed_attachment_extensions, get_settings

logger = logging.getLogger("geopoint.requests")

TERMINAL_STATUSES = frozenset({RequestStatus.ACCEPTED, RequestStatus.REJECTED})
REVIEWER_JOB_TITLES = frozenset({JobTitle.MANAGER, JobTitle.HR_ANALYST})


@dataclass(frozen=True, slots=True)
class AttachmentFailure:
    file_name: str
    code: str
    message: str


@dataclass(slots=True)
class RequestCreateResult:
    request: EmployeeRequest
    attachments: list[Attachment] = field(default_factory=list)
    failed_attachments: list[AttachmentFailure] = field(default_factory=list)


def request_snapshot(request: EmployeeRequest) -> dict[str, Any]:
    return {
        "status": request.status.value,
        "type": request.type.value,
        "target_date": request.target_date.isoformat(),
        "justification_user": request.justification_user,
        "justification_reviewer": request.justification_reviewer,
        "reviewer_id": request.reviewer_id,
        "is_deleted": request.is_deleted,
    }


def attachment_too_large(file_name: str, max_bytes: int) -> ApiError:
    return ApiError(
        status_code=413,
        code="ATTACHMENT_TOO_LARGE",
        message=f"File '{file_name}' exceeds the {max_bytes // (1024 * 1024)}MB limit.",
        details={"file_name": file_name, "max_bytes": max_bytes},
    )


def validate_upload(upload: UploadedFile) -> None:
    max_bytes = get_settings().max_attachment_bytes
    if upload.size_bytes > max_bytes:
        raise attachment_too_large(upload.file_name, max_bytes)

    allowed = get_allowed_attachment_extensions()
    if upload.extension not in allowed:
        raise ApiError(
            status_code=415,
            code="ATTACHMENT_TYPE_REJECTED",
            message=f"Extension '{upload.extension or '-'}' is not allowed.",
            details={"file_name": upload.file_name, "allowed": sorted(allowed)},
        )


def _target_start_utc(target_date: date) -> datetime:
    return datetime.combine(target_date, time.min, tzinfo=timezone.utc)


def _ensure_lead_time(request_type: RequestType, target_date: date, *, now_utc: datetime, future_only: bool) -> None:
    if request_type == RequestType.VACATION:
        lead_days = get_settings().vacation_lead_days
        if _target_start_utc(target_date) < now_utc + timedelta(days=lead_days):
            raise ApiError(
                status_code=422,
                code="INSUFFICIENT_LEAD_TIME",
                message=f"Vacation requests need at least {lead_days} days of notice.",
            )
        return

    if future_only and target_date < now_utc.date() + timedelta(days=1):
        raise ApiError(
            status_code=422,
            code="INSUFFICIENT_LEAD_TIME",
            message="Target date must be in the future.",
        )


def _ensure_pending(request: EmployeeRequest) -> None:
    if request.status != RequestStatus.PENDING:
        raise already_finalized()


def _store_attachment(
    db: Session,
    *,
    request: EmployeeRequest,
    upload: UploadedFile,
    blob_store: BlobStore,
) -> Attachment:
    storage_ref = blob_store.store(upload)
    attachment = Attachment(
        file_name=upload.file_name,
        storage_ref=storage_ref,
        content_type=upload.content_type,
        size_bytes=upload.size_bytes,
    )
    request.attachments.append(attachment)
    db.add(attachment)
    return attachment


def create_request(
    db: Session,
    *,
    requester_id: int,
    request_type: RequestType,
    target_date: date,
    justification: str | None,
    attachments: Sequence[UploadedFile],
    blob_store: BlobStore,
    now_utc: datetime | None = None,
) -> RequestCreateResult:
    now = normalize_ts(now_utc)

    # Requester row lock keeps concurrent creates from overshooting the pending cap.
    requester = lock_user(db, requester_id)
    if requester is None:
        raise user_not_found()

    for upload in attachments:
        validate_upload(upload)

    max_pending = get_settings().max_pending_requests
    if count_pending_by_requester(db, requester_id) >= max_pending:
        raise ApiError(
            status_code=409,
            code="TOO_MANY_PENDING",
            message=f"You already have {max_pending} pending requests. Wait for a review.",
        )

    if request_type == RequestType.CERTIFICATE and not attachments:
        raise ApiError(
            status_code=422,
            code="PROOF_REQUIRED",
            message="Medical certificate requests need at least one attached proof.",
        )

    _ensure_lead_time(request_type, target_date, now_utc=now, future_only=False)

    request = EmployeeRequest(
        requester_id=requester_id,
        reviewer_id=None,
        type=request_type,
        target_date=target_date,
        status=RequestStatus.PENDING,
        justification_user=justification,
        is_deleted=False,
        created_at=now,
    )
    db.add(request)
    db.flush()
    stage_audit(
        db,
        actor_id=requester_id,
        action="REQUEST_CREATED",
        entity_type="request",
        entity_id=request.id,
        new_value=request_snapshot(request),
        ts_utc=now,
    )
    db.commit()

    # The request exists from here on; blob failures are reported per file and
    # can be retried through add_attachment.
    result = RequestCreateResult(request=request)
    for upload in attachments:
        try:
            result.attachments.append(_store_attachment(db, request=request, upload=upload, blob_store=blob_store))
        except BlobStoreUnavailable:
            logger.warning(
                "attachment_store_failed",
                extra={"request_id_db": request.id, "file_name": upload.file_name},
            )
            result.failed_attachments.append(
                AttachmentFailure(
                    file_name=upload.file_name,
                    code="DEPENDENCY_UNAVAILABLE",
                    message="File storage is unavailable. Retry the upload for this request.",
                )
            )
    if result.attachments:
        db.commit()
    db.refresh(request)

    logger.info(
        "request_created",
        extra={
            "request_id_db": request.id,
            "requester_id": requester_id,
            "request_type": request_type.value,
            "attachments": len(result.attachments),
            "failed_attachments": len(result.failed_attachments),
        },
    )
    return result


def review_request(
    db: Session,
    *,
    request_id: int,
    reviewer_id: int,
    new_status: RequestStatus,
    comment: str | None,
    now_utc: datetime | None = None,
) -> EmployeeRequest:
    now = normalize_ts(now_utc)
    request = lock_request(db, request_id)
    if request is None:
        raise request_not_found()
    _ensure_pending(request)

    if new_status not in TERMINAL_STATUSES:
        raise ApiError(
            status_code=422,
            code="INVALID_STATUS",
            message="A review must accept or reject the request.",
        )

    reviewer = get_user(db, reviewer_id)
    if reviewer is None:
        raise ApiError(status_code=400, code="INVALID_REVIEWER", message="Reviewer not found.")

    if reviewer.job_title not in REVIEWER_JOB_TITLES:
        raise forbidden("Your job title does not allow reviewing requests.")

    requester = get_user(db, request.requester_id)
    if requester is None:
        raise user_not_found()

    if reviewer.job_title == JobTitle.MANAGER and reviewer.department != requester.department:
        raise forbidden("Managers can only review requests from their own department.")

    if reviewer.id == request.requester_id:
        raise ApiError(
            status_code=403,
            code="SELF_REVIEW_FORBIDDEN",
            message="Conflict of interest: you cannot review your own request.",
        )

    if new_status == RequestStatus.REJECTED and not (comment or "").strip():
        raise ApiError(
            status_code=422,
            code="COMMENT_REQUIRED",
            message="A reason is required when rejecting a request.",
        )

    grants_vacation = new_status == RequestStatus.ACCEPTED and request.type == RequestType.VACATION
    if grants_vacation:
        _ensure_contingency_available(db, request=request, department=requester.department)

    old_value = request_snapshot(request)
    request.status = new_status
    request.reviewer_id = reviewer_id
    request.justification_reviewer = comment
    request.reviewed_at = now
    if grants_vacation:
        # Applied at approval time, not on the vacation start date.
        requester.status = UserStatus.ON_VACATION

    stage_audit(
        db,
        actor_id=reviewer_id,
        action="REQUEST_REVIEWED",
        entity_type="request",
        entity_id=request.id,
        old_value=old_value,
        new_value=request_snapshot(request),
        ts_utc=now,
    )
    _commit_or_finalized(db)

    logger.info(
        "request_reviewed",
        extra={
            "request_id_db": request.id,
            "reviewer_id": reviewer_id,
            "new_status": new_status.value,
            "requester_status_changed": grants_vacation,
        },
    )
    return request


def _ensure_contingency_available(db: Session, *, request: EmployeeRequest, department: Department) -> None:
    lock_department_users(db, department)
    dept_total = count_users_in_department(db, department)
    same_day_approved = count_accepted_vacations_on_date(db, department, request.target_date)
    ratio = get_settings().vacation_contingency_ratio
    if dept_total > 0 and (same_day_approved + 1) / dept_total > ratio:
        raise ApiError(
            status_code=409,
            code="CONTINGENCY_LIMIT_EXCEEDED",
            message=f"More than {ratio:.0%} of the department would be absent on this date.",
            details={
                "department": department.value,
                "target_date": request.target_date.isoformat(),
                "department_total": dept_total,
                "already_approved": same_day_approved,
            },
        )


def _commit_or_finalized(db: Session) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise already_finalized() from exc


def _can_manage_request(db: Session, *, request: EmployeeRequest, caller_id: int) -> bool:
    if caller_id == request.requester_id:
        return True
    caller = get_user(db, caller_id)
    if caller is None:
        return False
    return caller.job_title == JobTitle.HR_ANALYST or caller.role == UserRole.ADMIN


def delete_request(
    db: Session,
    *,
    request_id: int,
    caller_id: int,
    now_utc: datetime | None = None,
) -> EmployeeRequest:
    now = normalize_ts(now_utc)
    request = lock_request(db, request_id)
    if request is None:
        raise request_not_found()
    _ensure_pending(request)
    if not _can_manage_request(db, request=request, caller_id=caller_id):
        raise forbidden("Only the requester or HR can cancel this request.")

    old_value = request_snapshot(request)
    request.is_deleted = True
    request.deleted_at = now
    for attachment in request.attachments:
        attachment.is_deleted = True
        attachment.deleted_at = now

    stage_audit(
        db,
        actor_id=caller_id,
        action="REQUEST_DELETED",
        entity_type="request",
        entity_id=request.id,
        old_value=old_value,
        new_value=request_snapshot(request),
        ts_utc=now,
    )
    _commit_or_finalized(db)
    logger.info("request_deleted", extra={"request_id_db": request.id, "caller_id": caller_id})
    return request


def update_request(
    db: Session,
    *,
    request_id: int,
    target_date: date,
    justification: str | None,
    caller_id: int | None = None,
    now_utc: datetime | None = None,
) -> EmployeeRequest:
    now = normalize_ts(now_utc)
    request = lock_request(db, request_id)
    if request is None:
        raise request_not_found()
    _ensure_pending(request)
    if caller_id is not None and caller_id != request.requester_id:
        raise forbidden("Only the requester can change this request.")

    _ensure_lead_time(request.type, target_date, now_utc=now, future_only=True)

    old_value = request_snapshot(request)
    request.target_date = target_date
    request.justification_user = justification
    stage_audit(
        db,
        actor_id=caller_id if caller_id is not None else request.requester_id,
        action="REQUEST_UPDATED",
        entity_type="request",
        entity_id=request.id,
        old_value=old_value,
        new_value=request_snapshot(request),
        ts_utc=now,
    )
    _commit_or_finalized(db)
    return request


def add_attachment(
    db: Session,
    *,
    request_id: int,
    caller_id: int,
    upload: UploadedFile,
    blob_store: BlobStore,
    now_utc: datetime | None = None,
) -> Attachment:
    now = normalize_ts(now_utc)
    request = lock_request(db, request_id)
    if request is None:
        raise request_not_found()
    _ensure_pending(request)
    if caller_id != request.requester_id:
        raise forbidden("Only the requester can attach files to this request.")
    validate_upload(upload)

    try:
        attachment = _store_attachment(db, request=request, upload=upload, blob_store=blob_store)
    except BlobStoreUnavailable as exc:
        raise dependency_unavailable("File storage is unavailable. Retry later.") from exc
    db.flush()
    stage_audit(
        db,
        actor_id=caller_id,
        action="ATTACHMENT_ADDED",
        entity_type="attachment",
        entity_id=attachment.id,
        new_value={"request_id": request.id, "file_name": attachment.file_name},
        ts_utc=now,
    )
    db.commit()
    return attachment


def get_request_or_404(db: Session, request_id: int) -> EmployeeRequest:
    request = get_request(db, request_id)
    if request is None:
        raise request_not_found()
    return request


def list_requests_for_user(db: Session, *, user_id: int) -> list[EmployeeRequest]:
    if get_user(db, user_id) is None:
        raise user_not_found()
    return list(
        db.scalars(
            select(EmployeeRequest)
            .options(selectinload(EmployeeRequest.attachments))
            .where(
                EmployeeRequest.requester_id == user_id,
                EmployeeRequest.is_deleted.is_(False),
            )
            .order_by(EmployeeRequest.target_date.desc(), EmployeeRequest.id.desc())
        ).all()
    )


def list_pending_requests(db: Session, *, department: Department | None = None) -> list[EmployeeRequest]:
    stmt = (
        select(EmployeeRequest)
        .options(selectinload(EmployeeRequest.attachments))
        .where(
            EmployeeRequest.status == RequestStatus.PENDING,
            EmployeeRequest.is_deleted.is_(False),
        )
        .order_by(EmployeeRequest.target_date.asc(), EmployeeRequest.id.asc())
    )
    if department is not None:
        stmt = stmt.join(User, User.id == EmployeeRequest.requester_id).where(User.department == department)
    return list(db.scalars(stmt).all())


def get_request_for_audit(db: Session, request_id: int) -> EmployeeRequest:
    request = get_request_including_deleted(db, request_id)
    if request is None:
        raise request_not_found()
    return request


def get_attachment_or_404(db: Session, attachment_id: int) -> tuple[Attachment, EmployeeRequest]:
    attachment = get_attachment(db, attachment_id)
    if attachment is None:
        raise ApiError(status_code=404, code="NOT_FOUND", message="Attachment not found.")
    return attachment, get_request_or_404(db, attachment.request_id)


def read_attachment(attachment: Attachment, *, blob_store: BlobStore) -> bytes:
    try:
        return blob_store.open(attachment.storage_ref)
    except BlobStoreUnavailable as exc:
        raise dependency_unavailable("File storage is unavailable. Retry later.") from exc
